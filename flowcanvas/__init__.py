"""
FlowCanvas — graph-editing and live-status core for document workflows.
"""

__version__ = "0.1.0"
