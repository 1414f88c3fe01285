"""
Workflow Engine — graph editing and live status overlay.

Owns the in-memory graph of one workflow, keeps it consistent with the
remote API, and overlays execution progress polled from the backend.

Architecture:
    workflow_model     — Workflow / node / edge / config / port models
    node_catalogue     — Node types users can add, with categories
    port_resolver      — (node type, config) → input & output ports
    placement          — Non-overlapping positions for new nodes
    graph_store        — Canonical graph, remote-first mutations
    connection_draft   — Drag-to-connect / drag-to-create state machine
    deletion           — Node deletion with held-document conflicts
    polling            — Cancellable periodic tasks
    run_poller         — Run trigger + per-node status overlay
    workflow_inspector — Per-node and orphaned document browsers
    canvas_session     — Gestures, selection, and poller teardown
"""

from flowcanvas.workflow.workflow_model import (
    DEFAULT_PORT,
    NodePorts,
    NodeType,
    Port,
    Position,
    Workflow,
    WorkflowEdge,
    WorkflowNodeInstance,
)
from flowcanvas.workflow.port_resolver import resolve_ports
from flowcanvas.workflow.placement import find_free_position
from flowcanvas.workflow.graph_store import GraphStore
from flowcanvas.workflow.connection_draft import (
    ConnectionDraftController,
    DraftState,
    PortRole,
)
from flowcanvas.workflow.deletion import DeletionCoordinator
from flowcanvas.workflow.polling import PeriodicTask, ScopedPoller, start_periodic
from flowcanvas.workflow.run_poller import RunState, RunStatusPoller
from flowcanvas.workflow.workflow_inspector import (
    FlowSummaryPoller,
    NodeDocumentsPoller,
    OrphanedDocumentsPoller,
)
from flowcanvas.workflow.canvas_session import CanvasSession

__all__ = [
    "DEFAULT_PORT",
    "NodePorts",
    "NodeType",
    "Port",
    "Position",
    "Workflow",
    "WorkflowEdge",
    "WorkflowNodeInstance",
    "resolve_ports",
    "find_free_position",
    "GraphStore",
    "ConnectionDraftController",
    "DraftState",
    "PortRole",
    "DeletionCoordinator",
    "PeriodicTask",
    "ScopedPoller",
    "start_periodic",
    "RunState",
    "RunStatusPoller",
    "FlowSummaryPoller",
    "NodeDocumentsPoller",
    "OrphanedDocumentsPoller",
    "CanvasSession",
]
