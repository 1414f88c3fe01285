"""
Port Resolver — derive a node's input and output ports.

Ports are never stored. They are recomputed from ``(node_type, config)``
whenever a node's configuration changes. Edges reference port ids by
value, so every configurable port id comes straight from the config
entry it represents (case id, label text, slot id) and never from its
position in a list.
"""

from __future__ import annotations

from typing import Any, List

from flowcanvas.workflow.workflow_model import (
    DEFAULT_PORT,
    NodePorts,
    NodeType,
    Port,
    WorkflowNodeInstance,
    parse_node_config,
)

FALLBACK_PORT = "fallback"

_DEFAULT_INPUT = Port(id=DEFAULT_PORT, label="Input")
_DEFAULT_OUTPUT = Port(id=DEFAULT_PORT, label="Output")


def resolve_ports(node_type: NodeType, config: Any = None) -> NodePorts:
    """Return the ordered input and output ports for a node.

    ``config`` may be a parsed config record, a raw dict, or ``None``.
    """
    node_type = NodeType(node_type)
    cfg = parse_node_config(node_type, config)

    inputs: List[Port] = [_DEFAULT_INPUT]
    outputs: List[Port] = [_DEFAULT_OUTPUT]

    if node_type is NodeType.IF:
        outputs = [Port(id="true", label="True"), Port(id="false", label="False")]

    elif node_type is NodeType.SWITCH:
        outputs = [Port(id=c.id, label=c.label or c.id) for c in cfg.cases]
        outputs.append(Port(id=FALLBACK_PORT, label="Fallback"))

    elif node_type is NodeType.CATEGORISATION:
        labels = _unique(cfg.categorisation_labels)
        if labels:
            outputs = [Port(id=label, label=label) for label in labels]

    elif node_type is NodeType.RECONCILIATION:
        slots = [
            Port(id=s.id, label=s.label or f"Slot {s.id}")
            for s in cfg.recon_inputs
        ]
        if slots:
            inputs = list(slots)
            outputs = list(slots)

    elif node_type in (
        NodeType.MANUAL_UPLOAD,
        NodeType.WEBHOOK,
        NodeType.SPLITTING,
        NodeType.SET_VALUE,
        NodeType.EXTRACTOR,
        NodeType.DATA_MAPPER,
        NodeType.DOCUMENT_FOLDER,
        NodeType.HTTP,
    ):
        pass

    else:  # pragma: no cover - NodeType is closed
        raise ValueError(f"Unhandled node type: {node_type}")

    return NodePorts(inputs=inputs, outputs=outputs)


def resolve_node_ports(node: WorkflowNodeInstance) -> NodePorts:
    return resolve_ports(node.node_type, node.config)


def _unique(values: List[str]) -> List[str]:
    """Drop empty and repeated labels, keeping first occurrence order."""
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result
