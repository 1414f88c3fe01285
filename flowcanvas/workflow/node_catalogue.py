"""
Node Catalogue — the node types users can add to a canvas.

Each entry carries the display label used as the default node name
and the palette category. Trigger and hold-capable type sets live
here as well since several components branch on them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, List

from flowcanvas.workflow.workflow_model import NodeType


@dataclass(frozen=True)
class CatalogueEntry:
    node_type: NodeType
    label: str
    category: str


NODE_CATALOGUE: List[CatalogueEntry] = [
    CatalogueEntry(NodeType.MANUAL_UPLOAD, "Manual Upload", "Trigger"),
    CatalogueEntry(NodeType.WEBHOOK, "Webhook", "Trigger"),
    CatalogueEntry(NodeType.SPLITTING, "Document Splitting", "Config"),
    CatalogueEntry(NodeType.CATEGORISATION, "Document Categorisation", "Config"),
    CatalogueEntry(NodeType.IF, "IF", "Execution"),
    CatalogueEntry(NodeType.SWITCH, "SWITCH", "Execution"),
    CatalogueEntry(NodeType.SET_VALUE, "Set Value", "Execution"),
    CatalogueEntry(NodeType.EXTRACTOR, "Extractor", "Service"),
    CatalogueEntry(NodeType.DATA_MAPPER, "Data Mapper", "Service"),
    CatalogueEntry(NodeType.RECONCILIATION, "Reconciliation", "Service"),
    CatalogueEntry(NodeType.DOCUMENT_FOLDER, "Document Folder", "Service"),
    CatalogueEntry(NodeType.HTTP, "HTTP", "Output"),
]

_BY_TYPE: Dict[NodeType, CatalogueEntry] = {e.node_type: e for e in NODE_CATALOGUE}

TRIGGER_TYPES: FrozenSet[NodeType] = frozenset(
    {NodeType.MANUAL_UPLOAD, NodeType.WEBHOOK}
)

# Node types that can hold documents awaiting manual release
HOLD_CAPABLE_TYPES: FrozenSet[NodeType] = frozenset(
    {NodeType.EXTRACTOR, NodeType.DOCUMENT_FOLDER, NodeType.RECONCILIATION}
)


def get_entry(node_type: NodeType) -> CatalogueEntry:
    return _BY_TYPE[NodeType(node_type)]


def default_node_name(node_type: NodeType) -> str:
    """Label a freshly created node gets before the user renames it."""
    return get_entry(node_type).label


def category_of(node_type: NodeType) -> str:
    return get_entry(node_type).category


def entries_by_category() -> Dict[str, List[CatalogueEntry]]:
    """Group catalogue entries for the node picker, preserving order."""
    grouped: Dict[str, List[CatalogueEntry]] = {}
    for entry in NODE_CATALOGUE:
        grouped.setdefault(entry.category, []).append(entry)
    return grouped
