"""
Connection Draft Controller — drag a connection, optionally into a new node.

States::

    IDLE ──start_drag()──▶ DRAGGING ──drop_on_port()──────────────▶ IDLE   (connect)
                              │
                              └─drop_on_canvas()──▶ AWAITING_TARGET_TYPE
                                                     │  pick_node_type()   (picker highlight)
                                                     ├─ confirm() / select_node_type()
                                                     │     └─▶ CREATING ──▶ IDLE  (add node, then connect)
                                                     └─ cancel() ──────────▶ IDLE  (nothing persisted)

Only one draft exists at a time. The new node is created and
acknowledged before the edge to it is requested.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from logging import getLogger
from typing import Optional

from flowcanvas.exceptions import DraftStateError
from flowcanvas.workflow.graph_store import GraphStore
from flowcanvas.workflow.port_resolver import resolve_node_ports
from flowcanvas.workflow.workflow_model import (
    NodeType,
    Position,
    WorkflowEdge,
    WorkflowNodeInstance,
)

logger = getLogger(__name__)


class DraftState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    AWAITING_TARGET_TYPE = "awaiting_target_type"
    CREATING = "creating"


class PortRole(str, Enum):
    """Which side of an edge the dragged port sits on."""
    SOURCE = "source"   # an output port
    TARGET = "target"   # an input port


@dataclass
class ConnectionDraft:
    node_id: str
    port_id: Optional[str]
    role: PortRole
    pending_position: Optional[Position] = None
    picked_type: Optional[NodeType] = None


class ConnectionDraftController:
    """Coordinates drag-to-connect and drag-to-create gestures."""

    def __init__(self, store: GraphStore) -> None:
        self._store = store
        self.state = DraftState.IDLE
        self.draft: Optional[ConnectionDraft] = None

    @property
    def picker_open(self) -> bool:
        return self.state is DraftState.AWAITING_TARGET_TYPE

    # ── Transitions ──

    def start_drag(
        self, node_id: str, port_id: Optional[str], role: PortRole = PortRole.SOURCE,
    ) -> ConnectionDraft:
        if self.state is not DraftState.IDLE:
            raise DraftStateError(
                "A connection draft is already in progress", state=self.state.value,
            )
        self._store.get_node(node_id)
        self.draft = ConnectionDraft(node_id=node_id, port_id=port_id, role=PortRole(role))
        self.state = DraftState.DRAGGING
        return self.draft

    async def drop_on_port(self, node_id: str, port_id: Optional[str]) -> WorkflowEdge:
        """Finish the drag on another node's port and connect directly."""
        draft = self._require(DraftState.DRAGGING)
        try:
            if draft.role is PortRole.SOURCE:
                return await self._store.connect(draft.node_id, draft.port_id, node_id, port_id)
            return await self._store.connect(node_id, port_id, draft.node_id, draft.port_id)
        finally:
            self._reset()

    def drop_on_canvas(self, position: Position) -> ConnectionDraft:
        """Finish the drag over empty canvas; the node picker opens."""
        draft = self._require(DraftState.DRAGGING)
        draft.pending_position = position
        self.state = DraftState.AWAITING_TARGET_TYPE
        logger.debug(f"Connection draft from {draft.node_id} dropped on canvas; awaiting node type")
        return draft

    def pick_node_type(self, node_type: NodeType) -> None:
        """Highlight a type in the picker. Nothing is persisted yet."""
        draft = self._require(DraftState.AWAITING_TARGET_TYPE)
        draft.picked_type = NodeType(node_type)

    async def confirm(self, name: Optional[str] = None) -> WorkflowEdge:
        """Create the picked node at the draft position and wire it up."""
        draft = self._require(DraftState.AWAITING_TARGET_TYPE)
        if draft.picked_type is None:
            raise DraftStateError("No node type picked", state=self.state.value)
        if not self._store.has_node(draft.node_id):
            state = self.state.value
            self._reset()
            raise DraftStateError(
                f"Draft origin node {draft.node_id} no longer exists", state=state,
            )

        self.state = DraftState.CREATING
        try:
            node = await self._store.add_node(
                draft.picked_type, name, draft.pending_position,
            )
            return await self._connect_new_node(draft, node)
        finally:
            self._reset()

    async def select_node_type(
        self, node_type: NodeType, name: Optional[str] = None,
    ) -> WorkflowEdge:
        self.pick_node_type(node_type)
        return await self.confirm(name)

    def cancel(self) -> None:
        """Discard the draft. Ignored while the new node is being created."""
        if self.state is DraftState.CREATING:
            return
        if self.draft is not None:
            logger.debug(f"Connection draft from {self.draft.node_id} cancelled")
        self._reset()

    # ── Internals ──

    async def _connect_new_node(
        self, draft: ConnectionDraft, node: WorkflowNodeInstance,
    ) -> WorkflowEdge:
        ports = resolve_node_ports(node)
        if draft.role is PortRole.SOURCE:
            return await self._store.connect(
                draft.node_id, draft.port_id, node.id, ports.default_input,
            )
        return await self._store.connect(
            node.id, ports.default_output, draft.node_id, draft.port_id,
        )

    def _require(self, state: DraftState) -> ConnectionDraft:
        if self.state is not state or self.draft is None:
            raise DraftStateError(
                f"Expected draft state '{state.value}', got '{self.state.value}'",
                state=self.state.value,
            )
        return self.draft

    def _reset(self) -> None:
        self.draft = None
        self.state = DraftState.IDLE
