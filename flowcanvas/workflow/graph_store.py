"""
Graph Store — canonical node/edge collections for one workflow.

Every structural mutation (create node, connect, delete edge, rename,
publish, config edits) calls the remote API first and only touches the
local graph after the call succeeds. A failed call propagates and leaves
the graph exactly as it was.

Node moves are the exception: the new position is applied locally at
once and persisted in the background, since losing a drag position is
cheap.

Listeners registered with ``subscribe`` are called once per committed
state change, after the change is fully applied.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import Any, Callable, Dict, List, Optional, Set

from flowcanvas.config.canvas_config import CanvasConfig, get_canvas_config
from flowcanvas.exceptions import (
    EdgeNotFoundError,
    InvalidConnectionError,
    NodeNotFoundError,
    WorkflowNotLoadedError,
)
from flowcanvas.workflow.node_catalogue import TRIGGER_TYPES, default_node_name
from flowcanvas.workflow.placement import find_free_position
from flowcanvas.workflow.port_resolver import resolve_node_ports
from flowcanvas.workflow.workflow_model import (
    NodePorts,
    NodeType,
    Position,
    Workflow,
    WorkflowEdge,
    WorkflowNodeInstance,
)

logger = getLogger(__name__)

Listener = Callable[["GraphStore"], None]


class GraphStore:
    """Owns the in-memory graph and keeps it in step with the remote API."""

    def __init__(self, api: Any, config: Optional[CanvasConfig] = None) -> None:
        self._api = api
        self._config = config or get_canvas_config()

        self._workflow: Optional[Workflow] = None
        self._nodes: Dict[str, WorkflowNodeInstance] = {}
        self._edges: Dict[str, WorkflowEdge] = {}
        self.loading = False

        self._listeners: List[Listener] = []
        self._pending_moves: Set[asyncio.Task] = set()

    # ── Read access ──

    @property
    def workflow(self) -> Optional[Workflow]:
        return self._workflow

    @property
    def workflow_id(self) -> Optional[str]:
        return self._workflow.id if self._workflow else None

    @property
    def workflow_name(self) -> str:
        return self._workflow.name if self._workflow else ""

    @property
    def is_published(self) -> bool:
        return bool(self._workflow and self._workflow.is_published)

    @property
    def nodes(self) -> List[WorkflowNodeInstance]:
        return list(self._nodes.values())

    @property
    def edges(self) -> List[WorkflowEdge]:
        return list(self._edges.values())

    def get_node(self, node_id: str) -> WorkflowNodeInstance:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def get_edge(self, edge_id: str) -> WorkflowEdge:
        edge = self._edges.get(edge_id)
        if edge is None:
            raise EdgeNotFoundError(edge_id)
        return edge

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def edges_touching(self, node_id: str) -> List[WorkflowEdge]:
        return [e for e in self._edges.values() if e.touches(node_id)]

    def ports_for(self, node_id: str) -> NodePorts:
        """Ports currently derived for a node from its type and config."""
        return resolve_node_ports(self.get_node(node_id))

    def dangling_edges(self) -> List[WorkflowEdge]:
        """Edges whose port ids no longer match the derived ports.

        These stay in the graph (a config edit may bring the port back)
        but are drawn without highlighting.
        """
        dangling = []
        for edge in self._edges.values():
            source = self._nodes.get(edge.source)
            target = self._nodes.get(edge.target)
            if source is None or target is None:
                dangling.append(edge)
                continue
            if (
                edge.source_port not in resolve_node_ports(source).output_ids
                or edge.target_port not in resolve_node_ports(target).input_ids
            ):
                dangling.append(edge)
        return dangling

    def trigger_nodes(self, node_types=TRIGGER_TYPES) -> List[WorkflowNodeInstance]:
        return [n for n in self._nodes.values() if n.node_type in node_types]

    # ── Subscription ──

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ========================================================================
    # Loading
    # ========================================================================

    async def load(self, workflow_id: str) -> None:
        """Fetch the workflow header, nodes and edges, replacing local state."""
        self.loading = True
        try:
            workflow, db_nodes, db_edges = await asyncio.gather(
                self._api.get_workflow(workflow_id),
                self._api.list_nodes(workflow_id),
                self._api.list_edges(workflow_id),
            )
        finally:
            self.loading = False

        nodes = [WorkflowNodeInstance.model_validate(n) for n in db_nodes or []]
        edges = [WorkflowEdge.model_validate(e) for e in db_edges or []]

        self._workflow = Workflow.model_validate(workflow)
        self._nodes = {n.id: n for n in nodes}
        self._edges = {e.id: e for e in edges}
        logger.info(
            f"Workflow loaded: {self._workflow.name} ({workflow_id}), "
            f"{len(nodes)} nodes, {len(edges)} edges"
        )
        self._notify()

    def clear(self) -> None:
        """Forget the current workflow (used when switching workflows)."""
        self._workflow = None
        self._nodes = {}
        self._edges = {}
        self._notify()

    # ========================================================================
    # Nodes
    # ========================================================================

    async def add_node(
        self,
        node_type: NodeType,
        name: Optional[str] = None,
        position: Optional[Position] = None,
    ) -> WorkflowNodeInstance:
        """Create a node near ``position`` without overlapping others."""
        workflow_id = self._require_workflow()
        node_type = NodeType(node_type)
        cfg = self._config
        resolved = find_free_position(
            (n.position for n in self._nodes.values()),
            position or Position(),
            width=cfg.node_width,
            height=cfg.node_height,
            step=cfg.placement_step,
            columns=cfg.placement_columns,
            max_attempts=cfg.placement_max_attempts,
        )

        db_node = await self._api.create_node(
            workflow_id,
            node_type.value,
            name or default_node_name(node_type),
            resolved.x,
            resolved.y,
        )
        node = WorkflowNodeInstance.model_validate(db_node)
        if not self._is_current(workflow_id, f"node {node.id}"):
            return node
        self._nodes = {**self._nodes, node.id: node}
        logger.info(f"Node created: {node.name} [{node.node_type.value}] ({node.id})")
        self._notify()
        return node

    async def update_node(
        self,
        node_id: str,
        name: Optional[str] = None,
        config: Any = None,
    ) -> WorkflowNodeInstance:
        """Persist a rename and/or config edit, then apply it locally."""
        workflow_id = self._require_workflow()
        node = self.get_node(node_id)

        payload_config = None
        if config is not None:
            payload_config = node.with_config(config).config.model_dump(mode="json")

        db_node = await self._api.update_node(
            workflow_id, node_id, name=name, config=payload_config,
        )

        if isinstance(db_node, dict) and db_node.get("id") == node_id:
            updated = WorkflowNodeInstance.model_validate(db_node)
        else:
            updated = node
            if name is not None:
                updated = updated.model_copy(update={"name": name})
            if config is not None:
                updated = updated.with_config(payload_config)

        if not self._is_current(workflow_id, f"update of node {node_id}"):
            return updated
        self._nodes = {**self._nodes, node_id: updated}
        logger.info(f"Node updated: {updated.name} ({node_id})")
        self._notify()
        return updated

    def move_node(self, node_id: str, position: Position) -> asyncio.Task:
        """Apply a drag position now and persist it in the background.

        Returns the persistence task; callers normally ignore it.
        """
        workflow_id = self._require_workflow()
        node = self.get_node(node_id)
        self._nodes = {
            **self._nodes,
            node_id: node.model_copy(update={"position": position}),
        }
        self._notify()

        task = asyncio.ensure_future(
            self._persist_position(workflow_id, node_id, position)
        )
        self._pending_moves.add(task)
        task.add_done_callback(self._pending_moves.discard)
        return task

    async def _persist_position(
        self, workflow_id: str, node_id: str, position: Position,
    ) -> None:
        try:
            await self._api.update_node(workflow_id, node_id, x=position.x, y=position.y)
        except Exception as e:
            logger.warning(f"Failed to persist position of node {node_id}: {e}")

    async def drain(self) -> None:
        """Wait for outstanding background position writes."""
        if self._pending_moves:
            await asyncio.gather(*list(self._pending_moves))

    def apply_node_removal(self, node_id: str) -> None:
        """Drop a node and every edge touching it in one state change.

        Only called once the remote delete has been acknowledged.
        """
        self._nodes = {k: v for k, v in self._nodes.items() if k != node_id}
        self._edges = {k: e for k, e in self._edges.items() if not e.touches(node_id)}
        self._notify()

    # ========================================================================
    # Edges
    # ========================================================================

    async def connect(
        self,
        source_node_id: str,
        source_port: Optional[str],
        target_node_id: str,
        target_port: Optional[str],
    ) -> WorkflowEdge:
        """Create an edge from an output port to an input port.

        ``None`` ports resolve to the node's first derived port.
        """
        workflow_id = self._require_workflow()
        source_port, target_port = self._validate_connection(
            source_node_id, source_port, target_node_id, target_port,
        )

        db_edge = await self._api.create_edge(
            workflow_id, source_node_id, source_port, target_node_id, target_port,
        )
        edge = WorkflowEdge.model_validate(db_edge)
        if not self._is_current(workflow_id, f"edge {edge.id}"):
            return edge
        self._edges = {**self._edges, edge.id: edge}
        logger.info(
            f"Edge created: {edge.source}:{edge.source_port} → "
            f"{edge.target}:{edge.target_port} ({edge.id})"
        )
        self._notify()
        return edge

    async def delete_edge(self, edge_id: str) -> None:
        workflow_id = self._require_workflow()
        self.get_edge(edge_id)
        await self._api.delete_edge(workflow_id, edge_id)
        if not self._is_current(workflow_id, f"deletion of edge {edge_id}"):
            return
        self._edges = {k: e for k, e in self._edges.items() if k != edge_id}
        logger.info(f"Edge deleted: {edge_id}")
        self._notify()

    def _validate_connection(
        self,
        source_node_id: str,
        source_port: Optional[str],
        target_node_id: str,
        target_port: Optional[str],
    ):
        missing = [n for n in (source_node_id, target_node_id) if n not in self._nodes]
        if missing:
            raise InvalidConnectionError(
                f"Unknown node(s): {', '.join(missing)}",
                details={"missing": missing},
            )

        source_ports = self.ports_for(source_node_id)
        target_ports = self.ports_for(target_node_id)
        source_port = source_port or source_ports.default_output
        target_port = target_port or target_ports.default_input

        if source_port not in source_ports.output_ids:
            raise InvalidConnectionError(
                f"Node {source_node_id} has no output port '{source_port}'",
                details={"node_id": source_node_id, "port": source_port},
            )
        if target_port not in target_ports.input_ids:
            raise InvalidConnectionError(
                f"Node {target_node_id} has no input port '{target_port}'",
                details={"node_id": target_node_id, "port": target_port},
            )
        return source_port, target_port

    # ========================================================================
    # Workflow header
    # ========================================================================

    async def rename_workflow(self, name: str) -> None:
        workflow_id = self._require_workflow()
        name = name.strip()
        if not name or name == self._workflow.name:
            return
        await self._api.update_workflow(workflow_id, name=name)
        if not self._is_current(workflow_id, "rename"):
            return
        self._workflow = self._workflow.model_copy(update={"name": name})
        self._notify()

    async def toggle_publish(self) -> bool:
        """Flip the published flag. Returns the new value."""
        workflow_id = self._require_workflow()
        was_published = self._workflow.is_published
        if was_published:
            updated = await self._api.unpublish_workflow(workflow_id)
        else:
            updated = await self._api.publish_workflow(workflow_id)

        if isinstance(updated, dict) and "is_published" in updated:
            published = bool(updated["is_published"])
        else:
            published = not was_published
        if not self._is_current(workflow_id, "publish toggle"):
            return published
        self._workflow = self._workflow.model_copy(update={"is_published": published})
        self._notify()
        return published

    # ── Internals ──

    def _require_workflow(self) -> str:
        if self._workflow is None:
            raise WorkflowNotLoadedError()
        return self._workflow.id

    def _is_current(self, workflow_id: str, what: str) -> bool:
        """False when the store moved to another workflow during a remote call."""
        if self.workflow_id == workflow_id:
            return True
        logger.debug(
            f"Discarding {what} for workflow {workflow_id}; "
            f"store now holds {self.workflow_id}"
        )
        return False
