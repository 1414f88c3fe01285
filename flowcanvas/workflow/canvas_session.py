"""
Canvas Session — one editing session on one workflow.

Wires the graph store, the connection draft controller, the deletion
coordinator and every poller together, and turns local gestures into
calls on them:

* Delete / Backspace removes the selected nodes (ignored while typing)
* dropping a catalogue item creates a node at the drop point
* a deep-link query parameter selects and focuses a node on load

The session owns all of its pollers. ``close()`` (or leaving an
``async with`` block, or switching workflow) stops every one of them.

Usage::

    async with CanvasSession(api) as session:
        await session.open(workflow_id, query={"node": node_id})
        ...
"""

from __future__ import annotations

import json
from logging import getLogger
from typing import Any, Dict, Mapping, Optional, Sequence, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from flowcanvas.api.client import DeletionConflict
from flowcanvas.config.canvas_config import CanvasConfig, get_canvas_config
from flowcanvas.exceptions import WorkflowNotLoadedError
from flowcanvas.workflow.connection_draft import ConnectionDraftController
from flowcanvas.workflow.deletion import DeletionCoordinator
from flowcanvas.workflow.graph_store import GraphStore
from flowcanvas.workflow.run_poller import FileRef, RunStatusPoller
from flowcanvas.workflow.workflow_inspector import (
    FlowSummaryPoller,
    NodeDocumentsPoller,
    OrphanedDocumentsPoller,
)
from flowcanvas.workflow.workflow_model import NodeType, Position, WorkflowNodeInstance

logger = getLogger(__name__)

DELETE_KEYS = frozenset({"Delete", "Backspace"})


class DragPayload(BaseModel):
    """What the node palette puts on the drag: a type and its label."""

    model_config = ConfigDict(populate_by_name=True)

    node_type: NodeType = Field(alias="nodeType")
    label: str = ""


class CanvasSession:

    def __init__(self, api: Any, config: Optional[CanvasConfig] = None) -> None:
        self._api = api
        self._config = config or get_canvas_config()
        interval = self._config.poll_interval

        self.store = GraphStore(api, self._config)
        self.drafts = ConnectionDraftController(self.store)
        self.deletions = DeletionCoordinator(self.store, api)
        self.run_poller = RunStatusPoller(api, interval=interval)

        self.summary: Optional[FlowSummaryPoller] = None
        self.node_documents: Optional[NodeDocumentsPoller] = None
        self.orphaned: Optional[OrphanedDocumentsPoller] = None

        self.selection: Set[str] = set()
        self.focused_node_id: Optional[str] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def open(
        self, workflow_id: str, query: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Load ``workflow_id``, first stopping whatever the session had open."""
        await self._leave_workflow()
        await self.store.load(workflow_id)
        logger.info(f"Canvas session opened for workflow {workflow_id}")
        interval = self._config.poll_interval
        self.summary = FlowSummaryPoller(self._api, workflow_id, interval=interval)
        self.node_documents = NodeDocumentsPoller(self._api, workflow_id, interval=interval)
        self.orphaned = OrphanedDocumentsPoller(self._api, workflow_id, interval=interval)
        if query:
            self.focus_from_query(query)

    async def switch_workflow(
        self, workflow_id: str, query: Optional[Mapping[str, str]] = None,
    ) -> None:
        await self._leave_workflow()
        self.store.clear()
        await self.open(workflow_id, query)

    async def close(self) -> None:
        await self._stop_pollers()
        self.drafts.cancel()
        await self.store.drain()
        logger.info(f"Canvas session closed for workflow {self.store.workflow_id}")

    async def _stop_pollers(self) -> None:
        self.run_poller.reset()
        for poller in (self.summary, self.node_documents, self.orphaned):
            if poller is not None:
                await poller.aclose()

    async def _leave_workflow(self) -> None:
        await self._stop_pollers()
        self.summary = self.node_documents = self.orphaned = None
        self.drafts.cancel()
        self.selection = set()
        self.focused_node_id = None

    def _require_open(self) -> None:
        if self.summary is None or self.store.workflow_id is None:
            raise WorkflowNotLoadedError()

    async def __aenter__(self) -> "CanvasSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ========================================================================
    # Selection & focus
    # ========================================================================

    def select(self, node_id: str, additive: bool = False) -> None:
        self.store.get_node(node_id)
        if additive:
            self.selection = self.selection | {node_id}
        else:
            self.selection = {node_id}

    def clear_selection(self) -> None:
        self.selection = set()

    def focus_from_query(self, query: Mapping[str, str]) -> Optional[WorkflowNodeInstance]:
        """Select the node named by the deep-link parameter, if it exists."""
        node_id = query.get(self._config.focus_query_param)
        if not node_id or not self.store.has_node(node_id):
            return None
        self.selection = {node_id}
        self.focused_node_id = node_id
        return self.store.get_node(node_id)

    # ========================================================================
    # Gestures
    # ========================================================================

    async def handle_key(
        self, key: str, in_text_input: bool = False,
    ) -> Dict[str, DeletionConflict]:
        """Keyboard handler. Returns deletion conflicts needing confirmation."""
        if key not in DELETE_KEYS or in_text_input or not self.selection:
            return {}
        logger.debug(f"Delete key: removing {len(self.selection)} selected node(s)")
        conflicts = await self.deletions.delete_nodes(sorted(self.selection))
        self.selection = {n for n in self.selection if self.store.has_node(n)}
        return conflicts

    async def drop_catalogue_item(
        self, payload: Union[str, Mapping[str, Any]], position: Position,
    ) -> WorkflowNodeInstance:
        """Create a node from a palette drag payload at the drop position."""
        if isinstance(payload, str):
            payload = json.loads(payload)
        item = DragPayload.model_validate(payload)
        return await self.store.add_node(item.node_type, item.label or None, position)

    def end_node_drag(self, node_id: str, position: Position) -> None:
        self.store.move_node(node_id, position)

    # ========================================================================
    # Runs & inspector
    # ========================================================================

    async def trigger_run(
        self, uploads: Mapping[Optional[str], Sequence[FileRef]],
    ) -> Optional[str]:
        return await self.run_poller.trigger_run(self.store.workflow_id, uploads)

    def start_inspector(self) -> None:
        self._require_open()
        self.summary.start()

    def inspect_node(self, node_id: str, tab_id: Optional[str] = None) -> None:
        """Browse one node's documents; hides the orphaned list."""
        self._require_open()
        node = self.store.get_node(node_id)
        self.orphaned.stop()
        self.node_documents.inspect(node.id, node.node_type, node.config, tab_id)

    def show_orphaned(self) -> None:
        """Browse orphaned documents; stops the node browser."""
        self._require_open()
        self.node_documents.close()
        self.orphaned.start()
