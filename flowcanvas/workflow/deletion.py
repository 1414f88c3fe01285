"""
Deletion Coordinator — remove nodes without losing held documents.

A plain delete is refused by the backend (HTTP 409) while documents are
held at the node. The coordinator hands that back as a
``DeletionConflict`` and leaves the graph untouched; the caller asks the
user and calls again with ``force=True``, which makes the backend move
the held documents to the orphaned area before deleting.
"""

from __future__ import annotations

from logging import getLogger
from typing import Any, Dict, Iterable, Optional

from flowcanvas.api.client import DeletionConflict
from flowcanvas.workflow.graph_store import GraphStore

logger = getLogger(__name__)


class DeletionCoordinator:

    def __init__(self, store: GraphStore, api: Any) -> None:
        self._store = store
        self._api = api

    async def delete_node(self, node_id: str, force: bool = False) -> Optional[DeletionConflict]:
        """Delete a node and its edges.

        Returns ``None`` on success, or the conflict when documents are
        held at the node and ``force`` is false.
        """
        workflow_id = self._store.workflow_id
        node = self._store.get_node(node_id)

        conflict = await self._api.delete_node(workflow_id, node_id, force=force)
        if conflict is not None:
            logger.info(
                f"Delete of node {node.name} ({node_id}) blocked: "
                f"{conflict.held_count} held, {conflict.unrouted_count} unrouted"
            )
            return conflict

        if force:
            logger.warning(f"Node force-deleted: {node.name} ({node_id})")
        else:
            logger.info(f"Node deleted: {node.name} ({node_id})")
        self._store.apply_node_removal(node_id)
        return None

    async def delete_nodes(
        self, node_ids: Iterable[str], force: bool = False,
    ) -> Dict[str, DeletionConflict]:
        """Delete several nodes one after another.

        Returns the conflicts keyed by node id; nodes without a conflict
        are gone from the graph.
        """
        conflicts: Dict[str, DeletionConflict] = {}
        for node_id in list(node_ids):
            if not self._store.has_node(node_id):
                continue
            conflict = await self.delete_node(node_id, force=force)
            if conflict is not None:
                conflicts[node_id] = conflict
        return conflicts
