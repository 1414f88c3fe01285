"""
Tests for DeletionCoordinator
"""

from unittest.mock import patch

import pytest

from flowcanvas.api.client import DeletionConflict
from flowcanvas.exceptions import ApiError, NodeNotFoundError
from flowcanvas.workflow.deletion import DeletionCoordinator
from flowcanvas.workflow.workflow_model import NodeType


@pytest.fixture
def deletions(store, fake_api):
    return DeletionCoordinator(store, fake_api)


class TestDeleteNode:

    @pytest.mark.asyncio
    async def test_delete_removes_node_and_edges(self, store, deletions):
        a = await store.add_node(NodeType.MANUAL_UPLOAD)
        b = await store.add_node(NodeType.EXTRACTOR)
        await store.connect(a.id, None, b.id, None)

        assert await deletions.delete_node(b.id) is None

        assert not store.has_node(b.id)
        assert store.edges == []

    @pytest.mark.asyncio
    async def test_conflict_leaves_graph_untouched(self, store, deletions, fake_api):
        a = await store.add_node(NodeType.MANUAL_UPLOAD)
        b = await store.add_node(NodeType.EXTRACTOR)
        await store.connect(a.id, None, b.id, None)
        fake_api.held[b.id] = 3

        conflict = await deletions.delete_node(b.id)

        assert conflict == DeletionConflict(held_count=3, unrouted_count=0)
        assert store.has_node(b.id)
        assert len(store.edges) == 1

    @pytest.mark.asyncio
    async def test_forced_delete_after_conflict(self, store, deletions, fake_api):
        b = await store.add_node(NodeType.EXTRACTOR)
        fake_api.held[b.id] = 2

        assert await deletions.delete_node(b.id) is not None
        assert await deletions.delete_node(b.id, force=True) is None

        assert not store.has_node(b.id)
        assert ("delete_node", store.workflow_id, b.id, True) in fake_api.calls

    @pytest.mark.asyncio
    async def test_api_failure_propagates(self, store, deletions, fake_api):
        b = await store.add_node(NodeType.EXTRACTOR)
        fake_api.fail.add("delete_node")

        with pytest.raises(ApiError):
            await deletions.delete_node(b.id)
        assert store.has_node(b.id)

    @pytest.mark.asyncio
    async def test_unknown_node(self, deletions):
        with pytest.raises(NodeNotFoundError):
            await deletions.delete_node("ghost")


class TestDeleteNodes:

    @pytest.mark.asyncio
    async def test_collects_conflicts_and_deletes_the_rest(self, store, deletions, fake_api):
        a = await store.add_node(NodeType.IF)
        b = await store.add_node(NodeType.DOCUMENT_FOLDER)
        fake_api.held[b.id] = 1

        conflicts = await deletions.delete_nodes([a.id, b.id, "already-gone"])

        assert list(conflicts) == [b.id]
        assert not store.has_node(a.id)
        assert store.has_node(b.id)

    @pytest.mark.asyncio
    async def test_conflict_never_reaches_store(self, store, deletions, fake_api):
        b = await store.add_node(NodeType.RECONCILIATION)
        fake_api.held[b.id] = 5

        with patch.object(store, "apply_node_removal") as removal:
            conflicts = await deletions.delete_nodes([b.id])

        removal.assert_not_called()
        assert conflicts[b.id].held_count == 5
