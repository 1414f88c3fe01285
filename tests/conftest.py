"""
Global test configuration and fixtures.

Provides an in-memory stand-in for the workflow REST API with failure
injection, plus ready-loaded stores and sessions built on top of it.
"""

import itertools
from typing import Any, Dict, List, Optional, Set

import pytest
import pytest_asyncio

from flowcanvas.api.client import DeletionConflict
from flowcanvas.config.canvas_config import CanvasConfig
from flowcanvas.exceptions import ApiError
from flowcanvas.workflow.graph_store import GraphStore
from flowcanvas.workflow.canvas_session import CanvasSession


class FakeCanvasApi:
    """In-memory API with the same coroutine surface as CanvasApiClient.

    Put a method name in ``fail`` to make that call raise ``ApiError``.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.fail: Set[str] = set()
        self.calls: List[tuple] = []

        self.workflows: Dict[str, Dict[str, Any]] = {}
        self.nodes: Dict[str, Dict[str, Any]] = {}
        self.edges: Dict[str, Dict[str, Any]] = {}
        self.held: Dict[str, int] = {}

        self.runs: Dict[str, Dict[str, Any]] = {}
        self.node_statuses: List[Dict[str, Any]] = []
        self.created_runs: List[Dict[str, Any]] = []
        self.uploaded: List[str] = []

        self.summary: List[Dict[str, Any]] = []
        self.node_documents: Dict[tuple, List[Dict[str, Any]]] = {}
        self.orphaned: List[Dict[str, Any]] = []
        self.deleted_documents: List[str] = []
        self.retriggers: List[Dict[str, Any]] = []

    # ── Helpers ──

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise ApiError(f"{name} failed", status_code=500)

    def seed_workflow(self, name: str = "Invoices", published: bool = False) -> str:
        wf_id = self._next_id("wf")
        self.workflows[wf_id] = {"id": wf_id, "name": name, "is_published": published}
        return wf_id

    def seed_node(
        self,
        workflow_id: str,
        node_type: str,
        name: str = "",
        x: float = 0,
        y: float = 0,
        config: Optional[Dict[str, Any]] = None,
    ) -> str:
        node_id = self._next_id("node")
        self.nodes[node_id] = {
            "id": node_id,
            "workflow_id": workflow_id,
            "node_type": node_type,
            "name": name or node_type,
            "position_x": x,
            "position_y": y,
            "config": config or {},
        }
        return node_id

    def seed_edge(
        self,
        workflow_id: str,
        source: str,
        target: str,
        source_port: str = "default",
        target_port: str = "default",
    ) -> str:
        edge_id = self._next_id("edge")
        self.edges[edge_id] = {
            "id": edge_id,
            "workflow_id": workflow_id,
            "source_node_id": source,
            "source_port": source_port,
            "target_node_id": target,
            "target_port": target_port,
        }
        return edge_id

    # ── Workflows ──

    async def get_workflow(self, workflow_id):
        self._call("get_workflow", workflow_id)
        return dict(self.workflows[workflow_id])

    async def update_workflow(self, workflow_id, **fields):
        self._call("update_workflow", workflow_id, fields)
        self.workflows[workflow_id].update(fields)
        return dict(self.workflows[workflow_id])

    async def publish_workflow(self, workflow_id):
        self._call("publish_workflow", workflow_id)
        self.workflows[workflow_id]["is_published"] = True
        return dict(self.workflows[workflow_id])

    async def unpublish_workflow(self, workflow_id):
        self._call("unpublish_workflow", workflow_id)
        self.workflows[workflow_id]["is_published"] = False
        return dict(self.workflows[workflow_id])

    # ── Nodes ──

    async def list_nodes(self, workflow_id):
        self._call("list_nodes", workflow_id)
        return [dict(n) for n in self.nodes.values() if n["workflow_id"] == workflow_id]

    async def create_node(self, workflow_id, node_type, name, x, y, config=None):
        self._call("create_node", workflow_id, node_type, name, x, y)
        node_id = self.seed_node(workflow_id, node_type, name, x, y, config)
        return dict(self.nodes[node_id])

    async def update_node(self, workflow_id, node_id, name=None, x=None, y=None, config=None):
        self._call("update_node", workflow_id, node_id)
        node = self.nodes[node_id]
        if name is not None:
            node["name"] = name
        if x is not None:
            node["position_x"] = x
        if y is not None:
            node["position_y"] = y
        if config is not None:
            node["config"] = config
        return dict(node)

    async def delete_node(self, workflow_id, node_id, force=False):
        self._call("delete_node", workflow_id, node_id, force)
        held = self.held.get(node_id, 0)
        if held and not force:
            return DeletionConflict(held_count=held, unrouted_count=0)
        self.held.pop(node_id, None)
        self.nodes.pop(node_id, None)
        for edge_id in [
            k for k, e in self.edges.items()
            if node_id in (e["source_node_id"], e["target_node_id"])
        ]:
            self.edges.pop(edge_id)
        return None

    # ── Edges ──

    async def list_edges(self, workflow_id):
        self._call("list_edges", workflow_id)
        return [dict(e) for e in self.edges.values() if e["workflow_id"] == workflow_id]

    async def create_edge(self, workflow_id, source_node_id, source_port, target_node_id, target_port):
        self._call("create_edge", workflow_id, source_node_id, source_port, target_node_id, target_port)
        edge_id = self.seed_edge(workflow_id, source_node_id, target_node_id, source_port, target_port)
        return dict(self.edges[edge_id])

    async def delete_edge(self, workflow_id, edge_id):
        self._call("delete_edge", workflow_id, edge_id)
        self.edges.pop(edge_id, None)

    # ── Documents & runs ──

    async def upload_document(self, file):
        self._call("upload_document", str(file))
        doc_id = self._next_id("doc")
        self.uploaded.append(str(file))
        return {"id": doc_id, "file_name": str(file)}

    async def create_run(self, workflow_id, document_ids=None, entries=None):
        self._call("create_run", workflow_id)
        run_id = self._next_id("run")
        self.created_runs.append(
            {"workflow_id": workflow_id, "document_ids": document_ids, "entries": entries}
        )
        self.runs[run_id] = {"id": run_id, "workflow_id": workflow_id, "status": "running"}
        return dict(self.runs[run_id])

    async def get_run(self, run_id):
        self._call("get_run", run_id)
        return dict(self.runs[run_id])

    async def get_node_statuses(self, run_id):
        self._call("get_node_statuses", run_id)
        return [dict(r) for r in self.node_statuses]

    # ── Flow inspector ──

    async def get_inspector_summary(self, workflow_id):
        self._call("get_inspector_summary", workflow_id)
        return [dict(r) for r in self.summary]

    async def get_node_documents(self, workflow_id, node_id, tab, port=None):
        self._call("get_node_documents", workflow_id, node_id, tab, port)
        return [dict(d) for d in self.node_documents.get((node_id, tab, port), [])]

    async def get_orphaned_documents(self, workflow_id):
        self._call("get_orphaned_documents", workflow_id)
        return [dict(d) for d in self.orphaned]

    async def delete_document(self, workflow_id, exec_id):
        self._call("delete_document", workflow_id, exec_id)
        self.deleted_documents.append(exec_id)
        self.orphaned = [d for d in self.orphaned if d["id"] != exec_id]

    async def retrigger(self, workflow_id, exec_ids, trigger_node_ids):
        self._call("retrigger", workflow_id, exec_ids, trigger_node_ids)
        self.retriggers.append({"execIds": exec_ids, "triggerNodeIds": trigger_node_ids})
        return {"runId": self._next_id("run")}


@pytest.fixture
def canvas_config() -> CanvasConfig:
    """Default settings, independent of the environment."""
    return CanvasConfig()


@pytest.fixture
def fake_api() -> FakeCanvasApi:
    return FakeCanvasApi()


@pytest.fixture
def workflow_id(fake_api: FakeCanvasApi) -> str:
    return fake_api.seed_workflow()


@pytest_asyncio.fixture
async def store(fake_api: FakeCanvasApi, workflow_id: str, canvas_config: CanvasConfig) -> GraphStore:
    """A GraphStore with the seeded (empty) workflow loaded."""
    graph = GraphStore(fake_api, canvas_config)
    await graph.load(workflow_id)
    return graph


@pytest_asyncio.fixture
async def session(fake_api: FakeCanvasApi, workflow_id: str, canvas_config: CanvasConfig):
    canvas = CanvasSession(fake_api, canvas_config)
    await canvas.open(workflow_id)
    yield canvas
    await canvas.close()
