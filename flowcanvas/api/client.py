"""
Canvas API Client — async REST client for the workflow backend.

Wraps a single ``httpx.AsyncClient``. Every method returns decoded JSON
(or a model built from it) and raises ``ApiError`` on any non-2xx
response or transport failure, with one exception: deleting a node that
still holds documents answers HTTP 409, which is returned as a
``DeletionConflict`` value.

Usage::

    async with CanvasApiClient("https://host/api", token="...") as api:
        nodes = await api.list_nodes(workflow_id)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from flowcanvas.config.canvas_config import CanvasConfig
from flowcanvas.exceptions import ApiError

logger = getLogger(__name__)


@dataclass(frozen=True)
class DeletionConflict:
    """Documents still held at a node the caller tried to delete."""

    held_count: int = 0
    unrouted_count: int = 0


class CanvasApiClient:
    """Thin async wrapper over the workflow REST API."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: CanvasConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CanvasApiClient":
        return cls(
            config.api_base_url,
            token=config.api_token,
            timeout=config.request_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "CanvasApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ========================================================================
    # Workflows
    # ========================================================================

    async def list_workflows(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/workflows")

    async def create_workflow(self, name: str) -> Dict[str, Any]:
        return await self._request("POST", "/workflows", json={"name": name})

    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/workflows/{workflow_id}")

    async def update_workflow(self, workflow_id: str, **fields: Any) -> Dict[str, Any]:
        return await self._request("PATCH", f"/workflows/{workflow_id}", json=fields)

    async def delete_workflow(self, workflow_id: str) -> None:
        await self._request("DELETE", f"/workflows/{workflow_id}")

    async def publish_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"/workflows/{workflow_id}/publish")

    async def unpublish_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"/workflows/{workflow_id}/unpublish")

    # ========================================================================
    # Nodes
    # ========================================================================

    async def list_nodes(self, workflow_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/workflows/{workflow_id}/nodes")

    async def create_node(
        self,
        workflow_id: str,
        node_type: str,
        name: str,
        x: float,
        y: float,
        config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "node_type": node_type,
            "name": name,
            "position_x": x,
            "position_y": y,
        }
        if config is not None:
            body["config"] = config
        return await self._request("POST", f"/workflows/{workflow_id}/nodes", json=body)

    async def update_node(
        self,
        workflow_id: str,
        node_id: str,
        name: Optional[str] = None,
        x: Optional[float] = None,
        y: Optional[float] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if name is not None:
            body["name"] = name
        if x is not None:
            body["position_x"] = x
        if y is not None:
            body["position_y"] = y
        if config is not None:
            body["config"] = config
        return await self._request(
            "PATCH", f"/workflows/{workflow_id}/nodes/{node_id}", json=body,
        )

    async def delete_node(
        self, workflow_id: str, node_id: str, force: bool = False,
    ) -> Optional[DeletionConflict]:
        """Delete a node; returns a conflict instead of raising on HTTP 409."""
        params = {"force": "true"} if force else None
        try:
            await self._request(
                "DELETE", f"/workflows/{workflow_id}/nodes/{node_id}", params=params,
            )
        except ApiError as e:
            if e.status_code != 409:
                raise
            payload = e.payload if isinstance(e.payload, dict) else {}
            return DeletionConflict(
                held_count=int(payload.get("heldCount") or 0),
                unrouted_count=int(payload.get("unroutedCount") or 0),
            )
        return None

    # ========================================================================
    # Edges
    # ========================================================================

    async def list_edges(self, workflow_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/workflows/{workflow_id}/edges")

    async def create_edge(
        self,
        workflow_id: str,
        source_node_id: str,
        source_port: str,
        target_node_id: str,
        target_port: str,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/workflows/{workflow_id}/edges",
            json={
                "source_node_id": source_node_id,
                "source_port": source_port,
                "target_node_id": target_node_id,
                "target_port": target_port,
            },
        )

    async def delete_edge(self, workflow_id: str, edge_id: str) -> None:
        await self._request("DELETE", f"/workflows/{workflow_id}/edges/{edge_id}")

    # ========================================================================
    # Documents & Runs
    # ========================================================================

    async def upload_document(self, file: Union[str, Path]) -> Dict[str, Any]:
        path = Path(file)
        content = await asyncio.to_thread(path.read_bytes)
        return await self._request(
            "POST",
            "/documents/upload",
            files={"file": (path.name, content)},
        )

    async def create_run(
        self,
        workflow_id: str,
        document_ids: Optional[List[str]] = None,
        entries: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Create a run.

        Pass ``entries`` (``[{"node_id", "document_ids"}]``) to start
        documents at specific trigger nodes, or ``document_ids`` to let
        the backend pick the entry nodes.
        """
        body: Dict[str, Any] = (
            {"entries": entries} if entries else {"document_ids": document_ids or []}
        )
        return await self._request("POST", f"/workflows/{workflow_id}/runs", json=body)

    async def list_runs(self, workflow_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/workflows/{workflow_id}/runs")

    async def get_run(self, run_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/runs/{run_id}")

    async def get_executions(self, run_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/runs/{run_id}/executions")

    async def get_node_statuses(self, run_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/runs/{run_id}/node-statuses")

    async def get_node_log(self, run_id: str, node_id: str) -> Optional[Dict[str, Any]]:
        return await self._request("GET", f"/runs/{run_id}/nodes/{node_id}/log")

    # ========================================================================
    # Flow inspector
    # ========================================================================

    async def get_inspector_summary(self, workflow_id: str) -> List[Dict[str, Any]]:
        return await self._request(
            "GET", f"/workflows/{workflow_id}/flow-inspector/summary",
        )

    async def get_node_documents(
        self,
        workflow_id: str,
        node_id: str,
        tab: str,
        port: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = {"tab": tab}
        if port is not None:
            params["port"] = port
        return await self._request(
            "GET",
            f"/workflows/{workflow_id}/flow-inspector/nodes/{node_id}/documents",
            params=params,
        )

    async def get_orphaned_documents(self, workflow_id: str) -> List[Dict[str, Any]]:
        return await self._request(
            "GET", f"/workflows/{workflow_id}/flow-inspector/orphaned",
        )

    async def delete_document(self, workflow_id: str, exec_id: str) -> None:
        await self._request(
            "DELETE", f"/workflows/{workflow_id}/flow-inspector/documents/{exec_id}",
        )

    async def retrigger(
        self,
        workflow_id: str,
        exec_ids: List[str],
        trigger_node_ids: List[str],
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/workflows/{workflow_id}/flow-inspector/retrigger",
            json={"execIds": list(exec_ids), "triggerNodeIds": list(trigger_node_ids)},
        )

    # ========================================================================
    # Internals
    # ========================================================================

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.debug(f"{method} {url} transport error: {e}")
            raise ApiError(f"{method} {url} failed: {e}") from e

        logger.debug(f"{method} {url} -> HTTP {response.status_code}")
        if response.is_error:
            payload = _decode(response)
            message = payload.get("error") if isinstance(payload, dict) else None
            raise ApiError(
                message or f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )

        if response.status_code == 204 or not response.content:
            return None
        return _decode(response)


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None
