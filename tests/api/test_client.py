"""
Tests for CanvasApiClient

Requests are answered by an ``httpx.MockTransport`` handler so the wire
shape (paths, bodies, query params, headers) can be asserted directly.
"""

import asyncio
import json
from unittest.mock import patch

import httpx
import pytest
import pytest_asyncio

from flowcanvas.api.client import CanvasApiClient, DeletionConflict
from flowcanvas.config.canvas_config import CanvasConfig
from flowcanvas.exceptions import ApiError


class Recorder:
    """Records requests and answers each with the configured response."""

    def __init__(self):
        self.requests = []
        self.respond(200, json={})

    def respond(self, status_code, **kwargs):
        self._reply = (status_code, kwargs)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code, kwargs = self._reply
        return httpx.Response(status_code, **kwargs)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


@pytest.fixture
def recorder():
    return Recorder()


@pytest_asyncio.fixture
async def client(recorder):
    api = CanvasApiClient(
        "http://canvas.test/api/", token="secret", transport=httpx.MockTransport(recorder),
    )
    yield api
    await api.aclose()


class TestRequests:

    @pytest.mark.asyncio
    async def test_bearer_token_and_base_url(self, client, recorder):
        recorder.respond(200, json=[{"id": "wf-1"}])

        result = await client.list_workflows()

        assert result == [{"id": "wf-1"}]
        assert recorder.last.url == "http://canvas.test/api/workflows"
        assert recorder.last.headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_create_node_body(self, client, recorder):
        recorder.respond(201, json={"id": "n1"})

        await client.create_node("wf-1", "IF", "Check", 10, 20)

        assert recorder.last.method == "POST"
        assert recorder.last.url.path == "/api/workflows/wf-1/nodes"
        assert recorder.last_json() == {
            "node_type": "IF", "name": "Check", "position_x": 10, "position_y": 20,
        }

    @pytest.mark.asyncio
    async def test_update_node_sends_only_given_fields(self, client, recorder):
        await client.update_node("wf-1", "n1", x=5, y=6)

        assert recorder.last.method == "PATCH"
        assert recorder.last_json() == {"position_x": 5, "position_y": 6}

    @pytest.mark.asyncio
    async def test_create_edge_body(self, client, recorder):
        await client.create_edge("wf-1", "a", "true", "b", "default")

        assert recorder.last_json() == {
            "source_node_id": "a",
            "source_port": "true",
            "target_node_id": "b",
            "target_port": "default",
        }

    @pytest.mark.asyncio
    async def test_create_run_with_entries(self, client, recorder):
        entries = [{"node_id": "t1", "document_ids": ["d1"]}]
        await client.create_run("wf-1", entries=entries)
        assert recorder.last_json() == {"entries": entries}

        await client.create_run("wf-1", document_ids=["d1", "d2"])
        assert recorder.last_json() == {"document_ids": ["d1", "d2"]}

    @pytest.mark.asyncio
    async def test_node_documents_query(self, client, recorder):
        recorder.respond(200, json=[])

        await client.get_node_documents("wf-1", "n1", "unrouted", port="true")

        assert recorder.last.url.path == "/api/workflows/wf-1/flow-inspector/nodes/n1/documents"
        assert recorder.last.url.params["tab"] == "unrouted"
        assert recorder.last.url.params["port"] == "true"

    @pytest.mark.asyncio
    async def test_retrigger_body(self, client, recorder):
        recorder.respond(200, json={"runId": "run-9"})

        result = await client.retrigger("wf-1", ["x1"], ["t1"])

        assert result == {"runId": "run-9"}
        assert recorder.last_json() == {"execIds": ["x1"], "triggerNodeIds": ["t1"]}

    @pytest.mark.asyncio
    async def test_upload_document_is_multipart(self, client, recorder, tmp_path):
        path = tmp_path / "invoice.pdf"
        path.write_bytes(b"%PDF-1.4")
        recorder.respond(201, json={"id": "doc-1"})

        result = await client.upload_document(path)

        assert result == {"id": "doc-1"}
        assert recorder.last.url.path == "/api/documents/upload"
        assert recorder.last.headers["Content-Type"].startswith("multipart/form-data")
        assert b"invoice.pdf" in recorder.last.content
        assert b"%PDF-1.4" in recorder.last.content

    @pytest.mark.asyncio
    async def test_upload_reads_file_off_the_event_loop(self, client, recorder, tmp_path):
        path = tmp_path / "receipt.pdf"
        path.write_bytes(b"%PDF-1.7")

        with patch("asyncio.to_thread", wraps=asyncio.to_thread) as to_thread:
            await client.upload_document(str(path))

        to_thread.assert_called_once()
        assert b"%PDF-1.7" in recorder.last.content

    @pytest.mark.asyncio
    async def test_upload_missing_file_sends_nothing(self, client, recorder, tmp_path):
        with pytest.raises(FileNotFoundError):
            await client.upload_document(tmp_path / "missing.pdf")
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_empty_response_returns_none(self, client, recorder):
        recorder.respond(204)
        assert await client.delete_edge("wf-1", "e1") is None


class TestErrors:

    @pytest.mark.asyncio
    async def test_error_payload_message(self, client, recorder):
        recorder.respond(400, json={"error": "Invalid port"})

        with pytest.raises(ApiError) as exc:
            await client.create_edge("wf-1", "a", "x", "b", "default")

        assert exc.value.status_code == 400
        assert exc.value.message == "Invalid port"
        assert exc.value.to_dict()["error_code"] == "API_ERROR"

    @pytest.mark.asyncio
    async def test_error_without_payload(self, client, recorder):
        recorder.respond(500, text="oops")

        with pytest.raises(ApiError) as exc:
            await client.get_workflow("wf-1")

        assert exc.value.status_code == 500
        assert "HTTP 500" in exc.value.message

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with CanvasApiClient("http://canvas.test/api", transport=httpx.MockTransport(handler)) as api:
            with pytest.raises(ApiError) as exc:
                await api.list_nodes("wf-1")

        assert exc.value.status_code is None


class TestDeleteNode:

    @pytest.mark.asyncio
    async def test_conflict_returned_on_409(self, client, recorder):
        recorder.respond(
            409, json={"error": "Node holds documents", "heldCount": 3, "unroutedCount": 1},
        )

        conflict = await client.delete_node("wf-1", "n1")

        assert conflict == DeletionConflict(held_count=3, unrouted_count=1)
        assert "force" not in recorder.last.url.params

    @pytest.mark.asyncio
    async def test_forced_delete(self, client, recorder):
        recorder.respond(204)

        assert await client.delete_node("wf-1", "n1", force=True) is None
        assert recorder.last.url.params["force"] == "true"

    @pytest.mark.asyncio
    async def test_other_errors_raise(self, client, recorder):
        recorder.respond(404, json={"error": "Not found"})
        with pytest.raises(ApiError):
            await client.delete_node("wf-1", "n1")


class TestFromConfig:

    @pytest.mark.asyncio
    async def test_uses_config_values(self, recorder):
        config = CanvasConfig(api_base_url="http://other.test/v1", api_token="")
        async with CanvasApiClient.from_config(config, transport=httpx.MockTransport(recorder)) as api:
            await api.get_run("run-1")

        assert recorder.last.url == "http://other.test/v1/runs/run-1"
        assert "Authorization" not in recorder.last.headers
