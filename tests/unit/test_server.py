"""HTTP route and MCP tool contract tests.

Routes are exercised through the Starlette app returned by
``mcp.http_app()``; the tool goes through ``fastmcp.Client`` so the full
MCP serialization path is covered.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from intentvault import server
from intentvault.config import BlobStoreConfig
from intentvault.config import PRO_MODEL
from intentvault.config import Settings
from intentvault.intent.fallbacks import MISSING_KEY_MESSAGE
from intentvault.observability import operation_metrics_snapshot


def _parse(result) -> dict:
    """Extract the JSON payload from a CallToolResult."""
    return json.loads(result.content[0].text)


# -----------------------------------------------------------------------
# POST /api/analyze
# -----------------------------------------------------------------------


class TestAnalyzeRoute:
    async def test_returns_wire_intent(self, http_client):
        response = await http_client.post("/api/analyze", json={"message": "What is Sui?"})

        assert response.status_code == 200
        assert response.json() == {
            "type": "CHAT",
            "data": {
                "summary": "Sui is a layer-1 blockchain.",
                "action_type": "NONE",
                "params": {
                    "amount": None,
                    "token": None,
                    "recipient": None,
                    "recipients": None,
                    "target_token": None,
                    "isMax": None,
                },
            },
        }
        assert operation_metrics_snapshot()["http.analyze"]["count"] == 1

    async def test_forwards_history_model_and_memory(self, http_client, llm):
        response = await http_client.post(
            "/api/analyze",
            json={
                "message": "And now?",
                "history": [{"role": "user", "content": "hello"}],
                "model": PRO_MODEL,
                "memoryContext": {
                    "aiSummary": "Stakes weekly",
                    "recentActivities": [
                        {"type": "STAKE", "amount": "5", "status": "success"}
                    ],
                },
            },
        )

        assert response.status_code == 200
        assert llm.models == [PRO_MODEL]
        prompt = llm.prompts[0]
        assert "Current Session Context: U: hello" in prompt
        assert "User Profile: Stakes weekly" in prompt
        assert "STAKE: 5 SUI ✓" in prompt

    @pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "x", "history": "no"}])
    async def test_invalid_request_is_system_error(self, http_client, body):
        response = await http_client.post("/api/analyze", json=body)

        assert response.status_code == 500
        data = response.json()
        assert data["type"] == "CHAT"
        assert data["data"]["action_type"] == "NONE"
        assert data["data"]["summary"].startswith("System error: ")

    async def test_non_json_body(self, http_client):
        response = await http_client.post(
            "/api/analyze",
            content=b"not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 500
        assert response.json()["data"]["summary"] == (
            "System error: request body must be a JSON object"
        )

    async def test_missing_api_key_reply(self, http_client):
        await server.configure(Settings())

        response = await http_client.post("/api/analyze", json={"message": "hi"})

        assert response.status_code == 200
        assert response.json()["data"]["summary"] == MISSING_KEY_MESSAGE


# -----------------------------------------------------------------------
# /api/blobs
# -----------------------------------------------------------------------


class TestBlobRoutes:
    async def test_put_then_get(self, http_client, blob_service):
        put = await http_client.put("/api/blobs", content=b'{"walletAddress": "0xW"}')
        assert put.status_code == 200
        pointer = put.json()["pointer"]
        assert blob_service.requests[0].url.params["epochs"] == "5"

        got = await http_client.get("/api/blobs", params={"pointer": pointer})
        assert got.status_code == 200
        assert got.headers["content-type"].startswith("application/json")
        assert got.content == b'{"walletAddress": "0xW"}'

    async def test_put_explicit_epochs(self, http_client, blob_service):
        response = await http_client.put("/api/blobs?epochs=9", content=b"{}")
        assert response.status_code == 200
        assert blob_service.requests[0].url.params["epochs"] == "9"

    @pytest.mark.parametrize("query", ["?epochs=0", "?epochs=-2", "?epochs=abc"])
    async def test_put_rejects_bad_epochs(self, http_client, query):
        response = await http_client.put(f"/api/blobs{query}", content=b"{}")
        assert response.status_code == 400

    async def test_put_requires_body(self, http_client):
        response = await http_client.put("/api/blobs", content=b"")
        assert response.status_code == 400
        assert response.json() == {"error": "Request body is required"}

    async def test_put_upstream_failure(self, http_client, blob_service):
        blob_service.status_override = 503
        response = await http_client.put("/api/blobs", content=b"{}")
        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "Upload failed"
        assert body["status"] == 503

    async def test_get_requires_pointer(self, http_client):
        response = await http_client.get("/api/blobs")
        assert response.status_code == 400

    async def test_get_unknown_pointer(self, http_client):
        response = await http_client.get("/api/blobs", params={"pointer": "nope"})
        assert response.status_code == 404
        assert response.json() == {"error": "Blob not found"}

    async def test_get_upstream_failure(self, http_client, blob_service):
        blob_service.status_override = 500
        response = await http_client.get("/api/blobs", params={"pointer": "x"})
        assert response.status_code == 502
        assert response.json()["error"] == "Download failed"

    async def test_timeout(self, http_client):
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        slow_client = httpx.AsyncClient(transport=httpx.MockTransport(slow))
        await server.configure(
            Settings(blob_store=BlobStoreConfig(timeout_seconds=0.1)),
            blob_client=slow_client,
        )
        try:
            response = await http_client.put("/api/blobs", content=b"{}")
        finally:
            await slow_client.aclose()

        assert response.status_code == 408
        assert response.json()["error"] == "Request timeout"

    @pytest.mark.parametrize("method", ["PUT", "GET"])
    async def test_unconfigured_gateway_answers_json(self, http_client, method):
        await server.shutdown()
        response = await http_client.request(
            method, "/api/blobs", params={"pointer": "x"}, content=b"{}"
        )
        assert response.status_code == 503
        assert "configure" in response.json()["error"]


# -----------------------------------------------------------------------
# analyze_intent tool
# -----------------------------------------------------------------------


class TestAnalyzeIntentTool:
    async def test_tool_is_listed(self, mcp_client):
        tools = await mcp_client.list_tools()
        assert "analyze_intent" in [tool.name for tool in tools]

    async def test_returns_intent(self, mcp_client):
        result = await mcp_client.call_tool("analyze_intent", {"message": "What is Sui?"})
        data = _parse(result)
        assert data["type"] == "CHAT"
        assert data["data"]["summary"] == "Sui is a layer-1 blockchain."
        assert operation_metrics_snapshot()["mcp.analyze_intent"]["count"] == 1

    async def test_accepts_context(self, mcp_client, llm):
        await mcp_client.call_tool(
            "analyze_intent",
            {
                "message": "again",
                "history": [{"role": "assistant", "content": "hi!"}],
                "model": "unknown-model",
                "memory_context": {"aiSummary": "Batch sender"},
            },
        )
        assert "A: hi!" in llm.prompts[0]
        assert "User Profile: Batch sender" in llm.prompts[0]
        assert llm.models == [server._get_extractor().llm_config.default_model]

    async def test_rejects_missing_message(self, mcp_client):
        with pytest.raises(Exception):
            await mcp_client.call_tool("analyze_intent", {})


class TestServerState:
    async def test_unconfigured_accessors_raise(self):
        await server.shutdown()
        with pytest.raises(RuntimeError, match="configure"):
            server._get_extractor()
        with pytest.raises(RuntimeError, match="configure"):
            server._get_gateway()

    async def test_describe_app(self, configured_server):
        summary = server._describe_app()
        assert summary["llm_configured"] is True
        assert summary["publisher"] == "http://publisher.test"
        assert summary["models"][0] == "gemini-2.5-flash"
