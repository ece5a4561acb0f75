"""Unit test fixtures — configured server, HTTP client and FastMCP client."""

from __future__ import annotations

import json

import httpx
import pytest
from fastmcp import Client

from intentvault.config import BlobStoreConfig
from intentvault.config import Settings

CHAT_OUTPUT = json.dumps(
    {
        "type": "CHAT",
        "data": {
            "summary": "Sui is a layer-1 blockchain.",
            "action_type": "NONE",
            "params": {},
        },
    }
)


class StubLLMAdapter:
    """Answers every prompt with the same output and keeps the prompts."""

    def __init__(self, response: str = CHAT_OUTPUT) -> None:
        self.response = response
        self.prompts: list[str] = []
        self.models: list[str] = []

    async def complete(self, prompt: str, *, model: str, **kwargs) -> str:
        self.prompts.append(prompt)
        self.models.append(model)
        return self.response


class FakeBlobService:
    """Publisher/aggregator double behind an ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self.status_override: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_override is not None:
            return httpx.Response(self.status_override, text="store unavailable")
        if request.method == "PUT":
            blob_id = f"blob-{len(self.blobs) + 1}"
            self.blobs[blob_id] = request.content
            return httpx.Response(
                200, json={"newlyCreated": {"blobObject": {"blobId": blob_id}}}
            )
        blob_id = request.url.path.rsplit("/", 1)[-1]
        if blob_id not in self.blobs:
            return httpx.Response(404)
        return httpx.Response(200, content=self.blobs[blob_id])


@pytest.fixture()
def llm() -> StubLLMAdapter:
    return StubLLMAdapter()


@pytest.fixture()
def blob_service() -> FakeBlobService:
    return FakeBlobService()


@pytest.fixture()
async def configured_server(llm, blob_service):
    """Configure the module-level server state against test doubles."""
    from intentvault.server import configure
    from intentvault.server import shutdown

    blob_client = httpx.AsyncClient(transport=httpx.MockTransport(blob_service.handler))
    settings = Settings(
        blob_store=BlobStoreConfig(
            publisher_url="http://publisher.test",
            aggregator_url="http://aggregator.test",
        )
    )
    await configure(settings, llm_adapter=llm, blob_client=blob_client)
    yield
    await shutdown()
    await blob_client.aclose()


@pytest.fixture()
async def http_client(configured_server):
    """HTTP client speaking to the server's Starlette app in-process."""
    from intentvault.server import mcp

    app = mcp.http_app(host_origin_protection=False)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
async def mcp_client(configured_server):
    """Yield a FastMCP Client wired to the intentvault server."""
    from intentvault.server import mcp

    async with Client(mcp) as client:
        yield client
