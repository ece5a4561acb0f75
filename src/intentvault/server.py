"""intentvault — FastMCP server exposing intent analysis and the blob proxy.

One MCP tool (``analyze_intent``) plus three HTTP routes served by the
same Starlette app: ``POST /api/analyze``, ``PUT /api/blobs`` and
``GET /api/blobs``. Call ``configure(...)`` before using the server.
"""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any

import httpx
from fastmcp import FastMCP
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError
from pydantic.alias_generators import to_camel
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.responses import Response

from intentvault.blobstore import BlobGateway
from intentvault.blobstore import BlobStoreError
from intentvault.blobstore import BlobStoreTimeout
from intentvault.config import Settings
from intentvault.intent import build_llm_adapter
from intentvault.intent import IntentExtractor
from intentvault.intent import LLMAdapter
from intentvault.intent import MemoryContext
from intentvault.intent import TransactionIntent
from intentvault.observability import record_latency

logger = logging.getLogger(__name__)

mcp = FastMCP("intentvault")

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class HistoryTurn(BaseModel):
    """One prior turn as sent by the chat client."""

    role: str = Field(description="'user' or an assistant role name.")
    content: str


class AnalyzeRequest(BaseModel):
    """Body of ``POST /api/analyze``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(min_length=1, description="The user's utterance.")
    history: list[HistoryTurn] = Field(default_factory=list)
    model: str | None = Field(default=None, description="Model variant id.")
    memory_context: MemoryContext | None = None


# ---------------------------------------------------------------------------
# Server state (set via configure())
# ---------------------------------------------------------------------------

_extractor: IntentExtractor | None = None
_gateway: BlobGateway | None = None


async def configure(
    settings: Settings | None = None,
    *,
    llm_adapter: LLMAdapter | None = None,
    blob_client: httpx.AsyncClient | None = None,
) -> None:
    """Initialize the extractor and the blob gateway.

    Must be called before the tool and routes can function. Without an
    explicit adapter one is built from ``settings.llm``; a missing API key
    leaves the extractor unconfigured rather than failing here.
    """
    global _extractor, _gateway
    settings = settings or Settings()
    if _gateway is not None:
        try:
            await _gateway.aclose()
        except RuntimeError:
            # Tests may reconfigure across event loops.
            pass

    adapter = llm_adapter or build_llm_adapter(settings.llm)
    _extractor = IntentExtractor(adapter, settings.llm)
    _gateway = BlobGateway(settings.blob_store, client=blob_client)
    if not _extractor.configured:
        logger.warning("LLM not configured; analysis will report a missing API key")


async def shutdown() -> None:
    """Close backend clients and release server resources."""
    global _extractor, _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None
    _extractor = None


def _get_extractor() -> IntentExtractor:
    if _extractor is None:
        raise RuntimeError("Extractor not configured. Call configure() first.")
    return _extractor


def _get_gateway() -> BlobGateway:
    if _gateway is None:
        raise RuntimeError("Blob gateway not configured. Call configure() first.")
    return _gateway


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid request")
    return f"{location}: {message}" if location else message


def _system_error(message: str) -> JSONResponse:
    body = TransactionIntent.chat(f"System error: {message}").to_wire()
    return JSONResponse(body, status_code=500)


# ---------------------------------------------------------------------------
# MCP tool
# ---------------------------------------------------------------------------


@mcp.tool
async def analyze_intent(
    message: str,
    history: list[dict] | None = None,
    model: str | None = None,
    memory_context: dict | None = None,
) -> TransactionIntent:
    """Interpret a natural-language request as a chat reply or a transaction intent.

    Args:
        message: The user's utterance.
        history: Recent turns as ``{"role", "content"}`` objects, oldest first.
        model: Model variant id; unknown ids fall back to the default.
        memory_context: Optional ``aiSummary`` / ``recentActivities`` for personalization.
    """
    start = perf_counter()
    ok = False
    try:
        context = (
            MemoryContext.model_validate(memory_context) if memory_context else None
        )
        intent = await _get_extractor().extract(
            message,
            history=history or [],
            model=model,
            memory_context=context,
        )
        ok = True
        return intent
    finally:
        record_latency(
            operation="mcp.analyze_intent",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


# ---------------------------------------------------------------------------
# HTTP routes
# ---------------------------------------------------------------------------


@mcp.custom_route("/api/analyze", methods=["POST"])
async def analyze_route(request: Request) -> Response:
    """Always answers with an intent body; 500 only for unhandled faults."""
    start = perf_counter()
    ok = False
    try:
        try:
            payload = AnalyzeRequest.model_validate(await request.json())
        except ValidationError as exc:
            logger.error("Rejected analyze request: %s", exc)
            return _system_error(_validation_message(exc))
        except ValueError:
            return _system_error("request body must be a JSON object")

        logger.info(
            "Analyze request (%d history turns, model=%s, memory=%s)",
            len(payload.history),
            payload.model,
            "present" if payload.memory_context else "none",
        )
        try:
            intent = await _get_extractor().extract(
                payload.message,
                history=payload.history,
                model=payload.model,
                memory_context=payload.memory_context,
            )
        except Exception as exc:
            logger.exception("Analyze route failed")
            return _system_error(str(exc))
        ok = True
        return JSONResponse(intent.to_wire())
    finally:
        record_latency(
            operation="http.analyze",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


def _not_configured(exc: RuntimeError) -> JSONResponse:
    logger.error("Blob route called before configure(): %s", exc)
    return JSONResponse({"error": str(exc)}, status_code=503)


def _blob_error(exc: BlobStoreError, label: str) -> JSONResponse:
    if isinstance(exc, BlobStoreTimeout):
        return JSONResponse(
            {"error": "Request timeout", "details": str(exc)}, status_code=408
        )
    return JSONResponse(
        {"error": label, "status": exc.status_code, "details": str(exc)},
        status_code=502,
    )


@mcp.custom_route("/api/blobs", methods=["PUT"])
async def put_blob_route(request: Request) -> Response:
    """Forward a raw snapshot to the store and answer with its pointer."""
    try:
        gateway = _get_gateway()
    except RuntimeError as exc:
        return _not_configured(exc)
    raw_epochs = request.query_params.get("epochs")
    try:
        epochs = int(raw_epochs) if raw_epochs else gateway.config.default_epochs
    except ValueError:
        return JSONResponse({"error": "epochs must be an integer"}, status_code=400)
    if epochs <= 0:
        return JSONResponse({"error": "epochs must be positive"}, status_code=400)

    body = await request.body()
    if not body:
        return JSONResponse({"error": "Request body is required"}, status_code=400)

    try:
        pointer = await gateway.put_bytes(body, epochs)
    except BlobStoreError as exc:
        logger.warning("Blob upload failed: %s", exc)
        return _blob_error(exc, "Upload failed")
    return JSONResponse({"pointer": pointer})


@mcp.custom_route("/api/blobs", methods=["GET"])
async def get_blob_route(request: Request) -> Response:
    """Return the raw snapshot stored at ``?pointer=``; 404 when absent."""
    try:
        gateway = _get_gateway()
    except RuntimeError as exc:
        return _not_configured(exc)
    pointer = request.query_params.get("pointer")
    if not pointer:
        return JSONResponse({"error": "pointer is required"}, status_code=400)

    try:
        raw = await gateway.get_bytes(pointer)
    except BlobStoreError as exc:
        logger.warning("Blob download failed: %s", exc)
        return _blob_error(exc, "Download failed")
    if raw is None:
        return JSONResponse({"error": "Blob not found"}, status_code=404)
    return Response(content=raw, media_type="application/json")


def _describe_app() -> dict[str, Any]:
    """Summary of the configured server, logged at startup."""
    extractor = _extractor
    gateway = _gateway
    return {
        "llm_configured": bool(extractor and extractor.configured),
        "models": list(extractor.llm_config.models) if extractor else [],
        "publisher": gateway.config.publisher_url if gateway else None,
        "aggregator": gateway.config.aggregator_url if gateway else None,
    }
