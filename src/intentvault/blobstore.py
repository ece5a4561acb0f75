"""Timeout-guarded client for the remote content-addressed blob store.

Snapshots are written to the publisher and read back from the aggregator.
Every call is bounded by a hard cancellation timeout; failures surface as
``BlobStoreError`` rather than transport exceptions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from intentvault.config import BlobStoreConfig
from intentvault.memory.schemas import MemoryAggregate
from intentvault.observability import timed

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    """A blob-store call failed (network, non-success status, bad payload)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BlobStoreTimeout(BlobStoreError):
    """A blob-store call exceeded its deadline and was cancelled."""


def extract_pointer(body: Any) -> str | None:
    """Pull the pointer out of a store response.

    Both ``newlyCreated`` and ``alreadyCertified`` count as success.
    """
    if not isinstance(body, dict):
        return None
    created = body.get("newlyCreated")
    if isinstance(created, dict):
        blob_object = created.get("blobObject")
        if isinstance(blob_object, dict) and blob_object.get("blobId"):
            return str(blob_object["blobId"])
    certified = body.get("alreadyCertified")
    if isinstance(certified, dict) and certified.get("blobId"):
        return str(certified["blobId"])
    return None


class BlobGateway:
    """Put/get snapshots against the publisher and aggregator endpoints."""

    def __init__(
        self,
        config: BlobStoreConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or BlobStoreConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_seconds)
        )

    @property
    def config(self) -> BlobStoreConfig:
        return self._config

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # -- raw --

    async def put_bytes(self, payload: bytes, epochs: int | None = None) -> str:
        """Store *payload* for *epochs* retention units and return its pointer."""
        epochs = epochs or self._config.default_epochs
        url = f"{self._config.publisher_url.rstrip('/')}/v1/blobs"
        with timed("blob.put"):
            response = await self._send(
                "PUT",
                url,
                params={"epochs": epochs},
                content=payload,
                headers={"Content-Type": "application/json"},
            )
            if not response.is_success:
                raise BlobStoreError(
                    f"store rejected upload: HTTP {response.status_code}: "
                    f"{response.text[:200]}",
                    status_code=response.status_code,
                )
            try:
                body = response.json()
            except ValueError as exc:
                raise BlobStoreError("store returned a non-JSON response") from exc
            pointer = extract_pointer(body)
            if pointer is None:
                raise BlobStoreError("store response carried no pointer")
            logger.info("Stored snapshot (%d bytes) at %s", len(payload), pointer)
            return pointer

    async def get_bytes(self, pointer: str) -> bytes | None:
        """Fetch the raw snapshot at *pointer*; ``None`` when it is unknown or expired."""
        url = f"{self._config.aggregator_url.rstrip('/')}/v1/blobs/{pointer}"
        with timed("blob.get"):
            response = await self._send("GET", url)
            if response.status_code == 404:
                logger.info("Snapshot %s not found (expired or unknown)", pointer)
                return None
            if not response.is_success:
                raise BlobStoreError(
                    f"store rejected download: HTTP {response.status_code}",
                    status_code=response.status_code,
                )
            return response.content

    # -- typed --

    async def put(self, aggregate: MemoryAggregate, epochs: int | None = None) -> str:
        """Commit *aggregate* and return the pointer of the new snapshot."""
        return await self.put_bytes(aggregate.to_snapshot(), epochs)

    async def get(self, pointer: str) -> MemoryAggregate | None:
        """Load the aggregate stored at *pointer*, or ``None`` when absent."""
        raw = await self.get_bytes(pointer)
        if raw is None:
            return None
        try:
            return MemoryAggregate.from_snapshot(raw)
        except ValidationError as exc:
            raise BlobStoreError(f"malformed snapshot at {pointer}") from exc

    # -- internal --

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        timeout = self._config.timeout_seconds
        try:
            return await asyncio.wait_for(
                self._client.request(method, url, **kwargs),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise BlobStoreTimeout(
                f"{method} {url} timed out after {timeout:.1f}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"{method} {url} failed: {exc}") from exc
