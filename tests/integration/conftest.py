"""Integration fixtures — one Redis 7 testcontainer per session.

Tests in this directory are skipped when Docker is not available.
"""

from __future__ import annotations

import logging
import time

import pytest
import redis as sync_redis
from redis.asyncio import Redis
from testcontainers.core.container import DockerContainer

logger = logging.getLogger(__name__)

READY_ATTEMPTS = 30


def _wait_until_ready(url: str) -> None:
    client = sync_redis.Redis.from_url(url)
    try:
        for attempt in range(1, READY_ATTEMPTS + 1):
            try:
                client.ping()
                return
            except (sync_redis.ConnectionError, sync_redis.TimeoutError) as exc:
                if attempt == READY_ATTEMPTS:
                    raise
                logger.debug("Redis not ready (%d/%d): %s", attempt, READY_ATTEMPTS, exc)
                time.sleep(1)
    finally:
        client.close()


@pytest.fixture(scope="session")
def redis_container():
    """Start ``redis:7-alpine`` and yield its URL."""
    container = DockerContainer("redis:7-alpine").with_exposed_ports(6379)
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker is not available: {exc}")

    try:
        url = (
            f"redis://{container.get_container_host_ip()}:"
            f"{container.get_exposed_port(6379)}/0"
        )
        _wait_until_ready(url)
        yield url
    finally:
        container.stop()


@pytest.fixture()
async def redis_client(redis_container):
    """Async client on an empty database; flushed again afterwards."""
    client = Redis.from_url(redis_container)
    await client.flushdb()
    yield client
    await client.flushdb()
    await client.aclose()
