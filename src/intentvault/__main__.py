"""Serve intentvault over HTTP.

Usage:
    python -m intentvault --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os

from dotenv import load_dotenv

from intentvault import server
from intentvault.config import settings_from_env

logger = logging.getLogger("intentvault")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="intentvault")
    parser.add_argument("--host", default=os.getenv("INTENTVAULT_HOST", "127.0.0.1"))
    parser.add_argument(
        "--port", type=int, default=int(os.getenv("INTENTVAULT_PORT", "8000"))
    )
    parser.add_argument(
        "--log-level", default=os.getenv("INTENTVAULT_LOG_LEVEL", "INFO")
    )
    return parser.parse_args()


async def _serve(host: str, port: int) -> None:
    await server.configure(settings_from_env())
    logger.info("Starting intentvault: %s", server._describe_app())
    try:
        await server.mcp.run_http_async(host=host, port=port, show_banner=False)
    finally:
        await server.shutdown()


def main() -> None:
    # Existing environment variables stay authoritative.
    load_dotenv(override=False)
    args = _parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(_serve(args.host, args.port))


if __name__ == "__main__":
    main()
