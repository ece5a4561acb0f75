"""Sanitation and structural repair of generated JSON text."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from intentvault.intent.schemas import OutputContractError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

_PREVIEW_CHARS = 200


def strip_fences(text: str) -> str:
    """Remove code-fence markers anywhere in *text* and trim it."""
    return _FENCE_RE.sub("", text).strip()


def sanitize(raw: str | None) -> str:
    """Reduce raw model output to the candidate JSON object text.

    Drops fence markers, then keeps the span from the first ``{`` to the
    last ``}`` when both exist in that order.
    """
    if not raw or not isinstance(raw, str):
        return ""
    cleaned = strip_fences(raw)
    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last != -1 and last > first:
        cleaned = cleaned[first : last + 1]
    return cleaned


def repair_truncated_json(text: str) -> str:
    """Best-effort repair of JSON cut off before its closing braces.

    A dangling comma is dropped, an unterminated string is closed, then
    the missing closing braces are appended.
    """
    fixed = text.strip()

    missing = fixed.count("{") - fixed.count("}")
    if missing > 0 and fixed.endswith(","):
        fixed = fixed[:-1].rstrip()

    if fixed.count('"') % 2 != 0:
        fixed += '"'

    if missing > 0:
        fixed += "}" * missing
    return fixed


def parse_candidate(text: str) -> dict[str, Any]:
    """Parse sanitized text, retrying once after structural repair.

    Raises ``OutputContractError`` when neither attempt yields a JSON
    object.
    """
    try:
        data = json.loads(text)
    except ValueError as first_error:
        logger.warning(
            "First parse attempt failed (len=%d, preview=%r); repairing",
            len(text),
            text[:_PREVIEW_CHARS],
        )
        try:
            data = json.loads(repair_truncated_json(text))
        except ValueError as exc:
            raise OutputContractError(
                f"unparseable model output: {first_error}"
            ) from exc

    if not isinstance(data, dict):
        raise OutputContractError(
            f"expected a JSON object, got {type(data).__name__}"
        )
    return data
