"""Normalization stage between parsed model output and schema validation.

Produces a canonical copy of the payload; the parsed input is never
mutated in place.
"""

from __future__ import annotations

import copy
from typing import Any

from pydantic import ValidationError

from intentvault.intent.schemas import OutputContractError
from intentvault.intent.schemas import TransactionIntent

# Destination field names emitted by older prompt contracts
LEGACY_RECIPIENT_KEYS = ("to_address",)


def normalize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Return a canonical copy of *payload*.

    - legacy destination keys are renamed to ``recipient`` and removed;
      an existing ``recipient`` value is kept
    - a null or missing ``params`` becomes ``{}``
    """
    canonical = copy.deepcopy(payload)
    data = canonical.get("data")
    if not isinstance(data, dict):
        return canonical

    params = data.get("params")
    if params is None:
        data["params"] = {}
        return canonical
    if not isinstance(params, dict):
        return canonical

    for legacy_key in LEGACY_RECIPIENT_KEYS:
        if legacy_key not in params:
            continue
        legacy_value = params.pop(legacy_key)
        if params.get("recipient") is None:
            params["recipient"] = legacy_value
    return canonical


def validate_intent(payload: Any) -> TransactionIntent:
    """Normalize then strictly validate *payload*.

    Raises ``OutputContractError`` when the payload is not an object or
    violates the schema.
    """
    if not isinstance(payload, dict):
        raise OutputContractError(
            f"expected a JSON object, got {type(payload).__name__}"
        )
    try:
        return TransactionIntent.model_validate(normalize_payload(payload))
    except ValidationError as exc:
        raise OutputContractError(f"schema validation failed: {exc}") from exc
