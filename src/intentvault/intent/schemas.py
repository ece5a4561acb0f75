"""Canonical intent models.

Pydantic schemas for the structured result of interpreting one user
utterance. The wire form is ``{"type", "data": {"summary", "action_type",
"params"}}`` and ``params`` is always present, even for plain chat replies.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


class IntentType(str, Enum):
    """Top-level intent category."""

    CHAT = "CHAT"
    TRANSACTION = "TRANSACTION"


class ActionType(str, Enum):
    """Ledger action requested by a transaction intent."""

    TRANSFER = "TRANSFER"
    BATCH_TRANSFER = "BATCH_TRANSFER"
    SWAP = "SWAP"
    STAKE = "STAKE"
    DEFI_SUPPLY = "DEFI_SUPPLY"
    NONE = "NONE"


class IntentParams(BaseModel):
    """Action parameters. Every field is optional and nullable."""

    # Unknown keys from the model are dropped, not rejected
    model_config = ConfigDict(extra="ignore")

    amount: str | None = Field(
        default=None,
        description="Human-readable amount in major units, e.g. '10'.",
    )
    token: str | None = Field(default=None, description="Token symbol.")
    recipient: str | None = Field(
        default=None,
        description="Destination address or contact name.",
    )
    recipients: list[str] | None = Field(
        default=None,
        description="Destinations for a batch transfer.",
    )
    target_token: str | None = Field(
        default=None,
        description="Output token of a swap.",
    )
    isMax: bool | None = Field(
        default=None,
        description="Send the whole available balance.",
    )


class IntentData(BaseModel):
    """Body of an intent: the user-facing reply plus the requested action."""

    summary: str
    action_type: ActionType
    params: IntentParams


class TransactionIntent(BaseModel):
    """Structured interpretation of one utterance."""

    type: IntentType
    data: IntentData

    @classmethod
    def chat(cls, summary: str) -> TransactionIntent:
        """Build a CHAT/NONE intent carrying *summary*."""
        return cls(
            type=IntentType.CHAT,
            data=IntentData(
                summary=summary,
                action_type=ActionType.NONE,
                params=IntentParams(),
            ),
        )

    @property
    def is_transaction(self) -> bool:
        return self.type == IntentType.TRANSACTION

    def to_wire(self) -> dict:
        """JSON-ready dict in the public wire form."""
        return self.model_dump(mode="json")


class OutputContractError(Exception):
    """Generated output could not be parsed or did not match the schema."""
