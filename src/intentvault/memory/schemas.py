"""Memory domain data models.

Attributes are snake_case in Python; the stored snapshot uses camelCase
keys (``walletAddress``, ``chatHistory`` ...) through an alias generator.
"""

from __future__ import annotations

import time
from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessage(_WireModel):
    """One turn of the persisted conversation log."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: int = Field(default_factory=now_ms)


class ActivityLogEntry(_WireModel):
    """Outcome of one dispatched ledger action."""

    type: str = Field(description="Action type, e.g. TRANSFER.")
    digest: str = Field(
        default="",
        description="Ledger transaction reference; empty when the action failed.",
    )
    amount: str | None = None
    recipient: str | None = None
    recipients: list[str] | None = None
    timestamp: int = Field(default_factory=now_ms)
    status: Literal["success", "failed"]


class Contact(_WireModel):
    """Address-book entry. Names are unique per wallet, ignoring case."""

    name: str
    address: str


class MemoryAggregate(_WireModel):
    """Everything remembered for one wallet identity."""

    wallet_address: str
    chat_history: list[ChatMessage] = Field(default_factory=list)
    activity_logs: list[ActivityLogEntry] = Field(default_factory=list)
    contacts: list[Contact] = Field(default_factory=list)
    ai_summary: str = ""
    last_updated: int = Field(default_factory=now_ms)
    pointer: str | None = Field(
        default=None,
        description="Blob-store location of the last committed snapshot.",
    )

    @field_validator("contacts")
    @classmethod
    def _unique_contact_names(cls, contacts: list[Contact]) -> list[Contact]:
        seen: set[str] = set()
        for contact in contacts:
            key = contact.name.lower()
            if key in seen:
                raise ValueError(f"duplicate contact name: {contact.name}")
            seen.add(key)
        return contacts

    @classmethod
    def empty(cls, wallet_address: str) -> MemoryAggregate:
        return cls(wallet_address=wallet_address)

    def to_snapshot(self) -> bytes:
        """Serialize for the blob store; the pointer is not part of a snapshot."""
        return self.model_dump_json(by_alias=True, exclude={"pointer"}).encode(
            "utf-8"
        )

    @classmethod
    def from_snapshot(cls, payload: bytes | str) -> MemoryAggregate:
        return cls.model_validate_json(payload)
