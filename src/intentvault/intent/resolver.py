"""Recipient resolution against a wallet's address book."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from intentvault.memory.schemas import Contact

ADDRESS_PREFIX = "0x"


@dataclass(frozen=True)
class ResolvedRecipient:
    """Outcome of resolving one recipient token.

    ``address == ""`` means the token matched neither an address nor a
    contact name; callers must not build a transaction from it.
    """

    address: str
    name: str | None = None

    @property
    def resolved(self) -> bool:
        return bool(self.address)


UNRESOLVED = ResolvedRecipient(address="", name=None)


def is_chain_address(value: str) -> bool:
    return value.startswith(ADDRESS_PREFIX)


def resolve_recipient(token: str, contacts: Iterable[Contact]) -> ResolvedRecipient:
    """Resolve *token* to an address, recovering a display name when known.

    Addresses are kept as given and reverse-looked-up case-insensitively;
    anything else is treated as a contact name and matched exactly,
    ignoring case.
    """
    token = token.strip()
    if not token:
        return UNRESOLVED

    if is_chain_address(token):
        wanted = token.lower()
        for contact in contacts:
            if contact.address.lower() == wanted:
                return ResolvedRecipient(address=token, name=contact.name)
        return ResolvedRecipient(address=token)

    wanted = token.lower()
    for contact in contacts:
        if contact.name.lower() == wanted:
            return ResolvedRecipient(address=contact.address, name=contact.name)
    return UNRESOLVED


def mask_address(address: str) -> str:
    """Shorten an address for display, e.g. ``0x1234...abcd``."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def describe_recipient(recipient: ResolvedRecipient) -> str:
    """Human-readable recipient: ``Name (0x1234...abcd)`` or the bare address."""
    if recipient.name:
        return f"{recipient.name} ({mask_address(recipient.address)})"
    return recipient.address
