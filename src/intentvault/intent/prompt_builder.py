"""Prompt construction for intent extraction.

Assembles session context, personalization from stored memory, optional
fetched link content, the persona, the style rules of the selected model
variant and the JSON output contract. Separate module because the prompt
evolves independently of the parsing pipeline.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel

from intentvault.config import FLASH_MODEL
from intentvault.memory.schemas import ActivityLogEntry
from intentvault.memory.schemas import ChatMessage

SESSION_TURNS = 5
RECENT_ACTIVITIES = 5
PREVIOUS_CHATS = 10
EXCERPT_CHARS = 100
LINK_CONTENT_CHARS = 2000


class MemoryContext(BaseModel):
    """Personalization drawn from the wallet's stored memory."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ai_summary: str | None = None
    recent_activities: list[ActivityLogEntry] = Field(default_factory=list)
    chat_history: list[ChatMessage] = Field(
        default_factory=list,
        description="Messages from previous sessions.",
    )


class LinkContext(BaseModel):
    """Content fetched for a link found in the utterance."""

    url: str
    title: str | None = None
    description: str | None = None
    content: str | None = None
    error: str | None = Field(
        default=None,
        description="Why the fetch failed; the URL is still analysed.",
    )


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def _turn(message: Any) -> tuple[str, str]:
    if isinstance(message, ChatMessage):
        return message.role, message.content
    if isinstance(message, dict):
        return str(message.get("role", "")), str(message.get("content", ""))
    return getattr(message, "role", ""), getattr(message, "content", "")


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def format_session_context(history: Sequence[Any]) -> str:
    """Compact the most recent turns into one ``U: ... | A: ...`` line."""
    if not history:
        return ""
    lines = []
    for message in list(history)[-SESSION_TURNS:]:
        role, content = _turn(message)
        lines.append(f"{'U' if role == 'user' else 'A'}: {content}")
    return f"Current Session Context: {' | '.join(lines)}\n\n"


def format_memory_context(memory: MemoryContext | None) -> str:
    if memory is None:
        return ""
    parts: list[str] = []
    if memory.ai_summary:
        parts.append(f"User Profile: {memory.ai_summary}")
    if memory.recent_activities:
        activities = ", ".join(
            f"{a.type}: {a.amount or ''} SUI {'✓' if a.status == 'success' else '✗'}"
            for a in memory.recent_activities[-RECENT_ACTIVITIES:]
        )
        parts.append(f"Recent Activity: {activities}")
    if memory.chat_history:
        chats = "\n".join(
            f"{'User' if m.role == 'user' else 'Assistant'}: "
            f"{_truncate(m.content, EXCERPT_CHARS)}"
            for m in memory.chat_history[-PREVIOUS_CHATS:]
        )
        parts.append(f"Previous Conversations:\n{chats}")
    if not parts:
        return ""
    body = "\n\n".join(parts)
    return f"\n=== USER MEMORY (use for personalization and context) ===\n{body}\n\n"


def format_link_context(link: LinkContext | None) -> str:
    if link is None or not link.url:
        return ""
    if link.error:
        return (
            "\n=== LINK DETECTED (fetch failed) ===\n"
            f"The user provided a link: {link.url}\n"
            f"The link could not be fetched ({link.error}). Still give helpful "
            "information about the URL structure, the domain and general advice "
            "about interacting with such links.\n\n"
        )
    parts = [f"URL: {link.url}"]
    if link.title:
        parts.append(f"Title: {link.title}")
    if link.description:
        parts.append(f"Description: {link.description}")
    if link.content:
        parts.append(f"Content:\n{_truncate(link.content, LINK_CONTENT_CHARS)}")
    body = "\n\n".join(parts)
    return (
        "\n=== LINK ANALYSIS REQUEST ===\n"
        "The user wants you to analyse this link. Its content was fetched "
        "server-side and is included below; you have it, so do not refuse.\n\n"
        f"{body}\n\n"
        "Identify what kind of site or application it is, explain what it does "
        "and whether it relates to Sui, reference concrete details from the "
        "content, and say whether it looks safe to interact with.\n\n"
    )


_FAST_STYLE = """
STYLE (fast mode):
- Do all reasoning internally; never show thinking, steps or analysis.
- Respond in 1-3 sentences, ideally 30-60 words in total.
- Be direct and concise.
- Put any code in a single fenced block with a language tag.
- Never wrap the JSON itself in code fences; only the summary text may contain a fenced snippet.
"""

_FAST_REMINDER = (
    "\n\nREMINDER: hide reasoning. 1-3 sentences (30-60 words). "
    "One fenced code block only if needed."
)

_THINKING_STYLE = """
STYLE (thinking mode):
- Do all reasoning internally; never expose thinking, steps or analysis.
- Give a deep narrative explanation: 12-16 sentences (about 220-320 words).
- Organize it as 2-3 paragraphs plus 4-6 optional bullet takeaways or next steps.
- Put code in fenced blocks with language tags. Do NOT wrap the JSON envelope in fences.
- Teach like an expert friend: trade-offs, how and why, concrete examples.
"""

_THINKING_REMINDER = (
    "\n\nREMINDER: hide reasoning; only the detailed answer with paragraphs "
    "and optional bullets, 12-16 sentences, code in fenced blocks."
)

_PERSONA = """You are a friendly Sui blockchain expert and wallet assistant.

ROLE: You answer any question about the Sui ecosystem (Move, SDKs, wallets,
DeFi, NFTs, developer tooling) and turn transaction requests into structured
intents.

KNOWLEDGE BASE:
- Native token SUI pays gas. 1 SUI = 1,000,000,000 MIST (9 decimals).
- Everything on Sui is an object (owned, shared or immutable) with a unique ID.
- Programmable Transaction Blocks combine several operations atomically.
- DEXs: Cetus, Aftermath, Turbos. Lending: Scallop, Navi, Suilend.
- Liquid staking: afSUI, haSUI, voloSUI.

LANGUAGE RULE:
Detect the user's language and answer in exactly that language. The "summary"
field MUST be in the user's language.

RESPONSE RULES:
- Knowledge questions: type "CHAT", action_type "NONE".
- Send SUI to ONE address or contact: type "TRANSACTION", action_type "TRANSFER".
- Send to SEVERAL addresses: type "TRANSACTION", action_type "BATCH_TRANSFER",
  amount is the total to split.
- Supply to Scallop: type "TRANSACTION", action_type "DEFI_SUPPLY".
- "all my SUI" and equivalents in any language: set isMax to true.
- Swap requests: type "CHAT", point to DEX options and note swaps are coming soon.
- Off-topic questions: politely steer back to Sui.

EXAMPLES:
User: "Send 10 SUI to 0x123"
-> TRANSACTION, TRANSFER, amount "10", to_address "0x123", summary "Preparing to send 10 SUI to 0x123."
User: "What is a PTB?"
-> CHAT, NONE, summary "A Programmable Transaction Block combines several operations into one atomic transaction."
"""

_OUTPUT_CONTRACT = """Output ONLY raw JSON (no markdown):
{
  "type": "CHAT" | "TRANSACTION",
  "data": {
    "summary": "User-facing answer only, in the user's language, following the style rules above.",
    "action_type": "TRANSFER" | "BATCH_TRANSFER" | "SWAP" | "STAKE" | "DEFI_SUPPLY" | "NONE",
    "params": {
      "amount": "string or null",
      "token": "string or null",
      "to_address": "string or null",
      "recipients": ["string"] or null,
      "isMax": true or false or null
    }
  }
}"""


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def is_fast_variant(model: str, fast_model: str = FLASH_MODEL) -> bool:
    return model == fast_model


def build_intent_prompt(
    utterance: str,
    *,
    history: Sequence[Any] = (),
    model: str = FLASH_MODEL,
    memory_context: MemoryContext | None = None,
    link_context: LinkContext | None = None,
    fast_model: str = FLASH_MODEL,
) -> str:
    """Build the full extraction prompt for one utterance.

    The style block depends on the model variant: the fast variant gets
    the terse style, every other variant the narrative one.
    """
    if is_fast_variant(model, fast_model):
        style, reminder = _FAST_STYLE, _FAST_REMINDER
    else:
        style, reminder = _THINKING_STYLE, _THINKING_REMINDER

    return (
        format_session_context(history)
        + format_memory_context(memory_context)
        + format_link_context(link_context)
        + _PERSONA
        + style
        + f'\nUser: "{utterance}"\n\n'
        + _OUTPUT_CONTRACT
        + reminder
    )
