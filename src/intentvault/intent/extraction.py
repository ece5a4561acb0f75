"""Intent extraction — utterance to ``TransactionIntent``.

Builds the prompt, calls the generative backend through the
``LLMAdapter`` protocol, then sanitizes, repairs, normalizes and validates
the output. ``IntentExtractor.extract`` never raises: every generation or
contract fault becomes a well-formed CHAT/NONE intent.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from time import perf_counter
from typing import Any
from typing import Protocol
from typing import runtime_checkable

from intentvault.config import LLMConfig
from intentvault.intent.fallbacks import busy_reply
from intentvault.intent.fallbacks import missing_key_reply
from intentvault.intent.fallbacks import rate_limited_reply
from intentvault.intent.fallbacks import safe_fallback
from intentvault.intent.normalizer import validate_intent
from intentvault.intent.prompt_builder import build_intent_prompt
from intentvault.intent.prompt_builder import LinkContext
from intentvault.intent.prompt_builder import MemoryContext
from intentvault.intent.sanitizer import parse_candidate
from intentvault.intent.sanitizer import sanitize
from intentvault.intent.schemas import OutputContractError
from intentvault.intent.schemas import TransactionIntent
from intentvault.observability import record_latency

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# LLM abstraction
# ---------------------------------------------------------------------------


@runtime_checkable
class LLMAdapter(Protocol):
    """Protocol for generative backend adapters.

    Concrete implementations live in ``intentvault.intent.llm_adapters``.
    Tests use a ``MockLLMAdapter``.
    """

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout_seconds: float = 30.0,
        json_output: bool = True,
    ) -> str: ...


class LLMError(Exception):
    """Raised by LLM adapters when a call fails."""


class ModelNotFoundError(LLMError):
    """The requested model variant does not exist for this provider (HTTP 404)."""


class RateLimitedError(LLMError):
    """The provider refused the call because of quota or rate limits (HTTP 429)."""


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class IntentExtractor:
    """Turns one utterance plus context into a validated intent."""

    def __init__(
        self,
        llm: LLMAdapter | None,
        llm_config: LLMConfig | None = None,
    ) -> None:
        self._llm = llm
        self._llm_config = llm_config or LLMConfig()

    @property
    def configured(self) -> bool:
        return self._llm is not None

    @property
    def llm_config(self) -> LLMConfig:
        return self._llm_config

    def model_candidates(self, model: str | None) -> list[str]:
        """Requested variant first, then the other configured one.

        Unknown variants are coerced to the default.
        """
        variants = list(self._llm_config.models)
        chosen = model if model in variants else self._llm_config.default_model
        return [chosen, *(v for v in variants if v != chosen)]

    async def extract(
        self,
        utterance: str,
        history: Sequence[Any] = (),
        model: str | None = None,
        memory_context: MemoryContext | None = None,
        link_context: LinkContext | None = None,
    ) -> TransactionIntent:
        """Interpret *utterance*; always returns a schema-valid intent."""
        start = perf_counter()
        ok = True
        try:
            return await self._extract(
                utterance, history, model, memory_context, link_context
            )
        except Exception:
            ok = False
            logger.exception("Unexpected failure while extracting intent")
            return busy_reply()
        finally:
            record_latency(
                operation="intent.extract",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    async def _extract(
        self,
        utterance: str,
        history: Sequence[Any],
        model: str | None,
        memory_context: MemoryContext | None,
        link_context: LinkContext | None,
    ) -> TransactionIntent:
        if self._llm is None:
            logger.error("No LLM API key configured; returning error reply")
            return missing_key_reply()

        raw: str | None = None
        for variant in self.model_candidates(model):
            prompt = build_intent_prompt(
                utterance,
                history=history,
                model=variant,
                memory_context=memory_context,
                link_context=link_context,
                fast_model=self._llm_config.default_model,
            )
            try:
                raw = await self._llm.complete(
                    prompt,
                    model=variant,
                    temperature=self._llm_config.temperature,
                    max_tokens=self._llm_config.max_tokens,
                    timeout_seconds=self._llm_config.timeout_seconds,
                    json_output=True,
                )
            except ModelNotFoundError:
                logger.warning("Model %s not found, trying the next variant", variant)
                continue
            except RateLimitedError:
                logger.warning("Rate limited by provider on %s", variant)
                return rate_limited_reply()
            except LLMError as exc:
                logger.error("LLM call failed on %s: %s", variant, exc)
                return busy_reply()
            break
        else:
            logger.error("No configured model variant is available")
            return busy_reply()

        return self._parse_output(raw, utterance)

    def _parse_output(self, raw: str | None, utterance: str) -> TransactionIntent:
        """Sanitize, repair, normalize and validate *raw* model output."""
        min_chars = self._llm_config.min_output_chars
        if not raw or len(raw.strip()) < min_chars:
            logger.error("Empty or too short model output: %r", raw)
            return safe_fallback(utterance)

        text = sanitize(raw)
        if len(text) < min_chars:
            logger.error("Model output empty after sanitizing: %r", raw[:200])
            return safe_fallback(utterance)

        try:
            return validate_intent(parse_candidate(text))
        except OutputContractError as exc:
            logger.error("Model output violated the intent contract: %s", exc)
            return safe_fallback(utterance)
