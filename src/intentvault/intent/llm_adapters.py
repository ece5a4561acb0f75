"""Concrete LLM adapters and factory helpers."""

from __future__ import annotations

import asyncio
import json
import logging
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from intentvault.config import LLMConfig
from intentvault.intent.extraction import LLMAdapter
from intentvault.intent.extraction import LLMError
from intentvault.intent.extraction import ModelNotFoundError
from intentvault.intent.extraction import RateLimitedError

logger = logging.getLogger(__name__)


def _error_for_status(exc: HTTPError) -> LLMError:
    detail = exc.read().decode("utf-8", errors="replace")
    message = f"provider HTTP {exc.code}: {detail[:200]}"
    if exc.code == 404:
        return ModelNotFoundError(message)
    if exc.code == 429:
        return RateLimitedError(message)
    return LLMError(message)


def _post_json(
    url: str, payload: dict, headers: dict[str, str], timeout_seconds: float
) -> dict:
    request = Request(
        url=url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            raw = response.read().decode("utf-8")
    except HTTPError as exc:
        raise _error_for_status(exc) from exc
    except URLError as exc:
        raise LLMError(f"provider network error: {exc.reason}") from exc
    except OSError as exc:
        raise LLMError(f"provider IO error: {exc}") from exc
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise LLMError("provider returned a non-JSON response") from exc


class NoopLLMAdapter(LLMAdapter):
    """Deterministic adapter that always answers with a plain chat reply."""

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout_seconds: float = 30.0,
        json_output: bool = True,
    ) -> str:
        del prompt, model, temperature, max_tokens, timeout_seconds, json_output
        return (
            '{"type":"CHAT","data":{"summary":"The assistant is running in '
            'offline mode.","action_type":"NONE","params":{}}}'
        )


class GeminiLLMAdapter(LLMAdapter):
    """Google Generative Language REST adapter (``models/{model}:generateContent``)."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        top_p: float = 0.9,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._top_p = top_p

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout_seconds: float = 30.0,
        json_output: bool = True,
    ) -> str:
        return await asyncio.to_thread(
            self._complete_sync,
            prompt,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout_seconds=timeout_seconds,
            json_output=json_output,
        )

    def _complete_sync(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout_seconds: float,
        json_output: bool,
    ) -> str:
        generation_config: dict = {
            "temperature": temperature,
            "topP": self._top_p,
            "maxOutputTokens": max_tokens,
        }
        if json_output:
            generation_config["responseMimeType"] = "application/json"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        data = _post_json(
            f"{self._base_url}/models/{model}:generateContent",
            payload,
            {"x-goog-api-key": self._api_key},
            timeout_seconds,
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError, AttributeError):
            # Blocked or empty candidates; the extractor treats "" as too short
            logger.warning("Gemini response carried no text candidate")
            return ""


class OpenAICompatibleLLMAdapter(LLMAdapter):
    """OpenAI-compatible chat-completions adapter."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout_seconds: float = 30.0,
        json_output: bool = True,
    ) -> str:
        return await asyncio.to_thread(
            self._complete_sync,
            prompt,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout_seconds=timeout_seconds,
            json_output=json_output,
        )

    def _complete_sync(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout_seconds: float,
        json_output: bool,
    ) -> str:
        payload: dict = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_output:
            payload["response_format"] = {"type": "json_object"}
        data = _post_json(
            f"{self._base_url}/chat/completions",
            payload,
            {"Authorization": f"Bearer {self._api_key}"},
            timeout_seconds,
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError(
                "provider response missing choices[0].message.content"
            ) from exc

        if isinstance(content, str):
            return content
        raise LLMError("provider response content must be a string")


def build_llm_adapter(config: LLMConfig) -> LLMAdapter | None:
    """Create a concrete adapter from ``LLMConfig``.

    Returns ``None`` when the provider needs an API key and none is set;
    the extractor then answers with the missing-key reply.
    """

    provider = config.provider.strip().lower()
    if provider == "noop":
        return NoopLLMAdapter()
    if provider not in ("gemini", "openai"):
        raise ValueError(
            f"Unsupported llm_config.provider '{config.provider}'. "
            "Supported providers: gemini, openai, noop."
        )
    if not config.api_key:
        logger.error("No API key configured for provider %r", provider)
        return None
    endpoint = {"base_url": config.base_url} if config.base_url else {}
    if provider == "gemini":
        return GeminiLLMAdapter(api_key=config.api_key, top_p=config.top_p, **endpoint)
    return OpenAICompatibleLLMAdapter(api_key=config.api_key, **endpoint)
