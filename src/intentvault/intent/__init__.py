"""Intent domain — utterance to validated transaction intent."""

from intentvault.intent.extraction import IntentExtractor
from intentvault.intent.extraction import LLMAdapter
from intentvault.intent.extraction import LLMError
from intentvault.intent.extraction import ModelNotFoundError
from intentvault.intent.extraction import RateLimitedError
from intentvault.intent.llm_adapters import build_llm_adapter
from intentvault.intent.llm_adapters import GeminiLLMAdapter
from intentvault.intent.llm_adapters import NoopLLMAdapter
from intentvault.intent.llm_adapters import OpenAICompatibleLLMAdapter
from intentvault.intent.prompt_builder import LinkContext
from intentvault.intent.prompt_builder import MemoryContext
from intentvault.intent.resolver import resolve_recipient
from intentvault.intent.resolver import ResolvedRecipient
from intentvault.intent.schemas import ActionType
from intentvault.intent.schemas import IntentData
from intentvault.intent.schemas import IntentParams
from intentvault.intent.schemas import IntentType
from intentvault.intent.schemas import OutputContractError
from intentvault.intent.schemas import TransactionIntent

__all__ = [
    "ActionType",
    "GeminiLLMAdapter",
    "IntentData",
    "IntentExtractor",
    "IntentParams",
    "IntentType",
    "LLMAdapter",
    "LLMError",
    "LinkContext",
    "MemoryContext",
    "ModelNotFoundError",
    "NoopLLMAdapter",
    "OpenAICompatibleLLMAdapter",
    "OutputContractError",
    "RateLimitedError",
    "ResolvedRecipient",
    "TransactionIntent",
    "build_llm_adapter",
    "resolve_recipient",
]
