"""Fixed CHAT/NONE replies used when generation cannot produce an intent."""

from __future__ import annotations

import re

from intentvault.intent.schemas import TransactionIntent

# Letters that belong to a single language among those we answer in.
_DISTINCTIVE: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("tr", re.compile(r"[ğışĞİŞ]")),
    ("de", re.compile(r"[ß]")),
    ("es", re.compile(r"[ñÑ¿¡]")),
    ("fr", re.compile(r"[àâèêëîïôùûÿœÀÂÈÊËÎÏÔÙÛŸŒ]")),
)

# Letters several languages share; checked in order after the distinctive ones.
# Umlauts alone read as German.
_SHARED: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("de", re.compile(r"[äöüÄÖÜ]")),
    ("es", re.compile(r"[áéíóúÁÉÍÓÚ]")),
    ("fr", re.compile(r"[çÇ]")),
)

SAFE_FALLBACK_MESSAGES = {
    "tr": "Teknik bir sorun oluştu ama seni duyuyorum. Lütfen isteğini tekrar edebilir misin?",
    "es": "Ocurrió un problema técnico, pero te escucho. ¿Puedes repetir tu solicitud?",
    "fr": "Un problème technique s'est produit, mais je vous entends. Pouvez-vous répéter votre demande?",
    "de": "Ein technisches Problem ist aufgetreten, aber ich höre Sie. Können Sie Ihre Anfrage wiederholen?",
    "en": "A technical issue occurred, but I can hear you. Could you please repeat your request?",
}

RATE_LIMITED_MESSAGE = "The system is busy right now, please try again in a few seconds."
BUSY_MESSAGE = "The system is busy at the moment, please try again."
MISSING_KEY_MESSAGE = "System error: the AI API key is missing. Please check the server logs."


def detect_locale(text: str) -> str:
    """Guess the language of *text* from its diacritics; ``en`` by default.

    ASCII-only text in any language is indistinguishable from English.
    """
    text = text or ""
    for locale, pattern in (*_DISTINCTIVE, *_SHARED):
        if pattern.search(text):
            return locale
    return "en"


def safe_fallback(utterance: str) -> TransactionIntent:
    """Locale-matched apology asking the user to repeat the request."""
    return TransactionIntent.chat(SAFE_FALLBACK_MESSAGES[detect_locale(utterance)])


def rate_limited_reply() -> TransactionIntent:
    return TransactionIntent.chat(RATE_LIMITED_MESSAGE)


def busy_reply() -> TransactionIntent:
    return TransactionIntent.chat(BUSY_MESSAGE)


def missing_key_reply() -> TransactionIntent:
    return TransactionIntent.chat(MISSING_KEY_MESSAGE)
