"""intentvault — natural-language transaction intents with durable per-wallet memory."""

__version__ = "0.1.0"
