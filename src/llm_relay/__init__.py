"""OpenAI-compatible chat completion relay with provider failover."""

__version__ = "0.1.0"
