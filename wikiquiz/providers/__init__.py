"""LLM provider integrations."""

from .google_provider import GoogleProvider
from .openai_provider import OpenAIProvider

__all__ = ["OpenAIProvider", "GoogleProvider"]
