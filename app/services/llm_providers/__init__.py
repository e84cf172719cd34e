from typing import Optional

from app.config import settings

from .base import BaseLLMProvider, LLMProviderError


def get_llm_provider() -> Optional[BaseLLMProvider]:
    """Return the configured provider, or None when insights are disabled."""
    if not settings.llm_enabled:
        return None
    from .openai import OpenAIProvider
    return OpenAIProvider()


__all__ = ["BaseLLMProvider", "LLMProviderError", "get_llm_provider"]
