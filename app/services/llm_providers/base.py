"""
Contract for the text-generation backend behind /api/analyze.

Insight generation is optional: any provider failure surfaces as an
LLMProviderError so the analysis can still return its statistics.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class LLMProviderError(Exception):
    """Generation failed; ``provider`` names the backend, ``original_error`` keeps the SDK exception."""

    def __init__(self, message: str, provider: str = "unknown", original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.original_error = original_error


class RateLimitError(LLMProviderError):
    pass


class AuthenticationError(LLMProviderError):
    pass


class BaseLLMProvider(ABC):
    name = "base"

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs,
    ) -> str:
        """Return the full completion for *prompt*. Raises LLMProviderError."""

    @abstractmethod
    def get_model_info(self) -> Dict[str, Any]:
        ...
