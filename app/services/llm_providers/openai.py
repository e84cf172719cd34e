"""
OpenAI chat-completions backend for feedback insights.
"""

from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from app.config import settings
from .base import AuthenticationError, BaseLLMProvider, LLMProviderError, RateLimitError

# SDK exception -> our exception, checked in order
_ERROR_MAP = (
    (openai.RateLimitError, RateLimitError, "rate limit exceeded"),
    (openai.AuthenticationError, AuthenticationError, "API key rejected"),
    (openai.APITimeoutError, LLMProviderError, "request timed out"),
    (openai.APIError, LLMProviderError, "API error"),
)


class OpenAIProvider(BaseLLMProvider):
    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key or settings.openai_api_key
        if not api_key:
            raise AuthenticationError(
                "FEEDBACK_INTEL_OPENAI_API_KEY is not set", provider=self.name,
            )
        self.model_name = model or settings.llm_model
        self.client = AsyncOpenAI(api_key=api_key)

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs,
    ) -> str:
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            completion = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            raise self._translate(e) from e

        if not completion.choices:
            raise LLMProviderError("completion returned no choices", provider=self.name)
        return completion.choices[0].message.content or ""

    def _translate(self, error: Exception) -> LLMProviderError:
        for sdk_type, ours, summary in _ERROR_MAP:
            if isinstance(error, sdk_type):
                return ours(f"OpenAI {summary}: {error}", provider=self.name, original_error=error)
        return LLMProviderError(f"OpenAI call failed: {error}", provider=self.name, original_error=error)

    def get_model_info(self) -> Dict[str, Any]:
        return {"provider": self.name, "model": self.model_name}
