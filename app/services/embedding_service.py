"""
Embedding provider adapter.

Turns text into a fixed-size vector through the inference provider.
One attempt per call, bounded by ``inference_timeout_s``; any failure
(provider error, timeout, malformed output) surfaces as ProviderUnavailable
so callers can degrade instead of retrying.
"""

import logging
from typing import Any, Dict, List, Optional

from app.config import settings
from app.core.errors import InvalidInput, ProviderUnavailable
from app.services.inference_service import bounded_run, get_inference_provider
from app.services.interfaces import InferenceProvider

logger = logging.getLogger(__name__)


class EmbeddingService:
    """EmbeddingProvider over an InferenceProvider."""

    def __init__(
        self,
        provider: Optional[InferenceProvider] = None,
        model_id: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout_s: Optional[float] = None,
    ):
        self.provider = provider or get_inference_provider()
        self.model_id = model_id or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.timeout_s = timeout_s or settings.inference_timeout_s

    def embed(self, text: str) -> List[float]:
        """
        Generate an embedding for a single text string.

        Raises:
            InvalidInput: text is empty.
            ProviderUnavailable: the provider failed, timed out, or returned
                a vector of the wrong size.
        """
        if not text or not text.strip():
            raise InvalidInput(detail="cannot embed empty text")

        response = bounded_run(self.provider, self.model_id, {"text": [text]}, self.timeout_s)

        vector = self._first_vector(response)
        if len(vector) != self.dimensions:
            raise ProviderUnavailable(
                detail=f"expected {self.dimensions} dims, got {len(vector)}",
                context={"model": self.model_id},
            )
        return vector

    @staticmethod
    def _first_vector(response: Dict[str, Any]) -> List[float]:
        data = response.get("data") if isinstance(response, dict) else None
        if not data or not isinstance(data, list):
            raise ProviderUnavailable(detail="embedding response had no data")
        try:
            return [float(x) for x in data[0]]
        except (TypeError, ValueError) as e:
            raise ProviderUnavailable(detail=f"embedding response was not a numeric vector: {e}") from e

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "model_name": self.model_id,
            "vector_size": self.dimensions,
            "timeout_s": self.timeout_s,
        }


_embedding_service: Optional[EmbeddingService] = None


def get_embedding_service() -> EmbeddingService:
    """Get the singleton embedding service instance."""
    global _embedding_service
    if _embedding_service is None:
        _embedding_service = EmbeddingService()
    return _embedding_service
