"""
Local inference provider.

Runs models in-process behind a single ``run(model_id, inputs)`` entry
point, returning Workers-AI-style structured output:

    embedding model  -> {"shape": [n, dim], "data": [[...], ...]}
    sentiment model  -> {"labels": [{"label": "POSITIVE", "score": 0.98}]}

Embeddings use sentence-transformers; sentiment uses a transformers
text-classification pipeline. Models are loaded lazily, once per model id.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Dict, List, Optional

from app.config import settings
from app.core.errors import ProviderUnavailable
from app.services.interfaces import InferenceProvider

logger = logging.getLogger(__name__)

TASK_EMBEDDING = "embedding"
TASK_SENTIMENT = "sentiment"

# Model calls run here so a hung call cannot hold the caller past its timeout
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="inference")


def bounded_run(
    provider: InferenceProvider,
    model_id: str,
    inputs: Dict[str, Any],
    timeout_s: float,
    code: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Call ``provider.run`` once, waiting at most *timeout_s* seconds.

    Raises:
        ProviderUnavailable: the call raised or did not return in time. The
            worker thread of a timed-out call is left to finish on its own.
    """
    future = _executor.submit(provider.run, model_id, inputs)
    try:
        return future.result(timeout=timeout_s)
    except FutureTimeout:
        future.cancel()
        raise ProviderUnavailable(
            code=code, detail=f"{model_id} timed out after {timeout_s}s", context={"model": model_id},
        ) from None
    except Exception as e:
        raise ProviderUnavailable(
            code=code, detail=f"{model_id} call failed: {e}", context={"model": model_id},
        ) from e


class LocalInferenceProvider:
    """InferenceProvider backed by locally loaded Hugging Face models."""

    def __init__(self, model_tasks: Optional[Dict[str, str]] = None):
        self.model_tasks = model_tasks or {
            settings.embedding_model: TASK_EMBEDDING,
            settings.sentiment_model: TASK_SENTIMENT,
        }
        self._models: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def _load(self, model_id: str) -> Any:
        with self._lock:
            model = self._models.get(model_id)
            if model is not None:
                return model

            task = self.model_tasks[model_id]
            start_time = time.time()
            logger.info("Loading %s model: %s", task, model_id)

            if task == TASK_EMBEDDING:
                from sentence_transformers import SentenceTransformer
                model = SentenceTransformer(model_id)
            else:
                from transformers import pipeline
                model = pipeline("text-classification", model=model_id)

            logger.info("Model %s loaded in %.2fs", model_id, time.time() - start_time)
            self._models[model_id] = model
            return model

    def run(self, model_id: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        """Run *model_id* on ``inputs["text"]`` (a string or a list of strings)."""
        if model_id not in self.model_tasks:
            raise ValueError(f"Unknown model: {model_id!r}")

        texts = inputs.get("text")
        if isinstance(texts, str):
            texts = [texts]
        if not texts:
            raise ValueError("inputs['text'] must be a non-empty string or list")

        model = self._load(model_id)

        if self.model_tasks[model_id] == TASK_EMBEDDING:
            embeddings = model.encode(texts, convert_to_numpy=True, normalize_embeddings=True)
            data: List[List[float]] = embeddings.tolist()
            return {"shape": [len(data), len(data[0]) if data else 0], "data": data}

        # Sentiment classifiers cap input length; truncate at the tokenizer
        predictions = model(texts, truncation=True)
        return {"labels": [{"label": p["label"], "score": float(p["score"])} for p in predictions]}

    def preload(self) -> List[str]:
        """Load every configured model (call at startup)."""
        for model_id in self.model_tasks:
            self._load(model_id)
        return list(self._models)


_inference_provider: Optional[LocalInferenceProvider] = None


def get_inference_provider() -> LocalInferenceProvider:
    """Get the singleton inference provider instance."""
    global _inference_provider
    if _inference_provider is None:
        _inference_provider = LocalInferenceProvider()
    return _inference_provider
