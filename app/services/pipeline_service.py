"""
Feedback Analysis Pipeline
==========================

Annotates one submitted feedback item. Five stages, strictly sequential,
executed by the WorkflowEngine (retries, timeouts, checkpoints):

    fetch_raw      load the payload from the blob store (missing → fatal, no retry)
    classify       sentiment (bounded inference call, neutral on outage), category,
                   urgency, summary, tags
    embed          text → vector; provider outage yields None and the run continues
    upsert_vector  store the vector; failure is logged and the run continues
    finalize       write every annotation + COMPLETED in one guarded update

Only finalize failures are worth retrying; everything optional degrades
locally. When the run fails for good (missing payload, finalize exhausted)
the item is moved to FAILED with the error code as failure_reason.
"""

import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any, Dict, List, Optional

from app.config import settings
from app.core.async_utils import run_sync
from app.core.errors import FeedbackIntelError, InvalidInput, MissingPayload, ProviderUnavailable, StepFailed, StoreError
from app.models.feedback import FeedbackStatus
from app.services import classifier
from app.services.blob_store import get_blob_store
from app.services.embedding_service import get_embedding_service
from app.services.feedback_store import get_feedback_store
from app.services.inference_service import bounded_run, get_inference_provider
from app.services.interfaces import (
    Annotations,
    BlobStore,
    EmbeddingProvider,
    FeedbackStore,
    InferenceProvider,
    VectorIndex,
)
from app.services.qdrant_service import get_vector_index
from app.services.workflow_engine import Step, WorkflowEngine

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "process-feedback"
SENTIMENT_UNAVAILABLE = "FBI-LLM-001"

STAGE_FETCH_RAW = "fetch_raw"
STAGE_CLASSIFY = "classify"
STAGE_EMBED = "embed"
STAGE_UPSERT_VECTOR = "upsert_vector"
STAGE_FINALIZE = "finalize"

PIPELINE_STAGES = (STAGE_FETCH_RAW, STAGE_CLASSIFY, STAGE_EMBED, STAGE_UPSERT_VECTOR, STAGE_FINALIZE)


class FeedbackPipeline:
    """Builds and runs the five analysis stages for one item."""

    def __init__(
        self,
        store: FeedbackStore,
        blobs: BlobStore,
        inference: InferenceProvider,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        engine: Optional[WorkflowEngine] = None,
        sentiment_model: Optional[str] = None,
        inference_timeout_s: Optional[float] = None,
    ):
        self.store = store
        self.blobs = blobs
        self.inference = inference
        self.embedder = embedder
        self.index = index
        self.engine = engine or WorkflowEngine()
        self.sentiment_model = sentiment_model or settings.sentiment_model
        self.inference_timeout_s = inference_timeout_s or settings.inference_timeout_s

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def fetch_raw(self, blob_key: str, state: Dict[str, Any]) -> Dict[str, Any]:
        payload = self.blobs.get(blob_key)
        if payload is None:
            raise MissingPayload(detail=f"no blob at {blob_key}", context={"blob_key": blob_key})
        if not isinstance(payload.get("text"), str):
            raise MissingPayload(detail=f"blob {blob_key} has no text field", context={"blob_key": blob_key})
        return payload

    def classify(self, state: Dict[str, Any]) -> Dict[str, Any]:
        text = state[STAGE_FETCH_RAW]["text"]
        return {
            "sentiment": self._sentiment(text),
            "category": classifier.classify_category(text),
            "urgency": classifier.classify_urgency(text),
            "summary": classifier.summarize(text),
            "tags": classifier.extract_tags(text),
        }

    def embed(self, state: Dict[str, Any]) -> Optional[List[float]]:
        text = state[STAGE_FETCH_RAW]["text"]
        try:
            return self.embedder.embed(text)
        except (ProviderUnavailable, InvalidInput) as e:
            logger.warning(
                "Embedding unavailable for %s, continuing without vector: %s",
                state.get("item_id"), e,
            )
            return None

    def upsert_vector(self, item_id: str, state: Dict[str, Any]) -> Optional[str]:
        vector = state.get(STAGE_EMBED)
        if not vector:
            return None
        analysis = state[STAGE_CLASSIFY]
        try:
            return self.index.upsert(
                item_id,
                vector,
                {"item_id": item_id, "sentiment": analysis["sentiment"], "category": analysis["category"]},
            )
        except Exception as e:
            logger.warning("Vector upsert failed for %s, continuing: %s", item_id, e)
            return None

    def finalize(self, item_id: str, state: Dict[str, Any]) -> Dict[str, Any]:
        analysis = state[STAGE_CLASSIFY]
        annotations = Annotations(
            sentiment=analysis["sentiment"],
            category=analysis["category"],
            urgency=analysis["urgency"],
            summary=analysis["summary"],
            tags=list(analysis["tags"]),
            vector_id=state.get(STAGE_UPSERT_VECTOR),
        )
        completed_at = datetime.now(timezone.utc)
        if self.store.finalize(item_id, annotations, completed_at):
            return {"status": FeedbackStatus.COMPLETED.value, "completed_at": completed_at.isoformat()}

        # Nothing updated: either a previous attempt already committed, or the row is gone
        current = self.store.get(item_id)
        if current is None:
            raise StoreError(detail=f"feedback {item_id} vanished before finalize", context={"operation": "finalize_feedback", "item_id": item_id})
        if current.status != FeedbackStatus.COMPLETED.value:
            logger.warning("Finalize skipped for %s: item is %s", item_id, current.status)
        return {"status": current.status, "completed_at": None}

    def _sentiment(self, text: str) -> str:
        try:
            response = bounded_run(
                self.inference, self.sentiment_model, {"text": text}, self.inference_timeout_s, code=SENTIMENT_UNAVAILABLE,
            )
        except ProviderUnavailable as e:
            logger.warning(
                "Sentiment inference unavailable, defaulting to neutral: %s", e.detail,
                extra={"error.code": e.code},
            )
            return classifier.SENTIMENT_NEUTRAL
        return classifier.normalize_sentiment(response)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def steps(self, item_id: str, blob_key: str) -> List[Step]:
        return [
            Step(STAGE_FETCH_RAW, partial(self.fetch_raw, blob_key), retryable=False),
            Step(STAGE_CLASSIFY, self.classify),
            Step(STAGE_EMBED, self.embed),
            Step(STAGE_UPSERT_VECTOR, partial(self.upsert_vector, item_id)),
            Step(STAGE_FINALIZE, partial(self.finalize, item_id)),
        ]

    async def process(self, item_id: str, blob_key: str) -> str:
        """Run the pipeline for one item. Returns the item's resulting status."""
        logger.info("Pipeline started for %s", item_id)
        try:
            state = await self.engine.run(
                WORKFLOW_NAME, item_id, self.steps(item_id, blob_key), initial={"item_id": item_id},
            )
        except StepFailed as e:
            cause = e.__cause__
            reason = cause.code if isinstance(cause, FeedbackIntelError) else e.code
            logger.error(
                "Pipeline failed for %s at step '%s' (%s)",
                item_id, e.context.get("step"), reason,
                extra={"item_id": item_id, "step": e.context.get("step"), "error.code": reason},
            )
            return await self._fail(item_id, reason)
        except StoreError as e:
            logger.error("Pipeline checkpoint store failed for %s: %s", item_id, e.detail)
            return await self._fail(item_id, e.code)

        status = state[STAGE_FINALIZE]["status"]
        logger.info("Pipeline finished for %s with status %s", item_id, status)
        return status

    async def _fail(self, item_id: str, reason: str) -> str:
        try:
            moved = await run_sync(self.store.mark_failed, item_id, reason, datetime.now(timezone.utc))
        except StoreError as e:
            logger.critical("Could not mark %s as FAILED, item stays PROCESSING: %s", item_id, e.detail)
            return FeedbackStatus.PROCESSING.value
        if not moved:
            current = await run_sync(self.store.get, item_id)
            return current.status if current else FeedbackStatus.FAILED.value
        return FeedbackStatus.FAILED.value


_pipeline: Optional[FeedbackPipeline] = None


def get_feedback_pipeline() -> FeedbackPipeline:
    """Get the singleton pipeline wired to the default collaborators."""
    global _pipeline
    if _pipeline is None:
        _pipeline = FeedbackPipeline(
            store=get_feedback_store(),
            blobs=get_blob_store(),
            inference=get_inference_provider(),
            embedder=get_embedding_service(),
            index=get_vector_index(),
        )
    return _pipeline
