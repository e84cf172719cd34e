"""
Analysis pipeline: five stages, local degradation for optional stages,
FAILED as the terminal state when a run cannot finish.
"""
import time

import pytest
from pydantic import ValidationError

from app.config import Settings
from app.core.errors import StoreError
from app.models.feedback import FeedbackStatus
from app.services.embedding_service import EmbeddingService
from app.services.feedback_service import FeedbackService
from app.services.pipeline_service import (
    PIPELINE_STAGES,
    STAGE_CLASSIFY,
    STAGE_FETCH_RAW,
    FeedbackPipeline,
)
from app.services.workflow_engine import WorkflowEngine

from conftest import (
    FakeEmbeddingProvider,
    FakeInferenceProvider,
    FakeVectorIndex,
    MemoryFeedbackStore,
    _no_sleep,
)

LOGIN_TEXT = "Login has been broken for 3 days, our users are unable to access their accounts!"


class FlakyFinalizeStore(MemoryFeedbackStore):
    """finalize raises StoreError for the first *failures* calls."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.finalize_calls = 0

    def finalize(self, item_id, annotations, completed_at):
        self.finalize_calls += 1
        if self.finalize_calls <= self.failures:
            raise StoreError(detail="database is locked", context={"operation": "finalize_feedback"})
        return super().finalize(item_id, annotations, completed_at)


class HangingInference(FakeInferenceProvider):
    """Answers correctly, but only after *delay* seconds."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def run(self, model_id, inputs):
        time.sleep(self.delay)
        return super().run(model_id, inputs)


class NullVectorProvider:
    def run(self, model_id, inputs):
        return {"data": [None]}


@pytest.fixture
def build(engine, blob_store):
    """Factory: a pipeline plus a submitted PROCESSING item."""

    def _build(text=LOGIN_TEXT, store=None, inference=None, embedder=None, index=None, workflow=None, inference_timeout_s=None):
        store = store if store is not None else MemoryFeedbackStore()
        pipeline = FeedbackPipeline(
            store=store,
            blobs=blob_store,
            inference=inference or FakeInferenceProvider(),
            embedder=embedder or FakeEmbeddingProvider(),
            index=index if index is not None else FakeVectorIndex(),
            engine=workflow or engine,
            sentiment_model="test-sentiment",
            inference_timeout_s=inference_timeout_s,
        )
        item = FeedbackService(store=store, blobs=blob_store).submit(text, "email")
        return pipeline, item

    return _build


async def test_happy_path_completes(build, checkpoints):
    pipeline, item = build()
    index = pipeline.index

    status = await pipeline.process(item.id, item.blob_key)

    assert status == FeedbackStatus.COMPLETED.value
    stored = pipeline.store.get(item.id)
    assert stored.status == "COMPLETED"
    assert stored.sentiment == "negative"
    assert stored.category == "Bug"
    assert stored.urgency == "critical"
    assert stored.summary == LOGIN_TEXT
    assert "Crash" in stored.tag_list
    assert stored.vector_id == item.id
    assert stored.processing_completed_at is not None
    assert item.id in index.points
    assert [name for (run, name) in checkpoints.rows if run == item.id] == list(PIPELINE_STAGES)


async def test_embedding_outage_still_completes(build):
    pipeline, item = build(embedder=FakeEmbeddingProvider(fail=True))

    status = await pipeline.process(item.id, item.blob_key)

    stored = pipeline.store.get(item.id)
    assert status == "COMPLETED"
    assert stored.vector_id is None
    assert stored.urgency == "critical"
    assert pipeline.index.points == {}


async def test_vector_upsert_failure_still_completes(build):
    pipeline, item = build(index=FakeVectorIndex(fail_upsert=True))

    status = await pipeline.process(item.id, item.blob_key)

    assert status == "COMPLETED"
    assert pipeline.store.get(item.id).vector_id is None


async def test_sentiment_outage_defaults_to_neutral(build):
    pipeline, item = build(inference=FakeInferenceProvider(fail=True))

    await pipeline.process(item.id, item.blob_key)

    assert pipeline.store.get(item.id).sentiment == "neutral"


async def test_missing_payload_marks_failed_without_retry(build, blob_store):
    pipeline, item = build()
    del blob_store.blobs[item.blob_key]

    status = await pipeline.process(item.id, item.blob_key)

    stored = pipeline.store.get(item.id)
    assert status == "FAILED"
    assert stored.status == "FAILED"
    assert stored.failure_reason == "FBI-WFL-001"
    assert blob_store.reads == 1
    assert stored.sentiment is None


async def test_finalize_exhausted_marks_failed(build):
    store = FlakyFinalizeStore(failures=99)
    pipeline, item = build(store=store)

    status = await pipeline.process(item.id, item.blob_key)

    assert status == "FAILED"
    assert store.finalize_calls == 3
    stored = store.get(item.id)
    assert stored.status == "FAILED"
    assert stored.failure_reason == "FBI-DB-001"
    assert stored.urgency is None


async def test_transient_finalize_failure_is_retried(build):
    store = FlakyFinalizeStore(failures=1)
    pipeline, item = build(store=store)

    status = await pipeline.process(item.id, item.blob_key)

    assert status == "COMPLETED"
    assert store.finalize_calls == 2


async def test_rerun_replays_checkpoints(build):
    inference = FakeInferenceProvider()
    pipeline, item = build(inference=inference)

    await pipeline.process(item.id, item.blob_key)
    calls_after_first_run = inference.calls
    status = await pipeline.process(item.id, item.blob_key)

    assert status == "COMPLETED"
    assert inference.calls == calls_after_first_run


async def test_finalize_on_completed_item_is_a_no_op(build):
    pipeline, item = build()
    await pipeline.process(item.id, item.blob_key)
    before = pipeline.store.get(item.id).processing_completed_at

    state = {STAGE_CLASSIFY: pipeline.classify({STAGE_FETCH_RAW: {"text": "Totally different text"}})}
    result = pipeline.finalize(item.id, state)

    assert result["status"] == "COMPLETED"
    assert pipeline.store.get(item.id).processing_completed_at == before
    assert pipeline.store.get(item.id).urgency == "critical"


def test_classify_is_deterministic(build):
    pipeline, _ = build()
    state = {STAGE_FETCH_RAW: {"text": "Dashboard loads very slowly, takes 30+ seconds"}}

    assert pipeline.classify(state) == pipeline.classify(state)
    assert pipeline.classify(state)["category"] == "Performance"


async def test_hung_sentiment_call_defaults_to_neutral(build, checkpoints):
    workflow = WorkflowEngine(
        checkpoints=checkpoints,
        max_attempts=3,
        step_timeout_s=0.5,
        backoff_base_s=0,
        backoff_max_s=0,
        sleep=_no_sleep,
    )
    pipeline, item = build(inference=HangingInference(delay=1.0), workflow=workflow, inference_timeout_s=0.05)

    status = await pipeline.process(item.id, item.blob_key)

    stored = pipeline.store.get(item.id)
    assert status == "COMPLETED"
    assert stored.sentiment == "neutral"
    assert stored.urgency == "critical"
    assert stored.category == "Bug"


async def test_malformed_embedding_output_still_completes(build):
    embedder = EmbeddingService(provider=NullVectorProvider(), model_id="test-embedder", dimensions=16, timeout_s=1.0)
    pipeline, item = build(embedder=embedder)

    status = await pipeline.process(item.id, item.blob_key)

    stored = pipeline.store.get(item.id)
    assert status == "COMPLETED"
    assert stored.vector_id is None
    assert stored.sentiment == "negative"
    assert stored.category == "Bug"
    assert pipeline.index.points == {}


def test_step_timeout_must_exceed_inference_timeout():
    with pytest.raises(ValidationError):
        Settings(inference_timeout_s=30, workflow_step_timeout_s=10)
