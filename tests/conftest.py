"""
Pytest configuration for feedback-intel tests.
Points storage at a temp directory and provides in-memory collaborators.
"""

import math
import os
import tempfile
import zlib

# Set temp data directories so tests don't need /data - must be set before any imports
_test_data_dir = tempfile.mkdtemp(prefix="feedback_intel_test_")
os.environ.setdefault("FEEDBACK_INTEL_DATA_DIRECTORY", _test_data_dir)
os.environ.setdefault("FEEDBACK_INTEL_BLOB_DIRECTORY", os.path.join(_test_data_dir, "blobs"))
os.environ.setdefault("FEEDBACK_INTEL_LOG_DIRECTORY", os.path.join(_test_data_dir, "logs"))
os.environ.setdefault("FEEDBACK_INTEL_LLM_PROVIDER", "none")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_data_dir}/test.db")

import pytest

# Ensure DB tables exist for all tests (create via SQLModel metadata)
from sqlmodel import SQLModel
from app.core.database import get_engine

# Import all models so their tables are registered on SQLModel.metadata
from app.models.feedback import FeedbackItem, FeedbackStatus  # noqa: F401
from app.models.workflow import STEP_SUCCESS, WorkflowStep  # noqa: F401

SQLModel.metadata.create_all(get_engine())

# Load error registry so FeedbackIntelError returns correct HTTP status codes
from app.core.errors.registry import error_registry
error_registry.load()

from app.core.errors import ProviderUnavailable, StoreError, VectorIndexError
from app.services.interfaces import VectorMatch
from app.services.relevance import tokenize
from app.services.workflow_engine import WorkflowEngine, _MISSING

FAKE_DIMENSIONS = 16


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------

class FakeEmbeddingProvider:
    """Deterministic bag-of-words vectors: one hashed bucket per word."""

    dimensions = FAKE_DIMENSIONS

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    def embed(self, text):
        self.calls += 1
        if self.fail:
            raise ProviderUnavailable(detail="embedding model offline")
        vector = [0.0] * FAKE_DIMENSIONS
        for word in tokenize(text):
            vector[zlib.crc32(word.strip(".,!?").encode()) % FAKE_DIMENSIONS] += 1.0
        return vector


class FakeVectorIndex:
    """Brute-force cosine index."""

    def __init__(self, fail_upsert: bool = False, fail_query: bool = False):
        self.points = {}
        self.fail_upsert = fail_upsert
        self.fail_query = fail_query

    def upsert(self, item_id, vector, metadata):
        if self.fail_upsert:
            raise VectorIndexError(detail="qdrant unreachable")
        self.points[item_id] = (list(vector), dict(metadata))
        return item_id

    def query(self, vector, top_k):
        if self.fail_query:
            raise VectorIndexError(detail="qdrant unreachable")
        scored = [
            VectorMatch(item_id=item_id, score=_cosine(vector, stored), metadata=meta)
            for item_id, (stored, meta) in self.points.items()
        ]
        scored.sort(key=lambda m: m.score, reverse=True)
        return scored[:top_k]


class StaticVectorIndex:
    """Returns a fixed list of matches regardless of the query vector."""

    def __init__(self, matches):
        self.matches = list(matches)

    def upsert(self, item_id, vector, metadata):
        return item_id

    def query(self, vector, top_k):
        return self.matches[:top_k]


def _cosine(a, b):
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeInferenceProvider:
    """Sentiment by keyword: negative words → NEGATIVE, else POSITIVE."""

    NEGATIVE_WORDS = ("broken", "terrible", "slow", "outdated", "crash", "bug")

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    def run(self, model_id, inputs):
        self.calls += 1
        if self.fail:
            raise RuntimeError("inference backend unavailable")
        text = inputs["text"]
        if isinstance(text, list):
            text = text[0]
        label = "NEGATIVE" if any(w in text.lower() for w in self.NEGATIVE_WORDS) else "POSITIVE"
        return {"labels": [{"label": label, "score": 0.97}]}


class MemoryBlobStore:
    def __init__(self):
        self.blobs = {}
        self.reads = 0

    def put(self, key, payload):
        self.blobs[key] = dict(payload)

    def get(self, key):
        self.reads += 1
        payload = self.blobs.get(key)
        return dict(payload) if payload is not None else None


class MemoryFeedbackStore:
    """FeedbackStore over a dict, newest-first by insertion order."""

    def __init__(self, fail_keyword: bool = False):
        self.items = {}
        self.fail_keyword = fail_keyword

    def insert(self, item):
        self.items[item.id] = item
        return item

    def get(self, item_id):
        return self.items.get(item_id)

    def get_many(self, item_ids):
        return [self.items[i] for i in item_ids if i in self.items]

    def list_recent(self, limit, offset):
        newest = list(reversed(list(self.items.values())))
        return newest[offset:offset + limit]

    def count(self):
        return len(self.items)

    def keyword_search(self, terms, limit):
        if self.fail_keyword:
            raise StoreError(detail="database is down")
        hits = []
        for item in reversed(list(self.items.values())):
            fields = [item.raw_text, item.title, item.summary, item.category, item.tags]
            haystack = " ".join(f for f in fields if f).lower()
            if any(t in haystack for t in terms):
                hits.append(item)
        return hits[:limit]

    def finalize(self, item_id, annotations, completed_at):
        item = self.items.get(item_id)
        if item is None or item.status != FeedbackStatus.PROCESSING.value:
            return False
        item.status = FeedbackStatus.COMPLETED.value
        item.sentiment = annotations.sentiment
        item.category = annotations.category
        item.urgency = annotations.urgency
        item.summary = annotations.summary
        item.tags = ",".join(annotations.tags)
        item.vector_id = annotations.vector_id
        item.processing_completed_at = completed_at
        return True

    def mark_failed(self, item_id, reason, failed_at):
        item = self.items.get(item_id)
        if item is None or item.status != FeedbackStatus.PROCESSING.value:
            return False
        item.status = FeedbackStatus.FAILED.value
        item.failure_reason = reason
        return True


class MemoryCheckpointStore:
    def __init__(self):
        self.rows = {}

    def load(self, run_id, step_name):
        row = self.rows.get((run_id, step_name))
        if row is None or row["status"] != STEP_SUCCESS:
            return _MISSING
        return row["output"]

    def save(self, run_id, workflow, step_name, status, attempts, output=None, error=None):
        self.rows[(run_id, step_name)] = {
            "workflow": workflow,
            "status": status,
            "attempts": attempts,
            "output": output,
            "error": error,
        }


async def _no_sleep(delay):
    return None


def make_item(text, source="web", title=None, status=FeedbackStatus.PROCESSING.value, **fields):
    return FeedbackItem(
        raw_text=text,
        source=source,
        title=title,
        blob_key="feedback/test.json",
        status=status,
        **fields,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def checkpoints():
    return MemoryCheckpointStore()


@pytest.fixture
def engine(checkpoints):
    """Workflow engine that never sleeps between retries."""
    return WorkflowEngine(
        checkpoints=checkpoints,
        max_attempts=3,
        step_timeout_s=5,
        backoff_base_s=0,
        backoff_max_s=0,
        sleep=_no_sleep,
    )


@pytest.fixture
def memory_store():
    return MemoryFeedbackStore()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def embedder():
    return FakeEmbeddingProvider()


@pytest.fixture
def vector_index():
    return FakeVectorIndex()


@pytest.fixture
def inference():
    return FakeInferenceProvider()
