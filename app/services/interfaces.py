"""
Collaborator interfaces.

Each external collaborator the search engine and the analysis pipeline
depend on gets one narrow Protocol. Concrete implementations live in
their own service modules; tests substitute in-memory fakes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from app.models.feedback import FeedbackItem


@dataclass(frozen=True)
class VectorMatch:
    """One nearest-neighbour hit: the feedback id and its similarity score."""
    item_id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Annotations:
    """Everything the finalize step writes back to a FeedbackItem."""
    sentiment: str
    category: str
    urgency: str
    summary: str
    tags: List[str]
    vector_id: Optional[str] = None


class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> List[float]: ...


class InferenceProvider(Protocol):
    def run(self, model_id: str, inputs: Dict[str, Any]) -> Dict[str, Any]: ...


class VectorIndex(Protocol):
    def upsert(self, item_id: str, vector: List[float], metadata: Dict[str, Any]) -> str: ...

    def query(self, vector: List[float], top_k: int) -> List[VectorMatch]: ...


class BlobStore(Protocol):
    def put(self, key: str, payload: Dict[str, Any]) -> None: ...

    def get(self, key: str) -> Optional[Dict[str, Any]]: ...


class FeedbackStore(Protocol):
    def insert(self, item: FeedbackItem) -> FeedbackItem: ...

    def get(self, item_id: str) -> Optional[FeedbackItem]: ...

    def get_many(self, item_ids: Sequence[str]) -> List[FeedbackItem]: ...

    def list_recent(self, limit: int, offset: int) -> List[FeedbackItem]: ...

    def count(self) -> int: ...

    def keyword_search(self, terms: Sequence[str], limit: int) -> List[FeedbackItem]: ...

    def finalize(self, item_id: str, annotations: Annotations, completed_at: datetime) -> bool: ...

    def mark_failed(self, item_id: str, reason: str, failed_at: datetime) -> bool: ...
