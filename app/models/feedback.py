"""
Feedback Model
==============

Stores submitted feedback and the annotations written by the analysis
pipeline. The raw payload lives in the blob store; ``blob_key`` points to it.

Annotation fields (sentiment, category, urgency, summary, tags) stay NULL
while the item is PROCESSING and are written together by the finalize step.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlmodel import Field, SQLModel, Column, Text


class FeedbackStatus(str, Enum):
    """Feedback lifecycle states."""
    PROCESSING = "PROCESSING"   # Submitted, pipeline not finished
    COMPLETED = "COMPLETED"     # Annotations persisted
    FAILED = "FAILED"           # Pipeline gave up (see failure_reason)


# Text columns keyword search matches against, and relevance scores against
KEYWORD_FIELDS = ("title", "raw_text", "summary", "category", "tags")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedbackItem(SQLModel, table=True):
    __tablename__ = "feedback_items"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    raw_text: str = Field(sa_column=Column(Text, nullable=False))
    source: str = Field(default="web", max_length=64)
    title: Optional[str] = Field(default=None, nullable=True, max_length=512)
    author: Optional[str] = Field(default=None, nullable=True, max_length=255)
    blob_key: str = Field(max_length=255)
    status: str = Field(default=FeedbackStatus.PROCESSING.value, index=True, max_length=16)

    # Populated by the analysis pipeline
    sentiment: Optional[str] = Field(default=None, nullable=True, index=True, max_length=16)
    category: Optional[str] = Field(default=None, nullable=True, index=True, max_length=32)
    urgency: Optional[str] = Field(default=None, nullable=True, max_length=16)
    summary: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    tags: Optional[str] = Field(default=None, nullable=True, max_length=512)  # comma-separated
    vector_id: Optional[str] = Field(default=None, nullable=True, max_length=64)
    failure_reason: Optional[str] = Field(default=None, nullable=True, max_length=32)

    created_at: datetime = Field(default_factory=_utcnow, index=True)
    updated_at: Optional[datetime] = Field(default=None, nullable=True)
    processing_completed_at: Optional[datetime] = Field(default=None, nullable=True)

    @property
    def tag_list(self) -> List[str]:
        if not self.tags:
            return []
        return [t for t in self.tags.split(",") if t]

    def to_dict(self) -> Dict[str, Any]:
        """API representation (tags as a list, timestamps as ISO strings)."""
        return {
            "id": self.id,
            "text": self.raw_text,
            "raw_text": self.raw_text,
            "source": self.source,
            "title": self.title,
            "author": self.author,
            "status": self.status,
            "sentiment": self.sentiment,
            "category": self.category,
            "urgency": self.urgency,
            "summary": self.summary,
            "tags": self.tag_list if self.tags is not None else None,
            "vector_id": self.vector_id,
            "failure_reason": self.failure_reason,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "processing_completed_at": _iso(self.processing_completed_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
