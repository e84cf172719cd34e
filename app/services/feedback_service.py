"""
Feedback intake.

Accepts a submission, writes the raw payload to the blob store, inserts
the PROCESSING row, and hands back what the caller needs to schedule the
analysis pipeline. Reads (single item, newest-first listing) pass through
to the store.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from app.core.errors import InvalidInput, NotFound, StoreError
from app.models.feedback import FeedbackItem, FeedbackStatus
from app.services.blob_store import blob_key_for, get_blob_store
from app.services.feedback_store import get_feedback_store
from app.services.interfaces import BlobStore, FeedbackStore

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "web"


class FeedbackService:

    def __init__(self, store: Optional[FeedbackStore] = None, blobs: Optional[BlobStore] = None):
        self.store = store or get_feedback_store()
        self.blobs = blobs or get_blob_store()

    def submit(
        self,
        text: Optional[str],
        source: Optional[str] = None,
        title: Optional[str] = None,
        author: Optional[str] = None,
    ) -> FeedbackItem:
        """
        Store a new feedback item in PROCESSING state.

        Raises:
            InvalidInput: text is missing or blank.
            StoreError: the payload or the row could not be written.
        """
        if text is None or not text.strip():
            raise InvalidInput(detail="text field is required", context={"field": "text"})

        item_id = str(uuid.uuid4())
        blob_key = blob_key_for(item_id)
        created_at = datetime.now(timezone.utc)
        source = (source or "").strip() or DEFAULT_SOURCE

        payload = {
            "id": item_id,
            "text": text,
            "source": source,
            "title": title,
            "author": author,
            "submitted_at": created_at.isoformat(),
        }
        try:
            self.blobs.put(blob_key, payload)
        except OSError as e:
            logger.error("blob_write_failed", extra={"operation": "put_payload", "item_id": item_id, "error": str(e)})
            raise StoreError(detail=f"payload write failed: {e}", context={"operation": "put_payload", "item_id": item_id}) from e

        item = FeedbackItem(
            id=item_id,
            raw_text=text,
            source=source,
            title=title,
            author=author,
            blob_key=blob_key,
            status=FeedbackStatus.PROCESSING.value,
            created_at=created_at,
        )
        item = self.store.insert(item)
        logger.info("Feedback %s accepted from %s", item_id, source)
        return item

    def get(self, item_id: str) -> FeedbackItem:
        item = self.store.get(item_id)
        if item is None:
            raise NotFound(detail=f"feedback {item_id} not found", context={"item_id": item_id})
        return item

    def list_recent(self, limit: int = 50, offset: int = 0) -> List[FeedbackItem]:
        return self.store.list_recent(limit, offset)

    def count(self) -> int:
        return self.store.count()


_feedback_service: Optional[FeedbackService] = None


def get_feedback_service() -> FeedbackService:
    """Get the singleton feedback service instance."""
    global _feedback_service
    if _feedback_service is None:
        _feedback_service = FeedbackService()
    return _feedback_service
