"""
SQL-backed feedback store.

Thin persistence layer over the feedback_items table. Every method opens
its own session so pipeline runs and search requests never share one.
SQLAlchemy failures surface as StoreError carrying the operation name;
the HTTP layer turns that into a generic 500.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from app.core.database import get_session_context, sqlite_retry
from app.core.errors import StoreError
from app.models.feedback import KEYWORD_FIELDS, FeedbackItem, FeedbackStatus
from app.services.interfaces import Annotations

logger = logging.getLogger(__name__)

class SQLFeedbackStore:
    """FeedbackStore implementation on the configured DATABASE_URL."""

    def _run(self, operation: str, fn, **context):
        try:
            return sqlite_retry(fn)
        except SQLAlchemyError as e:
            logger.error(
                "store_operation_failed",
                extra={"operation": operation, "error": str(e), **context},
            )
            raise StoreError(detail=f"{operation} failed: {e}", context={"operation": operation, **context}) from e

    def insert(self, item: FeedbackItem) -> FeedbackItem:
        def _insert():
            with get_session_context() as session:
                session.add(item)
                session.commit()
                session.refresh(item)
                return item

        return self._run("insert_feedback", _insert, item_id=item.id)

    def get(self, item_id: str) -> Optional[FeedbackItem]:
        def _get():
            with get_session_context() as session:
                return session.get(FeedbackItem, item_id)

        return self._run("get_feedback", _get, item_id=item_id)

    def get_many(self, item_ids: Sequence[str]) -> List[FeedbackItem]:
        """Hydrate items by id. Unknown ids are dropped; order is not preserved."""
        if not item_ids:
            return []

        def _get_many():
            with get_session_context() as session:
                stmt = select(FeedbackItem).where(col(FeedbackItem.id).in_(list(item_ids)))
                return list(session.exec(stmt).all())

        return self._run("hydrate_feedback", _get_many, count=len(item_ids))

    def list_recent(self, limit: int, offset: int) -> List[FeedbackItem]:
        def _list():
            with get_session_context() as session:
                stmt = (
                    select(FeedbackItem)
                    .order_by(col(FeedbackItem.created_at).desc())
                    .offset(offset)
                    .limit(limit)
                )
                return list(session.exec(stmt).all())

        return self._run("list_feedback", _list, limit=limit, offset=offset)

    def count(self) -> int:
        def _count():
            with get_session_context() as session:
                return session.exec(select(func.count()).select_from(FeedbackItem)).one()

        return self._run("count_feedback", _count)

    def keyword_search(self, terms: Sequence[str], limit: int) -> List[FeedbackItem]:
        """Newest-first items where any term is a case-insensitive substring of a text field."""
        terms = [t.lower() for t in terms if t]
        if not terms:
            return []

        clauses = [
            func.lower(getattr(FeedbackItem, field)).contains(term, autoescape=True)
            for field in KEYWORD_FIELDS
            for term in terms
        ]

        def _search():
            with get_session_context() as session:
                stmt = (
                    select(FeedbackItem)
                    .where(or_(*clauses))
                    .order_by(col(FeedbackItem.created_at).desc())
                    .limit(limit)
                )
                return list(session.exec(stmt).all())

        return self._run("keyword_search", _search, terms=len(terms))

    def finalize(self, item_id: str, annotations: Annotations, completed_at: datetime) -> bool:
        """Write all annotations and mark COMPLETED in one guarded update.

        Returns False when the item is missing or already left PROCESSING.
        """
        stmt = (
            update(FeedbackItem)
            .where(col(FeedbackItem.id) == item_id)
            .where(col(FeedbackItem.status) == FeedbackStatus.PROCESSING.value)
            .values(
                status=FeedbackStatus.COMPLETED.value,
                sentiment=annotations.sentiment,
                category=annotations.category,
                urgency=annotations.urgency,
                summary=annotations.summary,
                tags=",".join(annotations.tags),
                vector_id=annotations.vector_id,
                updated_at=completed_at,
                processing_completed_at=completed_at,
            )
        )
        return self._guarded_update("finalize_feedback", stmt, item_id)

    def mark_failed(self, item_id: str, reason: str, failed_at: datetime) -> bool:
        stmt = (
            update(FeedbackItem)
            .where(col(FeedbackItem.id) == item_id)
            .where(col(FeedbackItem.status) == FeedbackStatus.PROCESSING.value)
            .values(
                status=FeedbackStatus.FAILED.value,
                failure_reason=reason,
                updated_at=failed_at,
            )
        )
        return self._guarded_update("fail_feedback", stmt, item_id)

    def _guarded_update(self, operation: str, stmt, item_id: str) -> bool:
        def _update():
            with get_session_context() as session:
                result = session.execute(stmt)
                session.commit()
                return result.rowcount == 1

        return self._run(operation, _update, item_id=item_id)


_feedback_store: Optional[SQLFeedbackStore] = None


def get_feedback_store() -> SQLFeedbackStore:
    """Get the singleton feedback store instance."""
    global _feedback_store
    if _feedback_store is None:
        _feedback_store = SQLFeedbackStore()
    return _feedback_store
