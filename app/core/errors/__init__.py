"""
Error code system.

FeedbackIntelError is the base exception for all structured errors.
Raise it (or one of the typed subclasses below) with an error code from the
registry, and the error middleware will produce a structured JSON response.

Usage:
    from app.core.errors import StoreError
    raise StoreError(detail="insert failed", context={"operation": "insert_feedback"})
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^FBI-[A-Z]{2,6}-\d{3}$")


class FeedbackIntelError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "FBI-VEC-001". Subclasses supply a default.
        detail: Internal-only detail message (never exposed to users).
        context: Arbitrary key-value context for structured logging.
    """

    default_code = "FBI-SYS-001"

    def __init__(
        self,
        code: str | None = None,
        detail: str | None = None,
        context: dict | None = None,
    ) -> None:
        code = code or self.default_code
        if not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        super().__init__(f"{code}: {detail}" if detail else code)


class InvalidInput(FeedbackIntelError):
    """User-correctable request problem."""
    default_code = "FBI-API-001"


class InvalidQuery(InvalidInput):
    """Search query is missing or blank."""
    default_code = "FBI-API-002"


class NotFound(FeedbackIntelError):
    default_code = "FBI-API-003"


class MissingPayload(FeedbackIntelError):
    """The raw payload for a feedback item is absent from the blob store."""
    default_code = "FBI-WFL-001"


class StepFailed(FeedbackIntelError):
    """A workflow step exhausted its attempts."""
    default_code = "FBI-WFL-002"


class ProviderUnavailable(FeedbackIntelError):
    """Embedding or inference call errored or timed out."""
    default_code = "FBI-EMB-001"


class VectorIndexError(FeedbackIntelError):
    default_code = "FBI-VEC-001"


class SearchUnavailable(FeedbackIntelError):
    """Every search strategy failed."""
    default_code = "FBI-SRC-001"


class StoreError(FeedbackIntelError):
    """Relational store fault."""
    default_code = "FBI-DB-001"
