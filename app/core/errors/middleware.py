"""
Exception handlers that turn errors into the registry's JSON envelope.

The client only ever sees registry text (title, safe_message, remediation).
Internal detail and context go to the log, at the severity the registry
assigns to the code.
"""

import logging
from typing import Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import FeedbackIntelError
from app.core.errors.registry import ErrorEntry, error_registry

logger = logging.getLogger(__name__)

INTERNAL_CODE = "FBI-SYS-001"
VALIDATION_CODE = "FBI-API-001"
GENERIC_MESSAGE = "An unexpected error occurred."

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _envelope(status: int, code: str, entry: Optional[ErrorEntry]) -> JSONResponse:
    if entry is None:
        error = {
            "code": code,
            "title": "Internal error",
            "message": GENERIC_MESSAGE,
            "retryable": False,
            "user_action_required": False,
            "remediation": [],
        }
    else:
        error = {
            "code": entry.code,
            "title": entry.title,
            "message": entry.safe_message,
            "retryable": entry.retryable,
            "user_action_required": entry.user_action_required,
            "remediation": list(entry.remediation),
        }
    return JSONResponse(status_code=status, content={"error": error})


async def feedback_error_handler(request: Request, exc: FeedbackIntelError) -> JSONResponse:
    entry = error_registry.get(exc.code)
    if entry is None:
        logger.error("unregistered_error_code", extra={"error.code": exc.code, "error.message": exc.detail})
        return _envelope(500, exc.code, None)

    fields = {
        "error.code": exc.code,
        "error.kind": type(exc).__name__,
        "error.message": exc.detail,
        "error.retryable": entry.retryable,
        "http.path": request.url.path,
    }
    fields.update({f"error.ctx.{key}": value for key, value in exc.context.items()})
    logger.log(LOG_LEVELS.get(entry.severity, logging.ERROR), entry.title, extra=fields)

    return _envelope(entry.http_status, entry.code, entry)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body or query parameters failed validation: respond with the 400 input error."""
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
    wrapped = FeedbackIntelError(VALIDATION_CODE, detail="request validation failed", context={"fields": fields})
    return await feedback_error_handler(request, wrapped)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", extra={"error.kind": type(exc).__name__, "http.path": request.url.path})
    return _envelope(500, INTERNAL_CODE, error_registry.get(INTERNAL_CODE))
