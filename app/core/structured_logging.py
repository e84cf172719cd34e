"""
JSON logging for the API, the background pipeline and the seed script.

Plain ``logging.getLogger(__name__)`` calls are routed through structlog's
ProcessorFormatter, so every record becomes one JSON object carrying the
service name, version and whichever of request_id / correlation_id /
run_id is bound in the current context. Values passed with ``extra=`` land
as top-level keys.
"""
from __future__ import annotations

import logging
import logging.handlers
import sys
import time
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

import structlog

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)

APP_VERSION = "0.4.0"
SERVICE_NAME = "feedback-intel"

_CONTEXT_VARS = (
    ("request_id", request_id_var),
    ("correlation_id", correlation_id_var),
    ("run_id", run_id_var),
)

# Libraries that log at INFO on every request or model load
_QUIET_LOGGERS = ("httpcore", "httpx", "urllib3", "asyncio", "sentence_transformers", "transformers", "alembic")

_started_at = time.time()


def get_uptime_s() -> float:
    return time.time() - _started_at


def add_service_context(logger, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", APP_VERSION)
    for key, var in _CONTEXT_VARS:
        value = var.get()
        if value:
            event_dict[key] = value
    return event_dict


def lowercase_level(logger, method_name: str, event_dict: dict) -> dict:
    if "level" in event_dict:
        event_dict["level"] = str(event_dict["level"]).lower()
    return event_dict


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        lowercase_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        add_service_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _rotating_file_handler(path: Path, max_bytes: int, backup_count: int) -> Optional[logging.Handler]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
        )
    except OSError as e:
        # Read-only filesystem: keep stderr only
        sys.stderr.write(f"file logging disabled ({path}): {e}\n")
        return None


def setup_logging(
    log_dir: str = "logs",
    log_file: str = "feedback-intel.jsonl",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    log_level: int = logging.INFO,
) -> None:
    """
    Install JSON handlers on the root logger (stderr plus a rotating file).

    Safe to call more than once; existing root handlers are replaced.
    """
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )

    handlers: list = [logging.StreamHandler(sys.stderr)]
    file_handler = _rotating_file_handler(Path(log_dir) / log_file, max_bytes, backup_count)
    if file_handler is not None:
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
