"""
Relational storage for feedback items and workflow checkpoints.

``DATABASE_URL`` picks the backend; without it a SQLite file under the data
directory is used. SQLite connections run in WAL mode with a busy timeout,
and sqlite_retry() absorbs the occasional "database is locked" that the
background pipeline and request handlers can still hit when they write at
the same moment.
"""

import logging
import os
import random
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

from app.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DATABASE_URL: str = os.environ.get("DATABASE_URL") or f"sqlite:///{Path(settings.data_directory) / 'feedback.db'}"

SQLITE_PRAGMAS = ("PRAGMA journal_mode=WAL", "PRAGMA busy_timeout=5000")
LOCK_RETRIES = 3
LOCK_BACKOFF_MS = (100, 500)

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"

_engine: Optional[Engine] = None


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _apply_pragmas(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    try:
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


def _build_engine(url: str) -> Engine:
    if not _is_sqlite(url):
        return create_engine(url, echo=settings.debug, pool_size=5, max_overflow=10, pool_pre_ping=True)

    database = make_url(url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(url, echo=settings.debug, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _apply_pragmas)
    return engine


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = _build_engine(DATABASE_URL)
        logger.info("database_engine_created", extra={"db.url": make_url(DATABASE_URL).render_as_string(hide_password=True)})
    return _engine


def sqlite_retry(fn: Callable[[], T]) -> T:
    """
    Call *fn*, retrying when SQLite reports the database as locked.

    Other OperationalErrors, and the lock error after the last attempt,
    are raised unchanged.
    """
    for attempt in range(1, LOCK_RETRIES + 1):
        try:
            return fn()
        except OperationalError as exc:
            if "database is locked" not in str(exc).lower() or attempt == LOCK_RETRIES:
                raise
            delay = random.randint(*LOCK_BACKOFF_MS) / 1000
            logger.warning("sqlite_locked_retry", extra={"attempt": attempt, "sleep_s": delay})
            time.sleep(delay)
    raise AssertionError("unreachable")


@contextmanager
def get_session_context() -> Iterator[Session]:
    with Session(get_engine()) as session:
        yield session


def init_db() -> None:
    """Bring the schema to the latest Alembic revision."""
    if not ALEMBIC_INI.exists():
        # Installed as a wheel without migration scripts
        from app.models.feedback import FeedbackItem  # noqa: F401
        from app.models.workflow import WorkflowStep  # noqa: F401

        logger.warning("alembic.ini missing at %s, creating tables from model metadata", ALEMBIC_INI)
        SQLModel.metadata.create_all(get_engine())
        return

    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ALEMBIC_INI))
    cfg.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))
    cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
    cfg.attributes["configure_logger"] = False
    try:
        command.upgrade(cfg, "head")
    except Exception:
        logger.exception("alembic_upgrade_failed")
        raise
    logger.info("alembic_upgrade_complete")


def close_db() -> None:
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("database_engine_disposed")
