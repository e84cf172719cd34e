"""
Liveness and dependency health.

/api/health answers without touching anything external. /api/health/deep
checks the database, Qdrant and the data volume concurrently, each check
capped at COMPONENT_TIMEOUT, and reports the worst component status as the
overall status.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Tuple

import psutil
from fastapi import APIRouter, Depends
from sqlalchemy import text

from app.config import settings
from app.core.async_utils import run_sync
from app.core.database import get_engine
from app.core.structured_logging import APP_VERSION, SERVICE_NAME, get_uptime_s
from app.services.qdrant_service import QdrantVectorIndex, get_vector_index

logger = logging.getLogger(__name__)

router = APIRouter()

COMPONENT_TIMEOUT = 2.0
SLOW_MS = 250
DISK_FREE_DOWN_PCT = 5
DISK_FREE_DEGRADED_PCT = 15

_SEVERITY = {"ok": 0, "degraded": 1, "down": 2}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check():
    return {
        "status": "ok",
        "version": APP_VERSION,
        "service": SERVICE_NAME,
        "uptime_s": round(get_uptime_s(), 1),
        "timestamp": _now(),
    }


@router.get("/health/deep")
async def deep_health_check(index: QdrantVectorIndex = Depends(get_vector_index)):
    checks: Dict[str, Callable[[], Awaitable[Dict[str, Any]]]] = {
        "database": _check_database,
        "qdrant": lambda: _check_qdrant(index),
        "disk": _check_disk,
    }
    results = await asyncio.gather(*(_run_check(name, check) for name, check in checks.items()))
    components = dict(results)
    overall = max((c.get("status", "down") for c in components.values()), key=lambda s: _SEVERITY.get(s, 2))

    return {
        "status": overall,
        "checked_at": _now(),
        "version": APP_VERSION,
        "uptime_s": round(get_uptime_s(), 1),
        "components": components,
    }


async def _run_check(name: str, check: Callable[[], Awaitable[Dict[str, Any]]]) -> Tuple[str, Dict[str, Any]]:
    try:
        return name, await asyncio.wait_for(check(), timeout=COMPONENT_TIMEOUT)
    except (asyncio.TimeoutError, TimeoutError):
        return name, {"status": "down", "detail_safe": "Health check timed out"}
    except Exception as e:
        logger.warning("health_check_failed", extra={"component": name, "error": str(e)})
        return name, {"status": "down", "detail_safe": f"Check failed: {type(e).__name__}"}


def _latency_status(base: str, latency_ms: float) -> str:
    if base == "ok" and latency_ms > SLOW_MS:
        return "degraded"
    return base


def _select_one() -> Any:
    with get_engine().connect() as conn:
        return conn.execute(text("SELECT 1")).scalar()


async def _check_database() -> Dict[str, Any]:
    started = time.perf_counter()
    value = await run_sync(_select_one, timeout=COMPONENT_TIMEOUT)
    latency_ms = round((time.perf_counter() - started) * 1000, 1)
    return {"status": _latency_status("ok" if value == 1 else "down", latency_ms), "latency_ms": latency_ms}


async def _check_qdrant(index: QdrantVectorIndex) -> Dict[str, Any]:
    started = time.perf_counter()
    report = dict(await run_sync(index.health_check, timeout=COMPONENT_TIMEOUT))
    latency_ms = round((time.perf_counter() - started) * 1000, 1)
    report.pop("timestamp", None)
    report["status"] = _latency_status(report.get("status", "down"), latency_ms)
    report["latency_ms"] = latency_ms
    return report


async def _check_disk() -> Dict[str, Any]:
    free_pct = round(100.0 - psutil.disk_usage(settings.data_directory).percent, 1)
    if free_pct < DISK_FREE_DOWN_PCT:
        status = "down"
    elif free_pct < DISK_FREE_DEGRADED_PCT:
        status = "degraded"
    else:
        status = "ok"
    return {"status": status, "detail_safe": f"{free_pct}% free"}
