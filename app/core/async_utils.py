"""
Thread offloading for blocking calls made from async code.

SQL sessions, Qdrant requests, blob file I/O and local model inference are
all synchronous. Request handlers and workflow steps hand them to a worker
thread with run_sync() so one slow call never stalls the event loop.
"""

import asyncio
import functools
import logging
import time
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_S = 30.0


def _callable_name(func: Callable[..., Any]) -> str:
    if isinstance(func, functools.partial):
        return _callable_name(func.func)
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)


async def run_sync(func: Callable[..., T], *args: Any, timeout: float = DEFAULT_TIMEOUT_S, **kwargs: Any) -> T:
    """
    Await ``func(*args, **kwargs)`` executed in a worker thread.

    Raises:
        TimeoutError: the call did not return within *timeout* seconds. The
            thread itself cannot be cancelled and finishes in the background.
        Exception: anything raised by *func* propagates unchanged.
    """
    name = _callable_name(func)
    call = functools.partial(func, *args, **kwargs)
    started = time.perf_counter()
    try:
        result = await asyncio.wait_for(asyncio.to_thread(call), timeout=timeout)
    except asyncio.TimeoutError:
        waited_ms = (time.perf_counter() - started) * 1000
        logger.warning("run_sync_timeout", extra={"callable": name, "timeout_s": timeout, "waited_ms": round(waited_ms)})
        raise TimeoutError(f"{name} did not finish within {timeout}s") from None

    logger.debug("run_sync %s took %.2fms", name, (time.perf_counter() - started) * 1000)
    return result
