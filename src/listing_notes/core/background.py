# src/listing_notes/core/background.py

"""
Blocking calls awaited from the event loop on daemon threads.

asyncio.to_thread uses the loop's default executor, and asyncio.run joins it
on shutdown; a slow HTTP call or a pending input() would then hold up exit.
Daemon threads are simply abandoned instead: the awaiting coroutine gets
cancelled and a late result is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _resolve(fut: asyncio.Future[Any], result: Any, error: Exception | None) -> None:
    if fut.done():
        return
    if error is not None:
        fut.set_exception(error)
    else:
        fut.set_result(result)


def run_in_daemon_thread(fn: Callable[..., T], *args: Any, name: str | None = None) -> asyncio.Future[T]:
    """Run fn(*args) on a new daemon thread; returns a future bound to the running loop."""
    loop = asyncio.get_running_loop()
    fut: asyncio.Future[T] = loop.create_future()

    def runner() -> None:
        result: Any = None
        error: Exception | None = None
        try:
            result = fn(*args)
        except Exception as e:
            error = e
        try:
            loop.call_soon_threadsafe(_resolve, fut, result, error)
        except RuntimeError:
            # Loop already closed (app exited while we were blocked).
            logger.debug("Dropping result of %s: event loop is closed", name or fn)

    t = threading.Thread(target=runner, name=name, daemon=True)
    t.start()
    return fut
