"""Utilities for running async code in Celery tasks."""

import asyncio
from typing import TypeVar, Coroutine, Any

from src.config import get_settings

T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
    """Run a coroutine from a sync Celery task and return its result.

    Submits to the worker's persistent loop when one exists (see signals.py),
    blocking for at most ``timeout`` seconds (celery_task_timeout by default).
    Outside a worker process (tests, shell) a throwaway loop is used.
    """
    from src.tasks.signals import get_worker_loop

    loop = get_worker_loop()
    if loop is not None:
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        return future.result(timeout=timeout or get_settings().celery_task_timeout)

    tmp_loop = asyncio.new_event_loop()
    asyncio.set_event_loop(tmp_loop)
    try:
        return tmp_loop.run_until_complete(coro)
    finally:
        tmp_loop.close()
