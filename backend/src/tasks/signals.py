"""Celery signals for the worker event loop and task outcome logging."""

import asyncio
import threading

from celery.signals import (
    worker_process_init,
    worker_process_shutdown,
    task_failure,
)

from src.utils.logger import get_logger

log = get_logger(__name__)

# Module-level persistent event loop for the worker process
_worker_loop: asyncio.AbstractEventLoop | None = None
_worker_loop_thread: threading.Thread | None = None


def get_worker_loop() -> asyncio.AbstractEventLoop | None:
    """Get the persistent worker event loop, if available and not closed."""
    if _worker_loop is not None and not _worker_loop.is_closed():
        return _worker_loop
    return None


@worker_process_init.connect
def _on_worker_process_init(**kwargs) -> None:
    """Create a persistent event loop for the worker process.

    asyncpg connections are bound to the loop that created them, so every
    task in a worker process must run on the same loop.
    """
    global _worker_loop, _worker_loop_thread

    _worker_loop = asyncio.new_event_loop()

    def _run_loop():
        asyncio.set_event_loop(_worker_loop)
        _worker_loop.run_forever()

    _worker_loop_thread = threading.Thread(target=_run_loop, daemon=True)
    _worker_loop_thread.start()

    log.info("worker_event_loop_created")


@worker_process_shutdown.connect
def _on_worker_process_shutdown(**kwargs) -> None:
    """Close the persistent event loop on worker shutdown."""
    global _worker_loop, _worker_loop_thread

    if _worker_loop is not None and not _worker_loop.is_closed():
        _worker_loop.call_soon_threadsafe(_worker_loop.stop)
        if _worker_loop_thread is not None:
            _worker_loop_thread.join(timeout=5)
        _worker_loop.close()
        log.info("worker_event_loop_closed")

    _worker_loop = None
    _worker_loop_thread = None


@task_failure.connect
def _on_task_failure(task_id, exception, sender=None, **kwargs) -> None:
    log.error(
        "task_failed",
        task_id=task_id,
        task_name=getattr(sender, "name", None),
        error=str(exception),
    )
