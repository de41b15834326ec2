"""Celery tasks for background processing."""

from src.tasks import cleanup_tasks, signals

__all__ = [
    "cleanup_tasks",
    "signals",
]
