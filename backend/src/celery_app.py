"""Celery worker and beat configuration.

Two periodic jobs: the usage sweep and the grant sweep. Monthly usage resets
happen lazily on access, so a stopped beat never affects metering; it does
delay refunds for held grants that expire unused.
"""

from celery import Celery
from celery.schedules import crontab

from src.config import get_settings

settings = get_settings()

CRON_FIELDS = ("minute", "hour", "day_of_month", "month_of_year", "day_of_week")
MAINTENANCE_QUEUE = "maintenance"


def cron_schedule(cron_expr: str) -> crontab:
    """Build a crontab from a five-field expression such as ``"0 3 * * *"``."""
    parts = cron_expr.split()
    if len(parts) != len(CRON_FIELDS):
        raise ValueError(f"Invalid cron expression: {cron_expr!r}")
    return crontab(**dict(zip(CRON_FIELDS, parts)))


celery_app = Celery(
    "designforge",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.celery_task_timeout,
    task_soft_time_limit=int(settings.celery_task_timeout * 0.9),
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,
    task_routes={"src.tasks.cleanup_tasks.*": {"queue": MAINTENANCE_QUEUE}},
)

celery_app.autodiscover_tasks(["src.tasks"])

celery_app.conf.beat_schedule = {
    "sweep-usage-records": {
        "task": "src.tasks.cleanup_tasks.sweep_usage_records_task",
        "schedule": cron_schedule(settings.cleanup_schedule_cron),
    },
    "release-expired-grants": {
        "task": "src.tasks.cleanup_tasks.release_expired_grants_task",
        "schedule": cron_schedule(settings.grant_sweep_schedule_cron),
    },
}
