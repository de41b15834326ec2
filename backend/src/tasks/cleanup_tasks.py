"""Cleanup background tasks.

Usage records reset lazily on access, so the usage sweep is not needed for
correctness; it only removes rows for users who stopped generating. The grant
sweep is different: it is what gives back the budget of held grants that were
never committed or released.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.celery_app import celery_app
from src.config import get_settings
from src.database import AsyncSessionLocal
from src.factories.service_factories import get_entitlement_gate
from src.models.usage_event import UsageEvent
from src.models.usage_record import UsageRecord
from src.tasks.utils import run_async
from src.utils.logger import get_logger

log = get_logger(__name__)

BATCH_SIZE = 2000


async def _batched_delete(
    session: AsyncSession,
    model: type[Any],
    column: Any,
    cutoff_date: datetime,
    batch_size: int = BATCH_SIZE,
) -> int:
    """Delete rows whose ``column`` is older than cutoff_date, in batches.

    Commits after each batch to avoid holding long transactions.

    Returns:
        Total number of rows deleted.
    """
    total_deleted = 0

    while True:
        id_result = await session.execute(
            select(model.id).where(column < cutoff_date).limit(batch_size)
        )
        ids = [row[0] for row in id_result.fetchall()]

        if not ids:
            break

        await session.execute(delete(model).where(model.id.in_(ids)))
        await session.commit()
        total_deleted += len(ids)

        log.debug(
            "batch_deleted",
            model=model.__tablename__,
            batch_count=len(ids),
            total_deleted=total_deleted,
        )

    return total_deleted


@celery_app.task(name="src.tasks.cleanup_tasks.sweep_usage_records_task")
def sweep_usage_records_task() -> dict[str, Any]:
    """Delete usage records and usage events past the retention window.

    A usage record is stale when its ``reset_at`` lies more than
    ``usage_record_retention_days`` in the past.

    Returns:
        Dictionary with cleanup results
    """
    settings = get_settings()
    retention_days = settings.usage_record_retention_days

    log.info("usage_sweep_started", retention_days=retention_days)

    async def _run() -> dict[str, Any]:
        cutoff_date = datetime.now(timezone.utc) - timedelta(days=retention_days)
        results = {
            "usage_records_deleted": 0,
            "usage_events_deleted": 0,
            "cutoff_date": cutoff_date.isoformat(),
        }

        async with AsyncSessionLocal() as session:
            results["usage_records_deleted"] = await _batched_delete(
                session, UsageRecord, UsageRecord.reset_at, cutoff_date
            )
            results["usage_events_deleted"] = await _batched_delete(
                session, UsageEvent, UsageEvent.created_at, cutoff_date
            )

        return results

    result = run_async(_run())
    log.info(
        "usage_sweep_completed",
        usage_records_deleted=result["usage_records_deleted"],
        usage_events_deleted=result["usage_events_deleted"],
    )
    return result


@celery_app.task(name="src.tasks.cleanup_tasks.release_expired_grants_task")
def release_expired_grants_task() -> dict[str, Any]:
    """Expire held grants past ``expires_at`` and refund what they reserved.

    Works in batches of ``grant_sweep_batch_size`` until no overdue grant is left.

    Returns:
        Dictionary with the number of grants released
    """
    settings = get_settings()
    batch_size = settings.grant_sweep_batch_size

    async def _run() -> dict[str, Any]:
        released = 0
        async with AsyncSessionLocal() as session:
            gate = get_entitlement_gate(session, None)
            while True:
                batch = await gate.release_expired(limit=batch_size)
                released += batch
                if batch < batch_size:
                    break
        return {"grants_released": released}

    result = run_async(_run())
    if result["grants_released"]:
        log.info("grant_sweep_completed", grants_released=result["grants_released"])
    return result
