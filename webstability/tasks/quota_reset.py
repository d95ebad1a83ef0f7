"""
Monthly change-request quota reset.

Runs on the 1st of every month via Celery Beat. Only projects that were not
reset yet this month are touched, so a second run in the same month is a
no-op. The version column is bumped with the counter so an in-flight
lifecycle write on the same project fails its optimistic check and retries
against the reset value.
"""

import asyncio
import logging
from datetime import datetime

from celery import shared_task
from sqlalchemy import or_, update

from webstability.db.base import utcnow
from webstability.db.session import dispose_engine, get_session_local
from webstability.models.projects import Project
from webstability.tasks.task_lock import with_task_lock

logger = logging.getLogger(__name__)


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def reset_changes(session, now: datetime | None = None) -> int:
    """Zero ``changes_this_month`` for every project not yet reset this month."""
    now = now or utcnow()
    stmt = (
        update(Project)
        .where(
            or_(
                Project.changes_reset_at.is_(None),
                Project.changes_reset_at < month_start(now),
            )
        )
        .values(
            changes_this_month=0,
            changes_reset_at=now,
            version=Project.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount or 0


async def _reset_monthly_changes() -> dict:
    try:
        AsyncSessionLocal = get_session_local()
        async with AsyncSessionLocal() as session:
            count = await reset_changes(session)

        logger.info(f"Monthly quota reset: {count} projects reset")
        return {"status": "success", "reset": count}

    except Exception as exc:
        logger.error(f"Monthly quota reset failed: {exc}", exc_info=True)
        raise
    finally:
        await dispose_engine()


@shared_task(name="quota_reset.reset_monthly_changes")
@with_task_lock(lock_name="quota_reset")
def reset_monthly_changes() -> dict:
    """Celery task resetting every project's monthly change counter."""
    return asyncio.run(_reset_monthly_changes())
