"""Periodic vesting refresh.

Runs the same refresher the HTTP layer triggers, across every company, under
the system actor, then releases vested RSU/RSA shares when enabled.
"""

from __future__ import annotations

import logging
from datetime import date

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.settings import settings
from app.db.session import AsyncSessionLocal
from app.services import vesting_refresher, vesting_releases
from app.services.authz import SYSTEM_ACTOR
from app.services.ledger_errors import LedgerError

logger = logging.getLogger(__name__)

JOB_ID = "vesting_refresh"

_scheduler: AsyncIOScheduler | None = None


def build_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 120},
        timezone="UTC",
    )


async def run_vesting_refresh(as_of: date | None = None) -> dict[str, int]:
    summary = {"advanced": 0, "released": 0, "release_skipped": 0}
    async with AsyncSessionLocal() as db:
        try:
            result = await vesting_refresher.refresh(db, actor=SYSTEM_ACTOR, as_of=as_of)
            summary["advanced"] = result.advanced
            if settings.vesting_release_enabled:
                release = await vesting_releases.release_vested_events(db, actor=SYSTEM_ACTOR)
                summary["released"] = len(release.released)
                summary["release_skipped"] = len(release.skipped)
        except LedgerError as exc:
            # The next interval retries; the scheduler must keep running.
            logger.error("Scheduled vesting refresh failed code=%s message=%s", exc.code, exc.message)
            summary["error"] = 1
    return summary


def start_scheduler() -> AsyncIOScheduler | None:
    global _scheduler
    if not settings.vesting_refresh_enabled:
        logger.info("Vesting refresh schedule disabled")
        return None
    if _scheduler is not None and _scheduler.running:
        return _scheduler
    scheduler = build_scheduler()
    scheduler.add_job(
        run_vesting_refresh,
        trigger=IntervalTrigger(minutes=settings.vesting_refresh_interval_minutes),
        id=JOB_ID,
        name="Refresh vesting statuses",
        replace_existing=True,
    )
    scheduler.start()
    _scheduler = scheduler
    logger.info(
        "Vesting refresh scheduled every %s minutes",
        settings.vesting_refresh_interval_minutes,
    )
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is None:
        return
    if _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("Vesting refresh schedule stopped")


def is_running() -> bool:
    return _scheduler is not None and _scheduler.running
