from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from sanctuary.core.config import settings
from sanctuary.core.errors import ErrorHandler
from sanctuary.core.logging_config import get_logger
from sanctuary.db import engine
from sanctuary.services.analytics import analytics_service

logger = get_logger(__name__)

scheduler = AsyncIOScheduler()


async def job_sweep_active_users():
    """Drop presence rows that went quiet without an end-session."""
    with ErrorHandler("sweep_active_users", reraise=False):
        with Session(engine) as session:
            removed = analytics_service.sweep_active_users(session)
        if removed:
            logger.info("Swept stale active users", removed=removed)


async def job_close_abandoned_sessions():
    """Close sessions idle for longer than SESSION_ABANDON_HOURS."""
    with ErrorHandler("close_abandoned_sessions", reraise=False):
        with Session(engine) as session:
            analytics_service.close_abandoned_sessions(
                session, idle_for=timedelta(hours=settings.SESSION_ABANDON_HOURS)
            )


def start_scheduler():
    # max_instances=1 keeps runs from overlapping, coalesce collapses missed runs into one
    scheduler.add_job(
        job_sweep_active_users,
        IntervalTrigger(minutes=settings.ACTIVE_USER_SWEEP_INTERVAL_MINUTES),
        id="job_sweep_active_users",
        max_instances=1,
        misfire_grace_time=60,
        coalesce=True,
        replace_existing=True,
    )

    if settings.SESSION_ABANDON_HOURS > 0:
        scheduler.add_job(
            job_close_abandoned_sessions,
            IntervalTrigger(minutes=settings.ABANDONED_SESSION_SWEEP_INTERVAL_MINUTES),
            id="job_close_abandoned_sessions",
            max_instances=1,
            misfire_grace_time=600,
            coalesce=True,
            replace_existing=True,
        )
    else:
        logger.info("SESSION_ABANDON_HOURS is 0, abandoned sessions stay open")

    scheduler.start()
    logger.info("Scheduler started", jobs=[job.id for job in scheduler.get_jobs()])


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
