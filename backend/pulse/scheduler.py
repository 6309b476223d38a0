"""
Daily schedule: upstream refresh followed by insight generation.

Uses APScheduler's AsyncIOScheduler on the application's event loop.
"""
import logging
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from pulse.config import Settings, get_settings
from pulse.database import SessionLocal
from pulse.insight_engine import generate_insights
from pulse.refresh_service import refresh_all

logger = logging.getLogger(__name__)

DAILY_JOB_ID = "daily_refresh_and_insights"

scheduler: Optional[AsyncIOScheduler] = None


async def daily_refresh_and_insights(settings: Optional[Settings] = None, session_factory=SessionLocal):
    """Refresh every upstream source, then generate and store today's insights."""
    settings = settings or get_settings()
    logger.info("Starting daily refresh")
    statuses = await refresh_all(session_factory=session_factory, settings=settings)
    failed = [name for name, status in statuses.items() if not status.startswith("ok")]
    if failed:
        logger.warning(f"Daily refresh finished with failed sources: {failed}")

    try:
        result = await generate_insights(session_factory, settings, use_model=True)
    except Exception as e:
        logger.error(f"Daily insight generation failed: {type(e).__name__}: {e}")
        return None
    logger.info(f"Daily insights stored for {result.run_date} ({len(result.cards)} cards)")
    return result


def _timezone(name: str):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown REPORT_TIMEZONE '{name}'; scheduling in UTC")
        return ZoneInfo("UTC")


def build_scheduler(settings: Optional[Settings] = None) -> AsyncIOScheduler:
    settings = settings or get_settings()
    tz = _timezone(settings.report_timezone)
    sched = AsyncIOScheduler(timezone=tz)
    sched.add_job(
        daily_refresh_and_insights,
        CronTrigger(hour=settings.daily_refresh_hour, minute=0, timezone=tz),
        id=DAILY_JOB_ID,
        name="Daily refresh + insights",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    return sched


def start_scheduler(settings: Optional[Settings] = None) -> AsyncIOScheduler:
    """Start the scheduler"""
    global scheduler
    settings = settings or get_settings()
    scheduler = build_scheduler(settings)
    scheduler.start()
    logger.info(f"Scheduler started: daily job at {settings.daily_refresh_hour:02d}:00 {settings.report_timezone}")
    return scheduler


def stop_scheduler():
    """Stop the scheduler"""
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    scheduler = None
