"""
Input collector.

Runs the named loaders concurrently and assembles one InputBundle. A loader
that raises or times out contributes its empty default, so the bundle always
has the full shape.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from pulse.config import Settings
from pulse.insight_models import (
    CalendarEvent,
    ChannelMetrics,
    DailySalesRow,
    InputBundle,
    SocialPost,
)
from pulse.models import CalendarEventRow, SalesDaily, TelegramPost, YoutubeDaily
from pulse.refresh_service import fetch_latest_videos_cached

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]

EMPTY_DEFAULTS: Dict[str, Any] = {
    "sales_rows": [],
    "social_posts": [],
    "videos": [],
    "calendar_events": [],
    "channel_metrics": None,
}


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InputCollector:
    def __init__(self, loaders: Dict[str, Loader], timeout: float = 10.0):
        unknown = set(loaders) - set(EMPTY_DEFAULTS)
        if unknown:
            raise ValueError(f"Unknown loader name(s): {sorted(unknown)}")
        self.loaders = loaders
        self.timeout = timeout

    async def _run(self, name: str, loader: Loader) -> Any:
        try:
            result = await asyncio.wait_for(loader(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Input loader '{name}' timed out after {self.timeout}s")
            return EMPTY_DEFAULTS[name]
        except Exception as e:
            logger.error(f"Input loader '{name}' failed: {type(e).__name__}: {e}")
            return EMPTY_DEFAULTS[name]
        if result is None:
            return EMPTY_DEFAULTS[name]
        return result

    async def collect(self) -> InputBundle:
        names = list(self.loaders)
        results = await asyncio.gather(*(self._run(name, self.loaders[name]) for name in names))
        values = dict(EMPTY_DEFAULTS)
        for name, result in zip(names, results):
            values[name] = list(result) if isinstance(values[name], list) else result
        bundle = InputBundle(**values)
        logger.info(
            f"Collected inputs: {len(bundle.sales_rows)} sales days, {len(bundle.social_posts)} posts, "
            f"{len(bundle.videos)} videos, {len(bundle.calendar_events)} events, "
            f"metrics={'yes' if bundle.channel_metrics else 'no'}"
        )
        return bundle


# ── Stored-table readers ────────────────────────────────────────────────

def read_sales_rows(db: Session) -> List[DailySalesRow]:
    rows = db.query(SalesDaily).order_by(SalesDaily.date.desc()).all()
    return [
        DailySalesRow(
            date=r.date,
            total_sales=r.total_sales or 0,
            revenue_cents=r.revenue_cents or 0,
            profit_cents=r.profit_cents or 0,
            avg_profit_cents=r.avg_profit_cents or 0,
        )
        for r in rows
    ]


def read_social_posts(db: Session, slug: str, limit: int = 50) -> List[SocialPost]:
    rows = (
        db.query(TelegramPost)
        .filter(TelegramPost.channel_slug == slug)
        .order_by(TelegramPost.published_at.desc())
        .limit(limit)
        .all()
    )
    return [
        SocialPost(message_id=r.message_id, text=r.text or "", published_at=_utc(r.published_at), url=r.url)
        for r in rows
    ]


def read_calendar_events(db: Session, now: datetime, limit: int = 50) -> List[CalendarEvent]:
    rows = (
        db.query(CalendarEventRow)
        .filter(CalendarEventRow.start_at >= _utc(now))
        .order_by(CalendarEventRow.start_at.asc())
        .limit(limit)
        .all()
    )
    return [
        CalendarEvent(title=r.title, start=_utc(r.start_at), end=_utc(r.end_at), url=r.url)
        for r in rows
    ]


def read_channel_metrics(db: Session) -> Optional[ChannelMetrics]:
    row = db.query(YoutubeDaily).order_by(YoutubeDaily.captured_at.desc()).first()
    if row is None:
        return None
    return ChannelMetrics(
        views_today=row.views_today,
        views_7d=row.views_7d,
        views_30d=row.views_30d,
        views_all_time=row.views_all_time,
        subscribers=row.subscribers,
        new_videos_30d=row.new_videos_30d,
        videos_total=row.videos_total,
        updated_at=_utc(row.captured_at),
    )


def build_default_loaders(
    session_factory: Callable[[], Session],
    settings: Settings,
    now: datetime,
    transport=None,
) -> Dict[str, Loader]:
    """Loaders over the stored tables (one session each) plus the live video feed."""
    def reading(fn, *args) -> Loader:
        def run():
            db = session_factory()
            try:
                return fn(db, *args)
            finally:
                db.close()

        async def load():
            return await asyncio.to_thread(run)

        return load

    async def videos():
        return await fetch_latest_videos_cached(settings, transport=transport)

    return {
        "sales_rows": reading(read_sales_rows),
        "social_posts": reading(read_social_posts, settings.telegram_channel_slug.lstrip("@"), settings.telegram_max_posts),
        "videos": videos,
        "calendar_events": reading(read_calendar_events, now),
        "channel_metrics": reading(read_channel_metrics),
    }
