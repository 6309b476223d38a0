"""
Upstream refresh fan-out.

Fetches the four upstream sources concurrently, each under its own timeout,
and writes what came back into the local tables. One source failing never
affects the others; every outcome ends up in the returned status map.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cache.cache import VIDEO_CACHE_NS, cache_get, cache_set
from pulse.config import Settings, get_settings
from pulse.connectors import get_connector
from pulse.database import SessionLocal
from pulse.insight_models import CalendarEvent, ChannelMetrics, DailySalesRow, SocialPost, VideoEntry
from pulse.models import CalendarEventRow, SalesDaily, TelegramPost, YoutubeDaily

logger = logging.getLogger(__name__)

MAX_CALENDAR_EVENTS = 50


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _run_in_session(session_factory: Callable[[], Session], fn, *args):
    db = session_factory()
    try:
        return fn(db, *args)
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


# ── Writers ─────────────────────────────────────────────────────────────

def store_sales_rows(db: Session, rows: List[DailySalesRow]) -> int:
    """Replaces the whole ledger; an empty fetch leaves the stored rows alone."""
    if not rows:
        return 0
    db.query(SalesDaily).delete(synchronize_session=False)
    for row in rows:
        db.add(SalesDaily(
            date=row.date,
            total_sales=row.total_sales,
            revenue_cents=row.revenue_cents,
            profit_cents=row.profit_cents,
            avg_profit_cents=row.avg_profit_cents,
        ))
    db.commit()
    return len(rows)


def store_telegram_posts(
    db: Session,
    slug: str,
    posts: List[SocialPost],
    now: datetime,
    retention_days: int,
    max_posts: int,
) -> int:
    """Upserts posts by message id, then prunes by age and by count."""
    existing = {
        row.message_id: row
        for row in db.query(TelegramPost).filter(TelegramPost.channel_slug == slug).all()
    }
    for post in posts:
        row = existing.get(post.message_id)
        if row is None:
            row = TelegramPost(channel_slug=slug, message_id=post.message_id)
            db.add(row)
            existing[post.message_id] = row
        row.text = post.text
        row.published_at = _utc(post.published_at)
        row.url = post.url
    db.flush()

    cutoff = _utc(now) - timedelta(days=retention_days)
    db.query(TelegramPost).filter(
        TelegramPost.channel_slug == slug, TelegramPost.published_at < cutoff
    ).delete(synchronize_session=False)

    overflow = [
        row_id
        for (row_id,) in db.query(TelegramPost.id)
        .filter(TelegramPost.channel_slug == slug)
        .order_by(TelegramPost.published_at.desc())
        .offset(max_posts)
        .all()
    ]
    if overflow:
        db.query(TelegramPost).filter(TelegramPost.id.in_(overflow)).delete(synchronize_session=False)
    db.commit()
    return len(posts)


def store_calendar_events(db: Session, events: List[CalendarEvent]) -> int:
    """Replaces the stored window when the fetch returned events."""
    if not events:
        return 0
    db.query(CalendarEventRow).delete(synchronize_session=False)
    for event in events[:MAX_CALENDAR_EVENTS]:
        db.add(CalendarEventRow(
            title=event.title,
            start_at=_utc(event.start),
            end_at=_utc(event.end) if event.end else None,
            url=event.url,
        ))
    db.commit()
    return min(len(events), MAX_CALENDAR_EVENTS)


def store_youtube_snapshot(db: Session, metrics: ChannelMetrics, now: datetime) -> YoutubeDaily:
    """
    Appends a snapshot whose view/video deltas are computed against the
    previous snapshot and the latest ones at least 7 and 30 days old.
    """
    current = _utc(now)

    def latest_before(cutoff: Optional[datetime]):
        q = db.query(YoutubeDaily)
        if cutoff is not None:
            q = q.filter(YoutubeDaily.captured_at <= cutoff)
        return q.order_by(YoutubeDaily.captured_at.desc()).first()

    prev = latest_before(None)
    prev7 = latest_before(current - timedelta(days=7))
    prev30 = latest_before(current - timedelta(days=30))

    total = metrics.views_all_time
    views_today = max(0, total - prev.views_all_time) if prev else 0
    views_7d = max(0, total - prev7.views_all_time) if prev7 else total
    views_30d = max(0, total - prev30.views_all_time) if prev30 else total

    prev_videos = prev.videos_total if prev else 0
    baseline_videos = prev30.videos_total if prev30 else prev_videos
    new_videos_30d = max(0, metrics.videos_total - baseline_videos)

    snapshot = YoutubeDaily(
        captured_at=current,
        views_all_time=total,
        views_today=views_today,
        views_7d=views_7d,
        views_30d=views_30d,
        subscribers=metrics.subscribers,
        videos_total=metrics.videos_total,
        new_videos_30d=new_videos_30d,
    )
    db.add(snapshot)
    db.commit()
    return snapshot


# ── Latest videos (live, cached) ────────────────────────────────────────

def _video_cache_key(settings: Settings) -> str:
    return settings.youtube_source_channel_id or settings.composio_yt_channel_id or settings.youtube_source_handle or "default"


async def fetch_latest_videos_cached(settings: Settings, transport=None) -> List[VideoEntry]:
    """Live RSS fetch; falls back to the last good result while it is cached."""
    connector = get_connector("youtube", settings, transport=transport)
    key = _video_cache_key(settings)
    videos = await connector.fetch_latest_videos()
    if videos:
        cache_set(VIDEO_CACHE_NS, key, videos, settings.video_cache_ttl_seconds)
        return videos
    cached = cache_get(VIDEO_CACHE_NS, key)
    if cached:
        logger.info(f"Using cached YouTube videos ({len(cached)})")
        return list(cached)
    return []


# ── Per-source refresh ──────────────────────────────────────────────────

async def refresh_sales(session_factory, settings: Settings, now: datetime, transport=None) -> str:
    connector = get_connector("sales", settings, transport=transport)
    rows = await connector.fetch_sales_rows()
    stored = await asyncio.to_thread(_run_in_session, session_factory, store_sales_rows, rows)
    return f"ok ({stored} days)" if stored else "ok (no rows)"


async def refresh_telegram(session_factory, settings: Settings, now: datetime, transport=None) -> str:
    connector = get_connector("telegram", settings, transport=transport)
    posts = await connector.fetch_posts()
    stored = await asyncio.to_thread(
        _run_in_session,
        session_factory,
        store_telegram_posts,
        connector.slug,
        posts,
        now,
        settings.telegram_retention_days,
        settings.telegram_max_posts,
    )
    return f"ok ({stored} posts)"


async def refresh_youtube(session_factory, settings: Settings, now: datetime, transport=None) -> str:
    connector = get_connector("youtube", settings, transport=transport)
    metrics, videos = await asyncio.gather(
        connector.fetch_channel_stats(),
        fetch_latest_videos_cached(settings, transport=transport),
    )
    if metrics is None:
        return f"ok (no statistics, {len(videos)} videos)"
    await asyncio.to_thread(_run_in_session, session_factory, store_youtube_snapshot, metrics, now)
    return f"ok (snapshot, {len(videos)} videos)"


async def refresh_calendar(session_factory, settings: Settings, now: datetime, transport=None) -> str:
    connector = get_connector("calendar", settings, transport=transport)
    events = await connector.fetch_events(now)
    stored = await asyncio.to_thread(_run_in_session, session_factory, store_calendar_events, events)
    return f"ok ({stored} events)" if stored else "ok (no events)"


REFRESHERS = {
    "sales": refresh_sales,
    "telegram": refresh_telegram,
    "youtube": refresh_youtube,
    "calendar": refresh_calendar,
}


async def refresh_all(
    session_factory: Callable[[], Session] = SessionLocal,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
    transport=None,
) -> Dict[str, str]:
    """
    Runs every source refresh concurrently.

    Returns:
        {source: "ok ..." | "error: ..."}; never raises for a source failure
    """
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    timeout = settings.upstream_timeout_seconds

    names = list(REFRESHERS)
    results = await asyncio.gather(
        *(
            asyncio.wait_for(REFRESHERS[name](session_factory, settings, now, transport), timeout=timeout)
            for name in names
        ),
        return_exceptions=True,
    )

    statuses: Dict[str, str] = {}
    for name, result in zip(names, results):
        if isinstance(result, asyncio.TimeoutError):
            statuses[name] = f"error: timed out after {timeout}s"
            logger.error(f"Refresh {name} timed out after {timeout}s")
        elif isinstance(result, BaseException):
            statuses[name] = f"error: {type(result).__name__}: {result}"
            logger.error(f"Refresh {name} failed: {type(result).__name__}: {result}")
        else:
            statuses[name] = result
    logger.info(f"Refresh finished: {statuses}")
    return statuses
