"""
Dashboard payload for GET /api/dashboard.

Read-only view over the stored snapshots. When the store holds no YouTube,
sales or Telegram data at all the demo payload is returned so the UI always
has something to render.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from pulse.collector import read_calendar_events
from pulse.config import Settings
from pulse.insight_models import VideoEntry
from pulse.models import SalesDaily, TelegramPost, YoutubeDaily
from pulse.sales_aggregator import cents_to_major

logger = logging.getLogger(__name__)

DASHBOARD_POSTS = 3
DASHBOARD_EVENTS = 5
SALES_CHART_DAYS = 30
YOUTUBE_CHART_POINTS = 30


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def video_to_dict(video: VideoEntry) -> Dict[str, Any]:
    return {
        "title": video.title,
        "url": video.url,
        "publishedAt": _iso(video.published_at),
        "thumbnailUrl": video.thumbnail_url,
        "videoId": video.video_id,
    }


def build_demo_payload(now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    return {
        "updatedAt": now.isoformat(),
        "demo": True,
        "telegram": {
            "channel": "my_channel",
            "posts": [
                {"messageId": "451", "text": "New video is out! Link in the channel description", "publishedAt": "2025-03-15T07:10:00Z", "url": None},
                {"messageId": "448", "text": "Weekly digest: the best moments of the week", "publishedAt": "2025-03-14T12:05:00Z", "url": None},
                {"messageId": "443", "text": "Behind the scenes from yesterday's shoot", "publishedAt": "2025-03-12T18:45:00Z", "url": None},
            ],
        },
        "youtube": {
            "metrics": {
                "viewsToday": 1234,
                "views7d": 8567,
                "views30d": 32450,
                "allTimeViews": 1200000,
                "newVideos30d": 4,
                "subscribers": 182000,
            },
            "chart": {
                "granularity": "month",
                "points": [
                    {"label": "Oct", "views": 12000},
                    {"label": "Nov", "views": 18000},
                    {"label": "Dec", "views": 15000},
                    {"label": "Jan", "views": 22000},
                    {"label": "Feb", "views": 28000},
                    {"label": "Mar", "views": 32450},
                ],
            },
            "topVideo": None,
            "latestVideos": [
                {
                    "title": "Travel guide: hidden gems in the city",
                    "url": "https://youtube.com/watch?v=demo1",
                    "publishedAt": "2025-03-15T10:00:00Z",
                    "thumbnailUrl": "https://i.ytimg.com/vi/demo1/hqdefault.jpg",
                    "videoId": "demo1",
                },
                {
                    "title": "Weekend getaway highlights",
                    "url": "https://youtube.com/watch?v=demo2",
                    "publishedAt": "2025-03-14T08:30:00Z",
                    "thumbnailUrl": "https://i.ytimg.com/vi/demo2/hqdefault.jpg",
                    "videoId": "demo2",
                },
            ],
        },
        "sales": {
            "metrics": {"totalSales": 147, "totalRevenue": 3680.0, "totalProfit": 1240.0, "avgProfit": 8.44},
            "chart": {
                "granularity": "month",
                "points": [
                    {"label": "Oct", "revenue": 320},
                    {"label": "Nov", "revenue": 480},
                    {"label": "Dec", "revenue": 720},
                    {"label": "Jan", "revenue": 580},
                    {"label": "Feb", "revenue": 890},
                    {"label": "Mar", "revenue": 710},
                ],
            },
        },
        "calendar": [],
    }


def _sales_section(rows: List[SalesDaily]) -> Dict[str, Any]:
    if not rows:
        return {
            "metrics": {"totalSales": 0, "totalRevenue": 0.0, "totalProfit": 0.0, "avgProfit": 0.0},
            "chart": {"granularity": "day", "points": []},
        }
    total_sales = sum(r.total_sales or 0 for r in rows)
    revenue = cents_to_major(sum(r.revenue_cents or 0 for r in rows))
    profit = cents_to_major(sum(r.profit_cents or 0 for r in rows))
    return {
        "metrics": {
            "totalSales": total_sales,
            "totalRevenue": revenue,
            "totalProfit": profit,
            "avgProfit": round(profit / total_sales, 2) if total_sales else 0.0,
        },
        "chart": {
            "granularity": "day",
            "points": [
                {"label": r.date, "revenue": cents_to_major(r.revenue_cents or 0)}
                for r in reversed(rows)
            ],
        },
    }


def _youtube_section(snapshots: List[YoutubeDaily], videos: List[VideoEntry], demo: Dict[str, Any]) -> Dict[str, Any]:
    latest = snapshots[0] if snapshots else None
    if latest is not None:
        metrics = {
            "viewsToday": latest.views_today or 0,
            "views7d": latest.views_7d or 0,
            "views30d": latest.views_30d or 0,
            "allTimeViews": latest.views_all_time or 0,
            "newVideos30d": latest.new_videos_30d or 0,
            "subscribers": latest.subscribers or 0,
        }
    else:
        metrics = demo["youtube"]["metrics"]

    if len(snapshots) >= 2:
        chart = {
            "granularity": "day",
            "points": [
                {"label": _iso(s.captured_at)[:10], "views": s.views_today or 0}
                for s in reversed(snapshots)
            ],
        }
    else:
        chart = demo["youtube"]["chart"]

    latest_videos = [video_to_dict(v) for v in videos] or demo["youtube"]["latestVideos"]
    return {
        "metrics": metrics,
        "chart": chart,
        "topVideo": latest_videos[0] if videos else None,
        "latestVideos": latest_videos,
    }


def build_dashboard_payload(
    db: Session,
    settings: Settings,
    videos: List[VideoEntry],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    slug = settings.telegram_channel_slug.lstrip("@")
    demo = build_demo_payload(now)

    snapshots = (
        db.query(YoutubeDaily).order_by(YoutubeDaily.captured_at.desc()).limit(YOUTUBE_CHART_POINTS).all()
    )
    sales_rows = db.query(SalesDaily).order_by(SalesDaily.date.desc()).limit(SALES_CHART_DAYS).all()
    posts = (
        db.query(TelegramPost)
        .filter(TelegramPost.channel_slug == slug)
        .order_by(TelegramPost.published_at.desc())
        .limit(DASHBOARD_POSTS)
        .all()
    )

    if not snapshots and not sales_rows and not posts:
        logger.info("No stored dashboard data; serving demo payload")
        return demo

    events = read_calendar_events(db, now, limit=DASHBOARD_EVENTS)
    return {
        "updatedAt": now.isoformat(),
        "telegram": {
            "channel": slug,
            "posts": [
                {"messageId": p.message_id, "text": p.text, "publishedAt": _iso(p.published_at), "url": p.url}
                for p in posts
            ] or demo["telegram"]["posts"],
        },
        "youtube": _youtube_section(snapshots, videos, demo),
        "sales": _sales_section(sales_rows),
        "calendar": [
            {"title": e.title, "start": _iso(e.start), "end": _iso(e.end), "url": e.url}
            for e in events
        ],
    }
