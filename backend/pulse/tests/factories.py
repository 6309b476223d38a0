"""Test data builders shared by the test modules."""
from datetime import datetime, timedelta, timezone

from pulse.insight_models import CalendarEvent, DailySalesRow, SocialPost, VideoEntry

FIXED_NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def day(offset: int, now=FIXED_NOW) -> str:
    return (now.date() - timedelta(days=offset)).isoformat()


def make_sales_history(now=FIXED_NOW, days=14, recent_cents=12000, previous_cents=10000):
    """Ledger rows newest first; the last 7 days earn `recent_cents` a day, the 7 before `previous_cents`."""
    rows = []
    for offset in range(days):
        revenue = recent_cents if offset <= 6 else previous_cents
        rows.append(DailySalesRow(
            date=day(offset, now),
            total_sales=2,
            revenue_cents=revenue,
            profit_cents=revenue // 4,
            avg_profit_cents=revenue // 8,
        ))
    return rows


def make_posts(now=FIXED_NOW):
    return [
        SocialPost("105", "Giveaway results and the winners list", now - timedelta(hours=2)),
        SocialPost("104", "Reminder: the giveaway closes tomorrow", now - timedelta(days=1)),
        SocialPost("103", "New giveaway starts today, vintage cameras", now - timedelta(days=2)),
        SocialPost("102", "Packing orders all evening", now - timedelta(days=3)),
    ]


def make_videos(now=FIXED_NOW):
    return [
        VideoEntry("Thrift haul: March", "https://youtube.com/watch?v=a1", now - timedelta(days=1), video_id="a1"),
        VideoEntry("Pricing vintage cameras", "https://youtube.com/watch?v=a2", now - timedelta(days=4), video_id="a2"),
    ]


def make_events(now=FIXED_NOW):
    """One lesson two days ahead, 10:00-11:00 UTC."""
    start = datetime(now.year, now.month, now.day, 10, 0, tzinfo=timezone.utc) + timedelta(days=2)
    return [CalendarEvent("Spanish lesson", start, start + timedelta(hours=1))]
