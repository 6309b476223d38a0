"""
Deterministic fallback cards.

Each builder turns one slice of the input bundle into ready-to-use
InsightCards without calling the model, so the dashboard always has content
when the model or an upstream feed is down. Builders return an empty list
when their slice is empty.
"""
from __future__ import annotations

import logging
import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from pulse.card_sanitizer import sanitize_card
from pulse.config import DEFAULT_POLICY, InsightPolicy
from pulse.insight_models import (
    SOURCE_CALENDAR,
    SOURCE_PRIORITY,
    SOURCE_SALES,
    SOURCE_SOCIAL,
    SOURCE_VIDEO,
    CalendarEvent,
    InputBundle,
    InsightCard,
    SalesSummary,
    SocialPost,
    VideoEntry,
)
from pulse.sales_aggregator import format_delta_pct, format_money

logger = logging.getLogger(__name__)

STOP_WORDS = {
    # en
    "the", "a", "an", "to", "of", "in", "on", "for", "is", "are", "was", "were", "be", "as", "at",
    "from", "by", "with", "and", "or", "that", "this", "it", "its", "you", "your", "our", "we",
    "they", "them", "their", "what", "how", "when", "which", "who", "about", "into", "than",
    "then", "also", "now", "new", "just", "will", "can", "not", "but", "all", "out", "here",
    "there", "more", "has", "have", "had", "get", "got", "link", "http", "https", "www",
    # ru
    "и", "в", "во", "не", "что", "он", "на", "я", "с", "со", "как", "а", "то", "все", "она",
    "так", "его", "но", "да", "ты", "к", "у", "же", "вы", "за", "бы", "по", "только", "ее",
    "мне", "было", "вот", "от", "меня", "еще", "нет", "о", "из", "ему", "теперь", "когда",
    "уже", "для", "вам", "это", "этот", "эта", "эти", "там", "тут", "где", "есть", "был",
    "была", "были", "будет", "или", "ни", "если", "кто", "чем", "при", "про", "наш", "ваш",
    "мой", "свой", "без", "над", "под", "очень", "тоже", "также", "ссылка", "канал", "канала",
}

_TOKEN = re.compile(r"[^\W\d_][\w'-]+", re.UNICODE)

TOPIC_POSTS = 3
TOPIC_TOKENS_PER_POST = 3
VIDEO_LIST_SIZE = 3


def tokenize_text(text_value: str) -> List[str]:
    tokens = [t for t in _TOKEN.findall((text_value or "").lower()) if len(t) > 2]
    return [t for t in tokens if t not in STOP_WORDS]


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_when(value: datetime, now: datetime) -> str:
    local = as_utc(value)
    if now.tzinfo is not None:
        local = local.astimezone(now.tzinfo)
    return local.strftime("%a %d %b %H:%M")


def _card(data: dict, run_date: Optional[str], policy: InsightPolicy) -> InsightCard:
    return sanitize_card(data, run_date=run_date, policy=policy)


# ── Sales ───────────────────────────────────────────────────────────────

def sales_fallback_cards(
    summary: SalesSummary,
    run_date: Optional[str] = None,
    policy: InsightPolicy = DEFAULT_POLICY,
) -> List[InsightCard]:
    """Money, margin and action cards built from the sales summary."""
    if not summary.has_data:
        return []

    delta = summary.revenue_delta_pct
    if delta is None:
        comparison = "There were no sales in the previous 7 days to compare against."
    else:
        comparison = (
            f"7-day revenue {format_money(summary.revenue_7d)} vs "
            f"{format_money(summary.revenue_prev_7d)} the week before ({format_delta_pct(delta)})."
        )
    if summary.revenue_7d > 0:
        margin = f"{summary.profit_7d / summary.revenue_7d * 100:.0f}%"
    else:
        margin = "n/a"

    cards = [
        {
            "source": SOURCE_SALES,
            "type": "money",
            "period": "7d",
            "title": "Revenue: this week vs last week",
            "text": (
                f"{comparison} {summary.sales_7d} sales and "
                f"{format_money(summary.profit_7d)} profit in the last 7 days."
            ),
            "actions": [
                "Check which listings drove the change",
                "Compare with the same week last month",
            ],
        },
        {
            "source": SOURCE_SALES,
            "type": "margin",
            "period": "7d",
            "title": "Margin and average order (7 days)",
            "text": (
                f"Profit {format_money(summary.profit_7d)} on {format_money(summary.revenue_7d)} "
                f"revenue, margin {margin}. Average order value {format_money(summary.avg_order_value)}."
            ),
            "actions": [
                "Raise prices on the lowest-margin items",
                "Bundle slow items with best sellers",
            ],
        },
    ]

    best = summary.best_day
    if best is not None:
        cards.append({
            "source": SOURCE_SALES,
            "type": "action",
            "period": "30d",
            "title": f"Repeat your best day ({best.date})",
            "text": (
                f"Top profit day was {best.date}: {format_money(best.profit)} profit from "
                f"{best.sales} sales. Find what sold that day and list similar items."
            ),
            "actions": [
                f"Review the items sold on {best.date}",
                "List 2-3 similar items this week",
                "Match that day's pricing on new listings",
            ],
        })

    cards.extend([
        {
            "source": SOURCE_SALES,
            "type": "action",
            "period": "week",
            "title": "Refresh slow-moving listings",
            "text": (
                "Listings without a sale for 30+ days tie up cash. Refresh photos, titles "
                "and prices, or mark them down to free space for better sellers."
            ),
            "actions": [
                "Sort listings by days without a sale",
                "Update photos and titles on the oldest 5",
                "Cut price 10% on items older than 60 days",
            ],
        },
        {
            "source": SOURCE_SALES,
            "type": "action",
            "period": "week",
            "title": "Keep shipping costs in check",
            "text": (
                f"Shipping eats into the {format_money(summary.profit_7d)} weekly profit. "
                "Compare carrier rates and packaging for your most common parcel sizes."
            ),
            "actions": [
                "Compare rates for your top 3 parcel sizes",
                "Buy packaging in bulk",
            ],
        },
        {
            "source": SOURCE_SALES,
            "type": "money",
            "period": "30d",
            "title": "30-day revenue",
            "text": (
                f"Last 30 days: {format_money(summary.revenue_30d)} revenue and "
                f"{format_money(summary.profit_30d)} profit over {summary.sales_30d} sales."
            ),
            "actions": [
                "Set a revenue target for next month",
                "Track weekly progress against it",
            ],
        },
    ])
    return [_card(c, run_date, policy) for c in cards]


# ── Telegram ────────────────────────────────────────────────────────────

def find_repeated_topic(
    posts: List[SocialPost],
    now: datetime,
    window_days: int,
    min_days: int,
) -> Optional[tuple]:
    """
    Returns (token, distinct_day_count) for the token seen on the most
    distinct days inside the trailing window, if it reaches min_days.
    """
    since = as_utc(now) - timedelta(days=window_days)
    index: Dict[str, Set] = defaultdict(set)
    for post in posts:
        published = as_utc(post.published_at)
        if published < since:
            continue
        for token in set(tokenize_text(post.text)):
            index[token].add(published.date())

    candidates = [(token, len(days)) for token, days in index.items() if len(days) >= min_days]
    if not candidates:
        return None
    return sorted(candidates, key=lambda item: (-item[1], item[0]))[0]


def _topic_phrase(text_value: str) -> str:
    seen: List[str] = []
    for token in tokenize_text(text_value):
        if token not in seen:
            seen.append(token)
        if len(seen) >= TOPIC_TOKENS_PER_POST:
            break
    return " ".join(seen)


def social_fallback_cards(
    posts: List[SocialPost],
    now: datetime,
    run_date: Optional[str] = None,
    policy: InsightPolicy = DEFAULT_POLICY,
) -> List[InsightCard]:
    """One 'topics of the day' card, with a repeated-topic callout when found."""
    if not posts:
        return []
    latest = sorted(posts, key=lambda p: as_utc(p.published_at), reverse=True)
    phrases = [p for p in (_topic_phrase(post.text) for post in latest[:TOPIC_POSTS]) if p]
    repeated = find_repeated_topic(
        latest, now, policy.repeat_topic_window_days, policy.repeat_topic_min_days
    )
    if not phrases and not repeated:
        return []

    text = f"Latest posts: {'; '.join(phrases)}." if phrases else "Latest posts have little text."
    actions = ["Pin the post that got the most replies"]
    if repeated:
        token, days = repeated
        text += (
            f" \"{token}\" came up on {days} different days in the last "
            f"{policy.repeat_topic_window_days} days; it deserves a dedicated post."
        )
        actions.append(f"Plan a follow-up post on \"{token}\"")
    else:
        actions.append("Draft tomorrow's post around one of these topics")

    return [_card({
        "source": SOURCE_SOCIAL,
        "type": "signal",
        "period": "week",
        "title": "Topics of the day",
        "text": text,
        "actions": actions,
    }, run_date, policy)]


# ── YouTube ─────────────────────────────────────────────────────────────

def _video_sort_key(video: VideoEntry):
    published = as_utc(video.published_at) if video.published_at else datetime.min.replace(tzinfo=timezone.utc)
    return (-published.timestamp(), video.title)


def video_fallback_cards(
    videos: List[VideoEntry],
    now: datetime,
    run_date: Optional[str] = None,
    policy: InsightPolicy = DEFAULT_POLICY,
) -> List[InsightCard]:
    """One card recommending which of the latest videos to review first."""
    if not videos:
        return []
    ordered = sorted(videos, key=_video_sort_key)[:VIDEO_LIST_SIZE]
    first = ordered[0]
    listed = []
    for i, video in enumerate(ordered, start=1):
        when = f" ({format_when(video.published_at, now)})" if video.published_at else ""
        listed.append(f"{i}. {video.title}{when}")
    text = "Latest uploads: " + "; ".join(listed) + ". Start with the newest while it is still gathering views."
    return [_card({
        "source": SOURCE_VIDEO,
        "type": "recommendation",
        "period": "week",
        "title": f"Watch first: {first.title}",
        "text": text,
        "actions": [
            f"Watch \"{first.title}\" and note one idea",
            "Check the comments for follow-up questions",
        ],
    }, run_date, policy)]


# ── Calendar ────────────────────────────────────────────────────────────

def upcoming_events(events: List[CalendarEvent], now: datetime) -> List[CalendarEvent]:
    current = as_utc(now)
    return sorted((e for e in events if as_utc(e.start) >= current), key=lambda e: as_utc(e.start))


def calendar_fallback_cards(
    events: List[CalendarEvent],
    now: datetime,
    run_date: Optional[str] = None,
    policy: InsightPolicy = DEFAULT_POLICY,
) -> List[InsightCard]:
    """A short upcoming-schedule card; nothing when no future event exists."""
    future = upcoming_events(events, now)
    if not future:
        return []

    first = future[0]
    if len(future) >= 3:
        title = f"{len(future)} events coming up"
        text = (
            f"You have {len(future)} events ahead, starting with \"{first.title}\" on "
            f"{format_when(first.start, now)}. Block focused time around them so the rest "
            "of the week stays usable."
        )
        actions = ["Block two focus slots this week", "Set a reminder 30 minutes before each event"]
    else:
        adjacent_gap = None
        if len(future) == 2:
            second = future[1]
            first_end = as_utc(first.end) if first.end else as_utc(first.start)
            gap = (as_utc(second.start) - first_end).total_seconds() / 60
            if gap < policy.adjacent_gap_minutes:
                adjacent_gap = max(0, int(gap))
        if adjacent_gap is not None:
            second = future[1]
            title = "Leave a buffer between events"
            text = (
                f"\"{first.title}\" and \"{second.title}\" are only {adjacent_gap} minutes apart "
                f"on {format_when(first.start, now)}. Add a buffer for travel or preparation."
            )
            actions = ["Add a 15-minute buffer between them", "Prepare materials the evening before"]
        else:
            title = f"Next: {first.title}"
            text = (
                f"\"{first.title}\" starts {format_when(first.start, now)}. "
                "Prepare what you need the day before."
            )
            actions = ["Block prep time in your calendar"]

    return [_card({
        "source": SOURCE_CALENDAR,
        "type": "plan",
        "period": "week",
        "title": title,
        "text": text,
        "actions": actions,
    }, run_date, policy)]


# ── Pool ────────────────────────────────────────────────────────────────

def build_fallback_pool(
    bundle: InputBundle,
    summary: SalesSummary,
    now: datetime,
    run_date: Optional[str] = None,
    policy: InsightPolicy = DEFAULT_POLICY,
) -> Dict[str, List[InsightCard]]:
    """Fallback cards for every source, keyed by card source."""
    pool = {
        SOURCE_SALES: sales_fallback_cards(summary, run_date, policy),
        SOURCE_SOCIAL: social_fallback_cards(bundle.social_posts, now, run_date, policy),
        SOURCE_VIDEO: video_fallback_cards(bundle.videos, now, run_date, policy),
        SOURCE_CALENDAR: calendar_fallback_cards(bundle.calendar_events, now, run_date, policy),
    }
    sizes = {source: len(pool[source]) for source in SOURCE_PRIORITY}
    logger.debug(f"Fallback pool sizes: {sizes}")
    return pool
