"""
Insight models (dataclasses) shared by the insight pipeline.
Keeps business structures separate from transport / persistence concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

# ── Card enumerations (wire values consumed by the dashboard UI) ────────

SOURCE_SUMMARY = "summary"
SOURCE_SALES = "ebay"
SOURCE_SOCIAL = "telegram"
SOURCE_VIDEO = "youtube"
SOURCE_CALENDAR = "calendar"

CARD_SOURCES = (SOURCE_SUMMARY, SOURCE_SALES, SOURCE_SOCIAL, SOURCE_VIDEO, SOURCE_CALENDAR)
CARD_TYPES = ("money", "margin", "action", "signal", "plan", "recommendation")
CARD_PERIODS = ("today", "3d", "week", "7d", "30d", "90d", "180d")

# Priority used for selection and backfill
SOURCE_PRIORITY = (SOURCE_SALES, SOURCE_SOCIAL, SOURCE_VIDEO, SOURCE_CALENDAR)

MONEY_TYPES = ("money", "margin")


@dataclass
class DailySalesRow:
    """One calendar day of the sales ledger, amounts in cents."""
    date: str
    total_sales: int = 0
    revenue_cents: int = 0
    profit_cents: int = 0
    avg_profit_cents: int = 0


@dataclass
class BestDay:
    date: str
    revenue: float
    profit: float
    sales: int


@dataclass
class SalesSummary:
    """Rolling-window sales statistics in major currency units."""
    revenue_7d: float = 0.0
    profit_7d: float = 0.0
    sales_7d: int = 0
    revenue_prev_7d: float = 0.0
    revenue_30d: float = 0.0
    profit_30d: float = 0.0
    sales_30d: int = 0
    avg_order_value: float = 0.0
    best_day: Optional[BestDay] = None
    has_data: bool = False

    @property
    def revenue_delta_pct(self) -> Optional[float]:
        if self.revenue_prev_7d <= 0:
            return None
        return (self.revenue_7d - self.revenue_prev_7d) / self.revenue_prev_7d * 100

    def to_dict(self) -> Dict[str, Any]:
        delta = self.revenue_delta_pct
        return {
            "revenue7d": self.revenue_7d,
            "profit7d": self.profit_7d,
            "sales7d": self.sales_7d,
            "revenuePrev7d": self.revenue_prev_7d,
            "revenueDeltaPct": round(delta, 1) if delta is not None else None,
            "revenue30d": self.revenue_30d,
            "profit30d": self.profit_30d,
            "sales30d": self.sales_30d,
            "avgOrderValue": self.avg_order_value,
            "bestDay": (
                {
                    "date": self.best_day.date,
                    "revenue": self.best_day.revenue,
                    "profit": self.best_day.profit,
                    "sales": self.best_day.sales,
                }
                if self.best_day
                else None
            ),
        }


@dataclass
class SocialPost:
    message_id: str
    text: str
    published_at: datetime
    url: Optional[str] = None


@dataclass
class VideoEntry:
    title: str
    url: str
    published_at: Optional[datetime] = None
    thumbnail_url: Optional[str] = None
    video_id: Optional[str] = None


@dataclass
class CalendarEvent:
    title: str
    start: datetime
    end: Optional[datetime] = None
    url: Optional[str] = None


@dataclass
class ChannelMetrics:
    """YouTube channel snapshot; views_* are deltas against earlier snapshots."""
    views_today: int = 0
    views_7d: int = 0
    views_30d: int = 0
    views_all_time: int = 0
    subscribers: int = 0
    new_videos_30d: int = 0
    videos_total: int = 0
    updated_at: Optional[datetime] = None


@dataclass
class InputBundle:
    """Everything the insight pipeline reads from upstream, one run's worth."""
    sales_rows: List[DailySalesRow] = field(default_factory=list)
    social_posts: List[SocialPost] = field(default_factory=list)
    videos: List[VideoEntry] = field(default_factory=list)
    calendar_events: List[CalendarEvent] = field(default_factory=list)
    channel_metrics: Optional[ChannelMetrics] = None


@dataclass
class InsightCard:
    """One bounded, policy-compliant unit of advice shown on the dashboard."""
    id: str
    created_at: str
    run_date: Optional[str]
    source: str
    type: str
    period: str
    title: str
    text: str
    actions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "runDate": self.run_date,
            "source": self.source,
            "type": self.type,
            "period": self.period,
            "title": self.title,
            "text": self.text,
            "actions": list(self.actions),
        }


@dataclass
class SummaryFacts:
    """Facts the summary card may quote; metric phrases must appear verbatim."""
    has_sales_data: bool
    metric_phrases: List[str] = field(default_factory=list)


@dataclass
class InsightRunResult:
    run_date: str
    cards: List[InsightCard]
    input_hash: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "runDate": self.run_date,
            "insights": [c.to_dict() for c in self.cards],
        }
        if self.error:
            payload["error"] = self.error
        return payload
