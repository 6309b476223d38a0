"""
All SQLAlchemy models in a single module.
Imported by the store, refresh and dashboard services; avoids circular dependencies.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, Index, UniqueConstraint
from sqlalchemy.types import BigInteger, DateTime, Integer, String, Text

from pulse.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid_hex() -> str:
    return uuid4().hex


# ── Upstream snapshots ──────────────────────────────────────────────────

class SalesDaily(Base):
    __tablename__ = "sales_daily"
    date = Column(String(10), primary_key=True)
    total_sales = Column(Integer, nullable=False, default=0)
    revenue_cents = Column(BigInteger, nullable=False, default=0)
    profit_cents = Column(BigInteger, nullable=False, default=0)
    avg_profit_cents = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class TelegramPost(Base):
    __tablename__ = "telegram_posts"
    __table_args__ = (UniqueConstraint("channel_slug", "message_id", name="uq_telegram_channel_message"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_slug = Column(String, nullable=False, index=True)
    message_id = Column(String, nullable=False)
    text = Column(Text, nullable=False, default="")
    published_at = Column(DateTime(timezone=True), nullable=False, index=True)
    url = Column(String, nullable=True)
    fetched_at = Column(DateTime(timezone=True), default=_utcnow)


class CalendarEventRow(Base):
    __tablename__ = "calendar_events"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False, index=True)
    end_at = Column(DateTime(timezone=True), nullable=True)
    url = Column(String, nullable=True)
    fetched_at = Column(DateTime(timezone=True), default=_utcnow)


class YoutubeDaily(Base):
    __tablename__ = "youtube_daily"
    id = Column(Integer, primary_key=True, autoincrement=True)
    captured_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    views_all_time = Column(BigInteger, nullable=False, default=0)
    views_today = Column(BigInteger, nullable=False, default=0)
    views_7d = Column(BigInteger, nullable=False, default=0)
    views_30d = Column(BigInteger, nullable=False, default=0)
    subscribers = Column(BigInteger, nullable=False, default=0)
    videos_total = Column(Integer, nullable=False, default=0)
    new_videos_30d = Column(Integer, nullable=False, default=0)


# ── Insights ────────────────────────────────────────────────────────────

class InsightCardRow(Base):
    __tablename__ = "insight_cards"
    id = Column(String, primary_key=True, default=_uuid_hex)
    created_at = Column(String, nullable=False)
    run_date = Column(String(10), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    source = Column(String, nullable=False)
    type = Column(String, nullable=False)
    period = Column(String, nullable=False)
    title = Column(String, nullable=False)
    text = Column(Text, nullable=False, default="")
    actions = Column(Text, nullable=True)
    input_hash = Column(String, nullable=True)


Index("idx_insight_cards_run_position", InsightCardRow.run_date, InsightCardRow.position)
