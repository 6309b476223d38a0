"""
Insight store: persists one card set per run date with full-replace semantics
and reads back the newest complete run.
"""

import json
import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pulse.insight_models import InsightCard, InsightRunResult
from pulse.models import InsightCardRow

logger = logging.getLogger(__name__)

_run_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
_run_locks_guard = threading.Lock()


def _lock_for(run_date: str) -> threading.Lock:
    with _run_locks_guard:
        return _run_locks[run_date]


def compute_run_date(timezone_name: str = "UTC", now: Optional[datetime] = None) -> str:
    """Calendar date of `now` in the reporting timezone (UTC when unknown)."""
    try:
        tz = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown REPORT_TIMEZONE '{timezone_name}'; using UTC")
        tz = timezone.utc
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(tz).date().isoformat()


# ── Row mapping ─────────────────────────────────────────────────────────

def _card_to_row(card: InsightCard, run_date: str, position: int, input_hash: str) -> InsightCardRow:
    return InsightCardRow(
        id=card.id,
        created_at=card.created_at,
        run_date=run_date,
        position=position,
        source=card.source,
        type=card.type,
        period=card.period,
        title=card.title,
        text=card.text,
        actions=json.dumps(card.actions, ensure_ascii=False) if card.actions else None,
        input_hash=input_hash or None,
    )


def _row_to_card(row: InsightCardRow) -> InsightCard:
    actions: List[str] = []
    if row.actions:
        try:
            decoded = json.loads(row.actions)
        except json.JSONDecodeError:
            logger.warning(f"Stored actions for card {row.id} are not valid JSON")
            decoded = []
        actions = [a for a in decoded if isinstance(a, str)] if isinstance(decoded, list) else []
    return InsightCard(
        id=row.id,
        created_at=row.created_at,
        run_date=row.run_date,
        source=row.source,
        type=row.type,
        period=row.period,
        title=row.title,
        text=row.text or "",
        actions=actions,
    )


# ── Public API ──────────────────────────────────────────────────────────

def replace_run(db: Session, result: InsightRunResult) -> bool:
    """
    Deletes every card stored for result.run_date and inserts result.cards in
    order, in one transaction. Best-effort: returns False on failure.
    """
    with _lock_for(result.run_date):
        try:
            db.query(InsightCardRow).filter(InsightCardRow.run_date == result.run_date).delete(
                synchronize_session="fetch"
            )
            for position, card in enumerate(result.cards):
                db.add(_card_to_row(card, result.run_date, position, result.input_hash))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to store insights for {result.run_date}: {e}")
            return False
    logger.info(f"Stored {len(result.cards)} insight card(s) for {result.run_date}")
    return True


def fetch_latest_run(db: Session) -> Optional[InsightRunResult]:
    """Newest run date with all of its cards, or None when nothing is readable."""
    try:
        latest = db.query(func.max(InsightCardRow.run_date)).scalar()
        if not latest:
            return None
        rows = (
            db.query(InsightCardRow)
            .filter(InsightCardRow.run_date == latest)
            .order_by(InsightCardRow.position.asc(), InsightCardRow.created_at.asc())
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to read latest insights: {e}")
        return None
    if not rows:
        return None
    return InsightRunResult(
        run_date=latest,
        cards=[_row_to_card(row) for row in rows],
        input_hash=rows[0].input_hash or "",
    )
