"""
Rolling-window statistics over the daily sales ledger.

Windows are anchored at the UTC calendar date of `now`:
last 7 days (offset 0-6), previous 7 days (7-13) and last 30 days (0-29).
Rows dated after `now` fall outside every window.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from pulse.insight_models import BestDay, DailySalesRow, SalesSummary

logger = logging.getLogger(__name__)


def cents_to_major(cents: int) -> float:
    return round((cents or 0) / 100, 2)


def _utc_today(now: datetime) -> date:
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(timezone.utc).date()


def _parse_row_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def summarize_sales(rows: Iterable[DailySalesRow], now: datetime) -> SalesSummary:
    """
    Builds a SalesSummary from ledger rows in any order.

    Args:
        rows: daily ledger rows (most-recent-first, oldest-first or shuffled)
        now: reference clock; naive values are treated as UTC

    Returns:
        SalesSummary; all zeros and no best day for an empty ledger
    """
    dated: List[tuple] = []
    for row in rows:
        row_date = _parse_row_date(row.date)
        if row_date is None:
            logger.warning(f"Skipping sales row with malformed date {row.date!r}")
            continue
        dated.append((row_date, row))

    if not dated:
        return SalesSummary()

    today = _utc_today(now)
    rev_7 = prof_7 = cnt_7 = 0
    rev_prev = 0
    rev_30 = prof_30 = cnt_30 = 0

    for row_date, row in dated:
        offset = (today - row_date).days
        if offset < 0:
            continue
        if offset <= 6:
            rev_7 += row.revenue_cents
            prof_7 += row.profit_cents
            cnt_7 += row.total_sales
        elif offset <= 13:
            rev_prev += row.revenue_cents
        if offset <= 29:
            rev_30 += row.revenue_cents
            prof_30 += row.profit_cents
            cnt_30 += row.total_sales

    if cnt_7 > 0:
        avg_order_value = round(rev_7 / cnt_7 / 100, 2)
    else:
        _, latest = max(dated, key=lambda item: item[0])
        avg_order_value = cents_to_major(latest.avg_profit_cents)

    # Ties go to the later date so the result does not depend on row order
    best_date, best_row = max(dated, key=lambda item: (item[1].profit_cents, item[0]))
    best_day = BestDay(
        date=best_date.isoformat(),
        revenue=cents_to_major(best_row.revenue_cents),
        profit=cents_to_major(best_row.profit_cents),
        sales=best_row.total_sales,
    )

    return SalesSummary(
        revenue_7d=cents_to_major(rev_7),
        profit_7d=cents_to_major(prof_7),
        sales_7d=cnt_7,
        revenue_prev_7d=cents_to_major(rev_prev),
        revenue_30d=cents_to_major(rev_30),
        profit_30d=cents_to_major(prof_30),
        sales_30d=cnt_30,
        avg_order_value=avg_order_value,
        best_day=best_day,
        has_data=True,
    )


def format_money(value: float) -> str:
    return f"${value:,.2f}"


def format_delta_pct(delta: Optional[float]) -> str:
    """Signed whole-percent string, e.g. '+20%' or '-3%'."""
    if delta is None:
        return "n/a"
    return f"{delta:+.0f}%"
