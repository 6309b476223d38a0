import random
from datetime import timedelta

import pytest

from pulse.insight_models import DailySalesRow
from pulse.sales_aggregator import cents_to_major, format_delta_pct, format_money, summarize_sales
from pulse.tests.factories import FIXED_NOW, day, make_sales_history


def test_window_sums_and_delta():
    summary = summarize_sales(make_sales_history(), FIXED_NOW)

    assert summary.has_data is True
    assert summary.revenue_7d == 840.0
    assert summary.revenue_prev_7d == 700.0
    assert summary.revenue_30d == 1540.0
    assert summary.profit_7d == 210.0
    assert summary.sales_7d == 14
    assert summary.sales_30d == 28
    assert summary.revenue_delta_pct == pytest.approx(20.0)
    assert format_delta_pct(summary.revenue_delta_pct) == "+20%"


def test_summary_does_not_depend_on_row_order():
    rows = make_sales_history()
    shuffled = list(rows)
    random.Random(7).shuffle(shuffled)

    assert summarize_sales(rows, FIXED_NOW) == summarize_sales(list(reversed(rows)), FIXED_NOW)
    assert summarize_sales(rows, FIXED_NOW) == summarize_sales(shuffled, FIXED_NOW)


def test_empty_history_is_all_zero():
    summary = summarize_sales([], FIXED_NOW)
    assert summary.has_data is False
    assert summary.revenue_7d == 0
    assert summary.revenue_30d == 0
    assert summary.best_day is None
    assert summary.revenue_delta_pct is None


def test_average_order_value_from_last_seven_days():
    summary = summarize_sales(make_sales_history(), FIXED_NOW)
    # 840.00 over 14 orders
    assert summary.avg_order_value == 60.0


def test_average_order_value_falls_back_to_latest_row_when_week_is_empty():
    rows = [
        DailySalesRow(day(20), total_sales=1, revenue_cents=5000, profit_cents=1000, avg_profit_cents=1000),
        DailySalesRow(day(25), total_sales=1, revenue_cents=4000, profit_cents=800, avg_profit_cents=800),
    ]
    summary = summarize_sales(rows, FIXED_NOW)
    assert summary.sales_7d == 0
    assert summary.avg_order_value == 10.0
    assert summary.revenue_delta_pct is None


def test_best_day_is_highest_profit_and_latest_on_ties():
    rows = [
        DailySalesRow(day(1), total_sales=3, revenue_cents=9000, profit_cents=3000),
        DailySalesRow(day(4), total_sales=1, revenue_cents=9000, profit_cents=3000),
        DailySalesRow(day(2), total_sales=1, revenue_cents=2000, profit_cents=500),
    ]
    best = summarize_sales(rows, FIXED_NOW).best_day
    assert best.date == day(1)
    assert best.profit == 30.0
    assert best.sales == 3


def test_future_rows_and_bad_dates_are_ignored():
    rows = make_sales_history()
    future = (FIXED_NOW.date() + timedelta(days=1)).isoformat()
    rows.append(DailySalesRow(future, total_sales=50, revenue_cents=999999, profit_cents=1))
    rows.append(DailySalesRow("not-a-date", total_sales=5, revenue_cents=5000, profit_cents=100))

    summary = summarize_sales(rows, FIXED_NOW)
    assert summary.revenue_7d == 840.0
    assert summary.sales_30d == 28


def test_money_helpers():
    assert cents_to_major(123456) == 1234.56
    assert format_money(1234.5) == "$1,234.50"
    assert format_delta_pct(-3.4) == "-3%"
    assert format_delta_pct(None) == "n/a"
