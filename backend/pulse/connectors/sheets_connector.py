"""Google Sheets sales ledger connector."""
from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import date
from typing import Any, List, Sequence

import pandas as pd

from pulse.connectors.base import BaseConnector
from pulse.insight_models import DailySalesRow

logger = logging.getLogger(__name__)

# Ledger columns (0-based): date, ..., price, profit, status
COL_DATE = 0
COL_PRICE = 3
COL_PROFIT = 4
COL_STATUS = 5

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def money_to_cents(value: Any) -> int:
    """'$1 234,50' / '12.5' / 'USD 7' -> cents; anything unparseable is 0."""
    cleaned = str(value if value is not None else "").replace(",", ".")
    cleaned = re.sub(r"\s+", "", cleaned)
    cleaned = re.sub(r"[^0-9.\-]", "", cleaned)
    try:
        return int(round(float(cleaned) * 100))
    except ValueError:
        return 0


def _is_iso_date(value: str) -> bool:
    if not _ISO_DATE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_sales_ledger(values: Sequence[Any]) -> List[DailySalesRow]:
    """
    Aggregates raw sheet rows into one DailySalesRow per date, oldest first.

    A row counts as a sale when its status cell is non-empty and its date
    cell is a valid YYYY-MM-DD date; header and malformed rows are skipped.
    """
    records = []
    for row in values or []:
        if not isinstance(row, (list, tuple)):
            continue
        cells = list(row) + [""] * (COL_STATUS + 1 - len(row))
        day = str(cells[COL_DATE] or "").strip()
        status = str(cells[COL_STATUS] or "").strip()
        if not status or not _is_iso_date(day):
            continue
        records.append({
            "date": day,
            "revenue_cents": money_to_cents(cells[COL_PRICE]),
            "profit_cents": money_to_cents(cells[COL_PROFIT]),
        })

    if not records:
        return []

    df = pd.DataFrame(records)
    grouped = (
        df.groupby("date")
        .agg(
            total_sales=("revenue_cents", "size"),
            revenue_cents=("revenue_cents", "sum"),
            profit_cents=("profit_cents", "sum"),
        )
        .reset_index()
        .sort_values("date")
    )
    rows = []
    for rec in grouped.itertuples(index=False):
        total = int(rec.total_sales)
        profit = int(rec.profit_cents)
        rows.append(DailySalesRow(
            date=rec.date,
            total_sales=total,
            revenue_cents=int(rec.revenue_cents),
            profit_cents=profit,
            avg_profit_cents=int(round(profit / total)) if total else 0,
        ))
    return rows


class SheetsSalesConnector(BaseConnector):
    connector_type = "sales"

    def __init__(self, settings, transport=None):
        super().__init__(settings, transport)
        self.spreadsheet_id = settings.sales_sheet_id
        self.sheet_range = settings.sales_sheet_range
        self.credentials_json = settings.google_sheets_credentials_json

    def is_configured(self) -> bool:
        return bool(self.spreadsheet_id)

    def _get_client(self):
        import gspread

        if self.credentials_json:
            from google.oauth2.service_account import Credentials
            creds_data = json.loads(self.credentials_json)
            creds = Credentials.from_service_account_info(
                creds_data,
                scopes=["https://www.googleapis.com/auth/spreadsheets.readonly"],
            )
            return gspread.authorize(creds)
        # Public sheet via anonymous access
        return gspread.Client(auth=None)

    def _read_values(self) -> List[Any]:
        gc = self._get_client()
        if self.spreadsheet_id.startswith("http"):
            sheet = gc.open_by_url(self.spreadsheet_id)
        else:
            sheet = gc.open_by_key(self.spreadsheet_id)
        return sheet.values_get(self.sheet_range).get("values", [])

    async def fetch_sales_rows(self) -> List[DailySalesRow]:
        """Daily rows from the ledger; [] when unconfigured or on any failure."""
        if not self.is_configured():
            logger.info("Sales sheet not configured; skipping")
            return []
        try:
            values = await asyncio.to_thread(self._read_values)
        except Exception as e:
            logger.error(f"Sales sheet fetch failed: {type(e).__name__}: {e}")
            return []
        rows = parse_sales_ledger(values)
        if not rows:
            logger.warning(f"Sales sheet returned no valid rows ({len(values)} raw rows)")
        return rows
