"""Google Calendar connector (through the Composio tool API)."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from pulse.connectors.base import BaseConnector, ConnectorError, parse_timestamp
from pulse.connectors.composio import ComposioClient, dig
from pulse.insight_models import CalendarEvent

logger = logging.getLogger(__name__)

MAX_EVENTS = 50


def parse_calendar_items(payload: Any) -> List[CalendarEvent]:
    """Decodes the tool response variants into CalendarEvents, start ascending."""
    items = dig(payload, "data.event_data.event_data", "data.items", "data.events", "items")
    if not isinstance(items, list):
        return []
    events: List[CalendarEvent] = []
    for item in items[:MAX_EVENTS]:
        if not isinstance(item, dict):
            continue
        start = parse_timestamp(dig(item, "start.dateTime", "start.date", "start_time"))
        if start is None:
            continue
        events.append(CalendarEvent(
            title=str(item.get("summary") or item.get("title") or "Event"),
            start=start,
            end=parse_timestamp(dig(item, "end.dateTime", "end.date", "end_time")),
            url=item.get("htmlLink") or item.get("html_link"),
        ))
    return sorted(events, key=lambda e: e.start)


class CalendarConnector(BaseConnector):
    connector_type = "calendar"

    def __init__(self, settings, transport=None):
        super().__init__(settings, transport)
        self.composio = ComposioClient(
            settings.composio_api_key,
            settings.composio_calendar_account_id,
            settings.composio_calendar_entity_id,
            timeout=self.timeout,
            transport=transport,
        )

    def is_configured(self) -> bool:
        return self.composio.configured

    async def fetch_events(self, now: Optional[datetime] = None) -> List[CalendarEvent]:
        """Events from now to now + lookahead; [] when unconfigured or on failure."""
        if not self.is_configured():
            logger.info("Composio calendar not configured; skipping")
            return []
        start = now or datetime.now(timezone.utc)
        end = start + timedelta(days=self.settings.calendar_lookahead_days)
        try:
            payload = await self.composio.execute("GOOGLESUPER_FIND_EVENT", {
                "calendar_id": "primary",
                "timeMin": start.isoformat(),
                "timeMax": end.isoformat(),
                "single_events": True,
                "order_by": "startTime",
                "max_results": MAX_EVENTS,
            })
        except ConnectorError as e:
            logger.error(f"Calendar fetch failed: {e}")
            return []
        return parse_calendar_items(payload)
