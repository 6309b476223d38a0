"""
Base connector interface.
Every upstream source connector inherits from this class.

Connectors raise ConnectorError internally; their public fetch_* methods
catch it, log, and return an empty result so the callers only ever see
canonical records or nothing.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"user-agent": "Mozilla/5.0 (compatible; PulseDashboard/1.0)"}


class ConnectorError(Exception):
    """Upstream request failed: network error, non-2xx status or unusable body."""


async def http_request(
    method: str,
    url: str,
    *,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs: Any,
) -> httpx.Response:
    headers = {**DEFAULT_HEADERS, **(kwargs.pop("headers", None) or {})}
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
            resp = await client.request(method, url, headers=headers, **kwargs)
    except httpx.HTTPError as e:
        raise ConnectorError(f"{method} {url} failed: {type(e).__name__}: {e}") from e
    if resp.status_code >= 400:
        raise ConnectorError(f"{method} {url} returned {resp.status_code}: {resp.text[:300]}")
    return resp


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string (date or datetime, 'Z' suffix allowed) to an aware UTC datetime."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class BaseConnector(ABC):
    """Abstract base class for all upstream connectors."""

    connector_type: str = "unknown"

    def __init__(self, settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport
        self.timeout = settings.upstream_timeout_seconds

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await http_request(method, url, timeout=self.timeout, transport=self.transport, **kwargs)

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the settings carry everything the connector needs."""
        ...
