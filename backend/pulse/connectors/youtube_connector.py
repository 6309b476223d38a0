"""YouTube connector: latest uploads via the channel RSS feed, statistics via Composio."""
from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, List, Optional

from pulse.connectors.base import BaseConnector, ConnectorError, parse_timestamp
from pulse.connectors.composio import ComposioClient, dig
from pulse.insight_models import ChannelMetrics, VideoEntry

logger = logging.getLogger(__name__)

RSS_URL = "https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}"
LATEST_VIDEOS = 3

_NS = {
    "atom": "http://www.w3.org/2005/Atom",
    "yt": "http://www.youtube.com/xml/schemas/2015",
    "media": "http://search.yahoo.com/mrss/",
}

_CHANNEL_ID_PATTERNS = (
    re.compile(r'"channelId":"(UC[^"]+)"'),
    re.compile(r'href="/channel/(UC[^"/?]+)"'),
    re.compile(r'data-channel-external-id="(UC[^"]+)"'),
)


def parse_rss(xml_text: str, limit: int = LATEST_VIDEOS) -> List[VideoEntry]:
    """Video entries from a channel Atom feed, feed order. Raises ET.ParseError on bad XML."""
    root = ET.fromstring(xml_text)
    videos: List[VideoEntry] = []
    for entry in root.findall("atom:entry", _NS):
        if len(videos) >= limit:
            break
        link = entry.find("atom:link", _NS)
        thumb = entry.find("media:group/media:thumbnail", _NS)
        videos.append(VideoEntry(
            title=(entry.findtext("atom:title", default="", namespaces=_NS) or "").strip() or "Video",
            url=link.get("href", "") if link is not None else "",
            published_at=parse_timestamp(entry.findtext("atom:published", default="", namespaces=_NS)),
            thumbnail_url=thumb.get("url") if thumb is not None else None,
            video_id=entry.findtext("yt:videoId", default=None, namespaces=_NS),
        ))
    return videos


def extract_channel_id(page: str) -> Optional[str]:
    for pattern in _CHANNEL_ID_PATTERNS:
        m = pattern.search(page or "")
        if m:
            return m.group(1)
    return None


def _to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class YouTubeConnector(BaseConnector):
    connector_type = "youtube"

    def __init__(self, settings, transport=None):
        super().__init__(settings, transport)
        self.composio = ComposioClient(
            settings.composio_api_key,
            settings.composio_yt_account_id,
            settings.composio_yt_entity_id,
            timeout=self.timeout,
            transport=transport,
        )

    def is_configured(self) -> bool:
        s = self.settings
        return bool(s.youtube_source_channel_id or s.composio_yt_channel_id or s.youtube_source_handle)

    # ── Latest uploads ──────────────────────────────────────────────────

    async def resolve_source_channel_id(self) -> Optional[str]:
        s = self.settings
        if s.youtube_source_channel_id or s.composio_yt_channel_id:
            return s.youtube_source_channel_id or s.composio_yt_channel_id
        if not s.youtube_source_handle:
            return None
        handle = s.youtube_source_handle.lstrip("@")
        resp = await self._request("GET", f"https://www.youtube.com/@{handle}")
        return extract_channel_id(resp.text)

    async def fetch_latest_videos(self, limit: int = LATEST_VIDEOS) -> List[VideoEntry]:
        if not self.is_configured():
            return []
        try:
            channel_id = await self.resolve_source_channel_id()
            if not channel_id:
                logger.warning("Could not resolve YouTube channel id for the RSS feed")
                return []
            resp = await self._request("GET", RSS_URL.format(channel_id=channel_id))
            return parse_rss(resp.text, limit)
        except (ConnectorError, ET.ParseError) as e:
            logger.error(f"YouTube RSS fetch failed: {e}")
            return []

    # ── Channel statistics ──────────────────────────────────────────────

    async def _resolve_stats_channel_id(self) -> Optional[str]:
        handle = (self.settings.composio_yt_channel_handle or "").lstrip("@")
        if handle:
            for candidate in (f"@{handle}", handle):
                try:
                    resp = await self.composio.execute(
                        "YOUTUBE_GET_CHANNEL_ID_BY_HANDLE", {"channel_handle": candidate}
                    )
                except ConnectorError as e:
                    logger.warning(f"Handle lookup for {candidate} failed: {e}")
                    continue
                found = dig(resp, "data.id", "data.channelId", "data.channel_id", "data.items.0.id", "data.items.0.channelId")
                if isinstance(found, str) and found:
                    return found
        return self.settings.composio_yt_channel_id or None

    async def fetch_channel_stats(self) -> Optional[ChannelMetrics]:
        """Totals only (views, subscribers, videos); deltas are computed on refresh."""
        if not self.composio.configured:
            logger.info("Composio YouTube not configured; skipping channel statistics")
            return None
        try:
            channel_id = await self._resolve_stats_channel_id()
            if not channel_id:
                return None
            resp = await self.composio.execute(
                "YOUTUBE_GET_CHANNEL_STATISTICS", {"id": channel_id, "part": "statistics"}
            )
            stats = dig(resp, "data.items.0.statistics", "data.channels.0.statistics")
            if not stats:
                alt = await self.composio.execute(
                    "YOUTUBE_GET_CHANNEL_STATISTICS", {"channelId": channel_id, "part": "statistics"}
                )
                stats = dig(alt, "data.items.0.statistics")
        except ConnectorError as e:
            logger.error(f"YouTube statistics fetch failed: {e}")
            return None
        if not isinstance(stats, dict):
            logger.warning("YouTube statistics response had no statistics block")
            return None
        return ChannelMetrics(
            views_all_time=_to_int(stats.get("viewCount")),
            subscribers=_to_int(stats.get("subscriberCount")),
            videos_total=_to_int(stats.get("videoCount")),
        )
