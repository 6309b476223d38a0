"""Public Telegram channel connector (t.me/s/<slug> web preview)."""
from __future__ import annotations

import html
import logging
import re
from typing import List, Optional

from pulse.connectors.base import BaseConnector, ConnectorError, parse_timestamp
from pulse.insight_models import SocialPost

logger = logging.getLogger(__name__)

EMPTY_POST_TEXT = "(no text)"

_POST_START = re.compile(r'data-post="[^/"]+/(\d+)"')
_DATETIME = re.compile(r'datetime="([^"]+)"')
_MESSAGE_TEXT = re.compile(r'class="tgme_widget_message_text[^"]*"[^>]*>([\s\S]*?)</div>')
_BR = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_SPACES = re.compile(r"[ \t\r\f\v]+")


def _message_text(raw: str) -> str:
    text = _BR.sub("\n", raw)
    text = html.unescape(_TAG.sub(" ", text))
    lines = [_SPACES.sub(" ", line).strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line)


def parse_telegram_posts(page: str, slug: str, limit: Optional[int] = None) -> List[SocialPost]:
    """Posts found in a channel preview page, in page order."""
    page = page or ""
    starts = list(_POST_START.finditer(page))
    posts: List[SocialPost] = []
    for i, match in enumerate(starts):
        # Each message block runs until the next data-post attribute
        end = starts[i + 1].start() if i + 1 < len(starts) else len(page)
        block = page[match.end():end]
        message_id = match.group(1)
        stamp_match = _DATETIME.search(block)
        text_match = _MESSAGE_TEXT.search(block)
        stamp = stamp_match.group(1) if stamp_match else ""
        raw_text = text_match.group(1) if text_match else ""
        published = parse_timestamp(stamp)
        if published is None:
            logger.debug(f"Skipping Telegram post {message_id} with bad datetime {stamp!r}")
            continue
        posts.append(SocialPost(
            message_id=message_id,
            text=_message_text(raw_text) or EMPTY_POST_TEXT,
            published_at=published,
            url=f"https://t.me/{slug}/{message_id}",
        ))
        if limit is not None and len(posts) >= limit:
            break
    return posts


class TelegramConnector(BaseConnector):
    connector_type = "telegram"

    def __init__(self, settings, transport=None):
        super().__init__(settings, transport)
        self.slug = settings.telegram_channel_slug.lstrip("@")

    def is_configured(self) -> bool:
        return bool(self.slug)

    async def fetch_posts(self) -> List[SocialPost]:
        if not self.is_configured():
            return []
        try:
            resp = await self._request("GET", f"https://t.me/s/{self.slug}")
        except ConnectorError as e:
            logger.error(f"Telegram fetch failed: {e}")
            return []
        posts = parse_telegram_posts(resp.text, self.slug, self.settings.telegram_max_posts)
        logger.info(f"Fetched {len(posts)} Telegram post(s) from {self.slug}")
        return posts
