"""
Card sanitizer: coerces untrusted card-shaped objects into valid InsightCards.

Used for model output and for hand-built fallback cards alike. Nothing in
this module raises on bad input; malformed fields fall back to defaults.
"""
from __future__ import annotations

import html
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, List, Optional
from uuid import uuid4

from pulse.config import DEFAULT_POLICY, InsightPolicy
from pulse.insight_models import (
    CARD_PERIODS,
    CARD_SOURCES,
    CARD_TYPES,
    SOURCE_SALES,
    SOURCE_SUMMARY,
    InsightCard,
)

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = SOURCE_SALES
DEFAULT_TYPE = "action"
DEFAULT_PERIOD = "7d"
DEFAULT_TITLE = "Insight"
ELLIPSIS = "…"

SOURCE_ALIASES = {
    "aggregate-summary": "summary",
    "aggregate_summary": "summary",
    "sales": "ebay",
    "social": "telegram",
    "video": "youtube",
    "videos": "youtube",
}

PERIOD_ALIASES = {
    "3-day": "3d",
    "7-day": "7d",
    "30-day": "30d",
    "90-day": "90d",
    "180-day": "180d",
}

_MD_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_MD_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_MD_BOLD = re.compile(r"(\*\*|__)(?=\S)(.+?)(?<=\S)\1")
_MD_ITALIC_STAR = re.compile(r"\*(?=\S)([^*\n]+?)(?<=\S)\*")
_MD_ITALIC_UNDERSCORE = re.compile(r"(?<!\w)_(?=\S)([^_\n]+?)(?<=\S)_(?!\w)")
_MD_STRIKE = re.compile(r"~~(?=\S)(.+?)(?<=\S)~~")
_MD_CODE = re.compile(r"`+([^`]*)`+")
_MD_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+", re.MULTILINE)
_HTML_TAG = re.compile(r"<[^>]+>")
_EMOJI = re.compile(
    "["
    "\U0001F000-\U0001FAFF"
    "\U00002600-\U000027BF"
    "\U00002B00-\U00002BFF"
    "\U0000FE00-\U0000FE0F"
    "\U0000200D"
    "\U000020E3"
    "\U0001F1E6-\U0001F1FF"
    "\U000E0020-\U000E007F"
    "]+"
)
_CONTROL = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_SPACES = re.compile(r"[ \t\f\v\r]+")
_BLANK_LINES = re.compile(r"\n{2,}")
_ALL_WS = re.compile(r"\s+")


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return ""


_MAX_PASSES = 5


def _strip_markup_once(text: str) -> str:
    text = _EMOJI.sub("", text)
    text = _CONTROL.sub("", text)
    text = _MD_IMAGE.sub(r"\1", text)
    text = _MD_LINK.sub(r"\1", text)
    text = _MD_CODE.sub(r"\1", text)
    text = _MD_BOLD.sub(r"\2", text)
    text = _MD_STRIKE.sub(r"\1", text)
    text = _MD_ITALIC_STAR.sub(r"\1", text)
    text = _MD_ITALIC_UNDERSCORE.sub(r"\1", text)
    text = _MD_HEADING.sub("", text)
    text = _HTML_TAG.sub(" ", text)
    return html.unescape(text)


def _normalize(text: str, multiline: bool) -> str:
    # Stripping one layer can expose another (nested links, encoded tags)
    for _ in range(_MAX_PASSES):
        stripped = _strip_markup_once(text)
        if stripped == text:
            break
        text = stripped
    if multiline:
        text = text.replace("\r\n", "\n")
        text = _SPACES.sub(" ", text)
        lines = [line.strip() for line in text.split("\n")]
        text = "\n".join(line for line in lines if line)
        text = _BLANK_LINES.sub("\n", text)
    else:
        text = _ALL_WS.sub(" ", text)
    return text.strip()


def truncate(text: str, max_len: int) -> str:
    if max_len <= 0:
        return ""
    if len(text) <= max_len:
        return text
    cut = text[: max_len - 1].rstrip()
    return cut + ELLIPSIS


def clean_text(value: Any, max_len: int, multiline: bool = False) -> str:
    """
    Strips markdown, HTML, entities and emoji, collapses whitespace and
    truncates to max_len with a trailing ellipsis.

    With multiline=True single line breaks survive (blank lines are folded);
    otherwise every whitespace run becomes one space. The result is a fixed
    point: cleaning it again returns it unchanged.
    """
    text = _to_text(value)
    if not text:
        return ""
    result = truncate(_normalize(text, multiline), max_len)
    for _ in range(_MAX_PASSES):
        again = truncate(_normalize(result, multiline), max_len)
        if again == result:
            break
        result = again
    return result


def _coerce_enum(value: Any, allowed: tuple, default: str, aliases: Optional[dict] = None) -> str:
    if not isinstance(value, str):
        return default
    key = value.strip().lower()
    if aliases:
        key = aliases.get(key, key)
    return key if key in allowed else default


def clean_actions(value: Any, policy: InsightPolicy = DEFAULT_POLICY) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    actions: List[str] = []
    for item in value:
        cleaned = clean_text(item, policy.action_max_len)
        if cleaned:
            actions.append(cleaned)
        if len(actions) >= policy.max_actions:
            break
    return actions


def _valid_run_date(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()).isoformat()
    except ValueError:
        return None


def sanitize_card(
    raw: Any,
    run_date: Optional[str] = None,
    policy: InsightPolicy = DEFAULT_POLICY,
) -> InsightCard:
    """
    Produces a valid InsightCard from anything card-shaped.

    Identity fields (id, createdAt, runDate) are kept only when raw is
    already an InsightCard. Dicts are untrusted: they always get a fresh id,
    the current timestamp and the given run_date.

    Args:
        raw: dict (or InsightCard) from the model or a builder
        run_date: run date stamped onto new cards
        policy: text length and action limits

    Returns:
        InsightCard satisfying every enum, length and list-size rule
    """
    trusted = isinstance(raw, InsightCard)
    if trusted:
        data = raw.to_dict()
    elif isinstance(raw, dict):
        data = raw
    else:
        data = {}

    source = _coerce_enum(data.get("source"), CARD_SOURCES, DEFAULT_SOURCE, SOURCE_ALIASES)
    card_type = _coerce_enum(data.get("type"), CARD_TYPES, DEFAULT_TYPE)
    period = _coerce_enum(data.get("period"), CARD_PERIODS, DEFAULT_PERIOD, PERIOD_ALIASES)

    title = clean_text(data.get("title"), policy.title_max_len) or DEFAULT_TITLE
    text_limit = policy.summary_text_max_len if source == SOURCE_SUMMARY else policy.text_max_len
    text = clean_text(data.get("text"), text_limit, multiline=True)
    actions = clean_actions(data.get("actions"), policy)

    card_id = uuid4().hex
    created_at = datetime.now(timezone.utc).isoformat()
    stamped = _valid_run_date(run_date)
    if trusted:
        card_id = raw.id or card_id
        created_at = raw.created_at or created_at
        stamped = _valid_run_date(raw.run_date) or stamped

    return InsightCard(
        id=card_id,
        created_at=created_at,
        run_date=stamped,
        source=source,
        type=card_type,
        period=period,
        title=title,
        text=text,
        actions=actions,
    )
