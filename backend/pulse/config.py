"""
Runtime configuration.

Settings come from environment variables (a .env file is loaded by main.py
before this module is used). Selection thresholds live in InsightPolicy,
which is loaded from insight_policy.yaml so they can be tuned without code
changes.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_POLICY_PATH = Path(__file__).resolve().parent / "insight_policy.yaml"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}={raw!r}; using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid number for {name}={raw!r}; using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


class Settings:
    """Environment-backed settings for connectors, storage and scheduling."""

    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./pulse.db")
        self.report_timezone = os.getenv("REPORT_TIMEZONE", "UTC")
        self.upstream_timeout_seconds = _env_float("UPSTREAM_TIMEOUT_SECONDS", 10.0)
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        # Telegram
        self.telegram_channel_slug = os.getenv("TELEGRAM_CHANNEL_SLUG", "my_channel")
        self.telegram_retention_days = _env_int("TELEGRAM_RETENTION_DAYS", 30)
        self.telegram_max_posts = _env_int("TELEGRAM_MAX_POSTS", 50)

        # YouTube
        self.youtube_source_handle = os.getenv("YOUTUBE_SOURCE_HANDLE", "")
        self.youtube_source_channel_id = os.getenv("YOUTUBE_SOURCE_CHANNEL_ID", "")
        self.video_cache_ttl_seconds = _env_int("VIDEO_CACHE_TTL_SECONDS", 900)

        # Composio tool API (YouTube statistics + calendar)
        self.composio_api_key = os.getenv("COMPOSIO_API_KEY", "")
        self.composio_yt_account_id = os.getenv("COMPOSIO_YT_ACCOUNT_ID", "")
        self.composio_yt_entity_id = os.getenv("COMPOSIO_YT_ENTITY_ID", "")
        self.composio_yt_channel_id = os.getenv("COMPOSIO_YT_CHANNEL_ID", "")
        self.composio_yt_channel_handle = os.getenv("COMPOSIO_YT_CHANNEL_HANDLE", "")
        self.composio_calendar_account_id = os.getenv("COMPOSIO_CALENDAR_ACCOUNT_ID", "")
        self.composio_calendar_entity_id = os.getenv("COMPOSIO_CALENDAR_ENTITY_ID", "")
        self.calendar_lookahead_days = _env_int("CALENDAR_LOOKAHEAD_DAYS", 30)

        # Google Sheets sales ledger
        self.sales_sheet_id = os.getenv("SALES_SHEET_ID", "")
        self.sales_sheet_range = os.getenv("SALES_SHEET_RANGE", "A:F")
        self.google_sheets_credentials_json = os.getenv("GOOGLE_SHEETS_CREDENTIALS_JSON")

        # Scheduling
        self.scheduler_enabled = _env_bool("SCHEDULER_ENABLED", False)
        self.daily_refresh_hour = _env_int("DAILY_REFRESH_HOUR", 6)

        self.policy_path = Path(os.getenv("INSIGHT_POLICY_PATH", str(DEFAULT_POLICY_PATH)))


@dataclass(frozen=True)
class InsightPolicy:
    """Card-count, quota and text-length rules for insight selection."""

    min_cards: int = 6
    max_cards: int = 8
    sales_money_target: int = 2
    sales_total_target: int = 5
    min_sales_actions: int = 2
    min_sales_cards: int = 4
    min_action_cards: int = 2
    social_max: int = 2
    video_max: int = 1
    calendar_max: int = 1
    title_max_len: int = 60
    text_max_len: int = 300
    summary_text_max_len: int = 600
    action_max_len: int = 120
    max_actions: int = 3
    repeat_topic_window_days: int = 7
    repeat_topic_min_days: int = 3
    adjacent_gap_minutes: int = 90
    study_lookahead_days: int = 7
    prompt_sales_rows: int = 14
    prompt_posts: int = 5
    prompt_post_chars: int = 280
    prompt_videos: int = 3
    prompt_events: int = 5


DEFAULT_POLICY = InsightPolicy()


def load_policy(path: Optional[Path] = None) -> InsightPolicy:
    """
    Loads InsightPolicy overrides from a YAML mapping.

    Unknown keys are ignored and missing keys keep their defaults. A missing
    or unreadable file yields the default policy.
    """
    path = Path(path) if path else DEFAULT_POLICY_PATH
    if not path.exists():
        logger.warning(f"Insight policy file not found at {path}; using defaults")
        return DEFAULT_POLICY
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to read insight policy {path}: {e}")
        return DEFAULT_POLICY

    section = data.get("policy", data) if isinstance(data, dict) else {}
    if not isinstance(section, dict):
        return DEFAULT_POLICY

    known = {f.name for f in fields(InsightPolicy)}
    overrides = {}
    for key, value in section.items():
        if key not in known:
            logger.warning(f"Ignoring unknown insight policy key '{key}'")
            continue
        if not isinstance(value, int) or isinstance(value, bool):
            logger.warning(f"Ignoring non-integer insight policy value {key}={value!r}")
            continue
        overrides[key] = value
    return InsightPolicy(**overrides)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drops the cached Settings so the next call re-reads the environment."""
    global _settings
    _settings = None
