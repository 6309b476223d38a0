"""
Prompt construction for the insight model.

Pure string building: a fixed-shape JSON payload of trimmed inputs plus an
instruction block that spells out the output schema and quota rules. The
selector re-checks every rule on whatever comes back.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List

from pulse.config import DEFAULT_POLICY, InsightPolicy
from pulse.fallback_cards import upcoming_events
from pulse.insight_models import (
    CARD_PERIODS,
    CARD_TYPES,
    SOURCE_CALENDAR,
    SOURCE_SALES,
    SOURCE_SOCIAL,
    SOURCE_VIDEO,
    InputBundle,
    InsightCard,
    SalesSummary,
    SummaryFacts,
)
from pulse.sales_aggregator import cents_to_major


def _iso(value) -> str:
    return value.isoformat() if value else None


def build_prompt_payload(
    summary: SalesSummary,
    bundle: InputBundle,
    now: datetime,
    policy: InsightPolicy = DEFAULT_POLICY,
) -> Dict[str, Any]:
    """Trimmed, JSON-serializable view of the run inputs."""
    sales_rows = sorted(bundle.sales_rows, key=lambda r: r.date, reverse=True)[: policy.prompt_sales_rows]
    posts = sorted(bundle.social_posts, key=lambda p: p.published_at, reverse=True)[: policy.prompt_posts]
    videos = bundle.videos[: policy.prompt_videos]
    events = upcoming_events(bundle.calendar_events, now)[: policy.prompt_events]
    metrics = bundle.channel_metrics

    return {
        "today": now.date().isoformat(),
        "salesSummary": summary.to_dict(),
        "salesHistory": [
            {
                "date": r.date,
                "sales": r.total_sales,
                "revenue": cents_to_major(r.revenue_cents),
                "profit": cents_to_major(r.profit_cents),
            }
            for r in sales_rows
        ],
        "telegramPosts": [
            {"publishedAt": _iso(p.published_at), "text": (p.text or "")[: policy.prompt_post_chars]}
            for p in posts
        ],
        "youtubeVideos": [
            {"title": v.title, "publishedAt": _iso(v.published_at), "url": v.url}
            for v in videos
        ],
        "youtubeChannel": (
            {
                "viewsToday": metrics.views_today,
                "views7d": metrics.views_7d,
                "views30d": metrics.views_30d,
                "subscribers": metrics.subscribers,
                "newVideos30d": metrics.new_videos_30d,
            }
            if metrics
            else None
        ),
        "calendarEvents": [
            {"title": e.title, "start": _iso(e.start), "end": _iso(e.end)}
            for e in events
        ],
    }


def build_insights_prompt(
    summary: SalesSummary,
    bundle: InputBundle,
    now: datetime,
    policy: InsightPolicy = DEFAULT_POLICY,
) -> str:
    payload = build_prompt_payload(summary, bundle, now, policy)
    instructions = f"""You are an analyst for a one-person online business (eBay reselling, a Telegram channel, a YouTube channel and a study calendar).
Write short, concrete insight cards from the DATA below.

OUTPUT RULES:
1. Return ONLY a JSON array with {policy.min_cards} to {policy.max_cards} objects. No markdown, no prose.
2. At least {policy.min_sales_cards} objects must have "source": "{SOURCE_SALES}".
3. At least {policy.min_action_cards} objects must have "type": "action".
4. Each object has exactly these keys:
   {{"source": "{SOURCE_SALES}|{SOURCE_SOCIAL}|{SOURCE_VIDEO}|{SOURCE_CALENDAR}",
    "type": "{'|'.join(CARD_TYPES)}",
    "period": "{'|'.join(CARD_PERIODS)}",
    "title": "max {policy.title_max_len} characters",
    "text": "max {policy.text_max_len} characters",
    "actions": ["at most {policy.max_actions} short imperative steps"]}}
5. Per-source budget:
   - "{SOURCE_SOCIAL}": at most {policy.social_max} cards
   - "{SOURCE_VIDEO}": exactly {policy.video_max} card if videos are present
   - "{SOURCE_CALENDAR}": at most {policy.calendar_max} card
6. Do not fabricate. Use only numbers and facts present in DATA. If a source has little or no data, omit its cards.
7. Money amounts are in USD; percentages are whole numbers with a sign, e.g. +12%.
"""
    data_blob = json.dumps(payload, ensure_ascii=False, default=str)
    return f"{instructions}\nDATA:\n{data_blob}"


SUMMARY_MARKERS = ("Bottom line:", "Top 3 actions:", "Risks:")
INSUFFICIENT_DATA_PHRASE = "Insufficient data"


def build_summary_prompt(
    cards: List[InsightCard],
    facts: SummaryFacts,
    policy: InsightPolicy = DEFAULT_POLICY,
) -> str:
    """Request for the structured summary object (see summary_synthesizer)."""
    card_lines = "\n".join(f"- [{c.source}/{c.type}] {c.title}: {c.text}" for c in cards)
    if facts.has_sales_data:
        facts_rule = (
            "Quote at least two of these metric phrases EXACTLY as written:\n"
            + "\n".join(f"  {phrase}" for phrase in facts.metric_phrases)
        )
    else:
        facts_rule = f'There is no sales data. The bottom line must contain the phrase "{INSUFFICIENT_DATA_PHRASE}".'

    return f"""Summarize today's insight cards for the owner of a small online business.

Return ONLY a JSON object: {{"text": "...", "actions": ["...", "..."]}}

"text" must follow this skeleton (keep the labels exactly):
{SUMMARY_MARKERS[0]} one or two sentences.
{SUMMARY_MARKERS[1]}
1. ...
2. ...
3. ...
{SUMMARY_MARKERS[2]} one line on what to check.

{facts_rule}

"actions" must contain exactly 2 short imperative steps.
Keep "text" under {policy.summary_text_max_len - 120} characters. No markdown, no emoji.

CARDS:
{card_lines}
"""
