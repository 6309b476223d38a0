"""
Daily summary card.

The summary is one extra card placed first on top of the selected cards. The
model may write the body, but its text is only accepted when it keeps the
fixed skeleton and quotes the computed metric phrases; otherwise a
deterministic text is built from the selected cards. The study block in
front of the body never comes from the model.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any, List, Optional

from pulse.card_sanitizer import clean_actions, clean_text, sanitize_card, truncate
from pulse.config import DEFAULT_POLICY, InsightPolicy
from pulse.fallback_cards import as_utc, format_when, upcoming_events
from pulse.insight_models import (
    SOURCE_SUMMARY,
    CalendarEvent,
    InsightCard,
    SalesSummary,
    SummaryFacts,
)
from pulse.llm_service import LLMConfig, request_summary
from pulse.prompt_builder import INSUFFICIENT_DATA_PHRASE, SUMMARY_MARKERS, build_summary_prompt
from pulse.sales_aggregator import format_money

logger = logging.getLogger(__name__)

SUMMARY_TITLE = "Daily summary"

LESSON_KEYWORDS = (
    "lesson", "class", "lecture", "study", "course", "tutor", "seminar", "exam", "homework", "webinar",
    "урок", "занятие", "лекция", "курс", "учеба", "учёба", "семинар", "экзамен", "репетитор", "вебинар",
)
_LESSON = re.compile("|".join(re.escape(k) for k in LESSON_KEYWORDS), re.IGNORECASE)

DEFAULT_ACTIONS = [
    "Do the first action from the list today",
    "Check the numbers again tomorrow morning",
]

_NUMBERED = re.compile(r"^\s*([123])\.", re.MULTILINE)


def build_study_block(
    events: List[CalendarEvent],
    now: datetime,
    policy: InsightPolicy = DEFAULT_POLICY,
) -> str:
    """Names the nearest lesson-like event inside the lookahead window."""
    horizon = as_utc(now) + timedelta(days=policy.study_lookahead_days)
    for event in upcoming_events(events, now):
        if as_utc(event.start) > horizon:
            break
        if _LESSON.search(event.title or ""):
            title = clean_text(event.title, policy.title_max_len)
            return f"Study: {title} on {format_when(event.start, now)}."
    return f"Study: no upcoming lesson found in the next {policy.study_lookahead_days} days."


def build_summary_facts(summary: SalesSummary) -> SummaryFacts:
    if not summary.has_data:
        return SummaryFacts(has_sales_data=False)
    return SummaryFacts(
        has_sales_data=True,
        metric_phrases=[
            f"7-day revenue: {format_money(summary.revenue_7d)}",
            f"7-day profit: {format_money(summary.profit_7d)}",
            f"30-day revenue: {format_money(summary.revenue_30d)}",
            f"Avg order value: {format_money(summary.avg_order_value)}",
        ],
    )


def has_required_markers(text_value: str) -> bool:
    if not all(marker in text_value for marker in SUMMARY_MARKERS):
        return False
    return set(_NUMBERED.findall(text_value)) == {"1", "2", "3"}


def is_valid_summary_text(text_value: Any, facts: SummaryFacts) -> bool:
    if not isinstance(text_value, str) or not has_required_markers(text_value):
        return False
    if facts.has_sales_data:
        quoted = sum(1 for phrase in facts.metric_phrases if phrase in text_value)
        return quoted >= 2
    return INSUFFICIENT_DATA_PHRASE.lower() in text_value.lower()


def build_fallback_summary_text(cards: List[InsightCard], facts: SummaryFacts) -> str:
    """Skeleton text built from the top selected cards; valid by construction."""
    if facts.has_sales_data:
        bottom_line = f"{SUMMARY_MARKERS[0]} {facts.metric_phrases[0]}; {facts.metric_phrases[1]}."
        risks = f"{SUMMARY_MARKERS[2]} watch {facts.metric_phrases[2]} and {facts.metric_phrases[3]}."
    else:
        bottom_line = f"{SUMMARY_MARKERS[0]} {INSUFFICIENT_DATA_PHRASE} for sales; connect the sales ledger."
        risks = f"{SUMMARY_MARKERS[2]} no sales figures to check yet."

    titles = [c.title for c in cards[:3]]
    while len(titles) < 3:
        titles.append("Review today's dashboard")
    numbered = "\n".join(f"{i}. {title}" for i, title in enumerate(titles, start=1))
    return f"{bottom_line}\n{SUMMARY_MARKERS[1]}\n{numbered}\n{risks}"


async def synthesize_summary(
    cards: List[InsightCard],
    events: List[CalendarEvent],
    summary: SalesSummary,
    run_date: Optional[str],
    now: datetime,
    config: Optional[LLMConfig] = None,
    policy: InsightPolicy = DEFAULT_POLICY,
    use_model: bool = True,
) -> InsightCard:
    """
    Builds the summary card for a run.

    Args:
        cards: the selected cards, in display order
        events: calendar events used for the study block
        summary: sales summary of the run
        run_date: run date stamped onto the card
        now: reference clock
        config: LLM config; model tier is skipped when None or unavailable
        policy: text and action limits
        use_model: False forces the deterministic tier

    Returns:
        InsightCard with source summary, type plan, period today and exactly 2 actions
    """
    facts = build_summary_facts(summary)
    study = build_study_block(events, now, policy)

    body: Optional[str] = None
    actions: List[str] = []
    if use_model and config is not None and config.available:
        reply = await request_summary(build_summary_prompt(cards, facts, policy), config)
        if reply is not None:
            text_value = reply.get("text")
            fits = isinstance(text_value, str) and len(study) + 1 + len(text_value.strip()) <= policy.summary_text_max_len
            if fits and is_valid_summary_text(text_value, facts):
                body = reply["text"].strip()
            else:
                logger.warning("Model summary failed validation; using deterministic text")
            actions = clean_actions(reply.get("actions"), policy)

    if body is None:
        body = build_fallback_summary_text(cards, facts)
    if len(actions) < 2:
        actions = list(DEFAULT_ACTIONS)
    # study block is trimmed so the whole body always fits
    study = truncate(study, policy.summary_text_max_len - 1 - len(body))

    return sanitize_card({
        "source": SOURCE_SUMMARY,
        "type": "plan",
        "period": "today",
        "title": SUMMARY_TITLE,
        "text": f"{study}\n{body}" if study else body,
        "actions": actions[:2],
    }, run_date=run_date, policy=policy)
