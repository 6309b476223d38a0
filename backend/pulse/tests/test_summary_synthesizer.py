import asyncio
from dataclasses import replace
from datetime import timedelta
from types import SimpleNamespace

from pulse import summary_synthesizer
from pulse.config import DEFAULT_POLICY
from pulse.insight_models import CalendarEvent, InputBundle, SalesSummary
from pulse.insight_selector import select_insights
from pulse.sales_aggregator import summarize_sales
from pulse.summary_synthesizer import (
    DEFAULT_ACTIONS,
    build_fallback_summary_text,
    build_study_block,
    build_summary_facts,
    has_required_markers,
    is_valid_summary_text,
    synthesize_summary,
)
from pulse.tests.factories import FIXED_NOW, make_events, make_sales_history

RUN_DATE = "2025-03-15"


def _inputs():
    summary = summarize_sales(make_sales_history(), FIXED_NOW)
    cards = select_insights([], RUN_DATE, summary, InputBundle(sales_rows=make_sales_history()), now=FIXED_NOW)
    return summary, cards


def test_study_block_names_the_next_lesson():
    assert build_study_block(make_events(), FIXED_NOW) == "Study: Spanish lesson on Mon 17 Mar 10:00."


def test_study_block_without_lesson_in_window():
    far = [CalendarEvent("Guitar lesson", FIXED_NOW + timedelta(days=10))]
    other = [CalendarEvent("Dentist", FIXED_NOW + timedelta(days=1))]
    expected = "Study: no upcoming lesson found in the next 7 days."
    assert build_study_block(far, FIXED_NOW) == expected
    assert build_study_block(other, FIXED_NOW) == expected
    assert build_study_block([], FIXED_NOW) == expected


def test_fallback_summary_is_valid_by_construction():
    summary, cards = _inputs()
    facts = build_summary_facts(summary)
    text = build_fallback_summary_text(cards, facts)

    assert text.startswith("Bottom line: 7-day revenue: $840.00; 7-day profit: $210.00.")
    assert "Top 3 actions:" in text and "Risks:" in text
    assert f"1. {cards[0].title}" in text
    assert is_valid_summary_text(text, facts)


def test_fallback_summary_without_sales_data():
    facts = build_summary_facts(SalesSummary())
    text = build_fallback_summary_text([], facts)
    assert "Insufficient data" in text
    assert is_valid_summary_text(text, facts)


def test_validation_rejects_missing_markers_or_metrics():
    summary, _ = _inputs()
    facts = build_summary_facts(summary)
    no_metrics = "Bottom line: good week.\nTop 3 actions:\n1. a\n2. b\n3. c\nRisks: none."
    no_numbers = "Bottom line: 7-day revenue: $840.00, 7-day profit: $210.00.\nTop 3 actions:\n- a\nRisks: none."
    assert not is_valid_summary_text(no_metrics, facts)
    assert not is_valid_summary_text(no_numbers, facts)
    assert not is_valid_summary_text(None, facts)


def test_deterministic_summary_card_shape():
    summary, cards = _inputs()
    card = asyncio.run(synthesize_summary(cards, make_events(), summary, RUN_DATE, FIXED_NOW, use_model=False))

    assert card.source == "summary"
    assert card.type == "plan"
    assert card.period == "today"
    assert card.title == "Daily summary"
    assert card.run_date == RUN_DATE
    assert card.text.startswith("Study: Spanish lesson on Mon 17 Mar 10:00.\nBottom line:")
    assert card.actions == DEFAULT_ACTIONS
    assert len(card.text) <= 600


def test_long_lesson_title_keeps_summary_markers():
    summary, cards = _inputs()
    events = [CalendarEvent("Spanish lesson " + "x" * 540, FIXED_NOW + timedelta(days=1))]
    card = asyncio.run(synthesize_summary(cards, events, summary, RUN_DATE, FIXED_NOW, use_model=False))

    study_line = card.text.split("\n", 1)[0]
    assert study_line.startswith("Study: Spanish lesson")
    assert len(study_line) <= DEFAULT_POLICY.title_max_len + len("Study:  on Sun 16 Mar 12:00.")
    assert has_required_markers(card.text)
    assert is_valid_summary_text(card.text, build_summary_facts(summary))
    assert len(card.text) <= DEFAULT_POLICY.summary_text_max_len


def test_study_block_gives_way_when_body_is_long():
    summary, cards = _inputs()
    tight = replace(DEFAULT_POLICY, summary_text_max_len=len(build_fallback_summary_text(cards, build_summary_facts(summary))) + 10)
    card = asyncio.run(synthesize_summary(cards, make_events(), summary, RUN_DATE, FIXED_NOW, policy=tight, use_model=False))

    assert len(card.text) <= tight.summary_text_max_len
    assert has_required_markers(card.text)


def test_model_summary_is_used_when_valid(monkeypatch):
    summary, cards = _inputs()
    model_text = (
        "Bottom line: 7-day revenue: $840.00 and 7-day profit: $210.00 are up on last week.\n"
        "Top 3 actions:\n1. Relist cameras\n2. Post the giveaway\n3. Book prep time\nRisks: shipping costs."
    )

    async def fake_request_summary(prompt, config=None):
        assert "Quote at least two of these metric phrases" in prompt
        return {"text": model_text, "actions": ["Relist cameras today", "Answer giveaway comments", "Extra"]}

    monkeypatch.setattr(summary_synthesizer, "request_summary", fake_request_summary)
    card = asyncio.run(synthesize_summary(
        cards, [], summary, RUN_DATE, FIXED_NOW, config=SimpleNamespace(available=True),
    ))

    assert card.text.startswith("Study: no upcoming lesson")
    assert "1. Relist cameras" in card.text
    assert card.actions == ["Relist cameras today", "Answer giveaway comments"]


def test_invalid_model_summary_falls_back(monkeypatch):
    summary, cards = _inputs()

    async def fake_request_summary(prompt, config=None):
        return {"text": "Everything is great!", "actions": ["Only one"]}

    monkeypatch.setattr(summary_synthesizer, "request_summary", fake_request_summary)
    card = asyncio.run(synthesize_summary(
        cards, [], summary, RUN_DATE, FIXED_NOW, config=SimpleNamespace(available=True),
    ))

    assert "Bottom line: 7-day revenue: $840.00; 7-day profit: $210.00." in card.text
    assert card.actions == DEFAULT_ACTIONS


def test_oversized_model_summary_falls_back(monkeypatch):
    summary, cards = _inputs()
    padded = (
        "Bottom line: 7-day revenue: $840.00 and 7-day profit: $210.00. " + "More detail. " * 60 +
        "\nTop 3 actions:\n1. a\n2. b\n3. c\nRisks: none."
    )

    async def fake_request_summary(prompt, config=None):
        return {"text": padded, "actions": []}

    monkeypatch.setattr(summary_synthesizer, "request_summary", fake_request_summary)
    card = asyncio.run(synthesize_summary(
        cards, [], summary, RUN_DATE, FIXED_NOW, config=SimpleNamespace(available=True),
    ))
    assert "More detail" not in card.text
    assert "Risks:" in card.text
