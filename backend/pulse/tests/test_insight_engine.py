import asyncio
from types import SimpleNamespace

from pulse import insight_engine, summary_synthesizer
from pulse.insight_engine import InsightEngine, RunContext
from pulse.insight_models import InputBundle
from pulse.insight_store import fetch_latest_run
from pulse.models import InsightCardRow
from pulse.tests.factories import FIXED_NOW, make_events, make_posts, make_sales_history, make_videos


def _loaders(**overrides):
    data = {
        "sales_rows": make_sales_history(),
        "social_posts": make_posts(),
        "videos": make_videos(),
        "calendar_events": make_events(),
        "channel_metrics": None,
    }
    data.update(overrides)

    def constant(value):
        async def load():
            return value
        return load

    return {name: constant(value) for name, value in data.items()}


def test_fallback_run_with_all_sources(session_factory, settings):
    engine = InsightEngine(settings=settings, session_factory=session_factory)
    result = asyncio.run(engine.run(use_model=False, now=FIXED_NOW, loaders=_loaders()))

    summary, cards = result.cards[0], result.cards[1:]
    assert result.run_date == "2025-03-15"
    assert result.error is None
    assert summary.source == "summary"
    assert summary.text.startswith("Study: Spanish lesson on Mon 17 Mar 10:00.")
    assert 6 <= len(cards) <= 8
    assert any("+20%" in c.text for c in cards if c.source == "ebay" and c.type == "money")
    assert sum(1 for c in cards if c.type == "action") >= 2
    assert len({c.title for c in cards}) == len(cards)
    assert result.input_hash


def test_sales_only_run_without_model(session_factory, settings):
    engine = InsightEngine(settings=settings, session_factory=session_factory)
    loaders = _loaders(social_posts=[], videos=[], calendar_events=[])
    result = asyncio.run(engine.run(use_model=False, now=FIXED_NOW, loaders=loaders))

    cards = result.cards[1:]
    assert len(cards) == 6
    assert {c.source for c in cards} == {"ebay"}
    assert sum(1 for c in cards if c.type in ("money", "margin")) >= 2
    assert "Study: no upcoming lesson found in the next 7 days." in result.cards[0].text


def test_same_day_rerun_replaces_stored_cards(session_factory, settings):
    engine = InsightEngine(settings=settings, session_factory=session_factory)
    first = asyncio.run(engine.run(use_model=False, now=FIXED_NOW, loaders=_loaders()))
    second = asyncio.run(engine.run(use_model=False, now=FIXED_NOW, loaders=_loaders(videos=[])))

    db = session_factory()
    try:
        stored = fetch_latest_run(db)
        assert db.query(InsightCardRow).filter(InsightCardRow.run_date == "2025-03-15").count() == len(second.cards)
    finally:
        db.close()
    assert [c.id for c in stored.cards] == [c.id for c in second.cards]
    assert not {c.id for c in first.cards} & {c.id for c in stored.cards}


def test_model_cards_are_merged(monkeypatch, session_factory, settings):
    async def fake_cards(prompt, config=None):
        assert "DATA:" in prompt
        return [
            {"source": "ebay", "type": "money", "period": "7d", "title": "Cameras lead revenue", "text": "t"},
            {"source": "telegram", "type": "signal", "period": "week", "title": "Giveaway is working", "text": "t"},
        ]

    async def no_summary(prompt, config=None):
        return None

    monkeypatch.setattr(insight_engine, "request_insight_cards", fake_cards)
    monkeypatch.setattr(summary_synthesizer, "request_summary", no_summary)

    engine = InsightEngine(settings=settings, session_factory=session_factory, llm_config=SimpleNamespace(available=True))
    result = asyncio.run(engine.run(now=FIXED_NOW, loaders=_loaders(), store=False))
    titles = [c.title for c in result.cards]

    assert titles[1] == "Cameras lead revenue"
    assert "Giveaway is working" in titles
    assert result.cards[0].source == "summary"


def test_model_identity_fields_are_replaced(monkeypatch, session_factory, settings):
    async def fake_cards(prompt, config=None):
        return [
            {"id": "card", "runDate": "1999-01-01", "createdAt": "1999-01-01T00:00:00",
             "source": "ebay", "type": "money", "period": "7d", "title": "A", "text": "t"},
            {"id": "card", "source": "telegram", "type": "signal", "period": "week", "title": "B", "text": "t"},
        ]

    async def no_summary(prompt, config=None):
        return None

    monkeypatch.setattr(insight_engine, "request_insight_cards", fake_cards)
    monkeypatch.setattr(summary_synthesizer, "request_summary", no_summary)

    engine = InsightEngine(settings=settings, session_factory=session_factory, llm_config=SimpleNamespace(available=True))
    result = asyncio.run(engine.run(now=FIXED_NOW, loaders=_loaders()))

    ids = [c.id for c in result.cards]
    assert "card" not in ids
    assert len(set(ids)) == len(ids)
    assert {c.run_date for c in result.cards} == {"2025-03-15"}
    assert all(not c.created_at.startswith("1999") for c in result.cards)

    db = session_factory()
    try:
        stored = fetch_latest_run(db)
    finally:
        db.close()
    assert stored is not None
    assert [c.id for c in stored.cards] == ids


def test_failing_loader_still_produces_cards(session_factory, settings):
    async def broken():
        raise ConnectionError("db down")

    loaders = _loaders()
    loaders["social_posts"] = broken
    engine = InsightEngine(settings=settings, session_factory=session_factory)
    result = asyncio.run(engine.run(use_model=False, now=FIXED_NOW, loaders=loaders, store=False))
    assert all(c.source != "telegram" for c in result.cards)
    assert len(result.cards) >= 7


def test_degraded_result_uses_gathered_context(settings, session_factory):
    engine = InsightEngine(settings=settings, session_factory=session_factory)
    context = RunContext(run_date="2025-03-15", bundle=InputBundle(sales_rows=make_sales_history()))
    result = asyncio.run(engine.degraded("RuntimeError: boom", now=FIXED_NOW, context=context))

    assert result.error == "RuntimeError: boom"
    assert result.to_dict()["error"] == "RuntimeError: boom"
    assert result.cards[0].source == "summary"
    assert len(result.cards) == 7


def test_degraded_without_context_is_summary_only(settings, session_factory):
    engine = InsightEngine(settings=settings, session_factory=session_factory)
    result = asyncio.run(engine.degraded("boom", now=FIXED_NOW))
    assert [c.source for c in result.cards] == ["summary"]
    assert "Insufficient data" in result.cards[0].text
