from datetime import datetime, timezone

from pulse.card_sanitizer import sanitize_card
from pulse.insight_models import InsightRunResult
from pulse.insight_store import compute_run_date, fetch_latest_run, replace_run
from pulse.models import InsightCardRow


def _cards(run_date, *titles):
    return [
        sanitize_card({"source": "ebay", "type": "action", "title": t, "text": f"{t} text", "actions": ["a", "b"]},
                      run_date=run_date)
        for t in titles
    ]


def test_round_trip_keeps_order_and_fields(db_session):
    cards = _cards("2025-03-15", "First", "Second", "Third")
    assert replace_run(db_session, InsightRunResult("2025-03-15", cards, input_hash="abc"))

    stored = fetch_latest_run(db_session)
    assert stored.run_date == "2025-03-15"
    assert stored.input_hash == "abc"
    assert stored.cards == cards


def test_same_day_run_replaces_previous_cards(db_session):
    replace_run(db_session, InsightRunResult("2025-03-15", _cards("2025-03-15", "Old 1", "Old 2", "Old 3")))
    replace_run(db_session, InsightRunResult("2025-03-15", _cards("2025-03-15", "New 1", "New 2")))

    stored = fetch_latest_run(db_session)
    assert [c.title for c in stored.cards] == ["New 1", "New 2"]
    assert db_session.query(InsightCardRow).count() == 2


def test_latest_run_date_wins(db_session):
    replace_run(db_session, InsightRunResult("2025-03-14", _cards("2025-03-14", "Yesterday")))
    replace_run(db_session, InsightRunResult("2025-03-15", _cards("2025-03-15", "Today")))
    replace_run(db_session, InsightRunResult("2025-03-14", _cards("2025-03-14", "Yesterday again")))

    stored = fetch_latest_run(db_session)
    assert stored.run_date == "2025-03-15"
    assert [c.title for c in stored.cards] == ["Today"]


def test_empty_store_returns_none(db_session):
    assert fetch_latest_run(db_session) is None


def test_cards_without_actions_round_trip(db_session):
    card = sanitize_card({"title": "Bare", "text": "t"}, run_date="2025-03-15")
    replace_run(db_session, InsightRunResult("2025-03-15", [card]))
    row = db_session.query(InsightCardRow).one()
    assert row.actions is None
    assert fetch_latest_run(db_session).cards[0].actions == []


def test_unreadable_actions_column_is_tolerated(db_session):
    replace_run(db_session, InsightRunResult("2025-03-15", _cards("2025-03-15", "Card")))
    row = db_session.query(InsightCardRow).one()
    row.actions = "not json"
    db_session.commit()
    assert fetch_latest_run(db_session).cards[0].actions == []


def test_failed_write_keeps_previous_run(db_session):
    replace_run(db_session, InsightRunResult("2025-03-15", _cards("2025-03-15", "Kept")))
    broken = _cards("2025-03-15", "A", "B")
    broken[1].id = broken[0].id

    assert replace_run(db_session, InsightRunResult("2025-03-15", broken)) is False
    assert [c.title for c in fetch_latest_run(db_session).cards] == ["Kept"]


def test_run_date_uses_reporting_timezone():
    early_utc = datetime(2025, 3, 15, 3, 0, tzinfo=timezone.utc)
    assert compute_run_date("UTC", early_utc) == "2025-03-15"
    assert compute_run_date("America/Los_Angeles", early_utc) == "2025-03-14"
    assert compute_run_date("Not/AZone", early_utc) == "2025-03-15"
