from pulse.config import InsightPolicy
from pulse.insight_models import InputBundle
from pulse.insight_selector import sanitize_model_items, select_insights
from pulse.sales_aggregator import summarize_sales
from pulse.tests.factories import FIXED_NOW, make_events, make_posts, make_sales_history, make_videos

RUN_DATE = "2025-03-15"


def _full_bundle():
    return InputBundle(
        sales_rows=make_sales_history(),
        social_posts=make_posts(),
        videos=make_videos(),
        calendar_events=make_events(),
    )


def _select(raw_items, bundle, policy=None):
    summary = summarize_sales(bundle.sales_rows, FIXED_NOW)
    kwargs = {"policy": policy} if policy else {}
    return select_insights(raw_items, RUN_DATE, summary, bundle, now=FIXED_NOW, **kwargs)


def _money_sales(cards):
    return [c for c in cards if c.source == "ebay" and c.type in ("money", "margin")]


def _sales_actions(cards):
    return [c for c in cards if c.source == "ebay" and c.type == "action"]


def test_no_model_sales_only_backfills_to_minimum():
    cards = _select([], InputBundle(sales_rows=make_sales_history()))

    assert len(cards) == 6
    assert len(_money_sales(cards)) >= 2
    assert len(_sales_actions(cards)) >= 2
    assert cards[0].title == "Revenue: this week vs last week"
    assert len({c.title for c in cards}) == len(cards)


def test_no_model_full_bundle_fills_every_source():
    cards = _select([], _full_bundle())

    assert len(cards) == 8
    sources = [c.source for c in cards]
    assert sources.count("ebay") == 5
    assert sources.count("telegram") == 1
    assert sources.count("youtube") == 1
    assert sources.count("calendar") == 1
    assert all(c.run_date == RUN_DATE for c in cards)


def test_model_cards_come_first_and_caps_hold():
    raw = [
        {"source": "ebay", "type": "money", "title": f"Model money {i}", "text": "t"} for i in (1, 2, 3)
    ] + [
        {"source": "ebay", "type": "action", "title": "Model action", "text": "t", "actions": ["do it"]},
        {"source": "summary", "type": "plan", "title": "Model summary", "text": "t"},
    ] + [
        {"source": "telegram", "type": "signal", "title": f"Post idea {i}", "text": "t"} for i in (1, 2, 3, 4)
    ]
    cards = _select(raw, _full_bundle())
    titles = [c.title for c in cards]

    assert len(cards) == 8
    assert titles[:2] == ["Model money 1", "Model money 2"]
    assert "Model money 3" not in titles
    assert titles[2] == "Model action"
    assert "Model summary" not in titles
    assert all(c.source != "summary" for c in cards)
    assert [c.source for c in cards].count("telegram") == 2
    assert "Post idea 1" in titles and "Post idea 3" not in titles


def test_duplicate_titles_are_collapsed():
    raw = [{"source": "ebay", "type": "action", "title": "Refresh slow-moving listings", "text": "model"}]
    cards = _select(raw, InputBundle(sales_rows=make_sales_history()))
    titles = [c.title for c in cards]
    assert titles.count("Refresh slow-moving listings") == 1
    assert len(set(titles)) == len(titles)


def test_non_list_model_output_counts_as_empty():
    bundle = InputBundle(sales_rows=make_sales_history())
    expected = [c.title for c in _select([], bundle)]
    assert [c.title for c in _select("oops", bundle)] == expected
    assert [c.title for c in _select({"insights": "x"}, bundle)] == expected


def test_sales_actions_are_forced_when_budget_runs_out():
    policy = InsightPolicy(sales_total_target=2)
    cards = _select([], InputBundle(sales_rows=make_sales_history()), policy=policy)
    assert len(_sales_actions(cards)) >= 2
    assert len(cards) >= policy.min_cards


def test_nothing_to_select_yields_empty_list():
    assert _select([], InputBundle()) == []


def test_model_items_are_bucketed_by_source():
    buckets = sanitize_model_items(
        [{"source": "video", "title": "v"}, {"source": "summary"}, {"source": "calendar", "title": "c"}],
        RUN_DATE,
    )
    assert [c.title for c in buckets["youtube"]] == ["v"]
    assert [c.title for c in buckets["calendar"]] == ["c"]
    assert buckets["ebay"] == [] and buckets["telegram"] == []
