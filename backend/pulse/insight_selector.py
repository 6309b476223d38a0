"""
Insight normalizer / selector.

Merges untrusted model proposals with the deterministic fallback pool under
the card-count and source-distribution policy. Sales is the primary domain
and gets the largest guaranteed share; the other sources only contribute
when they have candidates.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pulse.card_sanitizer import sanitize_card
from pulse.config import DEFAULT_POLICY, InsightPolicy
from pulse.fallback_cards import build_fallback_pool
from pulse.insight_models import (
    MONEY_TYPES,
    SOURCE_CALENDAR,
    SOURCE_PRIORITY,
    SOURCE_SALES,
    SOURCE_SOCIAL,
    SOURCE_SUMMARY,
    SOURCE_VIDEO,
    InputBundle,
    InsightCard,
    SalesSummary,
)

logger = logging.getLogger(__name__)


def _is_money(card: InsightCard) -> bool:
    return card.type in MONEY_TYPES


def _is_action(card: InsightCard) -> bool:
    return card.type == "action"


class _Selection:
    """Ordered card list with exact-title dedup."""

    def __init__(self):
        self.cards: List[InsightCard] = []
        self._titles: Set[str] = set()

    def __len__(self) -> int:
        return len(self.cards)

    def add(self, card: InsightCard) -> bool:
        if card.title in self._titles:
            return False
        self.cards.append(card)
        self._titles.add(card.title)
        return True

    def take(
        self,
        candidates: Iterable[InsightCard],
        limit: int,
        predicate: Optional[Callable[[InsightCard], bool]] = None,
    ) -> int:
        """Adds up to `limit` candidates matching predicate; returns how many were added."""
        added = 0
        for card in candidates:
            if added >= limit:
                break
            if predicate is not None and not predicate(card):
                continue
            if self.add(card):
                added += 1
        return added

    def count(self, predicate: Callable[[InsightCard], bool]) -> int:
        return sum(1 for card in self.cards if predicate(card))


def sanitize_model_items(
    raw_items: Any,
    run_date: Optional[str],
    policy: InsightPolicy = DEFAULT_POLICY,
) -> Dict[str, List[InsightCard]]:
    """Sanitizes model proposals and buckets them by source (summary cards dropped)."""
    buckets: Dict[str, List[InsightCard]] = {source: [] for source in SOURCE_PRIORITY}
    if not isinstance(raw_items, list):
        return buckets
    dropped = 0
    for item in raw_items:
        card = sanitize_card(item, run_date=run_date, policy=policy)
        if card.source == SOURCE_SUMMARY:
            dropped += 1
            continue
        buckets[card.source].append(card)
    if dropped:
        logger.info(f"Dropped {dropped} model card(s) with source '{SOURCE_SUMMARY}'")
    return buckets


def select_insights(
    raw_items: Any,
    run_date: Optional[str],
    summary: SalesSummary,
    bundle: InputBundle,
    policy: InsightPolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
    fallback_pool: Optional[Dict[str, List[InsightCard]]] = None,
) -> List[InsightCard]:
    """
    Builds the final ordered card list for one run.

    Args:
        raw_items: model output array (untrusted; anything non-list counts as empty)
        run_date: run date stamped onto every card
        summary: sales summary of the run
        bundle: collected inputs, used for the fallback pool
        policy: quotas and limits
        now: reference clock for the fallback builders
        fallback_pool: prebuilt pool (built from bundle/summary when omitted)

    Returns:
        at most policy.max_cards cards with unique titles; at least
        policy.min_cards whenever that many distinct candidates exist
    """
    if now is None:
        now = datetime.now().astimezone()
    model = sanitize_model_items(raw_items, run_date, policy)
    pool = fallback_pool if fallback_pool is not None else build_fallback_pool(
        bundle, summary, now, run_date, policy
    )
    picked = _Selection()

    # Sales: money sub-quota, then actions up to the sales budget
    model_sales = model[SOURCE_SALES]
    fallback_sales = pool.get(SOURCE_SALES, [])
    money_added = picked.take(model_sales, policy.sales_money_target, _is_money)
    picked.take(fallback_sales, policy.sales_money_target - money_added, _is_money)

    budget = policy.sales_total_target - len(picked)
    added = picked.take(model_sales, budget, _is_action)
    picked.take(fallback_sales, budget - added, _is_action)

    sales_actions = picked.count(lambda c: c.source == SOURCE_SALES and _is_action(c))
    if sales_actions < policy.min_sales_actions:
        forced = picked.take(model_sales + fallback_sales, policy.min_sales_actions - sales_actions, _is_action)
        if forced:
            logger.info(f"Force-added {forced} sales action card(s)")

    # Peripheral sources: model first, fallback fills the cap
    for source, cap in (
        (SOURCE_SOCIAL, policy.social_max),
        (SOURCE_VIDEO, policy.video_max),
        (SOURCE_CALENDAR, policy.calendar_max),
    ):
        added = picked.take(model[source], cap)
        picked.take(pool.get(source, []), cap - added)

    cards = picked.cards[: policy.max_cards]

    if len(cards) < policy.min_cards:
        backfill = _Selection()
        for card in cards:
            backfill.add(card)
        for source in SOURCE_PRIORITY:
            backfill.take(pool.get(source, []), policy.min_cards - len(backfill))
        for source in SOURCE_PRIORITY:
            backfill.take(model[source], policy.min_cards - len(backfill))
        if len(backfill) > len(cards):
            logger.info(f"Backfilled {len(backfill) - len(cards)} card(s) to reach {len(backfill)}")
        cards = backfill.cards

    logger.info(
        f"Selected {len(cards)} insight card(s) "
        f"(model proposals: {sum(len(v) for v in model.values())})"
    )
    return cards
