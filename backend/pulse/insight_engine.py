"""
Insight Engine: daily insight generation for the dashboard.

One run collects the inputs, summarizes sales, asks the model for cards
(optional), selects the final set against the policy, prepends the summary
card and stores the result under the run date. Every step degrades to the
deterministic fallback cards instead of failing the run.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from cache.cache import stable_hash
from pulse.collector import InputCollector, Loader, build_default_loaders
from pulse.config import InsightPolicy, Settings, get_settings, load_policy
from pulse.database import SessionLocal
from pulse.fallback_cards import build_fallback_pool
from pulse.insight_models import InputBundle, InsightRunResult
from pulse.insight_selector import select_insights
from pulse.insight_store import compute_run_date, replace_run
from pulse.llm_service import LLMConfig, request_insight_cards
from pulse.prompt_builder import build_insights_prompt, build_prompt_payload
from pulse.sales_aggregator import summarize_sales
from pulse.summary_synthesizer import synthesize_summary

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """What a run has gathered so far; lets a failed run degrade with partial inputs."""
    run_date: Optional[str] = None
    bundle: Optional[InputBundle] = None


class InsightEngine:
    """Generates and stores the daily insight card set."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        policy: Optional[InsightPolicy] = None,
        llm_config: Optional[LLMConfig] = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.settings = settings or get_settings()
        self.policy = policy or load_policy(self.settings.policy_path)
        self.llm_config = llm_config
        self.session_factory = session_factory

    def _config(self) -> LLMConfig:
        if self.llm_config is None:
            self.llm_config = LLMConfig()
        return self.llm_config

    def _store(self, result: InsightRunResult) -> bool:
        db = self.session_factory()
        try:
            return replace_run(db, result)
        finally:
            db.close()

    async def run(
        self,
        use_model: bool = True,
        now: Optional[datetime] = None,
        loaders: Optional[Dict[str, Loader]] = None,
        store: bool = True,
        context: Optional[RunContext] = None,
    ) -> InsightRunResult:
        """
        Executes one full generation run.

        Args:
            use_model: False skips both model calls (fallback cards only)
            now: reference clock (aware); defaults to the current UTC time
            loaders: input loaders; defaults to the stored tables plus live videos
            store: persist the result with replace-per-run-date semantics
            context: filled in as the run progresses

        Returns:
            InsightRunResult with the summary card first
        """
        now = now or datetime.now(timezone.utc)
        context = context if context is not None else RunContext()
        policy = self.policy
        run_date = compute_run_date(self.settings.report_timezone, now)
        context.run_date = run_date

        if loaders is None:
            loaders = build_default_loaders(self.session_factory, self.settings, now)
        bundle = await InputCollector(loaders, timeout=self.settings.upstream_timeout_seconds).collect()
        context.bundle = bundle

        summary = summarize_sales(bundle.sales_rows, now)
        pool = build_fallback_pool(bundle, summary, now, run_date, policy)

        raw_items = []
        config = self._config() if use_model else None
        if config is not None and config.available:
            prompt = build_insights_prompt(summary, bundle, now, policy)
            raw_items = await request_insight_cards(prompt, config)
            logger.info(f"Model proposed {len(raw_items)} card(s)")
        else:
            logger.info("Model disabled or unavailable; using fallback cards only")

        cards = select_insights(raw_items, run_date, summary, bundle, policy, now, fallback_pool=pool)
        summary_card = await synthesize_summary(
            cards, bundle.calendar_events, summary, run_date, now,
            config=config, policy=policy, use_model=use_model,
        )

        result = InsightRunResult(
            run_date=run_date,
            cards=[summary_card] + cards,
            input_hash=stable_hash(build_prompt_payload(summary, bundle, now, policy)),
        )
        if store:
            stored = await asyncio.to_thread(self._store, result)
            if not stored:
                logger.warning(f"Insights for {run_date} were generated but not stored")
        logger.info(f"Insight run {run_date} finished with {len(result.cards)} card(s)")
        return result

    async def degraded(
        self,
        error: str,
        now: Optional[datetime] = None,
        context: Optional[RunContext] = None,
    ) -> InsightRunResult:
        """Fallback-only result over whatever inputs the failed run had gathered."""
        now = now or datetime.now(timezone.utc)
        context = context or RunContext()
        run_date = context.run_date or compute_run_date(self.settings.report_timezone, now)
        bundle = context.bundle or InputBundle()
        summary = summarize_sales(bundle.sales_rows, now)
        cards = select_insights([], run_date, summary, bundle, self.policy, now)
        summary_card = await synthesize_summary(
            cards, bundle.calendar_events, summary, run_date, now, policy=self.policy, use_model=False,
        )
        return InsightRunResult(run_date=run_date, cards=[summary_card] + cards, error=error)


async def generate_insights(
    session_factory: Callable[[], Session] = SessionLocal,
    settings: Optional[Settings] = None,
    use_model: bool = True,
    now: Optional[datetime] = None,
) -> InsightRunResult:
    """Generate-and-store with default wiring (used by the daily schedule)."""
    engine = InsightEngine(settings=settings, session_factory=session_factory)
    return await engine.run(use_model=use_model, now=now)
