"""
Core API routes: dashboard, insights, upstream refresh and health.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pulse.config import get_settings
from pulse.dashboard_service import build_dashboard_payload, build_demo_payload
from pulse.database import SessionLocal, get_db
from pulse.insight_engine import InsightEngine, RunContext
from pulse.insight_store import fetch_latest_run
from pulse.refresh_service import fetch_latest_videos_cached, refresh_all

logger = logging.getLogger(__name__)

router = APIRouter()


class GenerateRequest(BaseModel):
    use_model: bool = Field(True, alias="useModel")


def get_session_factory():
    return SessionLocal


def get_insight_engine(session_factory=Depends(get_session_factory)) -> InsightEngine:
    return InsightEngine(settings=get_settings(), session_factory=session_factory)


async def _run_or_degrade(engine: InsightEngine, use_model: bool) -> dict:
    """Runs the pipeline; on failure answers with fallback cards plus an error string."""
    context = RunContext()
    try:
        result = await engine.run(use_model=use_model, context=context)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Insight generation failed: {type(e).__name__}: {e}")
        try:
            result = await engine.degraded(f"{type(e).__name__}: {e}", context=context)
        except Exception as inner:
            logger.error(f"Degraded insight response failed: {type(inner).__name__}: {inner}")
            raise HTTPException(status_code=500, detail="Insight generation failed")
    return result.to_dict()


# ── Dashboard ───────────────────────────────────────────────────────────

@router.get("/api/dashboard")
async def dashboard(db: Session = Depends(get_db)):
    settings = get_settings()
    try:
        videos = await fetch_latest_videos_cached(settings)
        return await asyncio.to_thread(build_dashboard_payload, db, settings, videos)
    except Exception as e:
        logger.error(f"Dashboard read failed; serving demo payload: {type(e).__name__}: {e}")
        return build_demo_payload()


# ── Insights ────────────────────────────────────────────────────────────

@router.get("/api/insights/latest")
async def latest_insights(
    db: Session = Depends(get_db),
    engine: InsightEngine = Depends(get_insight_engine),
):
    stored = await asyncio.to_thread(fetch_latest_run, db)
    if stored is not None and stored.cards:
        return stored.to_dict()
    logger.info("No stored insights; generating a run synchronously")
    return await _run_or_degrade(engine, use_model=True)


@router.post("/api/insights/generate")
async def generate_insights(
    request: Optional[GenerateRequest] = Body(None),
    engine: InsightEngine = Depends(get_insight_engine),
):
    use_model = request.use_model if request is not None else True
    return await _run_or_degrade(engine, use_model=use_model)


# ── Upstream refresh ────────────────────────────────────────────────────

@router.api_route("/api/refresh", methods=["GET", "POST"])
async def refresh(session_factory=Depends(get_session_factory)):
    statuses = await refresh_all(session_factory=session_factory, settings=get_settings())
    return {
        "ok": all(status.startswith("ok") for status in statuses.values()),
        "refreshedAt": datetime.now(timezone.utc).isoformat(),
        "sources": statuses,
    }


# ── Health ──────────────────────────────────────────────────────────────

@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok", "database_connection": "successful"}
    except SQLAlchemyError as e:
        return {"status": "error", "database_connection": "failed", "error": str(e)}
