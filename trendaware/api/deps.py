from __future__ import annotations

from fastapi import Header, HTTPException

from trendaware.agents.orchestrator import SubmissionOrchestrator
from trendaware.agents.summarizer import Summarizer
from trendaware.agents.summary_pipeline import SummaryPipeline
from trendaware.services import supabase as db
from trendaware.services.research_service import ResearchService, get_research_service

_pipeline: SummaryPipeline | None = None


def get_research() -> ResearchService:
    return get_research_service()


def get_summary_pipeline() -> SummaryPipeline:
    """Shared pipeline; all per-run state lives on the run, not here."""
    global _pipeline
    if _pipeline is None:
        _pipeline = SummaryPipeline(Summarizer(), get_research_service())
    return _pipeline


def get_orchestrator() -> SubmissionOrchestrator:
    return SubmissionOrchestrator(get_summary_pipeline())


async def current_user_id(authorization: str | None = Header(default=None)) -> str:
    """Resolve ``Authorization: Bearer <token>`` to a user id, else 401."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        user_id = await db.get_user_id(token.strip())
    except Exception as exc:
        # supabase-py raises AuthApiError for expired or forged tokens
        raise HTTPException(status_code=401, detail="Invalid or expired session") from exc
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return user_id
