"""Authenticated submission runs: research, summarize and save in one call."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sse_starlette.sse import EventSourceResponse

from trendaware.agents.orchestrator import SubmissionOrchestrator
from trendaware.api.deps import current_user_id, get_orchestrator
from trendaware.api.routes.summary import NDJSON_HEADERS
from trendaware.config import settings
from trendaware.models.pipeline import PipelineRun
from trendaware.models.schemas import SummaryRequest
from trendaware.services import logger as log_service
from trendaware.services import streaming

router = APIRouter(prefix="/api/submissions", tags=["submissions"])


def _start(request: SummaryRequest, user_id: str, orchestrator: SubmissionOrchestrator):
    request = request.validated()
    run = PipelineRun()
    log_service.log_event(
        event_type="submission_started",
        message="Research submission started",
        run_id=run.id,
        user_id=user_id,
        title=request.title[:100],
    )
    frames = streaming.guard(orchestrator.run(request, user_id, run=run), context="submission")
    return streaming.with_heartbeat(frames, settings.stream_heartbeat_seconds)


@router.post("/stream")
async def stream_submission(
    request: SummaryRequest,
    user_id: str = Depends(current_user_id),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
):
    frames = _start(request, user_id, orchestrator)
    return StreamingResponse(
        streaming.encode_ndjson(frames),
        media_type="application/x-ndjson",
        headers=NDJSON_HEADERS,
    )


@router.post("/events")
async def submission_events(
    request: SummaryRequest,
    user_id: str = Depends(current_user_id),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
):
    """Same run as ``/stream``, delivered as Server-Sent Events."""
    frames = _start(request, user_id, orchestrator)

    async def event_generator():
        async for frame in frames:
            yield {"event": "frame", "data": frame.to_json()}

    return EventSourceResponse(event_generator())
