from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from trendaware.agents.summary_pipeline import SummaryPipeline
from trendaware.api.deps import get_summary_pipeline
from trendaware.config import settings
from trendaware.errors import StreamProtocolError, error_from_kind
from trendaware.models.events import FrameStatus
from trendaware.models.schemas import BatchSummaryRequest, SummaryRequest, SummaryResponse
from trendaware.services import logger as log_service
from trendaware.services import streaming

router = APIRouter(prefix="/api/summary", tags=["summary"])

NDJSON_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("/stream")
async def stream_summary(
    request: SummaryRequest,
    pipeline: SummaryPipeline = Depends(get_summary_pipeline),
):
    """Stream status, progress and summary fragments as NDJSON frames."""
    request = request.validated()
    log_service.log_event(
        event_type="summary_stream_started",
        message="Summary stream started",
        title=request.title[:100],
        body_chars=len(request.body),
        personalized=request.profile is not None,
    )
    frames = streaming.with_heartbeat(
        streaming.guard(pipeline.run(request, mode="stream"), context="summary_stream"),
        settings.stream_heartbeat_seconds,
    )
    return StreamingResponse(
        streaming.encode_ndjson(frames),
        media_type="application/x-ndjson",
        headers=NDJSON_HEADERS,
    )


@router.post("", response_model=SummaryResponse)
async def create_summary(
    request: BatchSummaryRequest,
    pipeline: SummaryPipeline = Depends(get_summary_pipeline),
):
    """Non-streaming summary. Errors are returned with their HTTP status."""
    request = request.validated()
    terminal = None
    async for frame in pipeline.run(request, mode="batch", web_research=request.web_research):
        if frame.is_terminal:
            terminal = frame

    if terminal is None:
        raise StreamProtocolError("Summary generation ended without a result")
    if terminal.status is FrameStatus.ERROR:
        raise error_from_kind(terminal.kind, terminal.message, retry_after=terminal.retry_after)

    return SummaryResponse(
        summary=terminal.summary or "",
        web_research_used=bool(terminal.web_research_used),
        fallback=bool(terminal.fallback),
    )
