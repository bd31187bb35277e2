from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from trendaware.api.deps import get_research
from trendaware.errors import ValidationError
from trendaware.models.schemas import (
    ResearchInitRequest,
    ResearchInitResponse,
    ResearchStatusResponse,
)
from trendaware.services import logger as log_service
from trendaware.services.research_service import ResearchService

router = APIRouter(prefix="/api/research", tags=["research"])


@router.post("", response_model=ResearchInitResponse)
async def initiate_research(
    request: ResearchInitRequest,
    service: ResearchService = Depends(get_research),
):
    """Start web research in the background and return its request id."""
    if not request.title.strip():
        raise ValidationError("Title is required", details={"missing": ["title"]})

    request_id = service.initiate(request.title.strip(), request.request_id)
    log_service.log_event(
        event_type="web_research_initiated",
        message="Web research initiated",
        request_id=request_id,
        enabled=service.enabled,
    )
    return ResearchInitResponse(request_id=request_id)


@router.get("", response_model=ResearchStatusResponse, response_model_exclude_none=True)
async def research_status(
    request_id: str | None = Query(default=None, alias="requestId"),
    service: ResearchService = Depends(get_research),
):
    if not request_id:
        raise ValidationError("Request ID is required", details={"missing": ["requestId"]})

    entry = service.status(request_id)
    if entry is None:
        return JSONResponse(status_code=404, content={"status": "not_found"})
    return ResearchStatusResponse(**entry.to_dict())
