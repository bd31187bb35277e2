"""HTTP client for the TrendAware API.

Mirrors what the dashboard form does: kick off web research, poll it, consume
the NDJSON summary stream with a stall timer and fall back to the batch
endpoint when the stream breaks.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

import httpx
from loguru import logger

from trendaware.config import settings
from trendaware.errors import (
    RECOVERABLE_STREAM_ERRORS,
    StageTimeout,
    StreamProtocolError,
    TrendAwareError,
    error_from_kind,
)
from trendaware.models.events import Frame
from trendaware.models.schemas import Profile
from trendaware.services.frame_reader import SummaryAccumulator, read_frames

FrameCallback = Callable[[Frame], None]


@dataclass
class SummaryResult:
    summary: str
    web_research_used: bool = False
    fallback: bool = False
    record_id: str | None = None
    run_id: str | None = None


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    try:
        return float(raw) if raw else None
    except ValueError:
        return None


def _error_from_response(response: httpx.Response) -> TrendAwareError:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    message = payload.get("error") or payload.get("detail") or f"HTTP {response.status_code}"
    return error_from_kind(
        payload.get("kind"),
        str(message),
        retry_after=payload.get("retryAfter") or _retry_after(response),
    )


class TrendAwareClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        access_token: str | None = None,
        stall_timeout: float | None = None,
        poll_attempts: int | None = None,
        poll_interval: float | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self.stall_timeout = (
            settings.stream_stall_timeout_seconds if stall_timeout is None else stall_timeout
        )
        self.poll_attempts = settings.research_poll_attempts if poll_attempts is None else poll_attempts
        self.poll_interval = (
            settings.research_poll_interval_seconds if poll_interval is None else poll_interval
        )

    async def __aenter__(self) -> "TrendAwareClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # --- Research ---

    async def start_research(self, title: str, request_id: str | None = None) -> str:
        body: dict[str, Any] = {"title": title}
        if request_id:
            body["requestId"] = request_id
        response = await self._http.post("/api/research", json=body)
        if not response.is_success:
            raise _error_from_response(response)
        return response.json()["requestId"]

    async def research_status(self, request_id: str) -> dict[str, Any]:
        response = await self._http.get("/api/research", params={"requestId": request_id})
        if response.status_code == 404:
            return {"status": "not_found"}
        if not response.is_success:
            raise _error_from_response(response)
        return response.json()

    async def poll_research(self, request_id: str) -> str | None:
        """Poll until research settles; None on failure or when the budget runs out."""
        for attempt in range(max(self.poll_attempts, 1)):
            status = await self.research_status(request_id)
            state = status.get("status")
            if state == "completed":
                return status.get("research") or None
            if state in ("failed", "not_found"):
                logger.info(f"Web research {request_id} {state}; continuing without it")
                return None
            if attempt + 1 < self.poll_attempts:
                await asyncio.sleep(self.poll_interval)
        logger.info(f"Gave up polling web research {request_id}")
        return None

    async def research(self, title: str) -> str | None:
        """Start and poll research; any failure means continuing without it."""
        try:
            return await self.poll_research(await self.start_research(title))
        except (TrendAwareError, httpx.HTTPError) as exc:
            logger.warning(f"Web research unavailable ({type(exc).__name__}); continuing without it")
            return None

    # --- Summaries ---

    @staticmethod
    def _payload(title: str, body: str, profile: Profile | None) -> dict[str, Any]:
        payload: dict[str, Any] = {"title": title, "body": body}
        if profile is not None:
            payload["profile"] = profile.model_dump(by_alias=True)
        return payload

    async def _consume(
        self,
        path: str,
        payload: dict[str, Any],
        on_frame: FrameCallback | None,
    ) -> tuple[SummaryAccumulator, Frame | None]:
        accumulator = SummaryAccumulator(stall_timeout=self.stall_timeout)
        last_with_run: Frame | None = None
        try:
            async with self._http.stream("POST", path, json=payload) as response:
                if not response.is_success:
                    await response.aread()
                    raise _error_from_response(response)

                frames = read_frames(response.aiter_bytes()).__aiter__()
                try:
                    while True:
                        try:
                            frame = await asyncio.wait_for(
                                frames.__anext__(), timeout=self.stall_timeout
                            )
                        except StopAsyncIteration:
                            break
                        except asyncio.TimeoutError:
                            raise StageTimeout(
                                f"No data from the summary stream for {self.stall_timeout:g}s",
                                stage="generating",
                            ) from None
                        accumulator.apply(frame)
                        if frame.run_id:
                            last_with_run = frame
                        if on_frame is not None:
                            on_frame(frame)
                finally:
                    await frames.aclose()
        except httpx.TransportError as exc:
            raise StreamProtocolError(
                "Connection to the summary stream was lost",
                details={"received_chars": len(accumulator.text)},
            ) from exc
        return accumulator, last_with_run

    async def stream_summary(
        self,
        title: str,
        body: str,
        profile: Profile | None = None,
        *,
        on_frame: FrameCallback | None = None,
    ) -> SummaryResult:
        accumulator, _ = await self._consume(
            "/api/summary/stream", self._payload(title, body, profile), on_frame
        )
        summary = accumulator.finish()
        return SummaryResult(
            summary=summary,
            web_research_used=accumulator.web_research_used,
            fallback=accumulator.fallback,
        )

    async def summarize(
        self,
        title: str,
        body: str,
        profile: Profile | None = None,
        *,
        web_research: str | None = None,
    ) -> SummaryResult:
        payload = self._payload(title, body, profile)
        if web_research:
            payload["webResearch"] = web_research
        response = await self._http.post("/api/summary", json=payload)
        if not response.is_success:
            raise _error_from_response(response)
        data = response.json()
        return SummaryResult(
            summary=data["summary"],
            web_research_used=bool(data.get("webResearchUsed")),
            fallback=bool(data.get("fallback")),
        )

    async def generate(
        self,
        title: str,
        body: str,
        profile: Profile | None = None,
        *,
        on_frame: FrameCallback | None = None,
    ) -> SummaryResult:
        """Stream a summary; on a broken stream retry once through the batch endpoint."""
        try:
            return await self.stream_summary(title, body, profile, on_frame=on_frame)
        except RECOVERABLE_STREAM_ERRORS as exc:
            logger.warning(f"Summary stream failed ({exc.kind}); retrying with batch request")

        web_research = await self.research(title)
        return await self.summarize(title, body, profile, web_research=web_research)

    # --- Submissions ---

    async def submit(
        self,
        title: str,
        body: str,
        profile: Profile | None = None,
        *,
        on_frame: FrameCallback | None = None,
    ) -> SummaryResult:
        """Run a full authenticated submission and return the saved result."""
        accumulator, last = await self._consume(
            "/api/submissions/stream", self._payload(title, body, profile), on_frame
        )
        summary = accumulator.finish()
        terminal = accumulator.terminal
        if terminal is None:
            # Only the complete frame confirms the record was stored.
            raise StreamProtocolError("The submission ended before the research was saved")
        return SummaryResult(
            summary=summary,
            web_research_used=accumulator.web_research_used,
            fallback=accumulator.fallback,
            record_id=terminal.record_id,
            run_id=last.run_id if last is not None else None,
        )
