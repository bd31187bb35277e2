from __future__ import annotations

from typing import AsyncGenerator, Callable, Literal

from loguru import logger

from trendaware.agents.summarizer import Summarizer
from trendaware.config import settings
from trendaware.errors import (
    RECOVERABLE_STREAM_ERRORS,
    ProviderUnavailable,
    TrendAwareError,
)
from trendaware.models.events import Frame
from trendaware.models.schemas import SummaryRequest
from trendaware.services import logger as log_service
from trendaware.services import streaming
from trendaware.services.progress import ProgressEstimator
from trendaware.services.prompt_builder import build_summary_prompt, fallback_summary
from trendaware.services.research_service import ResearchService

SummaryMode = Literal["stream", "batch"]


class SummaryPipeline:
    """Research + summarization for one submission, as a sequence of frames.

    Flow:
      1. Optional web research (skipped without credentials, never fatal)
      2. Summarization, streamed or batch depending on ``mode``
      3. On a recoverable streaming failure, one batch retry
      4. If that fails too, a templated summary flagged ``fallback``

    ``RateLimited`` is surfaced immediately and never retried.
    """

    def __init__(
        self,
        summarizer: Summarizer,
        research: ResearchService | None = None,
        *,
        fallback_enabled: bool | None = None,
    ):
        self.summarizer = summarizer
        self.research = research
        self.fallback_enabled = (
            settings.summary_fallback_enabled if fallback_enabled is None else fallback_enabled
        )

    async def run(
        self,
        request: SummaryRequest,
        *,
        mode: SummaryMode = "stream",
        web_research: str | None = None,
        progress: ProgressEstimator | None = None,
        on_research: Callable[[str | None], None] | None = None,
    ) -> AsyncGenerator[Frame, None]:
        request = request.validated()
        progress = progress or ProgressEstimator(len(request.body))

        def stamped(frame: Frame) -> Frame:
            frame.progress = round(progress.current(), 1)
            return frame

        yield stamped(streaming.processing())

        if web_research is None and self.research is not None and self.research.enabled:
            yield stamped(streaming.researching())
            web_research = await self.research.lookup(request.title)
            yield stamped(streaming.researched(bool(web_research)))

        if on_research is not None:
            on_research(web_research)

        web_research_used = bool(web_research)
        prompt = build_summary_prompt(request.title, request.body, request.profile, web_research)

        yield stamped(streaming.generating())

        summary: str | None = None
        fallback = False
        last_error: TrendAwareError | None = None

        if mode == "stream":
            fragments: list[str] = []
            try:
                async for fragment in self.summarizer.stream(prompt):
                    fragments.append(fragment)
                    yield streaming.partial(fragment)
                summary = "".join(fragments)
            except RECOVERABLE_STREAM_ERRORS as exc:
                last_error = exc
                log_service.log_event(
                    event_type="summary_stream_failed",
                    message="Streaming summary failed; retrying without streaming",
                    kind=exc.kind,
                    error=exc.message,
                    streamed_chars=sum(len(f) for f in fragments),
                )
                yield stamped(streaming.generating("Retrying summary generation..."))
            except ProviderUnavailable as exc:
                last_error = exc

        if summary is None and not isinstance(last_error, ProviderUnavailable):
            try:
                summary = await self.summarizer.generate(prompt)
            except (*RECOVERABLE_STREAM_ERRORS, ProviderUnavailable) as exc:
                last_error = exc

        if summary is None:
            if not self.fallback_enabled or last_error is None:
                raise last_error or ProviderUnavailable("No summarizer available")
            logger.warning(
                f"Summarizer unavailable ({last_error.kind}); substituting templated fallback summary"
            )
            summary = fallback_summary(request.title, request.body, request.profile)
            fallback = True

        yield streaming.complete(
            summary,
            web_research_used=web_research_used,
            fallback=fallback,
        )
