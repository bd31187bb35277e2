from __future__ import annotations

import asyncio
from typing import AsyncGenerator

from loguru import logger

from trendaware.agents.summary_pipeline import SummaryMode, SummaryPipeline
from trendaware.config import settings
from trendaware.errors import (
    Cancelled,
    PersistenceError,
    TrendAwareError,
    UnexpectedError,
)
from trendaware.models.events import Frame, FrameStatus
from trendaware.models.pipeline import STAGE_ORDER, PipelineRun, Stage
from trendaware.models.schemas import SummaryRequest
from trendaware.services import logger as log_service
from trendaware.services import streaming
from trendaware.services import supabase as db
from trendaware.services.frame_reader import SummaryAccumulator
from trendaware.services.progress import ProgressEstimator


class SubmissionOrchestrator:
    """Drives one research submission from submit to saved record.

    Stages: idle -> submitting -> researching -> generating -> saving -> complete,
    with ``failed`` reachable from any started stage. Every frame the caller
    sees is stamped with the run id and the stage it was produced in.
    """

    def __init__(
        self,
        summary_pipeline: SummaryPipeline,
        *,
        mode: SummaryMode | None = None,
        settle_delay: float | None = None,
        stall_timeout: float | None = None,
        run_timeout: float | None = None,
    ):
        self.summary_pipeline = summary_pipeline
        self.mode: SummaryMode = mode or ("batch" if settings.summary_mode == "batch" else "stream")
        self.settle_delay = (
            settings.submit_settle_delay_seconds if settle_delay is None else settle_delay
        )
        self.stall_timeout = (
            settings.stream_stall_timeout_seconds if stall_timeout is None else stall_timeout
        )
        self.run_timeout = settings.run_timeout_seconds if run_timeout is None else run_timeout

    async def run(
        self,
        request: SummaryRequest,
        user_id: str,
        *,
        run: PipelineRun | None = None,
    ) -> AsyncGenerator[Frame, None]:
        request = request.validated()
        run = run or PipelineRun()
        progress = ProgressEstimator(len(request.body))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.run_timeout

        def stamp(frame: Frame) -> Frame:
            frame.stage = run.stage.value
            frame.run_id = run.id
            if frame.progress is not None:
                run.progress_percent = progress.observe(frame.progress)
                frame.progress = round(run.progress_percent, 1)
            return frame

        def enter(stage: Stage, message: str, status: FrameStatus | None = None) -> Frame:
            run.advance(stage)
            run.progress_percent = progress.current()
            log_service.log_pipeline_stage(run.id, stage.value, run.progress_percent)
            return stamp(Frame(status=status, message=message, progress=run.progress_percent))

        def record_research(text: str | None) -> None:
            run.web_research = text

        try:
            yield enter(Stage.SUBMITTING, "Submitting research...", FrameStatus.PROCESSING)
            if self.settle_delay > 0:
                await asyncio.sleep(self.settle_delay)

            yield enter(Stage.RESEARCHING, "Preparing research...", FrameStatus.PROCESSING)

            accumulator = SummaryAccumulator(stall_timeout=self.stall_timeout)
            frames = streaming.bounded(
                self.summary_pipeline.run(
                    request,
                    mode=self.mode,
                    progress=progress,
                    on_research=record_research,
                ),
                deadline,
                stage="generating",
            )
            try:
                async for frame in frames:
                    accumulator.apply(frame)
                    if frame.web_research_used:
                        run.mark_web_research_used(True)
                    if frame.is_terminal:
                        continue
                    if frame.status is FrameStatus.GENERATING and _before(
                        run.stage, Stage.GENERATING
                    ):
                        run.advance(Stage.GENERATING)
                        log_service.log_pipeline_stage(run.id, run.stage.value, progress.current())
                    if frame.partial_summary:
                        run.append_summary(frame.partial_summary)
                    yield stamp(frame)
            finally:
                await frames.aclose()

            summary = accumulator.finish()
            run.summary_text = summary
            run.fallback = accumulator.fallback
            run.mark_web_research_used(accumulator.web_research_used)
            if _before(run.stage, Stage.GENERATING):
                run.advance(Stage.GENERATING)

            yield enter(Stage.SAVING, "Saving research to database...")
            remaining = max(deadline - loop.time(), 0.001)
            try:
                saved = await asyncio.wait_for(
                    db.save_research(
                        user_id,
                        request.title,
                        request.body,
                        summary,
                        web_research_used=run.web_research_used,
                        fallback=run.fallback,
                    ),
                    timeout=remaining,
                )
            except asyncio.TimeoutError:
                raise PersistenceError(details={"reason": "timeout"}) from None
            run.record_id = str(saved["research"]["id"])

            run.advance(Stage.COMPLETE)
            run.progress_percent = progress.finish()
            log_service.log_pipeline_stage(
                run.id,
                run.stage.value,
                run.progress_percent,
                {"record_id": run.record_id, "fallback": run.fallback},
            )
            done = streaming.complete(
                summary,
                web_research_used=run.web_research_used,
                fallback=run.fallback,
                message="Research saved",
            )
            done.record_id = run.record_id
            yield stamp(done)
        except TrendAwareError as exc:
            yield self._failed(run, progress, exc)
        except (asyncio.CancelledError, GeneratorExit):
            if not run.is_terminal:
                run.fail(Cancelled())
                log_service.log_pipeline_stage(run.id, run.stage.value, 0.0, {"kind": "cancelled"})
            raise
        except Exception:
            logger.exception(f"Unhandled error in submission run {run.id}")
            yield self._failed(run, progress, UnexpectedError())

    def _failed(self, run: PipelineRun, progress: ProgressEstimator, exc: TrendAwareError) -> Frame:
        run.fail(exc)
        progress.reset()
        log_service.log_pipeline_stage(
            run.id,
            run.stage.value,
            run.progress_percent,
            {"kind": exc.kind, "error": exc.message},
        )
        frame = streaming.error(exc)
        frame.stage = run.stage.value
        frame.run_id = run.id
        frame.progress = 0.0
        return frame


def _before(current: Stage, target: Stage) -> bool:
    return STAGE_ORDER.index(current) < STAGE_ORDER.index(target)
