from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from trendaware.agents.orchestrator import SubmissionOrchestrator
from trendaware.agents.summary_pipeline import SummaryPipeline
from trendaware.errors import PersistenceError, RateLimited, ValidationError
from trendaware.models.events import FrameStatus
from trendaware.models.pipeline import PipelineRun, Stage
from trendaware.models.schemas import SummaryRequest
from trendaware.services.research_service import ResearchService
from trendaware.services.research_store import ResearchRequestStore

HAPPY_PATH = ["submitting", "researching", "generating", "saving", "complete"]


def _disabled_research() -> ResearchService:
    async def research_fn(title):
        raise AssertionError("research must not run without credentials")

    return ResearchService(
        ResearchRequestStore(ttl_seconds=600, max_entries=10),
        research_fn=research_fn,
        enabled=lambda: False,
    )


def _orchestrator(summarizer, **kwargs) -> SubmissionOrchestrator:
    pipeline = SummaryPipeline(summarizer, _disabled_research(), fallback_enabled=True)
    kwargs.setdefault("settle_delay", 0)
    kwargs.setdefault("mode", "stream")
    return SubmissionOrchestrator(pipeline, **kwargs)


def _saved(research_id="rec-1"):
    async def save(user_id, title, body, summary, *, web_research_used, fallback):
        return {
            "research": {"id": research_id, "user_id": user_id, "title": title, "body": body},
            "summary": {"content": summary, "web_research_used": web_research_used},
        }

    return AsyncMock(side_effect=save)


def _stages(frames) -> list[str]:
    stages: list[str] = []
    for frame in frames:
        if frame.stage and (not stages or stages[-1] != frame.stage):
            stages.append(frame.stage)
    return stages


async def _collect(agen):
    return [frame async for frame in agen]


@pytest.mark.asyncio
async def test_stablecoins_end_to_end(fake_summarizer):
    body = ("Stablecoin reserves and bank pilots. " * 4)[:120]
    assert len(body) == 120
    summarizer = fake_summarizer(["<h2>Stablecoins</h2>", "<p>Reserve rules tighten.</p>"])
    run = PipelineRun()
    save = _saved()

    with patch("trendaware.services.supabase.save_research", save):
        frames = await _collect(
            _orchestrator(summarizer).run(
                SummaryRequest(title="Stablecoins", body=body), "user-1", run=run
            )
        )

    assert _stages(frames) == HAPPY_PATH
    complete = frames[-1]
    assert complete.status is FrameStatus.COMPLETE
    assert complete.web_research_used is False
    assert complete.fallback is False
    assert complete.summary == "<h2>Stablecoins</h2><p>Reserve rules tighten.</p>"
    assert complete.record_id == "rec-1"
    assert complete.progress == 100.0
    assert all(frame.run_id == run.id for frame in frames)

    save.assert_awaited_once()
    args, kwargs = save.await_args
    assert args == ("user-1", "Stablecoins", body, complete.summary)
    assert kwargs == {"web_research_used": False, "fallback": False}

    assert run.stage is Stage.COMPLETE
    assert run.history == [Stage(s) for s in HAPPY_PATH]
    assert run.record_id == "rec-1"
    assert run.web_research is None


@pytest.mark.asyncio
async def test_progress_is_monotonic_until_complete(fake_summarizer):
    with patch("trendaware.services.supabase.save_research", _saved()):
        frames = await _collect(
            _orchestrator(fake_summarizer(["a", "b", "c"])).run(
                SummaryRequest(title="Rates", body="notes"), "user-1"
            )
        )

    values = [f.progress for f in frames if f.progress is not None]
    assert values == sorted(values)
    assert all(v <= 95.0 for v in values[:-1])
    assert values[-1] == 100.0


@pytest.mark.asyncio
async def test_persistence_failure_fails_run(fake_summarizer):
    run = PipelineRun()
    save = AsyncMock(side_effect=PersistenceError())

    with patch("trendaware.services.supabase.save_research", save):
        frames = await _collect(
            _orchestrator(fake_summarizer(["<p>ok</p>"])).run(
                SummaryRequest(title="Rates", body="notes"), "user-1", run=run
            )
        )

    last = frames[-1]
    assert last.status is FrameStatus.ERROR
    assert last.kind == "persistence_error"
    assert last.stage == "failed"
    assert last.progress == 0.0
    assert "generated but could not be saved" in last.message
    assert not any(f.status is FrameStatus.COMPLETE for f in frames)
    assert _stages(frames) == ["submitting", "researching", "generating", "saving", "failed"]
    assert run.stage is Stage.FAILED
    assert run.summary_text == "<p>ok</p>"


@pytest.mark.asyncio
async def test_save_timeout_is_persistence_error(fake_summarizer):
    async def slow_save(*args, **kwargs):
        await asyncio.sleep(5)

    with patch("trendaware.services.supabase.save_research", AsyncMock(side_effect=slow_save)):
        frames = await _collect(
            _orchestrator(fake_summarizer(["<p>ok</p>"]), run_timeout=0.2).run(
                SummaryRequest(title="Rates", body="notes"), "user-1"
            )
        )

    assert frames[-1].kind == "persistence_error"


@pytest.mark.asyncio
async def test_rate_limit_fails_run_without_saving(fake_summarizer):
    save = _saved()
    summarizer = fake_summarizer(stream_error=RateLimited(retry_after=9))

    with patch("trendaware.services.supabase.save_research", save):
        frames = await _collect(
            _orchestrator(summarizer).run(SummaryRequest(title="Rates", body="notes"), "user-1")
        )

    assert frames[-1].kind == "rate_limited"
    assert frames[-1].retry_after == 9
    save.assert_not_awaited()


@pytest.mark.asyncio
async def test_fallback_summary_is_saved_with_flag(fake_summarizer):
    from trendaware.errors import ProviderError, StreamProtocolError

    save = _saved()
    summarizer = fake_summarizer(stream_error=StreamProtocolError(), batch_error=ProviderError())

    with patch("trendaware.services.supabase.save_research", save):
        frames = await _collect(
            _orchestrator(summarizer).run(SummaryRequest(title="Rates", body="notes"), "user-1")
        )

    assert frames[-1].status is FrameStatus.COMPLETE
    assert frames[-1].fallback is True
    assert save.await_args.kwargs["fallback"] is True


@pytest.mark.asyncio
async def test_run_timeout_fails_with_timeout_kind(fake_summarizer):
    summarizer = fake_summarizer(["a", "b"], delay=1.0)

    with patch("trendaware.services.supabase.save_research", _saved()):
        frames = await _collect(
            _orchestrator(summarizer, run_timeout=0.1).run(
                SummaryRequest(title="Rates", body="notes"), "user-1"
            )
        )

    assert frames[-1].kind == "timeout"
    assert frames[-1].stage == "failed"


@pytest.mark.asyncio
async def test_validation_happens_before_any_stage(fake_summarizer):
    run = PipelineRun()
    agen = _orchestrator(fake_summarizer(["x"])).run(
        SummaryRequest(title="Rates", body=""), "user-1", run=run
    )

    with pytest.raises(ValidationError):
        await agen.__anext__()
    assert run.stage is Stage.IDLE


@pytest.mark.asyncio
async def test_closing_the_stream_cancels_the_run(fake_summarizer):
    run = PipelineRun()
    agen = _orchestrator(fake_summarizer(["x"])).run(
        SummaryRequest(title="Rates", body="notes"), "user-1", run=run
    )

    first = await agen.__anext__()
    await agen.aclose()

    assert first.stage == "submitting"
    assert run.stage is Stage.FAILED
    assert run.error.kind == "cancelled"
