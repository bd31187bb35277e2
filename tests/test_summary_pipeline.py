from __future__ import annotations

import asyncio

import pytest

from trendaware.agents.summary_pipeline import SummaryPipeline
from trendaware.errors import (
    ProviderError,
    ProviderUnavailable,
    RateLimited,
    StageTimeout,
    StreamProtocolError,
    ValidationError,
)
from trendaware.models.events import FrameStatus
from trendaware.models.schemas import Profile, SummaryRequest
from trendaware.services.frame_reader import SummaryAccumulator
from trendaware.services.research_service import ResearchService
from trendaware.services.research_store import ResearchRequestStore

REQUEST = SummaryRequest(title="Stablecoins", body="Notes on reserve-backed tokens.")


def _research(research_fn, *, enabled=True, timeout=1.0) -> ResearchService:
    return ResearchService(
        ResearchRequestStore(ttl_seconds=600, max_entries=10),
        research_fn=research_fn,
        enabled=lambda: enabled,
        timeout=timeout,
        poll_attempts=5,
        poll_interval=0.05,
    )


async def _run(pipeline, request=REQUEST, **kwargs):
    return [frame async for frame in pipeline.run(request, **kwargs)]


def _summary(frames) -> SummaryAccumulator:
    acc = SummaryAccumulator()
    for frame in frames:
        acc.apply(frame)
    return acc


@pytest.mark.asyncio
async def test_streamed_summary_is_not_a_fallback(fake_summarizer):
    summarizer = fake_summarizer(["<h2>Stable", "coins</h2>"])
    frames = await _run(SummaryPipeline(summarizer, fallback_enabled=True))

    statuses = [f.status for f in frames if f.status]
    assert statuses == [FrameStatus.PROCESSING, FrameStatus.GENERATING, FrameStatus.COMPLETE]
    assert [f.partial_summary for f in frames if f.partial_summary] == ["<h2>Stable", "coins</h2>"]
    complete = frames[-1]
    assert complete.summary == "<h2>Stablecoins</h2>"
    assert complete.fallback is False
    assert complete.web_research_used is False
    assert summarizer.generate_calls == 0


@pytest.mark.asyncio
async def test_invalid_request_rejected_before_provider_call(fake_summarizer):
    summarizer = fake_summarizer(["x"])

    with pytest.raises(ValidationError) as exc_info:
        await _run(SummaryPipeline(summarizer), SummaryRequest(title=" ", body="notes"))

    assert exc_info.value.details == {"missing": ["title"]}
    assert summarizer.stream_calls == 0


@pytest.mark.asyncio
async def test_batch_mode_uses_single_call(fake_summarizer):
    summarizer = fake_summarizer(batch_text="<p>batch</p>")

    frames = await _run(SummaryPipeline(summarizer), mode="batch")

    assert summarizer.stream_calls == 0
    assert frames[-1].summary == "<p>batch</p>"
    assert not any(f.partial_summary for f in frames)


@pytest.mark.parametrize(
    "error",
    [StreamProtocolError(), StageTimeout(stage="generating"), ProviderError("connection reset")],
)
@pytest.mark.asyncio
async def test_stream_failure_retries_once_in_batch(fake_summarizer, error):
    summarizer = fake_summarizer(["<p>part"], stream_error=error, batch_text="<p>whole</p>")

    frames = await _run(SummaryPipeline(summarizer, fallback_enabled=True))

    assert summarizer.generate_calls == 1
    assert any(f.message == "Retrying summary generation..." for f in frames)
    assert frames[-1].summary == "<p>whole</p>"
    assert frames[-1].fallback is False
    # the authoritative summary replaces fragments streamed before the failure
    assert _summary(frames).finish() == "<p>whole</p>"


@pytest.mark.asyncio
async def test_templated_fallback_when_both_attempts_fail(fake_summarizer):
    summarizer = fake_summarizer(
        stream_error=StreamProtocolError(), batch_error=ProviderError("HTTP 500")
    )
    request = SummaryRequest(
        title="Stablecoins", body="x" * 120, profile=Profile(display_name="Ada")
    )

    frames = await _run(SummaryPipeline(summarizer, fallback_enabled=True), request)

    complete = frames[-1]
    assert complete.status is FrameStatus.COMPLETE
    assert complete.fallback is True
    assert "Stablecoins" in complete.summary
    assert "120 characters" in complete.summary
    assert "Ada" in complete.summary


@pytest.mark.asyncio
async def test_failure_raised_when_fallback_disabled(fake_summarizer):
    summarizer = fake_summarizer(
        stream_error=StreamProtocolError(), batch_error=ProviderError("HTTP 500")
    )

    with pytest.raises(ProviderError):
        await _run(SummaryPipeline(summarizer, fallback_enabled=False))


@pytest.mark.asyncio
async def test_rate_limit_is_never_retried(fake_summarizer):
    summarizer = fake_summarizer(stream_error=RateLimited(retry_after=30), batch_text="unused")

    with pytest.raises(RateLimited):
        await _run(SummaryPipeline(summarizer, fallback_enabled=True))

    assert summarizer.generate_calls == 0


@pytest.mark.asyncio
async def test_missing_summarizer_credentials_fall_back_without_batch(fake_summarizer):
    summarizer = fake_summarizer(stream_error=ProviderUnavailable(), batch_text="unused")

    frames = await _run(SummaryPipeline(summarizer, fallback_enabled=True))

    assert summarizer.generate_calls == 0
    assert frames[-1].fallback is True


@pytest.mark.asyncio
async def test_web_research_is_used_when_available(fake_summarizer):
    async def research_fn(title):
        return "Issuance hit a record in May."

    summarizer = fake_summarizer(["<p>ok</p>"])
    seen = []

    frames = await _run(
        SummaryPipeline(summarizer, _research(research_fn)), on_research=seen.append
    )

    statuses = [f.status for f in frames if f.status]
    assert statuses[:4] == [
        FrameStatus.PROCESSING,
        FrameStatus.RESEARCHING,
        FrameStatus.RESEARCHED,
        FrameStatus.GENERATING,
    ]
    assert frames[-1].web_research_used is True
    assert seen == ["Issuance hit a record in May."]
    assert "Issuance hit a record in May." in summarizer.prompts[0].user


@pytest.mark.asyncio
async def test_research_failure_continues_without_research(fake_summarizer):
    async def research_fn(title):
        raise ProviderError("Perplexity API error (HTTP 502)")

    summarizer = fake_summarizer(["<p>ok</p>"])
    seen = []

    frames = await _run(
        SummaryPipeline(summarizer, _research(research_fn)), on_research=seen.append
    )

    researched = next(f for f in frames if f.status is FrameStatus.RESEARCHED)
    assert researched.web_research_used is False
    assert frames[-1].status is FrameStatus.COMPLETE
    assert frames[-1].web_research_used is False
    assert seen == [None]


@pytest.mark.asyncio
async def test_research_timeout_continues_without_research(fake_summarizer):
    async def research_fn(title):
        await asyncio.sleep(5)
        return "too late"

    summarizer = fake_summarizer(["<p>ok</p>"])
    frames = await _run(SummaryPipeline(summarizer, _research(research_fn, timeout=0.05)))

    assert frames[-1].status is FrameStatus.COMPLETE
    assert frames[-1].web_research_used is False


@pytest.mark.asyncio
async def test_disabled_research_skips_research_frames(fake_summarizer):
    async def research_fn(title):
        return "unused"

    frames = await _run(
        SummaryPipeline(fake_summarizer(["ok"]), _research(research_fn, enabled=False))
    )

    assert FrameStatus.RESEARCHING not in [f.status for f in frames]


@pytest.mark.asyncio
async def test_status_frames_carry_non_decreasing_progress(fake_summarizer):
    frames = await _run(SummaryPipeline(fake_summarizer(["a", "b"])))

    values = [f.progress for f in frames if f.progress is not None]
    assert values == sorted(values)
    assert values[-1] == 100.0
