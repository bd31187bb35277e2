from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timezone
from typing import AsyncIterator

from loguru import logger

from trendaware.errors import RateLimited, StageTimeout, TrendAwareError, UnexpectedError
from trendaware.models.events import Frame, FrameStatus
from trendaware.services import logger as log_service


def processing(message: str = "Starting research...") -> Frame:
    return Frame(status=FrameStatus.PROCESSING, message=message)


def researching(message: str = "Researching your topic...") -> Frame:
    return Frame(status=FrameStatus.RESEARCHING, message=message)


def researched(used: bool) -> Frame:
    if used:
        return Frame(
            status=FrameStatus.RESEARCHED,
            message="Web research complete",
            web_research_used=True,
        )
    return Frame(
        status=FrameStatus.RESEARCHED,
        message="Continuing without web research",
        web_research_used=False,
    )


def generating(message: str = "Generating summary...") -> Frame:
    return Frame(status=FrameStatus.GENERATING, message=message)


def partial(fragment: str) -> Frame:
    return Frame(partial_summary=fragment)


def progress(percent: float) -> Frame:
    return Frame(progress=round(percent, 1))


def heartbeat() -> Frame:
    return Frame(heartbeat=True, timestamp=datetime.now(timezone.utc).isoformat())


def complete(
    summary: str,
    *,
    web_research_used: bool,
    fallback: bool,
    message: str = "Summary generation complete",
) -> Frame:
    return Frame(
        status=FrameStatus.COMPLETE,
        message=message,
        summary=summary,
        web_research_used=web_research_used,
        fallback=fallback,
        progress=100.0,
    )


def error(exc: TrendAwareError) -> Frame:
    frame = Frame(status=FrameStatus.ERROR, message=exc.message, kind=exc.kind)
    if isinstance(exc, RateLimited) and exc.retry_after is not None:
        frame.retry_after = exc.retry_after
    return frame


async def guard(frames: AsyncIterator[Frame], *, context: str = "summary") -> AsyncIterator[Frame]:
    """Turn a failing frame source into a terminal ``error`` frame."""
    try:
        async for frame in frames:
            yield frame
    except TrendAwareError as exc:
        log_service.log_event(
            event_type=f"{context}_failed",
            message=exc.message,
            kind=exc.kind,
        )
        yield error(exc)
    except Exception:
        logger.exception(f"Unhandled error in {context} stream")
        yield error(UnexpectedError())


async def with_heartbeat(frames: AsyncIterator[Frame], interval: float) -> AsyncIterator[Frame]:
    """Interleave keepalive frames whenever the source is idle for ``interval``.

    The pending read is cancelled on every exit path so no timer or task
    outlives the stream.
    """
    iterator = frames.__aiter__()
    pending: asyncio.Future | None = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(iterator.__anext__())
            done, _ = await asyncio.wait({pending}, timeout=interval)
            if not done:
                yield heartbeat()
                continue
            finished, pending = pending, None
            try:
                frame = finished.result()
            except StopAsyncIteration:
                return
            yield frame
    finally:
        if pending is not None:
            pending.cancel()
            with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                await pending
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


async def bounded(
    frames: AsyncIterator[Frame],
    deadline: float,
    *,
    stage: str = "run",
) -> AsyncIterator[Frame]:
    """Stop a frame source once the loop clock passes ``deadline``."""
    loop = asyncio.get_running_loop()
    iterator = frames.__aiter__()
    try:
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise StageTimeout(stage=stage)
            try:
                frame = await asyncio.wait_for(iterator.__anext__(), timeout=remaining)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError:
                raise StageTimeout(stage=stage) from None
            yield frame
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


async def encode_ndjson(frames: AsyncIterator[Frame]) -> AsyncIterator[str]:
    async for frame in frames:
        yield frame.format()
