"""Consumer side of the NDJSON summary stream.

``FrameDecoder`` turns arbitrary transport chunks into frames and
``SummaryAccumulator`` folds frames into the running summary, enforcing the
terminal-marker rule when the transport ends.
"""
from __future__ import annotations

import codecs
import json
import time
from typing import AsyncIterable, AsyncIterator, Callable

from loguru import logger

from trendaware.errors import StreamProtocolError, error_from_kind
from trendaware.models.events import Frame, FrameStatus


class FrameDecoder:
    """Incremental newline-delimited JSON decoder.

    A chunk may carry zero, one or several frames, and a frame (or a single
    multi-byte character) may be split across chunks.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.malformed = 0

    def feed(self, chunk: bytes | str) -> list[Frame]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def flush(self) -> list[Frame]:
        """Parse whatever remains once the transport has ended."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._parse_lines([tail])

    def _parse_lines(self, lines: list[str]) -> list[Frame]:
        frames: list[Frame] = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            frame = self._parse_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def _parse_line(self, line: str) -> Frame | None:
        try:
            payload = json.loads(line)
            if not isinstance(payload, dict):
                raise ValueError("frame is not a JSON object")
            return Frame.from_dict(payload)
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError
            self.malformed += 1
            logger.warning(f"Skipping malformed frame ({exc}): {line[:200]}")
            return None


async def read_frames(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[Frame]:
    """Decode frames from an async byte stream in arrival order."""
    decoder = FrameDecoder()
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
    for frame in decoder.flush():
        yield frame


class SummaryAccumulator:
    """Fold frames into the accumulated summary of one run."""

    def __init__(
        self,
        *,
        stall_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.stall_timeout = stall_timeout
        self._clock = clock
        self._fragments: list[str] = []
        self.web_research_used = False
        self.progress = 0.0
        self.status: FrameStatus | None = None
        self.message: str | None = None
        self.terminal: Frame | None = None
        self.last_frame_at: float | None = None
        self.last_was_heartbeat = False

    @property
    def text(self) -> str:
        """Concatenation of every fragment seen so far."""
        return "".join(self._fragments)

    @property
    def summary(self) -> str:
        if self.terminal is not None and self.terminal.summary is not None:
            return self.terminal.summary
        return self.text

    @property
    def fallback(self) -> bool:
        return bool(self.terminal and self.terminal.fallback)

    def apply(self, frame: Frame) -> None:
        self.last_frame_at = self._clock()
        if frame.is_heartbeat:
            self.last_was_heartbeat = True
            return
        self.last_was_heartbeat = False

        if self.terminal is not None:
            logger.debug("Ignoring frame received after the terminal frame")
            return

        if frame.web_research_used:
            self.web_research_used = True
        if frame.progress is not None:
            self.progress = max(self.progress, min(frame.progress, 100.0))
        if frame.partial_summary:
            self._fragments.append(frame.partial_summary)
        if frame.status is not None:
            self.status = frame.status
            self.message = frame.message
        if frame.is_terminal:
            self.terminal = frame

    def stalled(self) -> bool:
        if self.stall_timeout is None or self.last_frame_at is None:
            return False
        return self._clock() - self.last_frame_at > self.stall_timeout

    def finish(self) -> str:
        """Validate the end of the stream and return the final summary.

        Raises the typed error carried by an ``error`` frame, or
        ``StreamProtocolError`` when the stream ended without a terminal frame.
        """
        if self.terminal is None:
            if self.last_was_heartbeat and not self.stalled() and self.text:
                logger.warning("Stream closed after a keepalive; accepting accumulated summary")
                return self.text
            raise StreamProtocolError(
                "The summary stream ended before completion",
                details={"received_chars": len(self.text)},
            )
        if self.terminal.status is FrameStatus.ERROR:
            raise error_from_kind(
                self.terminal.kind,
                self.terminal.message,
                retry_after=self.terminal.retry_after,
            )
        summary = self.summary
        if not summary.strip():
            raise StreamProtocolError("The summary stream completed without any content")
        self.progress = 100.0
        return summary
