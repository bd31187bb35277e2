"""In-flight web-research requests keyed by request id.

Entries expire after ``ttl_seconds`` and the store never holds more than
``max_entries``; the oldest entries are dropped first when it is full.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Literal

ResearchStatus = Literal["processing", "completed", "failed"]


@dataclass
class ResearchEntry:
    request_id: str
    status: ResearchStatus
    created_at: float
    research: str | None = None
    error: str | None = None
    done: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def to_dict(self) -> dict[str, str | None]:
        data: dict[str, str | None] = {"status": self.status}
        if self.research is not None:
            data["research"] = self.research
        if self.error is not None:
            data["error"] = self.error
        return data


class ResearchRequestStore:
    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = max(float(ttl_seconds), 0.0)
        self.max_entries = max(int(max_entries), 1)
        self._clock = clock
        self._entries: dict[str, ResearchEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: str) -> bool:
        return self.get(request_id) is not None

    def _expired(self, entry: ResearchEntry, now: float) -> bool:
        return now - entry.created_at >= self.ttl_seconds

    def evict_expired(self) -> int:
        now = self._clock()
        stale = [rid for rid, entry in self._entries.items() if self._expired(entry, now)]
        for rid in stale:
            self._entries.pop(rid, None)
        return len(stale)

    def start(self, request_id: str) -> ResearchEntry:
        """Register (or restart) a request in the ``processing`` state."""
        self.evict_expired()
        self._entries.pop(request_id, None)
        while len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            self._entries.pop(oldest)
        entry = ResearchEntry(request_id=request_id, status="processing", created_at=self._clock())
        self._entries[request_id] = entry
        return entry

    def get(self, request_id: str) -> ResearchEntry | None:
        entry = self._entries.get(request_id)
        if entry is None:
            return None
        if self._expired(entry, self._clock()):
            self._entries.pop(request_id, None)
            return None
        return entry

    def complete(self, entry: ResearchEntry, research: str) -> None:
        # A superseded or evicted entry is an orphan; writing to it is harmless.
        entry.status = "completed"
        entry.research = research
        entry.done.set()

    def fail(self, entry: ResearchEntry, error: str) -> None:
        entry.status = "failed"
        entry.error = error
        entry.done.set()

    def discard(self, request_id: str) -> None:
        self._entries.pop(request_id, None)
