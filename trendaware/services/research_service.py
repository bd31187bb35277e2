"""Fire-and-forget web research with bounded polling.

Research only ever enhances a summary: every failure mode (missing
credentials, provider error, non-2xx, timeout, abandonment) resolves to
``None`` for the caller.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable
from uuid import uuid4

from loguru import logger

from trendaware.config import settings
from trendaware.errors import TrendAwareError
from trendaware.services import logger as log_service
from trendaware.services.research_store import ResearchEntry, ResearchRequestStore
from trendaware.tools import research_provider


class ResearchService:
    def __init__(
        self,
        store: ResearchRequestStore,
        *,
        research_fn: Callable[[str], Awaitable[str]] = research_provider.research,
        enabled: Callable[[], bool] = research_provider.is_configured,
        timeout: float | None = None,
        poll_attempts: int | None = None,
        poll_interval: float | None = None,
    ):
        self.store = store
        self._research_fn = research_fn
        self._enabled = enabled
        self.timeout = settings.research_timeout_seconds if timeout is None else timeout
        self.poll_attempts = max(
            settings.research_poll_attempts if poll_attempts is None else poll_attempts, 1
        )
        self.poll_interval = (
            settings.research_poll_interval_seconds if poll_interval is None else poll_interval
        )
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled()

    def initiate(self, title: str, request_id: str | None = None) -> str:
        """Start research in the background and return its request id."""
        request_id = request_id or uuid4().hex
        self.cancel(request_id)
        entry = self.store.start(request_id)

        if not self.enabled:
            self.store.fail(entry, "No API key")
            return request_id

        task = asyncio.create_task(self._perform(title, entry))
        self._tasks[request_id] = task
        task.add_done_callback(lambda t, rid=request_id: self._forget(rid, t))
        return request_id

    def _forget(self, request_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(request_id) is task:
            self._tasks.pop(request_id, None)

    async def _perform(self, title: str, entry: ResearchEntry) -> None:
        try:
            research = await asyncio.wait_for(self._research_fn(title), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Web research timed out after {self.timeout}s for {entry.request_id}")
            self.store.fail(entry, "Web research timed out")
        except TrendAwareError as exc:
            logger.warning(f"Web research failed for {entry.request_id}: {exc.kind}: {exc.message}")
            self.store.fail(entry, exc.message)
        except Exception as exc:
            # Provider SDKs raise their own exception types; research must never be fatal.
            logger.exception(f"Error performing web research for {entry.request_id}")
            self.store.fail(entry, str(exc) or type(exc).__name__)
        else:
            log_service.log_event(
                event_type="web_research_completed",
                message="Web research completed",
                request_id=entry.request_id,
                chars=len(research),
            )
            self.store.complete(entry, research)

    def status(self, request_id: str) -> ResearchEntry | None:
        return self.store.get(request_id)

    async def poll(
        self,
        request_id: str,
        *,
        attempts: int | None = None,
        interval: float | None = None,
    ) -> str | None:
        """Wait for a request's result for at most ``attempts`` x ``interval``."""
        attempts = self.poll_attempts if attempts is None else max(attempts, 1)
        interval = self.poll_interval if interval is None else interval
        for _ in range(attempts):
            entry = self.store.get(request_id)
            if entry is None:
                return None
            if entry.status == "completed":
                return entry.research
            if entry.status == "failed":
                return None
            try:
                await asyncio.wait_for(entry.done.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
        logger.info(f"Web research poll budget exhausted for {request_id}")
        return None

    def cancel(self, request_id: str) -> None:
        """Abandon a request: stop its task and drop its entry."""
        task = self._tasks.pop(request_id, None)
        if task is not None and not task.done():
            task.cancel()
        self.store.discard(request_id)

    async def lookup(self, title: str) -> str | None:
        """Research ``title`` within the stage budget, or return None."""
        if not self.enabled:
            log_service.log_event(
                event_type="web_research_skipped",
                message="Research provider not configured; skipping web research",
                provider=research_provider.provider_name(),
            )
            return None

        request_id = self.initiate(title)
        try:
            return await asyncio.wait_for(self.poll(request_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Web research budget of {self.timeout}s exhausted for {request_id}")
            return None
        finally:
            self.cancel(request_id)

    async def aclose(self) -> None:
        """Cancel every in-flight research task (application shutdown)."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


_service: ResearchService | None = None


def get_research_service() -> ResearchService:
    global _service
    if _service is None:
        _service = ResearchService(
            ResearchRequestStore(
                ttl_seconds=settings.research_cache_ttl_seconds,
                max_entries=settings.research_cache_max_entries,
            )
        )
    return _service
