from __future__ import annotations

import asyncio
import time
from typing import AsyncIterator, Callable

from trendaware.config import settings
from trendaware.errors import ProviderError, StageTimeout, TrendAwareError
from trendaware.llm_client import ChatCompletionsAdapter, client as llm_client, get_model
from trendaware.services import logger as log_service
from trendaware.services.prompt_builder import SummaryPrompt


class Summarizer:
    """Calls the summarization provider in streaming or batch mode.

    Both modes are bounded by one overall ceiling; exceeding it cancels the
    in-flight call and raises ``StageTimeout``.
    """

    def __init__(
        self,
        client_factory: Callable[[], ChatCompletionsAdapter] = llm_client,
        *,
        model: str | None = None,
        timeout: float | None = None,
        stream_max_tokens: int | None = None,
        batch_max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        self._client_factory = client_factory
        self.model = model or get_model()
        self.timeout = settings.summary_timeout_seconds if timeout is None else timeout
        self.stream_max_tokens = stream_max_tokens or settings.summary_stream_max_tokens
        self.batch_max_tokens = batch_max_tokens or settings.summary_batch_max_tokens
        self.temperature = settings.summary_temperature if temperature is None else temperature

    def _timeout_error(self) -> StageTimeout:
        return StageTimeout(
            f"Summary generation exceeded {self.timeout:g}s",
            stage="generating",
        )

    async def stream(self, prompt: SummaryPrompt) -> AsyncIterator[str]:
        """Yield summary fragments in provider order."""
        client = self._client_factory()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        t0 = time.monotonic()
        output_chars = 0

        chat_stream = client.stream(
            model=self.model,
            system=prompt.system,
            user=prompt.user,
            max_tokens=self.stream_max_tokens,
            temperature=self.temperature,
        )
        try:
            try:
                await asyncio.wait_for(chat_stream.__aenter__(), timeout=self.timeout)
            except asyncio.TimeoutError:
                raise self._timeout_error() from None

            fragments = chat_stream.text_stream
            try:
                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise self._timeout_error()
                    try:
                        text = await asyncio.wait_for(fragments.__anext__(), timeout=remaining)
                    except StopAsyncIteration:
                        break
                    except asyncio.TimeoutError:
                        raise self._timeout_error() from None
                    output_chars += len(text.strip())
                    yield text
            finally:
                await fragments.aclose()
        except TrendAwareError as exc:
            log_service.log_llm_call(
                model=self.model,
                caller="summarizer.stream",
                mode="stream",
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=f"{exc.kind}: {exc.message}",
            )
            raise
        finally:
            await chat_stream.__aexit__(None, None, None)

        log_service.log_llm_call(
            model=self.model,
            caller="summarizer.stream",
            mode="stream",
            input_tokens=chat_stream.usage.input_tokens,
            output_tokens=chat_stream.usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        if output_chars == 0:
            raise ProviderError("Summarizer stream produced no text")

    async def generate(self, prompt: SummaryPrompt) -> str:
        """Return the whole summary in one non-streaming call."""
        client = self._client_factory()
        t0 = time.monotonic()
        try:
            result = await asyncio.wait_for(
                client.create(
                    model=self.model,
                    system=prompt.system,
                    user=prompt.user,
                    max_tokens=self.batch_max_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            exc = self._timeout_error()
            log_service.log_llm_call(
                model=self.model,
                caller="summarizer.generate",
                mode="batch",
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=f"{exc.kind}: {exc.message}",
            )
            raise exc from None
        except TrendAwareError as exc:
            log_service.log_llm_call(
                model=self.model,
                caller="summarizer.generate",
                mode="batch",
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=f"{exc.kind}: {exc.message}",
            )
            raise

        log_service.log_llm_call(
            model=self.model,
            caller="summarizer.generate",
            mode="batch",
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        if not result.text.strip():
            raise ProviderError("Summarizer returned an empty summary")
        return result.text
