"""OpenAI-compatible chat completion client used by the summarizer."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator

import openai

from trendaware.config import settings
from trendaware.errors import (
    ProviderError,
    ProviderUnavailable,
    RateLimited,
    StageTimeout,
    StreamProtocolError,
    TrendAwareError,
)

PROVIDER = "openai"


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class ChatResult:
    text: str
    usage: Usage
    finish_reason: str | None = None


def _retry_after(exc: openai.APIStatusError) -> float | None:
    headers = getattr(exc.response, "headers", None) or {}
    raw = headers.get("retry-after")
    if raw:
        try:
            return float(raw)
        except ValueError:
            return None
    return None


def map_provider_error(exc: Exception) -> TrendAwareError:
    """Translate SDK exceptions into the service error taxonomy."""
    if isinstance(exc, TrendAwareError):
        return exc
    if isinstance(exc, openai.RateLimitError):
        return RateLimited(retry_after=_retry_after(exc), provider=PROVIDER)
    if isinstance(exc, openai.APITimeoutError):
        return StageTimeout("The summarizer did not respond in time", stage="generating")
    if isinstance(exc, openai.AuthenticationError):
        return ProviderUnavailable("Summarizer credentials were rejected", provider=PROVIDER)
    if isinstance(exc, openai.APIStatusError):
        return ProviderError(
            f"Summarizer returned HTTP {exc.status_code}",
            provider=PROVIDER,
            details={"status_code": exc.status_code},
        )
    if isinstance(exc, openai.APIError):
        # connection errors and undecodable responses
        return ProviderError(f"Summarizer request failed: {type(exc).__name__}", provider=PROVIDER)
    raise exc


class ChatStream:
    """Async context manager over a streamed chat completion.

    The provider signals a clean end with a ``finish_reason`` on the last
    choice; a stream that stops without one is a protocol error.
    """

    def __init__(self, stream_coro: Any):
        self._stream_coro = stream_coro
        self._stream: Any | None = None
        self.usage = Usage()
        self.finish_reason: str | None = None

    async def __aenter__(self) -> "ChatStream":
        try:
            self._stream = await self._stream_coro
        except Exception as exc:
            raise map_provider_error(exc) from exc
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stream is not None:
            await self._stream.close()

    async def _iter_text(self) -> AsyncIterator[str]:
        if self._stream is None:
            return
        try:
            async for chunk in self._stream:
                usage = getattr(chunk, "usage", None)
                if usage:
                    self.usage = Usage(
                        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
                    )
                choices = getattr(chunk, "choices", None) or []
                if not choices:
                    continue
                choice = choices[0]
                reason = getattr(choice, "finish_reason", None)
                if reason:
                    self.finish_reason = reason
                delta = getattr(choice, "delta", None)
                text = getattr(delta, "content", None) if delta else None
                if text:
                    yield text
        except Exception as exc:
            raise map_provider_error(exc) from exc
        if self.finish_reason is None:
            raise StreamProtocolError("Summarizer stream ended without a finish marker")

    @property
    def text_stream(self) -> AsyncIterator[str]:
        return self._iter_text()


class ChatCompletionsAdapter:
    def __init__(self, openai_client: Any):
        self._client = openai_client

    @staticmethod
    def _to_messages(system: str, user: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def create(
        self,
        *,
        model: str,
        system: str,
        user: str,
        max_tokens: int,
        temperature: float,
    ) -> ChatResult:
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=self._to_messages(system, user),
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as exc:
            raise map_provider_error(exc) from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ProviderError("Summarizer response had no choices", provider=PROVIDER)
        message = getattr(choices[0], "message", None)
        text = getattr(message, "content", None) or ""
        usage = getattr(response, "usage", None)
        return ChatResult(
            text=text,
            usage=Usage(
                input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
            finish_reason=getattr(choices[0], "finish_reason", None),
        )

    def stream(
        self,
        *,
        model: str,
        system: str,
        user: str,
        max_tokens: int,
        temperature: float,
    ) -> ChatStream:
        stream = self._client.chat.completions.create(
            model=model,
            messages=self._to_messages(system, user),
            max_tokens=max_tokens,
            temperature=temperature,
            stream=True,
            stream_options={"include_usage": True},
        )
        return ChatStream(stream)


def get_client() -> ChatCompletionsAdapter:
    """Build the summarizer client from settings."""
    if not settings.openai_api_key.strip():
        raise ProviderUnavailable("OpenAI API key is not configured", provider=PROVIDER)
    base_url = settings.openai_base_url.strip() or "https://api.openai.com/v1"
    openai_client = openai.AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=base_url,
        max_retries=0,
    )
    return ChatCompletionsAdapter(openai_client)


def get_model() -> str:
    return settings.summary_model


_client: ChatCompletionsAdapter | None = None


def client() -> ChatCompletionsAdapter:
    """Get or create the summarizer client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
