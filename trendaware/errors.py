"""Error taxonomy for the summary pipeline.

Every error carries a stable ``kind`` that is sent to callers (JSON bodies and
terminal ``error`` frames) so the presentation layer can pick a remedy:
shorten the input, wait and retry, or contact support.
"""
from __future__ import annotations

from typing import Any


class TrendAwareError(Exception):
    """Base class for errors surfaced to API callers."""

    kind = "unexpected_error"
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, *, details: Any = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "kind": self.kind}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(TrendAwareError):
    """Missing or empty title/body, rejected before any provider call."""

    kind = "validation_error"
    status_code = 400
    default_message = "Title and content are required"


class ProviderUnavailable(TrendAwareError):
    """A provider has no credentials configured."""

    kind = "provider_unavailable"
    status_code = 503
    default_message = "Provider is not configured"

    def __init__(self, message: str | None = None, *, provider: str | None = None, details: Any = None):
        super().__init__(message, details=details)
        self.provider = provider


class StageTimeout(TrendAwareError):
    kind = "timeout"
    status_code = 504
    default_message = "The request took too long to complete"

    def __init__(self, message: str | None = None, *, stage: str | None = None, details: Any = None):
        super().__init__(message, details=details)
        self.stage = stage


class RateLimited(TrendAwareError):
    """Provider-reported throttling. Never retried automatically."""

    kind = "rate_limited"
    status_code = 429
    default_message = "The AI provider is busy. Please wait a moment and try again."

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after: float | None = None,
        provider: str | None = None,
        details: Any = None,
    ):
        super().__init__(message, details=details)
        self.retry_after = retry_after
        self.provider = provider

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.retry_after is not None:
            payload["retryAfter"] = self.retry_after
        return payload


class StreamProtocolError(TrendAwareError):
    """Malformed stream or premature end without a terminal marker."""

    kind = "stream_protocol_error"
    status_code = 502
    default_message = "The summary stream ended unexpectedly"


class ProviderError(TrendAwareError):
    """Non-throttling provider failure (5xx, connection reset, bad payload)."""

    kind = "provider_error"
    status_code = 502
    default_message = "The AI provider returned an error"

    def __init__(self, message: str | None = None, *, provider: str | None = None, details: Any = None):
        super().__init__(message, details=details)
        self.provider = provider


class PersistenceError(TrendAwareError):
    """Store write failed after a valid summary was produced."""

    kind = "persistence_error"
    status_code = 500
    default_message = (
        "Your summary was generated but could not be saved. "
        "Copy it before leaving this page and try saving again."
    )


class Cancelled(TrendAwareError):
    """The run was abandoned by the caller (disconnect, Ctrl-C)."""

    kind = "cancelled"
    status_code = 499
    default_message = "The submission was cancelled"


class UnexpectedError(TrendAwareError):
    kind = "unexpected_error"
    status_code = 500
    default_message = "An unexpected error occurred"


# Conditions the summarization stage absorbs by retrying in batch mode.
RECOVERABLE_STREAM_ERRORS: tuple[type[TrendAwareError], ...] = (
    StreamProtocolError,
    StageTimeout,
    ProviderError,
)


_BY_KIND: dict[str, type[TrendAwareError]] = {
    cls.kind: cls
    for cls in (
        ValidationError,
        ProviderUnavailable,
        StageTimeout,
        RateLimited,
        StreamProtocolError,
        ProviderError,
        PersistenceError,
        Cancelled,
        UnexpectedError,
    )
}


def error_from_kind(
    kind: str | None,
    message: str | None = None,
    *,
    retry_after: float | None = None,
) -> TrendAwareError:
    """Rebuild a typed error from a wire ``kind`` (unknown kinds are unexpected)."""
    cls = _BY_KIND.get(kind or "", UnexpectedError)
    if cls is RateLimited:
        return RateLimited(message, retry_after=retry_after)
    return cls(message)


def as_trendaware_error(exc: BaseException) -> TrendAwareError:
    """Wrap anything unknown in an UnexpectedError without leaking its text."""
    if isinstance(exc, TrendAwareError):
        return exc
    return UnexpectedError()
