from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class FrameStatus(str, Enum):
    PROCESSING = "processing"
    RESEARCHING = "researching"
    RESEARCHED = "researched"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({FrameStatus.COMPLETE, FrameStatus.ERROR})


@dataclass
class Frame:
    """One newline-delimited JSON unit of the summary stream.

    Every field is optional on the wire; ``None`` fields are omitted when the
    frame is serialized.
    """

    status: FrameStatus | None = None
    message: str | None = None
    progress: float | None = None
    partial_summary: str | None = None
    web_research_used: bool | None = None
    heartbeat: bool | None = None
    timestamp: str | None = None
    # Submission pipeline / terminal frame extensions
    stage: str | None = None
    run_id: str | None = None
    summary: str | None = None
    fallback: bool | None = None
    kind: str | None = None
    retry_after: float | None = None
    record_id: str | None = None

    @property
    def is_heartbeat(self) -> bool:
        return bool(self.heartbeat)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for attr, key in _WIRE_FIELDS:
            value = getattr(self, attr)
            if value is None:
                continue
            data[key] = value.value if isinstance(value, Enum) else value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def format(self) -> str:
        """Serialize as one NDJSON line."""
        return self.to_json() + "\n"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Frame":
        """Build a frame from a decoded JSON object, rejecting wrong types."""
        kwargs: dict[str, Any] = {}
        for attr, key in _WIRE_FIELDS:
            if key not in data or data[key] is None:
                continue
            value = data[key]
            expected = _FIELD_TYPES[attr]
            if attr == "status":
                try:
                    value = FrameStatus(value)
                except ValueError as exc:
                    raise ValueError(f"unknown status {value!r}") from exc
            elif expected is float:
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ValueError(f"field {key!r} must be a number")
                value = float(value)
            elif attr == "timestamp" and isinstance(value, (int, float)) and not isinstance(value, bool):
                # epoch-millis keepalives from JS producers
                value = str(value)
            elif not isinstance(value, expected):
                raise ValueError(f"field {key!r} must be {expected.__name__}")
            kwargs[attr] = value
        return cls(**kwargs)


_WIRE_FIELDS: tuple[tuple[str, str], ...] = (
    ("status", "status"),
    ("message", "message"),
    ("progress", "progress"),
    ("partial_summary", "partialSummary"),
    ("web_research_used", "webResearchUsed"),
    ("heartbeat", "heartbeat"),
    ("timestamp", "timestamp"),
    ("stage", "stage"),
    ("run_id", "runId"),
    ("summary", "summary"),
    ("fallback", "fallback"),
    ("kind", "kind"),
    ("retry_after", "retryAfter"),
    ("record_id", "recordId"),
)

_FIELD_TYPES: dict[str, type] = {
    "status": str,
    "message": str,
    "progress": float,
    "partial_summary": str,
    "web_research_used": bool,
    "heartbeat": bool,
    "timestamp": str,
    "stage": str,
    "run_id": str,
    "summary": str,
    "fallback": bool,
    "kind": str,
    "retry_after": float,
    "record_id": str,
}
