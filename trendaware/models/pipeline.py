from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from trendaware.errors import TrendAwareError


class Stage(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    RESEARCHING = "researching"
    GENERATING = "generating"
    SAVING = "saving"
    COMPLETE = "complete"
    FAILED = "failed"


# Happy-path order; FAILED sits outside it.
STAGE_ORDER: tuple[Stage, ...] = (
    Stage.IDLE,
    Stage.SUBMITTING,
    Stage.RESEARCHING,
    Stage.GENERATING,
    Stage.SAVING,
    Stage.COMPLETE,
)


class InvalidTransition(RuntimeError):
    pass


@dataclass
class PipelineRun:
    """Mutable state of one submission run. Never shared between runs."""

    id: str = field(default_factory=lambda: uuid4().hex)
    stage: Stage = Stage.IDLE
    web_research: str | None = None
    summary_text: str = ""
    web_research_used: bool = False
    fallback: bool = False
    progress_percent: float = 0.0
    error: TrendAwareError | None = None
    record_id: str | None = None
    history: list[Stage] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.stage in (Stage.COMPLETE, Stage.FAILED)

    def advance(self, stage: Stage) -> None:
        """Move forward along the happy path; backward moves are rejected."""
        if stage is Stage.FAILED:
            raise InvalidTransition("use fail() to enter the failed stage")
        if self.is_terminal:
            raise InvalidTransition(f"run {self.id} already {self.stage.value}")
        if STAGE_ORDER.index(stage) <= STAGE_ORDER.index(self.stage):
            raise InvalidTransition(f"{self.stage.value} -> {stage.value}")
        if stage is Stage.COMPLETE and not self.summary_text:
            raise InvalidTransition("cannot complete without a summary")
        self.stage = stage
        self.history.append(stage)

    def fail(self, error: TrendAwareError) -> None:
        if self.stage is Stage.IDLE:
            raise InvalidTransition("run was never started")
        if self.is_terminal:
            return
        self.error = error
        self.progress_percent = 0.0
        self.stage = Stage.FAILED
        self.history.append(Stage.FAILED)

    def append_summary(self, fragment: str) -> None:
        if self.is_terminal:
            raise InvalidTransition(f"run {self.id} summary is frozen")
        self.summary_text += fragment

    def mark_web_research_used(self, used: bool) -> None:
        # sticky once true
        self.web_research_used = self.web_research_used or used
