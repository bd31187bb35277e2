from __future__ import annotations

import time
from typing import Callable

from trendaware.config import settings

PROGRESS_CEILING = 95.0


class ProgressEstimator:
    """Elapsed-time progress heuristic for one run.

    The estimate never decreases and stays at or below 95% until the run
    reaches a terminal state, where it snaps to 100 (complete) or 0 (failed).
    """

    def __init__(
        self,
        body_length: int,
        *,
        baseline_seconds: float | None = None,
        seconds_per_kchar: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        baseline = settings.progress_baseline_seconds if baseline_seconds is None else baseline_seconds
        per_kchar = (
            settings.progress_seconds_per_kchar if seconds_per_kchar is None else seconds_per_kchar
        )
        self.estimated_total = max(baseline + per_kchar * max(body_length, 0) / 1000.0, 0.001)
        self._clock = clock
        self.started_at = clock()
        self._value = 0.0

    @property
    def value(self) -> float:
        return self._value

    def current(self) -> float:
        elapsed = max(self._clock() - self.started_at, 0.0)
        estimate = min(PROGRESS_CEILING, elapsed / self.estimated_total * 100.0)
        self._value = max(self._value, estimate)
        return self._value

    def observe(self, reported: float) -> float:
        """Fold in a provider-reported hint, still clamped below the ceiling."""
        self._value = max(self._value, min(float(reported), PROGRESS_CEILING))
        return self._value

    def finish(self) -> float:
        self._value = 100.0
        return self._value

    def reset(self) -> float:
        self._value = 0.0
        return self._value
