from __future__ import annotations

import pytest

from trendaware.errors import ProviderError
from trendaware.models.pipeline import InvalidTransition, PipelineRun, Stage
from trendaware.services.progress import PROGRESS_CEILING, ProgressEstimator


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_happy_path_transitions():
    run = PipelineRun()
    for stage in (Stage.SUBMITTING, Stage.RESEARCHING, Stage.GENERATING, Stage.SAVING):
        run.advance(stage)
    run.append_summary("<p>done</p>")
    run.advance(Stage.COMPLETE)

    assert run.history == [
        Stage.SUBMITTING,
        Stage.RESEARCHING,
        Stage.GENERATING,
        Stage.SAVING,
        Stage.COMPLETE,
    ]
    assert run.is_terminal


def test_backward_transition_is_rejected():
    run = PipelineRun()
    run.advance(Stage.SUBMITTING)
    run.advance(Stage.GENERATING)

    with pytest.raises(InvalidTransition):
        run.advance(Stage.RESEARCHING)


def test_complete_requires_summary():
    run = PipelineRun()
    run.advance(Stage.SUBMITTING)
    run.advance(Stage.SAVING)

    with pytest.raises(InvalidTransition):
        run.advance(Stage.COMPLETE)


def test_failed_reachable_from_any_started_stage():
    for stage in (Stage.SUBMITTING, Stage.RESEARCHING, Stage.GENERATING, Stage.SAVING):
        run = PipelineRun()
        run.advance(stage)
        run.progress_percent = 60.0

        run.fail(ProviderError())

        assert run.stage is Stage.FAILED
        assert run.progress_percent == 0.0
        assert run.error.kind == "provider_error"


def test_fail_from_idle_is_rejected():
    with pytest.raises(InvalidTransition):
        PipelineRun().fail(ProviderError())


def test_summary_is_frozen_after_terminal_state():
    run = PipelineRun()
    run.advance(Stage.SUBMITTING)
    run.fail(ProviderError())

    with pytest.raises(InvalidTransition):
        run.append_summary("late")


def test_runs_do_not_share_state():
    first, second = PipelineRun(), PipelineRun()
    first.append_summary("A")

    assert first.id != second.id
    assert second.summary_text == ""
    assert second.history == []


def test_progress_is_monotonic_and_clamped_below_ceiling():
    clock = FakeClock()
    estimator = ProgressEstimator(2000, baseline_seconds=8, seconds_per_kchar=1, clock=clock)

    seen = []
    for t in (0, 1, 5, 9, 30, 300):
        clock.now = t
        seen.append(estimator.current())

    assert seen == sorted(seen)
    assert seen[2] == pytest.approx(50.0)
    assert max(seen) == PROGRESS_CEILING


def test_progress_ignores_lower_reported_values():
    clock = FakeClock()
    estimator = ProgressEstimator(0, baseline_seconds=10, seconds_per_kchar=0, clock=clock)
    clock.now = 5
    estimator.current()

    assert estimator.observe(10) == pytest.approx(50.0)
    assert estimator.observe(99) == PROGRESS_CEILING


def test_progress_snaps_on_terminal_states():
    estimator = ProgressEstimator(100)
    assert estimator.finish() == 100.0
    assert estimator.reset() == 0.0
