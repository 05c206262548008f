"""Unit tests for pipeline dispatch."""

from __future__ import annotations

import threading

import pytest

from forecast_workflow.workflow.errors import PipelineStepFailure
from forecast_workflow.workflow.owner import OwnerLoop
from forecast_workflow.workflow.pipeline import (
    Pipeline,
    PipelineDispatcher,
    PipelineResult,
    ProgressUpdate,
    Step,
    StepKind,
)


class RecordingProgress:
    def __init__(self, owner: OwnerLoop) -> None:
        self.owner = owner
        self.updates: list[ProgressUpdate] = []
        self.finished = 0
        self.off_owner = 0

    def begin(self, update: ProgressUpdate) -> None:
        if not self.owner.is_owner_thread():
            self.off_owner += 1
        self.updates.append(update)

    def finish(self) -> None:
        self.finished += 1


def test_step_constructors() -> None:
    assert Step.background("a", lambda: None).kind is StepKind.BACKGROUND
    assert Step.on_owner("b", lambda: None, detail="x").detail == "x"


def test_steps_run_in_order_on_the_right_threads(owner: OwnerLoop) -> None:
    trace: list[tuple[str, bool]] = []
    results: list[PipelineResult] = []

    def record(label: str):
        return lambda: trace.append((label, owner.is_owner_thread()))

    pipeline = Pipeline(
        name="demo",
        steps=(
            Step.background("first", record("first")),
            Step.on_owner("second", record("second")),
            Step.background("third", record("third")),
        ),
        on_complete=results.append,
    )
    handle = PipelineDispatcher(owner).dispatch(pipeline)

    assert owner.run_until(handle.done, timeout=5.0)
    assert trace == [("first", False), ("second", True), ("third", False)]
    assert results == [PipelineResult(ok=True, steps_completed=3)]
    assert handle.result == results[0]


def test_completion_runs_on_owner_thread(owner: OwnerLoop) -> None:
    threads: list[bool] = []
    pipeline = Pipeline(
        name="demo",
        steps=(Step.background("only", lambda: None),),
        on_complete=lambda result: threads.append(owner.is_owner_thread()),
    )
    handle = PipelineDispatcher(owner).dispatch(pipeline)

    assert owner.run_until(handle.done, timeout=5.0)
    assert threads == [True]


def test_first_failure_aborts_remaining_steps(owner: OwnerLoop) -> None:
    ran: list[str] = []
    results: list[PipelineResult] = []

    def fail() -> None:
        raise OSError("connection refused")

    pipeline = Pipeline(
        name="fetch",
        steps=(
            Step.background("Fetching Events", fail),
            Step.on_owner("publish", lambda: ran.append("publish")),
        ),
        on_complete=results.append,
    )
    handle = PipelineDispatcher(owner).dispatch(pipeline)

    assert owner.run_until(handle.done, timeout=5.0)
    assert ran == []
    result = results[0]
    assert result.ok is False
    assert result.steps_completed == 0
    assert isinstance(result.error, PipelineStepFailure)
    assert result.error.step_label == "Fetching Events"
    assert result.error.step_index == 0
    assert isinstance(result.error.cause, OSError)
    assert str(result.error) == "Error Fetching Events: connection refused"


def test_failure_in_owner_step_is_reported(owner: OwnerLoop) -> None:
    results: list[PipelineResult] = []

    def fail() -> None:
        raise KeyError("missing")

    pipeline = Pipeline(
        name="p",
        steps=(Step.background("work", lambda: None), Step.on_owner("publish", fail)),
        on_complete=results.append,
    )
    handle = PipelineDispatcher(owner).dispatch(pipeline)

    assert owner.run_until(handle.done, timeout=5.0)
    assert results[0].steps_completed == 1
    assert results[0].error is not None
    assert results[0].error.step_index == 1


def test_progress_is_delivered_on_owner(owner: OwnerLoop) -> None:
    progress = RecordingProgress(owner)
    pipeline = Pipeline(
        name="p",
        steps=(
            Step.background("one", lambda: None, detail="first"),
            Step.background("two", lambda: None),
        ),
        fractional_progress=True,
    )
    handle = PipelineDispatcher(owner).dispatch(pipeline, progress)

    assert owner.run_until(handle.done, timeout=5.0)
    assert [u.label for u in progress.updates] == ["one", "two"]
    assert progress.updates[0] == ProgressUpdate("one", "first", 0, 2, 0.0)
    assert progress.updates[1].fraction == 0.5
    assert progress.finished == 1
    assert progress.off_owner == 0


def test_background_on_owner_runs_everything_on_owner(owner: OwnerLoop) -> None:
    seen: list[bool] = []
    pipeline = Pipeline(
        name="p",
        steps=(Step.background("work", lambda: seen.append(owner.is_owner_thread())),),
    )
    handle = PipelineDispatcher(owner, background_on_owner=True).dispatch(pipeline)

    assert owner.run_until(handle.done, timeout=5.0)
    assert seen == [True]


def test_worker_thread_name_uses_prefix(owner: OwnerLoop) -> None:
    names: list[str] = []
    pipeline = Pipeline(
        name="fit",
        steps=(Step.background("work", lambda: names.append(threading.current_thread().name)),),
    )
    handle = PipelineDispatcher(owner, thread_name_prefix="calc").dispatch(pipeline)

    assert owner.run_until(handle.done, timeout=5.0)
    assert names[0].startswith("calc-fit-")
    assert handle.thread is not None and handle.thread.daemon


def test_execute_runs_inline(owner: OwnerLoop) -> None:
    ran: list[str] = []
    pipeline = Pipeline(name="p", steps=(Step.on_owner("x", lambda: ran.append("x")),))

    result = PipelineDispatcher(owner).execute(pipeline)

    assert result.ok
    assert ran == ["x"]


def test_pipeline_without_callback_still_completes(owner: OwnerLoop) -> None:
    def fail() -> None:
        raise ValueError("bad")

    pipeline = Pipeline(name="p", steps=(Step.background("work", fail),))
    handle = PipelineDispatcher(owner).dispatch(pipeline)

    assert owner.run_until(handle.done, timeout=5.0)
    assert handle.result is not None
    assert handle.result.ok is False


def test_handle_wait_from_another_thread(owner: OwnerLoop) -> None:
    pipeline = Pipeline(name="p", steps=(Step.background("work", lambda: None),))
    handle = PipelineDispatcher(owner).dispatch(pipeline)
    waited: list[bool] = []

    waiter = threading.Thread(target=lambda: waited.append(handle.wait(timeout=5.0)))
    waiter.start()

    assert owner.run_until(handle.done, timeout=5.0)
    waiter.join(timeout=5.0)
    assert waited == [True]


def test_failing_middle_step_stops_the_pipeline(owner: OwnerLoop) -> None:
    ran: list[str] = []
    results: list[PipelineResult] = []

    def fail() -> None:
        raise RuntimeError("fit diverged")

    pipeline = Pipeline(
        name="fit",
        steps=(
            Step.background("first", lambda: ran.append("first")),
            Step.background("second", fail),
            Step.on_owner("third", lambda: ran.append("third")),
        ),
        on_complete=results.append,
    )
    handle = PipelineDispatcher(owner).dispatch(pipeline)

    assert owner.run_until(handle.done, timeout=5.0)
    assert owner.run_pending() == 0
    assert ran == ["first"]
    assert len(results) == 1
    assert results[0].steps_completed == 1
    assert results[0].error is not None
    assert results[0].error.step_label == "second"


def test_system_exit_in_worker_still_completes(owner: OwnerLoop) -> None:
    results: list[PipelineResult] = []

    def leave() -> None:
        raise SystemExit(3)

    pipeline = Pipeline(
        name="fetch",
        steps=(Step.background("Fetching Events", leave), Step.on_owner("publish", lambda: None)),
        on_complete=results.append,
    )
    handle = PipelineDispatcher(owner).dispatch(pipeline)

    assert owner.run_until(handle.done, timeout=5.0)
    assert len(results) == 1
    assert results[0].ok is False
    assert results[0].error is not None
    assert isinstance(results[0].error.cause, SystemExit)
    assert handle.thread is not None
    handle.thread.join(timeout=5.0)
    assert not handle.thread.is_alive()


def test_execute_on_owner_propagates_base_exceptions(owner: OwnerLoop) -> None:
    def leave() -> None:
        raise SystemExit(1)

    pipeline = Pipeline(name="p", steps=(Step.background("work", leave),))

    with pytest.raises(SystemExit):
        PipelineDispatcher(owner).execute(pipeline)
