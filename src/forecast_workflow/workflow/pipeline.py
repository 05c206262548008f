"""Ordered step pipelines mixing worker-thread and owner-thread work.

A pipeline runs on its own worker thread. BACKGROUND steps execute there;
ON_OWNER steps are submitted to the owner loop and the worker waits for them.
Step N+1 never starts before step N returned. The first step that raises
aborts the pipeline; the completion callback then runs on the owner thread
with the failure. There is no cancellation.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Protocol

from .errors import PipelineStepFailure
from .owner import OwnerLoop

logger = logging.getLogger(__name__)


class StepKind(str, Enum):
    BACKGROUND = "background"
    ON_OWNER = "on_owner"


@dataclass(frozen=True, slots=True)
class Step:
    label: str
    work: Callable[[], object]
    kind: StepKind = StepKind.BACKGROUND
    detail: str = ""

    @classmethod
    def background(cls, label: str, work: Callable[[], object], detail: str = "") -> Step:
        return cls(label=label, work=work, kind=StepKind.BACKGROUND, detail=detail)

    @classmethod
    def on_owner(cls, label: str, work: Callable[[], object], detail: str = "") -> Step:
        return cls(label=label, work=work, kind=StepKind.ON_OWNER, detail=detail)


@dataclass(frozen=True, slots=True)
class PipelineResult:
    ok: bool
    error: PipelineStepFailure | None = None
    steps_completed: int = 0


@dataclass(frozen=True, slots=True)
class Pipeline:
    """An immutable ordered sequence of steps, built fresh per action."""

    name: str
    steps: tuple[Step, ...]
    on_complete: Callable[[PipelineResult], None] | None = None
    fractional_progress: bool = False


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    label: str
    detail: str
    index: int
    total: int
    # None means indeterminate.
    fraction: float | None = None


class ProgressSink(Protocol):
    """Receives progress notifications on the owner thread."""

    def begin(self, update: ProgressUpdate) -> None: ...

    def finish(self) -> None: ...


@dataclass
class PipelineHandle:
    """Tracks one dispatched pipeline until its completion callback has run."""

    pipeline: Pipeline
    thread: threading.Thread | None = None
    result: PipelineResult | None = None
    _finished: threading.Event = field(default_factory=threading.Event, init=False, repr=False)

    def done(self) -> bool:
        return self._finished.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until completion. Never call this on the owner thread."""

        return self._finished.wait(timeout)

    def _finish(self, result: PipelineResult) -> None:
        self.result = result
        self._finished.set()


_thread_counter = itertools.count(1)


class PipelineDispatcher:
    def __init__(
        self,
        owner: OwnerLoop,
        *,
        background_on_owner: bool = False,
        thread_name_prefix: str = "pipeline",
    ) -> None:
        self._owner = owner
        self._background_on_owner = background_on_owner
        self._thread_name_prefix = thread_name_prefix

    def dispatch(self, pipeline: Pipeline, progress: ProgressSink | None = None) -> PipelineHandle:
        handle = PipelineHandle(pipeline=pipeline)
        thread = threading.Thread(
            target=self._run,
            name=f"{self._thread_name_prefix}-{pipeline.name}-{next(_thread_counter)}",
            daemon=True,
            kwargs={"handle": handle, "progress": progress},
        )
        handle.thread = thread
        logger.info(
            "Dispatching pipeline",
            extra={"pipeline": pipeline.name, "steps": len(pipeline.steps)},
        )
        thread.start()
        return handle

    def execute(self, pipeline: Pipeline, progress: ProgressSink | None = None) -> PipelineResult:
        """Run the steps in order on the calling thread, stopping at the first failure."""

        total = len(pipeline.steps)
        for index, step in enumerate(pipeline.steps):
            if progress is not None:
                fraction = index / total if pipeline.fractional_progress else None
                update = ProgressUpdate(
                    label=step.label,
                    detail=step.detail,
                    index=index,
                    total=total,
                    fraction=fraction,
                )
                self._owner.post(partial(progress.begin, update))

            logger.debug(
                "Pipeline step starting",
                extra={"pipeline": pipeline.name, "step": step.label, "kind": step.kind.value},
            )
            try:
                if step.kind is StepKind.ON_OWNER or self._background_on_owner:
                    self._owner.call(step.work)
                else:
                    step.work()
            except Exception as exc:
                logger.warning(
                    "Pipeline step failed",
                    exc_info=exc,
                    extra={"pipeline": pipeline.name, "step": step.label, "index": index},
                )
                return self._failed(pipeline, step, index, exc)
            except BaseException as exc:
                # Off the owner thread every escape from a step still completes the handle.
                if self._owner.is_owner_thread():
                    raise
                logger.error(
                    "Pipeline step aborted",
                    exc_info=exc,
                    extra={"pipeline": pipeline.name, "step": step.label, "index": index},
                )
                return self._failed(pipeline, step, index, exc)

        return PipelineResult(ok=True, steps_completed=total)

    @staticmethod
    def _failed(
        pipeline: Pipeline, step: Step, index: int, exc: BaseException
    ) -> PipelineResult:
        failure = PipelineStepFailure(
            pipeline=pipeline.name, step_label=step.label, step_index=index, cause=exc
        )
        return PipelineResult(ok=False, error=failure, steps_completed=index)

    def _run(self, *, handle: PipelineHandle, progress: ProgressSink | None) -> None:
        pipeline = handle.pipeline
        result = self.execute(pipeline, progress)
        if progress is not None:
            self._owner.post(progress.finish)
        self._owner.post(partial(self._complete, handle, result))

    def _complete(self, handle: PipelineHandle, result: PipelineResult) -> None:
        pipeline = handle.pipeline
        try:
            if pipeline.on_complete is not None:
                pipeline.on_complete(result)
            elif result.error is not None:
                logger.error(
                    "Pipeline failed",
                    exc_info=result.error.cause,
                    extra={"pipeline": pipeline.name, "step": result.error.step_label},
                )
        finally:
            handle._finish(result)
            logger.info(
                "Pipeline finished",
                extra={
                    "pipeline": pipeline.name,
                    "ok": result.ok,
                    "steps_completed": result.steps_completed,
                },
            )
