"""Error taxonomy for the workflow engine.

- ContractViolation: a programming defect (bad stage argument, illegal
  transition, guarded access below the required stage). Never retried.
- FieldInvalid: a snapshot found a cross-field constraint violated while
  loading. The only error expected during normal use.
- PipelineStepFailure: an exception escaped a pipeline step. Routed to the
  pipeline's completion callback.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for workflow engine errors."""


class ContractViolation(WorkflowError):
    pass


class FieldInvalid(WorkflowError, ValueError):
    """Raised by ``Snapshot.load()`` on the first violated constraint."""

    def __init__(self, field_name: str, reason: str) -> None:
        super().__init__(field_name, reason)
        self.field_name = field_name
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.field_name}: {self.reason}"


class PipelineStepFailure(WorkflowError):
    """An exception escaped the unit of work of a pipeline step."""

    def __init__(
        self, *, pipeline: str, step_label: str, step_index: int, cause: BaseException
    ) -> None:
        super().__init__(pipeline, step_label, step_index)
        self.pipeline = pipeline
        self.step_label = step_label
        self.step_index = step_index
        self.cause = cause
        self.__cause__ = cause

    def __str__(self) -> str:
        message = str(self.cause) or type(self.cause).__name__
        return f"Error {self.step_label}: {message}"
