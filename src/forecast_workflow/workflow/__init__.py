"""Workflow engine.

This package provides first-class types for:
- Stages and the controller that gates actions against them
- Snapshots: validated private copies of editable field groups
- Pipelines of background and owner-thread steps
- The owner loop that serialises access to workflow state

Everything that mutates workflow state runs on a single owner thread.
"""

from .errors import ContractViolation, FieldInvalid, PipelineStepFailure, WorkflowError
from .events import StageTransition
from .owner import OwnerLoop
from .pipeline import (
    Pipeline,
    PipelineDispatcher,
    PipelineHandle,
    PipelineResult,
    ProgressSink,
    ProgressUpdate,
    Step,
    StepKind,
)
from .snapshot import CompositeSnapshot, FieldSnapshot, Snapshot
from .stages import DEFAULT_ENTITY_GROUPS, EntityGroup, GateMode, Stage, StageController

__all__ = [
    "DEFAULT_ENTITY_GROUPS",
    "CompositeSnapshot",
    "ContractViolation",
    "EntityGroup",
    "FieldInvalid",
    "FieldSnapshot",
    "GateMode",
    "OwnerLoop",
    "Pipeline",
    "PipelineDispatcher",
    "PipelineHandle",
    "PipelineResult",
    "PipelineStepFailure",
    "ProgressSink",
    "ProgressUpdate",
    "Snapshot",
    "Stage",
    "StageController",
    "StageTransition",
    "Step",
    "StepKind",
    "WorkflowError",
]
