"""Test configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from forecast_workflow.config import WorkflowSettings
from forecast_workflow.params.fields import LiveFields
from forecast_workflow.session import Session
from forecast_workflow.simulated import (
    SimulatedCatalogFetcher,
    SimulatedForecastCalculator,
    SimulatedParameterFitter,
)
from forecast_workflow.workflow.owner import OwnerLoop
from forecast_workflow.workflow.stages import Stage, StageController


class RecordingObserver:
    """Collects (old, new) stage notifications."""

    def __init__(self) -> None:
        self.calls: list[tuple[Stage, Stage]] = []

    def __call__(self, old: Stage, new: Stage) -> None:
        self.calls.append((old, new))


@pytest.fixture
def owner() -> OwnerLoop:
    """Owner loop bound to the test thread."""
    return OwnerLoop(poll_interval=0.01)


@pytest.fixture
def controller(owner: OwnerLoop) -> StageController:
    return StageController(owner=owner)


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def settings(tmp_path: Path) -> WorkflowSettings:
    """Provide settings isolated from the environment and any local .env."""
    return WorkflowSettings(
        _env_file=None,
        owner_poll_interval_seconds=0.01,
        parameters_path=tmp_path / "params.json",
    )


@pytest.fixture
def fields() -> LiveFields:
    live = LiveFields()
    live.catalog.event_id = "us7000abcd"
    return live


@pytest.fixture
def session(settings: WorkflowSettings, fields: LiveFields, owner: OwnerLoop) -> Session:
    return Session(
        fetcher=SimulatedCatalogFetcher(),
        fitter=SimulatedParameterFitter(),
        forecaster=SimulatedForecastCalculator(),
        settings=settings,
        fields=fields,
        owner=owner,
    )
