"""Unit tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from forecast_workflow.config import WorkflowSettings

_ENV_VARS = (
    "FORECAST_WORKFLOW_LOG_LEVEL",
    "FORECAST_WORKFLOW_LOG_FORMAT",
    "FORECAST_WORKFLOW_TRACE_EVENTS",
    "FORECAST_WORKFLOW_FORCE_BACKGROUND_ON_OWNER",
    "FORECAST_WORKFLOW_OWNER_POLL_INTERVAL_SECONDS",
    "FORECAST_WORKFLOW_PIPELINE_THREAD_PREFIX",
    "FORECAST_WORKFLOW_PARAMETERS_PATH",
)


@pytest.fixture(autouse=True)
def _clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_settings_defaults() -> None:
    settings = WorkflowSettings()

    assert settings.log_level == "INFO"
    assert settings.log_format == "json"
    assert settings.trace_events is False
    assert settings.force_background_on_owner is False
    assert settings.owner_poll_interval_seconds == 0.05
    assert settings.parameters_path == Path("forecast_params.json")


def test_settings_loads_from_dotenv(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "FORECAST_WORKFLOW_LOG_LEVEL=DEBUG",
                "FORECAST_WORKFLOW_TRACE_EVENTS=true",
                "UNRELATED_SETTING=ignored",
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = WorkflowSettings()

    assert settings.log_level == "DEBUG"
    assert settings.trace_events is True


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FORECAST_WORKFLOW_FORCE_BACKGROUND_ON_OWNER", "1")
    monkeypatch.setenv("FORECAST_WORKFLOW_PARAMETERS_PATH", "params/run.json")

    settings = WorkflowSettings()

    assert settings.force_background_on_owner is True
    assert settings.parameters_path == Path("params/run.json")


def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FORECAST_WORKFLOW_OWNER_POLL_INTERVAL_SECONDS", "0")
    with pytest.raises(ValidationError):
        WorkflowSettings()

    monkeypatch.delenv("FORECAST_WORKFLOW_OWNER_POLL_INTERVAL_SECONDS")
    monkeypatch.setenv("FORECAST_WORKFLOW_LOG_FORMAT", "xml")
    with pytest.raises(ValidationError):
        WorkflowSettings()
