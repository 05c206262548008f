"""Configuration for the forecast workflow engine.

Configuration is loaded from:
- environment variables prefixed with ``FORECAST_WORKFLOW_``
- and a local `.env` file (if present)

Notes:
    Pydantic-settings supports overriding the env file in tests via:
    `WorkflowSettings(_env_file=path_to_env)`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkflowSettings(BaseSettings):
    """Settings for a workflow session.

    Environment variables:
    - FORECAST_WORKFLOW_LOG_LEVEL
    - FORECAST_WORKFLOW_LOG_FORMAT
    - FORECAST_WORKFLOW_TRACE_EVENTS
    - FORECAST_WORKFLOW_FORCE_BACKGROUND_ON_OWNER
    - FORECAST_WORKFLOW_OWNER_POLL_INTERVAL_SECONDS
    - FORECAST_WORKFLOW_PIPELINE_THREAD_PREFIX
    - FORECAST_WORKFLOW_PARAMETERS_PATH
    """

    log_level: str = Field(
        default="INFO",
        description="Root logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Structured JSON lines or plain text",
    )
    trace_events: bool = Field(
        default=False,
        description="Log every gate decision and stage transition at DEBUG level",
    )
    force_background_on_owner: bool = Field(
        default=False,
        description=(
            "Run background pipeline steps on the owner thread. "
            "Debugging aid; the owner thread blocks for the whole computation."
        ),
    )
    owner_poll_interval_seconds: float = Field(
        default=0.05,
        gt=0.0,
        description="How long the owner loop blocks waiting for queued work",
    )
    pipeline_thread_prefix: str = Field(
        default="pipeline",
        description="Name prefix for pipeline worker threads",
    )
    parameters_path: Path = Field(
        default=Path("forecast_params.json"),
        description="Default location of the saved parameter file",
    )

    model_config = SettingsConfigDict(
        env_prefix="FORECAST_WORKFLOW_",
        env_file=".env",
        extra="ignore",
    )
