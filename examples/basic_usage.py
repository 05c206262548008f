#!/usr/bin/env python3
"""Programmatic session example.

This demonstrates driving a workflow session directly:

* load settings from `.env`
* run the catalog fetch, parameter fit and forecast in order
* edit a fitting parameter and watch the stale results being discarded

The simulated collaborators stand in for the catalog service and the fitter.
"""

from __future__ import annotations

import argparse
from typing import Sequence

from forecast_workflow.config import WorkflowSettings
from forecast_workflow.logging import configure_logging
from forecast_workflow.session import Action, Session
from forecast_workflow.simulated import (
    SimulatedCatalogFetcher,
    SimulatedForecastCalculator,
    SimulatedParameterFitter,
)
from forecast_workflow.workflow.stages import Stage


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a forecast session (programmatic example).")
    parser.add_argument("--event-id", required=True, help="Mainshock event ID")
    parser.add_argument(
        "--delay",
        type=float,
        default=0.5,
        help="Simulated seconds spent fetching and fitting",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = WorkflowSettings()
    configure_logging(settings.log_level, settings.log_format, trace_events=settings.trace_events)

    session = Session(
        fetcher=SimulatedCatalogFetcher(delay_seconds=args.delay),
        fitter=SimulatedParameterFitter(delay_seconds=args.delay),
        forecaster=SimulatedForecastCalculator(),
        settings=settings,
    )
    session.add_observer(lambda old, new: print(f"stage {old.name} -> {new.name}"))

    session.set_field("catalog", "event_id", args.event_id)
    if not session.run_through(Stage.FORECAST_READY, timeout=30.0):
        print("Workflow stopped early")
        return 1

    for row in session.forecast_tables.rows:
        print(f"M>={row.magnitude:.1f}: {row.probability:.1%}")

    # Widening the a-value grid invalidates the fitted model and the forecast.
    session.set_field("fitting", "a_count", 161)
    print(f"Forecast enabled after edit: {session.is_enabled(Action.COMPUTE_FORECAST)}")
    print(f"Fit enabled after edit: {session.is_enabled(Action.FIT_PARAMETERS)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
