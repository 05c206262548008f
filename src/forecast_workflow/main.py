"""CLI entrypoint for the forecast workflow engine.

Runs the fetch / fit / forecast workflow with the simulated collaborators and
manages saved parameter files.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from forecast_workflow import __version__
from forecast_workflow.config import WorkflowSettings
from forecast_workflow.logging import configure_logging
from forecast_workflow.params.fields import LiveFields
from forecast_workflow.params.groups import catalog_snapshot, fitting_snapshot, forecast_snapshot
from forecast_workflow.params.store import ParameterFileStore
from forecast_workflow.session import Session
from forecast_workflow.simulated import (
    SimulatedCatalogFetcher,
    SimulatedForecastCalculator,
    SimulatedParameterFitter,
)
from forecast_workflow.workflow.errors import FieldInvalid, PipelineStepFailure
from forecast_workflow.workflow.pipeline import ProgressUpdate
from forecast_workflow.workflow.stages import Stage

logger = logging.getLogger(__name__)

_THROUGH_STAGES: dict[str, Stage] = {
    "data": Stage.DATA_READY,
    "parameters": Stage.PARAMETERS_FITTED,
    "forecast": Stage.FORECAST_READY,
}


class ConsoleProgress:
    """Progress sink writing one line per step to stderr."""

    def begin(self, update: ProgressUpdate) -> None:
        line = f"[{update.index + 1}/{update.total}] {update.label}"
        if update.detail:
            line += f": {update.detail}"
        print(line, file=sys.stderr)

    def finish(self) -> None:
        return None


class CollectingReporter:
    def __init__(self) -> None:
        self.invalid: FieldInvalid | None = None
        self.failure: PipelineStepFailure | None = None

    def report_invalid(self, action: str, error: FieldInvalid) -> None:
        self.invalid = error
        print(f"Invalid parameters for {action}: {error}", file=sys.stderr)

    def report_failure(self, action: str, error: PipelineStepFailure) -> None:
        self.failure = error
        logger.error(str(error), exc_info=error.cause, extra={"action": action})
        print(f"{action} failed: {error}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forecast-workflow",
        description="Staged aftershock forecast workflow engine",
    )
    parser.add_argument(
        "--version", action="version", version=f"forecast-workflow {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_params = subparsers.add_parser("init-params", help="Write a default parameter file")
    init_params.add_argument(
        "--out",
        default=None,
        help="Destination path (defaults to FORECAST_WORKFLOW_PARAMETERS_PATH)",
    )

    check_params = subparsers.add_parser(
        "check-params", help="Validate a parameter file against the cross-field rules"
    )
    check_params.add_argument(
        "--params",
        default=None,
        help="Parameter file (defaults to FORECAST_WORKFLOW_PARAMETERS_PATH)",
    )

    run = subparsers.add_parser(
        "run", help="Run the workflow with simulated data, fitting and forecasting"
    )
    run.add_argument(
        "--params",
        default=None,
        help="Parameter file (defaults to FORECAST_WORKFLOW_PARAMETERS_PATH)",
    )
    run.add_argument("--event-id", default=None, help="Override the mainshock event ID")
    run.add_argument(
        "--through",
        choices=sorted(_THROUGH_STAGES),
        default="forecast",
        help="Last stage to reach",
    )
    run.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Per-action timeout in seconds (0 means no timeout)",
    )

    return parser


def _params_path(value: str | None, settings: WorkflowSettings) -> Path:
    return Path(value) if value else settings.parameters_path


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = WorkflowSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your environment / .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level, settings.log_format, trace_events=settings.trace_events)

    try:
        if args.command == "init-params":
            store = ParameterFileStore(_params_path(args.out, settings))
            store.save(LiveFields())
            print(f"Wrote default parameters to {store.path}")
            return 0

        if args.command == "check-params":
            store = ParameterFileStore(_params_path(args.params, settings))
            fields = store.load()
            try:
                catalog_snapshot(fields.catalog).load()
                fitting_snapshot(fields.fitting).load()
                forecast_snapshot(fields.forecast).load()
            except FieldInvalid as e:
                print(f"Invalid parameters: {e}", file=sys.stderr)
                return 3
            print(f"Parameters OK: {store.path}")
            return 0

        if args.command == "run":
            store = ParameterFileStore(_params_path(args.params, settings))
            fields = store.load()
            if args.event_id:
                fields.catalog.event_id = args.event_id

            reporter = CollectingReporter()
            session = Session(
                fetcher=SimulatedCatalogFetcher(),
                fitter=SimulatedParameterFitter(),
                forecaster=SimulatedForecastCalculator(),
                settings=settings,
                fields=fields,
                reporter=reporter,
            )
            target = _THROUGH_STAGES[args.through]
            timeout = args.timeout or None
            reached = session.run_through(target, timeout=timeout, progress=ConsoleProgress())

            for transition in session.transitions:
                print(f"stage {transition.old.name} -> {transition.new.name}")

            if reporter.invalid is not None:
                return 3
            if not reached:
                if reporter.failure is None:
                    print(f"Workflow did not reach {target.name}", file=sys.stderr)
                return 4

            catalog = session.catalog
            print(f"Catalog {catalog.event_id}: {catalog.size} events, mc={catalog.mc}")
            if target >= Stage.PARAMETERS_FITTED:
                model = session.fitted_model
                print(f"Model a={model.a:.3f} p={model.p:.3f} c={model.c:.4f} b={model.b:.2f}")
            if target >= Stage.FORECAST_READY:
                table = session.forecast_tables
                print(f"Forecast days {table.start_days:g} to {table.end_days:g}")
                for row in table.rows:
                    print(
                        f"  M>={row.magnitude:.1f}  expected={row.expected_count:.3f}  "
                        f"probability={row.probability:.1%}"
                    )
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except ValidationError as e:
        logger.error("Parameter file is invalid", extra={"errors": e.error_count()})
        print(f"Parameter file is invalid:\n{e}", file=sys.stderr)
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
