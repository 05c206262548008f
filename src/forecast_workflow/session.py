"""Workflow session: stage gating, parameter snapshots and pipelines wired together."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from enum import Enum
from functools import partial
from typing import Any, Protocol, cast

from pydantic import ValidationError

from forecast_workflow.collaborators import (
    Catalog,
    CatalogFetcher,
    CatalogRequest,
    FitRequest,
    FittedModel,
    ForecastCalculator,
    ForecastRequest,
    ForecastTable,
    ParameterFitter,
)
from forecast_workflow.config import WorkflowSettings
from forecast_workflow.params.fields import LiveFields
from forecast_workflow.params.groups import (
    DISCRIMINATOR_FIELDS,
    GROUP_STAGES,
    catalog_snapshot,
    fitting_snapshot,
    forecast_snapshot,
)
from forecast_workflow.workflow.errors import ContractViolation, FieldInvalid, PipelineStepFailure
from forecast_workflow.workflow.events import StageTransition
from forecast_workflow.workflow.owner import OwnerLoop
from forecast_workflow.workflow.pipeline import (
    Pipeline,
    PipelineDispatcher,
    PipelineHandle,
    PipelineResult,
    ProgressSink,
    Step,
)
from forecast_workflow.workflow.snapshot import Snapshot
from forecast_workflow.workflow.stages import GateMode, Stage, StageController, StageObserver

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[PipelineResult], None]


class Action(str, Enum):
    FETCH_CATALOG = "fetch_catalog"
    FIT_PARAMETERS = "fit_parameters"
    COMPUTE_FORECAST = "compute_forecast"


# Stage each action's control belongs to.
ACTION_STAGES: dict[Action, Stage] = {
    Action.FETCH_CATALOG: Stage.IDLE,
    Action.FIT_PARAMETERS: Stage.DATA_READY,
    Action.COMPUTE_FORECAST: Stage.PARAMETERS_FITTED,
}


class ErrorReporter(Protocol):
    """Surfaces recoverable errors to the user. Called on the owner thread."""

    def report_invalid(self, action: str, error: FieldInvalid) -> None: ...

    def report_failure(self, action: str, error: PipelineStepFailure) -> None: ...


class LoggingReporter:
    def report_invalid(self, action: str, error: FieldInvalid) -> None:
        logger.warning(
            "Invalid parameters, action abandoned",
            extra={"action": action, "field": error.field_name, "reason": error.reason},
        )

    def report_failure(self, action: str, error: PipelineStepFailure) -> None:
        logger.error(
            str(error),
            exc_info=error.cause,
            extra={"action": action, "step": error.step_label},
        )


class Session:
    """One interactive workflow.

    The session owns the stage controller, the live parameter groups and the
    owner loop. It must be created and driven on the owner thread; pipeline
    work runs on worker threads and reports back through the owner loop,
    which the owner drains via ``wait()`` (or ``owner.run_until``).

    Every action follows the same shape: gate against the current stage,
    load a snapshot of the relevant parameters, then dispatch a pipeline whose
    last step stores the snapshot, publishes the result and advances the
    stage. Only one pipeline runs at a time.
    """

    def __init__(
        self,
        *,
        fetcher: CatalogFetcher,
        fitter: ParameterFitter,
        forecaster: ForecastCalculator,
        settings: WorkflowSettings | None = None,
        fields: LiveFields | None = None,
        owner: OwnerLoop | None = None,
        reporter: ErrorReporter | None = None,
    ) -> None:
        self.settings = settings or WorkflowSettings()
        self.owner = owner or OwnerLoop(poll_interval=self.settings.owner_poll_interval_seconds)
        self.owner.assert_owner("Session()")
        self.stages = StageController(owner=self.owner)
        self.fields = fields or LiveFields()
        self.dispatcher = PipelineDispatcher(
            self.owner,
            background_on_owner=self.settings.force_background_on_owner,
            thread_name_prefix=self.settings.pipeline_thread_prefix,
        )
        self.reporter: ErrorReporter = reporter or LoggingReporter()
        self.transitions: list[StageTransition] = []

        self._fetcher = fetcher
        self._fitter = fitter
        self._forecaster = forecaster
        self._in_flight: Action | None = None

        self.stages.add_observer(self._record_transition)

    @property
    def stage(self) -> Stage:
        return self.stages.current()

    @property
    def busy(self) -> bool:
        return self._in_flight is not None

    @property
    def catalog(self) -> Catalog:
        return cast(Catalog, self.stages.get("catalog"))

    @property
    def fitted_model(self) -> FittedModel:
        return cast(FittedModel, self.stages.get("fitted_model"))

    @property
    def forecast_tables(self) -> ForecastTable:
        return cast(ForecastTable, self.stages.get("forecast_tables"))

    def add_observer(self, observer: StageObserver) -> None:
        self.stages.add_observer(observer)

    def is_enabled(self, action: Action) -> bool:
        return not self.busy and not self.stages.gate(ACTION_STAGES[action], GateMode.TEST)

    def set_field(self, group: str, name: str, value: Any) -> bool:
        """Apply an interactive edit to a live parameter.

        Results computed from the edited group are discarded. Returns False
        if the edit was refused (control inactive, or a pipeline in flight).
        """

        self.owner.assert_owner("Session.set_field")
        if group not in GROUP_STAGES:
            raise ContractViolation(f"Unknown parameter group: {group}")
        model = getattr(self.fields, group)
        if name not in type(model).model_fields:
            raise ContractViolation(f"Parameter group {group} has no field {name}")

        if self.busy:
            logger.info(
                "Edit refused while a pipeline is in flight",
                extra={"group": group, "field": name},
            )
            return False

        stage = GROUP_STAGES[group]
        if self.stages.gate(stage, GateMode.TEST):
            return False

        try:
            setattr(model, name, value)
        except ValidationError as exc:
            raise FieldInvalid(name, exc.errors()[0]["msg"]) from exc

        mode = GateMode.ALWAYS_NOTIFY if (group, name) in DISCRIMINATOR_FIELDS else GateMode.COMMIT
        self.stages.gate(stage, mode)
        return True

    def fetch_catalog(
        self,
        *,
        progress: ProgressSink | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> PipelineHandle | None:
        def build() -> tuple[Snapshot, Sequence[Step]]:
            snapshot = catalog_snapshot(self.fields.catalog, owner=self.owner)
            fetched: dict[str, Catalog] = {}

            def fetch() -> None:
                window = snapshot.part("window")
                region = snapshot.part("region")
                region_type = snapshot.part("region_type")["region_type"]
                request = CatalogRequest(
                    event_id=window["event_id"],
                    start_days=window["data_start_days"],
                    end_days=window["data_end_days"],
                    region={"region_type": region_type.value, **region.view},
                )
                catalog = self._fetcher.fetch_catalog(request)
                if window["mc"] is None:
                    window.modify("mc", catalog.mc)
                if window["b_value"] is None:
                    window.modify("b_value", catalog.b_value)
                fetched["catalog"] = replace(catalog, mc=window["mc"], b_value=window["b_value"])

            def publish() -> None:
                snapshot.store()
                self.stages.put("catalog", fetched["catalog"])
                self.stages.advance(Stage.DATA_READY)

            return snapshot, (
                Step.background(
                    "Fetching Events",
                    fetch,
                    detail="Contacting the catalog service. If it fails, trying again often works.",
                ),
                Step.on_owner("Publishing Catalog", publish),
            )

        return self._launch(Action.FETCH_CATALOG, build, progress, on_complete)

    def fit_parameters(
        self,
        *,
        progress: ProgressSink | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> PipelineHandle | None:
        def build() -> tuple[Snapshot, Sequence[Step]]:
            catalog = self.catalog
            snapshot = fitting_snapshot(self.fields.fitting, owner=self.owner)
            fitted: dict[str, FittedModel] = {}

            def fit() -> None:
                request = FitRequest(
                    a_range=snapshot["a_range"],
                    a_count=snapshot["a_count"],
                    p_range=snapshot["p_range"],
                    p_count=snapshot["p_count"],
                    c_range=snapshot["c_range"],
                    c_count=snapshot["c_count"],
                    time_dependent_mc=snapshot["time_dependent_mc"],
                )
                fitted["model"] = self._fitter.fit(catalog, request)

            def publish() -> None:
                snapshot.store()
                self.stages.put("fitted_model", fitted["model"])
                self.stages.advance(Stage.PARAMETERS_FITTED)

            return snapshot, (
                Step.background("Computing Aftershock Params", fit),
                Step.on_owner("Publishing Model", publish),
            )

        return self._launch(Action.FIT_PARAMETERS, build, progress, on_complete)

    def compute_forecast(
        self,
        *,
        progress: ProgressSink | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> PipelineHandle | None:
        def build() -> tuple[Snapshot, Sequence[Step]]:
            catalog = self.catalog
            model = self.fitted_model
            snapshot = forecast_snapshot(self.fields.forecast, owner=self.owner)
            computed: dict[str, ForecastTable] = {}

            def forecast() -> None:
                request = ForecastRequest(
                    start_days=snapshot["start_days"], end_days=snapshot["end_days"]
                )
                computed["table"] = self._forecaster.forecast(catalog, model, request)

            def publish() -> None:
                snapshot.store()
                self.stages.put("forecast_tables", computed["table"])
                self.stages.advance(Stage.FORECAST_READY)

            return snapshot, (
                Step.background("Computing Forecast", forecast),
                Step.on_owner("Publishing Forecast", publish),
            )

        return self._launch(Action.COMPUTE_FORECAST, build, progress, on_complete)

    def run_through(
        self,
        target: Stage,
        *,
        timeout: float | None = None,
        progress: ProgressSink | None = None,
    ) -> bool:
        """Run the actions in order until ``target`` is reached.

        Starts from a fresh catalog fetch. Returns False as soon as an action
        is refused, fails, or does not finish within ``timeout`` seconds.
        """

        actions = (
            (Stage.DATA_READY, self.fetch_catalog),
            (Stage.PARAMETERS_FITTED, self.fit_parameters),
            (Stage.FORECAST_READY, self.compute_forecast),
        )
        for stage, start in actions:
            if stage > target:
                break
            handle = start(progress=progress)
            if handle is None or not self.wait(handle, timeout):
                return False
            if handle.result is None or not handle.result.ok:
                return False
        return self.stage >= target

    def wait(self, handle: PipelineHandle, timeout: float | None = None) -> bool:
        """Drain the owner loop until ``handle`` has completed."""

        return self.owner.run_until(handle.done, timeout)

    def _launch(
        self,
        action: Action,
        build: Callable[[], tuple[Snapshot, Sequence[Step]]],
        progress: ProgressSink | None,
        on_complete: CompletionCallback | None,
    ) -> PipelineHandle | None:
        self.owner.assert_owner(f"Session.{action.value}")
        if self.busy:
            logger.info(
                "Action refused while a pipeline is in flight",
                extra={"action": action.value, "in_flight": cast(Action, self._in_flight).value},
            )
            return None
        if self.stages.gate(ACTION_STAGES[action], GateMode.COMMIT):
            return None

        snapshot, steps = build()
        try:
            snapshot.load()
        except FieldInvalid as exc:
            self.reporter.report_invalid(action.value, exc)
            return None

        pipeline = Pipeline(
            name=action.value,
            steps=tuple(steps),
            on_complete=partial(self._finish, action, on_complete),
        )
        self._in_flight = action
        return self.dispatcher.dispatch(pipeline, progress)

    def _finish(
        self, action: Action, on_complete: CompletionCallback | None, result: PipelineResult
    ) -> None:
        self._in_flight = None
        violation: ContractViolation | None = None
        if result.error is not None:
            if isinstance(result.error.cause, ContractViolation):
                violation = result.error.cause
            else:
                self.reporter.report_failure(action.value, result.error)
        try:
            if on_complete is not None:
                on_complete(result)
        finally:
            if violation is not None:
                raise violation

    def _record_transition(self, old: Stage, new: Stage) -> None:
        transition = StageTransition(old=old, new=new)
        self.transitions.append(transition)
        logger.info("Stage changed", extra=transition.to_json())
