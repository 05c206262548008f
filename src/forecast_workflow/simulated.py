"""Deterministic stand-in collaborators.

These make the workflow runnable without network access or a real fitting
backend (demos, the CLI ``run`` command, tests). Results are synthetic.
"""

from __future__ import annotations

import logging
import math
import time

from forecast_workflow.collaborators import (
    Catalog,
    CatalogFetcher,
    CatalogRequest,
    FitRequest,
    FittedModel,
    ForecastCalculator,
    ForecastRequest,
    ForecastRow,
    ForecastTable,
    ParameterFitter,
)

logger = logging.getLogger(__name__)

_MAGNITUDE_CYCLE: tuple[float, ...] = (2.5, 2.6, 2.8, 3.0, 2.7, 3.3, 2.5, 3.8, 2.9, 4.2)


class SimulatedCatalogFetcher(CatalogFetcher):
    def __init__(
        self, *, mainshock_magnitude: float = 6.0, count: int = 50, delay_seconds: float = 0.0
    ) -> None:
        self.mainshock_magnitude = mainshock_magnitude
        self.count = count
        self.delay_seconds = delay_seconds

    def fetch_catalog(self, request: CatalogRequest) -> Catalog:
        logger.info("Simulating catalog fetch", extra={"event_id": request.event_id})
        if self.delay_seconds:
            time.sleep(self.delay_seconds)

        span = request.end_days - request.start_days
        times = tuple(
            request.start_days + span * (i + 0.5) / self.count for i in range(self.count)
        )
        mags = tuple(_MAGNITUDE_CYCLE[i % len(_MAGNITUDE_CYCLE)] for i in range(self.count))
        return Catalog(
            event_id=request.event_id,
            mainshock_magnitude=self.mainshock_magnitude,
            times_days=times,
            magnitudes=mags,
            mc=min(mags) if mags else 0.0,
            b_value=1.0,
        )


class SimulatedParameterFitter(ParameterFitter):
    """Picks the centre of each search range."""

    def __init__(self, *, delay_seconds: float = 0.0) -> None:
        self.delay_seconds = delay_seconds

    def fit(self, catalog: Catalog, request: FitRequest) -> FittedModel:
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        return FittedModel(
            a=sum(request.a_range) / 2.0,
            p=sum(request.p_range) / 2.0,
            c=sum(request.c_range) / 2.0,
            b=catalog.b_value,
            mc=catalog.mc,
        )


class SimulatedForecastCalculator(ForecastCalculator):
    """Expected counts from a modified Omori rate with Gutenberg-Richter scaling."""

    def __init__(self, *, magnitudes: tuple[float, ...] = (3.0, 4.0, 5.0, 6.0, 7.0)) -> None:
        self.magnitudes = magnitudes

    def forecast(
        self, catalog: Catalog, model: FittedModel, request: ForecastRequest
    ) -> ForecastTable:
        integral = _omori_integral(model.p, model.c, request.start_days, request.end_days)
        rows = []
        for mag in self.magnitudes:
            productivity = 10.0 ** (model.a + model.b * (catalog.mainshock_magnitude - mag))
            expected = productivity * integral
            rows.append(
                ForecastRow(
                    magnitude=mag,
                    expected_count=expected,
                    probability=1.0 - math.exp(-expected),
                )
            )
        return ForecastTable(
            start_days=request.start_days, end_days=request.end_days, rows=tuple(rows)
        )


def _omori_integral(p: float, c: float, start: float, end: float) -> float:
    if math.isclose(p, 1.0):
        return math.log((end + c) / (start + c))
    return ((end + c) ** (1.0 - p) - (start + c) ** (1.0 - p)) / (1.0 - p)
