"""Interfaces for the external collaborators invoked from pipeline steps.

Data retrieval, model fitting and forecast calculation are opaque to the
workflow engine. Implementations run on worker threads and must only use the
plain request values they are handed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class CatalogRequest:
    event_id: str
    start_days: float
    end_days: float
    region: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Catalog:
    event_id: str
    mainshock_magnitude: float
    times_days: tuple[float, ...]
    magnitudes: tuple[float, ...]
    mc: float
    b_value: float

    @property
    def size(self) -> int:
        return len(self.times_days)


@dataclass(frozen=True, slots=True)
class FitRequest:
    a_range: tuple[float, float]
    a_count: int
    p_range: tuple[float, float]
    p_count: int
    c_range: tuple[float, float]
    c_count: int
    time_dependent_mc: bool


@dataclass(frozen=True, slots=True)
class FittedModel:
    a: float
    p: float
    c: float
    b: float
    mc: float


@dataclass(frozen=True, slots=True)
class ForecastRequest:
    start_days: float
    end_days: float


@dataclass(frozen=True, slots=True)
class ForecastRow:
    magnitude: float
    expected_count: float
    probability: float


@dataclass(frozen=True, slots=True)
class ForecastTable:
    start_days: float
    end_days: float
    rows: tuple[ForecastRow, ...]


class CatalogFetcher(ABC):
    @abstractmethod
    def fetch_catalog(self, request: CatalogRequest) -> Catalog:
        """Retrieve the mainshock and its aftershocks.

        Args:
            request: Event ID, time window and search region.

        Returns:
            The catalog, including estimated mc and b-value.
        """


class ParameterFitter(ABC):
    @abstractmethod
    def fit(self, catalog: Catalog, request: FitRequest) -> FittedModel:
        """Fit a sequence-specific model to the catalog.

        Args:
            catalog: Catalog produced by the fetch step.
            request: Parameter search grid.

        Returns:
            The fitted model.
        """


class ForecastCalculator(ABC):
    @abstractmethod
    def forecast(
        self, catalog: Catalog, model: FittedModel, request: ForecastRequest
    ) -> ForecastTable:
        """Compute forecast tables for the requested window."""
