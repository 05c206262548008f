"""Editable parameter groups and their snapshot definitions."""

from .fields import CatalogFields, FittingFields, ForecastFields, LiveFields, RegionType
from .groups import catalog_snapshot, fitting_snapshot, forecast_snapshot
from .store import ParameterFileStore

__all__ = [
    "CatalogFields",
    "FittingFields",
    "ForecastFields",
    "LiveFields",
    "ParameterFileStore",
    "RegionType",
    "catalog_snapshot",
    "fitting_snapshot",
    "forecast_snapshot",
]
