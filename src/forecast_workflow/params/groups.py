"""Snapshot definitions and cross-field checks for the parameter groups."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from forecast_workflow.workflow.errors import FieldInvalid
from forecast_workflow.workflow.owner import OwnerLoop
from forecast_workflow.workflow.snapshot import Check, CompositeSnapshot, FieldSnapshot
from forecast_workflow.workflow.stages import Stage

from .fields import CatalogFields, FittingFields, ForecastFields, RegionType

MAX_GRID_POINTS = 5_000_000

# Stage a group's controls belong to. Editing a group discards everything
# computed above that stage.
GROUP_STAGES: dict[str, Stage] = {
    "catalog": Stage.IDLE,
    "fitting": Stage.DATA_READY,
    "forecast": Stage.PARAMETERS_FITTED,
}

# Fields that select which other fields are meaningful.
DISCRIMINATOR_FIELDS: frozenset[tuple[str, str]] = frozenset({("catalog", "region_type")})

CATALOG_WINDOW_FIELDS: tuple[str, ...] = (
    "event_id",
    "data_start_days",
    "data_end_days",
    "mc",
    "b_value",
)

REGION_FIELDS: dict[RegionType, tuple[str, ...]] = {
    RegionType.STANDARD: (),
    RegionType.CENTROID_CIRCLE: ("radius_km", "min_depth_km", "max_depth_km"),
    RegionType.EPICENTER_CIRCLE: ("radius_km", "min_depth_km", "max_depth_km"),
    RegionType.CUSTOM_CIRCLE: (
        "radius_km",
        "center_lat",
        "center_lon",
        "min_depth_km",
        "max_depth_km",
    ),
}

FITTING_FIELDS: tuple[str, ...] = (
    "a_range",
    "a_count",
    "p_range",
    "p_count",
    "c_range",
    "c_count",
    "time_dependent_mc",
)

FORECAST_FIELDS: tuple[str, ...] = ("start_days", "end_days")


def check_required(field: str) -> Check:
    def _check(values: Mapping[str, Any]) -> None:
        value = values.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise FieldInvalid(field, "must be supplied")

    return _check


def check_ordered(low: str, high: str, *, strict: bool = True) -> Check:
    """``values[low]`` must be below (or, if not strict, at most) ``values[high]``."""

    def _check(values: Mapping[str, Any]) -> None:
        if low not in values or high not in values:
            return
        lo, hi = values[low], values[high]
        if lo > hi or (strict and lo == hi):
            relation = "greater than" if strict else "at least"
            raise FieldInvalid(high, f"must be {relation} {low} ({lo})")

    return _check


def check_range_count(range_field: str, count_field: str, label: str) -> Check:
    """A fixed range takes exactly one value; a variable range more than one."""

    def _check(values: Mapping[str, Any]) -> None:
        lo, hi = values[range_field]
        count = values[count_field]
        if lo > hi:
            raise FieldInvalid(range_field, f"{label} range lower bound exceeds upper bound")
        if lo == hi:
            if count != 1:
                raise FieldInvalid(count_field, f"Num must equal 1 for fixed {label}")
        elif count <= 1:
            raise FieldInvalid(count_field, f"Num must be >1 for variable {label}")

    return _check


def check_grid_size(*count_fields: str, limit: int = MAX_GRID_POINTS) -> Check:
    def _check(values: Mapping[str, Any]) -> None:
        total = math.prod(values[field] for field in count_fields)
        if total > limit:
            raise FieldInvalid(
                count_fields[-1], f"parameter search grid exceeds {limit:,} entries ({total:,})"
            )

    return _check


def catalog_snapshot(fields: CatalogFields, *, owner: OwnerLoop | None = None) -> CompositeSnapshot:
    window = FieldSnapshot(
        "catalog.window",
        fields,
        CATALOG_WINDOW_FIELDS,
        checks=(
            check_required("event_id"),
            check_ordered("data_start_days", "data_end_days"),
        ),
        owner=owner,
    )
    region_type = FieldSnapshot("catalog.region_type", fields, ("region_type",), owner=owner)
    region = FieldSnapshot(
        "catalog.region",
        fields,
        lambda: REGION_FIELDS[RegionType(region_type["region_type"])],
        checks=(check_ordered("min_depth_km", "max_depth_km"),),
        owner=owner,
    )
    return CompositeSnapshot(
        "catalog",
        [("window", window), ("region_type", region_type), ("region", region)],
    )


def fitting_snapshot(fields: FittingFields, *, owner: OwnerLoop | None = None) -> FieldSnapshot:
    return FieldSnapshot(
        "fitting",
        fields,
        FITTING_FIELDS,
        checks=(
            check_range_count("a_range", "a_count", "a-value"),
            check_range_count("p_range", "p_count", "p-value"),
            check_range_count("c_range", "c_count", "c-value"),
            check_grid_size("a_count", "p_count", "c_count"),
        ),
        owner=owner,
    )


def forecast_snapshot(fields: ForecastFields, *, owner: OwnerLoop | None = None) -> FieldSnapshot:
    return FieldSnapshot(
        "forecast",
        fields,
        FORECAST_FIELDS,
        checks=(check_ordered("start_days", "end_days"),),
        owner=owner,
    )
