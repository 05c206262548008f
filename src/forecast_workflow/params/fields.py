"""Live storage for the interactively-edited parameter groups.

Each group is a pydantic model with assignment validation, so single-field
constraints hold on every write. Constraints spanning several fields are
checked when a snapshot is loaded (see ``groups``).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RegionType(str, Enum):
    STANDARD = "standard"
    CENTROID_CIRCLE = "centroid_circle"
    EPICENTER_CIRCLE = "epicenter_circle"
    CUSTOM_CIRCLE = "custom_circle"


class CatalogFields(BaseModel):
    """Parameters for retrieving the aftershock catalog."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    event_id: str = Field(default="", description="Mainshock event ID")
    data_start_days: float = Field(default=0.0, ge=0.0, description="Days since the mainshock")
    data_end_days: float = Field(default=7.0, ge=0.0, description="Days since the mainshock")

    # Filled in by the catalog fetch when left empty.
    mc: float | None = Field(default=None, description="Magnitude of completeness")
    b_value: float | None = Field(default=None, gt=0.0, description="Gutenberg-Richter b-value")

    region_type: RegionType = Field(default=RegionType.STANDARD)
    radius_km: float = Field(default=20.0, gt=0.0)
    center_lat: float = Field(default=0.0, ge=-90.0, le=90.0)
    center_lon: float = Field(default=0.0, ge=-180.0, le=360.0)
    min_depth_km: float = Field(default=0.0, ge=-5.0)
    max_depth_km: float = Field(default=700.0, le=700.0)


class FittingFields(BaseModel):
    """Search grid for the sequence-specific model."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    a_range: tuple[float, float] = Field(default=(-4.5, -0.5))
    a_count: int = Field(default=81, ge=1)
    p_range: tuple[float, float] = Field(default=(0.98, 0.98))
    p_count: int = Field(default=1, ge=1)
    c_range: tuple[float, float] = Field(default=(0.018, 0.018))
    c_count: int = Field(default=1, ge=1)
    time_dependent_mc: bool = Field(default=True)


class ForecastFields(BaseModel):
    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    start_days: float = Field(default=7.0, ge=0.0, description="Days since the mainshock")
    end_days: float = Field(default=37.0, ge=0.0, description="Days since the mainshock")


class LiveFields(BaseModel):
    """All editable field groups of a session."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    catalog: CatalogFields = Field(default_factory=CatalogFields)
    fitting: FittingFields = Field(default_factory=FittingFields)
    forecast: ForecastFields = Field(default_factory=ForecastFields)
