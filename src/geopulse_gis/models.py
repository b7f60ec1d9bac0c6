"""Pydantic data models for the GIS interchange pipeline."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

DEFAULT_EVENT_TYPE = "environmental_change"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Coordinates(_CamelModel):
    """A WGS84 coordinate."""

    lat: float = Field(ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(ge=-180, le=180, allow_inf_nan=False)


class AnalysisFeature(_CamelModel):
    """Canonical analysis feature shared by import and export."""

    id: str
    name: str
    coordinates: Coordinates
    event_type: str = DEFAULT_EVENT_TYPE
    change_percent: float | None = None
    start_date: str
    end_date: str
    summary: str | None = None
    area_analyzed: str | None = None
    created_at: str


class Bounds(_CamelModel):
    """Running bounding box over accepted features.

    Starts inverted (``min > max``) so the first ``extend`` sets it exactly.
    """

    min_lat: float = 90.0
    max_lat: float = -90.0
    min_lng: float = 180.0
    max_lng: float = -180.0

    @property
    def is_empty(self) -> bool:
        return self.min_lat > self.max_lat

    def extend(self, lat: float, lng: float) -> Bounds:
        return Bounds(
            min_lat=min(self.min_lat, lat),
            max_lat=max(self.max_lat, lat),
            min_lng=min(self.min_lng, lng),
            max_lng=max(self.max_lng, lng),
        )


class SkippedRecord(_CamelModel):
    """A record that was read but not turned into a feature."""

    index: int
    code: str
    reason: str


class ImportResult(_CamelModel):
    """Outcome of importing a shapefile or GeoJSON document."""

    features: list[AnalysisFeature] = Field(default_factory=list)
    properties: list[dict] = Field(default_factory=list)
    bounds: Bounds = Field(default_factory=Bounds)
    skipped: list[SkippedRecord] = Field(default_factory=list)
    crs: str | None = None

    @computed_field(alias="acceptedCount")
    @property
    def accepted_count(self) -> int:
        return len(self.features)
