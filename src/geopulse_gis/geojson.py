"""GeoJSON export of analysis features.

The output carries a legacy ``crs`` member naming CRS84 because QGIS and
ArcGIS still honour it, even though RFC 7946 dropped it.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from .models import AnalysisFeature

CRS84_URN = "urn:ogc:def:crs:OGC:1.3:CRS84"
DEFAULT_COLLECTION_NAME = "GeoPulse Analysis Export"
DEFAULT_BOUNDARY_SIZE = 0.15


def boundary_ring(lng: float, lat: float, size: float = DEFAULT_BOUNDARY_SIZE) -> list[list[float]]:
    """Closed five-vertex square centred on (lng, lat) with half-width ``size`` degrees.

    This marks the area of interest symbolically; the analysed footprint itself
    is not kept upstream.
    """
    return [
        [lng - size, lat + size],
        [lng + size, lat + size],
        [lng + size, lat - size],
        [lng - size, lat - size],
        [lng - size, lat + size],
    ]


def _point_feature(feature: AnalysisFeature) -> dict[str, Any]:
    return {
        "type": "Feature",
        "properties": {
            "id": feature.id,
            "name": feature.name,
            "event_type": feature.event_type,
            "change_percent": feature.change_percent or 0,
            "start_date": feature.start_date,
            "end_date": feature.end_date,
            "summary": feature.summary or "",
            "area_analyzed": feature.area_analyzed or "",
            "created_at": feature.created_at,
            "geometry_type": "point",
        },
        "geometry": {
            "type": "Point",
            "coordinates": [feature.coordinates.lng, feature.coordinates.lat],
        },
    }


def _boundary_feature(feature: AnalysisFeature, size: float) -> dict[str, Any]:
    return {
        "type": "Feature",
        "properties": {
            "id": f"{feature.id}_boundary",
            "name": f"{feature.name} - Analysis Area",
            "event_type": feature.event_type,
            "change_percent": feature.change_percent or 0,
            "start_date": feature.start_date,
            "end_date": feature.end_date,
            "geometry_type": "polygon",
        },
        "geometry": {
            "type": "Polygon",
            "coordinates": [boundary_ring(feature.coordinates.lng, feature.coordinates.lat, size)],
        },
    }


def to_geojson(
    features: Sequence[AnalysisFeature],
    name: str = DEFAULT_COLLECTION_NAME,
    include_polygons: bool = True,
    *,
    boundary_size: float = DEFAULT_BOUNDARY_SIZE,
) -> dict[str, Any]:
    """Build a FeatureCollection with one Point per feature.

    With ``include_polygons`` each Point is followed by its boundary Polygon.
    """
    out: list[dict[str, Any]] = []
    for feature in features:
        out.append(_point_feature(feature))
        if include_polygons:
            out.append(_boundary_feature(feature, boundary_size))

    return {
        "type": "FeatureCollection",
        "name": name,
        "crs": {"type": "name", "properties": {"name": CRS84_URN}},
        "features": out,
    }


def to_shapefile_geojson(
    features: Sequence[AnalysisFeature],
    name: str = DEFAULT_COLLECTION_NAME,
    *,
    exported_at: datetime | None = None,
    boundary_size: float = DEFAULT_BOUNDARY_SIZE,
) -> dict[str, Any]:
    """GeoJSON flavoured for shapefile-oriented tools, with an export metadata block."""
    collection = to_geojson(features, name, True, boundary_size=boundary_size)
    moment = exported_at or datetime.now(timezone.utc)
    collection["metadata"] = {
        "generator": "GeoPulse Environmental Intelligence Platform",
        "exportDate": moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "featureCount": len(features),
        "projection": "EPSG:4326",
        "format": "GeoJSON (QGIS/ArcGIS Compatible)",
    }
    return collection
