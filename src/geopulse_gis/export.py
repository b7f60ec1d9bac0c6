"""Downloadable export documents: GeoJSON, KML and the WGS84 .prj sidecar."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .geojson import DEFAULT_BOUNDARY_SIZE, DEFAULT_COLLECTION_NAME, to_geojson, to_shapefile_geojson
from .kml import to_kml
from .models import AnalysisFeature

logger = logging.getLogger("geopulse_gis.export")

DEFAULT_FILENAME = "geopulse-export"

GEOJSON_MEDIA_TYPE = "application/geo+json"
KML_MEDIA_TYPE = "application/vnd.google-earth.kml+xml"
PRJ_MEDIA_TYPE = "text/plain"

WGS84_PRJ = (
    'GEOGCS["GCS_WGS_1984",DATUM["D_WGS_1984",SPHEROID["WGS_1984",6378137,298.257223563]],'
    'PRIMEM["Greenwich",0],UNIT["Degree",0.017453292519943295]]'
)


@dataclass(frozen=True, slots=True)
class ExportDocument:
    """Serialized document ready for a download sink."""

    content: str
    filename: str
    media_type: str

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'


def export_geojson(
    features: Sequence[AnalysisFeature],
    filename: str = DEFAULT_FILENAME,
    *,
    name: str = DEFAULT_COLLECTION_NAME,
    include_polygons: bool = True,
    boundary_size: float = DEFAULT_BOUNDARY_SIZE,
) -> ExportDocument:
    collection = to_geojson(features, name, include_polygons, boundary_size=boundary_size)
    logger.info("Exported %d features as GeoJSON (%d geometries)", len(features), len(collection["features"]))
    return ExportDocument(json.dumps(collection, indent=2, ensure_ascii=False), f"{filename}.geojson", GEOJSON_MEDIA_TYPE)


def export_shapefile_geojson(
    features: Sequence[AnalysisFeature],
    filename: str = DEFAULT_FILENAME,
    *,
    name: str = DEFAULT_COLLECTION_NAME,
    boundary_size: float = DEFAULT_BOUNDARY_SIZE,
) -> ExportDocument:
    collection = to_shapefile_geojson(features, name, boundary_size=boundary_size)
    logger.info("Exported %d features as shapefile-compatible GeoJSON", len(features))
    return ExportDocument(json.dumps(collection, indent=2, ensure_ascii=False), f"{filename}.geojson", GEOJSON_MEDIA_TYPE)


def export_kml(
    features: Sequence[AnalysisFeature],
    filename: str = DEFAULT_FILENAME,
    *,
    name: str = DEFAULT_COLLECTION_NAME,
    boundary_size: float = DEFAULT_BOUNDARY_SIZE,
) -> ExportDocument:
    logger.info("Exported %d features as KML", len(features))
    return ExportDocument(to_kml(features, name, boundary_size=boundary_size), f"{filename}.kml", KML_MEDIA_TYPE)


def export_prj(filename: str = DEFAULT_FILENAME) -> ExportDocument:
    return ExportDocument(WGS84_PRJ, f"{filename}.prj", PRJ_MEDIA_TYPE)
