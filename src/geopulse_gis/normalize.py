"""Turn decoded records (or external rows) into canonical analysis features."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, BinaryIO

from pydantic import ValidationError

from .exceptions import DecodeError, GeoJSONImportError, InvalidCoordinateError, RecordError
from .fields import FieldRule, coerce_date, coerce_number, infer_fields
from .geometry import UnsupportedGeometry, geometry_from_geojson, reduce_geometry
from .models import DEFAULT_EVENT_TYPE, AnalysisFeature, Bounds, Coordinates, ImportResult, SkippedRecord
from .reader import DecodedRecord, ShapefileDecoder, detect_crs

logger = logging.getLogger("geopulse_gis.normalize")

DEFAULT_CRS = "EPSG:4326"


def validate_coordinates(lat: float, lng: float) -> None:
    """Raise ``InvalidCoordinateError`` unless (lat, lng) is a finite WGS84 position."""
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidCoordinateError(f"Non-finite coordinate ({lat}, {lng})")
    if not -90 <= lat <= 90:
        raise InvalidCoordinateError(f"Latitude {lat} out of range [-90, 90]")
    if not -180 <= lng <= 180:
        raise InvalidCoordinateError(f"Longitude {lng} out of range [-180, 180]")


def _iso_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class FeatureNormalizer:
    """Accumulates accepted features, their raw attributes and their bounds.

    One instance per import run. Records that cannot be placed on the map are
    listed in ``skipped`` instead of failing the run.
    """

    def __init__(self, *, now: datetime | None = None, id_prefix: str = "shp") -> None:
        moment = now or datetime.now(timezone.utc)
        self._id_prefix = id_prefix
        self._stamp = int(moment.timestamp() * 1000)
        self._today = moment.astimezone(timezone.utc).date().isoformat()
        self._created_at = _iso_timestamp(moment)
        self.features: list[AnalysisFeature] = []
        self.properties: list[dict[str, Any]] = []
        self.skipped: list[SkippedRecord] = []
        self.bounds = Bounds()

    def accept(self, record: DecodedRecord) -> AnalysisFeature | None:
        """Normalize one record; returns None if it was skipped."""
        try:
            lat, lng = reduce_geometry(record.geometry)
            validate_coordinates(lat, lng)
        except RecordError as exc:
            logger.debug("Skipping record %d: %s", record.index, exc)
            self.skipped.append(SkippedRecord(index=record.index, code=exc.code, reason=exc.message))
            return None

        fields = infer_fields(record.attributes, record.index)
        feature = AnalysisFeature(
            id=f"{self._id_prefix}_{record.index}_{self._stamp}",
            name=fields.name,
            coordinates=Coordinates(lat=lat, lng=lng),
            event_type=fields.event_type,
            change_percent=fields.change_percent,
            start_date=fields.start_date or self._today,
            end_date=fields.end_date or self._today,
            summary=fields.summary,
            area_analyzed=fields.area_analyzed,
            created_at=self._created_at,
        )
        self.bounds = self.bounds.extend(lat, lng)
        self.features.append(feature)
        self.properties.append(dict(record.attributes))
        return feature

    def result(self, *, crs: str | None = None, upstream_skipped: Sequence[SkippedRecord] = ()) -> ImportResult:
        skipped = sorted([*upstream_skipped, *self.skipped], key=lambda s: s.index)
        return ImportResult(
            features=list(self.features),
            properties=list(self.properties),
            bounds=self.bounds,
            skipped=skipped,
            crs=crs,
        )

    def normalize(
        self,
        records: Iterable[DecodedRecord],
        *,
        crs: str | None = None,
        upstream_skipped: Sequence[SkippedRecord] = (),
    ) -> ImportResult:
        """Consume ``records`` and return the import result.

        ``upstream_skipped`` is read after iteration, so a decoder's live
        ``skipped`` list can be passed in before decoding starts.

        Raises:
            DecodeError: Re-raised from ``records``, with ``partial`` set to
                what was accepted before the failure.
        """
        try:
            for record in records:
                self.accept(record)
        except DecodeError as exc:
            exc.partial = self.result(crs=crs, upstream_skipped=upstream_skipped)
            raise
        return self.result(crs=crs, upstream_skipped=upstream_skipped)


def crs_label(prj: str | bytes | None) -> str:
    """Describe an uploaded .prj; coordinates are used as WGS84 regardless."""
    if prj is None:
        return DEFAULT_CRS
    epsg, name, is_projected = detect_crs(prj)
    if epsg is None and name is None:
        logger.warning("Could not parse .prj; assuming %s", DEFAULT_CRS)
        return DEFAULT_CRS
    if is_projected or (epsg is not None and epsg != 4326):
        logger.warning("Shapefile CRS %s is not WGS84; coordinates are not reprojected", name)
    return f"EPSG:{epsg}" if epsg is not None else str(name)


def import_shapefile(
    shp: bytes | BinaryIO,
    dbf: bytes | BinaryIO | None = None,
    prj: str | bytes | None = None,
    *,
    now: datetime | None = None,
    encoding: str = "utf-8",
) -> ImportResult:
    """Decode a shapefile and normalize every supported record.

    Raises:
        DecodeError: If the .shp or .dbf buffer is structurally corrupt.
    """
    decoder = ShapefileDecoder(shp, dbf, encoding=encoding)
    normalizer = FeatureNormalizer(now=now, id_prefix="shp")
    logger.info("Importing shapefile (dbf=%s, prj=%s)", dbf is not None, prj is not None)
    result = normalizer.normalize(decoder, crs=crs_label(prj), upstream_skipped=decoder.skipped)
    logger.info(
        "Shapefile import complete: %d accepted, %d skipped of %d records",
        result.accepted_count,
        len(result.skipped),
        decoder.records_read,
    )
    return result


# ---------------------------------------------------------------------------
# GeoJSON upload
# ---------------------------------------------------------------------------


def _geojson_features(document: Mapping[str, Any]) -> list[Any]:
    kind = document.get("type")
    if kind == "FeatureCollection":
        features = document.get("features")
        if not isinstance(features, list):
            raise GeoJSONImportError("FeatureCollection has no features array")
        return features
    if kind == "Feature":
        return [document]
    return [{"type": "Feature", "geometry": document, "properties": {}}]


def import_geojson(document: str | bytes | Mapping[str, Any], *, now: datetime | None = None) -> ImportResult:
    """Normalize a GeoJSON FeatureCollection, Feature or bare geometry.

    Raises:
        GeoJSONImportError: If the document is not a JSON object.
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except ValueError as exc:
            raise GeoJSONImportError(f"Invalid JSON: {exc}") from exc
    if not isinstance(document, Mapping):
        raise GeoJSONImportError("GeoJSON document must be a JSON object")

    normalizer = FeatureNormalizer(now=now, id_prefix="geo")
    skipped: list[SkippedRecord] = []
    records: list[DecodedRecord] = []
    for index, feature in enumerate(_geojson_features(document)):
        if not isinstance(feature, Mapping):
            skipped.append(SkippedRecord(index=index, code="GEOJSON_INVALID", reason="Feature is not an object"))
            continue
        geometry = geometry_from_geojson(feature.get("geometry"))
        if isinstance(geometry, UnsupportedGeometry):
            skipped.append(
                SkippedRecord(
                    index=index,
                    code="UNSUPPORTED_GEOMETRY",
                    reason=f"Unsupported geometry type: {geometry.kind}",
                )
            )
            continue
        properties = feature.get("properties")
        records.append(
            DecodedRecord(
                index=index,
                geometry=geometry,
                attributes=dict(properties) if isinstance(properties, Mapping) else {},
            )
        )

    result = normalizer.normalize(records, crs=DEFAULT_CRS, upstream_skipped=skipped)
    logger.info("GeoJSON import complete: %d accepted, %d skipped", result.accepted_count, len(result.skipped))
    return result


# ---------------------------------------------------------------------------
# Database rows
# ---------------------------------------------------------------------------


# Row columns use the attribute coercers; an uncoercible value falls back per field.
_ROW_START_DATE = FieldRule(("start_date",), coerce_date)
_ROW_END_DATE = FieldRule(("end_date",), coerce_date)
_ROW_CHANGE_PERCENT = FieldRule(("change_percent",), coerce_number)


def _first_number(mapping: Mapping[str, Any], keys: Iterable[str]) -> float | None:
    for key in keys:
        value = mapping.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


def _row_timestamp(value: Any) -> str | None:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return _iso_timestamp(value)
    return str(value) if value else None


def feature_from_row(row: Mapping[str, Any], *, now: datetime | None = None) -> AnalysisFeature | None:
    """Map a stored analysis row onto an ``AnalysisFeature``.

    ``coordinates`` may be a mapping or its JSON encoding, keyed ``lat``/
    ``latitude`` and ``lng``/``longitude``/``lon``. Returns None when the row
    has no usable position.
    """
    coords = row.get("coordinates")
    if isinstance(coords, str):
        try:
            coords = json.loads(coords)
        except ValueError:
            return None
    if not isinstance(coords, Mapping):
        return None

    lat = _first_number(coords, ("lat", "latitude"))
    lng = _first_number(coords, ("lng", "longitude", "lon"))
    if lat is None or lng is None:
        return None

    moment = now or datetime.now(timezone.utc)
    today = moment.astimezone(timezone.utc).date().isoformat()
    try:
        return AnalysisFeature(
            id=str(row["id"]),
            name=row.get("region") or row.get("location_name") or "Unknown Location",
            coordinates=Coordinates(lat=lat, lng=lng),
            event_type=row.get("event_type") or DEFAULT_EVENT_TYPE,
            change_percent=_ROW_CHANGE_PERCENT.apply(row),
            start_date=_ROW_START_DATE.apply(row) or today,
            end_date=_ROW_END_DATE.apply(row) or today,
            summary=row.get("summary"),
            area_analyzed=row.get("area_analyzed"),
            created_at=_row_timestamp(row.get("created_at")) or _iso_timestamp(moment),
        )
    except (KeyError, ValidationError) as exc:
        logger.debug("Dropping row %r: %s", row.get("id"), exc)
        return None


def features_from_rows(rows: Iterable[Mapping[str, Any]], *, now: datetime | None = None) -> list[AnalysisFeature]:
    """Map rows, dropping those without a usable position."""
    features = []
    for row in rows:
        feature = feature_from_row(row, now=now)
        if feature is not None:
            features.append(feature)
    return features
