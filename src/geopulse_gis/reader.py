"""Streaming shapefile decoder over in-memory .shp/.dbf buffers.

No .shx index is used: pyshp walks the .shp records sequentially, which is
also what lets the decoder yield records lazily for large uploads.
"""

from __future__ import annotations

import io
import logging
import struct
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, BinaryIO

import shapefile
from pyproj import CRS

from .exceptions import DecodeError
from .geometry import Geometry, UnsupportedGeometry, geometry_from_geojson
from .models import SkippedRecord

logger = logging.getLogger("geopulse_gis.reader")

SHAPEFILE_FILE_CODE = 9994

# Errors pyshp surfaces for truncated or garbled bytes.
_STRUCTURAL_ERRORS = (shapefile.ShapefileException, struct.error, KeyError, ValueError, EOFError)


def detect_crs(prj_source: str | bytes | None) -> tuple[int | None, str | None, bool | None]:
    """Parse CRS from a .prj WKT string.

    Returns (epsg_code, crs_name, is_projected) or (None, None, None) on failure.
    The result is informational only; coordinates are never transformed.
    """
    if prj_source is None:
        return None, None, None

    wkt = prj_source.decode("utf-8", errors="replace") if isinstance(prj_source, bytes) else prj_source
    if not wkt.strip():
        return None, None, None

    try:
        crs = CRS.from_wkt(wkt)
    except Exception:
        return None, None, None

    epsg = crs.to_epsg()
    return epsg, crs.name, crs.is_projected


@dataclass(frozen=True, slots=True)
class DecodedRecord:
    """One shape record with its attribute row."""

    index: int
    geometry: Geometry
    attributes: dict[str, Any] = field(default_factory=dict)


def _as_stream(source: bytes | BinaryIO) -> BinaryIO:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(source))
    return source


class ShapefileDecoder:
    """Pull-based reader of (geometry, attributes) pairs.

    The decoder owns a read cursor over its buffers, so an instance can be
    iterated once and must not be shared between consumers. Records whose
    geometry kind is not supported are left out of the iteration and listed in
    ``skipped``.

    Raises:
        DecodeError: While iterating, if the buffers are structurally corrupt.
    """

    def __init__(
        self,
        shp: bytes | BinaryIO,
        dbf: bytes | BinaryIO | None = None,
        *,
        encoding: str = "utf-8",
    ) -> None:
        self._shp = _as_stream(shp)
        self._dbf = _as_stream(dbf) if dbf is not None else None
        self._encoding = encoding
        self._consumed = False
        self.skipped: list[SkippedRecord] = []
        self.records_read = 0

    def __iter__(self) -> Iterator[DecodedRecord]:
        if self._consumed:
            raise DecodeError("Decoder already consumed")
        self._consumed = True
        return self._records()

    def _open(self) -> shapefile.Reader:
        start = self._shp.tell()
        magic = self._shp.read(4)
        self._shp.seek(start)
        if len(magic) < 4 or struct.unpack(">i", magic)[0] != SHAPEFILE_FILE_CODE:
            raise DecodeError("Not a shapefile: missing file code 9994")
        try:
            return shapefile.Reader(
                shp=self._shp,
                dbf=self._dbf,
                encoding=self._encoding,
                encodingErrors="replace",
            )
        except _STRUCTURAL_ERRORS as exc:
            raise DecodeError(f"Invalid shapefile header: {exc}") from exc

    def _records(self) -> Iterator[DecodedRecord]:
        sf = self._open()
        rows = sf.iterRecords() if self._dbf is not None else iter(())
        shapes = sf.iterShapes()
        index = 0
        while True:
            try:
                shape = next(shapes, None)
                if shape is None:
                    break
                row = next(rows, None)
                geometry = _shape_geometry(shape)
            except _STRUCTURAL_ERRORS as exc:
                logger.warning("Shapefile decode failed at record %d: %s", index, exc)
                raise DecodeError(
                    f"Corrupt shape record {index}: {exc}", record_index=index
                ) from exc

            self.records_read += 1
            if isinstance(geometry, UnsupportedGeometry):
                logger.debug("Skipping record %d: unsupported geometry %s", index, geometry.kind)
                self.skipped.append(
                    SkippedRecord(
                        index=index,
                        code="UNSUPPORTED_GEOMETRY",
                        reason=f"Unsupported geometry type: {geometry.kind}",
                    )
                )
            else:
                attributes = row.as_dict() if row is not None else {}
                yield DecodedRecord(index=index, geometry=geometry, attributes=attributes)
            index += 1


def _shape_geometry(shape: shapefile.Shape) -> Geometry | UnsupportedGeometry:
    if shape.shapeType == shapefile.NULL:
        return UnsupportedGeometry("NULL")
    try:
        geo = shape.__geo_interface__
    except shapefile.GeoJSON_Error:
        # MultiPatch has no GeoJSON form
        return UnsupportedGeometry(shape.shapeTypeName)
    return geometry_from_geojson(geo)


def decode_shapefile(
    shp: bytes | BinaryIO,
    dbf: bytes | BinaryIO | None = None,
    *,
    encoding: str = "utf-8",
) -> Iterator[DecodedRecord]:
    """Yield decoded records from a .shp buffer and optional .dbf buffer."""
    yield from ShapefileDecoder(shp, dbf, encoding=encoding)
