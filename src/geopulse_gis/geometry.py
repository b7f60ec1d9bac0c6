"""Geometry kinds accepted by the importer and their reduction to one anchor point.

Geometries arrive as GeoJSON-style mappings (pyshp's ``__geo_interface__`` or an
uploaded GeoJSON document) and are converted once, at the boundary, into a
closed set of frozen dataclasses. Anything else becomes ``UnsupportedGeometry``.

Polygon anchors are the arithmetic mean of the outer-ring vertices, not an
area-weighted centroid. This is a known limitation for concave or unevenly
sampled rings and is kept so imported positions match earlier exports.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Union

from .exceptions import InvalidCoordinateError, UnsupportedGeometryError

Position = tuple[float, float]  # (lng, lat), GeoJSON axis order


@dataclass(frozen=True, slots=True)
class PointGeometry:
    position: Position


@dataclass(frozen=True, slots=True)
class LineStringGeometry:
    vertices: tuple[Position, ...]


@dataclass(frozen=True, slots=True)
class MultiLineStringGeometry:
    lines: tuple[tuple[Position, ...], ...]


@dataclass(frozen=True, slots=True)
class PolygonGeometry:
    """Rings as in GeoJSON: the first is the outer ring, the rest are holes."""

    rings: tuple[tuple[Position, ...], ...]


@dataclass(frozen=True, slots=True)
class MultiPolygonGeometry:
    polygons: tuple[tuple[tuple[Position, ...], ...], ...]


@dataclass(frozen=True, slots=True)
class UnsupportedGeometry:
    kind: str


Geometry = Union[
    PointGeometry,
    LineStringGeometry,
    MultiLineStringGeometry,
    PolygonGeometry,
    MultiPolygonGeometry,
]


def _position(raw: Sequence[float]) -> Position:
    return float(raw[0]), float(raw[1])


def _path(raw: Sequence[Sequence[float]]) -> tuple[Position, ...]:
    return tuple(_position(p) for p in raw)


def geometry_from_geojson(geo: object) -> Geometry | UnsupportedGeometry:
    """Convert a GeoJSON geometry mapping into the closed geometry union.

    Non-mappings, empty geometries and kinds outside the union come back as
    ``UnsupportedGeometry`` rather than raising.
    """
    if not geo or not isinstance(geo, Mapping):
        return UnsupportedGeometry("Null")

    kind = str(geo.get("type", "Null"))
    coords = geo.get("coordinates")
    if not coords:
        return UnsupportedGeometry(f"Empty{kind}")

    try:
        if kind == "Point":
            return PointGeometry(_position(coords))  # type: ignore[arg-type]
        if kind == "LineString":
            return LineStringGeometry(_path(coords))  # type: ignore[arg-type]
        if kind == "MultiLineString":
            return MultiLineStringGeometry(tuple(_path(line) for line in coords))  # type: ignore[union-attr]
        if kind == "Polygon":
            return PolygonGeometry(tuple(_path(ring) for ring in coords))  # type: ignore[union-attr]
        if kind == "MultiPolygon":
            return MultiPolygonGeometry(
                tuple(tuple(_path(ring) for ring in poly) for poly in coords)  # type: ignore[union-attr]
            )
    except (TypeError, ValueError, IndexError, KeyError):
        return UnsupportedGeometry(f"Malformed{kind}")

    return UnsupportedGeometry(kind)


def ring_centroid(ring: Sequence[Position]) -> Position:
    """Vertex mean of a closed ring, ignoring the closing duplicate of vertex 0."""
    n = len(ring) - 1 if len(ring) > 1 else len(ring)
    if n == 0:
        raise InvalidCoordinateError("Polygon ring has no vertices")
    sum_lng = sum(p[0] for p in ring[:n])
    sum_lat = sum(p[1] for p in ring[:n])
    return sum_lng / n, sum_lat / n


def line_midpoint(vertices: Sequence[Position]) -> Position:
    """Vertex at index ``n // 2`` (vertex-count midpoint, not arc length)."""
    if not vertices:
        raise InvalidCoordinateError("Line has no vertices")
    return vertices[len(vertices) // 2]


def reduce_geometry(geometry: Geometry | UnsupportedGeometry) -> tuple[float, float]:
    """Reduce a geometry to a single ``(lat, lng)`` anchor.

    Raises:
        UnsupportedGeometryError: For ``UnsupportedGeometry``.
        InvalidCoordinateError: If the geometry has no vertices to reduce.
    """
    if isinstance(geometry, PointGeometry):
        lng, lat = geometry.position
    elif isinstance(geometry, PolygonGeometry):
        if not geometry.rings:
            raise InvalidCoordinateError("Polygon has no rings")
        lng, lat = ring_centroid(geometry.rings[0])
    elif isinstance(geometry, MultiPolygonGeometry):
        if not geometry.polygons or not geometry.polygons[0]:
            raise InvalidCoordinateError("MultiPolygon has no rings")
        lng, lat = ring_centroid(geometry.polygons[0][0])
    elif isinstance(geometry, LineStringGeometry):
        lng, lat = line_midpoint(geometry.vertices)
    elif isinstance(geometry, MultiLineStringGeometry):
        if not geometry.lines:
            raise InvalidCoordinateError("MultiLineString has no lines")
        lng, lat = line_midpoint(geometry.lines[0])
    elif isinstance(geometry, UnsupportedGeometry):
        raise UnsupportedGeometryError(f"Unsupported geometry type: {geometry.kind}")
    else:
        raise TypeError(f"Not a geometry: {type(geometry).__name__}")
    return lat, lng
