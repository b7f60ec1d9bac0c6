import io
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

import pytest
import shapefile

from geopulse_gis import AnalysisFeature, Coordinates

FIXED_NOW = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)

# Clockwise, as the shapefile format expects for outer rings.
UNIT_SQUARE = [[0.0, 0.0], [0.0, 1.0], [1.0, 1.0], [1.0, 0.0], [0.0, 0.0]]

DEFAULT_FIELDS = [("name", "C", 40, 0), ("type", "C", 20, 0), ("change", "N", 10, 2)]


def build_shapefile(
    shape_type: int,
    shapes: Sequence[Callable[[shapefile.Writer], None]],
    records: Sequence[tuple],
    fields: Sequence[tuple] = DEFAULT_FIELDS,
) -> tuple[bytes, bytes]:
    """Write shapes + records with pyshp and return the (.shp, .dbf) bytes."""
    shp, shx, dbf = io.BytesIO(), io.BytesIO(), io.BytesIO()
    w = shapefile.Writer(shp=shp, shx=shx, dbf=dbf, shapeType=shape_type)
    for field in fields:
        w.field(*field)
    for add_shape, record in zip(shapes, records):
        add_shape(w)
        w.record(*record)
    w.close()
    return shp.getvalue(), dbf.getvalue()


@pytest.fixture
def point_shapefile():
    return build_shapefile(
        shapefile.POINT,
        [lambda w: w.point(-60.0, -3.0), lambda w: w.point(10.5, 45.25)],
        [("Amazon plot", "Deforestation", 62.5), ("Po delta", "flood", -12.0)],
    )


@pytest.fixture
def polygon_shapefile():
    return build_shapefile(
        shapefile.POLYGON,
        [lambda w: w.poly([UNIT_SQUARE])],
        [("Square", "", 0)],
    )


@pytest.fixture
def polyline_shapefile():
    line = [[0.0, 0.0], [1.0, 1.0], [2.0, 2.0], [3.0, 3.0], [4.0, 4.0]]
    return build_shapefile(
        shapefile.POLYLINE,
        [lambda w: w.line([line]), lambda w: w.line([[[5.0, 5.0], [6.0, 6.0]], line])],
        [("Road", "", 0), ("Rail", "", 0)],
    )


@pytest.fixture
def mixed_shapefile():
    """One Polygon record followed by one MultiPoint record."""
    poly_shp, _ = build_shapefile(shapefile.POLYGON, [lambda w: w.poly([UNIT_SQUARE])], [("Square", "", 0)])
    multi_shp, _ = build_shapefile(
        shapefile.MULTIPOINT, [lambda w: w.multipoint([[1.0, 1.0], [2.0, 2.0]])], [("Cloud", "", 0)]
    )
    _, dbf = build_shapefile(
        shapefile.POLYGON,
        [lambda w: w.poly([UNIT_SQUARE]), lambda w: w.poly([UNIT_SQUARE])],
        [("Square", "", 0), ("Cloud", "", 0)],
    )
    # pyshp does not trust the header file length, so appending a record is enough.
    return poly_shp + multi_shp[100:], dbf


def make_feature(**overrides) -> AnalysisFeature:
    values = {
        "id": "feat_1",
        "name": "Rondonia clearing",
        "coordinates": Coordinates(lat=-10.5, lng=-62.25),
        "event_type": "deforestation",
        "change_percent": 42.0,
        "start_date": "2023-01-01",
        "end_date": "2023-12-31",
        "summary": "Canopy loss along the BR-364",
        "area_analyzed": "120.00 km²",
        "created_at": "2024-05-01T12:30:00.000Z",
    }
    values.update(overrides)
    return AnalysisFeature(**values)


@pytest.fixture
def feature():
    return make_feature()
