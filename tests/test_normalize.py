"""Tests for feature normalization, shapefile/GeoJSON import and row mapping."""

import json
from datetime import date, datetime, timezone

import pytest
import shapefile

from geopulse_gis import (
    WGS84_PRJ,
    DecodeError,
    FeatureNormalizer,
    GeoJSONImportError,
    feature_from_row,
    features_from_rows,
    import_geojson,
    import_shapefile,
)
from geopulse_gis.geometry import PointGeometry, UnsupportedGeometry
from geopulse_gis.reader import DecodedRecord

from conftest import FIXED_NOW, build_shapefile


class TestImportShapefile:
    def test_points_become_features(self, point_shapefile):
        shp, dbf = point_shapefile
        result = import_shapefile(shp, dbf, now=FIXED_NOW)
        assert result.accepted_count == 2
        first, second = result.features
        assert first.name == "Amazon plot"
        assert first.event_type == "deforestation"
        assert first.change_percent == pytest.approx(62.5)
        assert (first.coordinates.lat, first.coordinates.lng) == (-3.0, -60.0)
        assert second.event_type == "flood"
        assert second.change_percent == pytest.approx(-12.0)

    def test_ids_are_unique_and_stamped(self, point_shapefile):
        shp, dbf = point_shapefile
        result = import_shapefile(shp, dbf, now=FIXED_NOW)
        stamp = int(FIXED_NOW.timestamp() * 1000)
        assert [f.id for f in result.features] == [f"shp_0_{stamp}", f"shp_1_{stamp}"]

    def test_missing_dates_default_to_today(self, point_shapefile):
        shp, dbf = point_shapefile
        feature = import_shapefile(shp, dbf, now=FIXED_NOW).features[0]
        assert feature.start_date == feature.end_date == "2024-05-01"
        assert feature.created_at == "2024-05-01T12:30:00.000Z"

    def test_bounds_cover_accepted_features(self, point_shapefile):
        shp, dbf = point_shapefile
        bounds = import_shapefile(shp, dbf, now=FIXED_NOW).bounds
        assert (bounds.min_lat, bounds.max_lat) == (-3.0, 45.25)
        assert (bounds.min_lng, bounds.max_lng) == (-60.0, 10.5)

    def test_raw_properties_are_kept(self, point_shapefile):
        shp, dbf = point_shapefile
        result = import_shapefile(shp, dbf, now=FIXED_NOW)
        assert result.properties[1]["name"] == "Po delta"

    def test_polygon_and_unsupported_record(self, mixed_shapefile):
        shp, dbf = mixed_shapefile
        result = import_shapefile(shp, dbf, now=FIXED_NOW)
        assert result.accepted_count == 1
        assert (result.features[0].coordinates.lat, result.features[0].coordinates.lng) == (0.5, 0.5)
        assert [(s.index, s.code) for s in result.skipped] == [(1, "UNSUPPORTED_GEOMETRY")]

    def test_out_of_range_coordinates_are_dropped(self):
        shp, dbf = build_shapefile(
            shapefile.POINT,
            [lambda w: w.point(10.0, 95.0), lambda w: w.point(20.0, 30.0)],
            [("north of the pole", "", 0), ("valid", "", 0)],
        )
        result = import_shapefile(shp, dbf, now=FIXED_NOW)
        assert [f.name for f in result.features] == ["valid"]
        assert result.skipped[0].code == "INVALID_COORDINATE"
        assert result.bounds.max_lat == 30.0

    def test_crs_defaults_to_wgs84(self, point_shapefile):
        shp, dbf = point_shapefile
        assert import_shapefile(shp, dbf).crs == "EPSG:4326"

    def test_crs_from_prj(self, point_shapefile):
        shp, dbf = point_shapefile
        result = import_shapefile(shp, dbf, WGS84_PRJ)
        assert result.crs is not None

    def test_decode_error_carries_partial_result(self, point_shapefile):
        shp, dbf = point_shapefile
        with pytest.raises(DecodeError) as excinfo:
            import_shapefile(shp[:132], dbf, now=FIXED_NOW)
        partial = excinfo.value.partial
        assert partial is not None
        assert partial.accepted_count == 1
        assert partial.features[0].name == "Amazon plot"


class TestFeatureNormalizer:
    def test_unsupported_geometry_is_recorded(self):
        normalizer = FeatureNormalizer(now=FIXED_NOW)
        record = DecodedRecord(index=4, geometry=UnsupportedGeometry("MultiPoint"))
        assert normalizer.accept(record) is None
        assert normalizer.skipped[0].index == 4
        assert normalizer.bounds.is_empty

    def test_non_finite_coordinates_are_dropped(self):
        normalizer = FeatureNormalizer(now=FIXED_NOW)
        record = DecodedRecord(index=0, geometry=PointGeometry((float("nan"), 1.0)))
        assert normalizer.accept(record) is None
        assert normalizer.skipped[0].code == "INVALID_COORDINATE"

    def test_bounds_value_is_replaced_not_mutated(self):
        normalizer = FeatureNormalizer(now=FIXED_NOW)
        before = normalizer.bounds
        normalizer.accept(DecodedRecord(index=0, geometry=PointGeometry((1.0, 2.0))))
        assert before.is_empty
        assert normalizer.bounds.min_lat == 2.0


class TestImportGeojson:
    COLLECTION = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"name": "Lake Poopo", "event_type": "drought", "change_percent": 81},
                "geometry": {"type": "Point", "coordinates": [-67.1, -18.75]},
            },
            {
                "type": "Feature",
                "properties": {"name": "Cloud"},
                "geometry": {"type": "MultiPoint", "coordinates": [[0, 0]]},
            },
            {
                "type": "Feature",
                "properties": None,
                "geometry": {"type": "LineString", "coordinates": [[0, 0], [1, 1], [2, 2]]},
            },
        ],
    }

    def test_feature_collection(self):
        result = import_geojson(self.COLLECTION, now=FIXED_NOW)
        assert [f.name for f in result.features] == ["Lake Poopo", "Feature 3"]
        assert result.features[0].event_type == "drought"
        assert result.features[0].id.startswith("geo_0_")
        assert result.skipped[0].index == 1

    def test_json_text(self):
        result = import_geojson(json.dumps(self.COLLECTION), now=FIXED_NOW)
        assert result.accepted_count == 2

    def test_single_feature_and_bare_geometry(self):
        feature = self.COLLECTION["features"][0]
        assert import_geojson(feature).accepted_count == 1
        assert import_geojson(feature["geometry"]).accepted_count == 1

    def test_non_object_geometry_is_skipped(self):
        collection = {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "properties": {"name": "WKT"}, "geometry": "POINT(1 2)"},
                self.COLLECTION["features"][0],
            ],
        }
        result = import_geojson(collection, now=FIXED_NOW)
        assert [f.name for f in result.features] == ["Lake Poopo"]
        assert [(s.index, s.code) for s in result.skipped] == [(0, "UNSUPPORTED_GEOMETRY")]

    def test_point_with_object_coordinates_is_skipped(self):
        result = import_geojson({"type": "Point", "coordinates": {"x": 1}})
        assert result.accepted_count == 0
        assert result.skipped[0].code == "UNSUPPORTED_GEOMETRY"
        assert "MalformedPoint" in result.skipped[0].reason

    @pytest.mark.parametrize("document", ["{not json", "[1, 2]", b"42"])
    def test_invalid_documents(self, document):
        with pytest.raises(GeoJSONImportError):
            import_geojson(document)


class TestFeatureFromRow:
    ROW = {
        "id": "a1b2",
        "region": "Borneo",
        "coordinates": '{"latitude": 1.5, "longitude": 114.0}',
        "event_type": "deforestation",
        "change_percent": 33.3,
        "start_date": "2022-01-01",
        "end_date": "2023-01-01",
        "summary": "Palm oil expansion",
        "area_analyzed": "500 km²",
        "created_at": "2023-02-01T00:00:00Z",
    }

    def test_maps_row(self):
        feature = feature_from_row(self.ROW)
        assert feature.id == "a1b2"
        assert feature.name == "Borneo"
        assert (feature.coordinates.lat, feature.coordinates.lng) == (1.5, 114.0)
        assert feature.change_percent == 33.3

    def test_coordinate_mapping_and_name_fallbacks(self):
        row = {"id": 7, "location_name": "Delta", "coordinates": {"lat": 10, "lon": 20}}
        feature = feature_from_row(row, now=FIXED_NOW)
        assert feature.name == "Delta"
        assert feature.id == "7"
        assert feature.coordinates.lng == 20.0
        assert feature.start_date == "2024-05-01"
        feature = feature_from_row({"id": "x", "coordinates": {"lat": 1, "lng": 2}})
        assert feature.name == "Unknown Location"

    @pytest.mark.parametrize(
        "coordinates",
        [None, "not json", {"lat": "north"}, {"lat": 1}, {"lat": 91, "lng": 0}],
    )
    def test_unusable_coordinates(self, coordinates):
        assert feature_from_row({"id": "x", "coordinates": coordinates}) is None

    def test_rows_without_position_are_dropped(self):
        rows = [self.ROW, {"id": "y", "coordinates": None}]
        assert [f.id for f in features_from_rows(rows)] == ["a1b2"]

    def test_dates_are_normalized(self):
        row = {**self.ROW, "start_date": "2022/03/04", "end_date": "20230105"}
        feature = feature_from_row(row)
        assert feature.start_date == "2022-03-04"
        assert feature.end_date == "2023-01-05"

    def test_typed_dates_from_the_driver(self):
        row = {
            **self.ROW,
            "start_date": date(2023, 1, 2),
            "end_date": datetime(2023, 6, 30, 23, 0, tzinfo=timezone.utc),
            "created_at": datetime(2023, 7, 1, 8, 15, tzinfo=timezone.utc),
        }
        feature = feature_from_row(row)
        assert feature.start_date == "2023-01-02"
        assert feature.end_date == "2023-06-30"
        assert feature.created_at == "2023-07-01T08:15:00.000Z"

    def test_unparseable_date_falls_back_to_today(self):
        feature = feature_from_row({**self.ROW, "start_date": "not a date"}, now=FIXED_NOW)
        assert feature.start_date == "2024-05-01"
        assert feature.end_date == "2023-01-01"

    @pytest.mark.parametrize("value, expected", [("n/a", None), ("12.5%", 12.5), (0, 0.0), (float("nan"), None)])
    def test_change_percent_coercion_keeps_the_row(self, value, expected):
        feature = feature_from_row({**self.ROW, "change_percent": value})
        assert feature is not None
        assert feature.change_percent == expected
