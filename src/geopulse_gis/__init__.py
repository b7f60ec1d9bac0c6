"""GIS interchange: shapefile/GeoJSON import and GeoJSON/KML export."""

from .exceptions import (
    DecodeError,
    FieldCoercionError,
    GeoJSONImportError,
    InterchangeError,
    InvalidCoordinateError,
    UnsupportedGeometryError,
)
from .export import WGS84_PRJ, ExportDocument, export_geojson, export_kml, export_prj, export_shapefile_geojson
from .fields import InferredFields, infer_fields
from .geojson import boundary_ring, to_geojson, to_shapefile_geojson
from .geometry import reduce_geometry
from .kml import change_color, escape_xml, to_kml
from .models import AnalysisFeature, Bounds, Coordinates, ImportResult, SkippedRecord
from .normalize import FeatureNormalizer, feature_from_row, features_from_rows, import_geojson, import_shapefile
from .reader import DecodedRecord, ShapefileDecoder, decode_shapefile, detect_crs

__all__ = [
    "AnalysisFeature",
    "Bounds",
    "Coordinates",
    "DecodeError",
    "DecodedRecord",
    "ExportDocument",
    "FeatureNormalizer",
    "FieldCoercionError",
    "GeoJSONImportError",
    "ImportResult",
    "InferredFields",
    "InterchangeError",
    "InvalidCoordinateError",
    "ShapefileDecoder",
    "SkippedRecord",
    "UnsupportedGeometryError",
    "WGS84_PRJ",
    "boundary_ring",
    "change_color",
    "decode_shapefile",
    "detect_crs",
    "escape_xml",
    "export_geojson",
    "export_kml",
    "export_prj",
    "export_shapefile_geojson",
    "feature_from_row",
    "features_from_rows",
    "import_geojson",
    "import_shapefile",
    "infer_fields",
    "reduce_geometry",
    "to_geojson",
    "to_kml",
    "to_shapefile_geojson",
]
