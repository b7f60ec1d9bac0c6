"""Exception taxonomy for the GIS interchange pipeline.

Every domain exception inherits from ``InterchangeError`` and carries
structured context (stage, code, record index) so the import endpoint can
report failures consistently.

Categories
----------
- ``DecodeError``         structural shapefile corruption, fatal for the decode.
- ``RecordError``         per-record anomaly, absorbed as a skipped record.
- ``GeoJSONImportError``  uploaded GeoJSON is not a JSON object.

Only ``DecodeError`` and ``GeoJSONImportError`` ever reach the caller of an
import; ``RecordError`` subclasses are caught by the normalizer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ImportResult


class InterchangeError(Exception):
    """Base exception for all interchange errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage where the error occurred (``"decode"``,
            ``"normalize"``, ...).
        code: Machine-readable error code.
        record_index: Zero-based index of the offending record, if any.
    """

    default_stage: str = ""
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        record_index: int | None = None,
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.record_index = record_index
        super().__init__(message)

    @property
    def fatal(self) -> bool:
        """Whether the error aborts the whole operation."""
        return not isinstance(self, RecordError)

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "fatal": self.fatal,
            "record_index": self.record_index,
        }


class DecodeError(InterchangeError):
    """The shapefile buffer cannot be parsed as length-prefixed shape records.

    ``partial`` is set by the normalizer to the features accepted before the
    failure, so callers that collect incrementally can keep them.
    """

    default_stage = "decode"
    default_code = "SHAPEFILE_DECODE_FAILED"

    def __init__(self, message: str = "", **kwargs: object) -> None:
        super().__init__(message, **kwargs)  # type: ignore[arg-type]
        self.partial: ImportResult | None = None


class RecordError(InterchangeError):
    """Recoverable problem confined to a single record."""

    default_stage = "normalize"


class UnsupportedGeometryError(RecordError):
    """Geometry kind outside Point/Polygon/MultiPolygon/LineString/MultiLineString."""

    default_stage = "decode"
    default_code = "UNSUPPORTED_GEOMETRY"


class InvalidCoordinateError(RecordError):
    """Reduced coordinate is non-finite or outside WGS 84 bounds."""

    default_code = "INVALID_COORDINATE"


class FieldCoercionError(RecordError):
    """An attribute value could not be coerced to the canonical field type."""

    default_code = "FIELD_COERCION_FAILED"


class GeoJSONImportError(InterchangeError):
    """Uploaded GeoJSON could not be parsed."""

    default_stage = "import"
    default_code = "GEOJSON_INVALID"
