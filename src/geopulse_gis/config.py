"""Runtime settings loaded from environment variables.

``from_env()`` validates eagerly so a bad deployment fails at startup rather
than on the first export.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from .exceptions import InterchangeError

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigValidationError(InterchangeError):
    """Raised when a setting is out of its valid range.

    Attributes:
        key: The environment variable that failed validation.
        value: The invalid value.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class GisSettings:
    """Immutable interchange settings.

    Attributes:
        collection_name: Default GeoJSON collection / KML document name.
        export_filename: Base filename for downloads (extension is added).
        boundary_size: Half-width in degrees of the boundary square.
        dbf_encoding: Text encoding for .dbf attribute tables.
        log_level: Root log level for the server entry point.
    """

    collection_name: str = "GeoPulse Analysis Export"
    export_filename: str = "geopulse-export"
    boundary_size: float = 0.15
    dbf_encoding: str = "utf-8"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> GisSettings:
        """Load and validate settings from ``GEOPULSE_*`` environment variables.

        Raises:
            ConfigValidationError: If a value is out of range or empty.
        """
        raw_size = os.getenv("GEOPULSE_BOUNDARY_SIZE", "0.15")
        try:
            boundary_size = float(raw_size)
        except ValueError as exc:
            raise ConfigValidationError("GEOPULSE_BOUNDARY_SIZE", raw_size, "must be a number") from exc

        settings = cls(
            collection_name=os.getenv("GEOPULSE_COLLECTION_NAME", "GeoPulse Analysis Export"),
            export_filename=os.getenv("GEOPULSE_EXPORT_FILENAME", "geopulse-export"),
            boundary_size=boundary_size,
            dbf_encoding=os.getenv("GEOPULSE_DBF_ENCODING", "utf-8"),
            log_level=os.getenv("GEOPULSE_LOG_LEVEL", "INFO").upper(),
        )
        _validate(settings)
        return settings


def _validate(settings: GisSettings) -> None:
    if not settings.collection_name:
        raise ConfigValidationError("GEOPULSE_COLLECTION_NAME", settings.collection_name, "must not be empty")
    if not settings.export_filename:
        raise ConfigValidationError("GEOPULSE_EXPORT_FILENAME", settings.export_filename, "must not be empty")
    if not 0 < settings.boundary_size <= 10:
        raise ConfigValidationError(
            "GEOPULSE_BOUNDARY_SIZE", settings.boundary_size, "must be > 0 and <= 10 (degrees)"
        )
    if settings.log_level not in _LOG_LEVELS:
        raise ConfigValidationError("GEOPULSE_LOG_LEVEL", settings.log_level, f"must be one of {_LOG_LEVELS}")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
