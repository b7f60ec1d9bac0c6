"""FastAPI server for GIS import and export."""

from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Query, UploadFile
from fastapi.responses import Response

from .config import GisSettings, configure_logging
from .exceptions import InterchangeError
from .export import ExportDocument, export_geojson, export_kml, export_prj, export_shapefile_geojson
from .models import AnalysisFeature, ImportResult
from .normalize import features_from_rows, import_geojson, import_shapefile

settings = GisSettings.from_env()
configure_logging(settings.log_level)
logger = logging.getLogger("geopulse_gis.server")

app = FastAPI(title="GeoPulse GIS Interchange", version="0.1.0")

COMPANION_EXTS = {".shp", ".shx", ".dbf", ".prj"}
GEOJSON_EXTS = (".geojson", ".json")
EXPORT_FORMAT_PATTERN = "^(geojson|kml|shapefile)$"


@app.post("/import", response_model=ImportResult)
async def import_files(files: list[UploadFile]) -> ImportResult:
    """Import uploaded GIS files as analysis features.

    Accepts:
    - A single .geojson or .json file
    - A single .zip containing shapefile components
    - Multiple files (.shp, and optionally .dbf and .prj; .shx is ignored)
    """
    filename = (files[0].filename or "").lower() if len(files) == 1 else ""

    try:
        if filename.endswith(GEOJSON_EXTS):
            return import_geojson(await files[0].read())
        if filename.endswith(".zip"):
            file_map = _zip_members(await files[0].read())
        else:
            file_map = await _upload_members(files)
        return _import_members(file_map)
    except InterchangeError as exc:
        logger.warning("Import failed: %s", exc)
        raise HTTPException(status_code=400, detail=exc.to_error_dict()) from exc


def _zip_members(content: bytes) -> dict[str, bytes]:
    """Pick the first .shp/.dbf/.prj members out of a zip archive."""
    try:
        archive = zipfile.ZipFile(io.BytesIO(content))
    except zipfile.BadZipFile as exc:
        raise HTTPException(status_code=400, detail="Not a valid zip archive") from exc

    file_map: dict[str, bytes] = {}
    with archive as zf:
        for name in zf.namelist():
            ext = Path(name).suffix.lower()
            if ext in COMPANION_EXTS and ext not in file_map:
                file_map[ext] = zf.read(name)
    return file_map


async def _upload_members(files: list[UploadFile]) -> dict[str, bytes]:
    file_map: dict[str, bytes] = {}
    for f in files:
        ext = Path(f.filename or "").suffix.lower()
        if ext in COMPANION_EXTS:
            file_map[ext] = await f.read()
    return file_map


def _import_members(file_map: dict[str, bytes]) -> ImportResult:
    if ".shp" not in file_map:
        raise HTTPException(status_code=400, detail="Missing required .shp file")

    return import_shapefile(
        file_map[".shp"],
        file_map.get(".dbf"),
        file_map.get(".prj"),
        encoding=settings.dbf_encoding,
    )


@app.post("/export")
async def export_features(
    features: list[AnalysisFeature],
    format: str = Query("geojson", pattern=EXPORT_FORMAT_PATTERN),
    name: str | None = None,
    filename: str | None = None,
    include_polygons: bool = True,
) -> Response:
    """Export features as a GeoJSON, KML or shapefile-style GeoJSON attachment."""
    return _document_response(_export(features, format, name, filename, include_polygons))


@app.post("/export/rows")
async def export_rows(
    rows: list[dict[str, Any]],
    format: str = Query("geojson", pattern=EXPORT_FORMAT_PATTERN),
    name: str | None = None,
    filename: str | None = None,
    include_polygons: bool = True,
) -> Response:
    """Export stored analysis rows; rows without a usable position are dropped."""
    features = features_from_rows(rows)
    if len(features) < len(rows):
        logger.info("Dropped %d of %d rows without coordinates", len(rows) - len(features), len(rows))
    return _document_response(_export(features, format, name, filename, include_polygons))


@app.get("/prj")
async def prj_sidecar(filename: str | None = None) -> Response:
    """WGS84 .prj sidecar for shapefile-style consumers."""
    return _document_response(export_prj(filename or settings.export_filename))


def _export(
    features: list[AnalysisFeature],
    format: str,
    name: str | None,
    filename: str | None,
    include_polygons: bool,
) -> ExportDocument:
    name = name or settings.collection_name
    filename = filename or settings.export_filename
    if format == "kml":
        return export_kml(features, filename, name=name, boundary_size=settings.boundary_size)
    if format == "shapefile":
        return export_shapefile_geojson(features, filename, name=name, boundary_size=settings.boundary_size)
    return export_geojson(
        features,
        filename,
        name=name,
        include_polygons=include_polygons,
        boundary_size=settings.boundary_size,
    )


def _document_response(document: ExportDocument) -> Response:
    return Response(
        content=document.content,
        media_type=document.media_type,
        headers={"Content-Disposition": document.content_disposition},
    )
