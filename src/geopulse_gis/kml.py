"""KML 2.2 export of analysis features for Google Earth and compatible viewers.

Each feature becomes a Placemark holding its Point and the same symbolic
boundary square used by the GeoJSON export. Colours are KML ``aabbggrr`` hex.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime

from .geojson import DEFAULT_BOUNDARY_SIZE, DEFAULT_COLLECTION_NAME, boundary_ring
from .models import AnalysisFeature

KML_NAMESPACE = "http://www.opengis.net/kml/2.2"
ICON_HREF = "http://maps.google.com/mapfiles/kml/shapes/placemark_circle.png"

COLOR_HIGH = "ff0000ff"  # red
COLOR_MEDIUM = "ff00a5ff"  # orange
COLOR_LOW = "ff00ff00"  # green
FILL_ALPHA = "4d"

# Control characters XML 1.0 forbids (tab, LF and CR are allowed).
_INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

_XML_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)


def escape_xml(text: str) -> str:
    """Escape the five XML special characters and drop forbidden control characters."""
    text = _INVALID_XML_CHARS.sub("", text)
    for char, entity in _XML_ESCAPES:
        text = text.replace(char, entity)
    return text


def change_color(change_percent: float | None) -> str:
    """Tier colour by magnitude of change: >50 red, >25 orange, else green."""
    magnitude = abs(change_percent or 0)
    if magnitude > 50:
        return COLOR_HIGH
    if magnitude > 25:
        return COLOR_MEDIUM
    return COLOR_LOW


def _num(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def _display_date(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return timestamp


def _description(feature: AnalysisFeature, change: str) -> str:
    lat, lng = feature.coordinates.lat, feature.coordinates.lng
    label = escape_xml(feature.event_type.replace("_", " ").upper())
    lines = [
        f"<h3>{label}</h3>",
        f"<p><strong>Change Detected:</strong> {change}%</p>",
        "<p><strong>Analysis Period:</strong> "
        f"{escape_xml(feature.start_date)} to {escape_xml(feature.end_date)}</p>",
        f"<p><strong>Coordinates:</strong> {lat:.6f}, {lng:.6f}</p>",
    ]
    if feature.summary:
        lines.append(f"<p><strong>Summary:</strong> {escape_xml(feature.summary)}</p>")
    if feature.area_analyzed:
        lines.append(f"<p><strong>Area:</strong> {escape_xml(feature.area_analyzed)}</p>")
    lines.append(f"<p><strong>Created:</strong> {escape_xml(_display_date(feature.created_at))}</p>")
    return "\n        ".join(lines)


def _extended_data(feature: AnalysisFeature, change: str) -> str:
    pairs = [
        ("event_type", feature.event_type),
        ("change_percent", change),
        ("start_date", feature.start_date),
        ("end_date", feature.end_date),
    ]
    if feature.summary:
        pairs.append(("summary", feature.summary))
    if feature.area_analyzed:
        pairs.append(("area_analyzed", feature.area_analyzed))
    return "\n".join(
        f'        <Data name="{name}"><value>{escape_xml(value)}</value></Data>' for name, value in pairs
    )


def _placemark(feature: AnalysisFeature, boundary_size: float) -> str:
    lat, lng = feature.coordinates.lat, feature.coordinates.lng
    change = _num(feature.change_percent or 0)
    color = change_color(feature.change_percent)
    ring = " ".join(f"{_num(x)},{_num(y)},0" for x, y in boundary_ring(lng, lat, boundary_size))
    return f"""
    <Placemark>
      <name>{escape_xml(feature.name)}</name>
      <description><![CDATA[
        {_description(feature, change)}
      ]]></description>
      <ExtendedData>
{_extended_data(feature, change)}
      </ExtendedData>
      <Style>
        <IconStyle>
          <color>{color}</color>
          <scale>1.2</scale>
          <Icon>
            <href>{ICON_HREF}</href>
          </Icon>
        </IconStyle>
        <PolyStyle>
          <color>{FILL_ALPHA}{color[2:]}</color>
          <outline>1</outline>
        </PolyStyle>
        <LineStyle>
          <color>{color}</color>
          <width>2</width>
        </LineStyle>
      </Style>
      <MultiGeometry>
        <Point>
          <coordinates>{_num(lng)},{_num(lat)},0</coordinates>
        </Point>
        <Polygon>
          <outerBoundaryIs>
            <LinearRing>
              <coordinates>{ring}</coordinates>
            </LinearRing>
          </outerBoundaryIs>
        </Polygon>
      </MultiGeometry>
    </Placemark>"""


def to_kml(
    features: Sequence[AnalysisFeature],
    document_name: str = DEFAULT_COLLECTION_NAME,
    *,
    boundary_size: float = DEFAULT_BOUNDARY_SIZE,
) -> str:
    """Render features as a KML document string.

    Every interpolated value is escaped, including inside the CDATA
    description, so no text can terminate the section early.
    """
    placemarks = "".join(_placemark(f, boundary_size) for f in features)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="{KML_NAMESPACE}">
  <Document>
    <name>{escape_xml(document_name)}</name>
    <description>Exported from GeoPulse - Environmental Monitoring Platform</description>
    <Style id="analysisStyle">
      <IconStyle>
        <scale>1.2</scale>
        <Icon>
          <href>{ICON_HREF}</href>
        </Icon>
      </IconStyle>
    </Style>{placemarks}
  </Document>
</kml>
"""
