"""Heuristic mapping of loosely-typed attribute tables onto canonical fields.

Shapefile attribute tables come from many tools and use many spellings for the
same concept. Each canonical field has an ordered chain of candidate keys and a
coercer; the first key whose value coerces successfully wins. A coercion
failure is never fatal: the field simply stays at its default.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel

from .exceptions import FieldCoercionError
from .models import DEFAULT_EVENT_TYPE

logger = logging.getLogger("geopulse_gis.fields")

EVENT_TYPE_KEYS = ("event_type", "eventType", "EVENT_TYPE", "type", "TYPE", "class", "CLASS", "category")
CHANGE_PERCENT_KEYS = ("change_percent", "changePercent", "CHANGE_PERCENT", "change", "CHANGE", "percent", "PERCENT")
START_DATE_KEYS = ("start_date", "startDate", "START_DATE", "date_start", "begin", "BEGIN")
END_DATE_KEYS = ("end_date", "endDate", "END_DATE", "date_end", "end", "END")
GENERIC_DATE_KEYS = ("date", "DATE", "timestamp", "TIMESTAMP")
AREA_KEYS = ("area", "AREA", "area_km2", "AREA_KM2", "area_analyzed", "size", "SIZE")
NAME_KEYS = ("name", "NAME", "Name")
SUMMARY_KEYS = ("summary", "SUMMARY", "description", "DESCRIPTION")

# Checked in order against all attribute values when no event-type key is present.
EVENT_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("deforest", "forest"), "deforestation"),
    (("flood",), "flood"),
    (("drought",), "drought"),
    (("fire", "burn"), "wildfire"),
    (("urban",), "urbanization"),
)

_DATE_FORMATS = ("%Y%m%d", "%Y/%m/%d", "%m/%d/%Y", "%d.%m.%Y")


class InferredFields(BaseModel):
    """Canonical fields recovered from one attribute record."""

    name: str
    event_type: str = DEFAULT_EVENT_TYPE
    change_percent: float | None = None
    start_date: str | None = None
    end_date: str | None = None
    area_analyzed: str | None = None
    summary: str = ""


# ---------------------------------------------------------------------------
# Coercers
# ---------------------------------------------------------------------------


def coerce_text(value: Any) -> str:
    return str(value).strip()


def coerce_event_type(value: Any) -> str:
    return re.sub(r"\s+", "_", str(value).strip().lower())


def coerce_number(value: Any) -> float:
    """Parse a finite number; strings may carry a trailing ``%``."""
    if isinstance(value, bool):
        raise FieldCoercionError(f"Boolean is not a number: {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().removesuffix("%").strip()
        try:
            number = float(text)
        except ValueError as exc:
            raise FieldCoercionError(f"Not a number: {value!r}") from exc
    if not math.isfinite(number):
        raise FieldCoercionError(f"Not a finite number: {value!r}")
    return number


def coerce_date(value: Any) -> str:
    """Normalize a date-like value to ``YYYY-MM-DD``.

    Eight-digit integers are read as ``YYYYMMDD``, other numbers as epoch
    milliseconds. Strings must name a real calendar date (``2023-02-30`` is
    rejected).
    """
    if isinstance(value, bool):
        raise FieldCoercionError(f"Boolean is not a date: {value!r}")
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, int) and 10000101 <= value <= 99991231:
        # numeric DBF column holding YYYYMMDD
        return coerce_date(str(value))
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date().isoformat()
        except (OverflowError, OSError, ValueError) as exc:
            raise FieldCoercionError(f"Timestamp out of range: {value!r}") from exc

    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    else:
        return coerce_date(parsed)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    raise FieldCoercionError(f"Not a calendar date: {value!r}")


def coerce_area(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:.2f} km²"
    return str(value)


# ---------------------------------------------------------------------------
# Rule chain
# ---------------------------------------------------------------------------


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass(frozen=True)
class FieldRule:
    """Ordered candidate keys plus the coercer applied to their values."""

    keys: tuple[str, ...]
    coerce: Callable[[Any], Any]

    def apply(self, attributes: Mapping[str, Any]) -> Any:
        """Return the first successfully coerced value, or None."""
        for key in self.keys:
            value = attributes.get(key)
            if _is_blank(value):
                continue
            try:
                return self.coerce(value)
            except FieldCoercionError as exc:
                logger.debug("Ignoring attribute %s: %s", key, exc)
        return None


NAME_RULE = FieldRule(NAME_KEYS, coerce_text)
EVENT_TYPE_RULE = FieldRule(EVENT_TYPE_KEYS, coerce_event_type)
CHANGE_PERCENT_RULE = FieldRule(CHANGE_PERCENT_KEYS, coerce_number)
START_DATE_RULE = FieldRule(START_DATE_KEYS + GENERIC_DATE_KEYS, coerce_date)
END_DATE_RULE = FieldRule(END_DATE_KEYS + GENERIC_DATE_KEYS, coerce_date)
AREA_RULE = FieldRule(AREA_KEYS, coerce_area)
SUMMARY_RULE = FieldRule(SUMMARY_KEYS, coerce_text)


def guess_event_type(attributes: Mapping[str, Any]) -> str:
    """Keyword match over all attribute values, falling back to the default."""
    haystack = " ".join(str(v) for v in attributes.values() if v is not None).lower()
    for keywords, event_type in EVENT_KEYWORDS:
        if any(word in haystack for word in keywords):
            return event_type
    return DEFAULT_EVENT_TYPE


def infer_fields(attributes: Mapping[str, Any], index: int = 0) -> InferredFields:
    """Map an attribute record onto canonical feature fields.

    Args:
        attributes: Attribute record, e.g. one DBF row or GeoJSON properties.
        index: Zero-based record index, used for the fallback name.
    """
    return InferredFields(
        name=NAME_RULE.apply(attributes) or f"Feature {index + 1}",
        event_type=EVENT_TYPE_RULE.apply(attributes) or guess_event_type(attributes),
        change_percent=CHANGE_PERCENT_RULE.apply(attributes),
        start_date=START_DATE_RULE.apply(attributes),
        end_date=END_DATE_RULE.apply(attributes),
        area_analyzed=AREA_RULE.apply(attributes),
        summary=SUMMARY_RULE.apply(attributes) or "",
    )
