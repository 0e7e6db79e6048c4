"""Normalization: dates, units, weight values, and loose rows -> WeightObservation."""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Iterable

from dateutil import parser as date_parser

from .models import WeightObservation

# Date-only inputs are pinned to this local hour instead of midnight so a
# timezone shift on display never moves them to the previous day.
DEFAULT_HOUR = 9

WEIGHT_KEYS = ("weight", "value")
UNIT_KEYS = ("unit", "units", "weightUnit", "unitOfMeasure", "measurement")
DATE_KEYS = ("recordedAt", "date", "timestamp", "datetime", "day", "time", "enteredAt")

_BARE_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HAS_TIME = re.compile(r"\d{1,2}:\d{2}")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")

# Fields missing from a partial date ("Jan 5", "15") come from here, not from today.
_PARTIAL_DATE_DEFAULT = datetime(2001, 1, 1)


def _to_local_naive(dt: datetime) -> datetime:
    """Wall-clock time in the system timezone, tzinfo dropped."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone().replace(tzinfo=None)


def _to_iso(local: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    utc = local.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"


def normalize_date(value: Any) -> str | None:
    """
    Return an ISO-8601 UTC timestamp or None if the value is not a usable date.
    Bare YYYY-MM-DD and any input without an H:MM time component land on 09:00 local.
    Numbers are epoch milliseconds.
    """
    if not value:
        return None
    has_time = isinstance(value, str) and _HAS_TIME.search(value) is not None
    try:
        if isinstance(value, datetime):
            parsed = _to_local_naive(value)
        elif isinstance(value, date):
            parsed = datetime(value.year, value.month, value.day)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            parsed = datetime.fromtimestamp(value / 1000)
        else:
            text = str(value).strip()
            if not text:
                return None
            if _BARE_DATE.match(text):
                text = f"{text}T{DEFAULT_HOUR:02d}:00:00"
            parsed = _to_local_naive(date_parser.parse(text, default=_PARTIAL_DATE_DEFAULT))
        if not has_time:
            parsed = parsed.replace(hour=DEFAULT_HOUR, minute=0, second=0, microsecond=0)
        return _to_iso(parsed)
    except (ValueError, OverflowError, OSError):
        return None


def parse_weight_value(value: Any) -> float | None:
    """Strip everything but digits, '.' and '-'; return a finite positive float or None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    else:
        cleaned = _NON_NUMERIC.sub("", str(value))
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def _first_present(data: dict, keys: Iterable[str]) -> Any:
    for key in keys:
        val = data.get(key)
        if val is not None and val != "":
            return val
    return None


def normalize_entry(data: Any) -> WeightObservation | None:
    """
    Map a loose row (handler output or generated-parser output) to a WeightObservation.
    Weight comes from weight/value, date from the first present date alias.
    Unit is kg only when a unit-like field mentions kg; otherwise lb.
    """
    if not isinstance(data, dict):
        return None
    weight = parse_weight_value(_first_present(data, WEIGHT_KEYS))
    if weight is None:
        return None
    weight = round(weight, 1)
    if weight <= 0:
        return None
    unit_raw = _first_present(data, UNIT_KEYS)
    unit = "kg" if isinstance(unit_raw, str) and "kg" in unit_raw.lower() else "lb"
    recorded_at = normalize_date(_first_present(data, DATE_KEYS))
    if not recorded_at:
        return None
    return WeightObservation(weight=weight, unit=unit, recorded_at=recorded_at)


def normalize_entries(rows: Iterable[Any]) -> list[WeightObservation]:
    """Normalize rows in order, silently dropping the ones that fail."""
    out: list[WeightObservation] = []
    for row in rows:
        obs = normalize_entry(row)
        if obs is not None:
            out.append(obs)
    return out
