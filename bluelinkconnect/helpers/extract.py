#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Lenient coercion of decoded JSON values.

The backend reports the same value as a number, a numeric string, a
{value, unit} object or a list of candidates depending on the vehicle
generation. Every helper returns None instead of raising when the value
cannot be interpreted.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional
import json
import math

from bluelinkconnect.api.models import DistanceMeasurement, DistanceUnit

TRUE_STRINGS = ['on', 'open', 'true']
FALSE_STRINGS = ['off', 'closed', 'false']
BASIC_TIMESTAMP = '%Y%m%d%H%M%S'


def is_number(value) -> bool:
    """JSON number, booleans excluded."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_primitive(value) -> bool:
    return isinstance(value, (str, int, float, bool))


def is_finite(value) -> bool:
    """JSON number that is not infinite or NaN, json.loads yields inf for 1e999."""
    return is_number(value) and math.isfinite(value)


def opt_double(obj, *keys) -> Optional[float]:
    """First key holding a number or a numeric string."""
    if not isinstance(obj, dict):
        return None
    for key in keys:
        value = obj.get(key)
        if isinstance(value, bool) or not is_primitive(value):
            continue
        try:
            number = float(value)
        except ValueError:
            continue
        if math.isfinite(number):
            return number
    return None


def opt_string(obj, *keys) -> Optional[str]:
    """First key holding a non blank string, a number, or an object with a string value."""
    if not isinstance(obj, dict):
        return None
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str):
            if value.strip():
                return value
        elif is_number(value):
            return _number_text(value)
        elif isinstance(value, dict) and 'value' in value:
            nested = opt_string(value, 'value')
            if nested is not None:
                return nested
    return None


def _number_text(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def opt_integer(obj, key) -> Optional[int]:
    """Strict integer lookup, used for unit codes and plug types."""
    if not isinstance(obj, dict):
        return None
    value = obj.get(key)
    if is_number(value):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def opt_boolean(obj, key, default=False) -> bool:
    """Strict boolean lookup with a default, booleans or numbers only."""
    if not isinstance(obj, dict):
        return default
    value = obj.get(key)
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    return default


def first_object(obj, *keys) -> Optional[dict]:
    if not isinstance(obj, dict):
        return None
    for key in keys:
        value = obj.get(key)
        if isinstance(value, dict):
            return value
    return None


def extract_boolean(candidate) -> Optional[bool]:
    if candidate is None:
        return None
    if isinstance(candidate, bool):
        return candidate
    if isinstance(candidate, str):
        text = candidate.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
        return None
    if is_number(candidate):
        return candidate != 0 if math.isfinite(candidate) else None
    if isinstance(candidate, dict):
        for key in ('value', 'status', 'open'):
            if key in candidate:
                nested = extract_boolean(candidate.get(key))
                if nested is not None:
                    return nested
    return None


def first_boolean(obj, *keys) -> Optional[bool]:
    if not isinstance(obj, dict):
        return None
    for key in keys:
        if key not in obj:
            continue
        value = extract_boolean(obj.get(key))
        if value is not None:
            return value
    return None


def extract_integer(candidate) -> Optional[int]:
    """Integer from a number, a string, an {hour, minute} pair or the first usable nested value."""
    if candidate is None or isinstance(candidate, bool):
        return None
    if is_number(candidate):
        return int(round(candidate)) if math.isfinite(candidate) else None
    if isinstance(candidate, str):
        text = candidate.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
            return int(round(number)) if math.isfinite(number) else None
    if isinstance(candidate, dict):
        for key in ('value', 'total', 'state', 'status'):
            if key in candidate:
                nested = extract_integer(candidate.get(key))
                if nested is not None:
                    return nested
        hours = _first_not_none(extract_integer(candidate.get(key)) for key in ('hours', 'hour', 'hr'))
        minutes = _first_not_none(extract_integer(candidate.get(key)) for key in ('minutes', 'minute', 'min'))
        if hours is not None or minutes is not None:
            return (hours or 0) * 60 + (minutes or 0)
        for value in candidate.values():
            nested = extract_integer(value)
            if nested is not None:
                return nested
        return None
    if isinstance(candidate, list):
        return _first_not_none(extract_integer(child) for child in candidate)
    return None


def _first_not_none(values):
    for value in values:
        if value is not None:
            return value
    return None


def first_integer(obj, *keys) -> Optional[int]:
    if not isinstance(obj, dict):
        return None
    for key in keys:
        if key not in obj:
            continue
        value = extract_integer(obj.get(key))
        if value is not None:
            return value
    return None


def convert_distance(value: Optional[float], unit: Optional[int]) -> Optional[DistanceMeasurement]:
    if value is None:
        return None
    if unit is None:
        return DistanceMeasurement.in_kilometers(value)
    return DistanceMeasurement(value, DistanceUnit.from_code(unit))


def prefer_distance(current: Optional[DistanceMeasurement], candidate: Optional[DistanceMeasurement]):
    """Of two readings keep the one in kilometers, else the larger one."""
    if candidate is None:
        return current
    if current is None:
        return candidate
    if current.unit != candidate.unit:
        return current if current.unit == DistanceUnit.KILOMETERS else candidate
    if candidate.value > current.value:
        return candidate
    return current


def extract_distance(element) -> Optional[DistanceMeasurement]:
    if element is None or isinstance(element, bool):
        return None
    if is_number(element):
        return DistanceMeasurement.in_kilometers(element) if is_finite(element) else None
    if isinstance(element, str):
        try:
            value = float(element)
        except ValueError:
            return None
        return DistanceMeasurement.in_kilometers(value) if math.isfinite(value) else None
    if isinstance(element, dict):
        value = opt_double(element, 'value')
        if value is not None:
            return convert_distance(value, opt_integer(element, 'unit'))
        if 'distance' in element:
            return extract_distance(element.get('distance'))
        return None
    if isinstance(element, list):
        best = None
        for child in element:
            best = prefer_distance(best, extract_distance(child))
        return best
    return None


def first_distance(obj, *keys) -> Optional[DistanceMeasurement]:
    if not isinstance(obj, dict):
        return None
    for key in keys:
        if key not in obj:
            continue
        measurement = extract_distance(obj.get(key))
        if measurement is not None and measurement.value is not None:
            return measurement
    return None


def extract_distance_recursive(element, *keys) -> Optional[DistanceMeasurement]:
    """Depth first search for the first of keys holding a distance."""
    if isinstance(element, dict):
        found = first_distance(element, *keys)
        if found is not None:
            return found
        for value in element.values():
            nested = extract_distance_recursive(value, *keys)
            if nested is not None:
                return nested
        return None
    if isinstance(element, list):
        for child in element:
            nested = extract_distance_recursive(child, *keys)
            if nested is not None:
                return nested
    return None


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a backend timestamp into an aware UTC datetime.

    Accepts ISO-8601, 14 digit yyyyMMddHHmmss and Unix epoch seconds
    (10 digits) or milliseconds (any other digit count).
    """
    if value is None or isinstance(value, bool):
        return None
    if is_number(value):
        text = _number_text(value)
    elif isinstance(value, str):
        text = value.strip()
    else:
        return None
    if not text:
        return None
    if text.isdigit():
        if len(text) == 14:
            try:
                return datetime.strptime(text, BASIC_TIMESTAMP).replace(tzinfo=timezone.utc)
            except ValueError:
                pass
        epoch = int(text)
        if epoch <= 0:
            return None
        try:
            if len(text) == 10:
                return datetime.fromtimestamp(epoch, tz=timezone.utc)
            return datetime.fromtimestamp(epoch / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def opt_timestamp(obj, *keys) -> Optional[datetime]:
    if not isinstance(obj, dict):
        return None
    for key in keys:
        if key not in obj:
            continue
        parsed = parse_timestamp(obj.get(key))
        if parsed is not None:
            return parsed
    return None


def display_value(value) -> str:
    """Text shown for a value that has no recognisable status."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if is_number(value):
        return _number_text(value)
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(',', ':'))
