"""
VPS Control Response Normalization
==================================

Helpers turning vendor payload fragments into canonical ServerInfo field
values. Each backend keeps its own status map next to its adapter and
calls these helpers by composition.

Missing strings become UNKNOWN (never ""), missing quantities become 0.
"""

import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from .base import UNKNOWN, LifecycleState


def map_state(raw: Any, mapping: Mapping[Any, LifecycleState]) -> LifecycleState:
    """
    Map a raw vendor status into a LifecycleState.

    Total: any value absent from ``mapping`` (including None) is UNKNOWN.
    String lookups are case-insensitive; numeric strings also match int keys.
    """
    if raw is None or isinstance(raw, (dict, list)):
        return LifecycleState.UNKNOWN
    if raw in mapping:
        return mapping[raw]
    if isinstance(raw, str):
        key = raw.strip().lower()
        for candidate, state in mapping.items():
            if isinstance(candidate, str) and candidate.lower() == key:
                return state
        if key.lstrip("-").isdigit() and int(key) in mapping:
            return mapping[int(key)]
    return LifecycleState.UNKNOWN


def text_or_unknown(value: Any) -> str:
    if value is None:
        return UNKNOWN
    text = str(value).strip()
    return text or UNKNOWN


def optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def int_or_zero(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def first_or_unknown(values: Any) -> str:
    """First element of a list (or first value of a dict) of addresses."""
    if isinstance(values, Mapping):
        values = list(values.values())
    if isinstance(values, (list, tuple)) and values:
        return text_or_unknown(values[0])
    if isinstance(values, str):
        return text_or_unknown(values)
    return UNKNOWN


def location_to_string(location: Any) -> str:
    """
    Render a structured location as "city, state, country".

    Accepts a mapping or a JSON string with ``city``, ``state`` and
    ``country``/``country_code``; absent parts are dropped. A string that
    isn't JSON is assumed to be already formatted.
    """
    if not location:
        return UNKNOWN

    if isinstance(location, str):
        try:
            data = json.loads(location)
        except ValueError:
            return location.strip() or UNKNOWN
    else:
        data = location

    if not isinstance(data, Mapping):
        return text_or_unknown(data)

    country = data.get("country_code") or data.get("country")
    parts = [data.get("city"), data.get("state"), country]
    rendered = ", ".join(str(p).strip() for p in parts if p and str(p).strip())
    return rendered or UNKNOWN


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO-8601, "YYYY-MM-DD HH:MM:SS" or epoch seconds; None if unparseable."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    if text.isdigit():
        return datetime.fromtimestamp(int(text), tz=timezone.utc)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None
