"""
Tests for VPS Control Response Normalization
============================================
"""

from datetime import datetime, timezone

import pytest

from vps_control.providers.base import LifecycleState
from vps_control.providers.normalizer import (
    first_or_unknown,
    int_or_zero,
    location_to_string,
    map_state,
    optional_text,
    parse_timestamp,
    text_or_unknown,
)

STATUS_MAP = {
    0: LifecycleState.OFF,
    1: LifecycleState.RUNNING,
    "shut off": LifecycleState.OFF,
}


class TestMapState:
    """State mapping is total."""

    @pytest.mark.parametrize("raw", [None, 7, "exploding", {}, [], ""])
    def test_unknown_values(self, raw):
        assert map_state(raw, STATUS_MAP) == LifecycleState.UNKNOWN

    def test_int_key(self):
        assert map_state(1, STATUS_MAP) == LifecycleState.RUNNING

    def test_numeric_string(self):
        assert map_state("0", STATUS_MAP) == LifecycleState.OFF

    def test_case_insensitive(self):
        assert map_state("Shut Off", STATUS_MAP) == LifecycleState.OFF


class TestFieldHelpers:

    def test_text_or_unknown(self):
        assert text_or_unknown(None) == "Unknown"
        assert text_or_unknown("  ") == "Unknown"
        assert text_or_unknown(42) == "42"

    def test_optional_text(self):
        assert optional_text("") is None
        assert optional_text(" x ") == "x"

    @pytest.mark.parametrize("value,expected", [
        (None, 0), ("2048", 2048), ("1.5", 1), ("lots", 0), (True, 0), (3, 3),
    ])
    def test_int_or_zero(self, value, expected):
        assert int_or_zero(value) == expected

    def test_first_or_unknown(self):
        assert first_or_unknown({"12": "203.0.113.10"}) == "203.0.113.10"
        assert first_or_unknown(["a", "b"]) == "a"
        assert first_or_unknown([]) == "Unknown"
        assert first_or_unknown(None) == "Unknown"


class TestLocationToString:
    """Location rendering."""

    def test_json_string(self):
        raw = '{"city": "London", "state": "England", "country": "GB"}'
        assert location_to_string(raw) == "London, England, GB"

    def test_missing_parts_dropped(self):
        assert location_to_string({"city": "Dallas", "state": "", "country_code": "US"}) == "Dallas, US"

    def test_plain_string(self):
        assert location_to_string("Amsterdam") == "Amsterdam"

    @pytest.mark.parametrize("raw", [None, "", {}, "{}"])
    def test_empty(self, raw):
        assert location_to_string(raw) == "Unknown"


class TestParseTimestamp:

    def test_iso_z(self):
        assert parse_timestamp("2024-02-01T09:30:00Z") == datetime(2024, 2, 1, 9, 30, tzinfo=timezone.utc)

    def test_mysql_format(self):
        assert parse_timestamp("2024-02-01 09:30:00") == datetime(2024, 2, 1, 9, 30)

    def test_epoch(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("raw", [None, "", "yesterday", False])
    def test_unparseable(self, raw):
        assert parse_timestamp(raw) is None
