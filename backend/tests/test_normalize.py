"""Tests for AIS field normalization (normalize.py).

Covers:
- SOG/COG/Heading AIS sentinel values
- Navigation status text mapping
- Ship-and-cargo type codes, fallback vessel names
- UTC conversion helpers
"""
from datetime import datetime, timedelta, timezone

import pytest

from seawatch.modules.normalize import (
    ais_type_to_string,
    clean_cog,
    clean_heading,
    clean_sog,
    fallback_vessel_name,
    navigation_status_text,
    to_naive_utc,
    utcnow,
)


class TestSentinels:
    def test_sog_sentinel_1023_sets_none(self):
        """SOG=102.3 (raw 1023 = 'not available') is unknown, not a speed."""
        assert clean_sog(102.3) is None

    def test_sog_102_2_is_sentinel(self):
        assert clean_sog(102.2) is None

    def test_valid_sog_kept(self):
        assert clean_sog(12.5) == 12.5
        assert clean_sog(0) == 0.0

    def test_cog_360_sets_none(self):
        assert clean_cog(360.0) is None
        assert clean_cog(359.9) == 359.9

    def test_heading_511_sets_none(self):
        assert clean_heading(511) is None
        assert clean_heading(0) == 0.0

    @pytest.mark.parametrize("fn", [clean_sog, clean_cog, clean_heading])
    def test_none_passes_through(self, fn):
        assert fn(None) is None


class TestNavigationStatus:
    @pytest.mark.parametrize("code,text", [
        (0, "Under way using engine"),
        (1, "At anchor"),
        (5, "Moored"),
        (7, "Engaged in fishing"),
        (8, "Under way sailing"),
        (15, "Undefined"),
    ])
    def test_known_codes(self, code, text):
        assert navigation_status_text(code) == text

    def test_reserved_code_is_unknown(self):
        assert navigation_status_text(11) == "Unknown"

    def test_missing_code(self):
        assert navigation_status_text(None) is None


class TestVesselIdentity:
    @pytest.mark.parametrize("code,expected", [
        (82, "Tanker"),
        (70, "Cargo"),
        (69, "Passenger"),
        (40, "High Speed Craft"),
        (30, "Fishing"),
        (52, "Type 52"),
    ])
    def test_type_codes(self, code, expected):
        assert ais_type_to_string(code) == expected

    def test_type_zero_is_unknown(self):
        assert ais_type_to_string(0) is None
        assert ais_type_to_string(None) is None

    def test_fallback_name(self):
        assert fallback_vessel_name("123456789") == "Vessel-123456789"


class TestTimestamps:
    def test_utcnow_is_naive(self):
        assert utcnow().tzinfo is None

    def test_aware_converted_to_naive_utc(self):
        aware = datetime(2026, 1, 15, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_naive_utc(aware) == datetime(2026, 1, 15, 12, 0)

    def test_naive_unchanged(self):
        naive = datetime(2026, 1, 15, 12, 0)
        assert to_naive_utc(naive) is naive
