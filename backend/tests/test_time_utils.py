# Overview: Pytest coverage for datetime parsing, timezone resolution and startup config checks.

from datetime import datetime, timezone

import pytest

from invoicer import create_app
from invoicer.time_utils import parse_iso_datetime, resolve_timezone, to_utc_z, year_in_timezone


class TestParseIsoDatetime:
    def test_blank_is_none(self):
        assert parse_iso_datetime(None) is None
        assert parse_iso_datetime("  ") is None

    def test_offset_normalized_to_utc(self):
        assert parse_iso_datetime("2025-03-01T05:30:00+05:30") == datetime(2025, 3, 1, 0, 0)
        assert parse_iso_datetime("2025-03-01T00:00:00Z") == datetime(2025, 3, 1, 0, 0)

    @pytest.mark.parametrize("value", [123, 20250101, 1.5, ["2025-01-01"], {"at": "2025-01-01"}])
    def test_non_string_raises_type_error(self, value):
        with pytest.raises(TypeError):
            parse_iso_datetime(value)

    def test_garbage_raises_value_error(self):
        with pytest.raises(ValueError):
            parse_iso_datetime("next tuesday")

    def test_to_utc_z(self):
        assert to_utc_z(datetime(2025, 1, 2, 3, 4, 5, 999)) == "2025-01-02T03:04:05Z"


class TestTimezones:
    @pytest.mark.parametrize("name", ["UTC", "Etc/UTC", "Z"])
    def test_utc_names_need_no_tz_database(self, name):
        assert resolve_timezone(name) is timezone.utc

    @pytest.mark.parametrize("name", ["Mars/Olympus", "../etc/passwd"])
    def test_unknown_zone_rejected(self, name):
        with pytest.raises(ValueError):
            resolve_timezone(name)

    def test_year_in_utc(self):
        assert year_in_timezone(datetime(2024, 12, 31, 23, 59), "UTC") == 2024

    def test_app_refuses_unknown_numbering_timezone(self, tmp_path):
        with pytest.raises(ValueError, match="Mars/Olympus"):
            create_app({
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'tz.sqlite3'}",
                "NUMBERING_TIMEZONE": "Mars/Olympus",
            })
