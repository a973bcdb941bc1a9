"""
Tests for the recording-date parser.
"""

from datetime import date, datetime

import pytest

from landman.pipeline.date_parser import parse_recording_date


class TestParseRecordingDate:
    """US month-first parsing with ISO passthrough."""

    def test_iso_format(self):
        assert parse_recording_date("2019-03-15") == date(2019, 3, 15)

    def test_iso_with_time_suffix(self):
        assert parse_recording_date("2019-03-15T00:00:00Z") == date(2019, 3, 15)

    def test_us_slash_is_month_first(self):
        assert parse_recording_date("01/02/2020") == date(2020, 1, 2)

    def test_unambiguous_day_over_twelve(self):
        assert parse_recording_date("12/25/2018") == date(2018, 12, 25)

    def test_month_name(self):
        assert parse_recording_date("Jan 15, 2020") == date(2020, 1, 15)

    def test_date_and_datetime_passthrough(self):
        assert parse_recording_date(date(2001, 5, 4)) == date(2001, 5, 4)
        assert parse_recording_date(datetime(2001, 5, 4, 13, 30)) == date(2001, 5, 4)

    @pytest.mark.parametrize("value", [None, "", "   ", "not a date", "2019-02-30"])
    def test_unreadable_returns_none(self, value):
        assert parse_recording_date(value) is None
