"""Tests for kitchen timing derivations."""

from datetime import datetime, timedelta, timezone

import pytest

from rms.services.timing import (
    as_utc,
    average_seconds,
    seconds_between,
    throughput_per_hour,
    ticket_timing,
    window_hours,
)

T = datetime(2026, 3, 14, 18, 0, 0, tzinfo=timezone.utc)


class TestTicketTiming:
    def test_fresh_ticket(self):
        timing = ticket_timing(T, T + timedelta(seconds=59))
        assert timing.elapsed_seconds == 59
        assert timing.elapsed_minutes == 0
        assert not timing.is_warning
        assert not timing.is_critical

    def test_warning_boundary_is_inclusive(self):
        assert not ticket_timing(T, T + timedelta(seconds=599)).is_warning
        timing = ticket_timing(T, T + timedelta(minutes=10))
        assert timing.is_warning
        assert not timing.is_critical

    def test_critical_implies_warning(self):
        timing = ticket_timing(T, T + timedelta(minutes=15))
        assert timing.elapsed_minutes == 15
        assert timing.is_warning
        assert timing.is_critical

    def test_station_thresholds(self):
        timing = ticket_timing(T, T + timedelta(minutes=5), warning_minutes=3, critical_minutes=5)
        assert timing.is_warning and timing.is_critical

    def test_to_dict(self):
        assert ticket_timing(T, T + timedelta(seconds=125)).to_dict() == {
            "elapsed_seconds": 125,
            "elapsed_minutes": 2,
            "is_warning": False,
            "is_critical": False,
        }


class TestDurations:
    def test_seconds_between_floors(self):
        assert seconds_between(T, T + timedelta(seconds=90, microseconds=999_999)) == 90

    def test_naive_values_are_utc(self):
        naive = T.replace(tzinfo=None)
        assert as_utc(naive) == T
        assert seconds_between(naive, T + timedelta(seconds=30)) == 30

    def test_as_utc_none(self):
        assert as_utc(None) is None

    def test_average_ignores_missing(self):
        assert average_seconds([60, None, 120]) == 90
        assert average_seconds([None, None]) is None
        assert average_seconds([]) is None


class TestThroughput:
    def test_window_floored_at_one_hour(self):
        assert window_hours(T, T + timedelta(minutes=20)) == 1.0
        assert throughput_per_hour(3, T, T + timedelta(minutes=20)) == 3.0

    def test_rate_over_window(self):
        assert throughput_per_hour(12, T, T + timedelta(hours=4)) == pytest.approx(3.0)
