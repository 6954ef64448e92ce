"""
Unit tests for tracker.progress module.
"""

import pytest

from tracker.progress import (
    elapsed,
    estimate_completion,
    eta,
    format_duration,
    format_eta,
    percentage,
)


class TestPercentage:
    """Tests for percentage()."""

    @pytest.mark.parametrize("completed,failed,total,expected", [
        (0, 0, 0, 0.0),
        (2, 0, 10, 20.0),
        (8, 2, 10, 100.0),
        (3, 1, 10, 40.0),
        (12, 0, 10, 100.0),
    ])
    def test_values(self, completed, failed, total, expected):
        assert percentage(completed, failed, total) == pytest.approx(expected)

    def test_failed_units_count_as_processed(self):
        assert percentage(0, 5, 5) == 100.0


class TestTimes:
    """Tests for elapsed() and eta()."""

    def test_elapsed(self):
        assert elapsed(100.0, now=130.0) == 30.0

    def test_elapsed_never_negative(self):
        assert elapsed(200.0, now=100.0) == 0.0

    def test_eta_absent(self):
        assert eta(None, now=100.0) is None

    def test_eta_remaining(self):
        assert eta(160.0, now=100.0) == 60.0

    def test_eta_past_clamps_to_zero(self):
        assert eta(90.0, now=100.0) == 0.0

    def test_estimate_completion_from_rate(self):
        """2 units in 10s leaves 8 units at 0.2 units/s."""
        assert estimate_completion(100.0, 2, 10, now=110.0) == pytest.approx(150.0)

    def test_estimate_completion_needs_progress(self):
        assert estimate_completion(100.0, 0, 10, now=110.0) is None


class TestFormatting:
    """Tests for duration rendering."""

    @pytest.mark.parametrize("seconds,expected", [
        (15, "15s"),
        (30, "30s"),
        (60, "1m 0s"),
        (150, "2m 30s"),
        (3720, "1h 2m"),
        (None, "--"),
    ])
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

    def test_format_eta_unknown(self):
        assert format_eta(None) == "--"

    def test_format_eta_known(self):
        assert format_eta(190.0, now=100.0) == "1m 30s"
