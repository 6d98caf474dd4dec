"""
Tests for domain models and interval algebra.
"""

import pendulum
import pytest

from slotbook.domain.exceptions import InvalidConfiguration, InvalidInput
from slotbook.domain.intervals import (
    TimeRange,
    format_minutes,
    overlaps,
    parse_date,
    parse_time,
    sunday_weekday,
)
from slotbook.domain.models import BlackoutRule, Client, Recurrence, Service, WorkingHoursPolicy


class TestOverlaps:
    """Tests for the half-open overlap test."""

    def test_overlap_is_symmetric(self):
        """Test overlap gives the same answer in both directions."""
        intervals = [(0, 30), (15, 45), (30, 60), (60, 90), (0, 120), (100, 110)]
        for a in intervals:
            for b in intervals:
                assert overlaps(*a, *b) == overlaps(*b, *a)

    def test_touching_intervals_do_not_overlap(self):
        """Test that A.end == B.start is not an overlap."""
        assert not overlaps(660, 690, 690, 720)
        assert not overlaps(690, 720, 660, 690)

    def test_contained_interval_overlaps(self):
        assert overlaps(600, 900, 700, 710)


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        tr = TimeRange(start=parse_time("09:00"), end=parse_time("17:00"))

        assert str(tr) == "09:00 - 17:00"

    def test_invalid_time_range_raises_error(self):
        """Test that creating an invalid time range raises ValueError."""
        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(start=parse_time("17:00"), end=parse_time("09:00"))

    def test_overlaps(self):
        """Test overlap detection."""
        tr1 = TimeRange(start=540, end=720)
        tr2 = TimeRange(start=660, end=840)
        tr3 = TimeRange(start=840, end=1020)

        assert tr1.overlaps(tr2)
        assert tr2.overlaps(tr1)
        assert not tr1.overlaps(tr3)
        assert not tr2.overlaps(tr3)


class TestParsing:
    """Tests for the HH:MM and YYYY-MM-DD formats."""

    def test_parse_time(self):
        assert parse_time("00:00") == 0
        assert parse_time("11:30") == 690
        assert parse_time("23:59") == 1439
        assert parse_time("24:00") == 1440

    @pytest.mark.parametrize("value", ["7:00", "24:30", "12:60", "noon", "", "12-30"])
    def test_parse_time_rejects_malformed(self, value):
        with pytest.raises(InvalidInput):
            parse_time(value)

    def test_format_minutes(self):
        assert format_minutes(0) == "00:00"
        assert format_minutes(1230) == "20:30"

    def test_parse_date(self):
        day = parse_date("2024-02-29")
        assert (day.year, day.month, day.day) == (2024, 2, 29)

    @pytest.mark.parametrize("value", ["2023-02-29", "2024-13-01", "01.02.2024", "tomorrow"])
    def test_parse_date_rejects_malformed(self, value):
        with pytest.raises(InvalidInput):
            parse_date(value)

    def test_sunday_based_weekday(self):
        """Test weekday numbering starts at Sunday."""
        assert sunday_weekday(pendulum.date(2024, 1, 7)) == 0  # Sunday
        assert sunday_weekday(pendulum.date(2024, 1, 1)) == 1  # Monday
        assert sunday_weekday(pendulum.date(2024, 1, 6)) == 6  # Saturday


class TestWorkingHoursPolicy:
    """Tests for WorkingHoursPolicy invariants."""

    def test_valid_policy(self):
        policy = WorkingHoursPolicy(open_time=660, close_time=1260, break_start=840,
                                    break_end=900, closed_weekdays={0})

        assert policy.break_range == TimeRange(start=840, end=900)
        assert policy.closed_weekdays == frozenset({0})

    def test_is_open_on(self):
        """Test closed weekdays are detected."""
        policy = WorkingHoursPolicy(open_time=660, close_time=1260, closed_weekdays={0})

        assert policy.is_open_on(pendulum.date(2024, 1, 8))  # Monday
        assert not policy.is_open_on(pendulum.date(2024, 1, 7))  # Sunday

    def test_open_must_precede_close(self):
        with pytest.raises(InvalidConfiguration, match="must be before"):
            WorkingHoursPolicy(open_time=1260, close_time=660)

    def test_break_needs_both_ends(self):
        with pytest.raises(InvalidConfiguration, match="both"):
            WorkingHoursPolicy(open_time=660, close_time=1260, break_start=840)

    def test_break_must_lie_within_hours(self):
        with pytest.raises(InvalidConfiguration, match="within"):
            WorkingHoursPolicy(open_time=660, close_time=1260, break_start=600, break_end=700)

    def test_break_must_end_before_closing(self):
        """Test both break ends lie in [open, close): a break ending at closing is rejected."""
        with pytest.raises(InvalidConfiguration, match="within"):
            WorkingHoursPolicy(open_time=660, close_time=1260, break_start=1200, break_end=1260)

        policy = WorkingHoursPolicy(open_time=660, close_time=1260, break_start=1200, break_end=1230)
        assert policy.break_range == TimeRange(start=1200, end=1230)

    def test_break_start_before_end(self):
        with pytest.raises(InvalidConfiguration):
            WorkingHoursPolicy(open_time=660, close_time=1260, break_start=900, break_end=840)

    def test_invalid_weekday(self):
        with pytest.raises(InvalidConfiguration, match="between 0 and 6"):
            WorkingHoursPolicy(open_time=660, close_time=1260, closed_weekdays={7})


class TestBlackoutRule:
    """Tests for BlackoutRule invariants."""

    def test_recurrence_accepts_strings(self):
        rule = BlackoutRule(id="r1", title="Lunch", anchor_date=pendulum.date(2024, 1, 1),
                            start_minute=780, end_minute=810, is_recurring=True,
                            recurrence="weekly", occurrence_count=3)

        assert rule.recurrence is Recurrence.WEEKLY
        assert rule.describe() == "weekly (3x)"

    def test_unknown_recurrence_is_rejected(self):
        with pytest.raises(InvalidConfiguration, match="Unknown recurrence"):
            BlackoutRule(id="r1", title="x", anchor_date=pendulum.date(2024, 1, 1),
                         start_minute=780, end_minute=810, is_recurring=True, recurrence="yearly")

    def test_recurring_rule_needs_a_kind(self):
        with pytest.raises(InvalidConfiguration):
            BlackoutRule(id="r1", title="x", anchor_date=pendulum.date(2024, 1, 1),
                         start_minute=780, end_minute=810, is_recurring=True)

    def test_start_before_end(self):
        with pytest.raises(InvalidConfiguration):
            BlackoutRule(id="r1", title="x", anchor_date=pendulum.date(2024, 1, 1),
                         start_minute=810, end_minute=780)

    def test_occurrence_count_positive(self):
        with pytest.raises(InvalidConfiguration):
            BlackoutRule(id="r1", title="x", anchor_date=pendulum.date(2024, 1, 1),
                         start_minute=780, end_minute=810, is_recurring=True,
                         recurrence=Recurrence.DAILY, occurrence_count=0)


class TestServiceAndClient:
    """Tests for Service validation and Client."""

    def test_service_validate(self):
        Service(id="cut", name="Cut", duration_minutes=30).validate()

    @pytest.mark.parametrize("duration", [0, -30])
    def test_service_rejects_non_positive_duration(self, duration):
        with pytest.raises(InvalidConfiguration):
            Service(id="cut", name="Cut", duration_minutes=duration).validate()

    def test_service_rejects_blank_name(self):
        with pytest.raises(InvalidConfiguration):
            Service(id="cut", name="  ", duration_minutes=30).validate()

    def test_client_requires_name(self):
        with pytest.raises(InvalidInput):
            Client(name=" ")
