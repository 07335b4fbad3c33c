"""
Tests for calendar arithmetic.

Month-end anchors and leap years are where recurring schedules usually
go wrong, so most cases here sit on Jan 31 or Feb 29.
"""

from datetime import date, datetime

import pytest

from recurring_ledger.models.template import Frequency
from recurring_ledger.schedule.frequency import (
    InvalidFrequencyError,
    advance,
    next_occurrence,
    parse_frequency,
    periods_after,
    previous_occurrence,
)


class TestParseFrequency:
    """Tests for turning stored tags into Frequency values."""

    def test_known_tags(self):
        assert parse_frequency("monthly") is Frequency.MONTHLY
        assert parse_frequency("one-time") is Frequency.ONE_TIME

    def test_case_and_whitespace_ignored(self):
        assert parse_frequency(" Weekly ") is Frequency.WEEKLY

    def test_enum_passes_through(self):
        assert parse_frequency(Frequency.YEARLY) is Frequency.YEARLY

    @pytest.mark.parametrize("tag", ["fortnightly", "", None, "month"])
    def test_unknown_tags_rejected(self, tag):
        with pytest.raises(InvalidFrequencyError) as exc_info:
            parse_frequency(tag)
        assert exc_info.value.tag == tag


class TestAdvance:
    """Tests for stepping a date by N periods from its anchor."""

    def test_daily_and_weekly(self):
        assert advance(date(2024, 2, 28), "daily") == date(2024, 2, 29)
        assert advance(date(2024, 2, 28), "weekly", 2) == date(2024, 3, 13)

    def test_month_end_preserved_across_leap_february(self):
        anchor = date(2024, 1, 31)
        assert advance(anchor, "monthly", 1) == date(2024, 2, 29)
        assert advance(anchor, "monthly", 2) == date(2024, 3, 31)
        assert advance(anchor, "monthly", 3) == date(2024, 4, 30)

    def test_month_end_in_non_leap_year(self):
        assert advance(date(2023, 1, 31), "monthly") == date(2023, 2, 28)

    def test_quarterly_clamps(self):
        assert advance(date(2024, 11, 30), "quarterly") == date(2025, 2, 28)

    def test_leap_day_yearly(self):
        anchor = date(2024, 2, 29)
        assert advance(anchor, "yearly", 1) == date(2025, 2, 28)
        assert advance(anchor, "yearly", 4) == date(2028, 2, 29)

    def test_one_time_never_moves(self):
        assert advance(date(2024, 5, 1), "one-time", 7) == date(2024, 5, 1)

    def test_datetime_truncated(self):
        assert advance(datetime(2024, 1, 15, 23, 59), "monthly") == date(2024, 2, 15)

    def test_next_and_previous(self):
        assert next_occurrence(date(2024, 3, 31), "monthly") == date(2024, 4, 30)
        assert previous_occurrence(date(2024, 3, 31), "monthly") == date(2024, 2, 29)


class TestPeriodsAfter:
    """Tests for locating the first period after a given date."""

    def test_before_anchor_is_zero(self):
        assert periods_after(date(2024, 1, 15), "monthly", date(2024, 1, 14)) == 0

    def test_on_an_occurrence_moves_past_it(self):
        assert periods_after(date(2024, 1, 15), "monthly", date(2024, 3, 15)) == 3

    def test_between_occurrences(self):
        assert periods_after(date(2024, 1, 15), "monthly", date(2024, 3, 20)) == 3

    def test_clamped_month_end(self):
        # Feb 29 is occurrence 1 of a Jan 31 anchor.
        assert periods_after(date(2024, 1, 31), "monthly", date(2024, 2, 29)) == 2

    def test_daily(self):
        assert periods_after(date(2024, 1, 1), "daily", date(2024, 1, 10)) == 10

    def test_one_time(self):
        assert periods_after(date(2024, 1, 1), "one-time", date(2024, 1, 1)) == 1

    @pytest.mark.parametrize("frequency", ["daily", "weekly", "monthly", "quarterly", "yearly"])
    def test_result_is_first_occurrence_after(self, frequency):
        anchor = date(2024, 1, 31)
        last = date(2025, 6, 30)
        n = periods_after(anchor, frequency, last)
        assert advance(anchor, frequency, n) > last
        assert n == 0 or advance(anchor, frequency, n - 1) <= last


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
