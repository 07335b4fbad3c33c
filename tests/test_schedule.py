"""
Tests for cursors, catch-up generation and bill due dates.

These are pure: no storage, no event loop.
"""

from datetime import date

import pytest

from recurring_ledger.models.template import LedgerInstance
from recurring_ledger.schedule import (
    CatchUpGenerator,
    CatchUpLimitExceededError,
    DueDateChain,
    build_cursor,
)
from recurring_ledger.validation import TemplateValidationError

from conftest import make_bill, make_template


def instances_on(template, *dates):
    return [
        LedgerInstance.from_template(template, occurrence_date=d, user_id=template.user_id)
        for d in dates
    ]


class TestScheduleCursor:
    """Tests for deriving the resume point from stored instances."""

    def test_no_instances_starts_at_start_date(self):
        template = make_template()
        cursor = build_cursor(template, [], today=date(2024, 4, 20))

        assert cursor.next_index == 0
        assert cursor.first_candidate == date(2024, 1, 15)
        assert cursor.last_materialized < template.start_date
        assert cursor.has_work

    def test_resumes_after_latest_instance(self):
        template = make_template()
        existing = instances_on(template, date(2024, 1, 15), date(2024, 2, 15))
        cursor = build_cursor(template, existing, today=date(2024, 4, 20))

        assert cursor.last_materialized == date(2024, 2, 15)
        assert cursor.next_index == 2
        assert cursor.first_candidate == date(2024, 3, 15)

    def test_boundary_is_end_date_when_earlier(self):
        template = make_template(end_date=date(2024, 3, 1))
        cursor = build_cursor(template, [], today=date(2024, 4, 20))
        assert cursor.boundary == date(2024, 3, 1)

    def test_boundary_is_today_when_no_end_date(self):
        cursor = build_cursor(make_template(), [], today=date(2024, 4, 20))
        assert cursor.boundary == date(2024, 4, 20)

    def test_future_start_has_no_work(self):
        template = make_template(start_date=date(2024, 6, 1))
        cursor = build_cursor(template, [], today=date(2024, 4, 20))
        assert not cursor.has_work

    def test_one_time_without_instance(self):
        template = make_template(frequency="one-time", start_date=date(2024, 3, 1))
        cursor = build_cursor(template, [], today=date(2024, 4, 20))

        assert cursor.last_materialized == date(2024, 2, 29)
        assert cursor.has_work

    def test_one_time_with_instance_is_exhausted(self):
        template = make_template(frequency="one-time", start_date=date(2024, 3, 1))
        existing = instances_on(template, date(2024, 3, 1))
        cursor = build_cursor(template, existing, today=date(2024, 4, 20))

        assert cursor.exhausted
        assert not cursor.has_work


class TestCatchUpGenerator:
    """Tests for yielding every missed occurrence."""

    def test_catches_up_every_missed_period(self):
        template = make_template()
        existing = instances_on(template, date(2024, 1, 15))
        cursor = build_cursor(template, existing, today=date(2024, 4, 20))

        dates = [c.occurrence_date for c in CatchUpGenerator().candidates(cursor)]

        assert dates == [date(2024, 2, 15), date(2024, 3, 15), date(2024, 4, 15)]

    def test_candidates_carry_period_index(self):
        cursor = build_cursor(make_template(), [], today=date(2024, 3, 15))
        indexes = [c.index for c in CatchUpGenerator().candidates(cursor)]
        assert indexes == [0, 1, 2]

    def test_nothing_when_up_to_date(self):
        template = make_template()
        existing = instances_on(template, date(2024, 4, 15))
        cursor = build_cursor(template, existing, today=date(2024, 4, 20))
        assert list(CatchUpGenerator().candidates(cursor)) == []

    def test_restartable(self):
        cursor = build_cursor(make_template(), [], today=date(2024, 4, 20))
        generator = CatchUpGenerator()
        assert list(generator.candidates(cursor)) == list(generator.candidates(cursor))

    def test_one_time_yields_only_start(self):
        template = make_template(frequency="one-time", start_date=date(2024, 3, 1))
        cursor = build_cursor(template, [], today=date(2024, 12, 31))

        candidates = list(CatchUpGenerator().candidates(cursor))

        assert [c.occurrence_date for c in candidates] == [date(2024, 3, 1)]

    def test_cap_raises_after_yielding_max_steps(self):
        template = make_template(frequency="daily", start_date=date(2023, 1, 1))
        cursor = build_cursor(template, [], today=date(2024, 12, 31))
        collected = []

        with pytest.raises(CatchUpLimitExceededError) as exc_info:
            for candidate in CatchUpGenerator(max_steps=10).candidates(cursor):
                collected.append(candidate)

        assert len(collected) == 10
        assert exc_info.value.max_steps == 10
        assert exc_info.value.template_id == template.id

    def test_exactly_max_steps_is_not_an_error(self):
        template = make_template(frequency="daily", start_date=date(2024, 1, 1))
        cursor = build_cursor(template, [], today=date(2024, 1, 10))

        candidates = list(CatchUpGenerator(max_steps=10).candidates(cursor))

        assert len(candidates) == 10

    def test_max_steps_must_be_positive(self):
        with pytest.raises(ValueError):
            CatchUpGenerator(max_steps=0)


class TestDueDateChain:
    """Tests for the bill due-date pointer."""

    def test_quarterly_due_dates_in_lockstep(self):
        chain = DueDateChain(make_bill())

        assert chain.due_date_for(0) == date(2024, 1, 10)
        assert chain.due_date_for(1) == date(2024, 4, 10)
        assert chain.due_date_for(2) == date(2024, 7, 10)
        assert chain.next_due_preview(2) == date(2024, 10, 10)

    def test_one_time_bill_has_no_preview(self):
        chain = DueDateChain(make_bill(bill_frequency="one-time"))
        assert chain.next_due_preview(0) is None
        assert chain.due_date_for(0) == date(2024, 1, 10)

    def test_month_end_due_date(self):
        chain = DueDateChain(make_bill(bill_frequency="monthly", due_date=date(2024, 1, 31)))
        assert [chain.due_date_for(n) for n in range(3)] == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
        ]

    def test_for_template_skips_transactions(self):
        assert DueDateChain.for_template(make_template()) is None
        assert DueDateChain.for_template(make_bill()) is not None

    def test_missing_due_date_rejected(self):
        with pytest.raises(TemplateValidationError):
            DueDateChain(make_bill(due_date=None))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
