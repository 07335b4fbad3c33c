"""
Schedule Cursor

Where a template's schedule stands right now, derived from what is
already in storage. Nothing here is cached between sweeps: the cursor is
rebuilt from persisted instances every time, which is what lets a sweep
resume after a crash and lets two sweeps run side by side.
"""

from datetime import date, timedelta
from typing import Iterable
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from recurring_ledger.models.template import Frequency, LedgerInstance, RecurringTemplate
from recurring_ledger.schedule.frequency import (
    advance,
    parse_frequency,
    periods_after,
    previous_occurrence,
)


class ScheduleCursor(BaseModel):
    """
    Resume point for one template.

    next_index is the period number (0 = start date) of the first
    occurrence not yet materialized.
    """
    model_config = ConfigDict(frozen=True)

    template_id: UUID
    frequency: Frequency
    start_date: date
    last_materialized: date
    boundary: date
    next_index: int

    @property
    def first_candidate(self) -> date:
        return advance(self.start_date, self.frequency, self.next_index)

    @property
    def exhausted(self) -> bool:
        """A one-time schedule whose single occurrence already exists."""
        return self.frequency is Frequency.ONE_TIME and self.next_index > 0

    @property
    def has_work(self) -> bool:
        if self.exhausted:
            return False
        return self.first_candidate <= self.boundary


def generation_boundary(template: RecurringTemplate, today: date) -> date:
    """The earlier of today and the template's end date."""
    if template.end_date and template.end_date < today:
        return template.end_date
    return today


def build_cursor(
    template: RecurringTemplate,
    instances: Iterable[LedgerInstance],
    today: date,
) -> ScheduleCursor:
    """
    Build the cursor for `template` from its existing instances.

    The template must already have passed validation (start date set,
    frequency recognized).
    """
    frequency = parse_frequency(template.effective_frequency)
    start = template.start_date

    dates = [i.occurrence_date for i in instances]
    if dates:
        last = max(dates)
    else:
        # One step before the start, so the start itself is the first candidate.
        last = previous_occurrence(start, frequency)
        if last >= start:
            last = start - timedelta(days=1)

    return ScheduleCursor(
        template_id=template.id,
        frequency=frequency,
        start_date=start,
        last_materialized=last,
        boundary=generation_boundary(template, today),
        next_index=periods_after(start, frequency, last),
    )
