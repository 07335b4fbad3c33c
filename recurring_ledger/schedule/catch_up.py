"""
Catch-Up Generator

Produces every occurrence a template is owed, from its cursor up to the
boundary, not just the most recent one. If the engine was down for three
months, a monthly template gets three candidates in one sweep.

The sequence is lazy and finite. A hard cap stops runaway schedules;
hitting the cap is an error the sweep reports, never a silent truncation.
Candidates already handed out before the cap stay materialized, and the
next sweep picks up from there.
"""

from datetime import date
from typing import Iterator, NamedTuple
from uuid import UUID

from recurring_ledger.models.template import Frequency
from recurring_ledger.schedule.cursor import ScheduleCursor
from recurring_ledger.schedule.frequency import advance

DEFAULT_MAX_STEPS = 365


class CatchUpError(Exception):
    """Base exception for catch-up generation."""
    pass


class CatchUpLimitExceededError(CatchUpError):
    """More candidates are due than one sweep may generate for a template."""

    def __init__(self, template_id: UUID, max_steps: int):
        self.template_id = template_id
        self.max_steps = max_steps
        super().__init__(
            f"Template {template_id} has more than {max_steps} missed "
            f"occurrences; generated {max_steps}, the rest follow next sweep"
        )


class CatchUpStalledError(CatchUpError):
    """The schedule stopped moving forward."""
    pass


class Candidate(NamedTuple):
    """An occurrence that should exist: its period number and date."""
    index: int
    occurrence_date: date


class CatchUpGenerator:
    """
    Yields candidate occurrences for one template.

    Stateless between calls: every call to candidates() starts from the
    cursor it is given.
    """

    def __init__(self, max_steps: int = DEFAULT_MAX_STEPS):
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self._max_steps = max_steps

    @property
    def max_steps(self) -> int:
        return self._max_steps

    def candidates(self, cursor: ScheduleCursor) -> Iterator[Candidate]:
        if not cursor.has_work:
            return

        if cursor.frequency is Frequency.ONE_TIME:
            yield Candidate(0, cursor.start_date)
            return

        index = cursor.next_index
        previous = None
        steps = 0
        while True:
            occurrence = advance(cursor.start_date, cursor.frequency, index)
            if occurrence > cursor.boundary:
                return
            if previous is not None and occurrence <= previous:
                raise CatchUpStalledError(
                    f"Template {cursor.template_id} did not advance past "
                    f"{previous.isoformat()}"
                )
            if steps >= self._max_steps:
                raise CatchUpLimitExceededError(cursor.template_id, self._max_steps)

            yield Candidate(index, occurrence)
            steps += 1
            previous = occurrence
            index += 1
