"""
Frequency Step - calendar arithmetic for recurring schedules

Pure functions, no state:
- next_occurrence(anchor, frequency): the single step the schedule takes
- advance(anchor, frequency, periods): N steps, measured from the anchor

DESIGN DECISION: Occurrence N is always computed from the template's
anchor, never by stepping from occurrence N-1. Stepping iteratively loses
month-end anchors (Jan 31 -> Feb 29 -> Mar 29); measuring from the anchor
keeps them (Jan 31 -> Feb 29 -> Mar 31 -> Apr 30).

relativedelta clamps to the last valid day of the target month.
"""

from datetime import date, datetime, timedelta
from typing import Union

from dateutil.relativedelta import relativedelta

from recurring_ledger.models.template import Frequency


class InvalidFrequencyError(ValueError):
    """Frequency tag is empty or not one we schedule."""

    def __init__(self, tag):
        self.tag = tag
        super().__init__(
            f"Unrecognized frequency {tag!r}. "
            f"Expected one of: {', '.join(f.value for f in Frequency)}"
        )


_DAYS_PER_STEP = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
}

_MONTHS_PER_STEP = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}


def parse_frequency(tag: Union[str, Frequency, None]) -> Frequency:
    """Turn a stored tag into a Frequency, rejecting anything unknown."""
    if isinstance(tag, Frequency):
        return tag
    if not tag:
        raise InvalidFrequencyError(tag)
    try:
        return Frequency(tag.strip().lower())
    except ValueError:
        raise InvalidFrequencyError(tag) from None


def to_calendar_date(value: Union[date, datetime]) -> date:
    """Truncate time-of-day; the engine only deals in calendar days."""
    if isinstance(value, datetime):
        return value.date()
    return value


def advance(
    anchor: Union[date, datetime],
    frequency: Union[str, Frequency],
    periods: int = 1,
) -> date:
    """
    Date `periods` steps away from `anchor` (negative goes backwards).

    ONE_TIME never moves.
    """
    freq = parse_frequency(frequency)
    anchor = to_calendar_date(anchor)

    if freq is Frequency.ONE_TIME:
        return anchor
    if freq in _DAYS_PER_STEP:
        return anchor + timedelta(days=_DAYS_PER_STEP[freq] * periods)
    return anchor + relativedelta(months=_MONTHS_PER_STEP[freq] * periods)


def next_occurrence(
    anchor: Union[date, datetime],
    frequency: Union[str, Frequency],
) -> date:
    return advance(anchor, frequency, 1)


def previous_occurrence(
    anchor: Union[date, datetime],
    frequency: Union[str, Frequency],
) -> date:
    return advance(anchor, frequency, -1)


def periods_after(
    anchor: date,
    frequency: Union[str, Frequency],
    last: date,
) -> int:
    """
    Smallest n >= 0 such that advance(anchor, frequency, n) > last.

    For ONE_TIME there is no such n once last >= anchor; 1 is returned,
    meaning "the only occurrence is already behind us".
    """
    freq = parse_frequency(frequency)
    if last < anchor:
        return 0
    if freq is Frequency.ONE_TIME:
        return 1

    if freq in _DAYS_PER_STEP:
        return (last - anchor).days // _DAYS_PER_STEP[freq] + 1

    months = (last.year - anchor.year) * 12 + (last.month - anchor.month)
    n = max(months // _MONTHS_PER_STEP[freq], 0)
    # Clamping can land the estimate on or before `last`; walk forward.
    while advance(anchor, freq, n) <= last:
        n += 1
    return n
