"""
Schedule Package

Pure date logic: frequency steps, resume cursors, catch-up candidates
and bill due-date chains. Nothing in here touches storage.
"""

from recurring_ledger.schedule.frequency import (
    InvalidFrequencyError,
    advance,
    next_occurrence,
    parse_frequency,
    periods_after,
    previous_occurrence,
)
from recurring_ledger.schedule.cursor import (
    ScheduleCursor,
    build_cursor,
    generation_boundary,
)
from recurring_ledger.schedule.catch_up import (
    Candidate,
    CatchUpError,
    CatchUpGenerator,
    CatchUpLimitExceededError,
    CatchUpStalledError,
)
from recurring_ledger.schedule.due_dates import DueDateChain

__all__ = [
    # Frequency
    "InvalidFrequencyError",
    "advance",
    "next_occurrence",
    "parse_frequency",
    "periods_after",
    "previous_occurrence",
    # Cursor
    "ScheduleCursor",
    "build_cursor",
    "generation_boundary",
    # Catch-up
    "Candidate",
    "CatchUpError",
    "CatchUpGenerator",
    "CatchUpLimitExceededError",
    "CatchUpStalledError",
    # Due dates
    "DueDateChain",
]
