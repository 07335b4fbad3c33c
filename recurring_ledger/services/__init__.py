"""
Services Package

Storage backends and the per-user clock.
"""

from recurring_ledger.services.clock import (
    FixedClock,
    TimezoneClock,
    UserClock,
    resolve_timezone,
)

__all__ = [
    "FixedClock",
    "TimezoneClock",
    "UserClock",
    "resolve_timezone",
]
