"""
User Clock

"Today" belongs to the user, not the server. A sweep at 23:30 UTC is
already tomorrow in Asia/Kolkata, and a daily template owned by an
Indian user is due accordingly.

Stored timezones come in two shapes: IANA names ("Asia/Kolkata") and UTC
offsets ("UTC+05:30", "+05:30"). Offsets map onto a representative zone.
Anything unrecognized falls back to the configured default.
"""

import re
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from recurring_ledger.services.storage.interface import (
    LedgerStorageInterface,
    NotFoundError,
)

logger = structlog.get_logger(__name__)


UTC_OFFSET_TO_IANA = {
    "UTC+05:30": "Asia/Kolkata",
    "UTC+05:45": "Asia/Kathmandu",
    "UTC+06:00": "Asia/Dhaka",
    "UTC+06:30": "Asia/Yangon",
    "UTC+07:00": "Asia/Bangkok",
    "UTC+08:00": "Asia/Shanghai",
    "UTC+09:00": "Asia/Tokyo",
    "UTC+09:30": "Australia/Adelaide",
    "UTC+10:00": "Australia/Sydney",
    "UTC+11:00": "Pacific/Norfolk",
    "UTC+12:00": "Pacific/Auckland",
    "UTC-12:00": "Etc/GMT+12",
    "UTC-11:00": "Pacific/Pago_Pago",
    "UTC-10:00": "Pacific/Honolulu",
    "UTC-09:00": "America/Anchorage",
    "UTC-08:00": "America/Los_Angeles",
    "UTC-07:00": "America/Denver",
    "UTC-06:00": "America/Chicago",
    "UTC-05:00": "America/New_York",
    "UTC-04:00": "America/Caracas",
    "UTC-03:00": "America/Sao_Paulo",
    "UTC-02:00": "Atlantic/South_Georgia",
    "UTC-01:00": "Atlantic/Azores",
    "UTC+00:00": "UTC",
    "UTC+01:00": "Europe/London",
    "UTC+02:00": "Europe/Berlin",
    "UTC+03:00": "Europe/Moscow",
    "UTC+04:00": "Asia/Dubai",
}

_BARE_OFFSET = re.compile(r"^[+-]\d{2}:\d{2}$")


def to_iana_name(tz_name: str) -> str:
    """Map offset notations onto IANA names; leave everything else alone."""
    tz_name = tz_name.strip()
    if _BARE_OFFSET.match(tz_name):
        tz_name = f"UTC{tz_name}"
    if tz_name.upper().startswith("UTC") and tz_name.upper() != "UTC":
        return UTC_OFFSET_TO_IANA.get(tz_name.upper(), tz_name)
    return tz_name


def resolve_timezone(tz_name: Optional[str], default: str = "UTC") -> ZoneInfo:
    """
    Turn a stored timezone preference into a ZoneInfo.

    Args:
        tz_name: IANA name or UTC offset string, or None
        default: IANA name used when tz_name is missing or unknown

    Returns:
        The resolved zone
    """
    if tz_name:
        iana = to_iana_name(tz_name)
        try:
            return ZoneInfo(iana)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(
                "unknown_timezone",
                timezone=tz_name,
                fallback=default,
            )
    return ZoneInfo(default)


class UserClock(ABC):
    """Answers "what date is it for this user?"."""

    @abstractmethod
    async def today_for(self, user_id: str) -> date:
        pass


class TimezoneClock(UserClock):
    """
    Today in the user's stored timezone.

    Users without a stored preference (or without a users row at all)
    get the default timezone.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        default_timezone: str = "UTC",
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._storage = storage
        self._default = default_timezone
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def today_for(self, user_id: str) -> date:
        try:
            tz_name = await self._storage.get_user_timezone(user_id)
        except NotFoundError:
            tz_name = None
        zone = resolve_timezone(tz_name, self._default)
        return self._now().astimezone(zone).date()


class FixedClock(UserClock):
    """Same date for everyone. For tests and the --today override."""

    def __init__(self, today: date):
        self._today = today

    async def today_for(self, user_id: str) -> date:
        return self._today
