"""Determine the current and next prayer from a day's schedule."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from prayer_times import PrayerInfo

LOGGER = logging.getLogger(__name__)

# The window before Fajr still belongs to the previous night's Isha.
PRE_FAJR_PRAYER = "Isha"
NOW_LABEL = "Now"


def _require_aware(now: datetime) -> None:
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("'now' must be timezone-aware")


def current_prayer(prayers: Sequence["PrayerInfo"], now: datetime) -> str:
    """Return the name of the latest prayer whose time is at or before *now*."""
    _require_aware(now)
    current = PRE_FAJR_PRAYER
    for info in prayers:
        if info.time <= now:
            current = info.name
        else:
            break
    return current


def next_prayer(prayers: Sequence["PrayerInfo"], now: datetime) -> Optional["PrayerInfo"]:
    """Return the earliest prayer strictly after *now*, or ``None`` once Isha has passed.

    Rolling over to the following day is left to the caller.
    """
    _require_aware(now)
    for info in prayers:
        if info.time > now:
            return info
    LOGGER.debug("No prayer remaining after %s", now)
    return None


def format_time_until(target: datetime, now: datetime) -> str:
    seconds = (target - now).total_seconds()
    if seconds <= 0:
        return NOW_LABEL
    hours, remainder = divmod(int(seconds), 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
