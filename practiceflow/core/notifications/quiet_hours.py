"""
Quiet-Hours Evaluator

Decides whether "now" falls outside a client's do-not-disturb window.

The window is half-open: [start, end). When start > end the window
crosses midnight. Times are compared at minute precision against the
server's local wall clock; the preference's stored timezone is NOT applied.
Anything missing or unparseable fails open (delivery allowed).
"""

import logging
from datetime import datetime, time
from typing import Optional, Union

from .types import ContactPreferences

logger = logging.getLogger(__name__)

TimeValue = Union[time, str, None]


def to_minutes(value: TimeValue) -> Optional[int]:
    """
    Convert a wall-clock time to minutes after midnight.

    Accepts ``datetime.time`` or "HH:MM" / "HH:MM:SS" strings. Seconds are
    dropped.

    Returns:
        Minutes after midnight, or None if the value is missing or invalid
    """
    if value is None:
        return None
    if isinstance(value, time):
        return value.hour * 60 + value.minute

    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        return None
    return hour * 60 + minute


def is_inside_quiet_hours(start: int, end: int, current: int) -> bool:
    """Check whether ``current`` lies in the [start, end) window (minutes)."""
    if start <= end:
        return start <= current < end
    # Window crosses midnight
    return current >= start or current < end


def is_outside_quiet_hours(
    prefs: Optional[ContactPreferences],
    now: Optional[datetime] = None,
) -> bool:
    """
    Check whether a notification may be sent right now.

    Args:
        prefs: Client contact preferences (None means no restriction)
        now: Current time (defaults to the local wall clock)

    Returns:
        True if delivery is allowed, False if inside quiet hours
    """
    if prefs is None or not prefs.quiet_hours_enabled:
        return True

    if prefs.quiet_hours_start is None or prefs.quiet_hours_end is None:
        return True

    start = to_minutes(prefs.quiet_hours_start)
    end = to_minutes(prefs.quiet_hours_end)
    if start is None or end is None:
        logger.warning(
            f"Unparseable quiet hours for client {prefs.client_id}: "
            f"{prefs.quiet_hours_start!r}-{prefs.quiet_hours_end!r}, allowing delivery"
        )
        return True

    # TODO: convert now into prefs.timezone once stored windows are migrated to client-local time
    now = now or datetime.now()
    current = now.hour * 60 + now.minute

    return not is_inside_quiet_hours(start, end, current)
