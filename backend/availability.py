"""
Revision Planner - Availability Resolver
Blocked ranges, conflict tests and free-interval (gap) analysis per day
"""

from datetime import date, datetime
from typing import List, Iterable, Optional, Union

from models import BlockingEvent, RevisionSession, NewSession, UserPreferences
from timeslots import (
    Slot, LUNCH_START, LUNCH_END, MINUTES_PER_DAY,
    time_to_minutes, effective_window, overlaps
)

SessionLike = Union[RevisionSession, NewSession]


def as_local(moment: datetime) -> datetime:
    """Drop timezone info after converting aware datetimes to local time."""
    if moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    return moment


def event_range_on(event: BlockingEvent, day: date) -> Optional[Slot]:
    """Part of a blocking event falling on the given day, clipped to it."""
    if not event.is_blocking:
        return None

    start = as_local(event.start_at)
    end = as_local(event.end_at)
    if start.date() > day or end.date() < day:
        return None

    start_min = time_to_minutes(start.time()) if start.date() == day else 0
    end_min = time_to_minutes(end.time()) if end.date() == day else MINUTES_PER_DAY
    if end_min <= start_min:
        return None
    return start_min, end_min


def blocked_ranges(
    day: date,
    events: Iterable[BlockingEvent],
    sessions: Iterable[SessionLike],
    now: Optional[datetime] = None
) -> List[Slot]:
    """
    Everything a new session on `day` must avoid, sorted by start.

    Includes blocking events, sessions of any status on that date, and the
    elapsed part of the day when `day` is today.
    """
    blocked = []

    for event in events:
        span = event_range_on(event, day)
        if span:
            blocked.append(span)

    for session in sessions:
        if session.date == day:
            blocked.append((
                time_to_minutes(session.start_time),
                time_to_minutes(session.end_time)
            ))

    if now is not None:
        local_now = as_local(now)
        if local_now.date() == day:
            elapsed = time_to_minutes(local_now.time())
            if local_now.second or local_now.microsecond:
                elapsed += 1
            if elapsed > 0:
                blocked.append((0, elapsed))

    blocked.sort()
    return blocked


def has_conflict(slot: Slot, blocked: Iterable[Slot]) -> bool:
    return any(overlaps(slot, other) for other in blocked)


def free_intervals(
    day: date,
    preferences: UserPreferences,
    events: Iterable[BlockingEvent],
    sessions: Iterable[SessionLike],
    now: Optional[datetime] = None
) -> List[Slot]:
    """
    Sorted gaps in the effective daily window that can hold one session.

    Returns:
        List of (start, end) minute pairs, each at least one session long
    """
    window_start, window_end = effective_window(preferences)
    blocked = blocked_ranges(day, events, sessions, now)
    blocked.append((LUNCH_START, LUNCH_END))
    blocked.sort()

    gaps = []
    cursor = window_start
    for start, end in blocked:
        if cursor >= window_end:
            break
        if start > cursor:
            gaps.append((cursor, min(start, window_end)))
        cursor = max(cursor, end)

    if cursor < window_end:
        gaps.append((cursor, window_end))

    duration = preferences.session_duration_minutes
    return [(start, end) for start, end in gaps if end - start >= duration]
