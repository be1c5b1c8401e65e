"""
Revision Planner - Time Slot Generation
Weekday mapping, time helpers and the per-day candidate slot list
"""

from datetime import time
from enum import IntEnum
from typing import List, Tuple, Iterable

from models import UserPreferences


# ============================================
# CONSTANTS
# ============================================

LUNCH_START = 12 * 60 + 30      # 12:30
LUNCH_END = 14 * 60             # 14:00
BREAK_MINUTES = 30              # Rest between two consecutive sessions
EARLY_MORNING_LIMIT = 9 * 60    # avoid_early_morning clamps the start here
LATE_EVENING_LIMIT = 21 * 60    # avoid_late_evening clamps the end here
MINUTES_PER_DAY = 24 * 60

Slot = Tuple[int, int]


# ============================================
# WEEKDAYS
# ============================================

class Weekday(IntEnum):
    """ISO weekday numbers (Monday=1 .. Sunday=7)."""
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7

    @classmethod
    def from_number(cls, number: int) -> "Weekday":
        """Accept ISO numbers, plus 0 for Sunday as stored by JS-style clients."""
        if number == 0:
            return cls.SUNDAY
        try:
            return cls(number)
        except ValueError:
            raise ValueError(f"Invalid weekday number: {number}") from None


def to_monday_first_offset(day: Weekday) -> int:
    """Offset of a weekday from the Monday that starts its week (0..6)."""
    return int(day) - 1


def preferred_offsets(preferences: UserPreferences) -> List[int]:
    """Sorted, de-duplicated day offsets for the user's preferred weekdays."""
    return sorted({
        to_monday_first_offset(Weekday.from_number(number))
        for number in preferences.preferred_days_of_week
    })


# ============================================
# UTILITY FUNCTIONS
# ============================================

def time_to_minutes(t: time) -> int:
    """Convert time to minutes since midnight."""
    return t.hour * 60 + t.minute


def minutes_to_time(minutes: int) -> time:
    """Convert minutes since midnight to time."""
    if minutes >= MINUTES_PER_DAY:
        return time(23, 59)
    return time(minutes // 60, minutes % 60)


def parse_time(time_str: str) -> time:
    """Parse time string (HH:MM or HH:MM:SS) to time object."""
    parts = time_str.split(":")
    return time(int(parts[0]), int(parts[1]))


def format_time(t: time) -> str:
    """Format time to HH:MM string."""
    return t.strftime("%H:%M")


def overlaps(a: Slot, b: Slot) -> bool:
    """Closed-open interval intersection."""
    return a[0] < b[1] and b[0] < a[1]


def touches_lunch(start: int, end: int) -> bool:
    return overlaps((start, end), (LUNCH_START, LUNCH_END))


# ============================================
# SLOT GENERATOR
# ============================================

def effective_window(preferences: UserPreferences) -> Slot:
    """Daily window after the early-morning / late-evening clamps."""
    start = time_to_minutes(preferences.daily_start_time)
    end = time_to_minutes(preferences.daily_end_time)

    if preferences.avoid_early_morning and start < EARLY_MORNING_LIMIT:
        start = EARLY_MORNING_LIMIT
    if preferences.avoid_late_evening and end > LATE_EVENING_LIMIT:
        end = LATE_EVENING_LIMIT

    return start, end


def generate_slots(preferences: UserPreferences) -> List[Slot]:
    """
    Candidate session ranges for one day, in minutes since midnight.

    The cursor advances by the session duration plus a fixed break. A
    candidate that would start in, or run into, the lunch exclusion moves
    the cursor to the end of lunch instead.
    """
    duration = preferences.session_duration_minutes
    start, end = effective_window(preferences)

    slots: List[Slot] = []
    cursor = start
    while cursor + duration <= end:
        if touches_lunch(cursor, cursor + duration):
            cursor = LUNCH_END
            continue
        slots.append((cursor, cursor + duration))
        cursor += duration + BREAK_MINUTES

    return slots


def carve_interval(interval: Slot, duration: int) -> Iterable[Slot]:
    """Consecutive sessions fitting in a free interval, separated by a break."""
    cursor, end = interval
    while cursor + duration <= end:
        yield cursor, cursor + duration
        cursor += duration + BREAK_MINUTES
