"""
Revision Planner - Planning Service
Loads a user's snapshot, runs one scheduling mode and commits the result.

Runs are serialized per user: two overlapping invocations (double click)
would otherwise both compute against the same snapshot and insert
overlapping sessions.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Optional

import database
from committer import PlanCommitter
from config import get_planner_config
from errors import ValidationError, SubjectNotFoundError
from logger import run_logger
from models import PlanResult, PlanStatus, PlanningMode
from scheduler import SchedulingSnapshot, regenerate, adjust, reinforce


# Entries disappear once no run holds or waits on the lock
_user_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


@asynccontextmanager
async def user_lock(user_id: str):
    """One planning run at a time per user."""
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = _user_locks[user_id] = asyncio.Lock()
    async with lock:
        yield


def week_start_for(day: date) -> date:
    """Monday of the week containing `day`."""
    return day - timedelta(days=day.weekday())


async def load_snapshot(user_id: str, week_start: date, now: datetime) -> SchedulingSnapshot:
    """Read everything a run needs, immediately before the run."""
    subjects = await database.get_active_subjects(user_id)
    events = await database.get_blocking_events(user_id, week_start)
    sessions = await database.get_revision_sessions(user_id)
    invites = await database.get_session_invites(user_id)
    preferences = await database.get_user_preferences(user_id)

    return SchedulingSnapshot(
        subjects=tuple(subjects),
        events=tuple(events),
        sessions=tuple(sessions),
        invites=tuple(invites),
        preferences=preferences,
        week_start=week_start,
        now=now
    )


async def regenerate_week(
    user_id: str,
    week_start: Optional[date] = None,
    now: Optional[datetime] = None,
    committer: Optional[PlanCommitter] = None
) -> PlanResult:
    """Recompute the week's unprotected planned sessions."""
    now = now or datetime.now()
    week_start = week_start_for(week_start or now.date())
    committer = committer or PlanCommitter()
    log = run_logger(user_id, PlanningMode.REGENERATE.value)

    async with user_lock(user_id):
        snapshot = await load_snapshot(user_id, week_start, now)
        try:
            result = regenerate(snapshot)
        except ValidationError as e:
            log.warning(f"Refused: {e}")
            raise

        await committer.commit(user_id, result, snapshot.preferences, record_run=True)

    log.info(
        f"Week {week_start}: "
        f"{result.count} created, {len(result.deleted_session_ids)} replaced ({result.status.value})"
    )
    return result


async def adjust_week(
    user_id: str,
    week_start: Optional[date] = None,
    now: Optional[datetime] = None,
    committer: Optional[PlanCommitter] = None
) -> PlanResult:
    """Add sessions to the week for subjects still short of their target."""
    now = now or datetime.now()
    week_start = week_start_for(week_start or now.date())
    committer = committer or PlanCommitter()
    log = run_logger(user_id, PlanningMode.ADJUST.value)

    async with user_lock(user_id):
        snapshot = await load_snapshot(user_id, week_start, now)
        result = adjust(snapshot)
        if result.status == PlanStatus.NO_ELIGIBLE_SUBJECTS:
            log.info("Skipped: no subject below target")
            return result

        if result.sessions:
            await committer.commit(user_id, result, snapshot.preferences, record_run=True)

    log.info(
        f"Week {week_start}: "
        f"{result.count} added, {result.minutes_remaining} mins still missing"
    )
    return result


async def reinforce_subject(
    user_id: str,
    subject_id: str,
    now: Optional[datetime] = None,
    committer: Optional[PlanCommitter] = None
) -> PlanResult:
    """Top up one subject in the current week."""
    now = now or datetime.now()
    week_start = week_start_for(now.date())
    committer = committer or PlanCommitter()
    ceiling = get_planner_config().reinforce_ceiling_minutes
    log = run_logger(user_id, PlanningMode.REINFORCE.value)

    async with user_lock(user_id):
        snapshot = await load_snapshot(user_id, week_start, now)
        try:
            result = reinforce(snapshot, subject_id, ceiling_minutes=ceiling)
        except SubjectNotFoundError:
            log.warning(f"Unknown subject {subject_id}")
            raise

        if result.sessions:
            await committer.commit(user_id, result, snapshot.preferences, record_run=True)

    log.info(
        f"Subject {subject_id}: "
        f"{result.minutes_added} mins added, {result.minutes_remaining} mins left"
    )
    return result
