"""
Revision Planner - Database Connection
Async PostgreSQL with asyncpg
"""

import json
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, List

import asyncpg
import pydantic

from config import get_database_config, get_planner_config
from errors import ValidationError
from models import (
    Subject, BlockingEvent, RevisionSession, Invite, UserPreferences, PlanningRun
)
from timeslots import parse_time


class Database:
    """Async database connection manager."""

    def __init__(self):
        self._pool = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self):
        """Create connection pool."""
        config = get_database_config()
        self._pool = await asyncpg.create_pool(
            config.url,
            min_size=config.min_pool_size,
            max_size=config.max_pool_size
        )

    async def disconnect(self):
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def fetch(self, query: str, *args) -> List[dict]:
        """Fetch multiple rows."""
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, *args)
            return [dict(row) for row in rows]

    async def fetch_one(self, query: str, *args) -> Optional[dict]:
        """Fetch single row."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            return dict(row) if row else None

    async def execute(self, query: str, *args) -> str:
        """Execute query (INSERT, UPDATE, DELETE)."""
        async with self._pool.acquire() as conn:
            return await conn.execute(query, *args)

    @asynccontextmanager
    async def transaction(self):
        """Yield a connection inside a transaction; rolled back on error."""
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield conn


# Global database instance
db = Database()


# ============================================
# SCHEMA
# ============================================

PLANNER_SCHEMA = """
CREATE TABLE IF NOT EXISTS subjects (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    color TEXT DEFAULT '#6366f1',
    exam_date DATE,
    exam_weight NUMERIC DEFAULT 1,
    target_hours NUMERIC,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS calendar_events (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    start_datetime TIMESTAMPTZ NOT NULL,
    end_datetime TIMESTAMPTZ NOT NULL,
    is_blocking BOOLEAN DEFAULT TRUE,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS revision_sessions (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    user_id TEXT NOT NULL,
    subject_id TEXT NOT NULL REFERENCES subjects(id) ON DELETE CASCADE,
    date DATE NOT NULL,
    start_time TIME NOT NULL,
    end_time TIME NOT NULL,
    status TEXT NOT NULL DEFAULT 'planned',
    notes TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_revision_sessions_user_date
    ON revision_sessions (user_id, date);

CREATE TABLE IF NOT EXISTS session_invites (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    session_id TEXT NOT NULL REFERENCES revision_sessions(id) ON DELETE CASCADE,
    invited_by TEXT,
    accepted_by TEXT,
    confirmed BOOLEAN DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS user_preferences (
    user_id TEXT PRIMARY KEY,
    preferred_days_of_week INTEGER[],
    daily_start_time TIME,
    daily_end_time TIME,
    max_hours_per_day NUMERIC,
    session_duration_minutes INTEGER,
    avoid_early_morning BOOLEAN DEFAULT FALSE,
    avoid_late_evening BOOLEAN DEFAULT FALSE,
    weekly_revision_hours NUMERIC,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS planning_runs (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    user_id TEXT NOT NULL,
    week_start_date DATE NOT NULL,
    mode TEXT NOT NULL,
    config_json JSONB,
    sessions_generated INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW()
);
"""


async def ensure_planner_tables():
    """Create planner tables if they don't exist."""
    await db.execute(PLANNER_SCHEMA)


# ============================================
# WRITE STATEMENTS (used by the plan committer)
# ============================================

DELETE_SESSIONS_SQL = """
    DELETE FROM revision_sessions
    WHERE user_id = $1 AND id = ANY($2::text[])
"""

INSERT_SESSION_SQL = """
    INSERT INTO revision_sessions (user_id, subject_id, date, start_time, end_time, status, notes)
    VALUES ($1, $2, $3, $4, $5, $6, $7)
"""

INSERT_PLANNING_RUN_SQL = """
    INSERT INTO planning_runs (user_id, week_start_date, mode, config_json, sessions_generated)
    VALUES ($1, $2, $3, $4, $5)
"""


# ============================================
# SNAPSHOT QUERIES
# ============================================

async def get_active_subjects(user_id: str) -> List[Subject]:
    rows = await db.fetch(
        """SELECT id, name, color, exam_date,
                  COALESCE(exam_weight, 1)::float AS weight,
                  ROUND(target_hours * 60)::int AS target_minutes,
                  status
           FROM subjects
           WHERE user_id = $1 AND status = 'active'
           ORDER BY name""",
        user_id
    )
    return [Subject.model_validate(row) for row in rows]


async def get_blocking_events(user_id: str, week_start: date) -> List[BlockingEvent]:
    """Blocking events touching the week, with a day of margin for time zones."""
    window_start = datetime.combine(week_start - timedelta(days=1), time.min)
    window_end = datetime.combine(week_start + timedelta(days=8), time.min)
    rows = await db.fetch(
        """SELECT id, title, start_datetime AS start_at, end_datetime AS end_at,
                  COALESCE(is_blocking, TRUE) AS is_blocking
           FROM calendar_events
           WHERE user_id = $1
             AND COALESCE(is_blocking, TRUE)
             AND start_datetime < $3
             AND end_datetime > $2
           ORDER BY start_datetime""",
        user_id, window_start, window_end
    )
    return [BlockingEvent.model_validate(row) for row in rows]


async def get_revision_sessions(user_id: str) -> List[RevisionSession]:
    """All sessions of the user; target accounting needs the full history."""
    rows = await db.fetch(
        """SELECT id, subject_id, date, start_time, end_time,
                  COALESCE(status, 'planned') AS status, notes
           FROM revision_sessions
           WHERE user_id = $1
           ORDER BY date, start_time""",
        user_id
    )
    return [RevisionSession.model_validate(row) for row in rows]


async def get_session_invites(user_id: str) -> List[Invite]:
    rows = await db.fetch(
        """SELECT si.id, si.session_id, si.invited_by, si.accepted_by,
                  COALESCE(si.confirmed, FALSE) AS confirmed
           FROM session_invites si
           JOIN revision_sessions rs ON rs.id = si.session_id
           WHERE rs.user_id = $1""",
        user_id
    )
    return [Invite.model_validate(row) for row in rows]


def default_preferences() -> UserPreferences:
    planner = get_planner_config()
    return UserPreferences(
        preferred_days_of_week=planner.preferred_days_of_week,
        daily_start_time=parse_time(planner.daily_start_time),
        daily_end_time=parse_time(planner.daily_end_time),
        max_hours_per_day=planner.max_hours_per_day,
        session_duration_minutes=planner.session_duration_minutes,
        weekly_revision_hours=planner.weekly_revision_hours
    )


async def get_user_preferences(user_id: str) -> UserPreferences:
    """Saved preferences, with configured defaults for anything left unset."""
    defaults = default_preferences()
    row = await db.fetch_one(
        """SELECT preferred_days_of_week, daily_start_time, daily_end_time,
                  max_hours_per_day::float AS max_hours_per_day,
                  session_duration_minutes, avoid_early_morning, avoid_late_evening,
                  weekly_revision_hours::float AS weekly_revision_hours
           FROM user_preferences
           WHERE user_id = $1""",
        user_id
    )
    if not row:
        return defaults

    saved = {key: value for key, value in row.items() if value is not None}
    try:
        return UserPreferences.model_validate({**defaults.model_dump(), **saved})
    except pydantic.ValidationError as e:
        raise ValidationError(f"Saved preferences are invalid: {e.errors()[0]['msg']}") from e


async def get_planning_runs(user_id: str, limit: int = 20) -> List[PlanningRun]:
    rows = await db.fetch(
        """SELECT id, week_start_date, mode, config_json, sessions_generated, created_at
           FROM planning_runs
           WHERE user_id = $1
           ORDER BY created_at DESC
           LIMIT $2""",
        user_id, limit
    )
    return [
        PlanningRun(
            id=row["id"],
            week_start_date=row["week_start_date"],
            mode=row["mode"],
            config=_load_json(row["config_json"]),
            sessions_generated=row["sessions_generated"],
            created_at=row["created_at"]
        )
        for row in rows
    ]


def _load_json(value: Any) -> dict:
    if value is None:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


async def ping() -> bool:
    """True when the pool answers a trivial query."""
    if not db.connected:
        return False
    row = await db.fetch_one("SELECT 1 AS ok")
    return bool(row and row["ok"] == 1)
