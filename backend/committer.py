"""
Revision Planner - Plan Committer
Applies a computed plan in one transaction and records the audit run.
"""

import json
from typing import Optional, Dict, Any

import asyncpg

from database import (
    Database, db, DELETE_SESSIONS_SQL, INSERT_SESSION_SQL, INSERT_PLANNING_RUN_SQL
)
from errors import PersistenceError
from logger import logger
from models import PlanResult, PlanningRun, UserPreferences


def build_run_config(result: PlanResult, preferences: UserPreferences) -> Dict[str, Any]:
    """Snapshot of the inputs used and the counts produced."""
    return {
        "preferences": preferences.model_dump(mode="json"),
        "status": result.status.value,
        "sessions_generated": result.count,
        "sessions_deleted": len(result.deleted_session_ids),
        "minutes_added": result.minutes_added,
    }


class PlanCommitter:
    """Persists a PlanResult all-or-nothing."""

    def __init__(self, database: Optional[Database] = None):
        self.db = database or db

    async def commit(
        self,
        user_id: str,
        result: PlanResult,
        preferences: UserPreferences,
        record_run: bool = True
    ) -> Optional[PlanningRun]:
        """
        Delete the purged sessions, bulk insert the new ones and write the
        planning run, all inside a single transaction.

        Returns:
            The audit record written, or None when `record_run` is False

        Raises:
            PersistenceError: the transaction failed and was rolled back
        """
        rows = [
            (user_id, s.subject_id, s.date, s.start_time, s.end_time, s.status.value, s.notes)
            for s in result.sessions
        ]
        run = PlanningRun(
            week_start_date=result.week_start,
            mode=result.mode,
            config=build_run_config(result, preferences),
            sessions_generated=result.count
        )

        try:
            async with self.db.transaction() as conn:
                if result.deleted_session_ids:
                    await conn.execute(DELETE_SESSIONS_SQL, user_id, result.deleted_session_ids)
                if rows:
                    await conn.executemany(INSERT_SESSION_SQL, rows)
                if record_run:
                    await conn.execute(
                        INSERT_PLANNING_RUN_SQL,
                        user_id,
                        run.week_start_date,
                        run.mode.value,
                        json.dumps(run.config),
                        run.sessions_generated
                    )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"Plan commit failed for user {user_id}: {e}")
            raise PersistenceError(f"Could not save the plan: {e}", e) from e

        logger.info(
            f"Committed {result.mode.value} plan for user {user_id}: "
            f"{len(rows)} inserted, {len(result.deleted_session_ids)} deleted"
        )
        return run if record_run else None
