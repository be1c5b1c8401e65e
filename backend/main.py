"""
Revision Planner - FastAPI Backend
Exposes weekly plan regeneration, adjustment and subject reinforcement
"""

from datetime import date
from contextlib import asynccontextmanager
from typing import Optional, List

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

import database
from database import db, ensure_planner_tables
from config import get_api_config, get_database_config
from errors import ValidationError, PersistenceError, SubjectNotFoundError
from logger import logger
from models import HealthStatus, PlanResult, PlanningRun
from planning import regenerate_week, adjust_week, reinforce_subject


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await db.connect()
    if get_database_config().create_schema:
        await ensure_planner_tables()
    logger.info("Server started")
    yield
    logger.info("Server shutting down")
    await db.disconnect()


api_config = get_api_config()

app = FastAPI(
    title=api_config.title,
    description="Weekly revision planner for exam preparation",
    version=api_config.version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# HEALTH & STATUS
# ============================================

@app.get("/health", response_model=HealthStatus)
@app.get("/api/health", response_model=HealthStatus)
async def health_check():
    """Check API and database health."""
    try:
        db_status = "connected" if await database.ping() else "disconnected"
    except Exception as e:
        logger.error(f"Health check query failed: {e}")
        db_status = "error"

    return HealthStatus(
        status="healthy" if db_status == "connected" else "degraded",
        version=api_config.version,
        database=db_status
    )


# ============================================
# PLANNING
# ============================================

@app.post("/api/users/{user_id}/planning/regenerate", response_model=PlanResult)
async def regenerate_plan(user_id: str, week_start: Optional[date] = None):
    """Wipe and recompute the week's unprotected planned sessions."""
    try:
        return await regenerate_week(user_id, week_start)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.reason)


@app.post("/api/users/{user_id}/planning/adjust", response_model=PlanResult)
async def adjust_plan(user_id: str, week_start: Optional[date] = None):
    """Add sessions into free gaps for subjects short of their target."""
    try:
        return await adjust_week(user_id, week_start)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.reason)


@app.post("/api/users/{user_id}/subjects/{subject_id}/reinforce", response_model=PlanResult)
async def reinforce_plan(user_id: str, subject_id: str):
    """Top up one subject this week (at most 6 hours per run)."""
    try:
        return await reinforce_subject(user_id, subject_id)
    except SubjectNotFoundError:
        raise HTTPException(status_code=404, detail="Subject not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.reason)


@app.get("/api/users/{user_id}/planning/runs", response_model=List[PlanningRun])
async def list_planning_runs(user_id: str, limit: int = Query(default=20, ge=1, le=100)):
    """Most recent planning runs, newest first."""
    return await database.get_planning_runs(user_id, limit)


# ============================================
# RUN SERVER
# ============================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
