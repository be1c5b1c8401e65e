"""
Revision Planner - Pydantic Models (v2 syntax)
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================
# ENUMS
# ============================================

class SubjectStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class SessionStatus(str, Enum):
    PLANNED = "planned"
    DONE = "done"
    SKIPPED = "skipped"


class PlanStatus(str, Enum):
    SUCCESS = "success"
    NO_ELIGIBLE_SUBJECTS = "no_eligible_subjects"
    NO_FREE_SLOTS = "no_free_slots"
    FAILURE = "failure"


class PlanningMode(str, Enum):
    REGENERATE = "regenerate"
    ADJUST = "adjust"
    REINFORCE = "reinforce"


# ============================================
# SUBJECT MODELS
# ============================================

class Subject(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    color: str = "#6366f1"
    exam_date: Optional[date] = None
    weight: float = 1.0
    target_minutes: Optional[int] = None
    status: SubjectStatus = SubjectStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == SubjectStatus.ACTIVE


# ============================================
# CALENDAR MODELS
# ============================================

class BlockingEvent(BaseModel):
    """A fixed commitment imported or created by the user."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    title: str = ""
    start_at: datetime
    end_at: datetime
    is_blocking: bool = True


class RevisionSession(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    subject_id: str
    date: date
    start_time: time
    end_time: time
    status: SessionStatus = SessionStatus.PLANNED
    notes: Optional[str] = None

    @property
    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return max(0, end - start)


class Invite(BaseModel):
    """Collaborative invitation attached to a revision session."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    session_id: str
    invited_by: Optional[str] = None
    accepted_by: Optional[str] = None
    confirmed: bool = False


# ============================================
# PREFERENCES
# ============================================

class UserPreferences(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    preferred_days_of_week: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    daily_start_time: time = time(8, 0)
    daily_end_time: time = time(22, 0)
    max_hours_per_day: float = Field(default=4, gt=0, le=24)
    session_duration_minutes: int = Field(default=60, ge=15, le=360)
    avoid_early_morning: bool = False
    avoid_late_evening: bool = False
    weekly_revision_hours: float = Field(default=10, ge=0, le=168)

    @field_validator("preferred_days_of_week")
    @classmethod
    def check_weekdays(cls, days: List[int]) -> List[int]:
        invalid = [d for d in days if not 0 <= d <= 7]
        if invalid:
            raise ValueError(f"Weekday numbers must be 1-7 (0 also means Sunday), got {invalid}")
        return days

    @property
    def max_minutes_per_day(self) -> int:
        return int(self.max_hours_per_day * 60)


# ============================================
# PLANNING OUTPUT
# ============================================

class NewSession(BaseModel):
    subject_id: str
    date: date
    start_time: time
    end_time: time
    status: SessionStatus = SessionStatus.PLANNED
    notes: Optional[str] = None

    @property
    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start


class PlanningRun(BaseModel):
    """Write-once audit record of one scheduler invocation."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    week_start_date: date
    mode: PlanningMode
    config: Dict[str, Any] = Field(default_factory=dict)
    sessions_generated: int = 0
    created_at: Optional[datetime] = None


class PlanResult(BaseModel):
    status: PlanStatus
    mode: PlanningMode
    week_start: date
    sessions: List[NewSession] = Field(default_factory=list)
    deleted_session_ids: List[str] = Field(default_factory=list)
    minutes_added: int = 0
    minutes_remaining: Optional[int] = None
    message: str = ""

    @property
    def count(self) -> int:
        return len(self.sessions)


# ============================================
# API RESPONSE MODELS
# ============================================

class HealthStatus(BaseModel):
    status: str = "healthy"
    version: str = "1.0.0"
    database: str = "connected"
