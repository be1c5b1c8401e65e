"""
Revision Planner - Revision Session Scheduler
Computes new study sessions for a week from an in-memory snapshot.

Two strategies share one walk over days x candidate slots x subjects:
  - Regenerate: purge the week's unprotected planned sessions, refill
  - Adjust: top up subjects still short of their target, never delete
Reinforce is Adjust restricted to a single subject with a ceiling.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, List, Dict, Tuple, Mapping

from models import (
    Subject, BlockingEvent, RevisionSession, Invite, UserPreferences,
    NewSession, PlanResult, PlanStatus, PlanningMode
)
from timeslots import (
    Slot, preferred_offsets, generate_slots, carve_interval, minutes_to_time
)
from availability import as_local, blocked_ranges, has_conflict, free_intervals
from ranking import (
    eligible_subjects, minutes_by_subject, remaining_minutes, pick_round_robin
)
from guard import protected_ids, purge_candidates
from errors import ValidationError, SubjectNotFoundError


REINFORCE_CEILING_MINUTES = 360  # 6 hours added per reinforcement run
REINFORCE_NOTE = "Added by subject reinforcement"


# ============================================
# SNAPSHOT & STATE
# ============================================

@dataclass(frozen=True)
class SchedulingSnapshot:
    """Everything one run reads. Fetched right before the run, never mutated."""
    subjects: Tuple[Subject, ...]
    events: Tuple[BlockingEvent, ...]
    sessions: Tuple[RevisionSession, ...]
    invites: Tuple[Invite, ...]
    preferences: UserPreferences
    week_start: date
    now: datetime

    @property
    def today(self) -> date:
        return as_local(self.now).date()

    @property
    def active_subjects(self) -> List[Subject]:
        return [s for s in self.subjects if s.is_active]

    def planning_days(self) -> List[date]:
        """Preferred days of the target week, today included, past days skipped."""
        days = [self.week_start + timedelta(days=offset) for offset in preferred_offsets(self.preferences)]
        return [day for day in days if day >= self.today]


@dataclass(frozen=True)
class SchedulingState:
    """Running totals threaded through the walk. `place` returns a new state."""
    day_minutes: Mapping[date, int] = field(default_factory=dict)
    subject_minutes: Mapping[str, int] = field(default_factory=dict)
    placed: Tuple[NewSession, ...] = ()

    @classmethod
    def from_sessions(cls, sessions: List[RevisionSession]) -> "SchedulingState":
        days: Dict[date, int] = {}
        for session in sessions:
            days[session.date] = days.get(session.date, 0) + session.duration_minutes
        return cls(day_minutes=days, subject_minutes=minutes_by_subject(sessions))

    def minutes_on(self, day: date) -> int:
        return self.day_minutes.get(day, 0)

    def minutes_for(self, subject_id: str) -> int:
        return self.subject_minutes.get(subject_id, 0)

    def added_for(self, subject_id: str) -> int:
        return sum(s.duration_minutes for s in self.placed if s.subject_id == subject_id)

    def place(self, session: NewSession) -> "SchedulingState":
        duration = session.duration_minutes
        days = dict(self.day_minutes)
        days[session.date] = days.get(session.date, 0) + duration
        subjects = dict(self.subject_minutes)
        subjects[session.subject_id] = subjects.get(session.subject_id, 0) + duration
        return SchedulingState(
            day_minutes=days,
            subject_minutes=subjects,
            placed=self.placed + (session,)
        )


# ============================================
# STRATEGIES
# ============================================

class AllocationStrategy(ABC):
    """
    Shared day/slot/subject walk.

    Subclasses decide what gets purged, where sessions may go on a given
    day, which subjects compete for a slot, and when the run is complete.
    The daily cap and the round-robin subject choice are enforced here.
    """

    mode: PlanningMode
    notes: Optional[str] = None

    def __init__(self, snapshot: SchedulingSnapshot):
        self.snapshot = snapshot
        self.preferences = snapshot.preferences
        self.duration = snapshot.preferences.session_duration_minutes

    def validate(self) -> Optional[PlanResult]:
        """Raise or return an early result before anything else happens."""
        return None

    def purge(self) -> List[RevisionSession]:
        return []

    @abstractmethod
    def compute_free_capacity(
        self, day: date, sessions: List[RevisionSession], state: SchedulingState
    ) -> List[Slot]:
        """Candidate (start, end) slots still free on `day`, in time order."""

    @abstractmethod
    def candidate_subjects(self, day: date, state: SchedulingState) -> List[Subject]:
        """Subjects that may take the next slot on `day`, in priority order."""

    def is_exhausted(self, state: SchedulingState) -> bool:
        return False

    def place_sessions(self) -> Tuple[List[RevisionSession], SchedulingState]:
        purged = self.purge()
        purged_ids = {s.id for s in purged}
        kept = [s for s in self.snapshot.sessions if s.id is None or s.id not in purged_ids]

        state = SchedulingState.from_sessions(kept)
        for day in self.snapshot.planning_days():
            if self.is_exhausted(state):
                break
            state = self._fill_day(day, kept, state)

        return purged, state

    def _fill_day(
        self, day: date, kept: List[RevisionSession], state: SchedulingState
    ) -> SchedulingState:
        daily_cap = self.preferences.max_minutes_per_day

        for start, end in self.compute_free_capacity(day, kept, state):
            if self.is_exhausted(state):
                break
            if state.minutes_on(day) + self.duration > daily_cap:
                break

            subject = pick_round_robin(self.candidate_subjects(day, state), len(state.placed))
            if subject is None:
                continue

            state = state.place(NewSession(
                subject_id=subject.id,
                date=day,
                start_time=minutes_to_time(start),
                end_time=minutes_to_time(end),
                notes=self.notes
            ))

        return state

    def _sessions_on(
        self, day: date, kept: List[RevisionSession], state: SchedulingState
    ) -> list:
        return [s for s in kept if s.date == day] + [s for s in state.placed if s.date == day]

    @abstractmethod
    def build_result(self, purged: List[RevisionSession], state: SchedulingState) -> PlanResult:
        """Turn the final state into the run outcome."""

    def run(self) -> PlanResult:
        early = self.validate()
        if early is not None:
            return early
        purged, state = self.place_sessions()
        return self.build_result(purged, state)


class RegenerateStrategy(AllocationStrategy):
    """Wipe the week's unprotected planned sessions and recompute them."""

    mode = PlanningMode.REGENERATE

    @property
    def sessions_count(self) -> int:
        weekly_minutes = int(self.preferences.weekly_revision_hours * 60)
        return weekly_minutes // self.duration

    def validate(self) -> Optional[PlanResult]:
        if not self.snapshot.active_subjects:
            raise ValidationError("Add at least one active subject before generating a plan")
        if self.sessions_count == 0:
            raise ValidationError(
                f"A weekly goal of {self.preferences.weekly_revision_hours:g} hours leaves no room "
                f"for a {self.duration} minute session"
            )
        return None

    def purge(self) -> List[RevisionSession]:
        protected = protected_ids(self.snapshot.sessions, self.snapshot.invites)
        return purge_candidates(self.snapshot.sessions, self.snapshot.week_start, protected)

    def compute_free_capacity(
        self, day: date, kept: List[RevisionSession], state: SchedulingState
    ) -> List[Slot]:
        blocked = blocked_ranges(
            day, self.snapshot.events, self._sessions_on(day, kept, state), self.snapshot.now
        )
        return [slot for slot in generate_slots(self.preferences) if not has_conflict(slot, blocked)]

    def candidate_subjects(self, day: date, state: SchedulingState) -> List[Subject]:
        return eligible_subjects(
            self.snapshot.active_subjects, day, state.subject_minutes, self.duration
        )

    def is_exhausted(self, state: SchedulingState) -> bool:
        return len(state.placed) >= self.sessions_count

    def build_result(self, purged: List[RevisionSession], state: SchedulingState) -> PlanResult:
        sessions = list(state.placed)
        if sessions:
            status = PlanStatus.SUCCESS
            message = f"Scheduled {len(sessions)} revision sessions for the week"
        else:
            status = PlanStatus.NO_FREE_SLOTS
            message = "No free slot left for revision this week"

        return PlanResult(
            status=status,
            mode=self.mode,
            week_start=self.snapshot.week_start,
            sessions=sessions,
            deleted_session_ids=[s.id for s in purged],
            minutes_added=sum(s.duration_minutes for s in sessions),
            message=message
        )


class AdjustStrategy(AllocationStrategy):
    """
    Add sessions into existing gaps for subjects short of their target.

    With `subject_id` set, only that subject is topped up and at most
    `ceiling_minutes` are added (reinforcement).
    """

    mode = PlanningMode.ADJUST

    def __init__(
        self,
        snapshot: SchedulingSnapshot,
        subject_id: Optional[str] = None,
        ceiling_minutes: Optional[int] = None
    ):
        super().__init__(snapshot)
        self.subject_id = subject_id
        self.ceiling_minutes = ceiling_minutes
        if subject_id is not None:
            self.mode = PlanningMode.REINFORCE
            self.notes = REINFORCE_NOTE

        self.remaining: Dict[str, int] = {}
        for subject in self._scope():
            remaining = remaining_minutes(subject, snapshot.sessions, snapshot.today)
            if remaining is None or remaining <= 0:
                continue
            if subject.exam_date is not None and subject.exam_date <= snapshot.today:
                continue
            self.remaining[subject.id] = remaining

        self.targets = [s for s in snapshot.active_subjects if s.id in self.remaining]

    def _scope(self) -> List[Subject]:
        subjects = self.snapshot.active_subjects
        if self.subject_id is None:
            return subjects
        return [s for s in subjects if s.id == self.subject_id]

    def validate(self) -> Optional[PlanResult]:
        if self.subject_id is not None and not self._scope():
            raise SubjectNotFoundError(self.subject_id)
        if not self.targets:
            return PlanResult(
                status=PlanStatus.NO_ELIGIBLE_SUBJECTS,
                mode=self.mode,
                week_start=self.snapshot.week_start,
                minutes_remaining=0,
                message="Every subject has already reached its target"
            )
        return None

    def _wants_more(self, subject: Subject, state: SchedulingState) -> bool:
        added = state.added_for(subject.id)
        if self.remaining[subject.id] - added <= 0:
            return False
        if self.ceiling_minutes is not None and added + self.duration > self.ceiling_minutes:
            return False
        return True

    def compute_free_capacity(
        self, day: date, kept: List[RevisionSession], state: SchedulingState
    ) -> List[Slot]:
        intervals = free_intervals(
            day, self.preferences, self.snapshot.events,
            self._sessions_on(day, kept, state), self.snapshot.now
        )
        return [slot for interval in intervals for slot in carve_interval(interval, self.duration)]

    def candidate_subjects(self, day: date, state: SchedulingState) -> List[Subject]:
        eligible = eligible_subjects(self.targets, day, state.subject_minutes, self.duration)
        return [s for s in eligible if self._wants_more(s, state)]

    def is_exhausted(self, state: SchedulingState) -> bool:
        return not any(self._wants_more(s, state) for s in self.targets)

    def _minutes_remaining(self, state: SchedulingState) -> int:
        if self.ceiling_minutes is not None:
            wanted = sum(min(r, self.ceiling_minutes) for r in self.remaining.values())
            return max(0, wanted - sum(s.duration_minutes for s in state.placed))
        return sum(
            max(0, remaining - state.added_for(subject_id))
            for subject_id, remaining in self.remaining.items()
        )

    def build_result(self, purged: List[RevisionSession], state: SchedulingState) -> PlanResult:
        sessions = list(state.placed)
        added = sum(s.duration_minutes for s in sessions)
        if sessions:
            status = PlanStatus.SUCCESS
            message = f"Added {len(sessions)} revision sessions ({added} mins)"
        else:
            status = PlanStatus.NO_FREE_SLOTS
            message = "Your week is full, no session could be added"

        return PlanResult(
            status=status,
            mode=self.mode,
            week_start=self.snapshot.week_start,
            sessions=sessions,
            minutes_added=added,
            minutes_remaining=self._minutes_remaining(state),
            message=message
        )


# ============================================
# ENTRY POINTS
# ============================================

def regenerate(snapshot: SchedulingSnapshot) -> PlanResult:
    """Recompute the week's auto-planned sessions from scratch."""
    return RegenerateStrategy(snapshot).run()


def adjust(snapshot: SchedulingSnapshot) -> PlanResult:
    """Top up the week for subjects still short of their target."""
    return AdjustStrategy(snapshot).run()


def reinforce(
    snapshot: SchedulingSnapshot,
    subject_id: str,
    ceiling_minutes: int = REINFORCE_CEILING_MINUTES
) -> PlanResult:
    """Top up a single subject, adding at most `ceiling_minutes` this run."""
    return AdjustStrategy(snapshot, subject_id=subject_id, ceiling_minutes=ceiling_minutes).run()
