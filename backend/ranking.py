"""
Revision Planner - Subject Eligibility & Priority
"""

from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from models import Subject, RevisionSession, SessionStatus

T = TypeVar("T")


def priority_key(subject: Subject) -> Tuple:
    """Nearer exam first (no exam last), then higher weight, then name."""
    return (
        subject.exam_date is None,
        subject.exam_date or date.max,
        -subject.weight,
        subject.name,
    )


def rank_subjects(subjects: Iterable[Subject]) -> List[Subject]:
    return sorted(subjects, key=priority_key)


def is_eligible(
    subject: Subject,
    on_date: date,
    accumulated_minutes: int,
    duration: int
) -> bool:
    """
    Can one more session of `duration` minutes be placed on `on_date`?

    The exam must be absent or strictly later, and the session must not
    push the subject's all-time total past its target.
    """
    if not subject.is_active:
        return False
    if subject.exam_date is not None and subject.exam_date <= on_date:
        return False
    if subject.target_minutes is None:
        return True
    return accumulated_minutes + duration <= subject.target_minutes


def eligible_subjects(
    subjects: Iterable[Subject],
    on_date: date,
    minutes_by_subject: Dict[str, int],
    duration: int
) -> List[Subject]:
    """Eligible subjects for a date, in priority order."""
    return [
        subject for subject in rank_subjects(subjects)
        if is_eligible(subject, on_date, minutes_by_subject.get(subject.id, 0), duration)
    ]


def minutes_by_subject(sessions: Iterable[RevisionSession]) -> Dict[str, int]:
    """All-time minutes per subject, whatever the session status."""
    totals: Dict[str, int] = {}
    for session in sessions:
        totals[session.subject_id] = totals.get(session.subject_id, 0) + session.duration_minutes
    return totals


def remaining_minutes(
    subject: Subject,
    sessions: Iterable[RevisionSession],
    today: date
) -> Optional[int]:
    """
    Minutes still missing for a subject, never negative; None without a target.

    Studied sessions count, and so do planned sessions from `today` on.
    Skipped sessions and planned ones left in the past do not.
    """
    if subject.target_minutes is None:
        return None
    covered = 0
    for s in sessions:
        if s.subject_id != subject.id:
            continue
        if s.status == SessionStatus.DONE or (s.status == SessionStatus.PLANNED and s.date >= today):
            covered += s.duration_minutes
    return max(0, subject.target_minutes - covered)


def pick_round_robin(queue: Sequence[T], index: int) -> Optional[T]:
    if not queue:
        return None
    return queue[index % len(queue)]
