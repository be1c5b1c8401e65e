"""
Revision Planner - Error Types
Raised by the scheduler and the plan committer; informational outcomes
(no eligible subject, no free slot) are PlanResult statuses instead.
"""

from typing import Optional


class PlannerError(Exception):
    """Base class for planning failures."""


class ValidationError(PlannerError):
    """Inputs cannot produce a plan. Raised before anything is mutated."""


class SubjectNotFoundError(PlannerError):
    """The subject targeted by a reinforcement run does not exist."""

    def __init__(self, subject_id: str):
        super().__init__(f"Subject {subject_id} not found")
        self.subject_id = subject_id


class PersistenceError(PlannerError):
    """The commit transaction failed and was rolled back."""

    def __init__(self, reason: str, cause: Optional[BaseException] = None):
        super().__init__(reason)
        self.reason = reason
        self.cause = cause
