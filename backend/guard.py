"""
Revision Planner - Invite-Preservation Guard
Sessions shared with collaborators are never purged by a regeneration.
"""

from datetime import date, timedelta
from typing import Iterable, List, Set

from models import Invite, RevisionSession, SessionStatus


def protected_ids(sessions: Iterable[RevisionSession], invites: Iterable[Invite]) -> Set[str]:
    """Ids of sessions with at least one invite row, accepted or not."""
    invited = {invite.session_id for invite in invites}
    return {s.id for s in sessions if s.id is not None and s.id in invited}


def purge_candidates(
    sessions: Iterable[RevisionSession],
    week_start: date,
    protected: Set[str]
) -> List[RevisionSession]:
    """Planned sessions of the week that a regeneration may delete."""
    week_end = week_start + timedelta(days=6)
    return [
        s for s in sessions
        if s.id is not None
        and s.status == SessionStatus.PLANNED
        and week_start <= s.date <= week_end
        and s.id not in protected
    ]
