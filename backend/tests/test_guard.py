import unittest
from datetime import date, time

from guard import protected_ids, purge_candidates
from models import Invite, RevisionSession, SessionStatus


WEEK = date(2030, 1, 7)


def session(session_id: str, day: date, status: SessionStatus = SessionStatus.PLANNED) -> RevisionSession:
    return RevisionSession(
        id=session_id, subject_id="math", date=day,
        start_time=time(10), end_time=time(11, 30), status=status,
    )


class ProtectedIdsTestCase(unittest.TestCase):
    def test_any_invite_protects_its_session(self) -> None:
        sessions = [session("pending", WEEK), session("accepted", WEEK), session("alone", WEEK)]
        invites = [
            Invite(session_id="pending"),
            Invite(session_id="accepted", accepted_by="friend", confirmed=True),
        ]

        self.assertEqual(protected_ids(sessions, invites), {"pending", "accepted"})

    def test_invites_for_unknown_sessions_are_ignored(self) -> None:
        self.assertEqual(protected_ids([session("a", WEEK)], [Invite(session_id="zzz")]), set())


class PurgeCandidatesTestCase(unittest.TestCase):
    def test_only_unprotected_planned_sessions_of_the_week(self) -> None:
        sessions = [
            session("monday", WEEK),
            session("sunday", date(2030, 1, 13)),
            session("shared", date(2030, 1, 8)),
            session("done", date(2030, 1, 9), SessionStatus.DONE),
            session("skipped", date(2030, 1, 9), SessionStatus.SKIPPED),
            session("last-week", date(2030, 1, 6)),
            session("next-week", date(2030, 1, 14)),
        ]

        candidates = purge_candidates(sessions, WEEK, {"shared"})

        self.assertEqual([s.id for s in candidates], ["monday", "sunday"])


if __name__ == "__main__":
    unittest.main()
