import unittest
from datetime import date, datetime, time, timedelta
from itertools import combinations

from errors import ValidationError, SubjectNotFoundError
from models import (
    Subject, SubjectStatus, BlockingEvent, RevisionSession, SessionStatus, Invite,
    UserPreferences, NewSession, PlanStatus, PlanningMode,
)
from scheduler import (
    SchedulingSnapshot, SchedulingState, AllocationStrategy, AdjustStrategy, RegenerateStrategy,
    regenerate, adjust, reinforce, REINFORCE_NOTE,
)
from timeslots import time_to_minutes, touches_lunch, effective_window


WEEK = date(2030, 1, 7)  # Monday
BEFORE_WEEK = datetime(2030, 1, 1, 9, 0)


def make_snapshot(subjects, sessions=(), events=(), invites=(), now=BEFORE_WEEK, **prefs):
    preferences = dict(
        preferred_days_of_week=[1, 2, 3, 4, 5],
        daily_start_time=time(8, 0),
        daily_end_time=time(22, 0),
        max_hours_per_day=4,
        session_duration_minutes=90,
        weekly_revision_hours=10,
    )
    preferences.update(prefs)
    return SchedulingSnapshot(
        subjects=tuple(subjects),
        events=tuple(events),
        sessions=tuple(sessions),
        invites=tuple(invites),
        preferences=UserPreferences(**preferences),
        week_start=WEEK,
        now=now,
    )


def apply_result(snapshot, result):
    """Snapshot as the database would hold it after committing `result`."""
    deleted = set(result.deleted_session_ids)
    kept = [s for s in snapshot.sessions if s.id not in deleted]
    created = [
        RevisionSession(id=f"new-{i}", **new.model_dump())
        for i, new in enumerate(result.sessions)
    ]
    return SchedulingSnapshot(
        subjects=snapshot.subjects,
        events=snapshot.events,
        sessions=tuple(kept + created),
        invites=snapshot.invites,
        preferences=snapshot.preferences,
        week_start=snapshot.week_start,
        now=snapshot.now,
    )


def signature(sessions):
    return sorted((s.subject_id, s.date, s.start_time, s.end_time) for s in sessions)


class InvariantsMixin:
    def assertPlanInvariants(self, snapshot, result) -> None:
        prefs = snapshot.preferences
        deleted = set(result.deleted_session_ids)
        final = [s for s in snapshot.sessions if s.id not in deleted] + list(result.sessions)
        subjects = {s.id: s for s in snapshot.subjects}
        window_start, window_end = effective_window(prefs)

        for a, b in combinations(final, 2):
            if a.date != b.date:
                continue
            overlap = (
                time_to_minutes(a.start_time) < time_to_minutes(b.end_time)
                and time_to_minutes(b.start_time) < time_to_minutes(a.end_time)
            )
            self.assertFalse(overlap, (a, b))

        per_day = {}
        per_subject = {}
        for s in final:
            per_day[s.date] = per_day.get(s.date, 0) + s.duration_minutes
            per_subject[s.subject_id] = per_subject.get(s.subject_id, 0) + s.duration_minutes
        for day, minutes in per_day.items():
            self.assertLessEqual(minutes, prefs.max_minutes_per_day, day)
        for subject_id, minutes in per_subject.items():
            target = subjects[subject_id].target_minutes
            if target is not None:
                self.assertLessEqual(minutes, target, subject_id)

        for new in result.sessions:
            start = time_to_minutes(new.start_time)
            end = time_to_minutes(new.end_time)
            self.assertEqual(new.status, SessionStatus.PLANNED)
            self.assertGreaterEqual(start, window_start)
            self.assertLessEqual(end, window_end)
            self.assertFalse(touches_lunch(start, end), new)
            exam = subjects[new.subject_id].exam_date
            if exam is not None:
                self.assertLess(new.date, exam)
            if new.date == snapshot.now.date():
                self.assertGreaterEqual(start, time_to_minutes(snapshot.now.time()))


class AllocationStrategyTestCase(unittest.TestCase):
    def test_base_class_cannot_be_instantiated(self) -> None:
        with self.assertRaises(TypeError):
            AllocationStrategy(make_snapshot([]))

    def test_partial_strategy_is_rejected(self) -> None:
        class NoResult(AllocationStrategy):
            def compute_free_capacity(self, day, sessions, state):
                return []

            def candidate_subjects(self, day, state):
                return []

        with self.assertRaises(TypeError):
            NoResult(make_snapshot([]))


class SchedulingStateTestCase(unittest.TestCase):
    def test_place_returns_a_new_state(self) -> None:
        sessions = [RevisionSession(id="1", subject_id="a", date=WEEK, start_time=time(8), end_time=time(9))]
        state = SchedulingState.from_sessions(sessions)
        new = NewSession(subject_id="a", date=WEEK, start_time=time(10), end_time=time(11, 30))

        placed = state.place(new)

        self.assertEqual(state.minutes_on(WEEK), 60)
        self.assertEqual(placed.minutes_on(WEEK), 150)
        self.assertEqual(placed.minutes_for("a"), 150)
        self.assertEqual(placed.added_for("a"), 90)
        self.assertEqual(state.placed, ())


class RegenerateTestCase(InvariantsMixin, unittest.TestCase):
    def setUp(self) -> None:
        self.subject = Subject(id="math", name="Maths", target_minutes=600)

    def test_single_subject_week(self) -> None:
        snapshot = make_snapshot([self.subject])

        result = regenerate(snapshot)

        self.assertEqual(result.status, PlanStatus.SUCCESS)
        self.assertEqual(result.mode, PlanningMode.REGENERATE)
        self.assertEqual(result.count, 6)
        self.assertTrue(all(s.duration_minutes == 90 for s in result.sessions))
        self.assertEqual(
            [(s.date, s.start_time) for s in result.sessions],
            [
                (date(2030, 1, 7), time(8, 0)), (date(2030, 1, 7), time(10, 0)),
                (date(2030, 1, 8), time(8, 0)), (date(2030, 1, 8), time(10, 0)),
                (date(2030, 1, 9), time(8, 0)), (date(2030, 1, 9), time(10, 0)),
            ],
        )
        self.assertPlanInvariants(snapshot, result)

    def test_blocking_event_moves_the_session(self) -> None:
        lecture = BlockingEvent(
            title="Physics lecture",
            start_at=datetime(2030, 1, 7, 8, 0),
            end_at=datetime(2030, 1, 7, 9, 30),
        )
        snapshot = make_snapshot([self.subject], events=[lecture])

        result = regenerate(snapshot)

        monday = [s.start_time for s in result.sessions if s.date == WEEK]
        self.assertEqual(monday, [time(10, 0), time(14, 0)])
        self.assertEqual(result.count, 6)
        self.assertPlanInvariants(snapshot, result)

    def test_non_blocking_event_is_ignored(self) -> None:
        info = BlockingEvent(
            title="Birthday", start_at=datetime(2030, 1, 7, 8, 0),
            end_at=datetime(2030, 1, 7, 9, 30), is_blocking=False,
        )
        result = regenerate(make_snapshot([self.subject], events=[info]))

        self.assertEqual(result.sessions[0].start_time, time(8, 0))

    def test_invited_session_is_never_purged(self) -> None:
        shared = RevisionSession(
            id="shared", subject_id="math", date=date(2030, 1, 8),
            start_time=time(10, 0), end_time=time(11, 30),
        )
        stale = RevisionSession(
            id="stale", subject_id="math", date=date(2030, 1, 9),
            start_time=time(16, 0), end_time=time(17, 30),
        )
        invite = Invite(session_id="shared", accepted_by="friend", confirmed=True)
        snapshot = make_snapshot([self.subject], sessions=[shared, stale], invites=[invite])

        result = regenerate(snapshot)

        self.assertEqual(result.deleted_session_ids, ["stale"])
        tuesday = [s for s in result.sessions if s.date == date(2030, 1, 8)]
        self.assertNotIn(time(10, 0), [s.start_time for s in tuesday])
        self.assertPlanInvariants(snapshot, result)

    def test_done_and_other_week_sessions_are_kept_and_counted(self) -> None:
        history = [
            RevisionSession(id=f"h{i}", subject_id="math", date=date(2029, 12, 10 + i),
                            start_time=time(8), end_time=time(9, 30), status=SessionStatus.DONE)
            for i in range(4)
        ]
        snapshot = make_snapshot([self.subject], sessions=history)

        result = regenerate(snapshot)

        self.assertEqual(result.deleted_session_ids, [])
        self.assertEqual(result.count, 2)
        self.assertPlanInvariants(snapshot, result)

    def test_no_active_subject_fails_before_purging(self) -> None:
        archived = Subject(id="old", name="Latin", status=SubjectStatus.ARCHIVED)
        planned = RevisionSession(id="p", subject_id="old", date=WEEK, start_time=time(8), end_time=time(9))

        with self.assertRaises(ValidationError):
            regenerate(make_snapshot([archived], sessions=[planned]))
        with self.assertRaises(ValidationError):
            regenerate(make_snapshot([]))

    def test_round_robin_spreads_sessions(self) -> None:
        heavy = Subject(id="heavy", name="Maths", weight=5)
        light = Subject(id="light", name="Art", weight=1)

        result = regenerate(make_snapshot([light, heavy]))

        self.assertEqual(
            [s.subject_id for s in result.sessions],
            ["heavy", "light", "heavy", "light", "heavy", "light"],
        )

    def test_no_session_on_or_after_exam(self) -> None:
        subject = Subject(id="math", name="Maths", exam_date=date(2030, 1, 9))
        snapshot = make_snapshot([subject])

        result = regenerate(snapshot)

        self.assertEqual(result.count, 4)
        self.assertTrue(all(s.date < date(2030, 1, 9) for s in result.sessions))
        self.assertPlanInvariants(snapshot, result)

    def test_today_only_uses_remaining_time(self) -> None:
        now = datetime(2030, 1, 7, 11, 0)
        snapshot = make_snapshot([self.subject], now=now)

        result = regenerate(snapshot)

        monday = [s.start_time for s in result.sessions if s.date == WEEK]
        self.assertEqual(monday, [time(14, 0), time(16, 0)])
        self.assertPlanInvariants(snapshot, result)

    def test_past_days_are_skipped(self) -> None:
        snapshot = make_snapshot([self.subject], now=datetime(2030, 1, 9, 7, 0))

        result = regenerate(snapshot)

        self.assertTrue(all(s.date >= date(2030, 1, 9) for s in result.sessions))

    def test_zero_capacity_is_informational(self) -> None:
        snapshot = make_snapshot([self.subject], preferred_days_of_week=[1], now=datetime(2030, 1, 7, 21, 0))

        result = regenerate(snapshot)

        self.assertEqual(result.status, PlanStatus.NO_FREE_SLOTS)
        self.assertEqual(result.count, 0)

    def test_regenerating_twice_is_idempotent(self) -> None:
        other = Subject(id="bio", name="Biology", exam_date=date(2030, 1, 20), target_minutes=300)
        manual = RevisionSession(
            id="manual", subject_id="bio", date=date(2030, 1, 8),
            start_time=time(18, 0), end_time=time(19, 0), status=SessionStatus.DONE,
        )
        snapshot = make_snapshot([self.subject, other], sessions=[manual])

        first = regenerate(snapshot)
        after_first = apply_result(snapshot, first)
        second = regenerate(after_first)

        self.assertEqual(signature(first.sessions), signature(second.sessions))
        self.assertEqual(len(second.deleted_session_ids), first.count)
        self.assertPlanInvariants(after_first, second)

    def test_session_count_follows_weekly_goal(self) -> None:
        strategy = RegenerateStrategy(make_snapshot([self.subject], weekly_revision_hours=5))
        self.assertEqual(strategy.sessions_count, 3)

    def test_weekly_goal_too_small_keeps_the_week(self) -> None:
        existing = RevisionSession(id="x", subject_id="math", date=WEEK,
                                   start_time=time(8), end_time=time(9, 30))
        snapshot = make_snapshot([self.subject], sessions=[existing], weekly_revision_hours=1)

        with self.assertRaises(ValidationError):
            regenerate(snapshot)


class AdjustTestCase(InvariantsMixin, unittest.TestCase):
    def test_exam_proximity_orders_the_queue(self) -> None:
        now = datetime(2030, 1, 7, 7, 0)
        a = Subject(id="a", name="Zoology", exam_date=date(2030, 1, 10), weight=5, target_minutes=600)
        b = Subject(id="b", name="Botany", exam_date=date(2030, 1, 27), weight=1, target_minutes=600)
        snapshot = make_snapshot([b, a], now=now)
        strategy = AdjustStrategy(snapshot)
        state = SchedulingState()

        for offset in range(3):
            queue = strategy.candidate_subjects(WEEK + timedelta(days=offset), state)
            self.assertEqual([s.id for s in queue], ["a", "b"])
        self.assertEqual([s.id for s in strategy.candidate_subjects(date(2030, 1, 10), state)], ["b"])

        result = adjust(snapshot)
        self.assertEqual(result.sessions[0].subject_id, "a")
        self.assertTrue(all(
            s.date < date(2030, 1, 10) for s in result.sessions if s.subject_id == "a"
        ))
        self.assertPlanInvariants(snapshot, result)

    def test_nothing_left_to_do(self) -> None:
        subject = Subject(id="math", name="Maths", target_minutes=120)
        done = [
            RevisionSession(id="d1", subject_id="math", date=date(2029, 12, 3),
                            start_time=time(8), end_time=time(10), status=SessionStatus.DONE),
        ]
        no_target = Subject(id="free", name="Reading")

        result = adjust(make_snapshot([subject, no_target], sessions=done))

        self.assertEqual(result.status, PlanStatus.NO_ELIGIBLE_SUBJECTS)
        self.assertEqual(result.sessions, [])
        self.assertEqual(result.deleted_session_ids, [])

    def test_planned_sessions_count_towards_the_target(self) -> None:
        subject = Subject(id="math", name="Maths", target_minutes=180)
        planned = [
            RevisionSession(id="p1", subject_id="math", date=WEEK,
                            start_time=time(8), end_time=time(9, 30)),
            RevisionSession(id="p2", subject_id="math", date=WEEK + timedelta(days=1),
                            start_time=time(8), end_time=time(9, 30)),
        ]
        snapshot = make_snapshot([subject], sessions=planned)

        result = adjust(snapshot)
        reinforced = reinforce(snapshot, "math")

        self.assertEqual(result.status, PlanStatus.NO_ELIGIBLE_SUBJECTS)
        self.assertEqual(result.minutes_remaining, 0)
        self.assertEqual(reinforced.status, PlanStatus.NO_ELIGIBLE_SUBJECTS)
        self.assertEqual(reinforced.sessions, [])

    def test_partly_planned_subject_gets_the_difference(self) -> None:
        subject = Subject(id="math", name="Maths", target_minutes=270)
        planned = RevisionSession(id="p1", subject_id="math", date=WEEK,
                                  start_time=time(8), end_time=time(9, 30))
        snapshot = make_snapshot([subject], sessions=[planned])

        result = adjust(snapshot)

        self.assertEqual(result.status, PlanStatus.SUCCESS)
        self.assertEqual(result.minutes_added, 180)
        self.assertEqual(result.minutes_remaining, 0)
        self.assertPlanInvariants(snapshot, result)

    def test_tops_up_until_target_then_stops(self) -> None:
        subject = Subject(id="math", name="Maths", target_minutes=180)
        snapshot = make_snapshot([subject])

        result = adjust(snapshot)

        self.assertEqual(result.status, PlanStatus.SUCCESS)
        self.assertEqual(result.count, 2)
        self.assertEqual(result.minutes_added, 180)
        self.assertEqual(result.minutes_remaining, 0)
        self.assertPlanInvariants(snapshot, result)

    def test_never_touches_existing_sessions(self) -> None:
        subject = Subject(id="math", name="Maths", target_minutes=900)
        existing = RevisionSession(
            id="e", subject_id="math", date=WEEK, start_time=time(9, 0), end_time=time(10, 0),
        )
        snapshot = make_snapshot([subject], sessions=[existing])

        result = adjust(snapshot)

        self.assertEqual(result.deleted_session_ids, [])
        monday = [s.start_time for s in result.sessions if s.date == WEEK]
        self.assertEqual(monday, [time(10, 0), time(14, 0)])
        self.assertPlanInvariants(snapshot, result)

    def test_subject_reaching_target_drops_out(self) -> None:
        small = Subject(id="a", name="Algebra", target_minutes=90)
        large = Subject(id="b", name="Biology", target_minutes=270)
        snapshot = make_snapshot([small, large])

        result = adjust(snapshot)

        ids = [s.subject_id for s in result.sessions]
        self.assertEqual(ids.count("a"), 1)
        self.assertEqual(ids.count("b"), 3)
        self.assertPlanInvariants(snapshot, result)

    def test_daily_cap(self) -> None:
        subject = Subject(id="math", name="Maths", target_minutes=6000)
        snapshot = make_snapshot([subject], max_hours_per_day=1.5)

        result = adjust(snapshot)

        self.assertEqual(result.count, 5)
        self.assertEqual(len({s.date for s in result.sessions}), 5)
        self.assertPlanInvariants(snapshot, result)

    def test_subjects_without_target_are_left_out(self) -> None:
        target = Subject(id="math", name="Maths", target_minutes=90)
        free = Subject(id="read", name="Reading")

        result = adjust(make_snapshot([target, free]))

        self.assertEqual([s.subject_id for s in result.sessions], ["math"])


class ReinforceTestCase(InvariantsMixin, unittest.TestCase):
    def test_caps_minutes_added_in_one_run(self) -> None:
        subject = Subject(id="math", name="Maths", target_minutes=1200)
        other = Subject(id="bio", name="Biology", target_minutes=1200)
        snapshot = make_snapshot([subject, other])

        result = reinforce(snapshot, "math")

        self.assertEqual(result.mode, PlanningMode.REINFORCE)
        self.assertEqual(result.minutes_added, 360)
        self.assertEqual(result.count, 4)
        self.assertEqual(result.minutes_remaining, 0)
        self.assertTrue(all(s.subject_id == "math" for s in result.sessions))
        self.assertTrue(all(s.notes == REINFORCE_NOTE for s in result.sessions))
        self.assertPlanInvariants(snapshot, result)

    def test_small_remainder_is_respected(self) -> None:
        subject = Subject(id="math", name="Maths", target_minutes=100)

        result = reinforce(make_snapshot([subject]), "math")

        self.assertEqual(result.count, 1)

    def test_unknown_subject(self) -> None:
        with self.assertRaises(SubjectNotFoundError):
            reinforce(make_snapshot([Subject(id="math", name="Maths", target_minutes=60)]), "nope")


if __name__ == "__main__":
    unittest.main()
