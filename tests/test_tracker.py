from datetime import datetime, timedelta, timezone

import pytest

from workclock.errors import AlreadyClockedIn, BreakAlreadyOpen, NoOpenBreak, NotClockedIn
from workclock.events import EventKind, Severity
from workclock.models import BreakKind, SessionStatus


def at(hour: int, minute: int = 0, second: int = 0, day: int = 2) -> datetime:
    return datetime(2026, 2, day, hour, minute, second, tzinfo=timezone.utc)


class RecordingListener:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def session_opened(self, user_id: str) -> None:
        self.calls.append(("opened", user_id))

    def session_closed(self, user_id: str) -> None:
        self.calls.append(("closed", user_id))


def test_full_day_with_lunch_totals_eight_hours(tracker, clock) -> None:
    clock.set(at(9))
    assert tracker.clock_in("100").ok is True

    clock.set(at(12, 30))
    assert tracker.start_break("100", BreakKind.LUNCH).ok is True
    assert tracker.session_for("100").status is SessionStatus.ON_LUNCH

    clock.set(at(13))
    assert tracker.end_break("100").ok is True
    assert tracker.session_for("100").status is SessionStatus.CLOCKED_IN

    clock.set(at(17, 30))
    result = tracker.clock_out("100")

    assert result.ok is True
    assert result.session.status is SessionStatus.CLOCKED_OUT
    assert result.session.total_hours == pytest.approx(8.0)
    assert tracker.hours_worked("100", at(20)) == pytest.approx(8.0)


def test_clock_in_twice_is_rejected_without_mutation(tracker, clock, toasts) -> None:
    tracker.clock_in("100")
    before = tracker.session_for("100")

    clock.advance(minutes=5)
    result = tracker.clock_in("100")

    assert result.ok is False
    assert isinstance(result.error, AlreadyClockedIn)
    assert tracker.session_for("100") == before
    rejected = toasts.history[-1]
    assert rejected.kind is EventKind.COMMAND_REJECTED
    assert rejected.severity is Severity.ERROR
    assert rejected.data["code"] == "already_clocked_in"


def test_start_break_while_on_break_is_rejected(tracker, clock) -> None:
    tracker.clock_in("100")
    clock.advance(hours=1)
    tracker.start_break("100", "short")

    clock.advance(minutes=2)
    result = tracker.start_break("100", BreakKind.LUNCH)

    assert result.ok is False
    assert isinstance(result.error, BreakAlreadyOpen)
    assert len(tracker.session_for("100").breaks) == 1
    assert tracker.session_for("100").status is SessionStatus.ON_BREAK


def test_end_break_without_open_break_is_rejected(tracker, clock) -> None:
    result = tracker.end_break("100")
    assert isinstance(result.error, NoOpenBreak)

    tracker.clock_in("100")
    before = tracker.session_for("100")
    clock.advance(minutes=30)
    result = tracker.end_break("100")

    assert result.ok is False
    assert isinstance(result.error, NoOpenBreak)
    assert tracker.session_for("100") == before


def test_break_and_clock_out_require_open_session(tracker) -> None:
    assert isinstance(tracker.clock_out("100").error, NotClockedIn)
    assert isinstance(tracker.start_break("100", "lunch").error, NotClockedIn)


def test_clock_out_closes_open_break(tracker, clock) -> None:
    clock.set(at(9))
    tracker.clock_in("100")
    clock.set(at(12))
    tracker.start_break("100", "lunch")
    clock.set(at(12, 30))

    session = tracker.clock_out("100").session

    assert session.breaks[0].end == at(12, 30)
    assert session.open_break is None
    assert session.total_hours == pytest.approx(3.0)


def test_hours_worked_is_monotonic_and_matches_total(tracker, clock) -> None:
    clock.set(at(9))
    tracker.clock_in("100")
    samples = []

    plan = {
        at(10): lambda: tracker.start_break("100", "short"),
        at(10, 15): lambda: tracker.end_break("100"),
        at(12): lambda: tracker.start_break("100", "lunch"),
        at(12, 45): lambda: tracker.end_break("100"),
    }
    moment = at(9)
    while moment < at(15):
        clock.set(moment)
        if moment in plan:
            plan[moment]()
        samples.append(tracker.hours_worked("100", moment))
        moment += timedelta(minutes=5)

    clock.set(at(15))
    before_close = tracker.hours_worked("100", at(15))
    total = tracker.clock_out("100").session.total_hours

    assert samples == sorted(samples)
    assert before_close == pytest.approx(total)
    assert tracker.hours_worked("100", at(23)) == total
    assert total == pytest.approx(5.0)


def test_hours_worked_stays_flat_during_open_break(tracker, clock) -> None:
    clock.set(at(9))
    tracker.clock_in("100")
    clock.set(at(11))
    tracker.start_break("100", "lunch")

    assert tracker.hours_worked("100", at(11)) == pytest.approx(2.0)
    assert tracker.hours_worked("100", at(11, 40)) == pytest.approx(2.0)


def test_hours_worked_is_zero_without_session(tracker) -> None:
    assert tracker.hours_worked("nobody", at(12)) == 0.0


def test_events_follow_mutation_order(tracker, clock, toasts) -> None:
    tracker.clock_in("100")
    clock.advance(hours=1)
    tracker.start_break("100", "short")
    clock.advance(minutes=10)
    tracker.end_break("100")
    clock.advance(hours=1)
    tracker.clock_out("100")

    kinds = [item.kind for item in toasts.for_user("100")]
    assert kinds == [
        EventKind.CLOCKED_IN,
        EventKind.BREAK_STARTED,
        EventKind.BREAK_ENDED,
        EventKind.CLOCKED_OUT,
    ]
    assert toasts.history[2].data["break_seconds"] == pytest.approx(600)
    assert toasts.history[3].data["worked_seconds"] == pytest.approx(7200)


def test_session_round_trips_through_store(tracker, make_tracker, clock) -> None:
    clock.set(at(9))
    tracker.clock_in("100")
    clock.set(at(10, 0, 0))
    tracker.start_break("100", "short")
    clock.set(at(10, 7, 30))
    tracker.end_break("100")
    clock.set(at(12, 1, 15))
    tracker.start_break("100", "lunch")
    original = tracker.session_for("100")

    reloaded = make_tracker().resume("100")

    assert reloaded == original
    assert reloaded.status is SessionStatus.ON_LUNCH
    assert reloaded.breaks == original.breaks


def test_write_failure_keeps_in_memory_state(tracker, db, toasts) -> None:
    db.close()

    result = tracker.clock_in("100")

    assert result.ok is True
    assert tracker.session_for("100").is_open
    assert EventKind.PERSISTENCE_WARNING in [item.kind for item in toasts.history]
    assert toasts.history[-1].kind is EventKind.CLOCKED_IN


def test_stale_open_session_is_closed_on_resume(tracker, make_tracker, clock, toasts) -> None:
    clock.set(at(9))
    tracker.clock_in("100")

    clock.set(at(12, day=3))
    session = make_tracker(stale_session_hours=24).resume("100")

    assert session.status is SessionStatus.CLOCKED_OUT
    assert session.auto_closed is True
    assert session.clock_out_at == at(9, day=3)
    assert session.total_hours == pytest.approx(24.0)
    assert toasts.history[-1].kind is EventKind.SESSION_AUTO_CLOSED


def test_resume_notifies_listeners_for_open_sessions(tracker, make_tracker) -> None:
    tracker.clock_in("100")
    tracker.clock_in("200")
    tracker.clock_out("200")

    fresh = make_tracker()
    listener = RecordingListener()
    fresh.add_listener(listener)

    assert fresh.resume_all() == ["100"]
    assert listener.calls == [("opened", "100")]


def test_listener_sees_open_and_close(tracker, clock) -> None:
    listener = RecordingListener()
    tracker.add_listener(listener)

    tracker.clock_in("100")
    clock.advance(hours=1)
    tracker.clock_out("100")

    assert listener.calls == [("opened", "100"), ("closed", "100")]


def test_clock_in_again_after_clock_out_starts_new_session(tracker, clock) -> None:
    tracker.clock_in("100")
    clock.advance(hours=2)
    first = tracker.clock_out("100").session

    clock.advance(hours=1)
    second = tracker.clock_in("100").session

    assert second.clock_in_at > first.clock_out_at
    assert second.is_open
    assert tracker.hours_worked("100", clock.advance(hours=1)) == pytest.approx(1.0)


def test_eye_care_interval_rejects_non_positive_values(tracker, make_tracker) -> None:
    for value in (0, -5, "abc", None, True, float("nan")):
        assert tracker.set_eye_care_interval("100", value) is False
    assert tracker.preferences_for("100").eye_care_interval_minutes == 20

    assert tracker.set_eye_care_interval("100", 45) is True
    assert make_tracker().preferences_for("100").eye_care_interval_minutes == 45


def test_enabling_eye_care_requests_permission_once(tracker, gateway) -> None:
    tracker.toggle_eye_care("100", False)
    assert gateway.prompt_count == 0

    tracker.toggle_eye_care("100", True)
    tracker.toggle_eye_care("100", True)

    assert gateway.prompt_count == 1
    assert gateway.permission_granted("100") is True


def test_week_hours_sums_closed_and_open_sessions(tracker, clock) -> None:
    clock.set(at(9))
    tracker.clock_in("100")
    clock.set(at(17))
    tracker.clock_out("100")

    clock.set(at(9, day=3))
    tracker.clock_in("100")

    assert tracker.week_hours("100", at(11, day=3)) == pytest.approx(10.0)
    # The following Monday starts a new week.
    assert tracker.week_hours("100", at(11, day=9)) == pytest.approx(0.0)


def test_team_sessions_groups_by_user(tracker, clock) -> None:
    tracker.clock_in("100")
    tracker.clock_in("200")
    clock.advance(hours=1)
    tracker.clock_out("200")

    team = tracker.team_sessions("2026-02-02")

    assert sorted(team) == ["100", "200"]
    assert team["100"][0].is_open
    assert team["200"][0].status is SessionStatus.CLOCKED_OUT


def test_corrupt_record_falls_back_to_defaults(tracker, db, toasts) -> None:
    db._conn.execute("INSERT INTO user_records (user_id, payload) VALUES (?, ?)", ("100", "{not json"))

    assert tracker.hours_worked("100") == 0.0
    assert tracker.preferences_for("100").eye_care_interval_minutes == 20
    assert toasts.history[-1].kind is EventKind.PERSISTENCE_WARNING


def test_forgotten_session_closes_while_running(tracker, clock, toasts) -> None:
    listener = RecordingListener()
    tracker.add_listener(listener)
    clock.set(at(9))
    tracker.clock_in("100")

    clock.set(at(15, day=3))
    session = tracker.session_for("100")

    assert session.status is SessionStatus.CLOCKED_OUT
    assert session.auto_closed is True
    assert session.clock_out_at == at(9, day=3)
    assert tracker.hours_worked("100") == pytest.approx(24.0)
    assert listener.calls == [("opened", "100"), ("closed", "100")]
    assert [item.kind for item in toasts.history].count(EventKind.SESSION_AUTO_CLOSED) == 1
