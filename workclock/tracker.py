from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Any, Callable, Protocol
from zoneinfo import ZoneInfo

from .clock import Clock, SystemClock, local_day_key, to_utc, week_bounds
from .db import Database
from .errors import (
    AlreadyClockedIn,
    BreakAlreadyOpen,
    CommandResult,
    NoOpenBreak,
    NotClockedIn,
    PersistenceUnavailable,
    WorkClockError,
)
from .events import EventKind, Notification, Severity
from .models import BreakKind, UserPreferences, WorkSession
from .notifications import NotificationGateway
from .reporter import format_hours, format_seconds

DEFAULT_STALE_SESSION_HOURS = 24


class SessionListener(Protocol):
    def session_opened(self, user_id: str) -> None: ...

    def session_closed(self, user_id: str) -> None: ...


class WorkSessionTracker:
    """Owns each user's clock-in, break and clock-out lifecycle.

    In-memory state is the source of truth; every transition is handed to the
    database as a snapshot and a failed write is logged without rolling back.
    """

    def __init__(
        self,
        db: Database,
        gateway: NotificationGateway,
        tz: ZoneInfo,
        clock: Clock | None = None,
        *,
        stale_session_hours: float = DEFAULT_STALE_SESSION_HOURS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.gateway = gateway
        self.tz = tz
        self.clock = clock or SystemClock()
        self.stale_session_hours = stale_session_hours
        self.logger = logger or logging.getLogger(__name__)

        self._sessions: dict[str, WorkSession | None] = {}
        self._preferences: dict[str, UserPreferences] = {}
        self._listeners: list[SessionListener] = []

    def now(self) -> datetime:
        return to_utc(self.clock.now())

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    # -- state access -----------------------------------------------------

    def session_for(self, user_id: str) -> WorkSession | None:
        self._load(user_id)
        session = self._sessions[user_id]
        if session is not None and session.is_open:
            session = self._close_if_stale(session)
        return session

    def preferences_for(self, user_id: str) -> UserPreferences:
        self._load(user_id)
        return self._preferences[user_id]

    def resume(self, user_id: str) -> WorkSession | None:
        """Reload the user's record from the store and restart reminders for an open session."""
        self._sessions.pop(user_id, None)
        self._preferences.pop(user_id, None)
        session = self.session_for(user_id)

        if session is not None and session.is_open:
            self.logger.info("Resumed open session: user=%s since=%s", user_id, session.clock_in_at.isoformat())
            self._notify_opened(user_id)
        else:
            self._notify_closed(user_id)
        return session

    def resume_all(self) -> list[str]:
        try:
            user_ids = self.db.list_open_user_ids()
        except PersistenceUnavailable:
            self.logger.exception("Unable to list open sessions for resume")
            return []

        resumed = []
        for user_id in user_ids:
            session = self.resume(user_id)
            if session is not None and session.is_open:
                resumed.append(user_id)
        self.logger.info("Resumed %d open sessions", len(resumed))
        return resumed

    # -- commands ---------------------------------------------------------

    def clock_in(self, user_id: str) -> CommandResult:
        current = self.session_for(user_id)
        if current is not None and current.is_open:
            self.logger.debug("Ignoring duplicate clock-in for user %s", user_id)
            return self._reject(user_id, AlreadyClockedIn(), current)

        now = self.now()
        session = WorkSession(user_id=user_id, date=local_day_key(now, self.tz), clock_in_at=now)
        self._sessions[user_id] = session
        self._persist_session(session)
        self.logger.info("Clocked in: user=%s day=%s", user_id, session.date)

        self.emit(
            Notification(
                kind=EventKind.CLOCKED_IN,
                user_id=user_id,
                title="Clocked in",
                body="Clocked in successfully!",
                severity=Severity.SUCCESS,
                data={"clock_in_at": now.isoformat()},
            )
        )
        self._notify_opened(user_id)
        return CommandResult.success(session)

    def clock_out(self, user_id: str) -> CommandResult:
        current = self.session_for(user_id)
        if current is None or not current.is_open:
            return self._reject(user_id, NotClockedIn(), current)

        now = self.now()
        if current.open_break is not None:
            self.logger.info("Closing open %s break at clock-out: user=%s", current.open_break.kind.value, user_id)

        closed = current.with_clock_out(now)
        self._sessions[user_id] = closed
        self._persist_session(closed)
        self._notify_closed(user_id)

        worked = closed.worked_seconds(now)
        self.logger.info("Clocked out: user=%s worked=%ss", user_id, int(worked))
        self.emit(
            Notification(
                kind=EventKind.CLOCKED_OUT,
                user_id=user_id,
                title="Clocked out",
                body=f"Clocked out successfully! Total hours: {closed.total_hours:.2f}",
                severity=Severity.SUCCESS,
                data={"worked_seconds": worked, "total_hours": closed.total_hours},
            )
        )
        return CommandResult.success(closed)

    def start_break(self, user_id: str, kind: BreakKind | str) -> CommandResult:
        kind = BreakKind(kind)
        current = self.session_for(user_id)
        if current is None or not current.is_open:
            return self._reject(user_id, NotClockedIn(), current)
        if current.open_break is not None:
            return self._reject(user_id, BreakAlreadyOpen(), current)

        now = self.now()
        session = current.with_break_started(kind, now)
        self._sessions[user_id] = session
        self._persist_session(session)
        self.logger.info("Break started: user=%s kind=%s", user_id, kind.value)

        label = "Lunch break" if kind is BreakKind.LUNCH else "Break"
        self.emit(
            Notification(
                kind=EventKind.BREAK_STARTED,
                user_id=user_id,
                title=f"{label} started",
                body=f"{label} started. Enjoy!",
                severity=Severity.INFO,
                data={"break_kind": kind.value, "start": now.isoformat()},
            )
        )
        return CommandResult.success(session)

    def end_break(self, user_id: str) -> CommandResult:
        current = self.session_for(user_id)
        open_break = current.open_break if current is not None and current.is_open else None
        if open_break is None:
            return self._reject(user_id, NoOpenBreak(), current)

        now = self.now()
        session = current.with_break_ended(now)
        self._sessions[user_id] = session
        self._persist_session(session)

        break_seconds = open_break.duration_seconds(now)
        self.logger.info("Break ended: user=%s kind=%s duration=%ss", user_id, open_break.kind.value, int(break_seconds))
        self.emit(
            Notification(
                kind=EventKind.BREAK_ENDED,
                user_id=user_id,
                title="Break ended",
                body=f"Welcome back! Break lasted {format_seconds(break_seconds)}.",
                severity=Severity.SUCCESS,
                data={"break_kind": open_break.kind.value, "break_seconds": break_seconds},
            )
        )
        return CommandResult.success(session)

    # -- queries ----------------------------------------------------------

    def hours_worked(self, user_id: str, as_of: datetime | None = None) -> float:
        session = self.session_for(user_id)
        if session is None:
            return 0.0
        if not session.is_open:
            return session.total_hours or 0.0
        return session.worked_seconds(as_of or self.now()) / 3600

    def week_hours(self, user_id: str, as_of: datetime | None = None) -> float:
        moment = as_of or self.now()
        monday, sunday = week_bounds(to_utc(moment).astimezone(self.tz).date())
        sessions = self._sessions_between(monday, sunday, user_id=user_id)
        total = sum(item.worked_seconds(moment) for item in sessions)
        return total / 3600

    def team_sessions(self, day: str | None = None) -> dict[str, list[WorkSession]]:
        day_value = date.fromisoformat(day) if day else to_utc(self.now()).astimezone(self.tz).date()
        grouped: dict[str, list[WorkSession]] = {}
        for session in self._sessions_between(day_value, day_value):
            grouped.setdefault(session.user_id, []).append(session)
        return grouped

    # -- settings ---------------------------------------------------------

    def toggle_eye_care(self, user_id: str, enabled: bool) -> UserPreferences:
        preferences = replace(self.preferences_for(user_id), eye_care_enabled=bool(enabled))
        self._preferences[user_id] = preferences
        self._persist_preferences(user_id, {"eye_care_enabled": preferences.eye_care_enabled})

        if preferences.eye_care_enabled:
            body = (
                "Eye care reminders enabled! You'll be reminded every "
                f"{preferences.eye_care_interval_minutes:g} minutes."
            )
            self.gateway.request_permission(user_id)
        else:
            body = "Eye care reminders disabled."
        self.emit(
            Notification(
                kind=EventKind.SETTINGS_CHANGED,
                user_id=user_id,
                title="Eye care",
                body=body,
                severity=Severity.SUCCESS if preferences.eye_care_enabled else Severity.INFO,
                data={"eye_care_enabled": preferences.eye_care_enabled},
            )
        )
        return preferences

    def set_eye_care_interval(self, user_id: str, minutes: Any) -> bool:
        if not _is_positive_number(minutes):
            self.logger.debug("Ignoring invalid eye care interval %r for user %s", minutes, user_id)
            return False

        preferences = replace(self.preferences_for(user_id), eye_care_interval_minutes=minutes)
        self._preferences[user_id] = preferences
        self._persist_preferences(user_id, {"eye_care_interval_minutes": minutes})
        self.emit(
            Notification(
                kind=EventKind.SETTINGS_CHANGED,
                user_id=user_id,
                title="Eye care",
                body=f"Eye care interval set to {minutes:g} minutes.",
                severity=Severity.SUCCESS,
                data={"eye_care_interval_minutes": minutes},
            )
        )
        return True

    def record_eye_care_reminder(self, user_id: str, at: datetime) -> UserPreferences:
        preferences = replace(self.preferences_for(user_id), last_reminder_at=to_utc(at))
        self._preferences[user_id] = preferences
        self._persist_preferences(user_id, {"last_reminder_at": preferences.last_reminder_at.isoformat()})
        return preferences

    # -- events -----------------------------------------------------------

    def emit(self, notification: Notification) -> None:
        self.gateway.dispatch(notification)

    # -- internals --------------------------------------------------------

    def _load(self, user_id: str) -> None:
        if user_id in self._preferences:
            return

        try:
            record = self.db.get(user_id)
            preferences, session = record.preferences, record.session
        except PersistenceUnavailable:
            self.logger.exception("Unable to load record for user %s; starting from defaults", user_id)
            self._warn_persistence(user_id)
            preferences, session = self.db.default_preferences, None

        self._preferences[user_id] = preferences
        self._sessions[user_id] = session

    def _close_if_stale(self, session: WorkSession) -> WorkSession:
        cutoff = session.clock_in_at + timedelta(hours=self.stale_session_hours)
        if self.now() <= cutoff:
            return session

        closed = session.with_clock_out(cutoff, auto_closed=True)
        self._sessions[session.user_id] = closed
        self._persist_session(closed)
        self._notify_closed(session.user_id)
        self.logger.warning(
            "Auto-closed stale session: user=%s clocked_in=%s",
            session.user_id,
            session.clock_in_at.isoformat(),
        )
        self.emit(
            Notification(
                kind=EventKind.SESSION_AUTO_CLOSED,
                user_id=session.user_id,
                title="Session closed automatically",
                body=(
                    f"Your session from {session.date} was open for more than "
                    f"{self.stale_session_hours:g} hours and has been closed. "
                    f"Recorded {format_hours(closed.total_hours or 0.0)}."
                ),
                severity=Severity.WARNING,
                persistent=True,
                data={"total_hours": closed.total_hours},
            )
        )
        return closed

    def _sessions_between(self, start: date, end: date, user_id: str | None = None) -> list[WorkSession]:
        start_key, end_key = start.isoformat(), end.isoformat()
        try:
            stored = self.db.list_sessions(user_id=user_id, start_day=start_key, end_day=end_key)
        except PersistenceUnavailable:
            self.logger.exception("Unable to read session history for %s..%s", start_key, end_key)
            stored = []

        # In-memory sessions win over stored copies of the same clock-in.
        merged = {(item.user_id, item.clock_in_at): item for item in stored}
        for session in self._sessions.values():
            if session is None or not (start_key <= session.date <= end_key):
                continue
            if user_id is not None and session.user_id != user_id:
                continue
            merged[(session.user_id, session.clock_in_at)] = session
        return sorted(merged.values(), key=lambda item: (item.user_id, item.clock_in_at))

    def _persist_session(self, session: WorkSession) -> None:
        self._persist(session.user_id, lambda: self.db.save_session(session))

    def _persist_preferences(self, user_id: str, partial: dict[str, Any]) -> None:
        self._persist(user_id, lambda: self.db.set(user_id, {"preferences": partial}))

    def _persist(self, user_id: str, write: Callable[[], None]) -> None:
        try:
            write()
        except PersistenceUnavailable:
            self.logger.exception("Persisting state failed for user %s; keeping in-memory state", user_id)
            self._warn_persistence(user_id)

    def _warn_persistence(self, user_id: str) -> None:
        self.emit(
            Notification(
                kind=EventKind.PERSISTENCE_WARNING,
                user_id=user_id,
                title="Storage unavailable",
                body=PersistenceUnavailable.default_message,
                severity=Severity.WARNING,
            )
        )

    def _reject(self, user_id: str, error: WorkClockError, session: WorkSession | None) -> CommandResult:
        self.emit(
            Notification(
                kind=EventKind.COMMAND_REJECTED,
                user_id=user_id,
                title="Action not allowed",
                body=error.message,
                severity=Severity.ERROR,
                data={"code": error.code},
            )
        )
        return CommandResult.failure(error, session)

    def _notify_opened(self, user_id: str) -> None:
        for listener in list(self._listeners):
            listener.session_opened(user_id)

    def _notify_closed(self, user_id: str) -> None:
        for listener in list(self._listeners):
            listener.session_closed(user_id)


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0
