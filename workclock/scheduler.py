from __future__ import annotations

import logging
from datetime import datetime, timedelta

from discord.ext import tasks

from .errors import CommandResult
from .events import EventKind, Notification, NotificationAction, Severity
from .models import EYE_CARE_COUNTDOWN_SECONDS, ReminderRuntimeState, SessionStatus
from .reporter import format_hours
from .tracker import WorkSessionTracker

EYE_CARE_TICK_SECONDS = 60
LONG_SESSION_TICK_SECONDS = 3600
COUNTDOWN_TICK_SECONDS = 1
DEFAULT_LONG_SESSION_HOURS = 10
EYE_CARE_TOAST_MS = EYE_CARE_COUNTDOWN_SECONDS * 1000
LONG_SESSION_TOAST_MS = 10000


class ReminderScheduler:
    """Eye-care and long-session reminders for one user's open session.

    Created when the session opens and disposed when it closes. The check
    methods are what the timer loops call; each re-reads session state at
    fire time so a late tick against a closed session does nothing.
    """

    def __init__(
        self,
        tracker: WorkSessionTracker,
        user_id: str,
        *,
        long_session_hours: float = DEFAULT_LONG_SESSION_HOURS,
        long_session_repeat: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.tracker = tracker
        self.user_id = user_id
        self.long_session_hours = long_session_hours
        self.long_session_repeat = long_session_repeat
        self.logger = logger or logging.getLogger(__name__)

        self.state = ReminderRuntimeState()
        self.stopped = False
        self._long_session_warned = False
        self._eye_care_loop: tasks.Loop | None = None
        self._long_session_loop: tasks.Loop | None = None
        self._countdown_loop: tasks.Loop | None = None

    @property
    def is_running(self) -> bool:
        return self._eye_care_loop is not None and not self.stopped

    def start(self) -> None:
        """Start the polling loops. Must be called from within a running event loop."""
        if self.stopped:
            raise RuntimeError("A stopped scheduler cannot be restarted")
        if self._eye_care_loop is not None:
            return

        self._eye_care_loop = tasks.loop(seconds=EYE_CARE_TICK_SECONDS)(self._eye_care_tick)
        self._long_session_loop = tasks.loop(seconds=LONG_SESSION_TICK_SECONDS)(self._long_session_tick)
        self._eye_care_loop.start()
        self._long_session_loop.start()
        self.logger.info("Reminder scheduler started: user=%s", self.user_id)

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        for loop in (self._eye_care_loop, self._long_session_loop, self._countdown_loop):
            if loop is not None and loop.is_running():
                loop.cancel()
        self.state.reset()
        self.logger.info("Reminder scheduler stopped: user=%s", self.user_id)

    # -- eye care ---------------------------------------------------------

    def check_eye_care(self, now: datetime | None = None) -> bool:
        if self.stopped or self.state.countdown_active:
            return False

        session = self.tracker.session_for(self.user_id)
        if session is None or session.status is not SessionStatus.CLOCKED_IN:
            return False

        preferences = self.tracker.preferences_for(self.user_id)
        if not preferences.eye_care_enabled:
            return False

        now = now or self.tracker.now()
        reference = max(preferences.last_reminder_at, session.clock_in_at)
        if now - reference < timedelta(minutes=preferences.eye_care_interval_minutes):
            return False

        self.tracker.record_eye_care_reminder(self.user_id, now)
        self.state.open(now)
        self.logger.info("Eye care reminder fired: user=%s", self.user_id)
        self.tracker.emit(
            Notification(
                kind=EventKind.EYE_CARE_DUE,
                user_id=self.user_id,
                title="Eye Care Reminder",
                body="Time to rest your eyes! Look at something 20 feet away for 20 seconds.",
                severity=Severity.INFO,
                duration_ms=EYE_CARE_TOAST_MS,
                action=NotificationAction(label="Done", on_click=self.complete),
                data={"countdown_seconds": EYE_CARE_COUNTDOWN_SECONDS},
            )
        )
        self._start_countdown()
        return True

    def tick_countdown(self, now: datetime | None = None) -> int:
        """Advance the countdown from the clock; reaching zero closes the reminder silently."""
        if not self.state.countdown_active or self.state.started_at is None:
            return 0

        now = now or self.tracker.now()
        elapsed = int((now - self.state.started_at).total_seconds())
        remaining = max(0, EYE_CARE_COUNTDOWN_SECONDS - elapsed)
        self.state.countdown_seconds_remaining = remaining
        if remaining == 0:
            self.logger.debug("Eye care countdown finished: user=%s", self.user_id)
            self._end_countdown()
        return remaining

    def skip(self) -> None:
        if not self.state.modal_visible:
            return
        self.logger.debug("Eye care reminder skipped: user=%s", self.user_id)
        self._end_countdown()

    def complete(self) -> None:
        if not self.state.modal_visible:
            return
        self._end_countdown()
        self.tracker.emit(
            Notification(
                kind=EventKind.EYE_CARE_COMPLETED,
                user_id=self.user_id,
                title="Eye Care",
                body="Great job! Your eyes thank you.",
                severity=Severity.SUCCESS,
            )
        )

    # -- long session -----------------------------------------------------

    def check_long_session(self, now: datetime | None = None) -> bool:
        if self.stopped:
            return False

        session = self.tracker.session_for(self.user_id)
        if session is None or not session.is_open:
            return False

        now = now or self.tracker.now()
        hours = self.tracker.hours_worked(self.user_id, now)
        if hours < self.long_session_hours:
            return False
        if self._long_session_warned and not self.long_session_repeat:
            return False

        self._long_session_warned = True
        self.logger.warning("Long session warning: user=%s hours=%.2f", self.user_id, hours)
        self.tracker.emit(
            Notification(
                kind=EventKind.LONG_SESSION_WARNING,
                user_id=self.user_id,
                title="Time to Clock Out!",
                body=f"Don't forget to clock out! You've been working for {format_hours(hours)}.",
                severity=Severity.WARNING,
                persistent=True,
                duration_ms=LONG_SESSION_TOAST_MS,
                action=NotificationAction(label="Clock Out Now", on_click=self._clock_out_now),
                data={"hours_worked": hours},
            )
        )
        return True

    # -- internals --------------------------------------------------------

    def _clock_out_now(self) -> CommandResult:
        return self.tracker.clock_out(self.user_id)

    def _start_countdown(self) -> None:
        if self._eye_care_loop is None or self.stopped:
            return
        self._countdown_loop = tasks.loop(seconds=COUNTDOWN_TICK_SECONDS)(self._countdown_tick)
        self._countdown_loop.start()

    def _end_countdown(self) -> None:
        self.state.reset()
        if self._countdown_loop is not None and self._countdown_loop.is_running():
            self._countdown_loop.stop()
        self._countdown_loop = None

    async def _eye_care_tick(self) -> None:
        try:
            self.check_eye_care()
        except Exception:  # pragma: no cover
            self.logger.exception("Eye care check failed: user=%s", self.user_id)

    async def _long_session_tick(self) -> None:
        try:
            self.check_long_session()
        except Exception:  # pragma: no cover
            self.logger.exception("Long session check failed: user=%s", self.user_id)

    async def _countdown_tick(self) -> None:
        self.tick_countdown()


class ReminderService:
    """Tracker listener that owns one ReminderScheduler per open session."""

    def __init__(
        self,
        tracker: WorkSessionTracker,
        *,
        long_session_hours: float = DEFAULT_LONG_SESSION_HOURS,
        long_session_repeat: bool = False,
        autostart: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self.tracker = tracker
        self.long_session_hours = long_session_hours
        self.long_session_repeat = long_session_repeat
        self.autostart = autostart
        self.logger = logger or logging.getLogger(__name__)
        self.schedulers: dict[str, ReminderScheduler] = {}
        tracker.add_listener(self)

    def get(self, user_id: str) -> ReminderScheduler | None:
        return self.schedulers.get(user_id)

    def session_opened(self, user_id: str) -> None:
        if user_id in self.schedulers:
            return

        scheduler = ReminderScheduler(
            self.tracker,
            user_id,
            long_session_hours=self.long_session_hours,
            long_session_repeat=self.long_session_repeat,
        )
        self.schedulers[user_id] = scheduler
        if self.autostart:
            scheduler.start()

    def session_closed(self, user_id: str) -> None:
        scheduler = self.schedulers.pop(user_id, None)
        if scheduler is not None:
            scheduler.stop()

    def shutdown(self) -> None:
        for user_id in list(self.schedulers):
            self.session_closed(user_id)
        self.logger.info("All reminder schedulers stopped")
