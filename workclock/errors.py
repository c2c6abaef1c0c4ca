from __future__ import annotations

from dataclasses import dataclass

from .models import WorkSession


class WorkClockError(Exception):
    """Base class for every error the engine reports."""

    code = "work_clock_error"
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class AlreadyClockedIn(WorkClockError):
    code = "already_clocked_in"
    default_message = "You are already clocked in."


class NotClockedIn(WorkClockError):
    code = "not_clocked_in"
    default_message = "You are not clocked in."


class BreakAlreadyOpen(WorkClockError):
    code = "break_already_open"
    default_message = "You are already on a break."


class NoOpenBreak(WorkClockError):
    code = "no_open_break"
    default_message = "You are not on a break."


class PersistenceUnavailable(WorkClockError):
    code = "persistence_unavailable"
    default_message = "Session storage is unavailable; changes are kept in memory."


class NotificationUnsupported(WorkClockError):
    code = "notification_unsupported"
    default_message = "Notifications are not supported here."


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a clock or break command.

    State-transition failures are carried in ``error`` instead of being raised
    so callers can render a specific message.
    """

    ok: bool
    session: WorkSession | None = None
    error: WorkClockError | None = None

    @classmethod
    def success(cls, session: WorkSession) -> CommandResult:
        return cls(ok=True, session=session)

    @classmethod
    def failure(cls, error: WorkClockError, session: WorkSession | None = None) -> CommandResult:
        return cls(ok=False, session=session, error=error)
