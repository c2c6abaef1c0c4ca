from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from .clock import EPOCH, elapsed_seconds, parse_iso_utc, to_utc

DEFAULT_EYE_CARE_INTERVAL_MINUTES = 20
EYE_CARE_COUNTDOWN_SECONDS = 20


class Role(str, Enum):
    WORKER = "worker"
    ADMIN = "admin"


class BreakKind(str, Enum):
    LUNCH = "lunch"
    SHORT = "short"


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    CLOCKED_IN = "clocked_in"
    ON_LUNCH = "on_lunch"
    ON_BREAK = "on_break"
    CLOCKED_OUT = "clocked_out"


@dataclass(frozen=True, slots=True)
class User:
    user_id: str
    display_name: str
    role: Role = Role.WORKER

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return to_utc(value).isoformat()


@dataclass(frozen=True, slots=True)
class BreakPeriod:
    kind: BreakKind
    start: datetime
    end: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def duration_seconds(self, as_of: datetime | None = None) -> float:
        # Open breaks are truncated at as_of; without as_of they count as zero.
        end = self.end or as_of
        if end is None:
            return 0.0
        return elapsed_seconds(self.start, end)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "start": _iso(self.start), "end": _iso(self.end)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BreakPeriod:
        return cls(
            kind=BreakKind(data["kind"]),
            start=parse_iso_utc(data["start"]),
            end=parse_iso_utc(data.get("end")),
        )


@dataclass(frozen=True, slots=True)
class WorkSession:
    user_id: str
    date: str
    clock_in_at: datetime
    clock_out_at: datetime | None = None
    breaks: tuple[BreakPeriod, ...] = ()
    status: SessionStatus = SessionStatus.CLOCKED_IN
    total_hours: float | None = None
    auto_closed: bool = False

    @property
    def is_open(self) -> bool:
        return self.clock_out_at is None

    @property
    def open_break(self) -> BreakPeriod | None:
        for item in self.breaks:
            if item.is_open:
                return item
        return None

    def worked_seconds(self, as_of: datetime) -> float:
        """Elapsed time minus breaks, as of the given instant.

        For a closed session ``as_of`` is capped at ``clock_out_at``. An open
        break is counted up to ``as_of`` so the figure stays flat while the
        user is away.
        """
        end = self.clock_out_at or as_of
        if self.clock_out_at is not None and as_of < self.clock_out_at:
            end = as_of
        if end <= self.clock_in_at:
            return 0.0

        elapsed = elapsed_seconds(self.clock_in_at, end)
        on_break = 0.0
        for item in self.breaks:
            if item.start >= end:
                continue
            item_end = end if item.end is None or item.end > end else item.end
            on_break += elapsed_seconds(item.start, item_end)
        return max(0.0, elapsed - on_break)

    def with_break_started(self, kind: BreakKind, at: datetime) -> WorkSession:
        status = SessionStatus.ON_LUNCH if kind is BreakKind.LUNCH else SessionStatus.ON_BREAK
        return replace(
            self,
            breaks=(*self.breaks, BreakPeriod(kind=kind, start=at)),
            status=status,
        )

    def with_break_ended(self, at: datetime) -> WorkSession:
        breaks = tuple(replace(item, end=at) if item.is_open else item for item in self.breaks)
        return replace(self, breaks=breaks, status=SessionStatus.CLOCKED_IN)

    def with_clock_out(self, at: datetime, *, auto_closed: bool = False) -> WorkSession:
        closed = self.with_break_ended(at) if self.open_break is not None else self
        total_seconds = closed.worked_seconds(at)
        return replace(
            closed,
            clock_out_at=at,
            status=SessionStatus.CLOCKED_OUT,
            total_hours=total_seconds / 3600,
            auto_closed=auto_closed,
        )

    def to_dict(self) -> dict[str, Any]:
        # Every key is always present so a deep merge over an older record cannot keep stale fields.
        return {
            "user_id": self.user_id,
            "date": self.date,
            "clock_in_at": _iso(self.clock_in_at),
            "clock_out_at": _iso(self.clock_out_at),
            "breaks": [item.to_dict() for item in self.breaks],
            "status": self.status.value,
            "total_hours": self.total_hours,
            "auto_closed": self.auto_closed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkSession:
        return cls(
            user_id=str(data["user_id"]),
            date=data["date"],
            clock_in_at=parse_iso_utc(data["clock_in_at"]),
            clock_out_at=parse_iso_utc(data.get("clock_out_at")),
            breaks=tuple(BreakPeriod.from_dict(item) for item in data.get("breaks") or []),
            status=SessionStatus(data.get("status", SessionStatus.CLOCKED_IN.value)),
            total_hours=data.get("total_hours"),
            auto_closed=bool(data.get("auto_closed", False)),
        )


@dataclass(frozen=True, slots=True)
class UserPreferences:
    eye_care_enabled: bool = True
    eye_care_interval_minutes: float = DEFAULT_EYE_CARE_INTERVAL_MINUTES
    last_reminder_at: datetime = EPOCH

    def to_dict(self) -> dict[str, Any]:
        return {
            "eye_care_enabled": self.eye_care_enabled,
            "eye_care_interval_minutes": self.eye_care_interval_minutes,
            "last_reminder_at": _iso(self.last_reminder_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], defaults: UserPreferences | None = None) -> UserPreferences:
        base = defaults or cls()
        last_reminder = parse_iso_utc(data.get("last_reminder_at")) or base.last_reminder_at
        return cls(
            eye_care_enabled=bool(data.get("eye_care_enabled", base.eye_care_enabled)),
            eye_care_interval_minutes=data.get("eye_care_interval_minutes", base.eye_care_interval_minutes),
            last_reminder_at=last_reminder,
        )


@dataclass(slots=True)
class ReminderRuntimeState:
    countdown_seconds_remaining: int = EYE_CARE_COUNTDOWN_SECONDS
    countdown_active: bool = False
    modal_visible: bool = False
    started_at: datetime | None = None

    def open(self, at: datetime) -> None:
        self.countdown_seconds_remaining = EYE_CARE_COUNTDOWN_SECONDS
        self.countdown_active = True
        self.modal_visible = True
        self.started_at = at

    def reset(self) -> None:
        self.countdown_seconds_remaining = EYE_CARE_COUNTDOWN_SECONDS
        self.countdown_active = False
        self.modal_visible = False
        self.started_at = None


@dataclass(frozen=True, slots=True)
class StoredRecord:
    preferences: UserPreferences
    session: WorkSession | None = None


@dataclass(frozen=True, slots=True)
class TeamRow:
    user_id: str
    display_name: str
    status: SessionStatus
    seconds: float
    sessions: tuple[WorkSession, ...] = ()
