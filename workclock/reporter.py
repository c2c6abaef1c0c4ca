from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from .models import SessionStatus, TeamRow

if TYPE_CHECKING:
    from .tracker import WorkSessionTracker

STATUS_LABELS = {
    SessionStatus.NOT_STARTED: "Not started",
    SessionStatus.CLOCKED_IN: "Clocked in",
    SessionStatus.ON_LUNCH: "On lunch",
    SessionStatus.ON_BREAK: "On break",
    SessionStatus.CLOCKED_OUT: "Clocked out",
}


def format_seconds(total_seconds: float) -> str:
    """Render a duration as HH:MM:SS for consistent report output."""
    safe_seconds = max(0, int(total_seconds))
    hours, remainder = divmod(safe_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def format_hours(total_hours: float) -> str:
    """Render fractional hours as e.g. ``8h 30m``."""
    if not total_hours or total_hours <= 0:
        return "0h 0m"

    total_minutes = int(round(total_hours * 60))
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


class GuildLike(Protocol):
    def get_member(self, user_id: int): ...


class Reporter:
    def __init__(self, tracker: WorkSessionTracker) -> None:
        self.tracker = tracker

    def build_status_content(self, user_id: str, now_utc: datetime | None = None) -> str:
        now = now_utc or self.tracker.now()
        session = self.tracker.session_for(user_id)
        preferences = self.tracker.preferences_for(user_id)
        status = session.status if session is not None else SessionStatus.NOT_STARTED

        lines = [
            f"Status: **{STATUS_LABELS[status]}**",
            f"Today: `{format_hours(self.tracker.hours_worked(user_id, now))}`",
            f"This week: `{format_hours(self.tracker.week_hours(user_id, now))}`",
        ]
        if session is not None:
            local_in = session.clock_in_at.astimezone(self.tracker.tz)
            lines.append(f"Clocked in at: `{local_in.strftime('%Y-%m-%d %H:%M')}`")
            if session.open_break is not None:
                on_break = session.open_break.duration_seconds(now)
                lines.append(f"Current {session.open_break.kind.value} break: `{format_seconds(on_break)}`")

        if preferences.eye_care_enabled:
            lines.append(f"Eye care reminders: every `{preferences.eye_care_interval_minutes:g}` minutes")
        else:
            lines.append("Eye care reminders: off")
        return "\n".join(lines)

    def build_team_rows(
        self,
        guild: GuildLike,
        day_local: str | None = None,
        *,
        now_utc: datetime | None = None,
    ) -> list[TeamRow]:
        now = now_utc or self.tracker.now()
        rows: list[TeamRow] = []
        for user_id, sessions in self.tracker.team_sessions(day_local).items():
            member = guild.get_member(int(user_id)) if user_id.isdigit() else None
            # Fall back to the raw ID when a member is no longer present in guild cache.
            display_name = member.display_name if member else f"User {user_id}"
            seconds = sum(item.worked_seconds(now) for item in sessions)
            rows.append(
                TeamRow(
                    user_id=user_id,
                    display_name=display_name,
                    status=sessions[-1].status,
                    seconds=seconds,
                    sessions=tuple(sessions),
                )
            )

        rows.sort(key=lambda item: (-item.seconds, item.display_name.lower()))
        return rows

    def build_team_content(self, day_local: str, rows: list[TeamRow]) -> str:
        header = f"**Team Activity - {day_local}**"
        if not rows:
            return f"{header}\nNo tracked activity for {day_local}."

        active = sum(1 for row in rows if row.status is SessionStatus.CLOCKED_IN)
        lines = [
            f"- {row.display_name}: {STATUS_LABELS[row.status]} `{format_seconds(row.seconds)}`"
            for row in rows
        ]
        body = "\n".join(lines)
        return f"{header}\n{active}/{len(rows)} active\n{body}"
