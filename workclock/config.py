from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import DEFAULT_EYE_CARE_INTERVAL_MINUTES

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    reminder_channel_id: int
    timezone: ZoneInfo
    database_path: Path = Path("workclock.db")
    admin_user_ids: frozenset[int] = frozenset()
    eye_care_interval_minutes: int = DEFAULT_EYE_CARE_INTERVAL_MINUTES
    long_session_hours: int = 10
    long_session_repeat: bool = False
    stale_session_hours: int = 24
    direct_messages: bool = True

    def is_admin(self, user_id: int | str) -> bool:
        return int(user_id) in self.admin_user_ids


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _parse_positive_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _required_int_env(name: str) -> int:
    return _parse_positive_int(name, _required_env(name))


def _optional_int_env(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    return _parse_positive_int(name, value)


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name, "").strip().lower()
    if not value:
        return default
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"Environment variable {name} must be a boolean")


def _id_set_env(name: str) -> frozenset[int]:
    value = os.getenv(name, "").strip()
    if not value:
        return frozenset()
    return frozenset(_parse_positive_int(name, part.strip()) for part in value.split(",") if part.strip())


def _timezone_from_env(name: str) -> ZoneInfo:
    tz_name = _required_env(name)
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def load_config() -> Config:
    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        reminder_channel_id=_required_int_env("REMINDER_CHANNEL_ID"),
        timezone=_timezone_from_env("TIMEZONE"),
        database_path=Path(os.getenv("DATABASE_PATH", "workclock.db").strip() or "workclock.db"),
        admin_user_ids=_id_set_env("ADMIN_USER_IDS"),
        eye_care_interval_minutes=_optional_int_env("EYE_CARE_INTERVAL_MINUTES", DEFAULT_EYE_CARE_INTERVAL_MINUTES),
        long_session_hours=_optional_int_env("LONG_SESSION_HOURS", 10),
        long_session_repeat=_bool_env("LONG_SESSION_REPEAT", False),
        stale_session_hours=_optional_int_env("STALE_SESSION_HOURS", 24),
        direct_messages=_bool_env("DIRECT_MESSAGES", True),
    )
