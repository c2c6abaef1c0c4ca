from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

from .clock import to_utc
from .errors import PersistenceUnavailable
from .models import StoredRecord, UserPreferences, WorkSession


def deep_merge(base: dict[str, Any], partial: dict[str, Any]) -> dict[str, Any]:
    """Merge partial into a copy of base; nested dicts merge, everything else is replaced."""
    merged = dict(base)
    for key, value in partial.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


class Database:
    """Thin SQLite access layer for per-user records and session history.

    Every sqlite3 failure surfaces as PersistenceUnavailable.
    """

    def __init__(self, db_path: str | Path, default_preferences: UserPreferences | None = None) -> None:
        self.default_preferences = default_preferences or UserPreferences()
        try:
            self._conn = sqlite3.connect(str(db_path))
        except sqlite3.Error as exc:
            raise PersistenceUnavailable(f"Cannot open database {db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # user_records: one JSON document per user holding preferences and the current session.
        # work_sessions: every session ever opened, kept for weekly totals and the team view.
        self._execute_script(
            """
            CREATE TABLE IF NOT EXISTS user_records (
              user_id TEXT PRIMARY KEY,
              payload TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS work_sessions (
              user_id TEXT NOT NULL,
              clock_in_at_utc TEXT NOT NULL,
              day_local TEXT NOT NULL,
              is_open INTEGER NOT NULL,
              payload TEXT NOT NULL,
              PRIMARY KEY (user_id, clock_in_at_utc)
            );

            CREATE INDEX IF NOT EXISTS idx_work_sessions_day ON work_sessions (day_local);
            """
        )

    def get_raw(self, user_id: str) -> dict[str, Any]:
        row = self._fetchone("SELECT payload FROM user_records WHERE user_id = ?", (user_id,))
        if row is None:
            return {}
        try:
            payload = json.loads(row["payload"])
        except ValueError as exc:
            raise PersistenceUnavailable(f"Corrupt record for {user_id}: {exc}") from exc
        if not isinstance(payload, dict):
            raise PersistenceUnavailable(f"Corrupt record for {user_id}: expected an object")
        return payload

    def get(self, user_id: str) -> StoredRecord:
        raw = self.get_raw(user_id)
        try:
            preferences = UserPreferences.from_dict(raw.get("preferences") or {}, self.default_preferences)
            session_data = raw.get("session")
            session = WorkSession.from_dict(session_data) if session_data else None
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise PersistenceUnavailable(f"Corrupt record for {user_id}: {exc!r}") from exc
        return StoredRecord(preferences=preferences, session=session)

    def set(self, user_id: str, partial: dict[str, Any]) -> None:
        """Deep-merge a partial update into the user's stored record."""
        merged = deep_merge(self.get_raw(user_id), partial)
        self._write(
            """
            INSERT INTO user_records (user_id, payload)
            VALUES (?, ?)
            ON CONFLICT(user_id)
            DO UPDATE SET payload=excluded.payload
            """,
            (user_id, json.dumps(merged)),
        )

    def save_session(self, session: WorkSession) -> None:
        """Store the session as the user's current one and record it in history."""
        self.set(session.user_id, {"session": session.to_dict()})
        self.archive_session(session)

    def archive_session(self, session: WorkSession) -> None:
        self._write(
            """
            INSERT INTO work_sessions (user_id, clock_in_at_utc, day_local, is_open, payload)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id, clock_in_at_utc)
            DO UPDATE SET is_open=excluded.is_open, payload=excluded.payload
            """,
            (
                session.user_id,
                to_utc(session.clock_in_at).isoformat(),
                session.date,
                1 if session.is_open else 0,
                json.dumps(session.to_dict()),
            ),
        )

    def list_sessions(
        self,
        *,
        user_id: str | None = None,
        start_day: str | None = None,
        end_day: str | None = None,
    ) -> list[WorkSession]:
        clauses: list[str] = []
        params: list[str] = []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if start_day is not None:
            clauses.append("day_local >= ?")
            params.append(start_day)
        if end_day is not None:
            clauses.append("day_local <= ?")
            params.append(end_day)

        query = "SELECT payload FROM work_sessions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY day_local ASC, clock_in_at_utc ASC, user_id ASC"

        rows = self._fetchall(query, tuple(params))
        try:
            return [WorkSession.from_dict(json.loads(row["payload"])) for row in rows]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise PersistenceUnavailable(f"Corrupt session history: {exc!r}") from exc

    def list_open_user_ids(self) -> list[str]:
        rows = self._fetchall(
            "SELECT DISTINCT user_id FROM work_sessions WHERE is_open = 1 ORDER BY user_id ASC",
            (),
        )
        return [row["user_id"] for row in rows]

    def _fetchone(self, query: str, params: tuple) -> sqlite3.Row | None:
        try:
            return self._conn.execute(query, params).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceUnavailable(f"Read failed: {exc}") from exc

    def _fetchall(self, query: str, params: tuple) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceUnavailable(f"Read failed: {exc}") from exc

    def _write(self, query: str, params: tuple) -> None:
        try:
            self._conn.execute(query, params)
            self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceUnavailable(f"Write failed: {exc}") from exc

    def _execute_script(self, script: str) -> None:
        try:
            self._conn.executescript(script)
            self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceUnavailable(f"Schema setup failed: {exc}") from exc
