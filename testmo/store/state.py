"""SQLite-backed key-value persistence of whole collections."""
from __future__ import annotations

import json
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from testmo.errors import StorageError, StorageQuotaError
from testmo.types import ActivityEntry, ProjectSettings, TestCase, User

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

INIT_SQL = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

KEY_CASES = "cases"
KEY_USERS = "users"
KEY_SETTINGS = "settings"
KEY_ACTIVITY = "activity"
KEY_SESSION = "session"
KEY_RUN_STATE = "run_state"

DEFAULT_ADMIN = User(
    username="admin",
    name="TestMo Admin",
    role="Admin",
    initials="AD",
    color="#0ea5e9",
)


class StateManager:
    def __init__(self, db_path: str | Path, max_bytes: int = 0):
        self.db = sqlite3.connect(str(db_path))
        self.db.execute("PRAGMA journal_mode = WAL")
        self.db.executescript(INIT_SQL)
        self.max_bytes = max_bytes

    # ─── Raw access ───

    def get(self, key: str, default: Any = None) -> Any:
        row = self.db.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if not row:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.error("Corrupt value under key %r, ignoring it", key)
            return default

    def put(self, key: str, value: Any) -> None:
        """Write one key. Raises StorageError; use the ``save_*`` wrappers for fire-and-forget."""
        payload = json.dumps(value, ensure_ascii=False)
        if self.max_bytes and self._size_without(key) + len(payload.encode("utf-8")) > self.max_bytes:
            raise StorageQuotaError(f"Storage quota of {self.max_bytes} bytes exceeded writing {key!r}")
        try:
            self.db.execute(
                "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, datetime('now'))",
                (key, payload),
            )
            self.db.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write {key!r}: {e}") from e

    def delete(self, key: str) -> None:
        self.db.execute("DELETE FROM kv WHERE key = ?", (key,))
        self.db.commit()

    def _size_without(self, key: str) -> int:
        row = self.db.execute(
            "SELECT COALESCE(SUM(LENGTH(CAST(value AS BLOB))), 0) FROM kv WHERE key != ?", (key,)
        ).fetchone()
        return row[0]

    def _save(self, key: str, value: Any) -> bool:
        try:
            self.put(key, value)
        except StorageError as e:
            # In-memory state stays authoritative; the next save will try again
            logger.error("Save of %r failed: %s", key, e)
            return False
        return True

    # ─── Collections ───

    def load_cases(self) -> list[TestCase]:
        return [TestCase.from_dict(c) for c in self.get(KEY_CASES, [])]

    def save_cases(self, cases: list[TestCase]) -> bool:
        return self._save(KEY_CASES, [c.to_dict() for c in cases])

    def clear_cases(self) -> None:
        self.delete(KEY_CASES)

    def load_users(self) -> list[User]:
        stored = self.get(KEY_USERS)
        if stored:
            return [User.from_dict(u) for u in stored]
        self._save(KEY_USERS, [DEFAULT_ADMIN.__dict__])
        return [DEFAULT_ADMIN]

    def save_users(self, users: list[User]) -> bool:
        return self._save(KEY_USERS, [u.__dict__ for u in users])

    def load_settings(self) -> ProjectSettings | None:
        stored = self.get(KEY_SETTINGS)
        return ProjectSettings.from_dict(stored) if stored else None

    def save_settings(self, settings: ProjectSettings) -> bool:
        return self._save(KEY_SETTINGS, settings.__dict__)

    def load_activity(self) -> list[ActivityEntry]:
        return [ActivityEntry.from_dict(e) for e in self.get(KEY_ACTIVITY, [])]

    def save_activity(self, entries: list[ActivityEntry]) -> bool:
        return self._save(KEY_ACTIVITY, [e.__dict__ for e in entries])

    def load_session(self) -> dict[str, Any]:
        return self.get(KEY_SESSION, {})

    def save_session(self, session: dict[str, Any]) -> bool:
        return self._save(KEY_SESSION, session)

    def load_run_state(self) -> dict[str, Any] | None:
        return self.get(KEY_RUN_STATE)

    def save_run_state(self, state: dict[str, Any]) -> bool:
        return self._save(KEY_RUN_STATE, state)

    def clear_run_state(self) -> None:
        self.delete(KEY_RUN_STATE)

    def reset(self) -> None:
        self.db.execute("DELETE FROM kv")
        self.db.commit()

    def close(self) -> None:
        self.db.close()
