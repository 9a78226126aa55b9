"""
Local preference cache.

Non-authoritative SQLite key/value store for:
- a stable local identifier (keys the profile when nobody is signed in)
- the teacher's last subject and specialty
- the uploaded yearly program text
- the signed-in auth session, so it survives between commands

Database location: ~/.bactutor/preferences.db
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from pathlib import Path

from loguru import logger

from bactutor.curriculum.models import Specialty

LOCAL_ID_KEY = "local_id"
TEACHER_SUBJECT_KEY = "teacher_subject_id"
TEACHER_SPECIALTY_KEY = "teacher_specialty"
PROGRAM_TEXT_KEY = "program_text"
AUTH_SESSION_KEY = "auth_session"


class LocalPreferenceCache:
    DEFAULT_DB_PATH = Path.home() / ".bactutor" / "preferences.db"

    def __init__(self, db_path: Path | None = None):
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.debug(f"LocalPreferenceCache at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS preferences (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.conn.commit()

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    # =========================================================================
    # Raw key/value
    # =========================================================================

    def get(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str | None) -> None:
        if value is None:
            self.conn.execute("DELETE FROM preferences WHERE key = ?", (key,))
        else:
            self.conn.execute(
                """
                INSERT INTO preferences (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
        self.conn.commit()

    # =========================================================================
    # Typed preferences
    # =========================================================================

    @property
    def local_id(self) -> str:
        """Stable identifier for this install, created on first use."""
        value = self.get(LOCAL_ID_KEY)
        if value is None:
            value = f"local-{uuid.uuid4().hex}"
            self.set(LOCAL_ID_KEY, value)
        return value

    def teacher_preferences(self) -> tuple[Specialty | None, str | None]:
        return Specialty.parse(self.get(TEACHER_SPECIALTY_KEY)), self.get(TEACHER_SUBJECT_KEY)

    def save_teacher_preferences(self, specialty: Specialty | None, subject_id: str | None) -> None:
        self.set(TEACHER_SPECIALTY_KEY, specialty.value if specialty else None)
        self.set(TEACHER_SUBJECT_KEY, subject_id)

    @property
    def program_text(self) -> str | None:
        return self.get(PROGRAM_TEXT_KEY)

    def save_program_text(self, text: str | None) -> None:
        self.set(PROGRAM_TEXT_KEY, text)

    @property
    def auth_session(self) -> dict | None:
        raw = self.get(AUTH_SESSION_KEY)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Cached auth session is unreadable; ignoring it")
            return None

    def save_auth_session(self, data: dict | None) -> None:
        self.set(AUTH_SESSION_KEY, json.dumps(data) if data is not None else None)
