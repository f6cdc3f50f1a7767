from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from threading import Lock

from cinerecap.core.authz import User
from cinerecap.core.config import Settings

logger = logging.getLogger(__name__)

# Cookie carrying the session key; the record stored under it is {username, deviceId}.
SESSION_COOKIE = "cinerecap_user"


class SessionStore:
    """SQLite-backed store of logged-in session records.

    One row per session key, holding the JSON record::

        {"username": "...", "deviceId": "..."}

    There is no expiry: a record lives until logout, until the device
    fingerprint no longer matches, or until more than ``max_sessions`` records
    exist, in which case the least recently used ones are removed.
    """

    def __init__(self, *, db_path: Path, max_sessions: int = 4096) -> None:
        self._max_sessions = max_sessions
        self._db_path = db_path.resolve()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = Lock()
        # check_same_thread=False because sync routes run in the threadpool.
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sessions (
              session_key TEXT PRIMARY KEY,
              user_json TEXT NOT NULL,
              updated_at REAL NOT NULL
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def load(self, key: str) -> User | None:
        with self._lock:
            cur = self._conn.execute(
                "SELECT user_json FROM sessions WHERE session_key = ?",
                (key,),
            )
            row = cur.fetchone()
            if row is None:
                return None

            try:
                user = User.from_record(json.loads(row[0]))
            except (ValueError, TypeError, AttributeError):
                logger.warning("Dropping unreadable session record")
                self._conn.execute("DELETE FROM sessions WHERE session_key = ?", (key,))
                self._conn.commit()
                return None

            # Touch updated_at for LRU-ish eviction.
            self._conn.execute(
                "UPDATE sessions SET updated_at = ? WHERE session_key = ?",
                (time.time(), key),
            )
            self._conn.commit()
            return user

    def save(self, key: str, user: User) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO sessions(session_key, user_json, updated_at) "
                "VALUES (?, ?, ?)",
                (key, json.dumps(user.to_record()), time.time()),
            )
            self._conn.commit()
            self._evict_if_needed()

    def remove(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM sessions WHERE session_key = ?", (key,))
            self._conn.commit()

    def _evict_if_needed(self) -> None:
        # Cap number of sessions. Remove least-recently-updated first.
        cur = self._conn.execute("SELECT COUNT(*) FROM sessions")
        (count,) = cur.fetchone() or (0,)
        if count <= self._max_sessions:
            return

        to_delete = count - self._max_sessions
        self._conn.execute(
            "DELETE FROM sessions WHERE session_key IN ("
            "SELECT session_key FROM sessions ORDER BY updated_at ASC LIMIT ?"
            ")",
            (to_delete,),
        )
        self._conn.commit()
        logger.info("Evicted %d least recently used session(s)", to_delete)


def create_session_store(settings: Settings) -> SessionStore:
    return SessionStore(db_path=settings.session_db, max_sessions=settings.max_sessions)
