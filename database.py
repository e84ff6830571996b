import sqlite3
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
from contextlib import contextmanager
from pathlib import Path

from config import config

logger = logging.getLogger(__name__)

DEFAULT_SLOT = "default"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SessionStore:
    """Durable storage for the dashboard's bearer token and user record"""

    def __init__(self, db_path: str = None, ttl_hours: int = None):
        self.db_path = db_path or config.database_path
        self.ttl = timedelta(hours=ttl_hours or config.SESSION_TTL_HOURS)
        self._init_db()

    def _init_db(self):
        """Initialize database schema"""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS auth_sessions (
                    slot TEXT PRIMARY KEY,
                    token TEXT NOT NULL,
                    user_data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    expires_at TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_auth_sessions_expires
                ON auth_sessions(expires_at)
            """)

            logger.info("Session store initialized")

    @contextmanager
    def get_connection(self):
        """Get database connection context manager"""
        conn = sqlite3.connect(
            self.db_path,
            timeout=30.0,
            isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def save_auth(self, token: str, user: Dict[str, Any], slot: str = DEFAULT_SLOT) -> None:
        """Persist the bearer token and user, replacing any previous login"""
        expires_at = (_utcnow() + self.ttl).isoformat()

        with self.get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO auth_sessions (slot, token, user_data, expires_at)
                VALUES (?, ?, ?, ?)
            """, (slot, token, json.dumps(user), expires_at))

        logger.info(f"Saved auth session for {user.get('email')}")

    def load_auth(self, slot: str = DEFAULT_SLOT) -> Optional[Dict[str, Any]]:
        """Return {"token", "user"} or None when absent, expired or corrupt"""
        with self.get_connection() as conn:
            row = conn.execute("""
                SELECT token, user_data, expires_at FROM auth_sessions
                WHERE slot = ?
            """, (slot,)).fetchone()

        if not row:
            return None

        if row['expires_at'] and datetime.fromisoformat(row['expires_at']) < _utcnow():
            logger.info("Stored auth session expired")
            self.clear_auth(slot)
            return None

        try:
            user = json.loads(row['user_data'])
        except json.JSONDecodeError:
            logger.warning("Stored user data is corrupt, clearing auth session")
            self.clear_auth(slot)
            return None

        return {"token": row['token'], "user": user}

    def clear_auth(self, slot: str = DEFAULT_SLOT) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM auth_sessions WHERE slot = ?", (slot,))
            return cursor.rowcount > 0

    def cleanup_expired_sessions(self) -> int:
        """Clean up expired sessions"""
        with self.get_connection() as conn:
            cursor = conn.execute("""
                DELETE FROM auth_sessions
                WHERE expires_at < ?
            """, (_utcnow().isoformat(),))

            deleted = cursor.rowcount
            if deleted > 0:
                logger.info(f"Cleaned up {deleted} expired sessions")

            return deleted
