"""NotificationService — DuckDB-backed per-user notification inbox."""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import duckdb

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS notifications (
    id           VARCHAR PRIMARY KEY,
    user_id      VARCHAR NOT NULL,
    type         VARCHAR NOT NULL,
    sender_id    VARCHAR,
    reference_id VARCHAR,
    content      VARCHAR,
    is_read      BOOLEAN NOT NULL DEFAULT FALSE,
    created_at   TIMESTAMP NOT NULL
)
"""

_INDEX = "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id)"


class NotificationService:
    """Singleton service storing notifications in DuckDB.

    Rows are owned by a user id; every read or write is scoped to it so one
    user can never touch another user's notifications.
    """

    _instance: Optional["NotificationService"] = None
    _default_db_path: str = "notifications.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        self._db_path = db_path or self._default_db_path
        self._conn: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(self._db_path)
        self._conn.execute(_CREATE_TABLE)
        self._conn.execute(_INDEX)
        logger.info("[NotificationService] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "NotificationService":
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close and forget the singleton (tests and shutdown)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -----------------------------------------------------------------------
    # CRUD
    # -----------------------------------------------------------------------

    def create(
        self,
        user_id: str,
        type_: str,
        sender_id: Optional[str] = None,
        reference_id: Optional[str] = None,
        content: Optional[str] = None,
    ) -> dict:
        notification_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        self._conn.execute(
            """
            INSERT INTO notifications
              (id, user_id, type, sender_id, reference_id, content, is_read, created_at)
            VALUES (?, ?, ?, ?, ?, ?, FALSE, ?)
            """,
            [notification_id, user_id, type_, sender_id, reference_id, content, now],
        )
        return self.get(user_id, notification_id)

    def get(self, user_id: str, notification_id: str) -> Optional[dict]:
        row = self._conn.execute(
            "SELECT * FROM notifications WHERE id = ? AND user_id = ?",
            [notification_id, user_id],
        ).fetchone()
        return self._row_to_dict(row) if row else None

    def list_for_user(
        self, user_id: str, page: int = 1, limit: int = 20
    ) -> Tuple[List[dict], int]:
        """Return one page of a user's notifications (newest first) and the total."""
        offset = (page - 1) * limit
        rows = self._conn.execute(
            """
            SELECT * FROM notifications
            WHERE user_id = ?
            ORDER BY created_at DESC, id
            LIMIT ? OFFSET ?
            """,
            [user_id, limit, offset],
        ).fetchall()
        total = self._conn.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ?", [user_id]
        ).fetchone()[0]
        return [self._row_to_dict(r) for r in rows], total

    def unread_count(self, user_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND NOT is_read",
            [user_id],
        ).fetchone()[0]

    def mark_read(self, user_id: str, notification_id: str) -> Optional[dict]:
        if self.get(user_id, notification_id) is None:
            return None
        self._conn.execute(
            "UPDATE notifications SET is_read = TRUE WHERE id = ? AND user_id = ?",
            [notification_id, user_id],
        )
        return self.get(user_id, notification_id)

    def mark_all_read(self, user_id: str) -> int:
        result = self._conn.execute(
            """
            UPDATE notifications SET is_read = TRUE
            WHERE user_id = ? AND NOT is_read
            RETURNING id
            """,
            [user_id],
        ).fetchall()
        return len(result)

    def delete(self, user_id: str, notification_id: str) -> bool:
        result = self._conn.execute(
            "DELETE FROM notifications WHERE id = ? AND user_id = ? RETURNING id",
            [notification_id, user_id],
        ).fetchone()
        return result is not None

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    _COLUMNS = [
        "id", "user_id", "type", "sender_id", "reference_id", "content",
        "is_read", "created_at",
    ]

    def _row_to_dict(self, row) -> dict:
        d = dict(zip(self._COLUMNS, row))
        if isinstance(d.get("created_at"), datetime):
            d["created_at"] = d["created_at"].isoformat()
        return d
