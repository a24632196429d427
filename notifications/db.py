"""Notification Database Operations."""

import json
import sqlite3
from typing import Any, Dict, List, Optional

from core.db import DbPath, default_db_path, get_db_connection, utc_now
from notifications.models import Notification, NotificationStatus, NotificationType, RelatedModel


def init_notifications_db(db_path: DbPath = None) -> None:
    """Initialize the notifications table."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                related_model TEXT,
                related_id TEXT,
                status TEXT NOT NULL DEFAULT 'info',
                is_read INTEGER NOT NULL DEFAULT 0,
                metadata TEXT NOT NULL DEFAULT '{}',
                created_by TEXT,
                created_at TEXT NOT NULL,
                resolved_at TEXT,
                resolved_by TEXT
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_notifications_related ON notifications(related_model, related_id, status)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_notifications_created ON notifications(created_at)")
    finally:
        conn.close()


def _row_to_notification(row: sqlite3.Row) -> Notification:
    data = dict(row)
    data["metadata"] = json.loads(data["metadata"] or "{}")
    return Notification.model_validate(data)


def insert_notification(
    type: NotificationType,
    title: str,
    message: str,
    status: NotificationStatus = NotificationStatus.INFO,
    related_model: Optional[RelatedModel] = None,
    related_id: Optional[Any] = None,
    metadata: Optional[Dict[str, Any]] = None,
    created_by: Optional[str] = None,
    db_path: DbPath = None,
) -> Notification:
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            """
            INSERT INTO notifications
                (type, title, message, related_model, related_id, status, metadata, created_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                type.value,
                title,
                message,
                related_model.value if related_model else None,
                str(related_id) if related_id is not None else None,
                status.value,
                json.dumps(metadata or {}, default=str),
                created_by,
                utc_now(),
            ),
        )
        row = conn.execute("SELECT * FROM notifications WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return _row_to_notification(row)
    finally:
        conn.close()


def get_notification(notification_id: int, db_path: DbPath = None) -> Optional[Notification]:
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
        return _row_to_notification(row) if row else None
    finally:
        conn.close()


def list_notifications(
    db_path: DbPath = None,
    status: Optional[NotificationStatus] = None,
    unread_only: bool = False,
    related_model: Optional[RelatedModel] = None,
    related_id: Optional[Any] = None,
    limit: int = 100,
) -> List[Notification]:
    """Newest first."""
    db_path = db_path or default_db_path()
    query = "SELECT * FROM notifications WHERE 1=1"
    params: List[Any] = []

    if status:
        query += " AND status = ?"
        params.append(status.value)
    if unread_only:
        query += " AND is_read = 0"
    if related_model:
        query += " AND related_model = ?"
        params.append(related_model.value)
    if related_id is not None:
        query += " AND related_id = ?"
        params.append(str(related_id))

    query += " ORDER BY id DESC LIMIT ?"
    params.append(limit)

    conn = get_db_connection(db_path)
    try:
        return [_row_to_notification(r) for r in conn.execute(query, params).fetchall()]
    finally:
        conn.close()


def count_unread(db_path: DbPath = None) -> int:
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        return conn.execute("SELECT COUNT(*) FROM notifications WHERE is_read = 0").fetchone()[0]
    finally:
        conn.close()


def mark_read(notification_id: int, db_path: DbPath = None) -> bool:
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute("UPDATE notifications SET is_read = 1 WHERE id = ?", (notification_id,))
        return cursor.rowcount > 0
    finally:
        conn.close()


def mark_all_read(db_path: DbPath = None) -> int:
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        return conn.execute("UPDATE notifications SET is_read = 1 WHERE is_read = 0").rowcount
    finally:
        conn.close()


def close_pending(
    related_model: RelatedModel,
    related_id: Any,
    status: NotificationStatus,
    resolved_by: str,
    db_path: DbPath = None,
) -> int:
    """Move every pending notification about one object to `status`.

    Returns:
        Number of notifications closed
    """
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            """
            UPDATE notifications
            SET status = ?, resolved_at = ?, resolved_by = ?
            WHERE related_model = ? AND related_id = ? AND status = ?
            """,
            (status.value, utc_now(), resolved_by, related_model.value, str(related_id),
             NotificationStatus.PENDING.value),
        )
        return cursor.rowcount
    finally:
        conn.close()


def set_status(notification_id: int, status: NotificationStatus, resolved_by: str, db_path: DbPath = None) -> bool:
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            "UPDATE notifications SET status = ?, resolved_at = ?, resolved_by = ? WHERE id = ?",
            (status.value, utc_now(), resolved_by, notification_id),
        )
        return cursor.rowcount > 0
    finally:
        conn.close()
