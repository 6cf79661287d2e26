"""
Repository pattern for data access.

Key/value persistence of serialized conversations in SQLite. Every call opens
and closes its own connection.
"""

from datetime import datetime
from typing import List, Optional

from .db import DEFAULT_DB_PATH, get_connection


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the conversation_store table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversation_store (
                key TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def save_entry(key: str, data: str, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert or replace the value stored under ``key``.

    Args:
        key: Storage key
        data: Serialized value
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO conversation_store (key, data, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                data = excluded.data,
                updated_at = excluded.updated_at
        """, (key, data, datetime.now().isoformat()))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def load_entry(key: str, db_path: str = DEFAULT_DB_PATH) -> Optional[str]:
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("SELECT data FROM conversation_store WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None
    finally:
        conn.close()


def delete_entry(key: str, db_path: str = DEFAULT_DB_PATH) -> None:
    conn = get_connection(db_path)
    try:
        conn.execute("DELETE FROM conversation_store WHERE key = ?", (key,))
        conn.commit()
    finally:
        conn.close()


def list_entry_keys(prefix: str = "", db_path: str = DEFAULT_DB_PATH) -> List[str]:
    """List stored keys starting with ``prefix``.

    Args:
        prefix: Key prefix filter (empty matches every key)
        db_path: Path to SQLite database file

    Returns:
        Matching keys, most recently updated first
    """
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(
            "SELECT key FROM conversation_store WHERE substr(key, 1, ?) = ? "
            "ORDER BY updated_at DESC",
            (len(prefix), prefix)
        )
        return [row[0] for row in cursor.fetchall()]
    finally:
        conn.close()
