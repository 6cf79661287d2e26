"""
Database connection management.

Provides SQLite connection for conversation persistence.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "ai_chat_guard.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Parent directories of ``db_path`` are created if missing.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    if path.parent != Path("."):
        path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))
