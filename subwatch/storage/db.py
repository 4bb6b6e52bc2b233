"""
Database connection management.

Provides SQLite connections for subscription and usage persistence.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "subwatch.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    Foreign keys must be on for usage log entries to be removed together
    with their subscription.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
