"""
Database connection management.

Connections are short-lived: every repository call opens its own and
closes it, so they can be used from worker threads.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "promptgate.db"

# Seconds a writer waits for a competing transaction before failing
BUSY_TIMEOUT = 30


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open a connection to the promptgate database.

    The parent directory is created on first use. Write-ahead logging lets
    ledger reads proceed while a quota charge holds the write lock.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT)
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
