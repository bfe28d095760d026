"""
SQLite persistence for documents and their embeddings.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from .exceptions import StoreUnavailable


@contextmanager
def get_db(db_path: str, timeout: float = 10.0) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection.

    The transaction is committed when the block exits cleanly and rolled back
    otherwise. ``sqlite3.Error`` surfaces as StoreUnavailable.
    """
    try:
        conn = sqlite3.connect(db_path, timeout=timeout)
    except sqlite3.Error as e:
        raise StoreUnavailable(f"Cannot open database {db_path}: {e}") from e
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise StoreUnavailable(f"Database operation failed: {e}") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path: str, timeout: float = 10.0) -> None:
    """Initialize the database with required tables."""
    with get_db(db_path, timeout) as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                content TEXT NOT NULL,
                embedding BLOB NOT NULL,
                dimension INTEGER NOT NULL,
                idempotency_key TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        # Files created before idempotency keys existed
        cursor.execute("PRAGMA table_info(documents)")
        if "idempotency_key" not in [column[1] for column in cursor.fetchall()]:
            cursor.execute("ALTER TABLE documents ADD COLUMN idempotency_key TEXT")
        cursor.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_documents_idempotency_key ON documents (idempotency_key)"
        )

        # One row per setting; records the dimension the store was created with
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS store_meta (
                name TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        ''')


def health_check(db_path: str, timeout: float = 10.0) -> bool:
    """Check database health."""
    try:
        with get_db(db_path, timeout) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [table[0] for table in cursor.fetchall()]
            return all(table in table_names for table in ('documents', 'store_meta'))
    except StoreUnavailable:
        return False
