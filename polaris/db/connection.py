# polaris/db/connection.py
import sqlite3
from contextlib import contextmanager
from typing import Iterator

MEMORY_PATH = ":memory:"


def connect(db_path: str, timeout: float = 60.0) -> sqlite3.Connection:
    # Autosave and submission can hit the same row; wait for the lock instead of failing fast.
    conn = sqlite3.connect(db_path, timeout=timeout)
    conn.row_factory = sqlite3.Row

    # WAL needs a database file.
    if db_path != MEMORY_PATH:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


@contextmanager
def db_session(db_path: str, immediate: bool = False) -> Iterator[sqlite3.Connection]:
    """
    One unit of work: committed on success, rolled back on any error.

    `immediate=True` takes the write lock before the first read, for
    read-modify-write sequences such as merging autosaved answers.
    """
    conn = connect(db_path)
    try:
        if immediate:
            conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
