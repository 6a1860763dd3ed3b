"""PRAGMA profiles for the postings store.

Readers only run lookups over ``postings`` and ``positions`` and are opened
``query_only``. The single writer applies whole indexing batches in one
transaction, so it gets the larger page cache and a wider WAL
auto-checkpoint window.
"""

from __future__ import annotations

import sqlite3


READ_CACHE_KB = -16384
WRITE_CACHE_KB = -65536
# Pages appended to the WAL before an automatic checkpoint (SQLite default: 1000).
WRITE_WAL_AUTOCHECKPOINT_PAGES = 4000


def apply_read_pragmas(
    conn: sqlite3.Connection,
    *,
    cache_size_kb: int = READ_CACHE_KB,
    mmap_size_bytes: int = 67108864,
    temp_store: str = "MEMORY",
    query_only: bool = True,
    busy_timeout_ms: int | None = 30000,
) -> None:
    """Apply the lookup profile used by per-thread read connections."""
    if busy_timeout_ms is not None:
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute(f"PRAGMA cache_size = {cache_size_kb}")
    conn.execute(f"PRAGMA mmap_size = {mmap_size_bytes}")
    conn.execute(f"PRAGMA temp_store = {temp_store}")
    if query_only:
        conn.execute("PRAGMA query_only = 1")


def apply_write_pragmas(
    conn: sqlite3.Connection,
    *,
    cache_size_kb: int = WRITE_CACHE_KB,
    mmap_size_bytes: int = 134217728,
    temp_store: str = "MEMORY",
    busy_timeout_ms: int = 30000,
    wal_autocheckpoint_pages: int = WRITE_WAL_AUTOCHECKPOINT_PAGES,
) -> None:
    """Apply the batch-insert profile; switches the database to WAL mode.

    ``foreign_keys`` makes postings and link edges reject unknown documents.
    """
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute(f"PRAGMA wal_autocheckpoint = {wal_autocheckpoint_pages}")
    conn.execute(f"PRAGMA cache_size = {cache_size_kb}")
    conn.execute(f"PRAGMA mmap_size = {mmap_size_bytes}")
    conn.execute(f"PRAGMA temp_store = {temp_store}")


def optimize_for_lookups(conn: sqlite3.Connection) -> None:
    """Refresh planner statistics for the term and position indexes.

    Run on the writer before it closes, after the session's inserts.
    """
    conn.execute("PRAGMA optimize")
