"""
Database utility helpers.

Provides consistent transaction handling for SQLite connections used across
services. Using an explicit context manager avoids relying on implicit commit
semantics and guarantees rollback on any exception.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator

from src.utils.logging_config import get_logger


logger = get_logger(__name__)


class TransactionError(Exception):
    """Raised when a database transaction fails."""

    pass


@contextmanager
def transactional(
    conn: sqlite3.Connection, *, immediate: bool = False
) -> Iterator[sqlite3.Connection]:
    """
    Provide a transactional scope around a series of database operations.

    Ensures an explicit BEGIN/COMMIT pair and performs rollback when any
    exception escapes the context block. ``immediate`` takes the database
    write lock at BEGIN so read-then-write sequences cannot interleave with
    another writer. SQLite failures surface as TransactionError; any other
    exception is re-raised unchanged after the rollback.
    """
    try:
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    except sqlite3.Error as exc:
        logger.error("transaction_begin_failed", error=str(exc))
        raise TransactionError("Could not start database transaction") from exc

    try:
        yield conn
    except sqlite3.Error as exc:
        logger.error("transaction_rollback", error=str(exc))
        conn.rollback()
        raise TransactionError("Database transaction failed") from exc
    except BaseException:
        conn.rollback()
        raise
    else:
        try:
            conn.commit()
        except sqlite3.Error as exc:
            logger.error("transaction_commit_failed", error=str(exc))
            conn.rollback()
            raise TransactionError("Database commit failed") from exc
