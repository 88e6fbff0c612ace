"""
Database initialization and connection management for the Marketplace Reconciliation Core.

This module handles:
- Creating the data directory if it doesn't exist
- Setting up SQLite with WAL mode and foreign keys
- Providing database connection utilities
"""

import sqlite3
import threading
from pathlib import Path
from typing import Optional, Set

from src.core.config import Config
from src.utils.logging_config import get_logger

logger = get_logger(__name__)


_SCHEMA_LOCK = threading.Lock()
_SCHEMA_INITIALIZED_PATHS: Set[str] = set()


def ensure_data_directory(db_path: Optional[str] = None) -> None:
    """Create the data directory if it doesn't exist."""
    data_dir = Path(db_path or Config.DB_PATH).parent

    if not data_dir.exists():
        data_dir.mkdir(parents=True, exist_ok=True)
        logger.info("data_directory_created", path=str(data_dir))


def get_db_connection(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Get a database connection with proper configuration.

    Args:
        db_path: Path to the SQLite database file. If None, uses Config.DB_PATH.

    Returns:
        Configured SQLite connection with WAL mode and foreign keys enabled.
    """
    if db_path is None:
        db_path = Config.DB_PATH

    if db_path != ":memory:":
        ensure_data_directory(db_path)

    # Create connection with row factory for dict-like access
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA temp_store = MEMORY")

    # Ensure the schema exists once per database file per process
    if db_path == ":memory:" or db_path not in _SCHEMA_INITIALIZED_PATHS:
        with _SCHEMA_LOCK:
            # Local import avoids circular dependency during module load
            from src.core.schema import create_schema

            create_schema(conn)
            if db_path != ":memory:":
                _SCHEMA_INITIALIZED_PATHS.add(db_path)

    return conn


def initialize_database(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Initialize the database with schema and seed data.

    Args:
        db_path: Path to the SQLite database file. If None, uses Config.DB_PATH.

    Returns:
        Database connection with initialized schema.
    """
    conn = get_db_connection(db_path)

    # Import here to avoid circular imports
    from src.core.schema import create_schema
    from src.core.seed_data import insert_seed_data

    create_schema(conn)
    insert_seed_data(conn)

    return conn


def close_connection(conn: sqlite3.Connection) -> None:
    """
    Close the database connection properly.

    Args:
        conn: Database connection to close.
    """
    if conn:
        conn.close()
