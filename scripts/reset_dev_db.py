"""
Development reset script for the Marketplace Reconciliation Core.

Usage:
  python scripts/reset_dev_db.py            # Reset DB (schema + seed data)
  python scripts/reset_dev_db.py --yes      # Skip confirmation prompt

This script deletes the SQLite database file configured by Config.DB_PATH and
reinitializes it with schema + seed data. The settlement log is append-only,
so a reset is the only way to clear it in development.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure project root is on sys.path so `src` imports work when executed from anywhere
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.core.config import Config
from src.core.database import initialize_database


def main() -> None:
    parser = argparse.ArgumentParser(description="Reset the development database")
    parser.add_argument("--yes", action="store_true", help="Skip confirmation prompt")
    args = parser.parse_args()

    db_path = Path(Config.DB_PATH)

    print("\n=== Marketplace Dev Reset ===")
    print(f"DB path: {db_path}")

    if not args.yes:
        try:
            confirm = input("Type 'RESET' to proceed: ").strip()
        except KeyboardInterrupt:
            print("\nAborted.")
            return
        if confirm.upper() != "RESET":
            print("Aborted.")
            return

    # WAL mode leaves side files next to the database
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()
            print(f"Deleted: {path}")

    conn = initialize_database()
    conn.close()
    print("Reinitialized database (schema + seed data)")

    print("\nReset complete.")


if __name__ == "__main__":
    main()
