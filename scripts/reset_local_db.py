"""Utility script to reset the local SQLite database.

Usage:
    python scripts/reset_local_db.py

Environment:
    Ensure DATABASE_URL is available in the current shell before running
    this script. Every request, escalation and API key is deleted.
"""

from __future__ import annotations

from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from approval_broker.config import get_settings  # noqa: E402
from approval_broker.db import Store  # noqa: E402


def reset_database(database_url: str | None = None) -> None:
    store = Store(database_url or get_settings().database_url)
    try:
        store.drop_all()
        store.create_all()
    finally:
        store.dispose()
    print("Local database reset.")


if __name__ == "__main__":
    reset_database()
