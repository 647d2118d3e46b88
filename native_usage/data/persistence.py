"""Snapshot persistence for native usage panels.

One SQLite row per range key holds the last panel written and the epoch
second it was written at. Data lives in ~/.native_usage/ to survive
restarts.
"""

from __future__ import annotations

import json
import os
import sqlite3
import time
from pathlib import Path
from typing import Callable, List, Optional

from .models import CachedSnapshot, UsagePanel


def get_data_dir() -> Path:
    """Get user-persistent data directory.

    Returns ~/.native_usage/ by default, or NATIVE_USAGE_DATA_DIR env var.
    Creates the directory if it doesn't exist.
    """
    data_dir = Path(os.environ.get("NATIVE_USAGE_DATA_DIR", Path.home() / ".native_usage"))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


class SnapshotStore:
    """Persistent storage for native usage snapshots keyed by range."""

    def __init__(self, data_dir: Optional[Path] = None, clock: Callable[[], float] = time.time):
        self.data_dir = Path(data_dir) if data_dir else get_data_dir()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.data_dir / "usage.db"
        self._clock = clock
        self._init_db()

    def _init_db(self) -> None:
        """Create database tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS native_snapshots (
                    range_key TEXT PRIMARY KEY,
                    synced_ts INTEGER,
                    panel JSON
                )
            """)

    def load_native_snapshot(self, range_key: str) -> Optional[CachedSnapshot]:
        """Load the snapshot stored for a range.

        Returns:
            CachedSnapshot, or None if nothing was stored. A record whose
            panel cannot be decoded comes back with panel=None.
        """
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT synced_ts, panel FROM native_snapshots WHERE range_key = ?",
                (range_key,),
            ).fetchone()

        if not row:
            return None

        synced_ts, panel_json = row
        panel = None
        if panel_json:
            try:
                data = json.loads(panel_json)
                if isinstance(data, dict):
                    panel = UsagePanel.from_dict(data)
            except (json.JSONDecodeError, TypeError, ValueError):
                panel = None
        return CachedSnapshot(panel=panel, synced_ts=synced_ts)

    def save_native_snapshot(self, range_key: str, panel: UsagePanel) -> None:
        """Overwrite the snapshot for a range, stamping it with the current time."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO native_snapshots (range_key, synced_ts, panel) VALUES (?, ?, ?)",
                (range_key, int(self._clock()), json.dumps(panel.to_dict())),
            )

    def clear_native_snapshots(self, range_key: Optional[str] = None) -> int:
        """Remove one snapshot, or all of them.

        Returns number of rows deleted.
        """
        with sqlite3.connect(self.db_path) as conn:
            if range_key:
                cursor = conn.execute("DELETE FROM native_snapshots WHERE range_key = ?", (range_key,))
            else:
                cursor = conn.execute("DELETE FROM native_snapshots")
            return cursor.rowcount

    def list_range_keys(self) -> List[str]:
        """List range keys that have a stored snapshot."""
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute("SELECT range_key FROM native_snapshots ORDER BY range_key").fetchall()
        return [r[0] for r in rows]
