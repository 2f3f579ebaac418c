"""
Tool Usage - Which tools get called, how often, and when.

Every dispatched tool call bumps a counter in the profile's tool_usage
table. Diagnostics only: a failed write is logged and never breaks the
tool call itself.
"""

import logging
import sqlite3
from typing import Any, Dict

from eclipse_core.models import to_timestamp, utc_now
from eclipse_core.storage import Storage

logger = logging.getLogger("eclipse_core.usage")


class UsageRecorder:
    """Counts tool calls in one profile store."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def record(self, tool_name: str) -> None:
        """Increment the counter for a tool (creating it on first call)."""
        if not tool_name:
            return

        timestamp = to_timestamp(utc_now())
        try:
            self.storage.db.execute(
                """
                INSERT INTO tool_usage (tool_name, call_count, last_called, first_called)
                VALUES (?, 1, ?, ?)
                ON CONFLICT(tool_name) DO UPDATE SET
                    call_count = call_count + 1,
                    last_called = excluded.last_called
                """,
                (tool_name, timestamp, timestamp),
            )
            self.storage.db.commit()
        except sqlite3.Error as e:
            # Don't fail the tool call if counting fails
            logger.warning(f"Failed to record usage of {tool_name}: {e}")

    def counters(self) -> Dict[str, Dict[str, Any]]:
        """All counters, most used first.

        Returns:
            {tool_name: {"call_count", "first_called_at", "last_called_at"}}
        """
        try:
            rows = self.storage.db.execute(
                "SELECT * FROM tool_usage ORDER BY call_count DESC, tool_name"
            ).fetchall()
        except sqlite3.Error as e:
            logger.warning(f"Failed to read tool usage: {e}")
            return {}

        return {
            row["tool_name"]: {
                "call_count": row["call_count"] or 0,
                "first_called_at": row["first_called"],
                "last_called_at": row["last_called"],
            }
            for row in rows
        }

    def count(self, tool_name: str) -> int:
        return self.counters().get(tool_name, {}).get("call_count", 0)
