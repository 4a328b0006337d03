"""Database operations for irrigation session history."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from fieldflow.utils.time import iso_now

logger = logging.getLogger(__name__)

_NON_TERMINAL = ("pending", "in_progress")

# Columns written on every update after the row exists
_MUTABLE_COLUMNS: tuple[str, ...] = (
    "status",
    "actual_duration",
    "ended_at",
    "water_used",
    "water_saved",
    "efficiency",
    "notes",
)


class IrrigationSessionOperations:
    """Session rows; the registry writes them, history endpoints read them."""

    def insert_irrigation_session(self, row: dict[str, Any]) -> bool:
        try:
            now = iso_now()
            with self.connection() as db:
                db.execute(
                    """
                    INSERT INTO IrrigationSessions (
                        session_id, device_id, user_id, session_type, status,
                        planned_duration, actual_duration, started_at, ended_at,
                        water_used, water_saved, efficiency, water_policy,
                        sensor_data, decision, notes, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        row["session_id"],
                        row["device_id"],
                        row["user_id"],
                        row["session_type"],
                        row["status"],
                        row["planned_duration"],
                        row.get("actual_duration", 0),
                        row["started_at"],
                        row.get("ended_at"),
                        row.get("water_used", 0),
                        row.get("water_saved", 0),
                        row.get("efficiency", 0),
                        row["water_policy"],
                        row.get("sensor_data"),
                        row.get("decision"),
                        row.get("notes"),
                        now,
                        now,
                    ),
                )
            return True
        except sqlite3.Error as exc:
            logger.error("Failed to insert irrigation session %s: %s", row.get("session_id"), exc)
            return False

    def update_irrigation_session(self, session_id: str, values: dict[str, Any]) -> bool:
        columns = [c for c in _MUTABLE_COLUMNS if c in values]
        if not columns:
            return False
        assignments = ", ".join(f"{c} = ?" for c in columns)
        params = [values[c] for c in columns]
        try:
            with self.connection() as db:
                cur = db.execute(
                    f"UPDATE IrrigationSessions SET {assignments}, updated_at = ? WHERE session_id = ?",
                    (*params, iso_now(), session_id),
                )
            return cur.rowcount > 0
        except sqlite3.Error as exc:
            logger.error("Failed to update irrigation session %s: %s", session_id, exc)
            return False

    def get_irrigation_session(self, session_id: str) -> dict[str, Any] | None:
        try:
            row = self.get_db().execute(
                "SELECT * FROM IrrigationSessions WHERE session_id = ?", (session_id,)
            ).fetchone()
            return dict(row) if row else None
        except sqlite3.Error as exc:
            logger.error("Failed to load irrigation session %s: %s", session_id, exc)
            return None

    def get_active_irrigation_session(self, device_id: str) -> dict[str, Any] | None:
        try:
            row = self.get_db().execute(
                """
                SELECT * FROM IrrigationSessions
                WHERE device_id = ? AND status IN (?, ?)
                ORDER BY started_at DESC LIMIT 1
                """,
                (device_id, *_NON_TERMINAL),
            ).fetchone()
            return dict(row) if row else None
        except sqlite3.Error as exc:
            logger.error("Failed to load active session for %s: %s", device_id, exc)
            return None

    def list_non_terminal_irrigation_sessions(self) -> list[dict[str, Any]]:
        try:
            rows = self.get_db().execute(
                "SELECT * FROM IrrigationSessions WHERE status IN (?, ?) ORDER BY started_at",
                _NON_TERMINAL,
            ).fetchall()
            return [dict(r) for r in rows]
        except sqlite3.Error as exc:
            logger.error("Failed to list non-terminal sessions: %s", exc)
            return []

    def list_irrigation_sessions_for_device(self, device_id: str, limit: int = 50) -> list[dict[str, Any]]:
        try:
            rows = self.get_db().execute(
                "SELECT * FROM IrrigationSessions WHERE device_id = ? ORDER BY started_at DESC LIMIT ?",
                (device_id, limit),
            ).fetchall()
            return [dict(r) for r in rows]
        except sqlite3.Error as exc:
            logger.error("Failed to list sessions for %s: %s", device_id, exc)
            return []
