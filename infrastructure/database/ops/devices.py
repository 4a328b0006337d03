"""Database operations for the field-device directory."""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any

from fieldflow.utils.time import iso_now

logger = logging.getLogger(__name__)


class DeviceOperations:
    """Device rows: ownership, automation settings and last-known health."""

    def insert_device(
        self,
        *,
        device_id: str,
        user_id: int,
        name: str = "",
        farm_id: int | None = None,
        automation_enabled: bool = True,
        moisture_threshold: float = 60,
        crop_type: str | None = "vegetables",
        irrigation_duration: int = 30,
        soil_type: str | None = None,
    ) -> bool:
        try:
            now = iso_now()
            with self.connection() as db:
                db.execute(
                    """
                    INSERT INTO Devices (
                        device_id, user_id, farm_id, name, automation_enabled,
                        moisture_threshold, crop_type, irrigation_duration, soil_type,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        device_id,
                        user_id,
                        farm_id,
                        name,
                        1 if automation_enabled else 0,
                        moisture_threshold,
                        crop_type,
                        irrigation_duration,
                        soil_type,
                        now,
                        now,
                    ),
                )
            return True
        except sqlite3.Error as exc:
            logger.error("Failed to insert device %s: %s", device_id, exc)
            return False

    def get_device_row(self, device_id: str) -> dict[str, Any] | None:
        try:
            db = self.get_db()
            row = db.execute("SELECT * FROM Devices WHERE device_id = ?", (device_id,)).fetchone()
        except sqlite3.Error as exc:
            logger.error("Failed to load device %s: %s", device_id, exc)
            return None
        if row is None:
            return None
        data = dict(row)
        raw = data.get("last_sensor_data")
        data["last_sensor_data"] = json.loads(raw) if raw else None
        return data

    def list_device_rows(self, user_id: int | None = None) -> list[dict[str, Any]]:
        try:
            db = self.get_db()
            if user_id is None:
                rows = db.execute("SELECT * FROM Devices ORDER BY device_id").fetchall()
            else:
                rows = db.execute("SELECT * FROM Devices WHERE user_id = ? ORDER BY device_id", (user_id,)).fetchall()
            return [dict(r) for r in rows]
        except sqlite3.Error as exc:
            logger.error("Failed to list devices: %s", exc)
            return []

    def update_device_sensor_data(self, device_id: str, sensor_data: dict[str, Any]) -> bool:
        try:
            with self.connection() as db:
                cur = db.execute(
                    "UPDATE Devices SET last_sensor_data = ?, updated_at = ? WHERE device_id = ?",
                    (json.dumps(sensor_data), iso_now(), device_id),
                )
            return cur.rowcount > 0
        except sqlite3.Error as exc:
            logger.error("Failed to store sensor data for %s: %s", device_id, exc)
            return False

    def update_device_status(
        self,
        device_id: str,
        *,
        status: str,
        battery_level: float | None = None,
        battery_status: str | None = None,
        signal_strength: str | None = None,
        last_seen: str | None = None,
    ) -> bool:
        """Overwrite status; health columns are only replaced when a value is given."""
        try:
            with self.connection() as db:
                cur = db.execute(
                    """
                    UPDATE Devices SET
                        status = ?,
                        battery_level = COALESCE(?, battery_level),
                        battery_status = COALESCE(?, battery_status),
                        signal_strength = COALESCE(?, signal_strength),
                        last_seen = COALESCE(?, last_seen),
                        updated_at = ?
                    WHERE device_id = ?
                    """,
                    (status, battery_level, battery_status, signal_strength, last_seen, iso_now(), device_id),
                )
            return cur.rowcount > 0
        except sqlite3.Error as exc:
            logger.error("Failed to update status for %s: %s", device_id, exc)
            return False
