"""
Device Domain Objects
=====================
Field-device configuration as the device directory returns it, plus the
per-device connectivity state the ingestion gateway keeps in memory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fieldflow.domain.telemetry import TelemetrySnapshot
from fieldflow.enums import CropType, DeviceStatus

DEFAULT_IRRIGATION_DURATION = 30
DEFAULT_MOISTURE_THRESHOLD = 60.0


@dataclass(frozen=True)
class DeviceConfig:
    """Automation settings for one field device."""

    automation_enabled: bool = True
    moisture_threshold: float = DEFAULT_MOISTURE_THRESHOLD
    crop_type: str | None = CropType.VEGETABLES.value
    irrigation_duration: int = DEFAULT_IRRIGATION_DURATION
    soil_type: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DeviceConfig":
        """Build from a persisted row or a loose dict; a missing crop type stays None."""
        data = data or {}
        automation = data.get("automation_enabled", data.get("automationEnabled", True))
        threshold = data.get("moisture_threshold", data.get("moistureThreshold"))
        duration = data.get("irrigation_duration", data.get("irrigationDuration"))
        return cls(
            automation_enabled=bool(automation),
            moisture_threshold=float(threshold) if threshold is not None else DEFAULT_MOISTURE_THRESHOLD,
            crop_type=data.get("crop_type", data.get("cropType")),
            irrigation_duration=int(duration) if duration is not None else DEFAULT_IRRIGATION_DURATION,
            soil_type=data.get("soil_type", data.get("soilType")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "automationEnabled": self.automation_enabled,
            "moistureThreshold": self.moisture_threshold,
            "cropType": self.crop_type,
            "irrigationDuration": self.irrigation_duration,
            "soilType": self.soil_type,
        }


@dataclass(frozen=True)
class DeviceRecord:
    """A registered device and the user that owns it."""

    device_id: str
    user_id: int
    name: str = ""
    farm_id: int | None = None
    config: DeviceConfig = field(default_factory=DeviceConfig)


@dataclass
class DeviceState:
    """Last-known connectivity and health of a device, as seen over MQTT."""

    device_id: str
    status: str = DeviceStatus.OFFLINE.value
    battery: float | None = None
    battery_status: str | None = None
    signal_strength: str | None = None
    last_seen: datetime | None = None
    telemetry: TelemetrySnapshot | None = None

    def is_online(self, now: datetime, offline_after_seconds: int) -> bool:
        if self.last_seen is None:
            return False
        return (now - self.last_seen).total_seconds() < offline_after_seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "status": self.status,
            "battery": self.battery,
            "batteryStatus": self.battery_status,
            "signalStrength": self.signal_strength,
            "lastSeen": self.last_seen.isoformat() if self.last_seen else None,
            "telemetry": self.telemetry.to_dict() if self.telemetry else None,
        }
