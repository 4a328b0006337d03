from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class TelemetrySnapshot:
    """Latest reading reported by a device; replaced wholesale on every message."""

    soil_moisture: float | None = None
    temperature: float | None = None
    humidity: float | None = None
    rainfall: float | None = None
    evaporation: float | None = None
    battery_level: float | None = None
    signal_strength: str | None = None
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "soilMoisture": self.soil_moisture,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "rainfall": self.rainfall,
            "evaporation": self.evaporation,
            "battery": self.battery_level,
            "signalStrength": self.signal_strength,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
