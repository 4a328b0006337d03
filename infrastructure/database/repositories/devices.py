from __future__ import annotations

from typing import Any

from fieldflow.domain.device import DeviceConfig, DeviceRecord
from fieldflow.domain.telemetry import TelemetrySnapshot
from fieldflow.utils.time import coerce_datetime
from infrastructure.database.ops.devices import DeviceOperations


def _record_from_row(row: dict[str, Any]) -> DeviceRecord:
    return DeviceRecord(
        device_id=row["device_id"],
        user_id=row["user_id"],
        name=row.get("name") or "",
        farm_id=row.get("farm_id"),
        config=DeviceConfig.from_dict(row),
    )


class DeviceRepository:
    """Device directory used by the session registry and ingestion gateway."""

    def __init__(self, backend: DeviceOperations) -> None:
        self._backend = backend

    def create_device(
        self,
        device_id: str,
        user_id: int,
        *,
        name: str = "",
        farm_id: int | None = None,
        config: DeviceConfig | None = None,
    ) -> bool:
        config = config or DeviceConfig()
        return self._backend.insert_device(
            device_id=device_id,
            user_id=user_id,
            name=name,
            farm_id=farm_id,
            automation_enabled=config.automation_enabled,
            moisture_threshold=config.moisture_threshold,
            crop_type=config.crop_type,
            irrigation_duration=config.irrigation_duration,
            soil_type=config.soil_type,
        )

    def get_device(self, device_id: str) -> DeviceRecord | None:
        row = self._backend.get_device_row(device_id)
        return _record_from_row(row) if row else None

    def get_config(self, device_id: str) -> DeviceConfig | None:
        device = self.get_device(device_id)
        return device.config if device else None

    def list_devices(self, user_id: int | None = None) -> list[DeviceRecord]:
        return [_record_from_row(r) for r in self._backend.list_device_rows(user_id)]

    def get_last_sensor_data(self, device_id: str) -> TelemetrySnapshot | None:
        row = self._backend.get_device_row(device_id)
        data = row.get("last_sensor_data") if row else None
        if not data:
            return None
        return TelemetrySnapshot(
            soil_moisture=data.get("soilMoisture"),
            temperature=data.get("temperature"),
            humidity=data.get("humidity"),
            rainfall=data.get("rainfall"),
            evaporation=data.get("evaporation"),
            battery_level=data.get("battery"),
            signal_strength=data.get("signalStrength"),
            timestamp=coerce_datetime(data.get("timestamp")),
        )

    def update_sensor_data(self, device_id: str, telemetry: TelemetrySnapshot) -> bool:
        return self._backend.update_device_sensor_data(device_id, telemetry.to_dict())

    def update_status(
        self,
        device_id: str,
        status: str,
        *,
        battery: float | None = None,
        battery_status: str | None = None,
        signal_strength: str | None = None,
        last_seen: str | None = None,
    ) -> bool:
        return self._backend.update_device_status(
            device_id,
            status=status,
            battery_level=battery,
            battery_status=battery_status,
            signal_strength=signal_strength,
            last_seen=last_seen,
        )
