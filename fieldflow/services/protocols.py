"""
Service protocols (structural typing interfaces).

The core services depend on these minimal surfaces rather than on the
SQLite repositories or the MQTT notifier directly, so tests can pass plain
fakes and the persistence backend can be swapped.

At runtime ``DeviceRepository``, ``IrrigationSessionRepository`` and
``MQTTCriticalAlertNotifier`` satisfy them via structural subtyping.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from fieldflow.domain.device import DeviceConfig, DeviceRecord
from fieldflow.domain.session import IrrigationSession
from fieldflow.domain.telemetry import TelemetrySnapshot


@runtime_checkable
class DeviceDirectory(Protocol):
    """Lookup and health updates for registered field devices."""

    def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        """Return the device, or ``None`` if it is not registered."""
        ...

    def get_config(self, device_id: str) -> Optional[DeviceConfig]:
        ...

    def get_last_sensor_data(self, device_id: str) -> Optional[TelemetrySnapshot]:
        ...

    def update_sensor_data(self, device_id: str, telemetry: TelemetrySnapshot) -> bool:
        ...

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
        ...


@runtime_checkable
class SessionStore(Protocol):
    """Durable session history. Returns False instead of raising on failure."""

    def create(self, session: IrrigationSession) -> bool:
        ...

    def update(self, session: IrrigationSession) -> bool:
        ...

    def mark(self, session_id: str, *, status: str, ended_at: str | None = None, notes: str | None = None) -> bool:
        ...

    def find_active_by_device(self, device_id: str) -> Optional[dict[str, Any]]:
        ...

    def find_non_terminal(self) -> list[dict[str, Any]]:
        ...


@runtime_checkable
class CriticalAlertNotifier(Protocol):
    def notify_critical(self, device: DeviceRecord, alert: dict[str, Any]) -> None:
        """Escalate a critical device alert outside the live dashboard."""
        ...
