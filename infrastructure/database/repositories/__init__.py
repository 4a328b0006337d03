"""Repository facades exposing typed accessors over the low-level ops mixins."""

from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.repositories.irrigation_sessions import IrrigationSessionRepository

__all__ = ["DeviceRepository", "IrrigationSessionRepository"]
