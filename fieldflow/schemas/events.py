"""Outbound Socket.IO payloads, one per broadcast event name."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class SensorUpdatePayload(BaseModel):
    deviceId: str
    telemetry: dict[str, Any]
    decision: dict[str, Any]
    timestamp: str


class DeviceStatusPayload(BaseModel):
    deviceId: str
    status: str
    battery: float | None = None
    signalStrength: str | None = None
    timestamp: str


class ControlResponsePayload(BaseModel):
    """Device response forwarded unchanged, plus deviceId and timestamp."""

    model_config = ConfigDict(extra="allow")

    deviceId: str
    timestamp: str


class DeviceAlertPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    deviceId: str
    severity: str
    message: str
    timestamp: str


class IrrigationSessionPayload(BaseModel):
    deviceId: str
    sessionId: str
    status: str
    type: str
    plannedDuration: int
    actualDuration: int = 0
    waterUsed: int = 0
    waterSaved: int = 0
    timestamp: str
