"""
Schemas Module
==============

Pydantic models for inbound device messages, outbound broadcast payloads,
device commands and HTTP request bodies.
"""

from fieldflow.schemas.commands import CommandEnvelope
from fieldflow.schemas.events import (
    ControlResponsePayload,
    DeviceAlertPayload,
    DeviceStatusPayload,
    IrrigationSessionPayload,
    SensorUpdatePayload,
)
from fieldflow.schemas.irrigation import (
    EmergencyStopRequest,
    StartSessionRequest,
    StopSessionRequest,
    TrainingCycleRequest,
)
from fieldflow.schemas.telemetry import (
    AlertMessage,
    ControlResponseMessage,
    DeviceStatusMessage,
    SensorDataMessage,
    parse_message,
)

__all__ = [
    "AlertMessage",
    "CommandEnvelope",
    "ControlResponseMessage",
    "ControlResponsePayload",
    "DeviceAlertPayload",
    "DeviceStatusMessage",
    "DeviceStatusPayload",
    "EmergencyStopRequest",
    "IrrigationSessionPayload",
    "SensorDataMessage",
    "SensorUpdatePayload",
    "StartSessionRequest",
    "StopSessionRequest",
    "TrainingCycleRequest",
    "parse_message",
]
