"""
Inbound Device Message Schemas
==============================

One model per MQTT channel family. Field names follow the device firmware's
JSON keys. Anything that fails validation here is turned into a ParseError by
:func:`parse_message` and dropped by the ingestion gateway.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from fieldflow.domain.exceptions import ParseError
from fieldflow.enums import AlertSeverity, DeviceStatus

MessageT = TypeVar("MessageT", bound=BaseModel)


class SensorDataMessage(BaseModel):
    """Payload on ``telemetry/sensor/{deviceId}/data``."""

    model_config = ConfigDict(extra="ignore")

    soilMoisture: float | None = Field(default=None, ge=0, le=100)
    temperature: float | None = Field(default=None, ge=-60, le=80)
    humidity: float | None = Field(default=None, ge=0, le=100)
    rainfall: float | None = Field(default=None, ge=0)
    evaporation: float | None = Field(default=None, ge=0)
    battery: float | None = Field(default=None, ge=0, le=100)
    signalStrength: str | None = None
    timestamp: str | None = None


class DeviceStatusMessage(BaseModel):
    """Payload on ``telemetry/device/{deviceId}/status``."""

    model_config = ConfigDict(extra="ignore")

    status: DeviceStatus
    battery: float | None = Field(default=None, ge=0, le=100)
    batteryStatus: str | None = None
    signalStrength: str | None = None


class ControlResponseMessage(BaseModel):
    """Payload on ``control/{deviceId}/response``.

    Firmware decides the shape of a response, so nothing is type-checked and
    unknown keys are kept for the passthrough broadcast.
    """

    model_config = ConfigDict(extra="allow")

    action: Any = None
    correlationId: Any = None
    status: Any = None


class AlertMessage(BaseModel):
    """Payload on ``alert/{deviceId}``.

    Any severity is accepted and forwarded; only ``critical`` triggers a
    notification.
    """

    model_config = ConfigDict(extra="allow")

    severity: str = AlertSeverity.WARNING.value
    message: str = ""

    @field_validator("severity", "message", mode="before")
    @classmethod
    def as_text(cls, v, info):
        if v is None:
            return cls.model_fields[info.field_name].default
        return v if isinstance(v, str) else str(v)


def parse_message(model: type[MessageT], payload: bytes | str, *, topic: str = "") -> MessageT:
    """Decode a raw MQTT payload into ``model``.

    Raises:
        ParseError: payload is not UTF-8 JSON, not an object, or fails validation.
    """
    try:
        text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
        data: Any = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ParseError(f"Invalid JSON on {topic}: {exc}", detail={"topic": topic}) from exc

    if not isinstance(data, dict):
        raise ParseError(f"Non-object payload on {topic}", detail={"topic": topic})

    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ParseError(
            f"Invalid {model.__name__} on {topic}",
            detail={"topic": topic, "errors": exc.errors(include_url=False)},
        ) from exc
