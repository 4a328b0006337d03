"""
MQTT topic layout for field devices.

=====================================  =======  ==========================
Topic                                  QoS      Direction
=====================================  =======  ==========================
``telemetry/sensor/{deviceId}/data``   1        device -> coordinator
``telemetry/device/{deviceId}/status`` 1        device -> coordinator
``control/{deviceId}/response``        1        device -> coordinator
``alert/{deviceId}``                   2        device -> coordinator
``control/{deviceId}/command``         1        coordinator -> device
=====================================  =======  ==========================

All topics may share a deployment prefix (``FIELDFLOW_MQTT_TOPIC_PREFIX``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ChannelFamily(str, Enum):
    SENSOR_DATA = "sensor-data"
    DEVICE_STATUS = "device-status"
    CONTROL_RESPONSE = "control-response"
    ALERT = "alert"


@dataclass(frozen=True)
class ChannelDef:
    family: ChannelFamily
    template: str
    qos: int
    # index of the device id segment once the prefix is stripped
    device_index: int

    def subscription(self, prefix: str = "") -> str:
        return join_topic(prefix, self.template.format(device_id="+"))

    def topic_for(self, device_id: str, prefix: str = "") -> str:
        return join_topic(prefix, self.template.format(device_id=device_id))


INBOUND_CHANNELS: tuple[ChannelDef, ...] = (
    ChannelDef(ChannelFamily.SENSOR_DATA, "telemetry/sensor/{device_id}/data", qos=1, device_index=2),
    ChannelDef(ChannelFamily.DEVICE_STATUS, "telemetry/device/{device_id}/status", qos=1, device_index=2),
    ChannelDef(ChannelFamily.CONTROL_RESPONSE, "control/{device_id}/response", qos=1, device_index=1),
    ChannelDef(ChannelFamily.ALERT, "alert/{device_id}", qos=2, device_index=1),
)

COMMAND_TEMPLATE = "control/{device_id}/command"


def join_topic(prefix: str, topic: str) -> str:
    prefix = prefix.strip("/")
    return f"{prefix}/{topic}" if prefix else topic


def command_topic(device_id: str, prefix: str = "") -> str:
    return join_topic(prefix, COMMAND_TEMPLATE.format(device_id=device_id))


def parse_topic(topic: str, prefix: str = "") -> tuple[ChannelFamily, str] | None:
    """Map a concrete topic to ``(family, device_id)``; None if it is not a device channel."""
    prefix = prefix.strip("/")
    if prefix:
        if not topic.startswith(prefix + "/"):
            return None
        topic = topic[len(prefix) + 1 :]

    parts = topic.split("/")
    for channel in INBOUND_CHANNELS:
        expected = channel.template.split("/")
        if len(parts) != len(expected):
            continue
        if all(e == p or e == "{device_id}" for e, p in zip(expected, parts)):
            device_id = parts[channel.device_index]
            if device_id:
                return channel.family, device_id
    return None
