from fieldflow.enums.events import BroadcastEvent, ClientEvent
from fieldflow.enums.irrigation import (
    AlertSeverity,
    CommandAction,
    CropType,
    DecisionReason,
    DeviceStatus,
    SessionStatus,
    SessionType,
)

__all__ = [
    "AlertSeverity",
    "BroadcastEvent",
    "ClientEvent",
    "CommandAction",
    "CropType",
    "DecisionReason",
    "DeviceStatus",
    "SessionStatus",
    "SessionType",
]
