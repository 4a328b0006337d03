from enum import Enum


class BroadcastEvent(str, Enum):
    """Socket.IO event names pushed to subscriber groups."""

    SENSOR_UPDATE = "sensor-update"
    DEVICE_STATUS = "device-status"
    CONTROL_RESPONSE = "control-response"
    DEVICE_ALERT = "device-alert"
    IRRIGATION_SESSION = "irrigation-session"


class ClientEvent(str, Enum):
    """Socket.IO event names received from connected listeners."""

    JOIN_FARM = "join-farm"
    LEAVE_FARM = "leave-farm"
