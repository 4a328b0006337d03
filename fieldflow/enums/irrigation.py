from enum import Enum


class SessionStatus(str, Enum):
    """Lifecycle states of an irrigation session."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED)


class SessionType(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    SMART = "smart"
    EMERGENCY = "emergency"


class CommandAction(str, Enum):
    START = "start"
    STOP = "stop"


class DecisionReason(str, Enum):
    """Reason codes attached to every decision, in rule-ladder order."""

    CRITICAL_DRYNESS = "critical-dryness"
    LOW_MOISTURE = "low-moisture"
    HEAT_PREVENTIVE = "heat-preventive"
    MOISTURE_SUFFICIENT = "moisture-sufficient"
    RECENT_RAINFALL = "recent-rainfall"
    OPTIMAL = "optimal"
    RULE_BASED_FALLBACK = "rule-based-fallback"


class CropType(str, Enum):
    RICE = "rice"
    WHEAT = "wheat"
    CORN = "corn"
    VEGETABLES = "vegetables"
    FRUITS = "fruits"
    OTHER = "other"


class DeviceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    MAINTENANCE = "maintenance"
    ERROR = "error"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
