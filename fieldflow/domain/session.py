"""
Irrigation Session Domain Objects
=================================
One tracked watering operation for a device, from start request to its
terminal outcome. Status only moves forward:

    pending -> in_progress -> {completed | failed | cancelled}

Terminal records are kept for history by the session repository.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any

from fieldflow.domain.decision import Decision
from fieldflow.domain.exceptions import ConflictError
from fieldflow.domain.telemetry import TelemetrySnapshot
from fieldflow.enums import SessionStatus, SessionType

# Longest run a device accepts in one start command
MAX_SESSION_MINUTES = 120

_ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.IN_PROGRESS, SessionStatus.FAILED, SessionStatus.CANCELLED}),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED}),
}


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class IrrigationSession:
    device_id: str
    user_id: int
    session_type: SessionType
    planned_duration: int
    started_at: datetime
    session_id: str = field(default_factory=new_session_id)
    status: SessionStatus = SessionStatus.PENDING
    water_policy: str = "flow-rate"
    actual_duration: int = 0
    ended_at: datetime | None = None
    water_used: int = 0
    water_saved: int = 0
    efficiency: int = 0
    trigger_telemetry: TelemetrySnapshot | None = None
    trigger_decision: Decision | None = None
    notes: str | None = None

    @property
    def estimated_end(self) -> datetime:
        return self.started_at + timedelta(minutes=self.planned_duration)

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def transition(self, target: SessionStatus, *, at: datetime | None = None) -> None:
        """Move to ``target``; raises ConflictError for anything but a forward step."""
        if target not in _ALLOWED_TRANSITIONS.get(self.status, frozenset()):
            raise ConflictError(
                f"Session {self.session_id} cannot move from {self.status.value} to {target.value}",
                detail={"device_id": self.device_id, "session_id": self.session_id},
            )
        self.status = target
        if target.is_terminal:
            self.ended_at = at

    def snapshot(self) -> "IrrigationSession":
        """Detached copy safe to hand to readers outside the registry lock."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "deviceId": self.device_id,
            "userId": self.user_id,
            "type": self.session_type.value,
            "status": self.status.value,
            "plannedDuration": self.planned_duration,
            "actualDuration": self.actual_duration,
            "startTime": self.started_at.isoformat(),
            "endTime": self.ended_at.isoformat() if self.ended_at else None,
            "estimatedEnd": self.estimated_end.isoformat(),
            "waterUsed": self.water_used,
            "waterSaved": self.water_saved,
            "efficiency": self.efficiency,
            "waterPolicy": self.water_policy,
            "sensorData": self.trigger_telemetry.to_dict() if self.trigger_telemetry else None,
            "aiRecommendation": self.trigger_decision.to_dict() if self.trigger_decision else None,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class SessionResult:
    """Outcome of stopping one device's session; used for per-device reporting."""

    device_id: str
    success: bool
    session: IrrigationSession | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"deviceId": self.device_id, "success": self.success}
        if self.session is not None:
            data.update(
                {
                    "sessionId": self.session.session_id,
                    "status": self.session.status.value,
                    "actualDuration": self.session.actual_duration,
                    "waterUsed": self.session.water_used,
                    "waterSaved": self.session.water_saved,
                }
            )
        if self.error is not None:
            data["error"] = self.error
        return data
