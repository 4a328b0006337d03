"""Repository for irrigation session history."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fieldflow.domain.session import IrrigationSession

if TYPE_CHECKING:
    from infrastructure.database.ops.irrigation_sessions import IrrigationSessionOperations

logger = logging.getLogger(__name__)


def _row_from_session(session: IrrigationSession) -> dict[str, Any]:
    return {
        "session_id": session.session_id,
        "device_id": session.device_id,
        "user_id": session.user_id,
        "session_type": session.session_type.value,
        "status": session.status.value,
        "planned_duration": session.planned_duration,
        "actual_duration": session.actual_duration,
        "started_at": session.started_at.isoformat(),
        "ended_at": session.ended_at.isoformat() if session.ended_at else None,
        "water_used": session.water_used,
        "water_saved": session.water_saved,
        "efficiency": session.efficiency,
        "water_policy": session.water_policy,
        "sensor_data": json.dumps(session.trigger_telemetry.to_dict()) if session.trigger_telemetry else None,
        "decision": json.dumps(session.trigger_decision.to_dict()) if session.trigger_decision else None,
        "notes": session.notes,
    }


class IrrigationSessionRepository:
    """create / update / findActiveByDevice over the session table."""

    def __init__(self, db_handler: "IrrigationSessionOperations"):
        self._db = db_handler

    def create(self, session: IrrigationSession) -> bool:
        return self._db.insert_irrigation_session(_row_from_session(session))

    def update(self, session: IrrigationSession) -> bool:
        return self._db.update_irrigation_session(session.session_id, _row_from_session(session))

    def mark(self, session_id: str, *, status: str, ended_at: str | None = None, notes: str | None = None) -> bool:
        """Update a persisted session that has no in-memory counterpart."""
        values: dict[str, Any] = {"status": status, "ended_at": ended_at}
        if notes is not None:
            values["notes"] = notes
        return self._db.update_irrigation_session(session_id, values)

    def get(self, session_id: str) -> dict[str, Any] | None:
        return self._db.get_irrigation_session(session_id)

    def find_active_by_device(self, device_id: str) -> dict[str, Any] | None:
        return self._db.get_active_irrigation_session(device_id)

    def find_non_terminal(self) -> list[dict[str, Any]]:
        return self._db.list_non_terminal_irrigation_sessions()

    def list_for_device(self, device_id: str, limit: int = 50) -> list[dict[str, Any]]:
        return self._db.list_irrigation_sessions_for_device(device_id, limit=limit)
