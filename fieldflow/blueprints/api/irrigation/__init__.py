"""
Irrigation Sessions API Blueprint
=================================

REST API endpoints for live irrigation control.

Endpoints:
- POST /api/v1/irrigation/sessions/<device_id>/start - Start a session
- POST /api/v1/irrigation/sessions/<device_id>/stop - Stop the active session
- POST /api/v1/irrigation/sessions/emergency-stop - Cancel every active session
- GET /api/v1/irrigation/sessions/active - In-flight sessions
- GET /api/v1/irrigation/devices/connected - Devices heard from recently
- GET /api/v1/irrigation/decision-engine/status - Decision engine state
- GET /api/v1/irrigation/decision-engine/training - Training cycle history
- POST /api/v1/irrigation/decision-engine/training - Record a training cycle
"""

from __future__ import annotations

from flask import Blueprint

from fieldflow.blueprints.api._common import (
    fail,
    get_decision_engine,
    get_session_registry,
    get_telemetry_gateway,
    get_user_id,
    is_operator,
    parse_body,
    success,
)
from fieldflow.schemas import (
    EmergencyStopRequest,
    StartSessionRequest,
    StopSessionRequest,
    TrainingCycleRequest,
)
from fieldflow.utils.http import safe_route

irrigation_bp = Blueprint("irrigation", __name__)


# ==================== Sessions ====================


@irrigation_bp.post("/sessions/<device_id>/start")
@safe_route("Failed to start irrigation")
def start_session(device_id: str):
    body = parse_body(StartSessionRequest)
    session = get_session_registry().start(device_id, body.duration, body.type, get_user_id())
    return success(session.to_dict(), 201, message="Irrigation started")


@irrigation_bp.post("/sessions/<device_id>/stop")
@safe_route("Failed to stop irrigation")
def stop_session(device_id: str):
    body = parse_body(StopSessionRequest)
    session = get_session_registry().stop(device_id, body.status)
    return success(session.to_dict(), message=f"Irrigation {session.status.value}")


@irrigation_bp.post("/sessions/emergency-stop")
@safe_route("Emergency stop failed")
def emergency_stop():
    body = parse_body(EmergencyStopRequest)
    if body.allUsers and not is_operator():
        return fail("Only operators can stop every user's sessions", 403)

    results = get_session_registry().emergency_stop_all(get_user_id(), include_all_users=body.allUsers)
    stopped = sum(1 for r in results if r.success)
    return success(
        {"stopped": stopped, "results": [r.to_dict() for r in results]},
        message=f"Emergency stop: {stopped}/{len(results)} sessions cancelled",
    )


@irrigation_bp.get("/sessions/active")
@safe_route("Failed to list active sessions")
def list_active_sessions():
    sessions = get_session_registry().list_active()
    return success({"sessions": [s.to_dict() for s in sessions], "count": len(sessions)})


# ==================== Devices ====================


@irrigation_bp.get("/devices/connected")
@safe_route("Failed to list connected devices")
def connected_devices():
    devices = get_telemetry_gateway().connected_devices()
    return success({"devices": devices, "count": len(devices)})


# ==================== Decision Engine ====================


@irrigation_bp.get("/decision-engine/status")
@safe_route("Failed to load decision engine status")
def decision_engine_status():
    return success(get_decision_engine().status())


@irrigation_bp.get("/decision-engine/training")
@safe_route("Failed to load training history")
def training_history():
    records = get_decision_engine().training_history()
    return success({"history": [r.to_dict() for r in records]})


@irrigation_bp.post("/decision-engine/training")
@safe_route("Failed to record training cycle")
def record_training_cycle():
    body = parse_body(TrainingCycleRequest)
    record = get_decision_engine().record_training_cycle(get_user_id(), body.epochs)
    return success(record.to_dict(), 201, message="Training cycle recorded")
