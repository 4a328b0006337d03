"""fieldflow.socketio.subscriber_handlers

Keeps the broadcaster's subscriber groups in step with Socket.IO clients.

- connect: join ``user_<id>`` for the user in the Flask session
- join-farm / leave-farm: explicit ``farm_<id>`` membership
- disconnect: drop the listener from every group
"""

import logging

from flask import current_app, request, session

from fieldflow.enums import ClientEvent
from fieldflow.extensions import socketio
from fieldflow.utils.emitters import farm_group, user_group

logger = logging.getLogger(__name__)


def _broadcaster():
    return current_app.config["CONTAINER"].broadcaster


def _farm_id_from_payload(data, event: str):
    farm_id = data.get("farmId", data.get("farm_id")) if isinstance(data, dict) else data
    if farm_id is None:
        logger.warning("Client %s sent %s without farmId", request.sid, event)
        return None
    try:
        return int(farm_id)
    except (TypeError, ValueError):
        logger.warning("Client %s sent %s with invalid farmId=%r", request.sid, event, farm_id)
        return None


@socketio.on("connect")
def handle_connect():
    """Auto-join the connecting client's user group."""
    user_id = session.get("user_id", 1)
    _broadcaster().join(request.sid, user_group(user_id))
    logger.info("✅ Client %s joined %s", request.sid, user_group(user_id))


@socketio.on(ClientEvent.JOIN_FARM.value)
def handle_join_farm(data):
    farm_id = _farm_id_from_payload(data, ClientEvent.JOIN_FARM.value)
    if farm_id is None:
        return
    _broadcaster().join(request.sid, farm_group(farm_id))
    logger.info("Client %s joined %s", request.sid, farm_group(farm_id))


@socketio.on(ClientEvent.LEAVE_FARM.value)
def handle_leave_farm(data):
    farm_id = _farm_id_from_payload(data, ClientEvent.LEAVE_FARM.value)
    if farm_id is None:
        return
    _broadcaster().leave(request.sid, farm_group(farm_id))
    logger.info("Client %s left %s", request.sid, farm_group(farm_id))


@socketio.on("disconnect")
def handle_disconnect(*_args):
    groups = _broadcaster().drop_listener(request.sid)
    logger.info("Client disconnected: %s (left %s groups)", request.sid, len(groups))
