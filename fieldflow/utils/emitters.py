"""
WebSocket Emitters
==================

Purpose:
    Fan named events out to subscriber groups over Socket.IO.

Groups:
    ``user_<id>`` receives everything about the devices a user owns.
    ``farm_<id>`` is joined explicitly by dashboards showing one farm.

Delivery is at-most-once: an event reaches whoever is in the group at emit
time and is never replayed to listeners that join later.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

SOCKETIO_NAMESPACE_DEFAULT = "/"


def user_group(user_id: Any) -> str:
    return f"user_{user_id}"


def farm_group(farm_id: Any) -> str:
    return f"farm_{farm_id}"


class EventBroadcaster:
    """
    Socket.IO group membership and emission.

    Attributes:
        sio: The Flask-SocketIO instance used for emitting and room management.
        namespace: Socket.IO namespace every event is emitted under.
    """

    def __init__(self, sio: SocketIO, namespace: str = SOCKETIO_NAMESPACE_DEFAULT):
        self.sio = sio
        self.namespace = namespace
        self._lock = threading.Lock()
        self._groups: dict[str, set[str]] = {}
        self._memberships: dict[str, set[str]] = {}

    def join(self, listener_id: str, group_id: str) -> None:
        """Add a connected listener (Socket.IO sid) to a group."""
        with self._lock:
            self._groups.setdefault(group_id, set()).add(listener_id)
            self._memberships.setdefault(listener_id, set()).add(group_id)
        self._room_call("enter_room", listener_id, group_id)
        logger.debug("Listener %s joined %s", listener_id, group_id)

    def leave(self, listener_id: str, group_id: str) -> None:
        with self._lock:
            self._discard(listener_id, group_id)
        self._room_call("leave_room", listener_id, group_id)
        logger.debug("Listener %s left %s", listener_id, group_id)

    def drop_listener(self, listener_id: str) -> list[str]:
        """Remove a disconnected listener from every group it was in."""
        with self._lock:
            groups = list(self._memberships.get(listener_id, ()))
            for group_id in groups:
                self._discard(listener_id, group_id)
        return groups

    def listeners(self, group_id: str) -> set[str]:
        with self._lock:
            return set(self._groups.get(group_id, ()))

    def broadcast(self, event: str, payload: dict, group_id: str) -> int:
        """
        Emit ``event`` to the listeners currently in ``group_id``.

        Returns the number of listeners the event was addressed to; 0 when the
        group is empty or the emit failed. Emission errors are logged, never raised.
        """
        with self._lock:
            audience = len(self._groups.get(group_id, ()))
        if audience == 0:
            logger.debug("No listeners in %s for event '%s'; dropped", group_id, event)
            return 0
        try:
            self.sio.emit(event, payload, room=group_id, namespace=self.namespace)
        except Exception as e:
            logger.exception("Failed to emit event '%s' to %s: %s", event, group_id, e)
            return 0
        logger.debug("Emitted '%s' to %s (%s listeners)", event, group_id, audience)
        return audience

    def _discard(self, listener_id: str, group_id: str) -> None:
        members = self._groups.get(group_id)
        if members is not None:
            members.discard(listener_id)
            if not members:
                del self._groups[group_id]
        groups = self._memberships.get(listener_id)
        if groups is not None:
            groups.discard(group_id)
            if not groups:
                del self._memberships[listener_id]

    def _room_call(self, method: str, listener_id: str, group_id: str) -> None:
        server = getattr(self.sio, "server", None)
        if server is None:
            return
        try:
            getattr(server, method)(listener_id, group_id, namespace=self.namespace)
        except Exception as e:
            logger.warning("Socket.IO %s failed for %s/%s: %s", method, listener_id, group_id, e)
