"""Flask extension instances shared by the app factory and Socket.IO handlers."""

import logging
import os

from flask import Flask
from flask_compress import Compress
from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

compress = Compress()


def _socketio_transports() -> list[str]:
    """Engine.IO transports, from `FIELDFLOW_SOCKETIO_TRANSPORTS` (comma separated).

    Polling only unless overridden; the dev server cannot upgrade to websocket.
    """
    raw = os.getenv("FIELDFLOW_SOCKETIO_TRANSPORTS", "")
    transports = [t.strip() for t in raw.split(",") if t.strip()]
    return transports or ["polling"]


# Threading mode: MQTT callbacks and session timers emit from plain threads
socketio = SocketIO(
    async_mode="threading",
    cors_allowed_origins=[],
    logger=False,
    engineio_logger=False,
    ping_timeout=60,
    ping_interval=25,
    transports=_socketio_transports(),
)


def init_extensions(app: Flask, cors_origins: str | list[str]) -> None:
    """Bind compression and Socket.IO to ``app``."""
    app.config.setdefault("COMPRESS_MIMETYPES", ["application/json"])
    app.config.setdefault("COMPRESS_MIN_SIZE", 512)
    compress.init_app(app)

    logging.getLogger("engineio").setLevel(logging.WARNING)
    socketio.init_app(app, cors_allowed_origins=cors_origins, logger=logging.getLogger("socketio"))
    logger.info("Socket.IO ready (origins=%s, transports=%s)", cors_origins, _socketio_transports())
