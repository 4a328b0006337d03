from __future__ import annotations

import atexit
import contextlib
import logging
import signal
import threading
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from fieldflow.blueprints.api.irrigation import irrigation_bp
from fieldflow.config import load_config, setup_logging
from fieldflow.extensions import init_extensions, socketio


def create_app(config_overrides: dict[str, Any] | None = None, *, bootstrap_runtime: bool = False) -> Flask:
    config = load_config()
    if config_overrides:
        for key, value in config_overrides.items():
            setattr(config, key if hasattr(config, key) else key.lower(), value)

    # Configure logging early so container startup (MQTT connect, reconciliation)
    # is visible in the terminal and fieldflow.log.
    setup_logging(debug=config.DEBUG)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    # Initialize Socket.IO BEFORE building ServiceContainer (the broadcaster needs it)
    init_extensions(flask_app, config.socketio_cors_origins)

    from fieldflow.services.container import ServiceContainer

    container = ServiceContainer.build(config, socketio=socketio, start_runtime=bootstrap_runtime)
    container.database.init_app(flask_app)
    flask_app.config["CONTAINER"] = container

    # ── Graceful shutdown handlers ──────────────────────────────────
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            container.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logging.info("Received %s — shutting down", sig_name)
        _graceful_shutdown(sig_name)
        raise SystemExit(0)

    # Register atexit (covers normal interpreter exit)
    atexit.register(_graceful_shutdown, "atexit")

    # Register OS signal handlers (SIGINT=Ctrl-C, SIGTERM=container/systemd stop)
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(OSError, ValueError):
            signal.signal(sig, _signal_handler)

    # Global JSON error handler for /api/ routes. Domain exceptions carry their
    # own ``http_status`` so FieldFlowError subclasses map to the right code.
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        if not request.path.startswith("/api/"):
            if isinstance(exc, HTTPException):
                return exc
            raise exc
        from fieldflow.domain.exceptions import FieldFlowError
        from fieldflow.utils.http import error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, FieldFlowError):
            status = exc.http_status
            if status >= 500:
                return safe_error(exc, status, context=type(exc).__name__)
            # 4xx messages are written for the caller
            return error_response(str(exc) or "Request failed", status)

        return safe_error(exc, 500, context="unhandled")

    V1 = "/api/v1"
    flask_app.register_blueprint(irrigation_bp, url_prefix=f"{V1}/irrigation")

    from fieldflow.socketio import register_handlers

    register_handlers()

    return flask_app


__all__ = ["create_app", "socketio"]
