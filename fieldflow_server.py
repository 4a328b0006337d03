"""Entry point for the FieldFlow irrigation coordinator.

Used both in development (``python fieldflow_server.py``) and through the
``fieldflow-server`` console script. Configuration comes from ``FIELDFLOW_*``
environment variables.
"""
from __future__ import annotations

import logging
import os

from fieldflow import create_app, socketio


def _env_flag_true(name: str) -> bool:
    v = os.getenv(name)
    return bool(v and v.lower() in ("1", "true", "yes", "on"))


def build_app():
    """Create the Flask app with the irrigation runtime started.

    Timers, orphan reconciliation and MQTT subscriptions only run when
    ``bootstrap_runtime`` is set, so the server always passes it.
    """
    return create_app(bootstrap_runtime=True)


def main() -> int:
    host = os.getenv("FIELDFLOW_HOST", "0.0.0.0")
    port = int(os.getenv("FIELDFLOW_PORT", "8000"))
    debug = _env_flag_true("FIELDFLOW_DEBUG")

    app = build_app()
    logging.info("Starting server on %s:%s", host, port)
    logging.info("SocketIO async_mode: %s", socketio.async_mode)

    try:
        socketio.run(
            app,
            host=host,
            port=port,
            debug=debug,
            use_reloader=False,
            allow_unsafe_werkzeug=True,
        )
        logging.info("Server stopped.")
        return 0
    except KeyboardInterrupt:
        logging.info("Server stopped by user.")
        return 0
    except Exception as exc:  # pragma: no cover - top-level runtime errors
        logging.exception("ERROR: Failed to start server: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
