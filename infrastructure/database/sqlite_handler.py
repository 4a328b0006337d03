import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from flask import Flask

from infrastructure.database.ops.devices import DeviceOperations
from infrastructure.database.ops.irrigation_sessions import IrrigationSessionOperations

logger = logging.getLogger(__name__)


class SQLiteDatabaseHandler(
    DeviceOperations,
    IrrigationSessionOperations,
):
    """Thread-safe SQLite handler decoupled from Flask globals.

    Each thread gets its own connection. Note that with ``":memory:"`` every
    thread therefore sees a separate, empty database; use a file path when
    several threads must share data.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._local = threading.local()

        if database_path != ":memory:":
            db_path = Path(database_path)
            if not db_path.parent.exists():
                db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", db_path.parent)

    # --- Lifecycle ------------------------------------------------------------
    def init_app(self, app: Flask | None = None) -> None:
        # closing a ":memory:" connection would drop the database
        if app is not None and self._database_path != ":memory:":
            app.teardown_appcontext(self.close_db)
        self.create_tables()

    def get_db(self) -> sqlite3.Connection:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is None:
            connection = self._open_connection()
            self._local.connection = connection
        return connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path, check_same_thread=False, timeout=10.0)
        try:
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """WAL lets the ingestion thread read while timers write."""
        if self._database_path != ":memory:":
            connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute("PRAGMA foreign_keys=ON")
        connection.execute("PRAGMA temp_store=MEMORY")
        connection.commit()

    def close_db(self, _e: Optional[BaseException] = None) -> None:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            delattr(self._local, "connection")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_db()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        conn.commit()

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the device directory and session history tables if missing."""
        with self.connection() as db:
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS Devices (
                    device_id TEXT PRIMARY KEY,
                    user_id INTEGER NOT NULL,
                    farm_id INTEGER,
                    name TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'offline'
                        CHECK (status IN ('online', 'offline', 'maintenance', 'error')),
                    automation_enabled INTEGER NOT NULL DEFAULT 1,
                    moisture_threshold REAL NOT NULL DEFAULT 60
                        CHECK (moisture_threshold BETWEEN 20 AND 80),
                    crop_type TEXT DEFAULT 'vegetables',
                    irrigation_duration INTEGER NOT NULL DEFAULT 30
                        CHECK (irrigation_duration BETWEEN 1 AND 120),
                    soil_type TEXT,
                    battery_level REAL,
                    battery_status TEXT,
                    signal_strength TEXT,
                    last_seen TEXT,
                    last_sensor_data TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            db.execute("CREATE INDEX IF NOT EXISTS idx_devices_user ON Devices(user_id)")
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS IrrigationSessions (
                    session_id TEXT PRIMARY KEY,
                    device_id TEXT NOT NULL REFERENCES Devices(device_id),
                    user_id INTEGER NOT NULL,
                    session_type TEXT NOT NULL
                        CHECK (session_type IN ('manual', 'scheduled', 'smart', 'emergency')),
                    status TEXT NOT NULL
                        CHECK (status IN ('pending', 'in_progress', 'completed', 'failed', 'cancelled')),
                    planned_duration INTEGER NOT NULL,
                    actual_duration INTEGER NOT NULL DEFAULT 0,
                    started_at TEXT NOT NULL,
                    ended_at TEXT,
                    water_used INTEGER NOT NULL DEFAULT 0,
                    water_saved INTEGER NOT NULL DEFAULT 0,
                    efficiency INTEGER NOT NULL DEFAULT 0,
                    water_policy TEXT NOT NULL,
                    sensor_data TEXT,
                    decision TEXT,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            db.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_device_status ON IrrigationSessions(device_id, status)"
            )
        logger.debug("Database schema ensured at %s", self._database_path)
