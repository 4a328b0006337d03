"""
Shared test fixtures for the FieldFlow test suite.

Provides:
- A controllable clock shared by every service under test
- A file-backed SQLite database (threads in concurrency tests share it)
- Repository instances with four seeded devices
- A dummy paho client behind the real MQTTClientWrapper
- A fake Socket.IO server that records emits and room calls
- A fully wired registry / gateway pair

Timers are never started: ``SessionTimerScheduler.process_due_jobs()`` runs
due callbacks inline, so tests advance the clock and pump the scheduler.

Usage:
    def test_example(registry, clock, timers):
        registry.start("dev-1", 10, "manual", 1)
        clock.advance(minutes=10)
        timers.process_due_jobs()
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fieldflow.domain.device import DeviceConfig
from fieldflow.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper
from fieldflow.services.application.decision_engine import DecisionEngine
from fieldflow.services.application.session_registry import SessionRegistry
from fieldflow.services.application.telemetry_gateway import TelemetryGateway
from fieldflow.services.hardware.command_dispatcher import CommandDispatcher

# Register Socket.IO handlers before any create_app() so every app's server gets them
import fieldflow  # noqa: E402
import fieldflow.socketio.subscriber_handlers  # noqa: E402,F401
from fieldflow.extensions import socketio as _socketio  # noqa: E402

# Importing the subpackage rebinds ``fieldflow.socketio``; restore the exported instance
fieldflow.socketio = _socketio
from fieldflow.utils.emitters import EventBroadcaster
from fieldflow.workers.session_timers import SessionTimerScheduler
from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.repositories.irrigation_sessions import IrrigationSessionRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("fieldflow").setLevel(logging.WARNING)

START_TIME = datetime(2026, 3, 1, 5, 0, tzinfo=timezone.utc)


# ============================== Test doubles ===============================


class FakeClock:
    """Callable clock; ``advance`` moves time forward for every service at once."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, **delta) -> datetime:
        with self._lock:
            self.now += timedelta(**delta)
            return self.now


class DummyMessage:
    def __init__(self, topic: str, payload):
        self.topic = topic
        self.payload = payload if isinstance(payload, bytes) else json.dumps(payload).encode()


class DummyClient:
    """Stands in for paho's Client; records subscriptions and publishes."""

    def __init__(self):
        self.on_message = None
        self.on_connect = None
        self.on_disconnect = None
        self.subscriptions: list[tuple[str, int]] = []
        self.published: list[SimpleNamespace] = []
        self.fail_publish = False
        self._lock = threading.Lock()

    def connect(self, *_args, **_kwargs):
        return 0

    def loop_start(self):
        return None

    def disconnect(self):
        return None

    def loop_stop(self):
        return None

    def subscribe(self, topic, qos=0):
        self.subscriptions.append((topic, qos))
        return (0, len(self.subscriptions))

    def publish(self, topic, payload, qos=0, retain=False):
        with self._lock:
            if self.fail_publish:
                return SimpleNamespace(rc=4, mid=None)  # MQTT_ERR_NO_CONN
            info = SimpleNamespace(rc=0, mid=len(self.published) + 1, topic=topic, payload=payload, qos=qos)
            self.published.append(info)
            return info

    def commands(self, device_id: str | None = None) -> list[dict]:
        """Decoded command envelopes, optionally for one device."""
        with self._lock:
            published = list(self.published)
        return [
            json.loads(p.payload)
            for p in published
            if p.topic.endswith("/command") and (device_id is None or p.topic == f"control/{device_id}/command")
        ]


class FakeSocketServer:
    def __init__(self):
        self.rooms: list[tuple[str, str, str, str]] = []

    def enter_room(self, sid, room, namespace="/"):
        self.rooms.append(("enter", sid, room, namespace))

    def leave_room(self, sid, room, namespace="/"):
        self.rooms.append(("leave", sid, room, namespace))


class FakeSocketIO:
    def __init__(self) -> None:
        self.emits: list[dict] = []
        self.server = FakeSocketServer()
        self._lock = threading.Lock()

    def emit(self, event, payload, room=None, namespace="/"):
        with self._lock:
            self.emits.append({"event": event, "payload": payload, "room": room, "namespace": namespace})

    def events(self, name: str, room: str | None = None) -> list[dict]:
        with self._lock:
            return [e for e in self.emits if e["event"] == name and (room is None or e["room"] == room)]


class RecordingNotifier:
    def __init__(self):
        self.calls: list[tuple] = []

    def notify_critical(self, device, alert):
        self.calls.append((device, alert))


def build_wrapper(dummy_client: DummyClient) -> MQTTClientWrapper:
    with patch(
        "fieldflow.hardware.mqtt.mqtt_broker_wrapper.create_mqtt_client",
        return_value=dummy_client,
    ):
        wrapper = MQTTClientWrapper(broker="test", port=1883)
    return wrapper


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler(tmp_path):
    """File-backed SQLite database with all tables created.

    Each test gets a fresh database. A file (not ``:memory:``) so worker
    threads see the same data.
    """
    handler = SQLiteDatabaseHandler(str(tmp_path / "fieldflow.db"))
    handler.create_tables()
    yield handler
    handler.close_db()


@pytest.fixture()
def device_repo(db_handler):
    return DeviceRepository(db_handler)


@pytest.fixture()
def session_repo(db_handler):
    return IrrigationSessionRepository(db_handler)


@pytest.fixture()
def seeded_devices(device_repo):
    """dev-1, dev-2 and dev-4 belong to user 1 (dev-1 on farm 10); dev-3 belongs to user 2."""
    device_repo.create_device("dev-1", 1, name="North field", farm_id=10, config=DeviceConfig())
    device_repo.create_device("dev-2", 1, name="Greenhouse", config=DeviceConfig(crop_type="corn"))
    device_repo.create_device("dev-3", 2, name="Orchard", config=DeviceConfig(automation_enabled=False))
    device_repo.create_device("dev-4", 1, name="East field")
    return ["dev-1", "dev-2", "dev-3", "dev-4"]


# =========================== Service Fixtures ==============================


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def mqtt_client():
    return DummyClient()


@pytest.fixture()
def mqtt_wrapper(mqtt_client):
    return build_wrapper(mqtt_client)


@pytest.fixture()
def sio():
    return FakeSocketIO()


@pytest.fixture()
def broadcaster(sio):
    """Broadcaster with one listener in each group the seeded devices use."""
    broadcaster = EventBroadcaster(sio)
    broadcaster.join("sid-u1", "user_1")
    broadcaster.join("sid-u2", "user_2")
    broadcaster.join("sid-f10", "farm_10")
    return broadcaster


@pytest.fixture()
def dispatcher(mqtt_wrapper, clock):
    return CommandDispatcher(mqtt_wrapper, clock=clock)


@pytest.fixture()
def timers(clock):
    return SessionTimerScheduler(clock=clock)


@pytest.fixture()
def decision_engine(clock):
    return DecisionEngine(clock=clock)


@pytest.fixture()
def registry(seeded_devices, device_repo, session_repo, dispatcher, broadcaster, timers, clock):
    return SessionRegistry(
        device_directory=device_repo,
        session_store=session_repo,
        dispatcher=dispatcher,
        broadcaster=broadcaster,
        timers=timers,
        clock=clock,
    )


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def gateway(registry, device_repo, decision_engine, broadcaster, dispatcher, notifier, clock):
    return TelemetryGateway(
        device_directory=device_repo,
        decision_engine=decision_engine,
        registry=registry,
        broadcaster=broadcaster,
        dispatcher=dispatcher,
        notifier=notifier,
        clock=clock,
    )
