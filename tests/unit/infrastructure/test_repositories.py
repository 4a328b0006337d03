"""Repository behaviour against a real SQLite file."""

from datetime import datetime, timezone

from fieldflow.domain.decision import Decision
from fieldflow.domain.device import DeviceConfig
from fieldflow.domain.session import IrrigationSession
from fieldflow.domain.telemetry import TelemetrySnapshot
from fieldflow.enums import DecisionReason, SessionStatus, SessionType

STARTED = datetime(2026, 3, 1, 5, 0, tzinfo=timezone.utc)


def make_session(device_id="dev-1", **overrides) -> IrrigationSession:
    values = dict(
        device_id=device_id,
        user_id=1,
        session_type=SessionType.MANUAL,
        planned_duration=30,
        started_at=STARTED,
    )
    values.update(overrides)
    return IrrigationSession(**values)


class TestDeviceRepository:
    def test_device_round_trip_keeps_config(self, device_repo):
        config = DeviceConfig(automation_enabled=False, moisture_threshold=45, crop_type="rice", irrigation_duration=12)
        assert device_repo.create_device("pump-1", 9, name="Paddy", farm_id=3, config=config)

        device = device_repo.get_device("pump-1")
        assert device.user_id == 9
        assert device.name == "Paddy"
        assert device.farm_id == 3
        assert device.config == config

    def test_duplicate_device_is_rejected(self, device_repo):
        assert device_repo.create_device("pump-1", 1)
        assert device_repo.create_device("pump-1", 2) is False
        assert device_repo.get_device("pump-1").user_id == 1

    def test_unknown_device(self, device_repo):
        assert device_repo.get_device("nope") is None
        assert device_repo.get_config("nope") is None
        assert device_repo.get_last_sensor_data("nope") is None

    def test_list_devices_by_owner(self, device_repo, seeded_devices):
        assert [d.device_id for d in device_repo.list_devices(1)] == ["dev-1", "dev-2", "dev-4"]
        assert len(device_repo.list_devices()) == 4

    def test_last_sensor_data_round_trip(self, device_repo, seeded_devices):
        reading = TelemetrySnapshot(soil_moisture=41.5, temperature=30, rainfall=0, timestamp=STARTED)

        assert device_repo.update_sensor_data("dev-1", reading)
        assert device_repo.get_last_sensor_data("dev-1") == reading

    def test_status_keeps_previous_health_values(self, device_repo, db_handler, seeded_devices):
        device_repo.update_status("dev-1", "online", battery=70, signal_strength="good")
        device_repo.update_status("dev-1", "offline")

        row = db_handler.get_device_row("dev-1")
        assert row["status"] == "offline"
        assert row["battery_level"] == 70
        assert row["signal_strength"] == "good"

    def test_update_missing_device_reports_false(self, device_repo):
        assert device_repo.update_status("ghost", "online") is False
        assert device_repo.update_sensor_data("ghost", TelemetrySnapshot()) is False


class TestIrrigationSessionRepository:
    def test_create_and_find_active(self, session_repo, seeded_devices):
        session = make_session(
            trigger_telemetry=TelemetrySnapshot(soil_moisture=35),
            trigger_decision=Decision(True, 85, DecisionReason.CRITICAL_DRYNESS, 40, 480),
        )
        session.transition(SessionStatus.IN_PROGRESS)
        assert session_repo.create(session)

        row = session_repo.find_active_by_device("dev-1")
        assert row["session_id"] == session.session_id
        assert row["status"] == "in_progress"
        assert '"recommendedWater": 480' in row["decision"]

    def test_update_writes_outcome(self, session_repo, seeded_devices):
        session = make_session()
        session.transition(SessionStatus.IN_PROGRESS)
        session_repo.create(session)

        session.transition(SessionStatus.COMPLETED, at=STARTED)
        session.actual_duration = 30
        session.water_used, session.water_saved, session.efficiency = 300, 90, 23
        assert session_repo.update(session)

        row = session_repo.get(session.session_id)
        assert (row["status"], row["water_used"], row["water_saved"], row["efficiency"]) == ("completed", 300, 90, 23)
        assert session_repo.find_active_by_device("dev-1") is None

    def test_mark_and_non_terminal_listing(self, session_repo, seeded_devices):
        first, second = make_session("dev-1"), make_session("dev-2")
        session_repo.create(first)
        session_repo.create(second)

        assert {r["session_id"] for r in session_repo.find_non_terminal()} == {first.session_id, second.session_id}

        session_repo.mark(first.session_id, status="failed", ended_at=STARTED.isoformat(), notes="orphaned-by-restart")

        assert [r["session_id"] for r in session_repo.find_non_terminal()] == [second.session_id]
        assert session_repo.get(first.session_id)["notes"] == "orphaned-by-restart"

    def test_session_for_unknown_device_is_rejected(self, session_repo):
        assert session_repo.create(make_session("ghost")) is False

    def test_history_is_newest_first(self, session_repo, seeded_devices):
        older = make_session(started_at=datetime(2026, 2, 1, tzinfo=timezone.utc))
        newer = make_session()
        session_repo.create(older)
        session_repo.create(newer)

        history = session_repo.list_for_device("dev-1")
        assert [r["session_id"] for r in history] == [newer.session_id, older.session_id]
        assert len(session_repo.list_for_device("dev-1", limit=1)) == 1
