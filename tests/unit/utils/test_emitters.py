from fieldflow.utils.emitters import EventBroadcaster, farm_group, user_group

from conftest import FakeSocketIO


def test_group_names():
    assert user_group(3) == "user_3"
    assert farm_group("12") == "farm_12"


def test_broadcast_reaches_only_the_named_group():
    sio = FakeSocketIO()
    broadcaster = EventBroadcaster(sio)
    broadcaster.join("sid-a", "user_1")
    broadcaster.join("sid-b", "user_2")

    assert broadcaster.broadcast("sensor-update", {"deviceId": "dev-1"}, "user_1") == 1

    assert sio.emits == [{"event": "sensor-update", "payload": {"deviceId": "dev-1"}, "room": "user_1", "namespace": "/"}]


def test_empty_group_drops_the_event():
    sio = FakeSocketIO()
    broadcaster = EventBroadcaster(sio)

    assert broadcaster.broadcast("device-alert", {}, "farm_4") == 0
    assert sio.emits == []


def test_membership_mirrors_socketio_rooms():
    sio = FakeSocketIO()
    broadcaster = EventBroadcaster(sio, namespace="/irrigation")
    broadcaster.join("sid-a", "user_1")
    broadcaster.join("sid-a", "farm_9")
    broadcaster.leave("sid-a", "farm_9")

    assert sio.server.rooms == [
        ("enter", "sid-a", "user_1", "/irrigation"),
        ("enter", "sid-a", "farm_9", "/irrigation"),
        ("leave", "sid-a", "farm_9", "/irrigation"),
    ]
    assert broadcaster.listeners("user_1") == {"sid-a"}
    assert broadcaster.listeners("farm_9") == set()


def test_disconnect_drops_every_membership():
    broadcaster = EventBroadcaster(FakeSocketIO())
    broadcaster.join("sid-a", "user_1")
    broadcaster.join("sid-a", "farm_9")
    broadcaster.join("sid-b", "farm_9")

    assert sorted(broadcaster.drop_listener("sid-a")) == ["farm_9", "user_1"]
    assert broadcaster.listeners("user_1") == set()
    assert broadcaster.listeners("farm_9") == {"sid-b"}
    assert broadcaster.drop_listener("sid-a") == []


def test_emit_failure_is_not_raised():
    class BrokenSocketIO(FakeSocketIO):
        def emit(self, *args, **kwargs):
            raise ConnectionError("transport closed")

    broadcaster = EventBroadcaster(BrokenSocketIO())
    broadcaster.join("sid-a", "user_1")

    assert broadcaster.broadcast("sensor-update", {}, "user_1") == 0
