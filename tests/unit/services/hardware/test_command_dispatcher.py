"""
Unit Tests for CommandDispatcher
================================
Envelope format, failure reporting and device acknowledgement tracking.
"""

import json
from types import SimpleNamespace

import pytest

from fieldflow.domain.exceptions import DispatchError
from fieldflow.enums import CommandAction
from fieldflow.services.hardware.command_dispatcher import CommandDispatcher

from conftest import START_TIME


class TestPublish:
    def test_start_envelope(self, dispatcher, mqtt_client):
        command = dispatcher.build_command(CommandAction.START, "sess-1", duration=15)
        ack = dispatcher.publish("dev-1", command)

        published = mqtt_client.published[0]
        assert published.topic == "control/dev-1/command"
        assert published.qos == 1
        assert json.loads(published.payload) == {
            "action": "start",
            "duration": 15,
            "correlationId": "sess-1",
            "issuedAt": START_TIME.isoformat(),
            "serverTime": START_TIME.isoformat(),
        }
        assert ack.correlation_id == "sess-1"
        assert ack.action is CommandAction.START
        assert ack.accepted_at == START_TIME
        assert ack.broker_acknowledged is False

    def test_stop_envelope_has_no_duration(self, dispatcher, mqtt_client):
        dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.STOP, "sess-1"))

        body = mqtt_client.commands("dev-1")[0]
        assert body["action"] == "stop"
        assert "duration" not in body

    def test_topic_prefix(self, mqtt_wrapper, mqtt_client, clock):
        dispatcher = CommandDispatcher(mqtt_wrapper, topic_prefix="farmnet", qos=2, clock=clock)
        dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.STOP, "s"))

        assert mqtt_client.published[0].topic == "farmnet/control/dev-1/command"
        assert mqtt_client.published[0].qos == 2

    def test_rejected_publish_raises(self, dispatcher, mqtt_client):
        mqtt_client.fail_publish = True

        with pytest.raises(DispatchError) as excinfo:
            dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.START, "sess-1", duration=5))

        assert excinfo.value.detail["correlation_id"] == "sess-1"
        assert dispatcher.recent_commands() == []

    def test_disabled_transport_raises(self, clock):
        dispatcher = CommandDispatcher(None, clock=clock)

        with pytest.raises(DispatchError, match="disabled"):
            dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.STOP, "sess-1"))

    def test_broker_handshake_is_reported(self, clock):
        class HandshakeClient:
            def publish(self, topic, payload, qos=0):
                return SimpleNamespace(mid=3, wait_for_publish=lambda timeout: None, is_published=lambda: True)

        dispatcher = CommandDispatcher(HandshakeClient(), publish_timeout=0.5, clock=clock)
        ack = dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.START, "s", duration=1))

        assert ack.broker_acknowledged is True
        assert ack.mid == 3

    def test_broker_handshake_failure_raises(self, clock):
        def refuse(timeout):
            raise RuntimeError("connection lost")

        class DroppingClient:
            def publish(self, topic, payload, qos=0):
                return SimpleNamespace(mid=1, wait_for_publish=refuse, is_published=lambda: False)

        dispatcher = CommandDispatcher(DroppingClient(), publish_timeout=0.5, clock=clock)

        with pytest.raises(DispatchError, match="handshake"):
            dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.START, "s", duration=1))

    def test_duration_out_of_range_is_rejected(self, dispatcher):
        with pytest.raises(ValueError):
            dispatcher.build_command(CommandAction.START, "s", duration=121)


class TestAcknowledgement:
    def test_response_acknowledges_matching_command(self, dispatcher, clock):
        dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.START, "sess-1", duration=5))
        dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.STOP, "sess-1"))
        clock.advance(seconds=2)

        assert dispatcher.acknowledge("dev-1", "sess-1", {"action": "start", "status": "ok"})

        assert dispatcher.is_acknowledged("sess-1", CommandAction.START)
        assert not dispatcher.is_acknowledged("sess-1", CommandAction.STOP)
        start = dispatcher.recent_commands("dev-1")[0]
        assert start["deviceAcknowledgedAt"] == clock().isoformat()

    def test_response_without_action_acknowledges_latest(self, dispatcher):
        dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.START, "sess-1", duration=5))
        dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.STOP, "sess-1"))

        dispatcher.acknowledge("dev-1", "sess-1")

        assert dispatcher.is_acknowledged("sess-1", CommandAction.STOP)
        assert not dispatcher.is_acknowledged("sess-1", CommandAction.START)

    def test_unknown_correlation_is_ignored(self, dispatcher):
        dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.START, "sess-1", duration=5))

        assert dispatcher.acknowledge("dev-2", "sess-1") is False
        assert dispatcher.acknowledge("dev-1", "other") is False
        assert not dispatcher.is_acknowledged("sess-1")

    def test_tracking_is_bounded(self, mqtt_wrapper, clock):
        dispatcher = CommandDispatcher(mqtt_wrapper, clock=clock, max_tracked=3)
        for n in range(5):
            dispatcher.publish("dev-1", dispatcher.build_command(CommandAction.STOP, f"s{n}"))

        assert [c["correlationId"] for c in dispatcher.recent_commands()] == ["s2", "s3", "s4"]
