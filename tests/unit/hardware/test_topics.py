import pytest

from fieldflow.hardware.mqtt.topics import INBOUND_CHANNELS, ChannelFamily, command_topic, join_topic, parse_topic


@pytest.mark.parametrize(
    "topic,expected",
    [
        ("telemetry/sensor/dev-1/data", (ChannelFamily.SENSOR_DATA, "dev-1")),
        ("telemetry/device/pump_7/status", (ChannelFamily.DEVICE_STATUS, "pump_7")),
        ("control/dev-1/response", (ChannelFamily.CONTROL_RESPONSE, "dev-1")),
        ("alert/dev-1", (ChannelFamily.ALERT, "dev-1")),
    ],
)
def test_parse_topic_routes_each_family(topic, expected):
    assert parse_topic(topic) == expected


@pytest.mark.parametrize(
    "topic",
    [
        "telemetry/sensor/dev-1",
        "telemetry/sensor//data",
        "control/dev-1/command",
        "alert/",
        "alert/dev-1/extra",
        "notifications/critical/dev-1",
    ],
)
def test_parse_topic_rejects_non_device_channels(topic):
    assert parse_topic(topic) is None


def test_prefix_is_required_and_stripped():
    assert parse_topic("farmnet/alert/dev-1", "farmnet") == (ChannelFamily.ALERT, "dev-1")
    assert parse_topic("farmnet/alert/dev-1", "/farmnet/") == (ChannelFamily.ALERT, "dev-1")
    assert parse_topic("alert/dev-1", "farmnet") is None
    assert parse_topic("other/alert/dev-1", "farmnet") is None


def test_command_topic_and_join():
    assert command_topic("dev-1") == "control/dev-1/command"
    assert command_topic("dev-1", "farmnet/") == "farmnet/control/dev-1/command"
    assert join_topic("", "alert/+") == "alert/+"


def test_channel_topics_round_trip_through_parser():
    for channel in INBOUND_CHANNELS:
        topic = channel.topic_for("dev-9", "farmnet")
        assert "+" in channel.subscription("farmnet")
        assert parse_topic(topic, "farmnet") == (channel.family, "dev-9")
