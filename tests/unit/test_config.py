import os

import pytest

from fieldflow.config import AppConfig, load_config, validate_config


def test_defaults(monkeypatch):
    for name in [n for n in os.environ if n.startswith("FIELDFLOW_")]:
        monkeypatch.delenv(name)

    config = AppConfig()

    assert config.min_session_minutes == 1
    assert config.max_session_minutes == 120
    assert config.flow_rate_lpm == 10.0
    assert config.device_offline_after_seconds == 300
    assert config.command_qos == 1


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FIELDFLOW_MQTT_TOPIC_PREFIX", "farmnet")
    monkeypatch.setenv("FIELDFLOW_ENABLE_MQTT", "no")
    monkeypatch.setenv("FIELDFLOW_FLOW_RATE_LPM", "12.5")

    config = AppConfig()

    assert config.mqtt_topic_prefix == "farmnet"
    assert config.enable_mqtt is False
    assert config.flow_rate_lpm == 12.5


def test_non_numeric_values_are_rejected(monkeypatch):
    monkeypatch.setenv("FIELDFLOW_MQTT_PORT", "eighteen")

    with pytest.raises(ValueError, match="FIELDFLOW_MQTT_PORT"):
        AppConfig()


def test_default_secret_key_blocked_in_production(monkeypatch):
    monkeypatch.setenv("FIELDFLOW_ENV", "production")
    monkeypatch.delenv("FIELDFLOW_SECRET_KEY", raising=False)

    with pytest.raises(RuntimeError, match="secret key"):
        AppConfig()


@pytest.mark.parametrize(
    "kwargs",
    [{"min_session_minutes": 0}, {"min_session_minutes": 30, "max_session_minutes": 20}, {"max_session_minutes": 180}, {"command_qos": 3}, {"optimal_irrigation_hour": 24}],
)
def test_invalid_combinations(kwargs):
    with pytest.raises(ValueError):
        AppConfig(**kwargs)


def test_warnings_for_suspicious_settings(caplog, monkeypatch):
    config = AppConfig(enable_mqtt=False, command_qos=0, device_offline_after_seconds=10)

    warnings = validate_config(config)
    assert len(warnings) == 3

    monkeypatch.setenv("FIELDFLOW_ENABLE_MQTT", "false")
    with caplog.at_level("WARNING", logger="config_loader"):
        load_config()
    assert "MQTT disabled" in caplog.text
