import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from fieldflow.domain.exceptions import ParseError, ValidationError
from fieldflow.enums import AlertSeverity, DeviceStatus
from fieldflow.schemas.commands import CommandEnvelope
from fieldflow.schemas.irrigation import EmergencyStopRequest, StartSessionRequest, StopSessionRequest
from fieldflow.schemas.telemetry import (
    AlertMessage,
    ControlResponseMessage,
    DeviceStatusMessage,
    SensorDataMessage,
    parse_message,
)


def test_sensor_message_accepts_partial_readings():
    message = parse_message(SensorDataMessage, b'{"soilMoisture": 0, "firmware": "2.1"}')

    assert message.soilMoisture == 0
    assert message.temperature is None


def test_sensor_message_range_checks():
    with pytest.raises(ParseError) as excinfo:
        parse_message(SensorDataMessage, '{"humidity": 101}', topic="telemetry/sensor/a/data")

    assert excinfo.value.detail["topic"] == "telemetry/sensor/a/data"
    assert excinfo.value.detail["errors"][0]["loc"] == ("humidity",)
    assert isinstance(excinfo.value, ValidationError)


@pytest.mark.parametrize("payload", [b"", b"null", b'"text"', b"{bad", b"\x80"])
def test_non_object_payloads_raise(payload):
    with pytest.raises(ParseError):
        parse_message(SensorDataMessage, payload)


def test_status_message_requires_known_status():
    assert parse_message(DeviceStatusMessage, '{"status": "error"}').status is DeviceStatus.ERROR
    with pytest.raises(ParseError):
        parse_message(DeviceStatusMessage, "{}")


def test_control_response_keeps_unknown_keys():
    message = parse_message(ControlResponseMessage, '{"correlationId": "s1", "flowLpm": 9.5}')

    assert message.model_dump(exclude_none=True) == {"correlationId": "s1", "flowLpm": 9.5}


def test_control_response_accepts_non_string_fields():
    message = parse_message(ControlResponseMessage, '{"action": "start", "status": 200, "correlationId": 7, "note": null}')

    assert message.model_dump(exclude_unset=True) == {"action": "start", "status": 200, "correlationId": 7, "note": None}


def test_alert_defaults_to_warning():
    alert = parse_message(AlertMessage, "{}")
    assert alert.severity == AlertSeverity.WARNING.value
    assert alert.message == ""


def test_alert_accepts_any_severity():
    alert = parse_message(AlertMessage, '{"severity": "high", "message": ["a", "b"]}')
    assert alert.severity == "high"
    assert alert.message == "['a', 'b']"


def test_command_envelope_serialisation():
    envelope = CommandEnvelope(action="stop", correlationId="s1", issuedAt="2026-03-01T05:00:00+00:00")

    assert json.loads(envelope.to_json()) == {
        "action": "stop",
        "correlationId": "s1",
        "issuedAt": "2026-03-01T05:00:00+00:00",
    }


def test_start_request_normalises_type():
    body = StartSessionRequest.model_validate({"duration": 10, "type": "SMART"})
    assert body.type.value == "smart"
    assert StartSessionRequest.model_validate({"duration": 10}).type.value == "manual"


def test_stop_request_only_allows_operator_outcomes():
    assert StopSessionRequest.model_validate({}).status == "completed"
    with pytest.raises(PydanticValidationError):
        StopSessionRequest.model_validate({"status": "failed"})


def test_emergency_request_defaults_to_own_devices():
    assert EmergencyStopRequest.model_validate({}).allUsers is False
