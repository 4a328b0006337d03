"""
Telemetry Ingestion Gateway
===========================

Router for everything field devices publish over MQTT.

Responsibilities:
1. Subscribe to the four inbound channel families (sensor data, device
   status, control responses, alerts).
2. Validate payloads and resolve the owning device from the topic.
3. Keep a per-device connectivity cache (last telemetry, status, last seen).
4. Run the decision engine on each reading and start a smart session when
   the device's automation settings allow it.
5. Broadcast live updates to the owner's (and farm's) Socket.IO groups.

Message handling never raises into the MQTT network loop: malformed
payloads, unknown devices and downstream failures are logged and dropped.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import TYPE_CHECKING, Any

from fieldflow.domain.device import DeviceRecord, DeviceState
from fieldflow.domain.exceptions import ConflictError, DispatchError, FieldFlowError, ParseError, ValidationError
from fieldflow.domain.telemetry import TelemetrySnapshot
from fieldflow.domain.water_policy import DecisionEstimateWaterPolicy
from fieldflow.enums import AlertSeverity, BroadcastEvent, DeviceStatus, SessionType
from fieldflow.hardware.mqtt.topics import INBOUND_CHANNELS, ChannelFamily, parse_topic
from fieldflow.schemas.events import (
    ControlResponsePayload,
    DeviceAlertPayload,
    DeviceStatusPayload,
    SensorUpdatePayload,
)
from fieldflow.schemas.telemetry import (
    AlertMessage,
    ControlResponseMessage,
    DeviceStatusMessage,
    SensorDataMessage,
    parse_message,
)
from fieldflow.services.application.decision_engine import DEFAULT_SOIL_MOISTURE
from fieldflow.utils.emitters import EventBroadcaster, farm_group, user_group
from fieldflow.utils.time import Clock, coerce_datetime, utc_now

if TYPE_CHECKING:
    from fieldflow.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper
    from fieldflow.services.application.decision_engine import DecisionEngine
    from fieldflow.services.application.session_registry import SessionRegistry
    from fieldflow.services.hardware.command_dispatcher import CommandDispatcher
    from fieldflow.services.protocols import CriticalAlertNotifier, DeviceDirectory

logger = logging.getLogger(__name__)


class TelemetryGateway:
    """Routes inbound device messages to caches, the decision engine and listeners."""

    def __init__(
        self,
        *,
        device_directory: "DeviceDirectory",
        decision_engine: "DecisionEngine",
        registry: "SessionRegistry",
        broadcaster: EventBroadcaster,
        dispatcher: "CommandDispatcher | None" = None,
        notifier: "CriticalAlertNotifier | None" = None,
        topic_prefix: str = "",
        offline_after_seconds: int = 300,
        clock: Clock = utc_now,
    ):
        self.devices = device_directory
        self.decision_engine = decision_engine
        self.registry = registry
        self.broadcaster = broadcaster
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.topic_prefix = topic_prefix
        self.offline_after_seconds = offline_after_seconds
        self._clock = clock

        self._states: dict[str, DeviceState] = {}
        self._lock = threading.Lock()

        self._trace_messages = os.getenv("FIELDFLOW_MQTT_TRACE", "false").strip().lower() in {"1", "true", "yes", "on"}
        # Cooldown for 'unknown device' logs to avoid log flooding
        self._unknown_log_cooldown_s = int(os.getenv("FIELDFLOW_UNKNOWN_DEVICE_LOG_COOLDOWN", "600"))
        self._unknown_last_logged_at: dict[str, float] = {}

        self._handlers = {
            ChannelFamily.SENSOR_DATA: self._handle_sensor_data,
            ChannelFamily.DEVICE_STATUS: self._handle_device_status,
            ChannelFamily.CONTROL_RESPONSE: self._handle_control_response,
            ChannelFamily.ALERT: self._handle_alert,
        }

    # ---------------------------------------------------------------------
    # Topic Management
    # ---------------------------------------------------------------------

    def subscribe_all(self, mqtt_client: "MQTTClientWrapper") -> int:
        """Subscribe every inbound channel family; returns how many succeeded."""
        subscribed = 0
        for channel in INBOUND_CHANNELS:
            topic = channel.subscription(self.topic_prefix)
            try:
                if mqtt_client.subscribe(topic, self._on_message, qos=channel.qos):
                    subscribed += 1
                    logger.debug("Subscribed to MQTT topic: %s (qos=%s)", topic, channel.qos)
            except Exception as exc:
                logger.error("Failed to subscribe to %s: %s", topic, exc)
        logger.info("Telemetry gateway listening on %s/%s channel families", subscribed, len(INBOUND_CHANNELS))
        return subscribed

    # ---------------------------------------------------------------------
    # Message Handling
    # ---------------------------------------------------------------------

    def _on_message(self, client: Any, userdata: Any, msg: Any) -> None:
        """
        Central router for all inbound device traffic.

        Guaranteed not to raise exceptions to prevent killing the MQTT loop.
        """
        topic = str(getattr(msg, "topic", ""))
        payload = getattr(msg, "payload", b"")

        if self._trace_messages:
            preview = payload.decode(errors="ignore") if isinstance(payload, (bytes, bytearray)) else str(payload)
            logger.info("MQTT [%s] -> %s", topic, preview[:250])

        try:
            self.handle_message(topic, payload)
        except ParseError as exc:
            logger.warning("Dropped malformed message: %s", exc)
        except Exception as exc:
            logger.exception("Telemetry routing error topic=%s: %s", topic, exc)

    def handle_message(self, topic: str, payload: bytes | str) -> None:
        """Route one message. Raises ParseError for a malformed payload."""
        routed = parse_topic(topic, self.topic_prefix)
        if routed is None:
            logger.warning("Unroutable MQTT topic: %s", topic)
            return
        family, device_id = routed

        device = self.devices.get_device(device_id)
        if device is None:
            self._log_unknown_device(device_id, topic)
            return

        self._handlers[family](device, topic, payload)

    def _log_unknown_device(self, device_id: str, topic: str) -> None:
        """Throttled logging for unregistered devices."""
        now = time.time()
        last = self._unknown_last_logged_at.get(device_id, 0.0)
        if (now - last) < self._unknown_log_cooldown_s:
            return
        self._unknown_last_logged_at[device_id] = now
        logger.warning("Message from unregistered device '%s' on %s dropped", device_id, topic)

    def _handle_sensor_data(self, device: DeviceRecord, topic: str, payload: bytes | str) -> None:
        message = parse_message(SensorDataMessage, payload, topic=topic)
        now = self._clock()
        telemetry = TelemetrySnapshot(
            soil_moisture=message.soilMoisture,
            temperature=message.temperature,
            humidity=message.humidity,
            rainfall=message.rainfall,
            evaporation=message.evaporation,
            battery_level=message.battery,
            signal_strength=message.signalStrength,
            timestamp=coerce_datetime(message.timestamp) or now,
        )

        with self._lock:
            state = self._state_for(device.device_id)
            state.telemetry = telemetry
            state.status = DeviceStatus.ONLINE.value
            state.last_seen = now
            if message.battery is not None:
                state.battery = message.battery
            if message.signalStrength is not None:
                state.signal_strength = message.signalStrength

        if not self.devices.update_sensor_data(device.device_id, telemetry):
            logger.warning("Could not persist telemetry for %s", device.device_id)
        self.devices.update_status(
            device.device_id,
            DeviceStatus.ONLINE.value,
            battery=message.battery,
            signal_strength=message.signalStrength,
            last_seen=now.isoformat(),
        )

        config = device.config
        decision = self.decision_engine.predict(telemetry, config)

        update = SensorUpdatePayload(
            deviceId=device.device_id,
            telemetry=telemetry.to_dict(),
            decision=decision.to_dict(),
            timestamp=now.isoformat(),
        )
        self._broadcast_to_owner(BroadcastEvent.SENSOR_UPDATE, update.model_dump(), device)

        moisture = telemetry.soil_moisture if telemetry.soil_moisture is not None else DEFAULT_SOIL_MOISTURE
        if config.automation_enabled and decision.should_irrigate and moisture < config.moisture_threshold:
            self._start_smart_session(device, telemetry, decision)

    def _start_smart_session(self, device: DeviceRecord, telemetry: TelemetrySnapshot, decision) -> None:
        try:
            self.registry.start(
                device.device_id,
                decision.recommended_duration,
                SessionType.SMART,
                device.user_id,
                trigger_telemetry=telemetry,
                trigger_decision=decision,
                water_policy=DecisionEstimateWaterPolicy.name,
            )
            logger.info(
                "Smart irrigation triggered on %s (%s, confidence %s)",
                device.device_id,
                decision.reason.value,
                decision.confidence,
            )
        except ConflictError:
            logger.debug("Smart irrigation skipped on %s: session already active", device.device_id)
        except (DispatchError, ValidationError) as exc:
            logger.warning("Smart irrigation on %s not started: %s", device.device_id, exc)
        except FieldFlowError as exc:
            logger.error("Smart irrigation on %s failed: %s", device.device_id, exc)

    def _handle_device_status(self, device: DeviceRecord, topic: str, payload: bytes | str) -> None:
        message = parse_message(DeviceStatusMessage, payload, topic=topic)
        now = self._clock()
        status = message.status.value

        with self._lock:
            state = self._state_for(device.device_id)
            state.status = status
            state.last_seen = now
            if message.battery is not None:
                state.battery = message.battery
            if message.batteryStatus is not None:
                state.battery_status = message.batteryStatus
            if message.signalStrength is not None:
                state.signal_strength = message.signalStrength

        self.devices.update_status(
            device.device_id,
            status,
            battery=message.battery,
            battery_status=message.batteryStatus,
            signal_strength=message.signalStrength,
            last_seen=now.isoformat(),
        )

        update = DeviceStatusPayload(
            deviceId=device.device_id,
            status=status,
            battery=message.battery,
            signalStrength=message.signalStrength,
            timestamp=now.isoformat(),
        )
        self._broadcast_to_owner(BroadcastEvent.DEVICE_STATUS, update.model_dump(), device)

    def _handle_control_response(self, device: DeviceRecord, topic: str, payload: bytes | str) -> None:
        message = parse_message(ControlResponseMessage, payload, topic=topic)
        now = self._clock()
        with self._lock:
            self._state_for(device.device_id).last_seen = now

        # Only keys the device actually sent, explicit nulls included
        data = message.model_dump(exclude_unset=True)
        if self.dispatcher is not None and message.correlationId is not None:
            self.dispatcher.acknowledge(device.device_id, str(message.correlationId), data)

        response = ControlResponsePayload.model_validate({**data, "deviceId": device.device_id, "timestamp": now.isoformat()})
        self._broadcast_to_owner(BroadcastEvent.CONTROL_RESPONSE, response.model_dump(), device)

    def _handle_alert(self, device: DeviceRecord, topic: str, payload: bytes | str) -> None:
        message = parse_message(AlertMessage, payload, topic=topic)
        now = self._clock()
        with self._lock:
            self._state_for(device.device_id).last_seen = now

        data = message.model_dump(mode="json")
        alert = DeviceAlertPayload.model_validate({**data, "deviceId": device.device_id, "timestamp": now.isoformat()})
        self._broadcast_to_owner(BroadcastEvent.DEVICE_ALERT, alert.model_dump(), device)

        if message.severity == AlertSeverity.CRITICAL.value:
            logger.warning("Critical alert from %s: %s", device.device_id, message.message)
            if self.notifier is not None:
                try:
                    self.notifier.notify_critical(device, alert.model_dump())
                except Exception as exc:
                    logger.error("Critical alert notification for %s failed: %s", device.device_id, exc)

    # ---------------------------------------------------------------------
    # Connectivity view
    # ---------------------------------------------------------------------

    def _state_for(self, device_id: str) -> DeviceState:
        state = self._states.get(device_id)
        if state is None:
            state = DeviceState(device_id=device_id)
            self._states[device_id] = state
        return state

    def device_state(self, device_id: str) -> DeviceState | None:
        with self._lock:
            return self._states.get(device_id)

    def device_connectivity(self, device_id: str) -> str:
        """``online`` if the device was heard from within the offline threshold."""
        with self._lock:
            state = self._states.get(device_id)
            if state is None:
                return DeviceStatus.OFFLINE.value
            online = state.is_online(self._clock(), self.offline_after_seconds)
        return DeviceStatus.ONLINE.value if online else DeviceStatus.OFFLINE.value

    def connected_devices(self) -> list[dict[str, Any]]:
        """Devices heard from within the offline threshold, most recent first."""
        now = self._clock()
        with self._lock:
            states = [s for s in self._states.values() if s.is_online(now, self.offline_after_seconds)]
            rows = [s.to_dict() for s in sorted(states, key=lambda s: s.last_seen, reverse=True)]
        return rows

    # ---------------------------------------------------------------------
    # Emission
    # ---------------------------------------------------------------------

    def _broadcast_to_owner(self, event: BroadcastEvent, payload: dict[str, Any], device: DeviceRecord) -> None:
        self.broadcaster.broadcast(event.value, payload, user_group(device.user_id))
        if device.farm_id is not None:
            self.broadcaster.broadcast(event.value, payload, farm_group(device.farm_id))
