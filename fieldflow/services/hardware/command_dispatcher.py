"""
Command Dispatcher
==================

Publishes start/stop envelopes on ``control/{deviceId}/command``.

Contract:
    ``publish`` returns a :class:`DispatchAck` once the MQTT client has
    accepted the message for transmission at the configured QoS (1 by
    default). That is not proof the device received or executed it. When
    ``publish_timeout`` is set, the dispatcher also waits for the broker
    handshake and reports it in ``broker_acknowledged``.

    Device acknowledgement arrives later on the control-response channel;
    the ingestion gateway forwards responses carrying a ``correlationId`` to
    :meth:`CommandDispatcher.acknowledge`, and callers that care can poll
    :meth:`CommandDispatcher.is_acknowledged`.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fieldflow.domain.exceptions import DispatchError
from fieldflow.enums import CommandAction
from fieldflow.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper
from fieldflow.hardware.mqtt.topics import command_topic
from fieldflow.schemas.commands import CommandEnvelope
from fieldflow.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchAck:
    """Send-side acknowledgement for one command."""

    device_id: str
    correlation_id: str
    action: CommandAction
    topic: str
    qos: int
    accepted_at: datetime
    mid: int | None = None
    broker_acknowledged: bool = False


@dataclass
class _TrackedCommand:
    ack: DispatchAck
    device_ack_at: datetime | None = None
    device_response: dict[str, Any] = field(default_factory=dict)


class CommandDispatcher:
    """Stateless publisher plus a bounded record of recently sent commands."""

    def __init__(
        self,
        mqtt_client: MQTTClientWrapper | None,
        *,
        qos: int = 1,
        topic_prefix: str = "",
        publish_timeout: float = 0.0,
        clock: Clock = utc_now,
        max_tracked: int = 500,
    ) -> None:
        self.mqtt_client = mqtt_client
        self.qos = qos
        self.topic_prefix = topic_prefix
        self.publish_timeout = publish_timeout
        self._clock = clock
        self._max_tracked = max_tracked
        self._lock = threading.Lock()
        # (device_id, correlation_id, action) -> record
        self._tracked: OrderedDict[tuple[str, str, str], _TrackedCommand] = OrderedDict()

    def build_command(
        self,
        action: CommandAction,
        correlation_id: str,
        duration: int | None = None,
    ) -> CommandEnvelope:
        return CommandEnvelope(
            action=action,
            duration=duration,
            correlationId=correlation_id,
            issuedAt=self._clock().isoformat(),
        )

    def publish(self, device_id: str, command: CommandEnvelope) -> DispatchAck:
        """
        Stamp ``serverTime`` and send ``command`` to the device.

        Raises:
            DispatchError: MQTT is disabled or disconnected, the client rejected
                the publish, or the optional broker handshake failed.
        """
        topic = command_topic(device_id, self.topic_prefix)
        if self.mqtt_client is None:
            raise DispatchError("MQTT transport is disabled", detail={"device_id": device_id, "topic": topic})

        now = self._clock()
        envelope = command.model_copy(update={"serverTime": now.isoformat()})
        info = self.mqtt_client.publish(topic, envelope.to_json(), qos=self.qos)
        if info is None:
            raise DispatchError(
                f"Command '{envelope.action.value}' for {device_id} was not accepted by the MQTT client",
                detail={"device_id": device_id, "topic": topic, "correlation_id": envelope.correlationId},
            )

        broker_acknowledged = False
        if self.publish_timeout > 0 and self.qos > 0:
            try:
                info.wait_for_publish(timeout=self.publish_timeout)
            except (RuntimeError, ValueError) as exc:
                raise DispatchError(
                    f"Broker handshake failed for {device_id}: {exc}",
                    detail={"device_id": device_id, "topic": topic},
                ) from exc
            broker_acknowledged = info.is_published()
            if not broker_acknowledged:
                logger.warning(
                    "No broker ack within %.1fs for %s command to %s", self.publish_timeout, envelope.action.value, device_id
                )

        ack = DispatchAck(
            device_id=device_id,
            correlation_id=envelope.correlationId,
            action=envelope.action,
            topic=topic,
            qos=self.qos,
            accepted_at=now,
            mid=getattr(info, "mid", None),
            broker_acknowledged=broker_acknowledged,
        )
        self._track(ack)
        logger.info("Command %s sent to %s (correlation=%s)", envelope.action.value, device_id, envelope.correlationId)
        return ack

    def acknowledge(self, device_id: str, correlation_id: str, response: dict[str, Any] | None = None) -> bool:
        """Record that the device answered a command; False if it is not being tracked."""
        response = response or {}
        action = response.get("action")
        with self._lock:
            candidates = [
                key
                for key in self._tracked
                if key[0] == device_id and key[1] == correlation_id and (action is None or key[2] == action)
            ]
            if not candidates:
                return False
            # Most recent matching command when the response names no action
            record = self._tracked[candidates[-1]]
            record.device_ack_at = self._clock()
            record.device_response = dict(response)
        logger.info("Device %s acknowledged command %s", device_id, correlation_id)
        return True

    def is_acknowledged(self, correlation_id: str, action: CommandAction | None = None) -> bool:
        with self._lock:
            return any(
                record.device_ack_at is not None
                for (_device, corr, act), record in self._tracked.items()
                if corr == correlation_id and (action is None or act == action.value)
            )

    def recent_commands(self, device_id: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            records = list(self._tracked.values())
        return [
            {
                "deviceId": r.ack.device_id,
                "correlationId": r.ack.correlation_id,
                "action": r.ack.action.value,
                "acceptedAt": r.ack.accepted_at.isoformat(),
                "brokerAcknowledged": r.ack.broker_acknowledged,
                "deviceAcknowledgedAt": r.device_ack_at.isoformat() if r.device_ack_at else None,
            }
            for r in records
            if device_id is None or r.ack.device_id == device_id
        ]

    def _track(self, ack: DispatchAck) -> None:
        key = (ack.device_id, ack.correlation_id, ack.action.value)
        with self._lock:
            self._tracked[key] = _TrackedCommand(ack=ack)
            self._tracked.move_to_end(key)
            while len(self._tracked) > self._max_tracked:
                self._tracked.popitem(last=False)
