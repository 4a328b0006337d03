"""
    Wrapper around a paho MQTT client shared by every coordinator component.
    It owns the broker connection, fans inbound messages out to all matching
    subscribers, re-subscribes after reconnects, and keeps publish health
    counters for the status endpoint.
"""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Callable

import paho.mqtt.client as mqtt

from fieldflow.hardware.mqtt.client_factory import create_mqtt_client
from fieldflow.utils.time import utc_now

# Broker traffic goes to its own rotating file so it cannot flood the main log
_mqtt_logger = logging.getLogger("fieldflow.mqtt")
if not _mqtt_logger.handlers:
    os.makedirs("logs", exist_ok=True)
    _mqtt_handler = RotatingFileHandler(
        "logs/devices_mqtt.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    _mqtt_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    _mqtt_logger.addHandler(_mqtt_handler)
    _mqtt_logger.setLevel(logging.INFO)
    _mqtt_logger.propagate = False

_LOG_MQTT_DISPATCH = os.getenv("FIELDFLOW_LOG_MQTT_DISPATCH", "").lower() in {"1", "true", "t", "yes", "on"}

MessageCallback = Callable[[Any, Any, Any], None]


@dataclass
class HealthStatus:
    """
    Tracks the health status of the MQTT client connection.
    """

    is_connected: bool = False
    last_error: str | None = None
    last_error_time: datetime | None = None
    connection_attempts: int = 0
    successful_publishes: int = 0
    failed_publishes: int = 0
    active_subscriptions: int = 0

    @property
    def success_rate(self) -> float:
        total = self.successful_publishes + self.failed_publishes
        if total == 0:
            return 0.0
        return (self.successful_publishes / total) * 100

    def mark_connected(self):
        self.is_connected = True
        self.last_error = None
        self.last_error_time = None

    def mark_disconnected(self):
        self.is_connected = False

    def record_error(self, error: Exception | str):
        self.last_error = str(error)
        self.last_error_time = utc_now()

    def to_dict(self):
        return {
            "is_connected": self.is_connected,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "connection_attempts": self.connection_attempts,
            "successful_publishes": self.successful_publishes,
            "failed_publishes": self.failed_publishes,
            "active_subscriptions": self.active_subscriptions,
            "publish_success_rate": round(self.success_rate, 2),
        }


class MQTTClientWrapper:
    """
    Shared MQTT connection with multi-subscriber fan-out.
    """

    def __init__(self, broker, port, client_id="", *, keepalive: int = 60):
        """
        Initializes the wrapper and connects to the broker.

        Args:
            broker (str): The MQTT broker address.
            port (int): The MQTT broker port.
            client_id (str, optional): The MQTT client ID. Defaults to "".
            keepalive (int): Seconds between broker keepalive pings.
        """
        self.broker = broker
        self.port = port
        self.client_id = client_id
        self.keepalive = keepalive
        self.client = create_mqtt_client(client_id=client_id)
        self.connected = False
        self._callback_lock = threading.Lock()
        # (topic filter, qos, callback)
        self._subscriptions: list[tuple[str, int, MessageCallback]] = []
        self.client.on_message = self._dispatch_message
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.health_status = HealthStatus()
        self._connect()

    def _connect(self):
        self.health_status.connection_attempts += 1
        try:
            self.client.connect(self.broker, self.port, self.keepalive)
            self.connected = True
            self.client.loop_start()
            self.health_status.mark_connected()
            _mqtt_logger.info("Connected to MQTT broker %s:%s", self.broker, self.port)
        except Exception as e:
            _mqtt_logger.error("Error connecting to MQTT broker %s:%s: %s", self.broker, self.port, e)
            self.connected = False
            self.health_status.record_error(e)

    def _on_connect(self, client, userdata, flags, rc):
        if rc != 0:
            _mqtt_logger.error("MQTT broker refused connection: rc=%s", rc)
            self.connected = False
            self.health_status.record_error(f"connack rc={rc}")
            return
        self.connected = True
        self.health_status.mark_connected()
        # Clean sessions drop subscriptions on reconnect
        with self._callback_lock:
            subscriptions = list(self._subscriptions)
        for topic, qos, _callback in subscriptions:
            client.subscribe(topic, qos)
        if subscriptions:
            _mqtt_logger.info("Re-subscribed %s topic filters after (re)connect", len(subscriptions))

    def _on_disconnect(self, client, userdata, rc):
        self.connected = False
        self.health_status.mark_disconnected()
        if rc != 0:
            self.health_status.record_error(f"unexpected disconnect rc={rc}")
            _mqtt_logger.warning("Unexpected MQTT disconnect (rc=%s); paho will reconnect", rc)

    def disconnect(self):
        """
        Disconnects from the MQTT broker and forgets all subscriptions.
        """
        if not self.connected:
            return
        try:
            self.client.disconnect()
            self.client.loop_stop()
            self.connected = False
            self.health_status.mark_disconnected()
            with self._callback_lock:
                self._subscriptions.clear()
            _mqtt_logger.info("Disconnected from MQTT broker.")
        except Exception as e:
            _mqtt_logger.error("Error disconnecting from MQTT broker: %s", e)
            self.health_status.record_error(e)

    def publish(self, topic, payload, qos: int = 0, retain: bool = False):
        """
        Publishes a message to the MQTT broker.

        Args:
            topic (str): The MQTT topic to publish to.
            payload (str): The message payload.
            qos (int): Delivery guarantee requested from the broker.
            retain (bool): Ask the broker to retain the message.

        Returns:
            The paho ``MQTTMessageInfo`` when the client accepted the message,
            or None when not connected, the client rejected it, or it raised.
        """
        if not self.connected:
            self.health_status.failed_publishes += 1
            _mqtt_logger.warning("MQTT client not connected. Cannot publish to %s.", topic)
            return None
        try:
            msg_info = self.client.publish(topic, payload, qos=qos, retain=retain)
        except Exception as e:
            self.health_status.failed_publishes += 1
            self.health_status.record_error(e)
            _mqtt_logger.error("Error publishing to %s: %s", topic, e)
            return None

        if msg_info.rc == mqtt.MQTT_ERR_SUCCESS:
            self.health_status.successful_publishes += 1
            _mqtt_logger.debug("Published to %s (qos=%s): %s", topic, qos, payload)
            return msg_info

        self.health_status.failed_publishes += 1
        self.health_status.record_error(f"publish rc={msg_info.rc}")
        _mqtt_logger.error("Failed to publish to %s: MQTT result code %s", topic, msg_info.rc)
        return None

    def subscribe(self, topic, callback, qos: int = 0) -> bool:
        """
        Subscribes to a topic filter and registers a callback for it.

        Args:
            topic (str): MQTT topic filter, wildcards allowed.
            callback (Callable): Handler called as ``callback(client, userdata, msg)``.
            qos (int): Maximum QoS requested for this subscription.
        """
        if not self.connected:
            _mqtt_logger.warning("MQTT client not connected. Cannot subscribe to %s.", topic)
            return False
        try:
            result, _mid = self.client.subscribe(topic, qos)
        except Exception as e:
            self.health_status.record_error(e)
            _mqtt_logger.error("Error subscribing to MQTT topic %s: %s", topic, e)
            return False

        if result != mqtt.MQTT_ERR_SUCCESS:
            _mqtt_logger.error("Failed to subscribe to topic %s: result code %s", topic, result)
            return False

        with self._callback_lock:
            self._subscriptions.append((topic, qos, callback))
            self.health_status.active_subscriptions = len(self._subscriptions)
        _mqtt_logger.info("Subscribed to %s (qos=%s) with %s", topic, qos, getattr(callback, "__name__", callback))
        return True

    def _dispatch_message(self, client, userdata, msg) -> None:
        """
        Fan out MQTT messages to all registered callbacks that match the topic
        using MQTT wildcard semantics. A failing callback never affects the others.
        """
        if _LOG_MQTT_DISPATCH:
            _mqtt_logger.debug("MQTT DISPATCHER: topic=%s payload_len=%s", msg.topic, len(msg.payload))

        with self._callback_lock:
            subscriptions = list(self._subscriptions)

        handled = False
        for sub, _qos, callback in subscriptions:
            try:
                if mqtt.topic_matches_sub(sub, msg.topic):
                    handled = True
                    callback(client, userdata, msg)
            except Exception as e:
                _mqtt_logger.error("Error in MQTT callback for topic %s: %s", sub, e, exc_info=True)

        if not handled:
            _mqtt_logger.warning("MQTT message on %s had no registered handlers", msg.topic)

    def __del__(self):
        if getattr(self, "connected", False):
            self.disconnect()
