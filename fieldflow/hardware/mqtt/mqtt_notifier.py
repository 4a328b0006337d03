# mqtt_notifier.py
import json
import logging

from fieldflow.hardware.mqtt.topics import join_topic

logger = logging.getLogger(__name__)

CRITICAL_TOPIC = "notifications/critical/{device_id}"


class MQTTCriticalAlertNotifier:
    """Republishes critical device alerts for out-of-band consumers (pagers, SMS bridges)."""

    def __init__(self, mqtt_client=None, *, topic_prefix: str = "", qos: int = 1):
        self.client = mqtt_client
        self.topic_prefix = topic_prefix
        self.qos = qos
        if mqtt_client is None:
            logger.warning("Critical alert notifier running without MQTT; alerts will only be logged")

    def topic_for(self, device_id: str) -> str:
        return join_topic(self.topic_prefix, CRITICAL_TOPIC.format(device_id=device_id))

    def notify_critical(self, device, alert: dict) -> bool:
        """Log the alert and publish it on the device's critical notification topic."""
        logger.critical(
            "CRITICAL alert on device %s (user %s): %s",
            device.device_id,
            device.user_id,
            alert.get("message", ""),
        )
        if not self.client:
            return False
        try:
            payload = json.dumps({**alert, "deviceId": device.device_id, "userId": device.user_id})
            info = self.client.publish(self.topic_for(device.device_id), payload, qos=self.qos)
            return info is not None
        except Exception as exc:
            logger.warning("MQTT publish failed for critical alert on %s: %s", device.device_id, exc)
            return False
