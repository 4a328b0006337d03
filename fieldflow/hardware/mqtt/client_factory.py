"""
Construct paho MQTT clients that behave the same on paho-mqtt 1.x and 2.x.

Handlers in this package use the ``(client, userdata, msg)`` callback
signature, so on 2.x we pin the VERSION1 callback API.
"""

from __future__ import annotations

from typing import Any

import paho.mqtt.client as mqtt


def _legacy_callback_api() -> Any | None:
    """Return the paho 2.x enum value for the v1 callback signature, or None on 1.x."""
    api = getattr(mqtt, "CallbackAPIVersion", None)
    if api is None:
        return None
    for attr in ("VERSION1", "V1"):
        if hasattr(api, attr):
            return getattr(api, attr)
    return None


def create_mqtt_client(client_id: str = "", *, clean_session: bool = True, **kwargs: Any) -> mqtt.Client:
    """
    Build an MQTT v3.1.1 client for the coordinator.

    Args:
        client_id: Broker-visible client identifier. Must be unique per process
            when ``clean_session`` is False, or the broker drops the older session.
        clean_session: Ask the broker to discard queued QoS>0 messages on reconnect.
        kwargs: Extra keyword arguments forwarded to ``mqtt.Client``.
    """
    client_kwargs: dict[str, Any] = {
        "client_id": client_id or "",
        "clean_session": clean_session,
        "protocol": kwargs.pop("protocol", mqtt.MQTTv311),
    }
    client_kwargs.update(kwargs)

    callback_api = _legacy_callback_api()
    if callback_api is not None:
        client_kwargs["callback_api_version"] = callback_api

    try:
        return mqtt.Client(**client_kwargs)
    except TypeError:
        # paho 1.x does not accept callback_api_version
        client_kwargs.pop("callback_api_version", None)
        return mqtt.Client(**client_kwargs)
