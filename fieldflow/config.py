"""
Configuration for the FieldFlow irrigation coordinator
======================================================
Runtime settings loaded from ``FIELDFLOW_*`` environment variables, and the
logging setup shared by the server entry point and tests.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from fieldflow.domain.session import MAX_SESSION_MINUTES


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("FIELDFLOW_ENV", "development"))
    secret_key: str = field(default_factory=lambda: os.getenv("FIELDFLOW_SECRET_KEY", "FieldFlowDevSecretKey"))
    database_path: str = field(default_factory=lambda: os.getenv("FIELDFLOW_DATABASE_PATH", "database/fieldflow.db"))
    DEBUG: bool = field(default_factory=lambda: _env_bool("FIELDFLOW_DEBUG", False))

    # MQTT transport
    enable_mqtt: bool = field(default_factory=lambda: _env_bool("FIELDFLOW_ENABLE_MQTT", True))
    mqtt_broker_host: str = field(default_factory=lambda: os.getenv("FIELDFLOW_MQTT_HOST", "localhost"))
    mqtt_broker_port: int = field(default_factory=lambda: _env_int("FIELDFLOW_MQTT_PORT", 1883))
    mqtt_client_id: str = field(default_factory=lambda: os.getenv("FIELDFLOW_MQTT_CLIENT_ID", "fieldflow-coordinator"))
    mqtt_keepalive: int = field(default_factory=lambda: _env_int("FIELDFLOW_MQTT_KEEPALIVE", 60))
    # Optional prefix for every topic, e.g. "irrigation" -> irrigation/telemetry/sensor/+/data
    mqtt_topic_prefix: str = field(default_factory=lambda: os.getenv("FIELDFLOW_MQTT_TOPIC_PREFIX", ""))
    command_qos: int = field(default_factory=lambda: _env_int("FIELDFLOW_COMMAND_QOS", 1))
    # Seconds to block for the broker's PUBACK; 0 returns as soon as the client queued the message
    command_publish_timeout: float = field(default_factory=lambda: _env_float("FIELDFLOW_COMMAND_PUBLISH_TIMEOUT", 0.0))

    socketio_cors_origins: str = field(default_factory=lambda: os.getenv("FIELDFLOW_SOCKETIO_CORS_ORIGINS", "*"))

    # Session accounting
    min_session_minutes: int = field(default_factory=lambda: _env_int("FIELDFLOW_MIN_SESSION_MINUTES", 1))
    max_session_minutes: int = field(default_factory=lambda: _env_int("FIELDFLOW_MAX_SESSION_MINUTES", 120))
    flow_rate_lpm: float = field(default_factory=lambda: _env_float("FIELDFLOW_FLOW_RATE_LPM", 10.0))
    traditional_overhead: float = field(default_factory=lambda: _env_float("FIELDFLOW_TRADITIONAL_OVERHEAD", 0.3))
    smart_savings_ratio: float = field(default_factory=lambda: _env_float("FIELDFLOW_SMART_SAVINGS_RATIO", 0.3))

    # Decision engine
    decision_baseline_confidence: int = field(default_factory=lambda: _env_int("FIELDFLOW_DECISION_BASELINE", 75))
    decision_confidence_cap: int = field(default_factory=lambda: _env_int("FIELDFLOW_DECISION_CONFIDENCE_CAP", 95))
    decision_training_gain: int = field(default_factory=lambda: _env_int("FIELDFLOW_DECISION_TRAINING_GAIN", 5))
    optimal_irrigation_hour: int = field(default_factory=lambda: _env_int("FIELDFLOW_OPTIMAL_IRRIGATION_HOUR", 6))

    # Connectivity and timers
    device_offline_after_seconds: int = field(default_factory=lambda: _env_int("FIELDFLOW_DEVICE_OFFLINE_AFTER", 300))
    timer_check_interval_seconds: float = field(
        default_factory=lambda: _env_float("FIELDFLOW_TIMER_CHECK_INTERVAL", 1.0)
    )
    timer_max_workers: int = field(default_factory=lambda: _env_int("FIELDFLOW_TIMER_MAX_WORKERS", 4))

    _DEFAULT_SECRET_KEY: str = field(default="FieldFlowDevSecretKey", init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.environment == "production" and self.secret_key == self._DEFAULT_SECRET_KEY:
            raise RuntimeError(
                "SECURITY ERROR: Cannot use default secret key in production!\n"
                "Set FIELDFLOW_SECRET_KEY environment variable to a secure random value."
            )
        if not 1 <= self.min_session_minutes <= self.max_session_minutes <= MAX_SESSION_MINUTES:
            raise ValueError(f"Session duration bounds must satisfy 1 <= min <= max <= {MAX_SESSION_MINUTES}.")
        if self.command_qos not in (0, 1, 2):
            raise ValueError("FIELDFLOW_COMMAND_QOS must be 0, 1 or 2.")
        if not 0 <= self.optimal_irrigation_hour <= 23:
            raise ValueError("FIELDFLOW_OPTIMAL_IRRIGATION_HOUR must be between 0 and 23.")

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "SECRET_KEY": self.secret_key,
            "DATABASE_PATH": self.database_path,
            "MQTT_BROKER_HOST": self.mqtt_broker_host,
            "MQTT_BROKER_PORT": self.mqtt_broker_port,
            "SOCKETIO_CORS_ALLOWED_ORIGINS": self.socketio_cors_origins,
            "DEBUG": self.DEBUG,
        }


def validate_config(config: AppConfig) -> list[str]:
    """Return human-readable warnings for settings that are legal but suspicious."""
    warnings: list[str] = []
    if not config.enable_mqtt:
        warnings.append("MQTT disabled: device commands will fail and no telemetry will be ingested.")
    if config.command_qos == 0:
        warnings.append("Command QoS 0 gives no broker acknowledgement for start/stop commands.")
    if config.decision_baseline_confidence > config.decision_confidence_cap:
        warnings.append("Decision baseline exceeds its cap; it will be clamped on the first training cycle.")
    if config.device_offline_after_seconds < 30:
        warnings.append("Device offline threshold under 30s will flap for devices reporting every minute.")
    return warnings


def setup_logging(debug: bool = False) -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    log_level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "fieldflow_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "fieldflow_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "fieldflow_console"
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file:
        os.makedirs("logs", exist_ok=True)
        file_handler = RotatingFileHandler(
            "logs/fieldflow.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "fieldflow_file"
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"fieldflow_console", "fieldflow_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    if _env_bool("FIELDFLOW_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

    # Engine.IO polling logs every ping otherwise
    if _env_bool("FIELDFLOW_SILENCE_SOCKETIO", True):
        logging.getLogger("socketio").setLevel(logging.WARNING)
        logging.getLogger("engineio").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    import logging

    config = AppConfig()
    logger = logging.getLogger("config_loader")
    for warning in validate_config(config):
        logger.warning(warning)
    return config
