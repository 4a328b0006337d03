from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from flask_socketio import SocketIO

from fieldflow.config import AppConfig
from fieldflow.domain.water_policy import DecisionEstimateWaterPolicy, FlowRateWaterPolicy
from fieldflow.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper
from fieldflow.hardware.mqtt.mqtt_notifier import MQTTCriticalAlertNotifier
from fieldflow.services.application.decision_engine import DecisionEngine
from fieldflow.services.application.session_registry import SessionRegistry
from fieldflow.services.application.telemetry_gateway import TelemetryGateway
from fieldflow.services.hardware.command_dispatcher import CommandDispatcher
from fieldflow.utils.emitters import EventBroadcaster
from fieldflow.workers.session_timers import SessionTimerScheduler
from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.repositories.irrigation_sessions import IrrigationSessionRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregate and manage the coordinator's services."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    device_repo: DeviceRepository
    session_repo: IrrigationSessionRepository
    mqtt_client: Optional[MQTTClientWrapper]
    broadcaster: EventBroadcaster
    dispatcher: CommandDispatcher
    decision_engine: DecisionEngine
    timers: SessionTimerScheduler
    session_registry: SessionRegistry
    telemetry_gateway: TelemetryGateway
    notifier: MQTTCriticalAlertNotifier

    @classmethod
    def build(cls, config: AppConfig, *, socketio: SocketIO, start_runtime: bool = False) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            socketio: Socket.IO server used for live broadcasts
            start_runtime: Start the session timer worker, reconcile sessions
                left over from a previous run, and subscribe to device channels
        """
        logger.info("Building ServiceContainer...")

        database = SQLiteDatabaseHandler(config.database_path)
        database.create_tables()
        device_repo = DeviceRepository(database)
        session_repo = IrrigationSessionRepository(database)

        mqtt_client: MQTTClientWrapper | None = None
        if config.enable_mqtt:
            mqtt_client = MQTTClientWrapper(
                broker=config.mqtt_broker_host,
                port=config.mqtt_broker_port,
                client_id=config.mqtt_client_id,
                keepalive=config.mqtt_keepalive,
            )
            if not mqtt_client.connected:
                logger.warning("MQTT client not connected yet; paho will keep retrying")
            logger.info("✓ MQTT client initialized")
        else:
            logger.info("MQTT disabled; commands will fail with DispatchError")

        broadcaster = EventBroadcaster(socketio)
        dispatcher = CommandDispatcher(
            mqtt_client,
            qos=config.command_qos,
            topic_prefix=config.mqtt_topic_prefix,
            publish_timeout=config.command_publish_timeout,
        )
        decision_engine = DecisionEngine(
            baseline_confidence=config.decision_baseline_confidence,
            confidence_cap=config.decision_confidence_cap,
            training_gain=config.decision_training_gain,
            optimal_hour=config.optimal_irrigation_hour,
        )
        timers = SessionTimerScheduler(
            check_interval_seconds=config.timer_check_interval_seconds,
            max_workers=config.timer_max_workers,
        )
        registry = SessionRegistry(
            device_directory=device_repo,
            session_store=session_repo,
            dispatcher=dispatcher,
            broadcaster=broadcaster,
            timers=timers,
            policies=(
                FlowRateWaterPolicy(config.flow_rate_lpm, config.traditional_overhead),
                DecisionEstimateWaterPolicy(config.smart_savings_ratio),
            ),
            min_duration=config.min_session_minutes,
            max_duration=config.max_session_minutes,
        )
        notifier = MQTTCriticalAlertNotifier(mqtt_client, topic_prefix=config.mqtt_topic_prefix)
        gateway = TelemetryGateway(
            device_directory=device_repo,
            decision_engine=decision_engine,
            registry=registry,
            broadcaster=broadcaster,
            dispatcher=dispatcher,
            notifier=notifier,
            topic_prefix=config.mqtt_topic_prefix,
            offline_after_seconds=config.device_offline_after_seconds,
        )

        container = cls(
            config=config,
            database=database,
            device_repo=device_repo,
            session_repo=session_repo,
            mqtt_client=mqtt_client,
            broadcaster=broadcaster,
            dispatcher=dispatcher,
            decision_engine=decision_engine,
            timers=timers,
            session_registry=registry,
            telemetry_gateway=gateway,
            notifier=notifier,
        )
        if start_runtime:
            container.start()
        logger.info("ServiceContainer built successfully.")
        return container

    def start(self) -> None:
        """Start background work: timers, orphan reconciliation, MQTT subscriptions."""
        self.timers.start()
        orphans = self.session_registry.reconcile_orphans()
        if orphans:
            logger.warning("Reconciled %s orphaned irrigation sessions", len(orphans))
        if self.mqtt_client is not None:
            self.telemetry_gateway.subscribe_all(self.mqtt_client)
        logger.info("✓ Irrigation runtime started")

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        try:
            self.timers.shutdown()
            logger.info("✓ Session timers stopped")
        except Exception as e:
            logger.warning(f"Failed to stop session timers: {e}")

        self.database.close_db()
        if self.mqtt_client is not None:
            self.mqtt_client.disconnect()
        logger.info("ServiceContainer shutdown complete.")
