"""
Session Registry
================

Owns the in-flight irrigation sessions, one per device at most.

Concurrency:
    Every start, stop and timer expiry for a device runs under that device's
    lock, so two racing requests for the same device cannot both succeed and
    a timer firing alongside a manual stop yields exactly one terminal
    transition. The active table itself is guarded by a separate short lock
    so readers (``list_active``) never wait on a device's I/O.

Persistence:
    Sessions are written through the injected session store on creation and
    on every transition. On startup :meth:`SessionRegistry.reconcile_orphans`
    fails any row a previous process left non-terminal and tells the device
    to stop, since the in-memory table did not survive the restart.

Water accounting:
    Each session records the name of the water policy it was started with
    (``flow-rate`` unless the caller picks another). The policy is applied
    when the session stops.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from fieldflow.domain.decision import Decision
from fieldflow.domain.exceptions import (
    ConfigurationError,
    ConflictError,
    DispatchError,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from fieldflow.domain.session import MAX_SESSION_MINUTES, IrrigationSession, SessionResult
from fieldflow.domain.telemetry import TelemetrySnapshot
from fieldflow.domain.water_policy import (
    DecisionEstimateWaterPolicy,
    FlowRateWaterPolicy,
    WaterPolicy,
)
from fieldflow.enums import BroadcastEvent, CommandAction, SessionStatus, SessionType
from fieldflow.schemas.events import IrrigationSessionPayload
from fieldflow.utils.concurrency import KeyedLocks
from fieldflow.utils.emitters import EventBroadcaster, user_group
from fieldflow.utils.time import Clock, elapsed_minutes, utc_now
from fieldflow.workers.session_timers import SessionTimerScheduler, TimerHandle

if TYPE_CHECKING:
    from fieldflow.services.hardware.command_dispatcher import CommandDispatcher
    from fieldflow.services.protocols import DeviceDirectory, SessionStore

logger = logging.getLogger(__name__)

ORPHANED_NOTE = "orphaned-by-restart"
SUPERSEDED_NOTE = "superseded-by-new-session"


@dataclass
class _ActiveEntry:
    session: IrrigationSession
    policy: WaterPolicy
    timer: TimerHandle | None = None


class SessionRegistry:
    """Start, stop and auto-complete irrigation sessions."""

    def __init__(
        self,
        *,
        device_directory: "DeviceDirectory",
        session_store: "SessionStore",
        dispatcher: "CommandDispatcher",
        broadcaster: EventBroadcaster,
        timers: SessionTimerScheduler,
        policies: Iterable[WaterPolicy] | None = None,
        min_duration: int = 1,
        max_duration: int = MAX_SESSION_MINUTES,
        clock: Clock = utc_now,
    ) -> None:
        self._devices = device_directory
        self._store = session_store
        self._dispatcher = dispatcher
        self._broadcaster = broadcaster
        self._timers = timers
        self._min_duration = min_duration
        self._max_duration = max_duration
        self._clock = clock

        if not 1 <= min_duration <= max_duration <= MAX_SESSION_MINUTES:
            raise ConfigurationError(
                f"Session bounds {min_duration}..{max_duration} must lie within 1..{MAX_SESSION_MINUTES} minutes"
            )

        if policies is None:
            policies = (FlowRateWaterPolicy(), DecisionEstimateWaterPolicy())
        self._policies: dict[str, WaterPolicy] = {p.name: p for p in policies}
        if FlowRateWaterPolicy.name not in self._policies:
            raise ConfigurationError("A 'flow-rate' water policy is required")

        self._active: dict[str, _ActiveEntry] = {}
        self._table_lock = threading.Lock()
        self._device_locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(
        self,
        device_id: str,
        duration: int,
        session_type: SessionType | str = SessionType.MANUAL,
        user_id: int | None = None,
        *,
        trigger_telemetry: TelemetrySnapshot | None = None,
        trigger_decision: Decision | None = None,
        water_policy: str = FlowRateWaterPolicy.name,
    ) -> IrrigationSession:
        """
        Start watering ``device_id`` for ``duration`` minutes.

        Raises:
            ValidationError: duration outside the configured bounds, or unknown type/policy.
            NotFoundError: the device is not registered.
            ConflictError: the device already has a pending or in-progress session.
            RepositoryError: the session record could not be created.
            DispatchError: the start command was not accepted; the session is marked failed.
        """
        session_type = self._coerce_type(session_type)
        self._validate_duration(duration)
        policy = self._policies.get(water_policy)
        if policy is None:
            raise ValidationError(f"Unknown water policy '{water_policy}'")

        device = self._devices.get_device(device_id)
        if device is None:
            raise NotFoundError(f"Device {device_id} not found", detail={"device_id": device_id})

        with self._device_locks(device_id):
            with self._table_lock:
                current = self._active.get(device_id)
            if current is not None:
                raise ConflictError(
                    f"Device {device_id} is already irrigating",
                    detail={"device_id": device_id, "session_id": current.session.session_id},
                )

            self._supersede_stale_record(device_id)

            if trigger_telemetry is None:
                trigger_telemetry = self._devices.get_last_sensor_data(device_id)

            session = IrrigationSession(
                device_id=device_id,
                user_id=user_id if user_id is not None else device.user_id,
                session_type=session_type,
                planned_duration=duration,
                started_at=self._clock(),
                water_policy=policy.name,
                trigger_telemetry=trigger_telemetry,
                trigger_decision=trigger_decision,
            )
            # Built before anything is recorded so a bad envelope leaves no trace
            command = self._dispatcher.build_command(CommandAction.START, session.session_id, duration)
            if not self._store.create(session):
                raise RepositoryError(
                    f"Could not record irrigation session for {device_id}",
                    detail={"device_id": device_id, "session_id": session.session_id},
                )

            session.transition(SessionStatus.IN_PROGRESS)
            entry = _ActiveEntry(session=session, policy=policy)
            with self._table_lock:
                self._active[device_id] = entry
            self._persist(session)

            try:
                self._dispatcher.publish(device_id, command)
            except Exception as exc:
                session.transition(SessionStatus.FAILED, at=self._clock())
                session.notes = f"start command not dispatched: {exc}"
                with self._table_lock:
                    if self._active.get(device_id) is entry:
                        del self._active[device_id]
                self._persist(session)
                self._announce(session)
                logger.error(
                    "Irrigation start failed for %s: %s", device_id, exc, exc_info=not isinstance(exc, DispatchError)
                )
                raise

            entry.timer = self._timers.schedule_once(
                session.estimated_end,
                self._on_timer_expired,
                device_id,
                session.session_id,
                name=f"irrigation-{device_id}",
            )
            snapshot = session.snapshot()

        logger.info(
            "Irrigation %s started on %s for %s min (session=%s, policy=%s)",
            session_type.value,
            device_id,
            duration,
            session.session_id,
            policy.name,
        )
        self._announce(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------

    def stop(
        self, device_id: str, terminal_status: SessionStatus | str = SessionStatus.COMPLETED
    ) -> IrrigationSession:
        """
        End the active session on ``device_id``.

        A ``completed`` request that arrives before the planned end is
        recorded as ``cancelled``.

        Raises:
            ValidationError: status is not ``completed`` or ``cancelled``.
            NotFoundError: the device has no active session (nothing is changed).
        """
        status = self._coerce_terminal(terminal_status)
        with self._device_locks(device_id):
            with self._table_lock:
                entry = self._active.get(device_id)
            if entry is None:
                raise NotFoundError(f"No active irrigation for device {device_id}", detail={"device_id": device_id})
            session = self._finish_locked(entry, status)
        self._announce(session)
        return session

    def _on_timer_expired(self, device_id: str, session_id: str) -> None:
        with self._device_locks(device_id):
            with self._table_lock:
                entry = self._active.get(device_id)
            if entry is None or entry.session.session_id != session_id or not entry.session.is_active:
                logger.info("Timer for session %s on %s fired after the session ended; ignored", session_id, device_id)
                return
            session = self._finish_locked(entry, SessionStatus.COMPLETED)
        self._announce(session)

    def _finish_locked(self, entry: _ActiveEntry, status: SessionStatus) -> IrrigationSession:
        """Terminal transition; caller holds the device lock."""
        session = entry.session
        if entry.timer is not None:
            entry.timer.cancel()

        try:
            now = self._clock()
            if status is SessionStatus.COMPLETED and now < session.estimated_end:
                status = SessionStatus.CANCELLED
            session.actual_duration = elapsed_minutes(session.started_at, now)
            usage = entry.policy.compute(session, session.actual_duration)
            session.water_used = usage.water_used
            session.water_saved = usage.water_saved
            session.efficiency = usage.efficiency
            session.transition(status, at=now)
            self._persist(session)
            self._send_stop(session.device_id, session.session_id)
        finally:
            with self._table_lock:
                if self._active.get(session.device_id) is entry:
                    del self._active[session.device_id]

        logger.info(
            "Irrigation on %s %s after %s min: %sL used, %sL saved",
            session.device_id,
            session.status.value,
            session.actual_duration,
            session.water_used,
            session.water_saved,
        )
        return session.snapshot()

    def emergency_stop_all(self, user_id: int | None, *, include_all_users: bool = False) -> list[SessionResult]:
        """
        Cancel every active session of ``user_id`` (or of everyone when
        ``include_all_users``). Each device is handled independently; the
        result list has one entry per targeted device.
        """
        with self._table_lock:
            targets = [
                device_id
                for device_id, entry in self._active.items()
                if include_all_users or entry.session.user_id == user_id
            ]

        logger.warning(
            "Emergency stop requested by user %s (%s): %s active sessions",
            user_id,
            "all users" if include_all_users else "own devices",
            len(targets),
        )
        results: list[SessionResult] = []
        for device_id in targets:
            try:
                session = self.stop(device_id, SessionStatus.CANCELLED)
                results.append(SessionResult(device_id=device_id, success=True, session=session))
            except NotFoundError:
                results.append(SessionResult(device_id=device_id, success=False, error="session already ended"))
            except Exception as exc:
                logger.error("Emergency stop failed for %s: %s", device_id, exc, exc_info=True)
                results.append(SessionResult(device_id=device_id, success=False, error=str(exc)))
        return results

    # ------------------------------------------------------------------
    # Queries and recovery
    # ------------------------------------------------------------------

    def list_active(self) -> list[IrrigationSession]:
        with self._table_lock:
            entries = list(self._active.values())
        return [e.session.snapshot() for e in entries]

    def get_active(self, device_id: str) -> IrrigationSession | None:
        with self._table_lock:
            entry = self._active.get(device_id)
        return entry.session.snapshot() if entry else None

    def is_active(self, device_id: str) -> bool:
        with self._table_lock:
            return device_id in self._active

    def reconcile_orphans(self) -> list[str]:
        """Fail persisted non-terminal sessions unknown to this process; returns their ids."""
        with self._table_lock:
            live = {e.session.session_id for e in self._active.values()}

        reconciled: list[str] = []
        for row in self._store.find_non_terminal():
            session_id = row["session_id"]
            if session_id in live:
                continue
            device_id = row["device_id"]
            with self._device_locks(device_id):
                self._store.mark(
                    session_id,
                    status=SessionStatus.FAILED.value,
                    ended_at=self._clock().isoformat(),
                    notes=ORPHANED_NOTE,
                )
                self._send_stop(device_id, session_id)
            reconciled.append(session_id)
            logger.warning("Session %s on %s was left %s by a previous run; marked failed", session_id, device_id, row["status"])
        return reconciled

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _supersede_stale_record(self, device_id: str) -> None:
        """Fail a persisted non-terminal row left behind for ``device_id``.

        Only called when the device has no in-memory session, so such a row
        belongs to a dead process or a lost update and must not linger as a
        second active session once the new one is written.
        """
        row = self._store.find_active_by_device(device_id)
        if row is None:
            return
        self._store.mark(
            row["session_id"],
            status=SessionStatus.FAILED.value,
            ended_at=self._clock().isoformat(),
            notes=SUPERSEDED_NOTE,
        )
        logger.warning("Stale %s session %s on %s marked failed before a new start", row["status"], row["session_id"], device_id)

    def _validate_duration(self, duration: int) -> None:
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise ValidationError("Duration must be a whole number of minutes", detail={"duration": duration})
        if not self._min_duration <= duration <= self._max_duration:
            raise ValidationError(
                f"Duration must be between {self._min_duration} and {self._max_duration} minutes",
                detail={"duration": duration},
            )

    @staticmethod
    def _coerce_type(session_type: SessionType | str) -> SessionType:
        try:
            return SessionType(session_type)
        except ValueError:
            raise ValidationError(f"Unknown session type '{session_type}'") from None

    @staticmethod
    def _coerce_terminal(status: SessionStatus | str) -> SessionStatus:
        try:
            status = SessionStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown session status '{status}'") from None
        if status not in (SessionStatus.COMPLETED, SessionStatus.CANCELLED):
            raise ValidationError("A session can only be stopped as 'completed' or 'cancelled'")
        return status

    def _persist(self, session: IrrigationSession) -> None:
        if not self._store.update(session):
            logger.error("Failed to persist session %s (%s)", session.session_id, session.status.value)

    def _send_stop(self, device_id: str, session_id: str) -> None:
        """Best effort: the local transition stands even if the device is unreachable."""
        try:
            command = self._dispatcher.build_command(CommandAction.STOP, session_id)
            self._dispatcher.publish(device_id, command)
        except DispatchError as exc:
            logger.warning("Stop command for %s not dispatched: %s", device_id, exc)

    def _announce(self, session: IrrigationSession) -> None:
        payload = IrrigationSessionPayload(
            deviceId=session.device_id,
            sessionId=session.session_id,
            status=session.status.value,
            type=session.session_type.value,
            plannedDuration=session.planned_duration,
            actualDuration=session.actual_duration,
            waterUsed=session.water_used,
            waterSaved=session.water_saved,
            timestamp=self._clock().isoformat(),
        )
        self._broadcaster.broadcast(
            BroadcastEvent.IRRIGATION_SESSION.value, payload.model_dump(), user_group(session.user_id)
        )
