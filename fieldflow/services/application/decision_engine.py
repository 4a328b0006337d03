"""
Decision Engine
===============

Maps a telemetry reading and a device's configuration to an irrigation
recommendation. ``predict`` is pure apart from reading the confidence
baseline, which rises after each completed training/feedback cycle.

Rule ladder (first match wins):

==  ======================================  =========  =======================  =====================
#   Condition                               Irrigate   Reason                   Confidence
==  ======================================  =========  =======================  =====================
1   soilMoisture < 40                       yes        critical-dryness         min(95, baseline+10)
2   soilMoisture < 60 and rainfall < 5      yes        low-moisture             min(90, baseline+5)
3   temperature > 32 and soilMoisture < 70  yes        heat-preventive          min(85, baseline+3)
4   soilMoisture > 80                       no         moisture-sufficient      90
5   rainfall > 10                           no         recent-rainfall          95
6   otherwise                               no         optimal                  baseline
==  ======================================  =========  =======================  =====================
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any

from fieldflow.domain.decision import Decision
from fieldflow.domain.device import DeviceConfig
from fieldflow.domain.telemetry import TelemetrySnapshot
from fieldflow.domain.water_policy import round_half_up
from fieldflow.enums import CropType, DecisionReason
from fieldflow.utils.concurrency import synchronized
from fieldflow.utils.time import Clock, next_local_occurrence, utc_now

logger = logging.getLogger(__name__)

# Substituted when a reading omits a value; an explicit 0 is kept as a real reading
DEFAULT_SOIL_MOISTURE = 65.0
DEFAULT_TEMPERATURE = 28.0
DEFAULT_HUMIDITY = 70.0
DEFAULT_RAINFALL = 0.0

CROP_WATER_MULTIPLIERS: dict[str, float] = {
    CropType.CORN.value: 1.2,
    CropType.VEGETABLES.value: 0.8,
}

FALLBACK_CONFIDENCE = 70


@dataclass(frozen=True)
class TrainingRecord:
    timestamp: datetime
    user_id: int
    epochs: int
    confidence: int
    samples: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "userId": self.user_id,
            "epochs": self.epochs,
            "accuracy": self.confidence,
            "samples": self.samples,
        }


def _or_default(value: float | None, default: float) -> float:
    return default if value is None else value


def duration_for(soil_moisture: float, temperature: float) -> int:
    """Minutes to water: 40/30/20 by moisture tier, plus 10 above 30 degrees."""
    if soil_moisture < 40:
        minutes = 40
    elif soil_moisture < 60:
        minutes = 30
    else:
        minutes = 20
    if temperature > 30:
        minutes += 10
    return minutes


def water_volume_for(soil_moisture: float, crop_type: str | None) -> int:
    """Liters to apply: 400/300/200 by moisture tier, scaled by crop."""
    if soil_moisture < 40:
        liters = 400.0
    elif soil_moisture < 60:
        liters = 300.0
    else:
        liters = 200.0
    return round_half_up(liters * CROP_WATER_MULTIPLIERS.get((crop_type or "").lower(), 1.0))


class DecisionEngine:
    """Rule-based irrigation recommender with a slowly rising confidence baseline."""

    def __init__(
        self,
        *,
        baseline_confidence: int = 75,
        confidence_cap: int = 95,
        training_gain: int = 5,
        optimal_hour: int = 6,
        local_tz: tzinfo | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._lock = threading.RLock()
        self._baseline = min(baseline_confidence, confidence_cap)
        self._cap = confidence_cap
        self._gain = training_gain
        self._optimal_hour = optimal_hour
        self._local_tz = local_tz
        self._clock = clock
        self._history: list[TrainingRecord] = []

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict(self, telemetry: TelemetrySnapshot, config: DeviceConfig | None = None) -> Decision:
        """Evaluate the rule ladder; falls back to a single-threshold rule if that fails."""
        config = config or DeviceConfig(crop_type=None)
        with self._lock:
            baseline = self._baseline
            version = self.model_version
        try:
            return self._evaluate(telemetry, config, baseline, version)
        except Exception as exc:
            logger.error("Decision ladder failed, using rule-based fallback: %s", exc, exc_info=True)
            return self.rule_based_prediction(telemetry)

    def _evaluate(self, telemetry: TelemetrySnapshot, config: DeviceConfig, baseline: int, version: str) -> Decision:
        moisture = _or_default(telemetry.soil_moisture, DEFAULT_SOIL_MOISTURE)
        temperature = _or_default(telemetry.temperature, DEFAULT_TEMPERATURE)
        rainfall = _or_default(telemetry.rainfall, DEFAULT_RAINFALL)

        if moisture < 40:
            return self._irrigate(DecisionReason.CRITICAL_DRYNESS, min(95, baseline + 10), moisture, temperature, config, version)
        if moisture < 60 and rainfall < 5:
            return self._irrigate(DecisionReason.LOW_MOISTURE, min(90, baseline + 5), moisture, temperature, config, version)
        if temperature > 32 and moisture < 70:
            return self._irrigate(DecisionReason.HEAT_PREVENTIVE, min(85, baseline + 3), moisture, temperature, config, version)
        if moisture > 80:
            return Decision(False, 90, DecisionReason.MOISTURE_SUFFICIENT, model_version=version)
        if rainfall > 10:
            return Decision(False, 95, DecisionReason.RECENT_RAINFALL, model_version=version)
        return Decision(False, baseline, DecisionReason.OPTIMAL, model_version=version)

    def _irrigate(
        self,
        reason: DecisionReason,
        confidence: int,
        moisture: float,
        temperature: float,
        config: DeviceConfig,
        version: str,
    ) -> Decision:
        return Decision(
            should_irrigate=True,
            confidence=confidence,
            reason=reason,
            recommended_duration=duration_for(moisture, temperature),
            recommended_water_volume=water_volume_for(moisture, config.crop_type),
            optimal_time=next_local_occurrence(self._clock(), self._optimal_hour, tz=self._local_tz),
            model_version=version,
        )

    def rule_based_prediction(self, telemetry: TelemetrySnapshot) -> Decision:
        moisture = _or_default(telemetry.soil_moisture, DEFAULT_SOIL_MOISTURE)
        irrigate = moisture < 60
        return Decision(
            should_irrigate=irrigate,
            confidence=FALLBACK_CONFIDENCE,
            reason=DecisionReason.RULE_BASED_FALLBACK,
            recommended_duration=30 if irrigate else 0,
            recommended_water_volume=300 if irrigate else 0,
            optimal_time=self._clock() if irrigate else None,
        )

    # ------------------------------------------------------------------
    # Training / feedback cycles
    # ------------------------------------------------------------------

    @property
    def baseline_confidence(self) -> int:
        return self._baseline

    @property
    def model_version(self) -> str:
        return f"1.{len(self._history)}.0"

    @synchronized
    def record_training_cycle(self, user_id: int, epochs: int = 50, *, samples: int | None = None) -> TrainingRecord:
        """Raise the baseline by the configured gain (capped) and log the cycle."""
        self._baseline = min(self._cap, self._baseline + self._gain)
        record = TrainingRecord(
            timestamp=self._clock(),
            user_id=user_id,
            epochs=epochs,
            confidence=self._baseline,
            samples=samples,
        )
        self._history.append(record)
        logger.info(
            "Training cycle %s recorded for user %s: baseline confidence now %s",
            len(self._history),
            user_id,
            self._baseline,
        )
        return record

    @synchronized
    def training_history(self) -> list[TrainingRecord]:
        return list(self._history)

    @synchronized
    def status(self) -> dict[str, Any]:
        return {
            "isTrained": bool(self._history),
            "modelVersion": self.model_version,
            "baselineConfidence": self._baseline,
            "confidenceCap": self._cap,
            "trainingSessions": len(self._history),
        }
