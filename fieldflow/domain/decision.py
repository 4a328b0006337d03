from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fieldflow.enums import DecisionReason


@dataclass(frozen=True)
class Decision:
    """Irrigation recommendation for one telemetry reading.

    Non-irrigating decisions carry zero duration and volume and no optimal time.
    """

    should_irrigate: bool
    confidence: int
    reason: DecisionReason
    recommended_duration: int = 0
    recommended_water_volume: int = 0
    optimal_time: datetime | None = None
    model_version: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.reason is DecisionReason.RULE_BASED_FALLBACK

    def to_dict(self) -> dict[str, Any]:
        return {
            "shouldIrrigate": self.should_irrigate,
            "confidence": self.confidence,
            "reason": self.reason.value,
            "recommendedDuration": self.recommended_duration,
            "recommendedWater": self.recommended_water_volume,
            "optimalTime": self.optimal_time.isoformat() if self.optimal_time else None,
            "modelVersion": self.model_version,
        }
