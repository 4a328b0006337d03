"""
Water Accounting Policies
=========================
How a finished session's water use and savings are computed.

Two policies exist on purpose and are never reconciled:

- ``flow-rate``: manual, scheduled and emergency sessions. Liters are the
  measured minutes times a fixed pump flow rate; savings are measured
  against a traditional schedule that uses ``overhead`` more water.
- ``decision-estimate``: smart sessions started by the ingestion gateway.
  Liters are the volume the decision engine recommended when the session
  was triggered; savings are a fixed share of that volume.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from fieldflow.domain.session import IrrigationSession


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def efficiency_percent(water_used: int, water_saved: int) -> int:
    """Share of the traditional baseline that was saved, as a whole percent."""
    if water_used > 0 and water_saved > 0:
        return round_half_up(water_saved / (water_used + water_saved) * 100)
    return 0


@dataclass(frozen=True)
class WaterUsage:
    water_used: int
    water_saved: int

    @property
    def efficiency(self) -> int:
        return efficiency_percent(self.water_used, self.water_saved)


class WaterPolicy(Protocol):
    name: str

    def compute(self, session: "IrrigationSession", elapsed_minutes: int) -> WaterUsage: ...


class FlowRateWaterPolicy:
    name = "flow-rate"

    def __init__(self, flow_rate_lpm: float = 10.0, traditional_overhead: float = 0.3) -> None:
        self.flow_rate_lpm = flow_rate_lpm
        self.traditional_overhead = traditional_overhead

    def compute(self, session: "IrrigationSession", elapsed_minutes: int) -> WaterUsage:
        used = round_half_up(elapsed_minutes * self.flow_rate_lpm)
        traditional = used * (1 + self.traditional_overhead)
        return WaterUsage(water_used=used, water_saved=round_half_up(traditional - used))


class DecisionEstimateWaterPolicy:
    name = "decision-estimate"

    def __init__(self, savings_ratio: float = 0.3) -> None:
        self.savings_ratio = savings_ratio

    def compute(self, session: "IrrigationSession", elapsed_minutes: int) -> WaterUsage:
        decision = session.trigger_decision
        used = decision.recommended_water_volume if decision is not None else 0
        return WaterUsage(water_used=used, water_saved=round_half_up(used * self.savings_ratio))
