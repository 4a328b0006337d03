"""
Domain Package
==============
Value objects and entities for irrigation sessions, device state, telemetry
and decisions, plus the error hierarchy shared by every layer.
"""

from .decision import Decision
from .device import DeviceConfig, DeviceRecord, DeviceState
from .session import IrrigationSession, SessionResult
from .telemetry import TelemetrySnapshot
from .water_policy import DecisionEstimateWaterPolicy, FlowRateWaterPolicy, WaterPolicy, WaterUsage

__all__ = [
    "Decision",
    "DecisionEstimateWaterPolicy",
    "DeviceConfig",
    "DeviceRecord",
    "DeviceState",
    "FlowRateWaterPolicy",
    "IrrigationSession",
    "SessionResult",
    "TelemetrySnapshot",
    "WaterPolicy",
    "WaterUsage",
]
