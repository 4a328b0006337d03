from datetime import datetime, timedelta, timezone

import pytest

from fieldflow.domain.decision import Decision
from fieldflow.domain.exceptions import ConflictError
from fieldflow.domain.session import IrrigationSession, SessionResult
from fieldflow.domain.water_policy import (
    DecisionEstimateWaterPolicy,
    FlowRateWaterPolicy,
    efficiency_percent,
    round_half_up,
)
from fieldflow.enums import DecisionReason, SessionStatus, SessionType

STARTED = datetime(2026, 3, 1, 5, 0, tzinfo=timezone.utc)


def session(**overrides):
    values = dict(device_id="dev-1", user_id=1, session_type=SessionType.MANUAL, planned_duration=30, started_at=STARTED)
    values.update(overrides)
    return IrrigationSession(**values)


class TestLifecycle:
    def test_forward_transitions(self):
        s = session()
        assert s.status is SessionStatus.PENDING and s.is_active

        s.transition(SessionStatus.IN_PROGRESS)
        s.transition(SessionStatus.CANCELLED, at=STARTED + timedelta(minutes=4))

        assert not s.is_active
        assert s.ended_at == STARTED + timedelta(minutes=4)

    @pytest.mark.parametrize("terminal", [SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED])
    def test_terminal_states_are_final(self, terminal):
        s = session()
        s.transition(SessionStatus.IN_PROGRESS)
        s.transition(terminal)

        with pytest.raises(ConflictError):
            s.transition(SessionStatus.IN_PROGRESS)

    def test_pending_cannot_complete(self):
        with pytest.raises(ConflictError):
            session().transition(SessionStatus.COMPLETED)

    def test_estimated_end_and_snapshot(self):
        s = session(planned_duration=45)
        copy = s.snapshot()
        s.transition(SessionStatus.IN_PROGRESS)

        assert copy.estimated_end == STARTED + timedelta(minutes=45)
        assert copy.status is SessionStatus.PENDING

    def test_result_reports_error_without_session(self):
        assert SessionResult("dev-2", False, error="db locked").to_dict() == {
            "deviceId": "dev-2",
            "success": False,
            "error": "db locked",
        }


class TestWaterPolicies:
    @pytest.mark.parametrize("minutes,used,saved", [(30, 300, 90), (10, 100, 30), (1, 10, 3), (0, 0, 0), (7, 70, 21)])
    def test_flow_rate(self, minutes, used, saved):
        usage = FlowRateWaterPolicy().compute(session(), minutes)
        assert (usage.water_used, usage.water_saved) == (used, saved)

    def test_flow_rate_efficiency(self):
        assert FlowRateWaterPolicy().compute(session(), 30).efficiency == 23

    def test_decision_estimate_ignores_elapsed_time(self):
        decision = Decision(True, 85, DecisionReason.CRITICAL_DRYNESS, 40, 480)
        policy = DecisionEstimateWaterPolicy()

        short = policy.compute(session(trigger_decision=decision), 3)
        full = policy.compute(session(trigger_decision=decision), 40)

        assert short == full
        assert (full.water_used, full.water_saved, full.efficiency) == (480, 144, 23)

    def test_decision_estimate_without_decision(self):
        usage = DecisionEstimateWaterPolicy().compute(session(), 10)
        assert (usage.water_used, usage.water_saved, usage.efficiency) == (0, 0, 0)

    @pytest.mark.parametrize("value,expected", [(0.5, 1), (1.49, 1), (2.5, 3), (89.99, 90)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_efficiency_needs_both_quantities(self):
        assert efficiency_percent(0, 10) == 0
        assert efficiency_percent(10, 0) == 0
        assert efficiency_percent(100, 30) == 23
