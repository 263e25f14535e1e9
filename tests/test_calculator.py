"""Tests for SLACalculator: status derivation, breaches, urgency and formatting."""

from datetime import timedelta

import pytest

from conftest import T0, make_snapshot
from sla_engine.config import DeadlineDimension, Priority, RequestType, SLAStatus
from sla_engine.sla.domain import SLACalculator, SLADeadlines, SLAPolicy, TimeBudget


@pytest.fixture
def calculator() -> SLACalculator:
    return SLACalculator()


@pytest.fixture
def deadlines() -> SLADeadlines:
    return SLADeadlines.calculate(TimeBudget.create(60, 1440, 720), T0)


def _at(minutes: float):
    return T0 + timedelta(minutes=minutes)


class TestDeadlineCalculation:
    def test_type_default_scaled_for_priority(self) -> None:
        result = SLACalculator.calculate_deadlines(None, RequestType.CONSULTATION, Priority.URGENT, T0)
        assert result.response_deadline == _at(30)
        assert result.resolution_deadline == _at(720)
        assert result.escalation_deadline == _at(360)

    def test_policy_budget_used_as_is_for_its_own_priority(self) -> None:
        policy = SLAPolicy.create("Calls", RequestType.CALL, Priority.HIGH, TimeBudget.create(100, 1000))
        result = SLACalculator.calculate_deadlines(policy, RequestType.CALL, Priority.HIGH, T0)
        assert result.response_deadline == _at(100)
        assert result.resolution_deadline == _at(1000)

    def test_policy_budget_scaled_for_a_different_priority(self) -> None:
        policy = SLAPolicy.create("Calls", RequestType.CALL, Priority.NORMAL, TimeBudget.create(100, 1000))
        result = SLACalculator.calculate_deadlines(policy, RequestType.CALL, Priority.URGENT, T0)
        assert result.response_deadline == _at(50)
        assert result.resolution_deadline == _at(500)


class TestStatus:
    def test_response_at_risk_at_threshold(self, calculator, deadlines) -> None:
        assert calculator.response_status(deadlines, False, _at(44)) == SLAStatus.ON_TRACK
        assert calculator.response_status(deadlines, False, _at(45)) == SLAStatus.AT_RISK

    def test_response_breached_after_deadline(self, calculator, deadlines) -> None:
        assert calculator.response_status(deadlines, False, _at(60)) == SLAStatus.AT_RISK
        assert calculator.response_status(deadlines, False, _at(61)) == SLAStatus.BREACHED

    def test_completed_dimension_is_on_track_even_if_late(self, calculator, deadlines) -> None:
        late = _at(3000)
        assert calculator.response_status(deadlines, True, late) == SLAStatus.ON_TRACK
        assert calculator.resolution_status(deadlines, True, late) == SLAStatus.ON_TRACK

    def test_overall_is_most_severe(self, calculator, deadlines) -> None:
        assert calculator.overall_status(deadlines, False, False, _at(61)) == SLAStatus.BREACHED
        assert calculator.overall_status(deadlines, True, False, _at(61)) == SLAStatus.ON_TRACK
        assert calculator.overall_status(deadlines, True, False, _at(1100)) == SLAStatus.AT_RISK

    def test_custom_threshold(self, deadlines) -> None:
        strict = SLACalculator(at_risk_threshold=50)
        assert strict.response_status(deadlines, False, _at(30)) == SLAStatus.AT_RISK

    def test_same_inputs_same_result(self, calculator, deadlines) -> None:
        now = _at(50)
        first = calculator.request_info("r", RequestType.CALL, Priority.LOW, deadlines, False, False, now=now)
        second = calculator.request_info("r", RequestType.CALL, Priority.LOW, deadlines, False, False, now=now)
        assert first == second

    def test_request_info(self, calculator, deadlines) -> None:
        info = calculator.request_info(
            "req-1", RequestType.CONSULTATION, Priority.NORMAL, deadlines,
            responded=False, resolved=False, policy_id="p-1", now=_at(30),
        )
        assert info.status == SLAStatus.ON_TRACK
        assert info.response_percent_elapsed == 50
        assert info.resolution_percent_elapsed == 2
        assert info.response_time_remaining == timedelta(minutes=30)
        assert not info.is_escalation_required
        assert info.policy_id == "p-1"


class TestBreaches:
    def test_response_breach_overdue_duration(self, calculator, deadlines) -> None:
        breaches = calculator.check_breaches("req-1", RequestType.CONSULTATION, deadlines, False, False, _at(61))
        assert len(breaches) == 1
        breach = breaches[0]
        assert breach.dimension == DeadlineDimension.RESPONSE
        assert breach.overdue_duration == timedelta(milliseconds=60000)
        assert breach.breached_at == deadlines.response_deadline

    def test_both_dimensions(self, calculator, deadlines) -> None:
        breaches = calculator.check_breaches("req-1", RequestType.CONSULTATION, deadlines, False, False, _at(1500))
        assert [b.dimension for b in breaches] == [DeadlineDimension.RESPONSE, DeadlineDimension.RESOLUTION]

    def test_completed_dimensions_never_breach(self, calculator, deadlines) -> None:
        assert calculator.check_breaches("req-1", RequestType.CONSULTATION, deadlines, True, True, _at(5000)) == []

    def test_at_risk_flags(self, calculator, deadlines) -> None:
        flags = calculator.is_at_risk(deadlines, False, False, _at(50))
        assert flags.response and not flags.resolution and flags.any
        assert not calculator.is_at_risk(deadlines, True, False, _at(50)).any
        assert calculator.is_at_risk(deadlines, True, False, _at(50), threshold=3).resolution


class TestUrgency:
    def test_score_formula(self, calculator, deadlines) -> None:
        # normal (2) * 10 + on_track (1) * 20 + 4% of resolution elapsed
        assert calculator.urgency_score(deadlines, Priority.NORMAL, True, False, _at(60)) == 44

    def test_breached_outranks_priority(self, calculator, deadlines) -> None:
        breached = calculator.urgency_score(deadlines, Priority.LOW, False, False, _at(61))
        urgent = calculator.urgency_score(deadlines, Priority.URGENT, True, False, _at(61))
        assert breached > urgent

    def test_resolved_scores_zero(self, calculator, deadlines) -> None:
        assert calculator.urgency_score(deadlines, Priority.URGENT, False, True, _at(5000)) == 0

    def test_higher_elapsed_sorts_first(self, calculator) -> None:
        now = _at(60)
        fresh = make_snapshot("fresh", responded_at=T0)
        older = make_snapshot("older", created_at=T0 - timedelta(hours=2), responded_at=T0)
        items = [(s, s.stored_deadlines()) for s in (fresh, older)]
        assert calculator.sort_by_urgency(items, now) == ["older", "fresh"]

    def test_ties_keep_input_order(self, calculator) -> None:
        first = make_snapshot("first", responded_at=T0)
        second = make_snapshot("second", responded_at=T0)
        items = [(s, s.stored_deadlines()) for s in (first, second)]
        assert calculator.sort_by_urgency(items, _at(10)) == ["first", "second"]
        assert calculator.sort_by_urgency(items[::-1], _at(10)) == ["second", "first"]

    def test_evaluate_without_stored_status_counts_as_change(self, calculator) -> None:
        snapshot = make_snapshot(current_status=None)
        result = calculator.evaluate(snapshot, snapshot.stored_deadlines(), _at(1))
        assert result.previous_status is None
        assert result.current_status == SLAStatus.ON_TRACK
        assert result.has_changed

    def test_batch_check(self, calculator) -> None:
        snapshots = [make_snapshot("a"), make_snapshot("b", current_status=SLAStatus.AT_RISK)]
        results = calculator.batch_check([(s, s.stored_deadlines()) for s in snapshots], _at(61))
        assert [r.current_status for r in results] == [SLAStatus.BREACHED, SLAStatus.BREACHED]
        assert all(r.has_changed for r in results)


class TestFormatDuration:
    @pytest.mark.parametrize("duration, expected", [
        (timedelta(days=2, hours=3, minutes=5), "2d 3h"),
        (timedelta(hours=4, minutes=10), "4h 10m"),
        (timedelta(minutes=7, seconds=30), "7m"),
        (timedelta(seconds=12), "12s"),
        (timedelta(0), "0s"),
        (-timedelta(hours=1, minutes=1), "1h 1m"),
    ])
    def test_format(self, duration, expected) -> None:
        assert SLACalculator.format_duration(duration) == expected
