"""Tests for TimeBudget, SLADeadlines, SweepConfig and the lenient parsers."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from conftest import T0
from sla_engine.config import DeadlineDimension, Priority, RequestType, SLAStatus
from sla_engine.core import InvalidBudgetException, ValidationException
from sla_engine.sla.domain import (
    DEFAULT_BUDGETS,
    SLADeadlines,
    SweepConfig,
    TimeBudget,
    most_severe_status,
    parse_priority,
    parse_request_type,
    parse_sla_status,
)

# ── TimeBudget ───────────────────────────────────────────────────


class TestTimeBudgetValidation:
    def test_valid_budget(self) -> None:
        budget = TimeBudget.create(60, 1440, 720)
        assert (budget.response_minutes, budget.resolution_minutes, budget.escalation_minutes) == (60, 1440, 720)

    def test_escalation_optional(self) -> None:
        assert TimeBudget.create(60, 1440).escalation_minutes is None

    def test_response_equal_to_resolution_allowed(self) -> None:
        assert TimeBudget.create(60, 60).resolution_minutes == 60

    def test_resolution_before_response_rejected(self) -> None:
        with pytest.raises(InvalidBudgetException) as exc_info:
            TimeBudget.create(120, 60)
        assert exc_info.value.details["rule"] == "resolution_not_before_response"

    @pytest.mark.parametrize("response, resolution, escalation, rule", [
        (0, 60, None, "response_positive"),
        (-5, 60, None, "response_positive"),
        (30, 0, None, "resolution_positive"),
        (30, 60, 0, "escalation_positive"),
        (30, 60, 60, "escalation_before_resolution"),
        (30, 60, 90, "escalation_before_resolution"),
    ])
    def test_rule_violations(self, response, resolution, escalation, rule) -> None:
        with pytest.raises(InvalidBudgetException) as exc_info:
            TimeBudget.create(response, resolution, escalation)
        assert exc_info.value.details["rule"] == rule

    def test_invalid_budget_is_a_validation_error(self) -> None:
        with pytest.raises(ValidationException):
            TimeBudget.create(120, 60)

    def test_budget_is_immutable(self) -> None:
        budget = TimeBudget.create(60, 1440)
        with pytest.raises(AttributeError):
            budget.response_minutes = 10

    def test_with_changes_revalidates(self) -> None:
        budget = TimeBudget.create(60, 1440, 720)
        assert budget.with_changes(response_minutes=30).response_minutes == 30
        with pytest.raises(InvalidBudgetException):
            budget.with_changes(resolution_minutes=600)


class TestPriorityAdjustment:
    def test_urgent_halves_every_component(self) -> None:
        adjusted = TimeBudget.create(60, 1440, 720).adjust_for_priority(Priority.URGENT)
        assert adjusted == TimeBudget(30, 720, 360)

    def test_normal_is_identity(self) -> None:
        budget = TimeBudget.create(60, 1440, 720)
        assert budget.adjust_for_priority(Priority.NORMAL) == budget

    def test_low_and_high(self) -> None:
        budget = TimeBudget.create(60, 1440, 720)
        assert budget.adjust_for_priority(Priority.LOW) == TimeBudget(90, 2160, 1080)
        assert budget.adjust_for_priority(Priority.HIGH) == TimeBudget(45, 1080, 540)

    def test_halves_round_up(self) -> None:
        assert TimeBudget.create(3, 9).adjust_for_priority(Priority.URGENT) == TimeBudget(2, 5)
        assert TimeBudget.create(1, 3).adjust_for_priority(Priority.LOW) == TimeBudget(2, 5)

    def test_rounded_escalation_kept_below_resolution(self) -> None:
        assert TimeBudget.create(1, 3, 2).adjust_for_priority(Priority.HIGH) == TimeBudget(1, 2, 1)
        assert TimeBudget.create(2, 4, 3).adjust_for_priority(Priority.URGENT) == TimeBudget(1, 2, 1)

    def test_collapsed_escalation_dropped(self) -> None:
        assert TimeBudget.create(1, 2, 1).adjust_for_priority(Priority.URGENT) == TimeBudget(1, 1)

    @pytest.mark.parametrize("priority", list(Priority))
    @pytest.mark.parametrize("minutes", [
        (1, 1, None),
        (1, 2, 1),
        (1, 3, 2),
        (2, 4, 3),
        (3, 3, 2),
        (5, 7, 6),
        (60, 1440, 720),
        (239, 240, 239),
    ])
    def test_ordering_preserved_for_every_priority(self, minutes, priority) -> None:
        adjusted = TimeBudget.create(*minutes).adjust_for_priority(priority)

        assert adjusted.response_minutes > 0
        assert adjusted.resolution_minutes >= adjusted.response_minutes
        if adjusted.escalation_minutes is not None:
            assert 0 < adjusted.escalation_minutes < adjusted.resolution_minutes

    def test_missing_escalation_stays_missing(self) -> None:
        adjusted = TimeBudget.create(60, 1440).adjust_for_priority(Priority.HIGH)
        assert adjusted.escalation_minutes is None

    def test_default_budgets_cover_every_request_type(self) -> None:
        assert set(DEFAULT_BUDGETS) == set(RequestType)
        assert TimeBudget.default_for(RequestType.CALL) == TimeBudget(30, 480, 240)


class TestFormatMinutes:
    @pytest.mark.parametrize("minutes, expected", [
        (1, "1 minute"),
        (45, "45 minutes"),
        (60, "1 hour"),
        (90, "1.5 hours"),
        (1440, "1 day"),
        (2160, "1.5 days"),
        (2880, "2 days"),
    ])
    def test_format(self, minutes, expected) -> None:
        assert TimeBudget.format_minutes(minutes) == expected

    def test_describe_and_hours(self) -> None:
        budget = TimeBudget.create(90, 2880)
        assert budget.describe() == {"response": "1.5 hours", "resolution": "2 days", "escalation": None}
        assert budget.to_hours()["resolution_hours"] == 48
        assert budget.to_days()["resolution_days"] == 2


# ── SLADeadlines ─────────────────────────────────────────────────


@pytest.fixture
def deadlines() -> SLADeadlines:
    return SLADeadlines.calculate(TimeBudget.create(60, 1440, 720), T0)


class TestSLADeadlines:
    def test_calculate(self, deadlines: SLADeadlines) -> None:
        assert deadlines.response_deadline == T0 + timedelta(minutes=60)
        assert deadlines.resolution_deadline == T0 + timedelta(minutes=1440)
        assert deadlines.escalation_deadline == T0 + timedelta(minutes=720)
        assert deadlines.created_at == T0

    def test_no_escalation_deadline_without_budget(self) -> None:
        assert SLADeadlines.calculate(TimeBudget.create(60, 1440), T0).escalation_deadline is None

    def test_breach_is_strictly_after_deadline(self, deadlines: SLADeadlines) -> None:
        assert not deadlines.is_response_breached(T0 + timedelta(minutes=60))
        assert deadlines.is_response_breached(T0 + timedelta(minutes=60, seconds=1))
        assert deadlines.is_breached(DeadlineDimension.RESOLUTION, T0 + timedelta(days=2))

    def test_elapsed_percent(self, deadlines: SLADeadlines) -> None:
        assert deadlines.elapsed_percent(DeadlineDimension.RESPONSE, T0 + timedelta(minutes=45)) == 75
        assert deadlines.elapsed_percent(DeadlineDimension.RESPONSE, T0 - timedelta(minutes=5)) == 0
        assert deadlines.elapsed_percent(DeadlineDimension.RESPONSE, T0 + timedelta(hours=5)) == 100

    def test_time_remaining_never_negative(self, deadlines: SLADeadlines) -> None:
        assert deadlines.time_remaining(DeadlineDimension.RESPONSE, T0 + timedelta(minutes=20)) == timedelta(minutes=40)
        assert deadlines.time_remaining(DeadlineDimension.RESPONSE, T0 + timedelta(hours=3)) == timedelta(0)

    def test_escalation_required(self, deadlines: SLADeadlines) -> None:
        assert not deadlines.is_escalation_required(T0 + timedelta(minutes=720))
        assert deadlines.is_escalation_required(T0 + timedelta(minutes=721))

    def test_at_risk_time(self, deadlines: SLADeadlines) -> None:
        assert deadlines.at_risk_time(DeadlineDimension.RESPONSE) == T0 + timedelta(minutes=45)
        assert deadlines.at_risk_time(DeadlineDimension.RESOLUTION, 50) == T0 + timedelta(hours=12)

    def test_from_data_round_trip(self, deadlines: SLADeadlines) -> None:
        rebuilt = SLADeadlines.from_data(
            deadlines.response_deadline,
            deadlines.resolution_deadline,
            deadlines.created_at,
            deadlines.escalation_deadline,
        )
        assert rebuilt == deadlines
        assert rebuilt.to_dict()["created_at"] == T0.isoformat()


# ── SweepConfig ──────────────────────────────────────────────────


class TestSweepConfig:
    def test_defaults(self) -> None:
        config = SweepConfig()
        assert config.at_risk_threshold == 75
        assert config.statuses_for(RequestType.CALL) == ["pending", "assigned", "scheduled"]
        assert "quote_sent" in config.statuses_for(RequestType.SERVICE)

    def test_partial_statuses_keep_defaults_for_other_kinds(self) -> None:
        config = SweepConfig(active_statuses={"call": ["open"]})
        assert config.statuses_for(RequestType.CALL) == ["open"]
        assert config.statuses_for(RequestType.LITIGATION) == ["pending", "assigned", "in_progress"]

    @pytest.mark.parametrize("threshold", [0, 101])
    def test_threshold_bounds(self, threshold) -> None:
        with pytest.raises(ValidationError):
            SweepConfig(at_risk_threshold=threshold)


# ── Parsers ──────────────────────────────────────────────────────


class TestParsers:
    def test_priority(self) -> None:
        assert parse_priority("URGENT") == Priority.URGENT
        assert parse_priority(None) == Priority.NORMAL
        assert parse_priority("critical") == Priority.NORMAL

    def test_request_type(self) -> None:
        assert parse_request_type("legal_opinion") == RequestType.LEGAL_OPINION
        assert parse_request_type("mystery") == RequestType.CONSULTATION

    def test_sla_status(self) -> None:
        assert parse_sla_status(None) is None
        assert parse_sla_status("breached") == SLAStatus.BREACHED
        assert parse_sla_status("unknown") == SLAStatus.ON_TRACK

    def test_most_severe_status(self) -> None:
        assert most_severe_status([]) == SLAStatus.ON_TRACK
        assert most_severe_status([SLAStatus.AT_RISK, SLAStatus.ON_TRACK]) == SLAStatus.AT_RISK
        assert most_severe_status([SLAStatus.AT_RISK, SLAStatus.BREACHED]) == SLAStatus.BREACHED
