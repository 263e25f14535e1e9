"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from sla_engine.config import DeadlineDimension, Priority, RequestType, SLAStatus
from sla_engine.core import InvalidBudgetException
from sla_engine.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Percentage of a window that may elapse before a dimension is "at risk"
AT_RISK_THRESHOLD = 75

PRIORITY_MULTIPLIERS: Dict[Priority, float] = {
    Priority.LOW: 1.5,
    Priority.NORMAL: 1.0,
    Priority.HIGH: 0.75,
    Priority.URGENT: 0.5,
}

PRIORITY_ORDINAL: Dict[Priority, int] = {
    Priority.LOW: 0,
    Priority.NORMAL: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}

STATUS_SEVERITY: Dict[SLAStatus, int] = {
    SLAStatus.ON_TRACK: 0,
    SLAStatus.AT_RISK: 1,
    SLAStatus.BREACHED: 2,
}

REQUEST_TYPE_DISPLAY_NAMES: Dict[RequestType, str] = {
    RequestType.CONSULTATION: "Consultation",
    RequestType.LEGAL_OPINION: "Legal Opinion",
    RequestType.SERVICE: "Service Request",
    RequestType.LITIGATION: "Litigation Case",
    RequestType.CALL: "Call Request",
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return int(math.floor(value + 0.5))


def utcnow() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ========== Lenient enum parsing ==========

def parse_request_type(value: Union[RequestType, str, None]) -> RequestType:
    """Parse a request type, falling back to consultation for unknown values."""
    if isinstance(value, RequestType):
        return value
    try:
        return RequestType(str(value).strip().lower())
    except ValueError:
        logger.warning(
            "Unknown request type, defaulting to consultation",
            extra={"value": value}
        )
        return RequestType.CONSULTATION


def parse_priority(value: Union[Priority, str, None]) -> Priority:
    """Parse a priority, falling back to normal for unknown or missing values."""
    if isinstance(value, Priority):
        return value
    if value is None:
        return Priority.NORMAL
    try:
        return Priority(str(value).strip().lower())
    except ValueError:
        logger.warning(
            "Unknown priority, defaulting to normal",
            extra={"value": value}
        )
        return Priority.NORMAL


def parse_sla_status(value: Union[SLAStatus, str, None]) -> Optional[SLAStatus]:
    """Parse a persisted SLA status. None stays None; unknown strings become on_track."""
    if value is None or isinstance(value, SLAStatus):
        return value
    try:
        return SLAStatus(str(value).strip().lower())
    except ValueError:
        logger.warning(
            "Unknown SLA status, defaulting to on_track",
            extra={"value": value}
        )
        return SLAStatus.ON_TRACK


def most_severe_status(statuses: Iterable[SLAStatus]) -> SLAStatus:
    """Return the most severe status of the set; on_track for an empty set."""
    return max(statuses, key=STATUS_SEVERITY.__getitem__, default=SLAStatus.ON_TRACK)


def _one_decimal(value: float) -> float:
    return round_half_up(value * 10) / 10


def _plural(value: float, unit: str) -> str:
    return f"{value:g} {unit}{'' if value == 1 else 's'}"


@dataclass(frozen=True)
class TimeBudget:
    """
    Response/resolution/escalation allowances in whole minutes.

    Invariants:
    - response_minutes > 0 and resolution_minutes > 0
    - resolution_minutes >= response_minutes
    - escalation_minutes, when present, lies strictly between 0 and resolution_minutes
    """
    response_minutes: int
    resolution_minutes: int
    escalation_minutes: Optional[int] = None

    def __post_init__(self):
        if self.response_minutes <= 0:
            raise InvalidBudgetException("response_positive", "Response time must be positive")
        if self.resolution_minutes <= 0:
            raise InvalidBudgetException("resolution_positive", "Resolution time must be positive")
        if self.resolution_minutes < self.response_minutes:
            raise InvalidBudgetException(
                "resolution_not_before_response",
                "Resolution time must be greater than or equal to response time",
                {"response_minutes": self.response_minutes, "resolution_minutes": self.resolution_minutes}
            )
        if self.escalation_minutes is not None:
            if self.escalation_minutes <= 0:
                raise InvalidBudgetException("escalation_positive", "Escalation time must be positive")
            if self.escalation_minutes >= self.resolution_minutes:
                raise InvalidBudgetException(
                    "escalation_before_resolution",
                    "Escalation time must be less than resolution time",
                    {"escalation_minutes": self.escalation_minutes, "resolution_minutes": self.resolution_minutes}
                )

    @classmethod
    def create(
        cls,
        response_minutes: int,
        resolution_minutes: int,
        escalation_minutes: Optional[int] = None
    ) -> "TimeBudget":
        """Build a validated budget. Raises InvalidBudgetException naming the violated rule."""
        return cls(response_minutes, resolution_minutes, escalation_minutes)

    @classmethod
    def default_for(cls, request_type: RequestType) -> "TimeBudget":
        """Hard-coded fallback budget used when no policy matches."""
        return DEFAULT_BUDGETS[request_type]

    def adjust_for_priority(self, priority: Priority) -> "TimeBudget":
        """
        Scale every component by the priority multiplier, rounded to whole minutes.

        Rounding can collapse tiny budgets onto each other, so the scaled
        escalation is kept one minute below resolution and dropped when no
        such minute exists.

        Example:
            TimeBudget(1, 3, 2) at HIGH -> TimeBudget(1, 2, 1)
            TimeBudget(1, 2, 1) at URGENT -> TimeBudget(1, 1, None)
        """
        multiplier = PRIORITY_MULTIPLIERS[priority]
        resolution = round_half_up(self.resolution_minutes * multiplier)
        response = min(round_half_up(self.response_minutes * multiplier), resolution)
        escalation = None
        if self.escalation_minutes:
            escalation = min(round_half_up(self.escalation_minutes * multiplier), resolution - 1) or None
        return TimeBudget(response, resolution, escalation)

    def with_changes(self, **changes) -> "TimeBudget":
        """Copy with some components replaced; the result is re-validated."""
        return replace(self, **changes)

    @staticmethod
    def format_minutes(minutes: int) -> str:
        """
        Human-readable duration.

        Example:
            45   -> "45 minutes"
            90   -> "1.5 hours"
            2880 -> "2 days"
        """
        if minutes < 60:
            return _plural(minutes, "minute")
        if minutes < 1440:
            return _plural(_one_decimal(minutes / 60), "hour")
        return _plural(_one_decimal(minutes / 1440), "day")

    def to_hours(self) -> Dict[str, Optional[float]]:
        return {
            "response_hours": _one_decimal(self.response_minutes / 60),
            "resolution_hours": _one_decimal(self.resolution_minutes / 60),
            "escalation_hours": _one_decimal(self.escalation_minutes / 60) if self.escalation_minutes else None,
        }

    def to_days(self) -> Dict[str, Optional[float]]:
        return {
            "response_days": _one_decimal(self.response_minutes / 1440),
            "resolution_days": _one_decimal(self.resolution_minutes / 1440),
            "escalation_days": _one_decimal(self.escalation_minutes / 1440) if self.escalation_minutes else None,
        }

    def describe(self) -> Dict[str, Optional[str]]:
        """Formatted strings for each component."""
        return {
            "response": self.format_minutes(self.response_minutes),
            "resolution": self.format_minutes(self.resolution_minutes),
            "escalation": self.format_minutes(self.escalation_minutes) if self.escalation_minutes else None,
        }

    def to_dict(self) -> Dict[str, Optional[int]]:
        return {
            "response_minutes": self.response_minutes,
            "resolution_minutes": self.resolution_minutes,
            "escalation_minutes": self.escalation_minutes,
        }


DEFAULT_BUDGETS: Dict[RequestType, TimeBudget] = {
    RequestType.CONSULTATION: TimeBudget(60, 1440, 720),
    RequestType.LEGAL_OPINION: TimeBudget(120, 4320, 2880),
    RequestType.SERVICE: TimeBudget(60, 2880, 1440),
    RequestType.LITIGATION: TimeBudget(240, 10080, 4320),
    RequestType.CALL: TimeBudget(30, 480, 240),
}


@dataclass(frozen=True)
class SLADeadlines:
    """
    Absolute deadlines derived once from a TimeBudget and a start instant.

    All queries take a reference "now" (defaults to the UTC wall clock) and are
    deterministic for a given now.
    """
    response_deadline: datetime
    resolution_deadline: datetime
    escalation_deadline: Optional[datetime]
    created_at: datetime

    @classmethod
    def calculate(cls, budget: TimeBudget, start: Optional[datetime] = None) -> "SLADeadlines":
        start = start or utcnow()
        return cls(
            response_deadline=start + timedelta(minutes=budget.response_minutes),
            resolution_deadline=start + timedelta(minutes=budget.resolution_minutes),
            escalation_deadline=(
                start + timedelta(minutes=budget.escalation_minutes)
                if budget.escalation_minutes else None
            ),
            created_at=start,
        )

    @classmethod
    def from_data(
        cls,
        response_deadline: datetime,
        resolution_deadline: datetime,
        created_at: datetime,
        escalation_deadline: Optional[datetime] = None
    ) -> "SLADeadlines":
        """Reconstruct from persisted values."""
        return cls(response_deadline, resolution_deadline, escalation_deadline, created_at)

    def deadline_for(self, dimension: DeadlineDimension) -> datetime:
        if dimension == DeadlineDimension.RESPONSE:
            return self.response_deadline
        return self.resolution_deadline

    def is_response_breached(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.response_deadline

    def is_resolution_breached(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.resolution_deadline

    def is_breached(self, dimension: DeadlineDimension, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.deadline_for(dimension)

    def is_escalation_required(self, now: Optional[datetime] = None) -> bool:
        if self.escalation_deadline is None:
            return False
        return (now or utcnow()) > self.escalation_deadline

    def elapsed_percent(self, dimension: DeadlineDimension, now: Optional[datetime] = None) -> int:
        """Share of the window already used, clamped to 0..100 and rounded."""
        now = now or utcnow()
        deadline = self.deadline_for(dimension)
        total = (deadline - self.created_at).total_seconds()
        if total <= 0:
            return 100 if now >= deadline else 0
        elapsed = (now - self.created_at).total_seconds()
        return round_half_up(min(100.0, max(0.0, 100 * elapsed / total)))

    def time_remaining(self, dimension: DeadlineDimension, now: Optional[datetime] = None) -> timedelta:
        remaining = self.deadline_for(dimension) - (now or utcnow())
        return max(timedelta(0), remaining)

    def at_risk_time(self, dimension: DeadlineDimension, threshold: int = AT_RISK_THRESHOLD) -> datetime:
        """Instant at which the dimension crosses the at-risk threshold."""
        total = self.deadline_for(dimension) - self.created_at
        return self.created_at + total * threshold / 100

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "response_deadline": self.response_deadline.isoformat(),
            "resolution_deadline": self.resolution_deadline.isoformat(),
            "escalation_deadline": self.escalation_deadline.isoformat() if self.escalation_deadline else None,
            "created_at": self.created_at.isoformat(),
        }


DEFAULT_ACTIVE_STATUSES: Dict[RequestType, List[str]] = {
    RequestType.CONSULTATION: ["pending", "assigned", "in_progress", "scheduled"],
    RequestType.LEGAL_OPINION: ["pending", "assigned", "in_progress", "quote_sent"],
    RequestType.SERVICE: ["pending", "assigned", "in_progress", "quote_sent"],
    RequestType.LITIGATION: ["pending", "assigned", "in_progress"],
    RequestType.CALL: ["pending", "assigned", "scheduled"],
}


class SweepConfig(BaseModel):
    """
    Sweep configuration loaded from YAML.

    Request kinds missing from `active_statuses` keep their default status set.
    """
    at_risk_threshold: int = Field(
        default=AT_RISK_THRESHOLD,
        ge=1,
        le=100,
        description="Elapsed percentage at which a dimension becomes at_risk"
    )
    active_statuses: Dict[RequestType, List[str]] = Field(
        default_factory=dict,
        description="Request statuses considered open, by request kind"
    )

    @field_validator("active_statuses")
    @classmethod
    def fill_active_statuses(cls, v: Dict[RequestType, List[str]]) -> Dict[RequestType, List[str]]:
        """Fill in default status sets for kinds the file does not mention."""
        for request_type, statuses in DEFAULT_ACTIVE_STATUSES.items():
            if not v.get(request_type):
                v[request_type] = list(statuses)
        return v

    def statuses_for(self, request_type: RequestType) -> List[str]:
        return self.active_statuses.get(request_type) or DEFAULT_ACTIVE_STATUSES[request_type]
