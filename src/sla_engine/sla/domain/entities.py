"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from uuid import uuid4

from sla_engine.config import DeadlineDimension, Priority, RequestType, SLAStatus
from sla_engine.core import ValidationException
from sla_engine.sla.domain.value_objects import (
    SLADeadlines,
    TimeBudget,
    parse_priority,
    parse_request_type,
    utcnow,
)


@dataclass
class SLAPolicy:
    """
    SLA policy entity - the only aggregate with identity and a lifecycle.

    Maps a (request type, priority) pair to a TimeBudget. Admin-managed:
    created, updated, activated and deactivated; deleted only on explicit request.
    """

    id: str
    name: str
    request_type: RequestType
    priority: Priority
    budget: TimeBudget
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        name: str,
        request_type: RequestType,
        priority: Priority,
        budget: TimeBudget,
        is_active: bool = True,
        policy_id: Optional[str] = None
    ) -> "SLAPolicy":
        """Create a new policy with a fresh identity."""
        if not name or not name.strip():
            raise ValidationException("Policy name cannot be empty")
        now = utcnow()
        return cls(
            id=policy_id or str(uuid4()),
            name=name.strip(),
            request_type=request_type,
            priority=priority,
            budget=budget,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def create_default(cls, request_type: RequestType, priority: Priority = Priority.NORMAL) -> "SLAPolicy":
        """Policy built from the request type's default budget, scaled for the priority."""
        return cls.create(
            name=f"Default {request_type.value} - {priority.value}",
            request_type=request_type,
            priority=priority,
            budget=TimeBudget.default_for(request_type).adjust_for_priority(priority),
        )

    @property
    def key(self) -> str:
        """Unique key for this policy's slot: request_type:priority."""
        return f"{self.request_type.value}:{self.priority.value}"

    def calculate_deadlines(
        self,
        start: Optional[datetime] = None,
        request_priority: Optional[Priority] = None
    ) -> SLADeadlines:
        """
        Deadlines for a request starting at `start`.

        When the request's priority differs from the policy's own priority the
        stored budget is scaled by the request priority's multiplier.
        """
        budget = self.budget
        if request_priority is not None and request_priority != self.priority:
            budget = budget.adjust_for_priority(request_priority)
        return SLADeadlines.calculate(budget, start)

    def matches(self, request_type: RequestType, priority: Optional[Priority] = None) -> bool:
        if self.request_type != request_type:
            return False
        if priority is not None and self.priority != priority:
            return False
        return self.is_active

    def update_name(self, name: str) -> None:
        if not name or not name.strip():
            raise ValidationException("Policy name cannot be empty")
        self.name = name.strip()
        self._touch()

    def update_budget(
        self,
        response_minutes: Optional[int] = None,
        resolution_minutes: Optional[int] = None,
        escalation_minutes: Optional[int] = None,
        clear_escalation: bool = False
    ) -> None:
        """Replace some budget components; the resulting budget is re-validated."""
        changes = {}
        if response_minutes is not None:
            changes["response_minutes"] = response_minutes
        if resolution_minutes is not None:
            changes["resolution_minutes"] = resolution_minutes
        if escalation_minutes is not None:
            changes["escalation_minutes"] = escalation_minutes
        elif clear_escalation:
            changes["escalation_minutes"] = None
        if not changes:
            return
        self.budget = self.budget.with_changes(**changes)
        self._touch()

    def activate(self) -> None:
        self.is_active = True
        self._touch()

    def deactivate(self) -> None:
        self.is_active = False
        self._touch()

    def _touch(self) -> None:
        self.updated_at = utcnow()

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        descriptions = self.budget.describe()
        return {
            "id": self.id,
            "name": self.name,
            "request_type": self.request_type.value,
            "priority": self.priority.value,
            **self.budget.to_dict(),
            "response_formatted": descriptions["response"],
            "resolution_formatted": descriptions["resolution"],
            "escalation_formatted": descriptions["escalation"],
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class RequestSLASnapshot:
    """
    Projection of a request owned by another bounded context.

    This is the only state the SLA engine reads or writes on those requests.
    `sla_deadline` is the resolution deadline; `response_deadline` is only
    present for kinds that persist it.
    """

    request_id: str
    request_type: RequestType
    priority: Priority
    created_at: datetime
    responded_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    sla_deadline: Optional[datetime] = None
    current_status: Optional[SLAStatus] = None

    request_number: str = ""
    subscriber_id: Optional[str] = None
    provider_id: Optional[str] = None
    response_deadline: Optional[datetime] = None
    escalation_deadline: Optional[datetime] = None

    def __post_init__(self):
        self.request_type = parse_request_type(self.request_type)
        self.priority = parse_priority(self.priority)

    @property
    def responded(self) -> bool:
        return self.responded_at is not None

    @property
    def resolved(self) -> bool:
        return self.resolved_at is not None

    @property
    def has_deadlines(self) -> bool:
        return self.sla_deadline is not None

    def stored_deadlines(self) -> Optional[SLADeadlines]:
        """Deadlines as persisted on the request; None when none were stamped."""
        if self.sla_deadline is None:
            return None
        return SLADeadlines.from_data(
            response_deadline=self.response_deadline or self.sla_deadline,
            resolution_deadline=self.sla_deadline,
            created_at=self.created_at,
            escalation_deadline=self.escalation_deadline,
        )


@dataclass(frozen=True)
class BreachRecord:
    """A dimension whose deadline passed without the matching action."""
    request_id: str
    request_type: RequestType
    dimension: DeadlineDimension
    deadline: datetime
    overdue_duration: timedelta

    @property
    def breached_at(self) -> datetime:
        return self.deadline


@dataclass(frozen=True)
class AtRiskFlags:
    response: bool
    resolution: bool

    @property
    def any(self) -> bool:
        return self.response or self.resolution


@dataclass(frozen=True)
class RequestSLAInfo:
    """Full SLA picture of one request at a given instant."""
    request_id: str
    request_type: RequestType
    priority: Priority
    status: SLAStatus
    response_status: SLAStatus
    resolution_status: SLAStatus
    deadlines: SLADeadlines
    response_time_remaining: timedelta
    resolution_time_remaining: timedelta
    response_percent_elapsed: int
    resolution_percent_elapsed: int
    is_escalation_required: bool
    policy_id: Optional[str] = None


@dataclass(frozen=True)
class StatusCheckResult:
    """Outcome of re-evaluating a stored snapshot."""
    request_id: str
    previous_status: Optional[SLAStatus]
    current_status: SLAStatus
    urgency_score: float = 0.0

    @property
    def has_changed(self) -> bool:
        return self.previous_status != self.current_status

    @property
    def is_breached(self) -> bool:
        return self.current_status == SLAStatus.BREACHED

    @property
    def is_at_risk(self) -> bool:
        return self.current_status == SLAStatus.AT_RISK


@dataclass(frozen=True)
class AppliedSLA:
    """Deadlines stamped on a newly created request."""
    sla_deadline: datetime
    sla_status: SLAStatus
    deadlines: SLADeadlines
    policy_id: Optional[str]
    policy_name: Optional[str]


@dataclass
class SLAUpdateResult:
    """One persisted status transition recorded by a sweep."""
    request_id: str
    request_kind: RequestType
    request_number: str
    previous_status: Optional[SLAStatus]
    new_status: SLAStatus
    is_breached: bool
    is_at_risk: bool
    subscriber_id: Optional[str] = None
    provider_id: Optional[str] = None


@dataclass
class KindSweepResult:
    """Per-kind sweep outcome; merged into the SweepReport after all kinds finish."""
    kind: RequestType
    checked: int = 0
    updated: int = 0
    breached: int = 0
    at_risk: int = 0
    updates: List[SLAUpdateResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class SweepReport:
    executed_at: datetime
    total_checked: int = 0
    total_updated: int = 0
    breaches_detected: int = 0
    at_risk_detected: int = 0
    updates: List[SLAUpdateResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    skipped_kinds: List[RequestType] = field(default_factory=list)
    duration_ms: float = 0.0

    def merge(self, result: KindSweepResult) -> None:
        self.total_checked += result.checked
        self.total_updated += result.updated
        self.breaches_detected += result.breached
        self.at_risk_detected += result.at_risk
        self.updates.extend(result.updates)
        self.errors.extend(result.errors)


@dataclass
class StatusCounts:
    total: int = 0
    breached: int = 0
    at_risk: int = 0
    on_track: int = 0

    @classmethod
    def from_grouped(cls, grouped: Dict[Optional[str], int]) -> "StatusCounts":
        """Build from a {stored status: count} mapping; rows without a status only add to total."""
        counts = cls()
        for status, count in grouped.items():
            counts.total += count
            if status == SLAStatus.BREACHED.value:
                counts.breached += count
            elif status == SLAStatus.AT_RISK.value:
                counts.at_risk += count
            elif status == SLAStatus.ON_TRACK.value:
                counts.on_track += count
        return counts

    def add(self, other: "StatusCounts") -> None:
        self.total += other.total
        self.breached += other.breached
        self.at_risk += other.at_risk
        self.on_track += other.on_track


@dataclass
class DailySLAReport:
    """Previous day's created requests, counted by kind and stored SLA status."""
    report_date: date
    by_request_type: Dict[RequestType, StatusCounts] = field(default_factory=dict)

    @property
    def summary(self) -> StatusCounts:
        totals = StatusCounts()
        for counts in self.by_request_type.values():
            totals.add(counts)
        return totals


@dataclass(frozen=True)
class ReportRecipient:
    user_id: str
    email: str
