"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import date, datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from sla_engine.sla.domain import (
    AppliedSLA,
    BreachRecord,
    DailySLAReport,
    RequestSLAInfo,
    RequestSLASnapshot,
    SLACalculator,
    SLADeadlines,
    SLAPolicy,
    StatusCheckResult,
    StatusCounts,
    SweepReport,
)
from sla_engine.sla.domain.value_objects import parse_sla_status


# ========== Type Aliases for Literals ==========
RequestTypeStr = Literal["consultation", "legal_opinion", "service", "litigation", "call"]
PriorityStr = Literal["low", "normal", "high", "urgent"]
SLAStatusStr = Literal["on_track", "at_risk", "breached"]
DimensionStr = Literal["response", "resolution"]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken to be UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ========== Request DTOs ==========

class PolicyCreateRequest(BaseModel):
    """Request model for creating an SLA policy."""
    name: str = Field(..., min_length=1, max_length=200, description="Unique policy name")
    request_type: RequestTypeStr = Field(..., description="Request kind")
    priority: PriorityStr = Field(default="normal", description="Priority slot")
    response_minutes: int = Field(..., description="Response budget in minutes")
    resolution_minutes: int = Field(..., description="Resolution budget in minutes")
    escalation_minutes: Optional[int] = Field(None, description="Escalation budget in minutes")
    is_active: bool = True


class PolicyUpdateRequest(BaseModel):
    """Partial update; omitted fields stay unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    response_minutes: Optional[int] = None
    resolution_minutes: Optional[int] = None
    escalation_minutes: Optional[int] = None
    clear_escalation: bool = Field(default=False, description="Remove the escalation budget")
    is_active: Optional[bool] = None


class DeadlineRequest(BaseModel):
    """Request model for deadline calculation."""
    request_type: RequestTypeStr
    priority: Optional[PriorityStr] = None
    start: Optional[datetime] = Field(None, description="Defaults to now")

    @field_validator("start")
    @classmethod
    def validate_start(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class RequestSnapshotDTO(BaseModel):
    """
    SLA projection of a request owned by another service.

    `request_type` and `priority` are parsed leniently: unknown values fall
    back to consultation / normal.
    """
    request_id: str = Field(..., min_length=1)
    request_type: str
    priority: Optional[str] = None
    created_at: datetime
    responded_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    response_deadline: Optional[datetime] = None
    resolution_deadline: Optional[datetime] = Field(None, description="Stored sla_deadline")
    escalation_deadline: Optional[datetime] = None
    current_status: Optional[str] = None

    @field_validator(
        "created_at", "responded_at", "resolved_at",
        "response_deadline", "resolution_deadline", "escalation_deadline"
    )
    @classmethod
    def validate_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    def to_domain(self) -> RequestSLASnapshot:
        return RequestSLASnapshot(
            request_id=self.request_id,
            request_type=self.request_type,
            priority=self.priority,
            created_at=self.created_at,
            responded_at=self.responded_at,
            resolved_at=self.resolved_at,
            sla_deadline=self.resolution_deadline,
            current_status=parse_sla_status(self.current_status),
            response_deadline=self.response_deadline,
            escalation_deadline=self.escalation_deadline,
        )


class UrgencySortRequest(BaseModel):
    items: List[RequestSnapshotDTO] = Field(..., description="Requests to rank")


class BatchCheckRequest(BaseModel):
    items: List[RequestSnapshotDTO] = Field(..., description="Requests to evaluate")


# ========== Response DTOs ==========

class PolicyResponse(BaseModel):
    """Response model for an SLA policy."""
    id: str
    name: str
    request_type: RequestTypeStr
    priority: PriorityStr
    response_minutes: int
    resolution_minutes: int
    escalation_minutes: Optional[int] = None
    response_formatted: str
    resolution_formatted: str
    escalation_formatted: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, policy: SLAPolicy) -> "PolicyResponse":
        return cls(**policy.to_dict())


class PolicyListResponse(BaseModel):
    policies: List[PolicyResponse]
    total: int = Field(..., description="Total matching policies before pagination")


class SeedResponse(BaseModel):
    created: int
    skipped: int


class DeadlinesResponse(BaseModel):
    """Absolute deadlines plus the policy that produced them."""
    response_deadline: datetime
    resolution_deadline: datetime
    escalation_deadline: Optional[datetime] = None
    created_at: datetime
    policy_id: Optional[str] = Field(None, description="None when the type default applied")
    policy_name: Optional[str] = None

    @classmethod
    def from_domain(
        cls,
        deadlines: SLADeadlines,
        policy_id: Optional[str] = None,
        policy_name: Optional[str] = None
    ) -> "DeadlinesResponse":
        return cls(
            response_deadline=deadlines.response_deadline,
            resolution_deadline=deadlines.resolution_deadline,
            escalation_deadline=deadlines.escalation_deadline,
            created_at=deadlines.created_at,
            policy_id=policy_id,
            policy_name=policy_name,
        )

    @classmethod
    def from_applied(cls, applied: AppliedSLA) -> "DeadlinesResponse":
        return cls.from_domain(applied.deadlines, applied.policy_id, applied.policy_name)


class DimensionValues(BaseModel):
    response: int
    resolution: int


class TimeRemaining(BaseModel):
    response: str = Field(..., description="Formatted, e.g. '4h 10m'")
    resolution: str
    response_seconds: float
    resolution_seconds: float


class SLAStatusResponse(BaseModel):
    """Full SLA picture of one request."""
    request_id: str
    request_type: RequestTypeStr
    priority: PriorityStr
    status: SLAStatusStr
    response_status: SLAStatusStr
    resolution_status: SLAStatusStr
    deadlines: DeadlinesResponse
    time_remaining: TimeRemaining
    percent_elapsed: DimensionValues
    is_escalation_required: bool
    policy_id: Optional[str] = None

    @classmethod
    def from_domain(cls, info: RequestSLAInfo) -> "SLAStatusResponse":
        return cls(
            request_id=info.request_id,
            request_type=info.request_type.value,
            priority=info.priority.value,
            status=info.status.value,
            response_status=info.response_status.value,
            resolution_status=info.resolution_status.value,
            deadlines=DeadlinesResponse.from_domain(info.deadlines, info.policy_id),
            time_remaining=TimeRemaining(
                response=SLACalculator.format_duration(info.response_time_remaining),
                resolution=SLACalculator.format_duration(info.resolution_time_remaining),
                response_seconds=info.response_time_remaining.total_seconds(),
                resolution_seconds=info.resolution_time_remaining.total_seconds(),
            ),
            percent_elapsed=DimensionValues(
                response=info.response_percent_elapsed,
                resolution=info.resolution_percent_elapsed,
            ),
            is_escalation_required=info.is_escalation_required,
            policy_id=info.policy_id,
        )


class BreachResponse(BaseModel):
    request_id: str
    request_type: RequestTypeStr
    dimension: DimensionStr
    deadline: datetime
    breached_at: datetime
    overdue_duration: str
    overdue_seconds: float

    @classmethod
    def from_domain(cls, breach: BreachRecord) -> "BreachResponse":
        return cls(
            request_id=breach.request_id,
            request_type=breach.request_type.value,
            dimension=breach.dimension.value,
            deadline=breach.deadline,
            breached_at=breach.breached_at,
            overdue_duration=SLACalculator.format_duration(breach.overdue_duration),
            overdue_seconds=breach.overdue_duration.total_seconds(),
        )


class UrgencySortResponse(BaseModel):
    request_ids: List[str] = Field(..., description="Most urgent first")


class BatchCheckItemResponse(BaseModel):
    """Live SLA state of one request in a batch check."""
    request_id: str
    status: SLAStatusStr
    is_breached: bool
    is_at_risk: bool
    urgency_score: float

    @classmethod
    def from_domain(cls, result: StatusCheckResult) -> "BatchCheckItemResponse":
        return cls(
            request_id=result.request_id,
            status=result.current_status.value,
            is_breached=result.is_breached,
            is_at_risk=result.is_at_risk,
            urgency_score=result.urgency_score,
        )


class BatchCheckResponse(BaseModel):
    results: List[BatchCheckItemResponse] = Field(..., description="One entry per request, in input order")


class SLAUpdateResponse(BaseModel):
    request_id: str
    request_kind: RequestTypeStr
    request_number: str
    previous_status: Optional[SLAStatusStr] = None
    new_status: SLAStatusStr
    is_breached: bool
    is_at_risk: bool


class SweepReportResponse(BaseModel):
    """Response model for a manual sweep."""
    executed_at: datetime
    total_checked: int
    total_updated: int
    breaches_detected: int
    at_risk_detected: int
    updates: List[SLAUpdateResponse] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    skipped_kinds: List[RequestTypeStr] = Field(default_factory=list)
    duration_ms: float

    @classmethod
    def from_domain(cls, report: SweepReport) -> "SweepReportResponse":
        return cls(
            executed_at=report.executed_at,
            total_checked=report.total_checked,
            total_updated=report.total_updated,
            breaches_detected=report.breaches_detected,
            at_risk_detected=report.at_risk_detected,
            updates=[
                SLAUpdateResponse(
                    request_id=u.request_id,
                    request_kind=u.request_kind.value,
                    request_number=u.request_number,
                    previous_status=u.previous_status.value if u.previous_status else None,
                    new_status=u.new_status.value,
                    is_breached=u.is_breached,
                    is_at_risk=u.is_at_risk,
                )
                for u in report.updates
            ],
            errors=list(report.errors),
            skipped_kinds=[kind.value for kind in report.skipped_kinds],
            duration_ms=report.duration_ms,
        )


class StatusCountsResponse(BaseModel):
    total: int
    breached: int
    at_risk: int
    on_track: int

    @classmethod
    def from_domain(cls, counts: StatusCounts) -> "StatusCountsResponse":
        return cls(
            total=counts.total,
            breached=counts.breached,
            at_risk=counts.at_risk,
            on_track=counts.on_track,
        )


class DailyReportResponse(BaseModel):
    report_date: date
    summary: StatusCountsResponse
    by_request_type: Dict[str, StatusCountsResponse] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, report: DailySLAReport) -> "DailyReportResponse":
        return cls(
            report_date=report.report_date,
            summary=StatusCountsResponse.from_domain(report.summary),
            by_request_type={
                kind.value: StatusCountsResponse.from_domain(counts)
                for kind, counts in report.by_request_type.items()
            },
        )
