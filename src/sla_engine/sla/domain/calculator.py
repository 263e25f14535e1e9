"""
SLA Calculator
==============

Stateless domain service deriving SLA status from deadlines.

All methods are pure functions of (deadlines, responded, resolved, now):
calling them twice with the same inputs yields the same result.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from sla_engine.config import DeadlineDimension, Priority, RequestType, SLAStatus
from sla_engine.sla.domain.entities import (
    AtRiskFlags,
    BreachRecord,
    RequestSLAInfo,
    RequestSLASnapshot,
    SLAPolicy,
    StatusCheckResult,
)
from sla_engine.sla.domain.value_objects import (
    AT_RISK_THRESHOLD,
    SLADeadlines,
    TimeBudget,
    most_severe_status,
    utcnow,
)

PRIORITY_WEIGHT: Dict[Priority, int] = {
    Priority.LOW: 1,
    Priority.NORMAL: 2,
    Priority.HIGH: 3,
    Priority.URGENT: 4,
}

STATUS_WEIGHT: Dict[SLAStatus, int] = {
    SLAStatus.ON_TRACK: 1,
    SLAStatus.AT_RISK: 3,
    SLAStatus.BREACHED: 5,
}


class SLACalculator:
    """
    Pure functions for SLA status, breach and urgency calculations.

    A dimension that has been completed (responded / resolved) is on_track
    no matter when the completion happened.
    """

    def __init__(self, at_risk_threshold: int = AT_RISK_THRESHOLD):
        self.at_risk_threshold = at_risk_threshold

    # ========== Deadlines ==========

    @staticmethod
    def calculate_deadlines(
        policy: Optional[SLAPolicy],
        request_type: RequestType,
        priority: Priority,
        start: Optional[datetime] = None
    ) -> SLADeadlines:
        """
        Deadlines for a new request.

        Uses the policy's budget when one matched, otherwise the request type's
        default budget scaled for the priority.
        """
        if policy is not None:
            return policy.calculate_deadlines(start, priority)
        budget = TimeBudget.default_for(request_type).adjust_for_priority(priority)
        return SLADeadlines.calculate(budget, start)

    # ========== Status ==========

    def dimension_status(
        self,
        deadlines: SLADeadlines,
        dimension: DeadlineDimension,
        completed: bool,
        now: Optional[datetime] = None
    ) -> SLAStatus:
        if completed:
            return SLAStatus.ON_TRACK
        now = now or utcnow()
        if deadlines.is_breached(dimension, now):
            return SLAStatus.BREACHED
        if deadlines.elapsed_percent(dimension, now) >= self.at_risk_threshold:
            return SLAStatus.AT_RISK
        return SLAStatus.ON_TRACK

    def response_status(self, deadlines: SLADeadlines, responded: bool, now: Optional[datetime] = None) -> SLAStatus:
        return self.dimension_status(deadlines, DeadlineDimension.RESPONSE, responded, now)

    def resolution_status(self, deadlines: SLADeadlines, resolved: bool, now: Optional[datetime] = None) -> SLAStatus:
        return self.dimension_status(deadlines, DeadlineDimension.RESOLUTION, resolved, now)

    def overall_status(
        self,
        deadlines: SLADeadlines,
        responded: bool,
        resolved: bool,
        now: Optional[datetime] = None
    ) -> SLAStatus:
        """Most severe of the response and resolution statuses."""
        now = now or utcnow()
        return most_severe_status([
            self.response_status(deadlines, responded, now),
            self.resolution_status(deadlines, resolved, now),
        ])

    def request_info(
        self,
        request_id: str,
        request_type: RequestType,
        priority: Priority,
        deadlines: SLADeadlines,
        responded: bool,
        resolved: bool,
        policy_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> RequestSLAInfo:
        now = now or utcnow()
        response_status = self.response_status(deadlines, responded, now)
        resolution_status = self.resolution_status(deadlines, resolved, now)

        return RequestSLAInfo(
            request_id=request_id,
            request_type=request_type,
            priority=priority,
            status=most_severe_status([response_status, resolution_status]),
            response_status=response_status,
            resolution_status=resolution_status,
            deadlines=deadlines,
            response_time_remaining=deadlines.time_remaining(DeadlineDimension.RESPONSE, now),
            resolution_time_remaining=deadlines.time_remaining(DeadlineDimension.RESOLUTION, now),
            response_percent_elapsed=deadlines.elapsed_percent(DeadlineDimension.RESPONSE, now),
            resolution_percent_elapsed=deadlines.elapsed_percent(DeadlineDimension.RESOLUTION, now),
            is_escalation_required=deadlines.is_escalation_required(now),
            policy_id=policy_id,
        )

    # ========== Breaches & risk ==========

    @staticmethod
    def check_breaches(
        request_id: str,
        request_type: RequestType,
        deadlines: SLADeadlines,
        responded: bool,
        resolved: bool,
        now: Optional[datetime] = None
    ) -> List[BreachRecord]:
        """One record per uncompleted dimension whose deadline has passed."""
        now = now or utcnow()
        breaches = []
        for dimension, completed in (
            (DeadlineDimension.RESPONSE, responded),
            (DeadlineDimension.RESOLUTION, resolved),
        ):
            if completed or not deadlines.is_breached(dimension, now):
                continue
            deadline = deadlines.deadline_for(dimension)
            breaches.append(BreachRecord(
                request_id=request_id,
                request_type=request_type,
                dimension=dimension,
                deadline=deadline,
                overdue_duration=now - deadline,
            ))
        return breaches

    def is_at_risk(
        self,
        deadlines: SLADeadlines,
        responded: bool,
        resolved: bool,
        now: Optional[datetime] = None,
        threshold: Optional[int] = None
    ) -> AtRiskFlags:
        now = now or utcnow()
        threshold = self.at_risk_threshold if threshold is None else threshold
        return AtRiskFlags(
            response=not responded and deadlines.elapsed_percent(DeadlineDimension.RESPONSE, now) >= threshold,
            resolution=not resolved and deadlines.elapsed_percent(DeadlineDimension.RESOLUTION, now) >= threshold,
        )

    # ========== Urgency ==========

    def urgency_score(
        self,
        deadlines: SLADeadlines,
        priority: Priority,
        responded: bool,
        resolved: bool,
        now: Optional[datetime] = None
    ) -> float:
        """
        Relative urgency; higher is more urgent. Only meaningful for ordering.

        priority_weight * 10 + status_weight * 20 + resolution elapsed percent,
        and 0 once the request is resolved.
        """
        if resolved:
            return 0
        now = now or utcnow()
        status = self.overall_status(deadlines, responded, resolved, now)
        elapsed = deadlines.elapsed_percent(DeadlineDimension.RESOLUTION, now)
        return PRIORITY_WEIGHT[priority] * 10 + STATUS_WEIGHT[status] * 20 + elapsed

    def evaluate(
        self,
        snapshot: RequestSLASnapshot,
        deadlines: SLADeadlines,
        now: Optional[datetime] = None
    ) -> StatusCheckResult:
        """Re-evaluate a snapshot against deadlines and compare with its stored status."""
        now = now or utcnow()
        return StatusCheckResult(
            request_id=snapshot.request_id,
            previous_status=snapshot.current_status,
            current_status=self.overall_status(deadlines, snapshot.responded, snapshot.resolved, now),
            urgency_score=self.urgency_score(
                deadlines, snapshot.priority, snapshot.responded, snapshot.resolved, now
            ),
        )

    def batch_check(
        self,
        items: Sequence[tuple[RequestSLASnapshot, SLADeadlines]],
        now: Optional[datetime] = None
    ) -> List[StatusCheckResult]:
        now = now or utcnow()
        return [self.evaluate(snapshot, deadlines, now) for snapshot, deadlines in items]

    def sort_by_urgency(
        self,
        items: Sequence[tuple[RequestSLASnapshot, SLADeadlines]],
        now: Optional[datetime] = None
    ) -> List[str]:
        """Request ids, most urgent first. Equal scores keep their input order."""
        results = self.batch_check(items, now)
        ranked = sorted(results, key=lambda result: result.urgency_score, reverse=True)
        return [result.request_id for result in ranked]

    # ========== Formatting ==========

    @staticmethod
    def format_duration(duration: timedelta) -> str:
        """Compact duration such as "2d 3h", "4h 10m", "7m" or "12s"."""
        seconds = int(abs(duration).total_seconds())
        minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400

        if days > 0:
            return f"{days}d {hours % 24}h"
        if hours > 0:
            return f"{hours}h {minutes % 60}m"
        if minutes > 0:
            return f"{minutes}m"
        return f"{seconds}s"
