"""
SLA Ports
=========

Interfaces the SLA application layer depends on (Dependency Inversion).

Infrastructure adapters implement these; tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from sla_engine.config import Priority, RequestType, SLAStatus
from sla_engine.sla.domain import (
    ReportRecipient,
    RequestSLASnapshot,
    SLAPolicy,
    StatusCounts,
    SweepConfig,
)


# ========== Repository Interfaces ==========

class ISLAPolicyRepository(ABC):
    """Interface for SLA policy data access."""

    @abstractmethod
    async def save(self, policy: SLAPolicy) -> SLAPolicy:
        """Insert or update a policy."""

    @abstractmethod
    async def find_by_id(self, policy_id: str) -> Optional[SLAPolicy]:
        """Get policy by ID."""

    @abstractmethod
    async def find_by_name(self, name: str) -> Optional[SLAPolicy]:
        """Get policy by its unique name."""

    @abstractmethod
    async def find_by_type_and_priority(
        self,
        request_type: RequestType,
        priority: Priority
    ) -> Optional[SLAPolicy]:
        """Get the active policy for an exact (type, priority) pair."""

    @abstractmethod
    async def find_best_match(
        self,
        request_type: RequestType,
        priority: Optional[Priority] = None
    ) -> Optional[SLAPolicy]:
        """Resolve the policy for a request through the fallback chain."""

    @abstractmethod
    async def find_by_request_type(self, request_type: RequestType) -> List[SLAPolicy]:
        """All active policies for a request type."""

    @abstractmethod
    async def find_all_active(self) -> List[SLAPolicy]:
        """All active policies."""

    @abstractmethod
    async def find_all(
        self,
        request_type: Optional[RequestType] = None,
        is_active: Optional[bool] = None
    ) -> List[SLAPolicy]:
        """List policies with optional filters, oldest first."""

    @abstractmethod
    async def delete(self, policy_id: str) -> bool:
        """Hard-delete a policy. Returns False when it did not exist."""

    @abstractmethod
    async def exists_by_name(self, name: str, exclude_id: Optional[str] = None) -> bool:
        """Check whether another policy already uses this name."""

    @abstractmethod
    async def exists_by_type_and_priority(
        self,
        request_type: RequestType,
        priority: Priority,
        active_only: bool = False,
        exclude_id: Optional[str] = None
    ) -> bool:
        """Check whether a policy exists for the (type, priority) pair."""


class IRequestStore(ABC):
    """
    Per-kind access to requests owned by another bounded context.

    Only the SLA projection is read and only the stored SLA status is written.
    """

    @abstractmethod
    async def list_active(self, statuses: Sequence[str]) -> List[RequestSLASnapshot]:
        """Requests in one of `statuses` that have a stored SLA deadline."""

    @abstractmethod
    async def update_status(self, request_id: str, status: SLAStatus) -> None:
        """Persist the SLA status of one request."""

    @abstractmethod
    async def count_by_status(self, created_from: datetime, created_to: datetime) -> StatusCounts:
        """Count requests created in [created_from, created_to) by stored SLA status."""


# ========== Notification payloads ==========

@dataclass(frozen=True)
class SLABreachNotification:
    request_id: str
    request_number: str
    request_type: RequestType
    subscriber_id: Optional[str]
    sla_deadline: datetime
    breached_at: datetime
    provider_id: Optional[str] = None


@dataclass(frozen=True)
class SLAAtRiskNotification:
    request_id: str
    request_number: str
    request_type: RequestType
    subscriber_id: Optional[str]
    sla_deadline: datetime
    hours_remaining: int
    provider_id: Optional[str] = None


@dataclass(frozen=True)
class SLADailyReportNotification:
    """
    Daily report for one admin recipient.

    The summary is published as `total_active / breached / at_risk / on_track`,
    where `total_active` is `summary.total`: the number of requests created on
    `report_date`. Per-kind entries keep the plain `total` key.
    """
    admin_user_id: str
    admin_email: str
    report_date: date
    summary: StatusCounts
    by_request_type: Dict[RequestType, StatusCounts] = field(default_factory=dict)

    @property
    def total_active(self) -> int:
        return self.summary.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "admin_user_id": self.admin_user_id,
            "admin_email": self.admin_email,
            "report_date": self.report_date.isoformat(),
            "summary": {
                "total_active": self.total_active,
                "breached": self.summary.breached,
                "at_risk": self.summary.at_risk,
                "on_track": self.summary.on_track,
            },
            "by_request_type": {
                kind.value: asdict(counts) for kind, counts in self.by_request_type.items()
            },
        }


class INotificationPort(ABC):
    """Interface for SLA alert delivery."""

    @abstractmethod
    async def notify_sla_breach(self, notification: SLABreachNotification) -> None:
        """Send a breach alert."""

    @abstractmethod
    async def notify_sla_at_risk(self, notification: SLAAtRiskNotification) -> None:
        """Send an at-risk alert."""

    @abstractmethod
    async def notify_sla_daily_report(self, notification: SLADailyReportNotification) -> None:
        """Send the daily summary to one recipient."""


# ========== Configuration Interfaces ==========

class IReportRecipientProvider(ABC):
    """Interface for daily report recipients."""

    @abstractmethod
    async def list_recipients(self) -> List[ReportRecipient]:
        """Users eligible for the daily SLA report."""


class ISweepConfigProvider(ABC):
    """Interface for sweep configuration access."""

    @property
    @abstractmethod
    def config(self) -> SweepConfig:
        """Current sweep configuration."""
