"""Shared fixtures and in-memory fakes for the SLA engine tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest

from sla_engine.config import Priority, RequestType, SLAStatus
from sla_engine.infrastructure.database import build_engine, build_session_maker, create_tables
from sla_engine.sla.application import SLAPolicyService, SLATrackingService
from sla_engine.sla.application.ports import (
    INotificationPort,
    IReportRecipientProvider,
    IRequestStore,
    ISweepConfigProvider,
    SLAAtRiskNotification,
    SLABreachNotification,
    SLADailyReportNotification,
)
from sla_engine.sla.domain import ReportRecipient, RequestSLASnapshot, StatusCounts, SweepConfig
from sla_engine.sla.infrastructure import SQLAlchemyPolicyRepository

T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def make_snapshot(
    request_id: str = "req-1",
    request_type: RequestType = RequestType.CONSULTATION,
    priority: Priority = Priority.NORMAL,
    created_at: datetime = T0,
    response_minutes: Optional[int] = 60,
    resolution_minutes: Optional[int] = 1440,
    responded_at: Optional[datetime] = None,
    resolved_at: Optional[datetime] = None,
    current_status: Optional[SLAStatus] = SLAStatus.ON_TRACK,
) -> RequestSLASnapshot:
    """Snapshot whose stored deadlines are `created_at` plus the given minutes."""
    return RequestSLASnapshot(
        request_id=request_id,
        request_type=request_type,
        priority=priority,
        created_at=created_at,
        responded_at=responded_at,
        resolved_at=resolved_at,
        sla_deadline=(
            created_at + timedelta(minutes=resolution_minutes) if resolution_minutes else None
        ),
        current_status=current_status,
        request_number=f"N-{request_id}",
        subscriber_id="sub-1",
        provider_id="prov-1",
        response_deadline=(
            created_at + timedelta(minutes=response_minutes) if response_minutes else None
        ),
    )


# ── Fakes ────────────────────────────────────────────────────────


class InMemoryRequestStore(IRequestStore):
    def __init__(
        self,
        snapshots: Sequence[RequestSLASnapshot] = (),
        workflow_status: Optional[Dict[str, str]] = None,
        counts: Optional[StatusCounts] = None,
        fail_list: Optional[Exception] = None,
        fail_update_ids: Sequence[str] = (),
        delay: float = 0.0,
    ):
        self.snapshots = list(snapshots)
        self.workflow_status = workflow_status or {}
        self.counts = counts or StatusCounts()
        self.fail_list = fail_list
        self.fail_update_ids = set(fail_update_ids)
        self.delay = delay
        self.updates: Dict[str, SLAStatus] = {}
        self.requested_statuses: List[List[str]] = []
        self.count_ranges = []

    async def list_active(self, statuses):
        self.requested_statuses.append(list(statuses))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_list:
            raise self.fail_list
        return [
            s for s in self.snapshots
            if self.workflow_status.get(s.request_id, "pending") in statuses
        ]

    async def update_status(self, request_id, status):
        if request_id in self.fail_update_ids:
            raise RuntimeError("write failed")
        self.updates[request_id] = status
        for snapshot in self.snapshots:
            if snapshot.request_id == request_id:
                snapshot.current_status = status

    async def count_by_status(self, created_from, created_to):
        self.count_ranges.append((created_from, created_to))
        if self.fail_list:
            raise self.fail_list
        return self.counts


class RecordingNotifier(INotificationPort):
    def __init__(self, fail: bool = False, fail_for: Sequence[str] = ()):
        self.fail = fail
        self.fail_for = set(fail_for)
        self.breaches: List[SLABreachNotification] = []
        self.at_risk: List[SLAAtRiskNotification] = []
        self.reports: List[SLADailyReportNotification] = []

    def _check(self, key: str) -> None:
        if self.fail or key in self.fail_for:
            raise RuntimeError("notifier down")

    async def notify_sla_breach(self, notification):
        self._check(notification.request_id)
        self.breaches.append(notification)

    async def notify_sla_at_risk(self, notification):
        self._check(notification.request_id)
        self.at_risk.append(notification)

    async def notify_sla_daily_report(self, notification):
        self._check(notification.admin_user_id)
        self.reports.append(notification)


class StaticRecipientProvider(IReportRecipientProvider):
    def __init__(self, count: int):
        self.recipients = [ReportRecipient(f"admin-{i}", f"admin{i}@example.com") for i in range(count)]

    async def list_recipients(self):
        return list(self.recipients)


class StaticConfigProvider(ISweepConfigProvider):
    def __init__(self, config: SweepConfig):
        self._config = config

    @property
    def config(self) -> SweepConfig:
        return self._config


# ── Database ─────────────────────────────────────────────────────


@pytest.fixture
async def db_engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return build_session_maker(db_engine)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def policy_repo(session):
    return SQLAlchemyPolicyRepository(session)


@pytest.fixture
def policy_service(policy_repo):
    return SLAPolicyService(policy_repo)


@pytest.fixture
def tracking_service(policy_service):
    return SLATrackingService(policy_service)
