"""
SLA Infrastructure Repositories
=================================

Concrete implementations of the SLA ports using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
policies and how each request kind is projected into a RequestSLASnapshot.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Type

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sla_engine.config import Priority, RequestType, SLAStatus, settings
from sla_engine.core import RepositoryException
from sla_engine.infrastructure.database import get_session_context
from sla_engine.shared.infrastructure.logging import get_logger
from sla_engine.sla.application.ports import (
    IReportRecipientProvider,
    IRequestStore,
    ISLAPolicyRepository,
)
from sla_engine.sla.domain import (
    ReportRecipient,
    RequestSLASnapshot,
    SLAPolicy,
    StatusCounts,
    TimeBudget,
    parse_priority,
    parse_request_type,
    parse_sla_status,
)
from sla_engine.sla.domain.value_objects import PRIORITY_ORDINAL
from sla_engine.sla.infrastructure.models import (
    CallRequestModel,
    ConsultationRequestModel,
    LegalOpinionRequestModel,
    LitigationCaseModel,
    ServiceRequestModel,
    SLAPolicyModel,
)

logger = get_logger(__name__)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Drivers without timezone support hand back naive UTC values."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ========== Policies ==========

class SQLAlchemyPolicyRepository(ISLAPolicyRepository):
    """
    SQLAlchemy implementation of SLA policy repository.

    Uses the caller's session; committing is left to the session owner.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: SLAPolicyModel) -> SLAPolicy:
        return SLAPolicy(
            id=model.id,
            name=model.name,
            request_type=parse_request_type(model.request_type),
            priority=parse_priority(model.priority),
            budget=TimeBudget(
                model.response_minutes,
                model.resolution_minutes,
                model.escalation_minutes,
            ),
            is_active=model.is_active,
            created_at=_utc(model.created_at),
            updated_at=_utc(model.updated_at),
        )

    async def _get_model(self, policy_id: str) -> Optional[SLAPolicyModel]:
        return await self._session.get(SLAPolicyModel, policy_id)

    async def save(self, policy: SLAPolicy) -> SLAPolicy:
        """Insert or update a policy."""
        try:
            model = await self._get_model(policy.id)
            if model is None:
                model = SLAPolicyModel(id=policy.id, created_at=policy.created_at)
                self._session.add(model)

            model.name = policy.name
            model.request_type = policy.request_type.value
            model.priority = policy.priority.value
            model.response_minutes = policy.budget.response_minutes
            model.resolution_minutes = policy.budget.resolution_minutes
            model.escalation_minutes = policy.budget.escalation_minutes
            model.is_active = policy.is_active
            model.updated_at = policy.updated_at

            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save SLA policy {policy.id}", {"error": str(e)})

        return policy

    async def find_by_id(self, policy_id: str) -> Optional[SLAPolicy]:
        model = await self._get_model(policy_id)
        return self._to_domain(model) if model else None

    async def find_by_name(self, name: str) -> Optional[SLAPolicy]:
        stmt = select(SLAPolicyModel).where(SLAPolicyModel.name == name)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def find_by_type_and_priority(
        self,
        request_type: RequestType,
        priority: Priority
    ) -> Optional[SLAPolicy]:
        """Active policy for the exact pair; the oldest wins if several exist."""
        stmt = (
            select(SLAPolicyModel)
            .where(
                SLAPolicyModel.request_type == request_type.value,
                SLAPolicyModel.priority == priority.value,
                SLAPolicyModel.is_active.is_(True),
            )
            .order_by(SLAPolicyModel.created_at.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def find_best_match(
        self,
        request_type: RequestType,
        priority: Optional[Priority] = None
    ) -> Optional[SLAPolicy]:
        """
        Fallback chain:
        1. exact active (type, priority) when a priority is given
        2. active (type, normal)
        3. any active policy for the type, lowest priority ordinal first
        4. None
        """
        if priority is not None:
            policy = await self.find_by_type_and_priority(request_type, priority)
            if policy:
                return policy

        policy = await self.find_by_type_and_priority(request_type, Priority.NORMAL)
        if policy:
            return policy

        candidates = await self.find_by_request_type(request_type)
        if not candidates:
            return None
        # min() keeps the first of equal ordinals, i.e. the oldest policy
        return min(candidates, key=lambda p: PRIORITY_ORDINAL[p.priority])

    async def find_by_request_type(self, request_type: RequestType) -> List[SLAPolicy]:
        return await self.find_all(request_type=request_type, is_active=True)

    async def find_all_active(self) -> List[SLAPolicy]:
        return await self.find_all(is_active=True)

    async def find_all(
        self,
        request_type: Optional[RequestType] = None,
        is_active: Optional[bool] = None
    ) -> List[SLAPolicy]:
        stmt = select(SLAPolicyModel)
        if request_type is not None:
            stmt = stmt.where(SLAPolicyModel.request_type == request_type.value)
        if is_active is not None:
            stmt = stmt.where(SLAPolicyModel.is_active.is_(is_active))
        stmt = stmt.order_by(SLAPolicyModel.created_at.asc(), SLAPolicyModel.name.asc())

        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def delete(self, policy_id: str) -> bool:
        model = await self._get_model(policy_id)
        if model is None:
            return False
        await self._session.delete(model)
        await self._session.flush()
        return True

    async def exists_by_name(self, name: str, exclude_id: Optional[str] = None) -> bool:
        stmt = select(SLAPolicyModel.id).where(SLAPolicyModel.name == name)
        if exclude_id:
            stmt = stmt.where(SLAPolicyModel.id != exclude_id)
        result = await self._session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def exists_by_type_and_priority(
        self,
        request_type: RequestType,
        priority: Priority,
        active_only: bool = False,
        exclude_id: Optional[str] = None
    ) -> bool:
        stmt = select(SLAPolicyModel.id).where(
            SLAPolicyModel.request_type == request_type.value,
            SLAPolicyModel.priority == priority.value,
        )
        if active_only:
            stmt = stmt.where(SLAPolicyModel.is_active.is_(True))
        if exclude_id:
            stmt = stmt.where(SLAPolicyModel.id != exclude_id)
        result = await self._session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None


# ========== Request stores ==========

@dataclass(frozen=True)
class RequestKindMapping:
    """
    How one request table maps onto RequestSLASnapshot.

    Optional columns set to None are absent from the table: no responded_at
    means the response dimension is never completed, no priority column
    means every request of the kind is normal priority.
    """
    request_type: RequestType
    model: Type
    number_column: str = "request_number"
    resolved_column: str = "completed_at"
    responded_column: Optional[str] = None
    priority_column: Optional[str] = None
    provider_column: str = "assigned_provider_id"
    soft_delete_column: Optional[str] = "deleted_at"

    def column(self, name: str):
        return getattr(self.model, name)

    def to_snapshot(self, row) -> RequestSLASnapshot:
        return RequestSLASnapshot(
            request_id=row.id,
            request_type=self.request_type,
            priority=getattr(row, self.priority_column) if self.priority_column else Priority.NORMAL,
            created_at=_utc(row.created_at),
            responded_at=_utc(getattr(row, self.responded_column)) if self.responded_column else None,
            resolved_at=_utc(getattr(row, self.resolved_column)),
            sla_deadline=_utc(row.sla_deadline),
            current_status=parse_sla_status(row.sla_status),
            request_number=getattr(row, self.number_column),
            subscriber_id=row.subscriber_id,
            provider_id=getattr(row, self.provider_column),
        )


REQUEST_KIND_MAPPINGS: List[RequestKindMapping] = [
    RequestKindMapping(
        RequestType.CONSULTATION,
        ConsultationRequestModel,
        responded_column="responded_at",
        priority_column="urgency",
    ),
    RequestKindMapping(RequestType.LEGAL_OPINION, LegalOpinionRequestModel),
    RequestKindMapping(RequestType.SERVICE, ServiceRequestModel),
    RequestKindMapping(
        RequestType.LITIGATION,
        LitigationCaseModel,
        number_column="case_number",
        resolved_column="closed_at",
    ),
    RequestKindMapping(RequestType.CALL, CallRequestModel),
]


class SQLAlchemyRequestStore(IRequestStore):
    """
    Request store for one kind, driven by a RequestKindMapping.

    Opens its own session per call so kinds can be swept concurrently.
    """

    def __init__(self, mapping: RequestKindMapping, session_maker: async_sessionmaker[AsyncSession]):
        self._mapping = mapping
        self._session_maker = session_maker

    @property
    def request_type(self) -> RequestType:
        return self._mapping.request_type

    def _not_deleted(self, stmt):
        if self._mapping.soft_delete_column:
            stmt = stmt.where(self._mapping.column(self._mapping.soft_delete_column).is_(None))
        return stmt

    async def list_active(self, statuses: Sequence[str]) -> List[RequestSLASnapshot]:
        model = self._mapping.model
        stmt = self._not_deleted(
            select(model).where(
                model.status.in_(list(statuses)),
                model.sla_deadline.is_not(None),
            )
        ).order_by(model.created_at.asc())

        async with get_session_context(self._session_maker) as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
            return [self._mapping.to_snapshot(row) for row in rows]

    async def update_status(self, request_id: str, status: SLAStatus) -> None:
        model = self._mapping.model
        stmt = update(model).where(model.id == request_id).values(sla_status=status.value)

        async with get_session_context(self._session_maker) as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise RepositoryException(
                    f"{self._mapping.request_type.value} request {request_id} not found"
                )

    async def count_by_status(self, created_from: datetime, created_to: datetime) -> StatusCounts:
        model = self._mapping.model
        stmt = self._not_deleted(
            select(model.sla_status, func.count())
            .where(model.created_at >= created_from, model.created_at < created_to)
        ).group_by(model.sla_status)

        async with get_session_context(self._session_maker) as session:
            result = await session.execute(stmt)
            return StatusCounts.from_grouped({status: count for status, count in result.all()})


def build_request_stores(
    session_maker: async_sessionmaker[AsyncSession],
    mappings: Optional[List[RequestKindMapping]] = None
) -> Dict[RequestType, IRequestStore]:
    """Registry of request stores keyed by kind, in RequestType order."""
    return {
        mapping.request_type: SQLAlchemyRequestStore(mapping, session_maker)
        for mapping in (mappings or REQUEST_KIND_MAPPINGS)
    }


# ========== Report recipients ==========

class SettingsRecipientProvider(IReportRecipientProvider):
    """Daily report recipients from the SLA_REPORT_RECIPIENTS setting."""

    def __init__(self, entries: Optional[List[str]] = None):
        self._entries = settings.sla_report_recipients if entries is None else entries

    async def list_recipients(self) -> List[ReportRecipient]:
        recipients = []
        for entry in self._entries:
            user_id, _, email = entry.partition(":")
            recipients.append(ReportRecipient(user_id=user_id.strip(), email=email.strip()))
        return recipients
