"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (ports), not concrete implementations
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union

from sla_engine.config import Priority, RequestType, SLAStatus
from sla_engine.core import (
    PolicyConflictException,
    ResourceNotFoundException,
    ValidationException,
)
from sla_engine.shared.infrastructure.logging import get_logger
from sla_engine.sla.application.ports import ISLAPolicyRepository, ISweepConfigProvider
from sla_engine.sla.domain import (
    AppliedSLA,
    BreachRecord,
    RequestSLAInfo,
    RequestSLASnapshot,
    SLACalculator,
    SLADeadlines,
    SLAPolicy,
    StatusCheckResult,
    TimeBudget,
)
from sla_engine.sla.domain.value_objects import utcnow

logger = get_logger(__name__)


def require_request_type(value: Union[RequestType, str]) -> RequestType:
    """Strict parsing for administrative input."""
    try:
        return RequestType(value)
    except ValueError:
        raise ValidationException(
            f"Invalid request type: {value}",
            {"valid": [t.value for t in RequestType]}
        )


def require_priority(value: Union[Priority, str]) -> Priority:
    try:
        return Priority(value)
    except ValueError:
        raise ValidationException(
            f"Invalid priority: {value}",
            {"valid": [p.value for p in Priority]}
        )


# ========== Policy Catalog ==========

class SLAPolicyService:
    """
    Service for SLA policy administration and resolution.

    At most one active policy per (request type, priority) pair: enforced here
    on create, update and activate, not by a database constraint.
    """

    def __init__(self, policy_repository: ISLAPolicyRepository):
        self._policy_repo = policy_repository

    async def find_best_match(
        self,
        request_type: Union[RequestType, str],
        priority: Optional[Union[Priority, str]] = None
    ) -> Optional[SLAPolicy]:
        """
        Resolve the policy that governs a request.

        Fallback chain: exact active (type, priority) → active (type, normal)
        → any active policy for the type with the lowest priority ordinal → None.

        Args:
            request_type: Request kind
            priority: Request priority, or None to skip the exact step

        Returns:
            Matching SLAPolicy, or None when the type default budget applies
        """
        request_type = require_request_type(request_type)
        priority = require_priority(priority) if priority is not None else None
        return await self._policy_repo.find_best_match(request_type, priority)

    async def create(
        self,
        name: str,
        request_type: Union[RequestType, str],
        priority: Union[Priority, str],
        response_minutes: int,
        resolution_minutes: int,
        escalation_minutes: Optional[int] = None,
        is_active: bool = True
    ) -> SLAPolicy:
        """
        Create a new policy.

        Raises:
            ValidationException: Bad enum value, empty name or invalid budget
            PolicyConflictException: Duplicate name, or an active policy
                already holds the (type, priority) pair
        """
        request_type = require_request_type(request_type)
        priority = require_priority(priority)
        budget = TimeBudget.create(response_minutes, resolution_minutes, escalation_minutes)
        policy = SLAPolicy.create(name, request_type, priority, budget, is_active=is_active)

        existing = await self._policy_repo.find_by_name(policy.name)
        if existing is not None:
            raise PolicyConflictException(
                f'SLA Policy with name "{policy.name}" already exists',
                {"name": policy.name, "existing_policy_id": existing.id}
            )
        if policy.is_active:
            await self._ensure_slot_free(policy)

        saved = await self._policy_repo.save(policy)
        logger.info(
            "SLA policy created",
            extra={"policy_id": saved.id, "key": saved.key, "policy_name": saved.name}
        )
        return saved

    async def update(
        self,
        policy_id: str,
        name: Optional[str] = None,
        response_minutes: Optional[int] = None,
        resolution_minutes: Optional[int] = None,
        escalation_minutes: Optional[int] = None,
        clear_escalation: bool = False,
        is_active: Optional[bool] = None
    ) -> SLAPolicy:
        """Apply a partial update. The resulting budget is validated as a whole."""
        policy = await self.get(policy_id)

        if name is not None and name.strip() != policy.name:
            if await self._policy_repo.exists_by_name(name.strip(), exclude_id=policy.id):
                raise PolicyConflictException(
                    f'SLA Policy with name "{name.strip()}" already exists',
                    {"name": name.strip()}
                )
            policy.update_name(name)

        policy.update_budget(
            response_minutes=response_minutes,
            resolution_minutes=resolution_minutes,
            escalation_minutes=escalation_minutes,
            clear_escalation=clear_escalation,
        )

        if is_active is True and not policy.is_active:
            await self._ensure_slot_free(policy)
            policy.activate()
        elif is_active is False:
            policy.deactivate()

        saved = await self._policy_repo.save(policy)
        logger.info("SLA policy updated", extra={"policy_id": saved.id, "key": saved.key})
        return saved

    async def get(self, policy_id: str) -> SLAPolicy:
        policy = await self._policy_repo.find_by_id(policy_id)
        if policy is None:
            raise ResourceNotFoundException("SLA Policy", policy_id)
        return policy

    async def list(
        self,
        request_type: Optional[Union[RequestType, str]] = None,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[SLAPolicy], int]:
        """
        List policies.

        Returns:
            (page of policies, total matching before pagination)
        """
        if limit < 1 or offset < 0:
            raise ValidationException("limit must be positive and offset non-negative")
        if request_type is not None:
            request_type = require_request_type(request_type)

        policies = await self._policy_repo.find_all(request_type=request_type, is_active=is_active)
        return policies[offset:offset + limit], len(policies)

    async def delete(self, policy_id: str) -> None:
        """Hard delete; explicit admin action only."""
        policy = await self.get(policy_id)
        await self._policy_repo.delete(policy.id)
        logger.info("SLA policy deleted", extra={"policy_id": policy.id, "key": policy.key})

    async def activate(self, policy_id: str) -> SLAPolicy:
        policy = await self.get(policy_id)
        if policy.is_active:
            return policy
        await self._ensure_slot_free(policy)
        policy.activate()
        return await self._policy_repo.save(policy)

    async def deactivate(self, policy_id: str) -> SLAPolicy:
        policy = await self.get(policy_id)
        if not policy.is_active:
            return policy
        policy.deactivate()
        return await self._policy_repo.save(policy)

    async def seed_defaults(self) -> Dict[str, int]:
        """
        Create a default policy for every (type, priority) pair that has none.

        Idempotent: pairs with any existing policy, active or not, are skipped.

        Returns:
            {"created": n, "skipped": m}
        """
        created = skipped = 0
        for request_type in RequestType:
            for priority in Priority:
                if await self._policy_repo.exists_by_type_and_priority(request_type, priority):
                    skipped += 1
                    continue
                policy = SLAPolicy.create_default(request_type, priority)
                if await self._policy_repo.exists_by_name(policy.name):
                    skipped += 1
                    continue
                await self._policy_repo.save(policy)
                created += 1

        logger.info("Default SLA policies seeded", extra={"created": created, "skipped": skipped})
        return {"created": created, "skipped": skipped}

    async def calculate_deadlines(
        self,
        request_type: Union[RequestType, str],
        priority: Optional[Union[Priority, str]] = None,
        start: Optional[datetime] = None
    ) -> Tuple[SLADeadlines, Optional[SLAPolicy]]:
        """
        Deadlines for a request of this type and priority starting at `start`.

        Returns:
            (deadlines, governing policy or None when the type default applied)
        """
        request_type = require_request_type(request_type)
        priority = require_priority(priority) if priority is not None else None
        policy = await self._policy_repo.find_best_match(request_type, priority)
        deadlines = SLACalculator.calculate_deadlines(
            policy, request_type, priority or Priority.NORMAL, start
        )
        return deadlines, policy

    async def _ensure_slot_free(self, policy: SLAPolicy) -> None:
        if await self._policy_repo.exists_by_type_and_priority(
            policy.request_type, policy.priority, active_only=True, exclude_id=policy.id
        ):
            raise PolicyConflictException(
                f"SLA Policy for {policy.request_type.value} with priority "
                f"{policy.priority.value} already exists",
                {"request_type": policy.request_type.value, "priority": policy.priority.value}
            )


# ========== Tracking ==========

class SLATrackingService:
    """
    Upward operations for other bounded contexts: stamping deadlines on new
    requests and answering status questions about existing ones.
    """

    def __init__(
        self,
        policy_service: SLAPolicyService,
        calculator: Optional[SLACalculator] = None,
        config_provider: Optional[ISweepConfigProvider] = None
    ):
        """
        Args:
            policy_service: Catalog used to resolve policies and deadlines
            calculator: Fixed status engine; overrides config_provider
            config_provider: Source of the at-risk threshold shared with the sweeper
        """
        self._policy_service = policy_service
        self._fixed_calculator = calculator
        self._config_provider = config_provider

    @property
    def _calculator(self) -> SLACalculator:
        if self._fixed_calculator is not None:
            return self._fixed_calculator
        if self._config_provider is not None:
            return SLACalculator(self._config_provider.config.at_risk_threshold)
        return SLACalculator()

    async def apply_sla_to_request(
        self,
        request_type: Union[RequestType, str],
        priority: Optional[Union[Priority, str]] = None,
        created_at: Optional[datetime] = None
    ) -> AppliedSLA:
        """
        Deadlines to stamp on a newly created request.

        The resolution deadline doubles as the request's `sla_deadline`.
        """
        deadlines, policy = await self._policy_service.calculate_deadlines(
            request_type, priority, created_at or utcnow()
        )
        return AppliedSLA(
            sla_deadline=deadlines.resolution_deadline,
            sla_status=SLAStatus.ON_TRACK,
            deadlines=deadlines,
            policy_id=policy.id if policy else None,
            policy_name=policy.name if policy else None,
        )

    async def check_status(
        self,
        snapshot: RequestSLASnapshot,
        now: Optional[datetime] = None
    ) -> RequestSLAInfo:
        deadlines, policy = await self._resolve(snapshot)
        return self._calculator.request_info(
            request_id=snapshot.request_id,
            request_type=snapshot.request_type,
            priority=snapshot.priority,
            deadlines=deadlines,
            responded=snapshot.responded,
            resolved=snapshot.resolved,
            policy_id=policy.id if policy else None,
            now=now,
        )

    async def check_breaches(
        self,
        snapshot: RequestSLASnapshot,
        now: Optional[datetime] = None
    ) -> List[BreachRecord]:
        deadlines, _ = await self._resolve(snapshot)
        return self._calculator.check_breaches(
            snapshot.request_id,
            snapshot.request_type,
            deadlines,
            snapshot.responded,
            snapshot.resolved,
            now,
        )

    async def urgency_score(self, snapshot: RequestSLASnapshot, now: Optional[datetime] = None) -> float:
        deadlines, _ = await self._resolve(snapshot)
        return self._calculator.urgency_score(
            deadlines, snapshot.priority, snapshot.responded, snapshot.resolved, now
        )

    async def batch_check(
        self,
        snapshots: Sequence[RequestSLASnapshot],
        now: Optional[datetime] = None
    ) -> List[StatusCheckResult]:
        now = now or utcnow()
        return self._calculator.batch_check(await self._with_deadlines(snapshots), now)

    async def sort_by_urgency(
        self,
        snapshots: Sequence[RequestSLASnapshot],
        now: Optional[datetime] = None
    ) -> List[str]:
        """Request ids, most urgent first; ties keep their input order."""
        now = now or utcnow()
        return self._calculator.sort_by_urgency(await self._with_deadlines(snapshots), now)

    def format_duration(self, duration) -> str:
        return self._calculator.format_duration(duration)

    async def _with_deadlines(
        self,
        snapshots: Sequence[RequestSLASnapshot]
    ) -> List[Tuple[RequestSLASnapshot, SLADeadlines]]:
        items = []
        for snapshot in snapshots:
            deadlines, _ = await self._resolve(snapshot, need_policy=False)
            items.append((snapshot, deadlines))
        return items

    async def _resolve(
        self,
        snapshot: RequestSLASnapshot,
        need_policy: bool = True
    ) -> Tuple[SLADeadlines, Optional[SLAPolicy]]:
        """Stored deadlines when present, otherwise computed through the catalog."""
        deadlines = snapshot.stored_deadlines()
        if deadlines is None:
            return await self._policy_service.calculate_deadlines(
                snapshot.request_type, snapshot.priority, snapshot.created_at
            )
        policy = None
        if need_policy:
            policy = await self._policy_service.find_best_match(snapshot.request_type, snapshot.priority)
        return deadlines, policy
