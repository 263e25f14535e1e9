"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA policy administration, tracking queries and sweeps.

Controllers are thin - they delegate to application services. Application
exceptions propagate to the handlers registered in main.py.
"""

from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from sla_engine.core import ResourceNotFoundException
from sla_engine.infrastructure.database import get_session
from sla_engine.shared.infrastructure.logging import get_logger
from sla_engine.sla.application import SLAPolicyService, SLASweeper, SLATrackingService
from sla_engine.sla.application.dto import (
    BatchCheckItemResponse,
    BatchCheckRequest,
    BatchCheckResponse,
    BreachResponse,
    DailyReportResponse,
    DeadlineRequest,
    DeadlinesResponse,
    PolicyCreateRequest,
    PolicyListResponse,
    PolicyResponse,
    PolicyUpdateRequest,
    RequestSnapshotDTO,
    SeedResponse,
    SLAStatusResponse,
    SweepReportResponse,
    UrgencySortRequest,
    UrgencySortResponse,
)
from sla_engine.sla.infrastructure import SQLAlchemyPolicyRepository

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Tracking"])


# ========== Example payloads for Swagger ==========

POLICY_RESPONSE_EXAMPLE = {
    "id": "123e4567-e89b-12d3-a456-426614174000",
    "name": "Default consultation - urgent",
    "request_type": "consultation",
    "priority": "urgent",
    "response_minutes": 30,
    "resolution_minutes": 720,
    "escalation_minutes": 360,
    "response_formatted": "30 minutes",
    "resolution_formatted": "12 hours",
    "escalation_formatted": "6 hours",
    "is_active": True,
    "created_at": "2024-01-15T10:00:00Z",
    "updated_at": "2024-01-15T10:00:00Z"
}

SWEEP_REPORT_EXAMPLE = {
    "executed_at": "2024-01-15T10:05:00Z",
    "total_checked": 42,
    "total_updated": 3,
    "breaches_detected": 1,
    "at_risk_detected": 2,
    "updates": [],
    "errors": [],
    "skipped_kinds": [],
    "duration_ms": 184.2
}


# ========== Dependencies ==========

async def get_policy_service(
    session: AsyncSession = Depends(get_session)
) -> SLAPolicyService:
    """Get policy service bound to the request session."""
    return SLAPolicyService(SQLAlchemyPolicyRepository(session))


async def get_tracking_service(
    request: Request,
    policy_service: SLAPolicyService = Depends(get_policy_service)
) -> SLATrackingService:
    """Tracking service sharing the sweep's at-risk threshold when a config is loaded."""
    config_provider = getattr(request.app.state, "sla_config_manager", None)
    return SLATrackingService(policy_service, config_provider=config_provider)


def get_sweeper(request: Request) -> SLASweeper:
    """The sweeper is built once in the application lifespan."""
    sweeper = getattr(request.app.state, "sla_sweeper", None)
    if sweeper is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SLA sweeper not initialized"
        )
    return sweeper


# ========== Policies ==========

@router.post(
    "/policies",
    response_model=PolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create SLA policy",
    description="""
    Create a policy for a (request type, priority) pair.

    Budgets are in minutes. Response must be shorter than resolution, and
    escalation (when given) must lie strictly between them.

    Returns 409 when the name is taken or an active policy already covers
    the pair.
    """,
    responses={201: {"content": {"application/json": {"example": POLICY_RESPONSE_EXAMPLE}}}}
)
async def create_policy(
    request: PolicyCreateRequest,
    service: SLAPolicyService = Depends(get_policy_service)
):
    policy = await service.create(
        name=request.name,
        request_type=request.request_type,
        priority=request.priority,
        response_minutes=request.response_minutes,
        resolution_minutes=request.resolution_minutes,
        escalation_minutes=request.escalation_minutes,
        is_active=request.is_active,
    )
    return PolicyResponse.from_domain(policy)


@router.get("/policies", response_model=PolicyListResponse, summary="List SLA policies")
async def list_policies(
    request_type: Optional[str] = Query(None, description="Filter by request type"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    limit: int = Query(50, ge=1, le=500, description="Results per page"),
    offset: int = Query(0, ge=0, description="Page offset"),
    service: SLAPolicyService = Depends(get_policy_service)
):
    policies, total = await service.list(
        request_type=request_type, is_active=is_active, limit=limit, offset=offset
    )
    return PolicyListResponse(
        policies=[PolicyResponse.from_domain(p) for p in policies],
        total=total
    )


@router.get(
    "/policies/match",
    response_model=PolicyResponse,
    summary="Resolve the governing policy",
    description="""
    Exact active (type, priority) match, then (type, normal), then any
    active policy of the type with the lowest priority. 404 when the type
    has no active policy and the hard-coded default would apply.
    """
)
async def match_policy(
    request_type: str = Query(..., description="Request type"),
    priority: Optional[str] = Query(None, description="Request priority"),
    service: SLAPolicyService = Depends(get_policy_service)
):
    policy = await service.find_best_match(request_type, priority)
    if policy is None:
        raise ResourceNotFoundException("SLA Policy", f"{request_type}/{priority or 'any'}")
    return PolicyResponse.from_domain(policy)


@router.post("/policies/seed", response_model=SeedResponse, summary="Seed default policies")
async def seed_policies(service: SLAPolicyService = Depends(get_policy_service)):
    return SeedResponse(**await service.seed_defaults())


@router.get("/policies/{policy_id}", response_model=PolicyResponse, summary="Get SLA policy")
async def get_policy(
    policy_id: str,
    service: SLAPolicyService = Depends(get_policy_service)
):
    return PolicyResponse.from_domain(await service.get(policy_id))


@router.patch("/policies/{policy_id}", response_model=PolicyResponse, summary="Update SLA policy")
async def update_policy(
    policy_id: str,
    request: PolicyUpdateRequest,
    service: SLAPolicyService = Depends(get_policy_service)
):
    policy = await service.update(
        policy_id,
        name=request.name,
        response_minutes=request.response_minutes,
        resolution_minutes=request.resolution_minutes,
        escalation_minutes=request.escalation_minutes,
        clear_escalation=request.clear_escalation,
        is_active=request.is_active,
    )
    return PolicyResponse.from_domain(policy)


@router.delete(
    "/policies/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete SLA policy"
)
async def delete_policy(
    policy_id: str,
    service: SLAPolicyService = Depends(get_policy_service)
):
    await service.delete(policy_id)


@router.post("/policies/{policy_id}/activate", response_model=PolicyResponse)
async def activate_policy(
    policy_id: str,
    service: SLAPolicyService = Depends(get_policy_service)
):
    return PolicyResponse.from_domain(await service.activate(policy_id))


@router.post("/policies/{policy_id}/deactivate", response_model=PolicyResponse)
async def deactivate_policy(
    policy_id: str,
    service: SLAPolicyService = Depends(get_policy_service)
):
    return PolicyResponse.from_domain(await service.deactivate(policy_id))


# ========== Tracking ==========

@router.post(
    "/deadlines",
    response_model=DeadlinesResponse,
    summary="Calculate deadlines",
    description="Deadlines a new request of this type and priority would receive."
)
async def calculate_deadlines(
    request: DeadlineRequest,
    service: SLATrackingService = Depends(get_tracking_service)
):
    applied = await service.apply_sla_to_request(request.request_type, request.priority, request.start)
    return DeadlinesResponse.from_applied(applied)


@router.post("/status", response_model=SLAStatusResponse, summary="Get request SLA status")
async def get_status(
    request: RequestSnapshotDTO,
    service: SLATrackingService = Depends(get_tracking_service)
):
    info = await service.check_status(request.to_domain())
    return SLAStatusResponse.from_domain(info)


@router.post("/breaches", response_model=List[BreachResponse], summary="List request breaches")
async def get_breaches(
    request: RequestSnapshotDTO,
    service: SLATrackingService = Depends(get_tracking_service)
):
    breaches = await service.check_breaches(request.to_domain())
    return [BreachResponse.from_domain(b) for b in breaches]


@router.post("/urgency/sort", response_model=UrgencySortResponse, summary="Rank requests by urgency")
async def sort_by_urgency(
    request: UrgencySortRequest,
    service: SLATrackingService = Depends(get_tracking_service)
):
    ids = await service.sort_by_urgency([item.to_domain() for item in request.items])
    return UrgencySortResponse(request_ids=ids)


@router.post(
    "/batch-check",
    response_model=BatchCheckResponse,
    summary="Evaluate several requests",
    description="Current status, breach and at-risk flags and urgency score per request, in input order."
)
async def batch_check(
    request: BatchCheckRequest,
    service: SLATrackingService = Depends(get_tracking_service)
):
    results = await service.batch_check([item.to_domain() for item in request.items])
    return BatchCheckResponse(results=[BatchCheckItemResponse.from_domain(r) for r in results])


# ========== Sweeps & reports ==========

@router.post(
    "/sweeps",
    response_model=SweepReportResponse,
    summary="Run an SLA sweep now",
    description="""
    Reconcile stored SLA status for every active request of every kind.

    Returns 409 when a sweep (scheduled or manual) is already running.
    """,
    responses={200: {"content": {"application/json": {"example": SWEEP_REPORT_EXAMPLE}}}}
)
async def trigger_sweep(sweeper: SLASweeper = Depends(get_sweeper)):
    report = await sweeper.manual_trigger()
    return SweepReportResponse.from_domain(report)


@router.get("/reports/daily", response_model=DailyReportResponse, summary="Daily SLA report")
async def daily_report(
    report_date: Optional[date] = Query(None, description="UTC day to report on; defaults to yesterday"),
    sweeper: SLASweeper = Depends(get_sweeper)
):
    today = report_date + timedelta(days=1) if report_date else None
    report = await sweeper.generate_daily_report(today)
    return DailyReportResponse.from_domain(report)


# Export router for inclusion in main app
sla_router = router
