"""
SLA Domain Layer
================

Domain layer for SLA tracking module.

Contains:
- Entities: SLAPolicy, RequestSLASnapshot and the result records
- Value Objects: TimeBudget, SLADeadlines
- Domain Services: Stateless status engine (SLACalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from sla_engine.sla.domain.calculator import SLACalculator
from sla_engine.sla.domain.entities import (
    AppliedSLA,
    AtRiskFlags,
    BreachRecord,
    DailySLAReport,
    KindSweepResult,
    ReportRecipient,
    RequestSLAInfo,
    RequestSLASnapshot,
    SLAPolicy,
    SLAUpdateResult,
    StatusCheckResult,
    StatusCounts,
    SweepReport,
)
from sla_engine.sla.domain.value_objects import (
    AT_RISK_THRESHOLD,
    DEFAULT_ACTIVE_STATUSES,
    DEFAULT_BUDGETS,
    PRIORITY_MULTIPLIERS,
    SLADeadlines,
    SweepConfig,
    TimeBudget,
    most_severe_status,
    parse_priority,
    parse_request_type,
    parse_sla_status,
)

__all__ = [
    # Entities
    "SLAPolicy",
    "RequestSLASnapshot",
    "AppliedSLA",
    "AtRiskFlags",
    "BreachRecord",
    "RequestSLAInfo",
    "StatusCheckResult",
    "SLAUpdateResult",
    "KindSweepResult",
    "SweepReport",
    "StatusCounts",
    "DailySLAReport",
    "ReportRecipient",
    # Value Objects
    "TimeBudget",
    "SLADeadlines",
    "SweepConfig",
    "DEFAULT_ACTIVE_STATUSES",
    "AT_RISK_THRESHOLD",
    "DEFAULT_BUDGETS",
    "PRIORITY_MULTIPLIERS",
    "most_severe_status",
    "parse_priority",
    "parse_request_type",
    "parse_sla_status",
    # Domain Services
    "SLACalculator",
]
