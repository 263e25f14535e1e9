"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA tracking:
- Models: SQLAlchemy ORM models
- Repositories: Policy repository, per-kind request stores, report recipients
- External: Sweep config watcher, Slack notifier, scheduler
"""

from sla_engine.sla.infrastructure.models import (
    CallRequestModel,
    ConsultationRequestModel,
    LegalOpinionRequestModel,
    LitigationCaseModel,
    ServiceRequestModel,
    SLAPolicyModel,
)
from sla_engine.sla.infrastructure.repositories import (
    REQUEST_KIND_MAPPINGS,
    RequestKindMapping,
    SettingsRecipientProvider,
    SQLAlchemyPolicyRepository,
    SQLAlchemyRequestStore,
    build_request_stores,
)
from sla_engine.sla.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    SLAScheduler,
    SlackNotifier,
    SweepConfigManager,
)

__all__ = [
    "SLAPolicyModel",
    "ConsultationRequestModel",
    "LegalOpinionRequestModel",
    "ServiceRequestModel",
    "LitigationCaseModel",
    "CallRequestModel",
    "SQLAlchemyPolicyRepository",
    "SQLAlchemyRequestStore",
    "RequestKindMapping",
    "REQUEST_KIND_MAPPINGS",
    "build_request_stores",
    "SettingsRecipientProvider",
    "SweepConfigManager",
    "CircuitBreaker",
    "CircuitState",
    "SlackNotifier",
    "SLAScheduler",
]
