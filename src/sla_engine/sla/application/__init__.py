"""
SLA Application Layer
======================

Application layer for SLA tracking module.

Contains:
- Ports: Interfaces implemented by infrastructure adapters
- Services: Policy catalog and tracking operations
- Sweeper: Periodic status reconciliation and daily report
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and port interfaces,
but not on concrete infrastructure implementations.
"""

from sla_engine.sla.application.ports import (
    INotificationPort,
    IReportRecipientProvider,
    IRequestStore,
    ISLAPolicyRepository,
    ISweepConfigProvider,
    SLAAtRiskNotification,
    SLABreachNotification,
    SLADailyReportNotification,
)
from sla_engine.sla.application.services import SLAPolicyService, SLATrackingService
from sla_engine.sla.application.sweeper import SLASweeper

__all__ = [
    # Services
    "SLAPolicyService",
    "SLATrackingService",
    "SLASweeper",
    # Ports
    "ISLAPolicyRepository",
    "IRequestStore",
    "INotificationPort",
    "IReportRecipientProvider",
    "ISweepConfigProvider",
    # Notification payloads
    "SLABreachNotification",
    "SLAAtRiskNotification",
    "SLADailyReportNotification",
]
