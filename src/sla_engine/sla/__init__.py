"""
SLA Tracking Module
===================

Bounded Context for Service Level Agreement tracking of service requests.

Responsibilities:
- Resolve SLA policies by request type and priority
- Derive absolute deadlines from priority-adjusted time budgets
- Compute live status (on_track / at_risk / breached) and urgency
- Periodically sweep active requests, persist status changes, notify
- Daily SLA summary reports
"""

__version__ = "1.0.0"
