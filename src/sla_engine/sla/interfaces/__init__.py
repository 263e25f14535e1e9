"""
SLA Interfaces Layer
====================

Interface adapters (controllers) for the SLA tracking module.

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from sla_engine.sla.interfaces.controllers import sla_router

__all__ = ["sla_router"]
