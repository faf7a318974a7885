"""
SLA Interfaces Layer
====================

Interface adapters (controllers) for the SLA module.

Contains:
- Controllers: FastAPI route handlers

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from helpdesk.sla.interfaces.controllers import (
    sla_router,
    get_clock_service,
    get_reconciliation_service,
)

__all__ = ["sla_router", "get_clock_service", "get_reconciliation_service"]
