"""
SLA Application Layer
======================

Application layer for SLA tracking.

Contains:
- Ports: repository and unit-of-work interfaces
- Services: policy resolution and the SLA clock use cases
- Reconciliation: periodic repair sweeps
- Events: ticket events and their SLA handler
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.sla.application.dto import (
    PausePeriodResponse,
    SLAPolicyTicketResponse,
    SLAStatusReportResponse,
    TicketSLAResponse,
    RepairResponse,
    SLAMetricsResponse,
    ErrorResponse,
)
from helpdesk.sla.application.ports import (
    ITicketRepository,
    ICommentRepository,
    ISLAPolicyRepository,
    IBusinessHoursRepository,
    ISLAPolicyTicketRepository,
    ISLAConfigProvider,
    IUnitOfWork,
)
from helpdesk.sla.application.locks import TicketLockRegistry
from helpdesk.sla.application.services import SLAPolicyResolver, SLAClockService
from helpdesk.sla.application.reconciliation import ReconciliationService, ReconciliationReport
from helpdesk.sla.application.events import (
    TicketEvent,
    TicketCreated,
    PriorityChanged,
    CommentAdded,
    StatusChanged,
    SLAEventOutcome,
    SLAEventHandler,
)

__all__ = [
    # DTOs
    "PausePeriodResponse",
    "SLAPolicyTicketResponse",
    "SLAStatusReportResponse",
    "TicketSLAResponse",
    "RepairResponse",
    "SLAMetricsResponse",
    "ErrorResponse",
    # Ports
    "ITicketRepository",
    "ICommentRepository",
    "ISLAPolicyRepository",
    "IBusinessHoursRepository",
    "ISLAPolicyTicketRepository",
    "ISLAConfigProvider",
    "IUnitOfWork",
    # Services
    "TicketLockRegistry",
    "SLAPolicyResolver",
    "SLAClockService",
    "ReconciliationService",
    "ReconciliationReport",
    # Events
    "TicketEvent",
    "TicketCreated",
    "PriorityChanged",
    "CommentAdded",
    "StatusChanged",
    "SLAEventOutcome",
    "SLAEventHandler",
]
