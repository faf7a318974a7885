"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA tracking:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer and unit of work
- Memory: In-memory unit of work for tests and local runs
- External: Config file watcher and reconciliation scheduler
"""

from helpdesk.sla.infrastructure.models import (
    BusinessHoursModel,
    HolidayModel,
    TicketPriorityModel,
    SLAPolicyModel,
    TicketModel,
    TicketCommentModel,
    SLAPolicyTicketModel,
)
from helpdesk.sla.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyCommentRepository,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyBusinessHoursRepository,
    SQLAlchemySLAPolicyTicketRepository,
    SQLAlchemyUnitOfWork,
)
from helpdesk.sla.infrastructure.memory import (
    InMemoryStore,
    InMemoryUnitOfWork,
    InMemoryUnitOfWorkFactory,
    StaticConfigProvider,
)
from helpdesk.sla.infrastructure.external import (
    SLAConfigManager,
    ReconciliationScheduler,
)

__all__ = [
    # Models
    "BusinessHoursModel",
    "HolidayModel",
    "TicketPriorityModel",
    "SLAPolicyModel",
    "TicketModel",
    "TicketCommentModel",
    "SLAPolicyTicketModel",
    # Repositories
    "SQLAlchemyTicketRepository",
    "SQLAlchemyCommentRepository",
    "SQLAlchemySLAPolicyRepository",
    "SQLAlchemyBusinessHoursRepository",
    "SQLAlchemySLAPolicyTicketRepository",
    "SQLAlchemyUnitOfWork",
    "InMemoryStore",
    "InMemoryUnitOfWork",
    "InMemoryUnitOfWorkFactory",
    "StaticConfigProvider",
    # External
    "SLAConfigManager",
    "ReconciliationScheduler",
]
