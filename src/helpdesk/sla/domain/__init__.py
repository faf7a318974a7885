"""
SLA Domain Layer
================

Domain layer for SLA tracking.

Contains:
- Calendar: business-hours profiles and holidays
- Deadlines: working-hours arithmetic behind an interface
- Entities: Ticket, TicketComment, SLAPolicy, SLAPolicyTicket
- Value Objects: pause log, thresholds, YAML-backed SLAConfig
- Clock: status derivation and mirror synchronization

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.sla.domain.calendar import (
    BusinessCalendar,
    BusinessHoursProfile,
    DailyHours,
    Holiday,
)
from helpdesk.sla.domain.deadlines import DeadlineCalculator, FixedWindowDeadlineCalculator
from helpdesk.sla.domain.entities import SLAPolicy, SLAPolicyTicket, Ticket, TicketComment
from helpdesk.sla.domain.value_objects import (
    PausePeriod,
    SLAMetadata,
    SLADeadlines,
    SLAOutcomeCounts,
    StatusThresholds,
    SLAConfig,
)
from helpdesk.sla.domain.clock import SLAClock, SLAStatusReport
from helpdesk.sla.domain.ticket_status import StatusCategory, classify_status

__all__ = [
    # Calendar
    "BusinessCalendar",
    "BusinessHoursProfile",
    "DailyHours",
    "Holiday",
    # Deadlines
    "DeadlineCalculator",
    "FixedWindowDeadlineCalculator",
    # Entities
    "SLAPolicy",
    "SLAPolicyTicket",
    "Ticket",
    "TicketComment",
    # Value Objects
    "PausePeriod",
    "SLAMetadata",
    "SLADeadlines",
    "SLAOutcomeCounts",
    "StatusThresholds",
    "SLAConfig",
    # Clock
    "SLAClock",
    "SLAStatusReport",
    "StatusCategory",
    "classify_status",
]
