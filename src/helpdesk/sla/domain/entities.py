"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from helpdesk.config import SLAStatus, UserRole
from helpdesk.sla.domain.calendar import ensure_utc
from helpdesk.sla.domain.value_objects import SLADeadlines, SLAMetadata


@dataclass(frozen=True)
class SLAPolicy:
    """Response and resolution targets attached to one ticket priority."""

    id: int
    organization_id: int
    ticket_priority_id: int
    name: str
    first_response_hours: float
    resolution_hours: float
    next_response_hours: Optional[float] = None
    business_hours_only: bool = True
    description: Optional[str] = None


@dataclass
class Ticket:
    """
    The slice of a support ticket the SLA core reads and writes.

    ``sla_status`` and the two breach flags mirror the ticket's
    SLAPolicyTicket; only the SLA clock writes them.
    """

    id: int
    organization_id: int
    created_at: datetime
    priority_id: Optional[int] = None
    priority_name: Optional[str] = None
    status_name: Optional[str] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    # SLA mirror
    sla_status: str = SLAStatus.INACTIVE
    first_response_sla_breached: bool = False
    resolution_sla_breached: bool = False

    version: int = 1

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)
        if self.resolved_at is not None:
            self.resolved_at = ensure_utc(self.resolved_at)
        if self.closed_at is not None:
            self.closed_at = ensure_utc(self.closed_at)
        if self.resolved_at and self.resolved_at < self.created_at:
            raise ValueError("resolved_at cannot be before created_at")

    @property
    def is_terminal(self) -> bool:
        """Resolved or closed tickets no longer run an SLA clock."""
        return self.resolved_at is not None or self.closed_at is not None

    @property
    def finished_at(self) -> Optional[datetime]:
        return self.resolved_at or self.closed_at

    def apply_sla_mirror(
        self,
        status: str,
        first_response_breached: bool,
        resolution_breached: bool,
        reset: bool = False
    ) -> None:
        """
        Write the derived SLA state onto the ticket.

        Breach flags only ever go from False to True unless ``reset`` is
        set, which happens when a new policy replaces the old one.
        """
        self.sla_status = status
        if reset:
            self.first_response_sla_breached = first_response_breached
            self.resolution_sla_breached = resolution_breached
        else:
            self.first_response_sla_breached = (
                self.first_response_sla_breached or first_response_breached
            )
            self.resolution_sla_breached = (
                self.resolution_sla_breached or resolution_breached
            )


@dataclass(frozen=True)
class TicketComment:
    """Read model of a ticket comment."""

    ticket_id: int
    created_at: datetime
    user_id: Optional[int] = None
    user_role: str = UserRole.CUSTOMER
    is_internal: bool = False
    is_system: bool = False
    id: Optional[int] = None

    @property
    def is_public(self) -> bool:
        return not self.is_internal and not self.is_system

    @property
    def is_agent_reply(self) -> bool:
        """Counts toward first/next response targets."""
        return self.is_public and self.user_role != UserRole.CUSTOMER

    @property
    def is_customer_reply(self) -> bool:
        return self.is_public and self.user_role == UserRole.CUSTOMER


@dataclass
class SLAPolicyTicket:
    """
    Live binding of one ticket to one SLA policy.

    The three ``*_met`` fields are tri-state: None while undecided, then
    True or False once the target was hit or missed. A decided value is
    never overwritten.
    """

    ticket_id: int
    sla_policy_id: int
    first_response_due_at: datetime
    resolution_due_at: datetime
    next_response_due_at: Optional[datetime] = None
    first_response_met: Optional[bool] = None
    next_response_met: Optional[bool] = None
    resolution_met: Optional[bool] = None
    metadata: SLAMetadata = field(default_factory=SLAMetadata)
    id: Optional[int] = None
    version: int = 1

    def __post_init__(self):
        self.first_response_due_at = ensure_utc(self.first_response_due_at)
        self.resolution_due_at = ensure_utc(self.resolution_due_at)
        if self.next_response_due_at is not None:
            self.next_response_due_at = ensure_utc(self.next_response_due_at)

    @classmethod
    def create(cls, ticket_id: int, policy: SLAPolicy, deadlines: SLADeadlines) -> "SLAPolicyTicket":
        return cls(
            ticket_id=ticket_id,
            sla_policy_id=policy.id,
            first_response_due_at=deadlines.first_response_due_at,
            resolution_due_at=deadlines.resolution_due_at,
            next_response_due_at=deadlines.next_response_due_at,
        )

    def reassign(self, policy: SLAPolicy, deadlines: SLADeadlines) -> None:
        """Swap in a new policy; outcomes reset, pause log kept."""
        self.sla_policy_id = policy.id
        self.first_response_due_at = deadlines.first_response_due_at
        self.resolution_due_at = deadlines.resolution_due_at
        self.next_response_due_at = deadlines.next_response_due_at
        self.first_response_met = None
        self.next_response_met = None
        self.resolution_met = None

    # ========== Pause log ==========

    @property
    def is_paused(self) -> bool:
        return self.metadata.is_paused

    def pause(self, now: datetime) -> None:
        self.metadata = self.metadata.with_pause(now)

    def resume(self, now: datetime) -> None:
        self.metadata = self.metadata.with_resume(now)

    # ========== Outcomes ==========

    def record_first_response(self, at: datetime) -> bool:
        """Returns True if the outcome was decided by this call."""
        if self.first_response_met is not None:
            return False
        self.first_response_met = ensure_utc(at) <= self.first_response_due_at
        return True

    def record_next_response(self, at: datetime) -> bool:
        if self.next_response_due_at is None or self.next_response_met is not None:
            return False
        self.next_response_met = ensure_utc(at) <= self.next_response_due_at
        return True

    def reset_next_response(self, due_at: datetime) -> None:
        self.next_response_due_at = due_at
        self.next_response_met = None

    def record_resolution(self, at: datetime) -> bool:
        if self.resolution_met is not None:
            return False
        self.resolution_met = ensure_utc(at) <= self.resolution_due_at
        return True

    def mark_missed_deadlines(self, now: datetime) -> bool:
        """
        Decide still-open targets whose due date has passed as missed.

        Returns True if anything changed. Targets already met are left alone.
        """
        now = ensure_utc(now)
        changed = False
        if self.first_response_met is None and self.first_response_due_at < now:
            self.first_response_met = False
            changed = True
        if (self.next_response_met is None and self.next_response_due_at is not None
                and self.next_response_due_at < now):
            self.next_response_met = False
            changed = True
        if self.resolution_met is None and self.resolution_due_at < now:
            self.resolution_met = False
            changed = True
        return changed

    # ========== Breach view ==========

    def first_response_breached(self, now: datetime) -> bool:
        if self.first_response_met is not None:
            return not self.first_response_met
        return self.first_response_due_at < ensure_utc(now)

    def resolution_breached(self, now: datetime) -> bool:
        if self.resolution_met is not None:
            return not self.resolution_met
        return self.resolution_due_at < ensure_utc(now)
