"""
SLA Ports
=========

Repository interfaces the application layer depends on (Dependency
Inversion). Infrastructure provides SQLAlchemy and in-memory
implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from helpdesk.sla.domain import (
    BusinessHoursProfile,
    SLAConfig,
    SLAOutcomeCounts,
    SLAPolicy,
    SLAPolicyTicket,
    Ticket,
    TicketComment,
)


class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get(self, ticket_id: int) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        """
        Persist the ticket's SLA mirror fields.

        Raises:
            ConcurrentModificationException: If the stored version moved on
        """


class ICommentRepository(ABC):
    """Interface for comment read access."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: int) -> List[TicketComment]:
        """Comments of a ticket, oldest first."""

    @abstractmethod
    async def first_agent_reply_at(self, ticket_id: int) -> Optional[datetime]:
        """Timestamp of the earliest qualifying agent reply."""


class ISLAPolicyRepository(ABC):
    """Interface for SLA policy read access."""

    @abstractmethod
    async def get(self, policy_id: int) -> Optional[SLAPolicy]:
        """Get policy by ID."""

    @abstractmethod
    async def find_by_priority(self, organization_id: int, priority_id: int) -> Optional[SLAPolicy]:
        """Policy bound to an organization's priority."""

    @abstractmethod
    async def list_for_organization(self, organization_id: int) -> List[SLAPolicy]:
        """All policies of an organization, ordered by ID."""


class IBusinessHoursRepository(ABC):
    """Interface for business-hours profile read access."""

    @abstractmethod
    async def get_for_organization(self, organization_id: int) -> Optional[BusinessHoursProfile]:
        """The organization's profile with its holidays, if any."""


class ISLAPolicyTicketRepository(ABC):
    """Interface for SLA policy ticket data access."""

    @abstractmethod
    async def get_by_ticket_id(self, ticket_id: int) -> Optional[SLAPolicyTicket]:
        """The SLA binding of a ticket."""

    @abstractmethod
    async def save(self, sla_ticket: SLAPolicyTicket) -> SLAPolicyTicket:
        """
        Create or update the binding (one per ticket).

        Raises:
            ConcurrentModificationException: If the stored version moved on
        """

    @abstractmethod
    async def find_missed_first_responses(self, limit: int) -> List[Tuple[int, datetime]]:
        """
        Tickets whose first response is still undecided although a
        qualifying agent reply exists.

        Returns:
            (ticket_id, earliest agent reply) pairs, at most ``limit``
        """

    @abstractmethod
    async def find_breach_candidates(self, now: datetime, limit: int) -> List[int]:
        """
        Open, unpaused tickets with an SLA whose first-response or
        resolution due date has passed while the target is still
        undecided, or decided as missed with the mirror flag still False.
        """

    @abstractmethod
    async def find_status_refresh_candidates(self, limit: int) -> List[int]:
        """
        Open tickets with an SLA whose stored status is still running
        (active, warning or critical), nearest resolution due date first.
        """

    @abstractmethod
    async def count_outcomes(
        self,
        organization_id: int,
        start: datetime,
        end: datetime
    ) -> SLAOutcomeCounts:
        """
        Met and missed targets of the organization's tickets created
        between ``start`` and ``end`` (both inclusive).
        """


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


class IUnitOfWork(ABC):
    """
    One transaction over the SLA repositories.

    Usage:
        async with uow_factory() as uow:
            ticket = await uow.tickets.get(ticket_id)
            ...
            await uow.commit()

    Leaving the block without commit rolls back.
    """

    tickets: ITicketRepository
    comments: ICommentRepository
    policies: ISLAPolicyRepository
    business_hours: IBusinessHoursRepository
    sla_tickets: ISLAPolicyTicketRepository

    async def __aenter__(self) -> "IUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.rollback()

    @abstractmethod
    async def commit(self) -> None:
        """Persist all changes."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard uncommitted changes."""
