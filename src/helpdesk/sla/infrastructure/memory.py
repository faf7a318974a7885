"""
In-Memory SLA Persistence
==========================

Dictionary-backed repositories and unit of work with the same contract
as the SQLAlchemy ones: reads return copies, writes are staged until
commit, and stale versions raise ConcurrentModificationException.

Used by the test-suite and for running the API without a database.
"""

import copy
import dataclasses
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from helpdesk.config import RUNNING_SLA_STATUSES, SLAStatus
from helpdesk.core import (
    ConcurrentModificationException,
    SLAPolicyTicketNotFoundException,
    TicketNotFoundException,
)
from helpdesk.sla.application.ports import (
    IBusinessHoursRepository,
    ICommentRepository,
    ISLAConfigProvider,
    ISLAPolicyRepository,
    ISLAPolicyTicketRepository,
    ITicketRepository,
    IUnitOfWork,
)
from helpdesk.sla.domain import (
    BusinessHoursProfile,
    SLAConfig,
    SLAOutcomeCounts,
    SLAPolicy,
    SLAPolicyTicket,
    Ticket,
    TicketComment,
)
from helpdesk.sla.domain.calendar import ensure_utc


class InMemoryStore:
    """Committed state shared by every unit of work created over it."""

    def __init__(self):
        self.tickets: Dict[int, Ticket] = {}
        self.comments: List[TicketComment] = []
        self.policies: Dict[int, SLAPolicy] = {}
        self.business_hours: Dict[int, BusinessHoursProfile] = {}
        self.sla_tickets: Dict[int, SLAPolicyTicket] = {}
        self.commit_count = 0
        self._next_sla_id = 1
        self._next_comment_id = 1

    # ========== Seeding ==========

    def add_ticket(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.id] = copy.deepcopy(ticket)
        return ticket

    def add_policy(self, policy: SLAPolicy) -> SLAPolicy:
        self.policies[policy.id] = policy
        return policy

    def add_comment(self, comment: TicketComment) -> TicketComment:
        if comment.id is None:
            comment = dataclasses.replace(comment, id=self._next_comment_id)
        self._next_comment_id = max(self._next_comment_id, comment.id) + 1
        self.comments.append(comment)
        return comment

    def set_business_hours(self, organization_id: int, profile: BusinessHoursProfile) -> None:
        self.business_hours[organization_id] = profile

    def add_sla_ticket(self, sla_ticket: SLAPolicyTicket) -> SLAPolicyTicket:
        if sla_ticket.id is None:
            sla_ticket.id = self.allocate_sla_id()
        self.sla_tickets[sla_ticket.ticket_id] = copy.deepcopy(sla_ticket)
        return sla_ticket

    def allocate_sla_id(self) -> int:
        value = self._next_sla_id
        self._next_sla_id += 1
        return value

    # ========== Reads for assertions ==========

    def ticket(self, ticket_id: int) -> Ticket:
        return copy.deepcopy(self.tickets[ticket_id])

    def sla_ticket(self, ticket_id: int) -> Optional[SLAPolicyTicket]:
        row = self.sla_tickets.get(ticket_id)
        return copy.deepcopy(row) if row else None

    def first_agent_reply_at(self, ticket_id: int) -> Optional[datetime]:
        replies = [
            c.created_at for c in self.comments
            if c.ticket_id == ticket_id and c.is_agent_reply
        ]
        return min(replies) if replies else None


class _Staged:
    """Pending writes of one unit of work: key -> (base version, entity)."""

    def __init__(self):
        self.tickets: Dict[int, Tuple[int, Ticket]] = {}
        self.sla_tickets: Dict[int, Tuple[Optional[int], SLAPolicyTicket]] = {}

    def clear(self) -> None:
        self.tickets.clear()
        self.sla_tickets.clear()


class InMemoryTicketRepository(ITicketRepository):

    def __init__(self, store: InMemoryStore, staged: _Staged):
        self._store = store
        self._staged = staged

    def _current(self, ticket_id: int) -> Optional[Ticket]:
        if ticket_id in self._staged.tickets:
            return self._staged.tickets[ticket_id][1]
        return self._store.tickets.get(ticket_id)

    async def get(self, ticket_id: int) -> Optional[Ticket]:
        current = self._current(ticket_id)
        return copy.deepcopy(current) if current else None

    async def save(self, ticket: Ticket) -> Ticket:
        current = self._current(ticket.id)
        if current is None:
            raise TicketNotFoundException(ticket.id)
        if current.version != ticket.version:
            raise ConcurrentModificationException("Ticket", ticket.id)

        base = self._staged.tickets.get(ticket.id, (current.version, None))[0]
        ticket.version += 1
        self._staged.tickets[ticket.id] = (base, copy.deepcopy(ticket))
        return ticket


class InMemoryCommentRepository(ICommentRepository):

    def __init__(self, store: InMemoryStore):
        self._store = store

    async def list_for_ticket(self, ticket_id: int) -> List[TicketComment]:
        return sorted(
            (c for c in self._store.comments if c.ticket_id == ticket_id),
            key=lambda c: (c.created_at, c.id or 0)
        )

    async def first_agent_reply_at(self, ticket_id: int) -> Optional[datetime]:
        return self._store.first_agent_reply_at(ticket_id)


class InMemorySLAPolicyRepository(ISLAPolicyRepository):

    def __init__(self, store: InMemoryStore):
        self._store = store

    async def get(self, policy_id: int) -> Optional[SLAPolicy]:
        return self._store.policies.get(policy_id)

    async def find_by_priority(self, organization_id: int, priority_id: int) -> Optional[SLAPolicy]:
        for policy in self._store.policies.values():
            if policy.organization_id == organization_id and policy.ticket_priority_id == priority_id:
                return policy
        return None

    async def list_for_organization(self, organization_id: int) -> List[SLAPolicy]:
        return sorted(
            (p for p in self._store.policies.values() if p.organization_id == organization_id),
            key=lambda p: p.id
        )


class InMemoryBusinessHoursRepository(IBusinessHoursRepository):

    def __init__(self, store: InMemoryStore):
        self._store = store

    async def get_for_organization(self, organization_id: int) -> Optional[BusinessHoursProfile]:
        return self._store.business_hours.get(organization_id)


class InMemorySLAPolicyTicketRepository(ISLAPolicyTicketRepository):

    def __init__(self, store: InMemoryStore, staged: _Staged):
        self._store = store
        self._staged = staged

    def _current(self, ticket_id: int) -> Optional[SLAPolicyTicket]:
        if ticket_id in self._staged.sla_tickets:
            return self._staged.sla_tickets[ticket_id][1]
        return self._store.sla_tickets.get(ticket_id)

    async def get_by_ticket_id(self, ticket_id: int) -> Optional[SLAPolicyTicket]:
        current = self._current(ticket_id)
        return copy.deepcopy(current) if current else None

    async def save(self, sla_ticket: SLAPolicyTicket) -> SLAPolicyTicket:
        current = self._current(sla_ticket.ticket_id)

        if sla_ticket.id is None:
            if current is not None:
                # another writer created the row first
                raise ConcurrentModificationException("SLAPolicyTicket", sla_ticket.ticket_id)
            sla_ticket.id = self._store.allocate_sla_id()
            base = None
        else:
            if current is None:
                raise SLAPolicyTicketNotFoundException(sla_ticket.ticket_id)
            if current.version != sla_ticket.version:
                raise ConcurrentModificationException("SLAPolicyTicket", sla_ticket.id)
            base = self._staged.sla_tickets.get(sla_ticket.ticket_id, (current.version, None))[0]
            sla_ticket.version += 1

        self._staged.sla_tickets[sla_ticket.ticket_id] = (base, copy.deepcopy(sla_ticket))
        return sla_ticket

    async def find_missed_first_responses(self, limit: int) -> List[Tuple[int, datetime]]:
        found = []
        for ticket_id in sorted(self._store.sla_tickets):
            row = self._store.sla_tickets[ticket_id]
            if row.first_response_met is not None:
                continue
            replied_at = self._store.first_agent_reply_at(ticket_id)
            if replied_at is not None:
                found.append((ticket_id, replied_at))
            if len(found) >= limit:
                break
        return found

    async def find_breach_candidates(self, now: datetime, limit: int) -> List[int]:
        now = ensure_utc(now)
        rows = sorted(self._store.sla_tickets.values(), key=lambda r: r.first_response_due_at)
        found = []
        for row in rows:
            ticket = self._store.tickets.get(row.ticket_id)
            if ticket is None or ticket.is_terminal or ticket.sla_status == SLAStatus.PAUSED:
                continue
            first_response_due = row.first_response_due_at < now and _unrecorded(
                row.first_response_met, ticket.first_response_sla_breached
            )
            resolution_due = row.resolution_due_at < now and _unrecorded(
                row.resolution_met, ticket.resolution_sla_breached
            )
            if first_response_due or resolution_due:
                found.append(row.ticket_id)
            if len(found) >= limit:
                break
        return found

    async def find_status_refresh_candidates(self, limit: int) -> List[int]:
        rows = sorted(
            self._store.sla_tickets.values(),
            key=lambda r: (r.resolution_due_at, r.ticket_id),
        )
        found = []
        for row in rows:
            ticket = self._store.tickets.get(row.ticket_id)
            if ticket is None or ticket.is_terminal or ticket.sla_status not in RUNNING_SLA_STATUSES:
                continue
            found.append(row.ticket_id)
            if len(found) >= limit:
                break
        return found

    async def count_outcomes(
        self,
        organization_id: int,
        start: datetime,
        end: datetime
    ) -> SLAOutcomeCounts:
        start, end = ensure_utc(start), ensure_utc(end)
        tickets = [
            t for t in self._store.tickets.values()
            if t.organization_id == organization_id and start <= t.created_at <= end
        ]
        rows = [self._store.sla_tickets[t.id] for t in tickets if t.id in self._store.sla_tickets]
        return SLAOutcomeCounts(
            total_tickets=len(tickets),
            response_met=sum(1 for r in rows if r.first_response_met is True),
            response_missed=sum(1 for r in rows if r.first_response_met is False),
            resolution_met=sum(1 for r in rows if r.resolution_met is True),
            resolution_missed=sum(1 for r in rows if r.resolution_met is False),
        )


def _unrecorded(met: Optional[bool], flag_raised: bool) -> bool:
    return met is None or (met is False and not flag_raised)


class InMemoryUnitOfWork(IUnitOfWork):
    """
    Unit of work over an InMemoryStore.

    Commit re-checks every staged write against the committed version so
    two interleaved units of work cannot both win.
    """

    def __init__(self, store: InMemoryStore):
        self._store = store
        self._staged = _Staged()
        self.tickets = InMemoryTicketRepository(store, self._staged)
        self.comments = InMemoryCommentRepository(store)
        self.policies = InMemorySLAPolicyRepository(store)
        self.business_hours = InMemoryBusinessHoursRepository(store)
        self.sla_tickets = InMemorySLAPolicyTicketRepository(store, self._staged)

    async def commit(self) -> None:
        for ticket_id, (base, _) in self._staged.tickets.items():
            committed = self._store.tickets.get(ticket_id)
            if committed is None or committed.version != base:
                self._staged.clear()
                raise ConcurrentModificationException("Ticket", ticket_id)
        for ticket_id, (base, row) in self._staged.sla_tickets.items():
            committed = self._store.sla_tickets.get(ticket_id)
            committed_version = committed.version if committed else None
            if committed_version != base:
                self._staged.clear()
                raise ConcurrentModificationException("SLAPolicyTicket", row.id)

        for ticket_id, (_, ticket) in self._staged.tickets.items():
            self._store.tickets[ticket_id] = ticket
        for ticket_id, (_, row) in self._staged.sla_tickets.items():
            self._store.sla_tickets[ticket_id] = row
        self._staged.clear()
        self._store.commit_count += 1

    async def rollback(self) -> None:
        self._staged.clear()


class InMemoryUnitOfWorkFactory:
    """Callable returning a fresh InMemoryUnitOfWork per use."""

    def __init__(self, store: Optional[InMemoryStore] = None):
        self.store = store or InMemoryStore()

    def __call__(self) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self.store)


class StaticConfigProvider(ISLAConfigProvider):
    """Config provider holding a fixed SLAConfig."""

    def __init__(self, config: Optional[SLAConfig] = None):
        self.config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self.config
