"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Every mutating operation runs under the ticket's lock inside one unit
of work, loads the SLAPolicyTicket and the Ticket, applies the domain
change, re-derives the ticket's mirror fields and commits both rows
together.
"""

import dataclasses
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional, Tuple

from helpdesk.core import (
    AlreadyPausedException,
    NotPausedException,
    PolicyNotFoundException,
    TicketNotFoundException,
    ValidationException,
)
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application.locks import TicketLockRegistry
from helpdesk.sla.application.ports import (
    ISLAConfigProvider,
    ISLAPolicyRepository,
    IUnitOfWork,
)
from helpdesk.sla.domain import (
    BusinessCalendar,
    BusinessHoursProfile,
    DeadlineCalculator,
    FixedWindowDeadlineCalculator,
    SLAClock,
    SLAOutcomeCounts,
    SLAPolicy,
    SLAPolicyTicket,
    SLAStatusReport,
    Ticket,
)
from helpdesk.sla.domain.calendar import ensure_utc

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SLAPolicyResolver:
    """
    Picks the SLA policy for an organization and ticket priority.

    Lookup order: exact priority binding, then the first policy of the
    organization whose name or description mentions the priority name.
    """

    def __init__(self, policies: ISLAPolicyRepository):
        self._policies = policies

    async def resolve(
        self,
        organization_id: int,
        priority_id: Optional[int],
        priority_name: Optional[str] = None
    ) -> SLAPolicy:
        """
        Raises:
            PolicyNotFoundException: If neither lookup matches
        """
        if priority_id is None:
            raise PolicyNotFoundException(organization_id, priority_id)

        policy = await self._policies.find_by_priority(organization_id, priority_id)
        if policy is not None:
            return policy

        if priority_name:
            needle = priority_name.lower()
            for candidate in await self._policies.list_for_organization(organization_id):
                haystack = f"{candidate.name} {candidate.description or ''}".lower()
                if needle in haystack:
                    logger.info(
                        "SLA policy matched by priority name",
                        extra={
                            "organization_id": organization_id,
                            "priority_name": priority_name,
                            "sla_policy_id": candidate.id,
                        }
                    )
                    return candidate

        raise PolicyNotFoundException(organization_id, priority_id)


class SLAClockService:
    """
    Use cases of the per-ticket SLA clock.

    ``now`` defaults to the current UTC time on every operation and can be
    passed explicitly for deterministic evaluation.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        config_provider: ISLAConfigProvider,
        locks: Optional[TicketLockRegistry] = None,
        now_source: Callable[[], datetime] = utcnow,
    ):
        self._uow_factory = uow_factory
        self._config_provider = config_provider
        self._locks = locks or TicketLockRegistry()
        self._now_source = now_source

    @property
    def clock(self) -> SLAClock:
        # Built per call so a config reload applies immediately
        return SLAClock(self._config_provider.get_config().status_thresholds)

    def _now(self, now: Optional[datetime]) -> datetime:
        return now or self._now_source()

    @asynccontextmanager
    async def _locked(self, ticket_id: int) -> AsyncIterator[IUnitOfWork]:
        async with self._locks.hold(ticket_id):
            async with self._uow_factory() as uow:
                yield uow

    async def _profile(self, uow: IUnitOfWork, ticket: Ticket) -> BusinessHoursProfile:
        profile = await uow.business_hours.get_for_organization(ticket.organization_id)
        if profile is None:
            profile = self._config_provider.get_config().default_business_hours.to_profile()
        return profile

    async def _calculator(self, uow: IUnitOfWork, ticket: Ticket) -> DeadlineCalculator:
        return FixedWindowDeadlineCalculator.for_profile(await self._profile(uow, ticket))

    async def _load(
        self,
        uow: IUnitOfWork,
        ticket_id: int
    ) -> Tuple[Ticket, Optional[SLAPolicyTicket]]:
        ticket = await uow.tickets.get(ticket_id)
        if ticket is None:
            raise TicketNotFoundException(ticket_id)
        return ticket, await uow.sla_tickets.get_by_ticket_id(ticket_id)

    async def _persist(
        self,
        uow: IUnitOfWork,
        ticket: Ticket,
        sla_ticket: SLAPolicyTicket,
        now: datetime,
        reset: bool = False
    ) -> SLAPolicyTicket:
        sla_ticket = await uow.sla_tickets.save(sla_ticket)
        self.clock.sync_ticket(ticket, sla_ticket, now, reset=reset)
        await uow.tickets.save(ticket)
        await uow.commit()
        return sla_ticket

    # ========== Assignment ==========

    async def auto_assign_policy(
        self,
        ticket_id: int,
        now: Optional[datetime] = None
    ) -> Optional[SLAPolicyTicket]:
        """
        Bind the ticket to the policy of its organization and priority.

        Returns None, leaving the ticket untouched, when the ticket has no
        priority or no policy matches. Re-assigning the policy already
        bound returns the existing row unchanged; a different policy
        replaces deadlines and outcomes in place.

        Raises:
            TicketNotFoundException: If the ticket does not exist
        """
        now = self._now(now)
        async with self._locked(ticket_id) as uow:
            ticket, existing = await self._load(uow, ticket_id)

            try:
                policy = await SLAPolicyResolver(uow.policies).resolve(
                    ticket.organization_id, ticket.priority_id, ticket.priority_name
                )
            except PolicyNotFoundException:
                logger.warning(
                    "No SLA policy for ticket",
                    extra={
                        "ticket_id": ticket_id,
                        "organization_id": ticket.organization_id,
                        "priority_id": ticket.priority_id,
                    }
                )
                return None

            if existing is not None and existing.sla_policy_id == policy.id:
                return existing

            deadlines = self.clock.compute_deadlines(
                ticket, policy, await self._calculator(uow, ticket)
            )
            if existing is None:
                sla_ticket = SLAPolicyTicket.create(ticket.id, policy, deadlines)
            else:
                existing.reassign(policy, deadlines)
                sla_ticket = existing

            sla_ticket = await self._persist(uow, ticket, sla_ticket, now, reset=True)

        logger.info(
            "SLA policy assigned",
            extra={
                "ticket_id": ticket_id,
                "sla_policy_id": policy.id,
                "replaced": existing is not None,
                "first_response_due_at": sla_ticket.first_response_due_at.isoformat(),
                "resolution_due_at": sla_ticket.resolution_due_at.isoformat(),
            }
        )
        return sla_ticket

    # ========== Pause / resume ==========

    async def pause(
        self,
        ticket_id: int,
        now: Optional[datetime] = None
    ) -> Optional[SLAPolicyTicket]:
        """
        Open a pause period. Due dates do not move.

        Returns None if the ticket has no SLA; pausing an already paused
        clock is logged and returns the row unchanged.
        """
        now = self._now(now)
        async with self._locked(ticket_id) as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            if sla_ticket is None:
                logger.info("Pause skipped, ticket has no SLA", extra={"ticket_id": ticket_id})
                return None
            try:
                sla_ticket.pause(now)
            except AlreadyPausedException:
                logger.info("SLA already paused", extra={"ticket_id": ticket_id})
                return sla_ticket
            sla_ticket = await self._persist(uow, ticket, sla_ticket, now)

        logger.info("SLA paused", extra={"ticket_id": ticket_id})
        return sla_ticket

    async def resume(
        self,
        ticket_id: int,
        now: Optional[datetime] = None
    ) -> Optional[SLAPolicyTicket]:
        """Close the open pause period and re-derive the status."""
        now = self._now(now)
        async with self._locked(ticket_id) as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            if sla_ticket is None:
                logger.info("Resume skipped, ticket has no SLA", extra={"ticket_id": ticket_id})
                return None
            try:
                sla_ticket.resume(now)
            except NotPausedException:
                logger.info("SLA is not paused", extra={"ticket_id": ticket_id})
                return sla_ticket
            sla_ticket = await self._persist(uow, ticket, sla_ticket, now)

        logger.info(
            "SLA resumed",
            extra={"ticket_id": ticket_id, "sla_status": ticket.sla_status}
        )
        return sla_ticket

    # ========== Outcomes ==========

    async def record_first_response(
        self,
        ticket_id: int,
        replied_at: datetime,
        now: Optional[datetime] = None
    ) -> Optional[SLAPolicyTicket]:
        """Decide the first-response target from an agent reply, once."""
        now = self._now(now)
        async with self._locked(ticket_id) as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            if sla_ticket is None or not sla_ticket.record_first_response(replied_at):
                return sla_ticket
            sla_ticket = await self._persist(uow, ticket, sla_ticket, now)

        logger.info(
            "First response recorded",
            extra={"ticket_id": ticket_id, "met": sla_ticket.first_response_met}
        )
        return sla_ticket

    async def record_next_response(
        self,
        ticket_id: int,
        replied_at: datetime,
        now: Optional[datetime] = None
    ) -> Optional[SLAPolicyTicket]:
        """Decide the pending next-response target from an agent reply."""
        now = self._now(now)
        async with self._locked(ticket_id) as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            if sla_ticket is None or not sla_ticket.record_next_response(replied_at):
                return sla_ticket
            sla_ticket = await self._persist(uow, ticket, sla_ticket, now)

        logger.info(
            "Next response recorded",
            extra={"ticket_id": ticket_id, "met": sla_ticket.next_response_met}
        )
        return sla_ticket

    async def record_agent_reply(
        self,
        ticket_id: int,
        replied_at: datetime,
        now: Optional[datetime] = None
    ) -> Tuple[str, Optional[SLAPolicyTicket]]:
        """
        Apply an agent reply to whichever response target is still open:
        the first response, otherwise the pending next response.

        Returns:
            (action, row) where action is ``first_response_recorded``,
            ``next_response_recorded``, ``unchanged`` or ``no_sla``
        """
        now = self._now(now)
        async with self._locked(ticket_id) as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            if sla_ticket is None:
                return "no_sla", None
            if sla_ticket.record_first_response(replied_at):
                action = "first_response_recorded"
            elif sla_ticket.record_next_response(replied_at):
                action = "next_response_recorded"
            else:
                return "unchanged", sla_ticket
            sla_ticket = await self._persist(uow, ticket, sla_ticket, now)

        logger.info(
            "Agent reply recorded",
            extra={
                "ticket_id": ticket_id,
                "action": action,
                "first_response_met": sla_ticket.first_response_met,
                "next_response_met": sla_ticket.next_response_met,
            }
        )
        return action, sla_ticket

    async def reset_next_response(
        self,
        ticket_id: int,
        commented_at: datetime,
        now: Optional[datetime] = None
    ) -> Optional[SLAPolicyTicket]:
        """Restart the next-response clock from a customer comment."""
        now = self._now(now)
        async with self._locked(ticket_id) as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            if sla_ticket is None:
                return None
            policy = await uow.policies.get(sla_ticket.sla_policy_id)
            if policy is None or not policy.next_response_hours:
                return sla_ticket

            calculator = await self._calculator(uow, ticket)
            sla_ticket.reset_next_response(calculator.add_duration(
                commented_at, policy.next_response_hours, policy.business_hours_only
            ))
            sla_ticket = await self._persist(uow, ticket, sla_ticket, now)

        logger.info(
            "Next response clock reset",
            extra={
                "ticket_id": ticket_id,
                "next_response_due_at": sla_ticket.next_response_due_at.isoformat(),
            }
        )
        return sla_ticket

    async def record_resolution(
        self,
        ticket_id: int,
        resolved_at: datetime,
        now: Optional[datetime] = None
    ) -> Optional[SLAPolicyTicket]:
        """
        Decide the resolution target and stop the clock.

        The ticket becomes terminal: ``completed``, or ``breached`` when
        the resolution due date was missed.
        """
        now = self._now(now)
        async with self._locked(ticket_id) as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            if sla_ticket is None:
                return None
            if ticket.resolved_at is None and ticket.closed_at is None:
                ticket.resolved_at = resolved_at
            sla_ticket.record_resolution(resolved_at)
            sla_ticket = await self._persist(uow, ticket, sla_ticket, now)

        logger.info(
            "Resolution recorded",
            extra={
                "ticket_id": ticket_id,
                "met": sla_ticket.resolution_met,
                "sla_status": ticket.sla_status,
            }
        )
        return sla_ticket

    # ========== Status ==========

    async def check_status(
        self,
        ticket_id: int,
        now: Optional[datetime] = None
    ) -> SLAStatusReport:
        """
        Compute the ticket's SLA state without writing anything.

        Raises:
            TicketNotFoundException: If the ticket does not exist
        """
        now = self._now(now)
        async with self._uow_factory() as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            profile = await self._profile(uow, ticket)

        report = self.clock.build_report(ticket, sla_ticket, now)
        return dataclasses.replace(
            report,
            within_business_hours=BusinessCalendar.is_working_instant(now, profile),
            holiday_today=BusinessCalendar.is_holiday(now, profile),
        )

    async def update_ticket_breach_status(
        self,
        ticket_id: int,
        now: Optional[datetime] = None
    ) -> Ticket:
        """Re-derive and persist the ticket's mirror fields."""
        ticket, _ = await self._sync_mirror(ticket_id, self._now(now))
        return ticket

    async def refresh_status(
        self,
        ticket_id: int,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Same as ``update_ticket_breach_status``, for the periodic sweep.

        Returns True if the mirror changed.
        """
        _, changed = await self._sync_mirror(ticket_id, self._now(now))
        return changed

    async def _sync_mirror(self, ticket_id: int, now: datetime) -> Tuple[Ticket, bool]:
        async with self._locked(ticket_id) as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            before = _mirror(ticket)
            self.clock.sync_ticket(ticket, sla_ticket, now)
            if _mirror(ticket) == before:
                return ticket, False
            ticket = await uow.tickets.save(ticket)
            await uow.commit()

        logger.info(
            "Ticket SLA mirror updated",
            extra={
                "ticket_id": ticket_id,
                "previous_status": before[0],
                "sla_status": ticket.sla_status,
            }
        )
        return ticket, True

    # ========== Metrics ==========

    async def get_metrics(
        self,
        organization_id: int,
        start: datetime,
        end: datetime
    ) -> SLAOutcomeCounts:
        """
        Met and missed SLA targets of the tickets an organization created
        between ``start`` and ``end`` (both inclusive).

        Raises:
            ValidationException: If ``start`` is after ``end``
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if start > end:
            raise ValidationException(
                "start must not be after end",
                {"start": start.isoformat(), "end": end.isoformat()}
            )
        async with self._uow_factory() as uow:
            return await uow.sla_tickets.count_outcomes(organization_id, start, end)

    # ========== Repairs (used by reconciliation) ==========

    async def apply_missed_first_response(
        self,
        ticket_id: int,
        replied_at: datetime,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Decide a first response that live traffic failed to register.

        Returns True if the row was updated. A decided outcome is never
        overwritten.
        """
        now = self._now(now)
        async with self._locked(ticket_id) as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            if sla_ticket is None or not sla_ticket.record_first_response(replied_at):
                return False
            await self._persist(uow, ticket, sla_ticket, now)
        return True

    async def repair_breach(
        self,
        ticket_id: int,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Mark overdue, undecided targets as missed and raise the ticket's
        breach flags. Paused and terminal tickets are skipped; flags are
        never lowered and met outcomes are never overwritten.

        Returns True if anything was written.
        """
        now = self._now(now)
        async with self._locked(ticket_id) as uow:
            ticket, sla_ticket = await self._load(uow, ticket_id)
            if sla_ticket is None or sla_ticket.is_paused or ticket.is_terminal:
                return False

            before = _mirror(ticket)
            decided = sla_ticket.mark_missed_deadlines(now)
            self.clock.sync_ticket(ticket, sla_ticket, now)
            if not decided and _mirror(ticket) == before:
                return False

            if decided:
                sla_ticket = await uow.sla_tickets.save(sla_ticket)
            await uow.tickets.save(ticket)
            await uow.commit()

        logger.info(
            "SLA breach repaired",
            extra={
                "ticket_id": ticket_id,
                "sla_status": ticket.sla_status,
                "first_response_breached": ticket.first_response_sla_breached,
                "resolution_breached": ticket.resolution_sla_breached,
            }
        )
        return True


def _mirror(ticket: Ticket) -> Tuple[str, bool, bool]:
    return (
        ticket.sla_status,
        ticket.first_response_sla_breached,
        ticket.resolution_sla_breached,
    )


__all__ = ["SLAPolicyResolver", "SLAClockService", "utcnow"]
