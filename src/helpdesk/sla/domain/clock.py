"""
SLA Clock
=========

Stateless rules of the per-ticket SLA state machine.

Status is derived, never stored independently: the ticket's
``sla_status`` and breach flags must always equal what ``derive_status``
and the breach view of the SLAPolicyTicket produce at the time of the
last write.

    inactive --assign--> active <--> warning <--> critical
                           |  ^                       |
                     pause |  | resume                v
                           v  |                    breached
                          paused
    any open state --resolve/close--> completed | breached
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from helpdesk.config import SLAStatus
from helpdesk.sla.domain.calendar import ensure_utc
from helpdesk.sla.domain.deadlines import DeadlineCalculator
from helpdesk.sla.domain.entities import SLAPolicy, SLAPolicyTicket, Ticket
from helpdesk.sla.domain.value_objects import SLADeadlines, StatusThresholds


@dataclass(frozen=True)
class SLAStatusReport:
    """Snapshot of a ticket's SLA as seen at ``evaluated_at``."""
    ticket_id: int
    evaluated_at: datetime
    computed_status: str
    is_paused: bool
    sla_info: Optional[SLAPolicyTicket] = None
    first_response_breached: bool = False
    resolution_breached: bool = False
    first_response_remaining_minutes: Optional[int] = None
    resolution_remaining_minutes: Optional[int] = None
    first_response_percent_elapsed: int = 0
    resolution_percent_elapsed: int = 0
    paused_minutes: int = 0
    within_business_hours: Optional[bool] = None
    holiday_today: Optional[bool] = None


def percent_elapsed(start: datetime, due: datetime, now: datetime,
                    paused: timedelta = timedelta(0)) -> int:
    """
    Whole percent of the ``start``..``due`` window consumed at ``now``,
    capped at 100. Both spans are floored to minutes first; an empty or
    inverted window counts as fully consumed.
    """
    total_minutes = math.floor((due - start).total_seconds() / 60)
    if total_minutes <= 0:
        return 100
    elapsed_minutes = math.floor((now - start - paused).total_seconds() / 60)
    if elapsed_minutes <= 0:
        return 0
    return min(100, math.floor(elapsed_minutes * 100 / total_minutes))


def _minutes_until(due: datetime, now: datetime) -> int:
    return math.floor((due - now).total_seconds() / 60)


class SLAClock:
    """Deadline assignment and status derivation."""

    def __init__(self, thresholds: Optional[StatusThresholds] = None):
        self.thresholds = thresholds or StatusThresholds()

    @staticmethod
    def compute_deadlines(
        ticket: Ticket,
        policy: SLAPolicy,
        calculator: DeadlineCalculator
    ) -> SLADeadlines:
        """Due instants measured from the ticket's creation time."""
        bho = policy.business_hours_only
        next_due = None
        if policy.next_response_hours:
            next_due = calculator.add_duration(ticket.created_at, policy.next_response_hours, bho)
        return SLADeadlines(
            first_response_due_at=calculator.add_duration(
                ticket.created_at, policy.first_response_hours, bho
            ),
            resolution_due_at=calculator.add_duration(
                ticket.created_at, policy.resolution_hours, bho
            ),
            next_response_due_at=next_due,
        )

    def status_for_progress(self, percent: int) -> str:
        if percent >= self.thresholds.critical:
            return SLAStatus.CRITICAL
        if percent >= self.thresholds.warning:
            return SLAStatus.WARNING
        return SLAStatus.ACTIVE

    def derive_status(
        self,
        ticket: Ticket,
        sla_ticket: Optional[SLAPolicyTicket],
        now: datetime
    ) -> str:
        now = ensure_utc(now)
        if sla_ticket is None:
            return SLAStatus.INACTIVE

        if ticket.is_terminal:
            if self._resolution_missed(ticket, sla_ticket):
                return SLAStatus.BREACHED
            return SLAStatus.COMPLETED

        if sla_ticket.is_paused:
            return SLAStatus.PAUSED

        if sla_ticket.resolution_due_at < now and sla_ticket.resolution_met is not True:
            return SLAStatus.BREACHED

        return self.status_for_progress(
            percent_elapsed(ticket.created_at, sla_ticket.resolution_due_at, now)
        )

    @staticmethod
    def _resolution_missed(ticket: Ticket, sla_ticket: SLAPolicyTicket) -> bool:
        if sla_ticket.resolution_met is not None:
            return not sla_ticket.resolution_met
        if ticket.resolution_sla_breached:
            return True
        finished = ticket.finished_at
        return finished is not None and finished > sla_ticket.resolution_due_at

    def sync_ticket(
        self,
        ticket: Ticket,
        sla_ticket: Optional[SLAPolicyTicket],
        now: datetime,
        reset: bool = False
    ) -> Ticket:
        """
        Bring the ticket's mirror fields in line with the SLA row.

        A paused clock only updates the status; breach flags stay where
        they are until the clock runs again.
        """
        status = self.derive_status(ticket, sla_ticket, now)
        if sla_ticket is None:
            ticket.apply_sla_mirror(status, False, False, reset=reset)
        elif status == SLAStatus.PAUSED and not reset:
            ticket.sla_status = status
        else:
            if ticket.is_terminal:
                resolution_breached = self._resolution_missed(ticket, sla_ticket)
            else:
                resolution_breached = sla_ticket.resolution_breached(now)
            ticket.apply_sla_mirror(
                status,
                sla_ticket.first_response_breached(now),
                resolution_breached,
                reset=reset,
            )
        return ticket

    def build_report(
        self,
        ticket: Ticket,
        sla_ticket: Optional[SLAPolicyTicket],
        now: datetime
    ) -> SLAStatusReport:
        now = ensure_utc(now)
        status = self.derive_status(ticket, sla_ticket, now)
        if sla_ticket is None:
            return SLAStatusReport(
                ticket_id=ticket.id,
                evaluated_at=now,
                computed_status=status,
                is_paused=False,
            )

        paused = sla_ticket.metadata.paused_duration(now, until=now)
        is_paused = sla_ticket.is_paused
        report = dict(
            ticket_id=ticket.id,
            evaluated_at=now,
            computed_status=status,
            is_paused=is_paused,
            sla_info=sla_ticket,
            first_response_remaining_minutes=_minutes_until(sla_ticket.first_response_due_at, now),
            resolution_remaining_minutes=_minutes_until(sla_ticket.resolution_due_at, now),
            paused_minutes=math.floor(paused.total_seconds() / 60),
        )
        if not is_paused:
            report.update(
                first_response_breached=sla_ticket.first_response_breached(now),
                resolution_breached=sla_ticket.resolution_breached(now),
                first_response_percent_elapsed=percent_elapsed(
                    ticket.created_at, sla_ticket.first_response_due_at, now, paused
                ),
                resolution_percent_elapsed=percent_elapsed(
                    ticket.created_at, sla_ticket.resolution_due_at, now, paused
                ),
            )
        return SLAStatusReport(**report)
