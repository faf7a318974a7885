"""
SLA Reconciliation
==================

Periodic repair of persisted SLA state that drifted from what the clock
would compute now.

Three sweeps, each bounded by a row limit:
- missed first responses: an agent replied but the outcome was never
  recorded
- breach repair: a due date passed without the breach being recorded
- status refresh: a running ticket crossed the warning or critical
  threshold with no event to re-derive its status

A tick runs them in that order, so an unregistered reply is recorded
before the breach sweep can decide the same target as missed. Each sweep
may run alongside live traffic; rows are processed one ticket at a time
under the ticket's lock. A failure on one ticket is logged and the sweep
moves on.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from helpdesk.shared.infrastructure.logging import get_logger, log_latency
from helpdesk.sla.application.ports import IUnitOfWork
from helpdesk.sla.application.services import SLAClockService, utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReconciliationReport:
    """Counts from one reconciliation tick."""
    first_responses_fixed: int
    breaches_fixed: int
    statuses_refreshed: int
    started_at: datetime


class ReconciliationService:
    """Runs the reconciliation sweeps."""

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        clock_service: SLAClockService,
        now_source: Callable[[], datetime] = utcnow,
    ):
        self._uow_factory = uow_factory
        self._clock_service = clock_service
        self._now_source = now_source

    async def check_missed_first_responses(
        self,
        limit: int,
        now: Optional[datetime] = None
    ) -> int:
        """
        Record first-response outcomes that live traffic missed.

        Returns:
            Number of tickets updated
        """
        now = now or self._now_source()
        async with self._uow_factory() as uow:
            candidates = await uow.sla_tickets.find_missed_first_responses(limit)

        fixed = 0
        with log_latency(logger, "missed_first_response_sweep", candidates=len(candidates)):
            for ticket_id, replied_at in candidates:
                try:
                    if await self._clock_service.apply_missed_first_response(ticket_id, replied_at, now):
                        fixed += 1
                except Exception as e:
                    logger.error(
                        "Missed first response repair failed",
                        extra={
                            "ticket_id": ticket_id,
                            "error_type": type(e).__name__,
                            "error": str(e),
                        }
                    )

        if fixed:
            logger.info("Missed first responses recorded", extra={"count": fixed})
        return fixed

    async def fix_breached_slas(
        self,
        limit: int,
        now: Optional[datetime] = None
    ) -> int:
        """
        Record breaches whose due date passed unnoticed.

        Returns:
            Number of tickets updated
        """
        now = now or self._now_source()
        async with self._uow_factory() as uow:
            candidates = await uow.sla_tickets.find_breach_candidates(now, limit)

        fixed = 0
        with log_latency(logger, "breach_repair_sweep", candidates=len(candidates)):
            for ticket_id in candidates:
                try:
                    if await self._clock_service.repair_breach(ticket_id, now):
                        fixed += 1
                except Exception as e:
                    logger.error(
                        "Breach repair failed",
                        extra={
                            "ticket_id": ticket_id,
                            "error_type": type(e).__name__,
                            "error": str(e),
                        }
                    )

        if fixed:
            logger.info("Breached SLAs repaired", extra={"count": fixed})
        return fixed

    async def refresh_statuses(
        self,
        limit: int,
        now: Optional[datetime] = None
    ) -> int:
        """
        Re-derive the stored status of running tickets whose progress moved
        on without an event.

        Returns:
            Number of tickets whose status or breach flags changed
        """
        now = now or self._now_source()
        async with self._uow_factory() as uow:
            candidates = await uow.sla_tickets.find_status_refresh_candidates(limit)

        refreshed = 0
        with log_latency(logger, "status_refresh_sweep", candidates=len(candidates)):
            for ticket_id in candidates:
                try:
                    if await self._clock_service.refresh_status(ticket_id, now):
                        refreshed += 1
                except Exception as e:
                    logger.error(
                        "Status refresh failed",
                        extra={
                            "ticket_id": ticket_id,
                            "error_type": type(e).__name__,
                            "error": str(e),
                        }
                    )

        if refreshed:
            logger.info("SLA statuses refreshed", extra={"count": refreshed})
        return refreshed

    async def run_once(self, limit: int, now: Optional[datetime] = None) -> ReconciliationReport:
        """Run the three sweeps in order with the same ``now``."""
        now = now or self._now_source()
        first_responses = await self.check_missed_first_responses(limit, now)
        breaches = await self.fix_breached_slas(limit, now)
        statuses = await self.refresh_statuses(limit, now)
        return ReconciliationReport(
            first_responses_fixed=first_responses,
            breaches_fixed=breaches,
            statuses_refreshed=statuses,
            started_at=now,
        )
