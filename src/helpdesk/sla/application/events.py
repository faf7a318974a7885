"""
SLA Event Handling
==================

Ticket events that drive the SLA clock, and the handler that maps each
one onto a clock operation.

The handler never raises: the ticket mutation that emitted the event
must succeed even if SLA bookkeeping fails, so every failure is logged
and reported in the returned outcome.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application.services import SLAClockService
from helpdesk.sla.domain import StatusCategory, TicketComment, classify_status

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TicketEvent:
    ticket_id: int
    occurred_at: datetime = field(default_factory=_utcnow)

    @property
    def event_type(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class TicketCreated(TicketEvent):
    pass


@dataclass(frozen=True)
class PriorityChanged(TicketEvent):
    old_priority_id: Optional[int] = None
    new_priority_id: Optional[int] = None


@dataclass(frozen=True)
class CommentAdded(TicketEvent):
    comment: Optional[TicketComment] = None


@dataclass(frozen=True)
class StatusChanged(TicketEvent):
    old_status: Optional[str] = None
    new_status: Optional[str] = None


@dataclass(frozen=True)
class SLAEventOutcome:
    """What the handler did with one event."""
    success: bool
    action: str
    message: str = ""
    error: Optional[str] = None


class SLAEventHandler:
    """Dispatches ticket events to the SLA clock service."""

    def __init__(self, clock_service: SLAClockService):
        self._service = clock_service

    async def handle(self, event: TicketEvent) -> SLAEventOutcome:
        handlers = {
            TicketCreated: self._on_created,
            PriorityChanged: self._on_priority_changed,
            CommentAdded: self._on_comment_added,
            StatusChanged: self._on_status_changed,
        }
        handler = handlers.get(type(event))
        if handler is None:
            return SLAEventOutcome(True, "ignored", f"Unhandled event {event.event_type}")

        try:
            outcome = await handler(event)
        except Exception as e:
            logger.error(
                "SLA event handling failed",
                extra={
                    "ticket_id": event.ticket_id,
                    "event_type": event.event_type,
                    "error_type": type(e).__name__,
                    "error": str(e),
                }
            )
            return SLAEventOutcome(False, "failed", "SLA update failed", str(e))

        logger.debug(
            "SLA event handled",
            extra={
                "ticket_id": event.ticket_id,
                "event_type": event.event_type,
                "action": outcome.action,
            }
        )
        return outcome

    async def _assign(self, event: TicketEvent) -> SLAEventOutcome:
        sla_ticket = await self._service.auto_assign_policy(event.ticket_id, now=event.occurred_at)
        if sla_ticket is None:
            return SLAEventOutcome(True, "no_policy", "No SLA policy for this ticket")
        return SLAEventOutcome(True, "assigned", f"SLA policy {sla_ticket.sla_policy_id} assigned")

    async def _on_created(self, event: TicketCreated) -> SLAEventOutcome:
        return await self._assign(event)

    async def _on_priority_changed(self, event: PriorityChanged) -> SLAEventOutcome:
        if event.old_priority_id == event.new_priority_id:
            return SLAEventOutcome(True, "ignored", "Priority unchanged")
        return await self._assign(event)

    async def _on_comment_added(self, event: CommentAdded) -> SLAEventOutcome:
        comment = event.comment
        if comment is None:
            return SLAEventOutcome(True, "ignored", "Event carries no comment")

        if comment.is_agent_reply:
            action, _ = await self._service.record_agent_reply(
                event.ticket_id, comment.created_at, now=event.occurred_at
            )
            return SLAEventOutcome(True, action)

        if comment.is_customer_reply:
            sla_ticket = await self._service.reset_next_response(
                event.ticket_id, comment.created_at, now=event.occurred_at
            )
            if sla_ticket is None:
                return SLAEventOutcome(True, "no_sla")
            return SLAEventOutcome(True, "next_response_reset")

        return SLAEventOutcome(True, "ignored", "Internal or system comment")

    async def _on_status_changed(self, event: StatusChanged) -> SLAEventOutcome:
        old = classify_status(event.old_status)
        new = classify_status(event.new_status)

        if new == StatusCategory.RESOLVED and old != StatusCategory.RESOLVED:
            sla_ticket = await self._service.record_resolution(
                event.ticket_id, event.occurred_at, now=event.occurred_at
            )
            action = "resolution_recorded"
        elif new == StatusCategory.PENDING and old != StatusCategory.PENDING:
            sla_ticket = await self._service.pause(event.ticket_id, now=event.occurred_at)
            action = "paused"
        elif new == StatusCategory.IN_PROGRESS and old == StatusCategory.PENDING:
            sla_ticket = await self._service.resume(event.ticket_id, now=event.occurred_at)
            action = "resumed"
        else:
            return SLAEventOutcome(
                True, "ignored", f"{event.old_status!r} -> {event.new_status!r} does not affect SLA"
            )

        if sla_ticket is None:
            return SLAEventOutcome(True, "no_sla")
        return SLAEventOutcome(True, action)
