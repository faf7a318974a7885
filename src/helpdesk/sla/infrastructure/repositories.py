"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy import and_, case, false, func, or_, select, true
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from helpdesk.config import RUNNING_SLA_STATUSES, SLAStatus, UserRole
from helpdesk.core import (
    ConcurrentModificationException,
    MalformedMetadataException,
    TicketNotFoundException,
    SLAPolicyTicketNotFoundException,
)
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application.ports import (
    IBusinessHoursRepository,
    ICommentRepository,
    ISLAPolicyRepository,
    ISLAPolicyTicketRepository,
    ITicketRepository,
    IUnitOfWork,
)
from helpdesk.sla.domain import (
    BusinessHoursProfile,
    Holiday,
    SLAMetadata,
    SLAOutcomeCounts,
    SLAPolicy,
    SLAPolicyTicket,
    Ticket,
    TicketComment,
)
from helpdesk.sla.domain.calendar import WEEKDAY_NAMES
from helpdesk.sla.infrastructure.models import (
    BusinessHoursModel,
    SLAPolicyModel,
    SLAPolicyTicketModel,
    TicketCommentModel,
    TicketModel,
)

logger = get_logger(__name__)


def _agent_reply_filter():
    return and_(
        TicketCommentModel.is_internal == false(),
        TicketCommentModel.is_system == false(),
        TicketCommentModel.user_role != UserRole.CUSTOMER,
    )


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Reads the SLA slice of a ticket and writes back only the fields the
    SLA core owns.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, ticket_id: int) -> Optional[Ticket]:
        model = await self._session.get(TicketModel, ticket_id)
        if model is None:
            return None
        return Ticket(
            id=model.id,
            organization_id=model.organization_id,
            created_at=model.created_at,
            priority_id=model.priority_id,
            priority_name=model.priority.name if model.priority else None,
            status_name=model.status_name,
            resolved_at=model.resolved_at,
            closed_at=model.closed_at,
            sla_status=model.sla_status,
            first_response_sla_breached=model.first_response_sla_breached,
            resolution_sla_breached=model.resolution_sla_breached,
            version=model.version,
        )

    async def save(self, ticket: Ticket) -> Ticket:
        model = await self._session.get(TicketModel, ticket.id)
        if model is None:
            raise TicketNotFoundException(ticket.id)
        if model.version != ticket.version:
            raise ConcurrentModificationException("Ticket", ticket.id)

        model.sla_status = ticket.sla_status
        model.first_response_sla_breached = ticket.first_response_sla_breached
        model.resolution_sla_breached = ticket.resolution_sla_breached
        model.resolved_at = ticket.resolved_at
        model.closed_at = ticket.closed_at

        try:
            await self._session.flush()
        except StaleDataError as e:
            raise ConcurrentModificationException("Ticket", ticket.id) from e

        ticket.version = model.version
        return ticket


class SQLAlchemyCommentRepository(ICommentRepository):
    """SQLAlchemy implementation of comment read access."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_for_ticket(self, ticket_id: int) -> List[TicketComment]:
        stmt = (
            select(TicketCommentModel)
            .where(TicketCommentModel.ticket_id == ticket_id)
            .order_by(TicketCommentModel.created_at.asc(), TicketCommentModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return [
            TicketComment(
                id=model.id,
                ticket_id=model.ticket_id,
                created_at=model.created_at,
                user_id=model.user_id,
                user_role=model.user_role,
                is_internal=model.is_internal,
                is_system=model.is_system,
            )
            for model in result.scalars().all()
        ]

    async def first_agent_reply_at(self, ticket_id: int) -> Optional[datetime]:
        stmt = (
            select(func.min(TicketCommentModel.created_at))
            .where(TicketCommentModel.ticket_id == ticket_id, _agent_reply_filter())
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


def _policy_to_entity(model: SLAPolicyModel) -> SLAPolicy:
    return SLAPolicy(
        id=model.id,
        organization_id=model.organization_id,
        ticket_priority_id=model.ticket_priority_id,
        name=model.name,
        description=model.description,
        first_response_hours=model.first_response_hours,
        next_response_hours=model.next_response_hours,
        resolution_hours=model.resolution_hours,
        business_hours_only=model.business_hours_only,
    )


class SQLAlchemySLAPolicyRepository(ISLAPolicyRepository):
    """SQLAlchemy implementation of SLA policy read access."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, policy_id: int) -> Optional[SLAPolicy]:
        model = await self._session.get(SLAPolicyModel, policy_id)
        return _policy_to_entity(model) if model else None

    async def find_by_priority(self, organization_id: int, priority_id: int) -> Optional[SLAPolicy]:
        stmt = select(SLAPolicyModel).where(
            SLAPolicyModel.organization_id == organization_id,
            SLAPolicyModel.ticket_priority_id == priority_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _policy_to_entity(model) if model else None

    async def list_for_organization(self, organization_id: int) -> List[SLAPolicy]:
        stmt = (
            select(SLAPolicyModel)
            .where(SLAPolicyModel.organization_id == organization_id)
            .order_by(SLAPolicyModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return [_policy_to_entity(model) for model in result.scalars().all()]


class SQLAlchemyBusinessHoursRepository(IBusinessHoursRepository):
    """SQLAlchemy implementation of business-hours read access."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_for_organization(self, organization_id: int) -> Optional[BusinessHoursProfile]:
        stmt = (
            select(BusinessHoursModel)
            .where(BusinessHoursModel.organization_id == organization_id)
            .order_by(BusinessHoursModel.is_default.desc(), BusinessHoursModel.id.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None

        hours = {}
        for day in WEEKDAY_NAMES:
            start = getattr(model, f"{day}_start")
            end = getattr(model, f"{day}_end")
            hours[day] = [start, end] if start and end else None

        return BusinessHoursProfile.from_strings(
            name=model.name,
            timezone=model.timezone,
            hours=hours,
            holidays=[
                Holiday(date=h.holiday_date, recurring=h.recurring, name=h.name)
                for h in model.holidays
            ],
            id=model.id,
            organization_id=model.organization_id,
        )


class SQLAlchemySLAPolicyTicketRepository(ISLAPolicyTicketRepository):
    """
    SQLAlchemy implementation of SLA policy ticket repository.

    Pause metadata is stored as JSON text; a row whose metadata does not
    parse is logged and read as never paused.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: SLAPolicyTicketModel) -> SLAPolicyTicket:
        try:
            metadata = SLAMetadata.parse(model.pause_metadata)
        except MalformedMetadataException as e:
            logger.warning(
                "Malformed SLA metadata, treating as not paused",
                extra={"ticket_id": model.ticket_id, "error": e.message}
            )
            metadata = SLAMetadata()

        return SLAPolicyTicket(
            id=model.id,
            ticket_id=model.ticket_id,
            sla_policy_id=model.sla_policy_id,
            first_response_due_at=model.first_response_due_at,
            next_response_due_at=model.next_response_due_at,
            resolution_due_at=model.resolution_due_at,
            first_response_met=model.first_response_met,
            next_response_met=model.next_response_met,
            resolution_met=model.resolution_met,
            metadata=metadata,
            version=model.version,
        )

    @staticmethod
    def _apply(model: SLAPolicyTicketModel, sla_ticket: SLAPolicyTicket) -> None:
        model.sla_policy_id = sla_ticket.sla_policy_id
        model.first_response_due_at = sla_ticket.first_response_due_at
        model.next_response_due_at = sla_ticket.next_response_due_at
        model.resolution_due_at = sla_ticket.resolution_due_at
        model.first_response_met = sla_ticket.first_response_met
        model.next_response_met = sla_ticket.next_response_met
        model.resolution_met = sla_ticket.resolution_met
        model.pause_metadata = sla_ticket.metadata.to_json()

    async def get_by_ticket_id(self, ticket_id: int) -> Optional[SLAPolicyTicket]:
        stmt = select(SLAPolicyTicketModel).where(SLAPolicyTicketModel.ticket_id == ticket_id)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def save(self, sla_ticket: SLAPolicyTicket) -> SLAPolicyTicket:
        if sla_ticket.id is None:
            model = SLAPolicyTicketModel(ticket_id=sla_ticket.ticket_id)
            self._apply(model, sla_ticket)
            self._session.add(model)
        else:
            model = await self._session.get(SLAPolicyTicketModel, sla_ticket.id)
            if model is None:
                raise SLAPolicyTicketNotFoundException(sla_ticket.ticket_id)
            if model.version != sla_ticket.version:
                raise ConcurrentModificationException("SLAPolicyTicket", sla_ticket.id)
            self._apply(model, sla_ticket)

        try:
            await self._session.flush()
        except (StaleDataError, IntegrityError) as e:
            raise ConcurrentModificationException("SLAPolicyTicket", sla_ticket.ticket_id) from e

        sla_ticket.id = model.id
        sla_ticket.version = model.version
        return sla_ticket

    async def find_missed_first_responses(self, limit: int) -> List[Tuple[int, datetime]]:
        first_reply = (
            select(
                TicketCommentModel.ticket_id.label("ticket_id"),
                func.min(TicketCommentModel.created_at).label("first_reply_at"),
            )
            .where(_agent_reply_filter())
            .group_by(TicketCommentModel.ticket_id)
            .subquery()
        )
        stmt = (
            select(SLAPolicyTicketModel.ticket_id, first_reply.c.first_reply_at)
            .join(first_reply, first_reply.c.ticket_id == SLAPolicyTicketModel.ticket_id)
            .where(SLAPolicyTicketModel.first_response_met.is_(None))
            .order_by(SLAPolicyTicketModel.ticket_id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [(row.ticket_id, row.first_reply_at) for row in result.all()]

    async def find_breach_candidates(self, now: datetime, limit: int) -> List[int]:
        def unrecorded(met_column, flag_column):
            return or_(
                met_column.is_(None),
                and_(met_column == false(), flag_column == false()),
            )

        stmt = (
            select(SLAPolicyTicketModel.ticket_id)
            .join(TicketModel, TicketModel.id == SLAPolicyTicketModel.ticket_id)
            .where(
                TicketModel.resolved_at.is_(None),
                TicketModel.closed_at.is_(None),
                TicketModel.sla_status != SLAStatus.PAUSED,
                or_(
                    and_(
                        SLAPolicyTicketModel.first_response_due_at < now,
                        unrecorded(
                            SLAPolicyTicketModel.first_response_met,
                            TicketModel.first_response_sla_breached,
                        ),
                    ),
                    and_(
                        SLAPolicyTicketModel.resolution_due_at < now,
                        unrecorded(
                            SLAPolicyTicketModel.resolution_met,
                            TicketModel.resolution_sla_breached,
                        ),
                    ),
                ),
            )
            .order_by(SLAPolicyTicketModel.first_response_due_at.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_status_refresh_candidates(self, limit: int) -> List[int]:
        stmt = (
            select(SLAPolicyTicketModel.ticket_id)
            .join(TicketModel, TicketModel.id == SLAPolicyTicketModel.ticket_id)
            .where(
                TicketModel.resolved_at.is_(None),
                TicketModel.closed_at.is_(None),
                TicketModel.sla_status.in_(RUNNING_SLA_STATUSES),
            )
            .order_by(SLAPolicyTicketModel.resolution_due_at.asc(), SLAPolicyTicketModel.ticket_id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_outcomes(
        self,
        organization_id: int,
        start: datetime,
        end: datetime
    ) -> SLAOutcomeCounts:
        def tally(column, value):
            return func.coalesce(func.sum(case((column == value, 1), else_=0)), 0)

        stmt = (
            select(
                func.count(TicketModel.id),
                tally(SLAPolicyTicketModel.first_response_met, true()),
                tally(SLAPolicyTicketModel.first_response_met, false()),
                tally(SLAPolicyTicketModel.resolution_met, true()),
                tally(SLAPolicyTicketModel.resolution_met, false()),
            )
            .select_from(TicketModel)
            .outerjoin(SLAPolicyTicketModel, SLAPolicyTicketModel.ticket_id == TicketModel.id)
            .where(
                TicketModel.organization_id == organization_id,
                TicketModel.created_at >= start,
                TicketModel.created_at <= end,
            )
        )
        total, response_met, response_missed, resolution_met, resolution_missed = (
            (await self._session.execute(stmt)).one()
        )
        return SLAOutcomeCounts(
            total_tickets=total,
            response_met=response_met,
            response_missed=response_missed,
            resolution_met=resolution_met,
            resolution_missed=resolution_missed,
        )


class SQLAlchemyUnitOfWork(IUnitOfWork):
    """
    Unit of Work over one AsyncSession.

    Example:
        async with SQLAlchemyUnitOfWork(get_session_maker()) as uow:
            ticket = await uow.tickets.get(1)
            ...
            await uow.commit()
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory
        self._session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        self._session = self._session_factory()
        self.tickets = SQLAlchemyTicketRepository(self._session)
        self.comments = SQLAlchemyCommentRepository(self._session)
        self.policies = SQLAlchemySLAPolicyRepository(self._session)
        self.business_hours = SQLAlchemyBusinessHoursRepository(self._session)
        self.sla_tickets = SQLAlchemySLAPolicyTicketRepository(self._session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.rollback()
        finally:
            await self._session.close()
            self._session = None

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except StaleDataError as e:
            raise ConcurrentModificationException("Unit of work", None) from e

    async def rollback(self) -> None:
        await self._session.rollback()
