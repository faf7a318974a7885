"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.config import SLAStatus, UserRole
from helpdesk.infrastructure.database import Base, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BusinessHoursModel(Base):
    """
    Working hours of an organization.

    Maps to the 'business_hours' table. Each weekday holds an optional
    "HH:MM" start/end pair; a missing pair means closed.
    """
    __tablename__ = "business_hours"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    monday_start: Mapped[Optional[str]] = mapped_column(String(5))
    monday_end: Mapped[Optional[str]] = mapped_column(String(5))
    tuesday_start: Mapped[Optional[str]] = mapped_column(String(5))
    tuesday_end: Mapped[Optional[str]] = mapped_column(String(5))
    wednesday_start: Mapped[Optional[str]] = mapped_column(String(5))
    wednesday_end: Mapped[Optional[str]] = mapped_column(String(5))
    thursday_start: Mapped[Optional[str]] = mapped_column(String(5))
    thursday_end: Mapped[Optional[str]] = mapped_column(String(5))
    friday_start: Mapped[Optional[str]] = mapped_column(String(5))
    friday_end: Mapped[Optional[str]] = mapped_column(String(5))
    saturday_start: Mapped[Optional[str]] = mapped_column(String(5))
    saturday_end: Mapped[Optional[str]] = mapped_column(String(5))
    sunday_start: Mapped[Optional[str]] = mapped_column(String(5))
    sunday_end: Mapped[Optional[str]] = mapped_column(String(5))

    holidays: Mapped[List["HolidayModel"]] = relationship(
        back_populates="business_hours", lazy="selectin", cascade="all, delete-orphan"
    )


class HolidayModel(Base):
    """Maps to the 'holidays' table."""
    __tablename__ = "holidays"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_hours_id: Mapped[int] = mapped_column(
        ForeignKey("business_hours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    holiday_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    business_hours: Mapped[BusinessHoursModel] = relationship(back_populates="holidays")


class TicketPriorityModel(Base):
    """Maps to the 'ticket_priorities' table."""
    __tablename__ = "ticket_priorities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class SLAPolicyModel(Base):
    """
    Database model for SLAPolicy.

    Maps to the 'sla_policies' table; one policy per organization priority.
    """
    __tablename__ = "sla_policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    ticket_priority_id: Mapped[int] = mapped_column(
        ForeignKey("ticket_priorities.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    first_response_hours: Mapped[float] = mapped_column(Float, nullable=False)
    next_response_hours: Mapped[Optional[float]] = mapped_column(Float)
    resolution_hours: Mapped[float] = mapped_column(Float, nullable=False)
    business_hours_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("organization_id", "ticket_priority_id", name="uq_sla_policy_org_priority"),
    )


class TicketModel(Base):
    """
    Database model for the SLA slice of a ticket.

    Maps to the 'tickets' table. ``version`` guards concurrent writes of
    the mirror fields.
    """
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    priority_id: Mapped[Optional[int]] = mapped_column(ForeignKey("ticket_priorities.id"))
    status_name: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    # SLA mirror
    sla_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SLAStatus.INACTIVE, index=True
    )
    first_response_sla_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolution_sla_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    priority: Mapped[Optional[TicketPriorityModel]] = relationship(lazy="selectin")

    __mapper_args__ = {"version_id_col": version}


class TicketCommentModel(Base):
    """Maps to the 'ticket_comments' table (read model for the SLA core)."""
    __tablename__ = "ticket_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[Optional[int]] = mapped_column(Integer)
    user_role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.CUSTOMER)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class SLAPolicyTicketModel(Base):
    """
    Database model for SLAPolicyTicket.

    Maps to the 'sla_policy_tickets' table; at most one row per ticket.
    ``metadata`` holds the pause log as JSON text.
    """
    __tablename__ = "sla_policy_tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    sla_policy_id: Mapped[int] = mapped_column(ForeignKey("sla_policies.id"), nullable=False)

    first_response_due_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    next_response_due_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    resolution_due_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # NULL = undecided
    first_response_met: Mapped[Optional[bool]] = mapped_column(Boolean)
    next_response_met: Mapped[Optional[bool]] = mapped_column(Boolean)
    resolution_met: Mapped[Optional[bool]] = mapped_column(Boolean)

    # "metadata" is reserved on declarative classes
    pause_metadata: Mapped[Optional[str]] = mapped_column("metadata", Text)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
