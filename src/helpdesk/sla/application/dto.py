"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

These Pydantic models handle serialization for API responses.
Following YAGNI - only what's needed.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Literal
from datetime import datetime

from helpdesk.sla.domain import SLAOutcomeCounts, SLAPolicyTicket, SLAStatusReport, Ticket


# ========== Type Aliases for Literals ==========
SLAStatusStr = Literal["active", "paused", "breached", "critical", "warning", "completed", "inactive"]


# ========== Response DTOs ==========

class PausePeriodResponse(BaseModel):
    """One pause interval."""
    started_at: datetime
    ended_at: Optional[datetime] = None


class SLAPolicyTicketResponse(BaseModel):
    """Response model for a ticket's SLA binding."""
    ticket_id: int
    sla_policy_id: int
    first_response_due_at: datetime
    next_response_due_at: Optional[datetime] = None
    resolution_due_at: datetime
    first_response_met: Optional[bool] = Field(None, description="None while undecided")
    next_response_met: Optional[bool] = Field(None, description="None while undecided")
    resolution_met: Optional[bool] = Field(None, description="None while undecided")
    is_paused: bool
    pause_periods: List[PausePeriodResponse] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, sla_ticket: SLAPolicyTicket) -> "SLAPolicyTicketResponse":
        return cls(
            ticket_id=sla_ticket.ticket_id,
            sla_policy_id=sla_ticket.sla_policy_id,
            first_response_due_at=sla_ticket.first_response_due_at,
            next_response_due_at=sla_ticket.next_response_due_at,
            resolution_due_at=sla_ticket.resolution_due_at,
            first_response_met=sla_ticket.first_response_met,
            next_response_met=sla_ticket.next_response_met,
            resolution_met=sla_ticket.resolution_met,
            is_paused=sla_ticket.is_paused,
            pause_periods=[
                PausePeriodResponse(started_at=p.started_at, ended_at=p.ended_at)
                for p in sla_ticket.metadata.pause_periods
            ],
        )


class SLAStatusReportResponse(BaseModel):
    """Response model for GET /sla/tickets/{id}/status."""
    ticket_id: int
    evaluated_at: datetime
    computed_status: SLAStatusStr
    is_paused: bool
    sla_info: SLAPolicyTicketResponse
    first_response_breached: bool
    resolution_breached: bool
    first_response_remaining_minutes: Optional[int] = None
    resolution_remaining_minutes: Optional[int] = None
    first_response_percent_elapsed: int = Field(..., ge=0, le=100)
    resolution_percent_elapsed: int = Field(..., ge=0, le=100)
    paused_minutes: int = 0
    within_business_hours: Optional[bool] = None
    holiday_today: Optional[bool] = None

    @classmethod
    def from_report(cls, report: SLAStatusReport) -> "SLAStatusReportResponse":
        return cls(
            ticket_id=report.ticket_id,
            evaluated_at=report.evaluated_at,
            computed_status=report.computed_status,
            is_paused=report.is_paused,
            sla_info=SLAPolicyTicketResponse.from_entity(report.sla_info),
            first_response_breached=report.first_response_breached,
            resolution_breached=report.resolution_breached,
            first_response_remaining_minutes=report.first_response_remaining_minutes,
            resolution_remaining_minutes=report.resolution_remaining_minutes,
            first_response_percent_elapsed=report.first_response_percent_elapsed,
            resolution_percent_elapsed=report.resolution_percent_elapsed,
            paused_minutes=report.paused_minutes,
            within_business_hours=report.within_business_hours,
            holiday_today=report.holiday_today,
        )


class TicketSLAResponse(BaseModel):
    """Response model for a ticket's mirrored SLA fields."""
    ticket_id: int
    sla_status: SLAStatusStr
    first_response_sla_breached: bool
    resolution_sla_breached: bool

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketSLAResponse":
        return cls(
            ticket_id=ticket.id,
            sla_status=ticket.sla_status,
            first_response_sla_breached=ticket.first_response_sla_breached,
            resolution_sla_breached=ticket.resolution_sla_breached,
        )


class RepairResponse(BaseModel):
    """Response model for the repair endpoints."""
    repaired: int = Field(..., ge=0, description="Number of tickets updated")
    limit: int


class SLAMetricsResponse(BaseModel):
    """Response model for GET /sla/metrics."""
    organization_id: int
    start: datetime
    end: datetime
    total_tickets: int = Field(..., ge=0, description="Tickets created in the window")
    response_sla_met: int = Field(..., ge=0)
    response_sla_missed: int = Field(..., ge=0)
    resolution_sla_met: int = Field(..., ge=0)
    resolution_sla_missed: int = Field(..., ge=0)
    response_compliance_percentage: float = Field(..., ge=0, le=100)
    resolution_compliance_percentage: float = Field(..., ge=0, le=100)

    @classmethod
    def from_counts(
        cls,
        organization_id: int,
        start: datetime,
        end: datetime,
        counts: SLAOutcomeCounts
    ) -> "SLAMetricsResponse":
        return cls(
            organization_id=organization_id,
            start=start,
            end=end,
            total_tickets=counts.total_tickets,
            response_sla_met=counts.response_met,
            response_sla_missed=counts.response_missed,
            resolution_sla_met=counts.resolution_met,
            resolution_sla_missed=counts.resolution_missed,
            response_compliance_percentage=round(counts.response_compliance_percentage, 2),
            resolution_compliance_percentage=round(counts.resolution_compliance_percentage, 2),
        )


class ErrorResponse(BaseModel):
    """Error body returned by the API."""
    detail: str
    correlation_id: Optional[str] = None
