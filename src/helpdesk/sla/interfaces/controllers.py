"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA tracking endpoints.

Controllers are thin - they delegate to application services. Domain
exceptions propagate to the application exception handler, which maps
them to HTTP status codes.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request

from helpdesk.core import SLAPolicyTicketNotFoundException
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application import (
    ErrorResponse,
    ReconciliationService,
    RepairResponse,
    SLAClockService,
    SLAMetricsResponse,
    SLAPolicyTicketResponse,
    SLAStatusReportResponse,
    TicketSLAResponse,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA"])


# ========== Example payloads for Swagger ==========

SLA_TICKET_EXAMPLE = {
    "ticket_id": 42,
    "sla_policy_id": 3,
    "first_response_due_at": "2024-01-15T13:00:00Z",
    "next_response_due_at": None,
    "resolution_due_at": "2024-01-16T12:00:00Z",
    "first_response_met": None,
    "next_response_met": None,
    "resolution_met": None,
    "is_paused": False,
    "pause_periods": []
}

STATUS_REPORT_EXAMPLE = {
    "ticket_id": 42,
    "evaluated_at": "2024-01-15T12:00:00Z",
    "computed_status": "warning",
    "is_paused": False,
    "sla_info": SLA_TICKET_EXAMPLE,
    "first_response_breached": False,
    "resolution_breached": False,
    "first_response_remaining_minutes": 60,
    "resolution_remaining_minutes": 1440,
    "first_response_percent_elapsed": 75,
    "resolution_percent_elapsed": 12,
    "paused_minutes": 0,
    "within_business_hours": True,
    "holiday_today": False
}

METRICS_EXAMPLE = {
    "organization_id": 1,
    "start": "2024-01-01T00:00:00Z",
    "end": "2024-01-31T23:59:59Z",
    "total_tickets": 40,
    "response_sla_met": 30,
    "response_sla_missed": 6,
    "resolution_sla_met": 20,
    "resolution_sla_missed": 5,
    "response_compliance_percentage": 83.33,
    "resolution_compliance_percentage": 80.0
}

NOT_FOUND_RESPONSE = {"model": ErrorResponse, "description": "Ticket or SLA not found"}
CONFLICT_RESPONSE = {"model": ErrorResponse, "description": "Concurrent modification"}


# ========== Dependencies ==========

def get_clock_service(request: Request) -> SLAClockService:
    """SLA clock service created in the application lifespan."""
    return request.app.state.clock_service


def get_reconciliation_service(request: Request) -> ReconciliationService:
    """Reconciliation service created in the application lifespan."""
    return request.app.state.reconciliation_service


# ========== Route Handlers ==========

@router.post(
    "/tickets/{ticket_id}/assign",
    response_model=SLAPolicyTicketResponse,
    summary="Assign SLA policy",
    description="""
    Bind the ticket to the SLA policy of its organization and priority and
    compute its due dates.

    **Idempotent**: re-assigning the policy already bound returns the
    existing binding unchanged. A different policy replaces due dates and
    outcomes; the pause log is kept.
    """,
    responses={
        200: {"content": {"application/json": {"example": SLA_TICKET_EXAMPLE}}},
        404: NOT_FOUND_RESPONSE,
        409: CONFLICT_RESPONSE,
    }
)
async def assign_policy(
    ticket_id: int,
    service: SLAClockService = Depends(get_clock_service)
):
    sla_ticket = await service.auto_assign_policy(ticket_id)
    if sla_ticket is None:
        raise SLAPolicyTicketNotFoundException(ticket_id)
    return SLAPolicyTicketResponse.from_entity(sla_ticket)


@router.post(
    "/tickets/{ticket_id}/pause",
    response_model=SLAPolicyTicketResponse,
    summary="Pause SLA clock",
    description="Open a pause period. Due dates are not moved. Pausing twice is a no-op.",
    responses={404: NOT_FOUND_RESPONSE, 409: CONFLICT_RESPONSE}
)
async def pause_sla(
    ticket_id: int,
    service: SLAClockService = Depends(get_clock_service)
):
    sla_ticket = await service.pause(ticket_id)
    if sla_ticket is None:
        raise SLAPolicyTicketNotFoundException(ticket_id)
    return SLAPolicyTicketResponse.from_entity(sla_ticket)


@router.post(
    "/tickets/{ticket_id}/resume",
    response_model=SLAPolicyTicketResponse,
    summary="Resume SLA clock",
    description="Close the open pause period and re-derive the ticket's SLA status.",
    responses={404: NOT_FOUND_RESPONSE, 409: CONFLICT_RESPONSE}
)
async def resume_sla(
    ticket_id: int,
    service: SLAClockService = Depends(get_clock_service)
):
    sla_ticket = await service.resume(ticket_id)
    if sla_ticket is None:
        raise SLAPolicyTicketNotFoundException(ticket_id)
    return SLAPolicyTicketResponse.from_entity(sla_ticket)


@router.get(
    "/tickets/{ticket_id}/status",
    response_model=SLAStatusReportResponse,
    summary="Get ticket SLA status",
    description="""
    Compute the ticket's SLA state as of now without writing anything.

    **Status values**: `active`, `warning`, `critical`, `breached`,
    `paused`, `completed`, `inactive`.

    While paused, percentages are reported as 0 and no breach is reported.
    """,
    responses={
        200: {"content": {"application/json": {"example": STATUS_REPORT_EXAMPLE}}},
        404: NOT_FOUND_RESPONSE,
    }
)
async def get_sla_status(
    ticket_id: int,
    service: SLAClockService = Depends(get_clock_service)
):
    report = await service.check_status(ticket_id)
    if report.sla_info is None:
        raise SLAPolicyTicketNotFoundException(ticket_id)
    return SLAStatusReportResponse.from_report(report)


@router.post(
    "/tickets/{ticket_id}/recalculate",
    response_model=TicketSLAResponse,
    summary="Recalculate ticket SLA fields",
    description="Re-derive and persist the ticket's SLA status and breach flags.",
    responses={404: NOT_FOUND_RESPONSE, 409: CONFLICT_RESPONSE}
)
async def recalculate_sla(
    ticket_id: int,
    service: SLAClockService = Depends(get_clock_service)
):
    ticket = await service.update_ticket_breach_status(ticket_id)
    return TicketSLAResponse.from_entity(ticket)


@router.post(
    "/repair/breaches",
    response_model=RepairResponse,
    summary="Repair missed breaches",
    description="Record breaches whose due date passed without being recorded."
)
async def repair_breaches(
    limit: int = Query(100, ge=1, le=1000, description="Maximum tickets to repair"),
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    repaired = await service.fix_breached_slas(limit)
    return RepairResponse(repaired=repaired, limit=limit)


@router.post(
    "/repair/first-responses",
    response_model=RepairResponse,
    summary="Repair missed first responses",
    description="Record first-response outcomes for tickets with an unrecorded agent reply."
)
async def repair_first_responses(
    limit: int = Query(100, ge=1, le=1000, description="Maximum tickets to repair"),
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    repaired = await service.check_missed_first_responses(limit)
    return RepairResponse(repaired=repaired, limit=limit)


@router.post(
    "/repair/statuses",
    response_model=RepairResponse,
    summary="Refresh running SLA statuses",
    description="Re-derive the stored status of running tickets that crossed a threshold without an event."
)
async def repair_statuses(
    limit: int = Query(100, ge=1, le=1000, description="Maximum tickets to refresh"),
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    repaired = await service.refresh_statuses(limit)
    return RepairResponse(repaired=repaired, limit=limit)


@router.get(
    "/metrics",
    response_model=SLAMetricsResponse,
    summary="Get SLA compliance metrics",
    description="""
    Met and missed first-response and resolution targets for the tickets an
    organization created between `start` and `end` (both inclusive).

    Undecided targets are not counted; compliance is 100 while nothing has
    been measured.
    """,
    responses={
        200: {"content": {"application/json": {"example": METRICS_EXAMPLE}}},
        422: {"model": ErrorResponse, "description": "start is after end"},
    }
)
async def get_sla_metrics(
    organization_id: int = Query(..., description="Organization to report on"),
    start: datetime = Query(..., description="Window start (ticket creation time)"),
    end: datetime = Query(..., description="Window end (ticket creation time)"),
    service: SLAClockService = Depends(get_clock_service)
):
    counts = await service.get_metrics(organization_id, start, end)
    return SLAMetricsResponse.from_counts(organization_id, start, end, counts)


# Export router
sla_router = router
