"""
Repository and unit-of-work tests against SQLite (aiosqlite).

Covers the column mappings, UTC round-trips, the reconciliation
candidate queries and optimistic version checks, then runs the clock
service end to end through SQLAlchemyUnitOfWork.
"""

from datetime import date, time

import pytest
from sqlalchemy import select

from helpdesk.config import SLAStatus, UserRole
from helpdesk.core import ConcurrentModificationException
from helpdesk.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    get_session_maker,
    init_database,
)
from helpdesk.sla.application import ReconciliationService, SLAClockService
from helpdesk.sla.domain import SLAPolicyTicket
from helpdesk.sla.domain.calendar import DailyHours
from helpdesk.sla.infrastructure import (
    BusinessHoursModel,
    HolidayModel,
    SLAPolicyModel,
    SLAPolicyTicketModel,
    SQLAlchemyUnitOfWork,
    StaticConfigProvider,
    TicketCommentModel,
    TicketModel,
    TicketPriorityModel,
)

from conftest import CREATED_AT, HIGH_PRIORITY_ID, LOW_PRIORITY_ID, ORG_ID, utc

pytestmark = pytest.mark.integration


@pytest.fixture
async def database(tmp_path):
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'helpdesk.db'}")
    await create_tables()

    async with get_session_context() as session:
        session.add_all([
            TicketPriorityModel(id=HIGH_PRIORITY_ID, organization_id=ORG_ID, name="High"),
            TicketPriorityModel(id=LOW_PRIORITY_ID, organization_id=ORG_ID, name="Low"),
        ])
        await session.flush()
        session.add_all([
            SLAPolicyModel(
                id=1, organization_id=ORG_ID, ticket_priority_id=HIGH_PRIORITY_ID,
                name="High priority SLA", first_response_hours=4, resolution_hours=16,
                business_hours_only=True,
            ),
            SLAPolicyModel(
                id=2, organization_id=ORG_ID, ticket_priority_id=LOW_PRIORITY_ID,
                name="Low priority SLA", first_response_hours=8, resolution_hours=40,
                next_response_hours=8, business_hours_only=True,
            ),
            TicketModel(
                id=1, organization_id=ORG_ID, priority_id=HIGH_PRIORITY_ID,
                status_name="Open", created_at=CREATED_AT,
            ),
        ])

    yield
    await close_database()


@pytest.fixture
def sql_uow_factory(database):
    return lambda: SQLAlchemyUnitOfWork(get_session_maker())


@pytest.fixture
def sql_clock_service(sql_uow_factory):
    return SLAClockService(sql_uow_factory, StaticConfigProvider())


async def _add_comments(*comments):
    async with get_session_context() as session:
        session.add_all(list(comments))


class TestTicketRepository:

    async def test_get_maps_priority_and_utc(self, sql_uow_factory):
        async with sql_uow_factory() as uow:
            ticket = await uow.tickets.get(1)

        assert ticket.priority_name == "High"
        assert ticket.created_at == CREATED_AT
        assert ticket.created_at.utcoffset().total_seconds() == 0
        assert ticket.sla_status == SLAStatus.INACTIVE
        assert ticket.version == 1

    async def test_missing_ticket(self, sql_uow_factory):
        async with sql_uow_factory() as uow:
            assert await uow.tickets.get(404) is None

    async def test_save_bumps_version(self, sql_uow_factory):
        async with sql_uow_factory() as uow:
            ticket = await uow.tickets.get(1)
            ticket.sla_status = SLAStatus.ACTIVE
            await uow.tickets.save(ticket)
            await uow.commit()

        assert ticket.version == 2
        async with sql_uow_factory() as uow:
            assert (await uow.tickets.get(1)).sla_status == SLAStatus.ACTIVE

    async def test_uncommitted_changes_are_rolled_back(self, sql_uow_factory):
        async with sql_uow_factory() as uow:
            ticket = await uow.tickets.get(1)
            ticket.sla_status = SLAStatus.BREACHED
            await uow.tickets.save(ticket)

        async with sql_uow_factory() as uow:
            assert (await uow.tickets.get(1)).sla_status == SLAStatus.INACTIVE

    async def test_stale_write_is_rejected(self, sql_uow_factory):
        async with sql_uow_factory() as first, sql_uow_factory() as second:
            a = await first.tickets.get(1)
            b = await second.tickets.get(1)

            a.sla_status = SLAStatus.ACTIVE
            await first.tickets.save(a)
            await first.commit()

            b.sla_status = SLAStatus.PAUSED
            with pytest.raises(ConcurrentModificationException):
                await second.tickets.save(b)

        async with sql_uow_factory() as uow:
            assert (await uow.tickets.get(1)).sla_status == SLAStatus.ACTIVE


class TestPolicyRepositories:

    async def test_find_by_priority(self, sql_uow_factory):
        async with sql_uow_factory() as uow:
            policy = await uow.policies.find_by_priority(ORG_ID, LOW_PRIORITY_ID)
            missing = await uow.policies.find_by_priority(ORG_ID, 99)
            listed = await uow.policies.list_for_organization(ORG_ID)

        assert policy.id == 2
        assert policy.next_response_hours == 8
        assert missing is None
        assert [p.id for p in listed] == [1, 2]

    async def test_business_hours_profile(self, sql_uow_factory):
        async with get_session_context() as session:
            session.add(BusinessHoursModel(
                organization_id=ORG_ID, name="Secondary", timezone="UTC", is_default=False,
                monday_start="08:00", monday_end="12:00",
            ))
            session.add(BusinessHoursModel(
                organization_id=ORG_ID, name="Berlin", timezone="Europe/Berlin", is_default=True,
                tuesday_start="10:00", tuesday_end="14:00",
                holidays=[HolidayModel(name="Founders day", holiday_date=date(2024, 1, 3), recurring=True)],
            ))

        async with sql_uow_factory() as uow:
            profile = await uow.business_hours.get_for_organization(ORG_ID)
            other = await uow.business_hours.get_for_organization(2)

        assert profile.name == "Berlin"
        assert profile.timezone == "Europe/Berlin"
        assert profile.hours_for(0) is None
        assert profile.hours_for(1) == DailyHours(time(10), time(14))
        assert len(profile.holidays) == 1
        assert profile.holidays[0].matches(date(2030, 1, 3))
        assert other is None


class TestSLAPolicyTicketRepository:

    async def test_round_trip(self, sql_uow_factory, sql_clock_service):
        assigned = await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)

        async with sql_uow_factory() as uow:
            row = await uow.sla_tickets.get_by_ticket_id(1)

        assert row.id == assigned.id
        assert row.first_response_due_at == utc(2024, 1, 2, 13, 0)
        assert row.resolution_due_at == utc(2024, 1, 4, 9, 0)
        assert row.first_response_met is None
        assert not row.is_paused

    async def test_second_row_for_ticket_conflicts(self, sql_uow_factory, sql_clock_service):
        row = await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        duplicate = SLAPolicyTicket(
            ticket_id=1,
            sla_policy_id=2,
            first_response_due_at=row.first_response_due_at,
            resolution_due_at=row.resolution_due_at,
        )

        async with sql_uow_factory() as uow:
            with pytest.raises(ConcurrentModificationException):
                await uow.sla_tickets.save(duplicate)

    async def test_pause_log_is_stored_as_json(self, sql_clock_service):
        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        await sql_clock_service.pause(1, now=utc(2024, 1, 2, 10))

        async with get_session_context() as session:
            raw = (await session.execute(
                select(SLAPolicyTicketModel.pause_metadata).where(SLAPolicyTicketModel.ticket_id == 1)
            )).scalar_one()

        assert '"pausePeriods"' in raw
        assert '"startedAt"' in raw

    async def test_malformed_metadata_reads_as_not_paused(self, sql_uow_factory, sql_clock_service):
        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        async with get_session_context() as session:
            model = (await session.execute(
                select(SLAPolicyTicketModel).where(SLAPolicyTicketModel.ticket_id == 1)
            )).scalar_one()
            model.pause_metadata = "{not json"

        async with sql_uow_factory() as uow:
            row = await uow.sla_tickets.get_by_ticket_id(1)

        assert not row.is_paused
        assert row.metadata.pause_periods == ()

    async def test_find_missed_first_responses(self, sql_uow_factory, sql_clock_service):
        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        await _add_comments(
            TicketCommentModel(ticket_id=1, user_role=UserRole.CUSTOMER, created_at=utc(2024, 1, 2, 9)),
            TicketCommentModel(
                ticket_id=1, user_role=UserRole.AGENT, is_internal=True, created_at=utc(2024, 1, 2, 10)
            ),
            TicketCommentModel(ticket_id=1, user_role=UserRole.AGENT, created_at=utc(2024, 1, 2, 12)),
            TicketCommentModel(ticket_id=1, user_role=UserRole.ADMIN, created_at=utc(2024, 1, 2, 15)),
        )

        async with sql_uow_factory() as uow:
            found = await uow.sla_tickets.find_missed_first_responses(10)
            first_reply = await uow.comments.first_agent_reply_at(1)
            comments = await uow.comments.list_for_ticket(1)

        assert found == [(1, utc(2024, 1, 2, 12))]
        assert first_reply == utc(2024, 1, 2, 12)
        assert [c.created_at.hour for c in comments] == [9, 10, 12, 15]

    async def test_find_breach_candidates(self, sql_uow_factory, sql_clock_service):
        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)

        async with sql_uow_factory() as uow:
            before = await uow.sla_tickets.find_breach_candidates(utc(2024, 1, 2, 12), 10)
            after = await uow.sla_tickets.find_breach_candidates(utc(2024, 1, 3), 10)

        assert before == []
        assert after == [1]

    async def test_paused_tickets_are_not_candidates(self, sql_uow_factory, sql_clock_service):
        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        await sql_clock_service.pause(1, now=utc(2024, 1, 2, 10))

        async with sql_uow_factory() as uow:
            assert await uow.sla_tickets.find_breach_candidates(utc(2024, 1, 3), 10) == []

    async def test_flagged_but_undecided_target_is_still_a_candidate(
        self, sql_uow_factory, sql_clock_service
    ):
        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        await sql_clock_service.update_ticket_breach_status(1, now=utc(2024, 1, 3))

        async with sql_uow_factory() as uow:
            assert (await uow.tickets.get(1)).first_response_sla_breached is True
            assert await uow.sla_tickets.find_breach_candidates(utc(2024, 1, 3), 10) == [1]

    async def test_find_status_refresh_candidates(self, sql_uow_factory, sql_clock_service):
        async with sql_uow_factory() as uow:
            assert await uow.sla_tickets.find_status_refresh_candidates(10) == []

        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        async with sql_uow_factory() as uow:
            assert await uow.sla_tickets.find_status_refresh_candidates(10) == [1]

        await sql_clock_service.pause(1, now=utc(2024, 1, 2, 10))
        async with sql_uow_factory() as uow:
            assert await uow.sla_tickets.find_status_refresh_candidates(10) == []

        await sql_clock_service.resume(1, now=utc(2024, 1, 2, 11))
        await sql_clock_service.record_resolution(1, utc(2024, 1, 2, 12), now=utc(2024, 1, 2, 12))
        async with sql_uow_factory() as uow:
            assert await uow.sla_tickets.find_status_refresh_candidates(10) == []

    async def test_count_outcomes(self, sql_uow_factory, sql_clock_service):
        async with get_session_context() as session:
            session.add_all([
                # Monday 08:00; first response due Monday 13:00
                TicketModel(id=2, organization_id=ORG_ID, priority_id=HIGH_PRIORITY_ID,
                            created_at=utc(2024, 1, 1, 8)),
                TicketModel(id=3, organization_id=ORG_ID, created_at=utc(2024, 1, 1, 9)),
                TicketModel(id=4, organization_id=ORG_ID + 1, created_at=CREATED_AT),
            ])
        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        await sql_clock_service.auto_assign_policy(2, now=utc(2024, 1, 1, 8))
        await sql_clock_service.record_first_response(1, utc(2024, 1, 2, 12), now=utc(2024, 1, 2, 12))
        await sql_clock_service.record_first_response(2, utc(2024, 1, 2, 12), now=utc(2024, 1, 2, 12))
        await sql_clock_service.record_resolution(2, utc(2024, 1, 2, 15), now=utc(2024, 1, 2, 15))

        async with sql_uow_factory() as uow:
            week = await uow.sla_tickets.count_outcomes(ORG_ID, utc(2024, 1, 1), utc(2024, 1, 7))
            tuesday = await uow.sla_tickets.count_outcomes(ORG_ID, CREATED_AT, utc(2024, 1, 2, 23, 59))

        assert week.total_tickets == 3
        assert (week.response_met, week.response_missed) == (1, 1)
        assert (week.resolution_met, week.resolution_missed) == (1, 0)
        assert week.response_compliance_percentage == 50.0
        assert week.resolution_compliance_percentage == 100.0

        assert tuesday.total_tickets == 1
        assert (tuesday.response_met, tuesday.response_missed) == (1, 0)
        assert (tuesday.resolution_met, tuesday.resolution_missed) == (0, 0)


class TestEndToEnd:

    async def test_clock_lifecycle(self, sql_uow_factory, sql_clock_service):
        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        await sql_clock_service.pause(1, now=utc(2024, 1, 2, 10))
        resumed = await sql_clock_service.resume(1, now=utc(2024, 1, 2, 11))
        await sql_clock_service.record_agent_reply(1, utc(2024, 1, 2, 12), now=utc(2024, 1, 2, 12))
        await sql_clock_service.record_resolution(1, utc(2024, 1, 3, 15), now=utc(2024, 1, 3, 15))

        assert resumed.resolution_due_at == utc(2024, 1, 4, 9, 0)
        async with sql_uow_factory() as uow:
            ticket = await uow.tickets.get(1)
            row = await uow.sla_tickets.get_by_ticket_id(1)

        assert row.first_response_met is True
        assert row.resolution_met is True
        assert len(row.metadata.pause_periods) == 1
        assert ticket.sla_status == SLAStatus.COMPLETED
        assert ticket.resolved_at == utc(2024, 1, 3, 15)

    async def test_reconciliation_records_silent_breach(self, sql_uow_factory, sql_clock_service):
        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        reconciliation = ReconciliationService(sql_uow_factory, sql_clock_service)

        quiet = await reconciliation.run_once(100, now=utc(2024, 1, 2, 12))
        report = await reconciliation.run_once(100, now=utc(2024, 1, 3))

        assert (quiet.first_responses_fixed, quiet.breaches_fixed) == (0, 0)
        assert report.breaches_fixed == 1
        async with sql_uow_factory() as uow:
            ticket = await uow.tickets.get(1)
            row = await uow.sla_tickets.get_by_ticket_id(1)
        assert row.first_response_met is False
        assert ticket.first_response_sla_breached is True

    async def test_reconciliation_advances_running_status(self, sql_uow_factory, sql_clock_service):
        await sql_clock_service.auto_assign_policy(1, now=CREATED_AT)
        await sql_clock_service.record_first_response(1, utc(2024, 1, 2, 12), now=utc(2024, 1, 2, 12))
        reconciliation = ReconciliationService(sql_uow_factory, sql_clock_service)

        # 2700 of 2940 minutes into the resolution window
        report = await reconciliation.run_once(100, now=utc(2024, 1, 4, 5))

        assert report.statuses_refreshed == 1
        async with sql_uow_factory() as uow:
            assert (await uow.tickets.get(1)).sla_status == SLAStatus.CRITICAL
