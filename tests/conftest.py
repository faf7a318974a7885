"""
Shared pytest fixtures for the helpdesk SLA test-suite.

Application tests run against the in-memory unit of work; repository
tests in ``test_sqlalchemy_repositories.py`` use SQLite through aiosqlite.
"""

from datetime import datetime, timezone

import pytest

from helpdesk.sla.application import ReconciliationService, SLAClockService, SLAEventHandler
from helpdesk.sla.domain import SLAConfig, SLAPolicy, Ticket
from helpdesk.sla.infrastructure import (
    InMemoryStore,
    InMemoryUnitOfWorkFactory,
    StaticConfigProvider,
)

ORG_ID = 1
HIGH_PRIORITY_ID = 10
LOW_PRIORITY_ID = 20

# Tuesday 2024-01-02 08:00 UTC, one hour before the working window opens
CREATED_AT = datetime(2024, 1, 2, 8, 0, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def high_policy() -> SLAPolicy:
    return SLAPolicy(
        id=1,
        organization_id=ORG_ID,
        ticket_priority_id=HIGH_PRIORITY_ID,
        name="High priority SLA",
        first_response_hours=4,
        resolution_hours=16,
        business_hours_only=True,
    )


@pytest.fixture
def low_policy() -> SLAPolicy:
    return SLAPolicy(
        id=2,
        organization_id=ORG_ID,
        ticket_priority_id=LOW_PRIORITY_ID,
        name="Low priority SLA",
        description="Standard support for low tickets",
        first_response_hours=8,
        resolution_hours=40,
        next_response_hours=8,
        business_hours_only=True,
    )


@pytest.fixture
def store(high_policy, low_policy) -> InMemoryStore:
    store = InMemoryStore()
    store.add_policy(high_policy)
    store.add_policy(low_policy)
    store.add_ticket(Ticket(
        id=1,
        organization_id=ORG_ID,
        created_at=CREATED_AT,
        priority_id=HIGH_PRIORITY_ID,
        priority_name="High",
        status_name="Open",
    ))
    return store


@pytest.fixture
def uow_factory(store) -> InMemoryUnitOfWorkFactory:
    return InMemoryUnitOfWorkFactory(store)


@pytest.fixture
def config_provider() -> StaticConfigProvider:
    return StaticConfigProvider(SLAConfig())


@pytest.fixture
def clock_service(uow_factory, config_provider) -> SLAClockService:
    return SLAClockService(uow_factory, config_provider)


@pytest.fixture
def reconciliation(uow_factory, clock_service) -> ReconciliationService:
    return ReconciliationService(uow_factory, clock_service)


@pytest.fixture
def event_handler(clock_service) -> SLAEventHandler:
    return SLAEventHandler(clock_service)
