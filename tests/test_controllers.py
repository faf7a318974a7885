"""
API tests for the SLA routes, error mapping and middleware.

The app is built without running its lifespan; services over the
in-memory store are placed on ``app.state`` directly. One test runs the
full lifespan against SQLite.
"""

import pytest
from fastapi.testclient import TestClient

from helpdesk.config import Settings
from helpdesk.core import ConcurrentModificationException
from helpdesk.main import create_app
from helpdesk.sla.application import ReconciliationService, SLAClockService
from helpdesk.sla.domain import Ticket
from helpdesk.sla.infrastructure import InMemoryUnitOfWorkFactory

from conftest import CREATED_AT, ORG_ID, utc

NOW = utc(2024, 1, 2, 12)


@pytest.fixture
def api_clock_service(store, config_provider):
    return SLAClockService(InMemoryUnitOfWorkFactory(store), config_provider, now_source=lambda: NOW)


@pytest.fixture
def app(store, api_clock_service):
    application = create_app(Settings(_env_file=None, environment="development"))
    application.state.clock_service = api_clock_service
    application.state.reconciliation_service = ReconciliationService(
        InMemoryUnitOfWorkFactory(store), api_clock_service, now_source=lambda: NOW
    )
    return application


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


class TestAssignment:

    def test_assign(self, client):
        response = client.post("/sla/tickets/1/assign")

        assert response.status_code == 200
        body = response.json()
        assert body["sla_policy_id"] == 1
        assert body["first_response_due_at"].startswith("2024-01-02T13:00:00")
        assert body["resolution_due_at"].startswith("2024-01-04T09:00:00")
        assert body["first_response_met"] is None
        assert body["is_paused"] is False

    def test_assign_without_policy(self, client, store):
        store.add_ticket(Ticket(id=2, organization_id=ORG_ID, created_at=CREATED_AT, priority_id=99))

        response = client.post("/sla/tickets/2/assign")

        assert response.status_code == 404
        assert response.json()["detail"] == "No SLA policy for this ticket"

    def test_unknown_ticket(self, client):
        response = client.post("/sla/tickets/404/assign")
        assert response.status_code == 404
        assert "404" in response.json()["detail"]


class TestPauseResume:

    def test_pause_then_resume(self, client):
        client.post("/sla/tickets/1/assign")

        paused = client.post("/sla/tickets/1/pause").json()
        assert paused["is_paused"] is True
        assert len(paused["pause_periods"]) == 1
        assert paused["pause_periods"][0]["ended_at"] is None

        resumed = client.post("/sla/tickets/1/resume").json()
        assert resumed["is_paused"] is False
        assert resumed["resolution_due_at"] == paused["resolution_due_at"]

    def test_pause_without_sla(self, client):
        response = client.post("/sla/tickets/1/pause")
        assert response.status_code == 404
        assert response.json()["detail"] == "No SLA policy for this ticket"

    def test_concurrent_modification_is_conflict(self, client, api_clock_service, monkeypatch):
        async def conflicting_pause(ticket_id, now=None):
            raise ConcurrentModificationException("Ticket", ticket_id)

        monkeypatch.setattr(api_clock_service, "pause", conflicting_pause)

        response = client.post("/sla/tickets/1/pause")
        assert response.status_code == 409


class TestStatus:

    def test_status_report(self, client):
        client.post("/sla/tickets/1/assign")

        response = client.get("/sla/tickets/1/status")

        assert response.status_code == 200
        body = response.json()
        assert body["computed_status"] == "active"
        assert body["first_response_remaining_minutes"] == 60
        assert body["first_response_percent_elapsed"] == 80
        assert body["within_business_hours"] is True
        assert body["holiday_today"] is False
        assert body["sla_info"]["sla_policy_id"] == 1

    def test_paused_status_hides_progress(self, client):
        client.post("/sla/tickets/1/assign")
        client.post("/sla/tickets/1/pause")

        body = client.get("/sla/tickets/1/status").json()

        assert body["computed_status"] == "paused"
        assert body["first_response_percent_elapsed"] == 0
        assert body["first_response_breached"] is False

    def test_status_without_sla(self, client):
        response = client.get("/sla/tickets/1/status")
        assert response.status_code == 404
        assert response.json()["detail"] == "No SLA policy for this ticket"

    def test_recalculate(self, client, store):
        client.post("/sla/tickets/1/assign")

        response = client.post("/sla/tickets/1/recalculate")

        assert response.status_code == 200
        assert response.json() == {
            "ticket_id": 1,
            "sla_status": "active",
            "first_response_sla_breached": False,
            "resolution_sla_breached": False,
        }


class TestRepairs:

    def test_repair_breaches(self, client):
        client.post("/sla/tickets/1/assign")
        response = client.post("/sla/repair/breaches", params={"limit": 5})
        assert response.status_code == 200
        assert response.json() == {"repaired": 0, "limit": 5}

    def test_repair_first_responses_default_limit(self, client):
        response = client.post("/sla/repair/first-responses")
        assert response.json() == {"repaired": 0, "limit": 100}

    def test_repair_statuses_default_limit(self, client):
        response = client.post("/sla/repair/statuses")
        assert response.status_code == 200
        assert response.json() == {"repaired": 0, "limit": 100}

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_limit_is_validated(self, client, limit):
        response = client.post("/sla/repair/breaches", params={"limit": limit})
        assert response.status_code == 422


class TestMetrics:

    def test_empty_window_is_fully_compliant(self, client):
        response = client.get("/sla/metrics", params={
            "organization_id": ORG_ID, "start": "2023-01-01T00:00:00Z", "end": "2023-12-31T23:59:59Z",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["total_tickets"] == 0
        assert body["response_compliance_percentage"] == 100.0
        assert body["resolution_compliance_percentage"] == 100.0

    def test_window_counts_created_tickets(self, client):
        client.post("/sla/tickets/1/assign")

        response = client.get("/sla/metrics", params={
            "organization_id": ORG_ID, "start": "2024-01-01T00:00:00Z", "end": "2024-01-07T00:00:00Z",
        })

        body = response.json()
        assert body["organization_id"] == ORG_ID
        assert body["total_tickets"] == 1
        assert body["response_sla_met"] + body["response_sla_missed"] == 0

    def test_start_after_end(self, client):
        response = client.get("/sla/metrics", params={
            "organization_id": ORG_ID, "start": "2024-01-07T00:00:00Z", "end": "2024-01-01T00:00:00Z",
        })

        assert response.status_code == 422
        assert response.json()["detail"] == "start must not be after end"

    def test_organization_is_required(self, client):
        response = client.get("/sla/metrics", params={"start": "2024-01-01T00:00:00Z", "end": "2024-01-07T00:00:00Z"})
        assert response.status_code == 422


class TestMiddleware:

    def test_correlation_id_is_echoed(self, client):
        response = client.get("/sla/tickets/1/status", headers={"X-Correlation-ID": "req-123"})
        assert response.headers["X-Correlation-ID"] == "req-123"
        assert response.json()["correlation_id"] == "req-123"

    def test_correlation_id_is_generated(self, client):
        response = client.get("/")
        assert response.headers["X-Correlation-ID"]

    def test_unhandled_error_is_500(self, client, api_clock_service, monkeypatch):
        async def broken(ticket_id, now=None):
            raise RuntimeError("boom")

        monkeypatch.setattr(api_clock_service, "check_status", broken)

        response = client.get("/sla/tickets/1/status")

        assert response.status_code == 500
        body = response.json()
        assert body["detail"] == "Internal server error"
        assert body["debug_info"] == "boom"

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["checks"] == {"sla_config": "loaded", "reconciliation_scheduler": "stopped"}

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/health"


def test_lifespan_wires_services(tmp_path):
    config_path = tmp_path / "sla_config.yaml"
    config_path.write_text("status_thresholds:\n  warning: 70\n  critical: 85\n")
    settings = Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        sla_config_path=config_path,
        sla_config_watch=False,
        reconciliation_interval=0,
    )

    with TestClient(create_app(settings)) as client:
        app_state = client.app.state
        assert app_state.config_manager.get_config().status_thresholds.warning == 70
        assert app_state.scheduler is None

        health = client.get("/health").json()
        assert health["checks"]["sla_config"] == "loaded"

        response = client.post("/sla/tickets/1/assign")
        assert response.status_code == 404
