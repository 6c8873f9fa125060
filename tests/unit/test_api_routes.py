"""Tests for API routes."""

from datetime import timedelta

import httpx
import pytest
from escalation_api import create_app
from escalation_api.app import app_state
from escalation_config import (
    Channel,
    CommunicationSettings,
    EngineConfig,
    EscalationRule,
    EventType,
    SchedulerSettings,
    UrgentKeyword,
    WebhookConfig,
    WhatsAppSettings,
)
from escalation_core import EscalationEngine
from escalation_runtime import WebhookDelivery, utcnow
from fastapi.testclient import TestClient

RECIPIENT = "+251911000000"


def handler(request: httpx.Request) -> httpx.Response:
    """Answer WhatsApp sends and webhook posts."""
    if request.url.host == "wa.example.com":
        return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})
    return httpx.Response(200, text="ok")


class Clock:
    """Manually advanced engine clock."""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


@pytest.fixture
def basic_config():
    """Create an engine configuration with a two-step P4 policy."""
    return EngineConfig(
        communication=CommunicationSettings(
            whatsapp=WhatsAppSettings(api_endpoint="https://wa.example.com/v1", api_key="t")
        ),
        keywords=[
            UrgentKeyword(keyword="urgent", priority_level=4),
            UrgentKeyword(keyword="fire", priority_level=5),
        ],
        escalation_rules=[
            EscalationRule(
                rule_name="P4 WhatsApp",
                priority_level=4,
                escalate_to=Channel.WHATSAPP,
                wait_time_minutes=10,
            ),
            EscalationRule(
                rule_name="P4 SMS",
                priority_level=4,
                escalate_to=Channel.SMS,
                wait_time_minutes=15,
            ),
        ],
        webhooks=[
            WebhookConfig(
                id="wh-approvals",
                name="Approvals",
                url="https://hooks.example.com/approvals",
                events=[EventType.APPROVAL_REQUESTED],
            )
        ],
        scheduler=SchedulerSettings(run_loop=False),
    )


@pytest.fixture
def reset_app_state():
    """Reset application state before and after tests."""
    app_state.engine = None
    app_state.config = None
    app_state.scheduler_task = None
    yield
    app_state.engine = None
    app_state.config = None
    app_state.scheduler_task = None


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def engine(basic_config, clock):
    """Create an engine whose HTTP calls go to a mock transport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EscalationEngine(basic_config, client=client, clock=clock)


@pytest.fixture
def client(engine, reset_app_state):
    """Create a test client bound to the engine for the whole test."""
    app = create_app(engine=engine)
    with TestClient(app) as test_client:
        yield test_client


def open_case(client) -> dict:
    response = client.post(
        "/messages",
        json={"text": "urgent: payroll run failed", "recipient": RECIPIENT, "trigger_source": "m1"},
    )
    assert response.status_code == 200
    return response.json()


class TestMessageEndpoint:
    """Tests for POST /messages."""

    def test_urgent_message_opens_case(self, client):
        """Test an urgent message opens a case and reports it."""
        data = open_case(client)

        assert data["is_urgent"] is True
        assert data["detected_keywords"] == ["urgent"]
        assert data["priority_level"] == 4
        assert data["case_id"] is not None
        assert data["escalation_skipped"] is False

    def test_ordinary_message(self, client):
        """Test a message without keywords opens nothing."""
        response = client.post("/messages", json={"text": "lunch?", "recipient": RECIPIENT})

        assert response.status_code == 200
        data = response.json()
        assert data["is_urgent"] is False
        assert data["priority_level"] == 0
        assert data["case_id"] is None

    def test_urgent_without_policy(self, client):
        """Test a match with no policy is reported as skipped."""
        response = client.post("/messages", json={"text": "Fire!", "recipient": RECIPIENT})

        data = response.json()
        assert data["is_urgent"] is True
        assert data["priority_level"] == 5
        assert data["case_id"] is None
        assert data["escalation_skipped"] is True
        assert "priority level 5" in data["skipped_reason"]

    def test_empty_text_rejected(self, client):
        """Test request validation."""
        response = client.post("/messages", json={"text": "", "recipient": RECIPIENT})

        assert response.status_code == 422


class TestCaseEndpoints:
    """Tests for case inspection endpoints."""

    def test_get_case(self, client):
        """Test a case is returned with its due time."""
        case_id = open_case(client)["case_id"]

        response = client.get(f"/cases/{case_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert data["current_step_index"] == 0
        assert data["trigger_source"] == "m1"
        assert data["matched_keywords"] == ["urgent"]
        assert data["next_due_at"] is not None

    def test_get_case_not_found(self, client):
        """Test unknown cases return 404."""
        response = client.get("/cases/nope")

        assert response.status_code == 404
        assert "nope" in response.json()["detail"]

    def test_list_cases_filtered(self, client):
        """Test cases can be filtered by status."""
        case_id = open_case(client)["case_id"]

        pending = client.get("/cases", params={"status": "pending"}).json()
        acknowledged = client.get("/cases", params={"status": "acknowledged"}).json()

        assert [c["id"] for c in pending] == [case_id]
        assert acknowledged == []

    def test_list_cases_limit_validated(self, client):
        """Test the page size is bounded."""
        assert client.get("/cases", params={"limit": 0}).status_code == 422
        assert client.get("/cases", params={"limit": 501}).status_code == 422

    def test_case_attempts(self, client):
        """Test the delivery history of a case."""
        case_id = open_case(client)["case_id"]

        response = client.get(f"/cases/{case_id}/attempts")

        assert response.status_code == 200
        attempts = response.json()
        assert len(attempts) == 1
        assert attempts[0]["channel"] == "whatsapp"
        assert attempts[0]["status"] == "sent"
        assert attempts[0]["provider_ref"] == "wamid.1"

    def test_case_attempts_not_found(self, client):
        """Test attempts for an unknown case return 404."""
        assert client.get("/cases/nope/attempts").status_code == 404


class TestAcknowledgeEndpoint:
    """Tests for POST /cases/{id}/acknowledge."""

    def test_acknowledge(self, client):
        """Test acknowledging a pending case."""
        case_id = open_case(client)["case_id"]

        response = client.post(f"/cases/{case_id}/acknowledge", json={"source": "sms-reply"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "acknowledged"
        assert data["acknowledged_by"] == "sms-reply"
        assert data["acknowledged_at"] is not None

    def test_acknowledge_without_body(self, client):
        """Test the request body is optional."""
        case_id = open_case(client)["case_id"]

        response = client.post(f"/cases/{case_id}/acknowledge")

        assert response.status_code == 200
        assert response.json()["acknowledged_by"] is None

    def test_acknowledge_twice(self, client):
        """Test repeated acknowledgments leave the case unchanged."""
        case_id = open_case(client)["case_id"]
        first = client.post(f"/cases/{case_id}/acknowledge", json={"source": "a"}).json()

        second = client.post(f"/cases/{case_id}/acknowledge", json={"source": "b"})

        assert second.status_code == 200
        assert second.json()["acknowledged_by"] == "a"
        assert second.json()["acknowledged_at"] == first["acknowledged_at"]

    def test_acknowledge_not_found(self, client):
        """Test acknowledging an unknown case returns 404."""
        response = client.post("/cases/missing/acknowledge")

        assert response.status_code == 404

    def test_acknowledged_case_not_escalated(self, client, clock):
        """Test a tick after acknowledgment applies no transition."""
        case_id = open_case(client)["case_id"]
        client.post(f"/cases/{case_id}/acknowledge")
        clock.advance(60)

        response = client.post("/scheduler/tick")

        assert response.json()["transitions"] == []


class TestTickEndpoint:
    """Tests for POST /scheduler/tick."""

    def test_tick_escalates_then_exhausts(self, client, clock):
        """Test cron-driven ticks walk the chain one step at a time."""
        case_id = open_case(client)["case_id"]

        clock.advance(10)
        first = client.post("/scheduler/tick").json()
        again = client.post("/scheduler/tick").json()
        clock.advance(15)
        last = client.post("/scheduler/tick").json()

        assert first["transitions"][0]["case_id"] == case_id
        assert first["transitions"][0]["kind"] == "escalated"
        assert first["transitions"][0]["channel"] == "sms"
        assert first["transitions"][0]["step_index"] == 1
        assert first["pending_cases"] == 1
        assert again["transitions"] == []
        assert last["transitions"][0]["kind"] == "exhausted"
        assert last["pending_cases"] == 0

        attempts = client.get(f"/cases/{case_id}/attempts").json()
        assert [a["channel"] for a in attempts] == ["whatsapp", "sms"]
        assert attempts[1]["status"] == "failed"

    def test_tick_before_wait_expires(self, client):
        """Test a tick evaluated at the current time."""
        open_case(client)

        response = client.post("/scheduler/tick")

        assert response.status_code == 200
        assert response.json() == {"transitions": [], "pending_cases": 1}

    def test_tick_ignores_caller_supplied_time(self, client):
        """Test a time in the request body cannot fast-forward a case."""
        case_id = open_case(client)["case_id"]

        response = client.post("/scheduler/tick", json={"now": "2099-01-01T00:00:00Z"})

        assert response.status_code == 200
        assert response.json()["transitions"] == []
        assert client.get(f"/cases/{case_id}").json()["current_step_index"] == 0
        assert len(client.get(f"/cases/{case_id}/attempts").json()) == 1


class TestEventEndpoints:
    """Tests for webhook event endpoints."""

    def test_fire_event(self, engine, reset_app_state):
        """Test events are accepted and delivered in the background."""
        app = create_app(engine=engine)
        with TestClient(app) as client:
            response = client.post(
                "/events",
                json={"event": "approval.requested", "data": {"minutes_id": "mm-1"}},
            )

            assert response.status_code == 202
            assert response.json() == {"event": "approval.requested", "webhooks_triggered": 1}

        # Shutdown drains outstanding deliveries
        rows = engine.webhook_log.query(webhook_id="wh-approvals")
        assert len(rows) == 1
        assert rows[0].succeeded is True

    def test_fire_event_without_subscribers(self, client):
        """Test an event nobody subscribes to triggers nothing."""
        response = client.post("/events", json={"event": "approval.rejected"})

        assert response.status_code == 202
        assert response.json()["webhooks_triggered"] == 0

    def test_fire_unknown_event(self, client):
        """Test unknown event types are rejected."""
        response = client.post("/events", json={"event": "meeting.started"})

        assert response.status_code == 422

    def test_list_deliveries(self, client, engine):
        """Test delivery rows are listed without payloads."""
        engine.webhook_log.record(
            WebhookDelivery(
                webhook_id="wh-approvals",
                event_type=EventType.APPROVAL_REQUESTED,
                attempt=1,
                payload={"secret": "x"},
                response_status=500,
                failed_at=utcnow(),
                error_message="HTTP 500: Internal Server Error",
            )
        )

        response = client.get("/webhooks/deliveries", params={"webhook_id": "wh-approvals"})

        assert response.status_code == 200
        rows = response.json()
        assert len(rows) == 1
        assert rows[0]["succeeded"] is False
        assert rows[0]["response_status"] == 500
        assert "payload" not in rows[0]

    def test_list_deliveries_by_event(self, client, engine):
        """Test filtering delivery rows by event type."""
        engine.webhook_log.record(
            WebhookDelivery(
                webhook_id="wh-approvals",
                event_type=EventType.APPROVAL_REQUESTED,
                attempt=1,
                delivered_at=utcnow(),
            )
        )

        response = client.get("/webhooks/deliveries", params={"event_type": "approval.approved"})

        assert response.json() == []


class TestEngineNotConfigured:
    """Tests for endpoints when no engine is loaded."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("post", "/messages"),
            ("get", "/cases"),
            ("get", "/cases/abc"),
            ("post", "/cases/abc/acknowledge"),
            ("post", "/scheduler/tick"),
            ("get", "/webhooks/deliveries"),
        ],
    )
    def test_returns_503(self, reset_app_state, method, path):
        """Test every engine-backed endpoint returns 503."""
        client = TestClient(create_app())
        kwargs = {"json": {"text": "urgent", "recipient": RECIPIENT}} if path == "/messages" else {}

        response = getattr(client, method)(path, **kwargs)

        assert response.status_code == 503
        assert "not configured" in response.json()["detail"]
