from __future__ import annotations

import logging
from collections.abc import Generator
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesdesk.core.config import get_settings
from salesdesk.core.database import Base, get_db
from salesdesk.crm.api import get_current_user
from salesdesk.crm.service import ActorUser
from salesdesk.dashboard.service import DashboardSnapshot, calendar_events, compose_dashboard, summarize_actions
from salesdesk.main import app
from salesdesk.scheduling.clock import get_now


NOW = datetime(2024, 6, 10, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("AUTO_CREATE_STAGE_TASKS", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def current_user() -> dict[str, ActorUser | None]:
    return {"actor": ActorUser(user_id="user-1")}


@pytest.fixture()
def client(db_session: Session, current_user: dict[str, ActorUser | None]) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user(request: Request) -> ActorUser | None:
        return current_user["actor"]

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_now] = lambda: NOW
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _seed(client: TestClient) -> None:
    company = client.post("/api/companies", json={"name": "Acme", "type": "Contractor"}).json()
    client.post("/api/companies", json={"name": "Beta", "type": "Rental"})
    client.post("/api/companies", json={"name": "Gamma", "type": "Contractor"})
    customer = client.post("/api/customers", json={"name": "Carol", "company_id": company["id"]}).json()
    account = {"company_id": company["id"], "customer_id": customer["id"]}

    visits = [
        {"action_type": "Call", "next_follow_up": "2024-06-08", "next_action_type": "Meeting"},
        {"action_type": "Site Follow-up", "next_follow_up": "2024-06-10", "next_action_type": "Call"},
        {"action_type": "Meeting", "next_follow_up": "2024-06-12"},
        {"action_type": "Demo", "next_follow_up": "2024-06-20", "next_action_type": "Email"},
        {"action_type": "Call", "next_follow_up": "2024-06-01", "status": "completed", "next_action_type": "Call"},
        {"action_type": "Call"},
    ]
    for fields in visits:
        response = client.post("/api/visits", json={**account, "visit_date": "2024-06-01", **fields})
        assert response.status_code == 201, response.text

    for due in ("2024-06-09", "2024-06-10", "2024-06-15", "2024-07-30"):
        assert client.post("/api/tasks", json={"title": "t", "type": "call", "due_date": due}).status_code == 201

    requirements = [
        ("2024-06-20", "pending"),
        ("2024-07-05", "processing"),
        ("2024-08-30", "pending"),
        ("2024-06-15", "fulfilled"),
    ]
    for required, status in requirements:
        response = client.post(
            "/api/requirements",
            json={**account, "equipment_name": "Lift", "required_period": required, "status": status},
        )
        assert response.status_code == 201

    client.post("/api/opportunities", json={**account, "title": "Won", "stage": "won", "value": 1000, "probability": 50})
    client.post("/api/opportunities", json={**account, "title": "Lead", "stage": "lead", "value": 2000})


def test_dashboard_aggregates_everything(client: TestClient) -> None:
    _seed(client)

    response = client.get("/api/dashboard")
    assert response.status_code == 200
    body = response.json()

    assert body["as_of"] == "2024-06-10"
    assert body["totals"] == {
        "companies": 3,
        "customers": 1,
        "visits": 6,
        "requirements": 4,
        "opportunities": 2,
        "tasks": 4,
    }
    assert body["requirements"] == {"pending": 2, "processing": 1, "near_term": 2}
    assert body["follow_ups"] == {
        "completed": 1,
        "none": 0,
        "overdue": 1,
        "today": 1,
        "urgent": 1,
        "scheduled": 1,
        "pending": 3,
    }
    assert body["tasks"] == {"completed": 0, "none": 0, "overdue": 1, "today": 1, "upcoming": 1, "scheduled": 1}

    assert Decimal(body["pipeline"]["total_value"]) == Decimal("3000")
    assert Decimal(body["pipeline"]["weighted_value"]) == Decimal("500")
    assert Decimal(body["pipeline"]["won_value"]) == Decimal("1000")

    assert body["action_summary"] == {"calls": 3, "followups": 1, "meetings": 1, "other": 1}
    assert body["next_action_summary"] == {"calls": 1, "followups": 0, "meetings": 1, "other": 1}
    assert body["company_types"] == [{"type": "Contractor", "count": 2}, {"type": "Rental", "count": 1}]
    assert {"action": "Call", "count": 3} in body["action_types"]

    # 3 follow-ups + 3 tasks + 2 near-term requirements
    assert body["alert"]["pending_activity"] == 8
    assert body["alert"]["message"] == "You have 8 follow-up(s) that need attention!"


def test_dashboard_logs_pending_activity_per_user(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    _seed(client)
    caplog.set_level(logging.INFO)

    assert client.get("/api/dashboard").status_code == 200

    composed = [record for record in caplog.records if record.getMessage() == "dashboard.composed"]
    assert composed
    assert getattr(composed[-1], "pending_activity", None) == 8
    assert getattr(composed[-1], "user_id", None) == "user-1"


def test_dashboard_without_session_is_empty(client: TestClient, current_user: dict[str, ActorUser | None]) -> None:
    _seed(client)
    current_user["actor"] = None

    body = client.get("/api/dashboard").json()
    assert body["totals"]["companies"] == 0
    assert body["alert"] == {"pending_activity": 0, "message": None}


def test_calendar_day(client: TestClient) -> None:
    _seed(client)

    response = client.get("/api/dashboard/calendar", params={"day": "2024-06-12"})
    assert response.status_code == 200
    body = response.json()
    assert body["day"] == "2024-06-12"
    assert [visit["action_type"] for visit in body["visits"]] == ["Meeting"]

    today = client.get("/api/dashboard/calendar").json()
    assert today["day"] == "2024-06-10"
    assert [visit["action_type"] for visit in today["visits"]] == ["Site Follow-up"]


def test_compose_dashboard_on_empty_snapshot() -> None:
    dashboard = compose_dashboard(DashboardSnapshot(), date(2024, 6, 10), tz=timezone.utc, window_days=30)
    assert dashboard.totals.visits == 0
    assert dashboard.pipeline.total_value == 0
    assert dashboard.alert.message is None
    assert dashboard.company_types == []


def test_summarize_actions_matching_rules() -> None:
    summary = summarize_actions(["Call", "call", "Follow-up Call", "Meeting", "Meeting Follow-up", "Email"])
    assert summary.calls == 1
    assert summary.followups == 2
    assert summary.meetings == 1
    assert summary.other == 2


def test_calendar_events_ignores_other_days() -> None:
    assert calendar_events([], date(2024, 6, 10)).visits == []
