from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesdesk import events
from salesdesk.core.config import get_settings
from salesdesk.core.database import Base, get_db
from salesdesk.crm.api import get_current_user
from salesdesk.crm.models import Task
from salesdesk.crm.service import ActorUser
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
def clear_stubs() -> Generator[None, None, None]:
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    events.published_events.clear()
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user(request: Request) -> ActorUser:
        return ActorUser(user_id="user-1", correlation_id=getattr(request.state, "correlation_id", None))

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_now] = lambda: NOW
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def account(client: TestClient) -> dict[str, str]:
    company = client.post("/api/companies", json={"name": "Acme", "type": "Contractor"})
    assert company.status_code == 201
    customer = client.post("/api/customers", json={"name": "Carol", "company_id": company.json()["id"]})
    assert customer.status_code == 201
    return {"company_id": company.json()["id"], "customer_id": customer.json()["id"]}


def _create_opportunity(client: TestClient, account: dict[str, str], **fields: object) -> dict:
    payload: dict[str, object] = {**account, "title": "Tower crane hire"}
    payload.update(fields)
    response = client.post("/api/opportunities", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _tasks(db_session: Session) -> list[Task]:
    db_session.expire_all()
    return list(db_session.scalars(select(Task).order_by(Task.due_date, Task.created_at)))


def test_opportunity_crud(client: TestClient, account: dict[str, str]) -> None:
    opportunity = _create_opportunity(client, account, value=1000, probability=40)
    assert opportunity["stage"] == "cold_call"
    assert Decimal(opportunity["value"]) == Decimal("1000")

    patched = client.patch(f"/api/opportunities/{opportunity['id']}", json={"description": "Six month hire"})
    assert patched.status_code == 200
    assert patched.json()["description"] == "Six month hire"
    assert patched.json()["probability"] == 40

    invalid = client.patch(f"/api/opportunities/{opportunity['id']}", json={"probability": 150})
    assert invalid.status_code == 422

    assert client.delete(f"/api/opportunities/{opportunity['id']}").status_code == 200
    assert client.get(f"/api/opportunities/{opportunity['id']}").status_code == 404


def test_create_schedules_initial_contact_task(
    client: TestClient,
    db_session: Session,
    account: dict[str, str],
) -> None:
    opportunity = _create_opportunity(client, account)

    tasks = _tasks(db_session)
    assert len(tasks) == 1
    assert tasks[0].title == "Initial contact for Tower crane hire"
    assert tasks[0].type == "call"
    assert tasks[0].due_date.isoformat() == "2024-06-10"
    assert tasks[0].user_id == "user-1"
    assert str(tasks[0].related_opportunity_id) == opportunity["id"]

    created_events = [item for item in events.published_events if item["event_type"] == "crm.opportunity.created"]
    assert created_events
    assert created_events[-1]["opportunity_id"] == opportunity["id"]


def test_stage_change_schedules_follow_up_task(
    client: TestClient,
    db_session: Session,
    account: dict[str, str],
) -> None:
    opportunity = _create_opportunity(client, account)

    moved = client.patch(
        f"/api/opportunities/{opportunity['id']}",
        json={"stage": "lead"},
        headers={"X-Correlation-Id": "corr-stage-1"},
    )
    assert moved.status_code == 200
    assert moved.json()["stage"] == "lead"

    titles = [(task.title, task.due_date.isoformat()) for task in _tasks(db_session)]
    assert ("Qualify lead: Tower crane hire", "2024-06-11") in titles

    changed = [item for item in events.published_events if item["event_type"] == "crm.opportunity.stage_changed"]
    assert changed[-1]["previous_stage"] == "cold_call"
    assert changed[-1]["stage"] == "lead"
    assert changed[-1]["correlation_id"] == "corr-stage-1"


def test_stage_endpoint_and_unchanged_stage(client: TestClient, db_session: Session, account: dict[str, str]) -> None:
    opportunity = _create_opportunity(client, account, stage="quotation")

    same = client.patch(f"/api/opportunities/{opportunity['id']}", json={"stage": "quotation"})
    assert same.status_code == 200
    assert not [item for item in events.published_events if item["event_type"] == "crm.opportunity.stage_changed"]

    won = client.post(f"/api/opportunities/{opportunity['id']}/stage/won")
    assert won.status_code == 200
    assert won.json()["stage"] == "won"

    # initial contact only: "won" has no follow-up task
    assert len(_tasks(db_session)) == 1

    unknown = client.post(f"/api/opportunities/{opportunity['id']}/stage/archived")
    assert unknown.status_code == 422


def test_auto_tasks_can_be_disabled(
    client: TestClient,
    db_session: Session,
    account: dict[str, str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("AUTO_CREATE_STAGE_TASKS", "false")
    get_settings.cache_clear()

    _create_opportunity(client, account)
    assert _tasks(db_session) == []
    assert events.published_events


def test_pipeline_summary(client: TestClient, account: dict[str, str]) -> None:
    _create_opportunity(client, account, stage="won", value=1000, probability=50)
    _create_opportunity(client, account, stage="lead", value=2000)
    _create_opportunity(client, account, stage="lost", value=500, probability=10)

    response = client.get("/api/opportunities/pipeline")
    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["total_value"]) == Decimal("3500")
    assert Decimal(body["weighted_value"]) == Decimal("550")
    assert Decimal(body["won_value"]) == Decimal("1000")
    assert body["open_count"] == 1
    assert body["won_count"] == 1
    stages = {row["stage"]: row for row in body["stages"]}
    assert stages["lead"]["count"] == 1
    assert stages["negotiation"]["count"] == 0

    leads = client.get("/api/opportunities", params={"stage": "lead"}).json()
    assert [item["stage"] for item in leads] == ["lead"]


def test_opportunity_requires_known_company(client: TestClient, account: dict[str, str]) -> None:
    response = client.post(
        "/api/opportunities",
        json={"company_id": account["customer_id"], "customer_id": account["customer_id"], "title": "Bad"},
    )
    assert response.status_code == 422
    assert response.json()["code"] == "validation_failed"
    assert events.published_events == []
