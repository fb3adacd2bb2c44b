from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesdesk import events
from salesdesk.core.config import get_settings
from salesdesk.core.database import Base, get_db
from salesdesk.crm.api import get_current_user as crm_get_current_user
from salesdesk.crm.service import ActorUser
from salesdesk.main import app


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
        return ActorUser(
            user_id="user-1",
            correlation_id=getattr(request.state, "correlation_id", None),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[crm_get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_account(client: TestClient, correlation_id: str) -> dict[str, str]:
    company = client.post(
        "/api/companies",
        json={"name": "Corr Company", "type": "Contractor"},
        headers={"X-Correlation-Id": correlation_id},
    )
    assert company.status_code == 201
    customer = client.post(
        "/api/customers",
        json={"name": "Corr Customer", "company_id": company.json()["id"]},
        headers={"X-Correlation-Id": correlation_id},
    )
    assert customer.status_code == 201
    return {"company_id": company.json()["id"], "customer_id": customer.json()["id"]}


def test_generated_correlation_id_returned_in_header_and_error_envelope(client: TestClient) -> None:
    response = client.get(f"/api/companies/{uuid.uuid4()}")
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    body = response.json()
    assert body["correlation_id"] == header_value
    assert set(body) == {"code", "message", "details", "correlation_id"}


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.get(f"/api/companies/{uuid.uuid4()}", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404
    assert response.headers.get("x-correlation-id") == "abc-123"
    assert response.headers.get("x-request-id") == "abc-123"
    assert response.json()["correlation_id"] == "abc-123"


def test_unsafe_correlation_id_is_replaced(client: TestClient) -> None:
    response = client.get("/api/companies", headers={"X-Correlation-Id": "bad id with spaces"})
    assert response.status_code == 200
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    assert header_value != "bad id with spaces"
    assert uuid.UUID(header_value)


def test_event_envelope_includes_correlation_id(client: TestClient) -> None:
    account = _create_account(client, "corr-event-1")
    response = client.post(
        "/api/opportunities",
        json={**account, "title": "Corr Opportunity"},
        headers={"X-Correlation-Id": "corr-event-1"},
    )
    assert response.status_code == 201

    created_events = [item for item in events.published_events if item.get("event_type") == "crm.opportunity.created"]
    assert created_events
    assert created_events[-1].get("correlation_id") == "corr-event-1"
