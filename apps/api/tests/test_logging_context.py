from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesdesk.core.config import get_settings
from salesdesk.core.database import Base, get_db
from salesdesk.crm.api import get_current_user as crm_get_current_user
from salesdesk.crm.service import ActorUser
from salesdesk.logging import JsonLogFormatter
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
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
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


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    company_id = uuid.uuid4()
    response = client.get(f"/api/companies/{company_id}", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [
        record for record in caplog.records if record.name == "salesdesk.request" and record.getMessage() == "http.request"
    ]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/companies/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_store_writes_are_logged_with_entity(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.post(
        "/api/companies",
        json={"name": "Log Company", "type": "Contractor"},
        headers={"X-Correlation-Id": "log-corr-1"},
    )
    assert response.status_code == 201

    store_records = [record for record in caplog.records if record.name == "salesdesk.crm.store"]
    assert any(
        record.getMessage() == "crm.store.created"
        and getattr(record, "entity", None) == "company"
        and getattr(record, "record_id", None) == response.json()["id"]
        and getattr(record, "correlation_id", None) == "log-corr-1"
        for record in store_records
    )


def test_json_formatter_keeps_known_fields_only() -> None:
    record = logging.makeLogRecord(
        {
            "name": "salesdesk.crm.store",
            "levelname": "WARNING",
            "msg": "crm.store.failed",
            "entity": "visit",
            "operation": "update",
            "error": "x" * 600,
            "secret": "do-not-log",
            "correlation_id": "fmt-1",
        }
    )
    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["msg"] == "crm.store.failed"
    assert payload["correlation_id"] == "fmt-1"
    assert payload["fields"]["entity"] == "visit"
    assert payload["fields"]["operation"] == "update"
    assert len(payload["fields"]["error"]) == 500
    assert "secret" not in payload["fields"]
