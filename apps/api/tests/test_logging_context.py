from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from innopark.api.deps import get_current_actor
from innopark.core.auth import ActorUser
from innopark.core.config import get_settings
from innopark.core.database import Base, get_db
from innopark.crm.models import CRMCompany
from innopark.logging import JsonLogFormatter
from innopark.main import app


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
def company_id(db_session: Session) -> int:
    company = CRMCompany(name="Log Co")
    db_session.add(company)
    db_session.commit()
    return company.id


@pytest.fixture()
def client(db_session: Session, company_id: int) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_actor(request: Request) -> ActorUser:
        return ActorUser(
            user_id=1,
            company_id=company_id,
            role="ADMIN",
            correlation_id=getattr(request.state, "correlation_id", None),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_get_current_actor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.put("/api/v1/tasks/12345", json={"title": "x"}, headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [
        record for record in caplog.records if record.name == "innopark.request" and record.getMessage() == "http.request"
    ]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "PUT"
        and getattr(record, "path", None) == "/api/v1/tasks/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_activity_creation_is_logged_with_context(
    client: TestClient,
    company_id: int,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)

    response = client.post(
        "/api/v1/activities",
        json={"company_id": company_id, "type": "note", "description": "Logged"},
        headers={"X-Correlation-Id": "log-act-1"},
    )
    assert response.status_code == 201

    activity_records = [record for record in caplog.records if record.name == "innopark.crm"]
    assert any(
        record.getMessage() == "activity.created"
        and getattr(record, "entity_id", None) == response.json()["data"]["id"]
        and getattr(record, "reference_type", None) == "company"
        and getattr(record, "policy", None) == "permissive"
        and getattr(record, "correlation_id", None) == "log-act-1"
        for record in activity_records
    )


def test_json_formatter_keeps_only_known_fields() -> None:
    record = logging.LogRecord("innopark.crm", logging.INFO, __file__, 1, "activity.created", None, None)
    record.entity_id = 7
    record.correlation_id = "fmt-1"
    record.password = "hunter2"
    record.error = "x" * 600

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["msg"] == "activity.created"
    assert payload["correlation_id"] == "fmt-1"
    assert payload["fields"]["entity_id"] == 7
    assert "password" not in payload["fields"]
    assert len(payload["fields"]["error"]) == 500
