from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from innopark.api.deps import get_current_actor
from innopark.core.auth import ActorUser, AuthUser, get_current_user as auth_get_current_user
from innopark.core.config import get_settings
from innopark.core.database import Base, get_db
from innopark.crm.models import CRMCompany
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
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    company = CRMCompany(name="Metrics Co")
    db_session.add(company)
    db_session.commit()
    company_id = company.id

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_actor(request: Request) -> ActorUser:
        return ActorUser(
            user_id=1,
            company_id=company_id,
            role="ADMIN",
            correlation_id="metrics-corr-1",
        )

    def override_auth_user() -> AuthUser:
        return AuthUser(sub="1", role="ADMIN", company_id=company_id, permissions=["system.metrics.read"])

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_actor
    app.dependency_overrides[auth_get_current_user] = override_auth_user

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_and_crm_metrics(client: TestClient) -> None:
    health = client.get("/health")
    assert health.status_code == 200

    deal = client.post("/api/v1/deals", json={"title": "Metrics deal"})
    assert deal.status_code == 201
    assert client.put(f"/api/v1/deals/{deal.json()['data']['id']}/status", json={"status": "sent"}).status_code == 200

    activity = client.post(
        "/api/v1/activities",
        json={"deal_id": deal.json()["data"]["id"], "type": "call", "description": "Metered"},
    )
    assert activity.status_code == 201

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "crm_activities_created_total" in body
    assert "crm_tasks_overdue_promoted_total" in body

    assert 'path="/health"' in body
    assert 'path="/api/v1/deals/{id}/status"' in body
    assert 'type="call"' in body
    assert 'policy="permissive"' in body


def test_metrics_require_permission(client: TestClient) -> None:
    app.dependency_overrides[auth_get_current_user] = lambda: AuthUser(sub="2", role="USER", company_id=1)

    response = client.get("/metrics")

    assert response.status_code == 403
    assert response.json()["code"] == "http_error"


def test_metrics_hidden_when_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    response = client.get("/metrics")

    assert response.status_code == 404
