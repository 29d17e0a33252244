from __future__ import annotations

import os
from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("OTEL_ENABLED", "true")

from innopark.api.deps import get_current_actor
from innopark.core.auth import ActorUser
from innopark.core.config import get_settings
from innopark.core.database import Base, get_db
from innopark.crm.models import CRMCompany
from innopark.main import app
from innopark.otel import setup_inmemory_otel


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
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("api")
    exporter.clear()
    return exporter


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    company = CRMCompany(name="Traced Co")
    db_session.add(company)
    db_session.commit()
    company_id = company.id

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


def test_request_span_contains_correlation_id(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.post(
        "/api/v1/tasks",
        json={"title": "Traced", "assigned_to": 1, "due_date": "2030-01-01T00:00:00Z"},
        headers={"X-Correlation-Id": "otel-corr-1"},
    )
    assert response.status_code == 201

    spans = span_exporter.get_finished_spans()
    assert spans
    assert any(span.attributes.get("correlation_id") == "otel-corr-1" for span in spans)


def test_document_numbering_span(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.post("/api/v1/offers", json={}, headers={"X-Correlation-Id": "otel-number-1"})
    assert response.status_code == 201

    number_spans = [span for span in span_exporter.get_finished_spans() if span.name == "sales.generate_number"]
    assert number_spans
    assert any(
        span.attributes.get("document.prefix") == "OFFER"
        and span.attributes.get("document.number") == response.json()["data"]["offer_number"]
        for span in number_spans
    )
