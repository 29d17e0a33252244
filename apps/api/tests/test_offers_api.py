from __future__ import annotations

from collections.abc import Generator
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from innopark import events
from innopark.api.deps import get_current_actor
from innopark.core.auth import ActorUser
from innopark.core.config import get_settings
from innopark.core.database import Base, get_db
from innopark.crm.models import CRMCompany, CRMLead
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
    events.published_events.clear()
    yield
    get_settings.cache_clear()
    events.published_events.clear()


@pytest.fixture()
def tenant(db_session: Session) -> dict[str, int]:
    company = CRMCompany(name="Acme")
    db_session.add(company)
    db_session.flush()
    lead = CRMLead(person_name="Lena Lead", company_id=company.id)
    db_session.add(lead)
    db_session.commit()
    return {"company": company.id, "lead": lead.id}


@pytest.fixture()
def client(db_session: Session, tenant: dict[str, int]) -> Generator[tuple[TestClient, dict[str, str]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    state = {"permissions": "crm.offers"}

    def override_get_current_actor(request: Request) -> ActorUser:
        return ActorUser(
            user_id=1,
            company_id=tenant["company"],
            role="USER",
            permissions={state["permissions"]},
            correlation_id=getattr(request.state, "correlation_id", None),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_get_current_actor
    with TestClient(app) as test_client:
        yield test_client, state
    app.dependency_overrides.clear()


def test_create_offer_defaults_number_and_validity(client: tuple[TestClient, dict[str, str]], tenant: dict[str, int]) -> None:
    test_client, _ = client
    response = test_client.post(
        "/api/v1/offers",
        json={
            "lead_id": tenant["lead"],
            "items": [{"item_name": "Consulting", "quantity": 8, "unit": "hour", "unit_price": 120}],
        },
    )

    assert response.status_code == 201
    offer = response.json()["data"]
    assert offer["offer_number"] == "OFFER#001"
    assert offer["offer_date"] == date.today().isoformat()
    assert offer["valid_till"] == (date.today() + timedelta(days=30)).isoformat()
    assert offer["items"][0]["unit"] == "Hours"
    assert Decimal(offer["total"]) == Decimal("960")
    assert offer["terms"] == "Thank you for your business."


def test_explicit_validity_is_kept(client: tuple[TestClient, dict[str, str]]) -> None:
    test_client, _ = client
    response = test_client.post("/api/v1/offers", json={"valid_till": "2027-01-31", "offer_date": "2026-12-01"})

    offer = response.json()["data"]
    assert offer["valid_till"] == "2027-01-31"
    assert offer["offer_date"] == "2026-12-01"


def test_offer_numbering_is_independent_of_deals(client: tuple[TestClient, dict[str, str]]) -> None:
    test_client, state = client
    state["permissions"] = "crm.deals"
    test_client.post("/api/v1/deals", json={"title": "A deal"})

    state["permissions"] = "crm.offers"
    first = test_client.post("/api/v1/offers", json={}).json()["data"]
    second = test_client.post("/api/v1/offers", json={}).json()["data"]

    assert [first["offer_number"], second["offer_number"]] == ["OFFER#001", "OFFER#002"]


def test_update_get_list_and_delete(client: tuple[TestClient, dict[str, str]], tenant: dict[str, int]) -> None:
    test_client, _ = client
    offer = test_client.post("/api/v1/offers", json={"sub_total": 1000}).json()["data"]
    other = test_client.post("/api/v1/offers", json={"lead_id": tenant["lead"]}).json()["data"]

    updated = test_client.put(
        f"/api/v1/offers/{offer['id']}",
        json={"status": "declined", "discount": 100, "discount_type": "flat", "note": "Too pricey"},
    )
    assert updated.status_code == 200
    data = updated.json()["data"]
    assert data["status"] == "Declined"
    assert Decimal(data["total"]) == Decimal("900")
    assert data["note"] == "Too pricey"

    fetched = test_client.get(f"/api/v1/offers/{offer['id']}").json()["data"]
    assert fetched["status"] == "Declined"

    by_lead = test_client.get("/api/v1/offers", params={"lead_id": tenant["lead"]}).json()["data"]
    assert [item["id"] for item in by_lead] == [other["id"]]

    deleted = test_client.delete(f"/api/v1/offers/{offer['id']}")
    assert deleted.json()["message"] == "Offer deleted successfully"
    assert test_client.get(f"/api/v1/offers/{offer['id']}").status_code == 404
    assert [item["id"] for item in test_client.get("/api/v1/offers").json()["data"]] == [other["id"]]


def test_offers_require_their_own_permission(client: tuple[TestClient, dict[str, str]]) -> None:
    test_client, state = client
    state["permissions"] = "crm.deals"

    response = test_client.get("/api/v1/offers")

    assert response.status_code == 403
    assert response.json()["error"] == "Missing permission: crm.offers"
