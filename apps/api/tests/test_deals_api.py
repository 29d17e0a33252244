from __future__ import annotations

from collections.abc import Callable, Generator
from decimal import Decimal

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from innopark import events
from innopark.api.deps import get_current_actor
from innopark.business.sales import service as sales_service
from innopark.business.sales.models import SalesDeal
from innopark.business.sales.service import deal_service
from innopark.core.auth import ActorUser, AuthUser, get_current_user
from innopark.core.config import get_settings
from innopark.core.database import Base, get_db
from innopark.crm.models import CRMCompany, CRMContact
from innopark.main import app


ClientFixture = tuple[TestClient, Callable[[str], None]]


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
def graph(db_session: Session) -> dict[str, int]:
    acme = CRMCompany(name="Acme")
    globex = CRMCompany(name="Globex")
    db_session.add_all([acme, globex])
    db_session.flush()
    jane = CRMContact(name="Jane Roe", email="jane@acme.test", company_id=acme.id)
    jim = CRMContact(name="Jim Poe", company_id=acme.id)
    hank = CRMContact(name="Hank Scorpio", company_id=globex.id)
    db_session.add_all([jane, jim, hank])
    db_session.commit()
    return {"acme": acme.id, "globex": globex.id, "jane": jane.id, "jim": jim.id, "hank": hank.id}


@pytest.fixture()
def client(db_session: Session, graph: dict[str, int]) -> Generator[ClientFixture, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    actors = {
        "sales": ActorUser(user_id=1, company_id=graph["acme"], role="USER", permissions={"crm.deals"}),
        "plain": ActorUser(user_id=2, company_id=graph["acme"], role="USER"),
        "admin": ActorUser(user_id=3, company_id=graph["acme"], role="ADMIN"),
        "globex": ActorUser(user_id=4, company_id=graph["globex"], role="USER", permissions={"crm.deals"}),
    }
    state = {"current": "sales"}

    def override_get_current_actor(request: Request) -> ActorUser:
        actor = actors[state["current"]]
        actor.correlation_id = getattr(request.state, "correlation_id", None)
        return actor

    def set_actor(name: str) -> None:
        state["current"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_get_current_actor
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def _create_deal(client: TestClient, payload: dict | None = None) -> dict:
    response = client.post("/api/v1/deals", json=payload or {"title": "Deal"})
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _money(value: str) -> Decimal:
    return Decimal(value)


def test_create_deal_numbers_and_totals_items(client: ClientFixture) -> None:
    test_client, _ = client
    response = test_client.post(
        "/api/v1/deals",
        json={
            "title": "Widgets for Acme",
            "discount": 10,
            "discount_type": "%",
            "items": [{"item_name": "Widget", "quantity": 2, "unit_price": 10, "unit": "pieces"}],
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Deal created successfully"
    deal = body["data"]
    assert deal["deal_number"] == "DEAL#001"
    assert deal["status"] == "Draft"
    assert _money(deal["sub_total"]) == Decimal("20")
    assert _money(deal["discount_amount"]) == Decimal("2")
    assert _money(deal["tax_amount"]) == Decimal("0")
    assert _money(deal["total"]) == Decimal("18")
    assert deal["deal_date"] is not None
    assert len(deal["items"]) == 1
    assert deal["items"][0]["unit"] == "Pcs"
    assert _money(deal["items"][0]["amount"]) == Decimal("20")

    created = [item for item in events.published_events if item["event_type"] == "sales.deal.created"]
    assert created[-1]["payload"] == {"deal_id": deal["id"], "number": "DEAL#001"}


def test_numbers_are_sequential(client: ClientFixture) -> None:
    test_client, _ = client
    numbers = [_create_deal(test_client)["deal_number"] for _ in range(3)]

    assert numbers == ["DEAL#001", "DEAL#002", "DEAL#003"]


def test_status_is_normalised_on_create(client: ClientFixture) -> None:
    test_client, _ = client

    assert _create_deal(test_client, {"status": "accepted"})["status"] == "Accepted"
    assert _create_deal(test_client, {"status": "won"})["status"] == "Draft"


def test_manual_totals_without_items(client: ClientFixture) -> None:
    test_client, _ = client
    from_sub_total = _create_deal(test_client, {"sub_total": 500, "discount": 10})
    from_total = _create_deal(test_client, {"total": 300})

    assert _money(from_sub_total["sub_total"]) == Decimal("500")
    assert _money(from_sub_total["total"]) == Decimal("450")
    assert _money(from_total["sub_total"]) == Decimal("300")
    assert _money(from_total["total"]) == Decimal("300")


def test_permission_is_required_unless_privileged(client: ClientFixture) -> None:
    test_client, set_actor = client

    set_actor("plain")
    denied = test_client.post("/api/v1/deals", json={"title": "Nope"})
    assert denied.status_code == 403
    assert denied.json()["code"] == "permission_denied"

    set_actor("admin")
    assert test_client.post("/api/v1/deals", json={"title": "Admin deal"}).status_code == 201


def test_missing_tenant_is_rejected(client: ClientFixture) -> None:
    test_client, _ = client

    async def tenantless_user() -> AuthUser:
        return AuthUser(sub="7", role="USER", company_id=None, permissions=["crm.deals"])

    app.dependency_overrides.pop(get_current_actor)
    app.dependency_overrides[get_current_user] = tenantless_user

    response = test_client.get("/api/v1/deals")

    assert response.status_code == 400
    assert response.json()["error"] == "company_id is required"


def test_anonymous_caller_is_rejected(client: ClientFixture) -> None:
    test_client, _ = client
    app.dependency_overrides.pop(get_current_actor)

    response = test_client.get("/api/v1/deals")

    assert response.status_code == 403
    assert response.json()["error"] == "authentication required"


def test_update_replaces_items_and_recomputes(client: ClientFixture, db_session: Session) -> None:
    test_client, _ = client
    deal = _create_deal(
        test_client,
        {
            "discount": 10,
            "items": [
                {"item_name": "A", "quantity": 1, "unit_price": 10},
                {"item_name": "B", "quantity": 1, "unit_price": 10},
            ],
        },
    )

    response = test_client.put(
        f"/api/v1/deals/{deal['id']}",
        json={"items": [{"item_name": "C", "quantity": 1, "unit_price": 100}]},
    )

    assert response.status_code == 200
    updated = response.json()["data"]
    assert [item["item_name"] for item in updated["items"]] == ["C"]
    assert _money(updated["sub_total"]) == Decimal("100")
    assert _money(updated["total"]) == Decimal("90")

    stored = db_session.get(SalesDeal, deal["id"])
    assert [item.item_name for item in stored.items] == ["C"]


def test_discount_change_recomputes_totals(client: ClientFixture) -> None:
    test_client, _ = client
    with_items = _create_deal(test_client, {"items": [{"item_name": "A", "quantity": 4, "unit_price": 25}]})
    without_items = _create_deal(test_client, {"sub_total": 200})

    flat = test_client.put(f"/api/v1/deals/{with_items['id']}", json={"discount": 5, "discount_type": "flat"})
    assert _money(flat.json()["data"]["total"]) == Decimal("95")
    assert flat.json()["data"]["discount_type"] == "flat"

    percent = test_client.put(f"/api/v1/deals/{without_items['id']}", json={"discount": 25})
    assert _money(percent.json()["data"]["discount_amount"]) == Decimal("50")
    assert _money(percent.json()["data"]["total"]) == Decimal("150")


def test_update_without_fields_is_rejected(client: ClientFixture) -> None:
    test_client, _ = client
    deal = _create_deal(test_client)

    empty = test_client.put(f"/api/v1/deals/{deal['id']}", json={})
    assert empty.status_code == 400
    assert empty.json()["error"] == "No valid fields to update"

    only_nulls = test_client.put(f"/api/v1/deals/{deal['id']}", json={"currency": None, "status": None})
    assert only_nulls.status_code == 400


def test_failed_item_replacement_leaves_deal_untouched(
    client: ClientFixture,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    test_client, _ = client
    deal = _create_deal(test_client, {"title": "Keep me", "items": [{"item_name": "A", "quantity": 1, "unit_price": 40}]})

    def broken_build_items(items, totals):  # type: ignore[no-untyped-def]
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(deal_service, "_build_items", broken_build_items)
    response = test_client.put(
        f"/api/v1/deals/{deal['id']}",
        json={"title": "Changed", "items": [{"item_name": "B", "quantity": 1, "unit_price": 99}]},
    )

    assert response.status_code == 500
    assert response.json()["code"] == "storage_error"

    current = test_client.get(f"/api/v1/deals/{deal['id']}").json()["data"]
    assert current["title"] == "Keep me"
    assert [item["item_name"] for item in current["items"]] == ["A"]
    assert _money(current["total"]) == Decimal("40")


def test_number_taken_at_insert_time_is_retried(
    client: ClientFixture,
    db_session: Session,
    graph: dict[str, int],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    test_client, _ = client
    db_session.add(SalesDeal(company_id=graph["acme"], deal_number="DEAL#001"))
    db_session.commit()

    candidates = iter(["DEAL#001", "DEAL#002"])
    monkeypatch.setattr(sales_service, "generate_number", lambda *args, **kwargs: next(candidates))

    deal = _create_deal(test_client, {"title": "Raced"})

    assert deal["deal_number"] == "DEAL#002"
    assert deal["title"] == "Raced"


def test_deal_contact_falls_back_to_primary(client: ClientFixture, graph: dict[str, int]) -> None:
    test_client, _ = client
    deal = _create_deal(test_client, {"contact_id": graph["jane"]})

    detail = test_client.get(f"/api/v1/deals/{deal['id']}").json()["data"]

    assert detail["linked_contacts"] == [
        {
            "contact_id": graph["jane"],
            "name": "Jane Roe",
            "email": "jane@acme.test",
            "phone": None,
            "is_primary": True,
            "role": None,
        }
    ]


def test_linking_contacts_keeps_one_primary(client: ClientFixture, graph: dict[str, int]) -> None:
    test_client, _ = client
    deal = _create_deal(test_client)
    base = f"/api/v1/deals/{deal['id']}/contacts"

    first = test_client.post(base, json={"contact_id": graph["jim"], "is_primary": True, "role": "Buyer"})
    assert first.status_code == 201
    assert [(c["contact_id"], c["is_primary"]) for c in first.json()["data"]] == [(graph["jim"], True)]

    second = test_client.post(base, json={"contact_id": graph["jane"], "is_primary": True})
    assert [(c["contact_id"], c["is_primary"]) for c in second.json()["data"]] == [
        (graph["jane"], True),
        (graph["jim"], False),
    ]

    switched = test_client.put(f"{base}/{graph['jim']}", json={"is_primary": True, "role": "Champion"})
    assert switched.status_code == 200
    contacts = switched.json()["data"]
    assert [(c["contact_id"], c["is_primary"]) for c in contacts] == [(graph["jim"], True), (graph["jane"], False)]
    assert contacts[0]["role"] == "Champion"

    listed = test_client.get(base).json()["data"]
    assert [c["contact_id"] for c in listed] == [graph["jim"], graph["jane"]]


def test_unlinking_contacts(client: ClientFixture, graph: dict[str, int]) -> None:
    test_client, _ = client
    deal = _create_deal(test_client)
    base = f"/api/v1/deals/{deal['id']}/contacts"
    test_client.post(base, json={"contact_id": graph["jim"]})

    removed = test_client.delete(f"{base}/{graph['jim']}")
    assert removed.status_code == 200
    assert removed.json()["message"] == "Contact removed from deal"

    assert test_client.delete(f"{base}/{graph['jim']}").status_code == 404
    assert test_client.put(f"{base}/{graph['jim']}", json={"role": "Gone"}).status_code == 404
    assert test_client.get(base).json()["data"] == []


def test_contact_from_another_tenant_cannot_be_linked(client: ClientFixture, graph: dict[str, int]) -> None:
    test_client, _ = client
    deal = _create_deal(test_client)

    response = test_client.post(f"/api/v1/deals/{deal['id']}/contacts", json={"contact_id": graph["hank"]})

    assert response.status_code == 404
    assert response.json()["error"] == "contact not found"


def test_deal_cannot_point_at_another_tenants_contact_or_lead(
    client: ClientFixture,
    db_session: Session,
    graph: dict[str, int],
) -> None:
    test_client, _ = client

    foreign_contact = test_client.post("/api/v1/deals", json={"title": "Poached", "contact_id": graph["hank"]})
    assert foreign_contact.status_code == 404
    assert foreign_contact.json()["error"] == "contact not found"

    missing_lead = test_client.post("/api/v1/deals", json={"title": "Orphan", "lead_id": 99999})
    assert missing_lead.status_code == 404
    assert missing_lead.json()["error"] == "lead not found"
    assert db_session.query(SalesDeal).count() == 0

    deal = _create_deal(test_client, {"title": "Kept", "contact_id": graph["jane"]})
    updated = test_client.put(f"/api/v1/deals/{deal['id']}", json={"contact_id": graph["hank"]})
    assert updated.status_code == 404
    assert test_client.get(f"/api/v1/deals/{deal['id']}").json()["data"]["contact_id"] == graph["jane"]


def test_status_and_stage_routes(client: ClientFixture) -> None:
    test_client, _ = client
    deal = _create_deal(test_client)

    status_response = test_client.put(f"/api/v1/deals/{deal['id']}/status", json={"status": "sent"})
    assert status_response.json()["data"]["status"] == "Sent"

    stage_response = test_client.put(f"/api/v1/deals/{deal['id']}/stage", json={"stage_id": 3, "pipeline_id": 2})
    assert stage_response.status_code == 200
    assert stage_response.json()["data"]["stage_id"] == 3
    assert stage_response.json()["data"]["pipeline_id"] == 2

    stage_events = [item for item in events.published_events if item["event_type"] == "sales.deal.stage_changed"]
    assert stage_events[-1]["payload"] == {"deal_id": deal["id"], "stage_id": 3, "pipeline_id": 2}


def test_list_filters_and_search(client: ClientFixture) -> None:
    test_client, _ = client
    draft = _create_deal(test_client, {"title": "Rocket fuel"})
    accepted = _create_deal(test_client, {"title": "Anvils", "status": "Accepted"})

    everything = test_client.get("/api/v1/deals", params={"status": "all"}).json()["data"]
    assert [item["id"] for item in everything] == [accepted["id"], draft["id"]]

    by_status = test_client.get("/api/v1/deals", params={"status": "accepted"}).json()["data"]
    assert [item["id"] for item in by_status] == [accepted["id"]]

    by_title = test_client.get("/api/v1/deals", params={"search": "rocket"}).json()["data"]
    assert [item["id"] for item in by_title] == [draft["id"]]

    by_number = test_client.get("/api/v1/deals", params={"search": "DEAL#002"}).json()["data"]
    assert [item["id"] for item in by_number] == [accepted["id"]]


def test_other_tenant_sees_nothing(client: ClientFixture) -> None:
    test_client, set_actor = client
    deal = _create_deal(test_client)

    set_actor("globex")
    assert test_client.get(f"/api/v1/deals/{deal['id']}").status_code == 404
    assert test_client.put(f"/api/v1/deals/{deal['id']}", json={"title": "Mine"}).status_code == 404
    assert test_client.get("/api/v1/deals").json()["data"] == []


def test_delete_hides_deal(client: ClientFixture, db_session: Session) -> None:
    test_client, _ = client
    deal = _create_deal(test_client)

    response = test_client.delete(f"/api/v1/deals/{deal['id']}")

    assert response.status_code == 200
    assert response.json()["message"] == "Deal deleted successfully"
    assert test_client.get(f"/api/v1/deals/{deal['id']}").status_code == 404
    assert test_client.get("/api/v1/deals").json()["data"] == []
    assert db_session.get(SalesDeal, deal["id"]).is_deleted is True
