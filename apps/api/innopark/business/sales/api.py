from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from innopark.api.deps import get_current_actor
from innopark.api.responses import Envelope, crm_error_response
from innopark.business.sales.schemas import (
    DealContactLink,
    DealContactLinkUpdate,
    DealContactRead,
    DealCreate,
    DealDetailRead,
    DealRead,
    DealStageUpdate,
    DealStatusUpdate,
    DealUpdate,
    DocumentFilter,
    OfferCreate,
    OfferRead,
    OfferUpdate,
)
from innopark.business.sales.service import deal_service, offer_service
from innopark.core.auth import ActorUser
from innopark.core.database import get_db
from innopark.core.errors import CRMError
from innopark.core.rbac import require_permission


deals_router = APIRouter(prefix="/api/v1/deals", tags=["sales.deals"])
offers_router = APIRouter(prefix="/api/v1/offers", tags=["sales.offers"])

DEALS_PERMISSION = "crm.deals"
OFFERS_PERMISSION = "crm.offers"


@deals_router.get("", response_model=Envelope[list[DealRead]])
def list_deals(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None),
    lead_id: int | None = Query(default=None),
    client_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[list[DealRead]] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        filters = DocumentFilter(status=status_filter, search=search, lead_id=lead_id, client_id=client_id)
        return Envelope[list[DealRead]](data=deal_service.list_documents(db, user, filters))
    except CRMError as exc:
        return crm_error_response(request, exc)


@deals_router.post("", response_model=Envelope[DealRead], status_code=status.HTTP_201_CREATED)
def create_deal(
    request: Request,
    dto: DealCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[DealRead] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        return Envelope[DealRead](data=deal_service.create_document(db, user, dto), message="Deal created successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@deals_router.get("/{deal_id}", response_model=Envelope[DealDetailRead])
def get_deal(
    request: Request,
    deal_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[DealDetailRead] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        return Envelope[DealDetailRead](data=deal_service.get_document(db, user, deal_id))
    except CRMError as exc:
        return crm_error_response(request, exc)


@deals_router.put("/{deal_id}", response_model=Envelope[DealRead])
def update_deal(
    request: Request,
    deal_id: int,
    dto: DealUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[DealRead] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        return Envelope[DealRead](data=deal_service.update_document(db, user, deal_id, dto))
    except CRMError as exc:
        return crm_error_response(request, exc)


@deals_router.delete("/{deal_id}", response_model=Envelope[None])
def delete_deal(
    request: Request,
    deal_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[None] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        deal_service.delete_document(db, user, deal_id)
        return Envelope[None](message="Deal deleted successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@deals_router.put("/{deal_id}/status", response_model=Envelope[DealRead])
def update_deal_status(
    request: Request,
    deal_id: int,
    dto: DealStatusUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[DealRead] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        return Envelope[DealRead](data=deal_service.update_status(db, user, deal_id, dto.status))
    except CRMError as exc:
        return crm_error_response(request, exc)


@deals_router.put("/{deal_id}/stage", response_model=Envelope[DealRead])
def update_deal_stage(
    request: Request,
    deal_id: int,
    dto: DealStageUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[DealRead] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        return Envelope[DealRead](data=deal_service.update_stage(db, user, deal_id, dto))
    except CRMError as exc:
        return crm_error_response(request, exc)


@deals_router.get("/{deal_id}/contacts", response_model=Envelope[list[DealContactRead]])
def list_deal_contacts(
    request: Request,
    deal_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[list[DealContactRead]] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        return Envelope[list[DealContactRead]](data=deal_service.list_contacts(db, user, deal_id))
    except CRMError as exc:
        return crm_error_response(request, exc)


@deals_router.post(
    "/{deal_id}/contacts",
    response_model=Envelope[list[DealContactRead]],
    status_code=status.HTTP_201_CREATED,
)
def link_deal_contact(
    request: Request,
    deal_id: int,
    dto: DealContactLink,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[list[DealContactRead]] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        return Envelope[list[DealContactRead]](data=deal_service.link_contact(db, user, deal_id, dto))
    except CRMError as exc:
        return crm_error_response(request, exc)


@deals_router.put("/{deal_id}/contacts/{contact_id}", response_model=Envelope[list[DealContactRead]])
def update_deal_contact(
    request: Request,
    deal_id: int,
    contact_id: int,
    dto: DealContactLinkUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[list[DealContactRead]] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        contacts = deal_service.update_contact_link(db, user, deal_id, contact_id, dto)
        return Envelope[list[DealContactRead]](data=contacts)
    except CRMError as exc:
        return crm_error_response(request, exc)


@deals_router.delete("/{deal_id}/contacts/{contact_id}", response_model=Envelope[None])
def unlink_deal_contact(
    request: Request,
    deal_id: int,
    contact_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[None] | JSONResponse:
    try:
        require_permission(user, DEALS_PERMISSION)
        deal_service.unlink_contact(db, user, deal_id, contact_id)
        return Envelope[None](message="Contact removed from deal")
    except CRMError as exc:
        return crm_error_response(request, exc)


@offers_router.get("", response_model=Envelope[list[OfferRead]])
def list_offers(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None),
    lead_id: int | None = Query(default=None),
    client_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[list[OfferRead]] | JSONResponse:
    try:
        require_permission(user, OFFERS_PERMISSION)
        filters = DocumentFilter(status=status_filter, search=search, lead_id=lead_id, client_id=client_id)
        return Envelope[list[OfferRead]](data=offer_service.list_documents(db, user, filters))
    except CRMError as exc:
        return crm_error_response(request, exc)


@offers_router.post("", response_model=Envelope[OfferRead], status_code=status.HTTP_201_CREATED)
def create_offer(
    request: Request,
    dto: OfferCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[OfferRead] | JSONResponse:
    try:
        require_permission(user, OFFERS_PERMISSION)
        offer = offer_service.create_document(db, user, dto)
        return Envelope[OfferRead](data=offer, message="Offer created successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@offers_router.get("/{offer_id}", response_model=Envelope[OfferRead])
def get_offer(
    request: Request,
    offer_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[OfferRead] | JSONResponse:
    try:
        require_permission(user, OFFERS_PERMISSION)
        return Envelope[OfferRead](data=offer_service.get_document(db, user, offer_id))
    except CRMError as exc:
        return crm_error_response(request, exc)


@offers_router.put("/{offer_id}", response_model=Envelope[OfferRead])
def update_offer(
    request: Request,
    offer_id: int,
    dto: OfferUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[OfferRead] | JSONResponse:
    try:
        require_permission(user, OFFERS_PERMISSION)
        return Envelope[OfferRead](data=offer_service.update_document(db, user, offer_id, dto))
    except CRMError as exc:
        return crm_error_response(request, exc)


@offers_router.delete("/{offer_id}", response_model=Envelope[None])
def delete_offer(
    request: Request,
    offer_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[None] | JSONResponse:
    try:
        require_permission(user, OFFERS_PERMISSION)
        offer_service.delete_document(db, user, offer_id)
        return Envelope[None](message="Offer deleted successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)
