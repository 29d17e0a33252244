from innopark.business.sales.api import deals_router, offers_router
from innopark.business.sales.documents import calculate_totals, generate_number, normalize_deal_status, normalize_unit
from innopark.business.sales.models import SalesDeal, SalesDealContact, SalesDealItem, SalesOffer, SalesOfferItem
from innopark.business.sales.schemas import (
    DealContactLink,
    DealCreate,
    DealDetailRead,
    DealRead,
    DealUpdate,
    OfferCreate,
    OfferRead,
    OfferUpdate,
)
from innopark.business.sales.service import DealService, SalesDocumentService, deal_service, offer_service

__all__ = [
    "deals_router",
    "offers_router",
    "calculate_totals",
    "generate_number",
    "normalize_deal_status",
    "normalize_unit",
    "SalesDeal",
    "SalesDealContact",
    "SalesDealItem",
    "SalesOffer",
    "SalesOfferItem",
    "DealContactLink",
    "DealCreate",
    "DealDetailRead",
    "DealRead",
    "DealUpdate",
    "OfferCreate",
    "OfferRead",
    "OfferUpdate",
    "DealService",
    "SalesDocumentService",
    "deal_service",
    "offer_service",
]
