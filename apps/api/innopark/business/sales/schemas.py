from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class DocumentItemInput(BaseModel):
    item_name: str = Field(min_length=1)
    description: str | None = None
    quantity: Decimal = Decimal("1")
    unit: str | None = None
    unit_price: Decimal = Decimal("0")
    tax: str | None = None
    tax_rate: Decimal = Decimal("0")
    file_path: str | None = None
    amount: Decimal | None = None


class DocumentItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_name: str
    description: str | None
    quantity: Decimal
    unit: str
    unit_price: Decimal
    tax: str | None
    tax_rate: Decimal
    file_path: str | None
    amount: Decimal


class _DocumentFields(BaseModel):
    valid_till: date | None = None
    currency: str = "USD"
    client_id: int | None = None
    project_id: int | None = None
    lead_id: int | None = None
    calculate_tax: str = "After Discount"
    description: str | None = None
    note: str | None = None
    terms: str | None = "Thank you for your business."
    tax: str | None = None
    second_tax: str | None = None
    discount: Decimal = Decimal("0")
    discount_type: str = "%"
    status: str | None = None
    items: list[DocumentItemInput] = Field(default_factory=list)
    # only used when no items are sent
    sub_total: Decimal | None = None
    total: Decimal | None = None


class DealCreate(_DocumentFields):
    title: str | None = None
    deal_date: date | None = None
    contact_id: int | None = None
    pipeline_id: int | None = None
    stage_id: int | None = None


class OfferCreate(_DocumentFields):
    offer_date: date | None = None


class _DocumentUpdateFields(BaseModel):
    valid_till: date | None = None
    currency: str | None = None
    client_id: int | None = None
    project_id: int | None = None
    lead_id: int | None = None
    calculate_tax: str | None = None
    description: str | None = None
    note: str | None = None
    terms: str | None = None
    tax: str | None = None
    second_tax: str | None = None
    discount: Decimal | None = None
    discount_type: str | None = None
    status: str | None = None
    items: list[DocumentItemInput] | None = None


class DealUpdate(_DocumentUpdateFields):
    title: str | None = None
    deal_date: date | None = None
    contact_id: int | None = None
    pipeline_id: int | None = None
    stage_id: int | None = None


class OfferUpdate(_DocumentUpdateFields):
    offer_date: date | None = None


class DocumentFilter(BaseModel):
    status: str | None = None
    search: str | None = None
    lead_id: int | None = None
    client_id: int | None = None


class DealStatusUpdate(BaseModel):
    status: str


class DealStageUpdate(BaseModel):
    stage_id: int
    pipeline_id: int | None = None


class _DocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    valid_till: date | None
    currency: str
    client_id: int | None
    project_id: int | None
    lead_id: int | None
    calculate_tax: str
    description: str | None
    note: str | None
    terms: str | None
    tax: str | None
    second_tax: str | None
    discount: Decimal
    discount_type: str
    sub_total: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    status: str
    created_by: int | None
    created_at: datetime
    updated_at: datetime
    items: list[DocumentItemRead] = Field(default_factory=list)


class DealContactRead(BaseModel):
    contact_id: int
    name: str | None
    email: str | None
    phone: str | None
    is_primary: bool
    role: str | None


class DealRead(_DocumentRead):
    deal_number: str
    title: str | None
    deal_date: date | None
    contact_id: int | None
    pipeline_id: int | None
    stage_id: int | None


class DealDetailRead(DealRead):
    linked_contacts: list[DealContactRead] = Field(default_factory=list)


class OfferRead(_DocumentRead):
    offer_number: str
    offer_date: date | None


class DealContactLink(BaseModel):
    contact_id: int
    is_primary: bool = False
    role: str | None = None


class DealContactLinkUpdate(BaseModel):
    is_primary: bool | None = None
    role: str | None = None
