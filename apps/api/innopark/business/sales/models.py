from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from innopark.core.database import Base
from innopark.crm import models as crm_models  # noqa: F401


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SalesDeal(Base):
    __tablename__ = "sales_deal"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("crm_company.id"), nullable=False)
    deal_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    deal_date: Mapped[date | None] = mapped_column(Date(), nullable=True)
    valid_till: Mapped[date | None] = mapped_column(Date(), nullable=True)
    currency: Mapped[str] = mapped_column(String(16), nullable=False, default="USD", server_default="USD")
    client_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    project_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lead_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("crm_lead.id"), nullable=True)
    contact_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("crm_contact.id"), nullable=True)
    calculate_tax: Mapped[str] = mapped_column(
        String(32), nullable=False, default="After Discount", server_default="After Discount"
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)
    tax: Mapped[str | None] = mapped_column(String(64), nullable=True)
    second_tax: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    discount_type: Mapped[str] = mapped_column(String(8), nullable=False, default="%", server_default="%")
    sub_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Draft", server_default="Draft")
    pipeline_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stage_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    items: Mapped[list[SalesDealItem]] = relationship(
        "SalesDealItem",
        back_populates="deal",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SalesDealItem.id",
    )

    __table_args__ = (Index("ix_sales_deal_company_created", "company_id", "created_at"),)


class SalesDealItem(Base):
    __tablename__ = "sales_deal_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(Integer, ForeignKey("sales_deal.id", ondelete="CASCADE"), nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=Decimal("1"))
    unit: Mapped[str] = mapped_column(String(8), nullable=False, default="Pcs", server_default="Pcs")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    tax: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False, default=Decimal("0"))
    file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))

    deal: Mapped[SalesDeal] = relationship("SalesDeal", back_populates="items")


class SalesDealContact(Base):
    __tablename__ = "sales_deal_contact"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(Integer, ForeignKey("sales_deal.id", ondelete="CASCADE"), nullable=False)
    contact_id: Mapped[int] = mapped_column(Integer, ForeignKey("crm_contact.id", ondelete="CASCADE"), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    role: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("deal_id", "contact_id", name="uq_sales_deal_contact"),)


class SalesOffer(Base):
    __tablename__ = "sales_offer"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("crm_company.id"), nullable=False)
    offer_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    offer_date: Mapped[date | None] = mapped_column(Date(), nullable=True)
    valid_till: Mapped[date | None] = mapped_column(Date(), nullable=True)
    currency: Mapped[str] = mapped_column(String(16), nullable=False, default="USD", server_default="USD")
    client_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    project_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lead_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("crm_lead.id"), nullable=True)
    calculate_tax: Mapped[str] = mapped_column(
        String(32), nullable=False, default="After Discount", server_default="After Discount"
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)
    tax: Mapped[str | None] = mapped_column(String(64), nullable=True)
    second_tax: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    discount_type: Mapped[str] = mapped_column(String(8), nullable=False, default="%", server_default="%")
    sub_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Draft", server_default="Draft")
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    items: Mapped[list[SalesOfferItem]] = relationship(
        "SalesOfferItem",
        back_populates="offer",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SalesOfferItem.id",
    )

    __table_args__ = (Index("ix_sales_offer_company_created", "company_id", "created_at"),)


class SalesOfferItem(Base):
    __tablename__ = "sales_offer_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    offer_id: Mapped[int] = mapped_column(Integer, ForeignKey("sales_offer.id", ondelete="CASCADE"), nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=Decimal("1"))
    unit: Mapped[str] = mapped_column(String(8), nullable=False, default="Pcs", server_default="Pcs")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    tax: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False, default=Decimal("0"))
    file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))

    offer: Mapped[SalesOffer] = relationship("SalesOffer", back_populates="items")
