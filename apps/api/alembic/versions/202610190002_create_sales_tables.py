"""create sales deal and offer tables

Revision ID: 202610190002
Revises: 202610190001
Create Date: 2026-10-19 00:02:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190002"
down_revision: str | None = "202610190001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _document_columns() -> list[sa.Column]:
    return [
        sa.Column("valid_till", sa.Date(), nullable=True),
        sa.Column("currency", sa.String(length=16), server_default="USD", nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("project_id", sa.Integer(), nullable=True),
        sa.Column("lead_id", sa.Integer(), nullable=True),
        sa.Column("calculate_tax", sa.String(length=32), server_default="After Discount", nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("tax", sa.String(length=64), nullable=True),
        sa.Column("second_tax", sa.String(length=64), nullable=True),
        sa.Column("discount", sa.Numeric(precision=18, scale=2), server_default="0", nullable=False),
        sa.Column("discount_type", sa.String(length=8), server_default="%", nullable=False),
        sa.Column("sub_total", sa.Numeric(precision=18, scale=2), server_default="0", nullable=False),
        sa.Column("discount_amount", sa.Numeric(precision=18, scale=2), server_default="0", nullable=False),
        sa.Column("tax_amount", sa.Numeric(precision=18, scale=2), server_default="0", nullable=False),
        sa.Column("total", sa.Numeric(precision=18, scale=2), server_default="0", nullable=False),
        sa.Column("status", sa.String(length=16), server_default="Draft", nullable=False),
    ]


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    ]


def _item_columns(parent_column: str, parent_table: str) -> list[sa.Column | sa.Constraint]:
    return [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(parent_column, sa.Integer(), nullable=False),
        sa.Column("item_name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("unit", sa.String(length=8), server_default="Pcs", nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column("tax", sa.String(length=64), nullable=True),
        sa.Column("tax_rate", sa.Numeric(precision=9, scale=4), nullable=False),
        sa.Column("file_path", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.ForeignKeyConstraint([parent_column], [f"{parent_table}.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    ]


def upgrade() -> None:
    op.create_table(
        "sales_deal",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("deal_number", sa.String(length=64), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("deal_date", sa.Date(), nullable=True),
        sa.Column("contact_id", sa.Integer(), nullable=True),
        sa.Column("pipeline_id", sa.Integer(), nullable=True),
        sa.Column("stage_id", sa.Integer(), nullable=True),
        *_document_columns(),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["company_id"], ["crm_company.id"]),
        sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"]),
        sa.ForeignKeyConstraint(["contact_id"], ["crm_contact.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("deal_number"),
    )
    op.create_index("ix_sales_deal_company_created", "sales_deal", ["company_id", "created_at"], unique=False)
    op.create_table("sales_deal_item", *_item_columns("deal_id", "sales_deal"))

    op.create_table(
        "sales_deal_contact",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("deal_id", sa.Integer(), nullable=False),
        sa.Column("contact_id", sa.Integer(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("role", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["deal_id"], ["sales_deal.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["contact_id"], ["crm_contact.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("deal_id", "contact_id", name="uq_sales_deal_contact"),
    )

    op.create_table(
        "sales_offer",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("offer_number", sa.String(length=64), nullable=False),
        sa.Column("offer_date", sa.Date(), nullable=True),
        *_document_columns(),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["company_id"], ["crm_company.id"]),
        sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("offer_number"),
    )
    op.create_index("ix_sales_offer_company_created", "sales_offer", ["company_id", "created_at"], unique=False)
    op.create_table("sales_offer_item", *_item_columns("offer_id", "sales_offer"))


def downgrade() -> None:
    op.drop_table("sales_offer_item")
    op.drop_index("ix_sales_offer_company_created", table_name="sales_offer")
    op.drop_table("sales_offer")

    op.drop_table("sales_deal_contact")
    op.drop_table("sales_deal_item")
    op.drop_index("ix_sales_deal_company_created", table_name="sales_deal")
    op.drop_table("sales_deal")
