"""create crm core tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "crm_company",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("industry", sa.String(length=128), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("currency", sa.String(length=16), server_default="USD", nullable=False),
        sa.Column("time_zone", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "crm_contact",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("job_title", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=32), server_default="Active", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["crm_company.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "crm_lead",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("person_name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=32), server_default="New", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["crm_company.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    # ancestor ids are a creation-time snapshot, no foreign keys
    op.create_table(
        "crm_activity",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("reference_type", sa.String(length=16), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=False),
        sa.Column("tenant_company_id", sa.Integer(), nullable=False),
        sa.Column("lead_id", sa.Integer(), nullable=True),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("contact_id", sa.Integer(), nullable=True),
        sa.Column("deal_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_pinned", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("follow_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meeting_link", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["tenant_company_id"], ["crm_company.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_activity_reference", "crm_activity", ["reference_type", "reference_id"], unique=False)
    op.create_index("ix_crm_activity_tenant_company_id", "crm_activity", ["tenant_company_id"], unique=False)
    op.create_index("ix_crm_activity_company_id", "crm_activity", ["company_id"], unique=False)
    op.create_index("ix_crm_activity_contact_id", "crm_activity", ["contact_id"], unique=False)
    op.create_index("ix_crm_activity_deal_id", "crm_activity", ["deal_id"], unique=False)
    op.create_index("ix_crm_activity_lead_id", "crm_activity", ["lead_id"], unique=False)

    op.create_table(
        "crm_task",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("priority", sa.String(length=16), server_default="Medium", nullable=False),
        sa.Column("status", sa.String(length=16), server_default="Pending", nullable=False),
        sa.Column("assigned_to", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("related_to_type", sa.String(length=32), nullable=True),
        sa.Column("related_to_id", sa.Integer(), nullable=True),
        sa.Column("reminder_datetime", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["crm_company.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_task_company_status_due", "crm_task", ["company_id", "status", "due_date"], unique=False)
    op.create_index("ix_crm_task_assigned_to", "crm_task", ["assigned_to"], unique=False)

    op.create_table(
        "crm_meeting",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("meeting_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("assigned_to", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("related_to_type", sa.String(length=32), nullable=True),
        sa.Column("related_to_id", sa.Integer(), nullable=True),
        sa.Column("reminder_datetime", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["crm_company.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_meeting_company_date", "crm_meeting", ["company_id", "meeting_date"], unique=False)

    op.create_table(
        "crm_custom_field",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("module", sa.String(length=64), nullable=False),
        sa.Column("required", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("placeholder", sa.Text(), nullable=True),
        sa.Column("help_text", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["company_id"], ["crm_company.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_custom_field_company_module", "crm_custom_field", ["company_id", "module"], unique=False)

    op.create_table(
        "crm_custom_field_option",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("custom_field_id", sa.Integer(), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("display_order", sa.Integer(), server_default="0", nullable=False),
        sa.ForeignKeyConstraint(["custom_field_id"], ["crm_custom_field.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "crm_custom_field_visibility",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("custom_field_id", sa.Integer(), nullable=False),
        sa.Column("visibility", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(["custom_field_id"], ["crm_custom_field.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("custom_field_id", "visibility", name="uq_crm_custom_field_visibility"),
    )
    op.create_table(
        "crm_custom_field_enabled_in",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("custom_field_id", sa.Integer(), nullable=False),
        sa.Column("enabled_in", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(["custom_field_id"], ["crm_custom_field.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("custom_field_id", "enabled_in", name="uq_crm_custom_field_enabled_in"),
    )


def downgrade() -> None:
    op.drop_table("crm_custom_field_enabled_in")
    op.drop_table("crm_custom_field_visibility")
    op.drop_table("crm_custom_field_option")
    op.drop_index("ix_crm_custom_field_company_module", table_name="crm_custom_field")
    op.drop_table("crm_custom_field")

    op.drop_index("ix_crm_meeting_company_date", table_name="crm_meeting")
    op.drop_table("crm_meeting")

    op.drop_index("ix_crm_task_assigned_to", table_name="crm_task")
    op.drop_index("ix_crm_task_company_status_due", table_name="crm_task")
    op.drop_table("crm_task")

    op.drop_index("ix_crm_activity_lead_id", table_name="crm_activity")
    op.drop_index("ix_crm_activity_deal_id", table_name="crm_activity")
    op.drop_index("ix_crm_activity_contact_id", table_name="crm_activity")
    op.drop_index("ix_crm_activity_company_id", table_name="crm_activity")
    op.drop_index("ix_crm_activity_tenant_company_id", table_name="crm_activity")
    op.drop_index("ix_crm_activity_reference", table_name="crm_activity")
    op.drop_table("crm_activity")

    op.drop_table("crm_lead")
    op.drop_table("crm_contact")
    op.drop_table("crm_company")
