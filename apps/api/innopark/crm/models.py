from __future__ import annotations

from datetime import date, datetime, time, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from innopark.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


ACTIVITY_TYPES = ("call", "meeting", "note", "email", "task", "comment")
REFERENCE_TYPES = ("lead", "contact", "company", "deal")
TASK_STATUSES = ("Pending", "Overdue", "Completed")


class CRMCompany(Base):
    """A tenant; also the target of ``company`` references."""

    __tablename__ = "crm_company"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    industry: Mapped[str | None] = mapped_column(String(128), nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency: Mapped[str] = mapped_column(String(16), nullable=False, default="USD", server_default="USD")
    time_zone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")


class CRMContact(Base):
    __tablename__ = "crm_contact"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("crm_company.id"), nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="Active", server_default="Active")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")


class CRMLead(Base):
    __tablename__ = "crm_lead"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("crm_company.id"), nullable=True)
    person_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="New", server_default="New")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")


class CRMActivity(Base):
    """One logical event, fanned out to every ancestor key at creation time.

    lead_id, company_id, contact_id and deal_id are a snapshot; they carry no
    foreign keys and are never re-derived when the referenced rows change.
    tenant_company_id is the owning tenant and scopes every read and write.
    """

    __tablename__ = "crm_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_type: Mapped[str] = mapped_column(String(16), nullable=False)
    reference_id: Mapped[int] = mapped_column(Integer, nullable=False)
    tenant_company_id: Mapped[int] = mapped_column(Integer, ForeignKey("crm_company.id"), nullable=False)
    lead_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    company_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    contact_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deal_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    follow_up_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    meeting_link: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_crm_activity_reference", "reference_type", "reference_id"),
        Index("ix_crm_activity_tenant_company_id", "tenant_company_id"),
        Index("ix_crm_activity_company_id", "company_id"),
        Index("ix_crm_activity_contact_id", "contact_id"),
        Index("ix_crm_activity_deal_id", "deal_id"),
        Index("ix_crm_activity_lead_id", "lead_id"),
    )


class CRMTask(Base):
    __tablename__ = "crm_task"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("crm_company.id"), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium", server_default="Medium")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Pending", server_default="Pending")
    assigned_to: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    related_to_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    related_to_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reminder_datetime: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    __table_args__ = (
        Index("ix_crm_task_company_status_due", "company_id", "status", "due_date"),
        Index("ix_crm_task_assigned_to", "assigned_to"),
    )


class CRMMeeting(Base):
    __tablename__ = "crm_meeting"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("crm_company.id"), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meeting_date: Mapped[date] = mapped_column(Date(), nullable=False)
    start_time: Mapped[time] = mapped_column(Time(), nullable=False)
    end_time: Mapped[time] = mapped_column(Time(), nullable=False)
    location: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    related_to_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    related_to_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reminder_datetime: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    __table_args__ = (Index("ix_crm_meeting_company_date", "company_id", "meeting_date"),)


class CRMCustomField(Base):
    __tablename__ = "crm_custom_field"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, ForeignKey("crm_company.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    module: Mapped[str] = mapped_column(String(64), nullable=False)
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    placeholder: Mapped[str | None] = mapped_column(Text, nullable=True)
    help_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    options: Mapped[list[CRMCustomFieldOption]] = relationship(
        "CRMCustomFieldOption",
        back_populates="custom_field",
        cascade="all, delete-orphan",
        order_by="CRMCustomFieldOption.display_order",
    )
    visibility: Mapped[list[CRMCustomFieldVisibility]] = relationship(
        "CRMCustomFieldVisibility",
        cascade="all, delete-orphan",
    )
    enabled_in: Mapped[list[CRMCustomFieldEnabledIn]] = relationship(
        "CRMCustomFieldEnabledIn",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_crm_custom_field_company_module", "company_id", "module"),)


class CRMCustomFieldOption(Base):
    __tablename__ = "crm_custom_field_option"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    custom_field_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("crm_custom_field.id", ondelete="CASCADE"),
        nullable=False,
    )
    value: Mapped[str] = mapped_column(Text, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    custom_field: Mapped[CRMCustomField] = relationship("CRMCustomField", back_populates="options")


class CRMCustomFieldVisibility(Base):
    __tablename__ = "crm_custom_field_visibility"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    custom_field_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("crm_custom_field.id", ondelete="CASCADE"),
        nullable=False,
    )
    visibility: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("custom_field_id", "visibility", name="uq_crm_custom_field_visibility"),
    )


class CRMCustomFieldEnabledIn(Base):
    __tablename__ = "crm_custom_field_enabled_in"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    custom_field_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("crm_custom_field.id", ondelete="CASCADE"),
        nullable=False,
    )
    enabled_in: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("custom_field_id", "enabled_in", name="uq_crm_custom_field_enabled_in"),
    )
