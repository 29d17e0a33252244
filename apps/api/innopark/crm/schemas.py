from __future__ import annotations

from datetime import date, datetime, time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


TaskStatus = Literal["Pending", "Overdue", "Completed"]


class ActivityCreate(BaseModel):
    """Body of ``POST /activities``.

    The reference may be given explicitly or inferred from whichever of the
    entity ids is present (deal, contact, lead, company in that order).
    """

    type: str | None = None
    description: str | None = None
    reference_type: str | None = None
    reference_id: int | None = None
    deal_id: int | None = None
    contact_id: int | None = None
    lead_id: int | None = None
    company_id: int | None = None
    is_pinned: bool = False
    follow_up_at: datetime | None = None
    meeting_link: str | None = None


class EntityActivityCreate(BaseModel):
    type: str | None = None
    description: str | None = None
    is_pinned: bool = False
    follow_up_at: datetime | None = None
    meeting_link: str | None = None


class ActivityUpdate(BaseModel):
    description: str | None = None
    follow_up_at: datetime | None = None
    meeting_link: str | None = None


class ActivityFilter(BaseModel):
    company_id: int | None = None
    contact_id: int | None = None
    deal_id: int | None = None
    lead_id: int | None = None
    reference_type: str | None = None
    reference_id: int | None = None
    type: str | None = None


class ActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    description: str | None
    reference_type: str
    reference_id: int
    lead_id: int | None
    company_id: int | None
    contact_id: int | None
    deal_id: int | None
    created_by: int | None
    created_at: datetime
    is_pinned: bool
    follow_up_at: datetime | None
    meeting_link: str | None


class ActivityPinRead(BaseModel):
    id: int
    is_pinned: bool


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    due_date: datetime
    priority: str = "Medium"
    assigned_to: int
    related_to_type: str | None = None
    related_to_id: int | None = None
    reminder_datetime: datetime | None = None


class TaskUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    due_date: datetime | None = None
    priority: str | None = None
    status: TaskStatus | None = None
    assigned_to: int | None = None
    related_to_type: str | None = None
    related_to_id: int | None = None
    reminder_datetime: datetime | None = None


class TaskFilter(BaseModel):
    status: str | None = None
    priority: str | None = None
    assigned_to: int | None = None
    related_to_type: str | None = None
    related_to_id: int | None = None
    date_from: date | None = None
    date_to: date | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=200)


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    title: str
    description: str | None
    due_date: datetime
    priority: str
    status: str
    assigned_to: int
    created_by: int | None
    related_to_type: str | None
    related_to_id: int | None
    reminder_datetime: datetime | None
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    total: int
    page: int
    limit: int


class TaskPage(BaseModel):
    items: list[TaskRead]
    pagination: Pagination


class MeetingCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    meeting_date: date
    start_time: time
    end_time: time
    location: str | None = None
    assigned_to: int
    related_to_type: str | None = None
    related_to_id: int | None = None
    reminder_datetime: datetime | None = None


class MeetingUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    meeting_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    location: str | None = None
    assigned_to: int | None = None
    related_to_type: str | None = None
    related_to_id: int | None = None
    reminder_datetime: datetime | None = None


class MeetingFilter(BaseModel):
    assigned_to: int | None = None
    date_from: date | None = None
    date_to: date | None = None
    related_to_type: str | None = None
    related_to_id: int | None = None


class MeetingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    title: str
    description: str | None
    meeting_date: date
    start_time: time
    end_time: time
    location: str | None
    assigned_to: int
    created_by: int | None
    related_to_type: str | None
    related_to_id: int | None
    reminder_datetime: datetime | None
    created_at: datetime
    updated_at: datetime


class CustomFieldCreate(BaseModel):
    label: str = Field(min_length=1)
    name: str | None = None
    type: str = Field(min_length=1)
    module: str = Field(min_length=1)
    required: bool = False
    placeholder: str | None = None
    help_text: str | None = None
    options: list[str] = Field(default_factory=list)
    visibility: list[str] = Field(default_factory=list)
    enabled_in: list[str] = Field(default_factory=list)


class CustomFieldUpdate(BaseModel):
    label: str | None = Field(default=None, min_length=1)
    name: str | None = None
    type: str | None = Field(default=None, min_length=1)
    module: str | None = Field(default=None, min_length=1)
    required: bool | None = None
    placeholder: str | None = None
    help_text: str | None = None
    options: list[str] | None = None
    visibility: list[str] | None = None
    enabled_in: list[str] | None = None


class CustomFieldRead(BaseModel):
    id: int
    company_id: int
    name: str
    label: str
    type: str
    module: str
    required: bool
    placeholder: str | None
    help_text: str | None
    options: list[str]
    visibility: list[str]
    enabled_in: list[str]
    created_at: datetime
    updated_at: datetime
