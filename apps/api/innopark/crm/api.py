from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from innopark.api.deps import get_current_actor
from innopark.api.responses import Envelope, crm_error_response
from innopark.core.auth import ActorUser
from innopark.core.database import get_db
from innopark.core.errors import CRMError, NotFoundError
from innopark.crm.schemas import (
    ActivityCreate,
    ActivityFilter,
    ActivityPinRead,
    ActivityRead,
    ActivityUpdate,
    CustomFieldCreate,
    CustomFieldRead,
    CustomFieldUpdate,
    EntityActivityCreate,
    MeetingCreate,
    MeetingFilter,
    MeetingRead,
    MeetingUpdate,
    TaskCreate,
    TaskFilter,
    TaskPage,
    TaskRead,
    TaskUpdate,
)
from innopark.crm.service import (
    ActivityCreationPolicy,
    activity_service,
    custom_field_service,
    meeting_service,
    task_service,
)


activities_router = APIRouter(prefix="/api/v1", tags=["crm.activities"])
timeline_router = APIRouter(prefix="/api/v1", tags=["crm.activities"])
tasks_router = APIRouter(prefix="/api/v1", tags=["crm.tasks"])
meetings_router = APIRouter(prefix="/api/v1", tags=["crm.meetings"])
custom_fields_router = APIRouter(prefix="/api/v1", tags=["crm.custom_fields"])

# URL collection -> (reference type, activity column it filters on)
TIMELINE_COLLECTIONS = {
    "companies": ("company", "company_id"),
    "contacts": ("contact", "contact_id"),
    "leads": ("lead", "lead_id"),
    "deals": ("deal", "deal_id"),
}


def _timeline_reference(collection: str) -> tuple[str, str]:
    try:
        return TIMELINE_COLLECTIONS[collection]
    except KeyError:
        raise NotFoundError(f"unknown collection: {collection}") from None


@activities_router.get("/activities", response_model=Envelope[list[ActivityRead]])
def list_activities(
    request: Request,
    company_id: int | None = Query(default=None),
    contact_id: int | None = Query(default=None),
    deal_id: int | None = Query(default=None),
    lead_id: int | None = Query(default=None),
    reference_type: str | None = Query(default=None),
    reference_id: int | None = Query(default=None),
    activity_type: str | None = Query(default=None, alias="type"),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[list[ActivityRead]] | JSONResponse:
    try:
        filters = ActivityFilter(
            company_id=company_id,
            contact_id=contact_id,
            deal_id=deal_id,
            lead_id=lead_id,
            reference_type=reference_type,
            reference_id=reference_id,
            type=activity_type,
        )
        return Envelope[list[ActivityRead]](data=activity_service.list_activities(db, user, filters))
    except CRMError as exc:
        return crm_error_response(request, exc)


@activities_router.post(
    "/activities",
    response_model=Envelope[ActivityRead],
    status_code=status.HTTP_201_CREATED,
)
def create_activity(
    request: Request,
    dto: ActivityCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[ActivityRead] | JSONResponse:
    try:
        activity = activity_service.create_activity(db, user, dto, policy=ActivityCreationPolicy.PERMISSIVE)
        return Envelope[ActivityRead](data=activity, message="Activity created successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@activities_router.patch("/activities/{activity_id}", response_model=Envelope[ActivityRead])
def patch_activity(
    request: Request,
    activity_id: int,
    dto: ActivityUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[ActivityRead] | JSONResponse:
    try:
        return Envelope[ActivityRead](data=activity_service.update_activity(db, user, activity_id, dto))
    except CRMError as exc:
        return crm_error_response(request, exc)


@activities_router.patch("/activities/{activity_id}/pin", response_model=Envelope[ActivityPinRead])
def toggle_activity_pin(
    request: Request,
    activity_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[ActivityPinRead] | JSONResponse:
    try:
        return Envelope[ActivityPinRead](data=activity_service.toggle_pin(db, user, activity_id))
    except CRMError as exc:
        return crm_error_response(request, exc)


@activities_router.delete("/activities/{activity_id}", response_model=Envelope[None])
def delete_activity(
    request: Request,
    activity_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[None] | JSONResponse:
    try:
        activity_service.delete_activity(db, user, activity_id)
        return Envelope[None](message="Activity deleted successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@timeline_router.get("/{collection}/{entity_id}/activities", response_model=Envelope[list[ActivityRead]])
def list_entity_activities(
    request: Request,
    collection: str,
    entity_id: int,
    activity_type: str | None = Query(default=None, alias="type"),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[list[ActivityRead]] | JSONResponse:
    try:
        _, column = _timeline_reference(collection)
        filters = ActivityFilter(**{column: entity_id}, type=activity_type)
        return Envelope[list[ActivityRead]](data=activity_service.list_activities(db, user, filters))
    except CRMError as exc:
        return crm_error_response(request, exc)


@timeline_router.post(
    "/{collection}/{entity_id}/activities",
    response_model=Envelope[ActivityRead],
    status_code=status.HTTP_201_CREATED,
)
def create_entity_activity(
    request: Request,
    collection: str,
    entity_id: int,
    dto: EntityActivityCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[ActivityRead] | JSONResponse:
    try:
        reference_type, _ = _timeline_reference(collection)
        activity = activity_service.create_for_entity(db, user, reference_type, entity_id, dto)
        return Envelope[ActivityRead](data=activity, message="Activity created successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@tasks_router.get("/tasks", response_model=Envelope[TaskPage])
def list_tasks(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    priority: str | None = Query(default=None),
    assigned_to: int | None = Query(default=None),
    related_to_type: str | None = Query(default=None),
    related_to_id: int | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[TaskPage] | JSONResponse:
    try:
        filters = TaskFilter(
            status=status_filter,
            priority=priority,
            assigned_to=assigned_to,
            related_to_type=related_to_type,
            related_to_id=related_to_id,
            date_from=date_from,
            date_to=date_to,
            page=page,
            limit=limit,
        )
        return Envelope[TaskPage](data=task_service.list_tasks(db, user, filters))
    except CRMError as exc:
        return crm_error_response(request, exc)


@tasks_router.post("/tasks", response_model=Envelope[TaskRead], status_code=status.HTTP_201_CREATED)
def create_task(
    request: Request,
    dto: TaskCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[TaskRead] | JSONResponse:
    try:
        return Envelope[TaskRead](data=task_service.create_task(db, user, dto), message="Task created successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@tasks_router.put("/tasks/{task_id}", response_model=Envelope[TaskRead])
def update_task(
    request: Request,
    task_id: int,
    dto: TaskUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[TaskRead] | JSONResponse:
    try:
        return Envelope[TaskRead](data=task_service.update_task(db, user, task_id, dto))
    except CRMError as exc:
        return crm_error_response(request, exc)


@tasks_router.delete("/tasks/{task_id}", response_model=Envelope[None])
def delete_task(
    request: Request,
    task_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[None] | JSONResponse:
    try:
        task_service.delete_task(db, user, task_id)
        return Envelope[None](message="Task deleted successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@tasks_router.put("/tasks/{task_id}/complete", response_model=Envelope[TaskRead])
def complete_task(
    request: Request,
    task_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[TaskRead] | JSONResponse:
    try:
        return Envelope[TaskRead](data=task_service.mark_complete(db, user, task_id), message="Task completed")
    except CRMError as exc:
        return crm_error_response(request, exc)


@tasks_router.put("/tasks/{task_id}/reopen", response_model=Envelope[TaskRead])
def reopen_task(
    request: Request,
    task_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[TaskRead] | JSONResponse:
    try:
        return Envelope[TaskRead](data=task_service.reopen(db, user, task_id), message="Task reopened")
    except CRMError as exc:
        return crm_error_response(request, exc)


@meetings_router.get("/meetings", response_model=Envelope[list[MeetingRead]])
def list_meetings(
    request: Request,
    assigned_to: int | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    related_to_type: str | None = Query(default=None),
    related_to_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[list[MeetingRead]] | JSONResponse:
    try:
        filters = MeetingFilter(
            assigned_to=assigned_to,
            date_from=date_from,
            date_to=date_to,
            related_to_type=related_to_type,
            related_to_id=related_to_id,
        )
        return Envelope[list[MeetingRead]](data=meeting_service.list_meetings(db, user, filters))
    except CRMError as exc:
        return crm_error_response(request, exc)


@meetings_router.post("/meetings", response_model=Envelope[MeetingRead], status_code=status.HTTP_201_CREATED)
def create_meeting(
    request: Request,
    dto: MeetingCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[MeetingRead] | JSONResponse:
    try:
        meeting = meeting_service.create_meeting(db, user, dto)
        return Envelope[MeetingRead](data=meeting, message="Meeting created successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@meetings_router.put("/meetings/{meeting_id}", response_model=Envelope[MeetingRead])
def update_meeting(
    request: Request,
    meeting_id: int,
    dto: MeetingUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[MeetingRead] | JSONResponse:
    try:
        return Envelope[MeetingRead](data=meeting_service.update_meeting(db, user, meeting_id, dto))
    except CRMError as exc:
        return crm_error_response(request, exc)


@meetings_router.delete("/meetings/{meeting_id}", response_model=Envelope[None])
def delete_meeting(
    request: Request,
    meeting_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[None] | JSONResponse:
    try:
        meeting_service.delete_meeting(db, user, meeting_id)
        return Envelope[None](message="Meeting deleted successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@custom_fields_router.get("/custom-fields", response_model=Envelope[list[CustomFieldRead]])
def list_custom_fields(
    request: Request,
    module: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[list[CustomFieldRead]] | JSONResponse:
    try:
        return Envelope[list[CustomFieldRead]](data=custom_field_service.list_fields(db, user, module))
    except CRMError as exc:
        return crm_error_response(request, exc)


@custom_fields_router.post(
    "/custom-fields",
    response_model=Envelope[CustomFieldRead],
    status_code=status.HTTP_201_CREATED,
)
def create_custom_field(
    request: Request,
    dto: CustomFieldCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[CustomFieldRead] | JSONResponse:
    try:
        field = custom_field_service.create_field(db, user, dto)
        return Envelope[CustomFieldRead](data=field, message="Custom field created successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)


@custom_fields_router.get("/custom-fields/{field_id}", response_model=Envelope[CustomFieldRead])
def get_custom_field(
    request: Request,
    field_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[CustomFieldRead] | JSONResponse:
    try:
        return Envelope[CustomFieldRead](data=custom_field_service.get_field(db, user, field_id))
    except CRMError as exc:
        return crm_error_response(request, exc)


@custom_fields_router.put("/custom-fields/{field_id}", response_model=Envelope[CustomFieldRead])
def update_custom_field(
    request: Request,
    field_id: int,
    dto: CustomFieldUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[CustomFieldRead] | JSONResponse:
    try:
        return Envelope[CustomFieldRead](data=custom_field_service.update_field(db, user, field_id, dto))
    except CRMError as exc:
        return crm_error_response(request, exc)


@custom_fields_router.delete("/custom-fields/{field_id}", response_model=Envelope[None])
def delete_custom_field(
    request: Request,
    field_id: int,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_actor),
) -> Envelope[None] | JSONResponse:
    try:
        custom_field_service.delete_field(db, user, field_id)
        return Envelope[None](message="Custom field deleted successfully")
    except CRMError as exc:
        return crm_error_response(request, exc)
