from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import StrEnum
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from innopark import events
from innopark.core.auth import ActorUser
from innopark.core.database import transaction_scope
from innopark.core.errors import NotFoundError, PermissionDeniedError, StorageError, ValidationError
from innopark.crm.lifecycle import COMPLETED, OVERDUE, PENDING, as_utc, derive_status, reopen_status, times_in_order
from innopark.crm.models import (
    ACTIVITY_TYPES,
    CRMActivity,
    CRMCustomField,
    CRMCustomFieldEnabledIn,
    CRMCustomFieldOption,
    CRMCustomFieldVisibility,
    CRMMeeting,
    CRMTask,
)
from innopark.crm.references import ReferenceResolver, infer_reference, reference_resolver
from innopark.crm.repositories import CustomFieldRepository, MeetingRepository, TaskRepository
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
    Pagination,
    TaskCreate,
    TaskFilter,
    TaskPage,
    TaskRead,
    TaskUpdate,
)
from innopark.metrics import observe_activity_created, observe_overdue_promotions


logger = logging.getLogger("innopark.crm")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_super_admin(actor: ActorUser) -> bool:
    return actor.role.upper() == "SUPERADMIN"


def _commit(session: Session, message: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageError(message, details=str(exc)) from exc


def _publish(event_type: str, actor: ActorUser, payload: dict[str, Any]) -> None:
    events.publish(
        events.build_envelope(
            event_type,
            actor_user_id=actor.user_id,
            company_id=actor.company_id,
            payload=payload,
            correlation_id=actor.correlation_id,
        )
    )


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class ActivityCreationPolicy(StrEnum):
    STRICT = "strict"
    PERMISSIVE = "permissive"


@dataclass(slots=True)
class ActivityService:
    resolver: ReferenceResolver = reference_resolver

    def list_activities(self, session: Session, actor: ActorUser, filters: ActivityFilter) -> list[ActivityRead]:
        """Newest-first activities for exactly one filter.

        Precedence is company_id, contact_id, deal_id, lead_id, then the
        reference pair; with none of them the caller's tenant is listed.
        """
        stmt = select(CRMActivity).where(CRMActivity.is_deleted.is_(False))

        if filters.company_id is not None:
            if filters.company_id != actor.company_id and not _is_super_admin(actor):
                raise NotFoundError("company not found")
            stmt = stmt.where(CRMActivity.company_id == filters.company_id)
        elif filters.contact_id is not None:
            stmt = stmt.where(CRMActivity.contact_id == filters.contact_id)
        elif filters.deal_id is not None:
            stmt = stmt.where(CRMActivity.deal_id == filters.deal_id)
        elif filters.lead_id is not None:
            stmt = stmt.where(CRMActivity.lead_id == filters.lead_id)
        elif filters.reference_type and filters.reference_id is not None:
            stmt = stmt.where(
                CRMActivity.reference_type == filters.reference_type,
                CRMActivity.reference_id == filters.reference_id,
            )
        else:
            stmt = stmt.where(CRMActivity.tenant_company_id == actor.company_id)

        if not _is_super_admin(actor):
            stmt = stmt.where(CRMActivity.tenant_company_id == actor.company_id)
        if filters.type:
            stmt = stmt.where(CRMActivity.type == filters.type.strip().lower())

        try:
            rows = session.scalars(stmt.order_by(CRMActivity.created_at.desc(), CRMActivity.id.desc())).all()
        except SQLAlchemyError as exc:
            raise StorageError("failed to list activities", details=str(exc)) from exc
        return [ActivityRead.model_validate(row) for row in rows]

    def create_activity(
        self,
        session: Session,
        actor: ActorUser,
        dto: ActivityCreate,
        *,
        policy: ActivityCreationPolicy = ActivityCreationPolicy.PERMISSIVE,
    ) -> ActivityRead:
        payload = dto.model_dump()
        if policy is ActivityCreationPolicy.STRICT:
            activity_type = payload.get("type")
            reference_type = payload.get("reference_type")
            reference_id = payload.get("reference_id")
            if not activity_type or not reference_type or reference_id is None:
                raise ValidationError("type, reference_type and reference_id are required")
            if activity_type not in ACTIVITY_TYPES:
                raise ValidationError(
                    f"invalid activity type: {activity_type}",
                    details={"allowed": list(ACTIVITY_TYPES)},
                )
        else:
            reference_type, reference_id = infer_reference(payload)
            if reference_type:
                reference_type = reference_type.strip().lower()
            activity_type = self._coerce_type(payload.get("type"), payload.get("description"))
            if not reference_type or reference_id is None:
                raise ValidationError("a reference (reference_type/reference_id or an entity id) is required")

        resolved = self.resolver.resolve(session, reference_type, reference_id)
        if (
            resolved.company_id is not None
            and resolved.company_id != actor.company_id
            and not _is_super_admin(actor)
        ):
            raise NotFoundError(f"{reference_type} not found")
        # an entity without a company belongs to whoever records the activity
        tenant_company_id = resolved.company_id if resolved.company_id is not None else actor.company_id

        activity = CRMActivity(
            type=activity_type,
            description=payload.get("description"),
            reference_type=reference_type,
            reference_id=reference_id,
            tenant_company_id=tenant_company_id,
            created_by=actor.user_id,
            is_pinned=bool(payload.get("is_pinned")),
            follow_up_at=payload.get("follow_up_at"),
            meeting_link=payload.get("meeting_link"),
            **resolved.as_columns(),
        )
        session.add(activity)
        _commit(session, "failed to create activity")

        observe_activity_created(activity_type, policy.value)
        _publish(
            "crm.activity.created",
            actor,
            {
                "activity_id": activity.id,
                "reference_type": reference_type,
                "reference_id": reference_id,
                **resolved.as_columns(),
            },
        )
        logger.info(
            "activity.created",
            extra={
                "entity_type": "crm.activity",
                "entity_id": activity.id,
                "reference_type": reference_type,
                "activity_type": activity_type,
                "policy": policy.value,
                "company_id": activity.company_id,
            },
        )
        return ActivityRead.model_validate(activity)

    def create_for_entity(
        self,
        session: Session,
        actor: ActorUser,
        reference_type: str,
        reference_id: int,
        dto: EntityActivityCreate,
    ) -> ActivityRead:
        if not dto.type or not dto.description:
            raise ValidationError("type and description are required")
        return self.create_activity(
            session,
            actor,
            ActivityCreate(
                type=dto.type.strip().lower(),
                description=dto.description,
                reference_type=reference_type,
                reference_id=reference_id,
                is_pinned=dto.is_pinned,
                follow_up_at=dto.follow_up_at,
                meeting_link=dto.meeting_link,
            ),
            policy=ActivityCreationPolicy.STRICT,
        )

    def update_activity(
        self,
        session: Session,
        actor: ActorUser,
        activity_id: int,
        dto: ActivityUpdate,
    ) -> ActivityRead:
        activity = self._get_visible(session, actor, activity_id)
        changes = dto.model_dump(exclude_unset=True)
        # a null description keeps the stored one
        if changes.get("description") is not None:
            activity.description = changes["description"]
        if "follow_up_at" in changes:
            activity.follow_up_at = changes["follow_up_at"]
        if "meeting_link" in changes:
            activity.meeting_link = changes["meeting_link"]
        _commit(session, "failed to update activity")

        _publish("crm.activity.updated", actor, {"activity_id": activity.id, "fields": sorted(changes)})
        return ActivityRead.model_validate(activity)

    def toggle_pin(self, session: Session, actor: ActorUser, activity_id: int) -> ActivityPinRead:
        activity = self._get_visible(session, actor, activity_id)
        activity.is_pinned = not activity.is_pinned
        _commit(session, "failed to toggle activity pin")
        return ActivityPinRead(id=activity.id, is_pinned=activity.is_pinned)

    def delete_activity(self, session: Session, actor: ActorUser, activity_id: int) -> None:
        activity = self._get_visible(session, actor, activity_id)
        activity.is_deleted = True
        _commit(session, "failed to delete activity")
        _publish("crm.activity.deleted", actor, {"activity_id": activity_id})

    @staticmethod
    def _coerce_type(raw_type: Any, description: Any) -> str:
        normalized = str(raw_type or "").strip().lower()
        if not normalized:
            raise ValidationError("type is required")
        if normalized in ACTIVITY_TYPES:
            return normalized
        if description:
            return "note"
        raise ValidationError(
            f"invalid activity type: {raw_type}",
            details={"allowed": list(ACTIVITY_TYPES)},
        )

    @staticmethod
    def _get_visible(session: Session, actor: ActorUser, activity_id: int) -> CRMActivity:
        try:
            activity = session.scalar(
                select(CRMActivity).where(CRMActivity.id == activity_id, CRMActivity.is_deleted.is_(False))
            )
        except SQLAlchemyError as exc:
            raise StorageError("failed to load activity", details=str(exc)) from exc
        if activity is None:
            raise NotFoundError("activity not found")
        if activity.tenant_company_id != actor.company_id and not _is_super_admin(actor):
            raise NotFoundError("activity not found")
        return activity


@dataclass(slots=True)
class TaskService:
    repository: TaskRepository = TaskRepository()

    def sweep_overdue(self, session: Session, *, company_id: int | None, now: datetime | None = None) -> int:
        """Persist the Pending to Overdue promotion for every task past due.

        ``company_id=None`` sweeps all tenants.
        """
        now = as_utc(now or utcnow())
        stmt = (
            update(CRMTask)
            .where(CRMTask.status == PENDING, CRMTask.due_date < now, CRMTask.is_deleted.is_(False))
            .values(status=OVERDUE, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if company_id is not None:
            stmt = stmt.where(CRMTask.company_id == company_id)
        try:
            result = session.execute(stmt)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError("failed to promote overdue tasks", details=str(exc)) from exc

        promoted = result.rowcount or 0
        observe_overdue_promotions(promoted)
        if promoted:
            logger.info("task.overdue_promoted", extra={"promoted_count": promoted, "company_id": company_id})
        return promoted

    def list_tasks(
        self,
        session: Session,
        actor: ActorUser,
        filters: TaskFilter,
        *,
        now: datetime | None = None,
    ) -> TaskPage:
        now = as_utc(now or utcnow())
        self.sweep_overdue(session, company_id=actor.company_id, now=now)

        stmt = self.repository.apply_visibility(select(CRMTask), actor, assigned_to=filters.assigned_to)
        if filters.status:
            stmt = stmt.where(CRMTask.status == filters.status)
        if filters.priority:
            stmt = stmt.where(CRMTask.priority == filters.priority)
        if filters.related_to_type:
            stmt = stmt.where(CRMTask.related_to_type == filters.related_to_type)
        if filters.related_to_id is not None:
            stmt = stmt.where(CRMTask.related_to_id == filters.related_to_id)
        if filters.date_from is not None:
            stmt = stmt.where(CRMTask.due_date >= _day_start(filters.date_from))
        if filters.date_to is not None:
            stmt = stmt.where(CRMTask.due_date < _day_start(filters.date_to + timedelta(days=1)))

        try:
            total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            rows = session.scalars(
                stmt.order_by(CRMTask.due_date.asc(), CRMTask.id.asc())
                .offset((filters.page - 1) * filters.limit)
                .limit(filters.limit)
            ).all()
        except SQLAlchemyError as exc:
            raise StorageError("failed to list tasks", details=str(exc)) from exc

        return TaskPage(
            items=[self._to_read(row, now) for row in rows],
            pagination=Pagination(total=total, page=filters.page, limit=filters.limit),
        )

    def create_task(self, session: Session, actor: ActorUser, dto: TaskCreate) -> TaskRead:
        task = CRMTask(
            company_id=actor.company_id,
            title=dto.title,
            description=dto.description,
            due_date=as_utc(dto.due_date),
            priority=dto.priority or "Medium",
            status=PENDING,
            assigned_to=dto.assigned_to,
            created_by=actor.user_id,
            related_to_type=dto.related_to_type,
            related_to_id=dto.related_to_id,
            reminder_datetime=as_utc(dto.reminder_datetime) if dto.reminder_datetime else None,
        )
        session.add(task)
        _commit(session, "failed to create task")
        _publish("crm.task.created", actor, {"task_id": task.id, "assigned_to": task.assigned_to})
        return self._to_read(task, utcnow())

    def update_task(
        self,
        session: Session,
        actor: ActorUser,
        task_id: int,
        dto: TaskUpdate,
        *,
        now: datetime | None = None,
    ) -> TaskRead:
        task = self._get_modifiable(session, actor, task_id)
        now = as_utc(now or utcnow())

        changes = dto.model_dump(exclude_unset=True)
        for required_field in ("title", "due_date", "priority", "status", "assigned_to"):
            if changes.get(required_field, "") is None:
                changes.pop(required_field)
        if not changes:
            raise ValidationError("No valid fields to update")

        if "due_date" in changes:
            changes["due_date"] = as_utc(changes["due_date"])
            if "status" not in changes and task.status != COMPLETED:
                changes["status"] = reopen_status(changes["due_date"], now)
        if changes.get("reminder_datetime") is not None:
            changes["reminder_datetime"] = as_utc(changes["reminder_datetime"])

        for field_name, value in changes.items():
            setattr(task, field_name, value)
        _commit(session, "failed to update task")
        return self._to_read(task, now)

    def delete_task(self, session: Session, actor: ActorUser, task_id: int) -> None:
        task = self._get_modifiable(session, actor, task_id)
        task.is_deleted = True
        _commit(session, "failed to delete task")

    def mark_complete(self, session: Session, actor: ActorUser, task_id: int) -> TaskRead:
        task = self._get_modifiable(session, actor, task_id)
        task.status = COMPLETED
        _commit(session, "failed to complete task")
        _publish("crm.task.completed", actor, {"task_id": task.id})
        return self._to_read(task, utcnow())

    def reopen(self, session: Session, actor: ActorUser, task_id: int, *, now: datetime | None = None) -> TaskRead:
        task = self._get_modifiable(session, actor, task_id)
        now = as_utc(now or utcnow())
        task.status = reopen_status(task.due_date, now)
        _commit(session, "failed to reopen task")
        _publish("crm.task.reopened", actor, {"task_id": task.id, "status": task.status})
        return self._to_read(task, now)

    def _get_modifiable(self, session: Session, actor: ActorUser, task_id: int) -> CRMTask:
        try:
            task = self.repository.get_visible(session, actor, task_id)
        except SQLAlchemyError as exc:
            raise StorageError("failed to load task", details=str(exc)) from exc
        if task is None:
            raise NotFoundError("task not found")
        if not self.repository.can_modify(actor, task):
            raise PermissionDeniedError("not allowed to modify this task")
        return task

    @staticmethod
    def _to_read(task: CRMTask, now: datetime) -> TaskRead:
        read = TaskRead.model_validate(task)
        return read.model_copy(update={"status": derive_status(read.status, read.due_date, now)})


@dataclass(slots=True)
class MeetingService:
    repository: MeetingRepository = MeetingRepository()

    def list_meetings(self, session: Session, actor: ActorUser, filters: MeetingFilter) -> list[MeetingRead]:
        stmt = self.repository.apply_visibility(select(CRMMeeting), actor, assigned_to=filters.assigned_to)
        if filters.date_from is not None:
            stmt = stmt.where(CRMMeeting.meeting_date >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(CRMMeeting.meeting_date <= filters.date_to)
        if filters.related_to_type and filters.related_to_id is not None:
            stmt = stmt.where(
                CRMMeeting.related_to_type == filters.related_to_type,
                CRMMeeting.related_to_id == filters.related_to_id,
            )
        try:
            rows = session.scalars(
                stmt.order_by(CRMMeeting.meeting_date.asc(), CRMMeeting.start_time.asc(), CRMMeeting.id.asc())
            ).all()
        except SQLAlchemyError as exc:
            raise StorageError("failed to list meetings", details=str(exc)) from exc
        return [MeetingRead.model_validate(row) for row in rows]

    def create_meeting(self, session: Session, actor: ActorUser, dto: MeetingCreate) -> MeetingRead:
        if not times_in_order(dto.start_time, dto.end_time):
            raise ValidationError("End time must be after start time")
        meeting = CRMMeeting(
            company_id=actor.company_id,
            created_by=actor.user_id,
            **dto.model_dump(),
        )
        session.add(meeting)
        _commit(session, "failed to create meeting")
        _publish("crm.meeting.created", actor, {"meeting_id": meeting.id, "assigned_to": meeting.assigned_to})
        return MeetingRead.model_validate(meeting)

    def update_meeting(self, session: Session, actor: ActorUser, meeting_id: int, dto: MeetingUpdate) -> MeetingRead:
        meeting = self._get_modifiable(session, actor, meeting_id)

        changes = dto.model_dump(exclude_unset=True)
        for required_field in ("title", "meeting_date", "start_time", "end_time", "assigned_to"):
            if changes.get(required_field, "") is None:
                changes.pop(required_field)
        if not changes:
            raise ValidationError("No valid fields to update")

        start_time = changes.get("start_time", meeting.start_time)
        end_time = changes.get("end_time", meeting.end_time)
        if not times_in_order(start_time, end_time):
            raise ValidationError("End time must be after start time")

        for field_name, value in changes.items():
            setattr(meeting, field_name, value)
        _commit(session, "failed to update meeting")
        return MeetingRead.model_validate(meeting)

    def delete_meeting(self, session: Session, actor: ActorUser, meeting_id: int) -> None:
        meeting = self._get_modifiable(session, actor, meeting_id)
        meeting.is_deleted = True
        _commit(session, "failed to delete meeting")

    def _get_modifiable(self, session: Session, actor: ActorUser, meeting_id: int) -> CRMMeeting:
        try:
            meeting = self.repository.get_visible(session, actor, meeting_id)
        except SQLAlchemyError as exc:
            raise StorageError("failed to load meeting", details=str(exc)) from exc
        if meeting is None:
            raise NotFoundError("meeting not found")
        if not self.repository.can_modify(actor, meeting):
            raise PermissionDeniedError("not allowed to modify this meeting")
        return meeting


_FIELD_NAME_RE = re.compile(r"[^a-z0-9]")


def field_name_from_label(label: str) -> str:
    return _FIELD_NAME_RE.sub("_", label.lower())


@dataclass(slots=True)
class CustomFieldService:
    repository: CustomFieldRepository = CustomFieldRepository()

    def list_fields(self, session: Session, actor: ActorUser, module: str | None = None) -> list[CustomFieldRead]:
        stmt = self.repository.apply_scope_query(select(CRMCustomField), actor).options(
            selectinload(CRMCustomField.options),
            selectinload(CRMCustomField.visibility),
            selectinload(CRMCustomField.enabled_in),
        )
        if module:
            stmt = stmt.where(CRMCustomField.module == module)
        try:
            rows = session.scalars(stmt.order_by(CRMCustomField.id.asc())).all()
        except SQLAlchemyError as exc:
            raise StorageError("failed to list custom fields", details=str(exc)) from exc
        return [self._to_read(row) for row in rows]

    def get_field(self, session: Session, actor: ActorUser, field_id: int) -> CustomFieldRead:
        return self._to_read(self._get(session, actor, field_id))

    def create_field(self, session: Session, actor: ActorUser, dto: CustomFieldCreate) -> CustomFieldRead:
        custom_field = CRMCustomField(
            company_id=actor.company_id,
            name=dto.name or field_name_from_label(dto.label),
            label=dto.label,
            type=dto.type,
            module=dto.module,
            required=dto.required,
            placeholder=dto.placeholder,
            help_text=dto.help_text,
        )
        custom_field.options = self._options(dto.options)
        custom_field.visibility = [CRMCustomFieldVisibility(visibility=value) for value in dto.visibility]
        custom_field.enabled_in = [CRMCustomFieldEnabledIn(enabled_in=value) for value in dto.enabled_in]
        try:
            with transaction_scope(session):
                session.add(custom_field)
        except SQLAlchemyError as exc:
            raise StorageError("failed to save custom field", details=str(exc)) from exc

        logger.info("custom_field.created", extra={"entity_type": "crm.custom_field", "entity_id": custom_field.id})
        return self._to_read(custom_field)

    def update_field(
        self,
        session: Session,
        actor: ActorUser,
        field_id: int,
        dto: CustomFieldUpdate,
    ) -> CustomFieldRead:
        custom_field = self._get(session, actor, field_id)
        changes = dto.model_dump(exclude_unset=True)
        try:
            with transaction_scope(session):
                for field_name in ("label", "name", "type", "module", "required"):
                    if changes.get(field_name) is not None:
                        setattr(custom_field, field_name, changes[field_name])
                for field_name in ("placeholder", "help_text"):
                    if field_name in changes:
                        setattr(custom_field, field_name, changes[field_name])

                # child sets are replaced wholesale; old rows go first so unique keys can be reused
                if changes.get("options") is not None:
                    custom_field.options.clear()
                    session.flush()
                    custom_field.options.extend(self._options(changes["options"]))
                if changes.get("visibility") is not None:
                    custom_field.visibility.clear()
                    session.flush()
                    custom_field.visibility.extend(
                        CRMCustomFieldVisibility(visibility=value) for value in changes["visibility"]
                    )
                if changes.get("enabled_in") is not None:
                    custom_field.enabled_in.clear()
                    session.flush()
                    custom_field.enabled_in.extend(
                        CRMCustomFieldEnabledIn(enabled_in=value) for value in changes["enabled_in"]
                    )
        except SQLAlchemyError as exc:
            raise StorageError("failed to update custom field", details=str(exc)) from exc

        return self._to_read(custom_field)

    def delete_field(self, session: Session, actor: ActorUser, field_id: int) -> None:
        custom_field = self._get(session, actor, field_id)
        try:
            with transaction_scope(session):
                session.delete(custom_field)
        except SQLAlchemyError as exc:
            raise StorageError("failed to delete custom field", details=str(exc)) from exc

    def _get(self, session: Session, actor: ActorUser, field_id: int) -> CRMCustomField:
        try:
            custom_field = self.repository.get_visible(session, actor, field_id)
        except SQLAlchemyError as exc:
            raise StorageError("failed to load custom field", details=str(exc)) from exc
        if custom_field is None:
            raise NotFoundError("custom field not found")
        return custom_field

    @staticmethod
    def _options(values: list[str]) -> list[CRMCustomFieldOption]:
        return [CRMCustomFieldOption(value=value, display_order=index) for index, value in enumerate(values)]

    @staticmethod
    def _to_read(custom_field: CRMCustomField) -> CustomFieldRead:
        return CustomFieldRead(
            id=custom_field.id,
            company_id=custom_field.company_id,
            name=custom_field.name,
            label=custom_field.label,
            type=custom_field.type,
            module=custom_field.module,
            required=custom_field.required,
            placeholder=custom_field.placeholder,
            help_text=custom_field.help_text,
            options=[option.value for option in custom_field.options],
            visibility=[row.visibility for row in custom_field.visibility],
            enabled_in=[row.enabled_in for row in custom_field.enabled_in],
            created_at=custom_field.created_at,
            updated_at=custom_field.updated_at,
        )


activity_service = ActivityService()
task_service = TaskService()
meeting_service = MeetingService()
custom_field_service = CustomFieldService()
