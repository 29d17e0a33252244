from __future__ import annotations

from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from innopark.core.auth import ActorUser
from innopark.core.rbac import is_privileged
from innopark.crm.models import CRMCustomField, CRMMeeting, CRMTask


class TenantRepository:
    """Row access confined to the caller's tenant.

    Soft-deleted rows are invisible when the model carries ``is_deleted``.
    """

    model: Any = None

    def apply_scope_query(self, query: Select[Any], actor: ActorUser) -> Select[Any]:
        scoped = query.where(self.model.company_id == actor.company_id)
        if hasattr(self.model, "is_deleted"):
            scoped = scoped.where(self.model.is_deleted.is_(False))
        return scoped

    def get_visible(self, session: Session, actor: ActorUser, row_id: int) -> Any | None:
        stmt = self.apply_scope_query(select(self.model).where(self.model.id == row_id), actor)
        return session.scalar(stmt)


class AssignedWorkRepository(TenantRepository):
    """Tasks and meetings: non-privileged callers only see their own assignments."""

    def apply_visibility(
        self,
        query: Select[Any],
        actor: ActorUser,
        *,
        assigned_to: int | None = None,
    ) -> Select[Any]:
        scoped = self.apply_scope_query(query, actor)
        if not is_privileged(actor.role):
            return scoped.where(self.model.assigned_to == actor.user_id)
        if assigned_to is not None:
            return scoped.where(self.model.assigned_to == assigned_to)
        return scoped

    @staticmethod
    def can_modify(actor: ActorUser, row: Any) -> bool:
        if is_privileged(actor.role):
            return True
        return actor.user_id in {row.assigned_to, row.created_by}


class TaskRepository(AssignedWorkRepository):
    model = CRMTask


class MeetingRepository(AssignedWorkRepository):
    model = CRMMeeting


class CustomFieldRepository(TenantRepository):
    model = CRMCustomField
