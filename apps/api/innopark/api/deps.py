from __future__ import annotations

from fastapi import Depends, Request

from innopark.context import get_correlation_id
from innopark.core.auth import ActorUser, AuthUser, get_current_user as get_auth_user, user_id_from_subject
from innopark.core.errors import PermissionDeniedError, ValidationError


def get_current_actor(request: Request, auth_user: AuthUser = Depends(get_auth_user)) -> ActorUser:
    """Tenant-bound caller; the tenant always comes from the token."""
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    user_id = user_id_from_subject(auth_user.sub)
    if user_id is None:
        raise PermissionDeniedError("authentication required")
    if auth_user.company_id is None:
        raise ValidationError("company_id is required")
    return ActorUser(
        user_id=user_id,
        company_id=auth_user.company_id,
        role=auth_user.role,
        permissions=set(auth_user.permissions),
        correlation_id=correlation_id,
    )
