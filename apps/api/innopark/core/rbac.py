from innopark.core.auth import ActorUser
from innopark.core.errors import PermissionDeniedError

PRIVILEGED_ROLES = frozenset({"ADMIN", "SUPERADMIN"})


def is_privileged(role: str | None) -> bool:
    return (role or "").upper() in PRIVILEGED_ROLES


def require_permission(actor: ActorUser, permission: str) -> None:
    if is_privileged(actor.role):
        return
    if permission not in actor.permissions:
        raise PermissionDeniedError(f"Missing permission: {permission}")
