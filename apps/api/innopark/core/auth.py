from dataclasses import dataclass, field

from jose import JWTError, jwt
from starlette.requests import Request

from innopark.core.config import get_settings


@dataclass
class AuthUser:
    sub: str
    role: str
    company_id: int | None
    permissions: list[str] = field(default_factory=list)


@dataclass
class ActorUser:
    user_id: int
    company_id: int
    role: str
    permissions: set[str] = field(default_factory=set)
    correlation_id: str | None = None


def _anonymous() -> AuthUser:
    return AuthUser(sub="anonymous", role="GUEST", company_id=None, permissions=[])


def _as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


async def get_current_user(request: Request) -> AuthUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""

    if not token:
        return _anonymous()

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return _anonymous()

    subject = str(payload.get("sub", "anonymous"))
    permissions = payload.get("permissions", [])
    if not isinstance(permissions, list):
        permissions = []
    context = getattr(request.state, "context", None)
    if context is not None:
        context.user_id = subject
    return AuthUser(
        sub=subject,
        role=str(payload.get("role", "USER")).upper(),
        company_id=_as_int(payload.get("company_id")),
        permissions=[str(permission) for permission in permissions],
    )


def user_id_from_subject(subject: str) -> int | None:
    return _as_int(subject)
