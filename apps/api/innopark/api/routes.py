from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from innopark.business.sales import deals_router, offers_router
from innopark.core.auth import AuthUser, get_current_user
from innopark.core.config import get_settings
from innopark.crm.api import (
    activities_router,
    custom_fields_router,
    meetings_router,
    tasks_router,
    timeline_router,
)
from innopark.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(activities_router)
router.include_router(deals_router)
router.include_router(offers_router)
router.include_router(tasks_router)
router.include_router(meetings_router)
router.include_router(custom_fields_router)
# catch-all collection pattern, keep last
router.include_router(timeline_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict[str, str | int | list[str] | None]:
    return {
        "sub": user.sub,
        "role": user.role,
        "company_id": user.company_id,
        "permissions": user.permissions,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if "system.metrics.read" not in user.permissions:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: system.metrics.read")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
