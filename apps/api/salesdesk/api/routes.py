from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from salesdesk.core.auth import AuthUser, get_current_user
from salesdesk.core.config import get_settings
from salesdesk.crm.api import (
    companies_router,
    customers_router,
    opportunities_router,
    requirements_router,
    tasks_router,
    visits_router,
)
from salesdesk.dashboard.api import router as dashboard_router
from salesdesk.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(companies_router)
router.include_router(customers_router)
router.include_router(visits_router)
router.include_router(opportunities_router)
router.include_router(tasks_router)
router.include_router(requirements_router)
router.include_router(dashboard_router)


def _require_user(user: AuthUser | None) -> AuthUser:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser | None = Depends(get_current_user)) -> dict[str, str | list[str]]:
    user = _require_user(user)
    return {
        "sub": user.sub,
        "roles": user.roles,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser | None = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    user = _require_user(user)
    if "system.metrics.read" not in user.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: system.metrics.read")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
