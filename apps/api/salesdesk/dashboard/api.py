from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from salesdesk.core.database import get_db
from salesdesk.crm.api import get_current_user, store_error_response
from salesdesk.crm.errors import StoreError
from salesdesk.crm.service import ActorUser, visit_service
from salesdesk.dashboard.schemas import CalendarDayRead, DashboardRead
from salesdesk.dashboard.service import build_dashboard, calendar_events
from salesdesk.scheduling.clock import business_date, get_now

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardRead)
def get_dashboard(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> DashboardRead | JSONResponse:
    try:
        return build_dashboard(db, user, now)
    except StoreError as exc:
        return store_error_response(request, exc)


@router.get("/calendar", response_model=CalendarDayRead)
def get_calendar_day(
    request: Request,
    day: date | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> CalendarDayRead | JSONResponse:
    try:
        return calendar_events(visit_service.list(db, user), day or business_date(now))
    except StoreError as exc:
        return store_error_response(request, exc)
