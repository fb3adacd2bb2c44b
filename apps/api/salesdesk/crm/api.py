from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from salesdesk.context import get_correlation_id
from salesdesk.core.auth import AuthUser, get_current_user as get_auth_user
from salesdesk.core.database import get_db
from salesdesk.crm.errors import StoreError
from salesdesk.crm.schemas import (
    CompanyCreate,
    CompanyRead,
    CompanyUpdate,
    CustomerCreate,
    CustomerRead,
    CustomerUpdate,
    OpportunityCreate,
    OpportunityRead,
    OpportunityStage,
    OpportunityUpdate,
    PipelineSummaryRead,
    RequirementCreate,
    RequirementRead,
    RequirementUpdate,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    VisitCreate,
    VisitFollowUpRead,
    VisitRead,
    VisitStatus,
    VisitUpdate,
)
from salesdesk.crm.service import (
    ActorUser,
    company_service,
    customer_service,
    opportunity_service,
    requirement_service,
    task_service,
    visit_service,
)
from salesdesk.scheduling import Bucket
from salesdesk.scheduling.clock import get_now

companies_router = APIRouter(prefix="/api/companies", tags=["crm.companies"])
customers_router = APIRouter(prefix="/api/customers", tags=["crm.customers"])
visits_router = APIRouter(prefix="/api/visits", tags=["crm.visits"])
opportunities_router = APIRouter(prefix="/api/opportunities", tags=["crm.opportunities"])
tasks_router = APIRouter(prefix="/api/tasks", tags=["crm.tasks"])
requirements_router = APIRouter(prefix="/api/requirements", tags=["crm.requirements"])

DELETED = {"status": "deleted"}


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def store_error_response(request: Request, exc: StoreError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def request_validation_error_response(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=422,
        code="validation_failed",
        message="Request validation failed",
        details=jsonable_encoder(exc.errors()),
    )


def get_current_user(request: Request, auth_user: AuthUser | None = Depends(get_auth_user)) -> ActorUser | None:
    if auth_user is None:
        return None
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    return ActorUser(user_id=auth_user.sub, roles=list(auth_user.roles), correlation_id=correlation_id)


@companies_router.get("", response_model=list[CompanyRead])
def list_companies(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> list[CompanyRead] | JSONResponse:
    try:
        return list(company_service.list(db, user))
    except StoreError as exc:
        return store_error_response(request, exc)


@companies_router.post("", response_model=CompanyRead, status_code=status.HTTP_201_CREATED)
def create_company(
    request: Request,
    dto: CompanyCreate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> CompanyRead | JSONResponse:
    try:
        return company_service.create(db, user, dto)
    except StoreError as exc:
        return store_error_response(request, exc)


@companies_router.get("/{company_id}", response_model=CompanyRead)
def get_company(
    request: Request,
    company_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> CompanyRead | JSONResponse:
    try:
        return company_service.get(db, user, company_id)
    except StoreError as exc:
        return store_error_response(request, exc)


@companies_router.patch("/{company_id}", response_model=CompanyRead)
def patch_company(
    request: Request,
    company_id: uuid.UUID,
    dto: CompanyUpdate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> CompanyRead | JSONResponse:
    try:
        return company_service.update(db, user, company_id, dto)
    except StoreError as exc:
        return store_error_response(request, exc)


@companies_router.delete("/{company_id}", response_model=None)
def delete_company(
    request: Request,
    company_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> Any:
    try:
        company_service.delete(db, user, company_id)
        return DELETED
    except StoreError as exc:
        return store_error_response(request, exc)


@companies_router.get("/{company_id}/customers", response_model=list[CustomerRead])
def list_company_customers(
    request: Request,
    company_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> list[CustomerRead] | JSONResponse:
    try:
        return list(customer_service.list(db, user, company_id=company_id))
    except StoreError as exc:
        return store_error_response(request, exc)


@customers_router.get("", response_model=list[CustomerRead])
def list_customers(
    request: Request,
    company_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> list[CustomerRead] | JSONResponse:
    try:
        return list(customer_service.list(db, user, company_id=company_id))
    except StoreError as exc:
        return store_error_response(request, exc)


@customers_router.post("", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
def create_customer(
    request: Request,
    dto: CustomerCreate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> CustomerRead | JSONResponse:
    try:
        return customer_service.create(db, user, dto)
    except StoreError as exc:
        return store_error_response(request, exc)


@customers_router.get("/{customer_id}", response_model=CustomerRead)
def get_customer(
    request: Request,
    customer_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> CustomerRead | JSONResponse:
    try:
        return customer_service.get(db, user, customer_id)
    except StoreError as exc:
        return store_error_response(request, exc)


@customers_router.patch("/{customer_id}", response_model=CustomerRead)
def patch_customer(
    request: Request,
    customer_id: uuid.UUID,
    dto: CustomerUpdate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> CustomerRead | JSONResponse:
    try:
        return customer_service.update(db, user, customer_id, dto)
    except StoreError as exc:
        return store_error_response(request, exc)


@customers_router.delete("/{customer_id}", response_model=None)
def delete_customer(
    request: Request,
    customer_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> Any:
    try:
        customer_service.delete(db, user, customer_id)
        return DELETED
    except StoreError as exc:
        return store_error_response(request, exc)


@visits_router.get("", response_model=list[VisitRead])
def list_visits(
    request: Request,
    company_id: uuid.UUID | None = Query(default=None),
    customer_id: uuid.UUID | None = Query(default=None),
    action_type: str | None = Query(default=None),
    status_filter: VisitStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> list[VisitRead] | JSONResponse:
    try:
        return list(
            visit_service.list(
                db,
                user,
                company_id=company_id,
                customer_id=customer_id,
                action_type=action_type,
                status=status_filter,
            )
        )
    except StoreError as exc:
        return store_error_response(request, exc)


@visits_router.get("/follow-ups", response_model=list[VisitFollowUpRead])
def list_visit_follow_ups(
    request: Request,
    bucket: Bucket | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> list[VisitFollowUpRead] | JSONResponse:
    try:
        return visit_service.follow_ups(db, user, now, bucket=bucket)
    except StoreError as exc:
        return store_error_response(request, exc)


@visits_router.post("", response_model=VisitRead, status_code=status.HTTP_201_CREATED)
def create_visit(
    request: Request,
    dto: VisitCreate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> VisitRead | JSONResponse:
    try:
        return visit_service.create(db, user, dto)
    except StoreError as exc:
        return store_error_response(request, exc)


@visits_router.get("/{visit_id}", response_model=VisitRead)
def get_visit(
    request: Request,
    visit_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> VisitRead | JSONResponse:
    try:
        return visit_service.get(db, user, visit_id)
    except StoreError as exc:
        return store_error_response(request, exc)


@visits_router.patch("/{visit_id}", response_model=VisitRead)
def patch_visit(
    request: Request,
    visit_id: uuid.UUID,
    dto: VisitUpdate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> VisitRead | JSONResponse:
    try:
        return visit_service.update(db, user, visit_id, dto)
    except StoreError as exc:
        return store_error_response(request, exc)


@visits_router.post("/{visit_id}/complete", response_model=VisitRead)
def complete_visit(
    request: Request,
    visit_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> VisitRead | JSONResponse:
    try:
        return visit_service.complete(db, user, visit_id)
    except StoreError as exc:
        return store_error_response(request, exc)


@visits_router.delete("/{visit_id}", response_model=None)
def delete_visit(
    request: Request,
    visit_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> Any:
    try:
        visit_service.delete(db, user, visit_id)
        return DELETED
    except StoreError as exc:
        return store_error_response(request, exc)


@opportunities_router.get("", response_model=list[OpportunityRead])
def list_opportunities(
    request: Request,
    stage: OpportunityStage | None = Query(default=None),
    company_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> list[OpportunityRead] | JSONResponse:
    try:
        return list(opportunity_service.list(db, user, stage=stage, company_id=company_id))
    except StoreError as exc:
        return store_error_response(request, exc)


@opportunities_router.get("/pipeline", response_model=PipelineSummaryRead)
def get_pipeline(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> PipelineSummaryRead | JSONResponse:
    try:
        return opportunity_service.pipeline(db, user)
    except StoreError as exc:
        return store_error_response(request, exc)


@opportunities_router.post("", response_model=OpportunityRead, status_code=status.HTTP_201_CREATED)
def create_opportunity(
    request: Request,
    dto: OpportunityCreate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> OpportunityRead | JSONResponse:
    try:
        return opportunity_service.create(db, user, dto, now=now)
    except StoreError as exc:
        return store_error_response(request, exc)


@opportunities_router.get("/{opportunity_id}", response_model=OpportunityRead)
def get_opportunity(
    request: Request,
    opportunity_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> OpportunityRead | JSONResponse:
    try:
        return opportunity_service.get(db, user, opportunity_id)
    except StoreError as exc:
        return store_error_response(request, exc)


@opportunities_router.patch("/{opportunity_id}", response_model=OpportunityRead)
def patch_opportunity(
    request: Request,
    opportunity_id: uuid.UUID,
    dto: OpportunityUpdate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> OpportunityRead | JSONResponse:
    try:
        return opportunity_service.update(db, user, opportunity_id, dto, now=now)
    except StoreError as exc:
        return store_error_response(request, exc)


@opportunities_router.post("/{opportunity_id}/stage/{stage}", response_model=OpportunityRead)
def change_opportunity_stage(
    request: Request,
    opportunity_id: uuid.UUID,
    stage: OpportunityStage,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> OpportunityRead | JSONResponse:
    try:
        return opportunity_service.change_stage(db, user, opportunity_id, stage, now=now)
    except StoreError as exc:
        return store_error_response(request, exc)


@opportunities_router.delete("/{opportunity_id}", response_model=None)
def delete_opportunity(
    request: Request,
    opportunity_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> Any:
    try:
        opportunity_service.delete(db, user, opportunity_id)
        return DELETED
    except StoreError as exc:
        return store_error_response(request, exc)


@tasks_router.get("", response_model=list[TaskRead])
def list_tasks(
    request: Request,
    bucket: Bucket | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> list[TaskRead] | JSONResponse:
    try:
        return task_service.list(db, user, now=now, bucket=bucket)
    except StoreError as exc:
        return store_error_response(request, exc)


@tasks_router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    request: Request,
    dto: TaskCreate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> TaskRead | JSONResponse:
    try:
        return task_service.create(db, user, dto, now=now)
    except StoreError as exc:
        return store_error_response(request, exc)


@tasks_router.get("/{task_id}", response_model=TaskRead)
def get_task(
    request: Request,
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> TaskRead | JSONResponse:
    try:
        return task_service.get(db, user, task_id, now=now)
    except StoreError as exc:
        return store_error_response(request, exc)


@tasks_router.patch("/{task_id}", response_model=TaskRead)
def patch_task(
    request: Request,
    task_id: uuid.UUID,
    dto: TaskUpdate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> TaskRead | JSONResponse:
    try:
        return task_service.update(db, user, task_id, dto, now=now)
    except StoreError as exc:
        return store_error_response(request, exc)


@tasks_router.post("/{task_id}/complete", response_model=TaskRead)
def complete_task(
    request: Request,
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> TaskRead | JSONResponse:
    try:
        return task_service.complete(db, user, task_id, now=now)
    except StoreError as exc:
        return store_error_response(request, exc)


@tasks_router.delete("/{task_id}", response_model=None)
def delete_task(
    request: Request,
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> Any:
    try:
        task_service.delete(db, user, task_id)
        return DELETED
    except StoreError as exc:
        return store_error_response(request, exc)


@requirements_router.get("", response_model=list[RequirementRead])
def list_requirements(
    request: Request,
    company_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> list[RequirementRead] | JSONResponse:
    try:
        return list(requirement_service.list(db, user, company_id=company_id))
    except StoreError as exc:
        return store_error_response(request, exc)


@requirements_router.post("", response_model=RequirementRead, status_code=status.HTTP_201_CREATED)
def create_requirement(
    request: Request,
    dto: RequirementCreate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> RequirementRead | JSONResponse:
    try:
        return requirement_service.create(db, user, dto, now=now)
    except StoreError as exc:
        return store_error_response(request, exc)


@requirements_router.get("/{requirement_id}", response_model=RequirementRead)
def get_requirement(
    request: Request,
    requirement_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> RequirementRead | JSONResponse:
    try:
        return requirement_service.get(db, user, requirement_id)
    except StoreError as exc:
        return store_error_response(request, exc)


@requirements_router.patch("/{requirement_id}", response_model=RequirementRead)
def patch_requirement(
    request: Request,
    requirement_id: uuid.UUID,
    dto: RequirementUpdate,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> RequirementRead | JSONResponse:
    try:
        return requirement_service.update(db, user, requirement_id, dto)
    except StoreError as exc:
        return store_error_response(request, exc)


@requirements_router.delete("/{requirement_id}", response_model=None)
def delete_requirement(
    request: Request,
    requirement_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser | None = Depends(get_current_user),
) -> Any:
    try:
        requirement_service.delete(db, user, requirement_id)
        return DELETED
    except StoreError as exc:
        return store_error_response(request, exc)
