from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any, Generic

from pydantic import BaseModel
from sqlalchemy.orm import Session

from salesdesk import events
from salesdesk.crm.errors import RecordNotFound, ValidationFailed
from salesdesk.crm.models import Company, Customer, Opportunity, Requirement, Task, Visit
from salesdesk.crm.schemas import (
    CompanyRead,
    CustomerRead,
    OpportunityCreate,
    OpportunityRead,
    OpportunityUpdate,
    PipelineSummaryRead,
    RequirementCreate,
    RequirementRead,
    StageSummaryRead,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    VisitFollowUpRead,
    VisitRead,
)
from salesdesk.crm.store import ActorUser, EntityStore, ReadT
from salesdesk.scheduling import (
    FOLLOW_UP,
    TASK,
    Bucket,
    count_by_stage,
    effective_task_status,
    filter_by_bucket,
    follow_up_days,
    open_count,
    stage_summary,
    total_value,
    weighted_value,
)
from salesdesk.scheduling.clock import business_date, business_timezone


logger = logging.getLogger("salesdesk.crm")

__all__ = [
    "ActorUser",
    "CompanyService",
    "CustomerService",
    "VisitService",
    "OpportunityService",
    "TaskService",
    "RequirementService",
]


company_store = EntityStore("company", Company, CompanyRead, (Company.name.asc(),))
customer_store = EntityStore("customer", Customer, CustomerRead, (Customer.created_at.desc(),))
visit_store = EntityStore("visit", Visit, VisitRead, (Visit.visit_date.desc(), Visit.created_at.desc()))
opportunity_store = EntityStore("opportunity", Opportunity, OpportunityRead, (Opportunity.created_at.desc(),))
task_store = EntityStore("task", Task, TaskRead, (Task.due_date.asc(), Task.created_at.asc()))
requirement_store = EntityStore("requirement", Requirement, RequirementRead, (Requirement.created_at.desc(),))


def _today(now: datetime | date) -> date:
    if isinstance(now, datetime):
        return business_date(now)
    return now


@dataclass
class EntityService(Generic[ReadT]):
    store: EntityStore[Any, ReadT]
    required_fields: frozenset[str] = field(default_factory=frozenset)

    def list(self, session: Session, actor: ActorUser | None, **filters: Any) -> tuple[ReadT, ...]:
        return self.store.snapshot(session, actor, **filters)

    def get(self, session: Session, actor: ActorUser | None, record_id: uuid.UUID) -> ReadT:
        return self.store.get(session, actor, record_id)

    def create(self, session: Session, actor: ActorUser | None, dto: BaseModel) -> ReadT:
        actor = self.store.require_actor(actor, "create")
        payload = dto.model_dump(mode="python")
        self.validate_references(session, actor, payload)
        return self.store.create(session, actor, payload)

    def update(self, session: Session, actor: ActorUser | None, record_id: uuid.UUID, dto: BaseModel) -> ReadT:
        actor = self.store.require_actor(actor, "update")
        changes = self._changes(dto)
        if changes:
            self.validate_references(session, actor, changes, record_id=record_id)
        return self.store.update(session, actor, record_id, changes)

    def delete(self, session: Session, actor: ActorUser | None, record_id: uuid.UUID) -> None:
        self.store.delete(session, actor, record_id)

    def validate_references(
        self,
        session: Session,
        actor: ActorUser,
        payload: dict[str, Any],
        *,
        record_id: uuid.UUID | None = None,
    ) -> None:
        return None

    def _changes(self, dto: BaseModel) -> dict[str, Any]:
        changes = dto.model_dump(mode="python", exclude_unset=True)
        blanks = sorted(name for name in self.required_fields if name in changes and changes[name] is None)
        if blanks:
            raise ValidationFailed("Please fill in all required fields", entity=self.store.entity, details={"fields": blanks})
        return changes


def _require_company(session: Session, actor: ActorUser, company_id: uuid.UUID) -> None:
    if not company_store.exists(session, actor, company_id):
        raise ValidationFailed("Company does not exist", entity="company", details={"company_id": str(company_id)})


def _require_customer_of(session: Session, actor: ActorUser, company_id: uuid.UUID, customer_id: uuid.UUID) -> None:
    _require_company(session, actor, company_id)
    try:
        customer = customer_store.get(session, actor, customer_id)
    except RecordNotFound:
        raise ValidationFailed("Customer does not exist", entity="customer", details={"customer_id": str(customer_id)})
    if customer.company_id != company_id:
        raise ValidationFailed(
            "Customer does not belong to the selected company",
            entity="customer",
            details={"customer_id": str(customer_id), "company_id": str(company_id)},
        )


class CompanyService(EntityService[CompanyRead]):
    pass


class CustomerService(EntityService[CustomerRead]):
    def validate_references(self, session, actor, payload, *, record_id=None):  # type: ignore[no-untyped-def]
        if payload.get("company_id") is not None:
            _require_company(session, actor, payload["company_id"])


class _CompanyCustomerService(EntityService[ReadT]):
    """Records that belong to one company and one of that company's customers."""

    def validate_references(self, session, actor, payload, *, record_id=None):  # type: ignore[no-untyped-def]
        if "company_id" not in payload and "customer_id" not in payload:
            return
        company_id = payload.get("company_id")
        customer_id = payload.get("customer_id")
        if record_id is not None:
            current = self.store.get(session, actor, record_id)
            company_id = company_id or current.company_id
            customer_id = customer_id or current.customer_id
        _require_customer_of(session, actor, company_id, customer_id)


class VisitService(_CompanyCustomerService[VisitRead]):
    def complete(self, session: Session, actor: ActorUser | None, visit_id: uuid.UUID) -> VisitRead:
        actor = self.store.require_actor(actor, "update")
        return self.store.update(session, actor, visit_id, {"status": "completed"})

    def follow_ups(
        self,
        session: Session,
        actor: ActorUser | None,
        now: datetime,
        *,
        bucket: Bucket | None = None,
        tz: tzinfo | None = None,
    ) -> list[VisitFollowUpRead]:
        tz = tz or business_timezone()
        visits = [visit for visit in self.store.snapshot(session, actor) if visit.next_follow_up is not None]
        if bucket is not None:
            visits = filter_by_bucket(visits, bucket, now, FOLLOW_UP, tz)
        return [
            VisitFollowUpRead(
                visit=visit,
                bucket=FOLLOW_UP.classify(visit, now, tz).value,
                days=follow_up_days(visit, now, FOLLOW_UP, tz),
            )
            for visit in visits
        ]


class OpportunityService(_CompanyCustomerService[OpportunityRead]):
    def create(  # type: ignore[override]
        self,
        session: Session,
        actor: ActorUser | None,
        dto: OpportunityCreate,
        *,
        now: datetime | date | None = None,
    ) -> OpportunityRead:
        created = super().create(session, actor, dto)
        self._publish("crm.opportunity.created", created, actor, now)
        return created

    def update(  # type: ignore[override]
        self,
        session: Session,
        actor: ActorUser | None,
        record_id: uuid.UUID,
        dto: OpportunityUpdate,
        *,
        now: datetime | date | None = None,
    ) -> OpportunityRead:
        actor = self.store.require_actor(actor, "update")
        previous_stage = None
        if dto.stage is not None:
            previous_stage = self.store.get(session, actor, record_id).stage
        updated = super().update(session, actor, record_id, dto)
        if previous_stage is not None and updated.stage != previous_stage:
            self._publish("crm.opportunity.stage_changed", updated, actor, now, previous_stage=previous_stage)
        return updated

    def change_stage(
        self,
        session: Session,
        actor: ActorUser | None,
        record_id: uuid.UUID,
        stage: str,
        *,
        now: datetime | date | None = None,
    ) -> OpportunityRead:
        return self.update(session, actor, record_id, OpportunityUpdate(stage=stage), now=now)

    def pipeline(self, session: Session, actor: ActorUser | None) -> PipelineSummaryRead:
        return summarize_pipeline(self.store.snapshot(session, actor))

    def _publish(
        self,
        event_type: str,
        opportunity: OpportunityRead,
        actor: ActorUser | None,
        now: datetime | date | None,
        *,
        previous_stage: str | None = None,
    ) -> None:
        payload: dict[str, Any] = {
            "user_id": opportunity.user_id,
            "opportunity_id": str(opportunity.id),
            "title": opportunity.title,
            "stage": opportunity.stage,
            "business_date": _today(now).isoformat() if now is not None else None,
        }
        if previous_stage is not None:
            payload["previous_stage"] = previous_stage
        logger.info("crm.event.published", extra={"event_name": event_type, "record_id": str(opportunity.id)})
        events.publish(event_type, payload, correlation_id=actor.correlation_id if actor is not None else None)


def summarize_pipeline(opportunities: tuple[OpportunityRead, ...] | list[OpportunityRead]) -> PipelineSummaryRead:
    return PipelineSummaryRead(
        total_value=total_value(opportunities),
        weighted_value=weighted_value(opportunities),
        won_value=total_value(opportunities, "won"),
        open_count=open_count(opportunities),
        won_count=count_by_stage(opportunities, "won"),
        stages=[StageSummaryRead.model_validate(row) for row in stage_summary(opportunities)],
    )


class TaskService(EntityService[TaskRead]):
    """Tasks are always returned with their read-time status projection applied."""

    def project(self, task: TaskRead, now: datetime | date, tz: tzinfo | None = None) -> TaskRead:
        status = effective_task_status(task.status, task.due_date, now, tz or business_timezone())
        if status == task.status:
            return task
        return task.model_copy(update={"status": status})

    def list(  # type: ignore[override]
        self,
        session: Session,
        actor: ActorUser | None,
        *,
        now: datetime | date,
        bucket: Bucket | None = None,
        tz: tzinfo | None = None,
    ) -> list[TaskRead]:
        tz = tz or business_timezone()
        tasks = list(self.store.snapshot(session, actor))
        if bucket is not None:
            tasks = filter_by_bucket(tasks, bucket, now, TASK, tz)
        return [self.project(task, now, tz) for task in tasks]

    def get(self, session: Session, actor: ActorUser | None, record_id: uuid.UUID, *, now: datetime | date) -> TaskRead:  # type: ignore[override]
        return self.project(self.store.get(session, actor, record_id), now)

    def create(self, session: Session, actor: ActorUser | None, dto: TaskCreate, *, now: datetime | date) -> TaskRead:  # type: ignore[override]
        return self.project(super().create(session, actor, dto), now)

    def update(  # type: ignore[override]
        self,
        session: Session,
        actor: ActorUser | None,
        record_id: uuid.UUID,
        dto: TaskUpdate,
        *,
        now: datetime | date,
    ) -> TaskRead:
        return self.project(super().update(session, actor, record_id, dto), now)

    def complete(self, session: Session, actor: ActorUser | None, record_id: uuid.UUID, *, now: datetime | date) -> TaskRead:
        return self.update(session, actor, record_id, TaskUpdate(status="completed"), now=now)

    def validate_references(self, session, actor, payload, *, record_id=None):  # type: ignore[no-untyped-def]
        opportunity_id = payload.get("related_opportunity_id")
        if opportunity_id is not None and not opportunity_store.exists(session, actor, opportunity_id):
            raise ValidationFailed(
                "Related opportunity does not exist",
                entity="opportunity",
                details={"related_opportunity_id": str(opportunity_id)},
            )


class RequirementService(_CompanyCustomerService[RequirementRead]):
    def create(  # type: ignore[override]
        self,
        session: Session,
        actor: ActorUser | None,
        dto: RequirementCreate,
        *,
        now: datetime | date,
    ) -> RequirementRead:
        if dto.recorded_date is None:
            dto = dto.model_copy(update={"recorded_date": _today(now)})
        return super().create(session, actor, dto)


company_service = CompanyService(company_store, frozenset({"name", "type"}))
customer_service = CustomerService(customer_store, frozenset({"name", "company_id"}))
visit_service = VisitService(
    visit_store,
    frozenset({"company_id", "customer_id", "action_type", "visit_date", "status"}),
)
opportunity_service = OpportunityService(
    opportunity_store,
    frozenset({"company_id", "customer_id", "title", "stage"}),
)
task_service = TaskService(task_store, frozenset({"title", "type", "due_date", "status"}))
requirement_service = RequirementService(
    requirement_store,
    frozenset({"company_id", "customer_id", "equipment_name", "required_period", "status"}),
)
