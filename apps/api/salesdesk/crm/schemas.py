from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


VisitStatus = Literal["pending", "completed", "cancelled"]
OpportunityStage = Literal["cold_call", "lead", "prospect", "followup", "quotation", "negotiation", "won", "lost"]
TaskType = Literal["call", "meeting", "email", "quotation", "followup"]
StoredTaskStatus = Literal["pending", "completed"]
TaskStatus = Literal["pending", "completed", "overdue"]
RequirementStatus = Literal["pending", "processing", "fulfilled", "cancelled"]
FollowUpBucket = Literal["completed", "none", "overdue", "today", "urgent", "scheduled"]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _placeholder_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in {"", "none"}:
        return None
    return value


OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]
OptionalDate = Annotated[date | None, BeforeValidator(_blank_to_none)]
OpportunityRef = Annotated[UUID | None, BeforeValidator(_placeholder_to_none)]


class _ReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


class CompanyCreate(BaseModel):
    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    address: OptionalText = None
    phone: OptionalText = None
    logo: OptionalText = None


class CompanyUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    type: str | None = Field(default=None, min_length=1)
    address: OptionalText = None
    phone: OptionalText = None
    logo: OptionalText = None


class CompanyRead(_ReadModel):
    id: UUID
    user_id: str
    name: str
    type: str
    address: str | None
    phone: str | None
    logo: str | None
    created_at: datetime


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1)
    company_id: UUID
    position: OptionalText = None
    email: OptionalText = None
    phone: OptionalText = None


class CustomerUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    company_id: UUID | None = None
    position: OptionalText = None
    email: OptionalText = None
    phone: OptionalText = None


class CustomerRead(_ReadModel):
    id: UUID
    user_id: str
    company_id: UUID
    name: str
    position: str | None
    email: str | None
    phone: str | None
    created_at: datetime


class VisitCreate(BaseModel):
    company_id: UUID
    customer_id: UUID
    action_type: str = Field(min_length=1)
    visit_date: date
    notes: OptionalText = None
    next_follow_up: OptionalDate = None
    next_action_type: OptionalText = None
    status: VisitStatus = "pending"


class VisitUpdate(BaseModel):
    company_id: UUID | None = None
    customer_id: UUID | None = None
    action_type: str | None = Field(default=None, min_length=1)
    visit_date: date | None = None
    notes: OptionalText = None
    next_follow_up: OptionalDate = None
    next_action_type: OptionalText = None
    status: VisitStatus | None = None


class VisitRead(_ReadModel):
    id: UUID
    user_id: str
    company_id: UUID
    customer_id: UUID
    action_type: str
    visit_date: date
    notes: str | None
    next_follow_up: date | None
    next_action_type: str | None
    status: str
    created_at: datetime


class VisitFollowUpRead(BaseModel):
    visit: VisitRead
    bucket: FollowUpBucket
    days: int | None


class OpportunityCreate(BaseModel):
    company_id: UUID
    customer_id: UUID
    title: str = Field(min_length=1)
    description: OptionalText = None
    stage: OpportunityStage = "cold_call"
    value: Decimal | None = Field(default=None, ge=0)
    probability: int | None = Field(default=None, ge=0, le=100)
    expected_closing_date: OptionalDate = None


class OpportunityUpdate(BaseModel):
    company_id: UUID | None = None
    customer_id: UUID | None = None
    title: str | None = Field(default=None, min_length=1)
    description: OptionalText = None
    stage: OpportunityStage | None = None
    value: Decimal | None = Field(default=None, ge=0)
    probability: int | None = Field(default=None, ge=0, le=100)
    expected_closing_date: OptionalDate = None


class OpportunityRead(_ReadModel):
    id: UUID
    user_id: str
    company_id: UUID
    customer_id: UUID
    title: str
    description: str | None
    stage: OpportunityStage
    value: Decimal | None
    probability: int | None
    expected_closing_date: date | None
    created_at: datetime
    updated_at: datetime


class StageSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stage: OpportunityStage
    count: int
    total_value: Decimal


class PipelineSummaryRead(BaseModel):
    total_value: Decimal
    weighted_value: Decimal
    won_value: Decimal
    open_count: int
    won_count: int
    stages: list[StageSummaryRead]


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    type: TaskType
    related_opportunity_id: OpportunityRef = None
    due_date: date
    status: StoredTaskStatus = "pending"
    notes: OptionalText = None


class TaskUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    type: TaskType | None = None
    related_opportunity_id: OpportunityRef = None
    due_date: date | None = None
    status: StoredTaskStatus | None = None
    notes: OptionalText = None


class TaskRead(_ReadModel):
    id: UUID
    user_id: str
    title: str
    type: TaskType
    related_opportunity_id: UUID | None
    due_date: date
    status: TaskStatus
    notes: str | None
    created_at: datetime
    updated_at: datetime


class RequirementCreate(BaseModel):
    company_id: UUID
    customer_id: UUID
    equipment_name: str = Field(min_length=1)
    required_period: date
    status: RequirementStatus = "pending"
    notes: OptionalText = None
    recorded_date: date | None = None


class RequirementUpdate(BaseModel):
    company_id: UUID | None = None
    customer_id: UUID | None = None
    equipment_name: str | None = Field(default=None, min_length=1)
    required_period: date | None = None
    status: RequirementStatus | None = None
    notes: OptionalText = None


class RequirementRead(_ReadModel):
    id: UUID
    user_id: str
    company_id: UUID
    customer_id: UUID
    equipment_name: str
    required_period: date
    status: RequirementStatus
    notes: str | None
    recorded_date: date
    created_at: datetime
    updated_at: datetime
