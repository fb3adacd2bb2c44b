from __future__ import annotations

from datetime import date

from pydantic import BaseModel

from salesdesk.crm.schemas import PipelineSummaryRead, VisitRead


class TotalsRead(BaseModel):
    companies: int
    customers: int
    visits: int
    requirements: int
    opportunities: int
    tasks: int


class RequirementAnalysisRead(BaseModel):
    pending: int
    processing: int
    near_term: int


class FollowUpAnalysisRead(BaseModel):
    completed: int
    none: int
    overdue: int
    today: int
    urgent: int
    scheduled: int
    pending: int


class TaskAnalysisRead(BaseModel):
    completed: int
    none: int
    overdue: int
    today: int
    upcoming: int
    scheduled: int


class ActionSummaryRead(BaseModel):
    calls: int = 0
    followups: int = 0
    meetings: int = 0
    other: int = 0


class CompanyTypeCount(BaseModel):
    type: str
    count: int


class ActionTypeCount(BaseModel):
    action: str
    count: int


class AlertRead(BaseModel):
    pending_activity: int
    message: str | None


class DashboardRead(BaseModel):
    as_of: date
    totals: TotalsRead
    requirements: RequirementAnalysisRead
    follow_ups: FollowUpAnalysisRead
    tasks: TaskAnalysisRead
    pipeline: PipelineSummaryRead
    action_summary: ActionSummaryRead
    next_action_summary: ActionSummaryRead
    company_types: list[CompanyTypeCount]
    action_types: list[ActionTypeCount]
    alert: AlertRead


class CalendarDayRead(BaseModel):
    day: date
    visits: list[VisitRead]
