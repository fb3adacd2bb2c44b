"""Dashboard composition.

Everything here is recomputed from a fresh snapshot of the user's records
and the current time; nothing is cached between requests.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, tzinfo

from sqlalchemy.orm import Session

from salesdesk.core.config import get_settings
from salesdesk.crm.schemas import (
    CompanyRead,
    CustomerRead,
    OpportunityRead,
    RequirementRead,
    TaskRead,
    VisitRead,
)
from salesdesk.crm.service import (
    ActorUser,
    company_service,
    customer_service,
    opportunity_service,
    requirement_service,
    summarize_pipeline,
    task_service,
    visit_service,
)
from salesdesk.dashboard.schemas import (
    ActionSummaryRead,
    ActionTypeCount,
    AlertRead,
    CalendarDayRead,
    CompanyTypeCount,
    DashboardRead,
    FollowUpAnalysisRead,
    RequirementAnalysisRead,
    TaskAnalysisRead,
    TotalsRead,
)
from salesdesk.scheduling import (
    FOLLOW_UP,
    TASK,
    count_by_bucket,
    near_term_requirements,
    pending_follow_ups,
    total_pending_activity,
)
from salesdesk.scheduling.clock import business_timezone
from salesdesk.scheduling.fields import to_calendar_date


logger = logging.getLogger("salesdesk.dashboard")


@dataclass(frozen=True)
class DashboardSnapshot:
    companies: tuple[CompanyRead, ...] = ()
    customers: tuple[CustomerRead, ...] = ()
    visits: tuple[VisitRead, ...] = ()
    opportunities: tuple[OpportunityRead, ...] = ()
    tasks: tuple[TaskRead, ...] = ()
    requirements: tuple[RequirementRead, ...] = ()


def load_snapshot(session: Session, actor: ActorUser | None) -> DashboardSnapshot:
    return DashboardSnapshot(
        companies=company_service.list(session, actor),
        customers=customer_service.list(session, actor),
        visits=visit_service.list(session, actor),
        opportunities=opportunity_service.list(session, actor),
        tasks=task_service.store.snapshot(session, actor),
        requirements=requirement_service.list(session, actor),
    )


def _action_bucket(label: str) -> str:
    if label == "Call":
        return "calls"
    if "Follow-up" in label:
        return "followups"
    if label == "Meeting":
        return "meetings"
    return "other"


def summarize_actions(labels: Iterable[str]) -> ActionSummaryRead:
    counts = {"calls": 0, "followups": 0, "meetings": 0, "other": 0}
    for label in labels:
        counts[_action_bucket(label)] += 1
    return ActionSummaryRead(**counts)


def _distribution(values: Iterable[str]) -> list[tuple[str, int]]:
    # first-seen order
    counts: dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    return list(counts.items())


def reminder_message(pending_activity: int) -> str | None:
    if pending_activity <= 0:
        return None
    return f"You have {pending_activity} follow-up(s) that need attention!"


def compose_dashboard(
    snapshot: DashboardSnapshot,
    now: datetime | date,
    tz: tzinfo | None = None,
    window_days: int | None = None,
) -> DashboardRead:
    tz = tz or business_timezone()
    if window_days is None:
        window_days = get_settings().requirement_window_days

    follow_up_counts = count_by_bucket(
        (visit for visit in snapshot.visits if visit.next_follow_up is not None),
        now,
        FOLLOW_UP,
        tz,
    )
    task_counts = count_by_bucket(snapshot.tasks, now, TASK, tz)
    near_term = near_term_requirements(snapshot.requirements, now, tz, window_days)
    pending_activity = total_pending_activity(follow_up_counts, task_counts, len(near_term))

    return DashboardRead(
        as_of=to_calendar_date(now, tz),
        totals=TotalsRead(
            companies=len(snapshot.companies),
            customers=len(snapshot.customers),
            visits=len(snapshot.visits),
            requirements=len(snapshot.requirements),
            opportunities=len(snapshot.opportunities),
            tasks=len(snapshot.tasks),
        ),
        requirements=RequirementAnalysisRead(
            pending=sum(1 for item in snapshot.requirements if item.status == "pending"),
            processing=sum(1 for item in snapshot.requirements if item.status == "processing"),
            near_term=len(near_term),
        ),
        follow_ups=FollowUpAnalysisRead(
            **{bucket.value: count for bucket, count in follow_up_counts.items()},
            pending=pending_follow_ups(follow_up_counts),
        ),
        tasks=TaskAnalysisRead(**{bucket.value: count for bucket, count in task_counts.items()}),
        pipeline=summarize_pipeline(snapshot.opportunities),
        action_summary=summarize_actions(visit.action_type for visit in snapshot.visits),
        next_action_summary=summarize_actions(
            visit.next_action_type
            for visit in snapshot.visits
            if visit.next_action_type and visit.status != "completed"
        ),
        company_types=[
            CompanyTypeCount(type=name, count=count)
            for name, count in _distribution(company.type for company in snapshot.companies)
        ],
        action_types=[
            ActionTypeCount(action=name, count=count)
            for name, count in _distribution(visit.action_type for visit in snapshot.visits)
        ],
        alert=AlertRead(pending_activity=pending_activity, message=reminder_message(pending_activity)),
    )


def calendar_events(visits: Iterable[VisitRead], day: date) -> CalendarDayRead:
    """Visits whose next follow-up falls on ``day``."""
    return CalendarDayRead(day=day, visits=[visit for visit in visits if visit.next_follow_up == day])


def build_dashboard(session: Session, actor: ActorUser | None, now: datetime) -> DashboardRead:
    dashboard = compose_dashboard(load_snapshot(session, actor), now)
    logger.info(
        "dashboard.composed",
        extra={
            "entity": "dashboard",
            "operation": "compose",
            "user_id": actor.user_id if actor else None,
            "pending_activity": dashboard.alert.pending_activity,
        },
    )
    return dashboard
