from __future__ import annotations

import uuid
from datetime import date, timedelta
from typing import Any

from sqlalchemy.orm import Session

from salesdesk.crm.schemas import TaskCreate, TaskRead
from salesdesk.crm.service import ActorUser, task_service
from salesdesk.scheduling.clock import business_date, utcnow


OPPORTUNITY_CREATED = "crm.opportunity.created"
OPPORTUNITY_STAGE_CHANGED = "crm.opportunity.stage_changed"

# Stages without an entry here do not schedule a follow-up task.
STAGE_FOLLOW_UPS: dict[str, tuple[str, str]] = {
    "lead": ("Qualify lead: {title}", "call"),
    "prospect": ("Collect requirements: {title}", "meeting"),
    "quotation": ("Send quotation: {title}", "quotation"),
    "negotiation": ("Negotiate terms: {title}", "meeting"),
}


def _event_date(envelope: dict[str, Any]) -> date:
    raw = envelope.get("business_date")
    if isinstance(raw, str) and raw:
        try:
            return date.fromisoformat(raw)
        except ValueError:
            pass
    return business_date(utcnow())


def initial_contact_task(envelope: dict[str, Any]) -> TaskCreate:
    return TaskCreate(
        title=f"Initial contact for {envelope.get('title', '')}",
        type="call",
        related_opportunity_id=uuid.UUID(str(envelope["opportunity_id"])),
        due_date=_event_date(envelope),
        status="pending",
        notes="Initial contact task for new opportunity",
    )


def stage_follow_up_task(envelope: dict[str, Any]) -> TaskCreate | None:
    template = STAGE_FOLLOW_UPS.get(str(envelope.get("stage")))
    if template is None:
        return None
    title, task_type = template
    return TaskCreate(
        title=title.format(title=envelope.get("title", "")),
        type=task_type,
        related_opportunity_id=uuid.UUID(str(envelope["opportunity_id"])),
        due_date=_event_date(envelope) + timedelta(days=1),
        status="pending",
    )


def schedule_task_for_event(session: Session, envelope: dict[str, Any]) -> TaskRead | None:
    """Create the task an opportunity event calls for, on behalf of the opportunity's owner."""
    event_type = envelope.get("event_type")
    if event_type == OPPORTUNITY_CREATED:
        dto: TaskCreate | None = initial_contact_task(envelope)
    elif event_type == OPPORTUNITY_STAGE_CHANGED:
        dto = stage_follow_up_task(envelope)
    else:
        return None
    if dto is None:
        return None

    actor = ActorUser(user_id=str(envelope["user_id"]), correlation_id=envelope.get("correlation_id"))
    return task_service.create(session, actor, dto, now=_event_date(envelope))
