from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from salesdesk.context import get_correlation_id
from salesdesk.core.events import event_bus

# Every envelope published in this process, newest last.
published_events: list[dict[str, Any]] = []


def build_envelope(event_type: str, payload: dict[str, Any], *, correlation_id: str | None = None) -> dict[str, Any]:
    return {
        **payload,
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "correlation_id": correlation_id or get_correlation_id(),
    }


def publish(event_type: str, payload: dict[str, Any], *, correlation_id: str | None = None) -> dict[str, Any]:
    """Record a CRM domain event and hand it to in-process subscribers."""
    envelope = build_envelope(event_type, payload, correlation_id=correlation_id)
    published_events.append(envelope)
    event_bus.publish(event_type, envelope)
    return envelope
