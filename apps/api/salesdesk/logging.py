from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from salesdesk.context import get_correlation_id, get_user_id


# Extra attributes copied into the "fields" object, with an optional length cap.
LOG_FIELDS: dict[str, int | None] = {
    "method": None,
    "path": None,
    "status_code": None,
    "duration_ms": None,
    "entity": None,
    "operation": None,
    "record_id": None,
    "user_id": None,
    "event_name": None,
    "pending_activity": None,
    "error": 500,
}

_previous_factory = logging.getLogRecordFactory()


def _stamp_request_context(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _previous_factory(*args, **kwargs)
    # makeRecord rejects extras that already exist, so user_id is left to the formatter
    record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; request context at the top, extras under "fields"."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {}
        for name, limit in LOG_FIELDS.items():
            value = getattr(record, name, None)
            if value is None:
                continue
            if limit is not None and isinstance(value, str):
                value = value[:limit]
            fields[name] = value
        if "user_id" not in fields and get_user_id() is not None:
            fields["user_id"] = get_user_id()
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        return json.dumps(
            {
                "ts": datetime.now(timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "correlation_id": getattr(record, "correlation_id", None),
                "fields": fields,
            },
            default=str,
        )


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    if getattr(root, "_salesdesk_configured", False):
        return

    resolved = getattr(logging, (level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    logging.setLogRecordFactory(_stamp_request_context)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolved)
    root._salesdesk_configured = True  # type: ignore[attr-defined]
