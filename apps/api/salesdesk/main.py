from contextlib import asynccontextmanager, contextmanager
import logging
from typing import Any

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from salesdesk.api.routes import router as api_router
from salesdesk.core.config import get_settings
from salesdesk.core.context import RequestContextMiddleware
from salesdesk.core.database import SessionLocal, get_db
from salesdesk.core.events import InternalEvent, event_bus
from salesdesk.crm.automation import OPPORTUNITY_CREATED, OPPORTUNITY_STAGE_CHANGED, schedule_task_for_event
from salesdesk.crm.api import request_validation_error_response
from salesdesk.logging import configure_logging
from salesdesk.middleware.correlation_id import CorrelationIdMiddleware
from salesdesk.middleware.request_logging import RequestLoggingMiddleware
from salesdesk.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("salesdesk.lifecycle")
_subscriptions_registered = False

_automation_event_types = [
    OPPORTUNITY_CREATED,
    OPPORTUNITY_STAGE_CHANGED,
]


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


@contextmanager
def _automation_session_scope():
    override = app.dependency_overrides.get(get_db) if "app" in globals() else None
    if override is None:
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()
        return

    generator = override()
    session = next(generator)
    try:
        yield session
    finally:
        try:
            next(generator)
        except StopIteration:
            pass


def _on_opportunity_event(event: InternalEvent) -> None:
    if not isinstance(event.payload, dict):
        return
    if not get_settings().auto_create_stage_tasks:
        return
    envelope: dict[str, Any] = event.payload
    with _automation_session_scope() as session:
        task = schedule_task_for_event(session, envelope)
    if task is not None:
        logger.info(
            "crm.automation.task_created",
            extra={"event_name": event.name, "entity": "task", "record_id": str(task.id)},
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        event_bus.subscribe(_automation_event_types, _on_opportunity_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


app = FastAPI(title=get_settings().app_name, version="0.1.0", lifespan=lifespan)
app.add_exception_handler(RequestValidationError, request_validation_error_response)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel(enable=True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
