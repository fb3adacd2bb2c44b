"""Per-user entity stores.

A store is the only code that talks to the database for an entity. Reads
return immutable snapshots ordered by the entity's listing field; writes are
applied to the database first and the written record is returned, so a
failed call leaves nothing half-applied.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from salesdesk.core.database import Base
from salesdesk.crm.errors import BackendUnavailable, NotAuthenticated, RecordNotFound, StoreError
from salesdesk.metrics import observe_store_operation
from salesdesk.otel import get_tracer, store_span


logger = logging.getLogger("salesdesk.crm.store")
tracer = get_tracer("salesdesk.crm.store")

ModelT = TypeVar("ModelT", bound=Base)
ReadT = TypeVar("ReadT", bound=BaseModel)


@dataclass
class ActorUser:
    user_id: str
    roles: list[str] = field(default_factory=list)
    correlation_id: str | None = None


@dataclass
class EntityStore(Generic[ModelT, ReadT]):
    entity: str
    model: type[ModelT]
    read_schema: type[ReadT]
    order_by: tuple[Any, ...] = ()

    @contextmanager
    def _operation(self, operation: str) -> Iterator[None]:
        started = time.perf_counter()
        outcome = "ok"
        with store_span(tracer, self.entity, operation):
            try:
                yield
            except StoreError as exc:
                outcome = exc.code
                raise
            finally:
                observe_store_operation(self.entity, operation, outcome, time.perf_counter() - started)

    def require_actor(self, actor: ActorUser | None, operation: str) -> ActorUser:
        if actor is None:
            logger.info("crm.store.unauthenticated", extra={"entity": self.entity, "operation": operation})
            raise NotAuthenticated(f"You must be logged in to {operation} {self.entity} records", entity=self.entity)
        return actor

    def _backend_failure(
        self,
        session: Session,
        operation: str,
        exc: SQLAlchemyError,
        record_id: uuid.UUID | None = None,
    ) -> BackendUnavailable:
        session.rollback()
        logger.warning(
            "crm.store.failed",
            extra={
                "entity": self.entity,
                "operation": operation,
                "record_id": str(record_id) if record_id else None,
                "error": str(exc),
            },
        )
        return BackendUnavailable(f"Failed to {operation} {self.entity}", entity=self.entity)

    def _owned(self, session: Session, actor: ActorUser, record_id: uuid.UUID, operation: str) -> ModelT:
        stmt = select(self.model).where(self.model.id == record_id, self.model.user_id == actor.user_id)
        try:
            record = session.scalar(stmt)
        except SQLAlchemyError as exc:
            raise self._backend_failure(session, operation, exc, record_id) from exc
        if record is None:
            raise RecordNotFound(f"{self.entity} not found", entity=self.entity, details={"id": str(record_id)})
        return record

    def snapshot(self, session: Session, actor: ActorUser | None, **filters: Any) -> tuple[ReadT, ...]:
        """All of the actor's records; empty without a session. ``None`` filters are ignored."""
        if actor is None:
            return ()
        with self._operation("snapshot"):
            stmt = select(self.model).where(self.model.user_id == actor.user_id)
            for name, value in filters.items():
                if value is not None:
                    stmt = stmt.where(getattr(self.model, name) == value)
            try:
                rows = session.scalars(stmt.order_by(*self.order_by)).all()
            except SQLAlchemyError as exc:
                raise self._backend_failure(session, "list", exc) from exc
            return tuple(self.read_schema.model_validate(row) for row in rows)

    def exists(self, session: Session, actor: ActorUser, record_id: uuid.UUID) -> bool:
        try:
            self._owned(session, actor, record_id, "read")
        except RecordNotFound:
            return False
        return True

    def get(self, session: Session, actor: ActorUser | None, record_id: uuid.UUID) -> ReadT:
        actor = self.require_actor(actor, "read")
        with self._operation("get"):
            return self.read_schema.model_validate(self._owned(session, actor, record_id, "read"))

    def create(self, session: Session, actor: ActorUser | None, payload: Mapping[str, Any]) -> ReadT:
        actor = self.require_actor(actor, "create")
        with self._operation("create"):
            record = self.model(**dict(payload), user_id=actor.user_id)
            session.add(record)
            try:
                session.commit()
                session.refresh(record)
            except SQLAlchemyError as exc:
                raise self._backend_failure(session, "create", exc) from exc
            logger.info("crm.store.created", extra={"entity": self.entity, "record_id": str(record.id)})
            return self.read_schema.model_validate(record)

    def update(
        self,
        session: Session,
        actor: ActorUser | None,
        record_id: uuid.UUID,
        changes: Mapping[str, Any],
    ) -> ReadT:
        actor = self.require_actor(actor, "update")
        with self._operation("update"):
            record = self._owned(session, actor, record_id, "update")
            for name, value in changes.items():
                setattr(record, name, value)
            try:
                session.commit()
                session.refresh(record)
            except SQLAlchemyError as exc:
                raise self._backend_failure(session, "update", exc, record_id) from exc
            return self.read_schema.model_validate(record)

    def delete(self, session: Session, actor: ActorUser | None, record_id: uuid.UUID) -> None:
        actor = self.require_actor(actor, "delete")
        with self._operation("delete"):
            record = self._owned(session, actor, record_id, "delete")
            session.delete(record)
            try:
                session.commit()
            except SQLAlchemyError as exc:
                raise self._backend_failure(session, "delete", exc, record_id) from exc
            logger.info("crm.store.deleted", extra={"entity": self.entity, "record_id": str(record_id)})
