"""
Instance stores -- durability boundary for workflow instances.

Responsibility:
    Load and save ``WorkflowInstance`` values.  ``InstanceStore`` is the
    contract consumed by ``WorkflowService`` and ``EscalationService``.

Architecture position:
    Kernel > Services -- imperative shell.  Returns frozen domain values,
    never ORM objects.

Invariants enforced:
    - Optimistic locking: ``save_instance`` accepts an instance only if
      its ``version`` equals the stored version (or the instance is new),
      and returns the saved value with ``version + 1``.  A stale save
      raises ``OptimisticLockError`` and stores nothing.
    - The SQL store also locks the row (``SELECT ... FOR UPDATE``) for the
      duration of the save on backends that support it.

Failure modes:
    - OptimisticLockError on a stale version.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from approval_kernel.db.engine import session_scope
from approval_kernel.domain.instance import InstanceStatus, WorkflowInstance
from approval_kernel.exceptions import OptimisticLockError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.instance import WorkflowInstanceModel

logger = get_logger("services.instance_store")


@runtime_checkable
class InstanceStore(Protocol):
    """Persistence contract for workflow instances."""

    def load_instance(self, instance_id: UUID) -> WorkflowInstance | None: ...

    def save_instance(self, instance: WorkflowInstance) -> WorkflowInstance: ...

    def list_instance_ids(
        self, statuses: Iterable[InstanceStatus] | None = None,
    ) -> tuple[UUID, ...]: ...

    def instances_for_entity(
        self, entity_type: str, entity_id: str,
    ) -> tuple[WorkflowInstance, ...]: ...


class InMemoryInstanceStore:
    """Dict-backed instance store.  Safe for concurrent use."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._instances: dict[UUID, WorkflowInstance] = {}

    def load_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        with self._lock:
            return self._instances.get(instance_id)

    def save_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        with self._lock:
            stored = self._instances.get(instance.id)
            if stored is not None and stored.version != instance.version:
                raise OptimisticLockError("WorkflowInstance", str(instance.id))
            saved = replace(instance, version=instance.version + 1)
            self._instances[instance.id] = saved
            return saved

    def list_instance_ids(
        self, statuses: Iterable[InstanceStatus] | None = None,
    ) -> tuple[UUID, ...]:
        wanted = frozenset(statuses) if statuses is not None else None
        with self._lock:
            return tuple(
                i.id for i in self._instances.values()
                if wanted is None or i.status in wanted
            )

    def instances_for_entity(
        self, entity_type: str, entity_id: str,
    ) -> tuple[WorkflowInstance, ...]:
        with self._lock:
            matches = [
                i for i in self._instances.values()
                if i.entity_type == entity_type and i.entity_id == str(entity_id)
            ]
        matches.sort(key=lambda i: (i.created_date is None, i.created_date))
        return tuple(matches)


class SqlInstanceStore:
    """Instance store on SQLAlchemy; one transaction per call."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def load_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        with session_scope(self._session_factory) as session:
            row = session.get(WorkflowInstanceModel, instance_id)
            return row.to_dto() if row is not None else None

    def save_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        try:
            with session_scope(self._session_factory) as session:
                row = session.scalars(
                    select(WorkflowInstanceModel)
                    .where(WorkflowInstanceModel.id == instance.id)
                    .with_for_update()
                ).first()
                if row is None:
                    row = WorkflowInstanceModel.from_dto(instance)
                    session.add(row)
                elif row.version != instance.version:
                    raise OptimisticLockError("WorkflowInstance", str(instance.id))
                else:
                    row.update_from_dto(instance)
                session.flush()
                saved_version = row.version
        except StaleDataError as exc:
            raise OptimisticLockError("WorkflowInstance", str(instance.id)) from exc

        logger.debug(
            "instance_saved",
            extra={"instance_id": str(instance.id), "version": saved_version},
        )
        return replace(instance, version=saved_version)

    def list_instance_ids(
        self, statuses: Iterable[InstanceStatus] | None = None,
    ) -> tuple[UUID, ...]:
        stmt = select(WorkflowInstanceModel.id).order_by(
            WorkflowInstanceModel.created_date,
        )
        if statuses is not None:
            stmt = stmt.where(
                WorkflowInstanceModel.status.in_([s.value for s in statuses])
            )
        with session_scope(self._session_factory) as session:
            return tuple(session.scalars(stmt).all())

    def instances_for_entity(
        self, entity_type: str, entity_id: str,
    ) -> tuple[WorkflowInstance, ...]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(WorkflowInstanceModel)
                .where(WorkflowInstanceModel.entity_type == entity_type)
                .where(WorkflowInstanceModel.entity_id == str(entity_id))
                .order_by(WorkflowInstanceModel.created_date)
            ).all()
            return tuple(row.to_dto() for row in rows)
