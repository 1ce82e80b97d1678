"""
Template stores -- durability boundary for workflow templates.

Responsibility:
    Load and save ``WorkflowTemplate`` values.  ``TemplateStore`` is the
    contract consumed by ``TemplateService`` and ``WorkflowService``;
    ``InMemoryTemplateStore`` backs tests and embedding callers,
    ``SqlTemplateStore`` persists through the ORM models.

Architecture position:
    Kernel > Services -- imperative shell.  Returns frozen domain values,
    never ORM objects.

Invariants enforced:
    - ``save_templates`` is atomic: either every template is stored or
      none is (used to move the default flag between templates).
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.db.engine import session_scope
from approval_kernel.domain.template import BatchType, WorkflowTemplate
from approval_kernel.logging_config import get_logger
from approval_kernel.models.template import WorkflowTemplateModel

logger = get_logger("services.template_store")


@runtime_checkable
class TemplateStore(Protocol):
    """Persistence contract for workflow templates."""

    def load_templates_by_batch_type(
        self, batch_type: BatchType,
    ) -> tuple[WorkflowTemplate, ...]: ...

    def load_default_template(
        self, batch_type: BatchType,
    ) -> WorkflowTemplate | None: ...

    def get_template(self, template_id: UUID) -> WorkflowTemplate | None: ...

    def list_templates(self) -> tuple[WorkflowTemplate, ...]: ...

    def save_template(self, template: WorkflowTemplate) -> None: ...

    def save_templates(self, templates: Iterable[WorkflowTemplate]) -> None: ...

    def delete_template(self, template_id: UUID) -> bool: ...


class InMemoryTemplateStore:
    """Dict-backed template store.  Safe for concurrent use."""

    def __init__(self, templates: Iterable[WorkflowTemplate] = ()):
        self._lock = threading.Lock()
        self._templates: dict[UUID, WorkflowTemplate] = {
            t.id: t for t in templates
        }

    def load_templates_by_batch_type(
        self, batch_type: BatchType,
    ) -> tuple[WorkflowTemplate, ...]:
        batch_type = BatchType(batch_type)
        with self._lock:
            return tuple(
                t for t in self._templates.values() if t.batch_type == batch_type
            )

    def load_default_template(
        self, batch_type: BatchType,
    ) -> WorkflowTemplate | None:
        for template in self.load_templates_by_batch_type(batch_type):
            if template.is_default:
                return template
        return None

    def get_template(self, template_id: UUID) -> WorkflowTemplate | None:
        with self._lock:
            return self._templates.get(template_id)

    def list_templates(self) -> tuple[WorkflowTemplate, ...]:
        with self._lock:
            return tuple(self._templates.values())

    def save_template(self, template: WorkflowTemplate) -> None:
        self.save_templates((template,))

    def save_templates(self, templates: Iterable[WorkflowTemplate]) -> None:
        templates = tuple(templates)
        with self._lock:
            for template in templates:
                self._templates[template.id] = template

    def delete_template(self, template_id: UUID) -> bool:
        with self._lock:
            return self._templates.pop(template_id, None) is not None


class SqlTemplateStore:
    """Template store on SQLAlchemy; one transaction per call."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def load_templates_by_batch_type(
        self, batch_type: BatchType,
    ) -> tuple[WorkflowTemplate, ...]:
        batch_type = BatchType(batch_type)
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(WorkflowTemplateModel)
                .where(WorkflowTemplateModel.batch_type == batch_type.value)
                .order_by(WorkflowTemplateModel.name)
            ).all()
            return tuple(row.to_dto() for row in rows)

    def load_default_template(
        self, batch_type: BatchType,
    ) -> WorkflowTemplate | None:
        batch_type = BatchType(batch_type)
        with session_scope(self._session_factory) as session:
            row = session.scalars(
                select(WorkflowTemplateModel)
                .where(WorkflowTemplateModel.batch_type == batch_type.value)
                .where(WorkflowTemplateModel.is_default.is_(True))
                .limit(1)
            ).first()
            return row.to_dto() if row is not None else None

    def get_template(self, template_id: UUID) -> WorkflowTemplate | None:
        with session_scope(self._session_factory) as session:
            row = session.get(WorkflowTemplateModel, template_id)
            return row.to_dto() if row is not None else None

    def list_templates(self) -> tuple[WorkflowTemplate, ...]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(WorkflowTemplateModel).order_by(
                    WorkflowTemplateModel.batch_type, WorkflowTemplateModel.name,
                )
            ).all()
            return tuple(row.to_dto() for row in rows)

    def save_template(self, template: WorkflowTemplate) -> None:
        self.save_templates((template,))

    def save_templates(self, templates: Iterable[WorkflowTemplate]) -> None:
        templates = tuple(templates)
        with session_scope(self._session_factory) as session:
            for template in templates:
                row = session.get(WorkflowTemplateModel, template.id)
                if row is None:
                    session.add(WorkflowTemplateModel.from_dto(template))
                else:
                    row.update_from_dto(template)
        logger.debug(
            "templates_saved",
            extra={"template_ids": [str(t.id) for t in templates]},
        )

    def delete_template(self, template_id: UUID) -> bool:
        with session_scope(self._session_factory) as session:
            row = session.get(WorkflowTemplateModel, template_id)
            if row is None:
                return False
            session.delete(row)
            return True
