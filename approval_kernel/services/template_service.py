"""
TemplateService -- persistent template configuration.

Responsibility:
    Apply the pure template editing functions from
    ``approval_engines.templates`` to stored templates and save the
    result.  This is the surface used by configuration tooling.

Architecture position:
    Kernel > Services -- imperative shell around the pure template engine.

Invariants enforced:
    - Step order is dense 0..n-1 after every saved edit.
    - Moving the default flag saves the old and the new default in one
      ``save_templates`` call, so a batch type never ends up with two
      defaults.
    - ``update_template`` cannot set the default flag, and an imported
      default demotes the batch type's previous default in the same call.

Failure modes:
    - TemplateNotFoundError for unknown template ids.
    - TemplateStepNotFoundError for unknown step ids.
    - InvalidTemplateError when a default is set across batch types.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any
from uuid import UUID

from approval_engines import templates as template_engine
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.template import (
    ApprovalStepTemplate,
    BatchType,
    TemplateMetadata,
    WorkflowTemplate,
)
from approval_kernel.exceptions import TemplateNotFoundError
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.template_store import TemplateStore

logger = get_logger("services.template")


class TemplateService:
    """Create, edit and query workflow templates."""

    def __init__(self, store: TemplateStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_template(self, template_id: UUID) -> WorkflowTemplate:
        template = self._store.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(str(template_id))
        return template

    def list_templates(self) -> tuple[WorkflowTemplate, ...]:
        return self._store.list_templates()

    def templates_by_batch_type(
        self, batch_type: BatchType,
    ) -> tuple[WorkflowTemplate, ...]:
        return self._store.load_templates_by_batch_type(batch_type)

    def default_template(self, batch_type: BatchType) -> WorkflowTemplate | None:
        return self._store.load_default_template(batch_type)

    def active_templates(self) -> tuple[WorkflowTemplate, ...]:
        return template_engine.active_templates(self._store.list_templates())

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def create_template(
        self,
        name: str,
        batch_type: BatchType,
        *,
        description: str = "",
        created_by: str | None = None,
        metadata: TemplateMetadata | None = None,
    ) -> WorkflowTemplate:
        template = template_engine.create_template(
            name,
            batch_type,
            now=self._clock.now(),
            description=description,
            created_by=created_by,
            metadata=metadata,
        )
        self._store.save_template(template)
        logger.info(
            "template_created",
            extra={
                "template_id": str(template.id),
                "batch_type": template.batch_type.value,
                "template_name": template.name,
            },
        )
        return template

    def import_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Store a fully-formed template (for example from a YAML set).

        An imported default replaces the batch type's current default;
        both are saved in one ``save_templates`` call.
        """
        template_engine.validate_step_order(template)
        to_save = (template,)
        if template.is_default:
            others = tuple(
                t for t in self._store.load_templates_by_batch_type(template.batch_type)
                if t.id != template.id
            )
            demoted = template_engine.set_default_template(
                others + (template,), template.id, template.batch_type,
                now=self._clock.now(),
            )
            to_save += tuple(t for t in demoted if t.id != template.id)
        self._store.save_templates(to_save)
        logger.info(
            "template_imported",
            extra={
                "template_id": str(template.id),
                "step_count": len(template.steps),
                "demoted_count": len(to_save) - 1,
            },
        )
        return template

    def update_template(self, template_id: UUID, **changes: Any) -> WorkflowTemplate:
        return self._edit(
            template_id,
            "template_updated",
            lambda t, now: template_engine.update_template(t, now=now, **changes),
        )

    def add_step(
        self, template_id: UUID, step: ApprovalStepTemplate,
    ) -> WorkflowTemplate:
        return self._edit(
            template_id,
            "template_step_added",
            lambda t, now: template_engine.add_step(t, step, now=now),
        )

    def update_step(
        self, template_id: UUID, step_id: UUID, **changes: Any,
    ) -> WorkflowTemplate:
        return self._edit(
            template_id,
            "template_step_updated",
            lambda t, now: template_engine.update_step(t, step_id, now=now, **changes),
        )

    def remove_step(self, template_id: UUID, step_id: UUID) -> WorkflowTemplate:
        return self._edit(
            template_id,
            "template_step_removed",
            lambda t, now: template_engine.remove_step(t, step_id, now=now),
        )

    def reorder_steps(
        self, template_id: UUID, step_ids: Sequence[UUID],
    ) -> WorkflowTemplate:
        return self._edit(
            template_id,
            "template_steps_reordered",
            lambda t, now: template_engine.reorder_steps(t, step_ids, now=now),
        )

    def move_step(
        self, template_id: UUID, step_id: UUID, direction: str,
    ) -> WorkflowTemplate:
        return self._edit(
            template_id,
            "template_step_moved",
            lambda t, now: template_engine.move_step(t, step_id, direction, now=now),
        )

    def duplicate_template(self, template_id: UUID) -> WorkflowTemplate:
        source = self.get_template(template_id)
        copy = template_engine.duplicate_template(source, now=self._clock.now())
        self._store.save_template(copy)
        logger.info(
            "template_duplicated",
            extra={"source_template_id": str(source.id), "template_id": str(copy.id)},
        )
        return copy

    def set_default_template(
        self, template_id: UUID, batch_type: BatchType,
    ) -> WorkflowTemplate:
        """Make ``template_id`` the only default for ``batch_type``."""
        batch_type = BatchType(batch_type)
        candidates = self._store.load_templates_by_batch_type(batch_type)
        if not any(t.id == template_id for t in candidates):
            # Surfaces TemplateNotFoundError or the batch type mismatch.
            candidates = candidates + (self.get_template(template_id),)

        changed = template_engine.set_default_template(
            candidates, template_id, batch_type, now=self._clock.now(),
        )
        self._store.save_templates(changed)
        logger.info(
            "default_template_set",
            extra={
                "template_id": str(template_id),
                "batch_type": batch_type.value,
                "changed_count": len(changed),
            },
        )
        return self.get_template(template_id)

    def delete_template(self, template_id: UUID) -> None:
        if not self._store.delete_template(template_id):
            raise TemplateNotFoundError(str(template_id))
        logger.info("template_deleted", extra={"template_id": str(template_id)})

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _edit(self, template_id: UUID, log_event: str, apply) -> WorkflowTemplate:
        with LogContext.bind(template_id=template_id):
            template = self.get_template(template_id)
            updated = apply(template, self._clock.now())
            template_engine.validate_step_order(updated)
            self._store.save_template(updated)
            logger.info(log_event, extra={"step_count": len(updated.steps)})
            return updated
