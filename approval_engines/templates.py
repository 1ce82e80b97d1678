"""
approval_engines.templates -- Pure workflow template editing.

Responsibility:
    Create, edit, duplicate and re-order ``WorkflowTemplate`` values and
    resolve per-batch-type defaults.  Every function returns new values;
    persistence goes through ``TemplateService``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Timestamps and id
    factories are passed in.

Invariants enforced:
    - TP-1: After every edit, step ``order`` values are the dense range
      0..n-1.  Steps are addressed by stable id, never by list position.
    - TP-2: Step ``id`` and ``order`` cannot be changed through
      ``update_step``; order only changes through add/remove/reorder/move.
    - TP-3: Duplicates get fresh template and step ids, ``is_default``
      False, and new timestamps.
    - TP-4: Exactly one default per batch type after
      ``set_default_template``; other batch types are untouched.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from approval_kernel.domain.template import (
    ApprovalStepTemplate,
    BatchType,
    StepCondition,
    TemplateMetadata,
    WorkflowTemplate,
)
from approval_kernel.exceptions import (
    InvalidStepOrderError,
    InvalidTemplateError,
    TemplateNotFoundError,
    TemplateStepNotFoundError,
)

DEFAULT_STEP_NAME = "Initial Review"
DEFAULT_STEP_DESCRIPTION = "First level approval"
DEFAULT_STEP_ROLE = "Manager"

_IMMUTABLE_TEMPLATE_FIELDS = frozenset({"id", "created_at", "updated_at"})
_IMMUTABLE_STEP_FIELDS = frozenset({"id", "order"})


def create_template(
    name: str,
    batch_type: BatchType,
    *,
    now: datetime,
    description: str = "",
    created_by: str | None = None,
    metadata: TemplateMetadata | None = None,
    id_factory: Callable[[], UUID] = uuid4,
) -> WorkflowTemplate:
    """New active, non-default template seeded with one review step."""
    seed = ApprovalStepTemplate(
        id=id_factory(),
        order=0,
        name=DEFAULT_STEP_NAME,
        description=DEFAULT_STEP_DESCRIPTION,
        approver_role=DEFAULT_STEP_ROLE,
        requires_comments=False,
        can_skip=False,
    )
    return WorkflowTemplate(
        id=id_factory(),
        name=name,
        description=description,
        batch_type=BatchType(batch_type),
        is_active=True,
        is_default=False,
        steps=(seed,),
        created_at=now,
        updated_at=now,
        created_by=created_by,
        metadata=metadata or TemplateMetadata(),
    )


def update_template(
    template: WorkflowTemplate,
    *,
    now: datetime,
    **changes: Any,
) -> WorkflowTemplate:
    """Replace top-level fields.  A new ``steps`` sequence is renumbered
    in the order given.

    The default flag only moves through ``set_default_template``.  A
    template moved to another batch type arrives there as a non-default.

    Raises:
        ValueError: on an attempt to change ``id``, timestamps or
            ``is_default``.
    """
    forbidden = _IMMUTABLE_TEMPLATE_FIELDS & changes.keys()
    if forbidden:
        raise ValueError(f"Cannot change template fields: {sorted(forbidden)}")
    if "is_default" in changes:
        raise ValueError("is_default changes through set_default_template")
    if "steps" in changes:
        changes["steps"] = renumber(changes["steps"])
    if "batch_type" in changes:
        changes["batch_type"] = BatchType(changes["batch_type"])
        if changes["batch_type"] != template.batch_type:
            changes["is_default"] = False
    return replace(template, updated_at=now, **changes)


def add_step(
    template: WorkflowTemplate,
    step: ApprovalStepTemplate,
    *,
    now: datetime,
    id_factory: Callable[[], UUID] = uuid4,
) -> WorkflowTemplate:
    """Append ``step`` with a fresh id and ``order = len(steps)``."""
    new_step = replace(step, id=id_factory(), order=len(template.steps))
    return replace(
        template,
        steps=template.steps + (new_step,),
        updated_at=now,
    )


def update_step(
    template: WorkflowTemplate,
    step_id: UUID,
    *,
    now: datetime,
    **changes: Any,
) -> WorkflowTemplate:
    """Replace fields of one step (TP-2).

    Raises:
        TemplateStepNotFoundError: ``step_id`` is not in the template.
        ValueError: on an attempt to change ``id`` or ``order``.
    """
    forbidden = _IMMUTABLE_STEP_FIELDS & changes.keys()
    if forbidden:
        raise ValueError(f"Cannot change step fields: {sorted(forbidden)}")
    _require_step(template, step_id)
    steps = tuple(
        replace(s, **changes) if s.id == step_id else s
        for s in template.steps
    )
    return replace(template, steps=steps, updated_at=now)


def remove_step(
    template: WorkflowTemplate,
    step_id: UUID,
    *,
    now: datetime,
) -> WorkflowTemplate:
    """Drop a step and renumber the rest 0..n-1.

    Raises:
        TemplateStepNotFoundError: ``step_id`` is not in the template.
    """
    _require_step(template, step_id)
    remaining = [s for s in template.steps if s.id != step_id]
    return replace(template, steps=renumber(remaining), updated_at=now)


def reorder_steps(
    template: WorkflowTemplate,
    step_ids: Sequence[UUID],
    *,
    now: datetime,
) -> WorkflowTemplate:
    """Make ``step_ids`` the new step order.

    Unknown ids are ignored and steps missing from ``step_ids`` are
    dropped, matching the template editor's drag-and-drop contract.
    """
    by_id = {s.id: s for s in template.steps}
    seen: set[UUID] = set()
    ordered = []
    for step_id in step_ids:
        if step_id in by_id and step_id not in seen:
            ordered.append(by_id[step_id])
            seen.add(step_id)
    return replace(template, steps=renumber(ordered), updated_at=now)


def move_step(
    template: WorkflowTemplate,
    step_id: UUID,
    direction: str,
    *,
    now: datetime,
) -> WorkflowTemplate:
    """Swap a step with its neighbour (``"up"`` or ``"down"``).

    No-op at either end of the list.
    """
    if direction not in ("up", "down"):
        raise ValueError(f"direction must be 'up' or 'down', got {direction!r}")
    _require_step(template, step_id)

    steps = list(template.steps)
    index = next(i for i, s in enumerate(steps) if s.id == step_id)
    target = index - 1 if direction == "up" else index + 1
    if target < 0 or target >= len(steps):
        return template

    steps[index], steps[target] = steps[target], steps[index]
    return replace(template, steps=renumber(steps), updated_at=now)


def duplicate_template(
    template: WorkflowTemplate,
    *,
    now: datetime,
    id_factory: Callable[[], UUID] = uuid4,
) -> WorkflowTemplate:
    """Deep copy with fresh ids, ``(Copy)`` suffix and ``is_default=False``."""
    steps = tuple(
        replace(
            step,
            id=id_factory(),
            skip_conditions=_copy_conditions(step.skip_conditions, id_factory),
            auto_approval_conditions=_copy_conditions(
                step.auto_approval_conditions, id_factory,
            ),
            escalation_rules=tuple(
                replace(rule, id=id_factory()) for rule in step.escalation_rules
            ),
            parallel_approvers=tuple(
                replace(member, id=id_factory()) for member in step.parallel_approvers
            ),
        )
        for step in template.steps
    )
    return replace(
        template,
        id=id_factory(),
        name=f"{template.name} (Copy)",
        is_default=False,
        steps=renumber(steps),
        created_at=now,
        updated_at=now,
    )


def set_default_template(
    templates: Iterable[WorkflowTemplate],
    template_id: UUID,
    batch_type: BatchType,
    *,
    now: datetime,
) -> tuple[WorkflowTemplate, ...]:
    """Make ``template_id`` the only default of ``batch_type`` (TP-4).

    Returns only the templates whose ``is_default`` flag changed, so the
    caller can persist exactly those in one transaction.

    Raises:
        TemplateNotFoundError: ``template_id`` is not among ``templates``.
        InvalidTemplateError: the template belongs to another batch type.
    """
    batch_type = BatchType(batch_type)
    templates = tuple(templates)
    target = next((t for t in templates if t.id == template_id), None)
    if target is None:
        raise TemplateNotFoundError(str(template_id))
    if target.batch_type != batch_type:
        raise InvalidTemplateError(
            str(template_id),
            f"batch type {target.batch_type.value} does not match {batch_type.value}",
        )

    changed = []
    for t in templates:
        if t.batch_type != batch_type:
            continue
        should_be_default = t.id == template_id
        if t.is_default != should_be_default:
            changed.append(replace(t, is_default=should_be_default, updated_at=now))
    return tuple(changed)


# =========================================================================
# Queries
# =========================================================================


def templates_by_batch_type(
    templates: Iterable[WorkflowTemplate],
    batch_type: BatchType,
) -> tuple[WorkflowTemplate, ...]:
    batch_type = BatchType(batch_type)
    return tuple(t for t in templates if t.batch_type == batch_type)


def default_template(
    templates: Iterable[WorkflowTemplate],
    batch_type: BatchType,
) -> WorkflowTemplate | None:
    batch_type = BatchType(batch_type)
    for t in templates:
        if t.batch_type == batch_type and t.is_default:
            return t
    return None


def active_templates(
    templates: Iterable[WorkflowTemplate],
) -> tuple[WorkflowTemplate, ...]:
    return tuple(t for t in templates if t.is_active)


# =========================================================================
# Order helpers (TP-1)
# =========================================================================


def renumber(
    steps: Iterable[ApprovalStepTemplate],
) -> tuple[ApprovalStepTemplate, ...]:
    """Assign orders 0..n-1 in iteration order."""
    return tuple(
        step if step.order == index else replace(step, order=index)
        for index, step in enumerate(steps)
    )


def validate_step_order(template: WorkflowTemplate) -> None:
    """Raise ``InvalidStepOrderError`` unless orders are dense 0..n-1."""
    if not template.has_dense_order:
        raise InvalidStepOrderError(
            str(template.id), [s.order for s in template.steps],
        )


def _require_step(template: WorkflowTemplate, step_id: UUID) -> ApprovalStepTemplate:
    step = template.step_by_id(step_id)
    if step is None:
        raise TemplateStepNotFoundError(str(template.id), str(step_id))
    return step


def _copy_conditions(
    conditions: tuple[StepCondition, ...],
    id_factory: Callable[[], UUID],
) -> tuple[StepCondition, ...]:
    return tuple(
        replace(c, id=id_factory()) if c.id is not None else c
        for c in conditions
    )
