"""
approval_engines.factory -- Template to instance materialisation.

Responsibility:
    Turn a ``WorkflowTemplate`` into a fresh ``WorkflowInstance`` bound to
    one entity.  Every step gets a new id and copies of its template's
    conditions, escalation rules and parallel roster.

Architecture position:
    Engines -- pure construction, zero I/O.  Persisting the result is the
    caller's job.  Timestamps are passed in, never read from a clock.

Invariants enforced:
    - Inactive or step-less templates raise ``InvalidTemplateError``.
    - All steps start ``pending``; ``current_step_index`` starts at 0;
      instance status starts ``pending`` (no step examined yet).
    - Parallel rosters expand to one pending ``ParallelApproval`` per
      approver; duplicate approver ids are rejected as an invalid template.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from approval_engines.tracer import traced_engine
from approval_kernel.domain.instance import (
    ApprovalStep,
    InstanceStatus,
    ParallelApproval,
    StepStatus,
    VoteStatus,
    WorkflowInstance,
)
from approval_kernel.domain.template import (
    ApprovalStepTemplate,
    ParallelApprovalMode,
    WorkflowTemplate,
)
from approval_kernel.domain.values import EntitySnapshot
from approval_kernel.exceptions import InvalidTemplateError


@traced_engine("instance_factory", "1.0")
def instantiate(
    template: WorkflowTemplate,
    entity_type: str,
    entity_id: str,
    *,
    created_at: datetime,
    entity: EntitySnapshot | Mapping[str, Any] | None = None,
    id_factory: Callable[[], UUID] = uuid4,
) -> WorkflowInstance:
    """Materialise ``template`` as a running instance for one entity.

    Raises:
        InvalidTemplateError: template inactive, without steps, or with a
            parallel roster that lists the same approver twice.
    """
    if not template.is_active:
        raise InvalidTemplateError(str(template.id), "template is inactive")
    if not template.steps:
        raise InvalidTemplateError(str(template.id), "template has no steps")

    steps = tuple(
        _materialise_step(template.id, step_template, index, id_factory)
        for index, step_template in enumerate(template.steps)
    )

    return WorkflowInstance(
        id=id_factory(),
        entity_type=entity_type,
        entity_id=str(entity_id),
        steps=steps,
        status=InstanceStatus.PENDING,
        current_step_index=0,
        created_date=created_at,
        template_id=template.id,
        template_name=template.name,
        entity=EntitySnapshot.from_mapping(entity),
    )


def instantiate_from_roles(
    entity_type: str,
    entity_id: str,
    approver_roles: Sequence[str],
    *,
    created_at: datetime,
    entity: EntitySnapshot | Mapping[str, Any] | None = None,
    id_factory: Callable[[], UUID] = uuid4,
) -> WorkflowInstance:
    """Ad hoc sequential workflow: one plain step per approver role.

    Raises:
        InvalidTemplateError: ``approver_roles`` is empty.
    """
    if not approver_roles:
        raise InvalidTemplateError("ad-hoc", "at least one approver role is required")

    steps = tuple(
        ApprovalStep(
            id=id_factory(),
            order=index,
            name=f"{role} Approval",
            approver_role=role,
        )
        for index, role in enumerate(approver_roles)
    )
    return WorkflowInstance(
        id=id_factory(),
        entity_type=entity_type,
        entity_id=str(entity_id),
        steps=steps,
        created_date=created_at,
        entity=EntitySnapshot.from_mapping(entity),
    )


def _materialise_step(
    template_id: UUID,
    step: ApprovalStepTemplate,
    index: int,
    id_factory: Callable[[], UUID],
) -> ApprovalStep:
    approvals: tuple[ParallelApproval, ...] = ()
    mode: ParallelApprovalMode | None = None

    if step.is_parallel:
        if not step.parallel_approvers:
            raise InvalidTemplateError(
                str(template_id),
                f"parallel step {step.id} has no approvers",
            )
        seen: set[str] = set()
        for member in step.parallel_approvers:
            if member.approver_id in seen:
                raise InvalidTemplateError(
                    str(template_id),
                    f"approver {member.approver_id} listed twice on step {step.id}",
                )
            seen.add(member.approver_id)
        approvals = tuple(
            ParallelApproval(
                id=id_factory(),
                approver_id=member.approver_id,
                approver_name=member.approver_name,
                approver_role=member.approver_role,
                is_required=member.is_required,
                status=VoteStatus.PENDING,
            )
            for member in step.parallel_approvers
        )
        mode = step.parallel_approval_mode or ParallelApprovalMode.ALL

    return ApprovalStep(
        id=id_factory(),
        order=index,
        name=step.name,
        approver_role=step.approver_role,
        template_step_id=step.id,
        status=StepStatus.PENDING,
        requires_comments=step.requires_comments,
        can_skip=step.can_skip,
        skip_conditions=step.skip_conditions,
        auto_approval_conditions=step.auto_approval_conditions,
        escalation_rules=step.escalation_rules,
        is_parallel=step.is_parallel,
        parallel_approval_mode=mode,
        parallel_approvals=approvals,
    )
