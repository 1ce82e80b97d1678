"""Factory helpers shared by the approval workflow tests."""

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from approval_kernel.domain.template import (
    ApprovalStepTemplate,
    BatchType,
    ConditionLogic,
    ConditionOperator,
    EscalationRule,
    ParallelApprovalMode,
    ParallelApproverSpec,
    StepCondition,
    WorkflowTemplate,
)

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_condition(
    field: str = "amount",
    operator: ConditionOperator = ConditionOperator.LESS_THAN,
    value=Decimal("100"),
    logic: ConditionLogic | None = None,
) -> StepCondition:
    return StepCondition(
        id=uuid4(), field=field, operator=operator, value=value, logic=logic,
    )


def make_rule(
    hours: str = "24",
    escalate_to: str = "Finance Manager",
    notify_original_approver: bool = True,
) -> EscalationRule:
    return EscalationRule(
        id=uuid4(),
        hours_until_escalation=Decimal(hours),
        escalate_to=escalate_to,
        notify_original_approver=notify_original_approver,
    )


def make_approver(
    approver_id: str,
    is_required: bool = False,
    role: str = "Reviewer",
) -> ParallelApproverSpec:
    return ParallelApproverSpec(
        id=uuid4(),
        approver_id=approver_id,
        approver_name=approver_id.title(),
        approver_role=role,
        is_required=is_required,
    )


def make_step(
    name: str = "Manager Review",
    role: str = "Manager",
    order: int = 0,
    **kwargs,
) -> ApprovalStepTemplate:
    return ApprovalStepTemplate(
        id=kwargs.pop("id", None) or uuid4(),
        order=order,
        name=name,
        approver_role=role,
        **kwargs,
    )


def make_parallel_step(
    approver_ids: tuple[str, ...] = ("alice", "bob", "carol"),
    mode: ParallelApprovalMode | None = ParallelApprovalMode.ALL,
    required: tuple[str, ...] = (),
    order: int = 0,
    **kwargs,
) -> ApprovalStepTemplate:
    return make_step(
        name=kwargs.pop("name", "Panel Review"),
        role=kwargs.pop("role", "Panel"),
        order=order,
        is_parallel=True,
        parallel_approval_mode=mode,
        parallel_approvers=tuple(
            make_approver(a, is_required=a in required) for a in approver_ids
        ),
        **kwargs,
    )


def make_template(
    *steps: ApprovalStepTemplate,
    name: str = "Test Template",
    batch_type: BatchType = BatchType.PAYROLL,
    is_active: bool = True,
    is_default: bool = False,
    template_id: UUID | None = None,
) -> WorkflowTemplate:
    if not steps:
        steps = (make_step(),)
    ordered = tuple(
        step if step.order == index else _reorder(step, index)
        for index, step in enumerate(steps)
    )
    return WorkflowTemplate(
        id=template_id or uuid4(),
        name=name,
        batch_type=batch_type,
        is_active=is_active,
        is_default=is_default,
        steps=ordered,
        created_at=T0,
        updated_at=T0,
    )


def _reorder(step: ApprovalStepTemplate, order: int) -> ApprovalStepTemplate:
    return replace(step, order=order)
