"""
Workflow template types (``approval_kernel.domain.template``).

Responsibility
--------------
Pure value objects describing reusable, versionable approval workflow
definitions: templates, their ordered steps, skip/auto-approval
conditions, escalation rules and parallel approver rosters.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``models/``, or outer layers.

Invariants enforced
-------------------
* Step ``order`` values are unique and dense (0..n-1).  Checked by
  ``WorkflowTemplate.has_dense_order`` and by every editing function in
  ``approval_engines.templates``.
* A template needs at least one step and ``is_active=True`` before it
  can be instantiated (enforced by the instance factory).
* At most one default template per batch type (enforced by
  ``set_default_template`` and by config validation).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class BatchType(str, Enum):
    """Category of business entity a template applies to."""

    PAYROLL = "payroll"
    INVOICE = "invoice"
    TIMESHEET = "timesheet"
    EXPENSE = "expense"
    COMPLIANCE = "compliance"
    PURCHASE_ORDER = "purchase-order"


class ConditionOperator(str, Enum):
    """Fixed operator set for step conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    CONTAINS = "contains"


class ConditionLogic(str, Enum):
    """Connector between a condition and the NEXT one in the list."""

    AND = "AND"
    OR = "OR"


class ParallelApprovalMode(str, Enum):
    """Quorum mode for a parallel step."""

    ALL = "all"
    ANY = "any"
    MAJORITY = "majority"


@dataclass(frozen=True)
class StepCondition:
    """A single ``field operator value`` test against an entity snapshot.

    ``logic`` says how this condition combines with the next one in the
    list; ``None`` means AND.
    """

    field: str
    operator: ConditionOperator
    value: Decimal | str | bool
    logic: ConditionLogic | None = None
    id: UUID | None = None


@dataclass(frozen=True)
class EscalationRule:
    """Signal reassignment when a step has been active too long."""

    id: UUID
    hours_until_escalation: Decimal
    escalate_to: str
    notify_original_approver: bool = True


@dataclass(frozen=True)
class ParallelApproverSpec:
    """Roster entry for a parallel step (template side)."""

    id: UUID
    approver_id: str
    approver_name: str
    approver_role: str
    is_required: bool = False


@dataclass(frozen=True)
class ApprovalStepTemplate:
    """One ordered step of a workflow template."""

    id: UUID
    order: int
    name: str
    approver_role: str
    description: str | None = None
    requires_comments: bool = False
    can_skip: bool = False
    skip_conditions: tuple[StepCondition, ...] = ()
    auto_approval_conditions: tuple[StepCondition, ...] = ()
    escalation_rules: tuple[EscalationRule, ...] = ()
    is_parallel: bool = False
    parallel_approval_mode: ParallelApprovalMode | None = None
    parallel_approvers: tuple[ParallelApproverSpec, ...] = ()


@dataclass(frozen=True)
class TemplateMetadata:
    """Presentation hints carried with a template."""

    color: str | None = None
    icon: str | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowTemplate:
    """A named, reusable approval workflow definition.

    ``steps`` is always held sorted by ``order``.
    """

    id: UUID
    name: str
    batch_type: BatchType
    description: str = ""
    is_active: bool = True
    is_default: bool = False
    steps: tuple[ApprovalStepTemplate, ...] = ()
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None
    metadata: TemplateMetadata = field(default_factory=TemplateMetadata)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.steps, key=lambda s: s.order))
        if ordered != self.steps:
            object.__setattr__(self, "steps", ordered)

    @property
    def has_dense_order(self) -> bool:
        return [s.order for s in self.steps] == list(range(len(self.steps)))

    def step_by_id(self, step_id: UUID) -> ApprovalStepTemplate | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None
