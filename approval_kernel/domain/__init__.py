"""
Pure domain layer.

Immutable value objects for templates, instances, entity snapshots and
workflow events, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock itself)
- I/O
"""

from approval_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SequentialClock,
    SystemClock,
)
from approval_kernel.domain.events import WorkflowEvent, WorkflowEventType
from approval_kernel.domain.instance import (
    INSTANCE_TRANSITIONS,
    STEP_TRANSITIONS,
    SYSTEM_ACTOR_ID,
    TERMINAL_INSTANCE_STATUSES,
    ApprovalStep,
    InstanceStatus,
    ParallelApproval,
    StepStatus,
    VoteStatus,
    WorkflowInstance,
)
from approval_kernel.domain.template import (
    ApprovalStepTemplate,
    BatchType,
    ConditionLogic,
    ConditionOperator,
    EscalationRule,
    ParallelApprovalMode,
    ParallelApproverSpec,
    StepCondition,
    TemplateMetadata,
    WorkflowTemplate,
)
from approval_kernel.domain.values import (
    BATCH_TYPE_FIELDS,
    EntitySnapshot,
    FieldValue,
)

__all__ = [
    "BATCH_TYPE_FIELDS",
    "INSTANCE_TRANSITIONS",
    "STEP_TRANSITIONS",
    "SYSTEM_ACTOR_ID",
    "TERMINAL_INSTANCE_STATUSES",
    "ApprovalStep",
    "ApprovalStepTemplate",
    "BatchType",
    "Clock",
    "ConditionLogic",
    "ConditionOperator",
    "DeterministicClock",
    "EntitySnapshot",
    "EscalationRule",
    "FieldValue",
    "InstanceStatus",
    "ParallelApproval",
    "ParallelApprovalMode",
    "ParallelApproverSpec",
    "SequentialClock",
    "StepCondition",
    "StepStatus",
    "SystemClock",
    "TemplateMetadata",
    "VoteStatus",
    "WorkflowEvent",
    "WorkflowEventType",
    "WorkflowInstance",
    "WorkflowTemplate",
]
