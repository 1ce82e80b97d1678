"""
Workflow instance types (``approval_kernel.domain.instance``).

Responsibility
--------------
Pure value objects for the running execution of a template against one
business entity: the instance, its steps, and per-approver parallel
votes.  Includes the status lifecycle tables consulted by the state
machine.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Engines
return new instances via ``dataclasses.replace``; nothing here mutates.

Invariants enforced
-------------------
* WI-1: Lifecycle -- ``INSTANCE_TRANSITIONS`` and ``STEP_TRANSITIONS``
  define the only valid status changes.  Terminal states have no
  outgoing edges.
* WI-2: ``current_step_index`` points at the lowest-ordered pending
  step, or equals ``len(steps)`` once the instance is terminal.
* WI-3: Each ``approver_id`` appears at most once per parallel step and
  a recorded vote (approved/rejected) never changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from approval_kernel.domain.template import (
    EscalationRule,
    ParallelApprovalMode,
    StepCondition,
)
from approval_kernel.domain.values import EntitySnapshot

# Attributed as the actor of skips and auto-approvals.
SYSTEM_ACTOR_ID = "system"


# =========================================================================
# Status Lifecycles (WI-1)
# =========================================================================


class InstanceStatus(str, Enum):
    """Workflow instance lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    APPROVED = "approved"
    REJECTED = "rejected"


class StepStatus(str, Enum):
    """Instance step lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class VoteStatus(str, Enum):
    """Status of one approver's vote on a parallel step."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


INSTANCE_TRANSITIONS: dict[InstanceStatus, frozenset[InstanceStatus]] = {
    InstanceStatus.PENDING: frozenset({
        InstanceStatus.IN_PROGRESS,
        InstanceStatus.APPROVED,
        InstanceStatus.REJECTED,
    }),
    InstanceStatus.IN_PROGRESS: frozenset({
        InstanceStatus.APPROVED,
        InstanceStatus.REJECTED,
    }),
    InstanceStatus.APPROVED: frozenset(),
    InstanceStatus.REJECTED: frozenset(),
}

STEP_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({
        StepStatus.APPROVED,
        StepStatus.REJECTED,
        StepStatus.SKIPPED,
    }),
    StepStatus.APPROVED: frozenset(),
    StepStatus.REJECTED: frozenset(),
    StepStatus.SKIPPED: frozenset(),
}

TERMINAL_INSTANCE_STATUSES: frozenset[InstanceStatus] = frozenset({
    InstanceStatus.APPROVED,
    InstanceStatus.REJECTED,
})


# =========================================================================
# Votes, Steps, Instances
# =========================================================================


@dataclass(frozen=True)
class ParallelApproval:
    """One roster member's vote on a parallel step (WI-3)."""

    id: UUID
    approver_id: str
    approver_name: str
    approver_role: str
    is_required: bool = False
    status: VoteStatus = VoteStatus.PENDING
    approved_date: datetime | None = None
    rejected_date: datetime | None = None
    comments: str | None = None

    @property
    def has_voted(self) -> bool:
        return self.status != VoteStatus.PENDING


@dataclass(frozen=True)
class ApprovalStep:
    """Runtime state of one step, copied from its template step."""

    id: UUID
    order: int
    name: str
    approver_role: str
    template_step_id: UUID | None = None
    status: StepStatus = StepStatus.PENDING
    requires_comments: bool = False
    can_skip: bool = False
    skip_conditions: tuple[StepCondition, ...] = ()
    auto_approval_conditions: tuple[StepCondition, ...] = ()
    escalation_rules: tuple[EscalationRule, ...] = ()
    is_parallel: bool = False
    parallel_approval_mode: ParallelApprovalMode | None = None
    parallel_approvals: tuple[ParallelApproval, ...] = ()
    activated_at: datetime | None = None
    approver_id: str | None = None
    approver_name: str | None = None
    approved_date: datetime | None = None
    rejected_date: datetime | None = None
    skipped_date: datetime | None = None
    comments: str | None = None
    fired_escalations: tuple[UUID, ...] = ()

    def vote_for(self, approver_id: str) -> ParallelApproval | None:
        for vote in self.parallel_approvals:
            if vote.approver_id == approver_id:
                return vote
        return None


@dataclass(frozen=True)
class WorkflowInstance:
    """Immutable snapshot of a running (or finished) workflow.

    ``version`` is bumped by the store on every save and used for
    optimistic locking.  ``event_sequence`` is the sequence number of
    the last event this instance produced.
    """

    id: UUID
    entity_type: str
    entity_id: str
    steps: tuple[ApprovalStep, ...]
    status: InstanceStatus = InstanceStatus.PENDING
    current_step_index: int = 0
    created_date: datetime | None = None
    completed_date: datetime | None = None
    template_id: UUID | None = None
    template_name: str | None = None
    entity: EntitySnapshot = field(default_factory=EntitySnapshot)
    event_sequence: int = 0
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_INSTANCE_STATUSES

    @property
    def current_step(self) -> ApprovalStep | None:
        if 0 <= self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    def step_by_id(self, step_id: UUID) -> ApprovalStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None
