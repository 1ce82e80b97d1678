"""
approval_engines.quorum -- Pure parallel-step quorum calculator.

Responsibility:
    Decide whether a parallel step's recorded votes satisfy its
    completion condition under the step's ``ParallelApprovalMode``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - QR-1: ``all`` -- every roster vote is approved.
    - QR-2: ``any`` -- at least one approved vote.
    - QR-3: ``majority`` -- ``approved * 2 > total`` (strict; 2 of 4 is
      not a majority).
    - QR-4: required-approver gate -- under ``any`` and ``majority`` every
      ``is_required`` vote must itself be approved.  Isolated in
      ``required_approvers_satisfied`` so the rule can change in one place.
    - A rejected required vote short-circuits to False.  The state
      machine already treats any rejection as terminal, so this path
      only matters for callers evaluating a step directly.
    - Pending and rejected votes never count.  No mutation.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from approval_engines.tracer import traced_engine
from approval_kernel.domain.instance import (
    ApprovalStep,
    ParallelApproval,
    VoteStatus,
)
from approval_kernel.domain.template import ParallelApprovalMode

# QR-4 applies to these modes.  ``all`` already implies it.
REQUIRED_APPROVER_GATED_MODES: frozenset[ParallelApprovalMode] = frozenset({
    ParallelApprovalMode.ANY,
    ParallelApprovalMode.MAJORITY,
})


@dataclass(frozen=True)
class QuorumTally:
    """Vote counts for a parallel step."""

    total: int
    approved: int
    rejected: int
    pending: int
    required_total: int
    required_approved: int

    @property
    def required_met(self) -> bool:
        return self.required_approved == self.required_total


def tally(approvals: Sequence[ParallelApproval]) -> QuorumTally:
    """Count votes by status, including the required-approver subset."""
    required = [a for a in approvals if a.is_required]
    return QuorumTally(
        total=len(approvals),
        approved=sum(1 for a in approvals if a.status == VoteStatus.APPROVED),
        rejected=sum(1 for a in approvals if a.status == VoteStatus.REJECTED),
        pending=sum(1 for a in approvals if a.status == VoteStatus.PENDING),
        required_total=len(required),
        required_approved=sum(
            1 for a in required if a.status == VoteStatus.APPROVED
        ),
    )


def required_approvers_satisfied(approvals: Sequence[ParallelApproval]) -> bool:
    """QR-4: every required approver has individually approved."""
    return all(
        a.status == VoteStatus.APPROVED for a in approvals if a.is_required
    )


def has_required_rejection(approvals: Sequence[ParallelApproval]) -> bool:
    return any(
        a.is_required and a.status == VoteStatus.REJECTED for a in approvals
    )


def is_quorum_met(
    approvals: Sequence[ParallelApproval],
    mode: ParallelApprovalMode,
) -> bool:
    """Quorum test over a bare vote list.

    Args:
        approvals: Roster votes for one step.
        mode: The step's quorum mode.

    Returns:
        True if the votes satisfy ``mode`` (QR-1..QR-4).  An empty roster
        never satisfies any mode.
    """
    if not approvals:
        return False

    if has_required_rejection(approvals):
        return False

    counts = tally(approvals)

    if mode in REQUIRED_APPROVER_GATED_MODES and not counts.required_met:
        return False

    if mode == ParallelApprovalMode.ALL:
        return counts.approved == counts.total
    if mode == ParallelApprovalMode.ANY:
        return counts.approved > 0
    if mode == ParallelApprovalMode.MAJORITY:
        return counts.approved * 2 > counts.total
    return False


@traced_engine("quorum", "1.0")
def is_step_satisfied(step: ApprovalStep) -> bool:
    """Whether a parallel step's completion condition holds.

    Steps without an explicit mode are treated as ``all``.
    """
    mode = step.parallel_approval_mode or ParallelApprovalMode.ALL
    return is_quorum_met(step.parallel_approvals, mode)
