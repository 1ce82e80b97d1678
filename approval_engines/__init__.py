"""
Module: approval_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    approval engines.  This is the canonical import surface for the
    service layer and the escalation scheduler.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain types and exceptions.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Timestamps are
      passed in by the caller.
    - Inputs are never mutated; new frozen values are returned.
"""

from approval_engines.conditions import evaluate, evaluate_condition
from approval_engines.escalation import (
    DueEscalation,
    due_escalations,
    mark_escalations_fired,
)
from approval_engines.factory import instantiate, instantiate_from_roles
from approval_engines.quorum import (
    QuorumTally,
    is_quorum_met,
    is_step_satisfied,
    required_approvers_satisfied,
    tally,
)
from approval_engines.state_machine import (
    EventRecorder,
    TransitionOutcome,
    advance,
    approve_step,
    reject_step,
)

__all__ = [
    "DueEscalation",
    "EventRecorder",
    "QuorumTally",
    "TransitionOutcome",
    "advance",
    "approve_step",
    "due_escalations",
    "evaluate",
    "evaluate_condition",
    "instantiate",
    "instantiate_from_roles",
    "is_quorum_met",
    "is_step_satisfied",
    "mark_escalations_fired",
    "reject_step",
    "required_approvers_satisfied",
    "tally",
]
