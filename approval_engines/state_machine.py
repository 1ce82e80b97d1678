"""
approval_engines.state_machine -- Workflow instance state machine.

Responsibility:
    Apply ``advance``, ``approve_step`` and ``reject_step`` to a
    ``WorkflowInstance``.  Consults the condition evaluator for skip and
    auto-approval rules and the quorum calculator for parallel steps.
    Every call returns a ``TransitionOutcome``: the new instance plus the
    events the transition produced, in order.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The input instance is
    never mutated; time is passed in as ``now``.  Serialising calls per
    instance is the job of ``WorkflowService``.

Invariants enforced:
    - WI-1: status changes follow ``INSTANCE_TRANSITIONS`` /
      ``STEP_TRANSITIONS``; terminal instances raise
      ``TerminalInstanceError`` on every operation.
    - WI-2: ``current_step_index`` is the lowest pending step, or
      ``len(steps)`` once terminal.
    - WI-3: one vote per approver per step; retries raise
      ``DuplicateVoteError`` and leave counts untouched.
    - Votes only on the current step (``StepNotCurrentError``).
    - Approval needs the step's quorum; a single rejection is terminal
      for the whole instance regardless of pending parallel votes.
    - Skip needs ``can_skip`` AND a non-empty skip condition list that
      evaluates True.  Auto-approval needs a non-empty condition list
      that evaluates True.  Empty lists never fire on their own.

Failure modes:
    - TerminalInstanceError, StepNotFoundError, StepNotCurrentError,
      DuplicateVoteError, UnknownApproverError, MissingCommentsError.
    - InvalidStatusTransitionError if an internal transition would
      violate WI-1 (indicates a corrupted instance).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any
from uuid import UUID

from approval_engines.conditions import evaluate
from approval_engines.quorum import is_step_satisfied
from approval_engines.tracer import traced_engine
from approval_kernel.domain.events import WorkflowEvent, WorkflowEventType
from approval_kernel.domain.instance import (
    INSTANCE_TRANSITIONS,
    STEP_TRANSITIONS,
    SYSTEM_ACTOR_ID,
    ApprovalStep,
    InstanceStatus,
    StepStatus,
    VoteStatus,
    WorkflowInstance,
)
from approval_kernel.domain.values import EntitySnapshot
from approval_kernel.exceptions import (
    DuplicateVoteError,
    InvalidStatusTransitionError,
    MissingCommentsError,
    StepNotCurrentError,
    StepNotFoundError,
    TerminalInstanceError,
    UnknownApproverError,
)


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of one state machine operation."""

    instance: WorkflowInstance
    events: tuple[WorkflowEvent, ...] = ()

    @property
    def event_types(self) -> tuple[WorkflowEventType, ...]:
        return tuple(e.event_type for e in self.events)


class EventRecorder:
    """Collects events for one transition and numbers them.

    Sequence numbers continue from ``instance.event_sequence``; call
    ``stamp()`` on the final instance to persist the last number used.
    """

    def __init__(self, instance: WorkflowInstance, now: datetime):
        self._instance_id = instance.id
        self._sequence = instance.event_sequence
        self._now = now
        self.events: list[WorkflowEvent] = []

    def emit(
        self,
        event_type: WorkflowEventType,
        *,
        step_id: UUID | None = None,
        actor_id: str | None = None,
        **payload: Any,
    ) -> WorkflowEvent:
        self._sequence += 1
        event = WorkflowEvent(
            event_type=event_type,
            instance_id=self._instance_id,
            occurred_at=self._now,
            sequence=self._sequence,
            step_id=step_id,
            actor_id=actor_id,
            payload=payload,
        )
        self.events.append(event)
        return event

    def stamp(self, instance: WorkflowInstance) -> WorkflowInstance:
        return replace(instance, event_sequence=self._sequence)

    def outcome(self, instance: WorkflowInstance) -> TransitionOutcome:
        return TransitionOutcome(
            instance=self.stamp(instance),
            events=tuple(self.events),
        )


# =========================================================================
# Public operations
# =========================================================================


@traced_engine("state_machine.advance", "1.0")
def advance(
    instance: WorkflowInstance,
    *,
    now: datetime,
    entity: EntitySnapshot | Mapping[str, Any] | None = None,
) -> TransitionOutcome:
    """Examine the current step and move past it if rules allow.

    Stamps ``activated_at`` the first time a step is examined, skips or
    auto-approves it when its conditions hold, and repeats for the next
    step.  Stops at the first step that needs votes, or completes the
    instance after the last step.

    Args:
        instance: Instance to advance.
        now: Transition timestamp.
        entity: Optional refreshed snapshot; replaces the stored one.
    """
    _guard_not_terminal(instance)
    if entity is not None:
        instance = replace(instance, entity=EntitySnapshot.from_mapping(entity))

    recorder = EventRecorder(instance, now)
    instance = _advance_loop(instance, recorder, now)
    return recorder.outcome(instance)


@traced_engine("state_machine.approve_step", "1.0")
def approve_step(
    instance: WorkflowInstance,
    step_id: UUID,
    approver_id: str,
    *,
    now: datetime,
    comments: str | None = None,
    approver_name: str | None = None,
) -> TransitionOutcome:
    """Record an approval from ``approver_id`` on the current step.

    Non-parallel steps are approved outright.  Parallel steps record the
    vote and are approved only once the quorum calculator is satisfied;
    otherwise the step stays current and the instance stays in progress.
    """
    _guard_not_terminal(instance)
    recorder = EventRecorder(instance, now)
    instance = _ensure_started(instance, recorder, now)
    step = _resolve_vote_target(instance, step_id, approver_id)

    if step.requires_comments and not (comments and comments.strip()):
        raise MissingCommentsError(str(step.id))

    if step.is_parallel:
        step = _record_vote(step, approver_id, VoteStatus.APPROVED, now, comments)
        vote = step.vote_for(approver_id)
        recorder.emit(
            WorkflowEventType.VOTE_RECORDED,
            step_id=step.id,
            actor_id=approver_id,
            vote="approved",
            approver_role=vote.approver_role if vote else None,
            is_required=vote.is_required if vote else False,
        )
        if not is_step_satisfied(step):
            instance = _replace_step(instance, step)
            return recorder.outcome(instance)

        step = _transition_step(
            step,
            StepStatus.APPROVED,
            approved_date=now,
        )
    else:
        step = _transition_step(
            step,
            StepStatus.APPROVED,
            approver_id=approver_id,
            approver_name=approver_name,
            approved_date=now,
            comments=comments,
        )

    recorder.emit(
        WorkflowEventType.STEP_APPROVED,
        step_id=step.id,
        actor_id=approver_id,
        step_name=step.name,
        approver_role=step.approver_role,
        comments=comments,
        auto_approved=False,
    )
    instance = _replace_step(instance, step)
    instance = replace(instance, current_step_index=instance.current_step_index + 1)
    instance = _advance_loop(
        instance, recorder, now, resolved_by=approver_id, resolved_step_id=step.id,
    )
    return recorder.outcome(instance)


@traced_engine("state_machine.reject_step", "1.0")
def reject_step(
    instance: WorkflowInstance,
    step_id: UUID,
    approver_id: str,
    *,
    now: datetime,
    comments: str | None = None,
    approver_name: str | None = None,
) -> TransitionOutcome:
    """Record a rejection; the step and the whole instance become rejected.

    One dissenting vote is enough, even on a parallel step with other
    votes still pending.
    """
    _guard_not_terminal(instance)
    recorder = EventRecorder(instance, now)
    instance = _ensure_started(instance, recorder, now)
    step = _resolve_vote_target(instance, step_id, approver_id)

    if step.is_parallel:
        step = _record_vote(step, approver_id, VoteStatus.REJECTED, now, comments)
        vote = step.vote_for(approver_id)
        recorder.emit(
            WorkflowEventType.VOTE_RECORDED,
            step_id=step.id,
            actor_id=approver_id,
            vote="rejected",
            approver_role=vote.approver_role if vote else None,
            is_required=vote.is_required if vote else False,
        )
        step = _transition_step(step, StepStatus.REJECTED, rejected_date=now)
    else:
        step = _transition_step(
            step,
            StepStatus.REJECTED,
            approver_id=approver_id,
            approver_name=approver_name,
            rejected_date=now,
            comments=comments,
        )

    recorder.emit(
        WorkflowEventType.STEP_REJECTED,
        step_id=step.id,
        actor_id=approver_id,
        step_name=step.name,
        approver_role=step.approver_role,
        comments=comments,
    )
    instance = _replace_step(instance, step)
    instance = _finish(instance, InstanceStatus.REJECTED, now)
    recorder.emit(
        WorkflowEventType.INSTANCE_REJECTED,
        step_id=step.id,
        actor_id=approver_id,
        entity_type=instance.entity_type,
        entity_id=instance.entity_id,
    )
    return recorder.outcome(instance)


# =========================================================================
# Internals
# =========================================================================


def _guard_not_terminal(instance: WorkflowInstance) -> None:
    if instance.is_terminal:
        raise TerminalInstanceError(str(instance.id), instance.status.value)


def _ensure_started(
    instance: WorkflowInstance,
    recorder: EventRecorder,
    now: datetime,
) -> WorkflowInstance:
    """Run the first advance for instances that were never examined."""
    if instance.status != InstanceStatus.PENDING:
        return instance
    instance = _advance_loop(instance, recorder, now)
    _guard_not_terminal(instance)
    return instance


def _resolve_vote_target(
    instance: WorkflowInstance,
    step_id: UUID,
    approver_id: str,
) -> ApprovalStep:
    """Find the step a vote targets and check the approver may vote on it.

    Order of checks: unknown step, retried vote (duplicate), not current,
    roster membership, already voted.
    """
    step = instance.step_by_id(step_id)
    if step is None:
        raise StepNotFoundError(str(instance.id), str(step_id))

    current = instance.current_step
    if current is None or current.id != step.id:
        _raise_if_already_decided(step, approver_id)
        raise StepNotCurrentError(
            str(instance.id),
            str(step_id),
            str(current.id) if current is not None else None,
        )

    if step.is_parallel:
        vote = step.vote_for(approver_id)
        if vote is None:
            raise UnknownApproverError(str(step.id), approver_id)
        if vote.has_voted:
            raise DuplicateVoteError(str(step.id), approver_id, vote.status.value)

    return step


def _raise_if_already_decided(step: ApprovalStep, approver_id: str) -> None:
    """Retries against a step that has since moved on are duplicates."""
    if step.is_parallel:
        vote = step.vote_for(approver_id)
        if vote is not None and vote.has_voted:
            raise DuplicateVoteError(str(step.id), approver_id, vote.status.value)
    elif step.approver_id == approver_id and step.status in (
        StepStatus.APPROVED,
        StepStatus.REJECTED,
    ):
        raise DuplicateVoteError(str(step.id), approver_id, step.status.value)


def _record_vote(
    step: ApprovalStep,
    approver_id: str,
    status: VoteStatus,
    now: datetime,
    comments: str | None,
) -> ApprovalStep:
    votes = []
    for vote in step.parallel_approvals:
        if vote.approver_id == approver_id:
            if status == VoteStatus.APPROVED:
                vote = replace(vote, status=status, approved_date=now, comments=comments)
            else:
                vote = replace(vote, status=status, rejected_date=now, comments=comments)
        votes.append(vote)
    return replace(step, parallel_approvals=tuple(votes))


def _transition_step(
    step: ApprovalStep,
    new_status: StepStatus,
    **changes: Any,
) -> ApprovalStep:
    allowed = STEP_TRANSITIONS.get(step.status, frozenset())
    if new_status not in allowed:
        raise InvalidStatusTransitionError(
            "ApprovalStep", str(step.id), step.status.value, new_status.value,
        )
    return replace(step, status=new_status, **changes)


def _transition_instance(
    instance: WorkflowInstance,
    new_status: InstanceStatus,
    **changes: Any,
) -> WorkflowInstance:
    if instance.status == new_status:
        return replace(instance, **changes) if changes else instance
    allowed = INSTANCE_TRANSITIONS.get(instance.status, frozenset())
    if new_status not in allowed:
        raise InvalidStatusTransitionError(
            "WorkflowInstance", str(instance.id),
            instance.status.value, new_status.value,
        )
    return replace(instance, status=new_status, **changes)


def _replace_step(instance: WorkflowInstance, step: ApprovalStep) -> WorkflowInstance:
    steps = tuple(step if s.id == step.id else s for s in instance.steps)
    return replace(instance, steps=steps)


def _finish(
    instance: WorkflowInstance,
    status: InstanceStatus,
    now: datetime,
) -> WorkflowInstance:
    return _transition_instance(
        instance,
        status,
        completed_date=now,
        current_step_index=len(instance.steps),
    )


def _advance_loop(
    instance: WorkflowInstance,
    recorder: EventRecorder,
    now: datetime,
    *,
    resolved_by: str = SYSTEM_ACTOR_ID,
    resolved_step_id: UUID | None = None,
) -> WorkflowInstance:
    """Examine steps from ``current_step_index`` until one needs votes.

    ``resolved_by`` and ``resolved_step_id`` name the vote that resolved
    the previous step; ``instance_approved`` is attributed to them unless
    a later step is skipped or auto-approved by the system.
    """
    while True:
        step = instance.current_step
        if step is None:
            instance = _finish(instance, InstanceStatus.APPROVED, now)
            recorder.emit(
                WorkflowEventType.INSTANCE_APPROVED,
                step_id=resolved_step_id,
                actor_id=resolved_by,
                entity_type=instance.entity_type,
                entity_id=instance.entity_id,
            )
            return instance

        if step.activated_at is None:
            step = replace(step, activated_at=now)
            instance = _replace_step(instance, step)
            instance = _transition_instance(instance, InstanceStatus.IN_PROGRESS)
            recorder.emit(
                WorkflowEventType.STEP_ACTIVATED,
                step_id=step.id,
                actor_id=SYSTEM_ACTOR_ID,
                step_name=step.name,
                approver_role=step.approver_role,
                is_parallel=step.is_parallel,
            )

        if step.can_skip and step.skip_conditions and evaluate(
            step.skip_conditions, instance.entity,
        ):
            step = _transition_step(
                step,
                StepStatus.SKIPPED,
                approver_id=SYSTEM_ACTOR_ID,
                skipped_date=now,
            )
            recorder.emit(
                WorkflowEventType.STEP_SKIPPED,
                step_id=step.id,
                actor_id=SYSTEM_ACTOR_ID,
                step_name=step.name,
            )
        elif step.auto_approval_conditions and evaluate(
            step.auto_approval_conditions, instance.entity,
        ):
            step = _transition_step(
                step,
                StepStatus.APPROVED,
                approver_id=SYSTEM_ACTOR_ID,
                approver_name="System",
                approved_date=now,
            )
            recorder.emit(
                WorkflowEventType.STEP_APPROVED,
                step_id=step.id,
                actor_id=SYSTEM_ACTOR_ID,
                step_name=step.name,
                approver_role=step.approver_role,
                comments=None,
                auto_approved=True,
            )
        else:
            return instance

        instance = _replace_step(instance, step)
        resolved_by, resolved_step_id = SYSTEM_ACTOR_ID, step.id
        instance = replace(instance, current_step_index=instance.current_step_index + 1)
