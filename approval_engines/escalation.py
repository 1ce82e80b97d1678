"""
approval_engines.escalation -- Pure escalation rule evaluation.

Responsibility:
    Decide which escalation rules of an instance's current step are due
    at a given time, and record them as fired.  Escalation is advisory:
    the output is ``escalation_triggered`` events; the consuming system
    decides how to reassign or notify.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The sweep that calls
    these functions lives in ``approval_kernel.services.escalation_service``.

Invariants enforced:
    - ES-1: Only the current step of an ``in-progress`` instance can
      escalate, and only while that step is ``pending``.
    - ES-2: A rule is due when ``now - activated_at >= hours_until_escalation``.
    - ES-3: Each rule fires at most once per step activation; fired rule
      ids are kept on the step (``fired_escalations``).
    - ES-4: Escalation never changes instance or step status.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from approval_engines.state_machine import EventRecorder, TransitionOutcome
from approval_engines.tracer import traced_engine
from approval_kernel.domain.events import WorkflowEventType
from approval_kernel.domain.instance import (
    SYSTEM_ACTOR_ID,
    ApprovalStep,
    InstanceStatus,
    StepStatus,
    WorkflowInstance,
)
from approval_kernel.domain.template import EscalationRule


@dataclass(frozen=True)
class DueEscalation:
    """A rule whose threshold has elapsed for the current step."""

    step: ApprovalStep
    rule: EscalationRule
    elapsed: timedelta


def rule_threshold(rule: EscalationRule) -> timedelta:
    return timedelta(seconds=float(rule.hours_until_escalation * 3600))


def due_escalations(
    instance: WorkflowInstance,
    now: datetime,
) -> tuple[DueEscalation, ...]:
    """Rules of the current step that are due and have not fired yet.

    Returns them in threshold order (shortest first).
    """
    if instance.status != InstanceStatus.IN_PROGRESS:
        return ()

    step = instance.current_step
    if step is None or step.status != StepStatus.PENDING:
        return ()
    if step.activated_at is None or not step.escalation_rules:
        return ()

    elapsed = now - step.activated_at
    fired = set(step.fired_escalations)
    due = [
        DueEscalation(step=step, rule=rule, elapsed=elapsed)
        for rule in step.escalation_rules
        if rule.id not in fired and elapsed >= rule_threshold(rule)
    ]
    due.sort(key=lambda d: d.rule.hours_until_escalation)
    return tuple(due)


@traced_engine("escalation", "1.0")
def mark_escalations_fired(
    instance: WorkflowInstance,
    now: datetime,
) -> TransitionOutcome:
    """Record every due rule as fired and emit one event per rule.

    Returns an outcome with no events (and the unchanged instance) when
    nothing is due.
    """
    due = due_escalations(instance, now)
    if not due:
        return TransitionOutcome(instance=instance)

    recorder = EventRecorder(instance, now)
    step = due[0].step
    for item in due:
        recorder.emit(
            WorkflowEventType.ESCALATION_TRIGGERED,
            step_id=step.id,
            actor_id=SYSTEM_ACTOR_ID,
            escalate_to=item.rule.escalate_to,
            notify_original_approver=item.rule.notify_original_approver,
            rule_id=str(item.rule.id),
            hours_until_escalation=str(item.rule.hours_until_escalation),
            original_approver_role=step.approver_role,
            elapsed_hours=round(item.elapsed.total_seconds() / 3600, 2),
        )

    fired = step.fired_escalations + tuple(item.rule.id for item in due)
    step = replace(step, fired_escalations=fired)
    steps = tuple(step if s.id == step.id else s for s in instance.steps)
    return recorder.outcome(replace(instance, steps=steps))
