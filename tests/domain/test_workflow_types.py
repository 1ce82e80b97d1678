"""
Tests for the workflow template, instance and event value objects.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from approval_kernel.domain.clock import DeterministicClock, SequentialClock
from approval_kernel.domain.events import WorkflowEvent, WorkflowEventType
from approval_kernel.domain.instance import (
    INSTANCE_TRANSITIONS,
    STEP_TRANSITIONS,
    TERMINAL_INSTANCE_STATUSES,
    ApprovalStep,
    InstanceStatus,
    ParallelApproval,
    StepStatus,
    VoteStatus,
    WorkflowInstance,
)
from approval_kernel.domain.template import BatchType, WorkflowTemplate
from tests.factories import T0, make_step, make_template


class TestWorkflowTemplate:
    def test_steps_sorted_by_order(self):
        second = make_step(name="Second", order=1)
        first = make_step(name="First", order=0)
        template = WorkflowTemplate(
            id=uuid4(), name="t", batch_type=BatchType.EXPENSE, steps=(second, first),
        )
        assert [s.name for s in template.steps] == ["First", "Second"]

    def test_dense_order(self):
        template = make_template(make_step(), make_step())
        assert template.has_dense_order

    def test_gap_in_order_is_not_dense(self):
        template = make_template(make_step(), make_step())
        broken = replace(template, steps=(template.steps[0], replace(template.steps[1], order=5)))
        assert not broken.has_dense_order

    def test_step_by_id(self):
        step = make_step()
        template = make_template(step)
        assert template.step_by_id(step.id) is step
        assert template.step_by_id(uuid4()) is None


class TestLifecycleTables:
    def test_terminal_statuses_have_no_exits(self):
        for status in TERMINAL_INSTANCE_STATUSES:
            assert INSTANCE_TRANSITIONS[status] == frozenset()

    def test_in_progress_cannot_return_to_pending(self):
        assert InstanceStatus.PENDING not in INSTANCE_TRANSITIONS[InstanceStatus.IN_PROGRESS]

    def test_step_decisions_are_final(self):
        for status in (StepStatus.APPROVED, StepStatus.REJECTED, StepStatus.SKIPPED):
            assert STEP_TRANSITIONS[status] == frozenset()

    def test_in_progress_wire_value(self):
        assert InstanceStatus.IN_PROGRESS.value == "in-progress"


class TestWorkflowInstance:
    def _instance(self, index: int = 0, status=InstanceStatus.IN_PROGRESS):
        steps = (
            ApprovalStep(id=uuid4(), order=0, name="A", approver_role="Manager"),
            ApprovalStep(id=uuid4(), order=1, name="B", approver_role="Finance"),
        )
        return WorkflowInstance(
            id=uuid4(), entity_type="payroll", entity_id="PB-1",
            steps=steps, status=status, current_step_index=index,
        )

    def test_current_step(self):
        instance = self._instance(index=1)
        assert instance.current_step.name == "B"

    def test_current_step_none_past_end(self):
        instance = self._instance(index=2, status=InstanceStatus.APPROVED)
        assert instance.current_step is None
        assert instance.is_terminal

    def test_vote_lookup(self):
        vote = ParallelApproval(
            id=uuid4(), approver_id="alice", approver_name="Alice", approver_role="R",
        )
        step = ApprovalStep(
            id=uuid4(), order=0, name="P", approver_role="R",
            is_parallel=True, parallel_approvals=(vote,),
        )
        assert step.vote_for("alice") is vote
        assert step.vote_for("mallory") is None
        assert not vote.has_voted
        assert vote.status == VoteStatus.PENDING


class TestWorkflowEvent:
    def test_to_dict(self):
        instance_id, step_id = uuid4(), uuid4()
        event = WorkflowEvent(
            event_type=WorkflowEventType.STEP_APPROVED,
            instance_id=instance_id,
            occurred_at=T0,
            sequence=3,
            step_id=step_id,
            actor_id="alice",
            payload={"comments": "ok"},
        )
        data = event.to_dict()
        assert data["event_type"] == "step_approved"
        assert data["instance_id"] == str(instance_id)
        assert data["step_id"] == str(step_id)
        assert data["occurred_at"] == T0.isoformat()
        assert data["payload"] == {"comments": "ok"}

    def test_payload_is_read_only_copy(self):
        source = {"escalate_to": "Finance Manager"}
        event = WorkflowEvent(
            event_type=WorkflowEventType.ESCALATION_TRIGGERED,
            instance_id=uuid4(),
            occurred_at=T0,
            sequence=1,
            payload=source,
        )
        source["escalate_to"] = "Director"

        assert event.payload["escalate_to"] == "Finance Manager"
        with pytest.raises(TypeError):
            event.payload["escalate_to"] = "Director"
        data = event.to_dict()
        data["payload"]["escalate_to"] = "Director"
        assert event.payload["escalate_to"] == "Finance Manager"


class TestClocks:
    def test_deterministic_clock_advance_hours(self):
        clock = DeterministicClock(fixed_time=T0)
        clock.advance_hours(25)
        assert clock.now() == T0 + timedelta(hours=25)

    def test_deterministic_clock_set_time_resets_advance(self):
        clock = DeterministicClock(fixed_time=T0)
        clock.advance(30)
        later = datetime(2025, 6, 1, tzinfo=timezone.utc)
        clock.set_time(later)
        assert clock.now() == later

    def test_tick(self):
        clock = DeterministicClock(fixed_time=T0)
        assert clock.tick() == T0 + timedelta(seconds=1)

    def test_sequential_clock_repeats_last(self):
        times = [T0, T0 + timedelta(hours=1)]
        clock = SequentialClock(times)
        assert clock.now() == times[0]
        assert clock.now() == times[1]
        assert clock.now() == times[1]

    def test_sequential_clock_requires_times(self):
        with pytest.raises(ValueError):
            SequentialClock([])
