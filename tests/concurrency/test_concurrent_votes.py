"""
Concurrent votes on one workflow instance.

Threads hit WorkflowService at the same moment through a Barrier.  Every
operation on an instance runs under that instance's lock, so each vote
sees the result of the previous one and the instance is saved once per
vote.

Uses the in-memory stores; the SQLite fixtures share one connection.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier, Lock

import pytest

from approval_kernel.domain.instance import InstanceStatus, VoteStatus
from approval_kernel.domain.template import BatchType, ParallelApprovalMode
from approval_kernel.exceptions import DuplicateVoteError, TerminalInstanceError
from tests.factories import make_parallel_step, make_step, make_template

pytestmark = pytest.mark.slow

PANEL = tuple(f"approver-{i}" for i in range(8))


@pytest.fixture
def collected_events(event_bus):
    lock = Lock()
    events = []

    def collect(event):
        with lock:
            events.append(event)

    event_bus.subscribe(collect)
    return events


def run_together(calls):
    """Run callables on separate threads released by one barrier."""
    barrier = Barrier(len(calls))

    def wrapped(call):
        barrier.wait()
        try:
            return call(), None
        except Exception as exc:
            return None, exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(wrapped, calls))


def start_panel(workflow_service, mode=ParallelApprovalMode.ALL):
    template = make_template(
        make_parallel_step(PANEL, mode=mode),
        batch_type=BatchType.PURCHASE_ORDER,
    )
    return workflow_service.start_workflow("purchase-order", "PO-77", template=template)


class TestConcurrentPanelVotes:
    def test_every_vote_lands(self, workflow_service, lock_registry, collected_events):
        instance = start_panel(workflow_service)
        step_id = instance.steps[0].id

        results = run_together([
            lambda a=approver: workflow_service.approve_step(instance.id, step_id, a)
            for approver in PANEL
        ])

        assert [exc for _, exc in results] == [None] * len(PANEL)
        final = workflow_service.get_instance(instance.id)
        assert final.status == InstanceStatus.APPROVED
        assert all(v.status == VoteStatus.APPROVED for v in final.steps[0].parallel_approvals)
        # one save per start plus one per vote
        assert final.version == 1 + len(PANEL)
        assert len(lock_registry) == 0

        sequences = sorted(e.sequence for e in collected_events)
        assert sequences == list(range(1, final.event_sequence + 1))

    def test_same_approver_counted_once(self, workflow_service, lock_registry):
        instance = start_panel(workflow_service)
        step_id = instance.steps[0].id

        results = run_together([
            lambda: workflow_service.approve_step(instance.id, step_id, "approver-0")
            for _ in range(10)
        ])

        errors = [exc for _, exc in results if exc is not None]
        assert len(errors) == 9
        assert all(isinstance(exc, DuplicateVoteError) for exc in errors)
        final = workflow_service.get_instance(instance.id)
        assert final.status == InstanceStatus.IN_PROGRESS
        assert final.steps[0].vote_for("approver-0").status == VoteStatus.APPROVED
        assert final.version == 2
        assert len(lock_registry) == 0

    def test_rejection_closes_panel_for_late_voters(self, workflow_service):
        instance = start_panel(workflow_service)
        step_id = instance.steps[0].id

        calls = [
            lambda a=approver: workflow_service.approve_step(instance.id, step_id, a)
            for approver in PANEL[1:]
        ]
        calls.append(
            lambda: workflow_service.reject_step(instance.id, step_id, PANEL[0], "over budget")
        )
        results = run_together(calls)

        final = workflow_service.get_instance(instance.id)
        assert final.status == InstanceStatus.REJECTED
        assert final.steps[0].vote_for(PANEL[0]).status == VoteStatus.REJECTED

        late = [exc for _, exc in results if exc is not None]
        assert all(isinstance(exc, TerminalInstanceError) for exc in late)
        recorded = sum(
            1 for v in final.steps[0].parallel_approvals if v.status == VoteStatus.APPROVED
        )
        # approvals that landed before the rejection plus those refused after it
        assert recorded + len(late) == len(PANEL) - 1


class TestIndependentInstances:
    def test_instances_progress_independently(self, workflow_service, template_store, lock_registry):
        template = make_template(
            make_step(name="Payroll Manager Review", role="Payroll Manager"),
            batch_type=BatchType.PAYROLL,
            is_default=True,
        )
        template_store.save_template(template)
        instances = [
            workflow_service.start_workflow("payroll", f"PB-{i}", batch_type=BatchType.PAYROLL)
            for i in range(12)
        ]

        results = run_together([
            lambda i=i: workflow_service.approve_step(i.id, i.steps[0].id, "manager-1")
            for i in instances
        ])

        assert all(exc is None for _, exc in results)
        assert all(
            workflow_service.get_instance(i.id).status == InstanceStatus.APPROVED
            for i in instances
        )
        assert len(lock_registry) == 0
