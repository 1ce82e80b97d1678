"""
EscalationService -- time-driven escalation sweep.

Responsibility:
    For every in-progress instance, emit ``escalation_triggered`` events
    for escalation rules of the current step whose threshold has elapsed,
    and record those rules as fired so they never fire twice for the same
    step activation.

Architecture position:
    Kernel > Services.  Uses ``approval_engines.escalation`` for the
    decision and the ``WorkflowService`` lock registry for the single
    writer boundary.  Driven periodically by
    ``approval_batch.services.escalation_scheduler``.

Invariants enforced:
    - Re-read before emit: each instance is re-loaded while holding its
      lock, so a vote that resolved the step since the id list was read
      suppresses the escalation.
    - Escalation never changes instance or step status.
    - One failing instance does not stop the sweep for the others.

Failure modes:
    - Per-instance errors are logged as ``escalation_instance_failed`` and
      skipped; the sweep returns the events of the instances that worked.
"""

from __future__ import annotations

from datetime import datetime

from approval_engines.escalation import mark_escalations_fired
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.events import WorkflowEvent
from approval_kernel.domain.instance import InstanceStatus
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.event_bus import EventBus
from approval_kernel.services.instance_store import InstanceStore
from approval_kernel.services.workflow_service import (
    InstanceLockRegistry,
    WorkflowService,
)

logger = get_logger("services.escalation")


class EscalationService:
    """Periodic escalation sweep over in-progress instances.

    ``lock_registry`` must be the one the voting ``WorkflowService`` holds;
    a private registry would let a sweep save between a vote's read and
    write.  ``for_workflow`` builds the service with that wiring.
    """

    def __init__(
        self,
        instance_store: InstanceStore,
        event_bus: EventBus,
        lock_registry: InstanceLockRegistry,
        clock: Clock | None = None,
    ):
        self._instances = instance_store
        self._event_bus = event_bus
        self._locks = lock_registry
        self._clock = clock or SystemClock()

    @classmethod
    def for_workflow(cls, workflow_service: WorkflowService) -> EscalationService:
        """Sweep the same store, bus, clock and locks as ``workflow_service``."""
        return cls(
            workflow_service.instance_store,
            workflow_service.event_bus,
            workflow_service.lock_registry,
            clock=workflow_service.clock,
        )

    def sweep(self, now: datetime | None = None) -> tuple[WorkflowEvent, ...]:
        """Emit every escalation that is due at ``now``.

        Returns the emitted events in instance order.
        """
        now = now or self._clock.now()
        emitted: list[WorkflowEvent] = []
        instance_ids = self._instances.list_instance_ids(
            (InstanceStatus.IN_PROGRESS,),
        )

        for instance_id in instance_ids:
            with LogContext.bind(instance_id=instance_id):
                try:
                    events = self._sweep_instance(instance_id, now)
                except Exception:
                    logger.exception("escalation_instance_failed")
                    continue
            if events:
                self._event_bus.publish(events)
                emitted.extend(events)

        logger.info(
            "escalation_sweep_completed",
            extra={
                "instances_checked": len(instance_ids),
                "escalations_emitted": len(emitted),
                "sweep_time": now.isoformat(),
            },
        )
        return tuple(emitted)

    def _sweep_instance(self, instance_id, now: datetime) -> tuple[WorkflowEvent, ...]:
        with self._locks.hold(instance_id):
            instance = self._instances.load_instance(instance_id)
            if instance is None or instance.status != InstanceStatus.IN_PROGRESS:
                return ()
            outcome = mark_escalations_fired(instance, now)
            if not outcome.events:
                return ()
            self._instances.save_instance(outcome.instance)

        for event in outcome.events:
            logger.info(
                "escalation_emitted",
                extra={
                    "event_step_id": str(event.step_id),
                    "escalate_to": event.payload.get("escalate_to"),
                    "rule_id": event.payload.get("rule_id"),
                    "elapsed_hours": event.payload.get("elapsed_hours"),
                },
            )
        return outcome.events
