"""
WorkflowService -- single-writer facade over the workflow state machine.

Responsibility:
    Start workflows for business entities and apply approvals,
    rejections and re-evaluations to stored instances.  Each mutation
    loads the instance, runs the pure engine, saves the result, and then
    publishes the events the transition produced.

Architecture position:
    Kernel > Services -- imperative shell.  Delegates every decision to
    ``approval_engines``; owns only locking, persistence, logging and
    event delivery.

Invariants enforced:
    - Single writer per instance: every mutation runs while holding the
      instance's lock from ``InstanceLockRegistry`` and re-reads the
      instance inside the lock, so concurrent votes on the same parallel
      step are applied one after another and a retried vote sees the
      first one (DuplicateVoteError instead of a double count).
    - Events are published only after the save succeeded, outside the
      lock.  A failing subscriber cannot undo the transition.
    - All timestamps come from the injected Clock.

Failure modes:
    - InstanceNotFoundError for unknown instance ids.
    - InvalidTemplateError when no template can be resolved.
    - Every engine error (TerminalInstanceError, StepNotCurrentError,
      DuplicateVoteError, ...) propagates unchanged after a warning log.
    - OptimisticLockError when another process saved the instance first.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import replace
from typing import Any
from uuid import UUID

import approval_engines
from approval_engines.state_machine import TransitionOutcome
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.events import WorkflowEvent
from approval_kernel.domain.instance import (
    ApprovalStep,
    InstanceStatus,
    WorkflowInstance,
)
from approval_kernel.domain.template import BatchType, WorkflowTemplate
from approval_kernel.domain.values import EntitySnapshot
from approval_kernel.exceptions import (
    ApprovalWorkflowError,
    InstanceNotFoundError,
    InvalidTemplateError,
    TemplateNotFoundError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.event_bus import EventBus
from approval_kernel.services.instance_store import InstanceStore
from approval_kernel.services.template_store import TemplateStore

logger = get_logger("services.workflow")

_ACTIVE_STATUSES = (InstanceStatus.PENDING, InstanceStatus.IN_PROGRESS)


class InstanceLockRegistry:
    """One re-entrant lock per instance id, created on demand.

    Locks are reference counted and dropped once no thread holds or
    waits for them, so the registry does not grow with the number of
    instances ever touched.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[UUID, tuple[threading.RLock, int]] = {}

    @contextmanager
    def hold(self, instance_id: UUID) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(instance_id, (None, 0))
            if lock is None:
                lock = threading.RLock()
            self._locks[instance_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[instance_id]
                if users <= 1:
                    del self._locks[instance_id]
                else:
                    self._locks[instance_id] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class WorkflowService:
    """Run approval workflows against template and instance stores."""

    def __init__(
        self,
        template_store: TemplateStore,
        instance_store: InstanceStore,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
        lock_registry: InstanceLockRegistry | None = None,
    ):
        self._templates = template_store
        self._instances = instance_store
        self._event_bus = event_bus or EventBus()
        self._clock = clock or SystemClock()
        self._locks = lock_registry or InstanceLockRegistry()

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def instance_store(self) -> InstanceStore:
        return self._instances

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def lock_registry(self) -> InstanceLockRegistry:
        return self._locks

    # -------------------------------------------------------------------------
    # Starting workflows
    # -------------------------------------------------------------------------

    def start_workflow(
        self,
        entity_type: str,
        entity_id: str,
        entity: EntitySnapshot | Mapping[str, Any] | None = None,
        *,
        template: WorkflowTemplate | UUID | None = None,
        batch_type: BatchType | None = None,
    ) -> WorkflowInstance:
        """Instantiate a template for an entity and run its first advance.

        Template resolution: ``template`` if given (value or id), else the
        default template of ``batch_type``.

        Raises:
            InvalidTemplateError: nothing resolved, or the template is
                inactive / has no steps.
            TemplateNotFoundError: ``template`` is an unknown id.
        """
        resolved = self._resolve_template(template, batch_type)
        now = self._clock.now()
        instance = approval_engines.instantiate(
            resolved, entity_type, str(entity_id), created_at=now, entity=entity,
        )
        return self._start(instance, now)

    def start_ad_hoc_workflow(
        self,
        entity_type: str,
        entity_id: str,
        approver_roles: Sequence[str],
        entity: EntitySnapshot | Mapping[str, Any] | None = None,
    ) -> WorkflowInstance:
        """Start a plain sequential workflow with one step per role."""
        now = self._clock.now()
        instance = approval_engines.instantiate_from_roles(
            entity_type, str(entity_id), approver_roles, created_at=now, entity=entity,
        )
        return self._start(instance, now)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def approve_step(
        self,
        instance_id: UUID,
        step_id: UUID,
        approver_id: str,
        comments: str | None = None,
        *,
        approver_name: str | None = None,
        entity: EntitySnapshot | Mapping[str, Any] | None = None,
    ) -> WorkflowInstance:
        """Record an approval.  ``entity`` refreshes the snapshot first."""

        def apply(instance: WorkflowInstance, now) -> TransitionOutcome:
            if entity is not None:
                instance = _with_entity(instance, entity)
            return approval_engines.approve_step(
                instance, step_id, approver_id,
                now=now, comments=comments, approver_name=approver_name,
            )

        return self._mutate(
            "approve_step", instance_id, apply,
            step_id=step_id, actor_id=approver_id,
        )

    def reject_step(
        self,
        instance_id: UUID,
        step_id: UUID,
        approver_id: str,
        comments: str | None = None,
        *,
        approver_name: str | None = None,
    ) -> WorkflowInstance:
        """Record a rejection; the instance becomes rejected."""

        def apply(instance: WorkflowInstance, now) -> TransitionOutcome:
            return approval_engines.reject_step(
                instance, step_id, approver_id,
                now=now, comments=comments, approver_name=approver_name,
            )

        return self._mutate(
            "reject_step", instance_id, apply,
            step_id=step_id, actor_id=approver_id,
        )

    def advance(
        self,
        instance_id: UUID,
        entity: EntitySnapshot | Mapping[str, Any] | None = None,
    ) -> WorkflowInstance:
        """Re-evaluate skip and auto-approval rules of the current step."""

        def apply(instance: WorkflowInstance, now) -> TransitionOutcome:
            return approval_engines.advance(instance, now=now, entity=entity)

        return self._mutate("advance", instance_id, apply)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_instance(self, instance_id: UUID) -> WorkflowInstance:
        instance = self._instances.load_instance(instance_id)
        if instance is None:
            raise InstanceNotFoundError(str(instance_id))
        return instance

    def instances_for_entity(
        self, entity_type: str, entity_id: str,
    ) -> tuple[WorkflowInstance, ...]:
        return self._instances.instances_for_entity(entity_type, str(entity_id))

    def pending_instances(self) -> tuple[WorkflowInstance, ...]:
        """Instances still waiting for a decision (pending or in progress)."""
        instances = []
        for instance_id in self._instances.list_instance_ids(_ACTIVE_STATUSES):
            instance = self._instances.load_instance(instance_id)
            if instance is not None and not instance.is_terminal:
                instances.append(instance)
        return tuple(instances)

    def current_step(
        self, instance: WorkflowInstance | UUID,
    ) -> ApprovalStep | None:
        if not isinstance(instance, WorkflowInstance):
            instance = self.get_instance(instance)
        if instance.is_terminal:
            return None
        return instance.current_step

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _resolve_template(
        self,
        template: WorkflowTemplate | UUID | None,
        batch_type: BatchType | None,
    ) -> WorkflowTemplate:
        if isinstance(template, WorkflowTemplate):
            return template
        if template is not None:
            stored = self._templates.get_template(template)
            if stored is None:
                raise TemplateNotFoundError(str(template))
            return stored
        if batch_type is not None:
            default = self._templates.load_default_template(BatchType(batch_type))
            if default is not None:
                return default
            raise InvalidTemplateError(
                "default", f"no default template for batch type {BatchType(batch_type).value}",
            )
        raise InvalidTemplateError("none", "either template or batch_type is required")

    def _start(self, instance: WorkflowInstance, now) -> WorkflowInstance:
        with LogContext.bind(
            instance_id=instance.id, template_id=instance.template_id,
        ):
            with self._locks.hold(instance.id):
                outcome = approval_engines.advance(instance, now=now)
                saved = self._instances.save_instance(outcome.instance)
            logger.info(
                "workflow_started",
                extra={
                    "entity_type": saved.entity_type,
                    "entity_id": saved.entity_id,
                    "template_name": saved.template_name,
                    "step_count": len(saved.steps),
                    "status": saved.status.value,
                },
            )
            self._publish(outcome.events)
        return saved

    def _mutate(
        self,
        operation: str,
        instance_id: UUID,
        apply: Callable[[WorkflowInstance, Any], TransitionOutcome],
        *,
        step_id: UUID | None = None,
        actor_id: str | None = None,
    ) -> WorkflowInstance:
        with LogContext.bind(
            instance_id=instance_id, step_id=step_id, actor_id=actor_id,
        ):
            with self._locks.hold(instance_id):
                instance = self.get_instance(instance_id)
                try:
                    outcome = apply(instance, self._clock.now())
                except ApprovalWorkflowError as exc:
                    logger.warning(
                        "workflow_operation_refused",
                        extra={"operation": operation, "error_code": exc.code},
                    )
                    raise
                saved = self._instances.save_instance(outcome.instance)

            logger.info(
                "workflow_operation_applied",
                extra={
                    "operation": operation,
                    "status": saved.status.value,
                    "current_step_index": saved.current_step_index,
                    "event_types": [e.value for e in outcome.event_types],
                },
            )
            self._publish(outcome.events)
        return saved

    def _publish(self, events: Sequence[WorkflowEvent]) -> None:
        for event in events:
            logger.info(
                event.event_type.value,
                extra={"sequence": event.sequence, "event_step_id": (
                    str(event.step_id) if event.step_id else None
                )},
            )
        if events:
            self._event_bus.publish(events)


def _with_entity(
    instance: WorkflowInstance,
    entity: EntitySnapshot | Mapping[str, Any],
) -> WorkflowInstance:
    return replace(instance, entity=EntitySnapshot.from_mapping(entity))
