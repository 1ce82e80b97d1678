"""
Workflow events (``approval_kernel.domain.events``).

Responsibility
--------------
The output contract of the engine.  Every state transition produces one
or more ``WorkflowEvent`` records carrying enough context (instance,
step, actor, time, payload) for audit and notification collaborators to
act without re-deriving state.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Delivery is
the job of ``approval_kernel.services.event_bus``.

Invariants enforced
-------------------
* ``sequence`` is strictly increasing per instance; it is allocated from
  ``WorkflowInstance.event_sequence`` by the engine that emits the event.
* ``payload`` is a read-only view over a private copy, so one subscriber
  cannot change what the next one sees.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID


class WorkflowEventType(str, Enum):
    STEP_ACTIVATED = "step_activated"
    STEP_APPROVED = "step_approved"
    STEP_REJECTED = "step_rejected"
    STEP_SKIPPED = "step_skipped"
    VOTE_RECORDED = "vote_recorded"
    INSTANCE_APPROVED = "instance_approved"
    INSTANCE_REJECTED = "instance_rejected"
    ESCALATION_TRIGGERED = "escalation_triggered"


@dataclass(frozen=True)
class WorkflowEvent:
    """Something that happened to a workflow instance."""

    event_type: WorkflowEventType
    instance_id: UUID
    occurred_at: datetime
    sequence: int
    step_id: UUID | None = None
    actor_id: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def to_dict(self) -> dict[str, Any]:
        """Flat, JSON-friendly rendering for audit sinks and logs."""
        return {
            "event_type": self.event_type.value,
            "instance_id": str(self.instance_id),
            "step_id": str(self.step_id) if self.step_id else None,
            "actor_id": self.actor_id,
            "occurred_at": self.occurred_at.isoformat(),
            "sequence": self.sequence,
            "payload": dict(self.payload),
        }
