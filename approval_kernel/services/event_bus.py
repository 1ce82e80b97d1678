"""
EventBus -- in-process publish/subscribe for workflow events.

Responsibility:
    Deliver ``WorkflowEvent`` records produced by the engines to audit and
    notification collaborators, in the order they were emitted.

Architecture position:
    Kernel > Services.  Called by ``WorkflowService`` and
    ``EscalationService`` after the instance has been saved.

Invariants enforced:
    - Events are delivered in publish order to every matching handler.
    - A failing handler never rolls back the transition that produced the
      event and never prevents delivery to the remaining handlers.

Failure modes:
    - Handler exceptions are logged as ``event_handler_failed`` and
      dropped.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from uuid import UUID, uuid4

from approval_kernel.domain.events import WorkflowEvent, WorkflowEventType
from approval_kernel.logging_config import get_logger

logger = get_logger("services.event_bus")

EventHandler = Callable[[WorkflowEvent], None]


class EventBus:
    """Synchronous fan-out of workflow events to subscribed handlers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: dict[
            UUID, tuple[EventHandler, frozenset[WorkflowEventType] | None]
        ] = {}

    def subscribe(
        self,
        handler: EventHandler,
        event_types: Iterable[WorkflowEventType] | None = None,
    ) -> Callable[[], None]:
        """Register ``handler``; returns a callable that unsubscribes it.

        ``event_types=None`` subscribes to every event type.
        """
        token = uuid4()
        types = (
            frozenset(WorkflowEventType(t) for t in event_types)
            if event_types is not None else None
        )
        with self._lock:
            self._subscriptions[token] = (handler, types)

        def unsubscribe() -> None:
            with self._lock:
                self._subscriptions.pop(token, None)

        return unsubscribe

    def publish(self, events: Iterable[WorkflowEvent]) -> int:
        """Deliver ``events`` in order.  Returns the number of deliveries."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())

        delivered = 0
        for event in events:
            for handler, types in subscriptions:
                if types is not None and event.event_type not in types:
                    continue
                try:
                    handler(event)
                    delivered += 1
                except Exception:
                    logger.exception(
                        "event_handler_failed",
                        extra={
                            "event_type": event.event_type.value,
                            "instance_id": str(event.instance_id),
                            "sequence": event.sequence,
                            "handler": getattr(handler, "__qualname__", repr(handler)),
                        },
                    )
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)
