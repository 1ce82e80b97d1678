"""
EscalationScheduler -- background thread that runs escalation sweeps.

Contract:
    Every ``tick_interval_seconds`` the scheduler asks
    ``EscalationService.sweep`` for the escalations due at the clock's
    current time.  The first sweep runs as soon as the thread starts.
    ``tick()`` runs one sweep on the caller's thread, which is how tests
    drive it.

Architecture: approval_batch/services.  Owns only timing and bookkeeping;
    which rules are due, and the per-instance locking around them, live in
    approval_engines.escalation and approval_kernel.services.

Invariants enforced:
    - "Now" always comes from the injected Clock, so a test can jump a
      workflow 25 hours ahead and tick once.
    - A sweep that raises is logged as ``escalation_tick_failed`` and
      counted; the next tick runs on schedule.
    - ``stop()`` lets an in-flight sweep finish before the thread exits.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime

from approval_config.settings import WorkflowSettings
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.events import WorkflowEvent
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.escalation_service import EscalationService

logger = get_logger("batch.escalation_scheduler")


@dataclass(frozen=True)
class SchedulerStats:
    """Counters since the scheduler was created."""

    ticks: int = 0
    failed_ticks: int = 0
    escalations_emitted: int = 0
    last_tick_at: datetime | None = None


class EscalationScheduler:
    """Runs escalation sweeps on a timer.

    Two schedulers against one SQL store do not double-notify: the fired
    rule ids are saved on the instance under its version check, so the
    slower sweep fails its save instead of emitting again.
    """

    def __init__(
        self,
        escalation_service: EscalationService,
        clock: Clock | None = None,
        tick_interval_seconds: float = 300,
    ):
        if tick_interval_seconds <= 0:
            raise ValueError(
                f"tick_interval_seconds must be positive, got {tick_interval_seconds}"
            )
        self._service = escalation_service
        self._clock = clock or SystemClock()
        self._interval = tick_interval_seconds
        self._stats = SchedulerStats()
        self._stats_lock = threading.Lock()
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_settings(
        cls,
        escalation_service: EscalationService,
        settings: WorkflowSettings,
        clock: Clock | None = None,
    ) -> EscalationScheduler:
        return cls(
            escalation_service,
            clock=clock,
            tick_interval_seconds=settings.escalation_tick_seconds,
        )

    @property
    def tick_interval_seconds(self) -> float:
        return self._interval

    @property
    def stats(self) -> SchedulerStats:
        with self._stats_lock:
            return self._stats

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> tuple[WorkflowEvent, ...]:
        """Sweep once at the clock's time; ``()`` if nothing was due or the sweep failed."""
        now = self._clock.now()
        with self._stats_lock:
            tick_number = self._stats.ticks + 1
            self._stats = replace(self._stats, ticks=tick_number, last_tick_at=now)

        with LogContext.bind(correlation_id=f"escalation-tick-{tick_number}"):
            try:
                events = self._service.sweep(now)
            except Exception:
                logger.exception("escalation_tick_failed")
                self._record(failed=1)
                return ()

        self._record(emitted=len(events))
        return events

    def start(self) -> None:
        """Start sweeping in a daemon thread.  No-op if already running."""
        if self.is_running:
            return
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="escalation-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "escalation_scheduler_started",
            extra={"tick_interval_seconds": self._interval},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Ask the thread to exit and wait up to ``timeout`` seconds for it."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        stats = self.stats
        logger.info(
            "escalation_scheduler_stopped",
            extra={
                "ticks": stats.ticks,
                "failed_ticks": stats.failed_ticks,
                "escalations_emitted": stats.escalations_emitted,
            },
        )

    def _run(self) -> None:
        while True:
            self.tick()
            if self._stopping.wait(timeout=self._interval):
                return

    def _record(self, *, failed: int = 0, emitted: int = 0) -> None:
        with self._stats_lock:
            self._stats = replace(
                self._stats,
                failed_ticks=self._stats.failed_ticks + failed,
                escalations_emitted=self._stats.escalations_emitted + emitted,
            )
