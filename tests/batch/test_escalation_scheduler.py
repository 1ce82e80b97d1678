"""
Tests for approval_batch.services.escalation_scheduler.

Validates EscalationScheduler: tick() sweeping at the clock's time,
failure isolation, and the start/stop lifecycle.
"""

import pytest

from approval_batch import EscalationScheduler
from approval_config.settings import WorkflowSettings
from approval_kernel.domain.events import WorkflowEventType
from approval_kernel.domain.template import BatchType
from tests.factories import T0, make_rule, make_step, make_template


@pytest.fixture
def scheduler(escalation_service, deterministic_clock):
    return EscalationScheduler(
        escalation_service, clock=deterministic_clock, tick_interval_seconds=0.05,
    )


@pytest.fixture
def escalating_instance(workflow_service):
    template = make_template(
        make_step(role="Compliance Officer", escalation_rules=(make_rule("24", escalate_to="Compliance Manager"),)),
        batch_type=BatchType.COMPLIANCE,
    )
    return workflow_service.start_workflow("compliance", "DOC-1", template=template)


# =============================================================================
# tick()
# =============================================================================


class TestTick:
    def test_tick_nothing_due(self, scheduler, escalating_instance):
        assert scheduler.tick() == ()
        assert scheduler.stats.ticks == 1
        assert scheduler.stats.last_tick_at == T0

    def test_tick_uses_clock(self, scheduler, escalating_instance, deterministic_clock, published_events):
        deterministic_clock.advance_hours(25)

        events = scheduler.tick()

        assert [e.event_type for e in events] == [WorkflowEventType.ESCALATION_TRIGGERED]
        assert events[0].payload["escalate_to"] == "Compliance Manager"
        assert published_events[-1] == events[0]

    def test_repeated_ticks_fire_once(self, scheduler, escalating_instance, deterministic_clock):
        deterministic_clock.advance_hours(25)
        assert len(scheduler.tick()) == 1
        deterministic_clock.advance_hours(5)
        assert scheduler.tick() == ()
        assert scheduler.stats.ticks == 2
        assert scheduler.stats.escalations_emitted == 1

    def test_tick_binds_correlation_id(self, scheduler, escalating_instance, captured_logs):
        scheduler.tick()
        scheduler.tick()
        summaries = [r for r in captured_logs() if r["message"] == "escalation_sweep_completed"]
        assert [r["correlation_id"] for r in summaries] == ["escalation-tick-1", "escalation-tick-2"]

    def test_failing_sweep_is_logged(self, scheduler, escalation_service, captured_logs, monkeypatch):
        def broken(now=None):
            raise RuntimeError("store offline")

        monkeypatch.setattr(escalation_service, "sweep", broken)

        assert scheduler.tick() == ()
        failures = [r for r in captured_logs() if r["message"] == "escalation_tick_failed"]
        assert failures[0]["exc_message"] == "store offline"
        assert scheduler.stats.failed_ticks == 1


class TestConstruction:
    def test_interval_must_be_positive(self, escalation_service):
        with pytest.raises(ValueError):
            EscalationScheduler(escalation_service, tick_interval_seconds=0)

    def test_from_settings(self, escalation_service):
        settings = WorkflowSettings(escalation_tick_seconds=60)
        scheduler = EscalationScheduler.from_settings(escalation_service, settings)
        assert scheduler.tick_interval_seconds == 60


# =============================================================================
# Thread lifecycle
# =============================================================================


class TestLifecycle:
    def test_start_spawns_sweep_thread(self, scheduler):
        scheduler.start()
        assert scheduler.is_running is True
        scheduler.stop(timeout=2.0)

    def test_stop_joins_sweep_thread(self, scheduler):
        scheduler.start()
        scheduler.stop(timeout=2.0)
        assert scheduler.is_running is False
        # the first sweep runs as soon as the thread starts
        assert scheduler.stats.ticks >= 1

    def test_second_start_keeps_one_thread(self, scheduler):
        scheduler.start()
        thread = scheduler._thread
        scheduler.start()
        assert scheduler._thread is thread
        scheduler.stop(timeout=2.0)

    def test_stop_before_start(self, scheduler):
        scheduler.stop(timeout=1.0)
        assert scheduler.is_running is False

    def test_restart_after_stop(self, scheduler):
        scheduler.start()
        scheduler.stop(timeout=2.0)
        scheduler.start()
        assert scheduler.is_running is True
        scheduler.stop(timeout=2.0)
