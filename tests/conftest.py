"""
Pytest fixtures for the approval workflow test suite.

Provides:
- Structured logging configured for the session, LogContext cleared per test
- Deterministic clock
- In-memory template/instance stores, event bus and services
- In-memory SQLite engine (schema created) and session factory for the SQL stores
"""

import json
import logging
from io import StringIO

import pytest

from approval_kernel.db.engine import (
    create_session_factory,
    create_tables,
    create_workflow_engine,
)
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.services import (
    EscalationService,
    EventBus,
    InMemoryInstanceStore,
    InMemoryTemplateStore,
    InstanceLockRegistry,
    TemplateService,
    WorkflowService,
)
from tests.factories import T0


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """JSON logging at DEBUG for the whole run, written to a throwaway buffer."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """No bound ids leak from one test into the next."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_workflow logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow_service):
            workflow_service.start_workflow(...)
            logs = captured_logs()
            assert any(r["message"] == "workflow_started" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_workflow")
    root.addHandler(handler)

    def parsed() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield parsed

    root.removeHandler(handler)


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(fixed_time=T0)


# =============================================================================
# Services on in-memory stores
# =============================================================================


@pytest.fixture
def template_store() -> InMemoryTemplateStore:
    return InMemoryTemplateStore()


@pytest.fixture
def instance_store() -> InMemoryInstanceStore:
    return InMemoryInstanceStore()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def published_events(event_bus) -> list:
    """Every event published on ``event_bus``, in delivery order."""
    events: list = []
    event_bus.subscribe(events.append)
    return events


@pytest.fixture
def lock_registry() -> InstanceLockRegistry:
    return InstanceLockRegistry()


@pytest.fixture
def workflow_service(
    template_store, instance_store, event_bus, deterministic_clock, lock_registry,
) -> WorkflowService:
    return WorkflowService(
        template_store,
        instance_store,
        event_bus,
        deterministic_clock,
        lock_registry=lock_registry,
    )


@pytest.fixture
def template_service(template_store, deterministic_clock) -> TemplateService:
    return TemplateService(template_store, deterministic_clock)


@pytest.fixture
def escalation_service(workflow_service) -> EscalationService:
    return EscalationService.for_workflow(workflow_service)


# =============================================================================
# SQLite
# =============================================================================


@pytest.fixture
def sqlite_engine():
    eng = create_workflow_engine("sqlite:///:memory:")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return create_session_factory(sqlite_engine)
