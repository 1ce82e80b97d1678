"""
approval_batch -- Background jobs for the approval workflow engine.

Currently a single job: the periodic escalation sweep
(``approval_batch.services.escalation_scheduler.EscalationScheduler``).
"""

from approval_batch.services.escalation_scheduler import (
    EscalationScheduler,
    SchedulerStats,
)

__all__ = ["EscalationScheduler", "SchedulerStats"]
