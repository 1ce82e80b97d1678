"""
Kernel services -- the imperative shell around the pure engines.

Stores are the durability boundary; WorkflowService and EscalationService
share an InstanceLockRegistry to serialise writes per instance.
"""

from approval_kernel.services.escalation_service import EscalationService
from approval_kernel.services.event_bus import EventBus
from approval_kernel.services.instance_store import (
    InMemoryInstanceStore,
    InstanceStore,
    SqlInstanceStore,
)
from approval_kernel.services.store_factory import build_stores
from approval_kernel.services.template_service import TemplateService
from approval_kernel.services.template_store import (
    InMemoryTemplateStore,
    SqlTemplateStore,
    TemplateStore,
)
from approval_kernel.services.workflow_service import (
    InstanceLockRegistry,
    WorkflowService,
)

__all__ = [
    "EscalationService",
    "EventBus",
    "InMemoryInstanceStore",
    "InMemoryTemplateStore",
    "InstanceLockRegistry",
    "InstanceStore",
    "SqlInstanceStore",
    "SqlTemplateStore",
    "TemplateService",
    "TemplateStore",
    "WorkflowService",
    "build_stores",
]
