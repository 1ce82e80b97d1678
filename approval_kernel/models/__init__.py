"""ORM models.  Importing this package registers every table on Base.metadata."""

from approval_kernel.models.instance import (
    ApprovalStepModel,
    ParallelApprovalModel,
    WorkflowInstanceModel,
)
from approval_kernel.models.template import (
    ApprovalStepTemplateModel,
    WorkflowTemplateModel,
)

__all__ = [
    "ApprovalStepModel",
    "ApprovalStepTemplateModel",
    "ParallelApprovalModel",
    "WorkflowInstanceModel",
    "WorkflowTemplateModel",
]
