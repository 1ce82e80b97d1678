"""
Module: approval_kernel.models.template
Responsibility: ORM persistence for workflow templates and their steps.

Architecture position: Kernel > Models.  May import from db/base.py and
    the JSON codecs in models/serialization.py.

Invariants enforced:
    - batch_type is constrained to the known batch types.
    - Steps are owned by their template (delete-orphan cascade) and load
      ordered by ``step_order``.
    - Nested condition / rule / roster values are stored as JSON and
      converted back to frozen domain values by ``to_dto``.

Failure modes:
    - IntegrityError on an unknown batch_type.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.models.serialization import (
    approvers_from_json,
    approvers_to_json,
    conditions_from_json,
    conditions_to_json,
    metadata_from_json,
    metadata_to_json,
    rules_from_json,
    rules_to_json,
)

if TYPE_CHECKING:
    from approval_kernel.domain.template import (
        ApprovalStepTemplate,
        WorkflowTemplate,
    )


class WorkflowTemplateModel(Base):
    """Persistent workflow template."""

    __tablename__ = "approval_workflow_templates"

    __table_args__ = (
        CheckConstraint(
            "batch_type IN ('payroll', 'invoice', 'timesheet', 'expense', "
            "'compliance', 'purchase-order')",
            name="ck_approval_workflow_templates_batch_type",
        ),
        Index(
            "ix_approval_workflow_templates_batch_default",
            "batch_type", "is_default",
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    batch_type: Mapped[str] = mapped_column(String(30), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    template_metadata: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    steps: Mapped[list["ApprovalStepTemplateModel"]] = relationship(
        "ApprovalStepTemplateModel",
        back_populates="template",
        order_by="ApprovalStepTemplateModel.step_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowTemplate {self.id} {self.name!r} "
            f"{self.batch_type} default={self.is_default}>"
        )

    def to_dto(self) -> WorkflowTemplate:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.template import BatchType, WorkflowTemplate

        return WorkflowTemplate(
            id=self.id,
            name=self.name,
            description=self.description,
            batch_type=BatchType(self.batch_type),
            is_active=self.is_active,
            is_default=self.is_default,
            steps=tuple(s.to_dto() for s in self.steps),
            created_at=self.created_at,
            updated_at=self.updated_at,
            created_by=self.created_by,
            metadata=metadata_from_json(self.template_metadata),
        )

    @classmethod
    def from_dto(cls, dto: WorkflowTemplate) -> WorkflowTemplateModel:
        """Create ORM model from domain DTO."""
        model = cls(id=dto.id)
        model.update_from_dto(dto)
        return model

    def update_from_dto(self, dto: WorkflowTemplate) -> None:
        """Overwrite this row and its steps with ``dto``.

        Steps are matched by id: existing rows are updated in place,
        missing ones are deleted, new ones are inserted.
        """
        self.name = dto.name
        self.description = dto.description
        self.batch_type = dto.batch_type.value
        self.is_active = dto.is_active
        self.is_default = dto.is_default
        self.created_at = dto.created_at
        self.updated_at = dto.updated_at
        self.created_by = dto.created_by
        self.template_metadata = metadata_to_json(dto.metadata)

        existing = {s.id: s for s in self.steps}
        steps = []
        for step in dto.steps:
            row = existing.get(step.id)
            if row is None:
                row = ApprovalStepTemplateModel(id=step.id)
            row.update_from_dto(step)
            steps.append(row)
        self.steps = steps


class ApprovalStepTemplateModel(Base):
    """Persistent step of a workflow template."""

    __tablename__ = "approval_step_templates"

    __table_args__ = (
        CheckConstraint(
            "parallel_approval_mode IS NULL OR "
            "parallel_approval_mode IN ('all', 'any', 'majority')",
            name="ck_approval_step_templates_mode",
        ),
        Index("ix_approval_step_templates_template", "template_id", "step_order"),
    )

    template_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_workflow_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    approver_role: Mapped[str] = mapped_column(String(100), nullable=False)
    requires_comments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_skip: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    skip_conditions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    auto_approval_conditions: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list,
    )
    escalation_rules: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_parallel: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parallel_approval_mode: Mapped[str | None] = mapped_column(
        String(20), nullable=True,
    )
    parallel_approvers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    template: Mapped[WorkflowTemplateModel] = relationship(
        "WorkflowTemplateModel",
        back_populates="steps",
    )

    def __repr__(self) -> str:
        return f"<ApprovalStepTemplate {self.step_order}: {self.name!r}>"

    def to_dto(self) -> ApprovalStepTemplate:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.template import (
            ApprovalStepTemplate,
            ParallelApprovalMode,
        )

        return ApprovalStepTemplate(
            id=self.id,
            order=self.step_order,
            name=self.name,
            description=self.description,
            approver_role=self.approver_role,
            requires_comments=self.requires_comments,
            can_skip=self.can_skip,
            skip_conditions=conditions_from_json(self.skip_conditions),
            auto_approval_conditions=conditions_from_json(
                self.auto_approval_conditions,
            ),
            escalation_rules=rules_from_json(self.escalation_rules),
            is_parallel=self.is_parallel,
            parallel_approval_mode=(
                ParallelApprovalMode(self.parallel_approval_mode)
                if self.parallel_approval_mode else None
            ),
            parallel_approvers=approvers_from_json(self.parallel_approvers),
        )

    def update_from_dto(self, dto: ApprovalStepTemplate) -> None:
        self.step_order = dto.order
        self.name = dto.name
        self.description = dto.description
        self.approver_role = dto.approver_role
        self.requires_comments = dto.requires_comments
        self.can_skip = dto.can_skip
        self.skip_conditions = conditions_to_json(dto.skip_conditions)
        self.auto_approval_conditions = conditions_to_json(
            dto.auto_approval_conditions,
        )
        self.escalation_rules = rules_to_json(dto.escalation_rules)
        self.is_parallel = dto.is_parallel
        self.parallel_approval_mode = (
            dto.parallel_approval_mode.value if dto.parallel_approval_mode else None
        )
        self.parallel_approvers = approvers_to_json(dto.parallel_approvers)
