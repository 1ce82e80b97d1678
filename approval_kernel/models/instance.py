"""
Module: approval_kernel.models.instance
Responsibility: ORM persistence for workflow instances, their steps and
    per-approver parallel votes.

Architecture position: Kernel > Models.  May import from db/base.py and
    the JSON codecs in models/serialization.py.

Invariants enforced:
    - Lifecycle values: DB check constraints limit instance, step and
      vote statuses to the domain enums.
    - One vote per approver per step: UNIQUE(step_id, approver_id).
    - Optimistic locking: ``version`` is the mapper's version column.
      Every save writes ``instance.version + 1``; an UPDATE that finds a
      different stored version raises StaleDataError, which the instance
      store translates to OptimisticLockError.

Failure modes:
    - IntegrityError on a duplicate (step_id, approver_id) vote row.
    - StaleDataError on a concurrent write to the same instance row.
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
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.models.serialization import (
    conditions_from_json,
    conditions_to_json,
    rules_from_json,
    rules_to_json,
)

if TYPE_CHECKING:
    from approval_kernel.domain.instance import (
        ApprovalStep,
        ParallelApproval,
        WorkflowInstance,
    )


class WorkflowInstanceModel(Base):
    """Persistent workflow instance."""

    __tablename__ = "approval_workflow_instances"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in-progress', 'approved', 'rejected')",
            name="ck_approval_workflow_instances_status",
        ),
        Index(
            "ix_approval_workflow_instances_entity",
            "entity_type", "entity_id",
        ),
        Index("ix_approval_workflow_instances_status", "status"),
    )

    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    current_step_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_date: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_date: Mapped[datetime | None] = mapped_column(nullable=True)
    template_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    template_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    entity_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    event_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    steps: Mapped[list["ApprovalStepModel"]] = relationship(
        "ApprovalStepModel",
        back_populates="instance",
        order_by="ApprovalStepModel.step_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return (
            f"<WorkflowInstance {self.id} {self.entity_type}:{self.entity_id} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> WorkflowInstance:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.instance import InstanceStatus, WorkflowInstance
        from approval_kernel.domain.values import EntitySnapshot

        return WorkflowInstance(
            id=self.id,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            steps=tuple(s.to_dto() for s in self.steps),
            status=InstanceStatus(self.status),
            current_step_index=self.current_step_index,
            created_date=self.created_date,
            completed_date=self.completed_date,
            template_id=self.template_id,
            template_name=self.template_name,
            entity=EntitySnapshot.from_json(self.entity_snapshot),
            event_sequence=self.event_sequence,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: WorkflowInstance) -> WorkflowInstanceModel:
        """Create ORM model from domain DTO (first save)."""
        model = cls(id=dto.id, entity_type=dto.entity_type, entity_id=dto.entity_id)
        model.update_from_dto(dto)
        return model

    def update_from_dto(self, dto: WorkflowInstance) -> None:
        """Overwrite mutable state with ``dto`` and bump the version."""
        self.status = dto.status.value
        self.current_step_index = dto.current_step_index
        self.created_date = dto.created_date
        self.completed_date = dto.completed_date
        self.template_id = dto.template_id
        self.template_name = dto.template_name
        self.entity_snapshot = dto.entity.to_json()
        self.event_sequence = dto.event_sequence
        self.version = dto.version + 1

        existing = {s.id: s for s in self.steps}
        steps = []
        for step in dto.steps:
            row = existing.get(step.id)
            if row is None:
                row = ApprovalStepModel(id=step.id)
            row.update_from_dto(step)
            steps.append(row)
        self.steps = steps


class ApprovalStepModel(Base):
    """Persistent step of a workflow instance."""

    __tablename__ = "approval_steps"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'skipped')",
            name="ck_approval_steps_status",
        ),
        Index("ix_approval_steps_instance", "instance_id", "step_order"),
    )

    instance_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_workflow_instances.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    approver_role: Mapped[str] = mapped_column(String(100), nullable=False)
    template_step_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
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
    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approver_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approver_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    approved_date: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_date: Mapped[datetime | None] = mapped_column(nullable=True)
    skipped_date: Mapped[datetime | None] = mapped_column(nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    fired_escalations: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    instance: Mapped[WorkflowInstanceModel] = relationship(
        "WorkflowInstanceModel",
        back_populates="steps",
    )
    parallel_approvals: Mapped[list["ParallelApprovalModel"]] = relationship(
        "ParallelApprovalModel",
        back_populates="step",
        order_by="ParallelApprovalModel.roster_position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ApprovalStep {self.step_order}: {self.name!r} {self.status}>"

    def to_dto(self) -> ApprovalStep:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.instance import ApprovalStep, StepStatus
        from approval_kernel.domain.template import ParallelApprovalMode

        return ApprovalStep(
            id=self.id,
            order=self.step_order,
            name=self.name,
            approver_role=self.approver_role,
            template_step_id=self.template_step_id,
            status=StepStatus(self.status),
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
            parallel_approvals=tuple(v.to_dto() for v in self.parallel_approvals),
            activated_at=self.activated_at,
            approver_id=self.approver_id,
            approver_name=self.approver_name,
            approved_date=self.approved_date,
            rejected_date=self.rejected_date,
            skipped_date=self.skipped_date,
            comments=self.comments,
            fired_escalations=tuple(UUID(v) for v in self.fired_escalations or ()),
        )

    def update_from_dto(self, dto: ApprovalStep) -> None:
        self.step_order = dto.order
        self.name = dto.name
        self.approver_role = dto.approver_role
        self.template_step_id = dto.template_step_id
        self.status = dto.status.value
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
        self.activated_at = dto.activated_at
        self.approver_id = dto.approver_id
        self.approver_name = dto.approver_name
        self.approved_date = dto.approved_date
        self.rejected_date = dto.rejected_date
        self.skipped_date = dto.skipped_date
        self.comments = dto.comments
        self.fired_escalations = [str(v) for v in dto.fired_escalations]

        existing = {v.id: v for v in self.parallel_approvals}
        votes = []
        for position, vote in enumerate(dto.parallel_approvals):
            row = existing.get(vote.id)
            if row is None:
                row = ParallelApprovalModel(id=vote.id)
            row.update_from_dto(vote, position)
            votes.append(row)
        self.parallel_approvals = votes


class ParallelApprovalModel(Base):
    """One approver's vote on a parallel step."""

    __tablename__ = "approval_parallel_votes"

    __table_args__ = (
        UniqueConstraint(
            "step_id", "approver_id",
            name="uq_approval_parallel_votes_step_approver",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_approval_parallel_votes_status",
        ),
    )

    step_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_steps.id", ondelete="CASCADE"),
        nullable=False,
    )
    roster_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approver_id: Mapped[str] = mapped_column(String(100), nullable=False)
    approver_name: Mapped[str] = mapped_column(String(200), nullable=False)
    approver_role: Mapped[str] = mapped_column(String(100), nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    approved_date: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_date: Mapped[datetime | None] = mapped_column(nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    step: Mapped[ApprovalStepModel] = relationship(
        "ApprovalStepModel",
        back_populates="parallel_approvals",
    )

    def __repr__(self) -> str:
        return f"<ParallelApproval {self.approver_id} {self.status}>"

    def to_dto(self) -> ParallelApproval:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.instance import ParallelApproval, VoteStatus

        return ParallelApproval(
            id=self.id,
            approver_id=self.approver_id,
            approver_name=self.approver_name,
            approver_role=self.approver_role,
            is_required=self.is_required,
            status=VoteStatus(self.status),
            approved_date=self.approved_date,
            rejected_date=self.rejected_date,
            comments=self.comments,
        )

    def update_from_dto(self, dto: ParallelApproval, position: int) -> None:
        self.roster_position = position
        self.approver_id = dto.approver_id
        self.approver_name = dto.approver_name
        self.approver_role = dto.approver_role
        self.is_required = dto.is_required
        self.status = dto.status.value
        self.approved_date = dto.approved_date
        self.rejected_date = dto.rejected_date
        self.comments = dto.comments
