"""
Template Set Validator (``approval_config.validator``).

Responsibility
--------------
Checks a set of ``WorkflowTemplate`` values for structural integrity
before they are imported into a template store.

Architecture position
---------------------
**Config layer** -- build-time validation.  Depends on
``approval_kernel.domain`` only.

Invariants enforced
-------------------
* Template ids are unique across the set; step ids are unique within a
  template.
* Step order is dense 0..n-1.
* At most one default template per batch type.
* Parallel steps list at least one approver, with unique approver ids.
* Escalation thresholds are positive.
* Operators, logic connectors and modes are enum members by
  construction; the loader rejects unknown values with ``ValueError``.

Failure modes
-------------
* Validation errors  -> the set MUST NOT be imported.
* Validation warnings  -> the set may be imported but should be
  reviewed (unknown condition fields, skippable steps without skip
  conditions, steps that can never be instantiated).
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from approval_kernel.domain.template import (
    ApprovalStepTemplate,
    WorkflowTemplate,
)
from approval_kernel.domain.values import BATCH_TYPE_FIELDS
from approval_kernel.logging_config import get_logger

logger = get_logger("config.validator")


@dataclass
class ValidationResult:
    """
    Result of template set validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_template_set(templates: Iterable[WorkflowTemplate]) -> ValidationResult:
    """Validate a template set.  Never raises; problems are collected."""
    templates = tuple(templates)
    result = ValidationResult()

    _check_unique_template_ids(templates, result)
    _check_single_default(templates, result)
    for template in templates:
        _check_template(template, result)

    for warning in result.warnings:
        logger.warning("template_validation_warning", extra={"detail": warning})
    if not result.is_valid:
        logger.error(
            "template_validation_failed",
            extra={"error_count": len(result.errors), "errors": result.errors},
        )
    return result


def _check_unique_template_ids(
    templates: tuple[WorkflowTemplate, ...],
    result: ValidationResult,
) -> None:
    counts = Counter(t.id for t in templates)
    for template_id, count in counts.items():
        if count > 1:
            result.add_error(f"Duplicate template id {template_id} ({count} times)")


def _check_single_default(
    templates: tuple[WorkflowTemplate, ...],
    result: ValidationResult,
) -> None:
    defaults = Counter(t.batch_type for t in templates if t.is_default)
    for batch_type, count in defaults.items():
        if count > 1:
            result.add_error(
                f"Batch type {batch_type.value} has {count} default templates"
            )
    for template in templates:
        if template.is_default and not template.is_active:
            result.add_warning(
                f"Template {template.name!r} is default but inactive"
            )


def _check_template(template: WorkflowTemplate, result: ValidationResult) -> None:
    label = f"Template {template.name!r}"

    if not template.steps:
        result.add_warning(f"{label} has no steps and cannot be instantiated")
    if not template.has_dense_order:
        result.add_error(
            f"{label} step orders are not 0..n-1: "
            f"{[s.order for s in template.steps]}"
        )

    step_ids = Counter(s.id for s in template.steps)
    for step_id, count in step_ids.items():
        if count > 1:
            result.add_error(f"{label} has duplicate step id {step_id}")

    known_fields = BATCH_TYPE_FIELDS.get(template.batch_type, frozenset())
    for step in template.steps:
        _check_step(label, step, known_fields, result)


def _check_step(
    label: str,
    step: ApprovalStepTemplate,
    known_fields: frozenset[str],
    result: ValidationResult,
) -> None:
    where = f"{label} step {step.name!r}"

    if not step.approver_role.strip():
        result.add_error(f"{where} has no approver role")

    if step.is_parallel:
        if not step.parallel_approvers:
            result.add_error(f"{where} is parallel but lists no approvers")
        approver_ids = Counter(s.approver_id for s in step.parallel_approvers)
        for approver_id, count in approver_ids.items():
            if count > 1:
                result.add_error(f"{where} lists approver {approver_id} {count} times")
    elif step.parallel_approvers:
        result.add_warning(f"{where} lists parallel approvers but is not parallel")

    for rule in step.escalation_rules:
        if rule.hours_until_escalation <= 0:
            result.add_error(
                f"{where} escalation to {rule.escalate_to!r} has non-positive "
                f"threshold {rule.hours_until_escalation}"
            )
        if not rule.escalate_to.strip():
            result.add_error(f"{where} escalation rule has no target role")

    if step.can_skip and not step.skip_conditions:
        result.add_warning(f"{where} can be skipped but has no skip conditions")

    for condition in step.skip_conditions + step.auto_approval_conditions:
        if known_fields and condition.field not in known_fields:
            result.add_warning(
                f"{where} condition references unknown field {condition.field!r}"
            )
