"""
Module: approval_kernel.models.serialization
Responsibility: JSON column codecs for the nested template value objects
    (conditions, escalation rules, parallel approver rosters, metadata).

Architecture position: Kernel > Models.  Imports domain types only.

Invariants enforced:
    - Decimals never pass through float: they are written as
      ``{"decimal": "<str>"}`` and read back with ``Decimal(str)``.
    - Decoding is the exact inverse of encoding for every value the
      domain can hold.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from approval_kernel.domain.template import (
    ConditionLogic,
    ConditionOperator,
    EscalationRule,
    ParallelApproverSpec,
    StepCondition,
    TemplateMetadata,
)


def _encode_scalar(value: Any) -> Any:
    if isinstance(value, Decimal):
        return {"decimal": str(value)}
    return value


def _decode_scalar(value: Any) -> Any:
    if isinstance(value, dict) and set(value) == {"decimal"}:
        return Decimal(value["decimal"])
    return value


def _uuid_or_none(value: str | None) -> UUID | None:
    return UUID(value) if value else None


def conditions_to_json(conditions: tuple[StepCondition, ...]) -> list[dict]:
    return [
        {
            "id": str(c.id) if c.id else None,
            "field": c.field,
            "operator": c.operator.value,
            "value": _encode_scalar(c.value),
            "logic": c.logic.value if c.logic else None,
        }
        for c in conditions
    ]


def conditions_from_json(data: list[dict] | None) -> tuple[StepCondition, ...]:
    return tuple(
        StepCondition(
            id=_uuid_or_none(item.get("id")),
            field=item["field"],
            operator=ConditionOperator(item["operator"]),
            value=_decode_scalar(item["value"]),
            logic=ConditionLogic(item["logic"]) if item.get("logic") else None,
        )
        for item in data or ()
    )


def rules_to_json(rules: tuple[EscalationRule, ...]) -> list[dict]:
    return [
        {
            "id": str(r.id),
            "hours_until_escalation": str(r.hours_until_escalation),
            "escalate_to": r.escalate_to,
            "notify_original_approver": r.notify_original_approver,
        }
        for r in rules
    ]


def rules_from_json(data: list[dict] | None) -> tuple[EscalationRule, ...]:
    return tuple(
        EscalationRule(
            id=UUID(item["id"]),
            hours_until_escalation=Decimal(item["hours_until_escalation"]),
            escalate_to=item["escalate_to"],
            notify_original_approver=item.get("notify_original_approver", True),
        )
        for item in data or ()
    )


def approvers_to_json(specs: tuple[ParallelApproverSpec, ...]) -> list[dict]:
    return [
        {
            "id": str(s.id),
            "approver_id": s.approver_id,
            "approver_name": s.approver_name,
            "approver_role": s.approver_role,
            "is_required": s.is_required,
        }
        for s in specs
    ]


def approvers_from_json(data: list[dict] | None) -> tuple[ParallelApproverSpec, ...]:
    return tuple(
        ParallelApproverSpec(
            id=UUID(item["id"]),
            approver_id=item["approver_id"],
            approver_name=item["approver_name"],
            approver_role=item["approver_role"],
            is_required=item.get("is_required", False),
        )
        for item in data or ()
    )


def metadata_to_json(metadata: TemplateMetadata) -> dict:
    return {
        "color": metadata.color,
        "icon": metadata.icon,
        "tags": list(metadata.tags),
    }


def metadata_from_json(data: dict | None) -> TemplateMetadata:
    if not data:
        return TemplateMetadata()
    return TemplateMetadata(
        color=data.get("color"),
        icon=data.get("icon"),
        tags=tuple(data.get("tags") or ()),
    )
