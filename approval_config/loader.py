"""
Template Set Loader (``approval_config.loader``).

Responsibility
--------------
Loads YAML template set files and parses them into frozen
``WorkflowTemplate`` values.  Configuration tooling and tests use this to
seed template stores; nothing at request time reads YAML.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on
``approval_kernel.domain`` only.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Numbers (condition values, escalation hours) are parsed to ``Decimal``
  through ``str()``, never kept as ``float``.
* Ids are stable across loads: a template's ``key`` seeds ``uuid5`` ids
  for the template, its steps, rules and roster entries unless an
  explicit ``id`` is given.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown batch type / operator / logic / mode  -> ``ValueError``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID, uuid5

import yaml

from approval_kernel.domain.template import (
    ApprovalStepTemplate,
    BatchType,
    ConditionLogic,
    ConditionOperator,
    EscalationRule,
    ParallelApprovalMode,
    ParallelApproverSpec,
    StepCondition,
    TemplateMetadata,
    WorkflowTemplate,
)

# Namespace for ids derived from template keys.
TEMPLATE_ID_NAMESPACE = UUID("6f2d3c1e-8a4b-5c7d-9e0f-a1b2c3d4e5f6")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_template_set(path: Path | str) -> tuple[WorkflowTemplate, ...]:
    """Parse every template listed under ``templates:`` in a YAML file."""
    data = load_yaml_file(Path(path))
    return parse_template_set(data)


def parse_template_set(data: dict[str, Any]) -> tuple[WorkflowTemplate, ...]:
    created_at = parse_datetime(data.get("created_at"))
    return tuple(
        parse_template(item, created_at=created_at)
        for item in data.get("templates") or ()
    )


def parse_template(
    data: dict[str, Any],
    *,
    created_at: datetime | None = None,
) -> WorkflowTemplate:
    """
    Parse a ``WorkflowTemplate`` from a dict.

    Steps take their order from list position unless ``order`` is given.
    """
    key = data.get("key") or data["name"]
    template_id = _parse_id(data.get("id"), key)
    steps = tuple(
        parse_step(step, key=f"{key}/step/{index}", default_order=index)
        for index, step in enumerate(data.get("steps") or ())
    )
    timestamp = parse_datetime(data.get("created_at")) or created_at
    return WorkflowTemplate(
        id=template_id,
        name=data["name"],
        description=data.get("description", ""),
        batch_type=BatchType(data["batch_type"]),
        is_active=bool(data.get("is_active", True)),
        is_default=bool(data.get("is_default", False)),
        steps=steps,
        created_at=timestamp,
        updated_at=parse_datetime(data.get("updated_at")) or timestamp,
        created_by=data.get("created_by"),
        metadata=parse_metadata(data.get("metadata")),
    )


def parse_step(
    data: dict[str, Any],
    *,
    key: str,
    default_order: int,
) -> ApprovalStepTemplate:
    """Parse an ``ApprovalStepTemplate`` from a dict."""
    mode = data.get("parallel_approval_mode")
    return ApprovalStepTemplate(
        id=_parse_id(data.get("id"), key),
        order=int(data.get("order", default_order)),
        name=data["name"],
        description=data.get("description"),
        approver_role=data["approver_role"],
        requires_comments=bool(data.get("requires_comments", False)),
        can_skip=bool(data.get("can_skip", False)),
        skip_conditions=parse_conditions(
            data.get("skip_conditions"), key=f"{key}/skip",
        ),
        auto_approval_conditions=parse_conditions(
            data.get("auto_approval_conditions"), key=f"{key}/auto",
        ),
        escalation_rules=tuple(
            parse_escalation_rule(rule, key=f"{key}/escalation/{index}")
            for index, rule in enumerate(data.get("escalation_rules") or ())
        ),
        is_parallel=bool(data.get("is_parallel", False)),
        parallel_approval_mode=ParallelApprovalMode(mode) if mode else None,
        parallel_approvers=tuple(
            parse_parallel_approver(entry, key=f"{key}/approver/{index}")
            for index, entry in enumerate(data.get("parallel_approvers") or ())
        ),
    )


def parse_conditions(
    data: list[dict[str, Any]] | None,
    *,
    key: str,
) -> tuple[StepCondition, ...]:
    """Parse a list of ``StepCondition``; every condition gets an id."""
    conditions = []
    for index, item in enumerate(data or ()):
        logic = item.get("logic")
        conditions.append(StepCondition(
            id=_parse_id(item.get("id"), f"{key}/{index}"),
            field=item["field"],
            operator=ConditionOperator(item["operator"]),
            value=parse_condition_value(item["value"]),
            logic=ConditionLogic(logic) if logic else None,
        ))
    return tuple(conditions)


def parse_condition_value(value: Any) -> Decimal | str | bool:
    """Numbers become ``Decimal``; strings and booleans pass through."""
    if isinstance(value, bool) or isinstance(value, str):
        return value
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    raise ValueError(f"Unsupported condition value: {value!r}")


def parse_escalation_rule(data: dict[str, Any], *, key: str) -> EscalationRule:
    """Parse an ``EscalationRule`` from a dict."""
    return EscalationRule(
        id=_parse_id(data.get("id"), key),
        hours_until_escalation=Decimal(str(data["hours_until_escalation"])),
        escalate_to=data["escalate_to"],
        notify_original_approver=bool(data.get("notify_original_approver", True)),
    )


def parse_parallel_approver(data: dict[str, Any], *, key: str) -> ParallelApproverSpec:
    """Parse a ``ParallelApproverSpec`` from a dict."""
    return ParallelApproverSpec(
        id=_parse_id(data.get("id"), key),
        approver_id=str(data["approver_id"]),
        approver_name=data.get("approver_name", str(data["approver_id"])),
        approver_role=data["approver_role"],
        is_required=bool(data.get("is_required", False)),
    )


def parse_metadata(data: dict[str, Any] | None) -> TemplateMetadata:
    if not data:
        return TemplateMetadata()
    return TemplateMetadata(
        color=data.get("color"),
        icon=data.get("icon"),
        tags=tuple(data.get("tags") or ()),
    )


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse a timezone-aware datetime from YAML (string or datetime).

    Raises:
        ValueError: for naive datetimes or unparseable strings.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise ValueError(f"Cannot parse datetime from {value!r}")
    if value.tzinfo is None:
        raise ValueError(f"Datetime must carry a timezone: {value!r}")
    return value


def _parse_id(value: Any, key: str) -> UUID:
    if value:
        return UUID(str(value))
    return uuid5(TEMPLATE_ID_NAMESPACE, key)
