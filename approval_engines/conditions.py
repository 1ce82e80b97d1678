"""
approval_engines.conditions -- Pure step condition evaluator.

Responsibility:
    Evaluate an ordered list of ``StepCondition`` records against an
    ``EntitySnapshot`` and combine the results with AND/OR connectors.
    Used for both skip conditions and auto-approval conditions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain types.

Invariants enforced:
    - Fixed operator set: equals, notEquals, greaterThan, lessThan,
      contains.  No expression language.
    - Single left fold: a condition's ``logic`` joins it to the NEXT
      condition; AND when absent.  No operator precedence.
    - Empty list is vacuously True.
    - Never raises for unknown fields: they resolve to None and every
      operator except ``notEquals`` is False against None.
    - Ordering operators fail closed when either side is non-numeric.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from approval_kernel.domain.template import (
    ConditionLogic,
    ConditionOperator,
    StepCondition,
)
from approval_kernel.domain.values import (
    EntitySnapshot,
    FieldValue,
    as_decimal,
    as_text,
)

_TRUE_TEXT = frozenset({"true", "yes", "1"})
_FALSE_TEXT = frozenset({"false", "no", "0"})


def evaluate(
    conditions: Sequence[StepCondition],
    entity: EntitySnapshot | Mapping[str, Any],
) -> bool:
    """Evaluate ``conditions`` left to right against ``entity``.

    Args:
        conditions: Ordered conditions; each one's ``logic`` links it to
            the next.
        entity: Snapshot (or plain mapping, normalised here) of the
            entity being approved.

    Returns:
        The folded boolean result; True for an empty list.
    """
    if not conditions:
        return True

    snapshot = EntitySnapshot.from_mapping(entity)

    result = evaluate_condition(conditions[0], snapshot)
    for previous, condition in zip(conditions, conditions[1:]):
        value = evaluate_condition(condition, snapshot)
        if previous.logic == ConditionLogic.OR:
            result = result or value
        else:
            result = result and value
    return result


def evaluate_condition(condition: StepCondition, entity: EntitySnapshot) -> bool:
    """Evaluate a single condition against a snapshot."""
    actual = entity.get(condition.field)
    expected = condition.value
    op = condition.operator

    if op == ConditionOperator.EQUALS:
        if actual is None:
            return False
        return _coerced_equal(actual, expected)

    if op == ConditionOperator.NOT_EQUALS:
        if actual is None:
            return True
        return not _coerced_equal(actual, expected)

    if op in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        left = as_decimal(actual)
        right = as_decimal(_as_field_value(expected))
        if left is None or right is None:
            return False
        if op == ConditionOperator.GREATER_THAN:
            return left > right
        return left < right

    if op == ConditionOperator.CONTAINS:
        if actual is None:
            return False
        return as_text(_as_field_value(expected)) in as_text(actual)

    return False


def _as_field_value(value: Any) -> FieldValue:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Decimal(str(value))
    return value


def _coerced_equal(actual: FieldValue, expected: Any) -> bool:
    """Coerce ``expected`` to the type of ``actual`` and compare.

    A failed coercion means "not equal".
    """
    expected = _as_field_value(expected)

    if isinstance(actual, bool):
        if isinstance(expected, bool):
            return actual is expected
        if isinstance(expected, str):
            text = expected.strip().lower()
            if text in _TRUE_TEXT:
                return actual is True
            if text in _FALSE_TEXT:
                return actual is False
        return False

    if isinstance(actual, Decimal):
        other = as_decimal(expected)
        return other is not None and actual == other

    # actual is str
    if expected is None:
        return False
    return actual == as_text(expected)
