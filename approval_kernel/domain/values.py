"""
Entity snapshot values (``approval_kernel.domain.values``).

Responsibility
--------------
Typed, flat field/value maps describing the business entity being
approved (a payroll batch's ``totalHours``, an expense's ``amount``).
Skip and auto-approval conditions are evaluated against these
snapshots, never against live entity objects.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Every value is a ``FieldValue``: ``Decimal``, ``str``, ``bool`` or
  ``None``.  Numbers are normalised to ``Decimal`` via ``str()`` so
  ``0.1`` becomes ``Decimal("0.1")``, never a binary float.
* Nested values (dicts, lists) are rejected at construction with
  ``InvalidEntitySnapshotError``.
* Unknown fields resolve to ``None`` (the "undefined" of condition
  evaluation); lookup never raises.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from approval_kernel.domain.template import BatchType
from approval_kernel.exceptions import InvalidEntitySnapshotError

FieldValue = Union[Decimal, str, bool, None]


def to_field_value(name: str, raw: Any) -> FieldValue:
    """Normalise a raw entity value into a ``FieldValue``.

    Raises:
        InvalidEntitySnapshotError: for values that are not flat scalars.
    """
    if raw is None or isinstance(raw, (bool, str, Decimal)):
        return raw
    if isinstance(raw, (int, float)):
        try:
            return Decimal(str(raw))
        except InvalidOperation:
            raise InvalidEntitySnapshotError(name, type(raw).__name__)
    raise InvalidEntitySnapshotError(name, type(raw).__name__)


def as_decimal(value: FieldValue) -> Decimal | None:
    """Numeric view of a value, or None if it is not numeric.

    Booleans are not numbers here.  Numeric strings are accepted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    try:
        result = Decimal(value.strip())
    except (InvalidOperation, AttributeError):
        return None
    return result if result.is_finite() else None


def as_text(value: FieldValue) -> str:
    """String rendering used by the ``contains`` operator."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


@dataclass(frozen=True)
class EntitySnapshot(Mapping[str, FieldValue]):
    """Immutable flat view of an entity's fields.

    Build with ``EntitySnapshot.from_mapping({...})``.  Lookups through
    ``get()`` or ``snapshot[field]`` never raise for unknown keys.
    """

    fields: tuple[tuple[str, FieldValue], ...] = ()
    _index: dict[str, FieldValue] = field(
        default_factory=dict, init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "_index", dict(self.fields))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> EntitySnapshot:
        if data is None:
            return cls()
        if isinstance(data, EntitySnapshot):
            return data
        return cls(tuple(
            (str(key), to_field_value(str(key), raw))
            for key, raw in sorted(data.items(), key=lambda kv: str(kv[0]))
        ))

    def __getitem__(self, key: str) -> FieldValue:
        return self._index.get(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __hash__(self) -> int:
        return hash(self.fields)

    def get(self, key: str, default: FieldValue = None) -> FieldValue:
        return self._index.get(key, default)

    def merged(self, updates: Mapping[str, Any]) -> EntitySnapshot:
        """Return a new snapshot with ``updates`` applied on top."""
        combined: dict[str, Any] = dict(self._index)
        combined.update(updates)
        return EntitySnapshot.from_mapping(combined)

    def to_json(self) -> dict[str, Any]:
        """JSON-safe dict (Decimals as strings) for persistence."""
        out: dict[str, Any] = {}
        for key, value in self.fields:
            if isinstance(value, Decimal):
                out[key] = {"decimal": str(value)}
            else:
                out[key] = value
        return out

    @classmethod
    def from_json(cls, data: Mapping[str, Any] | None) -> EntitySnapshot:
        if not data:
            return cls()
        decoded: dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, dict) and set(value) == {"decimal"}:
                decoded[key] = Decimal(value["decimal"])
            else:
                decoded[key] = value
        return cls.from_mapping(decoded)


# Well-known snapshot keys per batch type.  Conditions may reference any
# key; template validation warns about keys outside this catalogue.
BATCH_TYPE_FIELDS: dict[BatchType, frozenset[str]] = {
    BatchType.PAYROLL: frozenset({
        "totalHours", "totalGross", "totalNet", "workerCount",
        "periodEnding", "clientName",
    }),
    BatchType.INVOICE: frozenset({
        "amount", "total", "currency", "clientName", "isCreditNote",
        "daysOverdue",
    }),
    BatchType.TIMESHEET: frozenset({
        "totalHours", "workerCount", "clientName", "hasOvertime",
        "weekEnding",
    }),
    BatchType.EXPENSE: frozenset({
        "amount", "category", "currency", "workerName", "hasReceipt",
    }),
    BatchType.COMPLIANCE: frozenset({
        "documentType", "daysUntilExpiry", "workerName", "status",
    }),
    BatchType.PURCHASE_ORDER: frozenset({
        "amount", "total", "supplierName", "currency", "department",
    }),
}
