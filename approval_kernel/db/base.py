"""
Module: approval_kernel.db.base
Responsibility: Declarative base and the two column types every workflow
    table relies on.
Architecture position: Kernel > DB.  Imported by the models package.
    MUST NOT import from models/, services/ or domain/.

Invariants enforced:
    - Primary keys are the ids of the domain records they persist.  The
      database never invents one: templates, steps and votes keep the
      same UUID in memory and on disk.
    - UUIDs are stored as 36-character text so one schema serves
      PostgreSQL and SQLite.
    - Datetimes go in and come out timezone-aware UTC.  SQLite stores
      them without an offset; ``UTCDateTime`` puts it back so
      ``now - activated_at`` in the escalation engine never mixes naive
      and aware values.

Failure modes:
    - ValueError when binding a naive datetime.
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# Stable constraint names so migrations can refer to them.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """``uuid.UUID`` persisted as ``String(36)``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(UUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime, always handed back in UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime cannot be stored: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        # SQLite returns the stored UTC wall time without an offset.
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for templates, instances, steps and votes."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True)
