"""Database layer: declarative base, column types, engines and sessions."""

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.db.engine import (
    create_session_factory,
    create_tables,
    create_workflow_engine,
    drop_tables,
    open_database,
    session_scope,
)

__all__ = [
    "Base",
    "UTCDateTime",
    "UUIDString",
    "create_session_factory",
    "create_tables",
    "create_workflow_engine",
    "drop_tables",
    "open_database",
    "session_scope",
]
