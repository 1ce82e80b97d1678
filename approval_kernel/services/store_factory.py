"""
Choose template and instance stores from a database URL.

``None`` keeps everything in process memory (tests, embedding callers that
persist elsewhere).  Any SQLAlchemy URL opens the database, creates
missing tables and returns the SQL stores on one shared session factory.
"""

from __future__ import annotations

from approval_kernel.db.engine import open_database
from approval_kernel.logging_config import get_logger
from approval_kernel.services.instance_store import (
    InMemoryInstanceStore,
    InstanceStore,
    SqlInstanceStore,
)
from approval_kernel.services.template_store import (
    InMemoryTemplateStore,
    SqlTemplateStore,
    TemplateStore,
)

logger = get_logger("services.store_factory")


def build_stores(database_url: str | None = None) -> tuple[TemplateStore, InstanceStore]:
    if database_url is None:
        logger.info("stores_built", extra={"backend": "memory"})
        return InMemoryTemplateStore(), InMemoryInstanceStore()

    session_factory = open_database(database_url)
    logger.info("stores_built", extra={"backend": "sql"})
    return SqlTemplateStore(session_factory), SqlInstanceStore(session_factory)
