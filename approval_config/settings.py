"""
Runtime settings (``approval_config.settings``).

Values are read from environment variables prefixed ``APPROVAL_WORKFLOW_``:

    APPROVAL_WORKFLOW_ESCALATION_TICK_SECONDS   default 300
    APPROVAL_WORKFLOW_DATABASE_URL              default unset (in-memory stores)
    APPROVAL_WORKFLOW_LOG_LEVEL                 default INFO
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

ENV_PREFIX = "APPROVAL_WORKFLOW_"


@dataclass(frozen=True)
class WorkflowSettings:
    escalation_tick_seconds: int = 300
    database_url: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.escalation_tick_seconds <= 0:
            raise ValueError(
                f"escalation_tick_seconds must be positive, got {self.escalation_tick_seconds}"
            )
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level!r}")

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level.upper())

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> WorkflowSettings:
        """
        Build settings from the environment.

        Raises:
            ValueError: if a variable is present but malformed.
        """
        env = os.environ if environ is None else environ
        tick = env.get(f"{ENV_PREFIX}ESCALATION_TICK_SECONDS")
        return cls(
            escalation_tick_seconds=int(tick) if tick else 300,
            database_url=env.get(f"{ENV_PREFIX}DATABASE_URL") or None,
            log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL") or "INFO",
        )
