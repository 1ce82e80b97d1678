"""
approval_config -- YAML template sets, validation and runtime settings.

Public API:
    load_template_set(path)        -> tuple[WorkflowTemplate, ...]
    validate_template_set(templates) -> ValidationResult
    get_sample_templates()         -> the bundled sample set
    WorkflowSettings.from_env()
"""

from __future__ import annotations

from pathlib import Path

from approval_config.loader import load_template_set, parse_template_set
from approval_config.settings import WorkflowSettings
from approval_config.validator import ValidationResult, validate_template_set
from approval_kernel.domain.template import WorkflowTemplate

SETS_DIR = Path(__file__).parent / "sets"
SAMPLE_SET_PATH = SETS_DIR / "sample_templates.yaml"


def get_sample_templates() -> tuple[WorkflowTemplate, ...]:
    """Load the bundled sample template set.

    Raises:
        ValueError: if the bundled set fails validation.
    """
    templates = load_template_set(SAMPLE_SET_PATH)
    result = validate_template_set(templates)
    if not result.is_valid:
        raise ValueError(f"Sample template set is invalid: {result.errors}")
    return templates


__all__ = [
    "SAMPLE_SET_PATH",
    "SETS_DIR",
    "ValidationResult",
    "WorkflowSettings",
    "get_sample_templates",
    "load_template_set",
    "parse_template_set",
    "validate_template_set",
]
