"""
Tests for approval_config.settings.WorkflowSettings.
"""

import logging

import pytest

from approval_config import WorkflowSettings


class TestWorkflowSettings:
    def test_defaults(self):
        settings = WorkflowSettings.from_env({})
        assert settings.escalation_tick_seconds == 300
        assert settings.database_url is None
        assert settings.log_level_number == logging.INFO

    def test_from_env(self):
        settings = WorkflowSettings.from_env({
            "APPROVAL_WORKFLOW_ESCALATION_TICK_SECONDS": "60",
            "APPROVAL_WORKFLOW_DATABASE_URL": "sqlite:///approvals.db",
            "APPROVAL_WORKFLOW_LOG_LEVEL": "debug",
            "UNRELATED": "x",
        })
        assert settings.escalation_tick_seconds == 60
        assert settings.database_url == "sqlite:///approvals.db"
        assert settings.log_level_number == logging.DEBUG

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("APPROVAL_WORKFLOW_ESCALATION_TICK_SECONDS", "15")
        assert WorkflowSettings.from_env().escalation_tick_seconds == 15

    @pytest.mark.parametrize(
        "env",
        [
            {"APPROVAL_WORKFLOW_ESCALATION_TICK_SECONDS": "0"},
            {"APPROVAL_WORKFLOW_ESCALATION_TICK_SECONDS": "soon"},
            {"APPROVAL_WORKFLOW_LOG_LEVEL": "chatty"},
        ],
    )
    def test_malformed_values(self, env):
        with pytest.raises(ValueError):
            WorkflowSettings.from_env(env)
