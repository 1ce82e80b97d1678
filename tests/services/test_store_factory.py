"""
Tests for build_stores and the engine helpers it relies on.
"""

from sqlalchemy import inspect

from approval_kernel.db.engine import create_tables, create_workflow_engine, drop_tables
from approval_kernel.domain.instance import InstanceStatus
from approval_kernel.services import (
    InMemoryInstanceStore,
    InMemoryTemplateStore,
    SqlInstanceStore,
    SqlTemplateStore,
    WorkflowService,
    build_stores,
)
from tests.factories import make_step, make_template

TABLES = {
    "approval_workflow_templates",
    "approval_step_templates",
    "approval_workflow_instances",
    "approval_steps",
    "approval_parallel_votes",
}


class TestBuildStores:
    def test_memory_by_default(self):
        templates, instances = build_stores()
        assert isinstance(templates, InMemoryTemplateStore)
        assert isinstance(instances, InMemoryInstanceStore)

    def test_sql_for_url(self, deterministic_clock):
        templates, instances = build_stores("sqlite:///:memory:")
        assert isinstance(templates, SqlTemplateStore)
        assert isinstance(instances, SqlInstanceStore)

        template = make_template(make_step(), is_default=True)
        templates.save_template(template)
        service = WorkflowService(templates, instances, clock=deterministic_clock)
        instance = service.start_workflow("payroll", "PB-1", template=template.id)
        approved = service.approve_step(instance.id, instance.steps[0].id, "pm-1")

        assert approved.status == InstanceStatus.APPROVED
        assert instances.load_instance(instance.id).status == InstanceStatus.APPROVED

    def test_file_database(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'approvals.db'}"
        templates, _ = build_stores(url)
        template = make_template(make_step())
        templates.save_template(template)

        reopened, _ = build_stores(url)
        assert reopened.get_template(template.id) == template


class TestSchemaHelpers:
    def test_create_and_drop(self):
        engine = create_workflow_engine("sqlite:///:memory:")
        create_tables(engine)
        assert TABLES <= set(inspect(engine).get_table_names())
        drop_tables(engine)
        assert not TABLES & set(inspect(engine).get_table_names())
        engine.dispose()
