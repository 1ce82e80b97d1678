"""
Tests for TemplateService -- stored template configuration.
"""

from dataclasses import replace
from uuid import uuid4

import pytest

from approval_kernel.domain.template import BatchType
from approval_kernel.exceptions import (
    InvalidStepOrderError,
    InvalidTemplateError,
    TemplateNotFoundError,
    TemplateStepNotFoundError,
)
from tests.factories import T0, make_step, make_template


class TestTemplateLifecycle:
    def test_create_persists(self, template_service, template_store, captured_logs):
        template = template_service.create_template(
            "Weekly Timesheets", BatchType.TIMESHEET, created_by="ops-admin",
        )
        assert template_store.get_template(template.id) == template
        assert template.created_at == T0
        created = [r for r in captured_logs() if r["message"] == "template_created"]
        assert created[0]["batch_type"] == "timesheet"

    def test_get_unknown(self, template_service):
        with pytest.raises(TemplateNotFoundError):
            template_service.get_template(uuid4())

    def test_import_rejects_gapped_order(self, template_service):
        template = make_template(make_step(), make_step())
        gapped = replace(template, steps=(template.steps[0], replace(template.steps[1], order=3)))
        with pytest.raises(InvalidStepOrderError):
            template_service.import_template(gapped)

    def test_update_template(self, template_service, deterministic_clock):
        template = template_service.create_template("Invoices", BatchType.INVOICE)
        deterministic_clock.advance_hours(2)
        updated = template_service.update_template(template.id, description="Client invoices")
        assert updated.description == "Client invoices"
        assert updated.updated_at > template.updated_at
        assert template_service.get_template(template.id).description == "Client invoices"

    def test_delete(self, template_service):
        template = template_service.create_template("Temp", BatchType.EXPENSE)
        template_service.delete_template(template.id)
        with pytest.raises(TemplateNotFoundError):
            template_service.get_template(template.id)
        with pytest.raises(TemplateNotFoundError):
            template_service.delete_template(template.id)


class TestStepEditing:
    def test_add_update_move_remove(self, template_service):
        template = template_service.create_template("Expenses", BatchType.EXPENSE)
        template = template_service.add_step(template.id, make_step(name="Finance Review", role="Finance Manager"))
        template = template_service.add_step(template.id, make_step(name="Director Review", role="Director"))
        assert [s.name for s in template.steps] == ["Initial Review", "Finance Review", "Director Review"]

        director = template.steps[2]
        template = template_service.move_step(template.id, director.id, "up")
        assert [s.name for s in template.steps] == ["Initial Review", "Director Review", "Finance Review"]

        template = template_service.update_step(template.id, director.id, requires_comments=True)
        assert template.step_by_id(director.id).requires_comments

        template = template_service.remove_step(template.id, template.steps[0].id)
        assert [s.name for s in template.steps] == ["Director Review", "Finance Review"]
        assert [s.order for s in template.steps] == [0, 1]
        assert template_service.get_template(template.id) == template

    def test_reorder(self, template_service):
        template = template_service.create_template("Invoices", BatchType.INVOICE)
        template = template_service.add_step(template.id, make_step(name="Second"))
        first, second = template.steps
        template = template_service.reorder_steps(template.id, [second.id, first.id])
        assert [s.name for s in template.steps] == ["Second", "Initial Review"]

    def test_unknown_step(self, template_service):
        template = template_service.create_template("Invoices", BatchType.INVOICE)
        with pytest.raises(TemplateStepNotFoundError):
            template_service.remove_step(template.id, uuid4())


class TestDefaultsAndQueries:
    def test_set_default_moves_flag_within_batch_type(self, template_service, template_store):
        old = make_template(name="Old", batch_type=BatchType.EXPENSE, is_default=True)
        new = make_template(name="New", batch_type=BatchType.EXPENSE)
        payroll = make_template(name="Payroll", batch_type=BatchType.PAYROLL, is_default=True)
        template_store.save_templates([old, new, payroll])

        result = template_service.set_default_template(new.id, BatchType.EXPENSE)

        assert result.is_default
        assert template_service.default_template(BatchType.EXPENSE).id == new.id
        assert not template_service.get_template(old.id).is_default
        assert template_service.get_template(payroll.id).is_default

    def test_set_default_wrong_batch_type(self, template_service, template_store):
        invoice = make_template(batch_type=BatchType.INVOICE)
        template_store.save_template(invoice)
        with pytest.raises(InvalidTemplateError):
            template_service.set_default_template(invoice.id, BatchType.PAYROLL)

    def test_set_default_unknown(self, template_service):
        with pytest.raises(TemplateNotFoundError):
            template_service.set_default_template(uuid4(), BatchType.PAYROLL)

    def test_duplicate(self, template_service, template_store):
        source = make_template(make_step(), make_step(), name="Large Invoice", is_default=True)
        template_store.save_template(source)

        copy = template_service.duplicate_template(source.id)

        assert copy.name == "Large Invoice (Copy)"
        assert not copy.is_default
        assert len(template_service.list_templates()) == 2

    def test_queries(self, template_service, template_store):
        active = make_template(name="a", batch_type=BatchType.COMPLIANCE)
        inactive = make_template(name="b", batch_type=BatchType.COMPLIANCE, is_active=False)
        template_store.save_templates([active, inactive])

        assert len(template_service.templates_by_batch_type(BatchType.COMPLIANCE)) == 2
        assert template_service.active_templates() == (active,)
        assert template_service.default_template(BatchType.COMPLIANCE) is None


class TestOneDefaultPerBatchType:
    @staticmethod
    def defaults(template_service, batch_type):
        return [t for t in template_service.templates_by_batch_type(batch_type) if t.is_default]

    def test_update_cannot_set_default(self, template_service, template_store):
        current = make_template(name="A", batch_type=BatchType.PAYROLL, is_default=True)
        other = make_template(name="B", batch_type=BatchType.PAYROLL)
        template_store.save_templates([current, other])

        with pytest.raises(ValueError):
            template_service.update_template(other.id, is_default=True)

        assert [t.id for t in self.defaults(template_service, BatchType.PAYROLL)] == [current.id]

    def test_moving_a_default_to_another_batch_type_clears_its_flag(
        self, template_service, template_store,
    ):
        payroll_default = make_template(name="A", batch_type=BatchType.PAYROLL, is_default=True)
        invoice_default = make_template(name="B", batch_type=BatchType.INVOICE, is_default=True)
        template_store.save_templates([payroll_default, invoice_default])

        moved = template_service.update_template(payroll_default.id, batch_type=BatchType.INVOICE)

        assert moved.batch_type == BatchType.INVOICE
        assert not moved.is_default
        assert [t.id for t in self.defaults(template_service, BatchType.INVOICE)] == [invoice_default.id]
        assert self.defaults(template_service, BatchType.PAYROLL) == []

    def test_update_within_batch_type_keeps_flag(self, template_service, template_store):
        current = make_template(batch_type=BatchType.EXPENSE, is_default=True)
        template_store.save_template(current)
        updated = template_service.update_template(current.id, batch_type=BatchType.EXPENSE, name="Expenses")
        assert updated.is_default

    def test_imported_default_replaces_previous(self, template_service, template_store, captured_logs):
        previous = make_template(name="Old", batch_type=BatchType.TIMESHEET, is_default=True)
        template_store.save_template(previous)

        imported = make_template(name="New", batch_type=BatchType.TIMESHEET, is_default=True)
        template_service.import_template(imported)

        assert [t.id for t in self.defaults(template_service, BatchType.TIMESHEET)] == [imported.id]
        assert not template_service.get_template(previous.id).is_default
        logged = [r for r in captured_logs() if r["message"] == "template_imported"]
        assert logged[0]["demoted_count"] == 1

    def test_imported_non_default_leaves_default_alone(self, template_service, template_store):
        previous = make_template(batch_type=BatchType.TIMESHEET, is_default=True)
        template_store.save_template(previous)

        template_service.import_template(make_template(batch_type=BatchType.TIMESHEET))

        assert [t.id for t in self.defaults(template_service, BatchType.TIMESHEET)] == [previous.id]
