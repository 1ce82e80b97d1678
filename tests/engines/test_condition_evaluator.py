"""
Tests for approval_engines.conditions.

The evaluator is a single left fold: each condition's ``logic`` joins it
to the next one, with no operator precedence.
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from approval_engines.conditions import evaluate, evaluate_condition
from approval_kernel.domain.template import ConditionLogic, ConditionOperator
from approval_kernel.domain.values import EntitySnapshot
from tests.factories import make_condition

EQ = ConditionOperator.EQUALS
NE = ConditionOperator.NOT_EQUALS
GT = ConditionOperator.GREATER_THAN
LT = ConditionOperator.LESS_THAN
CONTAINS = ConditionOperator.CONTAINS


def snapshot(**fields) -> EntitySnapshot:
    return EntitySnapshot.from_mapping(fields)


class TestOperators:
    def test_less_than(self):
        cond = make_condition("totalHours", LT, Decimal("100"))
        assert evaluate_condition(cond, snapshot(totalHours=80))
        assert not evaluate_condition(cond, snapshot(totalHours=100))

    def test_greater_than(self):
        cond = make_condition("amount", GT, Decimal("1000"))
        assert evaluate_condition(cond, snapshot(amount=1000.01))
        assert not evaluate_condition(cond, snapshot(amount=1000))

    def test_ordering_accepts_numeric_text(self):
        cond = make_condition("amount", LT, "500")
        assert evaluate_condition(cond, snapshot(amount="499.99"))

    def test_ordering_fails_closed_for_text(self):
        cond = make_condition("clientName", GT, Decimal("1"))
        assert not evaluate_condition(cond, snapshot(clientName="Acme"))

    def test_ordering_fails_closed_for_bool(self):
        cond = make_condition("hasReceipt", LT, Decimal("5"))
        assert not evaluate_condition(cond, snapshot(hasReceipt=True))

    def test_equals_decimal_ignores_scale(self):
        cond = make_condition("amount", EQ, Decimal("100"))
        assert evaluate_condition(cond, snapshot(amount=Decimal("100.00")))

    def test_equals_coerces_to_bool_field(self):
        for text in ("true", "Yes", "1"):
            cond = make_condition("isCreditNote", EQ, text)
            assert evaluate_condition(cond, snapshot(isCreditNote=True))
        cond = make_condition("isCreditNote", EQ, "no")
        assert evaluate_condition(cond, snapshot(isCreditNote=False))

    def test_equals_bool_against_unrecognised_text(self):
        cond = make_condition("isCreditNote", EQ, "maybe")
        assert not evaluate_condition(cond, snapshot(isCreditNote=True))

    def test_equals_bool_literal(self):
        cond = make_condition("isCreditNote", EQ, False)
        assert evaluate_condition(cond, snapshot(isCreditNote=False))
        assert not evaluate_condition(cond, snapshot(isCreditNote=True))

    def test_equals_text(self):
        cond = make_condition("category", EQ, "travel")
        assert evaluate_condition(cond, snapshot(category="travel"))
        assert not evaluate_condition(cond, snapshot(category="Travel"))

    def test_equals_decimal_field_against_text(self):
        cond = make_condition("workerCount", EQ, "12")
        assert evaluate_condition(cond, snapshot(workerCount=12))
        cond = make_condition("workerCount", EQ, "twelve")
        assert not evaluate_condition(cond, snapshot(workerCount=12))

    def test_not_equals(self):
        cond = make_condition("currency", NE, "GBP")
        assert evaluate_condition(cond, snapshot(currency="EUR"))
        assert not evaluate_condition(cond, snapshot(currency="GBP"))

    def test_contains(self):
        cond = make_condition("clientName", CONTAINS, "Health")
        assert evaluate_condition(cond, snapshot(clientName="NHS Health Trust"))
        assert not evaluate_condition(cond, snapshot(clientName="Acme"))

    def test_contains_on_number_uses_text(self):
        cond = make_condition("amount", CONTAINS, "99")
        assert evaluate_condition(cond, snapshot(amount=Decimal("1990")))


class TestMissingFields:
    @pytest.mark.parametrize("operator", [EQ, GT, LT, CONTAINS])
    def test_missing_field_is_false(self, operator):
        cond = make_condition("absent", operator, Decimal("1"))
        assert not evaluate_condition(cond, snapshot())

    def test_missing_field_not_equals_is_true(self):
        cond = make_condition("absent", NE, "x")
        assert evaluate_condition(cond, snapshot())

    def test_explicit_none_behaves_as_missing(self):
        cond = make_condition("poNumber", EQ, "PO-1")
        assert not evaluate_condition(cond, snapshot(poNumber=None))


class TestFold:
    def test_empty_list_is_true(self):
        assert evaluate([], {}) is True

    def test_plain_mapping_accepted(self):
        conditions = [make_condition("amount", LT, Decimal("1000"))]
        assert evaluate(conditions, {"amount": 250})

    def test_default_connector_is_and(self):
        conditions = [
            make_condition("amount", LT, Decimal("1000")),
            make_condition("isCreditNote", EQ, False),
        ]
        assert evaluate(conditions, {"amount": 250, "isCreditNote": False})
        assert not evaluate(conditions, {"amount": 250, "isCreditNote": True})

    def test_or_connector(self):
        conditions = [
            make_condition("amount", LT, Decimal("100"), logic=ConditionLogic.OR),
            make_condition("category", EQ, "stationery"),
        ]
        assert evaluate(conditions, {"amount": 5000, "category": "stationery"})
        assert evaluate(conditions, {"amount": 50, "category": "travel"})
        assert not evaluate(conditions, {"amount": 5000, "category": "travel"})

    def test_left_fold_without_precedence(self):
        # (A OR B) AND C, not A OR (B AND C)
        conditions = [
            make_condition("a", EQ, "yes", logic=ConditionLogic.OR),
            make_condition("b", EQ, "yes", logic=ConditionLogic.AND),
            make_condition("c", EQ, "yes"),
        ]
        entity = {"a": "yes", "b": "no", "c": "no"}
        assert not evaluate(conditions, entity)

    def test_last_condition_logic_is_ignored(self):
        conditions = [
            make_condition("amount", LT, Decimal("100"), logic=ConditionLogic.OR),
        ]
        assert not evaluate(conditions, {"amount": 500})


class TestFoldProperties:
    @given(
        amounts=st.decimals(
            min_value=Decimal("-1000000"), max_value=Decimal("1000000"),
            allow_nan=False, allow_infinity=False, places=2,
        ),
        threshold=st.decimals(
            min_value=Decimal("-1000000"), max_value=Decimal("1000000"),
            allow_nan=False, allow_infinity=False, places=2,
        ),
    )
    def test_less_than_matches_decimal_comparison(self, amounts, threshold):
        cond = make_condition("amount", LT, threshold)
        assert evaluate([cond], {"amount": amounts}) == (amounts < threshold)

    @given(st.lists(st.booleans(), min_size=1, max_size=8))
    def test_all_and_chain_is_conjunction(self, flags):
        entity = {f"f{i}": flag for i, flag in enumerate(flags)}
        conditions = [make_condition(f"f{i}", EQ, True) for i in range(len(flags))]
        assert evaluate(conditions, entity) == all(flags)

    @given(st.lists(st.booleans(), min_size=1, max_size=8))
    def test_all_or_chain_is_disjunction(self, flags):
        entity = {f"f{i}": flag for i, flag in enumerate(flags)}
        conditions = [
            make_condition(f"f{i}", EQ, True, logic=ConditionLogic.OR)
            for i in range(len(flags))
        ]
        assert evaluate(conditions, entity) == any(flags)
