"""Tests for receiver type resolution."""

import pytest

from callscope.models import ReasonCode
from callscope.receiver import resolve_receiver, resolve_receiver_type, unwrap_expression
from callscope.type_registry import TypeRegistry
from callscope.type_scope import TypeScope
from helpers import FakeNode, call, field_expr, ident, method_call, node, scoped, self_node


@pytest.fixture
def registry():
    reg = TypeRegistry()
    reg.register_struct_field("Game", "player", "Unit")
    reg.register_struct_field("Unit", "stats", "Stats")
    reg.register_struct_field("Stats", "hp", "u32")
    reg.register_return_type("Unit", "stats", "Stats")
    reg.register_return_type("Unit", "new", "Unit")
    reg.register_return_type("", "spawn", "Unit")
    reg.freeze()
    return reg


@pytest.fixture
def scope():
    return TypeScope(variables={"unit": "Unit", "raw": "Opaque"}, self_type="Game")


class TestResolved:
    def test_identifier(self, scope, registry):
        assert resolve_receiver_type(ident("unit"), scope, registry) == "Unit"

    def test_self(self, scope, registry):
        assert resolve_receiver_type(self_node(), scope, registry) == "Game"

    def test_self_field(self, scope, registry):
        assert resolve_receiver_type(field_expr(self_node(), "player"), scope, registry) == "Unit"

    def test_variable_field(self, scope, registry):
        assert resolve_receiver_type(field_expr(ident("unit"), "stats"), scope, registry) == "Stats"

    def test_nested_field_chain(self, scope, registry):
        expr = field_expr(field_expr(self_node(), "player"), "stats")
        assert resolve_receiver_type(expr, scope, registry) == "Stats"

    def test_method_call_return(self, scope, registry):
        assert resolve_receiver_type(method_call(ident("unit"), "stats"), scope, registry) == "Stats"

    def test_chained_through_field_and_method(self, scope, registry):
        expr = method_call(field_expr(self_node(), "player"), "stats")
        assert resolve_receiver_type(expr, scope, registry) == "Stats"

    def test_associated_function(self, scope, registry):
        assert resolve_receiver_type(call(scoped("Unit", "new")), scope, registry) == "Unit"

    def test_free_function(self, scope, registry):
        assert resolve_receiver_type(call(ident("spawn")), scope, registry) == "Unit"

    def test_struct_literal(self, scope, registry):
        literal = node("struct_expression", "Stats { hp: 1 }", name=FakeNode("type_identifier", "Stats"))
        assert resolve_receiver_type(literal, scope, registry) == "Stats"

    def test_wrappers_are_transparent(self, scope, registry):
        wrapped = node(
            "parenthesized_expression", "(&unit)",
            node("reference_expression", "&unit", value=ident("unit")),
        )
        assert unwrap_expression(wrapped).text == "unit"
        assert resolve_receiver_type(wrapped, scope, registry) == "Unit"


class TestUnresolved:
    def test_no_scope(self, registry):
        result = resolve_receiver(ident("unit"), None, registry)
        assert not result.resolved
        assert result.reason.code is ReasonCode.NO_TYPE_SCOPE

    def test_unknown_variable(self, scope, registry):
        result = resolve_receiver(ident("value"), scope, registry)
        assert result.reason.code is ReasonCode.VARIABLE_NOT_IN_SCOPE
        assert str(result.reason) == "variable_not_in_scope:value"

    def test_self_outside_impl(self, registry):
        result = resolve_receiver(field_expr(self_node(), "player"), TypeScope(), registry)
        assert result.reason.code is ReasonCode.SELF_TYPE_UNKNOWN

    def test_self_type_not_registered(self, registry):
        result = resolve_receiver(field_expr(self_node(), "x"), TypeScope(self_type="Ghost"), registry)
        assert result.reason.code is ReasonCode.SELF_TYPE_LOOKUP_FAILED
        assert result.partial_type == "Ghost"

    def test_variable_type_not_registered(self, scope, registry):
        result = resolve_receiver(field_expr(ident("raw"), "inner"), scope, registry)
        assert result.reason.code is ReasonCode.TYPE_LOOKUP_FAILED
        assert result.reason.detail == "Opaque"

    def test_unknown_field(self, scope, registry):
        result = resolve_receiver(field_expr(self_node(), "missing"), scope, registry)
        assert result.reason.code is ReasonCode.FIELD_TYPE_UNKNOWN
        assert result.partial_type == "Game"

    def test_unknown_return_type(self, scope, registry):
        result = resolve_receiver(method_call(ident("unit"), "explode"), scope, registry)
        assert result.reason.code is ReasonCode.RETURN_TYPE_UNKNOWN
        assert result.partial_type == "Unit"

    def test_failure_propagates_from_inner_link(self, scope, registry):
        expr = method_call(field_expr(ident("ghost"), "stats"), "hp")
        result = resolve_receiver(expr, scope, registry)
        assert result.reason.code is ReasonCode.VARIABLE_NOT_IN_SCOPE

    @pytest.mark.parametrize(
        "expr",
        [
            FakeNode("integer_literal", "1"),
            FakeNode("index_expression", "items[0]"),
            FakeNode("closure_expression", "|x| x"),
            FakeNode("macro_invocation", "vec![]"),
            node("call_expression", "(f)()", function=FakeNode("parenthesized_expression", "(f)")),
        ],
    )
    def test_other_shapes_are_classified(self, scope, registry, expr):
        result = resolve_receiver(expr, scope, registry)
        assert result.type_name is None
        assert result.reason.code is ReasonCode.UNSUPPORTED_RECEIVER_TYPE
