"""Receiver type resolution for method calls.

Given the receiver expression of ``recv.method()``, figure out the declared
type of ``recv`` from the local :class:`~callscope.type_scope.TypeScope`, the
project-wide :class:`~callscope.type_registry.TypeRegistry` and, for chained
or nested receivers, recursively from itself.

The resolver is total: every expression shape yields either a type name or a
classified :class:`~callscope.models.UnresolvedReason`, never an exception.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple, Optional

from .models import ReasonCode, UnresolvedReason
from .syntax import SyntaxNode
from .type_registry import TypeRegistry, base_type_name, strip_generics

if TYPE_CHECKING:
    from .type_scope import TypeScope

_TRANSPARENT_KINDS = frozenset({
    "parenthesized_expression",
    "reference_expression",
    "try_expression",
    "await_expression",
})


class ReceiverResolution(NamedTuple):
    type_name: Optional[str]
    reason: Optional[UnresolvedReason] = None
    # last type known before the failing link, for diagnostics
    partial_type: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.type_name is not None


def _fail(code: ReasonCode, detail: Optional[str] = None, partial: Optional[str] = None) -> ReceiverResolution:
    return ReceiverResolution(None, UnresolvedReason(code, detail), partial)


def unwrap_expression(node: SyntaxNode) -> SyntaxNode:
    """Strip ``( )``, ``&``/``&mut``, ``?`` and ``.await`` around an expression."""
    while node.kind in _TRANSPARENT_KINDS:
        inner = node.child_by_field("value")
        if inner is None:
            inner = next(
                (c for c in node.named_children if c.kind not in ("mutable_specifier", "line_comment", "block_comment")),
                None,
            )
        if inner is None:
            break
        node = inner
    return node


def resolve_receiver_type(
    expr: SyntaxNode,
    scope: Optional["TypeScope"],
    registry: TypeRegistry,
) -> Optional[str]:
    return resolve_receiver(expr, scope, registry).type_name


def resolve_receiver(
    expr: SyntaxNode,
    scope: Optional["TypeScope"],
    registry: TypeRegistry,
) -> ReceiverResolution:
    if scope is None:
        return _fail(ReasonCode.NO_TYPE_SCOPE)
    return _resolve(unwrap_expression(expr), scope, registry)


def _resolve(expr: SyntaxNode, scope: "TypeScope", registry: TypeRegistry) -> ReceiverResolution:
    kind = expr.kind

    if kind == "identifier":
        found = scope.lookup(expr.text)
        if found is None:
            return _fail(ReasonCode.VARIABLE_NOT_IN_SCOPE, expr.text)
        return ReceiverResolution(found)

    if kind == "self":
        if scope.self_type is None:
            return _fail(ReasonCode.SELF_TYPE_UNKNOWN)
        return ReceiverResolution(scope.self_type)

    if kind == "field_expression":
        return _resolve_field(expr, scope, registry)

    if kind == "call_expression":
        return _resolve_call(expr, scope, registry)

    if kind == "struct_expression":
        name_node = expr.child_by_field("name")
        name = base_type_name(name_node.text) if name_node is not None else None
        if name == "Self":
            name = scope.self_type
        if name is not None:
            return ReceiverResolution(name)

    return _fail(ReasonCode.UNSUPPORTED_RECEIVER_TYPE, kind)


def _resolve_field(expr: SyntaxNode, scope: "TypeScope", registry: TypeRegistry) -> ReceiverResolution:
    value = expr.child_by_field("value")
    field_node = expr.child_by_field("field")
    if value is None or field_node is None:
        return _fail(ReasonCode.UNSUPPORTED_RECEIVER_TYPE, expr.kind)
    value = unwrap_expression(value)

    if value.kind == "self":
        owner = scope.self_type
        if owner is None:
            return _fail(ReasonCode.SELF_TYPE_UNKNOWN)
        if not registry.has_type(owner):
            return _fail(ReasonCode.SELF_TYPE_LOOKUP_FAILED, partial=owner)
    elif value.kind == "identifier":
        owner = scope.lookup(value.text)
        if owner is None:
            return _fail(ReasonCode.VARIABLE_NOT_IN_SCOPE, value.text)
        if not registry.has_type(owner):
            return _fail(ReasonCode.TYPE_LOOKUP_FAILED, owner, partial=owner)
    else:
        inner = _resolve(value, scope, registry)
        if inner.type_name is None:
            return inner
        owner = inner.type_name
        if not registry.has_type(owner):
            return _fail(ReasonCode.TYPE_LOOKUP_FAILED, owner, partial=owner)

    field_type = registry.get_field_type(owner, field_node.text)
    if field_type is None:
        return _fail(ReasonCode.FIELD_TYPE_UNKNOWN, partial=owner)
    return ReceiverResolution(field_type)


def _resolve_call(expr: SyntaxNode, scope: "TypeScope", registry: TypeRegistry) -> ReceiverResolution:
    function = expr.child_by_field("function")
    if function is not None and function.kind == "generic_function":
        function = function.child_by_field("function")
    if function is None:
        return _fail(ReasonCode.UNSUPPORTED_RECEIVER_TYPE, expr.kind)

    if function.kind == "scoped_identifier":
        path = function.child_by_field("path")
        name = function.child_by_field("name")
        if path is None or name is None:
            return _fail(ReasonCode.UNSUPPORTED_RECEIVER_TYPE, function.kind)
        owner = strip_generics(path.text).split("::")[-1]
        if owner == "Self":
            if scope.self_type is None:
                return _fail(ReasonCode.SELF_TYPE_UNKNOWN)
            owner = scope.self_type
        elif not owner[:1].isupper():
            # module path: a free function
            owner = ""
        return _lookup_return(registry, owner, name.text)

    if function.kind == "identifier":
        return _lookup_return(registry, "", function.text)

    if function.kind == "field_expression":
        inner_value = function.child_by_field("value")
        method = function.child_by_field("field")
        if inner_value is None or method is None:
            return _fail(ReasonCode.UNSUPPORTED_RECEIVER_TYPE, function.kind)
        inner = _resolve(unwrap_expression(inner_value), scope, registry)
        if inner.type_name is None:
            return inner
        return _lookup_return(registry, inner.type_name, method.text)

    return _fail(ReasonCode.UNSUPPORTED_RECEIVER_TYPE, function.kind)


def _lookup_return(registry: TypeRegistry, owner: str, method: str) -> ReceiverResolution:
    found = registry.get_return_type(owner, method)
    if found is None:
        return _fail(ReasonCode.RETURN_TYPE_UNKNOWN, partial=owner or None)
    return ReceiverResolution(found)
