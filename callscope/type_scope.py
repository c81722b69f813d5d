"""Per-function variable typing used while collecting call edges."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Optional

from .receiver import resolve_receiver_type, unwrap_expression
from .syntax import SyntaxNode, field_text
from .type_registry import TypeRegistry, base_type_name, strip_generics

logger = logging.getLogger(__name__)

_BINDING_RE = re.compile(r"^(?:ref\s+)?(?:mut\s+)?([A-Za-z_]\w*)$")


@dataclass
class TypeScope:
    """Variable -> type-name map for one function body."""

    variables: Dict[str, str] = field(default_factory=dict)
    self_type: Optional[str] = None

    def bind(self, name: str, type_name: str) -> None:
        if type_name == "Self" and self.self_type:
            type_name = self.self_type
        self.variables[name] = type_name

    def forget(self, name: str) -> None:
        self.variables.pop(name, None)

    def lookup(self, name: str) -> Optional[str]:
        return self.variables.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.variables


def binding_name(pattern: Optional[SyntaxNode]) -> Optional[str]:
    """Name bound by a simple pattern (``x``, ``mut x``, ``ref x``), else None."""
    if pattern is None:
        return None
    if pattern.kind == "identifier":
        return pattern.text
    match = _BINDING_RE.match(pattern.text.strip())
    return match.group(1) if match else None


def build_scope(function: SyntaxNode, self_type: Optional[str] = None) -> TypeScope:
    scope = TypeScope(self_type=self_type)
    extract_parameter_types(function, scope)
    return scope


def extract_parameter_types(function: SyntaxNode, scope: TypeScope) -> None:
    """Record every explicitly typed, simply bound parameter of *function*."""
    params = function.child_by_field("parameters")
    if params is None:
        return
    for param in params.named_children:
        if param.kind != "parameter":
            continue
        name = binding_name(param.child_by_field("pattern"))
        type_node = param.child_by_field("type")
        type_name = base_type_name(type_node.text) if type_node is not None else None
        if name and type_name:
            scope.bind(name, type_name)


def process_let_declaration(
    decl: SyntaxNode,
    scope: TypeScope,
    registry: TypeRegistry,
) -> Optional[str]:
    """Type the variable bound by a ``let``; returns the inferred type or None.

    Rules, first success wins: explicit annotation, ``Type::method(..)``
    initializer, registry return type of the initializer call, struct literal.
    A redeclared name is rebound; when nothing matches, any earlier binding
    of the name is dropped.
    """
    name = binding_name(decl.child_by_field("pattern"))
    if name is None:
        return None

    inferred: Optional[str] = None
    annotation = decl.child_by_field("type")
    if annotation is not None:
        inferred = base_type_name(annotation.text)

    value = decl.child_by_field("value")
    if inferred is None and value is not None:
        value = unwrap_expression(value)
        if value.kind == "call_expression":
            inferred = _type_from_constructor_path(value, scope)
            if inferred is None:
                inferred = resolve_receiver_type(value, scope, registry)
        elif value.kind == "struct_expression":
            inferred = base_type_name(field_text(value, "name"))

    if inferred is None:
        logger.debug("Could not infer type of '%s' at line %d", name, decl.start_line)
        scope.forget(name)
        return None
    scope.bind(name, inferred)
    return scope.lookup(name)


def _type_from_constructor_path(call: SyntaxNode, scope: TypeScope) -> Optional[str]:
    function = call.child_by_field("function")
    if function is not None and function.kind == "generic_function":
        function = function.child_by_field("function")
    if function is None or function.kind != "scoped_identifier":
        return None
    path = function.child_by_field("path")
    if path is None:
        return None
    owner = strip_generics(path.text).split("::")[-1]
    if owner == "Self":
        return scope.self_type
    if owner[:1].isupper():
        return base_type_name(owner)
    return None
