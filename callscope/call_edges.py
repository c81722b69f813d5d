"""Collect call edges from function bodies.

Runs in phase 2, after the :class:`~callscope.type_registry.TypeRegistry` has
been populated for the whole project.  The body is visited depth-first in
pre-order; a ``let`` updates the scope before its own descendants are
visited, so later calls benefit from earlier inference.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .control_flow import call_context
from .models import CallEdge, UnresolvedEdge
from .receiver import resolve_receiver
from .syntax import SyntaxNode
from .type_registry import TypeRegistry, base_type_name, strip_generics
from .type_scope import TypeScope, build_scope, process_let_declaration

logger = logging.getLogger(__name__)

DEFAULT_RECEIVER_TEXT_LIMIT = 50

_OPAQUE_KINDS = frozenset({"function_item", "macro_invocation"})
_WS_RE = re.compile(r"\s+")


@dataclass
class EdgeCollection:
    edges: List[CallEdge] = field(default_factory=list)
    unresolved: List[UnresolvedEdge] = field(default_factory=list)

    def extend(self, other: "EdgeCollection") -> None:
        self.edges.extend(other.edges)
        self.unresolved.extend(other.unresolved)

    @property
    def typed_edges(self) -> List[CallEdge]:
        return [e for e in self.edges if e.typed]


class CallEdgeCollector:
    """Emit one edge (or unresolved diagnostic) per call expression."""

    def __init__(
        self,
        registry: TypeRegistry,
        receiver_text_limit: int = DEFAULT_RECEIVER_TEXT_LIMIT,
    ) -> None:
        self.registry = registry
        self.receiver_text_limit = receiver_text_limit

    def collect_function(
        self,
        caller_id: str,
        file: str,
        function: SyntaxNode,
        self_type: Optional[str] = None,
    ) -> EdgeCollection:
        """Build the function's type scope and collect its body's calls."""
        body = function.child_by_field("body")
        if body is None:
            return EdgeCollection()
        scope = build_scope(function, self_type)
        return self.collect(caller_id, file, body, scope)

    def collect(
        self,
        caller_id: str,
        file: str,
        body: SyntaxNode,
        scope: Optional[TypeScope],
    ) -> EdgeCollection:
        result = EdgeCollection()
        stack = [body]
        while stack:
            node = stack.pop()
            if node is not body and node.kind in _OPAQUE_KINDS:
                continue
            if node.kind == "let_declaration" and scope is not None:
                process_let_declaration(node, scope, self.registry)
            elif node.kind == "call_expression":
                self._visit_call(node, caller_id, file, scope, result)
            stack.extend(reversed(node.children))
        return result

    # ------------------------------------------------------------------
    # Call handling
    # ------------------------------------------------------------------

    def _visit_call(
        self,
        call: SyntaxNode,
        caller_id: str,
        file: str,
        scope: Optional[TypeScope],
        result: EdgeCollection,
    ) -> None:
        function = call.child_by_field("function")
        if function is not None and function.kind == "generic_function":
            function = function.child_by_field("function")
        if function is None:
            return

        if function.kind == "identifier":
            result.edges.append(CallEdge(
                from_id=caller_id, to=function.text, file=file,
                line=call.start_line, context=call_context(call),
            ))
        elif function.kind == "scoped_identifier":
            result.edges.append(CallEdge(
                from_id=caller_id,
                to=self._qualified_target(function, scope),
                file=file,
                line=call.start_line,
                context=call_context(call),
            ))
        elif function.kind == "field_expression":
            self._visit_method_call(call, function, caller_id, file, scope, result)
        else:
            logger.debug("Skipping call through %s at %s:%d", function.kind, file, call.start_line)

    def _visit_method_call(
        self,
        call: SyntaxNode,
        function: SyntaxNode,
        caller_id: str,
        file: str,
        scope: Optional[TypeScope],
        result: EdgeCollection,
    ) -> None:
        receiver = function.child_by_field("value")
        method_node = function.child_by_field("field")
        if receiver is None or method_node is None:
            return
        method = method_node.text
        line = method_node.start_line

        resolution = resolve_receiver(receiver, scope, self.registry)
        if resolution.type_name is not None:
            result.edges.append(CallEdge(
                from_id=caller_id,
                to=f"{resolution.type_name}::{method}",
                file=file,
                line=line,
                context=call_context(call),
                typed=True,
            ))
            return

        result.unresolved.append(UnresolvedEdge(
            from_id=caller_id,
            file=file,
            line=line,
            receiver_type=resolution.partial_type,
            receiver_text=self._truncate(receiver.text),
            method=method,
            reason=resolution.reason,
        ))

    @staticmethod
    def _qualified_target(function: SyntaxNode, scope: Optional[TypeScope]) -> str:
        name = _path_text(function)
        self_type = scope.self_type if scope is not None else None
        if self_type and (name == "Self" or name.startswith("Self::")):
            name = self_type + name[len("Self"):]
        return name

    def _truncate(self, text: str) -> str:
        text = _WS_RE.sub(" ", text).strip()
        if len(text) > self.receiver_text_limit:
            return text[: self.receiver_text_limit] + "..."
        return text


def _path_text(path: SyntaxNode) -> str:
    """Callee path without generics; ``<Foo as Trait>::run`` -> ``Foo::run``."""
    if path.kind == "bracketed_type":
        inner = next(iter(path.named_children), None)
        if inner is not None and inner.kind == "qualified_type":
            inner = inner.child_by_field("type")
        if inner is None:
            return strip_generics(path.text)
        return base_type_name(inner.text) or strip_generics(inner.text)
    if path.kind == "scoped_identifier":
        prefix = path.child_by_field("path")
        name = path.child_by_field("name")
        if prefix is not None and name is not None:
            return f"{_path_text(prefix)}::{name.text}"
    return strip_generics(path.text)
