"""Classify a call site by the innermost control construct around it."""

from __future__ import annotations

from typing import Optional

from .models import NORMAL_CONTEXT, CallContext, ContextKind
from .syntax import SyntaxNode, field_text, is_field_of

_FUNCTION_BOUNDARIES = frozenset({"function_item", "source_file"})


def call_context(call: SyntaxNode) -> CallContext:
    """Walk outward from *call* and tag it with the first enclosing construct.

    Only the "active" side counts: a call in an ``if`` condition or a ``for``
    iterable is not inside that construct's branch and keeps walking.
    """
    child = call
    for ancestor in call.ancestors():
        if ancestor.kind in _FUNCTION_BOUNDARIES:
            break
        context = _classify(ancestor, child)
        if context is not None:
            return context
        child = ancestor
    return NORMAL_CONTEXT


def _classify(node: SyntaxNode, child: SyntaxNode) -> Optional[CallContext]:
    kind = node.kind

    if kind == "if_expression":
        condition = field_text(node, "condition")
        if is_field_of(node, "consequence", child):
            return CallContext(ContextKind.IF, condition=condition)
        if is_field_of(node, "alternative", child):
            return CallContext(ContextKind.ELSE, condition=condition)
        return None

    if kind == "match_arm":
        return CallContext(ContextKind.MATCH_ARM, arm_pattern=field_text(node, "pattern"))

    if kind == "loop_expression":
        return CallContext(ContextKind.LOOP) if is_field_of(node, "body", child) else None

    if kind == "while_expression":
        if is_field_of(node, "body", child):
            return CallContext(ContextKind.WHILE, condition=field_text(node, "condition"))
        return None

    if kind == "for_expression":
        if is_field_of(node, "body", child):
            pattern = field_text(node, "pattern") or "_"
            iterable = field_text(node, "value") or ""
            return CallContext(ContextKind.FOR, condition=f"{pattern} in {iterable}".strip())
        return None

    return None
