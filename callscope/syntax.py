"""Minimal syntax-node capability interface and its tree-sitter adapter.

Every traversal component (extractor, scope builder, receiver resolver,
control-flow tagger and edge collector) only talks to :class:`SyntaxNode`:
a kind tag, field-by-name child access, ordered children and a source span.
:class:`TreeSitterNode` implements it over ``tree_sitter.Node``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterator, List, Optional


class SyntaxNode(ABC):
    """Read-only view of one node of a concrete syntax tree."""

    @property
    @abstractmethod
    def kind(self) -> str:
        """Grammar node type, e.g. ``call_expression``."""

    @property
    @abstractmethod
    def text(self) -> str:
        """Source text covered by the node."""

    @property
    @abstractmethod
    def start_line(self) -> int:
        """1-based first line."""

    @property
    @abstractmethod
    def end_line(self) -> int:
        """1-based last line."""

    @property
    @abstractmethod
    def is_named(self) -> bool:
        ...

    @property
    @abstractmethod
    def children(self) -> List["SyntaxNode"]:
        ...

    @property
    @abstractmethod
    def parent(self) -> Optional["SyntaxNode"]:
        ...

    @property
    @abstractmethod
    def prev_named_sibling(self) -> Optional["SyntaxNode"]:
        ...

    @abstractmethod
    def child_by_field(self, name: str) -> Optional["SyntaxNode"]:
        ...

    @abstractmethod
    def children_by_field(self, name: str) -> List["SyntaxNode"]:
        ...

    @property
    def named_children(self) -> List["SyntaxNode"]:
        return [c for c in self.children if c.is_named]

    def ancestors(self) -> Iterator["SyntaxNode"]:
        """Yield parents from the innermost outwards."""
        current = self.parent
        while current is not None:
            yield current
            current = current.parent


class TreeSitterNode(SyntaxNode):
    """Adapter over a ``tree_sitter.Node``."""

    __slots__ = ("_node",)

    def __init__(self, node: Any) -> None:
        self._node = node

    @property
    def raw(self) -> Any:
        return self._node

    @property
    def kind(self) -> str:
        return self._node.type

    @property
    def text(self) -> str:
        raw = self._node.text
        return raw.decode("utf-8", errors="replace") if raw is not None else ""

    @property
    def start_line(self) -> int:
        return self._node.start_point[0] + 1

    @property
    def end_line(self) -> int:
        return self._node.end_point[0] + 1

    @property
    def is_named(self) -> bool:
        return self._node.is_named

    @property
    def children(self) -> List[SyntaxNode]:
        return [TreeSitterNode(c) for c in self._node.children]

    @property
    def parent(self) -> Optional[SyntaxNode]:
        return _wrap(self._node.parent)

    @property
    def prev_named_sibling(self) -> Optional[SyntaxNode]:
        return _wrap(self._node.prev_named_sibling)

    def child_by_field(self, name: str) -> Optional[SyntaxNode]:
        return _wrap(self._node.child_by_field_name(name))

    def children_by_field(self, name: str) -> List[SyntaxNode]:
        return [TreeSitterNode(c) for c in self._node.children_by_field_name(name)]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TreeSitterNode):
            return NotImplemented
        return self._node == other._node

    def __hash__(self) -> int:
        return hash((self._node.type, self._node.start_byte, self._node.end_byte))

    def __repr__(self) -> str:
        return f"TreeSitterNode({self.kind}@{self.start_line})"


def _wrap(node: Any) -> Optional[SyntaxNode]:
    return TreeSitterNode(node) if node is not None else None


# ===================================================================
# Shared helpers
# ===================================================================

def field_text(node: SyntaxNode, name: str) -> Optional[str]:
    """Return the text of child field *name*, or None when absent."""
    child = node.child_by_field(name)
    return child.text if child is not None else None


def is_field_of(parent: SyntaxNode, name: str, child: SyntaxNode) -> bool:
    """True when *child* is the node stored under field *name* of *parent*."""
    return any(c == child for c in parent.children_by_field(name))


def walk_preorder(node: SyntaxNode) -> Iterator[SyntaxNode]:
    """Depth-first, pre-order iteration over *node* and its descendants."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))
