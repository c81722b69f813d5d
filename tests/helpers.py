"""Hand-built syntax nodes for tests that do not need a real parser."""

from typing import Dict, List, Optional, Sequence

from callscope.models import CallEdge, CodeItem, ItemKind
from callscope.syntax import SyntaxNode


class FakeNode(SyntaxNode):
    """Minimal in-memory implementation of the node interface."""

    def __init__(
        self,
        kind: str,
        text: str = "",
        children: Sequence["FakeNode"] = (),
        fields: Optional[Dict[str, List["FakeNode"]]] = None,
        line: int = 1,
        end_line: Optional[int] = None,
        named: bool = True,
    ) -> None:
        self._kind = kind
        self._children = list(children)
        self._fields = fields or {}
        for nodes in self._fields.values():
            for n in nodes:
                if not any(n is c for c in self._children):
                    self._children.append(n)
        self._text = text or " ".join(c.text for c in self._children)
        self._line = line
        self._end_line = end_line if end_line is not None else line
        self._named = named
        self._parent: Optional[FakeNode] = None
        for child in self._children:
            child._parent = self

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def text(self) -> str:
        return self._text

    @property
    def start_line(self) -> int:
        return self._line

    @property
    def end_line(self) -> int:
        return self._end_line

    @property
    def is_named(self) -> bool:
        return self._named

    @property
    def children(self) -> List[SyntaxNode]:
        return list(self._children)

    @property
    def parent(self) -> Optional[SyntaxNode]:
        return self._parent

    @property
    def prev_named_sibling(self) -> Optional[SyntaxNode]:
        if self._parent is None:
            return None
        previous = None
        for sibling in self._parent._children:
            if sibling is self:
                return previous
            if sibling.is_named:
                previous = sibling
        return None

    def child_by_field(self, name: str) -> Optional[SyntaxNode]:
        nodes = self._fields.get(name)
        return nodes[0] if nodes else None

    def children_by_field(self, name: str) -> List[SyntaxNode]:
        return list(self._fields.get(name, []))

    def __repr__(self) -> str:
        return f"FakeNode({self._kind!r}, {self._text!r})"


def node(kind: str, text: str = "", *children: FakeNode, line: int = 1, **fields: FakeNode) -> FakeNode:
    """``node("field_expression", value=..., field=...)``; fields also become children."""
    return FakeNode(
        kind,
        text,
        children=children,
        fields={name: [value] for name, value in fields.items() if value is not None},
        line=line,
    )


def ident(name: str, line: int = 1) -> FakeNode:
    return FakeNode("identifier", name, line=line)


def self_node(line: int = 1) -> FakeNode:
    return FakeNode("self", "self", line=line)


def field_expr(value: FakeNode, field: str, line: int = 1) -> FakeNode:
    return node(
        "field_expression", f"{value.text}.{field}",
        line=line, value=value, field=FakeNode("field_identifier", field, line=line),
    )


def scoped(path: str, name: str, line: int = 1) -> FakeNode:
    return node(
        "scoped_identifier", f"{path}::{name}",
        line=line, path=FakeNode("identifier", path, line=line), name=ident(name, line),
    )


def call(function: FakeNode, line: int = 1) -> FakeNode:
    args = FakeNode("arguments", "()", line=line)
    return node("call_expression", f"{function.text}()", line=line, function=function, arguments=args)


def method_call(receiver: FakeNode, method: str, line: int = 1) -> FakeNode:
    return call(field_expr(receiver, method, line=line), line=line)


def let_decl(
    name: str,
    type_name: Optional[str] = None,
    value: Optional[FakeNode] = None,
    line: int = 1,
) -> FakeNode:
    type_node = FakeNode("type_identifier", type_name, line=line) if type_name else None
    return node("let_declaration", "", line=line, pattern=ident(name, line), type=type_node, value=value)


def stmt(expr: FakeNode) -> FakeNode:
    return FakeNode("expression_statement", expr.text + ";", children=[expr], line=expr.start_line)


def block(*statements: FakeNode, line: int = 1) -> FakeNode:
    return FakeNode("block", "{ }", children=list(statements), line=line)


def function_item(name: str, body: FakeNode, params: Optional[FakeNode] = None, line: int = 1) -> FakeNode:
    params = params or FakeNode("parameters", "()", line=line)
    return node("function_item", f"fn {name}", line=line, name=ident(name, line), parameters=params, body=body)


def item(item_id: str, kind: ItemKind = ItemKind.FUNCTION, owner: Optional[str] = None,
         file: Optional[str] = None, line: int = 1) -> CodeItem:
    """A CodeItem whose name, file and owner are consistent with *item_id*."""
    parts = item_id.split("::")
    return CodeItem(
        id=item_id,
        kind=kind,
        name=parts[-2],
        file=file or parts[0],
        line_start=line,
        line_end=line,
        owner=owner,
    )


def edge(source: str, target: str, line: int = 1, file: str = "src/lib.rs") -> CallEdge:
    return CallEdge(from_id=source, to=target, file=file, line=line)
