"""Entity extraction: one Rust syntax tree -> flat inventory of ``CodeItem``.

Ids are derived only from the file path, the enclosing path (inline modules
and owning type), the name and the kind, so unchanged source always yields
the same ids, e.g.::

    src/battle.rs::BattleLoop::run::method
    src/util.rs::helper::fn
    src/util.rs::net::connect::fn          (inside ``mod net { .. }``)
    tests/it.rs::test_battle::test
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .models import CodeItem, ItemKind
from .syntax import SyntaxNode, field_text
from .type_registry import base_type_name

logger = logging.getLogger(__name__)

_TEST_ATTR_RE = re.compile(r"^#\[\s*(?:[\w:]+::)?test\b")


@dataclass(frozen=True)
class FunctionSite:
    """A function or method with a body, queued for edge collection."""

    item: CodeItem
    node: SyntaxNode
    self_type: Optional[str] = None


@dataclass
class FileExtraction:
    file: str
    items: List[CodeItem] = field(default_factory=list)
    sites: List[FunctionSite] = field(default_factory=list)

    @property
    def tests(self) -> List[CodeItem]:
        return [i for i in self.items if i.kind is ItemKind.TEST]


class EntityExtractor:
    """Walks top-level items, ``impl``/``trait`` bodies and inline modules."""

    def __init__(self, file: str) -> None:
        self.file = file
        self._result = FileExtraction(file=file)
        self._seen: Dict[str, int] = {}

    def extract(self, root: SyntaxNode) -> FileExtraction:
        self._walk(root, path=[], owner=None)
        return self._result

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    def _walk(self, container: SyntaxNode, path: List[str], owner: Optional[str]) -> None:
        for child in container.named_children:
            kind = child.kind
            if kind in ("function_item", "function_signature_item"):
                self._function(child, path, owner)
            elif kind == "struct_item":
                self._struct(child, path)
            elif kind == "enum_item":
                self._enum(child, path)
            elif kind == "trait_item":
                self._trait(child, path)
            elif kind == "impl_item":
                self._impl(child, path)
            elif kind == "mod_item":
                self._module(child, path)
            elif kind in ("const_item", "static_item"):
                self._simple(child, ItemKind.CONST, path, owner)
            elif kind == "type_item":
                self._simple(child, ItemKind.TYPE_ALIAS, path, owner)

    def _function(self, node: SyntaxNode, path: List[str], owner: Optional[str]) -> None:
        name = field_text(node, "name")
        if not name:
            return
        attributes = _attributes(node)
        if any(_TEST_ATTR_RE.match(a) for a in attributes):
            kind = ItemKind.TEST
            segments = [name]
            owner = None
        elif owner is not None:
            kind = ItemKind.METHOD
            segments = path + [owner, name]
        else:
            kind = ItemKind.FUNCTION
            segments = path + [name]

        return_type = base_type_name(field_text(node, "return_type"))
        if return_type == "Self":
            return_type = owner

        item = self._add(
            node, kind, name, segments,
            owner=owner,
            signature=_signature(node),
            return_type=return_type,
        )
        if node.kind == "function_item" and node.child_by_field("body") is not None:
            self._result.sites.append(FunctionSite(item=item, node=node, self_type=owner))

    def _struct(self, node: SyntaxNode, path: List[str]) -> None:
        name = field_text(node, "name")
        if not name:
            return
        self._add(
            node, ItemKind.STRUCT, name, path + [name],
            fields=_declared_fields(node.child_by_field("body")),
            signature=_header(node),
        )

    def _enum(self, node: SyntaxNode, path: List[str]) -> None:
        name = field_text(node, "name")
        if not name:
            return
        variants: List[Tuple[str, str]] = []
        body = node.child_by_field("body")
        if body is not None:
            for variant in body.named_children:
                if variant.kind != "enum_variant":
                    continue
                variant_name = field_text(variant, "name")
                if variant_name:
                    variants.append((variant_name, field_text(variant, "body") or ""))
        self._add(
            node, ItemKind.ENUM, name, path + [name],
            fields=tuple(variants), signature=_header(node),
        )

    def _trait(self, node: SyntaxNode, path: List[str]) -> None:
        name = field_text(node, "name")
        if not name:
            return
        self._add(node, ItemKind.TRAIT, name, path + [name], signature=_header(node))
        body = node.child_by_field("body")
        if body is not None:
            self._walk(body, path, owner=name)

    def _impl(self, node: SyntaxNode, path: List[str]) -> None:
        self_type = base_type_name(field_text(node, "type"))
        if not self_type:
            logger.debug("Skipping impl without a nameable type at %s:%d", self.file, node.start_line)
            return
        trait = base_type_name(field_text(node, "trait"))
        segments = path + [self_type, trait] if trait else path + [self_type]
        self._add(
            node, ItemKind.IMPL, trait or self_type, segments,
            owner=self_type, signature=_header(node),
        )
        body = node.child_by_field("body")
        if body is not None:
            self._walk(body, path, owner=self_type)

    def _module(self, node: SyntaxNode, path: List[str]) -> None:
        name = field_text(node, "name")
        if not name:
            return
        self._add(node, ItemKind.MODULE, name, path + [name], signature=_header(node))
        body = node.child_by_field("body")
        if body is not None:
            self._walk(body, path + [name], owner=None)

    def _simple(self, node: SyntaxNode, kind: ItemKind, path: List[str], owner: Optional[str]) -> None:
        name = field_text(node, "name")
        if not name:
            return
        segments = path + [owner, name] if owner else path + [name]
        self._add(node, kind, name, segments, owner=owner, signature=_first_line(node.text))

    # ------------------------------------------------------------------
    # Item construction
    # ------------------------------------------------------------------

    def _add(
        self,
        node: SyntaxNode,
        kind: ItemKind,
        name: str,
        segments: List[str],
        owner: Optional[str] = None,
        fields: Tuple[Tuple[str, str], ...] = (),
        signature: str = "",
        return_type: Optional[str] = None,
    ) -> CodeItem:
        item_id = "::".join([self.file] + segments + [kind.value])
        count = self._seen.get(item_id, 0) + 1
        self._seen[item_id] = count
        if count > 1:
            item_id = f"{item_id}#{count}"

        item = CodeItem(
            id=item_id,
            kind=kind,
            name=name,
            file=self.file,
            line_start=node.start_line,
            line_end=node.end_line,
            signature=signature,
            visibility=_visibility(node),
            owner=owner,
            fields=fields,
            return_type=return_type,
            doc=_doc_comment(node),
        )
        self._result.items.append(item)
        return item


def extract_entities(root: SyntaxNode, file: str) -> FileExtraction:
    return EntityExtractor(file).extract(root)


# ===================================================================
# Node helpers
# ===================================================================

def _visibility(node: SyntaxNode) -> str:
    for child in node.children:
        if child.kind == "visibility_modifier":
            text = child.text
            return "pub(crate)" if "crate" in text else text.replace(" ", "")
    return "private"


def _signature(node: SyntaxNode) -> str:
    """Everything before the body, e.g. ``pub fn run(&mut self) -> u32``."""
    return _text_before(node, node.child_by_field("body"))


def _header(node: SyntaxNode) -> str:
    body = node.child_by_field("body")
    if body is not None and body.kind == "ordered_field_declaration_list":
        return _collapse(node.text).rstrip(";")
    return _text_before(node, body)


def _text_before(node: SyntaxNode, body: Optional[SyntaxNode]) -> str:
    text = node.text
    if body is not None and text.endswith(body.text):
        text = text[: len(text) - len(body.text)]
    return _collapse(text).rstrip(";").strip()


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _first_line(text: str) -> str:
    return text.splitlines()[0].strip() if text else ""


def _declared_fields(body: Optional[SyntaxNode]) -> Tuple[Tuple[str, str], ...]:
    if body is None:
        return ()
    if body.kind == "field_declaration_list":
        pairs = []
        for decl in body.named_children:
            if decl.kind != "field_declaration":
                continue
            name = field_text(decl, "name")
            type_text = field_text(decl, "type")
            if name and type_text:
                pairs.append((name, type_text))
        return tuple(pairs)
    if body.kind == "ordered_field_declaration_list":
        return tuple((str(i), t.text) for i, t in enumerate(body.children_by_field("type")))
    return ()


def _preceding_siblings(node: SyntaxNode) -> List[SyntaxNode]:
    """Attribute and comment siblings directly above *node*, nearest first."""
    found = []
    sibling = node.prev_named_sibling
    while sibling is not None and sibling.kind in ("attribute_item", "line_comment", "block_comment"):
        found.append(sibling)
        sibling = sibling.prev_named_sibling
    return found


def _attributes(node: SyntaxNode) -> List[str]:
    return [s.text for s in _preceding_siblings(node) if s.kind == "attribute_item"]


def _doc_comment(node: SyntaxNode) -> str:
    lines = []
    for sibling in _preceding_siblings(node):
        if sibling.kind != "line_comment":
            continue
        text = sibling.text.strip()
        if not text.startswith("///"):
            break
        lines.insert(0, text[3:].strip())
    return "\n".join(lines)
