"""Map raw call targets (``Bar::compute``, ``helper``) to entity ids."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import CallEdge, CodeItem, ItemKind

logger = logging.getLogger(__name__)

_PATH_KEYWORDS = ("crate", "self", "super")


class NameIndex:
    """Lookup keys -> entity id.

    Free functions are keyed by plain name and by ``<module>::name`` (the
    inline module, or the file stem at top level); methods only by
    ``Owner::name``.  A later entity with the same key replaces an earlier one.
    """

    def __init__(self) -> None:
        self.keys: Dict[str, str] = {}
        self.ids: Set[str] = set()

    @classmethod
    def build(cls, items: Iterable[CodeItem]) -> "NameIndex":
        index = cls()
        for item in items:
            index.add(item)
        return index

    def add(self, item: CodeItem) -> None:
        if item.kind is ItemKind.METHOD and item.owner:
            self.ids.add(item.id)
            self.keys[f"{item.owner}::{item.name}"] = item.id
        elif item.kind is ItemKind.FUNCTION:
            self.ids.add(item.id)
            self.keys[item.name] = item.id
            self.keys[f"{_module_of(item)}::{item.name}"] = item.id

    def resolve(self, raw: str) -> Optional[str]:
        """Exact id, exact key, then the last two ``::`` segments."""
        if raw in self.ids:
            return raw
        found = self.keys.get(raw)
        if found is not None:
            return found
        segments = raw.split("::")
        while len(segments) > 1 and segments[0] in _PATH_KEYWORDS:
            segments = segments[1:]
            found = self.keys.get("::".join(segments))
            if found is not None:
                return found
        if len(segments) > 2:
            return self.keys.get("::".join(segments[-2:]))
        return None


def _module_of(item: CodeItem) -> str:
    enclosing = item.id.split("::")[1:-2]
    if enclosing:
        return enclosing[-1]
    return PurePosixPath(item.file).stem


def build_name_index(items: Iterable[CodeItem]) -> NameIndex:
    return NameIndex.build(items)


def resolve_edges(edges: Iterable[CallEdge], index: NameIndex) -> Tuple[List[CallEdge], List[CallEdge]]:
    """Split *edges* into (resolved, external).

    Resolved edges carry the target entity id in ``to``; external ones are
    calls into code outside the project and are not graph edges.
    """
    resolved: List[CallEdge] = []
    external: List[CallEdge] = []
    for edge in edges:
        target = index.resolve(edge.to)
        if target is None:
            external.append(edge)
        else:
            resolved.append(edge.retarget(target))
    logger.debug("Resolved %d edges, %d external", len(resolved), len(external))
    return resolved, external
