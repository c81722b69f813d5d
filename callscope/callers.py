"""Reverse call index ("who calls this") and transitive impact analysis."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .models import Caller, CallEdge, CallersTreeNode, CallSite, CodeItem, ImpactResult, TestInfo

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


@dataclass
class CallersIndex:
    called_by: Dict[str, List[Caller]] = field(default_factory=dict)
    built_at: str = ""
    node_count: int = 0
    edge_count: int = 0


def name_from_id(item_id: str) -> str:
    """``src/a.rs::Foo::run::method`` -> ``run``."""
    parts = item_id.split("::")
    return parts[-2] if len(parts) >= 2 else item_id


def file_from_id(item_id: str) -> str:
    return item_id.split("::", 1)[0]


def build_index(edges: Iterable[CallEdge], items: Mapping[str, CodeItem]) -> CallersIndex:
    """Group resolved *edges* by target.

    Each caller records its own declaration file/line plus the call site,
    which is usually a different line.  Edges from unknown callers are skipped.
    """
    called_by: Dict[str, List[Caller]] = {}
    edge_count = 0
    for edge in edges:
        caller_item = items.get(edge.from_id)
        if caller_item is None:
            continue
        called_by.setdefault(edge.to, []).append(Caller(
            id=edge.from_id,
            name=caller_item.name,
            file=caller_item.file,
            line=caller_item.line_start,
            call_site=CallSite(edge.file, edge.line),
        ))
        edge_count += 1
    return CallersIndex(
        called_by=called_by,
        built_at=datetime.now(timezone.utc).isoformat(),
        node_count=len(items),
        edge_count=edge_count,
    )


def get_callers(index: CallersIndex, target_id: str) -> List[Caller]:
    return list(index.called_by.get(target_id, []))


# ===================================================================
# Callers tree
# ===================================================================

def get_callers_tree(
    index: CallersIndex,
    target_id: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> CallersTreeNode:
    """Expand callers of callers up to *max_depth*.

    The visited set is per path: a node reachable through two different
    paths appears under both, while a cycle stops the path that closes it.
    """
    root = CallersTreeNode(
        caller=Caller(
            id=target_id,
            name=name_from_id(target_id),
            file="",
            line=0,
            call_site=CallSite("", 0),
        ),
        depth=0,
        is_expanded=True,
    )
    for caller in get_callers(index, target_id):
        root.children.append(_tree_node(index, caller, 1, max_depth, frozenset()))
    return root


def _tree_node(
    index: CallersIndex,
    caller: Caller,
    depth: int,
    max_depth: int,
    path: FrozenSet[str],
) -> CallersTreeNode:
    node = CallersTreeNode(caller=caller, depth=depth, is_expanded=depth < 2)
    if depth >= max_depth or caller.id in path:
        return node
    on_path = path | {caller.id}
    for next_caller in get_callers(index, caller.id):
        node.children.append(_tree_node(index, next_caller, depth + 1, max_depth, on_path))
    return node


# ===================================================================
# Impact analysis
# ===================================================================

def impact_analysis(
    index: CallersIndex,
    target_id: str,
    items: Optional[Mapping[str, CodeItem]] = None,
    tests_by_target: Optional[Mapping[str, Sequence[str]]] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    include_tests: bool = True,
) -> ImpactResult:
    """Breadth-first transitive callers of *target_id*.

    Level 0 holds the direct callers, level k the callers k hops out.  Every
    entity appears once, at the level where it is first reached.  A caller
    that was already visited signals a cycle and is recorded in
    ``cycle_nodes``; that edge is not explored further.
    """
    items = items or {}
    target_item = items.get(target_id)
    result = ImpactResult(
        target_id=target_id,
        target_name=target_item.name if target_item else target_id,
    )

    visited: Set[str] = {target_id}
    queue: Deque[Tuple[str, int]] = deque([(target_id, 0)])
    while queue:
        current, depth = queue.popleft()
        if depth >= max_depth:
            continue
        for caller in index.called_by.get(current, []):
            if caller.id in visited:
                if caller.id not in result.cycle_nodes:
                    result.cycle_nodes.append(caller.id)
                continue
            visited.add(caller.id)
            if depth == 0:
                result.direct_impact.append(caller)
            else:
                result.indirect_impact.setdefault(depth, []).append(caller)
            queue.append((caller.id, depth + 1))

    if include_tests and tests_by_target is not None:
        _attach_tests(result, items, tests_by_target)

    if result.has_cycle:
        logger.debug("Impact of %s contains cycles through %s", target_id, result.cycle_nodes)
    return result


def _attach_tests(
    result: ImpactResult,
    items: Mapping[str, CodeItem],
    tests_by_target: Mapping[str, Sequence[str]],
) -> None:
    seen: Set[str] = set()
    for test_id in tests_by_target.get(result.target_id, []):
        if test_id not in seen:
            seen.add(test_id)
            result.direct_tests.append(_test_info(test_id, result.target_id, items, True))

    for item_id in result.affected_ids():
        for test_id in tests_by_target.get(item_id, []):
            if test_id not in seen:
                seen.add(test_id)
                result.indirect_tests.append(_test_info(test_id, item_id, items, False))


def _test_info(test_id: str, source: str, items: Mapping[str, CodeItem], direct: bool) -> TestInfo:
    test_item = items.get(test_id)
    return TestInfo(
        id=test_id,
        name=test_item.name if test_item else name_from_id(test_id),
        file=file_from_id(test_id),
        line=test_item.line_start if test_item else 0,
        source_item=source,
        is_direct=direct,
    )
