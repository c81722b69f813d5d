"""Whole-graph analytics: degree centrality, critical paths, clustering, cycles."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import CALLABLE_KINDS, CallEdge, CodeItem

CRITICAL_PATH_DEPTH = 5
CRITICAL_PATH_LIMIT = 10
CENTRAL_FRACTION = 0.2
ROOT_CLUSTER = "root"


@dataclass
class Cluster:
    id: str
    label: str
    nodes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "nodes": list(self.nodes)}


@dataclass
class DegreeLeader:
    node_id: str = ""
    count: int = 0


@dataclass
class GraphMetrics:
    node_count: int = 0
    edge_count: int = 0
    avg_degree: float = 0.0
    max_in_degree: DegreeLeader = field(default_factory=DegreeLeader)
    max_out_degree: DegreeLeader = field(default_factory=DegreeLeader)
    isolated_nodes: List[str] = field(default_factory=list)
    cycle_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "avg_degree": self.avg_degree,
            "max_in_degree": {"node_id": self.max_in_degree.node_id, "count": self.max_in_degree.count},
            "max_out_degree": {"node_id": self.max_out_degree.node_id, "count": self.max_out_degree.count},
            "isolated_nodes": list(self.isolated_nodes),
            "cycle_count": self.cycle_count,
        }


def _pairs(edges: Iterable[CallEdge]) -> List[Tuple[str, str]]:
    return [(e.from_id, e.to) for e in edges]


def _adjacency(pairs: Sequence[Tuple[str, str]]) -> Dict[str, List[str]]:
    adjacency: Dict[str, List[str]] = {}
    for source, target in pairs:
        adjacency.setdefault(source, []).append(target)
    return adjacency


# ===================================================================
# Centrality
# ===================================================================

def calculate_centrality(node_ids: Sequence[str], edges: Iterable[CallEdge]) -> Dict[str, float]:
    """Degree (in + out) of every node, normalised by the maximum degree."""
    degree: Dict[str, int] = {node_id: 0 for node_id in node_ids}
    for source, target in _pairs(edges):
        degree[source] = degree.get(source, 0) + 1
        degree[target] = degree.get(target, 0) + 1
    top = max(max(degree.values(), default=0), 1)
    return {node_id: value / top for node_id, value in degree.items()}


# ===================================================================
# Critical paths
# ===================================================================

def find_critical_paths(
    node_ids: Sequence[str],
    edges: Iterable[CallEdge],
    max_depth: int = CRITICAL_PATH_DEPTH,
    limit: int = CRITICAL_PATH_LIMIT,
) -> List[List[str]]:
    """Long call paths through highly central nodes.

    The top 20% most central nodes are used as starting points; every simple
    path of at least two nodes ending at a leaf, a revisit or the depth limit
    is a candidate.  Candidates are ranked by length plus summed centrality.
    """
    edges = list(edges)
    centrality = calculate_centrality(node_ids, edges)
    adjacency = _adjacency(_pairs(edges))

    ranked = sorted(centrality.items(), key=lambda kv: -kv[1])
    start_count = max(1, math.ceil(len(node_ids) * CENTRAL_FRACTION))
    starts = [node_id for node_id, _ in ranked[:start_count]]

    paths: List[List[str]] = []
    for start in starts:
        _paths_from(start, adjacency, [], set(), paths, max_depth)

    def score(path: List[str]) -> float:
        return len(path) + sum(centrality.get(n, 0.0) for n in path)

    paths.sort(key=score, reverse=True)
    return paths[:limit]


def _paths_from(
    node: str,
    adjacency: Dict[str, List[str]],
    path: List[str],
    on_path: set,
    out: List[List[str]],
    max_depth: int,
) -> None:
    if node in on_path or len(path) >= max_depth:
        if len(path) >= 2:
            out.append(list(path))
        return

    on_path.add(node)
    path.append(node)
    neighbours = adjacency.get(node, [])
    if not neighbours:
        if len(path) >= 2:
            out.append(list(path))
    else:
        for neighbour in neighbours:
            _paths_from(neighbour, adjacency, path, on_path, out, max_depth)
    path.pop()
    on_path.discard(node)


# ===================================================================
# Clustering
# ===================================================================

def cluster_by_directory(items: Iterable[CodeItem]) -> List[Cluster]:
    """Group entity ids by the directory of their file, in first-seen order."""
    clusters: Dict[str, Cluster] = {}
    for item in items:
        directory = _directory_of(item.file)
        cluster = clusters.get(directory)
        if cluster is None:
            cluster = clusters[directory] = Cluster(id=directory, label=directory or ROOT_CLUSTER)
        cluster.nodes.append(item.id)
    return list(clusters.values())


def _directory_of(file: str) -> str:
    parts = file.replace("\\", "/").split("/")
    if len(parts) <= 1:
        return ROOT_CLUSTER
    return "/".join(parts[:-1])


# ===================================================================
# Metrics and cycles
# ===================================================================

def calculate_metrics(node_ids: Sequence[str], edges: Iterable[CallEdge]) -> GraphMetrics:
    pairs = _pairs(edges)
    in_degree: Dict[str, int] = {node_id: 0 for node_id in node_ids}
    out_degree: Dict[str, int] = {node_id: 0 for node_id in node_ids}
    for source, target in pairs:
        out_degree[source] = out_degree.get(source, 0) + 1
        in_degree[target] = in_degree.get(target, 0) + 1

    total = sum(in_degree.values()) + sum(out_degree.values())
    return GraphMetrics(
        node_count=len(node_ids),
        edge_count=len(pairs),
        avg_degree=total / len(node_ids) if node_ids else 0.0,
        max_in_degree=_leader(in_degree),
        max_out_degree=_leader(out_degree),
        isolated_nodes=[n for n in node_ids if in_degree.get(n, 0) == 0 and out_degree.get(n, 0) == 0],
        cycle_count=count_cycles(node_ids, pairs),
    )


def _leader(degrees: Dict[str, int]) -> DegreeLeader:
    leader = DegreeLeader()
    for node_id, count in degrees.items():
        if count > leader.count:
            leader = DegreeLeader(node_id, count)
    return leader


def count_cycles(node_ids: Sequence[str], pairs: Sequence[Tuple[str, str]]) -> int:
    """Number of strongly connected components that contain a cycle.

    A component counts when it has more than one node or a self-call.
    Iterative Tarjan, so deep call chains do not hit the recursion limit.
    """
    adjacency = _adjacency(pairs)
    self_loops = {s for s, t in pairs if s == t}
    order: List[str] = list(node_ids)
    seen_nodes = set(order)
    for source, target in pairs:
        for node in (source, target):
            if node not in seen_nodes:
                seen_nodes.add(node)
                order.append(node)

    index_of: Dict[str, int] = {}
    lowlink: Dict[str, int] = {}
    stack: List[str] = []
    on_stack: set = set()
    counter = 0
    cycles = 0

    for root in order:
        if root in index_of:
            continue
        work: List[Tuple[str, int]] = [(root, 0)]
        while work:
            node, child_pos = work.pop()
            if child_pos == 0:
                index_of[node] = lowlink[node] = counter
                counter += 1
                stack.append(node)
                on_stack.add(node)
            neighbours = adjacency.get(node, [])
            descended = False
            while child_pos < len(neighbours):
                neighbour = neighbours[child_pos]
                child_pos += 1
                if neighbour not in index_of:
                    work.append((node, child_pos))
                    work.append((neighbour, 0))
                    descended = True
                    break
                if neighbour in on_stack:
                    lowlink[node] = min(lowlink[node], index_of[neighbour])
            if descended:
                continue

            if lowlink[node] == index_of[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                if len(component) > 1 or node in self_loops:
                    cycles += 1
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
    return cycles


def callable_node_ids(items: Iterable[CodeItem], edges: Optional[Iterable[CallEdge]] = None) -> List[str]:
    """Ids of graph nodes: functions and methods in inventory order, then edge endpoints."""
    ids = [item.id for item in items if item.kind in CALLABLE_KINDS]
    if edges is not None:
        known = set(ids)
        for edge in edges:
            for node in (edge.from_id, edge.to):
                if node not in known:
                    known.add(node)
                    ids.append(node)
    return ids
