"""Graph export helpers for DOT and JSON outputs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List

from .analysis import GraphSnapshot
from .models import CALLABLE_KINDS, CallEdge, CodeItem


def export_dot(snapshot: GraphSnapshot, output_file: Path, focus: str = "") -> None:
    nodes = {item.id: item for item in snapshot.items if item.kind in CALLABLE_KINDS}
    selected = _focused_subgraph(nodes, list(snapshot.edges), focus)

    lines = ["digraph CallGraph {"]
    lines.append("  rankdir=LR;")

    for node_id in selected["nodes"]:
        item = nodes[node_id]
        label = f"{item.kind.value}\\n{item.qualified_name}"
        lines.append(f'  "{_esc(node_id)}" [label="{_esc(label)}"];')

    for edge in selected["edges"]:
        if edge.from_id not in nodes or edge.to not in nodes:
            continue
        attrs = "" if edge.context.is_normal else f' [label="{_esc(edge.context.kind.value)}"]'
        lines.append(f'  "{_esc(edge.from_id)}" -> "{_esc(edge.to)}"{attrs};')

    lines.append("}")
    output_file.write_text("\n".join(lines) + "\n", encoding="utf-8")


def export_json(snapshot: GraphSnapshot, output_file: Path) -> None:
    """Full snapshot as JSON: items, edges, test links and diagnostics."""
    output_file.write_text(json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8")


def _focused_subgraph(nodes: Dict[str, CodeItem], edges: List[CallEdge], focus: str) -> Dict[str, List]:
    if not focus:
        return {"nodes": list(nodes.keys()), "edges": edges}

    focus_ids = {
        node_id
        for node_id, item in nodes.items()
        if focus in node_id or focus == item.name or focus == item.qualified_name
    }

    if not focus_ids:
        return {"nodes": list(nodes.keys()), "edges": edges}

    edge_subset = [e for e in edges if e.from_id in focus_ids or e.to in focus_ids]
    node_subset = set(focus_ids)
    for e in edge_subset:
        if e.from_id in nodes:
            node_subset.add(e.from_id)
        if e.to in nodes:
            node_subset.add(e.to)
    return {"nodes": sorted(node_subset), "edges": edge_subset}


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
