"""Two-phase analysis pipeline producing an immutable :class:`GraphSnapshot`.

Phase 1 extracts entities from every file and fills the type registry; the
registry is then frozen.  Phase 2 collects call edges for every function body
against the frozen registry, resolves them by name and builds the callers
index.  Phase 2 never starts before phase 1 has finished for all files.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import analytics
from .call_edges import CallEdgeCollector, EdgeCollection
from .callers import CallersIndex, build_index, get_callers, get_callers_tree, impact_analysis
from .config_manager import AnalysisSettings
from .edge_resolver import NameIndex, build_name_index, resolve_edges
from .extractor import FileExtraction, extract_entities
from .models import CALLABLE_KINDS, Caller, CallEdge, CallersTreeNode, CodeItem, ImpactResult, ItemKind, UnresolvedEdge
from .parser import SKIP_DIRS, RustParser, iter_source_files
from .sequence import DepthConfig, FunctionDepthSetting, SequenceDiagram, build_function_depth_settings, generate_sequence
from .syntax import SyntaxNode
from .type_registry import TypeRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphSnapshot:
    """Everything one analysis run produced.  Queries never mutate it."""

    items: Tuple[CodeItem, ...]
    edges: Tuple[CallEdge, ...]
    test_edges: Tuple[CallEdge, ...]
    unresolved: Tuple[UnresolvedEdge, ...]
    external: Tuple[CallEdge, ...]
    tests_by_target: Mapping[str, Tuple[str, ...]]
    callers_index: CallersIndex
    name_index: NameIndex
    settings: AnalysisSettings = field(default_factory=AnalysisSettings)
    files: Tuple[str, ...] = ()

    @property
    def items_by_id(self) -> Dict[str, CodeItem]:
        return {item.id: item for item in self.items}

    @property
    def node_ids(self) -> List[str]:
        return analytics.callable_node_ids(self.items)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_items(self, query: str) -> List[CodeItem]:
        """Entities matching an id, a ``Owner::name`` or a plain name."""
        by_id = self.items_by_id
        if query in by_id:
            return [by_id[query]]
        resolved = self.name_index.resolve(query)
        if resolved is not None and resolved in by_id:
            return [by_id[resolved]]
        return [
            item for item in self.items
            if item.kind in CALLABLE_KINDS and (item.qualified_name == query or item.name == query)
        ]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def callers(self, target_id: str) -> List[Caller]:
        return get_callers(self.callers_index, target_id)

    def callers_tree(self, target_id: str, max_depth: Optional[int] = None) -> CallersTreeNode:
        depth = self.settings.max_depth if max_depth is None else max_depth
        return get_callers_tree(self.callers_index, target_id, depth)

    def impact(
        self,
        target_id: str,
        max_depth: Optional[int] = None,
        include_tests: Optional[bool] = None,
    ) -> ImpactResult:
        return impact_analysis(
            self.callers_index,
            target_id,
            items=self.items_by_id,
            tests_by_target=self.tests_by_target,
            max_depth=self.settings.max_depth if max_depth is None else max_depth,
            include_tests=self.settings.include_tests if include_tests is None else include_tests,
        )

    def metrics(self) -> analytics.GraphMetrics:
        return analytics.calculate_metrics(self.node_ids, self.edges)

    def centrality(self) -> Dict[str, float]:
        return analytics.calculate_centrality(self.node_ids, self.edges)

    def critical_paths(self) -> List[List[str]]:
        return analytics.find_critical_paths(self.node_ids, self.edges)

    def clusters(self) -> List[analytics.Cluster]:
        return analytics.cluster_by_directory(i for i in self.items if i.kind in CALLABLE_KINDS)

    def sequence(
        self,
        root_id: str,
        function_depths: Optional[Mapping[str, int]] = None,
        default_depth: Optional[int] = None,
    ) -> SequenceDiagram:
        config = DepthConfig(
            default_depth=self.settings.sequence_default_depth if default_depth is None else default_depth,
            function_depths=dict(function_depths or {}),
        )
        return generate_sequence(self.edges, root_id, config)

    def depth_settings(self, root_id: str) -> List[FunctionDepthSetting]:
        return build_function_depth_settings(self.edges, root_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": list(self.files),
            "items": [item.to_dict() for item in self.items],
            "edges": [edge.to_dict() for edge in self.edges],
            "test_edges": [edge.to_dict() for edge in self.test_edges],
            "unresolved": [edge.to_dict() for edge in self.unresolved],
            "external_count": len(self.external),
            "tests_by_target": {k: list(v) for k, v in sorted(self.tests_by_target.items())},
            "callers_index": {
                "node_count": self.callers_index.node_count,
                "edge_count": self.callers_index.edge_count,
            },
        }


class ProjectAnalyzer:
    """Runs the pipeline over a directory or an in-memory set of sources."""

    def __init__(
        self,
        settings: Optional[AnalysisSettings] = None,
        parser: Optional[RustParser] = None,
    ) -> None:
        self.settings = settings or AnalysisSettings()
        self._parser = parser

    @property
    def parser(self) -> RustParser:
        if self._parser is None:
            self._parser = RustParser()
        return self._parser

    def analyze(self, root: Path) -> GraphSnapshot:
        """Analyze every ``.rs`` file under *root*; ids use root-relative paths."""
        root = root.resolve()
        skip = SKIP_DIRS | set(self.settings.extra_skip_dirs)
        trees: List[Tuple[str, SyntaxNode]] = []
        for file_path in iter_source_files(root, skip):
            tree = self.parser.parse_file(file_path)
            if tree is None:
                continue
            trees.append((file_path.relative_to(root).as_posix(), tree))
        logger.info("Parsed %d Rust files under %s", len(trees), root)
        return self.analyze_trees(trees)

    def analyze_sources(self, sources: Mapping[str, str]) -> GraphSnapshot:
        """Analyze ``{relative path: source}``; paths are processed sorted."""
        trees = [(path, self.parser.parse(sources[path])) for path in sorted(sources)]
        return self.analyze_trees(trees)

    def analyze_trees(self, trees: Sequence[Tuple[str, SyntaxNode]]) -> GraphSnapshot:
        # Phase 1: entities and types for the whole project
        extractions: List[FileExtraction] = [extract_entities(root, file) for file, root in trees]
        items = [item for extraction in extractions for item in extraction.items]
        registry = TypeRegistry.build(items)

        # Phase 2: edges against the frozen registry
        collector = CallEdgeCollector(registry, self.settings.receiver_text_limit)
        collected = EdgeCollection()
        for extraction in extractions:
            for site in extraction.sites:
                collected.extend(
                    collector.collect_function(site.item.id, site.item.file, site.node, site.self_type)
                )

        name_index = build_name_index(items)
        resolved, external = resolve_edges(collected.edges, name_index)
        test_ids = {item.id for item in items if item.kind is ItemKind.TEST}
        graph_edges = [e for e in resolved if e.from_id not in test_ids]
        test_edges = [e for e in resolved if e.from_id in test_ids]

        items_by_id = {item.id: item for item in items}
        snapshot = GraphSnapshot(
            items=tuple(items),
            edges=tuple(graph_edges),
            test_edges=tuple(test_edges),
            unresolved=tuple(collected.unresolved),
            external=tuple(external),
            tests_by_target=_link_tests(test_edges),
            callers_index=build_index(graph_edges, items_by_id),
            name_index=name_index,
            settings=self.settings,
            files=tuple(file for file, _ in trees),
        )
        logger.info(
            "Analysis complete: %d items, %d edges, %d test links, %d unresolved, %d external",
            len(items), len(graph_edges), len(test_edges), len(collected.unresolved), len(external),
        )
        return snapshot


def _link_tests(test_edges: Iterable[CallEdge]) -> Dict[str, Tuple[str, ...]]:
    """target id -> ids of tests that call it directly, first-seen order."""
    linked: Dict[str, List[str]] = {}
    for edge in test_edges:
        tests = linked.setdefault(edge.to, [])
        if edge.from_id not in tests:
            tests.append(edge.from_id)
    return {target: tuple(tests) for target, tests in linked.items()}


def analyze_sources(sources: Mapping[str, str], settings: Optional[AnalysisSettings] = None) -> GraphSnapshot:
    return ProjectAnalyzer(settings).analyze_sources(sources)


def analyze_project(root: Path, settings: Optional[AnalysisSettings] = None) -> GraphSnapshot:
    return ProjectAnalyzer(settings).analyze(root)
