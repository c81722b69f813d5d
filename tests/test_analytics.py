"""Tests for graph metrics, centrality, critical paths and clustering."""

from callscope.analytics import (
    calculate_centrality,
    calculate_metrics,
    callable_node_ids,
    cluster_by_directory,
    count_cycles,
    find_critical_paths,
)
from callscope.models import ItemKind
from helpers import edge, item


class TestCentrality:
    def test_normalised_by_max_degree(self):
        edges = [edge("a", "hub"), edge("b", "hub"), edge("hub", "c")]
        centrality = calculate_centrality(["a", "b", "c", "hub", "lonely"], edges)

        assert centrality["hub"] == 1.0
        assert centrality["a"] == 1 / 3
        assert centrality["lonely"] == 0.0

    def test_empty_graph(self):
        assert calculate_centrality([], []) == {}
        assert calculate_centrality(["x"], []) == {"x": 0.0}


class TestCriticalPaths:
    def test_paths_start_at_central_nodes(self):
        edges = [edge("main", "run"), edge("run", "step"), edge("step", "tick"), edge("run", "log")]
        paths = find_critical_paths(["main", "run", "step", "tick", "log"], edges)

        assert paths
        assert paths[0][0] == "run"
        assert ["run", "step", "tick"] in paths
        assert all(len(p) >= 2 for p in paths)

    def test_cycles_do_not_loop_forever(self):
        edges = [edge("a", "b"), edge("b", "a")]
        paths = find_critical_paths(["a", "b"], edges, max_depth=5)
        assert ["a", "b"] in paths

    def test_limit(self):
        edges = [edge("hub", f"leaf{i}") for i in range(20)]
        nodes = ["hub"] + [f"leaf{i}" for i in range(20)]
        assert len(find_critical_paths(nodes, edges, limit=3)) == 3


class TestClusters:
    def test_grouped_by_directory(self):
        items = [
            item("src/engine.rs::run::fn"),
            item("src/net/io.rs::read::fn"),
            item("build.rs::main::fn"),
            item("src/util.rs::log::fn"),
        ]
        clusters = cluster_by_directory(items)

        assert [c.id for c in clusters] == ["src", "src/net", "root"]
        assert clusters[0].nodes == ["src/engine.rs::run::fn", "src/util.rs::log::fn"]
        assert clusters[2].label == "root"


class TestMetrics:
    def test_counts_and_leaders(self):
        nodes = ["a", "b", "c", "d"]
        edges = [edge("a", "b"), edge("a", "c"), edge("b", "c")]
        metrics = calculate_metrics(nodes, edges)

        assert metrics.node_count == 4
        assert metrics.edge_count == 3
        assert metrics.avg_degree == 6 / 4
        assert metrics.max_out_degree.node_id == "a"
        assert metrics.max_out_degree.count == 2
        assert metrics.max_in_degree.node_id == "c"
        assert metrics.isolated_nodes == ["d"]
        assert metrics.cycle_count == 0

    def test_empty_graph(self):
        metrics = calculate_metrics([], [])
        assert metrics.avg_degree == 0.0
        assert metrics.to_dict()["max_in_degree"] == {"node_id": "", "count": 0}


class TestCycles:
    def test_strongly_connected_components(self):
        pairs = [("a", "b"), ("b", "c"), ("c", "a"), ("d", "e"), ("e", "d"), ("f", "g")]
        assert count_cycles(list("abcdefg"), pairs) == 2

    def test_self_call_counts(self):
        assert count_cycles(["fact"], [("fact", "fact")]) == 1

    def test_long_chain_does_not_recurse(self):
        nodes = [f"n{i}" for i in range(5000)]
        pairs = [(nodes[i], nodes[i + 1]) for i in range(len(nodes) - 1)]
        pairs.append((nodes[-1], nodes[0]))
        assert count_cycles(nodes, pairs) == 1


def test_callable_node_ids_excludes_tests_and_types():
    items = [
        item("src/a.rs::Foo::struct", kind=ItemKind.STRUCT),
        item("src/a.rs::run::fn"),
        item("src/a.rs::Foo::go::method", kind=ItemKind.METHOD, owner="Foo"),
        item("src/a.rs::checks::test", kind=ItemKind.TEST),
    ]
    assert callable_node_ids(items) == ["src/a.rs::run::fn", "src/a.rs::Foo::go::method"]
    extra = callable_node_ids(items, [edge("src/a.rs::run::fn", "src/b.rs::other::fn")])
    assert extra[-1] == "src/b.rs::other::fn"
