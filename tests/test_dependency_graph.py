"""Tests for DependencyGraph and graph algorithms."""

import pytest

from hwml._graph import DependencyGraph, find_cycle, topological_sort


class TestTopologicalSort:
    """Tests for the topological_sort algorithm."""

    def test_empty_graph(self) -> None:
        result = topological_sort({})
        assert result == []

    def test_single_node(self) -> None:
        result = topological_sort({"a": []})
        assert result == ["a"]

    def test_linear_chain(self) -> None:
        # a -> b -> c (c depends on b, b depends on a)
        result = topological_sort({"a": ["b"], "b": ["c"], "c": []})
        assert result == ["a", "b", "c"]

    def test_diamond_dependency(self) -> None:
        # a -> b, a -> c, b -> d, c -> d
        result = topological_sort({"a": ["b", "c"], "b": ["d"], "c": ["d"], "d": []})
        assert result == ["a", "b", "c", "d"]

    def test_ties_broken_by_declaration_order(self) -> None:
        successors = {"a": ["c"], "b": ["c"], "c": []}
        assert topological_sort(successors, order=["b", "a", "c"]) == ["b", "a", "c"]
        assert topological_sort(successors, order=["a", "b", "c"]) == ["a", "b", "c"]

    def test_independent_vertices_keep_declaration_order(self) -> None:
        result = topological_sort({"z": [], "y": [], "x": []}, order=["z", "y", "x"])
        assert result == ["z", "y", "x"]

    def test_vertices_missing_from_order_come_last(self) -> None:
        result = topological_sort({"a": [], "b": []}, order=["b"])
        assert result == ["b", "a"]

    def test_cycle_detection(self) -> None:
        with pytest.raises(ValueError, match="Cycle"):
            topological_sort({"a": ["b"], "b": ["a"]})

    def test_self_loop_detection(self) -> None:
        with pytest.raises(ValueError, match="Cycle"):
            topological_sort({"a": ["a"]})

    def test_works_with_tuples(self) -> None:
        result = topological_sort({("a", 1): [("b", 2)], ("b", 2): []})
        assert result == [("a", 1), ("b", 2)]


class TestFindCycle:
    """Tests for the find_cycle algorithm."""

    def test_acyclic(self) -> None:
        assert find_cycle(["a", "b", "c"], {"a": ["b"], "b": ["c"]}) is None

    def test_two_cycle(self) -> None:
        assert find_cycle(["a", "b"], {"a": ["b"], "b": ["a"]}) == ["a", "b", "a"]

    def test_self_loop(self) -> None:
        assert find_cycle(["x"], {"x": ["x"]}) == ["x", "x"]

    def test_cycle_not_through_start(self) -> None:
        # a -> b -> c -> b
        cycle = find_cycle(["a", "b", "c"], {"a": ["b"], "b": ["c"], "c": ["b"]})
        assert cycle == ["b", "c", "b"]

    def test_each_vertex_appears_once(self) -> None:
        cycle = find_cycle(["a", "b", "c"], {"a": ["b"], "b": ["c"], "c": ["a"]})
        assert cycle is not None
        assert cycle[0] == cycle[-1]
        assert len(set(cycle[:-1])) == len(cycle) - 1

    def test_deep_chain_does_not_recurse(self) -> None:
        n = 5000
        successors = {i: [i + 1] for i in range(n)}
        assert find_cycle(range(n + 1), successors) is None


class TestDependencyGraphConstruction:
    """Tests for DependencyGraph construction."""

    def test_empty_graph(self) -> None:
        graph = DependencyGraph.from_edges([])
        assert graph.nodes == ()
        assert len(graph) == 0

    def test_single_edge(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b")])
        assert graph.nodes == ("a", "b")
        assert len(graph) == 2

    def test_isolated_nodes(self) -> None:
        graph = DependencyGraph.from_edges([("b", "c")], nodes=["a", "b", "c"])
        assert graph.nodes == ("a", "b", "c")
        assert graph.roots() == ("a", "b")

    def test_duplicate_edges_ignored(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("a", "b")])
        assert graph.edges == (("a", "b"),)

    def test_contains(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b")])
        assert "a" in graph
        assert "b" in graph
        assert "c" not in graph


class TestDependencyGraphQueries:
    """Tests for DependencyGraph query methods."""

    def test_predecessors_keep_declaration_order(self) -> None:
        graph = DependencyGraph.from_edges([("c", "d"), ("a", "d"), ("b", "d")])
        assert graph.predecessors("d") == ("c", "a", "b")

    def test_predecessors_nonexistent_node(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b")])
        assert graph.predecessors("z") == ()

    def test_successors(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("a", "c")])
        assert graph.successors("a") == ("b", "c")

    def test_roots_and_leaves(self) -> None:
        graph = DependencyGraph.from_edges([("a", "c"), ("b", "c"), ("c", "d")])
        assert graph.roots() == ("a", "b")
        assert graph.leaves() == ("d",)

    def test_ancestors_and_descendants(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "c"), ("x", "c")])
        assert graph.ancestors("c") == frozenset({"a", "b", "x"})
        assert graph.descendants("a") == frozenset({"b", "c"})


class TestDependencyGraphTopologicalOrder:
    """Tests for topological ordering and cycles."""

    def test_topological_order_uses_declaration_order(self) -> None:
        graph = DependencyGraph.from_edges([("b", "c"), ("a", "c")], nodes=["b", "a", "c"])
        assert graph.topological_order() == ["b", "a", "c"]

    def test_topological_order_is_stable(self) -> None:
        edges = [("s", "f"), ("s", "g"), ("f", "o"), ("g", "o")]
        orders = {tuple(DependencyGraph.from_edges(edges).topological_order()) for _ in range(5)}
        assert orders == {("s", "f", "g", "o")}

    def test_has_cycle(self) -> None:
        assert not DependencyGraph.from_edges([("a", "b")]).has_cycle()
        assert DependencyGraph.from_edges([("a", "b"), ("b", "a")]).has_cycle()

    def test_find_cycle_path(self) -> None:
        graph = DependencyGraph.from_edges([("x", "y"), ("y", "x")])
        assert graph.find_cycle() == ["x", "y", "x"]


class TestDependencyGraphSubgraph:
    """Tests for subgraph extraction."""

    def test_subgraph_keeps_internal_edges(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "c"), ("c", "d")])
        sub = graph.subgraph(["b", "c"])
        assert sub.nodes == ("b", "c")
        assert sub.edges == (("b", "c"),)

    def test_subgraph_empty(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b")])
        assert len(graph.subgraph([])) == 0


class TestDependencyGraphValidation:
    """Tests for graph validation."""

    def test_valid_graph(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "c")])
        assert graph.validate() == []

    def test_cycle_detected(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "a")])
        errors = graph.validate()
        assert len(errors) == 1
        assert "a → b → a" in errors[0]
