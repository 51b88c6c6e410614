"""Generic dependency graph abstraction."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ._algorithms import find_cycle, topological_sort

T = TypeVar("T")


def _dedupe(items: Iterable[T]) -> tuple[T, ...]:
    return tuple(dict.fromkeys(items))


@dataclass(frozen=True, slots=True)
class DependencyGraph(Generic[T]):
    """A directed graph representing dependencies between nodes.

    This is a pure, immutable data structure with query methods. It is
    generic over the node type T (e.g. str, ComponentPath, EntityPath).

    Unlike a plain adjacency set, the graph remembers declaration order: the
    vertex order and every adjacency list keep the order in which they were
    first declared, which makes traversals and the topological order
    reproducible.

    The graph represents "depends on" relationships:
    - predecessors[b] = (a,) means "b depends on a"
    - successors[a] = (b,) means "a is depended on by b"

    Attributes:
        _order: All vertices in declaration order.
        _predecessors: Mapping from node to its direct dependencies.
        _successors: Mapping from node to nodes that depend on it.

    """

    _order: tuple[T, ...] = ()
    _predecessors: dict[T, tuple[T, ...]] = field(default_factory=dict)
    _successors: dict[T, tuple[T, ...]] = field(default_factory=dict)

    @classmethod
    def from_edges(cls, edges: Iterable[tuple[T, T]], nodes: Iterable[T] = ()) -> DependencyGraph[T]:
        """Build a graph from a list of (source, target) edges.

        An edge (a, b) means "b depends on a" (a -> b in the DAG).

        Args:
            edges: (source, target) tuples. Duplicates are ignored.
            nodes: Vertices in declaration order, including isolated ones.
                Vertices that only appear in ``edges`` are appended in
                first-seen order.

        Returns:
            A new DependencyGraph instance.

        Example:
            >>> graph = DependencyGraph.from_edges([("a", "b"), ("b", "c")])
            >>> graph.predecessors("b")
            ('a',)

        """
        edge_list = _dedupe(edges)
        order: dict[T, None] = dict.fromkeys(nodes)
        for src, dst in edge_list:
            order.setdefault(src)
            order.setdefault(dst)

        predecessors: dict[T, list[T]] = {n: [] for n in order}
        successors: dict[T, list[T]] = {n: [] for n in order}
        for src, dst in edge_list:
            predecessors[dst].append(src)
            successors[src].append(dst)

        return cls(
            _order=tuple(order),
            _predecessors={k: tuple(v) for k, v in predecessors.items()},
            _successors={k: tuple(v) for k, v in successors.items()},
        )

    @property
    def nodes(self) -> tuple[T, ...]:
        """All nodes in the graph, in declaration order."""
        return self._order

    @property
    def edges(self) -> tuple[tuple[T, T], ...]:
        """All (source, target) edges."""
        return tuple((src, dst) for src in self._order for dst in self._successors[src])

    def predecessors(self, node: T) -> tuple[T, ...]:
        """Get direct dependencies of a node (nodes it depends on)."""
        return self._predecessors.get(node, ())

    def successors(self, node: T) -> tuple[T, ...]:
        """Get direct dependents of a node (nodes that depend on it)."""
        return self._successors.get(node, ())

    def roots(self) -> tuple[T, ...]:
        """Get nodes with no predecessors (source nodes)."""
        return tuple(n for n in self._order if not self._predecessors[n])

    def leaves(self) -> tuple[T, ...]:
        """Get nodes with no successors (sink nodes)."""
        return tuple(n for n in self._order if not self._successors[n])

    def ancestors(self, node: T) -> frozenset[T]:
        """Get all transitive dependencies of a node.

        Args:
            node: The node to query.

        Returns:
            Set of all nodes that this node transitively depends on.

        """
        visited: set[T] = set()
        stack = list(self.predecessors(node))
        while stack:
            current = stack.pop()
            if current not in visited:
                visited.add(current)
                stack.extend(self.predecessors(current))
        return frozenset(visited)

    def descendants(self, node: T) -> frozenset[T]:
        """Get all transitive dependents of a node.

        Args:
            node: The node to query.

        Returns:
            Set of all nodes that transitively depend on this node.

        """
        visited: set[T] = set()
        stack = list(self.successors(node))
        while stack:
            current = stack.pop()
            if current not in visited:
                visited.add(current)
                stack.extend(self.successors(current))
        return frozenset(visited)

    def topological_order(self) -> list[T]:
        """Return nodes in topological order, ties broken by declaration order.

        Raises:
            ValueError: If the graph contains a cycle.

        """
        return topological_sort(self._successors, self._order)

    def find_cycle(self) -> list[T] | None:
        """Return the first cycle as ``[v0, ..., v0]``, or None."""
        return find_cycle(self._order, self._successors)

    def has_cycle(self) -> bool:
        """Check if the graph contains a cycle."""
        return self.find_cycle() is not None

    def subgraph(self, nodes: Iterable[T]) -> DependencyGraph[T]:
        """Create a subgraph containing only the specified nodes.

        Edges are kept only if both endpoints are in the node set. The
        declaration order of the original graph is preserved.

        """
        keep = frozenset(nodes)
        order = tuple(n for n in self._order if n in keep)
        return DependencyGraph(
            _order=order,
            _predecessors={n: tuple(p for p in self._predecessors[n] if p in keep) for n in order},
            _successors={n: tuple(s for s in self._successors[n] if s in keep) for n in order},
        )

    def validate(self) -> list[str]:
        """Validate the graph and return a list of error messages.

        Checks for:
        - Cycles in the graph
        - Missing nodes (edges pointing to non-existent nodes)

        Returns:
            List of error messages. Empty list if graph is valid.

        """
        errors: list[str] = []

        cycle = self.find_cycle()
        if cycle is not None:
            errors.append(f"Graph contains a cycle: {' → '.join(str(n) for n in cycle)}")

        all_nodes = frozenset(self._order)
        for node, deps in self._predecessors.items():
            missing = [d for d in deps if d not in all_nodes]
            if missing:
                errors.append(f"Node '{node}' has missing dependencies: {missing}")

        return errors

    def __len__(self) -> int:
        """Return the number of nodes in the graph."""
        return len(self._order)

    def __contains__(self, node: object) -> bool:
        """Check if a node is in the graph."""
        return node in self._predecessors
