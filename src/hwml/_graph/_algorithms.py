"""Graph algorithms for dependency graph operations."""

from __future__ import annotations

import heapq
from collections.abc import Collection, Hashable, Iterable, Mapping, Sequence
from typing import TypeVar

T = TypeVar("T", bound=Hashable)


def _declaration_order(successors: Mapping[T, Collection[T]], order: Sequence[T] | None) -> list[T]:
    """All vertices, ``order`` first, then any others in first-seen order."""
    seen: dict[T, None] = dict.fromkeys(order or ())
    for node, succs in successors.items():
        seen.setdefault(node)
        for succ in succs:
            seen.setdefault(succ)
    return list(seen)


def topological_sort(
    successors: Mapping[T, Collection[T]],
    order: Sequence[T] | None = None,
) -> list[T]:
    """Sort a graph topologically (dependencies before dependents).

    Kahn's algorithm with a priority queue keyed on declaration index, so
    among the vertices that are ready at the same time the one declared first
    always comes first. The result is therefore stable across loads.

    Args:
        successors: Mapping from node to collection of nodes that depend on it.
            An edge (a -> b) means "b depends on a".
        order: Declaration order used to break ties. Vertices missing from it
            are ordered after it, in first-seen order.

    Returns:
        List of nodes in topological order.

    Raises:
        ValueError: If the graph contains a cycle.

    Example:
        >>> topological_sort({"c": [], "a": ["c"], "b": ["c"]}, order=["b", "a", "c"])
        ['b', 'a', 'c']

    """
    vertices = _declaration_order(successors, order)
    index = {node: i for i, node in enumerate(vertices)}

    indegree: dict[T, int] = dict.fromkeys(vertices, 0)
    for deps in successors.values():
        for dep in deps:
            indegree[dep] += 1

    ready = [index[node] for node, deg in indegree.items() if deg == 0]
    heapq.heapify(ready)
    result: list[T] = []

    while ready:
        node = vertices[heapq.heappop(ready)]
        result.append(node)
        for successor in successors.get(node, ()):
            indegree[successor] -= 1
            if indegree[successor] == 0:
                heapq.heappush(ready, index[successor])

    if len(result) != len(vertices):
        msg = "Cycle detected in graph"
        raise ValueError(msg)

    return result


def find_cycle(vertices: Iterable[T], successors: Mapping[T, Iterable[T]]) -> list[T] | None:
    """Find a cycle by depth-first search.

    The search keeps an explicit recursion stack instead of recursing, and
    visits vertices and successors in the order given, so the reported cycle
    is deterministic.

    Args:
        vertices: Start vertices, in declaration order.
        successors: Mapping from node to the nodes that depend on it.

    Returns:
        The first cycle found as ``[v0, v1, ..., vk, v0]``, with every vertex
        appearing once before the start repeats, or None if the graph is
        acyclic.

    Example:
        >>> find_cycle(["a", "b"], {"a": ["b"], "b": ["a"]})
        ['a', 'b', 'a']
        >>> find_cycle(["x"], {"x": ["x"]})
        ['x', 'x']

    """
    done: set[T] = set()
    on_stack: dict[T, int] = {}  # vertex -> position in ``path``

    for start in vertices:
        if start in done:
            continue
        path: list[T] = [start]
        on_stack[start] = 0
        stack = [iter(successors.get(start, ()))]
        while stack:
            advanced = False
            for succ in stack[-1]:
                if succ in on_stack:
                    return [*path[on_stack[succ] :], succ]
                if succ in done:
                    continue
                on_stack[succ] = len(path)
                path.append(succ)
                stack.append(iter(successors.get(succ, ())))
                advanced = True
                break
            if not advanced:
                stack.pop()
                finished = path.pop()
                del on_stack[finished]
                done.add(finished)

    return None
