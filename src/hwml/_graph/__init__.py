"""Graph module providing dependency graph abstractions.

This module contains:
- DependencyGraph[T]: A generic, immutable, declaration-ordered directed graph
- topological_sort: Kahn ordering with declaration-order tie-breaking
- find_cycle: Depth-first cycle search that reports the full cycle path
"""

from __future__ import annotations

from ._algorithms import find_cycle, topological_sort
from ._dependency_graph import DependencyGraph

__all__ = ["DependencyGraph", "find_cycle", "topological_sort"]
