"""Intermediate Representation (IR) module for hwml.

This module provides pure data structures for a loaded system. The IR
serves as a bridge between:
- the document layer (pydantic models, module arena, references)
- the tick evaluator

Key types:
- SlotKind / Slot: Where a resolved reference reads its value
- InputSpec, NodeSpec, ComponentSpec: Compiled component entities
- SystemSpec: All components with their evaluation orders
- build_system: Function to build the IR from a document
"""

from __future__ import annotations

from ._builder import build_system, resolve_constraint
from ._graph_spec import SystemSpec
from ._node_spec import ComponentSpec, Constraint, FormulaSpec, InputSource, InputSpec, NodeSpec, Slot, SlotKind

__all__ = [
    "ComponentSpec",
    "Constraint",
    "FormulaSpec",
    "InputSource",
    "InputSpec",
    "NodeSpec",
    "Slot",
    "SlotKind",
    "SystemSpec",
    "build_system",
    "resolve_constraint",
]
