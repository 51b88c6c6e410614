"""Compiled specifications of component entities.

These are pure, immutable data structures: every reference is already
resolved to a ``Slot``, every formula is already parsed, and every type and
range is already merged with its named type. The tick evaluator only reads
them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import TYPE_CHECKING, Any

from hwml._path import EntityKind

if TYPE_CHECKING:
    from collections.abc import Mapping

    from hwml._formula import CompiledFormula, Reference
    from hwml._modules import BindOrigin
    from hwml._path import ComponentPath, EntityPath


class SlotKind(StrEnum):
    """Where a resolved reference takes its value from at tick time."""

    CURRENT = auto()  # Value computed earlier in the current tick
    PREVIOUS = auto()  # Committed ``prev`` value of a stateful node
    CONSTANT = auto()  # Parameter value folded in at load time
    BUILTIN = auto()  # dt, time, tick, fault
    INCOMING = auto()  # ``value`` inside a wiring transform


@dataclass(frozen=True, slots=True)
class Slot:
    """A resolved reference.

    Attributes:
        kind: Value source.
        path: The entity read by CURRENT and PREVIOUS slots.
        value: The constant of a CONSTANT slot, or the builtin name.

    """

    kind: SlotKind
    path: EntityPath | None = None
    value: Any = None

    def __str__(self) -> str:
        match self.kind:
            case SlotKind.CURRENT:
                return str(self.path)
            case SlotKind.PREVIOUS:
                return f"prev.{self.path}"
            case SlotKind.CONSTANT:
                return repr(self.value)
            case _:
                return str(self.value)


@dataclass(frozen=True, slots=True)
class FormulaSpec:
    """A compiled formula with its references bound to slots."""

    compiled: CompiledFormula
    slots: Mapping[Reference, Slot]
    owner: str

    @property
    def source(self) -> str:
        return self.compiled.source


@dataclass(frozen=True, slots=True)
class Constraint:
    """Type and range policy applied at a value boundary.

    Attributes:
        type: Canonical type name, or None when untyped.
        units: Advisory units, passed through unchecked.
        range: ``(lo, hi)`` bounds, or None.
        clamp: Saturate into ``range`` instead of warning.

    """

    type: str | None = None
    units: str | None = None
    range: tuple[float, float] | None = None
    clamp: bool = False


@dataclass(frozen=True, slots=True)
class InputSource:
    """The effective source of an input after fan-in resolution.

    Attributes:
        slot: Where the bound value comes from.
        text: The source as written, for messages.
        origin: Which declaration won.
        transform: Optional formula applied to the incoming value.

    """

    slot: Slot
    text: str
    origin: BindOrigin
    transform: FormulaSpec | None = None


@dataclass(frozen=True, slots=True)
class InputSpec:
    """An input port of a component.

    Attributes:
        path: The entity path of the input.
        constraint: Type/range policy.
        default: Declared default (coerced), or None.
        has_default: Whether ``default`` was declared.
        source: Effective binding, if any.
        hw: Hardware channel descriptor, passed through verbatim.
        channel: Adapter channel name for ``hw`` inputs.
        sim_source: Simulated source used in ``simMode``.

    """

    path: EntityPath
    constraint: Constraint
    default: Any = None
    has_default: bool = False
    source: InputSource | None = None
    hw: Any = None
    channel: str | None = None
    sim_source: Slot | None = None


@dataclass(frozen=True, slots=True)
class NodeSpec:
    """A node or output port of a component.

    Output ports are evaluated like nodes: their ``from`` is a formula.

    Attributes:
        path: The entity path; its kind is NODE or OUTPUT.
        constraint: Type/range policy.
        formula: The compiled formula; None for static values.
        value: The static value (coerced) when there is no formula.
        stateful: Whether the node keeps a ``prev`` slot.
        initial: Value of the ``prev`` slot before the first tick.
        state_reads: Entities read through ``prev.``; they add no edges.
        target: Output channel for ``target``/``hw`` outputs.
        hw: Hardware channel descriptor, passed through verbatim.

    """

    path: EntityPath
    constraint: Constraint
    formula: FormulaSpec | None = None
    value: Any = None
    stateful: bool = False
    initial: Any = None
    state_reads: tuple[EntityPath, ...] = field(default_factory=tuple)
    target: str | None = None
    hw: Any = None

    @property
    def kind(self) -> EntityKind:
        return self.path.kind

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def is_output(self) -> bool:
        return self.path.kind is EntityKind.OUTPUT

    @property
    def emits(self) -> bool:
        """Whether the value is sent to the adapter."""
        return self.target is not None


@dataclass(frozen=True, slots=True)
class ComponentSpec:
    """A compiled component.

    Attributes:
        path: The component path.
        inputs: Input ports by name.
        nodes: Nodes by name.
        outputs: Output ports by name.
        order: Nodes and outputs in evaluation order.
        description: Optional free text from the document.

    """

    path: ComponentPath
    inputs: Mapping[str, InputSpec]
    nodes: Mapping[str, NodeSpec]
    outputs: Mapping[str, NodeSpec]
    order: tuple[NodeSpec, ...]
    description: str | None = None

    def entities(self) -> tuple[InputSpec | NodeSpec, ...]:
        """Inputs, nodes and outputs in declaration order."""
        return (*self.inputs.values(), *self.nodes.values(), *self.outputs.values())

    @property
    def stateful(self) -> tuple[NodeSpec, ...]:
        return tuple(node for node in self.nodes.values() if node.stateful)
