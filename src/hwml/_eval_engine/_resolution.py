"""Value resolution utilities for the tick evaluator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from hwml._coercion import zero_value
from hwml._formula import evaluate
from hwml._ir import SlotKind

if TYPE_CHECKING:
    from collections.abc import Mapping

    from hwml._formula import FunctionRegistry
    from hwml._ir import FormulaSpec, InputSpec, Slot
    from hwml._path import EntityPath


class TickEnv:
    """Everything a formula can see during one tick.

    Attributes:
        values: Values computed so far in this tick, by entity path.
        state: Committed ``prev`` values from the previous tick.
        builtins: ``dt``, ``time``, ``tick`` and ``fault``.
        functions: Function registry used by calls.

    """

    __slots__ = ("builtins", "functions", "state", "values")

    def __init__(
        self,
        state: Mapping[EntityPath, Any],
        builtins: Mapping[str, Any],
        functions: FunctionRegistry,
    ) -> None:
        self.values: dict[EntityPath, Any] = {}
        self.state = state
        self.builtins = builtins
        self.functions = functions

    def read(self, slot: Slot, incoming: Any = None) -> Any:
        """Read the value a resolved reference points at.

        Raises:
            KeyError: If a CURRENT slot is read before it was computed, which
                means the evaluation order is broken.

        """
        match slot.kind:
            case SlotKind.CURRENT:
                return self.values[slot.path]  # type: ignore[index]
            case SlotKind.PREVIOUS:
                return self.state[slot.path]  # type: ignore[index]
            case SlotKind.CONSTANT:
                return slot.value
            case SlotKind.BUILTIN:
                return self.builtins[slot.value]
            case SlotKind.INCOMING:
                return incoming
            case _:
                msg = f"Unknown slot kind: {slot.kind}"
                raise ValueError(msg)

    def evaluate(self, formula: FormulaSpec, incoming: Any = None) -> Any:
        slots = formula.slots
        return evaluate(formula.compiled.ast, lambda ref: self.read(slots[ref], incoming), self.functions)


def source_input(
    spec: InputSpec,
    env: TickEnv,
    frame: Mapping[str, Any],
    overrides: Mapping[str, Any],
    *,
    sim_mode: bool,
) -> Any:
    """Find the raw value of an input for this tick.

    Precedence: a host override for the input path, then the effective
    binding (with its transform), then the simulated source in ``simMode``,
    then the hardware channel, then the declared default, then the type's
    zero.

    Args:
        spec: The input to source.
        env: The tick environment; bound sources have already been computed.
        frame: Channel values read from the adapter this tick.
        overrides: Host overrides keyed by input path (``plant.sensor.raw``).
        sim_mode: Whether simulation bindings replace hardware channels.

    Returns:
        The value before coercion and constraints.

    """
    key = str(spec.path)
    if key in overrides:
        return overrides[key]
    if spec.source is not None:
        value = env.read(spec.source.slot)
        if spec.source.transform is not None:
            value = env.evaluate(spec.source.transform, incoming=value)
        return value
    if sim_mode and spec.sim_source is not None:
        return env.read(spec.sim_source)
    if spec.channel is not None and spec.channel in frame:
        return frame[spec.channel]
    if spec.has_default:
        return spec.default
    return zero_value(spec.constraint.type)
