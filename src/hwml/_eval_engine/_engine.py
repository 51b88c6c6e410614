"""The tick evaluator.

One tick runs strictly in sequence::

    InjectInputs -> EvaluateComponents -> ApplyConstraints
    -> SnapshotState -> EmitOutputs -> AdvanceTime

Constraints are applied at every value boundary as soon as the value is
produced, so a dependent never observes an unclamped value.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Self, TypeAlias

from hwml._adapter import Channel, Direction, NullAdapter
from hwml._coercion import apply_constraints, coerce, format_value, is_fault_value
from hwml._config import DtMode
from hwml._diagnostics import Diagnostic, DiagnosticKind, Severity
from hwml._path import EntityKind, EntityPath

from ._resolution import TickEnv, source_input

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType

    from hwml._adapter import HardwareAdapter
    from hwml._config import EngineConfig
    from hwml._ir import Constraint, SystemSpec

logger = logging.getLogger(__name__)

Sink: TypeAlias = "Callable[[TickResult], None]"


@dataclass(frozen=True, slots=True)
class TickResult:
    """Result of evaluating one tick.

    This is an immutable record of everything the tick produced.

    Attributes:
        tick: The tick number (0 for the first tick).
        time: Simulated time at the start of the tick, in seconds.
        dt: The ``dt`` formulas saw during the tick.
        values: Every input, node and output value, by entity path.
        outputs: Channel -> value mapping sent to the adapter.
        diagnostics: Runtime warnings and faults raised during the tick.
        duration: Wall-clock evaluation time in seconds.
        committed: False for ``step(commit=False)`` dry runs.

    """

    tick: int
    time: float
    dt: float
    values: dict[EntityPath, Any] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)
    diagnostics: tuple[Diagnostic, ...] = ()
    duration: float = 0.0
    committed: bool = True

    @property
    def success(self) -> bool:
        """True when the tick raised no error-level diagnostics."""
        return not any(d.severity is Severity.ERROR for d in self.diagnostics)

    @property
    def faults(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.kind is DiagnosticKind.FAULT)

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity is Severity.WARNING)

    def get_value(self, path: str) -> Any:
        """Get a value by its dotted path, e.g. ``plant.pid.output``.

        When a node and an output share a name, the output's value is returned.

        Raises:
            KeyError: If no value exists at the given path.

        """
        found: EntityPath | None = None
        for entity in self.values:
            if str(entity) == path and (found is None or entity.kind is EntityKind.OUTPUT):
                found = entity
        if found is None:
            raise KeyError(path)
        return self.values[found]


class Runtime:
    """Drives the tick loop of a loaded system.

    The runtime owns the only mutable state of a system: the committed
    ``prev`` snapshot, the tick counter, simulated time, ``dt`` and the fault
    flag. Only ``step`` writes them, once per committed tick.

    Example:
        >>> runtime = Runtime(build_system(document))
        >>> result = runtime.step({"plant.sensor.rawAdc": 1000})
        >>> result.get_value("plant.sensor.force")
        26.46

    """

    def __init__(
        self,
        system: SystemSpec,
        adapter: HardwareAdapter | None = None,
        *,
        config: EngineConfig | None = None,
    ) -> None:
        self._system = system
        self._config = config if config is not None else system.config
        if self._config.sim_mode != system.config.sim_mode:
            msg = "simMode changes the system graph; rebuild the system instead of overriding it"
            raise ValueError(msg)
        self._adapter: HardwareAdapter = adapter if adapter is not None else NullAdapter()
        self._tick = 0
        self._time = 0.0
        self._dt = self._config.dt
        self._fault = False
        self._state: Mapping[EntityPath, Any] = MappingProxyType(
            {node.path: node.initial for node in system.stateful_nodes()},
        )
        self._frame: Mapping[str, Any] = {}
        self._input_paths = frozenset(str(spec.path) for spec in system.inputs())
        self._sinks: list[Sink] = []
        self._stop = threading.Event()
        self._connected = False
        self._last: TickResult | None = None

    # -- properties -----------------------------------------------------------

    @property
    def system(self) -> SystemSpec:
        return self._system

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def adapter(self) -> HardwareAdapter:
        return self._adapter

    @property
    def tick(self) -> int:
        """Number of committed ticks."""
        return self._tick

    @property
    def time(self) -> float:
        """Simulated time of the next tick, in seconds."""
        return self._time

    @property
    def dt(self) -> float:
        """The ``dt`` the next tick will see."""
        return self._dt

    @property
    def fault(self) -> bool:
        """Whether the last committed tick raised a NaN/Infinity fault."""
        return self._fault

    @property
    def state(self) -> Mapping[EntityPath, Any]:
        """Read-only view of the committed ``prev`` values."""
        return self._state

    @property
    def last_result(self) -> TickResult | None:
        return self._last

    def get_state(self, path: str) -> Any:
        """Committed ``prev`` value of a stateful node, by dotted path."""
        for entity, value in self._state.items():
            if str(entity) == path:
                return value
        raise KeyError(path)

    # -- lifecycle ------------------------------------------------------------

    def channels(self) -> list[Channel]:
        """The hardware channels the system reads and writes."""
        channels = [
            Channel(spec.channel, Direction.INPUT, spec.hw, str(spec.path))
            for spec in self._system.inputs()
            if spec.channel is not None
        ]
        channels.extend(
            Channel(output.target, Direction.OUTPUT, output.hw, str(output.path))  # type: ignore[arg-type]
            for output in self._system.emitting_outputs()
        )
        return channels

    def connect(self) -> None:
        if self._connected:
            return
        channels = self.channels()
        self._adapter.connect(channels)
        self._connected = True
        logger.info(f"Connected {type(self._adapter).__name__} with {len(channels)} channel(s)")

    def disconnect(self) -> None:
        if not self._connected:
            return
        self._adapter.disconnect()
        self._connected = False
        logger.info(f"Disconnected after {self._tick} tick(s)")

    def __enter__(self) -> Self:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.disconnect()

    def add_sink(self, sink: Sink) -> None:
        """Register a callback that receives every committed ``TickResult``."""
        self._sinks.append(sink)

    def remove_sink(self, sink: Sink) -> None:
        self._sinks.remove(sink)

    # -- ticks ----------------------------------------------------------------

    def _settle(
        self,
        path: EntityPath,
        value: Any,
        constraint: Constraint,
        diagnostics: list[Diagnostic],
    ) -> Any:
        """Coerce and constrain a value at its boundary."""
        tick = self._tick
        coerced, ok = coerce(value, constraint.type)
        if not ok:
            message = f"Cannot convert {value!r} to {constraint.type}"
            logger.warning(f"[tick {tick}] {path}: {message}")
            diagnostics.append(Diagnostic(Severity.WARNING, DiagnosticKind.COERCION, message, str(path), tick))

        settled, violated = apply_constraints(coerced, constraint.range, clamp=constraint.clamp)
        if violated:
            lo, hi = constraint.range  # type: ignore[misc]
            message = f"Value {format_value(settled)} outside range [{format_value(lo)}, {format_value(hi)}]"
            logger.warning(f"[tick {tick}] {path}: {message}")
            diagnostics.append(Diagnostic(Severity.WARNING, DiagnosticKind.RANGE, message, str(path), tick))

        if not self._config.allow_nan and is_fault_value(settled):
            message = f"Produced {format_value(settled)} while allowNaN is false"
            logger.error(f"[tick {tick}] {path}: {message}")
            diagnostics.append(Diagnostic(Severity.ERROR, DiagnosticKind.FAULT, message, str(path), tick))
        return settled

    def _evaluate(self, env: TickEnv, overrides: Mapping[str, Any], diagnostics: list[Diagnostic]) -> None:
        sim_mode = self._system.config.sim_mode
        for component in self._system.ordered_components():
            for spec in component.inputs.values():
                raw = source_input(spec, env, self._frame, overrides, sim_mode=sim_mode)
                env.values[spec.path] = self._settle(spec.path, raw, spec.constraint, diagnostics)
            for node in component.order:
                raw = node.value if node.formula is None else env.evaluate(node.formula)
                env.values[node.path] = self._settle(node.path, raw, node.constraint, diagnostics)

    def step(self, inputs: Mapping[str, Any] | None = None, *, commit: bool = True) -> TickResult:
        """Evaluate one tick.

        Args:
            inputs: Host overrides keyed by input path, e.g.
                ``{"plant.sensor.rawAdc": 1000}``. They take precedence over
                bindings, hardware channels and defaults.
            commit: When False, evaluate against the committed state without
                reading the adapter, snapshotting, emitting or advancing time.
                Repeating such a step gives identical values.

        Returns:
            The tick result.

        Raises:
            KeyError: If an override names something that is not an input.

        """
        overrides = dict(inputs or {})
        unknown = sorted(set(overrides) - self._input_paths)
        if unknown:
            msg = f"Unknown input path(s): {unknown}"
            raise KeyError(msg)

        started = time.perf_counter()
        tick = self._tick

        # InjectInputs
        if commit:
            self._frame = dict(self._adapter.read_inputs())

        # EvaluateComponents + ApplyConstraints
        builtins = {"dt": self._dt, "time": self._time, "tick": tick, "fault": self._fault}
        env = TickEnv(self._state, builtins, self._system.functions)
        diagnostics: list[Diagnostic] = []
        self._evaluate(env, overrides, diagnostics)
        outputs = {output.target: env.values[output.path] for output in self._system.emitting_outputs()}

        if not commit:
            return TickResult(
                tick=tick,
                time=self._time,
                dt=self._dt,
                values=env.values,
                outputs=outputs,
                diagnostics=tuple(diagnostics),
                duration=time.perf_counter() - started,
                committed=False,
            )

        # SnapshotState: build a fresh mapping, then swap it in with one assignment
        self._state = MappingProxyType({node.path: env.values[node.path] for node in self._system.stateful_nodes()})

        # EmitOutputs
        self._adapter.write_outputs(outputs)

        duration = time.perf_counter() - started
        max_ms = self._config.max_tick_time
        if max_ms is not None and duration * 1000 > max_ms:
            message = f"Tick took {duration * 1000:.3f} ms, budget is {format_value(max_ms)} ms"
            logger.warning(f"[tick {tick}] {message}")
            diagnostics.append(Diagnostic(Severity.WARNING, DiagnosticKind.OVERRUN, message, tick=tick))

        result = TickResult(
            tick=tick,
            time=self._time,
            dt=self._dt,
            values=env.values,
            outputs=outputs,
            diagnostics=tuple(diagnostics),
            duration=duration,
        )
        for sink in self._sinks:
            sink(result)

        # AdvanceTime
        self._tick += 1
        self._time += self._dt
        if self._config.dt_mode is DtMode.MEASURED and duration > 0:
            self._dt = duration
        self._fault = bool(result.faults)
        self._last = result
        return result

    def run(self, max_ticks: int | None = None, *, realtime: bool = False) -> TickResult | None:
        """Run ticks until ``max_ticks`` is reached or ``stop`` is called.

        Args:
            max_ticks: Number of ticks to run; None runs until stopped.
            realtime: Pace ticks at ``1 / tickRate`` of wall-clock time.
                This is best effort, not a real-time guarantee.

        Returns:
            The last tick result, or None if no tick ran.

        """
        self._stop.clear()
        opened = not self._connected
        self.connect()
        period = self._config.dt
        last: TickResult | None = None
        count = 0
        try:
            while max_ticks is None or count < max_ticks:
                # Stop requests are honoured only between ticks, after AdvanceTime
                if self._stop.is_set():
                    logger.info(f"Stopped after {self._tick} tick(s)")
                    break
                started = time.monotonic()
                last = self.step()
                count += 1
                if realtime:
                    remaining = period - (time.monotonic() - started)
                    if remaining > 0:
                        self._stop.wait(remaining)
        finally:
            if opened:
                self.disconnect()
        return last

    def stop(self) -> None:
        """Request the run loop to stop at the next tick boundary."""
        self._stop.set()
