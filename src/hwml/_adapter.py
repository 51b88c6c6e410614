"""Hardware adapter interface and the in-process adapters shipped with hwml.

The engine never talks to hardware itself. At ``InjectInputs`` it asks the
adapter for a channel -> value mapping and at ``EmitOutputs`` it hands the
adapter one channel -> value mapping. What a channel means is up to the
adapter: the ``hw`` property of each port is passed through untouched.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class Direction(StrEnum):
    INPUT = auto()
    OUTPUT = auto()


@dataclass(frozen=True, slots=True)
class Channel:
    """A hardware channel used by the system.

    Attributes:
        name: Channel name used as the key in read/write mappings.
        direction: Whether the engine reads or writes the channel.
        hw: The port's ``hw`` property, verbatim (None for ``target`` outputs).
        port: The entity path of the port, e.g. ``plant.sensor.raw``.

    """

    name: str
    direction: Direction
    hw: Any = None
    port: str = ""


def channel_name(hw: Any, default: str) -> str:
    """Channel name for a ``hw`` property.

    A string is the channel name itself; a mapping may name it under
    ``channel``. Anything else falls back to ``default`` (the port path).
    """
    if isinstance(hw, str):
        return hw
    if isinstance(hw, Mapping) and isinstance(hw.get("channel"), str):
        return hw["channel"]
    return default


@runtime_checkable
class HardwareAdapter(Protocol):
    """What the tick evaluator needs from a hardware adapter."""

    def connect(self, channels: Sequence[Channel]) -> None: ...

    def read_inputs(self) -> Mapping[str, Any]: ...

    def write_outputs(self, values: Mapping[str, Any]) -> None: ...

    def disconnect(self) -> None: ...


class NullAdapter:
    """Reads nothing and discards every write."""

    def __init__(self) -> None:
        self.channels: tuple[Channel, ...] = ()

    def connect(self, channels: Sequence[Channel]) -> None:
        self.channels = tuple(channels)

    def read_inputs(self) -> Mapping[str, Any]:
        return {}

    def write_outputs(self, values: Mapping[str, Any]) -> None:
        pass

    def disconnect(self) -> None:
        self.channels = ()


class MemoryAdapter:
    """Scripted input frames and recorded writes, for tests and offline runs.

    Each ``read_inputs`` call consumes the next frame. Once the frames run
    out the last frame is repeated, so a slowly varying signal can be given
    as a few frames.

    Example:
        >>> adapter = MemoryAdapter([{"adc0": 1000}, {"adc0": 1010}])
        >>> adapter.read_inputs()
        {'adc0': 1000}

    """

    def __init__(self, frames: Iterable[Mapping[str, Any]] = ()) -> None:
        self._frames: deque[dict[str, Any]] = deque(dict(frame) for frame in frames)
        self._last: dict[str, Any] = {}
        self.written: list[dict[str, Any]] = []
        self.channels: tuple[Channel, ...] = ()
        self.connected = False

    def push(self, frame: Mapping[str, Any]) -> None:
        """Queue another input frame."""
        self._frames.append(dict(frame))

    @property
    def pending(self) -> int:
        """Number of frames not yet read."""
        return len(self._frames)

    @property
    def last_written(self) -> dict[str, Any]:
        return self.written[-1] if self.written else {}

    def connect(self, channels: Sequence[Channel]) -> None:
        self.channels = tuple(channels)
        self.connected = True
        logger.debug(f"MemoryAdapter connected with {len(self.channels)} channel(s)")

    def read_inputs(self) -> Mapping[str, Any]:
        if self._frames:
            self._last = self._frames.popleft()
        return dict(self._last)

    def write_outputs(self, values: Mapping[str, Any]) -> None:
        self.written.append(dict(values))

    def disconnect(self) -> None:
        self.connected = False
