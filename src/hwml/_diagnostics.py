"""Non-fatal diagnostics produced at load time and during ticks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum, auto


class Severity(StrEnum):
    INFO = auto()
    WARNING = auto()
    ERROR = auto()


class DiagnosticKind(StrEnum):
    """What a diagnostic is about."""

    FAN_IN = auto()  # Several sources drive one input; last writer wins
    RANGE = auto()  # Value outside its declared range (no clamp)
    FAULT = auto()  # NaN/Infinity produced while allowNaN is false
    OVERRUN = auto()  # Tick took longer than maxTickTime
    COERCION = auto()  # Value could not be coerced to its declared type


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A single warning or fault.

    Attributes:
        severity: How serious the diagnostic is.
        kind: The category of the diagnostic.
        message: Human readable description.
        location: The offending entity, e.g. ``plant/pid.ctrl.output``.
        tick: Tick number for runtime diagnostics, None at load time.

    """

    severity: Severity
    kind: DiagnosticKind
    message: str
    location: str = ""
    tick: int | None = None

    def __str__(self) -> str:
        when = f"[tick {self.tick}] " if self.tick is not None else ""
        where = f"{self.location}: " if self.location else ""
        return f"{when}{where}{self.message}"
