"""Engine configuration read from a document's ``_config`` block."""

from __future__ import annotations

import logging
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(StrEnum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    def to_logging(self) -> int:
        """The matching ``logging`` module level."""
        return {
            LogLevel.DEBUG: logging.DEBUG,
            LogLevel.INFO: logging.INFO,
            LogLevel.WARN: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
        }[self]


class DtMode(StrEnum):
    """How the tick evaluator chooses ``dt``."""

    FIXED = "fixed"  # 1 / tickRate, fully deterministic
    MEASURED = "measured"  # Wall-clock duration of the previous tick


class EngineConfig(BaseModel):
    """Options recognised in ``_config``.

    Attributes:
        tick_rate: Ticks per second; drives the default ``dt``.
        max_tick_time: Warning threshold for tick duration, in milliseconds.
        allow_nan: When False, NaN/Infinity values are reported as faults.
        log_level: Level for the ``hwml`` logger.
        sim_mode: Replace hardware inputs with simulated component outputs.
        sim_bindings: ``"component.input" -> "simComponent.output"``.
        dt_mode: ``fixed`` or ``measured``.

    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    tick_rate: float = Field(default=100.0, alias="tickRate", gt=0)
    max_tick_time: float | None = Field(default=None, alias="maxTickTime", gt=0)
    allow_nan: bool = Field(default=True, alias="allowNaN")
    log_level: LogLevel = Field(default=LogLevel.INFO, alias="logLevel")
    sim_mode: bool = Field(default=False, alias="simMode")
    sim_bindings: dict[str, str] = Field(default_factory=dict, alias="simBindings")
    dt_mode: DtMode = Field(default=DtMode.FIXED, alias="dtMode")

    @property
    def dt(self) -> float:
        """The configured tick period in seconds."""
        return 1.0 / self.tick_rate
