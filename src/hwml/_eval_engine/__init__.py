"""Evaluation engine module for hwml.

This module drives the deterministic tick loop over a loaded SystemSpec.
All structure is immutable; the runtime only mutates the committed ``prev``
snapshot, tick counter, time, ``dt`` and fault flag.

Key types:
- Runtime: Tick loop with step/run/stop and adapter lifecycle
- TickResult: Immutable record of one evaluated tick
- TickEnv: Values visible to formulas during a tick
- source_input: Input precedence (override, binding, sim, hw, default)
"""

from __future__ import annotations

from ._engine import Runtime, TickResult
from ._resolution import TickEnv, source_input

__all__ = ["Runtime", "TickEnv", "TickResult", "source_input"]
