"""Registry of functions callable from formulas.

Every function is pure and total over numbers: bad domains give NaN and
overflow gives Infinity, mirroring the arithmetic operators.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from hwml._coercion import coerce, truthy


def _num(value: Any) -> float:
    number, _ = coerce(value, "float")
    return number


def _any_nan(values: tuple[float, ...]) -> bool:
    return any(math.isnan(v) for v in values)


def _max(*args: Any) -> float:
    values = tuple(_num(a) for a in args)
    return math.nan if _any_nan(values) else max(values)


def _min(*args: Any) -> float:
    values = tuple(_num(a) for a in args)
    return math.nan if _any_nan(values) else min(values)


def _clamp(x: Any, lo: Any, hi: Any) -> float:
    value, low, high = _num(x), _num(lo), _num(hi)
    if _any_nan((value, low, high)):
        return math.nan
    return min(max(value, low), high)


def _lowpass(x: Any, prev_x: Any, alpha: Any) -> float:
    """First-order IIR filter step: ``prevX + alpha * (x - prevX)``."""
    current, previous = _num(x), _num(prev_x)
    return previous + _num(alpha) * (current - previous)


def _guard(fn: Callable[[float], float]) -> Callable[[Any], float]:
    def wrapper(x: Any) -> float:
        try:
            return fn(_num(x))
        except OverflowError:
            return math.inf
        except ValueError:
            return math.nan

    wrapper.__name__ = fn.__name__
    return wrapper


def _log(x: float) -> float:
    if x == 0:
        return -math.inf
    return math.log(x)


def _round(x: Any) -> float:
    value = _num(x)
    if not math.isfinite(value):
        return value
    # Half away from zero
    return math.copysign(math.floor(abs(value) + 0.5), value)


def _floor(x: Any) -> float:
    value = _num(x)
    return float(math.floor(value)) if math.isfinite(value) else value


def _ceil(x: Any) -> float:
    value = _num(x)
    return float(math.ceil(value)) if math.isfinite(value) else value


def _sign(x: Any) -> float:
    value = _num(x)
    if math.isnan(value):
        return math.nan
    return float((value > 0) - (value < 0))


def _atan2(y: Any, x: Any) -> float:
    return math.atan2(_num(y), _num(x))


def _select(condition: Any, when_true: Any, when_false: Any) -> Any:
    return when_true if truthy(condition) else when_false


def _deadband(x: Any, width: Any) -> float:
    value = _num(x)
    return 0.0 if abs(value) < _num(width) else value


def _isnan(x: Any) -> bool:
    return math.isnan(_num(x))


def _isfinite(x: Any) -> bool:
    return math.isfinite(_num(x))


@dataclass(frozen=True, slots=True)
class FunctionDef:
    """A formula function.

    Attributes:
        name: Name used in formulas.
        fn: The implementation; receives evaluated arguments.
        min_args: Minimum number of arguments.
        max_args: Maximum number of arguments, None for variadic.

    """

    name: str
    fn: Callable[..., Any]
    min_args: int
    max_args: int | None

    def accepts(self, n_args: int) -> bool:
        if n_args < self.min_args:
            return False
        return self.max_args is None or n_args <= self.max_args

    def describe_arity(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.max_args == self.min_args:
            return str(self.min_args)
        return f"{self.min_args} to {self.max_args}"


@dataclass(slots=True)
class FunctionRegistry:
    """Maps function names to their definitions."""

    _functions: dict[str, FunctionDef] = field(default_factory=dict)

    def register(
        self,
        name: str,
        fn: Callable[..., Any],
        *,
        min_args: int,
        max_args: int | None = -1,
    ) -> None:
        """Add or replace a function.

        ``max_args=-1`` (the default) means "same as ``min_args``".
        """
        upper = min_args if max_args == -1 else max_args
        self._functions[name] = FunctionDef(name=name, fn=fn, min_args=min_args, max_args=upper)

    def get(self, name: str) -> FunctionDef | None:
        return self._functions.get(name)

    def copy(self) -> FunctionRegistry:
        return FunctionRegistry(dict(self._functions))

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)


def default_registry() -> FunctionRegistry:
    """Build the standard function library."""
    registry = FunctionRegistry()
    registry.register("clamp", _clamp, min_args=3)
    registry.register("max", _max, min_args=1, max_args=None)
    registry.register("min", _min, min_args=1, max_args=None)
    registry.register("abs", _guard(abs), min_args=1)
    registry.register("lowpass", _lowpass, min_args=3)
    registry.register("sqrt", _guard(math.sqrt), min_args=1)
    registry.register("exp", _guard(math.exp), min_args=1)
    registry.register("log", _guard(_log), min_args=1)
    registry.register("sin", _guard(math.sin), min_args=1)
    registry.register("cos", _guard(math.cos), min_args=1)
    registry.register("tan", _guard(math.tan), min_args=1)
    registry.register("atan2", _atan2, min_args=2)
    registry.register("floor", _floor, min_args=1)
    registry.register("ceil", _ceil, min_args=1)
    registry.register("round", _round, min_args=1)
    registry.register("sign", _sign, min_args=1)
    registry.register("select", _select, min_args=3)
    registry.register("deadband", _deadband, min_args=2)
    registry.register("isnan", _isnan, min_args=1)
    registry.register("isfinite", _isfinite, min_args=1)
    return registry


DEFAULT_FUNCTIONS = default_registry()
