"""Runtime value policy: type coercion, IEEE arithmetic and range handling.

Formulas never raise at tick time. Division by zero follows IEEE-754, math
domain errors give NaN, and a value that cannot be coerced into a numeric
type becomes NaN.
"""

from __future__ import annotations

import math
from typing import Any

FLOAT_TYPES = frozenset({"float", "number", "double", "real"})
INT_TYPES = frozenset({"int", "integer"})
BOOL_TYPES = frozenset({"bool", "boolean"})
STRING_TYPES = frozenset({"string", "str"})

BASE_TYPES = FLOAT_TYPES | INT_TYPES | BOOL_TYPES | STRING_TYPES


def canonical_type(type_name: str | None) -> str | None:
    """Map a type alias onto one of ``float``, ``int``, ``bool``, ``string``."""
    if type_name is None:
        return None
    name = type_name.lower()
    if name in FLOAT_TYPES:
        return "float"
    if name in INT_TYPES:
        return "int"
    if name in BOOL_TYPES:
        return "bool"
    if name in STRING_TYPES:
        return "string"
    msg = f"Unknown type '{type_name}'"
    raise ValueError(msg)


def zero_value(type_name: str | None) -> Any:
    """Return the zero of a type (``0.0`` for untyped values)."""
    match canonical_type(type_name):
        case "int":
            return 0
        case "bool":
            return False
        case "string":
            return ""
        case _:
            return 0.0


def _parse_number(text: str) -> float | None:
    stripped = text.strip()
    if stripped.lower() in {"true", "false"}:
        return 1.0 if stripped.lower() == "true" else 0.0
    try:
        return float(stripped)
    except ValueError:
        return None


def format_value(value: Any) -> str:
    """Render a value the way formulas see it as a string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    return str(value)


def coerce(value: Any, type_name: str | None) -> tuple[Any, bool]:  # noqa: C901, PLR0911, PLR0912
    """Coerce a value into a declared type on a best-effort basis.

    Args:
        value: The value produced by a formula, input or binding.
        type_name: The declared type, or None to keep the value as is.

    Returns:
        ``(coerced, ok)``. ``ok`` is False when the coercion failed and a
        fallback (NaN for numeric targets) was substituted.

    """
    target = canonical_type(type_name)
    if target is None:
        return value, True

    if target == "string":
        return (value if isinstance(value, str) else format_value(value)), True

    if target == "bool":
        if isinstance(value, bool):
            return value, True
        if isinstance(value, (int, float)):
            # NaN is nonzero
            return value != 0, True
        if isinstance(value, str):
            number = _parse_number(value)
            if number is not None:
                return number != 0, True
            return bool(value), False
        return bool(value), False

    # Numeric targets
    number: float | None
    if isinstance(value, bool):
        number = 1.0 if value else 0.0
    elif isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        number = _parse_number(value)
    else:
        number = None

    if number is None:
        return math.nan, False
    if target == "int" and math.isfinite(number):
        return int(number), True
    # NaN and infinities have no integer form and stay floats
    return number, True


def truthy(value: Any) -> bool:
    """Truth value used by ``!``, ``&&``, ``||`` and ``?:``. NaN is false."""
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def is_fault_value(value: Any) -> bool:
    """True for NaN and infinite floats."""
    return isinstance(value, float) and not math.isfinite(value)


def apply_constraints(
    value: Any,
    value_range: tuple[float, float] | None,
    *,
    clamp: bool,
) -> tuple[Any, bool]:
    """Apply a declared range to a value.

    Args:
        value: The coerced value.
        value_range: ``(lo, hi)`` bounds, or None if unconstrained.
        clamp: Saturate into range instead of only reporting.

    Returns:
        ``(value, violated)``. With ``clamp`` the value is saturated and
        ``violated`` is False; without it the value is returned unchanged and
        ``violated`` tells the caller to warn.

    """
    if value_range is None or isinstance(value, (str, bool)):
        return value, False
    if not isinstance(value, (int, float)) or (isinstance(value, float) and math.isnan(value)):
        return value, False

    lo, hi = value_range
    if lo <= value <= hi:
        return value, False
    if clamp:
        saturated = min(max(value, lo), hi)
        if isinstance(value, int):
            # Round toward the inside of the range; keep the float if no integer fits
            whole = math.ceil(saturated) if value < lo else math.floor(saturated)
            if lo <= whole <= hi:
                saturated = whole
        return saturated, False
    return value, True


# Arithmetic with IEEE-754 semantics -----------------------------------------


def _as_number(value: Any) -> float:
    number, _ = coerce(value, "float")
    return number


def divide(a: Any, b: Any) -> float:
    """Divide without raising on zero divisors."""
    x = _as_number(a)
    y = _as_number(b)
    if y == 0:
        if x == 0 or math.isnan(x):
            return math.nan
        return math.copysign(math.inf, x) * math.copysign(1.0, y)
    return x / y


def modulo(a: Any, b: Any) -> float:
    """Remainder with the sign of the dividend; ``x % 0`` is NaN."""
    x = _as_number(a)
    y = _as_number(b)
    if y == 0 or math.isinf(x) or math.isnan(x) or math.isnan(y):
        return math.nan
    return math.fmod(x, y)


def power(a: Any, b: Any) -> float:
    """Exponentiation; domain errors give NaN and overflow gives Infinity."""
    x = _as_number(a)
    y = _as_number(b)
    try:
        return math.pow(x, y)
    except OverflowError:
        if x < 0 and y.is_integer() and int(y) % 2 == 1:
            return -math.inf
        return math.inf
    except ValueError:
        # 0 ** negative is +/-Infinity in IEEE; negative ** fractional is NaN
        if x == 0:
            return math.inf
        return math.nan
