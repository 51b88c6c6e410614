"""Tree-walking evaluator for compiled formulas.

Evaluation never raises for arithmetic reasons: see ``hwml._coercion`` for
the IEEE semantics of ``/``, ``%`` and ``**``.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from hwml._coercion import coerce, divide, format_value, modulo, power, truthy

from ._ast import Binary, Call, Expr, Literal, Reference, Ternary, Unary
from ._functions import DEFAULT_FUNCTIONS

if TYPE_CHECKING:
    from collections.abc import Callable

    from ._functions import FunctionRegistry


def _num(value: Any) -> float | int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    number, _ = coerce(value, "float")
    return number


def _add(left: Any, right: Any) -> Any:
    if isinstance(left, str) or isinstance(right, str):
        return format_value(left) + format_value(right)
    return _num(left) + _num(right)


def _compare(op: str, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        a: Any = left
        b: Any = right
    else:
        a, b = _num(left), _num(right)
    match op:
        case "<":
            return a < b
        case "<=":
            return a <= b
        case ">":
            return a > b
        case ">=":
            return a >= b
        case _:
            msg = f"Unknown comparison operator: {op}"
            raise ValueError(msg)


def _equals(left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    a, b = _num(left), _num(right)
    # NaN != NaN, as in IEEE
    return a == b


def _multiply(left: Any, right: Any) -> Any:
    a, b = _num(left), _num(right)
    try:
        return a * b
    except OverflowError:
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


_ARITHMETIC: dict[str, Callable[[Any, Any], Any]] = {
    "+": _add,
    "-": lambda a, b: _num(a) - _num(b),
    "*": _multiply,
    "/": divide,
    "%": modulo,
    "**": power,
}


def evaluate(  # noqa: C901
    expr: Expr,
    lookup: Callable[[Reference], Any],
    functions: FunctionRegistry | None = None,
) -> Any:
    """Evaluate an AST.

    Args:
        expr: The expression to evaluate.
        lookup: Returns the current value of a reference. Resolution has
            already happened at load time, so this is a table lookup.
        functions: Function registry; defaults to the standard library.

    Returns:
        The value of the expression (number, bool or string).

    """
    registry = functions if functions is not None else DEFAULT_FUNCTIONS

    def _eval(node: Expr) -> Any:  # noqa: PLR0911
        match node:
            case Literal(value=value):
                return value
            case Reference():
                return lookup(node)
            case Unary(op="!", operand=operand):
                return not truthy(_eval(operand))
            case Unary(op="-", operand=operand):
                return -_num(_eval(operand))
            case Binary(op="&&", left=left, right=right):
                return truthy(_eval(left)) and truthy(_eval(right))
            case Binary(op="||", left=left, right=right):
                return truthy(_eval(left)) or truthy(_eval(right))
            case Binary(op="==", left=left, right=right):
                return _equals(_eval(left), _eval(right))
            case Binary(op="!=", left=left, right=right):
                return not _equals(_eval(left), _eval(right))
            case Binary(op="<" | "<=" | ">" | ">=" as op, left=left, right=right):
                return _compare(op, _eval(left), _eval(right))
            case Binary(op=op, left=left, right=right):
                return _ARITHMETIC[op](_eval(left), _eval(right))
            case Ternary(condition=condition, then=then, otherwise=otherwise):
                return _eval(then) if truthy(_eval(condition)) else _eval(otherwise)
            case Call(name=name, args=args):
                definition = registry.get(name)
                if definition is None:
                    msg = f"Unknown function '{name}'"
                    raise KeyError(msg)
                return definition.fn(*(_eval(arg) for arg in args))
            case _:
                msg = f"Unknown expression node: {type(node)}"
                raise TypeError(msg)

    return _eval(expr)
