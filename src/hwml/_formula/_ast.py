"""Abstract syntax tree for formulas."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

    from hwml._path import RefPath


@dataclass(frozen=True, slots=True)
class Span:
    """Character offsets ``[start, end)`` into the formula source."""

    start: int
    end: int

    def merge(self, other: Span) -> Span:
        return Span(min(self.start, other.start), max(self.end, other.end))

    def as_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)


@dataclass(frozen=True, slots=True)
class Expr:
    span: Span


@dataclass(frozen=True, slots=True)
class Literal(Expr):
    value: Any


@dataclass(frozen=True, slots=True)
class Reference(Expr):
    path: RefPath


@dataclass(frozen=True, slots=True)
class Unary(Expr):
    op: str
    operand: Expr


@dataclass(frozen=True, slots=True)
class Binary(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class Ternary(Expr):
    condition: Expr
    then: Expr
    otherwise: Expr


@dataclass(frozen=True, slots=True)
class Call(Expr):
    name: str
    args: tuple[Expr, ...]


def iter_references(expr: Expr) -> Iterator[Reference]:
    """Yield every reference in an expression, left to right."""
    match expr:
        case Reference():
            yield expr
        case Unary(operand=operand):
            yield from iter_references(operand)
        case Binary(left=left, right=right):
            yield from iter_references(left)
            yield from iter_references(right)
        case Ternary(condition=condition, then=then, otherwise=otherwise):
            yield from iter_references(condition)
            yield from iter_references(then)
            yield from iter_references(otherwise)
        case Call(args=args):
            for arg in args:
                yield from iter_references(arg)
        case _:
            return
