"""Recursive descent parser for formulas.

Precedence, loosest first::

    ternary  : or ("?" ternary ":" ternary)?
    or       : and ("||" and)*
    and      : equality ("&&" equality)*
    equality : comparison (("==" | "!=") comparison)*
    comparison: term (("<" | "<=" | ">" | ">=") term)*
    term     : factor (("+" | "-") factor)*
    factor   : exponent (("*" | "/" | "%") exponent)*
    exponent : unary ("**" exponent)?
    unary    : ("!" | "-") unary | call
    call     : primary ("(" arguments? ")")?
    primary  : NUMBER | STRING | BOOL | reference | "(" ternary ")"
    reference: ("prev" ".")? ("../"* | MODULE ".")? IDENT ("." IDENT)*
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NoReturn

from hwml._errors import FormulaSyntaxError
from hwml._path import RefPath

from ._ast import Binary, Call, Expr, Literal, Reference, Span, Ternary, Unary, iter_references
from ._functions import DEFAULT_FUNCTIONS
from ._lexer import Token, tokenize

if TYPE_CHECKING:
    from collections.abc import Callable

    from ._functions import FunctionRegistry


@dataclass(frozen=True, slots=True)
class FormulaReferences:
    """Free references of a formula, partitioned by flavour.

    Attributes:
        local: Bare identifiers (same-component nodes/inputs, parameters, builtins).
        prev: ``prev.``-qualified references.
        qualified: Dotted or module-path references to other scopes.

    """

    local: tuple[Reference, ...] = ()
    prev: tuple[Reference, ...] = ()
    qualified: tuple[Reference, ...] = ()

    def all(self) -> tuple[Reference, ...]:
        return self.local + self.prev + self.qualified


@dataclass(frozen=True, slots=True)
class CompiledFormula:
    """A parsed formula: its source, AST and free references."""

    source: str
    ast: Expr
    references: FormulaReferences = field(default_factory=FormulaReferences)


class _Parser:
    def __init__(self, source: str, tokens: list[Token], functions: FunctionRegistry) -> None:
        self.source = source
        self.tokens = tokens
        self.functions = functions
        self.pos = 0

    # -- token helpers ----------------------------------------------------

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != "EOF":
            self.pos += 1
        return token

    def _check(self, *ops: str) -> bool:
        return self.current.kind == "OP" and self.current.value in ops

    def _expect(self, op: str) -> Token:
        if not self._check(op):
            self._fail(f"Expected '{op}'", self.current)
        return self._advance()

    def _fail(self, message: str, token: Token) -> NoReturn:
        end = token.end if token.end > token.start else token.start + 1
        if token.kind == "EOF":
            message = f"{message}, found end of formula"
        raise FormulaSyntaxError(message, self.source, (token.start, end))

    # -- grammar ------------------------------------------------------------

    def parse(self) -> Expr:
        if self.current.kind == "EOF":
            self._fail("Empty formula", self.current)
        expr = self._ternary()
        if self.current.kind != "EOF":
            self._fail(f"Unexpected token '{self.current.value}'", self.current)
        return expr

    def _ternary(self) -> Expr:
        condition = self._or()
        if not self._check("?"):
            return condition
        self._advance()
        then = self._ternary()
        self._expect(":")
        otherwise = self._ternary()
        return Ternary(
            span=condition.span.merge(otherwise.span),
            condition=condition,
            then=then,
            otherwise=otherwise,
        )

    def _left_assoc(self, ops: tuple[str, ...], operand: Callable[[], Expr]) -> Expr:
        left = operand()
        while self._check(*ops):
            op = self._advance().value
            right = operand()
            left = Binary(span=left.span.merge(right.span), op=op, left=left, right=right)
        return left

    def _or(self) -> Expr:
        return self._left_assoc(("||",), self._and)

    def _and(self) -> Expr:
        return self._left_assoc(("&&",), self._equality)

    def _equality(self) -> Expr:
        return self._left_assoc(("==", "!="), self._comparison)

    def _comparison(self) -> Expr:
        return self._left_assoc(("<", "<=", ">", ">="), self._term)

    def _term(self) -> Expr:
        return self._left_assoc(("+", "-"), self._factor)

    def _factor(self) -> Expr:
        return self._left_assoc(("*", "/", "%"), self._exponent)

    def _exponent(self) -> Expr:
        base = self._unary()
        if not self._check("**"):
            return base
        self._advance()
        exponent = self._exponent()
        return Binary(span=base.span.merge(exponent.span), op="**", left=base, right=exponent)

    def _unary(self) -> Expr:
        if self._check("!", "-"):
            token = self._advance()
            operand = self._unary()
            return Unary(span=Span(token.start, operand.span.end), op=token.value, operand=operand)
        return self._call()

    def _call(self) -> Expr:
        start_token = self.current
        expr = self._primary()
        if not self._check("("):
            return expr
        if not isinstance(expr, Reference) or not expr.path.is_local:
            self._fail("Only named functions can be called", self.current)
        name = expr.path.parts[0]

        self._advance()
        args: list[Expr] = []
        if not self._check(")"):
            args.append(self._ternary())
            while self._check(","):
                self._advance()
                args.append(self._ternary())
        close = self._expect(")")

        definition = self.functions.get(name)
        if definition is None:
            self._fail(f"Unknown function '{name}'", start_token)
        elif not definition.accepts(len(args)):
            msg = f"Function '{name}' takes {definition.describe_arity()} argument(s), got {len(args)}"
            raise FormulaSyntaxError(msg, self.source, (start_token.start, close.end))
        return Call(span=Span(start_token.start, close.end), name=name, args=tuple(args))

    def _primary(self) -> Expr:
        token = self.current
        match token.kind:
            case "NUMBER":
                self._advance()
                text = token.value
                is_int = text.isdigit()
                value: float | int = int(text) if is_int else float(text)
                return Literal(span=Span(token.start, token.end), value=value)
            case "STRING":
                self._advance()
                return Literal(span=Span(token.start, token.end), value=token.value)
            case "BOOL":
                self._advance()
                return Literal(span=Span(token.start, token.end), value=token.value == "true")
            case "IDENT" | "PARENT" | "MODULE":
                return self._reference()
            case "OP" if token.value == "(":
                self._advance()
                inner = self._ternary()
                self._expect(")")
                return inner
            case _:
                self._fail(f"Unexpected token '{token.value}'", token)

    def _identifier(self) -> Token:
        if self.current.kind != "IDENT":
            self._fail("Expected a name", self.current)
        return self._advance()

    def _reference(self) -> Reference:
        start = self.current.start
        prev = False
        if self.current.kind == "IDENT" and self.current.value == RefPath.PREV:
            if not (self._peek().kind == "OP" and self._peek().value == "."):
                self._fail("'prev' must be followed by '.name'", self.current)
            prev = True
            self._advance()
            self._advance()

        up = 0
        module: str | None = None
        if self.current.kind == "PARENT":
            up = self._advance().value.count(RefPath.PARENT)
        elif self.current.kind == "MODULE":
            module = self._advance().value
            self._expect(".")

        parts = [self._identifier().value]
        end = self.tokens[self.pos - 1].end
        while self._check(".") and self._peek().kind == "IDENT":
            self._advance()
            parts.append(self._advance().value)
            end = self.tokens[self.pos - 1].end

        path = RefPath(parts=tuple(parts), prev=prev, up=up, module=module)
        return Reference(span=Span(start, end), path=path)


def collect_references(ast: Expr) -> FormulaReferences:
    """Partition the references of an AST into local, prev and qualified."""
    local: list[Reference] = []
    prev: list[Reference] = []
    qualified: list[Reference] = []
    for ref in iter_references(ast):
        if ref.path.prev:
            prev.append(ref)
        elif ref.path.is_local:
            local.append(ref)
        else:
            qualified.append(ref)
    return FormulaReferences(local=tuple(local), prev=tuple(prev), qualified=tuple(qualified))


def parse_formula(source: str, functions: FunctionRegistry | None = None) -> Expr:
    """Parse a formula into an AST.

    Raises:
        FormulaSyntaxError: On malformed input, unknown functions or bad arity.

    """
    registry = functions if functions is not None else DEFAULT_FUNCTIONS
    return _Parser(source, tokenize(source), registry).parse()


def compile_formula(source: str | float | bool, functions: FunctionRegistry | None = None) -> CompiledFormula:  # noqa: FBT001
    """Compile a formula string.

    Numbers and booleans are accepted too and compile to a literal, which
    lets documents write ``"formula": 3`` as well as ``"formula": "3"``.

    Example:
        >>> compiled = compile_formula("max(0, (rawAdc - tare) * calibration)")
        >>> [str(r.path) for r in compiled.references.local]
        ['rawAdc', 'tare', 'calibration']

    """
    if isinstance(source, bool):
        text = "true" if source else "false"
    elif isinstance(source, str):
        text = source
    else:
        text = repr(source)
    ast = parse_formula(text, functions)
    return CompiledFormula(source=text, ast=ast, references=collect_references(ast))
