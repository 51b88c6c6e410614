"""Formula compiler for hwml.

Formulas are a small side-effect-free expression language. Compilation is
purely syntactic: it produces an AST and the set of free references, but
neither resolves nor evaluates anything.

Key types:
- CompiledFormula: Source, AST and partitioned references
- FunctionRegistry: Open-ended set of callable functions
- compile_formula: Parse a formula string
- evaluate: Evaluate an AST against a reference lookup
"""

from __future__ import annotations

from ._ast import Binary, Call, Expr, Literal, Reference, Span, Ternary, Unary, iter_references
from ._evaluate import evaluate
from ._functions import DEFAULT_FUNCTIONS, FunctionDef, FunctionRegistry, default_registry
from ._lexer import Token, tokenize
from ._parser import CompiledFormula, FormulaReferences, collect_references, compile_formula, parse_formula

__all__ = [
    "DEFAULT_FUNCTIONS",
    "Binary",
    "Call",
    "CompiledFormula",
    "Expr",
    "FormulaReferences",
    "FunctionDef",
    "FunctionRegistry",
    "Literal",
    "Reference",
    "Span",
    "Ternary",
    "Token",
    "Unary",
    "collect_references",
    "compile_formula",
    "default_registry",
    "evaluate",
    "iter_references",
    "parse_formula",
    "tokenize",
]
