"""Tokenizer for the formula grammar."""

from __future__ import annotations

import re
from dataclasses import dataclass

from hwml._errors import FormulaSyntaxError


@dataclass(frozen=True, slots=True)
class Token:
    kind: str
    value: str
    start: int
    end: int


# Tried in order; the longest operators come first.
_TOKEN_RE = re.compile(
    r"""
    (?P<SKIP>[ \t\r\n]+)
  | (?P<NUMBER>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<STRING>"(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')
  | (?P<IDENT>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<OP>\*\*|==|!=|<=|>=|&&|\|\||[+\-*/%<>!?:(),.])
  | (?P<MISMATCH>.)
    """,
    re.VERBOSE,
)

# Only valid where an operand is expected, so they never shadow division.
_PARENT_RE = re.compile(r"(?:\.\./)+")
_MODULE_PATH_RE = re.compile(r"/[A-Za-z_][A-Za-z0-9_\-]*(?:/[A-Za-z_][A-Za-z0-9_\-]*)*")

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'"}

KEYWORDS = frozenset({"true", "false"})


def _unescape(body: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            out.append(_ESCAPES.get(body[i + 1], body[i + 1]))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _ends_operand(token: Token | None) -> bool:
    if token is None:
        return False
    if token.kind in {"NUMBER", "STRING", "IDENT", "BOOL"}:
        return True
    return token.kind == "OP" and token.value == ")"


def tokenize(source: str) -> list[Token]:
    """Split a formula into tokens, ending with an ``EOF`` token.

    Raises:
        FormulaSyntaxError: On characters that cannot start a token.

    """
    tokens: list[Token] = []
    pos = 0
    while pos < len(source):
        last = tokens[-1] if tokens else None
        if not _ends_operand(last):
            m = _PARENT_RE.match(source, pos)
            if m:
                tokens.append(Token("PARENT", m.group(0), m.start(), m.end()))
                pos = m.end()
                continue
            m = _MODULE_PATH_RE.match(source, pos)
            if m:
                tokens.append(Token("MODULE", m.group(0)[1:], m.start(), m.end()))
                pos = m.end()
                continue

        m = _TOKEN_RE.match(source, pos)
        if m is None:
            msg = f"Unexpected character {source[pos]!r}"
            raise FormulaSyntaxError(msg, source, (pos, pos + 1))
        kind = m.lastgroup or "MISMATCH"
        text = m.group(0)
        if kind == "MISMATCH":
            msg = f"Unexpected character {text!r}"
            raise FormulaSyntaxError(msg, source, (m.start(), m.end()))
        if kind == "STRING":
            tokens.append(Token(kind, _unescape(text[1:-1]), m.start(), m.end()))
        elif kind == "IDENT" and text in KEYWORDS:
            tokens.append(Token("BOOL", text, m.start(), m.end()))
        elif kind != "SKIP":
            tokens.append(Token(kind, text, m.start(), m.end()))
        pos = m.end()

    tokens.append(Token("EOF", "", len(source), len(source)))
    return tokens
