"""Identifiers for module instances, components and their entities.

Three path flavours appear in a document:

- ``RefPath``: a raw reference as written in a formula or binding
  (``error``, ``prev.integral``, ``sensor.value``, ``../gain``,
  ``lib/filters.lp.out``), before resolution;
- ``ComponentPath``: a concrete component inside a module instance
  (``plant/pid.ctrl``);
- ``EntityPath``: an input, node or output of a concrete component
  (``plant/pid.ctrl.output``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import ClassVar, Self

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_MODULE_SEGMENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*")


def is_identifier(text: str) -> bool:
    return _IDENT_RE.fullmatch(text) is not None


def is_module_name(text: str) -> bool:
    """Module names are ``/``-separated segments without dots."""
    return all(_MODULE_SEGMENT_RE.fullmatch(seg) for seg in text.split("/"))


@dataclass(slots=True, frozen=True)
class RefPath:
    """An unresolved reference.

    Attributes:
        parts: Dotted identifier parts, e.g. ``("sensor", "value")``.
        prev: True for ``prev.``-qualified references.
        up: Number of leading ``../`` steps.
        module: Absolute module path for ``path/to/module.name`` references.

    """

    parts: tuple[str, ...]
    prev: bool = False
    up: int = 0
    module: str | None = None

    PREV: ClassVar[str] = "prev"
    PARENT: ClassVar[str] = "../"

    @property
    def is_local(self) -> bool:
        """A bare identifier (no prefix, no dots)."""
        return not self.prev and self.up == 0 and self.module is None and len(self.parts) == 1

    @property
    def is_qualified(self) -> bool:
        return not self.prev and not self.is_local

    def without_prev(self) -> RefPath:
        return RefPath(parts=self.parts, up=self.up, module=self.module)

    def __str__(self) -> str:
        dotted = ".".join(self.parts)
        if self.module is not None:
            dotted = f"{self.module}.{dotted}"
        result = self.PARENT * self.up + dotted
        if self.prev:
            result = f"{self.PREV}.{result}"
        return result

    @classmethod
    def parse(cls, text: str) -> Self:
        """Parse a reference written outside a formula.

        Slashes are unambiguous here, so ``path/to/module.comp.port`` needs no
        leading slash (one is accepted).

        Raises:
            ValueError: If the text is not a valid reference.

        """
        s = text.strip()
        prev = False
        if s.startswith(f"{cls.PREV}."):
            prev = True
            s = s[len(cls.PREV) + 1 :]

        up = 0
        while s.startswith(cls.PARENT):
            up += 1
            s = s[len(cls.PARENT) :]

        module: str | None = None
        if "/" in s:
            if up:
                msg = f"Reference cannot mix '../' with an absolute module path: {text}"
                raise ValueError(msg)
            head, _, tail = s.lstrip("/").rpartition("/")
            last_segment, dot, rest = tail.partition(".")
            if not dot:
                msg = f"Module path reference must name an entity after the module: {text}"
                raise ValueError(msg)
            module = f"{head}/{last_segment}" if head else last_segment
            if not is_module_name(module):
                msg = f"Invalid module path '{module}' in reference: {text}"
                raise ValueError(msg)
            s = rest

        parts = tuple(s.split("."))
        if not parts or not all(is_identifier(p) for p in parts):
            msg = f"Invalid reference: {text!r}"
            raise ValueError(msg)
        return cls(parts=parts, prev=prev, up=up, module=module)


@dataclass(slots=True, frozen=True)
class ComponentPath:
    """A component inside a module instance."""

    instance: str
    component: str

    def __str__(self) -> str:
        return f"{self.instance}.{self.component}" if self.instance else self.component


class EntityKind(StrEnum):
    """What a resolved reference points at."""

    INPUT = auto()
    NODE = auto()
    OUTPUT = auto()
    PARAM = auto()
    BUILTIN = auto()


@dataclass(slots=True, frozen=True)
class EntityPath:
    """An input, node or output of a component."""

    component: ComponentPath
    kind: EntityKind
    name: str

    def __str__(self) -> str:
        return f"{self.component}.{self.name}"


def split_entity_path(text: str) -> tuple[str, str, str]:
    """Split ``instance.component.name`` into its three parts.

    Module instance paths never contain dots, so the last two dots separate
    the component and the entity name.

    Raises:
        ValueError: If the text does not have three parts.

    """
    pieces = text.strip().rsplit(".", 2)
    if len(pieces) != 3 or not all(pieces):  # noqa: PLR2004
        msg = f"Expected 'instance.component.name', got: {text!r}"
        raise ValueError(msg)
    instance, component, name = pieces
    return instance, component, name
