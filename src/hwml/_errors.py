"""Exceptions raised while loading an HWML document.

Everything here is a load-time failure: the document is rejected before the
first tick. Runtime problems are reported as diagnostics instead (see
``hwml._diagnostics``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class HwmlError(Exception):
    """Base class for all hwml errors."""


class LoadError(HwmlError):
    """The document cannot be turned into a runnable system."""


class SchemaError(LoadError):
    """The document is structurally malformed."""


class FormulaSyntaxError(LoadError):
    """A formula could not be parsed.

    Attributes:
        source: The formula text.
        span: ``(start, end)`` character offsets of the offending text.
        owner: Where the formula lives (e.g. ``plant.pid.output``), if known.

    """

    def __init__(self, message: str, source: str, span: tuple[int, int], owner: str | None = None) -> None:
        self.reason = message
        self.source = source
        self.span = span
        self.owner = owner
        super().__init__(self._render())

    def _render(self) -> str:
        start, end = self.span
        caret = " " * start + "^" * max(1, end - start)
        where = f" in {self.owner}" if self.owner else ""
        return f"{self.reason}{where} at {start}:{end}\n  {self.source}\n  {caret}"

    def with_owner(self, owner: str) -> FormulaSyntaxError:
        """Return a copy of this error that names the formula's owner."""
        return FormulaSyntaxError(self.reason, self.source, self.span, owner=owner)


class UnresolvedReferenceError(LoadError):
    """A formula or binding names something that does not exist."""

    def __init__(self, identifier: str, owner: str, detail: str = "") -> None:
        self.identifier = identifier
        self.owner = owner
        msg = f"Unresolved reference '{identifier}' in {owner}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class InvalidStateReferenceError(LoadError):
    """A ``prev.`` reference targets something that is not a stateful node."""

    def __init__(self, identifier: str, owner: str, detail: str = "") -> None:
        self.identifier = identifier
        self.owner = owner
        msg = f"Invalid state reference 'prev.{identifier}' in {owner}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class MissingParameterError(LoadError):
    """A module instantiation omitted a required parameter."""

    def __init__(self, parameter: str, instance: str, template: str) -> None:
        self.parameter = parameter
        self.instance = instance
        self.template = template
        msg = f"Missing required parameter '{parameter}' for instance '{instance}' of module '{template}'"
        super().__init__(msg)


class CyclicDependencyError(LoadError):
    """A dependency graph contains a cycle.

    Attributes:
        path: The cycle as an ordered list, starting and ending with the same vertex.
        level: ``"system"``, ``"component"`` or ``"module"``.
        scope: The component or module the cycle lives in, if any.

    """

    def __init__(self, path: Sequence[str], level: str, scope: str | None = None) -> None:
        self.path = list(path)
        self.level = level
        self.scope = scope
        where = f" in {scope}" if scope else ""
        msg = f"Cyclic {level} dependency{where}: {' → '.join(self.path)}"
        super().__init__(msg)


class UnconnectedInputError(LoadError):
    """An input has no default, no binding and no hardware channel."""

    def __init__(self, input_path: str) -> None:
        self.input_path = input_path
        msg = f"Input '{input_path}' has no default, binding or hardware source"
        super().__init__(msg)
