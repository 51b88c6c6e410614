"""Module resolution: expand templates, parameters and imports into an arena.

The document's module tree is flattened into a list of ``ModuleInstance``
records. Parent links are plain indices into that list, used only to walk
outwards during scope lookup.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import TYPE_CHECKING, Any

from ._coercion import canonical_type, coerce
from ._errors import CyclicDependencyError, MissingParameterError, SchemaError, UnresolvedReferenceError
from ._path import ComponentPath

if TYPE_CHECKING:
    from ._models import ComponentDef, DocumentDef, ParamDef, ScopeDef

logger = logging.getLogger(__name__)

ROOT = 0
PARAM_REF_PREFIX = "$"


class BindOrigin(StrEnum):
    """Where an input binding was declared, in increasing precedence."""

    INLINE = auto()  # ``bind``/``source`` on the input port
    MODULE_BIND = auto()  # ``bind`` of a ``_modules`` entry
    WIRING = auto()  # ``_wiring`` of the declaring module
    ROOT_WIRING = auto()  # ``_wiring`` of the root scope

    @property
    def rank(self) -> int:
        return list(BindOrigin).index(self)


@dataclass(frozen=True, slots=True)
class Binding:
    """A declared connection into an input, before resolution.

    Attributes:
        target: The input reference, e.g. ``ctrl.setpoint``.
        target_scope: Instance index in which ``target`` resolves.
        source: The source reference, e.g. ``sensor.value``.
        source_scope: Instance index in which ``source`` resolves.
        origin: Which declaration produced the binding.
        transform: Optional formula applied to the incoming ``value``.
        target_component: Component owning the input for inline bindings.

    """

    target: str
    target_scope: int
    source: str
    source_scope: int
    origin: BindOrigin
    transform: str | int | float | bool | None = None
    target_component: str | None = None


@dataclass(frozen=True, slots=True)
class ModuleInstance:
    """One concrete instantiation of a module.

    Attributes:
        index: Position in the arena.
        path: Instance path (``plant``, ``plant/pid``); empty for the root scope.
        template: The module name the instance was created from; None for the root.
        parent: Index of the enclosing instance; None for the root scope.
        scope: The reserved declarations (``_params``, ``_imports`` ...).
        components: Component definitions, shared with the template.
        params: Parameter values after substitution.
        imports: Import alias -> module name.
        import_paths: Module names imported by path.
        children: ``_modules`` alias (or nested module name) -> instance index.

    """

    index: int
    path: str
    template: str | None
    parent: int | None
    scope: ScopeDef
    components: Mapping[str, ComponentDef]
    params: Mapping[str, Any]
    imports: Mapping[str, str] = field(default_factory=dict)
    import_paths: tuple[str, ...] = ()
    children: dict[str, int] = field(default_factory=dict)

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def label(self) -> str:
        """Human readable name for messages."""
        return self.path or "<root>"

    def component_path(self, name: str) -> ComponentPath:
        return ComponentPath(self.path, name)


@dataclass(frozen=True, slots=True)
class ModuleArena:
    """All module instances of a document, in declaration order."""

    instances: tuple[ModuleInstance, ...]
    templates: frozenset[str]
    bindings: tuple[Binding, ...]
    _by_path: dict[str, int] = field(default_factory=dict)

    @property
    def root(self) -> ModuleInstance:
        return self.instances[ROOT]

    def __getitem__(self, index: int) -> ModuleInstance:
        return self.instances[index]

    def __len__(self) -> int:
        return len(self.instances)

    def __iter__(self) -> Iterator[ModuleInstance]:
        return iter(self.instances)

    def find(self, path: str) -> ModuleInstance | None:
        """Look up an instance by its instance path."""
        index = self._by_path.get(path.strip("/"))
        return None if index is None else self.instances[index]

    def parent_of(self, instance: ModuleInstance) -> ModuleInstance | None:
        return None if instance.parent is None else self.instances[instance.parent]

    def lineage(self, instance: ModuleInstance) -> Iterator[ModuleInstance]:
        """Yield the instance and then its ancestors up to the root scope."""
        current: ModuleInstance | None = instance
        while current is not None:
            yield current
            current = self.parent_of(current)

    def component_paths(self) -> Iterator[ComponentPath]:
        """Every component, in declaration order."""
        for instance in self.instances:
            for name in instance.components:
                yield instance.component_path(name)


def _is_template(name: str, document: DocumentDef, used: set[str]) -> bool:
    return bool(document.module_defs[name].params) or name in used


def _used_modules(document: DocumentDef) -> set[str]:
    """Module names that appear as a ``use`` target anywhere in the document."""
    names = set(document.module_defs)
    used: set[str] = set()
    scopes: list[ScopeDef] = [document, *document.module_defs.values()]
    for scope in scopes:
        for entry in scope.modules.values():
            target = scope.imports.aliases.get(entry.use, entry.use)
            if target in names:
                used.add(target)
    return used


def _nesting_parent(name: str, roots: Mapping[str, int]) -> int:
    """Index of the closest root instance whose name prefixes ``name``."""
    head = name
    while "/" in head:
        head = head.rpartition("/")[0]
        if head in roots:
            return roots[head]
    return ROOT


class _ArenaBuilder:
    def __init__(self, document: DocumentDef) -> None:
        self.document = document
        self.instances: list[ModuleInstance] = []
        self.bindings: list[Binding] = []
        self.by_path: dict[str, int] = {}
        self.used = _used_modules(document)

    # -- scopes -------------------------------------------------------------

    def _imports(self, scope: ScopeDef, where: str) -> tuple[dict[str, str], tuple[str, ...]]:
        modules = self.document.module_defs
        for alias, target in scope.imports.aliases.items():
            if target not in modules:
                msg = f"Import alias '{alias}' in {where} names unknown module '{target}'"
                raise SchemaError(msg)
        for target in scope.imports.paths:
            if target not in modules:
                msg = f"Import in {where} names unknown module '{target}'"
                raise SchemaError(msg)
        return dict(scope.imports.aliases), tuple(scope.imports.paths)

    def _add(  # noqa: PLR0913
        self,
        *,
        path: str,
        template: str | None,
        parent: int | None,
        scope: ScopeDef,
        components: Mapping[str, ComponentDef],
        params: Mapping[str, Any],
    ) -> ModuleInstance:
        if path in self.by_path:
            msg = f"Duplicate module instance path '{path}'"
            raise SchemaError(msg)
        imports, import_paths = self._imports(scope, path or "<root>")
        instance = ModuleInstance(
            index=len(self.instances),
            path=path,
            template=template,
            parent=parent,
            scope=scope,
            components=components,
            params=params,
            imports=imports,
            import_paths=import_paths,
        )
        self.instances.append(instance)
        self.by_path[path] = instance.index
        for name, component in components.items():
            for port, spec in component.inputs.items():
                if spec.binding is not None:
                    self.bindings.append(
                        Binding(
                            target=f"{name}.{port}",
                            target_scope=instance.index,
                            source=spec.binding,
                            source_scope=instance.index,
                            origin=BindOrigin.INLINE,
                            target_component=name,
                        ),
                    )
        return instance

    def _wiring(self, instance: ModuleInstance) -> None:
        origin = BindOrigin.ROOT_WIRING if instance.is_root else BindOrigin.WIRING
        for wire in instance.scope.wiring:
            self.bindings.append(
                Binding(
                    target=wire.to,
                    target_scope=instance.index,
                    source=wire.from_,
                    source_scope=instance.index,
                    origin=origin,
                    transform=wire.transform,
                ),
            )

    # -- parameters ---------------------------------------------------------

    def _lookup_param(self, name: str, scope_index: int) -> tuple[bool, Any]:
        index: int | None = scope_index
        while index is not None:
            instance = self.instances[index]
            if name in instance.params:
                return True, instance.params[name]
            index = instance.parent
        return False, None

    def _param_value(self, name: str, spec: ParamDef, value: Any, where: str) -> Any:
        try:
            type_name = canonical_type(spec.type)
        except ValueError as e:
            msg = f"Parameter '{name}' of {where}: {e}"
            raise SchemaError(msg) from e
        coerced, ok = coerce(value, type_name)
        if not ok:
            msg = f"Parameter '{name}' of {where}: cannot convert {value!r} to {spec.type}"
            raise SchemaError(msg)
        return coerced

    def _bind_params(self, template: str, config: Mapping[str, Any], instance_path: str, scope_index: int) -> dict[str, Any]:
        declared = self.document.module_defs[template].params
        unknown = sorted(set(config) - set(declared))
        if unknown:
            msg = f"Unknown parameter(s) {unknown} in config of '{instance_path}' (module '{template}')"
            raise SchemaError(msg)

        params: dict[str, Any] = {}
        for name, spec in declared.items():
            if name in config:
                raw = config[name]
                if isinstance(raw, str) and raw.startswith(PARAM_REF_PREFIX):
                    found, raw = self._lookup_param(raw[len(PARAM_REF_PREFIX) :], scope_index)
                    if not found:
                        raise UnresolvedReferenceError(config[name], f"{instance_path} config")
                value = raw
            elif spec.required:
                raise MissingParameterError(name, instance_path, template)
            else:
                value = spec.default
            params[name] = self._param_value(name, spec, value, f"'{instance_path}'")
        return params

    # -- instantiation ------------------------------------------------------

    def _resolve_use(self, use: str, scope: ModuleInstance) -> str:
        target = scope.imports.get(use, use)
        if target not in self.document.module_defs:
            msg = f"'_modules' of {scope.label} uses unknown module '{use}'"
            raise SchemaError(msg)
        return target

    def _instantiate_children(self, instance: ModuleInstance, stack: list[str]) -> None:
        for alias, entry in instance.scope.modules.items():
            template = self._resolve_use(entry.use, instance)
            if template in stack:
                cycle = [*stack[stack.index(template) :], template]
                raise CyclicDependencyError(cycle, "module")
            path = f"{instance.path}/{alias}" if instance.path else alias
            params = self._bind_params(template, entry.config, path, instance.index)
            definition = self.document.module_defs[template]
            child = self._add(
                path=path,
                template=template,
                parent=instance.index,
                scope=definition,
                components=definition.components,
                params=params,
            )
            instance.children[alias] = child.index
            for target, source in entry.bind.items():
                self.bindings.append(
                    Binding(
                        target=target,
                        target_scope=child.index,
                        source=source,
                        source_scope=instance.index,
                        origin=BindOrigin.MODULE_BIND,
                    ),
                )
            logger.debug(f"Instantiated '{template}' as '{path}'")
            self._instantiate_children(child, [*stack, template])
            self._wiring(child)

    def build(self) -> ModuleArena:
        document = self.document
        root_params: dict[str, Any] = {}
        for name, spec in document.params.items():
            if spec.required:
                raise MissingParameterError(name, "<root>", "<root>")
            root_params[name] = self._param_value(name, spec, spec.default, "the root scope")
        root = self._add(path="", template=None, parent=None, scope=document, components={}, params=root_params)

        roots: dict[str, int] = {}
        # Enclosing modules first; a stable sort keeps declaration order per depth
        names = sorted(
            (name for name in document.module_defs if not _is_template(name, document, self.used)),
            key=lambda name: name.count("/"),
        )
        for name in names:
            definition = document.module_defs[name]
            parent = self.instances[_nesting_parent(name, roots)]
            instance = self._add(
                path=name,
                template=name,
                parent=parent.index,
                scope=definition,
                components=definition.components,
                params={},
            )
            # Addressable from the enclosing scope like a ``_modules`` child
            alias = name[len(parent.path) + 1 :] if parent.path else name
            parent.children.setdefault(alias, instance.index)
            roots[name] = instance.index
            self._instantiate_children(instance, [name])
            self._wiring(instance)

        self._instantiate_children(root, [])
        self._wiring(root)

        return ModuleArena(
            instances=tuple(self.instances),
            templates=frozenset(n for n in document.module_defs if _is_template(n, document, self.used)),
            bindings=tuple(self.bindings),
            _by_path=dict(self.by_path),
        )


def resolve_modules(document: DocumentDef) -> ModuleArena:
    """Expand a document's modules into a closed set of instances.

    Args:
        document: The validated document.

    Returns:
        The module arena. Index 0 is the root scope.

    Raises:
        SchemaError: On unknown modules, imports or config keys.
        MissingParameterError: If a required parameter is not supplied.
        CyclicDependencyError: If a module instantiates itself, directly or not.
        UnresolvedReferenceError: If a ``$name`` config value names no parameter.

    """
    arena = _ArenaBuilder(document).build()
    logger.debug(f"Resolved {len(arena) - 1} module instance(s) from {len(arena.templates)} template(s)")
    return arena
