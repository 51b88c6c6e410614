"""Reference resolution: map textual references onto concrete entities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ._errors import InvalidStateReferenceError, SchemaError, UnresolvedReferenceError
from ._path import ComponentPath, EntityKind, EntityPath, RefPath

if TYPE_CHECKING:
    from ._models import ComponentDef
    from ._modules import ModuleArena, ModuleInstance

BUILTINS = ("dt", "time", "tick", "fault")


@dataclass(frozen=True, slots=True)
class Scope:
    """Where a reference is written.

    ``component`` is None for module-level text such as ``_wiring`` entries
    and simulation bindings.
    """

    instance: int
    component: str | None = None


@dataclass(frozen=True, slots=True)
class Entity:
    """A resolved reference.

    Attributes:
        kind: What the reference points at.
        component: The owning component; None for parameters and builtins.
        name: Entity name (node, port, parameter or builtin name).
        value: The substituted value of a parameter.

    """

    kind: EntityKind
    component: ComponentPath | None
    name: str
    value: Any = None

    @property
    def path(self) -> EntityPath | None:
        if self.component is None:
            return None
        return EntityPath(self.component, self.kind, self.name)

    @property
    def is_constant(self) -> bool:
        return self.kind is EntityKind.PARAM


class ReferenceResolver:
    """Resolves references against a module arena.

    Search order for a reference written in component ``C`` of module ``M``:

    1. a bare name: node, input or output of ``C``, then a parameter of
       ``M`` or of its enclosing modules (closest first), then a builtin
       (``dt``, ``time``, ``tick``, ``fault``);
    2. ``comp.port``: an output (or node) of a component of ``M``;
    3. ``child.comp.port``: a ``_modules`` child instance of ``M``;
    4. ``alias.comp.port``: an import alias of ``M``, then an import path;
    5. ``../rest``: ``rest`` resolved in the parent module;
    6. ``/path/to/module.comp.port``: an absolute instance path.
    """

    def __init__(self, arena: ModuleArena) -> None:
        self.arena = arena

    def resolve(self, ref: RefPath, scope: Scope, owner: str) -> Entity:
        """Resolve a reference.

        Args:
            ref: The parsed reference.
            scope: Where the reference is written.
            owner: Name of the formula's owner, used in error messages.

        Returns:
            The entity the reference names.

        Raises:
            UnresolvedReferenceError: If nothing matches.
            InvalidStateReferenceError: If a ``prev.`` reference does not name a
                node declared ``state: true``.

        """
        if not ref.prev:
            return self._resolve(ref, scope, owner)

        plain = ref.without_prev()
        entity = self._resolve(plain, scope, owner)
        if entity.kind is not EntityKind.NODE:
            raise InvalidStateReferenceError(str(plain), owner, f"'{plain}' is a {entity.kind}, not a node")
        if not self.component_def(entity.component).nodes[entity.name].state:  # type: ignore[arg-type]
            raise InvalidStateReferenceError(str(plain), owner, f"node '{entity.name}' is not declared 'state: true'")
        return entity

    def resolve_input(self, text: str, scope: Scope, owner: str) -> Entity:
        """Resolve the target of a binding, which must name an input port.

        Raises:
            UnresolvedReferenceError: If the text does not name an input.

        """
        ref = parse_reference(text, owner)
        if ref.prev:
            msg = f"Binding target in {owner} cannot be a prev. reference: {text}"
            raise SchemaError(msg)
        instance = self.arena[scope.instance]
        if ref.module is not None:
            found = self.arena.find(ref.module)
            if found is None:
                raise UnresolvedReferenceError(text, owner, f"no module instance '{ref.module}'")
            instance = found
        for _ in range(ref.up):
            parent = self.arena.parent_of(instance)
            if parent is None:
                raise UnresolvedReferenceError(text, owner, "'../' walks above the root scope")
            instance = parent
        return self._in_module(instance, ref.parts, ref, owner, inputs=True)

    def component_def(self, path: ComponentPath) -> ComponentDef:
        instance = self.arena.find(path.instance)
        if instance is None or path.component not in instance.components:
            msg = f"Unknown component '{path}'"
            raise KeyError(msg)
        return instance.components[path.component]

    # -- search steps --------------------------------------------------------

    def _resolve(self, ref: RefPath, scope: Scope, owner: str) -> Entity:
        instance = self.arena[scope.instance]

        if ref.module is not None:
            target = self.arena.find(ref.module)
            if target is None:
                raise UnresolvedReferenceError(str(ref), owner, f"no module instance '{ref.module}'")
            return self._in_module(target, ref.parts, ref, owner)

        if ref.up:
            for _ in range(ref.up):
                parent = self.arena.parent_of(instance)
                if parent is None:
                    raise UnresolvedReferenceError(str(ref), owner, "'../' walks above the root scope")
                instance = parent
            if len(ref.parts) == 1:
                found = self._param(instance, ref.parts[0])
                if found is None:
                    raise UnresolvedReferenceError(str(ref), owner, f"no parameter '{ref.parts[0]}' in {instance.label}")
                return found
            return self._in_module(instance, ref.parts, ref, owner)

        if len(ref.parts) == 1:
            return self._local(instance, scope.component, ref, owner)

        if scope.component is not None and ref.parts[0] == scope.component and len(ref.parts) == 2:  # noqa: PLR2004
            # ``self.name`` style reference to the enclosing component
            found = self._member(instance, scope.component, ref.parts[1], include_inputs=True)
            if found is not None:
                return found
        return self._in_module(instance, ref.parts, ref, owner)

    def _local(self, instance: ModuleInstance, component: str | None, ref: RefPath, owner: str) -> Entity:
        name = ref.parts[0]
        if component is not None:
            found = self._member(instance, component, name, include_inputs=True, nodes_first=True)
            if found is not None:
                return found
        # Parameters are visible from nested instances, closest scope first
        for enclosing in self.arena.lineage(instance):
            param = self._param(enclosing, name)
            if param is not None:
                return param
        if name in BUILTINS:
            return Entity(EntityKind.BUILTIN, None, name)
        raise UnresolvedReferenceError(str(ref), owner)

    def _param(self, instance: ModuleInstance, name: str) -> Entity | None:
        if name in instance.params:
            return Entity(EntityKind.PARAM, None, name, instance.params[name])
        return None

    def _member(
        self,
        instance: ModuleInstance,
        component: str,
        name: str,
        *,
        include_inputs: bool = False,
        nodes_first: bool = False,
    ) -> Entity | None:
        definition = instance.components.get(component)
        if definition is None:
            return None
        path = instance.component_path(component)
        if nodes_first:
            kinds = [(EntityKind.NODE, definition.nodes), (EntityKind.INPUT, definition.inputs), (EntityKind.OUTPUT, definition.outputs)]
        else:
            kinds = [(EntityKind.OUTPUT, definition.outputs), (EntityKind.NODE, definition.nodes)]
            if include_inputs:
                kinds.append((EntityKind.INPUT, definition.inputs))
        for kind, members in kinds:
            if name in members:
                return Entity(kind, path, name)
        return None

    def _in_module(
        self,
        instance: ModuleInstance,
        parts: tuple[str, ...],
        ref: RefPath,
        owner: str,
        *,
        inputs: bool = False,
    ) -> Entity:
        head, rest = parts[0], parts[1:]
        if not rest:
            raise UnresolvedReferenceError(str(ref), owner, f"'{head}' must be followed by '.name'")

        if head in instance.components:
            if len(rest) == 1:
                if inputs:
                    if rest[0] in instance.components[head].inputs:
                        return Entity(EntityKind.INPUT, instance.component_path(head), rest[0])
                else:
                    found = self._member(instance, head, rest[0])
                    if found is not None:
                        return found
            wanted = "input" if inputs else "output or node"
            raise UnresolvedReferenceError(
                str(ref),
                owner,
                f"component '{instance.component_path(head)}' has no {wanted} '{'.'.join(rest)}'",
            )

        if head in instance.children:
            return self._in_module(self.arena[instance.children[head]], rest, ref, owner, inputs=inputs)

        imported = instance.imports.get(head)
        if imported is None and head in instance.import_paths:
            imported = head
        if imported is not None:
            target = self.arena.find(imported)
            if target is None:
                raise UnresolvedReferenceError(
                    str(ref),
                    owner,
                    f"imported module '{imported}' is a template; instantiate it with '_modules'",
                )
            return self._in_module(target, rest, ref, owner, inputs=inputs)

        raise UnresolvedReferenceError(str(ref), owner, f"nothing named '{head}' in {instance.label}")


def parse_reference(text: str, owner: str) -> RefPath:
    """Parse a reference written outside a formula (bindings, wiring).

    Raises:
        SchemaError: If the text is not a valid reference.

    """
    try:
        return RefPath.parse(text)
    except ValueError as e:
        msg = f"Malformed reference in {owner}: {e}"
        raise SchemaError(msg) from e
