"""Build a SystemSpec from a validated document.

The pipeline is: module resolution -> formula compilation and reference
resolution -> binding (fan-in) resolution -> internal node graphs -> system
graph. Both graph levels are checked for cycles; any cycle aborts the load.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, cast

from hwml._adapter import channel_name
from hwml._coercion import canonical_type, coerce, zero_value
from hwml._diagnostics import Diagnostic, DiagnosticKind, Severity
from hwml._errors import CyclicDependencyError, FormulaSyntaxError, SchemaError, UnconnectedInputError
from hwml._formula import DEFAULT_FUNCTIONS, FunctionRegistry, compile_formula
from hwml._graph import DependencyGraph
from hwml._models import DocumentDef, parse_document
from hwml._modules import ROOT, Binding, resolve_modules
from hwml._path import ComponentPath, EntityKind, EntityPath
from hwml._resolve import Entity, ReferenceResolver, Scope, parse_reference

from ._graph_spec import SystemSpec
from ._node_spec import ComponentSpec, Constraint, FormulaSpec, InputSource, InputSpec, NodeSpec, Slot, SlotKind

if TYPE_CHECKING:
    from hwml._formula import Reference
    from hwml._models import ComponentDef, InputDef, NodeDef, OutputDef, TypeDef
    from hwml._modules import ModuleArena, ModuleInstance

logger = logging.getLogger(__name__)

INCOMING = "value"


def _slot(entity: Entity, *, previous: bool = False) -> Slot:
    match entity.kind:
        case EntityKind.PARAM:
            return Slot(SlotKind.CONSTANT, value=entity.value)
        case EntityKind.BUILTIN:
            return Slot(SlotKind.BUILTIN, value=entity.name)
        case _:
            return Slot(SlotKind.PREVIOUS if previous else SlotKind.CURRENT, path=entity.path)


def resolve_constraint(
    decl: InputDef | NodeDef | OutputDef,
    types: Mapping[str, TypeDef],
    owner: str,
) -> Constraint:
    """Merge a declaration with its named type and normalise ``clamp``.

    Raises:
        SchemaError: For unknown types or a ``clamp`` without a range.

    """
    type_name = decl.type
    units, value_range, clamp = decl.units, decl.range, decl.clamp
    if type_name is not None and type_name in types:
        named = types[type_name]
        type_name = named.type
        units = units if units is not None else named.units
        value_range = value_range if value_range is not None else named.range
        clamp = clamp if clamp is not None else named.clamp

    try:
        canonical = canonical_type(type_name)
    except ValueError as e:
        msg = f"Unknown type '{type_name}' for {owner}"
        raise SchemaError(msg) from e

    if isinstance(clamp, tuple):
        value_range, clamp = clamp, True
    if clamp and value_range is None:
        msg = f"'clamp' on {owner} needs a 'range'"
        raise SchemaError(msg)
    return Constraint(type=canonical, units=units, range=value_range, clamp=bool(clamp))


class _SystemBuilder:
    def __init__(self, document: DocumentDef, functions: FunctionRegistry) -> None:
        self.document = document
        self.config = document.config
        self.functions = functions
        self.arena: ModuleArena = resolve_modules(document)
        self.resolver = ReferenceResolver(self.arena)
        self.diagnostics: list[Diagnostic] = []
        self.system_edges: list[tuple[ComponentPath, ComponentPath]] = []
        self.node_edges: dict[ComponentPath, list[tuple[EntityPath, EntityPath]]] = {}
        self.node_graphs: dict[ComponentPath, DependencyGraph[EntityPath]] = {}

    # -- formulas -------------------------------------------------------------

    def _formula(self, source: str | float | bool, scope: Scope, owner: str, *, incoming: bool = False) -> FormulaSpec:  # noqa: FBT001
        try:
            compiled = compile_formula(source, self.functions)
        except FormulaSyntaxError as e:
            raise e.with_owner(owner) from e

        slots: dict[Reference, Slot] = {}
        for ref in compiled.references.all():
            if incoming and ref.path.is_local and ref.path.parts[0] == INCOMING:
                slots[ref] = Slot(SlotKind.INCOMING, value=INCOMING)
                continue
            entity = self.resolver.resolve(ref.path, scope, owner)
            slots[ref] = _slot(entity, previous=ref.path.prev)
        return FormulaSpec(compiled=compiled, slots=slots, owner=owner)

    def _record_reads(self, reader: EntityPath, formula: FormulaSpec) -> tuple[EntityPath, ...]:
        """Add graph edges for a formula's reads; return its ``prev.`` reads."""
        component = reader.component
        state_reads: list[EntityPath] = []
        for slot in formula.slots.values():
            if slot.path is None:
                continue
            if slot.kind is SlotKind.PREVIOUS:
                state_reads.append(slot.path)
            elif slot.path.component != component:
                self.system_edges.append((slot.path.component, component))
            elif slot.path.kind is not EntityKind.INPUT:
                self.node_edges[component].append((slot.path, reader))
        return tuple(dict.fromkeys(state_reads))

    # -- nodes and outputs ----------------------------------------------------

    def _node(self, instance: ModuleInstance, component: str, name: str, node: NodeDef) -> NodeSpec:
        path = EntityPath(instance.component_path(component), EntityKind.NODE, name)
        owner = str(path)
        constraint = resolve_constraint(node, self.document.types, owner)
        formula = None
        state_reads: tuple[EntityPath, ...] = ()
        if node.formula is not None:
            formula = self._formula(node.formula, Scope(instance.index, component), owner)
            state_reads = self._record_reads(path, formula)

        if node.has_initial:
            initial = node.initial
        elif node.has_value:
            initial = node.value
        else:
            initial = zero_value(constraint.type)
        initial, _ = coerce(initial, constraint.type)

        return NodeSpec(
            path=path,
            constraint=constraint,
            formula=formula,
            value=node.value,
            stateful=node.state,
            initial=initial,
            state_reads=state_reads,
        )

    def _output(self, instance: ModuleInstance, component: str, name: str, output: OutputDef) -> NodeSpec:
        path = EntityPath(instance.component_path(component), EntityKind.OUTPUT, name)
        owner = str(path)
        formula = self._formula(output.from_, Scope(instance.index, component), owner)
        target = output.target
        if target is None and output.hw is not None:
            target = channel_name(output.hw, owner)
        return NodeSpec(
            path=path,
            constraint=resolve_constraint(output, self.document.types, owner),
            formula=formula,
            state_reads=self._record_reads(path, formula),
            target=target,
            hw=output.hw,
        )

    # -- bindings -------------------------------------------------------------

    def _source(self, text: str, scope: Scope, owner: str) -> Slot:
        ref = parse_reference(text, owner)
        entity = self.resolver.resolve(ref, scope, owner)
        if entity.kind is EntityKind.INPUT:
            msg = f"Binding source '{text}' in {owner} names an input; bind from an output, node or parameter"
            raise SchemaError(msg)
        return _slot(entity, previous=ref.prev)

    def _binding(self, binding: Binding) -> tuple[EntityPath, InputSource]:
        declared_in = self.arena[binding.source_scope].label
        owner = f"{declared_in} {binding.origin} '{binding.target}'"
        target = self.resolver.resolve_input(
            binding.target,
            Scope(binding.target_scope, binding.target_component),
            owner,
        )
        target_path = cast("EntityPath", target.path)
        source_scope = Scope(binding.source_scope, binding.target_component)
        transform = None
        if binding.transform is not None:
            transform = self._formula(binding.transform, source_scope, f"{owner} transform", incoming=True)
        source = InputSource(
            slot=self._source(binding.source, source_scope, owner),
            text=binding.source,
            origin=binding.origin,
            transform=transform,
        )
        return target_path, source

    def _effective_sources(self) -> dict[EntityPath, InputSource]:
        candidates: dict[EntityPath, list[InputSource]] = {}
        for binding in self.arena.bindings:
            target, source = self._binding(binding)
            candidates.setdefault(target, []).append(source)

        effective: dict[EntityPath, InputSource] = {}
        for target, sources in candidates.items():
            ranked = sorted(sources, key=lambda s: s.origin.rank)
            winner = ranked[-1]
            effective[target] = winner
            for loser in ranked[:-1]:
                message = (
                    f"Input driven by {len(ranked)} sources; '{winner.text}' ({winner.origin}) "
                    f"overrides '{loser.text}' ({loser.origin})"
                )
                logger.warning(f"{target}: {message}")
                self.diagnostics.append(
                    Diagnostic(Severity.WARNING, DiagnosticKind.FAN_IN, message, location=str(target)),
                )
            self._record_source_edges(target, winner)
        return effective

    def _record_source_edges(self, target: EntityPath, source: InputSource) -> None:
        slots = [source.slot]
        if source.transform is not None:
            slots.extend(source.transform.slots.values())
        for slot in slots:
            if slot.kind is SlotKind.CURRENT and slot.path is not None:
                self.system_edges.append((slot.path.component, target.component))

    def _sim_sources(self) -> dict[EntityPath, Slot]:
        sources: dict[EntityPath, Slot] = {}
        owner = "_config.simBindings"
        for key, text in self.config.sim_bindings.items():
            target = self.resolver.resolve_input(key, Scope(ROOT), owner)
            target_path = cast("EntityPath", target.path)
            definition = self.resolver.component_def(target_path.component).inputs[target.name]
            if definition.hw is None:
                msg = f"Simulation binding '{key}' targets an input without 'hw'"
                raise SchemaError(msg)
            entity = self.resolver.resolve(parse_reference(text, owner), Scope(ROOT), owner)
            if entity.kind is not EntityKind.OUTPUT:
                msg = f"Simulation binding '{key}' must read a component output, got '{text}'"
                raise SchemaError(msg)
            slot = _slot(entity)
            sources[target_path] = slot
            if self.config.sim_mode:
                self.system_edges.append((entity.component, target_path.component))  # type: ignore[arg-type]
        return sources

    def _input(  # noqa: PLR0913
        self,
        instance: ModuleInstance,
        component: str,
        name: str,
        spec: InputDef,
        sources: Mapping[EntityPath, InputSource],
        sim_sources: Mapping[EntityPath, Slot],
    ) -> InputSpec:
        path = EntityPath(instance.component_path(component), EntityKind.INPUT, name)
        constraint = resolve_constraint(spec, self.document.types, str(path))
        source = sources.get(path)
        if source is None and not spec.has_default and spec.hw is None:
            raise UnconnectedInputError(str(path))
        default: Any = None
        if spec.has_default:
            default, _ = coerce(spec.default, constraint.type)
        return InputSpec(
            path=path,
            constraint=constraint,
            default=default,
            has_default=spec.has_default,
            source=source,
            hw=spec.hw,
            channel=None if spec.hw is None else channel_name(spec.hw, str(path)),
            sim_source=sim_sources.get(path),
        )

    # -- graphs ---------------------------------------------------------------

    def _ordered(self, cpath: ComponentPath, entities: list[NodeSpec]) -> tuple[NodeSpec, ...]:
        by_path = {entity.path: entity for entity in entities}
        graph = DependencyGraph.from_edges(self.node_edges[cpath], nodes=list(by_path))
        cycle = graph.find_cycle()
        if cycle is not None:
            raise CyclicDependencyError([p.name for p in cycle], "component", str(cpath))
        self.node_graphs[cpath] = graph
        return tuple(by_path[p] for p in graph.topological_order())

    def build(self) -> SystemSpec:
        compiled: dict[ComponentPath, tuple[ModuleInstance, str, ComponentDef, dict[str, NodeSpec], dict[str, NodeSpec]]] = {}
        for instance in self.arena:
            for name, definition in instance.components.items():
                cpath = instance.component_path(name)
                self.node_edges[cpath] = []
                nodes = {n: self._node(instance, name, n, node) for n, node in definition.nodes.items()}
                outputs = {o: self._output(instance, name, o, out) for o, out in definition.outputs.items()}
                compiled[cpath] = (instance, name, definition, nodes, outputs)
        logger.debug(f"Compiled formulas of {len(compiled)} component(s)")

        sources = self._effective_sources()
        sim_sources = self._sim_sources()

        components: dict[ComponentPath, ComponentSpec] = {}
        for cpath, (instance, name, definition, nodes, outputs) in compiled.items():
            inputs = {
                i: self._input(instance, name, i, spec, sources, sim_sources) for i, spec in definition.inputs.items()
            }
            components[cpath] = ComponentSpec(
                path=cpath,
                inputs=inputs,
                nodes=nodes,
                outputs=outputs,
                order=self._ordered(cpath, [*nodes.values(), *outputs.values()]),
                description=definition.description,
            )

        graph = DependencyGraph.from_edges(self.system_edges, nodes=list(components))
        cycle = graph.find_cycle()
        if cycle is not None:
            raise CyclicDependencyError([str(c) for c in cycle], "system")
        order = tuple(graph.topological_order())
        logger.debug(f"System order: {' → '.join(str(c) for c in order)}")

        return SystemSpec(
            components=components,
            graph=graph,
            order=order,
            config=self.config,
            diagnostics=tuple(self.diagnostics),
            functions=self.functions,
            node_graphs=self.node_graphs,
        )


def build_system(
    document: DocumentDef | Mapping[str, Any],
    *,
    functions: FunctionRegistry | None = None,
) -> SystemSpec:
    """Turn a document into a runnable system specification.

    Args:
        document: A validated ``DocumentDef`` or the raw JSON mapping.
        functions: Function registry for formulas; defaults to the standard one.

    Returns:
        The immutable system specification.

    Raises:
        LoadError: Any of its subclasses, for every load-time failure.

    Example:
        >>> system = build_system({"m": {"c": {"output": "1 + 2"}}})
        >>> [str(c) for c in system.order]
        ['m.c']

    """
    if not isinstance(document, DocumentDef):
        document = parse_document(document)
    system = _SystemBuilder(document, functions if functions is not None else DEFAULT_FUNCTIONS).build()
    logger.debug(f"Loaded system with {len(system.components)} component(s), {len(system.diagnostics)} diagnostic(s)")
    return system
