"""Tests for module resolution and reference resolution."""

from typing import Any

import pytest

from hwml._errors import (
    CyclicDependencyError,
    InvalidStateReferenceError,
    MissingParameterError,
    SchemaError,
    UnresolvedReferenceError,
)
from hwml._models import parse_document
from hwml._modules import ROOT, BindOrigin, ModuleArena, resolve_modules
from hwml._path import ComponentPath, EntityKind, RefPath
from hwml._resolve import ReferenceResolver, Scope, parse_reference


def _arena(data: dict[str, Any]) -> ModuleArena:
    return resolve_modules(parse_document(data))


@pytest.fixture
def pid_document() -> dict[str, Any]:
    """A plant that instantiates a PID template twice."""
    return {
        "_params": {"scale": {"default": 2}},
        "pid": {
            "_params": {
                "kp": {"type": "float", "required": True},
                "ki": {"type": "float", "default": 0.0},
            },
            "ctrl": {
                "inputs": {"error": {"type": "float", "default": 0}},
                "nodes": {
                    "integral": {"formula": "prev.integral + error * dt", "state": True},
                    "p": {"formula": "kp * error"},
                },
                "outputs": {"output": {"from": "p + ki * integral"}},
            },
        },
        "plant": {
            "_params": {"gain": {"default": 3}},
            "_modules": {
                "inner": {"use": "pid", "config": {"kp": "$gain"}, "bind": {"ctrl.error": "sensor.value"}},
                "outer": {"use": "pid", "config": {"kp": 0.5, "ki": 0.1}},
            },
            "sensor": {"nodes": {"value": {"value": 1.5}}},
        },
    }


class TestResolveModules:
    """Tests for resolve_modules."""

    def test_root_scope_is_index_zero(self) -> None:
        arena = _arena({"m": {"c": {"output": "1"}}})
        assert arena[ROOT].is_root
        assert arena[ROOT].path == ""
        assert arena[ROOT].label == "<root>"
        assert arena.find("m") is not None

    def test_templates_are_not_instantiated(self, pid_document: dict[str, Any]) -> None:
        arena = _arena(pid_document)
        assert arena.templates == frozenset({"pid", "plant"})
        assert arena.find("pid") is None

    def test_used_module_without_params_is_template(self) -> None:
        arena = _arena({"lib": {"c": {"output": "1"}}, "app": {"_modules": {"a": {"use": "lib"}}}})
        assert "lib" in arena.templates
        assert arena.find("app/a") is not None
        assert arena.find("lib") is None

    def test_unresolved_parameter_reference(self) -> None:
        document = {
            "pid": {"_params": {"kp": {"required": True}}, "ctrl": {"output": "kp"}},
            "plant": {
                "_modules": {
                    "inner": {"use": "pid", "config": {"kp": "$gain"}},
                },
                "_wiring": [],
            },
            "_modules": {"p": {"use": "pid", "config": {"kp": 4}}},
        }
        # ``plant`` is a root instance without parameters, so ``$gain`` is unresolved
        with pytest.raises(UnresolvedReferenceError, match=r"\$gain"):
            _arena(document)

    def test_parameter_substitution(self, pid_document: dict[str, Any]) -> None:
        pid_document["_modules"] = {"plant": {"use": "plant", "config": {"gain": 7}}}
        arena = _arena(pid_document)
        inner = arena.find("plant/inner")
        outer = arena.find("plant/outer")
        assert inner is not None
        assert outer is not None
        assert inner.params == {"kp": 7.0, "ki": 0.0}
        assert outer.params == {"kp": 0.5, "ki": 0.1}
        assert arena.parent_of(inner) == arena.find("plant")
        assert [i.label for i in arena.lineage(inner)] == ["plant/inner", "plant", "<root>"]

    def test_param_values_are_coerced(self) -> None:
        arena = _arena(
            {
                "t": {"_params": {"n": {"type": "int", "default": 1}}, "c": {"output": "n"}},
                "_modules": {"x": {"use": "t", "config": {"n": "42"}}},
            },
        )
        instance = arena.find("x")
        assert instance is not None
        assert instance.params == {"n": 42}

    def test_missing_required_parameter(self) -> None:
        with pytest.raises(MissingParameterError, match="'kp' for instance 'p' of module 'pid'"):
            _arena(
                {
                    "pid": {"_params": {"kp": {"required": True}}, "ctrl": {"output": "kp"}},
                    "_modules": {"p": {"use": "pid"}},
                },
            )

    def test_required_root_parameter(self) -> None:
        with pytest.raises(MissingParameterError):
            _arena({"_params": {"x": {"required": True}}})

    def test_unknown_config_key(self) -> None:
        with pytest.raises(SchemaError, match=r"Unknown parameter\(s\) \['kd'\]"):
            _arena(
                {
                    "pid": {"_params": {"kp": {"default": 1}}, "ctrl": {"output": "kp"}},
                    "_modules": {"p": {"use": "pid", "config": {"kd": 1}}},
                },
            )

    def test_unknown_module(self) -> None:
        with pytest.raises(SchemaError, match="unknown module 'nope'"):
            _arena({"_modules": {"p": {"use": "nope"}}})

    def test_uncoercible_parameter(self) -> None:
        with pytest.raises(SchemaError, match="cannot convert"):
            _arena(
                {
                    "t": {"_params": {"n": {"type": "float", "default": 0}}, "c": {"output": "n"}},
                    "_modules": {"x": {"use": "t", "config": {"n": "fast"}}},
                },
            )

    def test_recursive_instantiation(self) -> None:
        with pytest.raises(CyclicDependencyError) as exc_info:
            _arena(
                {
                    "a": {"_params": {"x": {"default": 1}}, "_modules": {"b": {"use": "b"}}},
                    "b": {"_params": {"x": {"default": 1}}, "_modules": {"a": {"use": "a"}}},
                    "_modules": {"top": {"use": "a"}},
                },
            )
        assert exc_info.value.path == ["a", "b", "a"]
        assert exc_info.value.level == "module"

    def test_nested_module_names(self) -> None:
        arena = _arena({"plant": {"c": {"output": "1"}}, "plant/sub": {"d": {"output": "2"}}})
        sub = arena.find("plant/sub")
        assert sub is not None
        assert arena.parent_of(sub) == arena.find("plant")

    def test_nested_module_declared_before_parent(self) -> None:
        arena = _arena(
            {"plant/sub": {"d": {"output": "2"}}, "other": {"e": {"output": "3"}}, "plant": {"c": {"output": "1"}}},
        )
        sub = arena.find("plant/sub")
        assert sub is not None
        assert arena.parent_of(sub) == arena.find("plant")
        assert set(arena.root.children) == {"other", "plant"}

    def test_import_alias_used_in_modules(self) -> None:
        arena = _arena(
            {
                "lib/filters": {"_params": {"alpha": {"default": 0.5}}, "lp": {"output": "alpha"}},
                "app": {"_imports": {"f": "lib/filters"}, "_modules": {"lp1": {"use": "f"}}},
            },
        )
        instance = arena.find("app/lp1")
        assert instance is not None
        assert instance.template == "lib/filters"

    def test_import_of_unknown_module(self) -> None:
        with pytest.raises(SchemaError, match="unknown module 'missing'"):
            _arena({"app": {"_imports": {"m": "missing"}}})

    def test_bindings_are_recorded_by_origin(self, pid_document: dict[str, Any]) -> None:
        pid_document["_modules"] = {"plant": {"use": "plant"}}
        pid_document["_wiring"] = [{"from": "plant/outer.ctrl.output", "to": "plant/inner.ctrl.error"}]
        arena = _arena(pid_document)
        origins = [b.origin for b in arena.bindings]
        assert origins == [BindOrigin.MODULE_BIND, BindOrigin.ROOT_WIRING]
        assert arena.bindings[0].target == "ctrl.error"
        assert arena.bindings[0].source == "sensor.value"

    def test_component_paths_in_declaration_order(self) -> None:
        arena = _arena({"a": {"x": {"output": "1"}, "y": {"output": "2"}}, "b": {"z": {"output": "3"}}})
        assert list(arena.component_paths()) == [
            ComponentPath("a", "x"),
            ComponentPath("a", "y"),
            ComponentPath("b", "z"),
        ]

    def test_bind_origin_rank(self) -> None:
        ranks = [o.rank for o in (BindOrigin.INLINE, BindOrigin.MODULE_BIND, BindOrigin.WIRING, BindOrigin.ROOT_WIRING)]
        assert ranks == sorted(ranks)


class TestReferenceResolver:
    """Tests for ReferenceResolver."""

    @pytest.fixture
    def resolver(self) -> ReferenceResolver:
        arena = _arena(
            {
                "_params": {"limit": {"default": 10}},
                "lib": {"_params": {"alpha": {"default": 0.5}}, "lp": {"output": "alpha"}},
                "plant": {
                    "_imports": {"mathlib": "plant/helpers"},
                    "_modules": {"f": {"use": "lib"}},
                    "sensor": {
                        "inputs": {"raw": {"default": 0}},
                        "nodes": {"value": {"formula": "raw"}, "acc": {"formula": "prev.acc + 1", "state": True}},
                        "outputs": {"out": {"from": "value"}},
                    },
                },
                "plant/helpers": {"h": {"output": "1"}},
            },
        )
        return ReferenceResolver(arena)

    def _scope(self, resolver: ReferenceResolver, instance: str, component: str | None = None) -> Scope:
        found = resolver.arena.find(instance)
        assert found is not None
        return Scope(found.index, component)

    def test_local_node_first(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("value"), self._scope(resolver, "plant", "sensor"), "o")
        assert entity.kind is EntityKind.NODE
        assert str(entity.path) == "plant.sensor.value"

    def test_local_input(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("raw"), self._scope(resolver, "plant", "sensor"), "o")
        assert entity.kind is EntityKind.INPUT

    def test_builtin(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("dt"), self._scope(resolver, "plant", "sensor"), "o")
        assert entity.kind is EntityKind.BUILTIN
        assert entity.path is None

    def test_component_port(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("sensor.out"), self._scope(resolver, "plant"), "o")
        assert entity.kind is EntityKind.OUTPUT

    def test_child_instance(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("f.lp.output"), self._scope(resolver, "plant"), "o")
        assert str(entity.path) == "plant/f.lp.output"

    def test_import_alias(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("mathlib.h.output"), self._scope(resolver, "plant"), "o")
        assert str(entity.path) == "plant/helpers.h.output"

    def test_parent_parameter(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("../limit"), self._scope(resolver, "plant", "sensor"), "o")
        assert entity.kind is EntityKind.PARAM
        assert entity.value == 10
        assert entity.is_constant

    def test_child_parameter_shadows_nothing_upwards(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("alpha"), self._scope(resolver, "plant/f", "lp"), "o")
        assert entity.value == 0.5

    def test_bare_name_finds_enclosing_parameter(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("limit"), self._scope(resolver, "plant/f", "lp"), "o")
        assert entity.kind is EntityKind.PARAM
        assert entity.value == 10

    def test_absolute_path(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("plant/f.lp.output"), self._scope(resolver, "plant/helpers", "h"), "o")
        assert str(entity.path) == "plant/f.lp.output"

    def test_prev_on_state_node(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve(RefPath.parse("prev.acc"), self._scope(resolver, "plant", "sensor"), "o")
        assert entity.name == "acc"

    def test_prev_on_stateless_node(self, resolver: ReferenceResolver) -> None:
        with pytest.raises(InvalidStateReferenceError, match="not declared 'state: true'"):
            resolver.resolve(RefPath.parse("prev.value"), self._scope(resolver, "plant", "sensor"), "o")

    def test_prev_on_input(self, resolver: ReferenceResolver) -> None:
        with pytest.raises(InvalidStateReferenceError, match="not a node"):
            resolver.resolve(RefPath.parse("prev.raw"), self._scope(resolver, "plant", "sensor"), "o")

    def test_unresolved(self, resolver: ReferenceResolver) -> None:
        with pytest.raises(UnresolvedReferenceError, match="'nothing' in plant.sensor.value"):
            resolver.resolve(RefPath.parse("nothing"), self._scope(resolver, "plant", "sensor"), "plant.sensor.value")

    def test_missing_port(self, resolver: ReferenceResolver) -> None:
        with pytest.raises(UnresolvedReferenceError, match="has no output or node 'nope'"):
            resolver.resolve(RefPath.parse("sensor.nope"), self._scope(resolver, "plant"), "o")

    def test_walk_above_root(self, resolver: ReferenceResolver) -> None:
        with pytest.raises(UnresolvedReferenceError, match="above the root"):
            resolver.resolve(RefPath.parse("../../x"), self._scope(resolver, "plant"), "o")

    def test_template_import_is_not_addressable(self) -> None:
        arena = _arena(
            {
                "lib": {"_params": {"a": {"default": 1}}, "lp": {"output": "a"}},
                "app": {"_imports": ["lib"], "c": {"output": "lib.lp.output"}},
            },
        )
        resolver = ReferenceResolver(arena)
        app = arena.find("app")
        assert app is not None
        with pytest.raises(UnresolvedReferenceError, match="is a template"):
            resolver.resolve(RefPath.parse("lib.lp.output"), Scope(app.index, "c"), "o")

    def test_resolve_input(self, resolver: ReferenceResolver) -> None:
        entity = resolver.resolve_input("plant.sensor.raw", Scope(ROOT), "o")
        assert entity.kind is EntityKind.INPUT
        with pytest.raises(UnresolvedReferenceError, match="has no input 'value'"):
            resolver.resolve_input("plant.sensor.value", Scope(ROOT), "o")

    def test_parse_reference_error(self) -> None:
        with pytest.raises(SchemaError, match="Malformed reference in wiring"):
            parse_reference("a..b", "wiring")
