"""Pydantic models describing the structure of an HWML document.

These models only check shape: key names, value kinds, node value-source
exclusivity and the single-output sugar. Formulas, references and graphs are
handled later by the module resolver and graph builder.
"""

from __future__ import annotations

from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ._coercion import BASE_TYPES
from ._config import EngineConfig
from ._errors import SchemaError
from ._path import is_identifier, is_module_name

FormulaSource: TypeAlias = str | int | float | bool

MODULE_KEYS = frozenset({"_params", "_imports", "_modules", "_wiring", "_meta", "_doc"})
DOCUMENT_KEYS = frozenset({"_meta", "_config", "_types", "_imports", "_modules", "_params", "_wiring", "_doc"})
SUGAR_OUTPUTS = ("output", "result")


def _check_names(names: dict[str, Any], what: str) -> None:
    for name in names:
        if not is_identifier(name):
            msg = f"Invalid {what} name '{name}'"
            raise ValueError(msg)


def _check_range(value: tuple[float, float] | None) -> tuple[float, float] | None:
    if value is not None and value[0] > value[1]:
        msg = f"Range lower bound {value[0]} exceeds upper bound {value[1]}"
        raise ValueError(msg)
    return value


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class _Constrained(_Strict):
    type: str | None = None
    units: str | None = None
    range: tuple[float, float] | None = None
    clamp: bool | tuple[float, float] | None = None
    description: str | None = None

    @field_validator("range")
    @classmethod
    def _valid_range(cls, value: tuple[float, float] | None) -> tuple[float, float] | None:
        return _check_range(value)

    @field_validator("clamp")
    @classmethod
    def _check_clamp(cls, value: bool | tuple[float, float] | None) -> bool | tuple[float, float] | None:
        if isinstance(value, tuple):
            _check_range(value)
        return value


class InputDef(_Constrained):
    """An input port."""

    default: Any = None
    source: str | None = None
    bind: str | None = None
    hw: Any = None

    @model_validator(mode="after")
    def _one_binding(self) -> InputDef:
        if self.source is not None and self.bind is not None:
            msg = "Input may declare 'source' or 'bind', not both"
            raise ValueError(msg)
        return self

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set

    @property
    def binding(self) -> str | None:
        return self.bind if self.bind is not None else self.source


class OutputDef(_Constrained):
    """An output port; ``from`` is a formula, usually a node name."""

    from_: FormulaSource = Field(alias="from")
    target: str | None = None
    hw: Any = None


class NodeDef(_Constrained):
    """A node: exactly one of ``value`` or ``formula``."""

    value: Any = None
    formula: FormulaSource | None = None
    state: bool = False
    initial: Any = None

    @model_validator(mode="after")
    def _one_value_source(self) -> NodeDef:
        has_value = "value" in self.model_fields_set
        has_formula = self.formula is not None
        if has_value == has_formula:
            msg = "Node must declare exactly one of 'value' or 'formula'"
            raise ValueError(msg)
        return self

    @property
    def has_value(self) -> bool:
        return "value" in self.model_fields_set

    @property
    def has_initial(self) -> bool:
        return "initial" in self.model_fields_set


class SugarOutputDef(_Constrained):
    """Mapping form of the single-output shorthand."""

    formula: FormulaSource
    target: str | None = None
    hw: Any = None


class ComponentDef(_Strict):
    """A component with input/output ports and an internal node graph."""

    inputs: dict[str, InputDef] = Field(default_factory=dict)
    outputs: dict[str, OutputDef] = Field(default_factory=dict)
    nodes: dict[str, NodeDef] = Field(default_factory=dict)
    output: FormulaSource | SugarOutputDef | None = None
    result: FormulaSource | SugarOutputDef | None = None
    description: str | None = None

    @field_validator("inputs", "outputs", "nodes")
    @classmethod
    def _names(cls, value: dict[str, Any]) -> dict[str, Any]:
        _check_names(value, "port or node")
        return value

    @model_validator(mode="after")
    def _expand_sugar(self) -> ComponentDef:
        for name in SUGAR_OUTPUTS:
            sugar = getattr(self, name)
            if sugar is None:
                continue
            if name in self.nodes or name in self.outputs:
                msg = f"'{name}' shorthand conflicts with an existing node or output named '{name}'"
                raise ValueError(msg)
            if isinstance(sugar, SugarOutputDef):
                self.nodes[name] = NodeDef(formula=sugar.formula, type=sugar.type, units=sugar.units)
                self.outputs[name] = OutputDef.model_validate(
                    {
                        "from": name,
                        "type": sugar.type,
                        "units": sugar.units,
                        "range": sugar.range,
                        "clamp": sugar.clamp,
                        "target": sugar.target,
                        "hw": sugar.hw,
                    },
                )
            else:
                self.nodes[name] = NodeDef(formula=sugar)
                self.outputs[name] = OutputDef.model_validate({"from": name})
            setattr(self, name, None)
        return self


class ParamDef(_Strict):
    """A module parameter: ``required`` or with a ``default``."""

    type: str | None = None
    default: Any = None
    required: bool = False
    units: str | None = None
    description: str | None = None

    @model_validator(mode="after")
    def _default_or_required(self) -> ParamDef:
        has_default = "default" in self.model_fields_set
        if self.required and has_default:
            msg = "Parameter cannot be both required and defaulted"
            raise ValueError(msg)
        if not self.required and not has_default:
            msg = "Parameter must declare 'default' or 'required: true'"
            raise ValueError(msg)
        return self


class ModuleInstanceDef(_Strict):
    """An entry of ``_modules``."""

    use: str
    config: dict[str, Any] = Field(default_factory=dict)
    bind: dict[str, str] = Field(default_factory=dict)


class WiringDef(_Strict):
    """An entry of ``_wiring``."""

    from_: str = Field(alias="from")
    to: str
    transform: FormulaSource | None = None


class ImportsDef(_Strict):
    """Normalised ``_imports``: aliases from the mapping form, paths from the list form."""

    aliases: dict[str, str] = Field(default_factory=dict)
    paths: tuple[str, ...] = ()


def _normalize_imports(raw: Any) -> Any:
    if raw is None:
        return {}
    if isinstance(raw, list):
        return {"paths": raw}
    if isinstance(raw, dict) and not ({"aliases", "paths"} & raw.keys()):
        return {"aliases": raw}
    return raw


class TypeDef(_Constrained):
    """A named type from ``_types``."""

    type: str = "float"

    @field_validator("type")
    @classmethod
    def _base_type(cls, value: str) -> str:
        if value.lower() not in BASE_TYPES:
            msg = f"Named types must derive from a base type, got '{value}'"
            raise ValueError(msg)
        return value


class ScopeDef(_Strict):
    params: dict[str, ParamDef] = Field(default_factory=dict, alias="_params")
    imports: ImportsDef = Field(default_factory=ImportsDef, alias="_imports")
    modules: dict[str, ModuleInstanceDef] = Field(default_factory=dict, alias="_modules")
    wiring: list[WiringDef] = Field(default_factory=list, alias="_wiring")
    meta: dict[str, Any] = Field(default_factory=dict, alias="_meta")
    doc: str | None = Field(default=None, alias="_doc")

    @field_validator("imports", mode="before")
    @classmethod
    def _imports_form(cls, value: Any) -> Any:
        return _normalize_imports(value)

    @field_validator("params", "modules")
    @classmethod
    def _names(cls, value: dict[str, Any]) -> dict[str, Any]:
        _check_names(value, "parameter or instance")
        return value


class ModuleDef(ScopeDef):
    """A module: reserved ``_``-keys plus components."""

    components: dict[str, ComponentDef] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split_components(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        reserved: dict[str, Any] = {}
        components: dict[str, Any] = {}
        for key, value in data.items():
            if key.startswith("_"):
                if key not in MODULE_KEYS:
                    msg = f"Unknown reserved key '{key}' in module"
                    raise ValueError(msg)
                reserved[key] = value
            else:
                components[key] = value
        _check_names(components, "component")
        return {**reserved, "components": components}


class DocumentDef(ScopeDef):
    """A whole document: reserved root keys plus modules by name."""

    config: EngineConfig = Field(default_factory=EngineConfig, alias="_config")
    types: dict[str, TypeDef] = Field(default_factory=dict, alias="_types")
    module_defs: dict[str, ModuleDef] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split_modules(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        reserved: dict[str, Any] = {}
        modules: dict[str, Any] = {}
        for key, value in data.items():
            if key.startswith("_"):
                if key not in DOCUMENT_KEYS:
                    msg = f"Unknown reserved key '{key}' in document"
                    raise ValueError(msg)
                reserved[key] = value
            else:
                if not is_module_name(key):
                    msg = f"Invalid module name '{key}'"
                    raise ValueError(msg)
                modules[key] = value
        return {**reserved, "module_defs": modules}

    @field_validator("types")
    @classmethod
    def _type_names(cls, value: dict[str, TypeDef]) -> dict[str, TypeDef]:
        _check_names(value, "type")
        return value


def parse_document(data: Any) -> DocumentDef:
    """Validate raw JSON data as a document.

    Raises:
        SchemaError: If the data does not have the shape of an HWML document.

    """
    if not isinstance(data, dict):
        msg = f"Document root must be a JSON object, got {type(data).__name__}"
        raise SchemaError(msg)
    try:
        return DocumentDef.model_validate(data)
    except ValidationError as e:
        msg = f"Malformed document: {e}"
        raise SchemaError(msg) from e
