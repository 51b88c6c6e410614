"""Declarative JSON dataflow language for hardware control loops."""

__all__ = [
    "DEFAULT_FUNCTIONS",
    "Channel",
    "CompiledFormula",
    "ComponentPath",
    "ComponentSpec",
    "CyclicDependencyError",
    "DependencyGraph",
    "Diagnostic",
    "DiagnosticKind",
    "Direction",
    "DocumentDef",
    "DtMode",
    "EngineConfig",
    "EntityKind",
    "EntityPath",
    "FormulaSyntaxError",
    "FunctionRegistry",
    "HardwareAdapter",
    "HwmlError",
    "InputSpec",
    "InvalidStateReferenceError",
    "LoadError",
    "LogLevel",
    "MemoryAdapter",
    "MissingParameterError",
    "ModuleArena",
    "NodeSpec",
    "NullAdapter",
    "Runtime",
    "SchemaError",
    "Severity",
    "SystemSpec",
    "TickResult",
    "UnconnectedInputError",
    "UnresolvedReferenceError",
    "build_system",
    "compile_formula",
    "load_document",
    "load_frames",
    "load_system",
    "parse_document",
    "resolve_modules",
]

from ._adapter import Channel, Direction, HardwareAdapter, MemoryAdapter, NullAdapter
from ._config import DtMode, EngineConfig, LogLevel
from ._diagnostics import Diagnostic, DiagnosticKind, Severity
from ._errors import (
    CyclicDependencyError,
    FormulaSyntaxError,
    HwmlError,
    InvalidStateReferenceError,
    LoadError,
    MissingParameterError,
    SchemaError,
    UnconnectedInputError,
    UnresolvedReferenceError,
)
from ._eval_engine import Runtime, TickResult
from ._formula import DEFAULT_FUNCTIONS, CompiledFormula, FunctionRegistry, compile_formula
from ._graph import DependencyGraph
from ._io import load_document, load_frames, load_system
from ._ir import ComponentSpec, InputSpec, NodeSpec, SystemSpec, build_system
from ._models import DocumentDef, parse_document
from ._modules import ModuleArena, resolve_modules
from ._path import ComponentPath, EntityKind, EntityPath
