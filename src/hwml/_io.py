"""Loading HWML documents from files and directory trees."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ._errors import SchemaError
from ._ir import build_system
from ._models import parse_document

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ._formula import FunctionRegistry
    from ._ir import SystemSpec
    from ._models import DocumentDef

logger = logging.getLogger(__name__)

EXTENSIONS = (".hwml.json", ".hwml")
ENTRY_NAMES = ("main.hwml.json", "index.hwml.json", "main.hwml", "index.hwml")


def _module_name(path: Path, root: Path) -> str | None:
    """Module name of a file below ``root``: the relative path without extension."""
    relative = path.relative_to(root).as_posix()
    for extension in EXTENSIONS:
        if relative.endswith(extension):
            return relative[: -len(extension)]
    return None


def read_json(path: Path) -> Any:
    """Read one JSON file.

    Raises:
        SchemaError: If the file is not valid JSON.

    """
    try:
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        msg = f"Invalid JSON in {path}: {e}"
        raise SchemaError(msg) from e


def find_entry(directory: Path) -> Path | None:
    """Find the entry document of a directory tree.

    ``main.hwml.json`` wins over ``index.hwml.json``.
    """
    for name in ENTRY_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def _iter_module_files(directory: Path) -> Iterator[tuple[str, Path]]:
    for path in sorted(directory.rglob("*")):
        # Entry names are reserved at the tree root only
        if not path.is_file() or (path.parent == directory and path.name in ENTRY_NAMES):
            continue
        name = _module_name(path, directory)
        if name is not None:
            yield name, path


def load_entry(path: Path | str) -> dict[str, Any]:
    """Load the raw document for a file or a directory tree.

    A file is read as a whole document. For a directory, the entry document
    (``main.hwml.json``, then ``index.hwml.json``) provides the root and its
    reserved keys; every other ``*.hwml.json``/``*.hwml`` file below the
    directory is a module named by its relative path, unless the entry
    already defines a module of that name.

    Args:
        path: A document file or a directory.

    Returns:
        The merged JSON mapping, not yet validated.

    Raises:
        SchemaError: If the path does not exist or a file is not a JSON object.

    """
    path = Path(path)
    if path.is_file():
        data = read_json(path)
        logger.debug(f"Loaded document from {path}")
        return data
    if not path.is_dir():
        msg = f"No HWML document at {path}"
        raise SchemaError(msg)

    entry = find_entry(path)
    document: dict[str, Any] = {}
    if entry is not None:
        data = read_json(entry)
        if not isinstance(data, dict):
            msg = f"Entry document {entry} must be a JSON object"
            raise SchemaError(msg)
        document.update(data)
        logger.debug(f"Loaded entry document {entry}")
    else:
        logger.debug(f"No entry document in {path}; loading module files only")

    for name, module_path in _iter_module_files(path):
        if name in document:
            logger.debug(f"Module '{name}' already defined by the entry document; skipping {module_path}")
            continue
        module = read_json(module_path)
        if not isinstance(module, dict):
            msg = f"Module file {module_path} must contain a JSON object"
            raise SchemaError(msg)
        document[name] = module
        logger.debug(f"Loaded module '{name}' from {module_path}")

    if not document:
        msg = f"No HWML files found in {path}"
        raise SchemaError(msg)
    return document


def load_document(path: Path | str) -> DocumentDef:
    """Load and validate a document from a file or directory tree."""
    return parse_document(load_entry(path))


def load_system(path: Path | str, *, functions: FunctionRegistry | None = None) -> SystemSpec:
    """Load a document and build its system specification."""
    return build_system(load_document(path), functions=functions)


def load_frames(path: Path | str) -> list[dict[str, Any]]:
    """Read input frames from a JSON-lines file (one object per line).

    Blank lines are skipped.

    Raises:
        SchemaError: If a line is not a JSON object.

    """
    path = Path(path)
    frames: list[dict[str, Any]] = []
    with path.open(encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                frame = json.loads(line)
            except json.JSONDecodeError as e:
                msg = f"Invalid JSON on line {lineno} of {path}: {e}"
                raise SchemaError(msg) from e
            if not isinstance(frame, dict):
                msg = f"Line {lineno} of {path} must be a JSON object"
                raise SchemaError(msg)
            frames.append(frame)
    logger.debug(f"Loaded {len(frames)} input frame(s) from {path}")
    return frames
