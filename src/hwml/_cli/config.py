"""Configuration loading from pyproject.toml."""

import tomllib
from dataclasses import dataclass
from pathlib import Path


class ConfigError(Exception):
    """Error in hwml configuration."""


@dataclass(slots=True, frozen=True)
class HwmlConfig:
    """Configuration loaded from the ``[tool.hwml]`` table of pyproject.toml.

    All relative paths are resolved from the project root (directory containing pyproject.toml).
    """

    entry: Path | None = None
    inputs: Path | None = None
    ticks: int | None = None
    realtime: bool = False
    project_root: Path | None = None


def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
    """Find pyproject.toml by walking up from start_dir.

    Args:
        start_dir: Starting directory. Defaults to current working directory.

    Returns:
        Path to pyproject.toml if found, None otherwise.

    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        candidate = current / "pyproject.toml"
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            # Reached filesystem root
            return None
        current = parent


def _parse_path(section: dict[str, object], key: str, project_root: Path) -> Path | None:
    if key not in section:
        return None
    value = section[key]
    if not isinstance(value, str):
        msg = f"Invalid [tool.hwml].{key}: expected string path"
        raise ConfigError(msg)
    path = Path(value)
    if not path.is_absolute():
        path = project_root / path
    return path


def load_config(pyproject_path: Path) -> HwmlConfig:
    """Load and validate [tool.hwml] config from pyproject.toml.

    Args:
        pyproject_path: Path to pyproject.toml

    Returns:
        Parsed HwmlConfig

    Raises:
        ConfigError: If the configuration is invalid

    """
    project_root = pyproject_path.parent

    with pyproject_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {pyproject_path}: {e}"
            raise ConfigError(msg) from e

    hwml_section = data.get("tool", {}).get("hwml", {})

    if not hwml_section:
        # No [tool.hwml] section - return empty config
        return HwmlConfig(project_root=project_root)

    ticks = hwml_section.get("ticks")
    # bool is an int subclass
    if ticks is not None and (isinstance(ticks, bool) or not isinstance(ticks, int) or ticks < 0):
        msg = "Invalid [tool.hwml].ticks: expected a non-negative integer"
        raise ConfigError(msg)

    realtime = hwml_section.get("realtime", False)
    if not isinstance(realtime, bool):
        msg = "Invalid [tool.hwml].realtime: expected boolean"
        raise ConfigError(msg)

    return HwmlConfig(
        entry=_parse_path(hwml_section, "entry", project_root),
        inputs=_parse_path(hwml_section, "inputs", project_root),
        ticks=ticks,
        realtime=realtime,
        project_root=project_root,
    )


def get_config() -> HwmlConfig:
    """Get config from pyproject.toml in current directory or parents.

    Returns:
        HwmlConfig (may be empty if no pyproject.toml or no [tool.hwml] section)

    """
    pyproject_path = find_pyproject_toml()
    if pyproject_path is None:
        return HwmlConfig()
    return load_config(pyproject_path)
