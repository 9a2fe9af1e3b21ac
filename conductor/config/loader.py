"""Locate and read Conductor's TOML configuration.

Settings come from one directory holding default.toml, which must exist,
and an optional <environment>.toml layered over it. Agent configuration
files go through the same TOML reader.
"""

import os
import tomllib
from functools import reduce
from pathlib import Path
from typing import Any

CONFIG_DIR_ENV_VAR = "CONDUCTOR_CONFIG_DIR"
ENVIRONMENT_ENV_VAR = "CONDUCTOR_ENV"
DEFAULT_ENVIRONMENT = "development"
DEFAULT_FILE = "default.toml"

# config/ at the project root, beside the conductor package
PROJECT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


def get_config_dir() -> Path:
    """Resolve the settings directory.

    CONDUCTOR_CONFIG_DIR wins when set. Otherwise ./config is used if it
    holds a default.toml, and the project's own config/ if not.

    Raises:
        FileNotFoundError: If CONDUCTOR_CONFIG_DIR names a missing directory
    """
    configured = os.environ.get(CONFIG_DIR_ENV_VAR)
    if configured:
        path = Path(configured)
        if not path.is_dir():
            raise FileNotFoundError(f"Config directory not found: {configured}")
        return path

    local = Path.cwd() / "config"
    if (local / DEFAULT_FILE).exists():
        return local
    return PROJECT_CONFIG_DIR


def get_environment() -> str:
    return os.environ.get(ENVIRONMENT_ENV_VAR, DEFAULT_ENVIRONMENT)


def load_toml(file_path: Path) -> dict[str, Any]:
    """Load a TOML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        tomllib.TOMLDecodeError: If the TOML syntax is invalid
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")
    with file_path.open("rb") as f:
        return tomllib.load(f)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Layer override on base; tables merge, anything else is replaced.

    Neither input is modified.
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def config_files(config_dir: Path, environment: str) -> list[Path]:
    """Settings files to read, lowest precedence first.

    Raises:
        FileNotFoundError: If config_dir has no default.toml
    """
    default = config_dir / DEFAULT_FILE
    if not default.exists():
        raise FileNotFoundError(
            f"Default configuration file not found: {default}. "
            f"Create it or set {CONFIG_DIR_ENV_VAR}."
        )
    overlay = config_dir / f"{environment}.toml"
    return [default, overlay] if overlay.exists() else [default]


def load_config(
    config_dir: Path | None = None, environment: str | None = None
) -> dict[str, Any]:
    """Read and merge the settings files.

    Args:
        config_dir: Directory to read; resolved with get_config_dir() when omitted
        environment: Overlay to apply; CONDUCTOR_ENV or development when omitted
    """
    paths = config_files(config_dir or get_config_dir(), environment or get_environment())
    return reduce(deep_merge, (load_toml(path) for path in paths), {})
