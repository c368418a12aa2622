"""Launcher configuration loaded from the install root and the environment."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from graphistry_launcher.errors import ConfigError

__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_FALLBACK_INTERPRETERS",
    "LauncherSettings",
    "default_install_root",
]

CONFIG_FILENAME = "graphistry-mcp.toml"
DEFAULT_FALLBACK_INTERPRETERS: tuple[str, ...] = ("python3", "python")
_ENV_HOME = "GRAPHISTRY_MCP_HOME"


def default_install_root() -> Path:
    """Return the directory the launcher was installed into.

    ``GRAPHISTRY_MCP_HOME`` takes precedence over the package location.
    """

    custom = os.environ.get(_ENV_HOME)
    if custom:
        return Path(custom).expanduser()
    return Path(__file__).resolve().parent.parent


@dataclass(slots=True)
class LauncherSettings:
    """Where to find the isolated environment and the worker entry script."""

    install_root: Path
    venv_dir: str = ".venv"
    worker_script: str = "run_graphistry_mcp.py"
    fallback_interpreters: tuple[str, ...] = DEFAULT_FALLBACK_INTERPRETERS
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, install_root: Path, data: Mapping[str, Any]) -> LauncherSettings:
        launcher = data.get("launcher", {})
        overrides = data.get("env", {})
        if not isinstance(launcher, Mapping) or not isinstance(overrides, Mapping):
            raise ConfigError("[launcher] and [env] must be tables")
        fallbacks = launcher.get("fallback_interpreters", DEFAULT_FALLBACK_INTERPRETERS)
        if isinstance(fallbacks, str) or not isinstance(fallbacks, Sequence):
            raise ConfigError("launcher.fallback_interpreters must be a list of commands")
        return cls(
            install_root=Path(install_root),
            venv_dir=str(launcher.get("venv_dir", ".venv")),
            worker_script=str(launcher.get("worker_script", "run_graphistry_mcp.py")),
            fallback_interpreters=tuple(str(item) for item in fallbacks),
            env={str(k): str(v) for k, v in overrides.items()},
        )

    @classmethod
    def from_toml(cls, path: Path, *, install_root: Path | None = None) -> LauncherSettings:
        path = Path(path)
        try:
            data = tomllib.loads(path.read_text("utf-8"))
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc
        return cls.from_mapping(install_root or path.parent, data)

    @classmethod
    def load(cls, install_root: Path | None = None) -> LauncherSettings:
        """Read ``graphistry-mcp.toml`` from the install root when present."""

        root = Path(install_root) if install_root is not None else default_install_root()
        config_file = root / CONFIG_FILENAME
        if config_file.exists():
            return cls.from_toml(config_file, install_root=root)
        return cls(install_root=root)
