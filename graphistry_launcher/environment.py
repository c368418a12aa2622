"""Interpreter discovery and worker environment construction."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from graphistry_launcher.errors import InterpreterNotFound, WorkerScriptMissing
from graphistry_launcher.settings import LauncherSettings

__all__ = [
    "WORKER_ENV_FLAGS",
    "Interpreter",
    "LauncherPaths",
    "build_worker_env",
    "find_interpreter",
    "find_system_interpreter",
    "probe_interpreter",
    "resolve_worker_script",
]

logger = logging.getLogger(__name__)

# Injected into every worker; the guard stops the server script from
# re-executing itself inside the isolated environment.
WORKER_ENV_FLAGS: Mapping[str, str] = {
    "PYTHONUNBUFFERED": "1",
    "GRAPHISTRY_VENV_ACTIVE": "1",
}

Probe = Callable[[str], bool]


@dataclass(slots=True)
class LauncherPaths:
    """Filesystem layout of an installed launcher."""

    root: Path
    venv_path: Path
    worker_script: Path

    @classmethod
    def from_settings(cls, settings: LauncherSettings) -> LauncherPaths:
        root = Path(settings.install_root)
        return cls(
            root=root,
            venv_path=root / settings.venv_dir,
            worker_script=root / settings.worker_script,
        )

    @property
    def venv_interpreters(self) -> tuple[Path, ...]:
        return (
            self.venv_path / "bin" / "python",
            self.venv_path / "Scripts" / "python.exe",
        )


@dataclass(frozen=True, slots=True)
class Interpreter:
    """An executable able to run the worker script."""

    command: str
    isolated: bool


def probe_interpreter(command: str) -> bool:
    """Return True when ``command --version`` runs and exits with status 0."""

    try:
        result = subprocess.run(  # noqa: S603
            [command, "--version"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return False
    return result.returncode == 0


def find_system_interpreter(
    candidates: Iterable[str],
    *,
    probe: Probe = probe_interpreter,
) -> str | None:
    for command in candidates:
        if probe(command):
            return command
        logger.debug("Interpreter candidate %s is not usable", command)
    return None


def find_interpreter(
    paths: LauncherPaths,
    candidates: Iterable[str],
    *,
    probe: Probe = probe_interpreter,
) -> Interpreter:
    """Select the interpreter that will run the worker.

    The isolated environment wins whenever its interpreter file exists; only
    then are the system ``candidates`` probed in order.
    """

    for venv_python in paths.venv_interpreters:
        if venv_python.exists():
            logger.debug("Using isolated environment interpreter %s", venv_python)
            return Interpreter(command=str(venv_python), isolated=True)

    candidates = tuple(candidates)
    command = find_system_interpreter(candidates, probe=probe)
    if command is None:
        raise InterpreterNotFound(candidates)
    logger.warning("Warning: Using system Python. Dependencies may not be available.")
    logger.warning("If you see import errors, try running: graphistry-mcp install")
    return Interpreter(command=command, isolated=False)


def resolve_worker_script(paths: LauncherPaths) -> Path:
    if not paths.worker_script.exists():
        raise WorkerScriptMissing(paths.worker_script)
    return paths.worker_script


def build_worker_env(
    base_env: Mapping[str, str],
    overrides: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return ``base_env`` plus ``overrides`` and the worker flags.

    Neither input is modified. The worker flags are applied last so they always
    reach the worker. Credentials such as ``GRAPHISTRY_USERNAME`` and
    ``GRAPHISTRY_PASSWORD`` flow through untouched.
    """

    env: dict[str, str] = dict(base_env)
    if overrides:
        env.update({k: str(v) for k, v in overrides.items()})
    env.update(WORKER_ENV_FLAGS)
    return env
