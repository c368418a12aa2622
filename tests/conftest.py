"""Shared pytest fixtures."""

from __future__ import annotations

import logging
import sys
import textwrap
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from graphistry_launcher.settings import LauncherSettings

WorkerFactory = Callable[[str], Path]


@pytest.fixture()
def install_root(tmp_path: Path) -> Path:
    root = tmp_path / "graphistry-mcp"
    root.mkdir()
    return root


@pytest.fixture()
def write_worker(install_root: Path) -> WorkerFactory:
    """Write ``run_graphistry_mcp.py`` into the install root with the given body."""

    def _write(body: str) -> Path:
        script = install_root / "run_graphistry_mcp.py"
        script.write_text(textwrap.dedent(body), encoding="utf-8")
        return script

    return _write


@pytest.fixture()
def settings(install_root: Path) -> LauncherSettings:
    return LauncherSettings(install_root=install_root, fallback_interpreters=(sys.executable,))


@pytest.fixture(autouse=True)
def _reset_cli_logging() -> Iterator[None]:
    yield
    launcher_logger = logging.getLogger("graphistry_launcher")
    launcher_logger.handlers.clear()
    launcher_logger.propagate = True
