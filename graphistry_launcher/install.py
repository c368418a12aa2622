"""Provision the Python dependencies of the Graphistry MCP server."""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

import typer

from graphistry_launcher.environment import (
    LauncherPaths,
    Probe,
    find_system_interpreter,
    probe_interpreter,
)
from graphistry_launcher.errors import InstallError, InterpreterNotFound, LauncherError
from graphistry_launcher.settings import LauncherSettings

__all__ = ["CREDENTIAL_VARIABLES", "DependencyInstaller", "app"]

CREDENTIAL_VARIABLES = ("GRAPHISTRY_USERNAME", "GRAPHISTRY_PASSWORD")
_RULE = "=" * 60


class DependencyInstaller:
    """Install dependencies with uv when available, otherwise with pip."""

    def __init__(
        self,
        settings: LauncherSettings,
        *,
        dry_run: bool = False,
        create_venv: bool = True,
        probe: Probe = probe_interpreter,
    ) -> None:
        self.settings = settings
        self.paths = LauncherPaths.from_settings(settings)
        self.dry_run = dry_run
        self.create_venv = create_venv
        self.probe = probe

    # Public API -----------------------------------------------------------
    def run(self) -> str:
        """Install everything and return the strategy that succeeded."""

        self._log(_RULE)
        self._log("  Graphistry MCP - Python Dependencies Setup")
        self._log(_RULE)
        python = self.find_python()
        self._log(f"✓ Found Python: {python}")

        if shutil.which("uv") is not None:
            self._log("✓ Found uv (recommended package manager)")
            if self.install_with_uv():
                self._finish(used_uv=True)
                return "uv"
            self._log("Falling back to pip...")
        else:
            self._log("ℹ uv not found - using pip instead")
            self._log("  (Install uv for faster dependency management: https://github.com/astral-sh/uv)")

        self.install_with_pip(python)
        self._finish(used_uv=False)
        return "pip"

    def find_python(self) -> str:
        candidates = self.settings.fallback_interpreters
        python = find_system_interpreter(candidates, probe=self.probe)
        if python is None:
            raise InterpreterNotFound(candidates)
        return python

    def install_with_uv(self) -> bool:
        self._log("🚀 Installing Python dependencies with uv...")
        if not (self.paths.root / "pyproject.toml").exists():
            self._log(f"⚠️  uv installation failed: pyproject.toml not found in {self.paths.root}")
            return False
        try:
            self._run(["uv", "sync", "--no-dev", "--extra", "server"])
        except (OSError, subprocess.CalledProcessError) as exc:
            self._log(f"⚠️  uv installation failed: {exc}")
            return False
        self._log(self._done_message("uv"))
        return True

    def install_with_pip(self, python: str) -> None:
        self._log("📦 Installing Python dependencies with pip...")
        target = python
        try:
            if self.create_venv:
                target = self.prepare_virtualenv(python)
            self._run([target, "-m", "pip", "install", "-e", ".[dev]"])
        except (OSError, subprocess.CalledProcessError) as exc:
            raise InstallError(
                f"pip installation failed: {exc}\n"
                "Please install manually:\n"
                "  uv sync\n"
                "  OR\n"
                '  pip install -e ".[dev]"'
            ) from exc
        self._log(self._done_message("pip"))

    def prepare_virtualenv(self, python: str) -> str:
        venv_path = self.paths.venv_path
        if venv_path.exists():
            self._log(f"✓ Virtual environment already exists at {venv_path}")
        elif self.dry_run:
            self._log(f"[DRY-RUN] Would create virtual environment at {venv_path}")
        else:
            self._run([python, "-m", "venv", str(venv_path)])
            self._log(f"✓ Created Python virtual environment at {venv_path}")
        return str(self._venv_python())

    def check_graphistry(self) -> str | None:
        """Return the installed graphistry version, or None if it cannot be imported."""

        python = self._venv_python()
        if not python.exists():
            return None
        script = "import graphistry; print(getattr(graphistry, '__version__', 'unknown'))"
        try:
            output = self._run([str(python), "-c", script], capture_output=True)
        except (OSError, subprocess.CalledProcessError):
            return None
        return output.strip() or None

    def check_credentials(self) -> list[str]:
        missing = [name for name in CREDENTIAL_VARIABLES if not os.environ.get(name)]
        for name in missing:
            self._log(f"⚠️  Graphistry credential variable '{name}' is not set")
        return missing

    # Internal helpers -----------------------------------------------------
    def _done_message(self, tool: str) -> str:
        if self.dry_run:
            return f"[DRY-RUN] Would install Python dependencies with {tool}"
        return f"✅ Python dependencies installed with {tool}"

    def _venv_python(self) -> Path:
        for candidate in self.paths.venv_interpreters:
            if candidate.exists():
                return candidate
        return self.paths.venv_interpreters[0 if os.name != "nt" else 1]

    def _finish(self, *, used_uv: bool) -> None:
        if not self.dry_run:
            version = self.check_graphistry()
            if version is None:
                self._log("⚠️  Could not import graphistry from the isolated environment")
            else:
                self._log(f"✓ Graphistry version: {version}")
        self.check_credentials()
        self._log(_RULE)
        self._log("  ✅ Installation Complete!" if not self.dry_run else "  [DRY-RUN] Nothing was installed")
        self._log(_RULE)
        self._log("Next steps:")
        self._log("1. Get a free Graphistry account:")
        self._log("   https://hub.graphistry.com")
        self._log("2. Set your Graphistry credentials:")
        self._log('   export GRAPHISTRY_USERNAME="your_username"')
        self._log('   export GRAPHISTRY_PASSWORD="your_password"')
        self._log("3. Register the server with your MCP client:")
        self._log('   {"graphistry": {"command": "graphistry-mcp", "env": {')
        self._log('     "GRAPHISTRY_USERNAME": "your_username",')
        self._log('     "GRAPHISTRY_PASSWORD": "your_password"}}}')
        if not used_uv:
            self._log("Tip: install uv for faster, reproducible installs.")

    def _run(self, args: Sequence[str], capture_output: bool = False) -> str:
        self._log(f"→ Executing: {' '.join(args)}")
        if self.dry_run:
            self._log("[DRY-RUN] Skipped")
            return ""
        env = dict(os.environ)
        env["PYTHONUNBUFFERED"] = "1"
        result = subprocess.run(  # noqa: S603
            list(args),
            cwd=self.paths.root,
            env=env,
            check=True,
            capture_output=capture_output,
            text=True,
        )
        if capture_output:
            assert result.stdout is not None
            return result.stdout
        return ""

    @staticmethod
    def _log(message: str) -> None:
        typer.echo(message)


app = typer.Typer(help="Install the Python dependencies of the Graphistry MCP server.")


@app.command()
def install(
    root: Path | None = typer.Option(
        None,
        "--root",
        help="Install root containing pyproject.toml (defaults to GRAPHISTRY_MCP_HOME)",
        show_default=False,
    ),
    check: bool = typer.Option(False, "--check", help="Dry-run: report commands without running them"),
    venv: bool = typer.Option(True, "--venv/--no-venv", help="Create .venv before installing with pip"),
) -> None:
    """Install dependencies with uv (preferred) or pip (fallback)."""

    try:
        settings = LauncherSettings.load(root)
        DependencyInstaller(settings, dry_run=check, create_venv=venv).run()
    except LauncherError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=exc.exit_code) from exc


if __name__ == "__main__":
    app()
