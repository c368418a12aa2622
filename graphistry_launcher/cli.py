"""Click-based entry point for the ``graphistry-mcp`` command."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click
from typer.main import get_command

from graphistry_launcher import __version__
from graphistry_launcher.errors import LauncherError
from graphistry_launcher.install import app as install_app
from graphistry_launcher.settings import LauncherSettings
from graphistry_launcher.supervisor import launch

logger = logging.getLogger("graphistry_launcher")


@dataclass
class CLIState:
    root: Path | None = None

    def settings(self) -> LauncherSettings:
        return LauncherSettings.load(self.root)


def configure_logging(verbose: bool) -> None:
    """Send launcher diagnostics to stderr; stdout belongs to the worker."""

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.propagate = False
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


@click.group(invoke_without_command=True)
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="GRAPHISTRY_MCP_HOME",
    help="Install root holding .venv and the MCP server script.",
)
@click.option("--verbose", is_flag=True, help="Log interpreter selection and worker lifecycle.")
@click.version_option(__version__, prog_name="graphistry-mcp")
@click.pass_context
def app(ctx: click.Context, root: Path | None, verbose: bool) -> None:
    """Launch the Graphistry MCP server (default) or install its dependencies."""

    configure_logging(verbose)
    ctx.obj = CLIState(root=root)
    if root is not None:
        ctx.default_map = {"install": {"root": str(root)}}
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@app.command()
@click.pass_obj
def run(state: CLIState) -> None:
    """Run the Python MCP server over stdio and mirror its exit status."""

    try:
        code = launch(state.settings())
    except LauncherError as exc:
        logger.error("Error: %s", exc)
        sys.exit(exc.exit_code)
    sys.exit(code)


app.add_command(get_command(install_app), name="install")


def main() -> None:
    app(prog_name="graphistry-mcp")


if __name__ == "__main__":
    main()
