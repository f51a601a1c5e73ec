"""ESSHealth Typer CLI entrypoint."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from esshealth.cli.commands import check as check_command
from esshealth.cli.commands import config as config_command
from esshealth.cli.commands import discover as discover_command
from esshealth.cli.commands import probe as probe_command

PROJECT_ROOT = Path(__file__).resolve().parents[3]

stderr_console = Console(stderr=True)
stdout_console = Console(stderr=False)

app = typer.Typer(
    help="Health and upgrade-readiness checks for ESS and WFE deployments",
    rich_markup_mode="rich",
)

check_command.register(app, stdout_console=stdout_console, stderr_console=stderr_console)
discover_command.register(app, stdout_console=stdout_console, stderr_console=stderr_console)
probe_command.register(app, stdout_console=stdout_console, stderr_console=stderr_console)
config_command.register(app, stdout_console=stdout_console, stderr_console=stderr_console)


@app.command(help="Show the installed ESSHealth package version.")
def version() -> None:
    """Print the version discovered from the package metadata."""
    from importlib import metadata

    try:
        resolved_version = metadata.version("esshealth")
    except metadata.PackageNotFoundError:
        pyproject = PROJECT_ROOT / "pyproject.toml"
        if not pyproject.exists():
            stdout_console.print("Version information unavailable")
            return
        import tomllib

        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        resolved_version = data.get("project", {}).get("version", "unknown")
    stdout_console.print(resolved_version)


def main(argv: list[str] | None = None) -> None:
    """Run the Typer application."""

    app(args=argv, prog_name="esshealth")


__all__ = ["app", "main"]
