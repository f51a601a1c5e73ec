"""Config inspection commands for the ESSHealth CLI."""

from __future__ import annotations

import os
from dataclasses import asdict
from typing import Any

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from esshealth.cli import options as cli_options
from esshealth.cli.helpers import logging_inputs, resolve_settings
from esshealth.config.settings import (
    ENVIRONMENT_MAP,
    LoggingSettings,
    RuntimeSettings,
    resolve_config_file_candidates,
)


def flatten_to_dotted(mapping: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    flattened: dict[str, Any] = {}
    for key, value in mapping.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flattened.update(flatten_to_dotted(value, dotted))
        else:
            flattened[dotted] = value
    return flattened


def effective_settings_rows(
    runtime_settings: RuntimeSettings, logging_settings: LoggingSettings
) -> list[tuple[str, str]]:
    runtime = asdict(runtime_settings)
    runtime.pop("warnings", None)
    runtime.pop("compatibility", None)
    values = flatten_to_dotted(runtime)
    values["compatibility"] = ", ".join(
        f"{product} -> {companion}"
        for product, companion in runtime_settings.compatibility.items()
    )
    values.update(
        {
            "logging.level": logging_settings.level_name,
            "logging.format": logging_settings.format,
            "logging.file": logging_settings.file_path or "<stderr>",
            "logging.max_bytes": logging_settings.max_bytes,
            "logging.backup_count": logging_settings.backup_count,
        }
    )
    return [(key, _format_value(value)) for key, value in values.items()]


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "-"
    return str(value)


def register(app: typer.Typer, *, stdout_console: Console, stderr_console: Console) -> None:
    config_app = typer.Typer(
        help="Inspect ESSHealth configuration.",
        invoke_without_command=True,
        no_args_is_help=True,
    )
    app.add_typer(config_app, name="config")

    @config_app.callback(invoke_without_command=True)
    def config_group_callback(ctx: typer.Context) -> None:
        """Display help when config group is invoked without a subcommand."""
        if ctx.invoked_subcommand is None:
            typer.echo(ctx.get_help())
            raise typer.Exit()

    @config_app.command(
        "show",
        help=(
            "Show configuration sources and the effective settings.\n\n"
            "Example: esshealth config show --config custom.toml"
        ),
    )
    def config_show(
        config: cli_options.ConfigPathOption = None,
        debug: cli_options.DebugOption = None,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
    ) -> None:
        """Display configuration files, environment overrides and effective values."""

        runtime_settings, logging_settings = resolve_settings(
            stderr_console,
            config_path=config,
            debug=debug,
            logging_overrides=logging_inputs(level=log_level, format=log_format),
        )

        files_table = Table(title="Configuration files", box=box.SIMPLE_HEAVY)
        files_table.add_column("File", style="bold")
        files_table.add_column("Status")
        for file in resolve_config_file_candidates(str(config) if config else None):
            files_table.add_row(str(file), "exists" if file.exists() else "missing")
        stdout_console.print(files_table)

        env_rows = [
            (name, key, os.environ[name])
            for name, key in ENVIRONMENT_MAP.items()
            if os.environ.get(name, "").strip()
        ]
        if env_rows:
            env_table = Table(title="Environment overrides", box=box.SIMPLE_HEAVY)
            env_table.add_column("Variable", style="bold")
            env_table.add_column("Setting")
            env_table.add_column("Value")
            for row in env_rows:
                env_table.add_row(*row)
            stdout_console.print(env_table)

        settings_table = Table(title="Effective settings", box=box.SIMPLE_HEAVY)
        settings_table.add_column("Setting", style="bold")
        settings_table.add_column("Value")
        for key, value in effective_settings_rows(runtime_settings, logging_settings):
            settings_table.add_row(key, value)
        stdout_console.print(settings_table)

        for warning in runtime_settings.warnings:
            stderr_console.print(f"[yellow]Warning:[/yellow] {warning}")


__all__ = ["effective_settings_rows", "flatten_to_dotted", "register"]
