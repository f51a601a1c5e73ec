"""Instance discovery command."""

from __future__ import annotations

import json

import typer
from rich.console import Console

from esshealth.application.diagnostics import HealthRunner
from esshealth.cli import options as cli_options
from esshealth.cli.formatting import deployment_table
from esshealth.cli.helpers import initialize_logging, load_facts, logging_inputs, resolve_settings


def register(app: typer.Typer, *, stdout_console: Console, stderr_console: Console) -> None:
    @app.command(help="List the ESS and WFE instances found on the host and the deployment type.")
    def discover(
        config: cli_options.ConfigPathOption = None,
        facts: cli_options.FactsPathOption = None,
        output_format: cli_options.OutputFormatOption = "table",
        debug: cli_options.DebugOption = None,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
    ) -> None:
        """Print discovered instances without running validation rules."""

        output_format = cli_options.normalize_output_format(output_format)
        runtime_settings, logging_settings = resolve_settings(
            stderr_console,
            config_path=config,
            debug=debug,
            logging_overrides=logging_inputs(level=log_level, format=log_format),
        )
        logger = initialize_logging(runtime_settings, logging_settings)
        host_facts = load_facts(stderr_console, facts, logger)

        deployment, outcome = HealthRunner(
            runtime_settings=runtime_settings, logger=logger
        ).discover(host_facts)

        if output_format == "json":
            payload = deployment.to_dict()
            payload["errors"] = [
                {"site": error.site, "application": error.application, "message": error.message}
                for error in outcome.errors
            ]
            stdout_console.print_json(json.dumps(payload))
            return

        stdout_console.print(deployment_table(deployment))
        for error in outcome.errors:
            location = error.site + (error.application or "")
            stderr_console.print(f"[yellow]Skipped {location}:[/yellow] {error.message}")


__all__ = ["register"]
