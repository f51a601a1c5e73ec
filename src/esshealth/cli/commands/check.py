"""Full validation run command."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console

from esshealth.application.diagnostics import HealthRunner, RunOptions
from esshealth.cli import options as cli_options
from esshealth.cli.formatting import render_report
from esshealth.cli.helpers import (
    cancel_on_interrupt,
    healthcheck_inputs,
    initialize_logging,
    load_facts,
    logging_inputs,
    resolve_settings,
)
from esshealth.cli.sync_bridge import await_sync


def register(app: typer.Typer, *, stdout_console: Console, stderr_console: Console) -> None:
    @app.command(
        help=(
            "Discover ESS/WFE instances, validate the host and probe health endpoints.\n\n"
            "Exit codes: 0 all checks passed, 1 at least one failure, 2 warnings only "
            "or a fatal error."
        )
    )
    def check(  # NOSONAR python:S107
        config: cli_options.ConfigPathOption = None,
        facts: cli_options.FactsPathOption = None,
        healthcheck: cli_options.HealthCheckFlagOption = True,
        instance: cli_options.InstanceFilterOption = None,
        timeout: cli_options.TimeoutOption = None,
        max_retries: cli_options.MaxRetriesOption = None,
        retry_delay: cli_options.RetryDelayOption = None,
        concurrency: cli_options.ConcurrencyOption = None,
        verify_tls: cli_options.VerifyTlsOption = None,
        output_format: cli_options.OutputFormatOption = "table",
        output: cli_options.OutputPathOption = None,
        debug: cli_options.DebugOption = None,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
        log_file: cli_options.LogFileOption = None,
    ) -> None:
        """Run discovery, validation rules and health checks."""

        output_format = cli_options.normalize_output_format(output_format)
        runtime_settings, logging_settings = resolve_settings(
            stderr_console,
            config_path=config,
            healthcheck=healthcheck_inputs(
                timeout=timeout,
                max_retries=max_retries,
                retry_delay=retry_delay,
                concurrency=concurrency,
                verify_tls=verify_tls,
            ),
            debug=debug,
            logging_overrides=logging_inputs(
                level=log_level, format=log_format, file_path=log_file
            ),
        )
        logger = initialize_logging(runtime_settings, logging_settings)
        host_facts = load_facts(stderr_console, facts, logger)

        runner = HealthRunner(
            runtime_settings=runtime_settings,
            logger=logger,
            run_sync=await_sync,
        )
        with cancel_on_interrupt(runner.cancel, stderr_console):
            report = runner.run(
                host_facts,
                RunOptions(
                    run_health_checks=healthcheck,
                    instance_filter=tuple(instance or ()),
                ),
            )

        if output is not None:
            _write_json(Path(output), report.to_dict())
            stderr_console.print(f"Report written to {output}")
        if output_format == "json":
            stdout_console.print_json(json.dumps(report.to_dict()))
        else:
            render_report(stdout_console, report)

        raise typer.Exit(code=report.exit_code())


def _write_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


__all__ = ["register"]
