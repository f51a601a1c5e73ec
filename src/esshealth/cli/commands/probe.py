"""Interactive single health check against a user supplied URL."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console

from esshealth.cli import options as cli_options
from esshealth.cli.formatting import OVERALL_STYLES, outcome_table
from esshealth.cli.helpers import (
    healthcheck_inputs,
    initialize_logging,
    logging_inputs,
    resolve_settings,
)
from esshealth.cli.sync_bridge import await_sync
from esshealth.infrastructure.logging import BoundLogger
from esshealth.integrations.healthcheck import (
    HealthCheckClient,
    HealthCheckOutcome,
    HealthCheckPolicy,
    OverallStatus,
    build_healthcheck_url,
)


async def _probe_once(
    policy: HealthCheckPolicy, url: str, logger: BoundLogger
) -> HealthCheckOutcome:
    async with HealthCheckClient(policy, logger=logger) as client:
        return await client.check("interactive", url)


def register(app: typer.Typer, *, stdout_console: Console, stderr_console: Console) -> None:
    @app.command(help="Probe the health endpoint below BASE_URL, e.g. https://ess.example.com.")
    def probe(  # NOSONAR python:S107
        base_url: Annotated[
            str, typer.Argument(help="Scheme, host and optional port of the ESS site")
        ],
        app_path: cli_options.ApplicationPathOption = None,
        config: cli_options.ConfigPathOption = None,
        timeout: cli_options.TimeoutOption = None,
        max_retries: cli_options.MaxRetriesOption = None,
        retry_delay: cli_options.RetryDelayOption = None,
        verify_tls: cli_options.VerifyTlsOption = None,
        output_format: cli_options.OutputFormatOption = "table",
        debug: cli_options.DebugOption = None,
        log_level: cli_options.LogLevelOption = None,
    ) -> None:
        """Check one health endpoint and exit 0 only when it is healthy."""

        output_format = cli_options.normalize_output_format(output_format)
        try:
            url = build_healthcheck_url(base_url, app_path)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="BASE_URL") from exc

        runtime_settings, logging_settings = resolve_settings(
            stderr_console,
            config_path=config,
            healthcheck=healthcheck_inputs(
                timeout=timeout,
                max_retries=max_retries,
                retry_delay=retry_delay,
                verify_tls=verify_tls,
            ),
            debug=debug,
            logging_overrides=logging_inputs(level=log_level),
        )
        logger = initialize_logging(runtime_settings, logging_settings)
        policy = HealthCheckPolicy.from_settings(runtime_settings.healthcheck)
        outcome = await_sync(_probe_once(policy, url, logger))

        if output_format == "json":
            stdout_console.print_json(json.dumps(outcome.to_dict()))
        else:
            style = OVERALL_STYLES[outcome.overall_status]
            stdout_console.print(
                f"{url}: [{style}]{outcome.overall_status.value}[/{style}] "
                f"({outcome.interpretation}, {outcome.attempts} attempt(s))"
            )
            if outcome.error:
                stdout_console.print(f"[red]{outcome.error}[/red]")
            if outcome.components:
                stdout_console.print(outcome_table(outcome))

        if outcome.overall_status is OverallStatus.HEALTHY:
            raise typer.Exit(code=0)
        if outcome.overall_status is OverallStatus.PARTIALLY_UNHEALTHY:
            raise typer.Exit(code=2)
        raise typer.Exit(code=1)


__all__ = ["register"]
