"""Typer option declarations and normalization helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Final

import typer

LOG_FORMAT_CHOICES: Final[set[str]] = {"text", "json"}
OUTPUT_FORMAT_CHOICES: Final[set[str]] = {"table", "json"}
LOG_LEVEL_CHOICES: Final[list[str]] = sorted(
    name
    for name, value in logging.getLevelNamesMapping().items()
    if isinstance(name, str) and not name.isdigit()
)
LOG_LEVEL_SET: Final[set[str]] = {choice.upper() for choice in LOG_LEVEL_CHOICES}

ConfigPathOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        help="Path to an ESSHealth configuration TOML file to load",
        envvar="ESSHEALTH_CONFIG",
        show_envvar=True,
        rich_help_panel="Configuration",
    ),
]

FactsPathOption = Annotated[
    Path | None,
    typer.Option(
        "--facts",
        help="Host facts document (JSON or TOML); defaults to facts collected from this machine",
        envvar="ESSHEALTH_FACTS",
        show_envvar=True,
        rich_help_panel="Input",
    ),
]

HealthCheckFlagOption = Annotated[
    bool,
    typer.Option(
        "--healthcheck/--no-healthcheck",
        help="Probe the health endpoint of every discovered ESS instance",
        rich_help_panel="Health check",
    ),
]

InstanceFilterOption = Annotated[
    list[str] | None,
    typer.Option(
        "--instance",
        help="Only probe the given site or site/path label (repeatable)",
        rich_help_panel="Health check",
    ),
]

ApplicationPathOption = Annotated[
    str | None,
    typer.Option(
        "--app-path",
        help="Application path appended to the base URL, e.g. /ess",
        rich_help_panel="Health check",
    ),
]

TimeoutOption = Annotated[
    float | None,
    typer.Option(
        "--timeout",
        min=0.1,
        help="Per-request timeout in seconds",
        envvar="ESSHEALTH_HEALTHCHECK_TIMEOUT",
        show_envvar=True,
        rich_help_panel="Health check",
    ),
]

MaxRetriesOption = Annotated[
    int | None,
    typer.Option(
        "--max-retries",
        min=0,
        help="Retries after the first failed attempt",
        envvar="ESSHEALTH_HEALTHCHECK_MAX_RETRIES",
        show_envvar=True,
        rich_help_panel="Health check",
    ),
]

RetryDelayOption = Annotated[
    float | None,
    typer.Option(
        "--retry-delay",
        min=0.0,
        help="Seconds to wait between attempts",
        envvar="ESSHEALTH_HEALTHCHECK_RETRY_DELAY",
        show_envvar=True,
        rich_help_panel="Health check",
    ),
]

ConcurrencyOption = Annotated[
    int | None,
    typer.Option(
        "--concurrency",
        min=1,
        help="Maximum number of health checks in flight",
        envvar="ESSHEALTH_HEALTHCHECK_CONCURRENCY",
        show_envvar=True,
        rich_help_panel="Health check",
    ),
]

VerifyTlsOption = Annotated[
    bool | None,
    typer.Option(
        "--verify-tls/--no-verify-tls",
        help="Verify TLS certificates of health endpoints",
        envvar="ESSHEALTH_VERIFY_TLS",
        show_envvar=True,
        rich_help_panel="TLS",
    ),
]

DebugOption = Annotated[
    bool | None,
    typer.Option(
        "--debug/--no-debug",
        help="Enable verbose diagnostics",
        envvar="ESSHEALTH_DEBUG",
        show_envvar=True,
        rich_help_panel="Diagnostics",
    ),
]

OutputFormatOption = Annotated[
    str,
    typer.Option(
        "--format",
        help="Report format (table or json)",
        rich_help_panel="Output",
    ),
]

OutputPathOption = Annotated[
    Path | None,
    typer.Option(
        "--output",
        help="Write the JSON report to this file",
        rich_help_panel="Output",
    ),
]

LogLevelOption = Annotated[
    str | None,
    typer.Option(
        "--log-level",
        help="Logging level (e.g. INFO, DEBUG)",
        envvar="ESSHEALTH_LOG_LEVEL",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]

LogFormatOption = Annotated[
    str | None,
    typer.Option(
        "--log-format",
        help="Logging format (text or json)",
        envvar="ESSHEALTH_LOG_FORMAT",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]

LogFileOption = Annotated[
    str | None,
    typer.Option(
        "--log-file",
        help="Path to a rotating log file",
        envvar="ESSHEALTH_LOG_FILE",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]


def clean_string(value: str | None) -> str | None:
    """Normalize optional string input."""

    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def normalize_output_format(value: str) -> str:
    candidate = value.strip().lower()
    if candidate not in OUTPUT_FORMAT_CHOICES:
        raise typer.BadParameter(
            "Output format must be either 'table' or 'json'",
            param_hint="--format",
        )
    return candidate


def normalize_log_format(value: str | None) -> str | None:
    """Normalize the log format option."""

    candidate = clean_string(value)
    if candidate is None:
        return None
    candidate = candidate.lower()
    if candidate not in LOG_FORMAT_CHOICES:
        raise typer.BadParameter(
            "Log format must be either 'text' or 'json'",
            param_hint="--log-format",
        )
    return candidate


def normalize_log_level(value: str | None) -> str | None:
    """Normalize the log level option."""

    candidate = clean_string(value)
    if candidate is None:
        return None
    candidate = candidate.upper()
    if candidate not in LOG_LEVEL_SET:
        raise typer.BadParameter(
            f"Log level must be one of: {', '.join(LOG_LEVEL_CHOICES)}",
            param_hint="--log-level",
        )
    return candidate


__all__ = [
    "ApplicationPathOption",
    "ConcurrencyOption",
    "ConfigPathOption",
    "DebugOption",
    "FactsPathOption",
    "HealthCheckFlagOption",
    "InstanceFilterOption",
    "LOG_FORMAT_CHOICES",
    "LOG_LEVEL_CHOICES",
    "LogFileOption",
    "LogFormatOption",
    "LogLevelOption",
    "MaxRetriesOption",
    "OUTPUT_FORMAT_CHOICES",
    "OutputFormatOption",
    "OutputPathOption",
    "RetryDelayOption",
    "TimeoutOption",
    "VerifyTlsOption",
    "clean_string",
    "normalize_log_format",
    "normalize_log_level",
    "normalize_output_format",
]
