"""Reusable helper utilities for the ESSHealth CLI."""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from types import FrameType
from typing import NoReturn

import typer
from rich.console import Console

from esshealth.cli import options as cli_options
from esshealth.config.settings import (
    HealthCheckInputs,
    LoggingInputs,
    LoggingSettings,
    RuntimeInputs,
    RuntimeSettings,
    resolve_application_settings,
)
from esshealth.domain.host_facts import HostFacts, collect_local_host_facts, load_host_facts
from esshealth.infrastructure.errors import EssHealthError
from esshealth.infrastructure.logging import BoundLogger, configure_logging, get_logger

FATAL_EXIT_CODE = 2


def abort(console: Console, error: EssHealthError) -> NoReturn:
    """Print a fatal error and stop with exit code 2."""

    console.print(f"[red]Error:[/red] {error.user_message}")
    raise typer.Exit(code=FATAL_EXIT_CODE)


def healthcheck_inputs(
    *,
    timeout: float | None = None,
    max_retries: int | None = None,
    retry_delay: float | None = None,
    concurrency: int | None = None,
    verify_tls: bool | None = None,
) -> HealthCheckInputs | None:
    if all(
        value is None for value in (timeout, max_retries, retry_delay, concurrency, verify_tls)
    ):
        return None
    return HealthCheckInputs(
        timeout=timeout,
        max_retries=max_retries,
        retry_delay=retry_delay,
        concurrency=concurrency,
        verify_tls=verify_tls,
    )


def logging_inputs(
    *,
    level: str | None = None,
    format: str | None = None,
    file_path: str | None = None,
) -> LoggingInputs | None:
    level = cli_options.normalize_log_level(level)
    format = cli_options.normalize_log_format(format)
    file_path = cli_options.clean_string(file_path)
    if level is None and format is None and file_path is None:
        return None
    return LoggingInputs(level=level, format=format, file_path=file_path)


def resolve_settings(
    console: Console,
    *,
    config_path: Path | None,
    healthcheck: HealthCheckInputs | None = None,
    debug: bool | None = None,
    logging_overrides: LoggingInputs | None = None,
) -> tuple[RuntimeSettings, LoggingSettings]:
    try:
        return resolve_application_settings(
            config_path=str(config_path) if config_path is not None else None,
            healthcheck_inputs=healthcheck,
            runtime_inputs=RuntimeInputs(debug=debug) if debug is not None else None,
            logging_inputs=logging_overrides,
        )
    except EssHealthError as exc:
        abort(console, exc)


def initialize_logging(
    runtime_settings: RuntimeSettings, logging_settings: LoggingSettings
) -> BoundLogger:
    """Configure logging and emit settings warnings."""

    configure_logging(logging_settings)
    logger = get_logger("esshealth")
    for message in runtime_settings.warnings:
        logger.warning(message)
    return logger


def load_facts(console: Console, facts_path: Path | None, logger: BoundLogger) -> HostFacts:
    try:
        if facts_path is not None:
            facts = load_host_facts(facts_path)
            logger.info("facts.loaded", source=str(facts_path), sites=len(facts.sites))
        else:
            facts = collect_local_host_facts()
            logger.info("facts.collected", hostname=facts.hostname)
    except EssHealthError as exc:
        logger.error("facts.unavailable", **exc.log_fields())
        abort(console, exc)
    return facts


@contextmanager
def cancel_on_interrupt(cancel: Callable[[], None], console: Console) -> Iterator[None]:
    """Turn the first Ctrl+C into a cancellation request.

    A second Ctrl+C falls through to the previous handler.
    """

    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.getsignal(signal.SIGINT)
    if previous is None:
        previous = signal.default_int_handler

    def _handler(signum: int, frame: FrameType | None) -> None:
        signal.signal(signal.SIGINT, previous)
        console.print("[yellow]Interrupted; cancelling remaining health checks...[/yellow]")
        cancel()

    signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


__all__ = [
    "FATAL_EXIT_CODE",
    "abort",
    "cancel_on_interrupt",
    "healthcheck_inputs",
    "initialize_logging",
    "load_facts",
    "logging_inputs",
    "resolve_settings",
]
