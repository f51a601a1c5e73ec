"""End-to-end validation run: discovery, rules and health checks."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Final, Optional

import httpx

from esshealth.config.settings import RuntimeSettings
from esshealth.domain.discovery import (
    DiscoveryError,
    DiscoveryOutcome,
    InstanceDiscovery,
    build_deployment,
)
from esshealth.domain.discovery.versions import VersionReader, read_file_version
from esshealth.domain.host_facts import HostFacts
from esshealth.domain.models import (
    CheckResult,
    CheckStatus,
    DeploymentResult,
    EssInstance,
    ResultSummary,
)
from esshealth.domain.results import ResultCollector
from esshealth.domain.validation import ValidationConfig, run_rules
from esshealth.infrastructure.logging import BoundLogger, get_logger, log_event
from esshealth.integrations.healthcheck import (
    HealthCheckClient,
    HealthCheckOutcome,
    HealthCheckPolicy,
    HealthCheckTarget,
    build_healthcheck_url,
    record_outcome,
    url_for_instance,
)

SyncRunner = Callable[[Awaitable[Any]], Any]
SleepFunc = Callable[[float], Awaitable[Any]]

CATEGORY_CONFIGURATION: Final = "Configuration"
CATEGORY_DISCOVERY: Final = "Discovery"
INTERACTIVE_TARGET: Final = "interactive"


def _default_run_sync(coro: Awaitable[Any]) -> Any:
    return asyncio.run(coro)  # type: ignore[arg-type]


@dataclass(frozen=True)
class RunOptions:
    run_health_checks: bool = True
    base_url: Optional[str] = None
    application_path: Optional[str] = None
    instance_filter: tuple[str, ...] = ()


@dataclass
class RunReport:
    """Everything one run produced."""

    deployment: DeploymentResult
    results: tuple[CheckResult, ...]
    summary: ResultSummary
    health_outcomes: tuple[HealthCheckOutcome, ...] = ()
    discovery_errors: tuple[DiscoveryError, ...] = ()
    hostname: Optional[str] = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.summary.failed == 0

    def exit_code(self) -> int:
        if self.summary.failed:
            return 1
        if self.summary.warnings:
            return 2
        return 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hostname": self.hostname,
            "deployment": self.deployment.to_dict(),
            "summary": self.summary.to_dict(),
            "results": [result.to_dict() for result in self.results],
            "health_checks": [outcome.to_dict() for outcome in self.health_outcomes],
            "discovery_errors": [
                {"site": error.site, "application": error.application, "message": error.message}
                for error in self.discovery_errors
            ],
            "cancelled": self.cancelled,
            "exit_code": self.exit_code(),
        }


def _matches_filter(instance: EssInstance, instance_filter: Sequence[str]) -> bool:
    if not instance_filter:
        return True
    wanted = {entry.strip().lower() for entry in instance_filter if entry.strip()}
    return instance.label.lower() in wanted or instance.site_name.lower() in wanted


class HealthRunner:
    """Drive a validation run against one host's facts."""

    def __init__(
        self,
        *,
        runtime_settings: RuntimeSettings,
        logger: BoundLogger | None = None,
        run_sync: SyncRunner | None = None,
        version_reader: VersionReader = read_file_version,
        validation_config: ValidationConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFunc = asyncio.sleep,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self._settings = runtime_settings
        self._logger = logger or get_logger("esshealth.runner")
        self._run_sync = run_sync or _default_run_sync
        self._version_reader = version_reader
        self._validation_config = validation_config or ValidationConfig.from_settings(
            runtime_settings
        )
        self._transport = transport
        self._sleep = sleep
        self._cancel_event = cancel_event
        self._cancel_requested = False
        self._active_event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def cancel_requested(self) -> bool:
        if self._cancel_requested:
            return True
        return self._cancel_event is not None and self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop probing and skip the targets not yet checked.

        Safe to call from a signal handler or another thread while :meth:`run`
        is executing; the run still returns a report.
        """

        self._cancel_requested = True
        loop, event = self._loop, self._active_event
        if loop is None or event is None:
            return
        with suppress(RuntimeError):
            loop.call_soon_threadsafe(event.set)

    def discover(self, facts: HostFacts) -> tuple[DeploymentResult, DiscoveryOutcome]:
        discovery = InstanceDiscovery(
            self._settings.discovery,
            compatibility=self._settings.compatibility,
            version_reader=self._version_reader,
            logger=self._logger,
        )
        outcome = discovery.discover(facts)
        return build_deployment(facts, outcome), outcome

    def run(self, facts: HostFacts, options: RunOptions | None = None) -> RunReport:
        options = options or RunOptions()
        collector = ResultCollector()
        log_event(self._logger, "run.started", hostname=facts.hostname)

        for warning in self._settings.warnings:
            collector.add(CATEGORY_CONFIGURATION, "Settings", CheckStatus.WARNING, warning)

        deployment, outcome = self.discover(facts)
        for error in outcome.errors:
            location = error.site + (error.application or "")
            collector.add(
                CATEGORY_DISCOVERY,
                f"Discovery [{location}]",
                CheckStatus.WARNING,
                error.message,
            )

        run_rules(
            facts,
            deployment,
            self._validation_config,
            collector,
            logger=self._logger,
        )

        health_outcomes: tuple[HealthCheckOutcome, ...] = ()
        if options.run_health_checks:
            targets = self._targets(deployment, options)
            if targets:
                health_outcomes = tuple(self._run_sync(self._probe(targets)))
                for health in health_outcomes:
                    record_outcome(collector, health)
            else:
                log_event(self._logger, "healthcheck.skipped", reason="no ESS instances")

        cancelled = self.cancel_requested
        if cancelled:
            log_event(self._logger, "run.cancelled", level=logging.WARNING)
        summary = collector.summary()
        log_event(
            self._logger,
            "run.completed",
            deployment_type=deployment.deployment_type.value,
            total=summary.total,
            failed=summary.failed,
            warnings=summary.warnings,
        )
        return RunReport(
            deployment=deployment,
            results=collector.results,
            summary=summary,
            health_outcomes=health_outcomes,
            discovery_errors=outcome.errors,
            hostname=facts.hostname,
            cancelled=cancelled,
        )

    def _targets(
        self, deployment: DeploymentResult, options: RunOptions
    ) -> list[HealthCheckTarget]:
        if options.base_url:
            return [
                HealthCheckTarget(
                    name=INTERACTIVE_TARGET,
                    url=build_healthcheck_url(options.base_url, options.application_path),
                )
            ]

        targets = []
        for instance in deployment.ess_instances:
            if not _matches_filter(instance, options.instance_filter):
                continue
            try:
                url = url_for_instance(instance)
            except ValueError as exc:
                log_event(
                    self._logger,
                    "healthcheck.url.invalid",
                    level=logging.WARNING,
                    target=instance.label,
                    error=str(exc),
                )
                url = None
            targets.append(HealthCheckTarget(name=instance.label, url=url))
        return targets

    async def _probe(self, targets: Sequence[HealthCheckTarget]) -> list[HealthCheckOutcome]:
        policy = HealthCheckPolicy.from_settings(self._settings.healthcheck)
        event = self._cancel_event or asyncio.Event()
        self._active_event = event
        self._loop = asyncio.get_running_loop()
        if self._cancel_requested:
            event.set()
        try:
            async with HealthCheckClient(
                policy,
                transport=self._transport,
                sleep=self._sleep,
                logger=self._logger,
            ) as client:
                return await client.check_many(targets, cancel_event=event)
        finally:
            self._loop = None
            self._active_event = None


__all__ = [
    "CATEGORY_CONFIGURATION",
    "CATEGORY_DISCOVERY",
    "HealthRunner",
    "RunOptions",
    "RunReport",
]
