"""Rich rendering of run reports."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Final

from rich import box
from rich.console import Console
from rich.table import Table

from esshealth.application.diagnostics import RunReport
from esshealth.domain.models import CheckResult, CheckStatus, DeploymentResult, ResultSummary
from esshealth.integrations.healthcheck import HealthCheckOutcome, OverallStatus

STATUS_STYLES: Final[dict[CheckStatus, str]] = {
    CheckStatus.PASS: "green",
    CheckStatus.FAIL: "bold red",
    CheckStatus.WARNING: "yellow",
    CheckStatus.INFO: "cyan",
}

OVERALL_STYLES: Final[dict[OverallStatus, str]] = {
    OverallStatus.HEALTHY: "green",
    OverallStatus.PARTIALLY_UNHEALTHY: "yellow",
    OverallStatus.UNHEALTHY: "bold red",
    OverallStatus.UNKNOWN: "red",
    OverallStatus.ERROR: "red",
}


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]"


def results_table(results: Iterable[CheckResult]) -> Table:
    table = Table(title="Validation results", box=box.SIMPLE_HEAVY)
    table.add_column("Category", style="bold")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Message", overflow="fold")
    for result in results:
        table.add_row(
            result.category,
            result.check,
            _styled(result.status.value, STATUS_STYLES[result.status]),
            result.message,
        )
    return table


def deployment_table(deployment: DeploymentResult) -> Table:
    table = Table(
        title=f"Deployment: {deployment.deployment_type.value}", box=box.SIMPLE_HEAVY
    )
    table.add_column("Kind", style="bold")
    table.add_column("Instance")
    table.add_column("Physical path", overflow="fold")
    table.add_column("Database")
    table.add_column("Version")
    for instance in (*deployment.ess_instances, *deployment.wfe_instances):
        database = (
            f"{instance.database_server}/{instance.database_name}"
            if instance.has_database
            else "-"
        )
        version = getattr(instance, "product_version", None) or "-"
        table.add_row(
            instance.kind.value, instance.label, instance.physical_path, database, version
        )
    return table


def outcome_table(outcome: HealthCheckOutcome) -> Table:
    style = OVERALL_STYLES[outcome.overall_status]
    table = Table(
        title=f"{outcome.target}: {_styled(outcome.overall_status.value, style)}",
        caption=outcome.url or None,
        box=box.SIMPLE_HEAVY,
    )
    table.add_column("Component", style="bold")
    table.add_column("Slot")
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("Messages", overflow="fold")
    slot_names = {component.name: slot.value for slot, component in outcome.slots.items()}
    for component in outcome.components:
        healthy = component.healthy
        table.add_row(
            component.name,
            slot_names.get(component.name, "-"),
            component.version or "-",
            _styled(component.status.value, "green" if healthy else "bold red"),
            "; ".join(message.detail for message in component.messages),
        )
    return table


def summary_line(summary: ResultSummary) -> str:
    return (
        f"Total {summary.total}: "
        f"{_styled(f'{summary.passed} passed', STATUS_STYLES[CheckStatus.PASS])}, "
        f"{_styled(f'{summary.failed} failed', STATUS_STYLES[CheckStatus.FAIL])}, "
        f"{_styled(f'{summary.warnings} warnings', STATUS_STYLES[CheckStatus.WARNING])}, "
        f"{_styled(f'{summary.info} info', STATUS_STYLES[CheckStatus.INFO])}"
    )


def render_report(console: Console, report: RunReport) -> None:
    console.print(deployment_table(report.deployment))
    console.print(results_table(report.results))
    for outcome in report.health_outcomes:
        if outcome.components:
            console.print(outcome_table(outcome))
    console.print(summary_line(report.summary))
    if report.cancelled:
        console.print("[yellow]Run cancelled; health checks not yet started were skipped.[/yellow]")


__all__ = [
    "deployment_table",
    "outcome_table",
    "render_report",
    "results_table",
    "summary_line",
]
