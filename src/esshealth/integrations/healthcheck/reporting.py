from __future__ import annotations

from typing import Final

from esshealth.domain.models import CheckStatus
from esshealth.domain.results import ResultCollector

from .models import ComponentHealth, HealthCheckOutcome, HealthSlot, OverallStatus

CATEGORY_HEALTH_CHECK: Final = "Health Check"
SKIPPED_CANCELLED: Final = "Skipped: run cancelled"

_OVERALL_STATUS: Final = {
    OverallStatus.HEALTHY: CheckStatus.PASS,
    OverallStatus.PARTIALLY_UNHEALTHY: CheckStatus.WARNING,
    OverallStatus.UNHEALTHY: CheckStatus.FAIL,
    OverallStatus.UNKNOWN: CheckStatus.FAIL,
    OverallStatus.ERROR: CheckStatus.FAIL,
}


def _overall_message(outcome: HealthCheckOutcome) -> str:
    parts = [outcome.overall_status.value]
    if outcome.http_status is not None:
        parts.append(f"HTTP {outcome.http_status}")
    if outcome.interpretation and outcome.interpretation not in parts:
        parts.append(outcome.interpretation)
    summary = outcome.summary
    if summary.total_components:
        parts.append(
            f"{summary.healthy_components}/{summary.total_components} components healthy"
        )
    if outcome.error:
        parts.append(outcome.error)
    return "; ".join(parts)


def _slot_message(slot: HealthSlot, component: ComponentHealth) -> str:
    version = f" {component.version}" if component.version else ""
    text = f"{component.name}{version} is {component.status.value.lower()}"
    if component.messages:
        text += ": " + "; ".join(message.detail for message in component.messages)
    return text


def record_outcome(collector: ResultCollector, outcome: HealthCheckOutcome) -> None:
    """Write one overall result plus one result per populated slot."""

    if outcome.cancelled:
        collector.add(
            CATEGORY_HEALTH_CHECK,
            f"Health Endpoint [{outcome.target}]",
            CheckStatus.WARNING,
            SKIPPED_CANCELLED,
        )
        return

    collector.add(
        CATEGORY_HEALTH_CHECK,
        f"Health Endpoint [{outcome.target}]",
        _OVERALL_STATUS[outcome.overall_status],
        _overall_message(outcome),
    )
    for slot in HealthSlot:
        component = outcome.slots.get(slot)
        if component is None:
            continue
        collector.add(
            CATEGORY_HEALTH_CHECK,
            f"{slot.value} [{outcome.target}]",
            CheckStatus.PASS if component.healthy else CheckStatus.FAIL,
            _slot_message(slot, component),
        )


__all__ = ["CATEGORY_HEALTH_CHECK", "SKIPPED_CANCELLED", "record_outcome"]
