"""Health-check client for ESS instances."""

from .client import (
    HealthCheckClient,
    HealthCheckPolicy,
    HealthCheckTarget,
    build_healthcheck_url,
    url_for_instance,
)
from .models import (
    ComponentHealth,
    ComponentMessage,
    ComponentStatus,
    HealthCheckOutcome,
    HealthCheckSummary,
    HealthSlot,
    OverallStatus,
)
from .parsing import ParsedPayload, parse_payload
from .reporting import CATEGORY_HEALTH_CHECK, SKIPPED_CANCELLED, record_outcome
from .slots import SLOT_RULES, assign_slots

__all__ = [
    "CATEGORY_HEALTH_CHECK",
    "SKIPPED_CANCELLED",
    "SLOT_RULES",
    "ComponentHealth",
    "ComponentMessage",
    "ComponentStatus",
    "HealthCheckClient",
    "HealthCheckOutcome",
    "HealthCheckPolicy",
    "HealthCheckSummary",
    "HealthCheckTarget",
    "HealthSlot",
    "OverallStatus",
    "ParsedPayload",
    "assign_slots",
    "build_healthcheck_url",
    "parse_payload",
    "record_outcome",
    "url_for_instance",
]
