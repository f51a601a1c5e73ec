from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class ComponentStatus(str, Enum):
    HEALTHY = "Healthy"
    UNHEALTHY = "Unhealthy"


class OverallStatus(str, Enum):
    HEALTHY = "Healthy"
    UNHEALTHY = "Unhealthy"
    PARTIALLY_UNHEALTHY = "Partially Unhealthy"
    UNKNOWN = "Unknown"
    ERROR = "Error"


class HealthSlot(str, Enum):
    PAYGLOBAL_DATABASE = "PayGlobal Database"
    SELF_SERVICE_SOFTWARE = "Self-Service Software"
    SELF_SERVICE_DATABASE = "Self-Service Database"
    BRIDGE = "Bridge"
    WFE_DATABASE = "WFE Database"
    BRIDGE_COMMUNICATION = "Bridge Communication"
    WORKFLOW_ENDPOINTS = "Workflow Endpoints"


@dataclass(frozen=True)
class ComponentMessage:
    type: Optional[str]
    detail: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "detail": self.detail}


@dataclass(frozen=True)
class ComponentHealth:
    name: str
    status: ComponentStatus
    version: Optional[str] = None
    messages: tuple[ComponentMessage, ...] = ()

    @property
    def healthy(self) -> bool:
        return self.status is ComponentStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "status": self.status.value,
            "messages": [message.to_dict() for message in self.messages],
        }


@dataclass(frozen=True)
class HealthCheckSummary:
    total_components: int
    healthy_components: int
    unhealthy_components: int

    @classmethod
    def from_components(cls, components: tuple[ComponentHealth, ...]) -> "HealthCheckSummary":
        healthy = sum(1 for component in components if component.healthy)
        return cls(
            total_components=len(components),
            healthy_components=healthy,
            unhealthy_components=len(components) - healthy,
        )


@dataclass(frozen=True)
class HealthCheckOutcome:
    """Result of probing one health endpoint.

    ``slots`` only holds slots that some component matched; a slot without a
    matching component stays absent.
    """

    target: str
    url: Optional[str]
    overall_status: OverallStatus
    interpretation: str
    http_status: Optional[int] = None
    success: bool = False
    components: tuple[ComponentHealth, ...] = ()
    slots: Mapping[HealthSlot, ComponentHealth] = field(default_factory=dict)
    attempts: int = 0
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def summary(self) -> HealthCheckSummary:
        return HealthCheckSummary.from_components(self.components)

    def to_dict(self) -> dict[str, Any]:
        summary = self.summary
        return {
            "target": self.target,
            "url": self.url,
            "http_status": self.http_status,
            "interpretation": self.interpretation,
            "overall_status": self.overall_status.value,
            "success": self.success,
            "attempts": self.attempts,
            "error": self.error,
            "cancelled": self.cancelled,
            "summary": {
                "total_components": summary.total_components,
                "healthy_components": summary.healthy_components,
                "unhealthy_components": summary.unhealthy_components,
            },
            "components": [component.to_dict() for component in self.components],
            "slots": {slot.value: component.name for slot, component in self.slots.items()},
        }


__all__ = [
    "ComponentStatus",
    "OverallStatus",
    "HealthSlot",
    "ComponentMessage",
    "ComponentHealth",
    "HealthCheckSummary",
    "HealthCheckOutcome",
]
