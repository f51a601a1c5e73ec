"""Typed records shared by discovery, validation and reporting."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class CheckStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    WARNING = "WARNING"
    INFO = "INFO"


class DeploymentType(str, Enum):
    NONE = "None"
    ESS_ONLY = "ESS Only"
    WFE_ONLY = "WFE Only"
    COMBINED = "Combined"


class InstanceKind(str, Enum):
    ESS = "ESS"
    WFE = "WFE"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CheckResult:
    category: str
    check: str
    status: CheckStatus
    message: str
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "check": self.check,
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ResultSummary:
    total: int
    passed: int
    failed: int
    warnings: int
    info: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pass": self.passed,
            "fail": self.failed,
            "warning": self.warnings,
            "info": self.info,
        }


@dataclass(frozen=True)
class VersionVerdict:
    """Outcome of the product/companion version compatibility lookup.

    ``compatible`` is ``None`` when either version could not be read.
    """

    compatible: bool | None
    reason: str
    required_companion: str | None = None


@dataclass(frozen=True)
class TlsBinding:
    protocol: str
    port: int | None = None
    host_header: str | None = None
    certificate_subject: str | None = None
    certificate_expiry: datetime | None = None
    certificate_error: str | None = None

    @property
    def is_https(self) -> bool:
        return self.protocol.lower() == "https"

    @property
    def label(self) -> str:
        host = self.host_header or "*"
        port = self.port if self.port is not None else "?"
        return f"{self.protocol}://{host}:{port}"


@dataclass(frozen=True)
class DatabaseLogin:
    """SQL credentials from an instance configuration.

    An empty ``user`` means Windows authentication.
    """

    user: str | None = None
    password: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class Instance(ABC):
    site_name: str
    application_path: str
    physical_path: str
    application_pool: str | None = None
    database_server: str | None = None
    database_name: str | None = None
    database_login: DatabaseLogin | None = field(default=None, repr=False, compare=False)

    @property
    @abstractmethod
    def kind(self) -> InstanceKind: ...

    @property
    def label(self) -> str:
        return f"{self.site_name}{self.application_path}"

    @property
    def has_database(self) -> bool:
        return bool(self.database_server and self.database_name)

    @property
    def has_version_info(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "site_name": self.site_name,
            "application_path": self.application_path,
            "physical_path": self.physical_path,
            "application_pool": self.application_pool,
            "database_server": self.database_server,
            "database_name": self.database_name,
        }


@dataclass(frozen=True)
class EssInstance(Instance):
    tenant_id: str | None = None
    host: str | None = None
    virtual_root: str | None = None
    protocol: str | None = None
    authentication_mode: str | None = None
    encrypted: bool = False
    encrypted_sections: tuple[str, ...] = ()
    product_version: str | None = None
    companion_version: str | None = None
    version_compatibility: VersionVerdict | None = None
    uses_https: bool = False
    bindings: tuple[TlsBinding, ...] = ()

    @property
    def kind(self) -> InstanceKind:
        return InstanceKind.ESS

    @property
    def has_version_info(self) -> bool:
        return self.product_version is not None

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        verdict = self.version_compatibility
        payload.update(
            {
                "tenant_id": self.tenant_id,
                "host": self.host,
                "virtual_root": self.virtual_root,
                "protocol": self.protocol,
                "authentication_mode": self.authentication_mode,
                "encrypted": self.encrypted,
                "encrypted_sections": list(self.encrypted_sections),
                "product_version": self.product_version,
                "companion_version": self.companion_version,
                "version_compatible": verdict.compatible if verdict else None,
                "uses_https": self.uses_https,
                "bindings": [binding.label for binding in self.bindings],
            }
        )
        return payload


@dataclass(frozen=True)
class WfeInstance(Instance):
    client_url: str | None = None
    tenant_id: str | None = None
    from_address: str | None = None

    @property
    def kind(self) -> InstanceKind:
        return InstanceKind.WFE

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update(
            {
                "client_url": self.client_url,
                "tenant_id": self.tenant_id,
                "from_address": self.from_address,
            }
        )
        return payload


@dataclass(frozen=True)
class DeploymentResult:
    host_has_web_server: bool
    ess_instances: tuple[EssInstance, ...]
    wfe_instances: tuple[WfeInstance, ...]
    deployment_type: DeploymentType

    @classmethod
    def build(
        cls,
        *,
        host_has_web_server: bool,
        ess_instances: tuple[EssInstance, ...] | list[EssInstance] = (),
        wfe_instances: tuple[WfeInstance, ...] | list[WfeInstance] = (),
    ) -> "DeploymentResult":
        from esshealth.domain.deployment import classify_deployment

        ess = tuple(ess_instances)
        wfe = tuple(wfe_instances)
        return cls(
            host_has_web_server=host_has_web_server,
            ess_instances=ess,
            wfe_instances=wfe,
            deployment_type=classify_deployment(len(ess), len(wfe), host_has_web_server),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "host_has_web_server": self.host_has_web_server,
            "deployment_type": self.deployment_type.value,
            "ess_instances": [instance.to_dict() for instance in self.ess_instances],
            "wfe_instances": [instance.to_dict() for instance in self.wfe_instances],
        }


__all__ = [
    "CheckStatus",
    "DeploymentType",
    "InstanceKind",
    "CheckResult",
    "ResultSummary",
    "VersionVerdict",
    "TlsBinding",
    "DatabaseLogin",
    "Instance",
    "EssInstance",
    "WfeInstance",
    "DeploymentResult",
]
