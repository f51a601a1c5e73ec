"""Validation rules.

Each rule reads host facts and the deployment, never another rule's output,
and writes zero or more results into the collector it is handed. Missing data
degrades to WARNING or INFO; only a measured violation is a FAIL.
"""

from __future__ import annotations

import ctypes
import os
import tempfile
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Final, Optional

from esshealth.config.settings import (
    DEFAULT_CERTIFICATE_WARNING_DAYS,
    DEFAULT_COMPATIBILITY_TABLE,
    DEFAULT_DATABASE_TIMEOUT,
    RequirementSettings,
    RuntimeSettings,
)
from esshealth.domain.discovery.config_parser import is_single_sign_on
from esshealth.domain.host_facts import HostFacts
from esshealth.domain.models import (
    CheckStatus,
    DeploymentResult,
    EssInstance,
    Instance,
    TlsBinding,
)
from esshealth.domain.results import ResultCollector
from esshealth.domain.validation.versioning import (
    evaluate_compatibility,
    parse_version,
    version_at_least,
)
from esshealth.integrations.database import DatabaseProbe, probe_sql_server

CATEGORY_DEPLOYMENT: Final = "Deployment"
CATEGORY_RESOURCES: Final = "System Resources"
CATEGORY_PLATFORM: Final = "Platform"
CATEGORY_ESS_CONFIGURATION: Final = "ESS Configuration"
CATEGORY_VERSION: Final = "Version"
CATEGORY_TRANSPORT: Final = "Transport"
CATEGORY_DATABASE: Final = "Database"
CATEGORY_WFE_CONFIGURATION: Final = "WFE Configuration"
CATEGORY_ENVIRONMENT: Final = "Environment"


def probe_temp_directory() -> Optional[str]:
    """Write and delete a scratch file; return the error text on failure."""

    try:
        with tempfile.NamedTemporaryFile(mode="w", prefix="esshealth-", delete=True) as handle:
            handle.write("esshealth")
            handle.flush()
    except OSError as exc:
        return f"{tempfile.gettempdir()}: {exc.strerror or exc}"
    return None


def probe_elevation() -> Optional[bool]:
    """``None`` when the privilege level cannot be determined."""

    if os.name == "nt":
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
        except (AttributeError, OSError):
            return None
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None:
        return None
    return geteuid() == 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ValidationConfig:
    requirements: RequirementSettings = field(default_factory=RequirementSettings)
    compatibility: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_COMPATIBILITY_TABLE)
    )
    certificate_warning_days: int = DEFAULT_CERTIFICATE_WARNING_DAYS
    database_timeout: float = DEFAULT_DATABASE_TIMEOUT
    database_probe: DatabaseProbe = probe_sql_server
    temp_directory_probe: Callable[[], Optional[str]] = probe_temp_directory
    elevation_probe: Callable[[], Optional[bool]] = probe_elevation
    clock: Callable[[], datetime] = _utcnow

    @classmethod
    def from_settings(cls, settings: RuntimeSettings, **overrides: object) -> "ValidationConfig":
        values: dict[str, object] = {
            "requirements": settings.requirements,
            "compatibility": dict(settings.compatibility),
            "certificate_warning_days": settings.validation.certificate_warning_days,
            "database_timeout": settings.validation.database_timeout,
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]


Rule = Callable[[HostFacts, DeploymentResult, ValidationConfig, ResultCollector], None]


def _format_number(value: float) -> str:
    return f"{value:g}"


def _check_threshold(
    collector: ResultCollector,
    *,
    check: str,
    actual: Optional[float],
    minimum: float,
    unit: str,
) -> None:
    if actual is None:
        collector.add(
            CATEGORY_RESOURCES,
            check,
            CheckStatus.WARNING,
            f"Unable to determine {check.lower()}; required minimum is "
            f"{_format_number(minimum)} {unit}",
        )
        return
    if actual >= minimum:
        collector.add(
            CATEGORY_RESOURCES,
            check,
            CheckStatus.PASS,
            f"{_format_number(actual)} {unit} available (minimum {_format_number(minimum)} {unit})",
        )
        return
    collector.add(
        CATEGORY_RESOURCES,
        check,
        CheckStatus.FAIL,
        f"{_format_number(actual)} {unit} found; at least {_format_number(minimum)} {unit} required",
    )


def deployment_overview(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    collector.add(
        CATEGORY_DEPLOYMENT,
        "Deployment Type",
        CheckStatus.INFO,
        f"{deployment.deployment_type.value} "
        f"({len(deployment.ess_instances)} ESS, {len(deployment.wfe_instances)} WFE)",
    )


def check_disk_space(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    _check_threshold(
        collector,
        check="Disk Space",
        actual=facts.disk_free_gb,
        minimum=config.requirements.min_disk_gb,
        unit="GB",
    )


def check_memory(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    _check_threshold(
        collector,
        check="Memory",
        actual=facts.memory_gb,
        minimum=config.requirements.min_memory_gb,
        unit="GB",
    )


def check_cpu_cores(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    _check_threshold(
        collector,
        check="CPU Cores",
        actual=facts.core_count,
        minimum=config.requirements.min_cores,
        unit="cores",
    )


def check_cpu_clock(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    _check_threshold(
        collector,
        check="CPU Clock Speed",
        actual=facts.average_clock_ghz,
        minimum=config.requirements.min_clock_ghz,
        unit="GHz",
    )


def check_web_server(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    minimum = config.requirements.min_web_server_version
    if not facts.has_web_server:
        collector.add(
            CATEGORY_PLATFORM,
            "Web Server",
            CheckStatus.FAIL,
            f"IIS is not installed; version {minimum} or later is required",
        )
        return

    meets = version_at_least(facts.web_server_version, minimum)
    if meets is None:
        collector.add(
            CATEGORY_PLATFORM,
            "Web Server",
            CheckStatus.WARNING,
            f"IIS is installed but its version could not be determined "
            f"(reported {facts.web_server_version!r}); version {minimum} or later is required",
        )
    elif meets:
        collector.add(
            CATEGORY_PLATFORM,
            "Web Server",
            CheckStatus.PASS,
            f"IIS {facts.web_server_version} installed (minimum {minimum})",
        )
    else:
        collector.add(
            CATEGORY_PLATFORM,
            "Web Server",
            CheckStatus.FAIL,
            f"IIS {facts.web_server_version} found; version {minimum} or later is required",
        )


def check_dotnet_runtime(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    minimum = config.requirements.min_dotnet_version
    parsed = [
        (version, raw)
        for raw in facts.dot_net_versions
        if (version := parse_version(raw)) is not None
    ]
    if not parsed:
        collector.add(
            CATEGORY_PLATFORM,
            ".NET Framework",
            CheckStatus.FAIL,
            f".NET Framework is not installed; version {minimum} or later is required",
        )
        return

    _, highest = max(parsed)
    if version_at_least(highest, minimum):
        collector.add(
            CATEGORY_PLATFORM,
            ".NET Framework",
            CheckStatus.PASS,
            f".NET Framework {highest} installed (minimum {minimum})",
        )
    else:
        collector.add(
            CATEGORY_PLATFORM,
            ".NET Framework",
            CheckStatus.FAIL,
            f".NET Framework {highest} found; version {minimum} or later is required",
        )


def check_sql_server(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    if facts.sql_server_installed is None:
        message = "Unable to determine whether SQL Server is installed locally"
    elif facts.sql_server_installed:
        message = "SQL Server is installed on this host"
    else:
        message = "SQL Server is not installed locally; databases are expected on a remote server"
    collector.add(CATEGORY_PLATFORM, "SQL Server", CheckStatus.INFO, message)


def check_encryption_policy(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    for instance in deployment.ess_instances:
        check = f"Encryption [{instance.label}]"
        mode = instance.authentication_mode or "unknown"
        sections = ", ".join(instance.encrypted_sections) or "configuration"
        if is_single_sign_on(instance.authentication_mode):
            if instance.encrypted:
                collector.add(
                    CATEGORY_ESS_CONFIGURATION,
                    check,
                    CheckStatus.FAIL,
                    f"SingleSignOn with encrypted {sections}; decrypt before upgrade",
                )
            else:
                collector.add(
                    CATEGORY_ESS_CONFIGURATION,
                    check,
                    CheckStatus.PASS,
                    "SingleSignOn with unencrypted configuration",
                )
        elif instance.encrypted:
            collector.add(
                CATEGORY_ESS_CONFIGURATION,
                check,
                CheckStatus.INFO,
                f"Authentication mode {mode}; {sections} encrypted (not required)",
            )
        else:
            collector.add(
                CATEGORY_ESS_CONFIGURATION,
                check,
                CheckStatus.PASS,
                f"Authentication mode {mode}; encryption not required",
            )


def check_version_compatibility(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    floor = config.requirements.min_product_version
    for instance in deployment.ess_instances:
        check = f"Version [{instance.label}]"
        if not instance.has_version_info:
            collector.add(
                CATEGORY_VERSION,
                check,
                CheckStatus.WARNING,
                "Unable to read the installed ESS version",
            )
            continue

        meets_floor = version_at_least(instance.product_version, floor)
        if meets_floor is None:
            collector.add(
                CATEGORY_VERSION,
                check,
                CheckStatus.WARNING,
                f"Unrecognised ESS version {instance.product_version!r}",
            )
            continue
        if not meets_floor:
            collector.add(
                CATEGORY_VERSION,
                check,
                CheckStatus.FAIL,
                f"ESS {instance.product_version} is below the supported minimum {floor}",
            )
            continue

        verdict = evaluate_compatibility(
            instance.product_version, instance.companion_version, config.compatibility
        )
        if verdict.compatible is None:
            collector.add(CATEGORY_VERSION, check, CheckStatus.WARNING, verdict.reason)
        elif verdict.compatible:
            collector.add(CATEGORY_VERSION, check, CheckStatus.PASS, verdict.reason)
        else:
            collector.add(CATEGORY_VERSION, check, CheckStatus.FAIL, verdict.reason)


def _check_certificate(
    binding: TlsBinding,
    instance: EssInstance,
    config: ValidationConfig,
    collector: ResultCollector,
    now: datetime,
) -> None:
    check = f"Certificate [{instance.label} {binding.label}]"
    if binding.certificate_error:
        collector.add(CATEGORY_TRANSPORT, check, CheckStatus.FAIL, binding.certificate_error)
        return
    expiry = binding.certificate_expiry
    if expiry is None:
        collector.add(
            CATEGORY_TRANSPORT,
            check,
            CheckStatus.FAIL,
            "Unable to read the certificate bound to this HTTPS binding",
        )
        return

    subject = f"{binding.certificate_subject} " if binding.certificate_subject else ""
    expiry_text = expiry.strftime("%Y-%m-%d")
    if expiry <= now:
        collector.add(
            CATEGORY_TRANSPORT,
            check,
            CheckStatus.FAIL,
            f"Certificate {subject}expired on {expiry_text}",
        )
    elif expiry - now <= timedelta(days=config.certificate_warning_days):
        days = (expiry - now).days
        collector.add(
            CATEGORY_TRANSPORT,
            check,
            CheckStatus.WARNING,
            f"Certificate {subject}expires on {expiry_text} ({days} days)",
        )
    else:
        collector.add(
            CATEGORY_TRANSPORT,
            check,
            CheckStatus.PASS,
            f"Certificate {subject}valid until {expiry_text}",
        )


def check_transport_security(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    now = config.clock()
    for instance in deployment.ess_instances:
        check = f"HTTPS [{instance.label}]"
        https_bindings = [binding for binding in instance.bindings if binding.is_https]
        if not https_bindings:
            collector.add(
                CATEGORY_TRANSPORT,
                check,
                CheckStatus.INFO,
                "Site is served over HTTP only",
            )
            continue
        collector.add(
            CATEGORY_TRANSPORT,
            check,
            CheckStatus.PASS,
            f"{len(https_bindings)} HTTPS binding(s) configured",
        )
        for binding in https_bindings:
            _check_certificate(binding, instance, config, collector, now)


def _probe_instance_database(
    instance: Instance, config: ValidationConfig, collector: ResultCollector
) -> None:
    check = f"{instance.kind.value} Database [{instance.label}]"
    if not instance.database_server or not instance.database_name:
        collector.add(
            CATEGORY_DATABASE,
            check,
            CheckStatus.WARNING,
            "Database server or name missing from the instance configuration",
        )
        return

    result = config.database_probe(
        instance.database_server,
        instance.database_name,
        timeout=config.database_timeout,
        login=instance.database_login,
    )
    target = f"{instance.database_server}/{instance.database_name}"
    if result.success:
        collector.add(CATEGORY_DATABASE, check, CheckStatus.PASS, result.message)
    else:
        collector.add(
            CATEGORY_DATABASE,
            check,
            CheckStatus.FAIL,
            f"Cannot connect to {target}: {result.message}",
        )


def check_database_connectivity(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    for instance in (*deployment.ess_instances, *deployment.wfe_instances):
        _probe_instance_database(instance, config, collector)


def check_wfe_configuration(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    for instance in deployment.wfe_instances:
        check = f"WFE Settings [{instance.label}]"
        missing = [
            name
            for name, value in (
                ("client URL", instance.client_url),
                ("from address", instance.from_address),
                ("tenant id", instance.tenant_id),
            )
            if not value
        ]
        if missing:
            collector.add(
                CATEGORY_WFE_CONFIGURATION,
                check,
                CheckStatus.WARNING,
                f"Missing {', '.join(missing)} in the workflow engine configuration",
            )
        else:
            collector.add(
                CATEGORY_WFE_CONFIGURATION,
                check,
                CheckStatus.PASS,
                f"Client URL {instance.client_url}; notifications from {instance.from_address}",
            )


def check_temp_directory(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    error = config.temp_directory_probe()
    if error is None:
        collector.add(
            CATEGORY_ENVIRONMENT,
            "Temp Directory",
            CheckStatus.PASS,
            "Temporary directory is writable",
        )
    else:
        collector.add(
            CATEGORY_ENVIRONMENT,
            "Temp Directory",
            CheckStatus.WARNING,
            f"Temporary directory is not writable: {error}",
        )


def check_elevation(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
) -> None:
    elevated = facts.is_elevated
    if elevated is None:
        elevated = config.elevation_probe()
    if elevated:
        collector.add(
            CATEGORY_ENVIRONMENT,
            "Elevation",
            CheckStatus.PASS,
            "Running with administrative privileges",
        )
    elif elevated is None:
        collector.add(
            CATEGORY_ENVIRONMENT,
            "Elevation",
            CheckStatus.WARNING,
            "Unable to determine whether the tool runs with administrative privileges",
        )
    else:
        collector.add(
            CATEGORY_ENVIRONMENT,
            "Elevation",
            CheckStatus.WARNING,
            "Not running elevated; some configuration files may be unreadable",
        )


DEFAULT_RULES: Final[tuple[tuple[str, Rule], ...]] = (
    ("deployment_overview", deployment_overview),
    ("disk_space", check_disk_space),
    ("memory", check_memory),
    ("cpu_cores", check_cpu_cores),
    ("cpu_clock", check_cpu_clock),
    ("web_server", check_web_server),
    ("dotnet_runtime", check_dotnet_runtime),
    ("sql_server", check_sql_server),
    ("encryption_policy", check_encryption_policy),
    ("version_compatibility", check_version_compatibility),
    ("transport_security", check_transport_security),
    ("database_connectivity", check_database_connectivity),
    ("wfe_configuration", check_wfe_configuration),
    ("temp_directory", check_temp_directory),
    ("elevation", check_elevation),
)


__all__ = [
    "CATEGORY_DEPLOYMENT",
    "CATEGORY_RESOURCES",
    "CATEGORY_PLATFORM",
    "CATEGORY_ESS_CONFIGURATION",
    "CATEGORY_VERSION",
    "CATEGORY_TRANSPORT",
    "CATEGORY_DATABASE",
    "CATEGORY_WFE_CONFIGURATION",
    "CATEGORY_ENVIRONMENT",
    "DEFAULT_RULES",
    "Rule",
    "ValidationConfig",
    "probe_temp_directory",
    "probe_elevation",
    "deployment_overview",
    "check_disk_space",
    "check_memory",
    "check_cpu_cores",
    "check_cpu_clock",
    "check_web_server",
    "check_dotnet_runtime",
    "check_sql_server",
    "check_encryption_policy",
    "check_version_compatibility",
    "check_transport_security",
    "check_database_connectivity",
    "check_wfe_configuration",
    "check_temp_directory",
    "check_elevation",
]
