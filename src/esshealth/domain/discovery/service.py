"""Discover ESS and WFE instances under the web-server sites of a host."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import timezone
from pathlib import Path
from typing import Any, Optional, Union

from esshealth.config.settings import DEFAULT_COMPATIBILITY_TABLE, DiscoverySettings
from esshealth.domain.discovery.certificates import read_certificate
from esshealth.domain.discovery.config_parser import (
    ConfigKind,
    ParsedConfig,
    read_instance_config,
)
from esshealth.domain.discovery.versions import (
    VersionReader,
    read_file_version,
    read_instance_versions,
)
from esshealth.domain.host_facts import HostFacts
from esshealth.domain.models import (
    DatabaseLogin,
    DeploymentResult,
    EssInstance,
    TlsBinding,
    WfeInstance,
)
from esshealth.domain.validation.versioning import evaluate_compatibility
from esshealth.infrastructure.logging import BoundLogger, get_logger

DiscoveredInstance = Union[EssInstance, WfeInstance]


@dataclass(frozen=True)
class DiscoveryError:
    site: str
    application: Optional[str]
    message: str


@dataclass(frozen=True)
class DiscoveryOutcome:
    ess_instances: tuple[EssInstance, ...] = ()
    wfe_instances: tuple[WfeInstance, ...] = ()
    errors: tuple[DiscoveryError, ...] = ()


@dataclass(frozen=True)
class _Candidate:
    application_path: str
    physical_path: str
    application_pool: Optional[str]


def _expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))


def _database_login(parsed: ParsedConfig) -> Optional[DatabaseLogin]:
    if parsed.database_user is None and parsed.database_password is None:
        return None
    return DatabaseLogin(user=parsed.database_user, password=parsed.database_password)


def _binding_from_facts(binding: Any) -> TlsBinding:
    subject = getattr(binding, "certificate_subject", None)
    expiry = getattr(binding, "certificate_expiry", None)
    error: Optional[str] = None

    certificate_path = getattr(binding, "certificate_path", None)
    if certificate_path and expiry is None:
        info = read_certificate(_expand(certificate_path))
        subject = subject or info.subject
        expiry = info.expiry
        error = info.error

    if expiry is not None and expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)

    return TlsBinding(
        protocol=str(getattr(binding, "protocol", "http") or "http").lower(),
        port=getattr(binding, "port", None),
        host_header=getattr(binding, "host_header", None),
        certificate_subject=subject,
        certificate_expiry=expiry,
        certificate_error=error,
    )


class InstanceDiscovery:
    """Walk sites and applications looking for instance marker files.

    Every site root and every application is inspected on its own; one
    unreadable site or application never stops the rest of the walk.
    """

    def __init__(
        self,
        settings: DiscoverySettings | None = None,
        *,
        compatibility: Mapping[str, str] | None = None,
        version_reader: VersionReader = read_file_version,
        logger: BoundLogger | None = None,
    ) -> None:
        self._settings = settings or DiscoverySettings()
        self._compatibility = dict(
            DEFAULT_COMPATIBILITY_TABLE if compatibility is None else compatibility
        )
        self._version_reader = version_reader
        self._logger = logger or get_logger("esshealth.discovery")

    def discover(self, facts: HostFacts) -> DiscoveryOutcome:
        ess: list[EssInstance] = []
        wfe: list[WfeInstance] = []
        errors: list[DiscoveryError] = []

        for rejected in facts.rejected_sites:
            self._record_rejected(errors, rejected.name, None, rejected.message)

        for site in facts.sites:
            site_name = str(getattr(site, "name", "") or "<unnamed>")
            try:
                self._discover_site(site, facts, ess, wfe, errors)
            except Exception as exc:
                self._logger.warning(
                    "discovery.site.failed", site=site_name, error=str(exc)
                )
                errors.append(
                    DiscoveryError(site=site_name, application=None, message=str(exc))
                )

        self._logger.info(
            "discovery.completed",
            ess_instances=len(ess),
            wfe_instances=len(wfe),
            errors=len(errors),
        )
        return DiscoveryOutcome(
            ess_instances=tuple(ess),
            wfe_instances=tuple(wfe),
            errors=tuple(errors),
        )

    def _record_rejected(
        self,
        errors: list[DiscoveryError],
        site: str,
        application: Optional[str],
        message: str,
    ) -> None:
        self._logger.warning(
            "discovery.entry.rejected", site=site, application=application, error=message
        )
        errors.append(DiscoveryError(site=site, application=application, message=message))

    def _candidates(self, site: Any) -> Iterable[_Candidate]:
        seen: set[str] = set()
        if site.physical_path:
            seen.add("/")
            yield _Candidate("/", site.physical_path, site.application_pool)
        for application in site.applications:
            path = application.path or "/"
            if path in seen:
                continue
            seen.add(path)
            yield _Candidate(
                path,
                application.physical_path,
                application.application_pool or site.application_pool,
            )

    def _discover_site(
        self,
        site: Any,
        facts: HostFacts,
        ess: list[EssInstance],
        wfe: list[WfeInstance],
        errors: list[DiscoveryError],
    ) -> None:
        for rejected in site.rejected_applications:
            self._record_rejected(errors, site.name, rejected.name, rejected.message)
        bindings = tuple(_binding_from_facts(binding) for binding in site.bindings)
        for candidate in self._candidates(site):
            try:
                instance = self._inspect(site.name, candidate, bindings, facts)
            except Exception as exc:
                self._logger.warning(
                    "discovery.application.failed",
                    site=site.name,
                    application=candidate.application_path,
                    error=str(exc),
                )
                errors.append(
                    DiscoveryError(
                        site=site.name,
                        application=candidate.application_path,
                        message=str(exc),
                    )
                )
                continue
            if isinstance(instance, EssInstance):
                ess.append(instance)
            elif isinstance(instance, WfeInstance):
                wfe.append(instance)

    def _detect_kind(self, directory: Path) -> Optional[ConfigKind]:
        if (directory / self._settings.ess_marker_file).is_file():
            return "ess"
        if (directory / self._settings.wfe_marker_file).is_file():
            return "wfe"
        return None

    def _inspect(
        self,
        site_name: str,
        candidate: _Candidate,
        bindings: tuple[TlsBinding, ...],
        facts: HostFacts,
    ) -> Optional[DiscoveredInstance]:
        directory = Path(_expand(candidate.physical_path))
        kind = self._detect_kind(directory)
        if kind is None:
            return None

        self._logger.debug(
            "discovery.marker.found",
            site=site_name,
            application=candidate.application_path,
            kind=kind,
            path=str(directory),
        )
        if kind == "ess":
            return self._build_ess(site_name, candidate, directory, bindings, facts)
        return self._build_wfe(site_name, candidate, directory)

    def _build_ess(
        self,
        site_name: str,
        candidate: _Candidate,
        directory: Path,
        bindings: tuple[TlsBinding, ...],
        facts: HostFacts,
    ) -> EssInstance:
        parsed = read_instance_config(
            directory,
            "ess",
            marker_file=self._settings.ess_marker_file,
            web_config_file=self._settings.web_config_file,
            logger=self._logger,
        )
        versions = read_instance_versions(
            directory,
            product_binary=self._settings.product_binary,
            companion_binary=self._settings.companion_binary,
            reader=self._version_reader,
        )
        product_version = versions.product_version or parsed.version
        uses_https = any(binding.is_https for binding in bindings)
        if uses_https:
            protocol: Optional[str] = "https"
        elif parsed.protocol:
            protocol = parsed.protocol.lower()
        else:
            protocol = "http" if bindings else None

        host = parsed.host
        if host is None:
            host = next(
                (binding.host_header for binding in bindings if binding.host_header),
                facts.hostname,
            )

        return EssInstance(
            site_name=site_name,
            application_path=candidate.application_path,
            physical_path=str(directory),
            application_pool=candidate.application_pool,
            database_server=parsed.database_server,
            database_name=parsed.database_name,
            database_login=_database_login(parsed),
            tenant_id=parsed.tenant_id,
            host=host,
            virtual_root=parsed.virtual_root or candidate.application_path.strip("/") or None,
            protocol=protocol,
            authentication_mode=parsed.authentication_mode,
            encrypted=parsed.encryption.encrypted,
            encrypted_sections=parsed.encryption.encrypted_sections,
            product_version=product_version,
            companion_version=versions.companion_version,
            version_compatibility=evaluate_compatibility(
                product_version, versions.companion_version, self._compatibility
            ),
            uses_https=uses_https,
            bindings=bindings,
        )

    def _build_wfe(
        self, site_name: str, candidate: _Candidate, directory: Path
    ) -> WfeInstance:
        parsed = read_instance_config(
            directory,
            "wfe",
            marker_file=self._settings.wfe_marker_file,
            web_config_file=self._settings.web_config_file,
            logger=self._logger,
        )
        return WfeInstance(
            site_name=site_name,
            application_path=candidate.application_path,
            physical_path=str(directory),
            application_pool=candidate.application_pool,
            database_server=parsed.database_server,
            database_name=parsed.database_name,
            database_login=_database_login(parsed),
            client_url=parsed.client_url,
            tenant_id=parsed.tenant_id,
            from_address=parsed.from_address,
        )


def discover_instances(
    facts: HostFacts,
    *,
    settings: DiscoverySettings | None = None,
    compatibility: Mapping[str, str] | None = None,
    version_reader: VersionReader = read_file_version,
    logger: BoundLogger | None = None,
) -> DiscoveryOutcome:
    return InstanceDiscovery(
        settings,
        compatibility=compatibility,
        version_reader=version_reader,
        logger=logger,
    ).discover(facts)


def build_deployment(facts: HostFacts, outcome: DiscoveryOutcome) -> DeploymentResult:
    return DeploymentResult.build(
        host_has_web_server=facts.has_web_server,
        ess_instances=outcome.ess_instances,
        wfe_instances=outcome.wfe_instances,
    )


__all__ = [
    "DiscoveryError",
    "DiscoveryOutcome",
    "InstanceDiscovery",
    "discover_instances",
    "build_deployment",
]
