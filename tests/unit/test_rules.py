from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from esshealth.config.settings import RequirementSettings, RuntimeSettings, ValidationSettings
from esshealth.domain.host_facts import HostFacts, parse_host_facts
from esshealth.domain.models import (
    CheckStatus,
    DatabaseLogin,
    DeploymentResult,
    EssInstance,
    TlsBinding,
    WfeInstance,
)
from esshealth.domain.results import ResultCollector
from esshealth.domain.validation import rules
from esshealth.domain.validation.rules import ValidationConfig
from esshealth.integrations.database import ProbeResult

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class RecordingProbe:
    def __init__(self, *, success: bool = True, message: str = "Connected") -> None:
        self.calls: list[tuple[str, str | None, float]] = []
        self.logins: list[DatabaseLogin | None] = []
        self.success = success
        self.message = message

    def __call__(
        self,
        server: str,
        database: str | None = None,
        *,
        timeout: float,
        login: DatabaseLogin | None = None,
    ) -> ProbeResult:
        self.calls.append((server, database, timeout))
        self.logins.append(login)
        return ProbeResult(success=self.success, message=self.message)


def _config(**overrides: Any) -> ValidationConfig:
    values: dict[str, Any] = {
        "database_probe": RecordingProbe(),
        "temp_directory_probe": lambda: None,
        "elevation_probe": lambda: True,
        "clock": lambda: NOW,
    }
    values.update(overrides)
    return ValidationConfig(**values)


def _facts(**fields: Any) -> HostFacts:
    return parse_host_facts(fields)


def _ess(**fields: Any) -> EssInstance:
    values: dict[str, Any] = {
        "site_name": "Default Web Site",
        "application_path": "/ess",
        "physical_path": "C:/inetpub/ess",
    }
    values.update(fields)
    return EssInstance(**values)


def _deployment(ess: tuple[EssInstance, ...] = (), wfe: tuple[WfeInstance, ...] = ()) -> DeploymentResult:
    return DeploymentResult.build(host_has_web_server=True, ess_instances=ess, wfe_instances=wfe)


def _run(rule: rules.Rule, facts: HostFacts, deployment: DeploymentResult, config: ValidationConfig) -> ResultCollector:
    collector = ResultCollector()
    rule(facts, deployment, config, collector)
    return collector


@pytest.mark.parametrize(
    ("free", "expected"),
    [(9.99, CheckStatus.FAIL), (10.0, CheckStatus.PASS), (250, CheckStatus.PASS), (None, CheckStatus.WARNING)],
)
def test_disk_space_threshold_boundary(free: float | None, expected: CheckStatus) -> None:
    collector = _run(rules.check_disk_space, _facts(diskFreeGB=free), _deployment(), _config())

    (result,) = collector.results
    assert result.category == rules.CATEGORY_RESOURCES
    assert result.check == "Disk Space"
    assert result.status is expected


def test_resource_thresholds_follow_requirements() -> None:
    config = _config(requirements=RequirementSettings(min_memory_gb=8, min_cores=2, min_clock_ghz=3.0))
    facts = _facts(memoryGB=8, coreCount=1, averageClockGHz=3.0)

    memory = _run(rules.check_memory, facts, _deployment(), config).results[0]
    cores = _run(rules.check_cpu_cores, facts, _deployment(), config).results[0]
    clock = _run(rules.check_cpu_clock, facts, _deployment(), config).results[0]

    assert memory.status is CheckStatus.PASS
    assert cores.status is CheckStatus.FAIL
    assert cores.check == "CPU Cores"
    assert clock.status is CheckStatus.PASS
    assert clock.check == "CPU Clock Speed"


@pytest.mark.parametrize(
    ("facts", "expected"),
    [
        ({"hasWebServer": False}, CheckStatus.FAIL),
        ({"hasWebServer": True, "webServerVersion": "7.0"}, CheckStatus.FAIL),
        ({"hasWebServer": True, "webServerVersion": "10.0"}, CheckStatus.PASS),
        ({"hasWebServer": True}, CheckStatus.WARNING),
    ],
)
def test_web_server(facts: dict[str, Any], expected: CheckStatus) -> None:
    (result,) = _run(rules.check_web_server, _facts(**facts), _deployment(), _config()).results

    assert result.status is expected


@pytest.mark.parametrize(
    ("versions", "expected", "fragment"),
    [
        (["4.7.2", "4.8.1"], CheckStatus.PASS, "4.8.1"),
        (["4.6", "4.7.2"], CheckStatus.FAIL, "4.7.2"),
        ([], CheckStatus.FAIL, "not installed"),
    ],
)
def test_dotnet_runtime_uses_highest(versions: list[str], expected: CheckStatus, fragment: str) -> None:
    (result,) = _run(
        rules.check_dotnet_runtime, _facts(dotNetVersions=versions), _deployment(), _config()
    ).results

    assert result.status is expected
    assert fragment in result.message


def test_deployment_overview_is_info() -> None:
    deployment = _deployment(ess=(_ess(),), wfe=(WfeInstance("Site", "/wfe", "C:/wfe"),))

    (result,) = _run(rules.deployment_overview, _facts(), deployment, _config()).results

    assert result.status is CheckStatus.INFO
    assert result.message.startswith("Combined")


@pytest.mark.parametrize(
    ("mode", "encrypted", "expected"),
    [
        ("SingleSignOn", True, CheckStatus.FAIL),
        ("SingleSignOn", False, CheckStatus.PASS),
        ("Forms", True, CheckStatus.INFO),
        ("Forms", False, CheckStatus.PASS),
    ],
)
def test_encryption_policy(mode: str, encrypted: bool, expected: CheckStatus) -> None:
    instance = _ess(
        authentication_mode=mode,
        encrypted=encrypted,
        encrypted_sections=("appSettings",) if encrypted else (),
    )

    (result,) = _run(
        rules.check_encryption_policy, _facts(), _deployment(ess=(instance,)), _config()
    ).results

    assert result.check == "Encryption [Default Web Site/ess]"
    assert result.status is expected


@pytest.mark.parametrize(
    ("product", "companion", "expected"),
    [
        (None, None, CheckStatus.WARNING),
        ("4.9.0.0", "4.62.0", CheckStatus.FAIL),
        ("5.3.0.0", "4.62.0", CheckStatus.PASS),
        ("5.3.0.0", "4.61.0", CheckStatus.FAIL),
        ("5.3.0.0", None, CheckStatus.WARNING),
        ("5.9.0.0", None, CheckStatus.PASS),
    ],
)
def test_version_compatibility(product: str | None, companion: str | None, expected: CheckStatus) -> None:
    instance = _ess(product_version=product, companion_version=companion)

    (result,) = _run(
        rules.check_version_compatibility, _facts(), _deployment(ess=(instance,)), _config()
    ).results

    assert result.category == rules.CATEGORY_VERSION
    assert result.status is expected


def test_http_only_site_is_info() -> None:
    instance = _ess(bindings=(TlsBinding(protocol="http", port=80),))

    (result,) = _run(
        rules.check_transport_security, _facts(), _deployment(ess=(instance,)), _config()
    ).results

    assert result.status is CheckStatus.INFO


@pytest.mark.parametrize(
    ("expiry", "error", "expected"),
    [
        (NOW + timedelta(days=200), None, CheckStatus.PASS),
        (NOW + timedelta(days=10), None, CheckStatus.WARNING),
        (NOW - timedelta(days=1), None, CheckStatus.FAIL),
        (None, None, CheckStatus.FAIL),
        (None, "Unable to parse certificate", CheckStatus.FAIL),
    ],
)
def test_certificate_expiry(expiry: datetime | None, error: str | None, expected: CheckStatus) -> None:
    binding = TlsBinding(
        protocol="https",
        port=443,
        host_header="ess.example.com",
        certificate_expiry=expiry,
        certificate_error=error,
    )
    instance = _ess(uses_https=True, bindings=(binding,))

    https, certificate = _run(
        rules.check_transport_security, _facts(), _deployment(ess=(instance,)), _config()
    ).results

    assert https.status is CheckStatus.PASS
    assert certificate.check == "Certificate [Default Web Site/ess https://ess.example.com:443]"
    assert certificate.status is expected


def test_database_probe_receives_instance_settings() -> None:
    probe = RecordingProbe()
    config = _config(database_probe=probe, database_timeout=2.5)
    login = DatabaseLogin(user="ess_app", password="s3cret")
    ess = _ess(database_server="sql01\\ESS", database_name="ESS_Live", database_login=login)
    wfe = WfeInstance("Default Web Site", "/wfe", "C:/wfe", database_server="sql01", database_name="WFE")

    results = _run(
        rules.check_database_connectivity, _facts(), _deployment(ess=(ess,), wfe=(wfe,)), config
    ).results

    assert probe.calls == [("sql01\\ESS", "ESS_Live", 2.5), ("sql01", "WFE", 2.5)]
    assert probe.logins == [login, None]
    assert [result.check for result in results] == [
        "ESS Database [Default Web Site/ess]",
        "WFE Database [Default Web Site/wfe]",
    ]
    assert all(result.status is CheckStatus.PASS for result in results)


def test_database_failure_and_missing_settings() -> None:
    probe = RecordingProbe(success=False, message="Cannot reach sql01:1433: refused")
    ess = _ess(database_server="sql01", database_name="ESS_Live")
    incomplete = _ess(application_path="/other", database_server="sql01")

    failed, missing = _run(
        rules.check_database_connectivity,
        _facts(),
        _deployment(ess=(ess, incomplete)),
        _config(database_probe=probe),
    ).results

    assert failed.status is CheckStatus.FAIL
    assert failed.message == "Cannot connect to sql01/ESS_Live: Cannot reach sql01:1433: refused"
    assert missing.status is CheckStatus.WARNING
    assert len(probe.calls) == 1


def test_wfe_configuration() -> None:
    complete = WfeInstance(
        "Site", "/wfe", "C:/wfe",
        client_url="https://ess.example.com/", tenant_id="t", from_address="wf@example.com",
    )
    partial = WfeInstance("Site", "/wfe2", "C:/wfe2", client_url="https://ess.example.com/")

    first, second = _run(
        rules.check_wfe_configuration, _facts(), _deployment(wfe=(complete, partial)), _config()
    ).results

    assert first.status is CheckStatus.PASS
    assert second.status is CheckStatus.WARNING
    assert "from address" in second.message
    assert "tenant id" in second.message


def test_environment_probes() -> None:
    config = _config(temp_directory_probe=lambda: "/tmp: Permission denied", elevation_probe=lambda: None)

    temp = _run(rules.check_temp_directory, _facts(), _deployment(), config).results[0]
    elevation = _run(rules.check_elevation, _facts(), _deployment(), config).results[0]
    reported = _run(rules.check_elevation, _facts(isElevated=True), _deployment(), config).results[0]

    assert temp.status is CheckStatus.WARNING
    assert elevation.status is CheckStatus.WARNING
    assert reported.status is CheckStatus.PASS


def test_sql_server_is_informational() -> None:
    (result,) = _run(rules.check_sql_server, _facts(sqlServerInstalled=True), _deployment(), _config()).results

    assert result.status is CheckStatus.INFO


def test_validation_config_from_settings() -> None:
    settings = RuntimeSettings(
        compatibility={"7.0": "5.0.0"},
        validation=ValidationSettings(certificate_warning_days=7, database_timeout=1.5),
    )

    config = ValidationConfig.from_settings(settings, clock=lambda: NOW)

    assert config.compatibility == {"7.0": "5.0.0"}
    assert config.certificate_warning_days == 7
    assert config.database_timeout == 1.5
    assert config.clock() == NOW


def test_temp_directory_probe_on_writable_tmp() -> None:
    assert rules.probe_temp_directory() is None
