from __future__ import annotations

from typing import Any

from esshealth.domain.host_facts import HostFacts, parse_host_facts
from esshealth.domain.models import CheckStatus, DeploymentResult
from esshealth.domain.results import ResultCollector
from esshealth.domain.validation import rules
from esshealth.domain.validation.engine import CATEGORY_ENGINE, run_rules
from esshealth.domain.validation.rules import ValidationConfig
from esshealth.integrations.database import ProbeResult


def _offline_config() -> ValidationConfig:
    return ValidationConfig(
        database_probe=lambda *args, **kwargs: ProbeResult(success=True, message="ok"),
        temp_directory_probe=lambda: None,
        elevation_probe=lambda: True,
    )


def _exploding_rule(
    facts: HostFacts, deployment: DeploymentResult, config: ValidationConfig, collector: ResultCollector
) -> None:
    raise RuntimeError("registry unavailable")


def test_raising_rule_is_isolated() -> None:
    facts = parse_host_facts({"memoryGB": 64})
    deployment = DeploymentResult.build(host_has_web_server=True)
    collector = ResultCollector()

    run_rules(
        facts,
        deployment,
        _offline_config(),
        collector,
        rules=[("memory", rules.check_memory), ("broken", _exploding_rule), ("disk_space", rules.check_disk_space)],
    )

    checks = [(result.category, result.check, result.status) for result in collector]
    assert checks == [
        (rules.CATEGORY_RESOURCES, "Memory", CheckStatus.PASS),
        (CATEGORY_ENGINE, "broken", CheckStatus.WARNING),
        (rules.CATEGORY_RESOURCES, "Disk Space", CheckStatus.WARNING),
    ]
    assert collector.results[1].message == "Rule raised RuntimeError: registry unavailable"


def test_default_rules_cover_combined_host(combined_site: dict[str, Any]) -> None:
    from esshealth.domain.discovery import build_deployment, discover_instances

    facts = parse_host_facts(combined_site)
    deployment = build_deployment(facts, discover_instances(facts, version_reader=lambda path: None))

    collector = run_rules(facts, deployment, _offline_config(), ResultCollector())

    categories = set(collector.categories())
    assert CATEGORY_ENGINE not in categories
    assert {
        rules.CATEGORY_DEPLOYMENT,
        rules.CATEGORY_RESOURCES,
        rules.CATEGORY_PLATFORM,
        rules.CATEGORY_ESS_CONFIGURATION,
        rules.CATEGORY_VERSION,
        rules.CATEGORY_TRANSPORT,
        rules.CATEGORY_DATABASE,
        rules.CATEGORY_WFE_CONFIGURATION,
        rules.CATEGORY_ENVIRONMENT,
    } <= categories
    summary = collector.summary()
    assert summary.failed == 0
    assert summary.total == len(collector)
