"""Run validation rules against a host and its deployment."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Final

from esshealth.domain.host_facts import HostFacts
from esshealth.domain.models import CheckStatus, DeploymentResult
from esshealth.domain.results import ResultCollector
from esshealth.infrastructure.logging import BoundLogger, get_logger, log_event

from .rules import DEFAULT_RULES, Rule, ValidationConfig

CATEGORY_ENGINE: Final = "Engine"


def run_rules(
    facts: HostFacts,
    deployment: DeploymentResult,
    config: ValidationConfig,
    collector: ResultCollector,
    *,
    rules: Sequence[tuple[str, Rule]] = DEFAULT_RULES,
    logger: BoundLogger | None = None,
) -> ResultCollector:
    """Apply ``rules`` in order, isolating each one.

    A rule that raises is reported as a WARNING in the ``Engine`` category and
    the remaining rules still run.
    """

    log = logger or get_logger("esshealth.validation")
    for name, rule in rules:
        before = len(collector)
        try:
            rule(facts, deployment, config, collector)
        except Exception as exc:
            log_event(
                log,
                "validation.rule.failed",
                level=logging.WARNING,
                rule=name,
                error=str(exc),
            )
            collector.add(
                CATEGORY_ENGINE,
                name,
                CheckStatus.WARNING,
                f"Rule raised {type(exc).__name__}: {exc}",
            )
            continue
        log_event(
            log,
            "validation.rule.completed",
            level=logging.DEBUG,
            rule=name,
            results=len(collector) - before,
        )
    return collector


__all__ = ["CATEGORY_ENGINE", "run_rules"]
