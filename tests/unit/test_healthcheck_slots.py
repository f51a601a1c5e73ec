from __future__ import annotations

import pytest

from esshealth.integrations.healthcheck.models import ComponentHealth, ComponentStatus, HealthSlot
from esshealth.integrations.healthcheck.slots import (
    assign_slots,
    component_terms,
    slot_for,
)


@pytest.mark.parametrize(
    ("name", "slot"),
    [
        ("PayGlobal Database", HealthSlot.PAYGLOBAL_DATABASE),
        ("PayGlobal-DB", HealthSlot.PAYGLOBAL_DATABASE),
        ("Self Service Software", HealthSlot.SELF_SERVICE_SOFTWARE),
        ("SelfService.App", HealthSlot.SELF_SERVICE_SOFTWARE),
        ("Self-Service Database", HealthSlot.SELF_SERVICE_DATABASE),
        ("ESS DB", HealthSlot.SELF_SERVICE_DATABASE),
        ("PayGlobal Bridge", HealthSlot.BRIDGE),
        ("WFE Database", HealthSlot.WFE_DATABASE),
        ("Workflow_DB", HealthSlot.WFE_DATABASE),
        ("Bridge Communication", HealthSlot.BRIDGE_COMMUNICATION),
        ("Workflow Endpoints", HealthSlot.WORKFLOW_ENDPOINTS),
        ("WFE endpoint", HealthSlot.WORKFLOW_ENDPOINTS),
        ("SelfServiceDatabase", HealthSlot.SELF_SERVICE_DATABASE),
        ("ESSDatabase", HealthSlot.SELF_SERVICE_DATABASE),
        ("WorkFlow Databases", HealthSlot.WFE_DATABASE),
        ("Licensing", None),
        ("Business Database", None),
        ("SelfService Feedback", None),
        ("Process Bridge Communications", HealthSlot.BRIDGE_COMMUNICATION),
    ],
)
def test_slot_for(name: str, slot: HealthSlot | None) -> None:
    assert slot_for(name) is slot


def test_component_terms_split_on_separators_and_case() -> None:
    terms = component_terms(" Self-Service_Web.App ")

    assert {"self", "service", "web", "app", "selfservice"} <= terms
    assert component_terms("ESSDatabase") >= {"ess", "database"}


def test_short_aliases_do_not_match_inside_words() -> None:
    assert "ess" not in component_terms("Business Database")
    assert "db" not in component_terms("Feedback")


def test_first_component_keeps_the_slot() -> None:
    first = ComponentHealth(name="Bridge", status=ComponentStatus.HEALTHY)
    second = ComponentHealth(name="PayGlobal Bridge", status=ComponentStatus.UNHEALTHY)
    unmatched = ComponentHealth(name="Licensing", status=ComponentStatus.HEALTHY)

    slots = assign_slots([first, second, unmatched])

    assert slots == {HealthSlot.BRIDGE: first}
