from __future__ import annotations

import json

import pytest

from esshealth.infrastructure.errors import PayloadParseError
from esshealth.integrations.healthcheck.models import ComponentStatus
from esshealth.integrations.healthcheck.parsing import detect_format, parse_payload

JSON_BODY = json.dumps(
    {
        "Successful": False,
        "Components": [
            {
                "ComponentName": "PayGlobal Database",
                "ComponentVersion": "4.62.0",
                "Successful": True,
                "ComponentMessages": [{"Type": "Info", "Message": "Connected"}],
            },
            {
                "ComponentName": "Bridge Communication",
                "ComponentVersion": "4.62.0",
                "Successful": "false",
                "ComponentMessages": [{"Type": "Error", "Message": "Timed out"}],
            },
        ],
    }
)

XML_BODY = """<?xml version="1.0" encoding="utf-8"?>
<HealthCheckResponse xmlns="http://schemas.example.com/healthcheck">
  <Successful>false</Successful>
  <Components>
    <Component>
      <ComponentName>PayGlobal Database</ComponentName>
      <ComponentVersion>4.62.0</ComponentVersion>
      <Successful>true</Successful>
      <ComponentMessages>
        <ComponentMessage><Type>Info</Type><Message>Connected</Message></ComponentMessage>
      </ComponentMessages>
    </Component>
    <Component>
      <ComponentName>Bridge Communication</ComponentName>
      <ComponentVersion>4.62.0</ComponentVersion>
      <Successful>false</Successful>
      <ComponentMessages>
        <ComponentMessage><Type>Error</Type><Message>Timed out</Message></ComponentMessage>
      </ComponentMessages>
    </Component>
  </Components>
</HealthCheckResponse>
"""


def test_json_and_xml_decode_to_the_same_components() -> None:
    from_json = parse_payload(JSON_BODY, "application/json")
    from_xml = parse_payload(XML_BODY, "application/xml")

    assert from_json == from_xml
    assert from_json.successful is False
    healthy, unhealthy = from_json.components
    assert healthy.status is ComponentStatus.HEALTHY
    assert healthy.version == "4.62.0"
    assert healthy.messages[0].detail == "Connected"
    assert unhealthy.status is ComponentStatus.UNHEALTHY
    assert unhealthy.messages[0].type == "Error"


def test_field_names_are_case_insensitive() -> None:
    body = json.dumps(
        {"successful": True, "components": [{"componentName": "Bridge", "successful": True}]}
    )

    payload = parse_payload(body)

    assert payload.successful is True
    assert payload.components[0].name == "Bridge"
    assert payload.components[0].healthy


def test_component_without_success_flag_is_unhealthy() -> None:
    payload = parse_payload(json.dumps({"Components": [{"ComponentName": "Bridge"}]}))

    assert payload.successful is None
    assert payload.components[0].status is ComponentStatus.UNHEALTHY


@pytest.mark.parametrize(
    ("body", "content_type", "expected"),
    [
        ('  {"a": 1}', None, "json"),
        ("\ufeff<Root/>", "text/plain", "xml"),
        ("Successful", "application/json; charset=utf-8", "json"),
        ("Successful", "text/xml", "xml"),
        ("Successful", "text/plain", None),
    ],
)
def test_detect_format(body: str, content_type: str | None, expected: str | None) -> None:
    assert detect_format(body, content_type) == expected


@pytest.mark.parametrize(
    "body",
    [
        "",
        "   ",
        "Service Unavailable",
        '{"Successful": true, "Components": [',
        "<HealthCheckResponse><Successful>",
        json.dumps({"Components": [{"ComponentVersion": "1.0"}]}),
        json.dumps({"Components": {"ComponentName": "Bridge"}}),
        json.dumps("healthy"),
    ],
)
def test_invalid_payloads_raise(body: str) -> None:
    with pytest.raises(PayloadParseError):
        parse_payload(body, "text/plain")


def test_xml_entity_expansion_is_refused() -> None:
    body = (
        '<?xml version="1.0"?><!DOCTYPE r [<!ENTITY a "aaaa">]>'
        "<HealthCheckResponse><Successful>&a;</Successful></HealthCheckResponse>"
    )

    with pytest.raises(PayloadParseError):
        parse_payload(body)
