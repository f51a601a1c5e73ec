"""Decode health-check bodies into component records.

JSON shape::

    {"Successful": true,
     "Components": [{"ComponentName": "...", "ComponentVersion": "...",
                     "Successful": true,
                     "ComponentMessages": [{"Type": "...", "Message": "..."}]}]}

The XML shape mirrors it under a ``HealthCheckResponse`` root with a repeating
``Components/Component`` element. Field names are matched case-insensitively
and XML namespaces are ignored.
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET  # nosec B405 - types only, parsing uses defusedxml
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, Optional

import defusedxml.ElementTree as DefusedET
from defusedxml import DefusedXmlException

from esshealth.config.constants import FALSY_STRINGS, TRUTHY_STRINGS
from esshealth.infrastructure.errors import ErrorContext, ErrorCode, PayloadParseError

from .models import ComponentHealth, ComponentMessage, ComponentStatus

PayloadFormat = Literal["json", "xml"]

_LEADING = "\ufeff \t\r\n"


@dataclass(frozen=True)
class ParsedPayload:
    successful: Optional[bool]
    components: tuple[ComponentHealth, ...]


def _fail(message: str, detail: Optional[str] = None) -> PayloadParseError:
    return PayloadParseError(
        message,
        context=ErrorContext(
            code=ErrorCode.HEALTHCHECK_PAYLOAD_INVALID.value,
            source="healthcheck",
            detail=detail,
        ),
    )


def detect_format(body: str, content_type: Optional[str] = None) -> Optional[PayloadFormat]:
    """Sniff the body first, then fall back to the declared content type."""

    stripped = body.lstrip(_LEADING)
    if stripped.startswith(("{", "[")):
        return "json"
    if stripped.startswith("<"):
        return "xml"
    lowered = (content_type or "").lower()
    if "json" in lowered:
        return "json"
    if "xml" in lowered:
        return "xml"
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in TRUTHY_STRINGS:
        return True
    if text in FALSY_STRINGS:
        return False
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _field(mapping: Mapping[str, Any], name: str) -> Any:
    if name in mapping:
        return mapping[name]
    wanted = name.lower()
    for key, value in mapping.items():
        if isinstance(key, str) and key.lower() == wanted:
            return value
    return None


def _component(name: Optional[str], version: Optional[str], successful: Any,
               messages: list[ComponentMessage]) -> ComponentHealth:
    if not name:
        raise _fail("Health-check component without a ComponentName")
    status = ComponentStatus.HEALTHY if _as_bool(successful) is True else ComponentStatus.UNHEALTHY
    return ComponentHealth(
        name=name,
        version=version,
        status=status,
        messages=tuple(messages),
    )


def _parse_json(body: str) -> ParsedPayload:
    try:
        document = json.loads(body.lstrip(_LEADING))
    except json.JSONDecodeError as exc:
        raise _fail("Malformed JSON health-check payload", detail=str(exc)) from exc

    if isinstance(document, list):
        successful: Optional[bool] = None
        raw_components: Any = document
    elif isinstance(document, Mapping):
        successful = _as_bool(_field(document, "Successful"))
        raw_components = _field(document, "Components") or []
    else:
        raise _fail("Unexpected JSON health-check payload", detail=type(document).__name__)

    if not isinstance(raw_components, list):
        raise _fail("Health-check Components must be a list")

    components = []
    for entry in raw_components:
        if not isinstance(entry, Mapping):
            raise _fail("Health-check component must be an object")
        raw_messages = _field(entry, "ComponentMessages") or []
        if not isinstance(raw_messages, list):
            raw_messages = [raw_messages]
        messages = []
        for raw in raw_messages:
            if isinstance(raw, Mapping):
                detail = _text(_field(raw, "Message"))
                if detail is not None:
                    messages.append(ComponentMessage(type=_text(_field(raw, "Type")), detail=detail))
            elif _text(raw) is not None:
                messages.append(ComponentMessage(type=None, detail=str(raw).strip()))
        components.append(
            _component(
                _text(_field(entry, "ComponentName")),
                _text(_field(entry, "ComponentVersion")),
                _field(entry, "Successful"),
                messages,
            )
        )
    return ParsedPayload(successful=successful, components=tuple(components))


def _local_name(element: ET.Element) -> str:
    return element.tag.rsplit("}", 1)[-1].lower()


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    wanted = name.lower()
    for child in element:
        if _local_name(child) == wanted:
            return child
    return None


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    child = _child(element, name)
    return None if child is None else _text(child.text)


def _parse_xml(body: str) -> ParsedPayload:
    try:
        root = DefusedET.fromstring(body.lstrip(_LEADING))
    except (ET.ParseError, DefusedXmlException) as exc:
        raise _fail("Malformed XML health-check payload", detail=str(exc)) from exc

    successful = _as_bool(_child_text(root, "Successful"))
    container = _child(root, "Components")
    components = []
    for entry in container if container is not None else ():
        if _local_name(entry) != "component":
            continue
        messages = []
        message_container = _child(entry, "ComponentMessages")
        for raw in message_container if message_container is not None else ():
            detail = _child_text(raw, "Message")
            if detail is None and len(raw) == 0:
                detail = _text(raw.text)
            if detail is not None:
                messages.append(ComponentMessage(type=_child_text(raw, "Type"), detail=detail))
        components.append(
            _component(
                _child_text(entry, "ComponentName"),
                _child_text(entry, "ComponentVersion"),
                _child_text(entry, "Successful"),
                messages,
            )
        )
    return ParsedPayload(successful=successful, components=tuple(components))


def parse_payload(body: str, content_type: Optional[str] = None) -> ParsedPayload:
    """Parse a JSON or XML health-check body.

    Raises :class:`PayloadParseError` when the body is empty, of an unknown
    format, or malformed.
    """

    if not body or not body.strip():
        raise _fail("Empty health-check payload")
    payload_format = detect_format(body, content_type)
    if payload_format == "json":
        return _parse_json(body)
    if payload_format == "xml":
        return _parse_xml(body)
    raise _fail("Unrecognised health-check payload format", detail=content_type)


__all__ = ["ParsedPayload", "PayloadFormat", "detect_format", "parse_payload"]
