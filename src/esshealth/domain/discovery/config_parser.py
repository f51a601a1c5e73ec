"""Tolerant extraction of instance facts from ESS and WFE configuration files.

Every field is pulled out independently by an ordered list of patterns, so a
file that lacks one value still yields the others.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET  # nosec B405 - types only, parsing uses defusedxml
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Final, Literal, Optional

import defusedxml.ElementTree as DefusedET
from defusedxml import DefusedXmlException

from esshealth.infrastructure.logging import BoundLogger, get_logger

ConfigKind = Literal["ess", "wfe"]

SINGLE_SIGN_ON: Final = "singlesignon"
ENCRYPTION_SECTIONS: Final[tuple[str, ...]] = ("appSettings", "mailSettings")

_logger = get_logger("esshealth.discovery.config")


def _keyed(*names: str) -> tuple[re.Pattern[str], ...]:
    """Patterns for ``<add key="N" value="V"/>``, ``<N>V</N>`` and ``N="V"``."""

    alternatives = "|".join(re.escape(name) for name in names)
    return (
        re.compile(
            rf"<add\s+key\s*=\s*[\"'](?:{alternatives})[\"']\s+value\s*=\s*[\"'](?P<value>[^\"']*)[\"']",
            re.IGNORECASE,
        ),
        re.compile(
            rf"<(?:{alternatives})>\s*(?P<value>[^<]*?)\s*</(?:{alternatives})>",
            re.IGNORECASE,
        ),
        re.compile(
            rf"\b(?:{alternatives})\s*=\s*[\"'](?P<value>[^\"']*)[\"']",
            re.IGNORECASE,
        ),
    )


_CONNECTION_SERVER = re.compile(
    r"\b(?:Data\s+Source|Server|Address|Addr)\s*=\s*(?P<value>[^;\"'<]+)",
    re.IGNORECASE,
)
_CONNECTION_DATABASE = re.compile(
    r"\b(?:Initial\s+Catalog|Database)\s*=\s*(?P<value>[^;\"'<]+)",
    re.IGNORECASE,
)
_CONNECTION_USER = re.compile(
    r"\b(?:User\s+ID|UID|User)\s*=\s*(?P<value>[^;\"'<]+)",
    re.IGNORECASE,
)
_CONNECTION_PASSWORD = re.compile(
    r"\b(?:Password|PWD)\s*=\s*(?P<value>[^;\"'<]+)",
    re.IGNORECASE,
)
_PROCESSING_INSTRUCTION = re.compile(r"<\?.*?\?>", re.DOTALL)

_COMMON_FIELDS: Final[dict[str, tuple[re.Pattern[str], ...]]] = {
    "database_server": (*_keyed("DatabaseServer", "DBServer"), _CONNECTION_SERVER),
    "database_name": (*_keyed("DatabaseName", "DBName"), _CONNECTION_DATABASE),
    "database_user": (*_keyed("DatabaseUser", "DBUser"), _CONNECTION_USER),
    "database_password": (*_keyed("DatabasePassword", "DBPassword"), _CONNECTION_PASSWORD),
    "tenant_id": _keyed("TenantId", "TenantID", "Tenant"),
    "version": _keyed("Version", "ProductVersion"),
}

FIELD_PATTERNS: Final[dict[str, dict[str, tuple[re.Pattern[str], ...]]]] = {
    "ess": {
        **_COMMON_FIELDS,
        "authentication_mode": _keyed("AuthenticationMode", "AuthMode"),
        "host": _keyed("Host", "HostName", "ServerName"),
        "virtual_root": _keyed("VirtualRoot", "VirtualDirectory"),
        "protocol": _keyed("Protocol", "Scheme"),
    },
    "wfe": {
        **_COMMON_FIELDS,
        "client_url": _keyed("ClientUrl", "ClientURL", "EssUrl"),
        "from_address": _keyed("FromAddress", "EmailFrom", "MailFrom"),
    },
}


@dataclass(frozen=True)
class EncryptionStatus:
    encrypted: bool = False
    sections: dict[str, bool] = field(default_factory=dict)

    @property
    def encrypted_sections(self) -> tuple[str, ...]:
        return tuple(name for name, flag in self.sections.items() if flag)


@dataclass(frozen=True)
class ParsedConfig:
    database_server: Optional[str] = None
    database_name: Optional[str] = None
    database_user: Optional[str] = None
    database_password: Optional[str] = field(default=None, repr=False)
    tenant_id: Optional[str] = None
    version: Optional[str] = None
    authentication_mode: Optional[str] = None
    host: Optional[str] = None
    virtual_root: Optional[str] = None
    protocol: Optional[str] = None
    client_url: Optional[str] = None
    from_address: Optional[str] = None
    encryption: EncryptionStatus = field(default_factory=EncryptionStatus)

    @property
    def is_single_sign_on(self) -> bool:
        return is_single_sign_on(self.authentication_mode)


def is_single_sign_on(authentication_mode: Optional[str]) -> bool:
    if not authentication_mode:
        return False
    return authentication_mode.replace(" ", "").lower() == SINGLE_SIGN_ON


def _extract(content: str, patterns: tuple[re.Pattern[str], ...]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(content)
        if match is None:
            continue
        value = match.group("value").strip()
        if value:
            return value
    return None


def parse_config(content: str, kind: ConfigKind) -> ParsedConfig:
    """Extract the named fields for ``kind`` from raw configuration text."""

    try:
        patterns = FIELD_PATTERNS[kind]
    except KeyError:
        raise ValueError(f"Unknown configuration format: {kind!r}") from None

    # The XML declaration carries a version="1.0" attribute of its own.
    body = _PROCESSING_INSTRUCTION.sub("", content)
    values = {name: _extract(body, field_patterns) for name, field_patterns in patterns.items()}
    return ParsedConfig(**values)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _section_is_encrypted(element: ET.Element) -> bool:
    if any(_local_name(name) == "configProtectionProvider" for name in element.attrib):
        return True
    return any(_local_name(child.tag) == "EncryptedData" for child in element.iter())


def _inspect_tree(root: ET.Element) -> dict[str, bool]:
    sections = {name: False for name in ENCRYPTION_SECTIONS}
    for element in root.iter():
        name = _local_name(element.tag)
        if name in sections and _section_is_encrypted(element):
            sections[name] = True
    return sections


def _inspect_text(content: str) -> dict[str, bool]:
    sections: dict[str, bool] = {}
    for name in ENCRYPTION_SECTIONS:
        pattern = re.compile(
            rf"<{name}\b(?P<attrs>[^>]*)>(?P<body>.*?)</{name}>|<{name}\b(?P<solo>[^>]*)/>",
            re.IGNORECASE | re.DOTALL,
        )
        encrypted = False
        for match in pattern.finditer(content):
            attrs = (match.group("attrs") or "") + (match.group("solo") or "")
            body = match.group("body") or ""
            if "configprotectionprovider" in attrs.lower() or "<encrypteddata" in body.lower():
                encrypted = True
                break
        sections[name] = encrypted
    return sections


def inspect_encryption(web_config: str) -> EncryptionStatus:
    """Report whether ``appSettings`` or ``mailSettings`` are protected."""

    try:
        root = DefusedET.fromstring(web_config)
    except (ET.ParseError, DefusedXmlException):
        sections = _inspect_text(web_config)
    else:
        sections = _inspect_tree(root)
    return EncryptionStatus(encrypted=any(sections.values()), sections=sections)


def _read_text(path: Path, logger: BoundLogger) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as exc:
        logger.warning("discovery.config.unreadable", path=str(path), error=str(exc))
        return None


def read_instance_config(
    directory: str | Path,
    kind: ConfigKind,
    *,
    marker_file: str,
    web_config_file: str,
    logger: BoundLogger | None = None,
) -> ParsedConfig:
    """Read and parse the marker file in ``directory``.

    Missing or unreadable files produce an empty result and a warning.
    """

    log = logger or _logger
    base = Path(directory)
    content = _read_text(base / marker_file, log)
    if content is None:
        return ParsedConfig()

    parsed = parse_config(content, kind)
    if kind != "ess" or not parsed.is_single_sign_on:
        return parsed

    web_config = _read_text(base / web_config_file, log)
    if web_config is None:
        return parsed

    return replace(parsed, encryption=inspect_encryption(web_config))


__all__ = [
    "ConfigKind",
    "EncryptionStatus",
    "ParsedConfig",
    "FIELD_PATTERNS",
    "is_single_sign_on",
    "parse_config",
    "inspect_encryption",
    "read_instance_config",
]
