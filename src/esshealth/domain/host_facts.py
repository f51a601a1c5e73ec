"""Host facts consumed from the external collector.

The collector emits camelCase keys (``hasWebServer``, ``diskFreeGB``); the
models accept those as well as snake_case. Every measurement is optional: an
absent value means the collector could not read it.
"""

from __future__ import annotations

import json
import os
import platform
import tomllib
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Tuple, Type, TypeVar

import psutil
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from esshealth.infrastructure.errors import ErrorContext, HostFactsError

_BYTES_PER_GB = 1024**3


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _optional_number(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            return float(stripped)
        except ValueError:
            return None
    return value


class _FactsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class BindingFacts(_FactsModel):
    protocol: str = "http"
    port: Optional[int] = None
    host_header: Optional[str] = Field(
        default=None, validation_alias=_aliases("host_header", "hostHeader")
    )
    certificate_subject: Optional[str] = Field(
        default=None,
        validation_alias=_aliases("certificate_subject", "certificateSubject"),
    )
    certificate_expiry: Optional[datetime] = Field(
        default=None,
        validation_alias=_aliases("certificate_expiry", "certificateExpiry"),
    )
    certificate_path: Optional[str] = Field(
        default=None, validation_alias=_aliases("certificate_path", "certificatePath")
    )

    @field_validator("protocol", mode="before")
    @classmethod
    def _normalize_protocol(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return "http"
        return value.strip().lower()

    @field_validator("port", mode="before")
    @classmethod
    def _normalize_port(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @field_validator("host_header", mode="before")
    @classmethod
    def _blank_host_header(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


class ApplicationFacts(_FactsModel):
    path: str = "/"
    physical_path: str = Field(
        validation_alias=_aliases("physical_path", "physicalPath")
    )
    application_pool: Optional[str] = Field(
        default=None, validation_alias=_aliases("application_pool", "applicationPool")
    )

    @field_validator("path", mode="before")
    @classmethod
    def _normalize_path(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return "/"
        candidate = value.strip().replace("\\", "/")
        if not candidate.startswith("/"):
            candidate = f"/{candidate}"
        return candidate


class RejectedEntry(_FactsModel):
    """A site or application entry that failed validation."""

    name: str
    message: str


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(parts)


def _entry_name(entry: Any, key: str, fallback: str) -> str:
    if isinstance(entry, dict):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return fallback


_Model = TypeVar("_Model", bound=BaseModel)


def _partition(
    entries: List[Any], model: Type[_Model], *, key: str, label: str
) -> Tuple[List[_Model], List[RejectedEntry]]:
    """Validate entries one at a time so a bad entry only drops itself."""

    accepted: List[_Model] = []
    rejected: List[RejectedEntry] = []
    for index, entry in enumerate(entries):
        try:
            accepted.append(model.model_validate(entry))
        except ValidationError as exc:
            rejected.append(
                RejectedEntry(
                    name=_entry_name(entry, key, f"{label}[{index}]"),
                    message=f"Invalid {label} entry: {_describe(exc)}",
                )
            )
    return accepted, rejected


def _split_entries(
    data: Any, field: str, model: Type[BaseModel], *, key: str, label: str, target: str
) -> Any:
    if not isinstance(data, dict):
        return data
    entries = data.get(field)
    if not isinstance(entries, list):
        return {**data, target: []}
    accepted, rejected = _partition(entries, model, key=key, label=label)
    return {**data, field: accepted, target: rejected}


class SiteFacts(_FactsModel):
    name: str
    physical_path: Optional[str] = Field(
        default=None, validation_alias=_aliases("physical_path", "physicalPath")
    )
    application_pool: Optional[str] = Field(
        default=None, validation_alias=_aliases("application_pool", "applicationPool")
    )
    applications: List[ApplicationFacts] = Field(default_factory=list)
    bindings: List[BindingFacts] = Field(default_factory=list)
    rejected_applications: List[RejectedEntry] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _isolate_applications(cls, data: Any) -> Any:
        return _split_entries(
            data,
            "applications",
            ApplicationFacts,
            key="path",
            label="application",
            target="rejected_applications",
        )

    @field_validator("applications", "bindings", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class HostFacts(_FactsModel):
    hostname: Optional[str] = None
    os_name: Optional[str] = Field(
        default=None, validation_alias=_aliases("os_name", "osName", "osVersion")
    )
    has_web_server: bool = Field(
        default=False, validation_alias=_aliases("has_web_server", "hasWebServer")
    )
    web_server_version: Optional[str] = Field(
        default=None,
        validation_alias=_aliases("web_server_version", "webServerVersion"),
    )
    sites: List[SiteFacts] = Field(default_factory=list)
    dot_net_versions: List[str] = Field(
        default_factory=list,
        validation_alias=_aliases("dot_net_versions", "dotNetVersions"),
    )
    disk_free_gb: Optional[float] = Field(
        default=None, validation_alias=_aliases("disk_free_gb", "diskFreeGB")
    )
    disk_total_gb: Optional[float] = Field(
        default=None, validation_alias=_aliases("disk_total_gb", "diskTotalGB")
    )
    memory_gb: Optional[float] = Field(
        default=None, validation_alias=_aliases("memory_gb", "memoryGB")
    )
    core_count: Optional[int] = Field(
        default=None, validation_alias=_aliases("core_count", "coreCount")
    )
    average_clock_ghz: Optional[float] = Field(
        default=None,
        validation_alias=_aliases("average_clock_ghz", "averageClockGHz"),
    )
    sql_server_installed: Optional[bool] = Field(
        default=None,
        validation_alias=_aliases("sql_server_installed", "sqlServerInstalled"),
    )
    is_elevated: Optional[bool] = Field(
        default=None, validation_alias=_aliases("is_elevated", "isElevated")
    )
    rejected_sites: List[RejectedEntry] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _isolate_sites(cls, data: Any) -> Any:
        return _split_entries(
            data, "sites", SiteFacts, key="name", label="site", target="rejected_sites"
        )

    @field_validator("disk_free_gb", "disk_total_gb", "memory_gb", "average_clock_ghz", mode="before")
    @classmethod
    def _normalize_measurement(cls, value: Any) -> Any:
        return _optional_number(value)

    @field_validator("core_count", mode="before")
    @classmethod
    def _normalize_core_count(cls, value: Any) -> Optional[int]:
        number = _optional_number(value)
        if number is None:
            return None
        try:
            return int(number)
        except (TypeError, ValueError):
            return None

    @field_validator("sites", "dot_net_versions", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("dot_net_versions", mode="after")
    @classmethod
    def _strip_versions(cls, value: List[str]) -> List[str]:
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def parse_host_facts(raw: Any, *, source: str = "<memory>") -> HostFacts:
    if not isinstance(raw, dict):
        raise HostFactsError(
            "Host facts document must be an object",
            context=ErrorContext(code="HOST_FACTS_UNAVAILABLE", source=source),
        )
    try:
        return HostFacts.model_validate(raw)
    except ValidationError as exc:
        raise HostFactsError(
            f"Host facts document {source} is invalid",
            context=ErrorContext(
                code="HOST_FACTS_UNAVAILABLE", source=source, detail=str(exc)
            ),
        ) from exc


def load_host_facts(path: str | Path) -> HostFacts:
    """Load host facts from a JSON or TOML document."""

    facts_path = Path(path)
    try:
        text = facts_path.read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise HostFactsError(
            f"Unable to read host facts from {facts_path}",
            context=ErrorContext(
                code="HOST_FACTS_UNAVAILABLE", source=str(facts_path), detail=str(exc)
            ),
        ) from exc

    try:
        if facts_path.suffix.lower() == ".toml":
            raw = tomllib.loads(text)
        else:
            raw = json.loads(text)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise HostFactsError(
            f"Host facts file {facts_path} is not valid {facts_path.suffix.lstrip('.') or 'json'}",
            context=ErrorContext(
                code="HOST_FACTS_UNAVAILABLE", source=str(facts_path), detail=str(exc)
            ),
        ) from exc

    return parse_host_facts(raw, source=str(facts_path))


def _system_drive() -> str:
    if os.name == "nt":
        return os.environ.get("SystemDrive", "C:") + "\\"
    return "/"


def collect_local_host_facts() -> HostFacts:
    """Gather the resource facts psutil can see on the local machine.

    Web-server, .NET and SQL Server facts need the platform collector and are
    reported as unavailable.
    """

    facts: dict[str, Any] = {
        "hostname": platform.node() or None,
        "os_name": f"{platform.system()} {platform.release()}".strip() or None,
        "has_web_server": False,
    }

    try:
        usage = psutil.disk_usage(_system_drive())
    except OSError:
        usage = None
    if usage is not None:
        facts["disk_free_gb"] = round(usage.free / _BYTES_PER_GB, 2)
        facts["disk_total_gb"] = round(usage.total / _BYTES_PER_GB, 2)

    facts["memory_gb"] = round(psutil.virtual_memory().total / _BYTES_PER_GB, 2)
    facts["core_count"] = psutil.cpu_count(logical=False) or psutil.cpu_count()

    frequency = psutil.cpu_freq()
    if frequency is not None and frequency.current:
        facts["average_clock_ghz"] = round(frequency.current / 1000, 2)

    return HostFacts.model_validate(facts)


__all__ = [
    "BindingFacts",
    "RejectedEntry",
    "ApplicationFacts",
    "SiteFacts",
    "HostFacts",
    "parse_host_facts",
    "load_host_facts",
    "collect_local_host_facts",
]
