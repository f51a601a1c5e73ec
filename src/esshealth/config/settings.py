"""Dynaconf-backed configuration helpers for ESSHealth."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from dynaconf import Dynaconf

from esshealth.config.constants import (
    DEFAULT_CONFIG_FILENAME,
    ENVVAR_PREFIX,
    ESS_COMPANION_BINARY,
    ESS_MARKER_FILE,
    ESS_PRODUCT_BINARY,
    FALSY_STRINGS,
    LOCAL_CONFIG_FILENAME,
    TRUTHY_STRINGS,
    WEB_CONFIG_FILE,
    WFE_MARKER_FILE,
)
from esshealth.infrastructure.errors import ConfigurationError

_REPO_ROOT = Path(__file__).resolve().parents[3]

LOG_FORMAT_TEXT = "text"
LOG_FORMAT_JSON = "json"
DEFAULT_LOG_FORMAT = LOG_FORMAT_TEXT
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_BYTES = 10_000_000
DEFAULT_BACKUP_COUNT = 5

DEFAULT_MIN_DISK_GB = 10.0
DEFAULT_MIN_MEMORY_GB = 32.0
DEFAULT_MIN_CORES = 4
DEFAULT_MIN_CLOCK_GHZ = 2.0
DEFAULT_MIN_DOTNET_VERSION = "4.8"
DEFAULT_MIN_WEB_SERVER_VERSION = "7.5"
DEFAULT_MIN_PRODUCT_VERSION = "5.0.0"

# Product version prefix -> minimum companion (PayGlobal bridge) version.
DEFAULT_COMPATIBILITY_TABLE: Mapping[str, str] = {
    "5.2": "4.60.0",
    "5.3": "4.62.0",
}

DEFAULT_HEALTHCHECK_TIMEOUT = 90.0
DEFAULT_HEALTHCHECK_MAX_RETRIES = 2
DEFAULT_HEALTHCHECK_RETRY_DELAY = 5.0
DEFAULT_HEALTHCHECK_CONCURRENCY = 3

DEFAULT_CERTIFICATE_WARNING_DAYS = 30
DEFAULT_DATABASE_TIMEOUT = 5.0

REQUIREMENTS_MIN_DISK_GB_KEY = "requirements.min_disk_gb"
REQUIREMENTS_MIN_MEMORY_GB_KEY = "requirements.min_memory_gb"
REQUIREMENTS_MIN_CORES_KEY = "requirements.min_cores"
REQUIREMENTS_MIN_CLOCK_GHZ_KEY = "requirements.min_clock_ghz"
REQUIREMENTS_MIN_DOTNET_KEY = "requirements.min_dotnet_version"
REQUIREMENTS_MIN_WEB_SERVER_KEY = "requirements.min_web_server_version"
REQUIREMENTS_MIN_PRODUCT_KEY = "requirements.min_product_version"

COMPATIBILITY_RULES_KEY = "compatibility.rules"

HEALTHCHECK_TIMEOUT_KEY = "healthcheck.timeout"
HEALTHCHECK_MAX_RETRIES_KEY = "healthcheck.max_retries"
HEALTHCHECK_RETRY_DELAY_KEY = "healthcheck.retry_delay"
HEALTHCHECK_CONCURRENCY_KEY = "healthcheck.concurrency"
HEALTHCHECK_VERIFY_TLS_KEY = "healthcheck.verify_tls"

DISCOVERY_ESS_MARKER_KEY = "discovery.ess_marker_file"
DISCOVERY_WFE_MARKER_KEY = "discovery.wfe_marker_file"
DISCOVERY_WEB_CONFIG_KEY = "discovery.web_config_file"
DISCOVERY_PRODUCT_BINARY_KEY = "discovery.product_binary"
DISCOVERY_COMPANION_BINARY_KEY = "discovery.companion_binary"

VALIDATION_CERT_WARNING_DAYS_KEY = "validation.certificate_warning_days"
VALIDATION_DATABASE_TIMEOUT_KEY = "validation.database_timeout"

RUNTIME_DEBUG_KEY = "runtime.debug"

LOGGING_LEVEL_KEY = "logging.level"
LOGGING_FORMAT_KEY = "logging.format"
LOGGING_FILE_KEY = "logging.file"
LOGGING_MAX_BYTES_KEY = "logging.max_bytes"
LOGGING_BACKUP_COUNT_KEY = "logging.backup_count"

ENVIRONMENT_MAP = {
    "ESSHEALTH_MIN_DISK_GB": REQUIREMENTS_MIN_DISK_GB_KEY,
    "ESSHEALTH_MIN_MEMORY_GB": REQUIREMENTS_MIN_MEMORY_GB_KEY,
    "ESSHEALTH_MIN_CORES": REQUIREMENTS_MIN_CORES_KEY,
    "ESSHEALTH_MIN_CLOCK_GHZ": REQUIREMENTS_MIN_CLOCK_GHZ_KEY,
    "ESSHEALTH_HEALTHCHECK_TIMEOUT": HEALTHCHECK_TIMEOUT_KEY,
    "ESSHEALTH_HEALTHCHECK_MAX_RETRIES": HEALTHCHECK_MAX_RETRIES_KEY,
    "ESSHEALTH_HEALTHCHECK_RETRY_DELAY": HEALTHCHECK_RETRY_DELAY_KEY,
    "ESSHEALTH_HEALTHCHECK_CONCURRENCY": HEALTHCHECK_CONCURRENCY_KEY,
    "ESSHEALTH_VERIFY_TLS": HEALTHCHECK_VERIFY_TLS_KEY,
    "ESSHEALTH_DEBUG": RUNTIME_DEBUG_KEY,
    "ESSHEALTH_LOG_LEVEL": LOGGING_LEVEL_KEY,
    "ESSHEALTH_LOG_FORMAT": LOGGING_FORMAT_KEY,
    "ESSHEALTH_LOG_FILE": LOGGING_FILE_KEY,
    "ESSHEALTH_LOG_MAX_BYTES": LOGGING_MAX_BYTES_KEY,
    "ESSHEALTH_LOG_BACKUP_COUNT": LOGGING_BACKUP_COUNT_KEY,
}


@dataclass(frozen=True)
class HealthCheckInputs:
    timeout: Optional[float] = None
    max_retries: Optional[int] = None
    retry_delay: Optional[float] = None
    concurrency: Optional[int] = None
    verify_tls: Optional[bool] = None


@dataclass(frozen=True)
class RuntimeInputs:
    debug: Optional[bool] = None


@dataclass(frozen=True)
class LoggingInputs:
    level: Optional[str] = None
    format: Optional[str] = None
    file_path: Optional[str] = None
    max_bytes: Optional[int] = None
    backup_count: Optional[int] = None


@dataclass(frozen=True)
class LoggingSettings:
    level: int
    format: str
    file_path: Optional[str]
    max_bytes: int
    backup_count: int

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)


@dataclass(frozen=True)
class RequirementSettings:
    min_disk_gb: float = DEFAULT_MIN_DISK_GB
    min_memory_gb: float = DEFAULT_MIN_MEMORY_GB
    min_cores: int = DEFAULT_MIN_CORES
    min_clock_ghz: float = DEFAULT_MIN_CLOCK_GHZ
    min_dotnet_version: str = DEFAULT_MIN_DOTNET_VERSION
    min_web_server_version: str = DEFAULT_MIN_WEB_SERVER_VERSION
    min_product_version: str = DEFAULT_MIN_PRODUCT_VERSION


@dataclass(frozen=True)
class HealthCheckSettings:
    timeout: float = DEFAULT_HEALTHCHECK_TIMEOUT
    max_retries: int = DEFAULT_HEALTHCHECK_MAX_RETRIES
    retry_delay: float = DEFAULT_HEALTHCHECK_RETRY_DELAY
    concurrency: int = DEFAULT_HEALTHCHECK_CONCURRENCY
    verify_tls: bool = True


@dataclass(frozen=True)
class DiscoverySettings:
    ess_marker_file: str = ESS_MARKER_FILE
    wfe_marker_file: str = WFE_MARKER_FILE
    web_config_file: str = WEB_CONFIG_FILE
    product_binary: str = ESS_PRODUCT_BINARY
    companion_binary: str = ESS_COMPANION_BINARY


@dataclass(frozen=True)
class ValidationSettings:
    certificate_warning_days: int = DEFAULT_CERTIFICATE_WARNING_DAYS
    database_timeout: float = DEFAULT_DATABASE_TIMEOUT


@dataclass(frozen=True)
class RuntimeSettings:
    requirements: RequirementSettings = field(default_factory=RequirementSettings)
    compatibility: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_COMPATIBILITY_TABLE)
    )
    healthcheck: HealthCheckSettings = field(default_factory=HealthCheckSettings)
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    debug: bool = False
    warnings: Tuple[str, ...] = ()


def _default_settings_files(config_path: Optional[str]) -> Tuple[Sequence[str], Optional[str]]:
    if config_path:
        config_file = Path(config_path)
        local_file = config_file.with_name(f"{config_file.stem}.local{config_file.suffix}")
        files: list[str] = []
        if config_file.exists():
            files.append(str(config_file))
        if local_file.exists():
            files.append(str(local_file))
        return files or [str(config_file)], None
    return [DEFAULT_CONFIG_FILENAME, LOCAL_CONFIG_FILENAME], str(_REPO_ROOT)


def resolve_config_file_candidates(config_path: Optional[str] = None) -> list[Path]:
    """Files Dynaconf will consider, in load order."""

    if config_path:
        config_file = Path(config_path)
        return [
            config_file,
            config_file.with_name(f"{config_file.stem}.local{config_file.suffix}"),
        ]
    return [_REPO_ROOT / DEFAULT_CONFIG_FILENAME, _REPO_ROOT / LOCAL_CONFIG_FILENAME]


def _coerce_str(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        candidate = value.strip()
        return candidate or None
    return str(value)


def _coerce_bool(value: Optional[Any]) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in TRUTHY_STRINGS:
            return True
        if normalized in FALSY_STRINGS:
            return False
        return None
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def _coerce_int(value: Optional[Any]) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _coerce_float(value: Optional[Any]) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _apply_environment_overrides(settings: Dynaconf) -> None:
    for env_var, key in ENVIRONMENT_MAP.items():
        raw = os.getenv(env_var)
        if raw is None or not raw.strip():
            continue
        settings.set(key, raw)


def _apply_healthcheck_inputs(
    settings: Dynaconf, healthcheck_inputs: Optional[HealthCheckInputs]
) -> None:
    if healthcheck_inputs is None:
        return

    if healthcheck_inputs.timeout is not None:
        settings.set(HEALTHCHECK_TIMEOUT_KEY, healthcheck_inputs.timeout)
    if healthcheck_inputs.max_retries is not None:
        settings.set(HEALTHCHECK_MAX_RETRIES_KEY, healthcheck_inputs.max_retries)
    if healthcheck_inputs.retry_delay is not None:
        settings.set(HEALTHCHECK_RETRY_DELAY_KEY, healthcheck_inputs.retry_delay)
    if healthcheck_inputs.concurrency is not None:
        settings.set(HEALTHCHECK_CONCURRENCY_KEY, healthcheck_inputs.concurrency)
    if healthcheck_inputs.verify_tls is not None:
        settings.set(HEALTHCHECK_VERIFY_TLS_KEY, healthcheck_inputs.verify_tls)


def _apply_runtime_inputs(
    settings: Dynaconf, runtime_inputs: Optional[RuntimeInputs]
) -> None:
    if runtime_inputs is None:
        return

    if runtime_inputs.debug is not None:
        settings.set(RUNTIME_DEBUG_KEY, runtime_inputs.debug)


def _apply_logging_inputs(
    settings: Dynaconf, logging_inputs: Optional[LoggingInputs]
) -> None:
    if logging_inputs is None:
        return

    if logging_inputs.level is not None:
        settings.set(LOGGING_LEVEL_KEY, logging_inputs.level.strip())
    if logging_inputs.format is not None:
        settings.set(LOGGING_FORMAT_KEY, logging_inputs.format.strip())
    if logging_inputs.file_path is not None:
        settings.set(LOGGING_FILE_KEY, logging_inputs.file_path.strip())
    if logging_inputs.max_bytes is not None:
        settings.set(LOGGING_MAX_BYTES_KEY, logging_inputs.max_bytes)
    if logging_inputs.backup_count is not None:
        settings.set(LOGGING_BACKUP_COUNT_KEY, logging_inputs.backup_count)


def _build_dynaconf(config_path: Optional[str]) -> Dynaconf:
    files, root_path = _default_settings_files(config_path)
    settings = Dynaconf(
        settings_files=list(files),
        envvar_prefix=ENVVAR_PREFIX,
        environments=False,
        load_dotenv=True,
        merge_enabled=True,
        root_path=root_path,
    )
    _apply_environment_overrides(settings)
    return settings


def load_settings(config_path: Optional[str] = None) -> Dynaconf:
    """Create a Dynaconf instance configured for the supplied path."""

    return _build_dynaconf(config_path)


def apply_cli_overrides(
    settings: Dynaconf,
    *,
    healthcheck_inputs: Optional[HealthCheckInputs] = None,
    runtime_inputs: Optional[RuntimeInputs] = None,
    logging_inputs: Optional[LoggingInputs] = None,
) -> None:
    """Apply CLI overrides to the provided settings instance."""

    _apply_healthcheck_inputs(settings, healthcheck_inputs)
    _apply_runtime_inputs(settings, runtime_inputs)
    _apply_logging_inputs(settings, logging_inputs)


def _resolve_float(
    settings: Dynaconf,
    key: str,
    default: float,
    warnings: list[str],
    *,
    allow_zero: bool = False,
) -> float:
    raw = settings.get(key)
    if raw is None:
        return default
    value = _coerce_float(raw)
    if value is None:
        warnings.append(f"Invalid {key} value {raw!r}; using default {default}")
        return default
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigurationError(f"{key} must be positive, got {value}")
    return value


def _resolve_int(
    settings: Dynaconf,
    key: str,
    default: int,
    warnings: list[str],
    *,
    allow_zero: bool = False,
) -> int:
    raw = settings.get(key)
    if raw is None:
        return default
    value = _coerce_int(raw)
    if value is None:
        warnings.append(f"Invalid {key} value {raw!r}; using default {default}")
        return default
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigurationError(f"{key} must be positive, got {value}")
    return value


def _resolve_str(settings: Dynaconf, key: str, default: str) -> str:
    return _coerce_str(settings.get(key)) or default


def _resolve_bool(settings: Dynaconf, key: str, *, default: bool = False) -> bool:
    coerced = _coerce_bool(settings.get(key))
    if coerced is None:
        return default
    return coerced


def _resolve_compatibility(settings: Dynaconf, warnings: list[str]) -> Dict[str, str]:
    raw_rules = settings.get(COMPATIBILITY_RULES_KEY)
    if raw_rules is None:
        return dict(DEFAULT_COMPATIBILITY_TABLE)
    if not isinstance(raw_rules, (list, tuple)):
        raise ConfigurationError(
            f"{COMPATIBILITY_RULES_KEY} must be an array of tables with "
            "'product' and 'minimum_companion' keys"
        )

    table: Dict[str, str] = {}
    for entry in raw_rules:
        if not isinstance(entry, Mapping):
            warnings.append(f"Ignoring malformed compatibility rule: {entry!r}")
            continue
        product = _coerce_str(entry.get("product"))
        companion = _coerce_str(entry.get("minimum_companion"))
        if not product or not companion:
            warnings.append(f"Ignoring incomplete compatibility rule: {dict(entry)!r}")
            continue
        table[product] = companion
    return table


def runtime_from_settings(settings: Dynaconf) -> RuntimeSettings:
    """Extract runtime settings and validation messages from Dynaconf."""

    warnings: list[str] = []

    requirements = RequirementSettings(
        min_disk_gb=_resolve_float(
            settings, REQUIREMENTS_MIN_DISK_GB_KEY, DEFAULT_MIN_DISK_GB, warnings
        ),
        min_memory_gb=_resolve_float(
            settings, REQUIREMENTS_MIN_MEMORY_GB_KEY, DEFAULT_MIN_MEMORY_GB, warnings
        ),
        min_cores=_resolve_int(
            settings, REQUIREMENTS_MIN_CORES_KEY, DEFAULT_MIN_CORES, warnings
        ),
        min_clock_ghz=_resolve_float(
            settings, REQUIREMENTS_MIN_CLOCK_GHZ_KEY, DEFAULT_MIN_CLOCK_GHZ, warnings
        ),
        min_dotnet_version=_resolve_str(
            settings, REQUIREMENTS_MIN_DOTNET_KEY, DEFAULT_MIN_DOTNET_VERSION
        ),
        min_web_server_version=_resolve_str(
            settings, REQUIREMENTS_MIN_WEB_SERVER_KEY, DEFAULT_MIN_WEB_SERVER_VERSION
        ),
        min_product_version=_resolve_str(
            settings, REQUIREMENTS_MIN_PRODUCT_KEY, DEFAULT_MIN_PRODUCT_VERSION
        ),
    )

    healthcheck = HealthCheckSettings(
        timeout=_resolve_float(
            settings, HEALTHCHECK_TIMEOUT_KEY, DEFAULT_HEALTHCHECK_TIMEOUT, warnings
        ),
        max_retries=_resolve_int(
            settings,
            HEALTHCHECK_MAX_RETRIES_KEY,
            DEFAULT_HEALTHCHECK_MAX_RETRIES,
            warnings,
            allow_zero=True,
        ),
        retry_delay=_resolve_float(
            settings,
            HEALTHCHECK_RETRY_DELAY_KEY,
            DEFAULT_HEALTHCHECK_RETRY_DELAY,
            warnings,
            allow_zero=True,
        ),
        concurrency=_resolve_int(
            settings,
            HEALTHCHECK_CONCURRENCY_KEY,
            DEFAULT_HEALTHCHECK_CONCURRENCY,
            warnings,
        ),
        verify_tls=_resolve_bool(settings, HEALTHCHECK_VERIFY_TLS_KEY, default=True),
    )

    discovery = DiscoverySettings(
        ess_marker_file=_resolve_str(settings, DISCOVERY_ESS_MARKER_KEY, ESS_MARKER_FILE),
        wfe_marker_file=_resolve_str(settings, DISCOVERY_WFE_MARKER_KEY, WFE_MARKER_FILE),
        web_config_file=_resolve_str(settings, DISCOVERY_WEB_CONFIG_KEY, WEB_CONFIG_FILE),
        product_binary=_resolve_str(
            settings, DISCOVERY_PRODUCT_BINARY_KEY, ESS_PRODUCT_BINARY
        ),
        companion_binary=_resolve_str(
            settings, DISCOVERY_COMPANION_BINARY_KEY, ESS_COMPANION_BINARY
        ),
    )

    validation = ValidationSettings(
        certificate_warning_days=_resolve_int(
            settings,
            VALIDATION_CERT_WARNING_DAYS_KEY,
            DEFAULT_CERTIFICATE_WARNING_DAYS,
            warnings,
            allow_zero=True,
        ),
        database_timeout=_resolve_float(
            settings,
            VALIDATION_DATABASE_TIMEOUT_KEY,
            DEFAULT_DATABASE_TIMEOUT,
            warnings,
        ),
    )

    return RuntimeSettings(
        requirements=requirements,
        compatibility=_resolve_compatibility(settings, warnings),
        healthcheck=healthcheck,
        discovery=discovery,
        validation=validation,
        debug=_resolve_bool(settings, RUNTIME_DEBUG_KEY, default=False),
        warnings=tuple(warnings),
    )


def logging_from_settings(settings: Dynaconf) -> LoggingSettings:
    """Extract logging configuration from Dynaconf."""

    level_value = _coerce_str(settings.get(LOGGING_LEVEL_KEY)) or DEFAULT_LOG_LEVEL
    format_value = (
        _coerce_str(settings.get(LOGGING_FORMAT_KEY)) or DEFAULT_LOG_FORMAT
    ).lower()
    if format_value not in {LOG_FORMAT_TEXT, LOG_FORMAT_JSON}:
        raise ConfigurationError(f"Unsupported log format: {format_value}")

    file_path = _coerce_str(settings.get(LOGGING_FILE_KEY))

    max_bytes_value = _coerce_int(settings.get(LOGGING_MAX_BYTES_KEY))
    if max_bytes_value is None or max_bytes_value <= 0:
        max_bytes_value = DEFAULT_MAX_BYTES

    backup_count_value = _coerce_int(settings.get(LOGGING_BACKUP_COUNT_KEY))
    if backup_count_value is None or backup_count_value <= 0:
        backup_count_value = DEFAULT_BACKUP_COUNT

    mapping = logging.getLevelNamesMapping()
    level_upper = level_value.upper()
    if level_upper.isdigit():
        resolved_level = int(level_upper)
    else:
        resolved_level = mapping.get(level_upper, logging.INFO)

    return LoggingSettings(
        level=resolved_level,
        format=format_value,
        file_path=file_path,
        max_bytes=max_bytes_value,
        backup_count=backup_count_value,
    )


def resolve_application_settings(
    *,
    config_path: Optional[str] = None,
    healthcheck_inputs: Optional[HealthCheckInputs] = None,
    runtime_inputs: Optional[RuntimeInputs] = None,
    logging_inputs: Optional[LoggingInputs] = None,
) -> Tuple[RuntimeSettings, LoggingSettings]:
    settings = load_settings(config_path)
    apply_cli_overrides(
        settings,
        healthcheck_inputs=healthcheck_inputs,
        runtime_inputs=runtime_inputs,
        logging_inputs=logging_inputs,
    )
    runtime_settings = runtime_from_settings(settings)
    logging_settings = logging_from_settings(settings)

    if runtime_settings.debug and logging_settings.level > logging.DEBUG:
        logging_settings = LoggingSettings(
            level=logging.DEBUG,
            format=logging_settings.format,
            file_path=logging_settings.file_path,
            max_bytes=logging_settings.max_bytes,
            backup_count=logging_settings.backup_count,
        )

    return runtime_settings, logging_settings


__all__ = [
    "DEFAULT_COMPATIBILITY_TABLE",
    "DEFAULT_LOG_FORMAT",
    "DEFAULT_LOG_LEVEL",
    "LOG_FORMAT_TEXT",
    "LOG_FORMAT_JSON",
    "HealthCheckInputs",
    "RuntimeInputs",
    "LoggingInputs",
    "LoggingSettings",
    "RequirementSettings",
    "HealthCheckSettings",
    "DiscoverySettings",
    "ValidationSettings",
    "RuntimeSettings",
    "load_settings",
    "resolve_config_file_candidates",
    "ENVIRONMENT_MAP",
    "apply_cli_overrides",
    "runtime_from_settings",
    "logging_from_settings",
    "resolve_application_settings",
]
