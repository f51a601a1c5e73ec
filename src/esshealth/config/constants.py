"""Shared file names, markers and boolean string sets."""

from __future__ import annotations

TRUTHY_STRINGS = {"1", "true", "yes", "on"}
FALSY_STRINGS = {"0", "false", "no", "off"}

DEFAULT_CONFIG_FILENAME = "config.toml"
LOCAL_CONFIG_FILENAME = "config.local.toml"
ENVVAR_PREFIX = "ESSHEALTH"

ESS_MARKER_FILE = "SelfService.config"
WFE_MARKER_FILE = "WorkflowEngine.config"
WEB_CONFIG_FILE = "Web.config"
ESS_PRODUCT_BINARY = "SelfService.Web.dll"
ESS_COMPANION_BINARY = "PayGlobal.Bridge.dll"

HEALTHCHECK_PATH = "api/v1/healthcheck"

__all__ = [
    "TRUTHY_STRINGS",
    "FALSY_STRINGS",
    "DEFAULT_CONFIG_FILENAME",
    "LOCAL_CONFIG_FILENAME",
    "ENVVAR_PREFIX",
    "ESS_MARKER_FILE",
    "WFE_MARKER_FILE",
    "WEB_CONFIG_FILE",
    "ESS_PRODUCT_BINARY",
    "ESS_COMPANION_BINARY",
    "HEALTHCHECK_PATH",
]
