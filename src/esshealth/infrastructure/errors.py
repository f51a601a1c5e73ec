"""Domain errors raised by ESSHealth.

Only fatal conditions and non-retryable protocol faults are modelled as
exceptions. Missing data and threshold violations never raise; they are
reported as check results instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    CONFIGURATION_INVALID = "CONFIGURATION_INVALID"
    HOST_FACTS_UNAVAILABLE = "HOST_FACTS_UNAVAILABLE"
    HEALTHCHECK_PAYLOAD_INVALID = "HEALTHCHECK_PAYLOAD_INVALID"


@dataclass(frozen=True)
class ErrorContext:
    code: str
    source: str | None = None
    detail: str | None = None


class EssHealthError(Exception):
    """Base class for errors carrying a stable code and a user-facing message."""

    default_code: ErrorCode = ErrorCode.CONFIGURATION_INVALID
    hint: str | None = None

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.context = context or ErrorContext(code=self.default_code.value)
        if hint is not None:
            self.hint = hint

    @property
    def code(self) -> str:
        return self.context.code

    @property
    def user_message(self) -> str:
        message = str(self)
        if self.hint:
            return f"{message}. {self.hint}"
        return message

    def log_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"code": self.context.code}
        if self.context.source:
            fields["source"] = self.context.source
        if self.context.detail:
            fields["detail"] = self.context.detail
        return fields


class ConfigurationError(EssHealthError):
    default_code = ErrorCode.CONFIGURATION_INVALID
    hint = "Check config.toml, config.local.toml and ESSHEALTH_* environment variables"


class HostFactsError(EssHealthError):
    default_code = ErrorCode.HOST_FACTS_UNAVAILABLE
    hint = "Provide a readable host facts document with --facts"


class PayloadParseError(EssHealthError):
    """Health-check body could not be decoded as JSON or XML."""

    default_code = ErrorCode.HEALTHCHECK_PAYLOAD_INVALID


__all__ = [
    "ErrorCode",
    "ErrorContext",
    "EssHealthError",
    "ConfigurationError",
    "HostFactsError",
    "PayloadParseError",
]
