"""Async HTTP client for the ESS health endpoint.

One ``check`` call moves through: building the URL, attempting the request up
to ``max_retries + 1`` times with a fixed delay between attempts, then either
interpreting a response or giving up. Network and protocol faults never
escape; they are folded into an ``Error`` outcome.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any, Optional

import httpx

from esshealth.config.constants import HEALTHCHECK_PATH
from esshealth.config.settings import (
    DEFAULT_HEALTHCHECK_CONCURRENCY,
    DEFAULT_HEALTHCHECK_MAX_RETRIES,
    DEFAULT_HEALTHCHECK_RETRY_DELAY,
    DEFAULT_HEALTHCHECK_TIMEOUT,
    HealthCheckSettings,
)
from esshealth.domain.models import EssInstance
from esshealth.infrastructure.errors import PayloadParseError
from esshealth.infrastructure.logging import BoundLogger, get_logger, log_event

from .models import HealthCheckOutcome, OverallStatus
from .parsing import ParsedPayload, parse_payload
from .slots import assign_slots

SleepFunc = Callable[[float], Awaitable[Any]]

TEMPORARILY_UNAVAILABLE = frozenset({502, 503, 504})
_DEFAULT_PORTS = {"http": 80, "https": 443}
_STATUS_MEANING = {
    200: (OverallStatus.HEALTHY, "Site is healthy"),
    500: (OverallStatus.UNHEALTHY, "Site is down"),
    503: (OverallStatus.PARTIALLY_UNHEALTHY, "Site is partially unhealthy"),
}


@dataclass(frozen=True)
class HealthCheckPolicy:
    timeout: float = DEFAULT_HEALTHCHECK_TIMEOUT
    max_retries: int = DEFAULT_HEALTHCHECK_MAX_RETRIES
    retry_delay: float = DEFAULT_HEALTHCHECK_RETRY_DELAY
    verify_tls: bool = True
    concurrency: int = DEFAULT_HEALTHCHECK_CONCURRENCY

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def from_settings(cls, settings: HealthCheckSettings) -> "HealthCheckPolicy":
        return cls(
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            verify_tls=settings.verify_tls,
            concurrency=settings.concurrency,
        )


@dataclass(frozen=True)
class HealthCheckTarget:
    name: str
    url: Optional[str]


def build_healthcheck_url(base_url: str, application_path: Optional[str] = None) -> str:
    """Return ``<scheme>://<host>[:<port>]/<applicationPath>/api/v1/healthcheck``.

    A base URL without a scheme is treated as HTTPS. Any path already on the
    base URL is kept in front of ``application_path``.
    """

    raw = base_url.strip()
    if not raw:
        raise ValueError("A base URL is required")
    if "://" not in raw:
        raw = f"https://{raw}"
    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL as exc:
        raise ValueError(f"Invalid base URL {base_url!r}: {exc}") from exc
    if url.scheme not in _DEFAULT_PORTS or not url.host:
        raise ValueError(f"Invalid base URL {base_url!r}")

    segments = [
        segment
        for part in (url.path, application_path or "", HEALTHCHECK_PATH)
        for segment in part.split("/")
        if segment
    ]
    netloc = url.netloc.decode("ascii")
    return f"{url.scheme}://{netloc}/{'/'.join(segments)}"


def url_for_instance(instance: EssInstance) -> Optional[str]:
    """Health URL for a discovered instance, or ``None`` without a host."""

    if not instance.host:
        return None
    if "://" in instance.host:
        return build_healthcheck_url(instance.host, instance.application_path)

    scheme = "https" if instance.uses_https else (instance.protocol or "http").lower()
    if scheme not in _DEFAULT_PORTS:
        scheme = "http"
    matching = [binding for binding in instance.bindings if binding.protocol == scheme]
    preferred = next(
        (binding for binding in matching if binding.host_header == instance.host),
        matching[0] if matching else None,
    )
    netloc = instance.host
    if preferred is not None and preferred.port not in (None, _DEFAULT_PORTS[scheme]):
        netloc = f"{instance.host}:{preferred.port}"
    return build_healthcheck_url(f"{scheme}://{netloc}", instance.application_path)


class _Cancelled(Exception):
    pass


async def _race(awaitable: Awaitable[Any], cancel_event: Optional[asyncio.Event]) -> Any:
    """Await ``awaitable`` unless ``cancel_event`` fires first."""

    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise _Cancelled()

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [task for task in (work, waiter) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
    if work.done() and not work.cancelled():
        return work.result()
    raise _Cancelled()


class HealthCheckClient:
    """Probe health endpoints with retries, bounded concurrency and cancellation."""

    def __init__(
        self,
        policy: HealthCheckPolicy | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFunc = asyncio.sleep,
        logger: BoundLogger | None = None,
    ) -> None:
        self._policy = policy or HealthCheckPolicy()
        self._transport = transport
        self._sleep = sleep
        self._logger = logger or get_logger("esshealth.healthcheck")
        self._client: httpx.AsyncClient | None = None

    @property
    def policy(self) -> HealthCheckPolicy:
        return self._policy

    def _create_client(self) -> httpx.AsyncClient:
        client_kwargs: dict[str, Any] = {
            "headers": {"Accept": "application/json, application/xml;q=0.9"},
            "timeout": self._policy.timeout,
            "verify": self._policy.verify_tls,
            "follow_redirects": True,
        }
        if self._transport is not None:
            client_kwargs["transport"] = self._transport
        return httpx.AsyncClient(**client_kwargs)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = self._create_client()
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HealthCheckClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def check(
        self,
        target: str,
        url: Optional[str],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> HealthCheckOutcome:
        if not url:
            return _error_outcome(target, None, "No health-check URL could be built", attempts=0)

        last_error = "No attempt was made"
        last_status: Optional[int] = None
        attempts = 0
        for attempt in range(1, self._policy.max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                return _cancelled_outcome(target, url, attempts)
            attempts = attempt
            log_event(
                self._logger,
                "healthcheck.attempt.started",
                level=logging.DEBUG,
                target=target,
                url=url,
                attempt=attempt,
            )
            try:
                response = await _race(self._http().get(url), cancel_event)
            except _Cancelled:
                return _cancelled_outcome(target, url, attempts)
            except httpx.TimeoutException:
                last_error = f"Request timed out after {self._policy.timeout:g}s"
                last_status = None
            except httpx.TransportError as exc:
                last_error = f"Connection failed: {str(exc) or type(exc).__name__}"
                last_status = None
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                log_event(
                    self._logger,
                    "healthcheck.request.failed",
                    level=logging.WARNING,
                    target=target,
                    url=url,
                    error=str(exc),
                )
                return _error_outcome(target, url, f"Request failed: {exc}", attempts=attempts)
            else:
                if response.status_code == 404:
                    log_event(
                        self._logger,
                        "healthcheck.not_found",
                        level=logging.WARNING,
                        target=target,
                        url=url,
                    )
                    return _error_outcome(
                        target,
                        url,
                        "Health endpoint not found (HTTP 404)",
                        attempts=attempts,
                        http_status=404,
                        interpretation="Not Found",
                    )
                outcome = self._interpret(target, url, response, attempts)
                if outcome is not None:
                    log_event(
                        self._logger,
                        "healthcheck.completed",
                        target=target,
                        url=url,
                        http_status=response.status_code,
                        overall_status=outcome.overall_status.value,
                        attempts=attempts,
                    )
                    return outcome
                last_error = f"Service temporarily unavailable (HTTP {response.status_code})"
                last_status = response.status_code

            if attempt < self._policy.max_attempts:
                log_event(
                    self._logger,
                    "healthcheck.attempt.retry",
                    level=logging.WARNING,
                    target=target,
                    url=url,
                    attempt=attempt,
                    error=last_error,
                    delay=self._policy.retry_delay,
                )
                try:
                    await _race(self._sleep(self._policy.retry_delay), cancel_event)
                except _Cancelled:
                    return _cancelled_outcome(target, url, attempts)

        log_event(
            self._logger,
            "healthcheck.exhausted",
            level=logging.WARNING,
            target=target,
            url=url,
            attempts=attempts,
            error=last_error,
        )
        return _error_outcome(
            target,
            url,
            f"{last_error} after {attempts} attempt(s)",
            attempts=attempts,
            http_status=last_status,
        )

    def _interpret(
        self,
        target: str,
        url: str,
        response: httpx.Response,
        attempts: int,
    ) -> Optional[HealthCheckOutcome]:
        """Build the outcome, or ``None`` when the response should be retried."""

        status_code = response.status_code
        overall, interpretation = _STATUS_MEANING.get(
            status_code, (OverallStatus.UNKNOWN, f"Unexpected HTTP status {status_code}")
        )
        error = (
            f"Unexpected HTTP status {status_code}"
            if overall is OverallStatus.UNKNOWN
            else None
        )

        payload: Optional[ParsedPayload] = None
        parse_error: Optional[str] = None
        body = response.text
        if body.strip():
            try:
                payload = parse_payload(body, response.headers.get("content-type"))
            except PayloadParseError as exc:
                parse_error = str(exc)

        if payload is None and status_code in TEMPORARILY_UNAVAILABLE:
            return None
        if parse_error is not None and status_code == 200:
            log_event(
                self._logger,
                "healthcheck.payload.invalid",
                level=logging.WARNING,
                target=target,
                url=url,
                error=parse_error,
            )
            return _error_outcome(
                target,
                url,
                parse_error,
                attempts=attempts,
                http_status=status_code,
                interpretation=interpretation,
            )

        components = payload.components if payload is not None else ()
        if payload is not None and payload.successful is not None:
            if payload.successful:
                overall = OverallStatus.HEALTHY
            elif any(component.healthy for component in components):
                overall = OverallStatus.PARTIALLY_UNHEALTHY
            else:
                overall = OverallStatus.UNHEALTHY

        return HealthCheckOutcome(
            target=target,
            url=url,
            http_status=status_code,
            interpretation=interpretation,
            overall_status=overall,
            success=overall is OverallStatus.HEALTHY,
            components=components,
            slots=assign_slots(components),
            attempts=attempts,
            error=error,
        )

    async def check_many(
        self,
        targets: Sequence[HealthCheckTarget],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[HealthCheckOutcome]:
        """Check ``targets`` with at most ``policy.concurrency`` in flight.

        Outcomes are returned in the order of ``targets``.
        """

        semaphore = asyncio.Semaphore(self._policy.concurrency)

        async def _run(target: HealthCheckTarget) -> HealthCheckOutcome:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return _cancelled_outcome(target.name, target.url, 0)
                try:
                    return await self.check(target.name, target.url, cancel_event=cancel_event)
                except Exception as exc:
                    log_event(
                        self._logger,
                        "healthcheck.target.failed",
                        level=logging.ERROR,
                        target=target.name,
                        url=target.url,
                        error=str(exc),
                    )
                    return _error_outcome(target.name, target.url, str(exc), attempts=0)

        return list(await asyncio.gather(*(_run(target) for target in targets)))


def _error_outcome(
    target: str,
    url: Optional[str],
    error: str,
    *,
    attempts: int,
    http_status: Optional[int] = None,
    interpretation: str = "Error",
) -> HealthCheckOutcome:
    return HealthCheckOutcome(
        target=target,
        url=url,
        http_status=http_status,
        interpretation=interpretation,
        overall_status=OverallStatus.ERROR,
        success=False,
        attempts=attempts,
        error=error,
    )


def _cancelled_outcome(target: str, url: Optional[str], attempts: int) -> HealthCheckOutcome:
    return replace(
        _error_outcome(
            target, url, "Health check cancelled", attempts=attempts, interpretation="Cancelled"
        ),
        cancelled=True,
    )


__all__ = [
    "HealthCheckPolicy",
    "HealthCheckTarget",
    "HealthCheckClient",
    "TEMPORARILY_UNAVAILABLE",
    "build_healthcheck_url",
    "url_for_instance",
]
