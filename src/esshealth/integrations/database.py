"""Connectivity probe for the SQL Server databases instances are bound to."""

from __future__ import annotations

import math
import socket
import time
from dataclasses import dataclass
from typing import Callable, Final, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from esshealth.domain.models import DatabaseLogin

DEFAULT_SQL_PORT: Final = 1433
SQL_BROWSER_PORT: Final = 1434
SQL_DRIVER: Final = "mssql+pymssql"
_LOCAL_ALIASES: Final = {".", "(local)", "(localdb)", "localhost"}


@dataclass(frozen=True)
class ServerAddress:
    host: str
    port: Optional[int] = None
    instance: Optional[str] = None


@dataclass(frozen=True)
class ProbeResult:
    success: bool
    message: str
    elapsed_ms: Optional[float] = None


DatabaseProbe = Callable[..., ProbeResult]
EngineFactory = Callable[..., Engine]


def parse_server_address(server: str) -> ServerAddress:
    """Split SQL Server notations: ``host``, ``host,port``, ``host\\INSTANCE``."""

    candidate = server.strip()
    if candidate.lower().startswith("tcp:"):
        candidate = candidate[4:]

    port: Optional[int] = None
    if "," in candidate:
        candidate, _, raw_port = candidate.partition(",")
        try:
            port = int(raw_port.strip())
        except ValueError:
            raise ValueError(f"Invalid port in server name {server!r}") from None

    instance: Optional[str] = None
    if "\\" in candidate:
        candidate, _, instance = candidate.partition("\\")
        instance = instance.strip() or None

    host = candidate.strip()
    if host.lower() in _LOCAL_ALIASES or not host:
        host = "localhost"
    return ServerAddress(host=host, port=port, instance=instance)


def _resolve_instance_port(host: str, instance: str, timeout: float) -> Optional[int]:
    """Ask the SQL Server Browser service which TCP port a named instance uses."""

    request = b"\x04" + instance.encode("ascii", errors="ignore")
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.settimeout(timeout)
            sock.sendto(request, (host, SQL_BROWSER_PORT))
            payload, _ = sock.recvfrom(4096)
    except OSError:
        return None

    # Response: 0x05, 2-byte length, then "Key;Value;" pairs ending in ";;".
    fields = payload[3:].decode("ascii", errors="ignore").split(";")
    for key, value in zip(fields[::2], fields[1::2]):
        if key.lower() == "tcp":
            try:
                return int(value)
            except ValueError:
                return None
    return None


def build_connection_url(
    address: ServerAddress,
    port: int,
    database: str,
    login: Optional[DatabaseLogin] = None,
) -> URL:
    """SQLAlchemy URL for ``database``; no user means Windows authentication."""

    user = login.user if login is not None and login.user else None
    return URL.create(
        SQL_DRIVER,
        username=user,
        password=login.password if user is not None and login is not None else None,
        host=address.host,
        port=port,
        database=database,
    )


def _driver_error(exc: SQLAlchemyError) -> str:
    origin = getattr(exc, "orig", None)
    detail = str(origin if origin is not None else exc).strip()
    return detail.splitlines()[0] if detail else type(exc).__name__


def _open_database(url: URL, *, timeout: float, engine_factory: EngineFactory) -> Optional[str]:
    """Log in, run a trivial query and close; returns the driver error, if any."""

    seconds = max(1, math.ceil(timeout))
    engine = engine_factory(
        url,
        poolclass=NullPool,
        connect_args={"login_timeout": seconds, "timeout": seconds},
    )
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return _driver_error(exc)
    finally:
        engine.dispose()
    return None


def probe_sql_server(
    server: str,
    database: Optional[str] = None,
    *,
    timeout: float,
    login: Optional[DatabaseLogin] = None,
    engine_factory: EngineFactory = create_engine,
) -> ProbeResult:
    """Check that ``server`` answers on TCP, then open ``database`` on it.

    The connection is closed before returning; nothing is pooled.
    """

    try:
        address = parse_server_address(server)
    except ValueError as exc:
        return ProbeResult(success=False, message=str(exc))

    port = address.port
    if port is None and address.instance:
        port = _resolve_instance_port(address.host, address.instance, timeout)
    if port is None:
        port = DEFAULT_SQL_PORT

    target = f"{address.host}:{port}"
    started = time.perf_counter()
    try:
        with socket.create_connection((address.host, port), timeout=timeout):
            pass
    except socket.timeout:
        return ProbeResult(
            success=False,
            message=f"Connection to {target} timed out after {timeout:g}s",
        )
    except OSError as exc:
        reason = exc.strerror or str(exc)
        return ProbeResult(success=False, message=f"Cannot reach {target}: {reason}")

    if not database:
        return ProbeResult(
            success=True,
            message=f"Server {target} is reachable; no database name to open",
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )

    url = build_connection_url(address, port, database, login)
    error = _open_database(url, timeout=timeout, engine_factory=engine_factory)
    elapsed_ms = (time.perf_counter() - started) * 1000
    if error is not None:
        return ProbeResult(
            success=False,
            message=f"Server {target} is reachable but database {database} could not be opened: {error}",
            elapsed_ms=elapsed_ms,
        )
    return ProbeResult(
        success=True,
        message=f"Connected to database {database} on {target} in {elapsed_ms:.0f} ms",
        elapsed_ms=elapsed_ms,
    )


__all__ = [
    "DEFAULT_SQL_PORT",
    "SQL_DRIVER",
    "ServerAddress",
    "ProbeResult",
    "DatabaseProbe",
    "EngineFactory",
    "build_connection_url",
    "parse_server_address",
    "probe_sql_server",
]
