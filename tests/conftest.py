from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("esshealth")
    group.addoption(
        "--offline",
        action="store_true",
        dest="esshealth_offline",
        help="Run offline tests only (deselect tests marked 'online').",
    )
    group.addoption(
        "--online-only",
        action="store_true",
        dest="esshealth_online_only",
        help="Run only tests marked 'online' (deselect offline).",
    )


def _is_integration_path(s: str) -> bool:
    s = s.replace("\\", "/")
    return s.startswith("tests/integration/") or "/tests/integration/" in s


def _mark_by_path(items: list[pytest.Item]) -> None:
    for item in items:
        node_str = str(getattr(item, "fspath", item.nodeid))
        marker = (
            pytest.mark.online
            if _is_integration_path(node_str)
            else pytest.mark.offline
        )
        item.add_marker(marker)


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    _mark_by_path(items)

    offline_only = bool(config.getoption("esshealth_offline"))
    online_only = bool(config.getoption("esshealth_online_only"))

    if offline_only and online_only:
        raise pytest.UsageError("--offline and --online-only are mutually exclusive")

    deselect: list[pytest.Item] = []
    if online_only:
        deselect = [i for i in items if "online" not in i.keywords]
    elif offline_only:
        deselect = [i for i in items if "online" in i.keywords]

    if not deselect:
        return

    config.hook.pytest_deselected(items=deselect)
    items[:] = [i for i in items if i not in deselect]


ESS_CONFIG = """<?xml version="1.0" encoding="utf-8"?>
<configuration>
  <appSettings>
    <add key="DatabaseServer" value="sql01\\ESS" />
    <add key="DatabaseName" value="ESS_Live" />
    <add key="TenantId" value="tenant-42" />
    <add key="AuthenticationMode" value="Forms" />
    <add key="Host" value="ess.example.com" />
    <add key="Version" value="5.3.0.0" />
  </appSettings>
</configuration>
"""

WFE_CONFIG = """<?xml version="1.0" encoding="utf-8"?>
<configuration>
  <appSettings>
    <add key="DatabaseServer" value="sql01" />
    <add key="DatabaseName" value="WFE_Live" />
    <add key="ClientUrl" value="https://ess.example.com/" />
    <add key="TenantId" value="tenant-42" />
    <add key="FromAddress" value="workflow@example.com" />
  </appSettings>
</configuration>
"""


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("ESSHEALTH_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def combined_site(tmp_path: Path) -> dict[str, Any]:
    """Host facts for one site holding ESS at ``/`` and WFE at ``/wfe``."""

    ess_root = tmp_path / "inetpub" / "ess"
    wfe_root = tmp_path / "inetpub" / "wfe"
    ess_root.mkdir(parents=True)
    wfe_root.mkdir(parents=True)
    (ess_root / "SelfService.config").write_text(ESS_CONFIG, encoding="utf-8")
    (wfe_root / "WorkflowEngine.config").write_text(WFE_CONFIG, encoding="utf-8")

    return {
        "hostname": "app01",
        "hasWebServer": True,
        "webServerVersion": "10.0",
        "dotNetVersions": ["4.7.2", "4.8.1"],
        "diskFreeGB": 120.0,
        "memoryGB": 64,
        "coreCount": 8,
        "averageClockGHz": 2.6,
        "sqlServerInstalled": False,
        "isElevated": True,
        "sites": [
            {
                "name": "Default Web Site",
                "physicalPath": str(ess_root),
                "applicationPool": "ESSPool",
                "bindings": [{"protocol": "http", "port": 80, "hostHeader": "ess.example.com"}],
                "applications": [
                    {"path": "/wfe", "physicalPath": str(wfe_root), "applicationPool": "WFEPool"}
                ],
            }
        ],
    }


@pytest.fixture
def ess_config_text() -> str:
    return ESS_CONFIG


@pytest.fixture
def wfe_config_text() -> str:
    return WFE_CONFIG
