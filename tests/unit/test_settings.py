from __future__ import annotations

import logging
from pathlib import Path

import pytest

from esshealth.config.settings import (
    DEFAULT_COMPATIBILITY_TABLE,
    DEFAULT_HEALTHCHECK_MAX_RETRIES,
    DEFAULT_HEALTHCHECK_TIMEOUT,
    HealthCheckInputs,
    LoggingInputs,
    LoggingSettings,
    RuntimeInputs,
    RuntimeSettings,
    apply_cli_overrides,
    load_settings,
    logging_from_settings,
    resolve_application_settings,
    resolve_config_file_candidates,
    runtime_from_settings,
)
from esshealth.infrastructure.errors import ConfigurationError


def _write_base_config(path: Path, *extra: str) -> None:
    path.write_text(
        "\n".join(
            [
                "[requirements]",
                "min_disk_gb = 20",
                "min_memory_gb = 16",
                "min_cores = 2",
                "min_clock_ghz = 2.4",
                'min_dotnet_version = "4.7.2"',
                "",
                "[[compatibility.rules]]",
                'product = "6.0"',
                'minimum_companion = "5.0.0"',
                "",
                "[healthcheck]",
                "timeout = 30",
                "max_retries = 1",
                "retry_delay = 2",
                "concurrency = 4",
                "verify_tls = false",
                "",
                "[validation]",
                "certificate_warning_days = 14",
                "",
                "[logging]",
                'level = "WARNING"',
                'format = "json"',
                'file = ""',
                *extra,
            ]
        )
        + "\n",
        encoding="utf-8",
    )


def test_runtime_settings_from_config(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    _write_base_config(config_path)

    runtime = runtime_from_settings(load_settings(str(config_path)))

    assert isinstance(runtime, RuntimeSettings)
    assert runtime.requirements.min_disk_gb == 20.0
    assert runtime.requirements.min_memory_gb == 16.0
    assert runtime.requirements.min_cores == 2
    assert runtime.requirements.min_clock_ghz == 2.4
    assert runtime.requirements.min_dotnet_version == "4.7.2"
    assert runtime.compatibility == {"6.0": "5.0.0"}
    assert runtime.healthcheck.timeout == 30.0
    assert runtime.healthcheck.max_retries == 1
    assert runtime.healthcheck.retry_delay == 2.0
    assert runtime.healthcheck.concurrency == 4
    assert runtime.healthcheck.verify_tls is False
    assert runtime.validation.certificate_warning_days == 14
    assert runtime.debug is False
    assert runtime.warnings == ()


def test_missing_sections_fall_back_to_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[runtime]\ndebug = false\n", encoding="utf-8")

    runtime = runtime_from_settings(load_settings(str(config_path)))

    assert runtime.healthcheck.timeout == DEFAULT_HEALTHCHECK_TIMEOUT
    assert runtime.healthcheck.max_retries == DEFAULT_HEALTHCHECK_MAX_RETRIES
    assert runtime.compatibility == dict(DEFAULT_COMPATIBILITY_TABLE)
    assert runtime.discovery.ess_marker_file == "SelfService.config"


def test_local_file_overrides_base_file(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    _write_base_config(config_path)
    (tmp_path / "config.local.toml").write_text(
        "[healthcheck]\nmax_retries = 5\n", encoding="utf-8"
    )

    runtime = runtime_from_settings(load_settings(str(config_path)))

    assert runtime.healthcheck.max_retries == 5
    assert runtime.healthcheck.timeout == 30.0


def test_environment_overrides_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    _write_base_config(config_path)
    monkeypatch.setenv("ESSHEALTH_HEALTHCHECK_MAX_RETRIES", "7")
    monkeypatch.setenv("ESSHEALTH_MIN_CORES", "16")
    monkeypatch.setenv("ESSHEALTH_VERIFY_TLS", "yes")

    runtime = runtime_from_settings(load_settings(str(config_path)))

    assert runtime.healthcheck.max_retries == 7
    assert runtime.requirements.min_cores == 16
    assert runtime.healthcheck.verify_tls is True


def test_cli_overrides_take_precedence(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    _write_base_config(config_path)
    monkeypatch.setenv("ESSHEALTH_HEALTHCHECK_TIMEOUT", "45")

    settings = load_settings(str(config_path))
    apply_cli_overrides(
        settings,
        healthcheck_inputs=HealthCheckInputs(timeout=10.0, concurrency=1),
        runtime_inputs=RuntimeInputs(debug=True),
    )
    runtime = runtime_from_settings(settings)

    assert runtime.healthcheck.timeout == 10.0
    assert runtime.healthcheck.concurrency == 1
    assert runtime.debug is True


def test_unparseable_value_warns_and_uses_default(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    _write_base_config(config_path)
    (tmp_path / "config.local.toml").write_text(
        '[healthcheck]\ntimeout = "soon"\n', encoding="utf-8"
    )

    runtime = runtime_from_settings(load_settings(str(config_path)))

    assert runtime.healthcheck.timeout == DEFAULT_HEALTHCHECK_TIMEOUT
    assert any("healthcheck.timeout" in warning for warning in runtime.warnings)


def test_negative_retries_are_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    _write_base_config(config_path)

    settings = load_settings(str(config_path))
    apply_cli_overrides(settings, healthcheck_inputs=HealthCheckInputs(max_retries=-1))

    with pytest.raises(ConfigurationError) as excinfo:
        runtime_from_settings(settings)

    assert "healthcheck.max_retries" in str(excinfo.value)


def test_incomplete_compatibility_rule_is_skipped(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        "\n".join(
            [
                "[[compatibility.rules]]",
                'product = "5.4"',
                "",
                "[[compatibility.rules]]",
                'product = "5.5"',
                'minimum_companion = "4.70.0"',
            ]
        )
        + "\n",
        encoding="utf-8",
    )

    runtime = runtime_from_settings(load_settings(str(config_path)))

    assert runtime.compatibility == {"5.5": "4.70.0"}
    assert len(runtime.warnings) == 1


def test_logging_settings_from_config(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    _write_base_config(config_path)

    logging_settings = logging_from_settings(load_settings(str(config_path)))

    assert isinstance(logging_settings, LoggingSettings)
    assert logging_settings.level == logging.WARNING
    assert logging_settings.level_name == "WARNING"
    assert logging_settings.format == "json"
    assert logging_settings.file_path is None


def test_unknown_log_format_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    _write_base_config(config_path)

    settings = load_settings(str(config_path))
    apply_cli_overrides(settings, logging_inputs=LoggingInputs(format="xml"))

    with pytest.raises(ConfigurationError):
        logging_from_settings(settings)


def test_debug_forces_debug_log_level(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    _write_base_config(config_path)

    runtime, logging_settings = resolve_application_settings(
        config_path=str(config_path),
        runtime_inputs=RuntimeInputs(debug=True),
    )

    assert runtime.debug is True
    assert logging_settings.level == logging.DEBUG
    assert logging_settings.format == "json"


def test_config_file_candidates_follow_local_naming(tmp_path: Path) -> None:
    config_path = tmp_path / "site.toml"

    candidates = resolve_config_file_candidates(str(config_path))

    assert candidates == [config_path, tmp_path / "site.local.toml"]
