from __future__ import annotations

from pathlib import Path

import pytest

from esshealth.domain.discovery.config_parser import (
    inspect_encryption,
    is_single_sign_on,
    parse_config,
    read_instance_config,
)

SSO_CONFIG = """<configuration>
  <appSettings>
    <add key="AuthenticationMode" value="SingleSignOn" />
    <add key="Host" value="sso.example.com" />
  </appSettings>
</configuration>
"""

ENCRYPTED_WEB_CONFIG = """<?xml version="1.0"?>
<configuration>
  <appSettings configProtectionProvider="RsaProtectedConfigurationProvider">
    <EncryptedData Type="http://www.w3.org/2001/04/xmlenc#Element"
                   xmlns="http://www.w3.org/2001/04/xmlenc#">
      <CipherData><CipherValue>AQAAANCMnd8BFdERjHoAwE</CipherValue></CipherData>
    </EncryptedData>
  </appSettings>
  <system.net>
    <mailSettings>
      <smtp from="noreply@example.com" />
    </mailSettings>
  </system.net>
</configuration>
"""

PLAIN_WEB_CONFIG = """<configuration>
  <appSettings><add key="Theme" value="Blue" /></appSettings>
</configuration>
"""


def test_ess_fields_from_add_keys(ess_config_text: str) -> None:
    parsed = parse_config(ess_config_text, "ess")

    assert parsed.database_server == "sql01\\ESS"
    assert parsed.database_name == "ESS_Live"
    assert parsed.tenant_id == "tenant-42"
    assert parsed.authentication_mode == "Forms"
    assert parsed.host == "ess.example.com"
    assert parsed.version == "5.3.0.0"
    assert parsed.is_single_sign_on is False


def test_fields_fall_back_to_connection_string() -> None:
    content = (
        '<connectionStrings><add name="Main" connectionString="'
        'Data Source=sql02,1444;Initial Catalog=Payroll;Integrated Security=True" />'
        "</connectionStrings>"
    )

    parsed = parse_config(content, "wfe")

    assert parsed.database_server == "sql02,1444"
    assert parsed.database_name == "Payroll"


def test_sql_login_from_connection_string() -> None:
    content = (
        '<connectionStrings><add name="Main" connectionString="'
        'Server=sql02;Database=ESS_Live;User ID=ess_app;Password=s3cret" />'
        "</connectionStrings>"
    )

    parsed = parse_config(content, "ess")

    assert parsed.database_user == "ess_app"
    assert parsed.database_password == "s3cret"
    assert "s3cret" not in repr(parsed)


def test_element_and_attribute_forms() -> None:
    content = '<settings><DatabaseServer> sql03 </DatabaseServer><Mail FromAddress="hr@example.com"/></settings>'

    parsed = parse_config(content, "wfe")

    assert parsed.database_server == "sql03"
    assert parsed.from_address == "hr@example.com"


def test_missing_fields_are_none() -> None:
    parsed = parse_config("<configuration />", "ess")

    assert parsed.database_server is None
    assert parsed.host is None
    assert parsed.version is None


def test_xml_declaration_is_not_a_version() -> None:
    parsed = parse_config('<?xml version="1.0"?><configuration />', "ess")

    assert parsed.version is None


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(ValueError):
        parse_config("<configuration />", "payroll")  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("mode", "expected"),
    [
        ("SingleSignOn", True),
        ("single sign on", True),
        ("Forms", False),
        ("", False),
        (None, False),
    ],
)
def test_single_sign_on_detection(mode: str | None, expected: bool) -> None:
    assert is_single_sign_on(mode) is expected


def test_inspect_encryption_finds_protected_section() -> None:
    status = inspect_encryption(ENCRYPTED_WEB_CONFIG)

    assert status.encrypted is True
    assert status.sections == {"appSettings": True, "mailSettings": False}
    assert status.encrypted_sections == ("appSettings",)


def test_inspect_encryption_plain_document() -> None:
    status = inspect_encryption(PLAIN_WEB_CONFIG)

    assert status.encrypted is False
    assert status.encrypted_sections == ()


def test_inspect_encryption_tolerates_malformed_xml() -> None:
    broken = '<configuration><mailSettings configProtectionProvider="Rsa"><EncryptedData>'
    broken += "</mailSettings>"

    status = inspect_encryption(broken)

    assert status.sections["mailSettings"] is True


def test_read_instance_config_checks_web_config_for_sso(tmp_path: Path) -> None:
    (tmp_path / "SelfService.config").write_text(SSO_CONFIG, encoding="utf-8")
    (tmp_path / "Web.config").write_text(ENCRYPTED_WEB_CONFIG, encoding="utf-8")

    parsed = read_instance_config(
        tmp_path, "ess", marker_file="SelfService.config", web_config_file="Web.config"
    )

    assert parsed.is_single_sign_on is True
    assert parsed.encryption.encrypted is True


def test_read_instance_config_skips_web_config_without_sso(
    tmp_path: Path, ess_config_text: str
) -> None:
    (tmp_path / "SelfService.config").write_text(ess_config_text, encoding="utf-8")
    (tmp_path / "Web.config").write_text(ENCRYPTED_WEB_CONFIG, encoding="utf-8")

    parsed = read_instance_config(
        tmp_path, "ess", marker_file="SelfService.config", web_config_file="Web.config"
    )

    assert parsed.encryption.encrypted is False


def test_read_instance_config_missing_marker(tmp_path: Path) -> None:
    parsed = read_instance_config(
        tmp_path, "wfe", marker_file="WorkflowEngine.config", web_config_file="Web.config"
    )

    assert parsed.database_server is None
