from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from esshealth.domain.discovery.certificates import read_certificate


def _self_signed(not_after: datetime) -> x509.Certificate:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "ess.example.com")])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=365))
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )


def test_reads_pem_certificate(tmp_path: Path) -> None:
    expiry = datetime(2031, 1, 1, tzinfo=timezone.utc)
    path = tmp_path / "ess.pem"
    path.write_bytes(_self_signed(expiry).public_bytes(serialization.Encoding.PEM))

    info = read_certificate(path)

    assert info.error is None
    assert info.subject == "CN=ess.example.com"
    assert info.expiry == expiry


def test_reads_der_certificate(tmp_path: Path) -> None:
    expiry = datetime(2030, 6, 30, tzinfo=timezone.utc)
    path = tmp_path / "ess.cer"
    path.write_bytes(_self_signed(expiry).public_bytes(serialization.Encoding.DER))

    info = read_certificate(path)

    assert info.expiry == expiry


def test_missing_certificate_reports_error(tmp_path: Path) -> None:
    info = read_certificate(tmp_path / "absent.pem")

    assert info.expiry is None
    assert info.error is not None and "Unable to read" in info.error


def test_garbage_certificate_reports_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.cer"
    path.write_bytes(b"not a certificate")

    info = read_certificate(path)

    assert info.error is not None and "Unable to parse" in info.error
