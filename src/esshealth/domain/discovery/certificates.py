from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from cryptography import x509


@dataclass(frozen=True)
class CertificateInfo:
    subject: Optional[str] = None
    expiry: Optional[datetime] = None
    error: Optional[str] = None


def read_certificate(path: str | Path) -> CertificateInfo:
    """Load a PEM or DER certificate and report its subject and expiry."""

    cert_path = Path(path)
    try:
        data = cert_path.read_bytes()
    except OSError as exc:
        return CertificateInfo(error=f"Unable to read certificate {cert_path}: {exc}")

    try:
        if b"-----BEGIN" in data:
            certificate = x509.load_pem_x509_certificate(data)
        else:
            certificate = x509.load_der_x509_certificate(data)
    except ValueError as exc:
        return CertificateInfo(error=f"Unable to parse certificate {cert_path}: {exc}")

    return CertificateInfo(
        subject=certificate.subject.rfc4514_string(),
        expiry=certificate.not_valid_after_utc,
    )


__all__ = ["CertificateInfo", "read_certificate"]
