"""Read product versions from the binaries shipped in an instance's ``bin``."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Final, Optional

from esshealth.infrastructure.logging import get_logger

# VS_FIXEDFILEINFO.dwSignature, little endian.
_FIXED_FILE_INFO_SIGNATURE: Final = struct.pack("<I", 0xFEEF04BD)
_FIXED_FILE_INFO = struct.Struct("<IIIIII")

_logger = get_logger("esshealth.discovery.versions")

VersionReader = Callable[[Path], Optional[str]]


@dataclass(frozen=True)
class InstanceVersions:
    product_version: Optional[str] = None
    companion_version: Optional[str] = None


def parse_fixed_file_version(data: bytes) -> Optional[str]:
    """Return ``major.minor.build.revision`` from a PE version resource."""

    offset = data.find(_FIXED_FILE_INFO_SIGNATURE)
    while offset != -1:
        if offset + _FIXED_FILE_INFO.size > len(data):
            return None
        _, struct_version, ms, ls, _, _ = _FIXED_FILE_INFO.unpack_from(data, offset)
        # dwStrucVersion is 0x00010000 for every VS_FIXEDFILEINFO in the wild.
        if struct_version >> 16 <= 1:
            return f"{ms >> 16}.{ms & 0xFFFF}.{ls >> 16}.{ls & 0xFFFF}"
        offset = data.find(_FIXED_FILE_INFO_SIGNATURE, offset + 1)
    return None


def read_file_version(path: Path) -> Optional[str]:
    try:
        data = path.read_bytes()
    except OSError as exc:
        _logger.debug("discovery.version.unreadable", path=str(path), error=str(exc))
        return None
    version = parse_fixed_file_version(data)
    if version is None:
        _logger.debug("discovery.version.missing_resource", path=str(path))
    return version


def read_instance_versions(
    physical_path: str | Path,
    *,
    product_binary: str,
    companion_binary: str,
    reader: VersionReader = read_file_version,
) -> InstanceVersions:
    bin_dir = Path(physical_path) / "bin"
    return InstanceVersions(
        product_version=reader(bin_dir / product_binary),
        companion_version=reader(bin_dir / companion_binary),
    )


__all__ = [
    "InstanceVersions",
    "VersionReader",
    "parse_fixed_file_version",
    "read_file_version",
    "read_instance_versions",
]
