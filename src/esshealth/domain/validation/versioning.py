"""Product and companion version compatibility."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Optional

from packaging.version import InvalidVersion, Version

from esshealth.domain.models import VersionVerdict


def parse_version(raw: Optional[str]) -> Optional[Version]:
    if raw is None:
        return None
    candidate = raw.strip().lstrip("vV")
    if not candidate:
        return None
    try:
        return Version(candidate)
    except InvalidVersion:
        return None


def version_at_least(raw: Optional[str], minimum: str) -> Optional[bool]:
    """``None`` when ``raw`` is missing or unparsable."""

    actual = parse_version(raw)
    required = parse_version(minimum)
    if actual is None or required is None:
        return None
    return actual >= required


def _matches_prefix(product: Version, prefix: str) -> bool:
    wanted = parse_version(prefix)
    if wanted is None:
        return False
    width = len(wanted.release)
    return product.release[:width] == wanted.release


def required_companion_for(
    product_version: str, table: Mapping[str, str]
) -> Optional[str]:
    """Look up the minimum companion version for ``product_version``.

    The longest matching prefix wins, so ``"5.2.1"`` overrides ``"5.2"``.
    """

    product = parse_version(product_version)
    if product is None:
        return None
    matches = [prefix for prefix in table if _matches_prefix(product, prefix)]
    if not matches:
        return None
    best = max(matches, key=lambda prefix: len(parse_version(prefix).release))  # type: ignore[union-attr]
    return table[best]


def evaluate_compatibility(
    product_version: Optional[str],
    companion_version: Optional[str],
    table: Mapping[str, str],
) -> VersionVerdict:
    """Decide whether the installed companion satisfies the product.

    Product versions the table does not mention are treated as compatible.
    """

    if parse_version(product_version) is None:
        return VersionVerdict(compatible=None, reason="Product version unavailable")

    required = required_companion_for(product_version or "", table)
    if required is None:
        return VersionVerdict(
            compatible=True,
            reason=f"No companion requirement recorded for version {product_version}",
        )

    if parse_version(companion_version) is None:
        return VersionVerdict(
            compatible=None,
            reason="Companion version unavailable",
            required_companion=required,
        )

    if version_at_least(companion_version, required):
        return VersionVerdict(
            compatible=True,
            reason=(
                f"Companion version {companion_version} satisfies minimum "
                f"{required} for version {product_version}"
            ),
            required_companion=required,
        )

    return VersionVerdict(
        compatible=False,
        reason=(
            f"Version {product_version} requires companion version {required} "
            f"or later; found {companion_version}"
        ),
        required_companion=required,
    )


__all__ = [
    "parse_version",
    "version_at_least",
    "required_companion_for",
    "evaluate_compatibility",
]
