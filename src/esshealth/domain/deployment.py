from __future__ import annotations

from esshealth.domain.models import DeploymentType


def classify_deployment(
    ess_count: int, wfe_count: int, host_has_web_server: bool
) -> DeploymentType:
    """Derive the deployment label from instance counts.

    A host without a web server is always ``NONE``, whatever the counts say.
    """

    if ess_count < 0 or wfe_count < 0:
        raise ValueError("instance counts cannot be negative")
    if not host_has_web_server:
        return DeploymentType.NONE
    if ess_count > 0 and wfe_count > 0:
        return DeploymentType.COMBINED
    if ess_count > 0:
        return DeploymentType.ESS_ONLY
    if wfe_count > 0:
        return DeploymentType.WFE_ONLY
    return DeploymentType.NONE


__all__ = ["classify_deployment"]
