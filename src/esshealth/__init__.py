"""ESS/WFE health and upgrade-readiness validation."""

__version__ = "1.0.0"

__all__ = ["__version__"]
