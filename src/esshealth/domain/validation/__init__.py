from .engine import CATEGORY_ENGINE, run_rules
from .rules import DEFAULT_RULES, Rule, ValidationConfig
from .versioning import evaluate_compatibility, parse_version, version_at_least

__all__ = [
    "CATEGORY_ENGINE",
    "DEFAULT_RULES",
    "Rule",
    "ValidationConfig",
    "evaluate_compatibility",
    "parse_version",
    "run_rules",
    "version_at_least",
]
