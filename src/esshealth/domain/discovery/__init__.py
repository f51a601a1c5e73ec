from .config_parser import ParsedConfig, inspect_encryption, parse_config, read_instance_config
from .service import (
    DiscoveryError,
    DiscoveryOutcome,
    InstanceDiscovery,
    build_deployment,
    discover_instances,
)

__all__ = [
    "DiscoveryError",
    "DiscoveryOutcome",
    "InstanceDiscovery",
    "ParsedConfig",
    "build_deployment",
    "discover_instances",
    "inspect_encryption",
    "parse_config",
    "read_instance_config",
]
