"""PetroWise Hub configuration system."""

from petrowise_hub.config.loader import find_config_file, load_config, load_config_or_default
from petrowise_hub.config.models import (
    AlertConfig,
    CandidateService,
    DiscoverySettings,
    HubConfig,
    MetricsSettings,
    PollingSettings,
    RealtimeSettings,
    ServiceType,
    StorageSettings,
)

__all__ = [
    "AlertConfig",
    "CandidateService",
    "DiscoverySettings",
    "HubConfig",
    "MetricsSettings",
    "PollingSettings",
    "RealtimeSettings",
    "ServiceType",
    "StorageSettings",
    "find_config_file",
    "load_config",
    "load_config_or_default",
]
