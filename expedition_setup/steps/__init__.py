from .step_10_network import ConfigureNetworkStep
from .step_20_system_updates import SystemUpdatesStep
from .step_30_storage import StorageStep
from .step_40_update_application import UpdateApplicationStep
from .step_50_regenerate_keys import RegenerateKeysStep
from .step_60_update_settings import UpdateSettingsStep
from .step_90_finalize import FinalizeStep

__all__ = [
    "ConfigureNetworkStep",
    "SystemUpdatesStep",
    "StorageStep",
    "UpdateApplicationStep",
    "RegenerateKeysStep",
    "UpdateSettingsStep",
    "FinalizeStep",
]
