"""
StackLayer configuration.

Settings come from the environment (STACKLAYER_*), a deployment YAML file
can override them.
"""

from stacklayer.config.loader import (
    ConfigLoader,
    DeploymentConfig,
    get_config_path,
    load_config,
)
from stacklayer.config.settings import Settings, get_settings

__all__ = [
    "ConfigLoader",
    "DeploymentConfig",
    "Settings",
    "get_config_path",
    "get_settings",
    "load_config",
]
