"""
Configuration module.
"""

from .exceptions import ConfigError, InvalidAgentConfigError
from .settings import AgentCoreSettings, settings

__all__ = [
    "AgentCoreSettings",
    "settings",
    "ConfigError",
    "InvalidAgentConfigError",
]
