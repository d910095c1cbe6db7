"""Configuration system exceptions."""


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class InvalidAgentConfigError(ConfigError):
    """Agent, tool or sub-agent configuration is invalid."""

    pass

