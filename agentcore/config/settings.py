"""
Global settings from environment variables.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentCoreSettings(BaseSettings):
    """
    Global configuration loaded from environment variables.

    Environment variables should be prefixed with AGENTCORE_
    Example: AGENTCORE_DEBUG=true, AGENTCORE_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    # Core settings
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Execution defaults
    default_max_steps: int = Field(default=10, ge=1)
    default_context_limit: int = Field(default=10, ge=0)

    # History retention hint for storage backends (0 = unlimited)
    history_max_entries: int = Field(default=0, ge=0)

    # Background work (event publishing, memory persistence)
    background_max_attempts: int = Field(default=5, ge=1)
    background_min_wait: float = Field(default=0.1, ge=0.0)
    background_max_wait: float = Field(default=2.0, ge=0.0)

    # Sub-agent stream forwarding
    stream_forward_types: list[str] = Field(
        default_factory=lambda: ["tool-call", "tool-result"]
    )


# Global settings instance (singleton)
settings = AgentCoreSettings()


__all__ = ["AgentCoreSettings", "settings"]
