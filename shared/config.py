"""
Shared configuration management for the ACL evaluator.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACL_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class AclSettings(BaseConfig):
    """Evaluator-specific configuration."""

    # Raise CyclicHierarchyError instead of looping forever on cyclic parents
    detect_cycles: bool = Field(default=True)

    # Raise on a second continuation call instead of only logging it
    strict_continuations: bool = Field(default=True)


@lru_cache()
def get_settings() -> AclSettings:
    """Get configuration for the evaluator."""
    return AclSettings()
