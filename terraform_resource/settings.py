"""
Terraform Resource Settings - Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Find project root (where .env file is located)
PROJECT_ROOT = Path(__file__).parent.parent


class ResourceSettings(BaseSettings):
    """
    Terraform resource configuration settings.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file in current directory
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="TFR_",  # All resource env vars must start with TFR_
    )

    terraform_binary: str = Field(
        default="terraform",
        description="Path or name of the terraform executable (env: TFR_TERRAFORM_BINARY)",
    )

    command_timeout: float | None = Field(
        default=None,
        description="Timeout in seconds for a single terraform command, unset means no limit (env: TFR_COMMAND_TIMEOUT)",
    )

    tmp_dir_prefix: str = Field(
        default="terraform-resource-",
        description="Prefix for per-invocation temporary directories (env: TFR_TMP_DIR_PREFIX)",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR) (env: TFR_LOG_LEVEL)",
    )


# Global settings instance
_settings: ResourceSettings | None = None


def get_settings() -> ResourceSettings:
    """
    Get the global settings instance.

    Creates the settings instance on first call, then returns cached instance.

    Returns:
        ResourceSettings instance
    """
    global _settings
    if _settings is None:
        _settings = ResourceSettings()
    return _settings


def reload_settings() -> ResourceSettings:
    """
    Reload settings from environment/files.

    Useful for testing or when .env file changes.

    Returns:
        Fresh ResourceSettings instance
    """
    global _settings
    _settings = ResourceSettings()
    return _settings
