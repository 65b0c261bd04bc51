"""
tfsweeper settings, loaded with Pydantic Settings.

Values come from, highest priority first:
1. Environment variables prefixed with TFSWEEPER_ (e.g. TFSWEEPER_REGION)
2. A .env file in the current directory
3. The defaults below
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tfsweeper.common import DEFAULT_STATE_FILENAME


class SweeperSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
        env_prefix='TFSWEEPER_',
    )

    state_path: str = Field(
        default=DEFAULT_STATE_FILENAME,
        description='State file to sweep (env: TFSWEEPER_STATE_PATH)',
    )

    # Provider configuration
    profile: str = Field(
        default='tfsweeper',
        description='AWS shared credentials profile (env: TFSWEEPER_PROFILE)',
    )
    region: str = Field(
        default='us-west-2',
        description='AWS region (env: TFSWEEPER_REGION)',
    )

    # Provider plugin
    provider_source: str = Field(
        default='hashicorp/aws',
        description='Provider source address (env: TFSWEEPER_PROVIDER_SOURCE)',
    )
    provider_version: str = Field(
        default='2.33.0',
        description='Exact provider version (env: TFSWEEPER_PROVIDER_VERSION)',
    )
    plugin_dir: Optional[str] = Field(
        default=None,
        description='Local provider mirror directory (env: TFSWEEPER_PLUGIN_DIR)',
    )
    work_dir: Optional[str] = Field(
        default=None,
        description='Terraform working directory, a temporary one when unset (env: TFSWEEPER_WORK_DIR)',
    )

    log_level: str = Field(
        default='DEBUG',
        description='Logging level (DEBUG, INFO, WARNING, ERROR) (env: TFSWEEPER_LOG_LEVEL)',
    )


_settings: Optional[SweeperSettings] = None


def get_settings() -> SweeperSettings:
    """Return the settings, reading them on first use."""
    global _settings
    if _settings is None:
        _settings = SweeperSettings()
    return _settings


def reload_settings() -> SweeperSettings:
    """Read the settings again, e.g. after the environment changed."""
    global _settings
    _settings = SweeperSettings()
    return _settings
