"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments  (CLI flags)
  2. Environment variables  (DOCWEAVER__SERVER__URL=https://...)
  3. docweaver.yaml         (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional; everything except the server URL has a
sensible default, and the server URL may come from the command line.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_CONFIG_DIR = platformdirs.user_config_dir("docweaver")


def _find_config_file() -> str | None:
    """Return the path of the first docweaver.yaml found, or None."""
    candidates = [
        Path("docweaver.yaml"),
        Path(_DEFAULT_CONFIG_DIR) / "docweaver.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    url: str | None = None
    token: str | None = None
    # None disables the client-side timeout
    timeout_seconds: float | None = None


class GenerationSettings(BaseModel):
    environment: str | None = None
    model: str | None = None
    # Retry policy for transient (5xx) remote failures
    max_attempts: int = Field(default=5, ge=1)
    fixed_wait_seconds: float = 30.0
    fixed_wait_attempts: int = 3
    backoff_base: float = 3.0
    summary_batch_size: int = Field(default=50, ge=1)


class PathSettings(BaseModel):
    context_dir: str = "context"
    content_dir: str = "content"


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: DOCWEAVER__GENERATION__MODEL=gpt-4o
        env_prefix="DOCWEAVER__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    generation: GenerationSettings = GenerationSettings()
    paths: PathSettings = PathSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
