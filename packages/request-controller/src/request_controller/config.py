"""Controller configuration: TOML file, then environment, then CLI flags."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from .controller import DEFAULT_BACKOFF_BASE, DEFAULT_BACKOFF_MAX, DEFAULT_MAX_RETRIES
from .exceptions import ConfigError
from .executor import DEFAULT_DEADLINE, DEFAULT_TIMEOUT
from .store import DEFAULT_STORE_TIMEOUT

ENV_PREFIX = "REQUEST_CONTROLLER_"
CONFIG_ENV_VAR = ENV_PREFIX + "CONFIG"
DEFAULT_CONFIG_FILE = "request-controller.toml"


class ControllerSettings(BaseSettings):
    """Controller settings.

    Every field can be set with a ``REQUEST_CONTROLLER_`` environment
    variable (e.g. ``REQUEST_CONTROLLER_MAX_RETRIES=3``), which wins over the
    TOML file named by ``toml_file``.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
        toml_file=DEFAULT_CONFIG_FILE,
    )

    db_path: str = Field(default="request-controller.db", min_length=1)
    http_timeout_seconds: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    http_deadline_seconds: float = Field(default=DEFAULT_DEADLINE, gt=0)
    store_timeout_seconds: float = Field(default=DEFAULT_STORE_TIMEOUT, gt=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    backoff_base_seconds: float = Field(default=DEFAULT_BACKOFF_BASE, ge=0)
    backoff_max_seconds: float = Field(default=DEFAULT_BACKOFF_MAX, ge=0)
    # Malformed requests are rejected once instead of retried forever.
    terminal_on_malformed: bool = True
    log_level: str = Field(default="info", pattern="^(debug|info|warning|error)$")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, env_settings, TomlConfigSettingsSource(settings_cls))


def _settings_class(config_file: Path) -> type[ControllerSettings]:
    class FileSettings(ControllerSettings):
        model_config = SettingsConfigDict(toml_file=config_file)

    return FileSettings


def load_settings(
    config_file: str | Path | None = None,
    **overrides: Any,
) -> ControllerSettings:
    """Build settings from a TOML file, environment variables and overrides.

    Later sources win. Without an explicit ``config_file`` the file named by
    ``REQUEST_CONTROLLER_CONFIG`` is used, then ``request-controller.toml``
    in the working directory if it exists. ``None`` overrides are ignored.
    """
    if config_file is None:
        config_file = os.environ.get(CONFIG_ENV_VAR)
    settings_cls = ControllerSettings
    if config_file is not None:
        config_file = Path(config_file)
        if not config_file.is_file():
            raise ConfigError(str(config_file), "no such file")
        settings_cls = _settings_class(config_file)

    source = str(config_file or "environment")
    try:
        return settings_cls(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        raise ConfigError(source, str(e)) from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(source, f"invalid TOML: {e}") from e
