"""Server configuration: defaults, optional config file, CLI overrides."""

import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .constants import DEFAULT_HOST, DEFAULT_PORT
from .errors import ConfigError
from .storage.factory import StoreConfig, parse_store_config


class AppConfig(BaseModel):
    """Server configuration (optionally loaded from a YAML or JSON file)."""

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    store: Optional[StoreConfig] = None  # None = DEFAULT_STORE
    no_color: bool = Field(default_factory=lambda: not sys.stdout.isatty())
    log_json: bool = False
    read_only: bool = False   # Disable PUT
    write_only: bool = False  # Disable GET

    @field_validator("store", mode="before")
    @classmethod
    def parse_store(cls, v: Any) -> Any:
        """Accept the ``kind:path,opts`` string form as well as a mapping."""
        if isinstance(v, str):
            return parse_store_config(v)
        return v

    @model_validator(mode="after")
    def validate_access_mode(self):
        """Read-only and write-only together would disable everything."""
        if self.read_only and self.write_only:
            raise ConfigError("read-only and write-only cannot be set together")
        return self


def load_app_config(conf_path: Optional[Path] = None, **overrides: Any) -> AppConfig:
    """
    Build the server configuration.

    Precedence: explicit overrides > config file > defaults. Overrides that
    are ``None`` count as "not given" and leave the file value in place.

    Args:
        conf_path: Optional YAML/JSON config file
        **overrides: Field values from the command line

    Returns:
        Validated AppConfig

    Raises:
        ConfigError: If the file cannot be read or parsed, or the merged
            configuration is invalid
    """
    data: Dict[str, Any] = {}
    if conf_path is not None:
        try:
            text = Path(conf_path).read_text()
        except OSError as e:
            raise ConfigError(f"Failed to read config at {conf_path}: {e}") from e

        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config at {conf_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config at {conf_path} must be a mapping")

    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
