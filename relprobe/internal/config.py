"""
Runtime settings, read from RELPROBE_* environment variables.
"""
from typing import Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from relprobe.internal.constants import (
    APP_NAME,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_FANOUT_DEPTH,
    DEFAULT_HASH,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_ZIP_SPOOL_MAX_BYTES,
    ENV_PREFIX,
)
from relprobe.internal.errors import ConfigurationError


class Settings(BaseSettings):
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    fanout_depth: int = Field(default=DEFAULT_FANOUT_DEPTH, ge=1)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    # Shorter variable name than the field: RELPROBE_HASH.
    hash_algorithm: Literal["blake3", "sha256"] = Field(default=DEFAULT_HASH, validation_alias=f"{ENV_PREFIX}HASH")
    zip_spool_max_bytes: int = Field(default=DEFAULT_ZIP_SPOOL_MAX_BYTES, ge=0)
    user_agent: str = APP_NAME

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
        populate_by_name=True,
        frozen=True,
    )


def load_settings(**overrides) -> Settings:
    """
    Build `Settings` from the environment, with keyword overrides applied last.
    Overrides set to None are ignored so CLI options can be passed through as-is.
    """
    values = {}
    for key, value in overrides.items():
        if value is None:
            continue
        # Aliased fields are passed under their alias, or the environment
        # variable would shadow the override.
        field = Settings.model_fields.get(key)
        alias = field.validation_alias if field is not None else None
        values[alias if isinstance(alias, str) else key] = value

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid relprobe settings: {e}") from e
