"""Process-wide settings for pgshape.

Settings are read from ``PGSHAPE_``-prefixed environment variables and an
optional ``.env`` file, validated by pydantic, and cached. They are meant to
be decided once at start-up: ``configure()`` replaces the cached instance and
is not synchronized with in-flight operations, so call it before the first
query runs.

The values are defaults only. Every operation that serializes enums or
computes an ephemeral-table schema accepts an explicit
``enum_serialization_mode=`` argument, which wins over the setting.

Examples:
    >>> from pgshape.core.settings import configure, get_settings
    >>> configure(enum_serialization_mode="integers")
    >>> get_settings().enum_serialization_mode
    <EnumSerializationMode.INTEGERS: 'integers'>

Tags:
    settings, configuration, pydantic, environment

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pgshape.core.errors import InvalidConfigError
from pgshape.types import EnumSerializationMode

# PostgreSQL's identifier limit is 63 bytes; the generated suffix takes 33.
MAX_TABLE_PREFIX_LENGTH = 30


class PgShapeSettings(BaseSettings):
    """Library-wide defaults.

    Fields
    ──────
    enum_serialization_mode : Enum encoding for parameters and ephemeral tables
    temporary_table_prefix  : Name used for ephemeral tables without a name
    max_varchar_length      : Longest VARCHAR(n) before falling back to TEXT
    log_level               : Structlog log level for configure_logging()
    log_json                : Force JSON (True) or console (False) rendering
    """

    model_config = SettingsConfigDict(
        env_prefix="PGSHAPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enum_serialization_mode: EnumSerializationMode = EnumSerializationMode.STRINGS
    temporary_table_prefix: str = Field(default="values", min_length=1)
    max_varchar_length: int = Field(default=10485760, ge=1, le=10485760)

    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("temporary_table_prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if len(value) > MAX_TABLE_PREFIX_LENGTH:
            raise ValueError(
                f"must be at most {MAX_TABLE_PREFIX_LENGTH} characters long"
            )
        return value


_override: PgShapeSettings | None = None


@lru_cache(maxsize=1)
def _load_settings() -> PgShapeSettings:
    return PgShapeSettings()


def get_settings() -> PgShapeSettings:
    """Return the active settings (configured override, else env-loaded)."""
    if _override is not None:
        return _override
    return _load_settings()


def configure(**overrides: Any) -> PgShapeSettings:
    """Replace the process-wide settings. Call once at start-up.

    Raises:
        InvalidConfigError: If an override fails validation.
    """
    global _override
    merged = _load_settings().model_dump() | overrides
    try:
        settings = PgShapeSettings.model_validate(merged)
    except ValidationError as exc:
        first = exc.errors()[0]
        key = ".".join(str(part) for part in first["loc"]) or "settings"
        message = f"Invalid configuration for {key}: {first['msg']}"
        raise InvalidConfigError(key, first.get("input"), message) from exc
    _override = settings
    return settings


def reset_settings() -> None:
    """Drop overrides and the env cache (used by tests)."""
    global _override
    _override = None
    _load_settings.cache_clear()


def resolve_enum_serialization_mode(
    mode: EnumSerializationMode | str | None,
) -> EnumSerializationMode:
    """Explicit argument first, then the process-wide setting."""
    if mode is None:
        return get_settings().enum_serialization_mode
    try:
        return EnumSerializationMode(mode)
    except ValueError as exc:
        raise InvalidConfigError("enum_serialization_mode", mode) from exc


__all__ = [
    "PgShapeSettings",
    "get_settings",
    "configure",
    "reset_settings",
    "resolve_enum_serialization_mode",
]
