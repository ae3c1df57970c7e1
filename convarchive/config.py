from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from convarchive.models.archive import ExportOptions, ImportOptions

ENV_PREFIX = "CONVARCHIVE_"


class IdentityConfig(BaseModel):
    created_by: str | None = None
    """Recorded in every manifest; defaults to the current OS user."""
    app_version: str | None = None
    """Recorded in every manifest; defaults to the installed package version."""


class StorageConfig(BaseModel):
    db_path: Path = Path("./data/convarchive.db")
    temp_dir: Path | None = None
    """Where compressed bundles are extracted on import. System temp when unset."""


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        normalized = value.upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return normalized


class TelemetryConfig(BaseModel):
    enabled: bool = False
    endpoint: str | None = None
    env: str = "dev"
    service_name: str = "convarchive"


class ArchiveSettings(BaseSettings):
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    export: ExportOptions = Field(default_factory=ExportOptions)
    import_: ImportOptions = Field(default_factory=ImportOptions, alias="import")

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )


def _coerce_env_value(value: str) -> object:
    parsed = yaml.safe_load(value)
    return value if parsed is None else parsed


def _set_nested(mapping: dict[str, object], path: list[str], value: object) -> None:
    current = mapping
    for key in path[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
            current[key] = existing
        current = existing
    current[path[-1]] = value


def _apply_env_overrides(data: dict[str, object]) -> dict[str, object]:
    merged = dict(data)
    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        _set_nested(merged, path, _coerce_env_value(raw_value))
    return merged


def load_config(path: str | Path = "config/convarchive.yaml") -> ArchiveSettings:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError("config file must contain a top-level mapping")

    raw = loaded.get("convarchive", loaded)
    if not isinstance(raw, dict):
        raise ValueError("convarchive config section must be a mapping")

    return ArchiveSettings.model_validate(_apply_env_overrides(raw))


__all__ = [
    "ArchiveSettings",
    "IdentityConfig",
    "LoggingConfig",
    "StorageConfig",
    "TelemetryConfig",
    "load_config",
]
