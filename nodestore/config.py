from __future__ import annotations

import os
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, model_validator

from nodestore.logging import get_logger

logger = get_logger(__name__)


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the node persistence engine."""

    database_url: str = env_field(
        "postgresql://localhost:5432/nodestore", "DATABASE_URL"
    )
    use_memory_store: bool = env_field(
        False,
        "USE_MEMORY_STORE",
        description="Keep nodes in the in-process store instead of Postgres",
    )
    memory_state_path: str | None = env_field(
        None,
        "MEMORY_STATE_PATH",
        description="Snapshot file for the in-memory store; unset keeps it transient",
    )
    db_pool_min_size: int = env_field(1, "DB_POOL_MIN_SIZE", ge=0)
    db_pool_max_size: int = env_field(10, "DB_POOL_MAX_SIZE", ge=1)
    test_mode: bool = env_field(False, "TEST_MODE")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "Settings":
        if self.db_pool_max_size < self.db_pool_min_size:
            raise ValueError("DB_POOL_MAX_SIZE must be >= DB_POOL_MIN_SIZE")
        return self


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
        logger.debug(
            "settings_loaded",
            use_memory_store=_settings_cache.use_memory_store,
            test_mode=_settings_cache.test_mode,
        )
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
