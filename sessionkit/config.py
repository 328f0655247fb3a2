from __future__ import annotations

import os
from enum import Enum
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from sessionkit.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ACCESS_TOKEN_TTL_MINUTES = 60


class StoreBackend(str, Enum):
    """Durable backends able to hold refresh token records."""

    MEMORY = "memory"
    POSTGRES = "postgres"
    REDIS = "redis"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the session subsystem.

    Instances are passed explicitly to the services that need them; nothing
    in the package keeps a process-wide copy.
    """

    jwt_secret: str = env_field(
        None,
        "JWT_SECRET",
        validate_default=True,
        description="Shared HMAC secret for access tokens; supplied by the deployment",
    )
    access_token_ttl_minutes: int = env_field(
        DEFAULT_ACCESS_TOKEN_TTL_MINUTES,
        "ACCESS_TOKEN_TTL_MINUTES",
        description="Access token lifetime; 0 selects the one hour default",
    )
    store_backend: StoreBackend = env_field(StoreBackend.MEMORY, "STORE_BACKEND")
    database_url: str = env_field(
        "postgresql://localhost:5432/sessionkit", "DATABASE_URL"
    )
    redis_url: str = env_field("redis://localhost:6379/0", "REDIS_URL")
    shared_fs_root: str | None = env_field(
        None,
        "SHARED_FS_ROOT",
        description="Directory for memory-store snapshots; unset keeps state in process only",
    )

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

    @field_validator("jwt_secret", mode="before")
    @classmethod
    def _require_jwt_secret(cls, value: str | None) -> str:
        if value is None or not str(value).strip():
            logger.error("jwt_secret_missing")
            raise ValueError("JWT_SECRET must be set to a non-empty value")
        return str(value)

    @field_validator("access_token_ttl_minutes")
    @classmethod
    def _default_access_ttl(cls, value: int) -> int:
        if value < 0:
            raise ValueError("access token ttl cannot be negative")
        return value or DEFAULT_ACCESS_TOKEN_TTL_MINUTES

    @field_validator("store_backend")
    @classmethod
    def _validate_store_backend(cls, value: StoreBackend) -> StoreBackend:
        return StoreBackend(value)
