"""Environment-backed settings for coordlock."""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Application configuration sourced from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    env_mode: str = "DEV"

    coord_backend: str = Field(default="zookeeper", pattern="^(zookeeper|memory)$")
    zk_hosts: str = "127.0.0.1:2181"
    zk_session_timeout_sec: float = Field(default=10.0, gt=0)
    zk_connect_timeout_sec: float = Field(default=15.0, gt=0)
    zk_auth_scheme: str | None = None
    zk_auth_credential: str | None = None

    lock_root: str = "/coordlock/locks/default"
    lock_node_prefix: str = "lock-"

    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Return a cached instance of application settings."""

    return AppSettings()
