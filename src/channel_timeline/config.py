# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/config.py
from __future__ import annotations
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int | None = None

    TENANT: str = Field(default="home", alias="TENANT_ID")
    PROJECT: str = Field(default="default-project", alias="DEFAULT_PROJECT_NAME")

    # Timeline
    TIMELINE_MAX_MESSAGES: int = 1000
    TIMELINE_SEPARATOR_RUN: int = 50
    TIMELINE_SEPARATOR_GAP_SEC: int = 300
    TIMELINE_PING_FRESHNESS_SEC: int = 1

    # History
    HISTORY_FETCH_LIMIT: int = 500
    HISTORY_MAX_EVENTS: int = 5000


@lru_cache()
def get_settings() -> Settings:
    return Settings()
