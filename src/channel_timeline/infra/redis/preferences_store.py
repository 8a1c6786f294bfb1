# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/infra/redis/preferences_store.py
from __future__ import annotations

import json
import logging
from typing import Optional

from redis.asyncio import Redis as AsyncRedis

from channel_timeline.config import get_settings
from channel_timeline.infra.redis.client import get_async_redis_client
from channel_timeline.namespaces import REDIS, ns_key
from channel_timeline.preferences import TimelinePreferences

logger = logging.getLogger(__name__)


class RedisPreferencesStore:
    """Flat JSON record per user; a missing or unreadable record yields defaults."""

    def __init__(
        self,
        redis: Optional[AsyncRedis] = None,
        *,
        redis_url: Optional[str] = None,
        tenant: Optional[str] = None,
        project: Optional[str] = None,
    ):
        self.redis = redis or get_async_redis_client(redis_url or get_settings().REDIS_URL)
        self.tenant = tenant
        self.project = project

    def key(self, user_id: str) -> str:
        return ns_key(f"{REDIS.PREFS.PREFIX}:{user_id}", tenant=self.tenant, project=self.project)

    async def load(self, user_id: str) -> TimelinePreferences:
        raw = await self.redis.get(self.key(user_id))
        if not raw:
            return TimelinePreferences()
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed preferences for user %s", user_id)
            return TimelinePreferences()
        if not isinstance(data, dict):
            return TimelinePreferences()
        return TimelinePreferences.from_json(data)

    async def save(self, user_id: str, prefs: TimelinePreferences) -> None:
        await self.redis.set(self.key(user_id), json.dumps(prefs.to_json()))
