# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/infra/redis/delta_source.py
"""
Redis-backed delta source.

Per channel:
    <tenant>:<project>:timeline:deltas:<provider>:<channel_id>   pub/sub topic (live)
    <tenant>:<project>:timeline:history:<provider>:<channel_id>  sorted set, score = delta timestamp
    <tenant>:<project>:timeline:seq:<provider>:<channel_id>      arrival counter

History members are "<seq>|<envelope>" with a zero-padded arrival sequence,
so deltas sharing a timestamp come back in the order they were published.

publish() writes the envelope to history first, then announces it live, so a
subscriber that backfills after seeing a live delta never misses it.
"""
from __future__ import annotations

import contextlib
import logging
from datetime import datetime
from typing import AsyncIterator, List, Optional

from redis.asyncio import Redis as AsyncRedis

from channel_timeline.codec import DeltaDecodeError, decode_delta, encode_delta
from channel_timeline.config import get_settings
from channel_timeline.infra.redis.client import get_async_redis_client
from channel_timeline.namespaces import REDIS, ns_key
from channel_timeline.protocol import Channel, DeltaEvent

logger = logging.getLogger(__name__)

SEQ_WIDTH = 20
SEQ_SEPARATOR = "|"


def _envelope(member) -> str:
    """Strip the arrival sequence off a history member."""
    if isinstance(member, bytes):
        member = member.decode("utf-8", errors="replace")
    seq, sep, payload = member.partition(SEQ_SEPARATOR)
    if not sep or not seq.isdigit():
        raise DeltaDecodeError(f"history member without arrival sequence: {member[:40]!r}")
    return payload


class RedisDeltaSource:

    def __init__(
        self,
        redis: Optional[AsyncRedis] = None,
        *,
        redis_url: Optional[str] = None,
        tenant: Optional[str] = None,
        project: Optional[str] = None,
        fetch_limit: Optional[int] = None,
        max_events: Optional[int] = None,
    ):
        settings = get_settings()
        self.redis = redis or get_async_redis_client(redis_url or settings.REDIS_URL)
        self.tenant = tenant
        self.project = project
        self.fetch_limit = int(fetch_limit or settings.HISTORY_FETCH_LIMIT)
        self.max_events = int(max_events or settings.HISTORY_MAX_EVENTS)

    # ---------- keys ----------

    def topic(self, channel: Channel) -> str:
        return ns_key(f"{REDIS.TIMELINE.DELTAS_PREFIX}:{channel.key}", tenant=self.tenant, project=self.project)

    def history_key(self, channel: Channel) -> str:
        return ns_key(f"{REDIS.TIMELINE.HISTORY_PREFIX}:{channel.key}", tenant=self.tenant, project=self.project)

    def sequence_key(self, channel: Channel) -> str:
        return ns_key(f"{REDIS.TIMELINE.SEQ_PREFIX}:{channel.key}", tenant=self.tenant, project=self.project)

    # ---------- publisher ----------

    async def publish(self, channel: Channel, delta: DeltaEvent) -> None:
        payload = encode_delta(delta)
        key = self.history_key(channel)
        seq = await self.redis.incr(self.sequence_key(channel))
        member = f"{int(seq):0{SEQ_WIDTH}d}{SEQ_SEPARATOR}{payload}"
        await self.redis.zadd(key, {member: delta.timestamp.timestamp()})
        # keep only the newest max_events entries
        await self.redis.zremrangebyrank(key, 0, -(self.max_events + 1))
        await self.redis.publish(self.topic(channel), payload)
        logger.debug("Published %s delta to %s", type(delta).__name__, channel.key)

    # ---------- subscriber ----------

    async def subscribe(self, channel: Channel) -> AsyncIterator[DeltaEvent]:
        topic = self.topic(channel)
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(topic)
        logger.info("Subscribed to: %s", topic)
        try:
            async for msg in pubsub.listen():
                if msg.get("type") != "message":
                    # ignore 'subscribe' confirmations and the like
                    continue
                try:
                    delta = decode_delta(msg.get("data"))
                except DeltaDecodeError as e:
                    logger.error("[RedisDeltaSource] undecodable delta on %s: %s", topic, e)
                    continue
                yield delta
        finally:
            with contextlib.suppress(Exception):
                await pubsub.unsubscribe(topic)
            with contextlib.suppress(Exception):
                await pubsub.aclose()
            logger.info("Unsubscribed from: %s", topic)

    # ---------- history ----------

    async def fetch_older(self, channel: Channel, before: datetime) -> List[DeltaEvent]:
        raw = await self.redis.zrevrangebyscore(
            self.history_key(channel),
            f"({before.timestamp()}",
            "-inf",
            start=0,
            num=self.fetch_limit,
        )
        out: List[DeltaEvent] = []
        for member in reversed(raw or []):
            try:
                out.append(decode_delta(_envelope(member)))
            except DeltaDecodeError as e:
                logger.error("[RedisDeltaSource] skipping undecodable history entry: %s", e)
        return out
