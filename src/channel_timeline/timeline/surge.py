# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/timeline/surge.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from channel_timeline.protocol import MessageModel, ensure_utc

DEFAULT_PING_MIN_GAP = timedelta(minutes=1)
DEFAULT_PING_FRESHNESS = timedelta(seconds=1)


def should_ping(
    messages: Sequence[MessageModel],
    *,
    min_gap: timedelta = DEFAULT_PING_MIN_GAP,
    freshness: timedelta = DEFAULT_PING_FRESHNESS,
    now: Optional[datetime] = None,
) -> bool:
    """
    True when the newest message broke a silence worth surfacing.

    A lone message only counts while it is fresh, so backfilled history never
    pings. Otherwise the gap between the last two messages must exceed `min_gap`.
    """
    if not messages:
        return False
    if len(messages) == 1:
        now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
        return messages[-1].timestamp > now - freshness
    delta = messages[-1].timestamp - messages[-2].timestamp
    return delta > min_gap
