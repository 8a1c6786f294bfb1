# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/timeline/retention.py
from __future__ import annotations

import logging

from channel_timeline.timeline.state import TimelineState

logger = logging.getLogger(__name__)


def prune_timeline(state: TimelineState, max_messages: int = 1000) -> int:
    """
    Keep the newest `max_messages` messages and drop events older than the
    oldest survivor. Returns the number of messages removed.

    Separator indices are left as recorded.
    """
    surplus = len(state.messages) - max_messages
    if surplus <= 0:
        return 0

    del state.messages[:surplus]
    if state.messages:
        oldest = state.messages[0].timestamp
        # in place: an in-flight history merge holds a reference to this list
        state.events[:] = [e for e in state.events if not e.timestamp < oldest]
    logger.debug("Pruned %d messages; %d events retained", surplus, len(state.events))
    return surplus
