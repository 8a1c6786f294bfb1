# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/timeline/reconciler.py
from __future__ import annotations

import bisect
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from channel_timeline.protocol import (
    AppendDeltaEvent,
    ChatClearedEventModel,
    ClearDeltaEvent,
    DeltaEvent,
    LiveStateDeltaEvent,
    MessageModel,
    MessageUpdate,
    UpdateDeltaEvent,
    is_deleted_chat,
)
from channel_timeline.timeline.effects import Effect, Ping, Say, StopSpeech, Unsay
from channel_timeline.timeline.separators import mark_separators
from channel_timeline.timeline.state import TimelineLimits, TimelineState
from channel_timeline.timeline.surge import DEFAULT_PING_MIN_GAP, should_ping

logger = logging.getLogger(__name__)


# ---------- message-list primitives (shared with replay) ----------

def insert_chronological(messages: List[MessageModel], model: MessageModel) -> bool:
    """
    Place `model` by timestamp. Returns True when it landed at the end.

    Earlier-than-last messages go before the first entry strictly newer than
    them, so ties keep insertion order.
    """
    if messages and model.timestamp < messages[-1].timestamp:
        index = bisect.bisect_right(messages, model.timestamp, key=lambda m: m.timestamp)
        messages.insert(index, model)
        return False
    messages.append(model)
    return True


def replace_matching(
    messages: List[MessageModel],
    message_id: str,
    update: MessageUpdate,
) -> List[Tuple[MessageModel, MessageModel]]:
    """Apply `update` to every message with `message_id`; returns (old, new) pairs."""
    replaced = []
    for i, message in enumerate(messages):
        if message.message_id != message_id:
            continue
        updated = update.apply(message)
        messages[i] = updated
        replaced.append((message, updated))
    return replaced


def cleared_messages(message_id: str, timestamp: datetime) -> List[MessageModel]:
    return [ChatClearedEventModel(message_id=message_id, timestamp=timestamp)]


# ---------- incremental reconciler ----------

class TimelineReconciler:
    """
    Folds one delta at a time into a TimelineState.

    apply() never awaits, so within one event loop each delta is applied
    atomically. Speech and notification intents are returned as effects.
    """

    def __init__(
        self,
        state: Optional[TimelineState] = None,
        *,
        limits: Optional[TimelineLimits] = None,
        ping_min_gap: timedelta = DEFAULT_PING_MIN_GAP,
    ):
        self.state = state if state is not None else TimelineState()
        self.limits = limits or TimelineLimits()
        self.ping_min_gap = ping_min_gap

    def apply(self, delta: DeltaEvent) -> List[Effect]:
        """
        Fold `delta` into the state and return the effects it implies.

        The message list change and the event log entry are made together,
        before any effect is derived, so `events` always replays to `messages`.
        """
        state = self.state
        if isinstance(delta, AppendDeltaEvent):
            at_end = insert_chronological(state.messages, delta.model)
            state.events.append(delta)
            return self._after_append(delta.model, at_end)
        if isinstance(delta, UpdateDeltaEvent):
            replaced = replace_matching(state.messages, delta.message_id, delta.update)
            state.events.append(delta)
            return self._after_update(delta, replaced)
        if isinstance(delta, ClearDeltaEvent):
            state.messages = cleared_messages(delta.message_id, delta.timestamp)
            state.separators = set()
            state.events.append(delta)
            return [StopSpeech()]
        if isinstance(delta, LiveStateDeltaEvent):
            state.is_live = True
            state.events.append(delta)
            return []
        raise TypeError(f"Unhandled delta kind: {type(delta).__name__}")

    def should_ping(self, now: Optional[datetime] = None) -> bool:
        return should_ping(
            self.state.messages,
            min_gap=self.ping_min_gap,
            freshness=self.limits.ping_freshness,
            now=now,
        )

    # ---------- effects ----------

    def _after_append(self, model: MessageModel, at_end: bool) -> List[Effect]:
        if not at_end:
            logger.debug("Inserted out-of-order message %s at %s", model.message_id, model.timestamp)
            return []

        state = self.state
        mark_separators(state.messages, state.separators, self.limits)
        effects: List[Effect] = [Say(model)]
        if state.is_live and self.should_ping():
            effects.append(Ping())
        return effects

    def _after_update(
        self,
        delta: UpdateDeltaEvent,
        replaced: List[Tuple[MessageModel, MessageModel]],
    ) -> List[Effect]:
        if not replaced:
            logger.debug("Update for unknown message %s ignored", delta.message_id)
            return []
        effects: List[Effect] = []
        for old, new in replaced:
            if is_deleted_chat(new) and not is_deleted_chat(old):
                effects.append(Unsay(new.message_id))
        return effects
