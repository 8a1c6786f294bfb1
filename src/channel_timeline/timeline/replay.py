# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/timeline/replay.py
from __future__ import annotations

from typing import Iterable, List

from channel_timeline.protocol import (
    AppendDeltaEvent,
    ClearDeltaEvent,
    DeltaEvent,
    LiveStateDeltaEvent,
    MessageModel,
    UpdateDeltaEvent,
)
from channel_timeline.timeline.reconciler import cleared_messages, insert_chronological, replace_matching


def fold_events(events: Iterable[DeltaEvent]) -> List[MessageModel]:
    """
    Re-derive the message list from scratch.

    Uses the same placement, update and clear rules as the incremental
    reconciler, so folding a log here equals applying it delta by delta.
    Separators are not produced.
    """
    messages: List[MessageModel] = []
    for event in events:
        if isinstance(event, AppendDeltaEvent):
            insert_chronological(messages, event.model)
        elif isinstance(event, UpdateDeltaEvent):
            replace_matching(messages, event.message_id, event.update)
        elif isinstance(event, ClearDeltaEvent):
            messages = cleared_messages(event.message_id, event.timestamp)
        elif isinstance(event, LiveStateDeltaEvent):
            continue
        else:
            raise TypeError(f"Unhandled delta kind: {type(event).__name__}")
    return messages
