# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/timeline/separators.py
from __future__ import annotations

from typing import List, Set

from channel_timeline.protocol import ChatMessageModel, MessageModel
from channel_timeline.timeline.state import TimelineLimits


def mark_separators(
    messages: List[MessageModel],
    separators: Set[int],
    limits: TimelineLimits,
) -> Set[int]:
    """
    Record timeline breaks for the message just appended at the end of `messages`.

    Rules (independent, deduplicated by the set):
      - the very first message always opens a separator at 0
      - a chat message at least `separator_run_length` past the last separator
      - a gap to the previous message longer than `separator_gap`

    Mutates and returns `separators`.
    """
    n = len(messages)
    if n == 0:
        return separators
    if n == 1:
        separators.add(0)
        return separators

    appended = messages[-1]
    last_separator = max(separators, default=0)
    if n - last_separator >= limits.separator_run_length and isinstance(appended, ChatMessageModel):
        separators.add(n - 1)

    previous = messages[-2]
    if appended.timestamp - previous.timestamp > limits.separator_gap:
        separators.add(n - 1)
    return separators
