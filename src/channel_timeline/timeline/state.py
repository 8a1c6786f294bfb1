# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/timeline/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Set

from channel_timeline.protocol import DeltaEvent, MessageModel


@dataclass(frozen=True)
class TimelineLimits:
    max_messages: int = 1000            # retention window
    separator_run_length: int = 50      # messages between forced separators
    separator_gap: timedelta = timedelta(minutes=5)
    ping_freshness: timedelta = timedelta(seconds=1)

    @classmethod
    def from_settings(cls, settings=None) -> "TimelineLimits":
        if settings is None:
            from channel_timeline.config import get_settings
            settings = get_settings()
        return cls(
            max_messages=int(settings.TIMELINE_MAX_MESSAGES),
            separator_run_length=int(settings.TIMELINE_SEPARATOR_RUN),
            separator_gap=timedelta(seconds=int(settings.TIMELINE_SEPARATOR_GAP_SEC)),
            ping_freshness=timedelta(seconds=int(settings.TIMELINE_PING_FRESHNESS_SEC)),
        )


@dataclass
class TimelineState:
    """
    Per-channel timeline.

    events:     every delta in arrival order; the replay source of truth
    messages:   chronological view, non-decreasing by timestamp
    separators: indices into `messages` recorded at append time; they are
                not shifted by pruning nor recomputed by history replay
    """
    events: List[DeltaEvent] = field(default_factory=list)
    messages: List[MessageModel] = field(default_factory=list)
    separators: Set[int] = field(default_factory=set)
    is_live: bool = False

    def reset(self) -> None:
        # fresh containers, so anything still holding the old log keeps a detached copy
        self.events = []
        self.messages = []
        self.separators = set()
        self.is_live = False
