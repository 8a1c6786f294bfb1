# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/__init__.py
"""
Chat channel timelines reconstructed from out-of-order delta streams.
"""

from channel_timeline.protocol import (
    AnyMessage,
    AppendDeltaEvent,
    Channel,
    ChatClearedEventModel,
    ChatMessageModel,
    ClearDeltaEvent,
    DeltaEvent,
    LiveStateDeltaEvent,
    MessageModel,
    MessageUpdate,
    SystemEventModel,
    UpdateDeltaEvent,
)
from channel_timeline.preferences import TimelinePreferences, TranslateMessages
from channel_timeline.session import ChannelSession
from channel_timeline.timeline.reconciler import TimelineReconciler
from channel_timeline.timeline.state import TimelineLimits, TimelineState

__all__ = [
    "AnyMessage",
    "AppendDeltaEvent",
    "Channel",
    "ChannelSession",
    "ChatClearedEventModel",
    "ChatMessageModel",
    "ClearDeltaEvent",
    "DeltaEvent",
    "LiveStateDeltaEvent",
    "MessageModel",
    "MessageUpdate",
    "SystemEventModel",
    "TimelineLimits",
    "TimelinePreferences",
    "TimelineReconciler",
    "TimelineState",
    "TranslateMessages",
    "UpdateDeltaEvent",
]
