# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/timeline/effects.py
"""
Outputs of TimelineReconciler.apply().

The reconciler never talks to speech or notification collaborators itself;
it returns these values and the session dispatches them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from channel_timeline.protocol import MessageModel


@dataclass(frozen=True)
class Say:
    message: MessageModel


@dataclass(frozen=True)
class Unsay:
    message_id: str


@dataclass(frozen=True)
class StopSpeech:
    pass


@dataclass(frozen=True)
class Ping:
    pass


Effect = Union[Say, Unsay, StopSpeech, Ping]
