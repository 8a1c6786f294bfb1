# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/contract.py
from __future__ import annotations

from datetime import datetime
from typing import AsyncIterator, List, Protocol, runtime_checkable

from channel_timeline.protocol import Channel, DeltaEvent, MessageModel


@runtime_checkable
class DeltaSource(Protocol):
    """
    Live and historical deltas for a channel.

    subscribe() yields in arrival order; closing the iterator stops delivery.
    fetch_older() returns deltas strictly older than `before`, oldest first,
    possibly none.
    """

    def subscribe(self, channel: Channel) -> AsyncIterator[DeltaEvent]: ...

    async def fetch_older(self, channel: Channel, before: datetime) -> List[DeltaEvent]: ...


@runtime_checkable
class SpeechSink(Protocol):
    enabled: bool

    def say(self, message: MessageModel) -> None: ...

    def unsay(self, message_id: str) -> None: ...

    def stop(self) -> None: ...
