# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/session.py
"""
Channel session: owns the timeline of the currently selected channel.

    ChannelSession
        ├── DeltaSource.subscribe(channel)  → TimelineReconciler.apply
        │                                      ↓ effects
        │                                   SpeechSink / on_message_ping
        ├── pull_more_messages()            → DeltaSource.fetch_older + fold_events
        └── prune_messages()                → prune_timeline

Everything runs on one event loop. Only pull_more_messages() awaits between
reading and writing the timeline; a generation counter drops its result if the
channel changed meanwhile.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from channel_timeline.contract import DeltaSource, SpeechSink
from channel_timeline.preferences import TimelinePreferences, TranslateMessages
from channel_timeline.protocol import Channel, DeltaEvent, MessageModel
from channel_timeline.timeline.effects import Effect, Ping, Say, StopSpeech, Unsay
from channel_timeline.timeline.reconciler import TimelineReconciler
from channel_timeline.timeline.replay import fold_events
from channel_timeline.timeline.retention import prune_timeline
from channel_timeline.timeline.state import TimelineLimits, TimelineState

logger = logging.getLogger(__name__)


class ChannelSession:

    def __init__(
        self,
        source: DeltaSource,
        *,
        preferences: Optional[TimelinePreferences] = None,
        limits: Optional[TimelineLimits] = None,
        tts: Optional[SpeechSink] = None,
        on_message_ping: Optional[Callable[[], Any]] = None,
    ):
        self.source = source
        self.on_message_ping = on_message_ping

        self._prefs = preferences or TimelinePreferences()
        self._limits = limits or TimelineLimits.from_settings()
        self._state = TimelineState()
        self._reconciler = TimelineReconciler(
            self._state,
            limits=self._limits,
            ping_min_gap=self._prefs.ping_min_gap_duration,
        )

        self._channel: Optional[Channel] = None
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._pull_lock = asyncio.Lock()
        self._listeners: List[Callable[[], Any]] = []
        self._tts: Optional[SpeechSink] = None
        if tts is not None:
            self.tts = tts

    @classmethod
    def from_json(cls, source: DeltaSource, data: Mapping[str, Any] | None, **kwargs) -> "ChannelSession":
        return cls(source, preferences=TimelinePreferences.from_json(data), **kwargs)

    def to_json(self) -> Dict[str, Any]:
        return self._prefs.to_json()

    # ---------- change notification ----------

    def add_listener(self, cb: Callable[[], Any]) -> None:
        if cb and cb not in self._listeners:
            self._listeners.append(cb)

    def remove_listener(self, cb: Callable[[], Any]) -> None:
        self._listeners = [c for c in self._listeners if c is not cb]

    def _notify_listeners(self) -> None:
        for cb in list(self._listeners):
            try:
                cb()
            except Exception:
                logger.exception("[ChannelSession] listener error")

    # ---------- channel lifecycle ----------

    @property
    def channel(self) -> Optional[Channel]:
        return self._channel

    async def set_channel(self, channel: Optional[Channel]) -> None:
        if channel == self._channel:
            return

        self._generation += 1
        previous, self._task = self._task, None
        if previous is not None:
            previous.cancel()

        self._channel = channel
        self._state.reset()
        if self._tts is not None:
            self._tts.enabled = False
        self._notify_listeners()

        if channel is not None:
            self._task = asyncio.create_task(
                self._consume(channel, self._generation),
                name=f"timeline-subscription:{channel.key}",
            )
        logger.info("Timeline channel set to %s", channel.key if channel else None)

        if previous is not None:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await previous

    async def close(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task

    async def _consume(self, channel: Channel, generation: int) -> None:
        stream = self.source.subscribe(channel)
        try:
            async for delta in stream:
                if generation != self._generation:
                    break
                self.apply(delta)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[ChannelSession] subscription for %s failed", channel.key)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                with contextlib.suppress(Exception):
                    await aclose()

    # ---------- deltas ----------

    def apply(self, delta: DeltaEvent) -> None:
        """Route one delta through the reconciler and dispatch its effects."""
        effects = self._reconciler.apply(delta)
        self._dispatch(effects)
        self._notify_listeners()

    def _dispatch(self, effects: List[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, (Say, Unsay, StopSpeech)):
                if self._tts is not None:
                    self._speak(self._tts, effect)
            elif isinstance(effect, Ping):
                if self.on_message_ping is not None:
                    try:
                        self.on_message_ping()
                    except Exception:
                        logger.exception("[ChannelSession] ping callback error")
            else:
                raise TypeError(f"Unhandled effect: {type(effect).__name__}")

    @staticmethod
    def _speak(tts: SpeechSink, effect: Effect) -> None:
        try:
            if isinstance(effect, Say):
                tts.say(effect.message)
            elif isinstance(effect, Unsay):
                tts.unsay(effect.message_id)
            else:
                tts.stop()
        except Exception:
            logger.exception("[ChannelSession] tts error")

    async def pull_more_messages(self) -> int:
        """
        Backfill history older than the earliest known event and rebuild the
        message list from the merged log. Returns the number of deltas merged.
        """
        async with self._pull_lock:
            channel = self._channel
            if channel is None:
                return 0
            generation = self._generation
            # the live log keeps growing during the fetch; merging against the
            # same list object keeps those deltas exactly once
            future_events = self._state.events
            if future_events:
                before = min(e.timestamp for e in future_events)
            else:
                before = datetime.now(timezone.utc)

            events = await self.source.fetch_older(channel, before)
            # late out-of-order deltas that arrived during the fetch may also
            # be in the fetched history
            late = [e for e in future_events if e.timestamp < before]
            if late:
                events = [e for e in events if e not in late]
            if not events:
                return 0
            if generation != self._generation:
                logger.warning(
                    "Discarding %d history deltas for %s: channel changed during fetch",
                    len(events), channel.key,
                )
                return 0

            self._state.events = [*events, *future_events]
            self._state.messages = fold_events(self._state.events)
            logger.info(
                "Merged %d history deltas for %s; %d messages",
                len(events), channel.key, len(self._state.messages),
            )
            self._notify_listeners()
            return len(events)

    def prune_messages(self) -> int:
        # retained depth only; nothing visible changes, so no notification
        return prune_timeline(self._state, self._limits.max_messages)

    # ---------- views ----------

    @property
    def messages(self) -> List[MessageModel]:
        return self._state.messages

    @property
    def separators(self) -> Set[int]:
        return self._state.separators

    @property
    def events(self) -> List[DeltaEvent]:
        return self._state.events

    @property
    def is_live(self) -> bool:
        return self._state.is_live

    def should_ping(self, now: Optional[datetime] = None) -> bool:
        return self._reconciler.should_ping(now)

    # ---------- speech ----------

    @property
    def tts(self) -> Optional[SpeechSink]:
        return self._tts

    @tts.setter
    def tts(self, tts: Optional[SpeechSink]) -> None:
        if tts is self._tts:
            return
        self._tts = tts
        if tts is not None:
            tts.enabled = False
        self._notify_listeners()

    # ---------- preferences ----------

    @property
    def preferences(self) -> TimelinePreferences:
        return self._prefs

    @preferences.setter
    def preferences(self, prefs: TimelinePreferences) -> None:
        self._prefs = prefs
        self._reconciler.ping_min_gap = prefs.ping_min_gap_duration
        self._notify_listeners()

    def _update_prefs(self, **changes: Any) -> None:
        self.preferences = self._prefs.model_copy(update=changes)

    @property
    def translate_messages(self) -> TranslateMessages:
        return self._prefs.translate_messages

    @translate_messages.setter
    def translate_messages(self, value: TranslateMessages) -> None:
        self._update_prefs(translate_messages=TranslateMessages(value))

    @property
    def translate_language(self) -> str:
        return self._prefs.translate_language

    @translate_language.setter
    def translate_language(self, value: str) -> None:
        self._update_prefs(translate_language=value)

    @property
    def announcement_pin_duration(self) -> timedelta:
        return self._prefs.announcement_pin_duration

    @announcement_pin_duration.setter
    def announcement_pin_duration(self, value: timedelta) -> None:
        self._update_prefs(announcement_pin_duration=value)

    @property
    def ping_min_gap_duration(self) -> timedelta:
        return self._prefs.ping_min_gap_duration

    @ping_min_gap_duration.setter
    def ping_min_gap_duration(self, value: timedelta) -> None:
        self._update_prefs(ping_min_gap_duration=value)
