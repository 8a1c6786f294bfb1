# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from channel_timeline.preferences import TimelinePreferences, TranslateMessages
from channel_timeline.protocol import (
    AppendDeltaEvent,
    Channel,
    ChatMessageModel,
    ClearDeltaEvent,
    LiveStateDeltaEvent,
    MessageUpdate,
    UpdateDeltaEvent,
)
from channel_timeline.session import ChannelSession
from channel_timeline.timeline.state import TimelineLimits

T0 = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
CH_A = Channel(provider="twitch", channel_id="alpha")
CH_B = Channel(provider="twitch", channel_id="beta")


class _FakeSource:
    def __init__(self, history=None):
        self.queues = {}
        self.history = list(history or [])
        self.fetch_gate = None
        self.fetch_calls = []
        self.closed = []

    def _queue(self, channel):
        return self.queues.setdefault(channel.key, asyncio.Queue())

    def push(self, channel, delta):
        self._queue(channel).put_nowait(delta)

    async def subscribe(self, channel):
        queue = self._queue(channel)
        try:
            while True:
                yield await queue.get()
        finally:
            self.closed.append(channel.key)

    async def fetch_older(self, channel, before):
        self.fetch_calls.append((channel.key, before))
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        return [d for d in self.history if d.timestamp < before]


class _FakeTts:
    def __init__(self):
        self.enabled = True
        self.said = []
        self.unsaid = []
        self.stopped = 0

    def say(self, message):
        self.said.append(message.message_id)

    def unsay(self, message_id):
        self.unsaid.append(message_id)

    def stop(self):
        self.stopped += 1


def _chat(mid, seconds, base=T0):
    return ChatMessageModel(message_id=mid, timestamp=base + timedelta(seconds=seconds), author="a", text=mid)


def _append(mid, seconds, base=T0):
    return AppendDeltaEvent(model=_chat(mid, seconds, base))


async def _until(predicate, timeout=1.0):
    async def _wait():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(_wait(), timeout)


def _session(source, **kwargs):
    return ChannelSession(source, limits=TimelineLimits(), **kwargs)


def _ids(session):
    return [m.message_id for m in session.messages]


@pytest.mark.asyncio
async def test_subscription_feeds_reconciler_and_notifies():
    source = _FakeSource()
    session = _session(source)
    notified = []
    session.add_listener(lambda: notified.append(len(session.messages)))

    await session.set_channel(CH_A)
    assert notified == [0]

    source.push(CH_A, _append("a", 0))
    source.push(CH_A, _append("b", 10))
    await _until(lambda: len(session.messages) == 2)

    assert _ids(session) == ["a", "b"]
    assert session.separators == {0}
    assert len(session.events) == 2
    assert notified[-1] == 2
    await session.close()


@pytest.mark.asyncio
async def test_same_channel_twice_is_ignored():
    source = _FakeSource()
    session = _session(source)
    calls = []
    session.add_listener(lambda: calls.append(1))

    await session.set_channel(CH_A)
    source.push(CH_A, _append("a", 0))
    await _until(lambda: len(session.messages) == 1)
    calls.clear()

    await session.set_channel(Channel(provider="twitch", channel_id="alpha"))
    assert calls == []
    assert _ids(session) == ["a"]
    await session.close()


@pytest.mark.asyncio
async def test_channel_switch_resets_state_and_cancels_subscription():
    source = _FakeSource()
    tts = _FakeTts()
    session = _session(source)
    session.tts = tts
    assert tts.enabled is False

    await session.set_channel(CH_A)
    source.push(CH_A, LiveStateDeltaEvent(timestamp=T0))
    source.push(CH_A, _append("a", 0))
    await _until(lambda: len(session.messages) == 1)
    assert session.is_live is True

    tts.enabled = True
    await session.set_channel(CH_B)
    assert session.channel == CH_B
    assert session.messages == []
    assert session.events == []
    assert session.separators == set()
    assert session.is_live is False
    assert tts.enabled is False
    assert source.closed == ["twitch:alpha"]

    # deltas on the old channel no longer reach the timeline
    source.push(CH_A, _append("late", 5))
    source.push(CH_B, _append("b", 0))
    await _until(lambda: len(session.messages) == 1)
    await asyncio.sleep(0.01)
    assert _ids(session) == ["b"]

    await session.set_channel(None)
    assert session.channel is None
    assert session.messages == []
    assert source.closed == ["twitch:alpha", "twitch:beta"]


@pytest.mark.asyncio
async def test_effects_reach_tts_and_ping_callback():
    source = _FakeSource()
    tts = _FakeTts()
    pings = []
    session = _session(source, tts=tts, on_message_ping=lambda: pings.append(1))

    await session.set_channel(CH_A)
    source.push(CH_A, _append("old", -10))
    source.push(CH_A, LiveStateDeltaEvent(timestamp=T0))
    source.push(CH_A, _append("a", 0))
    source.push(CH_A, _append("b", 90))
    source.push(CH_A, _append("c", 95))
    source.push(CH_A, _append("early", 1))
    source.push(CH_A, UpdateDeltaEvent(message_id="b", update=MessageUpdate.delete(), timestamp=T0))
    source.push(CH_A, ClearDeltaEvent(message_id="clr", timestamp=T0 + timedelta(seconds=100)))
    await _until(lambda: len(session.events) == 8)

    assert tts.said == ["old", "a", "b", "c"]
    assert tts.unsaid == ["b"]
    assert tts.stopped == 1
    assert pings == [1]
    assert _ids(session) == ["clr"]
    await session.close()


@pytest.mark.asyncio
async def test_fresh_first_live_message_pings():
    source = _FakeSource()
    pings = []
    session = _session(source, on_message_ping=lambda: pings.append(1))
    await session.set_channel(CH_A)

    source.push(CH_A, LiveStateDeltaEvent())
    source.push(CH_A, AppendDeltaEvent(model=ChatMessageModel(message_id="now", author="a", text="hi")))
    await _until(lambda: len(session.messages) == 1)

    assert pings == [1]
    assert session.should_ping() is True
    assert session.should_ping(now=datetime.now(timezone.utc) + timedelta(seconds=2)) is False
    await session.close()


@pytest.mark.asyncio
async def test_failing_observers_do_not_break_delivery():
    source = _FakeSource()

    def _boom():
        raise RuntimeError("observer failed")

    session = _session(source, on_message_ping=_boom)
    session.add_listener(_boom)
    await session.set_channel(CH_A)
    source.push(CH_A, LiveStateDeltaEvent(timestamp=T0))
    source.push(CH_A, _append("a", 0))
    source.push(CH_A, _append("b", 120))
    await _until(lambda: len(session.messages) == 2)
    await session.close()


@pytest.mark.asyncio
async def test_failing_tts_does_not_break_delivery():
    class _BrokenTts(_FakeTts):
        def say(self, message):
            raise RuntimeError("speech engine down")

        def stop(self):
            raise RuntimeError("speech engine down")

    source = _FakeSource()
    session = _session(source, tts=_BrokenTts())
    await session.set_channel(CH_A)
    source.push(CH_A, _append("a", 0))
    source.push(CH_A, _append("b", 1))
    source.push(CH_A, ClearDeltaEvent(message_id="clr", timestamp=T0 + timedelta(seconds=2)))
    source.push(CH_A, _append("c", 3))
    await _until(lambda: len(session.events) == 4)

    assert _ids(session) == ["clr", "c"]
    assert not session._task.done()
    await session.close()


@pytest.mark.asyncio
async def test_pull_more_messages_prepends_history():
    history = [_append("h1", -200), UpdateDeltaEvent(message_id="h1", update=MessageUpdate.edit_text("fixed"), timestamp=T0 - timedelta(seconds=150)), _append("h2", -100)]
    source = _FakeSource(history=history)
    session = _session(source)
    await session.set_channel(CH_A)
    source.push(CH_A, _append("a", 0))
    await _until(lambda: len(session.messages) == 1)
    separators = set(session.separators)

    merged = await session.pull_more_messages()

    assert merged == 3
    assert source.fetch_calls == [("twitch:alpha", T0)]
    assert _ids(session) == ["h1", "h2", "a"]
    assert session.messages[0].text == "fixed"
    assert session.events[:3] == history
    # history replay rebuilds messages only
    assert session.separators == separators
    await session.close()


@pytest.mark.asyncio
async def test_pull_with_empty_history_changes_nothing():
    source = _FakeSource()
    session = _session(source)
    await session.set_channel(CH_A)
    source.push(CH_A, _append("a", 0))
    await _until(lambda: len(session.messages) == 1)
    notified = []
    session.add_listener(lambda: notified.append(1))

    assert await session.pull_more_messages() == 0
    assert _ids(session) == ["a"]
    assert notified == []
    await session.close()


@pytest.mark.asyncio
async def test_pull_without_channel_is_noop():
    source = _FakeSource(history=[_append("h", -5)])
    session = _session(source)
    assert await session.pull_more_messages() == 0
    assert source.fetch_calls == []


@pytest.mark.asyncio
async def test_live_delta_during_pull_is_kept_exactly_once():
    source = _FakeSource(history=[_append("h1", -60), _append("h2", -30)])
    source.fetch_gate = asyncio.Event()
    session = _session(source)
    await session.set_channel(CH_A)
    source.push(CH_A, _append("a", 0))
    await _until(lambda: len(session.messages) == 1)

    pull = asyncio.create_task(session.pull_more_messages())
    await _until(lambda: source.fetch_calls)

    source.push(CH_A, _append("live", 5))
    await _until(lambda: len(session.messages) == 2)

    source.fetch_gate.set()
    assert await pull == 2

    assert _ids(session) == ["h1", "h2", "a", "live"]
    assert [getattr(e, "model").message_id for e in session.events] == ["h1", "h2", "a", "live"]

    # and later live deltas keep landing in the merged log
    source.push(CH_A, _append("after", 10))
    await _until(lambda: len(session.messages) == 5)
    assert _ids(session)[-1] == "after"
    await session.close()


@pytest.mark.asyncio
async def test_pull_bound_is_earliest_live_event():
    history = [_append("h", -500), _append("a", 0), _append("old", -100)]
    source = _FakeSource(history=history)
    session = _session(source)
    await session.set_channel(CH_A)
    source.push(CH_A, _append("a", 0))
    source.push(CH_A, _append("old", -100))
    await _until(lambda: len(session.messages) == 2)

    assert await session.pull_more_messages() == 1

    assert source.fetch_calls == [("twitch:alpha", T0 - timedelta(seconds=100))]
    assert _ids(session) == ["h", "old", "a"]
    await session.close()


@pytest.mark.asyncio
async def test_late_delta_arriving_during_pull_is_not_duplicated():
    late = _append("late", -100)
    source = _FakeSource(history=[_append("h", -500), late])
    source.fetch_gate = asyncio.Event()
    session = _session(source)
    await session.set_channel(CH_A)
    source.push(CH_A, _append("a", 0))
    await _until(lambda: len(session.messages) == 1)

    pull = asyncio.create_task(session.pull_more_messages())
    await _until(lambda: source.fetch_calls)
    source.push(CH_A, late)
    await _until(lambda: len(session.messages) == 2)

    source.fetch_gate.set()
    assert await pull == 1

    assert _ids(session) == ["h", "late", "a"]
    assert [e.model.message_id for e in session.events] == ["h", "a", "late"]
    await session.close()


@pytest.mark.asyncio
async def test_pull_result_discarded_after_channel_switch():
    source = _FakeSource(history=[_append("h1", -60)])
    source.fetch_gate = asyncio.Event()
    session = _session(source)
    await session.set_channel(CH_A)
    source.push(CH_A, _append("a", 0))
    await _until(lambda: len(session.messages) == 1)

    pull = asyncio.create_task(session.pull_more_messages())
    await _until(lambda: source.fetch_calls)
    await session.set_channel(CH_B)
    source.push(CH_B, _append("b", 0))
    await _until(lambda: len(session.messages) == 1)

    source.fetch_gate.set()
    assert await pull == 0
    assert _ids(session) == ["b"]
    assert len(session.events) == 1
    await session.close()


@pytest.mark.asyncio
async def test_prune_does_not_notify():
    source = _FakeSource()
    session = ChannelSession(source, limits=TimelineLimits(max_messages=3))
    await session.set_channel(CH_A)
    for i in range(5):
        source.push(CH_A, _append(f"m{i}", i))
    await _until(lambda: len(session.messages) == 5)

    notified = []
    session.add_listener(lambda: notified.append(1))
    assert session.prune_messages() == 2
    assert _ids(session) == ["m2", "m3", "m4"]
    assert len(session.events) == 3
    assert notified == []
    await session.close()


@pytest.mark.asyncio
async def test_preferences_survive_channel_switch_and_feed_ping_gap():
    source = _FakeSource()
    pings = []
    session = ChannelSession.from_json(
        source,
        {"pingMinGapDuration": 120, "translateMessages": 1},
        limits=TimelineLimits(),
        on_message_ping=lambda: pings.append(1),
    )
    assert session.ping_min_gap_duration == timedelta(minutes=2)
    assert session.translate_messages is TranslateMessages.translate

    await session.set_channel(CH_A)
    await session.set_channel(CH_B)
    assert session.to_json()["pingMinGapDuration"] == 120

    source.push(CH_B, LiveStateDeltaEvent(timestamp=T0))
    source.push(CH_B, _append("a", 0))
    source.push(CH_B, _append("b", 90))
    await _until(lambda: len(session.messages) == 2)
    assert pings == []

    session.ping_min_gap_duration = timedelta(seconds=30)
    source.push(CH_B, _append("c", 150))
    await _until(lambda: len(session.messages) == 3)
    assert pings == [1]
    await session.close()


def test_preference_setters_notify():
    session = ChannelSession(_FakeSource(), limits=TimelineLimits())
    notified = []
    session.add_listener(lambda: notified.append(1))

    session.translate_messages = TranslateMessages.translate_and_show_original
    session.translate_language = "FR"
    session.announcement_pin_duration = timedelta(seconds=42)

    assert len(notified) == 3
    assert session.preferences == TimelinePreferences(
        announcement_pin_duration=timedelta(seconds=42),
        translate_messages=TranslateMessages.translate_and_show_original,
        translate_language="FR",
    )
    assert session.to_json()["translateMessages"] == 2


def test_tts_setter_ignores_same_sink():
    session = ChannelSession(_FakeSource(), limits=TimelineLimits())
    tts = _FakeTts()
    notified = []
    session.add_listener(lambda: notified.append(1))
    session.tts = tts
    tts.enabled = True
    session.tts = tts
    assert tts.enabled is True
    assert notified == [1]
