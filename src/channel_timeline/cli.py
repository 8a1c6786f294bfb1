# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/cli.py
"""
Command line entry point.

    channel-timeline tail twitch somechannel --history
    channel-timeline publish twitch somechannel --author bob --text "hi"
    channel-timeline prefs show alice
    channel-timeline prefs set alice --ping-gap 120 --translate 1 --language DE
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import timedelta
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from channel_timeline.infra.redis.client import close_async_redis_clients
from channel_timeline.infra.redis.delta_source import RedisDeltaSource
from channel_timeline.infra.redis.preferences_store import RedisPreferencesStore
from channel_timeline.logging_config import configure_logging
from channel_timeline.preferences import TranslateMessages
from channel_timeline.protocol import AppendDeltaEvent, Channel, ChatMessageModel, MessageModel
from channel_timeline.session import ChannelSession

logger = logging.getLogger("channel_timeline.cli")


def _format_message(message: MessageModel) -> str:
    ts = message.timestamp.strftime("%H:%M:%S")
    if isinstance(message, ChatMessageModel):
        body = "<deleted>" if message.deleted else message.text
        return f"[{ts}] {message.author}: {body}"
    return f"[{ts}] ({getattr(message, 'kind', type(message).__name__)})"


class _Printer:
    """Prints messages as they become visible, with a rule at each separator."""

    def __init__(self, session: ChannelSession):
        self.session = session
        self.shown = 0

    def __call__(self) -> None:
        messages = self.session.messages
        if len(messages) < self.shown:
            # cleared or rebuilt: start over
            self.shown = 0
        for i in range(self.shown, len(messages)):
            if i in self.session.separators:
                print("-" * 40)
            print(_format_message(messages[i]))
        self.shown = len(messages)


async def _tail(args: argparse.Namespace) -> None:
    source = RedisDeltaSource(tenant=args.tenant, project=args.project)
    store = RedisPreferencesStore(tenant=args.tenant, project=args.project)
    prefs = await store.load(args.user) if args.user else None
    session = ChannelSession(
        source,
        preferences=prefs,
        on_message_ping=lambda: print("\a*** ping ***"),
    )
    printer = _Printer(session)
    session.add_listener(printer)

    channel = Channel(provider=args.provider, channel_id=args.channel)
    logger.info("Tailing %s", channel.key)
    await session.set_channel(channel)
    if args.history:
        await session.pull_more_messages()
    try:
        while True:
            await asyncio.sleep(args.prune_interval)
            session.prune_messages()
    finally:
        await session.close()


async def _publish(args: argparse.Namespace) -> None:
    source = RedisDeltaSource(tenant=args.tenant, project=args.project)
    message = ChatMessageModel(message_id=args.message_id or uuid.uuid4().hex, author=args.author, text=args.text)
    await source.publish(Channel(provider=args.provider, channel_id=args.channel), AppendDeltaEvent(model=message))
    print(message.message_id)


async def _prefs(args: argparse.Namespace) -> None:
    store = RedisPreferencesStore(tenant=args.tenant, project=args.project)
    prefs = await store.load(args.user)
    if args.prefs_command == "set":
        changes = {}
        if args.pin is not None:
            changes["announcement_pin_duration"] = timedelta(seconds=args.pin)
        if args.ping_gap is not None:
            changes["ping_min_gap_duration"] = timedelta(seconds=args.ping_gap)
        if args.translate is not None:
            changes["translate_messages"] = TranslateMessages.from_json(args.translate)
        if args.language is not None:
            changes["translate_language"] = args.language
        prefs = prefs.model_copy(update=changes)
        await store.save(args.user, prefs)
    print(prefs.to_json())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="channel-timeline", description="Chat channel timelines over Redis.")
    parser.add_argument("--tenant", help="Tenant namespace (defaults to TENANT_ID)")
    parser.add_argument("--project", help="Project namespace (defaults to DEFAULT_PROJECT_NAME)")
    sub = parser.add_subparsers(dest="command", required=True)

    tail = sub.add_parser("tail", help="Follow a channel timeline")
    tail.add_argument("provider")
    tail.add_argument("channel")
    tail.add_argument("--history", action="store_true", help="Backfill older messages once at start")
    tail.add_argument("--user", help="Load this user's stored preferences")
    tail.add_argument("--prune-interval", type=float, default=30.0, help="Seconds between retention passes")
    tail.set_defaults(handler=_tail)

    publish = sub.add_parser("publish", help="Publish a chat message")
    publish.add_argument("provider")
    publish.add_argument("channel")
    publish.add_argument("--author", required=True)
    publish.add_argument("--text", required=True)
    publish.add_argument("--message-id")
    publish.set_defaults(handler=_publish)

    prefs = sub.add_parser("prefs", help="Show or change stored preferences")
    prefs_sub = prefs.add_subparsers(dest="prefs_command", required=True)
    show = prefs_sub.add_parser("show")
    show.add_argument("user")
    set_ = prefs_sub.add_parser("set")
    set_.add_argument("user")
    set_.add_argument("--pin", type=int, help="Announcement pin duration, seconds")
    set_.add_argument("--ping-gap", type=int, help="Minimum silence before a ping, seconds")
    set_.add_argument("--translate", type=int, choices=[m.value for m in TranslateMessages])
    set_.add_argument("--language")
    prefs.set_defaults(handler=_prefs)
    return parser


async def _run(args: argparse.Namespace) -> None:
    try:
        await args.handler(args)
    finally:
        await close_async_redis_clients()


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv(find_dotenv())
    configure_logging()

    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
