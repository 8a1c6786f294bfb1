# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/protocol.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """Naive timestamps are taken as UTC; aware ones are converted to UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


# -----------------------------
# Channel identity
# -----------------------------

class Channel(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    channel_id: str

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.channel_id}"

    def __str__(self) -> str:
        return self.key


# -----------------------------
# Messages
# -----------------------------

class MessageModel(BaseModel):
    """
    Base of every timeline entry.

    `timestamp` is the origin time and decides chronological placement;
    arrival order lives in the event log only.
    """
    model_config = ConfigDict(frozen=True)

    message_id: str
    timestamp: datetime = Field(default_factory=_utc_now)

    @field_validator("timestamp")
    @classmethod
    def _normalize_ts(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class ChatMessageModel(MessageModel):
    kind: Literal["chat"] = "chat"
    author: str = ""
    text: str = ""
    deleted: bool = False
    tags: Dict[str, str] = Field(default_factory=dict)


class ChatClearedEventModel(MessageModel):
    kind: Literal["cleared"] = "cleared"


class SystemEventModel(MessageModel):
    """Raids, follows, subscriptions, host notices and similar channel events."""
    kind: Literal["system"] = "system"
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


AnyMessage = Annotated[
    Union[ChatMessageModel, ChatClearedEventModel, SystemEventModel],
    Field(discriminator="kind"),
]


# -----------------------------
# Updates
# -----------------------------

@dataclass(frozen=True)
class MessageUpdate:
    """
    Data-described patch applied by an UpdateDeltaEvent.

    Only attributes the target variant declares are touched; `message_id`,
    `kind` and `timestamp` are never rewritten. A patch whose values do not
    validate against the variant leaves the message as it was.
    """
    changes: Mapping[str, Any] = field(default_factory=dict)

    _PROTECTED = frozenset({"message_id", "kind", "timestamp"})

    @classmethod
    def delete(cls) -> "MessageUpdate":
        return cls(changes={"deleted": True})

    @classmethod
    def edit_text(cls, text: str) -> "MessageUpdate":
        return cls(changes={"text": text})

    def apply(self, message: MessageModel) -> MessageModel:
        fields = type(message).model_fields
        update = {
            k: v for k, v in self.changes.items()
            if k in fields and k not in self._PROTECTED
        }
        if not update:
            return message
        try:
            return type(message).model_validate({**message.model_dump(), **update})
        except ValidationError as e:
            logger.warning("Ignoring invalid update for message %s: %s", message.message_id, e)
            return message


# -----------------------------
# Deltas
# -----------------------------

@dataclass(frozen=True)
class AppendDeltaEvent:
    model: MessageModel

    @property
    def timestamp(self) -> datetime:
        return self.model.timestamp


@dataclass(frozen=True)
class UpdateDeltaEvent:
    message_id: str
    update: MessageUpdate
    timestamp: datetime = field(default_factory=_utc_now)

    def __post_init__(self):
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))


@dataclass(frozen=True)
class ClearDeltaEvent:
    message_id: str
    timestamp: datetime = field(default_factory=_utc_now)

    def __post_init__(self):
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))


@dataclass(frozen=True)
class LiveStateDeltaEvent:
    timestamp: datetime = field(default_factory=_utc_now)

    def __post_init__(self):
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))


DeltaEvent = Union[AppendDeltaEvent, UpdateDeltaEvent, ClearDeltaEvent, LiveStateDeltaEvent]


def is_deleted_chat(message: MessageModel) -> bool:
    return isinstance(message, ChatMessageModel) and message.deleted
