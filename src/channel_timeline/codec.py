# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/codec.py
"""
JSON wire format for deltas.

    {"type": "append", "timestamp": "...", "message": {"kind": "chat", ...}}
    {"type": "update", "timestamp": "...", "message_id": "...", "changes": {...}}
    {"type": "clear",  "timestamp": "...", "message_id": "..."}
    {"type": "live",   "timestamp": "..."}

Updates travel as data patches, so a log read back from storage replays to
the same messages.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from channel_timeline.protocol import (
    AnyMessage,
    AppendDeltaEvent,
    ClearDeltaEvent,
    DeltaEvent,
    LiveStateDeltaEvent,
    MessageUpdate,
    UpdateDeltaEvent,
)


class DeltaDecodeError(ValueError):
    """Raised when a payload is not a valid delta envelope."""


class DeltaEnvelope(BaseModel):
    type: Literal["append", "update", "clear", "live"]
    timestamp: datetime
    message: Optional[AnyMessage] = None
    message_id: Optional[str] = None
    changes: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_delta(cls, delta: DeltaEvent) -> "DeltaEnvelope":
        if isinstance(delta, AppendDeltaEvent):
            return cls(type="append", timestamp=delta.timestamp, message=delta.model)
        if isinstance(delta, UpdateDeltaEvent):
            return cls(
                type="update",
                timestamp=delta.timestamp,
                message_id=delta.message_id,
                changes=dict(delta.update.changes),
            )
        if isinstance(delta, ClearDeltaEvent):
            return cls(type="clear", timestamp=delta.timestamp, message_id=delta.message_id)
        if isinstance(delta, LiveStateDeltaEvent):
            return cls(type="live", timestamp=delta.timestamp)
        raise TypeError(f"Unhandled delta kind: {type(delta).__name__}")

    def to_delta(self) -> DeltaEvent:
        if self.type == "append":
            if self.message is None:
                raise DeltaDecodeError("append envelope without message")
            return AppendDeltaEvent(model=self.message)
        if self.type == "update":
            if not self.message_id:
                raise DeltaDecodeError("update envelope without message_id")
            return UpdateDeltaEvent(
                message_id=self.message_id,
                update=MessageUpdate(changes=dict(self.changes)),
                timestamp=self.timestamp,
            )
        if self.type == "clear":
            if not self.message_id:
                raise DeltaDecodeError("clear envelope without message_id")
            return ClearDeltaEvent(message_id=self.message_id, timestamp=self.timestamp)
        return LiveStateDeltaEvent(timestamp=self.timestamp)


def encode_delta(delta: DeltaEvent) -> str:
    return DeltaEnvelope.from_delta(delta).model_dump_json()


def decode_delta(raw: Union[str, bytes, bytearray, Dict[str, Any]]) -> DeltaEvent:
    try:
        if isinstance(raw, dict):
            envelope = DeltaEnvelope.model_validate(raw)
        else:
            envelope = DeltaEnvelope.model_validate_json(raw)
    except ValidationError as e:
        raise DeltaDecodeError(str(e)) from e
    return envelope.to_delta()
