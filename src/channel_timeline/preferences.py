# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/preferences.py
from __future__ import annotations

from datetime import timedelta
from enum import IntEnum
from typing import Any, Dict, Mapping

from pydantic import BaseModel, Field


class TranslateMessages(IntEnum):
    none = 0
    translate = 1
    translate_and_show_original = 2

    @classmethod
    def from_json(cls, value: Any) -> "TranslateMessages":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.none


class TimelinePreferences(BaseModel):
    """
    Session-wide display preferences. They outlive channel switches and
    persist as a flat key-value record (durations in whole seconds).
    """
    announcement_pin_duration: timedelta = Field(default=timedelta(seconds=10))
    ping_min_gap_duration: timedelta = Field(default=timedelta(minutes=1))
    translate_messages: TranslateMessages = TranslateMessages.none
    translate_language: str = "EN"

    @classmethod
    def from_json(cls, data: Mapping[str, Any] | None) -> "TimelinePreferences":
        data = data or {}
        values: Dict[str, Any] = {}
        if data.get("announcementPinDuration") is not None:
            values["announcement_pin_duration"] = timedelta(seconds=int(data["announcementPinDuration"]))
        if data.get("pingMinGapDuration") is not None:
            values["ping_min_gap_duration"] = timedelta(seconds=int(data["pingMinGapDuration"]))
        if data.get("translateMessages") is not None:
            values["translate_messages"] = TranslateMessages.from_json(data["translateMessages"])
        if data.get("translateLanguage") is not None:
            values["translate_language"] = str(data["translateLanguage"])
        return cls(**values)

    def to_json(self) -> Dict[str, Any]:
        return {
            "announcementPinDuration": int(self.announcement_pin_duration.total_seconds()),
            "pingMinGapDuration": int(self.ping_min_gap_duration.total_seconds()),
            "translateMessages": int(self.translate_messages),
            "translateLanguage": self.translate_language,
        }
