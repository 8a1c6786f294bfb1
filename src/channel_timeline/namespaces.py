# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/namespaces.py

def tp_prefix(tenant: str | None = None, project: str | None = None) -> str:
    from channel_timeline.config import get_settings
    s = get_settings()
    t = tenant or s.TENANT
    p = project or s.PROJECT
    return f"{t}:{p}"

def ns_key(base: str, *, tenant: str | None = None, project: str | None = None) -> str:
    return f"{tp_prefix(tenant, project)}:{base}"

class REDIS:
    class TIMELINE:
        # pub/sub topic per channel: {PREFIX}:{provider}:{channel_id}
        DELTAS_PREFIX = "timeline:deltas"
        # sorted set of delta envelopes scored by timestamp
        HISTORY_PREFIX = "timeline:history"
        # per-channel INCR counter ordering history members
        SEQ_PREFIX = "timeline:seq"

    class PREFS:
        PREFIX = "timeline:prefs"
