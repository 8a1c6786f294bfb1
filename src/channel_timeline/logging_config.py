# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# channel_timeline/logging_config.py
import logging
import os

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# logger name -> env var holding its level; unset falls back to the given default
LOGGER_LEVEL_ENV = {
    "asyncio": ("ASYNCIO_LEVEL", "WARNING"),
    "redis": ("REDIS_LOG_LEVEL", "WARNING"),
    "channel_timeline.timeline": ("TIMELINE_LOG_LEVEL", None),
}


def _to_level(name: str, default: int) -> int:
    level = getattr(logging, (name or "").upper(), None)
    return level if isinstance(level, int) else default


def configure_logging(level_name: str | None = None) -> int:
    """
    Set up root logging for the CLI from LOG_LEVEL / LOG_FORMAT.

    Returns the effective root level.
    """
    level_name = (level_name or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = _to_level(level_name, logging.INFO)
    logging.basicConfig(level=level, format=os.getenv("LOG_FORMAT", DEFAULT_FORMAT), force=True)
    logging.captureWarnings(True)

    for name, (env_var, default) in LOGGER_LEVEL_ENV.items():
        lg = logging.getLogger(name)
        for h in list(lg.handlers):
            lg.removeHandler(h)
        lg.propagate = True
        lg.setLevel(_to_level(os.getenv(env_var, default or level_name), level))
    return level
