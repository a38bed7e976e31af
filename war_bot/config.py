"""Environment configuration for the war bot runtime."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import time

from .models import DEFAULT_TIMEZONE
from .validation import (
    DEFAULT_EVENING_END,
    DEFAULT_EVENING_START,
    DEFAULT_WINDOW_DAYS,
)
from .wizard import DEFAULT_MAX_SESSIONS

log = logging.getLogger("war-bot.config")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

REQUIRED_VARS = ("DISCORD_TOKEN", "WAR_TABLE_NAME", "WAR_CHANNEL_ID")


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, *, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning("Invalid %s=%s; expected an integer", name, raw)
        return default


def env_int_list(name: str) -> tuple[int, ...]:
    raw = os.getenv(name) or ""
    values: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            values.append(int(part))
        except ValueError:
            log.warning("Ignoring non-numeric entry %r in %s", part, name)
    return tuple(values)


def env_clock(name: str, *, default: time) -> time:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return time.fromisoformat(raw.strip())
    except ValueError:
        log.warning("Invalid %s=%s; expected HH:MM", name, raw)
        return default


@dataclass(frozen=True, slots=True)
class WarBotSettings:
    discord_token: str
    table_name: str
    war_channel_id: int
    aws_region: str = "us-east-1"
    guild_id: int | None = None
    results_channel_id: int | None = None
    admin_role_ids: tuple[int, ...] = ()
    recruit_ping_role_id: int | None = None
    admin_ping_role_id: int | None = None
    timezone: str = DEFAULT_TIMEZONE
    wizard_window_days: int = DEFAULT_WINDOW_DAYS
    wizard_max_sessions: int = DEFAULT_MAX_SESSIONS
    evening_window_start: time = DEFAULT_EVENING_START
    evening_window_end: time = DEFAULT_EVENING_END
    first_war_id: int = 1
    dm_notifications: bool = True

    @classmethod
    def load(cls) -> WarBotSettings:
        missing = [name for name in REQUIRED_VARS if not os.getenv(name)]
        if missing:
            raise RuntimeError("Missing env vars: " + ", ".join(sorted(missing)))

        war_channel_id = env_int("WAR_CHANNEL_ID")
        if war_channel_id is None:
            raise RuntimeError("WAR_CHANNEL_ID must be an integer channel id")

        return cls(
            discord_token=os.environ["DISCORD_TOKEN"],
            table_name=os.environ["WAR_TABLE_NAME"],
            war_channel_id=war_channel_id,
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            guild_id=env_int("WAR_GUILD_ID"),
            results_channel_id=env_int("RESULTS_CHANNEL_ID"),
            admin_role_ids=env_int_list("WAR_ADMIN_ROLE_IDS"),
            recruit_ping_role_id=env_int("RECRUIT_PING_ROLE_ID"),
            admin_ping_role_id=env_int("ADMIN_PING_ROLE_ID"),
            timezone=os.getenv("WAR_TIMEZONE") or DEFAULT_TIMEZONE,
            wizard_window_days=env_int("WIZARD_WINDOW_DAYS", default=DEFAULT_WINDOW_DAYS)
            or DEFAULT_WINDOW_DAYS,
            wizard_max_sessions=env_int(
                "WIZARD_MAX_SESSIONS", default=DEFAULT_MAX_SESSIONS
            )
            or DEFAULT_MAX_SESSIONS,
            evening_window_start=env_clock(
                "EVENING_WINDOW_START", default=DEFAULT_EVENING_START
            ),
            evening_window_end=env_clock("EVENING_WINDOW_END", default=DEFAULT_EVENING_END),
            first_war_id=env_int("WAR_FIRST_ID", default=1) or 1,
            dm_notifications=env_bool("WAR_DM_NOTIFICATIONS", default=True),
        )


__all__ = [
    "REQUIRED_VARS",
    "WarBotSettings",
    "env_bool",
    "env_clock",
    "env_int",
    "env_int_list",
]
