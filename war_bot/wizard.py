"""Per-administrator war creation wizard.

Sessions live in memory only. Each administrator has at most one session; a
new ``start`` replaces the old one without warning. Fields are validated when
set, so a completed session always yields valid ``WarCreationParams``.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import StrEnum
from zoneinfo import ZoneInfo

from .errors import IncompleteWizardError
from .models import DEFAULT_TIMEZONE, MatchFormat, WarCreationParams, utc_now
from .validation import (
    DEFAULT_EVENING_END,
    DEFAULT_EVENING_START,
    DEFAULT_STEP_MINUTES,
    DEFAULT_WINDOW_DAYS,
    date_choices,
    evening_time_choices,
    parse_match_format,
    parse_start_date,
    parse_start_time,
    validate_opponent,
    validate_team_size,
    validate_time_override,
)

log = logging.getLogger("war-bot.wizard")

DEFAULT_MAX_SESSIONS = 100


class WizardField(StrEnum):
    TEAM_SIZE = "team_size"
    FORMAT = "format"
    OPPONENT = "opponent"
    DATE = "date"
    TIME = "time"


FIELD_LABELS: dict[WizardField, str] = {
    WizardField.TEAM_SIZE: "team size",
    WizardField.FORMAT: "format",
    WizardField.OPPONENT: "opponent",
    WizardField.DATE: "date",
    WizardField.TIME: "start time",
}


@dataclass(slots=True)
class WizardSession:
    admin_id: int
    updated_at: datetime
    surface_id: int | None = None
    team_size: int | None = None
    match_format: MatchFormat | None = None
    opponent: str | None = None
    start_date: date | None = None
    start_time: str | None = None
    time_override: bool = False

    def missing(self) -> list[WizardField]:
        values = {
            WizardField.TEAM_SIZE: self.team_size,
            WizardField.FORMAT: self.match_format,
            WizardField.OPPONENT: self.opponent,
            WizardField.DATE: self.start_date,
            WizardField.TIME: self.start_time,
        }
        return [name for name, value in values.items() if value is None]

    @property
    def is_complete(self) -> bool:
        return not self.missing()


class WizardRegistry:
    def __init__(
        self,
        *,
        timezone: str = DEFAULT_TIMEZONE,
        window_days: int = DEFAULT_WINDOW_DAYS,
        evening_start: time = DEFAULT_EVENING_START,
        evening_end: time = DEFAULT_EVENING_END,
        step_minutes: int = DEFAULT_STEP_MINUTES,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.timezone = timezone
        self.window_days = window_days
        self.evening_start = evening_start
        self.evening_end = evening_end
        self.step_minutes = step_minutes
        self.max_sessions = max(1, max_sessions)
        self._clock = clock
        self._sessions: OrderedDict[int, WizardSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def today(self) -> date:
        return self._clock().astimezone(ZoneInfo(self.timezone)).date()

    def date_choices(self) -> list[date]:
        return date_choices(self.today(), self.window_days)

    def time_choices(self) -> list[str]:
        return evening_time_choices(
            self.evening_start, self.evening_end, self.step_minutes
        )

    def start(self, admin_id: int, *, surface_id: int | None = None) -> WizardSession:
        self._sessions.pop(admin_id, None)
        session = WizardSession(
            admin_id=admin_id, updated_at=self._clock(), surface_id=surface_id
        )
        self._sessions[admin_id] = session
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            log.info("Evicted wizard session of %s (session cap reached)", evicted)
        return session

    def get(self, admin_id: int) -> WizardSession | None:
        return self._sessions.get(admin_id)

    def _require(self, admin_id: int) -> WizardSession:
        session = self._sessions.get(admin_id)
        if session is None:
            raise IncompleteWizardError()
        return session

    def set_field(
        self,
        admin_id: int,
        name: WizardField | str,
        value: object,
        *,
        override: bool = False,
    ) -> WizardSession:
        session = self._require(admin_id)
        name = WizardField(name)
        # Validate everything before touching the session.
        if name is WizardField.TEAM_SIZE:
            session.team_size = validate_team_size(value)  # type: ignore[arg-type]
        elif name is WizardField.FORMAT:
            session.match_format = parse_match_format(value)  # type: ignore[arg-type]
        elif name is WizardField.OPPONENT:
            session.opponent = validate_opponent(str(value))
        elif name is WizardField.DATE:
            session.start_date = parse_start_date(
                value,  # type: ignore[arg-type]
                today=self.today(),
                window_days=self.window_days,
            )
        else:
            if override:
                text = validate_time_override(str(value))
            else:
                text = parse_start_time(
                    value,  # type: ignore[arg-type]
                    window_start=self.evening_start,
                    window_end=self.evening_end,
                    step_minutes=self.step_minutes,
                )
            session.start_time = text
            session.time_override = override
        session.updated_at = self._clock()
        self._sessions.move_to_end(admin_id)
        return session

    def attach_surface(self, admin_id: int, surface_id: int | None) -> WizardSession:
        session = self._require(admin_id)
        session.surface_id = surface_id
        return session

    def complete(self, admin_id: int) -> WarCreationParams:
        session = self._require(admin_id)
        missing = session.missing()
        if missing:
            labels = ", ".join(FIELD_LABELS[name] for name in missing)
            raise IncompleteWizardError(f"Still missing: {labels}.")
        params = WarCreationParams(
            team_size=session.team_size,  # type: ignore[arg-type]
            match_format=session.match_format,  # type: ignore[arg-type]
            opponent=session.opponent,  # type: ignore[arg-type]
            start_date=session.start_date,  # type: ignore[arg-type]
            start_time=session.start_time,  # type: ignore[arg-type]
            timezone=self.timezone,
        )
        del self._sessions[admin_id]
        return params

    def cancel(self, admin_id: int) -> None:
        self._sessions.pop(admin_id, None)

    def evict_idle(self, max_age: timedelta) -> list[int]:
        cutoff = self._clock() - max_age
        stale = [
            admin_id
            for admin_id, session in self._sessions.items()
            if session.updated_at < cutoff
        ]
        for admin_id in stale:
            del self._sessions[admin_id]
        if stale:
            log.info("Evicted %d idle wizard session(s)", len(stale))
        return stale


__all__ = [
    "DEFAULT_MAX_SESSIONS",
    "FIELD_LABELS",
    "WizardField",
    "WizardRegistry",
    "WizardSession",
]
