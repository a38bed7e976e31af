"""Narrow seams between the war core and the outside world."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from .models import (
    MapResult,
    NoShow,
    RosterMember,
    SignalKind,
    Substitution,
    WarEvent,
    WarSnapshot,
    utc_now,
)

Authorizer = Callable[[int], bool]


def allow_all(actor_id: int) -> bool:
    return True


@dataclass(slots=True, frozen=True)
class Signal:
    event_id: int
    participant_id: int
    display_name: str
    kind: SignalKind
    timestamp: datetime | None = None

    @classmethod
    def now(
        cls, event_id: int, participant_id: int, display_name: str, kind: SignalKind
    ) -> Signal:
        return cls(event_id, participant_id, display_name, SignalKind(kind), utc_now())


class NotificationKind(StrEnum):
    STARTER_CONFIRMED = "starter_confirmed"
    BACKUP_CONFIRMED = "backup_confirmed"
    ROSTER_REOPENED = "roster_reopened"
    RECRUITMENT_ESCALATION = "recruitment_escalation"
    RESULT_POSTED = "result_posted"
    POOL_FILLED = "pool_filled"
    WAR_CANCELLED = "war_cancelled"


@dataclass(slots=True, frozen=True)
class Notification:
    """A requested message. ``audience`` is a participant id, or ``None`` for the channel."""

    audience: int | None
    kind: NotificationKind
    snapshot: WarSnapshot
    detail: str | None = None


class NotificationSink(Protocol):
    async def deliver(self, notification: Notification) -> None: ...


class PersistenceSink(Protocol):
    """Write-only durable record of wars. Calls are blocking and may raise boto errors."""

    def record_war_created(self, event: WarEvent) -> None: ...

    def record_roster_locked(self, event: WarEvent) -> None: ...

    def record_maps_planned(self, event: WarEvent) -> None: ...

    def record_map_score(self, event_id: int, result: MapResult) -> None: ...

    def record_vod(self, event_id: int, vod_url: str) -> None: ...

    def record_substitution(
        self, event_id: int, index: int, substitution: Substitution
    ) -> None: ...

    def record_no_show(self, event_id: int, no_show: NoShow) -> None: ...

    def record_war_status(self, event: WarEvent) -> None: ...


class IdentityResolver(Protocol):
    async def resolve(self, token: str) -> RosterMember: ...


__all__ = [
    "Authorizer",
    "IdentityResolver",
    "Notification",
    "NotificationKind",
    "NotificationSink",
    "PersistenceSink",
    "Signal",
    "allow_all",
]
