"""Authoritative lifecycle of every war.

A war moves OPEN -> LOCKED -> IN_PROGRESS -> CONCLUDED, can be cancelled from
OPEN or LOCKED, and can fall back from LOCKED to OPEN when reconciliation runs
out of replacements. Only this module changes ``WarEvent.state`` or
``WarEvent.roster``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime

from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    EventNotFoundError,
    InvalidFieldValueError,
    InvalidStateError,
    RosterInvariantError,
    TerminalStateError,
)
from .models import (
    MapResult,
    NoShow,
    Roster,
    RosterMember,
    Substitution,
    WarCreationParams,
    WarEvent,
    WarState,
    utc_now,
)
from .pool import PoolRegistry
from .validation import (
    parse_side,
    validate_map_name,
    validate_map_plan,
    validate_score,
    validate_team_size,
    validate_vod_url,
)

log = logging.getLogger("war-bot.lifecycle")


class IdAllocator:
    """Hands out unique, increasing war ids, safe under concurrent callers.

    With ``reserve`` each id comes from a durable counter, so ids stay unique
    across restarts against the same store. The local counter is used only
    while the store is unreachable.
    """

    def __init__(
        self, start: int = 1, *, reserve: Callable[[], int] | None = None
    ) -> None:
        self._next = start
        self._reserve = reserve
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            value = self._next
            if self._reserve is not None:
                try:
                    value = max(value, self._reserve())
                except (ClientError, BotoCoreError, RuntimeError) as exc:
                    log.warning("War id counter unavailable, using %s: %s", value, exc)
            self._next = value + 1
            return value


class EventStateMachine:
    def __init__(
        self,
        pool: PoolRegistry | None = None,
        *,
        ids: IdAllocator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._pool = pool if pool is not None else PoolRegistry(clock=clock)
        self._ids = ids if ids is not None else IdAllocator()
        self._clock = clock
        self._events: dict[int, WarEvent] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    @property
    def pool(self) -> PoolRegistry:
        return self._pool

    # ----- Tracking -----
    def create(
        self, params: WarCreationParams, *, created_at: datetime | None = None
    ) -> WarEvent:
        validate_team_size(params.team_size)
        event_id = self._ids.allocate()
        event = WarEvent.from_params(event_id, params, created_at or self._clock())
        self._events[event_id] = event
        self._pool.open(event_id)
        log.info(
            "War %s created vs %s (%s, %sv%s)",
            event_id,
            event.opponent,
            event.match_format.value,
            event.team_size,
            event.team_size,
        )
        return event

    def get(self, event_id: int) -> WarEvent:
        try:
            return self._events[event_id]
        except KeyError:
            raise EventNotFoundError() from None

    def active_events(self) -> list[WarEvent]:
        return [event for event in self._events.values() if not event.is_terminal]

    def find_by_message(self, message_id: int) -> WarEvent | None:
        for event in self.active_events():
            if event.message_id == message_id:
                return event
        return None

    def attach_surface(
        self,
        event_id: int,
        *,
        channel_id: int | None,
        message_id: int | None,
        thread_id: int | None = None,
    ) -> WarEvent:
        event = self.get(event_id)
        event.channel_id = channel_id
        event.message_id = message_id
        if thread_id is not None:
            event.thread_id = thread_id
        return event

    def transaction(self, event_id: int) -> asyncio.Lock:
        """Per-war lock; hold it around any read-modify-write of one war."""
        lock = self._locks.get(event_id)
        if lock is None:
            lock = asyncio.Lock()
            event = self._events.get(event_id)
            # Unknown and finished wars get a throwaway lock.
            if event is not None and not event.is_terminal:
                self._locks[event_id] = lock
        return lock

    def guard(self, event_id: int, *allowed: WarState) -> WarEvent:
        event = self.get(event_id)
        if event.state.is_terminal:
            raise TerminalStateError()
        if event.state not in allowed:
            raise InvalidStateError(
                f"War #{event_id} is {event.state.value.replace('_', ' ')}; "
                "that action is not available right now."
            )
        return event

    def _install(self, event: WarEvent, roster: Roster) -> None:
        try:
            roster.check(event.team_size)
        except RosterInvariantError:
            log.critical("Refusing invalid roster for war %s", event.event_id)
            raise
        event.roster = roster.copy()
        event.locked_at = self._clock()

    # ----- Roster transitions -----
    def lock(self, event_id: int, roster: Roster) -> WarEvent:
        event = self.guard(event_id, WarState.OPEN)
        self._install(event, roster)
        event.state = WarState.LOCKED
        log.info(
            "War %s locked with %d starters and %d backups",
            event_id,
            len(roster.starters),
            len(roster.backups),
        )
        return event

    def relock(self, event_id: int, roster: Roster) -> WarEvent:
        event = self.guard(event_id, WarState.LOCKED)
        self._install(event, roster)
        log.info("War %s re-locked after roster change", event_id)
        return event

    def reopen(self, event_id: int) -> WarEvent:
        event = self.guard(event_id, WarState.LOCKED)
        event.roster = None
        event.locked_at = None
        event.state = WarState.OPEN
        log.info("War %s re-opened; roster cleared", event_id)
        return event

    def update_backups(
        self, event_id: int, backups: Iterable[RosterMember]
    ) -> WarEvent:
        """Replace backups in place without counting as a new lock."""
        event = self.guard(event_id, WarState.LOCKED, WarState.IN_PROGRESS)
        if event.roster is None:
            raise RosterInvariantError(
                f"war {event_id} is {event.state.value} without a roster"
            )
        roster = Roster(starters=list(event.roster.starters), backups=list(backups))
        roster.check(event.team_size)
        event.roster = roster
        return event

    # ----- Maps and results -----
    def plan_maps(self, event_id: int, names: Iterable[str]) -> list[str]:
        event = self.guard(event_id, WarState.OPEN, WarState.LOCKED)
        plan = validate_map_plan(list(names), event.match_format)
        event.planned_maps = plan
        return list(plan)

    def record_map_score(
        self,
        event_id: int,
        *,
        our_score: int | str,
        opp_score: int | str,
        map_name: str | None = None,
        side: str | None = None,
        order: int | None = None,
    ) -> MapResult:
        event = self.guard(event_id, WarState.LOCKED, WarState.IN_PROGRESS)
        ours = validate_score(our_score, label="Our score")
        theirs = validate_score(opp_score, label="Opponent score")
        resolved_side = parse_side(side) if side else None
        map_order = order if order is not None else event.next_map_order()
        if map_order < 1:
            raise InvalidFieldValueError("Map order starts at 1.")
        if map_name:
            name = validate_map_name(map_name)
        elif map_order <= len(event.planned_maps):
            name = event.planned_maps[map_order - 1]
        else:
            name = f"Map {map_order}"

        result = event.map_result(map_order)
        if result is None:
            result = MapResult(order=map_order, name=name)
            event.maps.append(result)
            event.maps.sort(key=lambda item: item.order)
        result.name = name
        result.our_score = ours
        result.opp_score = theirs
        result.side = resolved_side

        if event.state is WarState.LOCKED:
            event.state = WarState.IN_PROGRESS
            log.info("War %s is now in progress", event_id)
        return result

    def record_no_show(
        self,
        event_id: int,
        participant_id: int,
        display_name: str,
        *,
        at: datetime | None = None,
    ) -> NoShow | None:
        event = self.guard(event_id, WarState.LOCKED, WarState.IN_PROGRESS)
        if any(entry.participant_id == participant_id for entry in event.no_shows):
            return None
        no_show = NoShow(
            participant_id=participant_id,
            display_name=display_name,
            at=at or self._clock(),
        )
        event.no_shows.append(no_show)
        return no_show

    def conclude(
        self,
        event_id: int,
        *,
        vod_url: str | None = None,
        substitutions: Iterable[Substitution] = (),
        notes: str | None = None,
    ) -> WarEvent:
        event = self.guard(event_id, WarState.IN_PROGRESS)
        event.vod_url = validate_vod_url(vod_url) or event.vod_url
        event.substitutions.extend(substitutions)
        if notes and notes.strip():
            event.notes = notes.strip()
        event.state = WarState.CONCLUDED
        self._locks.pop(event_id, None)
        ours, theirs = event.series_score()
        log.info("War %s concluded %s-%s", event_id, ours, theirs)
        return event

    def cancel(self, event_id: int) -> WarEvent:
        event = self.guard(event_id, WarState.OPEN, WarState.LOCKED)
        event.roster = None
        event.state = WarState.CANCELLED
        self._pool.discard(event_id)
        self._locks.pop(event_id, None)
        log.info("War %s cancelled", event_id)
        return event


__all__ = ["EventStateMachine", "IdAllocator"]
