from __future__ import annotations

import logging
from collections.abc import Iterable

from .errors import (
    InsufficientPoolError,
    InvalidFieldValueError,
    UnresolvedParticipantError,
)
from .lifecycle import EventStateMachine
from .models import PoolEntry, Roster, RosterMember, WarState
from .validation import dedupe

log = logging.getLogger("war-bot.roster")


def _member(entry: PoolEntry) -> RosterMember:
    return RosterMember(participant_id=entry.participant_id, display_name=entry.display_name)


class RosterSelector:
    """Splits a war's available pool into starters and backups and locks it."""

    def __init__(self, machine: EventStateMachine) -> None:
        self._machine = machine

    def _open_pool(self, event_id: int) -> tuple[int, list[PoolEntry]]:
        event = self._machine.guard(event_id, WarState.OPEN)
        return event.team_size, self._machine.pool.available(event_id)

    def auto_select(self, event_id: int) -> Roster:
        team_size, available = self._open_pool(event_id)
        if len(available) < team_size:
            raise InsufficientPoolError(
                f"Only {len(available)} of {team_size} needed players have signed up."
            )
        roster = Roster(
            starters=[_member(entry) for entry in available[:team_size]],
            backups=[_member(entry) for entry in available[team_size:]],
        )
        self._machine.lock(event_id, roster)
        log.info("War %s auto-selected first %s sign-ups", event_id, team_size)
        return roster

    def manual_select(self, event_id: int, starters: Iterable[int]) -> Roster:
        team_size, available = self._open_pool(event_id)
        chosen = dedupe(starters)
        if len(chosen) != team_size:
            raise InvalidFieldValueError(
                f"Please select exactly {team_size} starters ({len(chosen)} given)."
            )
        by_id = {entry.participant_id: entry for entry in available}
        unknown = [participant for participant in chosen if participant not in by_id]
        if unknown:
            raise UnresolvedParticipantError(
                f"{len(unknown)} selected player(s) have not signed up as available."
            )
        chosen_ids = set(chosen)
        roster = Roster(
            starters=[_member(e) for e in available if e.participant_id in chosen_ids],
            backups=[_member(e) for e in available if e.participant_id not in chosen_ids],
        )
        self._machine.lock(event_id, roster)
        log.info("War %s manually selected %s starters", event_id, team_size)
        return roster


__all__ = ["RosterSelector"]
