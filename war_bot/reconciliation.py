"""Keeps a locked roster whole when a selected player withdraws."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum

from .lifecycle import EventStateMachine
from .models import Roster, RosterMember, WarState

log = logging.getLogger("war-bot.reconciliation")


class OutcomeKind(StrEnum):
    NONE = "none"
    BACKUP_REMOVED = "backup_removed"
    PROMOTED = "promoted"
    REOPENED = "reopened"


@dataclass(slots=True, frozen=True)
class Escalation:
    event_id: int
    missing_starters: int


@dataclass(slots=True)
class ReconciliationOutcome:
    kind: OutcomeKind
    event_id: int
    withdrawn: RosterMember | None = None
    promoted: RosterMember | None = None
    backups: list[RosterMember] = field(default_factory=list)
    escalation: Escalation | None = None

    @property
    def changed(self) -> bool:
        return self.kind is not OutcomeKind.NONE


class ReconciliationEngine:
    """Runs after a pool retraction; callers hold the war's transaction lock."""

    def __init__(self, machine: EventStateMachine) -> None:
        self._machine = machine

    def on_signal_retracted(
        self, event_id: int, participant_id: int
    ) -> ReconciliationOutcome:
        event = self._machine.get(event_id)
        if event.state is not WarState.LOCKED or event.roster is None:
            return ReconciliationOutcome(OutcomeKind.NONE, event_id)
        roster = event.roster

        if roster.is_backup(participant_id):
            withdrawn = next(
                m for m in roster.backups if m.participant_id == participant_id
            )
            remaining = [m for m in roster.backups if m.participant_id != participant_id]
            self._machine.update_backups(event_id, remaining)
            log.info("War %s: backup %s withdrew", event_id, participant_id)
            return ReconciliationOutcome(
                OutcomeKind.BACKUP_REMOVED,
                event_id,
                withdrawn=withdrawn,
                backups=remaining,
            )

        if not roster.is_starter(participant_id):
            return ReconciliationOutcome(OutcomeKind.NONE, event_id)

        withdrawn = next(
            m for m in roster.starters if m.participant_id == participant_id
        )
        starters = [m for m in roster.starters if m.participant_id != participant_id]
        starter_ids = {m.participant_id for m in starters}
        candidates = [
            RosterMember(entry.participant_id, entry.display_name)
            for entry in self._machine.pool.available(event_id)
            if entry.participant_id not in starter_ids
            and entry.participant_id != participant_id
        ]

        if candidates:
            promoted, backups = candidates[0], candidates[1:]
            self._machine.relock(
                event_id, Roster(starters=[*starters, promoted], backups=backups)
            )
            log.info(
                "War %s: promoted %s to replace %s",
                event_id,
                promoted.participant_id,
                participant_id,
            )
            return ReconciliationOutcome(
                OutcomeKind.PROMOTED,
                event_id,
                withdrawn=withdrawn,
                promoted=promoted,
                backups=backups,
            )

        missing = event.team_size - len(starters)
        self._machine.reopen(event_id)
        log.warning(
            "War %s: no replacement for %s, roster re-opened (%s missing)",
            event_id,
            participant_id,
            missing,
        )
        return ReconciliationOutcome(
            OutcomeKind.REOPENED,
            event_id,
            withdrawn=withdrawn,
            escalation=Escalation(event_id=event_id, missing_starters=missing),
        )


__all__ = [
    "Escalation",
    "OutcomeKind",
    "ReconciliationEngine",
    "ReconciliationOutcome",
]
