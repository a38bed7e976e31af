"""Per-war sign-up pool: who reacted, with which signal, and when."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from datetime import datetime

from .errors import EventNotFoundError
from .models import PoolEntry, SignalKind, utc_now

log = logging.getLogger("war-bot.pool")

PoolListener = Callable[[int], None]


class PoolRegistry:
    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._pools: dict[int, dict[int, PoolEntry]] = {}
        self._sequence = itertools.count(1)
        self._listeners: list[PoolListener] = []

    def add_listener(self, listener: PoolListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: PoolListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _changed(self, event_id: int) -> None:
        for listener in list(self._listeners):
            listener(event_id)

    # ----- Lifecycle -----
    def open(self, event_id: int) -> None:
        self._pools.setdefault(event_id, {})

    def discard(self, event_id: int) -> None:
        if self._pools.pop(event_id, None) is not None:
            self._changed(event_id)

    def __contains__(self, event_id: int) -> bool:
        return event_id in self._pools

    def _pool(self, event_id: int) -> dict[int, PoolEntry]:
        try:
            return self._pools[event_id]
        except KeyError:
            raise EventNotFoundError() from None

    # ----- Mutations -----
    def signal(
        self,
        event_id: int,
        participant_id: int,
        kind: SignalKind,
        display_name: str,
        *,
        at: datetime | None = None,
    ) -> PoolEntry:
        kind = SignalKind(kind)
        if kind is SignalKind.CANCEL_REQUEST:
            raise ValueError("cancel requests are not pool signals")
        pool = self._pool(event_id)
        existing = pool.get(participant_id)
        if existing is not None and existing.kind is kind:
            existing.display_name = display_name
            self._changed(event_id)
            return existing

        entry = PoolEntry(
            participant_id=participant_id,
            display_name=display_name,
            kind=kind,
            signalled_at=at or self._clock(),
            sequence=next(self._sequence),
        )
        pool[participant_id] = entry
        log.debug(
            "War %s: %s signalled %s", event_id, participant_id, kind.value
        )
        self._changed(event_id)
        return entry

    def retract(
        self,
        event_id: int,
        participant_id: int,
        *,
        kind: SignalKind | None = None,
    ) -> PoolEntry | None:
        if kind is not None:
            kind = SignalKind(kind)
        pool = self._pools.get(event_id)
        if pool is None:
            return None
        entry = pool.get(participant_id)
        if entry is None or (kind is not None and entry.kind is not kind):
            return None
        del pool[participant_id]
        self._changed(event_id)
        return entry

    # ----- Queries -----
    def get(self, event_id: int, participant_id: int) -> PoolEntry | None:
        return self._pool(event_id).get(participant_id)

    def snapshot(self, event_id: int) -> list[PoolEntry]:
        return sorted(self._pool(event_id).values(), key=lambda entry: entry.sort_key)

    def available(self, event_id: int) -> list[PoolEntry]:
        return [
            entry
            for entry in self.snapshot(event_id)
            if entry.kind is SignalKind.AVAILABLE
        ]

    def unavailable(self, event_id: int) -> list[PoolEntry]:
        return [
            entry
            for entry in self.snapshot(event_id)
            if entry.kind is SignalKind.UNAVAILABLE
        ]

    def is_available(self, event_id: int, participant_id: int) -> bool:
        entry = self._pools.get(event_id, {}).get(participant_id)
        return entry is not None and entry.kind is SignalKind.AVAILABLE


__all__ = ["PoolRegistry", "PoolListener"]
