"""Async entry points used by the Discord layer.

``WarCoordinator`` serializes every change to one war under that war's
transaction lock, commits it in memory, then performs best-effort persistence
writes and notification requests. A failing collaborator is logged and never
rolls a transition back.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta

from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    EventNotFoundError,
    InsufficientPoolError,
    UnauthorizedError,
    UnresolvedParticipantError,
)
from .interfaces import (
    Authorizer,
    IdentityResolver,
    Notification,
    NotificationKind,
    NotificationSink,
    PersistenceSink,
    Signal,
    allow_all,
)
from .lifecycle import EventStateMachine
from .models import (
    MapResult,
    NoShow,
    PlayerStats,
    PoolEntry,
    SignalKind,
    Substitution,
    WarCreationParams,
    WarEvent,
    WarSnapshot,
    WarState,
    utc_now,
)
from .pool import PoolRegistry
from .reconciliation import OutcomeKind, ReconciliationEngine, ReconciliationOutcome
from .roster import RosterSelector
from .validation import parse_substitutions
from .wizard import WizardField, WizardRegistry, WizardSession

log = logging.getLogger("war-bot")

ChangeListener = Callable[[WarSnapshot], Awaitable[None]]

NOTIFICATION_LOG_SIZE = 500


class WarCoordinator:
    def __init__(
        self,
        *,
        machine: EventStateMachine | None = None,
        wizards: WizardRegistry | None = None,
        notifier: NotificationSink | None = None,
        persistence: PersistenceSink | None = None,
        resolver: IdentityResolver | None = None,
        authorizer: Authorizer = allow_all,
        stats_source=None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.machine = machine if machine is not None else EventStateMachine(clock=clock)
        self.wizards = wizards if wizards is not None else WizardRegistry(clock=clock)
        self.selector = RosterSelector(self.machine)
        self.reconciler = ReconciliationEngine(self.machine)
        self.notifier = notifier
        self.persistence = persistence
        self.resolver = resolver
        self.authorizer = authorizer
        self.stats_source = stats_source if stats_source is not None else persistence
        self.notification_log: deque[Notification] = deque(maxlen=NOTIFICATION_LOG_SIZE)
        self._clock = clock
        self._change_listeners: list[ChangeListener] = []
        self._dirty: set[int] = set()
        self._filled: set[int] = set()
        self.machine.pool.add_listener(self._dirty.add)

    @property
    def pool(self) -> PoolRegistry:
        return self.machine.pool

    # ----- Collaborator plumbing -----
    def add_change_listener(self, listener: ChangeListener) -> None:
        self._change_listeners.append(listener)

    def _authorize(self, actor_id: int) -> None:
        if not self.authorizer(actor_id):
            log.info("Rejected war management request from %s", actor_id)
            raise UnauthorizedError()

    def _persist(self, action: str, event_id: int, *args) -> None:
        if self.persistence is None:
            return
        try:
            getattr(self.persistence, action)(*args)
        except (ClientError, BotoCoreError, RuntimeError) as exc:
            log.warning("Persistence %s failed for war %s: %s", action, event_id, exc)

    async def _notify(self, notifications: Iterable[Notification]) -> None:
        for notification in notifications:
            self.notification_log.append(notification)
            if self.notifier is None:
                continue
            try:
                await self.notifier.deliver(notification)
            except Exception:  # pylint: disable=broad-except
                log.exception(
                    "Failed to deliver %s for war %s",
                    notification.kind.value,
                    notification.snapshot.event_id,
                )

    async def _flush_changes(self) -> None:
        while self._dirty:
            event_id = self._dirty.pop()
            try:
                snapshot = self.machine.get(event_id).snapshot()
            except EventNotFoundError:
                continue
            for listener in list(self._change_listeners):
                try:
                    await listener(snapshot)
                except Exception:  # pylint: disable=broad-except
                    log.exception("Change listener failed for war %s", event_id)

    async def _finish(
        self, event_id: int, notifications: Iterable[Notification] = ()
    ) -> None:
        self._dirty.add(event_id)
        await self._notify(notifications)
        await self._flush_changes()

    def _notice(
        self,
        kind: NotificationKind,
        event: WarEvent,
        audience: int | None = None,
        detail: str | None = None,
    ) -> Notification:
        return Notification(
            audience=audience, kind=kind, snapshot=event.snapshot(), detail=detail
        )

    # ----- Queries -----
    def summary(self, event_id: int) -> WarSnapshot:
        return self.machine.get(event_id).snapshot()

    def active_wars(self) -> list[WarSnapshot]:
        return [event.snapshot() for event in self.machine.active_events()]

    def pool_snapshot(self, event_id: int) -> list[PoolEntry]:
        return self.pool.snapshot(event_id)

    def event_for_message(self, message_id: int) -> int | None:
        event = self.machine.find_by_message(message_id)
        return event.event_id if event is not None else None

    def player_stats(self, participant_id: int) -> PlayerStats:
        if self.stats_source is None:
            return PlayerStats(participant_id=participant_id)
        return self.stats_source.player_stats(participant_id)

    # ----- Wizard -----
    def start_wizard(self, actor_id: int, *, surface_id: int | None = None) -> WizardSession:
        self._authorize(actor_id)
        return self.wizards.start(actor_id, surface_id=surface_id)

    def set_wizard_field(
        self,
        actor_id: int,
        name: WizardField | str,
        value: object,
        *,
        override: bool = False,
    ) -> WizardSession:
        return self.wizards.set_field(actor_id, name, value, override=override)

    def cancel_wizard(self, actor_id: int) -> None:
        self.wizards.cancel(actor_id)

    def evict_idle_wizards(self, max_age: timedelta) -> list[int]:
        return self.wizards.evict_idle(max_age)

    async def complete_wizard(self, actor_id: int) -> WarSnapshot:
        self._authorize(actor_id)
        params = self.wizards.complete(actor_id)
        return await self.create_war(actor_id, params)

    # ----- Creation -----
    async def create_war(self, actor_id: int, params: WarCreationParams) -> WarSnapshot:
        self._authorize(actor_id)
        event = self.machine.create(params)
        async with self.machine.transaction(event.event_id):
            self._persist("record_war_created", event.event_id, event)
            snapshot = event.snapshot()
        await self._finish(event.event_id)
        return snapshot

    async def attach_message(
        self,
        event_id: int,
        *,
        channel_id: int | None,
        message_id: int | None,
        thread_id: int | None = None,
    ) -> WarSnapshot:
        async with self.machine.transaction(event_id):
            event = self.machine.attach_surface(
                event_id,
                channel_id=channel_id,
                message_id=message_id,
                thread_id=thread_id,
            )
            self._persist("record_war_status", event_id, event)
            return event.snapshot()

    # ----- Signals -----
    async def handle_signal(self, signal: Signal) -> PoolEntry | None:
        kind = SignalKind(signal.kind)
        if kind is SignalKind.CANCEL_REQUEST:
            if not self.authorizer(signal.participant_id):
                log.info(
                    "Ignoring cancel request on war %s from %s",
                    signal.event_id,
                    signal.participant_id,
                )
                return None
            await self.cancel(signal.participant_id, signal.event_id)
            return None

        notifications: list[Notification] = []
        async with self.machine.transaction(signal.event_id):
            event = self.machine.guard(
                signal.event_id, WarState.OPEN, WarState.LOCKED, WarState.IN_PROGRESS
            )
            previous = self.pool.get(signal.event_id, signal.participant_id)
            previous_kind = previous.kind if previous is not None else None
            entry = self.pool.signal(
                signal.event_id,
                signal.participant_id,
                kind,
                signal.display_name,
                at=signal.timestamp,
            )
            if previous_kind is SignalKind.AVAILABLE and kind is SignalKind.UNAVAILABLE:
                outcome = self.reconciler.on_signal_retracted(
                    signal.event_id, signal.participant_id
                )
                notifications.extend(self._after_reconciliation(outcome))
            elif kind is SignalKind.AVAILABLE:
                notifications.extend(self._check_pool_filled(event))
        await self._finish(signal.event_id, notifications)
        return entry

    async def retract_signal(
        self,
        event_id: int,
        participant_id: int,
        *,
        kind: SignalKind | None = None,
    ) -> ReconciliationOutcome:
        notifications: list[Notification] = []
        async with self.machine.transaction(event_id):
            event = self.machine.get(event_id)
            if event.is_terminal:
                return ReconciliationOutcome(OutcomeKind.NONE, event_id)
            removed = self.pool.retract(event_id, participant_id, kind=kind)
            if removed is None or removed.kind is not SignalKind.AVAILABLE:
                outcome = ReconciliationOutcome(OutcomeKind.NONE, event_id)
            else:
                outcome = self.reconciler.on_signal_retracted(event_id, participant_id)
                notifications.extend(self._after_reconciliation(outcome))
        await self._finish(event_id, notifications)
        return outcome

    def _check_pool_filled(self, event: WarEvent) -> list[Notification]:
        if event.state is not WarState.OPEN or event.event_id in self._filled:
            return []
        available = len(self.pool.available(event.event_id))
        if available < event.team_size:
            return []
        self._filled.add(event.event_id)
        log.info("War %s pool reached %s available", event.event_id, available)
        return [self._notice(NotificationKind.POOL_FILLED, event)]

    def _after_reconciliation(self, outcome: ReconciliationOutcome) -> list[Notification]:
        if not outcome.changed:
            return []
        event = self.machine.get(outcome.event_id)
        if outcome.kind is OutcomeKind.BACKUP_REMOVED:
            self._persist("record_roster_locked", event.event_id, event)
            return []
        if outcome.kind is OutcomeKind.PROMOTED and outcome.promoted is not None:
            self._persist("record_roster_locked", event.event_id, event)
            return [
                self._notice(
                    NotificationKind.STARTER_CONFIRMED,
                    event,
                    audience=outcome.promoted.participant_id,
                    detail="promoted",
                )
            ]
        # Re-opened: arm the pool-filled ping again for the next recruitment round.
        self._filled.discard(event.event_id)
        self._persist("record_war_status", event.event_id, event)
        missing = outcome.escalation.missing_starters if outcome.escalation else 1
        return [
            self._notice(NotificationKind.ROSTER_REOPENED, event),
            self._notice(
                NotificationKind.RECRUITMENT_ESCALATION,
                event,
                detail=str(missing),
            ),
        ]

    # ----- Roster selection -----
    def _lock_notifications(self, event: WarEvent) -> list[Notification]:
        if event.roster is None:
            return []
        snapshot = event.snapshot()
        notifications = [
            Notification(member.participant_id, NotificationKind.STARTER_CONFIRMED, snapshot)
            for member in event.roster.starters
        ]
        notifications.extend(
            Notification(member.participant_id, NotificationKind.BACKUP_CONFIRMED, snapshot)
            for member in event.roster.backups
        )
        return notifications

    async def auto_select(self, actor_id: int, event_id: int) -> WarSnapshot:
        self._authorize(actor_id)
        async with self.machine.transaction(event_id):
            try:
                self.selector.auto_select(event_id)
            except InsufficientPoolError:
                log.info("War %s auto-select rejected: pool too small", event_id)
                raise
            event = self.machine.get(event_id)
            self._persist("record_roster_locked", event_id, event)
            notifications = self._lock_notifications(event)
            snapshot = event.snapshot()
        await self._finish(event_id, notifications)
        return snapshot

    async def _resolve_participants(self, tokens: Iterable[int | str]) -> list[int]:
        resolved: list[int] = []
        for token in tokens:
            if isinstance(token, int):
                resolved.append(token)
                continue
            text = str(token).strip()
            if not text:
                continue
            if self.resolver is not None:
                member = await self.resolver.resolve(text)
                resolved.append(member.participant_id)
            elif text.isdigit():
                resolved.append(int(text))
            else:
                raise UnresolvedParticipantError(f"Could not find a player named {text}.")
        return resolved

    async def manual_select(
        self, actor_id: int, event_id: int, starters: Iterable[int | str]
    ) -> WarSnapshot:
        self._authorize(actor_id)
        self.machine.guard(event_id, WarState.OPEN)
        participant_ids = await self._resolve_participants(starters)
        async with self.machine.transaction(event_id):
            self.selector.manual_select(event_id, participant_ids)
            event = self.machine.get(event_id)
            self._persist("record_roster_locked", event_id, event)
            notifications = self._lock_notifications(event)
            snapshot = event.snapshot()
        await self._finish(event_id, notifications)
        return snapshot

    # ----- Maps and results -----
    async def plan_maps(
        self, actor_id: int, event_id: int, names: Iterable[str]
    ) -> list[str]:
        self._authorize(actor_id)
        async with self.machine.transaction(event_id):
            plan = self.machine.plan_maps(event_id, names)
            self._persist("record_maps_planned", event_id, self.machine.get(event_id))
        await self._finish(event_id)
        return plan

    async def record_map_score(
        self,
        actor_id: int,
        event_id: int,
        *,
        our_score: int | str,
        opp_score: int | str,
        map_name: str | None = None,
        side: str | None = None,
        order: int | None = None,
    ) -> MapResult:
        self._authorize(actor_id)
        async with self.machine.transaction(event_id):
            before = self.machine.get(event_id).state
            result = self.machine.record_map_score(
                event_id,
                our_score=our_score,
                opp_score=opp_score,
                map_name=map_name,
                side=side,
                order=order,
            )
            event = self.machine.get(event_id)
            self._persist("record_map_score", event_id, event_id, result)
            if event.state is not before:
                self._persist("record_war_status", event_id, event)
        await self._finish(event_id)
        return result

    async def log_no_show(
        self,
        actor_id: int,
        event_id: int,
        participant_id: int,
        display_name: str | None = None,
    ) -> NoShow | None:
        self._authorize(actor_id)
        async with self.machine.transaction(event_id):
            event = self.machine.get(event_id)
            if display_name is None:
                display_name = _known_name(event, self.pool, participant_id)
            no_show = self.machine.record_no_show(event_id, participant_id, display_name)
            if no_show is not None:
                self._persist("record_no_show", event_id, event_id, no_show)
        if no_show is not None:
            await self._finish(event_id)
        return no_show

    async def conclude(
        self,
        actor_id: int,
        event_id: int,
        *,
        vod_url: str | None = None,
        substitutions: str | None = None,
        notes: str | None = None,
    ) -> WarSnapshot:
        self._authorize(actor_id)
        now = self._clock()
        subs = [
            Substitution(participant_in=sub_in, participant_out=sub_out, note=note, at=now)
            for sub_in, sub_out, note in parse_substitutions(substitutions)
        ]
        async with self.machine.transaction(event_id):
            start_index = len(self.machine.get(event_id).substitutions)
            event = self.machine.conclude(
                event_id, vod_url=vod_url, substitutions=subs, notes=notes
            )
            self._persist("record_war_status", event_id, event)
            if event.vod_url:
                self._persist("record_vod", event_id, event_id, event.vod_url)
            for offset, substitution in enumerate(subs):
                self._persist(
                    "record_substitution",
                    event_id,
                    event_id,
                    start_index + offset,
                    substitution,
                )
            self._filled.discard(event_id)
            notification = self._notice(NotificationKind.RESULT_POSTED, event)
        await self._finish(event_id, [notification])
        return notification.snapshot

    async def cancel(self, actor_id: int, event_id: int) -> WarSnapshot:
        self._authorize(actor_id)
        async with self.machine.transaction(event_id):
            event = self.machine.cancel(event_id)
            self._filled.discard(event_id)
            self._persist("record_war_status", event_id, event)
            notification = self._notice(NotificationKind.WAR_CANCELLED, event)
        await self._finish(event_id, [notification])
        return notification.snapshot


def _known_name(event: WarEvent, pool: PoolRegistry, participant_id: int) -> str:
    if event.roster is not None:
        for member in [*event.roster.starters, *event.roster.backups]:
            if member.participant_id == participant_id:
                return member.display_name
    entry = pool.get(event.event_id, participant_id) if event.event_id in pool else None
    if entry is not None:
        return entry.display_name
    return str(participant_id)


__all__ = ["ChangeListener", "WarCoordinator"]
