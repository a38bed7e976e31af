from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import ClassVar
from zoneinfo import ZoneInfo

from .errors import RosterInvariantError

DEFAULT_TIMEZONE = "America/New_York"
TEAM_SIZES: tuple[int, ...] = (6, 7, 8)


def utc_now() -> datetime:
    return datetime.now(UTC)


def isoformat_utc(dt: datetime) -> str:
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_utc(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00")).astimezone(UTC)


class WarState(StrEnum):
    OPEN = "open"
    LOCKED = "locked"
    IN_PROGRESS = "in_progress"
    CONCLUDED = "concluded"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({WarState.CONCLUDED, WarState.CANCELLED})


class SignalKind(StrEnum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    CANCEL_REQUEST = "cancel_request"


class MatchFormat(StrEnum):
    BO3 = "BO3"
    BO5 = "BO5"

    @property
    def required_maps(self) -> int:
        return 3 if self is MatchFormat.BO3 else 5

    @property
    def label(self) -> str:
        return "Best of 3" if self is MatchFormat.BO3 else "Best of 5"


class RosterRole(StrEnum):
    STARTER = "starter"
    BACKUP = "backup"


@dataclass(slots=True)
class PoolEntry:
    participant_id: int
    display_name: str
    kind: SignalKind
    signalled_at: datetime
    sequence: int

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return self.signalled_at, self.sequence


@dataclass(slots=True, frozen=True)
class RosterMember:
    participant_id: int
    display_name: str

    PK_TEMPLATE: ClassVar[str] = "WAR#%s"
    SK_TEMPLATE: ClassVar[str] = "ROSTER#%s"

    @classmethod
    def key(cls, war_id: int, participant_id: int) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % war_id, "sk": cls.SK_TEMPLATE % participant_id}

    def to_item(self, war_id: int, role: RosterRole) -> dict[str, object]:
        item = self.key(war_id, self.participant_id)
        item.update(
            {
                "war_id": war_id,
                "participant_id": str(self.participant_id),
                "display_name": self.display_name,
                "role": role.value,
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> tuple[RosterMember, RosterRole]:
        member = cls(
            participant_id=int(str(item["participant_id"])),
            display_name=str(item.get("display_name", "")),
        )
        return member, RosterRole(str(item.get("role", RosterRole.BACKUP.value)))


@dataclass(slots=True)
class Roster:
    starters: list[RosterMember]
    backups: list[RosterMember] = field(default_factory=list)

    @property
    def starter_ids(self) -> list[int]:
        return [member.participant_id for member in self.starters]

    @property
    def backup_ids(self) -> list[int]:
        return [member.participant_id for member in self.backups]

    def is_starter(self, participant_id: int) -> bool:
        return participant_id in self.starter_ids

    def is_backup(self, participant_id: int) -> bool:
        return participant_id in self.backup_ids

    def copy(self) -> Roster:
        return Roster(starters=list(self.starters), backups=list(self.backups))

    def check(self, team_size: int) -> None:
        starter_ids = self.starter_ids
        backup_ids = self.backup_ids
        if len(starter_ids) != team_size:
            raise RosterInvariantError(
                f"roster has {len(starter_ids)} starters, expected {team_size}"
            )
        if len(set(starter_ids)) != len(starter_ids):
            raise RosterInvariantError("roster lists a starter twice")
        if len(set(backup_ids)) != len(backup_ids):
            raise RosterInvariantError("roster lists a backup twice")
        if set(starter_ids) & set(backup_ids):
            raise RosterInvariantError("roster has a player who is starter and backup")


@dataclass(slots=True)
class MapResult:
    order: int
    name: str
    our_score: int | None = None
    opp_score: int | None = None
    side: str | None = None

    PK_TEMPLATE: ClassVar[str] = "WAR#%s"
    SK_TEMPLATE: ClassVar[str] = "MAP#%03d"

    @property
    def scored(self) -> bool:
        return self.our_score is not None and self.opp_score is not None

    @property
    def won(self) -> bool | None:
        if not self.scored or self.our_score == self.opp_score:
            return None
        return self.our_score > self.opp_score  # type: ignore[operator]

    @classmethod
    def key(cls, war_id: int, order: int) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % war_id, "sk": cls.SK_TEMPLATE % order}

    def to_item(self, war_id: int) -> dict[str, object]:
        item = self.key(war_id, self.order)
        item.update({"war_id": war_id, "map_order": self.order, "map_name": self.name})
        if self.our_score is not None:
            item["our_score"] = self.our_score
        if self.opp_score is not None:
            item["opp_score"] = self.opp_score
        if self.side is not None:
            item["side"] = self.side
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> MapResult:
        our = item.get("our_score")
        opp = item.get("opp_score")
        side = item.get("side")
        return cls(
            order=int(item.get("map_order", 0)),
            name=str(item.get("map_name", "")),
            our_score=int(our) if our is not None else None,
            opp_score=int(opp) if opp is not None else None,
            side=str(side) if side is not None else None,
        )


@dataclass(slots=True)
class Substitution:
    participant_in: str
    participant_out: str
    note: str
    at: datetime

    PK_TEMPLATE: ClassVar[str] = "WAR#%s"
    SK_TEMPLATE: ClassVar[str] = "SUB#%s#%02d"

    def to_item(self, war_id: int, index: int) -> dict[str, object]:
        at_iso = isoformat_utc(self.at)
        return {
            "pk": self.PK_TEMPLATE % war_id,
            "sk": self.SK_TEMPLATE % (at_iso, index),
            "war_id": war_id,
            "participant_in": self.participant_in,
            "participant_out": self.participant_out,
            "note": self.note,
            "at": at_iso,
        }

    @classmethod
    def from_item(cls, item: dict[str, object]) -> Substitution:
        return cls(
            participant_in=str(item.get("participant_in", "")),
            participant_out=str(item.get("participant_out", "")),
            note=str(item.get("note", "")),
            at=parse_iso_utc(str(item["at"])),
        )


@dataclass(slots=True)
class NoShow:
    participant_id: int
    display_name: str
    at: datetime

    PK_TEMPLATE: ClassVar[str] = "WAR#%s"
    SK_TEMPLATE: ClassVar[str] = "NOSHOW#%s"

    @classmethod
    def key(cls, war_id: int, participant_id: int) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % war_id, "sk": cls.SK_TEMPLATE % participant_id}

    def to_item(self, war_id: int) -> dict[str, object]:
        item = self.key(war_id, self.participant_id)
        item.update(
            {
                "war_id": war_id,
                "participant_id": str(self.participant_id),
                "display_name": self.display_name,
                "at": isoformat_utc(self.at),
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> NoShow:
        return cls(
            participant_id=int(str(item["participant_id"])),
            display_name=str(item.get("display_name", "")),
            at=parse_iso_utc(str(item["at"])),
        )


@dataclass(slots=True, frozen=True)
class WarCreationParams:
    team_size: int
    match_format: MatchFormat
    opponent: str
    start_date: date
    start_time: str
    timezone: str = DEFAULT_TIMEZONE

    @property
    def start_display(self) -> str:
        day = self.start_date.strftime("%a %b %d")
        try:
            clock = datetime.strptime(self.start_time, "%I:%M %p").time()
        except ValueError:
            return f"{day}, {self.start_time}"
        local = datetime.combine(self.start_date, clock, tzinfo=ZoneInfo(self.timezone))
        return f"{day}, {self.start_time} {local.strftime('%Z')}"


@dataclass(slots=True, frozen=True)
class WarSnapshot:
    """Immutable copy of a war handed to collaborators outside the state machine."""

    event_id: int
    opponent: str
    match_format: MatchFormat
    team_size: int
    start_display: str
    state: WarState
    starters: tuple[RosterMember, ...] = ()
    backups: tuple[RosterMember, ...] = ()
    planned_maps: tuple[str, ...] = ()
    maps: tuple[MapResult, ...] = ()
    vod_url: str | None = None
    notes: str | None = None
    channel_id: int | None = None
    message_id: int | None = None

    def series_score(self) -> tuple[int, int]:
        return series_score(self.maps)


def series_score(maps) -> tuple[int, int]:
    ours = sum(1 for result in maps if result.won is True)
    theirs = sum(1 for result in maps if result.won is False)
    return ours, theirs


@dataclass(slots=True)
class WarEvent:
    event_id: int
    opponent: str
    match_format: MatchFormat
    team_size: int
    start_display: str
    created_at: datetime
    timezone: str = DEFAULT_TIMEZONE
    state: WarState = WarState.OPEN
    roster: Roster | None = None
    planned_maps: list[str] = field(default_factory=list)
    maps: list[MapResult] = field(default_factory=list)
    substitutions: list[Substitution] = field(default_factory=list)
    no_shows: list[NoShow] = field(default_factory=list)
    locked_at: datetime | None = None
    vod_url: str | None = None
    notes: str | None = None
    channel_id: int | None = None
    message_id: int | None = None
    thread_id: int | None = None

    @classmethod
    def from_params(
        cls, event_id: int, params: WarCreationParams, created_at: datetime
    ) -> WarEvent:
        return cls(
            event_id=event_id,
            opponent=params.opponent,
            match_format=params.match_format,
            team_size=params.team_size,
            start_display=params.start_display,
            created_at=created_at,
            timezone=params.timezone,
        )

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def map_result(self, order: int) -> MapResult | None:
        for result in self.maps:
            if result.order == order:
                return result
        return None

    def next_map_order(self) -> int:
        scored_orders = [result.order for result in self.maps if result.scored]
        return max(scored_orders, default=0) + 1

    def series_score(self) -> tuple[int, int]:
        return series_score(self.maps)

    def snapshot(self) -> WarSnapshot:
        roster = self.roster
        return WarSnapshot(
            event_id=self.event_id,
            opponent=self.opponent,
            match_format=self.match_format,
            team_size=self.team_size,
            start_display=self.start_display,
            state=self.state,
            starters=tuple(roster.starters) if roster else (),
            backups=tuple(roster.backups) if roster else (),
            planned_maps=tuple(self.planned_maps),
            maps=tuple(
                MapResult(r.order, r.name, r.our_score, r.opp_score, r.side)
                for r in sorted(self.maps, key=lambda r: r.order)
            ),
            vod_url=self.vod_url,
            notes=self.notes,
            channel_id=self.channel_id,
            message_id=self.message_id,
        )


@dataclass(slots=True)
class WarRecord:
    """Durable summary row of a war as written to the persistence table."""

    war_id: int
    opponent: str
    match_format: str
    team_size: int
    start_display: str
    status: str
    created_at: str
    locked_at: str | None = None
    vod_url: str | None = None
    notes: str | None = None
    planned_maps: list[str] = field(default_factory=list)
    channel_id: int | None = None
    message_id: int | None = None

    PK_TEMPLATE: ClassVar[str] = "WAR#%s"
    SK_VALUE: ClassVar[str] = "META"

    @classmethod
    def key(cls, war_id: int) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % war_id, "sk": cls.SK_VALUE}

    @classmethod
    def from_event(cls, event: WarEvent) -> WarRecord:
        return cls(
            war_id=event.event_id,
            opponent=event.opponent,
            match_format=event.match_format.value,
            team_size=event.team_size,
            start_display=event.start_display,
            status=event.state.value,
            created_at=isoformat_utc(event.created_at),
            locked_at=isoformat_utc(event.locked_at) if event.locked_at else None,
            vod_url=event.vod_url,
            notes=event.notes,
            channel_id=event.channel_id,
            planned_maps=list(event.planned_maps),
            message_id=event.message_id,
        )

    def to_item(self) -> dict[str, object]:
        item = self.key(self.war_id)
        item.update(
            {
                "war_id": self.war_id,
                "opponent": self.opponent,
                "format": self.match_format,
                "team_size": self.team_size,
                "start_display": self.start_display,
                "status": self.status,
                "created_at": self.created_at,
            }
        )
        if self.locked_at is not None:
            item["locked_at"] = self.locked_at
        if self.vod_url is not None:
            item["vod_url"] = self.vod_url
        if self.notes is not None:
            item["notes"] = self.notes
        if self.channel_id is not None:
            item["channel_id"] = str(self.channel_id)
        if self.message_id is not None:
            item["message_id"] = str(self.message_id)
        if self.planned_maps:
            item["planned_maps"] = list(self.planned_maps)
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> WarRecord:
        war_id = int(str(item["pk"]).split("#", 1)[1])
        channel_id = item.get("channel_id")
        message_id = item.get("message_id")
        return cls(
            war_id=war_id,
            opponent=str(item.get("opponent", "")),
            match_format=str(item.get("format", MatchFormat.BO3.value)),
            team_size=int(item.get("team_size", 0)),
            start_display=str(item.get("start_display", "")),
            status=str(item.get("status", WarState.OPEN.value)),
            created_at=str(item.get("created_at", "")),
            locked_at=str(item["locked_at"]) if item.get("locked_at") else None,
            vod_url=str(item["vod_url"]) if item.get("vod_url") else None,
            notes=str(item["notes"]) if item.get("notes") else None,
            channel_id=int(str(channel_id)) if channel_id else None,
            message_id=int(str(message_id)) if message_id else None,
            planned_maps=[str(name) for name in item.get("planned_maps") or []],
        )


@dataclass(slots=True)
class Participation:
    """Per-player index row pointing at a war the player was rostered for."""

    participant_id: int
    war_id: int
    display_name: str
    role: RosterRole

    PK_TEMPLATE: ClassVar[str] = "PLAYER#%s"
    SK_TEMPLATE: ClassVar[str] = "WAR#%08d"

    @classmethod
    def key(cls, participant_id: int, war_id: int) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % participant_id, "sk": cls.SK_TEMPLATE % war_id}

    def to_item(self) -> dict[str, object]:
        item = self.key(self.participant_id, self.war_id)
        item.update(
            {
                "participant_id": str(self.participant_id),
                "war_id": self.war_id,
                "display_name": self.display_name,
                "role": self.role.value,
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> Participation:
        return cls(
            participant_id=int(str(item["participant_id"])),
            war_id=int(item["war_id"]),
            display_name=str(item.get("display_name", "")),
            role=RosterRole(str(item.get("role", RosterRole.BACKUP.value))),
        )


@dataclass(slots=True)
class PlayerStats:
    participant_id: int
    wars: int = 0
    wins: int = 0
    losses: int = 0
    map_wins: int = 0
    map_losses: int = 0
    no_shows: int = 0
    recent_maps: list[tuple[int, MapResult]] = field(default_factory=list)


__all__ = [
    "DEFAULT_TIMEZONE",
    "TEAM_SIZES",
    "TERMINAL_STATES",
    "MatchFormat",
    "MapResult",
    "NoShow",
    "Participation",
    "PlayerStats",
    "PoolEntry",
    "Roster",
    "RosterMember",
    "RosterRole",
    "SignalKind",
    "Substitution",
    "WarCreationParams",
    "WarEvent",
    "WarRecord",
    "WarSnapshot",
    "WarState",
    "isoformat_utc",
    "parse_iso_utc",
    "series_score",
    "utc_now",
]
