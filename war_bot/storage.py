from __future__ import annotations

import logging

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from .models import (
    MapResult,
    NoShow,
    Participation,
    PlayerStats,
    RosterMember,
    RosterRole,
    Substitution,
    WarEvent,
    WarRecord,
    WarState,
    isoformat_utc,
    series_score,
)

log = logging.getLogger("war-bot.storage")

PLAYER_NO_SHOW_SK_TEMPLATE = "NOSHOW#%08d"
WAR_COUNTER_KEY = {"pk": "COUNTER", "sk": "WAR_ID"}
RECENT_MAP_LIMIT = 5


class WarStorage:
    """DynamoDB single-table record of wars, rosters, results and player history."""

    def __init__(self, table, *, first_war_id: int = 1) -> None:
        self._table = table
        self._first_war_id = first_war_id

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("War table is not configured")

    def _query(self, pk: str, sk_prefix: str) -> list[dict[str, object]]:
        resp = self._table.query(
            KeyConditionExpression=Key("pk").eq(pk) & Key("sk").begins_with(sk_prefix),
            Select="ALL_ATTRIBUTES",
        )
        return list(resp.get("Items", []))

    def _delete_if_exists(self, key: dict[str, str]) -> bool:
        try:
            self._table.delete_item(Key=key, ConditionExpression="attribute_exists(pk)")
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "ConditionalCheckFailedException":
                return False
            raise
        return True

    def reserve_war_id(self) -> int:
        """Atomically bump the stored war counter and return the new id."""
        self.ensure_table()
        resp = self._table.update_item(
            Key=WAR_COUNTER_KEY,
            UpdateExpression="SET last_id = if_not_exists(last_id, :base) + :one",
            ExpressionAttributeValues={":base": self._first_war_id - 1, ":one": 1},
            ReturnValues="UPDATED_NEW",
        )
        return int(resp["Attributes"]["last_id"])

    # ----- War summary -----
    def save_war(self, record: WarRecord) -> None:
        self.ensure_table()
        self._table.put_item(Item=record.to_item())

    def get_war(self, war_id: int) -> WarRecord | None:
        self.ensure_table()
        resp = self._table.get_item(Key=WarRecord.key(war_id))
        item = resp.get("Item")
        if not item:
            return None
        return WarRecord.from_item(item)

    def record_war_created(self, event: WarEvent) -> None:
        self.save_war(WarRecord.from_event(event))
        log.info("Stored war %s", event.event_id)

    def record_maps_planned(self, event: WarEvent) -> None:
        self.save_war(WarRecord.from_event(event))

    def record_war_status(self, event: WarEvent) -> None:
        self.save_war(WarRecord.from_event(event))
        if event.roster is None:
            self._clear_roster(event.event_id, keep=set())

    def record_vod(self, event_id: int, vod_url: str) -> None:
        self.ensure_table()
        self._table.update_item(
            Key=WarRecord.key(event_id),
            UpdateExpression="SET vod_url = :v",
            ExpressionAttributeValues={":v": vod_url},
        )

    # ----- Roster -----
    def record_roster_locked(self, event: WarEvent) -> None:
        self.save_war(WarRecord.from_event(event))
        roster = event.roster
        if roster is None:
            self._clear_roster(event.event_id, keep=set())
            return
        members = [(member, RosterRole.STARTER) for member in roster.starters] + [
            (member, RosterRole.BACKUP) for member in roster.backups
        ]
        self._clear_roster(
            event.event_id, keep={member.participant_id for member, _ in members}
        )
        for member, role in members:
            self._table.put_item(Item=member.to_item(event.event_id, role))
            participation = Participation(
                participant_id=member.participant_id,
                war_id=event.event_id,
                display_name=member.display_name,
                role=role,
            )
            self._table.put_item(Item=participation.to_item())

    def _clear_roster(self, war_id: int, *, keep: set[int]) -> int:
        self.ensure_table()
        removed = 0
        for member, _role in self.list_roster(war_id):
            if member.participant_id in keep:
                continue
            self._delete_if_exists(RosterMember.key(war_id, member.participant_id))
            self._delete_if_exists(Participation.key(member.participant_id, war_id))
            removed += 1
        return removed

    def list_roster(self, war_id: int) -> list[tuple[RosterMember, RosterRole]]:
        self.ensure_table()
        items = self._query(WarRecord.PK_TEMPLATE % war_id, "ROSTER#")
        return [RosterMember.from_item(item) for item in items]

    # ----- Maps -----
    def record_map_score(self, event_id: int, result: MapResult) -> None:
        self.ensure_table()
        self._table.put_item(Item=result.to_item(event_id))

    def list_maps(self, war_id: int) -> list[MapResult]:
        self.ensure_table()
        maps = [
            MapResult.from_item(item)
            for item in self._query(WarRecord.PK_TEMPLATE % war_id, "MAP#")
        ]
        maps.sort(key=lambda result: result.order)
        return maps

    # ----- Substitutions and no-shows -----
    def record_substitution(
        self, event_id: int, index: int, substitution: Substitution
    ) -> None:
        self.ensure_table()
        self._table.put_item(Item=substitution.to_item(event_id, index))

    def list_substitutions(self, war_id: int) -> list[Substitution]:
        self.ensure_table()
        items = self._query(WarRecord.PK_TEMPLATE % war_id, "SUB#")
        return [Substitution.from_item(item) for item in items]

    def record_no_show(self, event_id: int, no_show: NoShow) -> None:
        self.ensure_table()
        self._table.put_item(Item=no_show.to_item(event_id))
        self._table.put_item(
            Item={
                "pk": Participation.PK_TEMPLATE % no_show.participant_id,
                "sk": PLAYER_NO_SHOW_SK_TEMPLATE % event_id,
                "participant_id": str(no_show.participant_id),
                "war_id": event_id,
                "at": isoformat_utc(no_show.at),
            }
        )

    def list_no_shows(self, war_id: int) -> list[NoShow]:
        self.ensure_table()
        items = self._query(WarRecord.PK_TEMPLATE % war_id, "NOSHOW#")
        return [NoShow.from_item(item) for item in items]

    # ----- Player history -----
    def list_participations(self, participant_id: int) -> list[Participation]:
        self.ensure_table()
        items = self._query(Participation.PK_TEMPLATE % participant_id, "WAR#")
        return [Participation.from_item(item) for item in items]

    def no_show_count(self, participant_id: int) -> int:
        self.ensure_table()
        resp = self._table.query(
            KeyConditionExpression=Key("pk").eq(
                Participation.PK_TEMPLATE % participant_id
            )
            & Key("sk").begins_with("NOSHOW#"),
            Select="COUNT",
        )
        return int(resp.get("Count", 0))

    def player_stats(self, participant_id: int) -> PlayerStats:
        """Aggregate concluded wars the player started in.

        Backups are indexed too but only starters count towards the record.
        """
        stats = PlayerStats(participant_id=participant_id)
        for participation in self.list_participations(participant_id):
            if participation.role is not RosterRole.STARTER:
                continue
            record = self.get_war(participation.war_id)
            if record is None or record.status != WarState.CONCLUDED.value:
                continue
            maps = [result for result in self.list_maps(record.war_id) if result.scored]
            ours, theirs = series_score(maps)
            stats.wars += 1
            if ours > theirs:
                stats.wins += 1
            elif theirs > ours:
                stats.losses += 1
            stats.map_wins += ours
            stats.map_losses += theirs
            stats.recent_maps.extend((record.war_id, result) for result in maps)
        stats.recent_maps = stats.recent_maps[-RECENT_MAP_LIMIT:]
        stats.no_shows = self.no_show_count(participant_id)
        return stats


__all__ = ["WarStorage"]
