from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace

import pytest

import warbot
from conftest import FakeTable, make_params
from war_bot import WarCoordinator
from war_bot.config import WarBotSettings
from war_bot.interfaces import Notification, NotificationKind
from war_bot.models import (
    MapResult,
    MatchFormat,
    PlayerStats,
    PoolEntry,
    RosterMember,
    SignalKind,
    WarSnapshot,
    WarState,
)
from war_bot.wizard import WizardRegistry

SIGNED_AT = datetime(2024, 5, 1, 18, 0, tzinfo=UTC)


def make_snapshot(**overrides) -> WarSnapshot:
    values = {
        "event_id": 3,
        "opponent": "RivalClan",
        "match_format": MatchFormat.BO3,
        "team_size": 6,
        "start_display": "Fri May 03, 8:30 PM EDT",
        "state": WarState.OPEN,
    }
    values.update(overrides)
    return WarSnapshot(**values)


def make_settings(**overrides) -> WarBotSettings:
    values = {
        "discord_token": "token",
        "table_name": "wars",
        "war_channel_id": 10,
        "results_channel_id": 20,
        "recruit_ping_role_id": 5,
        "admin_ping_role_id": 6,
        "admin_role_ids": (77,),
    }
    values.update(overrides)
    return WarBotSettings(**values)


class FakeChannel:
    def __init__(self, channel_id: int) -> None:
        self.id = channel_id
        self.sent: list[dict[str, object]] = []

    async def send(self, content=None, *, embed=None, allowed_mentions=None):
        self.sent.append({"content": content, "embed": embed})


class FakeUser:
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def send(self, content: str) -> None:
        self.messages.append(content)


def test_reaction_kind_maps_known_emoji():
    assert warbot.reaction_kind("👍") is SignalKind.AVAILABLE
    assert warbot.reaction_kind("❌") is SignalKind.UNAVAILABLE
    assert warbot.reaction_kind("🛑") is SignalKind.CANCEL_REQUEST
    assert warbot.reaction_kind("🎉") is None


def test_parse_map_list_splits_on_commas_and_lines():
    assert warbot.parse_map_list("Frostfire, Sujo\nCrossroads;") == [
        "Frostfire",
        "Sujo",
        "Crossroads",
    ]


def test_is_war_admin(monkeypatch):
    monkeypatch.setattr(warbot, "settings", make_settings())
    admin = SimpleNamespace(guild_permissions=SimpleNamespace(administrator=True), roles=[])
    officer = SimpleNamespace(
        guild_permissions=SimpleNamespace(administrator=False),
        roles=[SimpleNamespace(id=77)],
    )
    member = SimpleNamespace(
        guild_permissions=SimpleNamespace(administrator=False),
        roles=[SimpleNamespace(id=1)],
    )

    assert warbot.is_war_admin(admin)
    assert warbot.is_war_admin(officer)
    assert not warbot.is_war_admin(member)
    assert not warbot.is_war_admin(SimpleNamespace())


def test_notification_text_variants():
    snapshot = make_snapshot()
    escalation = Notification(None, NotificationKind.RECRUITMENT_ESCALATION, snapshot, "2")
    promoted = Notification(7, NotificationKind.STARTER_CONFIRMED, snapshot, "promoted")
    filled = Notification(None, NotificationKind.POOL_FILLED, snapshot)

    assert warbot.notification_text(escalation, recruit_role_id=5).startswith(
        "<@&5> We need 2 more player(s)"
    )
    assert "now a starter" in warbot.notification_text(promoted)
    assert warbot.notification_text(filled).startswith("War #3 vs RivalClan")
    cancelled = Notification(None, NotificationKind.WAR_CANCELLED, snapshot)
    assert warbot.notification_text(cancelled).endswith("has been cancelled.")


def test_signup_embed_lists_pool_and_roster():
    snapshot = make_snapshot(
        state=WarState.LOCKED,
        team_size=1,
        starters=(RosterMember(1, "Ghost"),),
        planned_maps=("Frostfire - Suppression",),
    )
    entries = [
        PoolEntry(1, "Ghost", SignalKind.AVAILABLE, SIGNED_AT, 1),
        PoolEntry(2, "Viper", SignalKind.UNAVAILABLE, SIGNED_AT, 2),
    ]

    embed = warbot.build_signup_embed(snapshot, entries)
    fields = {field.name: field.value for field in embed.fields}

    assert fields["Status"] == "Locked"
    assert fields["Starters (1)"] == "1. Ghost"
    assert fields["Backups (0)"] == "None yet"
    assert fields["Available (1/1)"] == "1. Ghost"
    assert fields["Unavailable (1)"] == "Viper"
    assert fields["Maps (0-0)"] == "1. Frostfire - Suppression"


def test_result_embed_reports_outcome():
    snapshot = make_snapshot(
        state=WarState.CONCLUDED,
        maps=(
            MapResult(1, "Frostfire - Suppression", 6, 2, "SEALs"),
            MapResult(2, "Sujo - Breach", 3, 6),
            MapResult(3, "Crossroads - Demolition", 6, 4),
        ),
        vod_url="https://example.com/vod",
    )

    embed = warbot.build_result_embed(snapshot)

    assert embed.title == "Victory vs RivalClan (2-1)"
    maps = next(field.value for field in embed.fields if field.name == "Maps")
    assert "1. Frostfire - Suppression: 6-2 as SEALs" in maps
    assert any(field.name == "VOD" for field in embed.fields)


def test_stats_embed():
    stats = PlayerStats(
        participant_id=1,
        wars=3,
        wins=2,
        losses=1,
        map_wins=5,
        map_losses=3,
        no_shows=1,
        recent_maps=[(4, MapResult(1, "Sujo - Breach", 6, 1))],
    )

    embed = warbot.build_stats_embed("Ghost", stats)
    fields = {field.name: field.value for field in embed.fields}

    assert fields["Series"] == "2W - 1L"
    assert fields["Recent maps"] == "#4 Sujo - Breach: 6-1"


def test_wizard_embed_marks_unset_fields():
    session = WizardRegistry().start(1)
    embed = warbot.build_wizard_embed(session)
    assert {field.value for field in embed.fields} == {"Not set"}


@pytest.mark.asyncio
async def test_sink_posts_results_to_results_channel(monkeypatch):
    channels = {10: FakeChannel(10), 20: FakeChannel(20)}

    async def fake_resolve(channel_id):
        return channels.get(channel_id)

    monkeypatch.setattr(warbot, "resolve_channel", fake_resolve)
    sink = warbot.DiscordNotificationSink(make_settings())
    snapshot = make_snapshot(state=WarState.CONCLUDED)

    await sink.deliver(Notification(None, NotificationKind.RESULT_POSTED, snapshot))
    await sink.deliver(Notification(None, NotificationKind.POOL_FILLED, snapshot))

    assert channels[20].sent[0]["embed"] is not None
    assert channels[10].sent[0]["content"].startswith("<@&6>")


@pytest.mark.asyncio
async def test_sink_direct_messages_respect_toggle(monkeypatch):
    user = FakeUser()
    monkeypatch.setattr(warbot.bot, "get_user", lambda user_id: user)
    notification = Notification(4, NotificationKind.BACKUP_CONFIRMED, make_snapshot())

    await warbot.DiscordNotificationSink(make_settings()).deliver(notification)
    await warbot.DiscordNotificationSink(make_settings(dm_notifications=False)).deliver(
        notification
    )

    assert len(user.messages) == 1
    assert user.messages[0].startswith("You are a backup for War #3")


def test_build_coordinator_wires_storage(monkeypatch):
    monkeypatch.setattr(warbot, "storage", warbot.storage)
    table = FakeTable()
    built = warbot.build_coordinator(make_settings(first_war_id=40), table)

    assert isinstance(built, WarCoordinator)
    assert built.persistence is warbot.storage
    assert built.machine.create(make_params()).event_id == 40

    restarted = warbot.build_coordinator(make_settings(first_war_id=40), table)
    assert restarted.machine.create(make_params()).event_id == 41
