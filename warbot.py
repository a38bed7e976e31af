#!/usr/bin/env python3
"""Discord bot coordinating SOCOM II clan war sign-ups, rosters and results."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence
from datetime import UTC, date, datetime, timedelta
from typing import Final

import boto3
import discord
from discord import app_commands
from discord.abc import Messageable
from discord.ext import tasks

from war_bot import (
    EventStateMachine,
    IdAllocator,
    Notification,
    NotificationKind,
    RosterMember,
    Signal,
    SignalKind,
    UnresolvedParticipantError,
    WarBotError,
    WarCoordinator,
    WarSnapshot,
    WarState,
    WarStorage,
    WizardField,
    WizardRegistry,
)
from war_bot.config import WarBotSettings
from war_bot.maps import DECIDER_MAPS, MAP_POOL, SIDES
from war_bot.models import PlayerStats, PoolEntry
from war_bot.pool import PoolRegistry
from war_bot.validation import parse_participant_tokens
from war_bot.wizard import WizardSession

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
log = logging.getLogger("war-bot")

AVAILABLE_EMOJI: Final[str] = "👍"
UNAVAILABLE_EMOJI: Final[str] = "❌"
CANCEL_EMOJI: Final[str] = "🛑"
REACTION_KINDS: Final[dict[str, SignalKind]] = {
    AVAILABLE_EMOJI: SignalKind.AVAILABLE,
    UNAVAILABLE_EMOJI: SignalKind.UNAVAILABLE,
    CANCEL_EMOJI: SignalKind.CANCEL_REQUEST,
}
WIZARD_IDLE_LIMIT: Final[timedelta] = timedelta(hours=2)

STATE_COLORS: Final[dict[WarState, discord.Color]] = {
    WarState.OPEN: discord.Color.green(),
    WarState.LOCKED: discord.Color.blue(),
    WarState.IN_PROGRESS: discord.Color.orange(),
    WarState.CONCLUDED: discord.Color.dark_grey(),
    WarState.CANCELLED: discord.Color.red(),
}
_MAP_SPLIT = re.compile(r"[,\n;]+")

# ---------- Discord Setup ----------
intents = discord.Intents.default()
intents.guilds = True
intents.members = True
intents.guild_reactions = True

bot = discord.Client(intents=intents)
tree = app_commands.CommandTree(bot)
war_group = app_commands.Group(name="warbot", description="Organise clan wars")

settings: WarBotSettings | None = None
storage = WarStorage(None)


# ---------- Permission Checks ----------
def is_war_admin(member: object) -> bool:
    guild_perms = getattr(member, "guild_permissions", None)
    if getattr(guild_perms, "administrator", False):
        return True
    admin_roles = set(settings.admin_role_ids) if settings is not None else set()
    for role in getattr(member, "roles", None) or []:
        if getattr(role, "id", None) in admin_roles:
            return True
    return False


def _find_member(user_id: int) -> discord.Member | None:
    guilds = bot.guilds
    if settings is not None and settings.guild_id is not None:
        guild = bot.get_guild(settings.guild_id)
        guilds = [guild] if guild is not None else []
    for guild in guilds:
        member = guild.get_member(user_id)
        if member is not None:
            return member
    return None


def authorize_actor(actor_id: int) -> bool:
    member = _find_member(actor_id)
    return member is not None and is_war_admin(member)


# ---------- Presentation helpers ----------
def mention(role_id: int | None) -> str:
    return f"<@&{role_id}>" if role_id else ""


def war_title(snapshot: WarSnapshot) -> str:
    return f"War #{snapshot.event_id} vs {snapshot.opponent} ({snapshot.start_display})"


def reaction_kind(emoji: object) -> SignalKind | None:
    return REACTION_KINDS.get(str(emoji))


def parse_map_list(raw: str) -> list[str]:
    return [part.strip() for part in _MAP_SPLIT.split(raw) if part.strip()]


def format_member_lines(members: Sequence[RosterMember | PoolEntry]) -> str:
    if not members:
        return "None yet"
    return "\n".join(
        f"{index}. {member.display_name}" for index, member in enumerate(members, 1)
    )


def format_map_lines(snapshot: WarSnapshot) -> str:
    results = {result.order: result for result in snapshot.maps}
    orders = sorted(set(results) | set(range(1, len(snapshot.planned_maps) + 1)))
    lines: list[str] = []
    for order in orders:
        result = results.get(order)
        name = (
            result.name
            if result is not None
            else snapshot.planned_maps[order - 1]
        )
        if result is not None and result.scored:
            side = f" as {result.side}" if result.side else ""
            lines.append(
                f"{order}. {name}: {result.our_score}-{result.opp_score}{side}"
            )
        else:
            lines.append(f"{order}. {name}")
    return "\n".join(lines) if lines else "Not planned yet"


def build_signup_embed(snapshot: WarSnapshot, entries: Sequence[PoolEntry]) -> discord.Embed:
    available = [entry for entry in entries if entry.kind is SignalKind.AVAILABLE]
    unavailable = [entry for entry in entries if entry.kind is SignalKind.UNAVAILABLE]
    embed = discord.Embed(
        title=f"War #{snapshot.event_id} vs {snapshot.opponent}",
        description=(
            f"**{snapshot.team_size}v{snapshot.team_size}** · "
            f"{snapshot.match_format.label}\n{snapshot.start_display}"
        ),
        color=STATE_COLORS[snapshot.state],
        timestamp=datetime.now(UTC),
    )
    embed.add_field(
        name="Status", value=snapshot.state.value.replace("_", " ").title(), inline=False
    )
    if snapshot.starters:
        embed.add_field(
            name=f"Starters ({len(snapshot.starters)})",
            value=format_member_lines(snapshot.starters),
            inline=True,
        )
        embed.add_field(
            name=f"Backups ({len(snapshot.backups)})",
            value=format_member_lines(snapshot.backups),
            inline=True,
        )
    embed.add_field(
        name=f"Available ({len(available)}/{snapshot.team_size})",
        value=format_member_lines(available),
        inline=False,
    )
    if unavailable:
        embed.add_field(
            name=f"Unavailable ({len(unavailable)})",
            value=", ".join(entry.display_name for entry in unavailable),
            inline=False,
        )
    if snapshot.planned_maps or snapshot.maps:
        ours, theirs = snapshot.series_score()
        embed.add_field(
            name=f"Maps ({ours}-{theirs})", value=format_map_lines(snapshot), inline=False
        )
    embed.set_footer(
        text=(
            f"{AVAILABLE_EMOJI} available · {UNAVAILABLE_EMOJI} unavailable · "
            f"{CANCEL_EMOJI} cancel (admins)"
        )
    )
    return embed


def build_result_embed(snapshot: WarSnapshot) -> discord.Embed:
    ours, theirs = snapshot.series_score()
    if ours > theirs:
        outcome, color = "Victory", discord.Color.green()
    elif theirs > ours:
        outcome, color = "Defeat", discord.Color.red()
    else:
        outcome, color = "Draw", discord.Color.light_grey()
    embed = discord.Embed(
        title=f"{outcome} vs {snapshot.opponent} ({ours}-{theirs})",
        description=f"War #{snapshot.event_id} · {snapshot.start_display}",
        color=color,
        timestamp=datetime.now(UTC),
    )
    embed.add_field(name="Maps", value=format_map_lines(snapshot), inline=False)
    embed.add_field(
        name="Lineup", value=format_member_lines(snapshot.starters), inline=False
    )
    if snapshot.vod_url:
        embed.add_field(name="VOD", value=snapshot.vod_url, inline=False)
    if snapshot.notes:
        embed.add_field(name="Notes", value=snapshot.notes[:1024], inline=False)
    return embed


def build_stats_embed(display_name: str, stats: PlayerStats) -> discord.Embed:
    embed = discord.Embed(
        title=f"War record for {display_name}",
        color=discord.Color.teal(),
        timestamp=datetime.now(UTC),
    )
    embed.add_field(name="Wars", value=str(stats.wars), inline=True)
    embed.add_field(name="Series", value=f"{stats.wins}W - {stats.losses}L", inline=True)
    embed.add_field(
        name="Maps", value=f"{stats.map_wins}W - {stats.map_losses}L", inline=True
    )
    embed.add_field(name="No-shows", value=str(stats.no_shows), inline=True)
    if stats.recent_maps:
        embed.add_field(
            name="Recent maps",
            value="\n".join(
                f"#{war_id} {result.name}: {result.our_score}-{result.opp_score}"
                for war_id, result in stats.recent_maps
            ),
            inline=False,
        )
    return embed


def build_help_embed() -> discord.Embed:
    embed = discord.Embed(
        title="War bot commands",
        description=(
            f"React {AVAILABLE_EMOJI} on a sign-up post when you can play and "
            f"{UNAVAILABLE_EMOJI} when you cannot."
        ),
        color=discord.Color.blurple(),
    )
    commands = [
        ("/warbot new", "Start the war setup wizard (admins)."),
        ("/warbot select", "Lock the roster automatically or from a player list (admins)."),
        ("/warbot maps", "Plan the map list; the last map must be a Crossroads decider."),
        ("/warbot score", "Record a map score; the first score starts the war."),
        ("/warbot noshow", "Log a player who did not show up."),
        ("/warbot end", "Finish the war with VOD, substitutions and notes."),
        ("/warbot cancel", "Cancel a war before it starts."),
        ("/warbot summary", "Post a war summary to the results channel (or preview it)."),
        ("/warbot stats", "Show a player's war record."),
    ]
    for name, value in commands:
        embed.add_field(name=name, value=value, inline=False)
    return embed


def build_wizard_embed(session: WizardSession) -> discord.Embed:
    def show(value: object) -> str:
        return "Not set" if value is None else str(value)

    embed = discord.Embed(
        title="New war setup",
        description="Pick every field, then press Create.",
        color=discord.Color.gold(),
    )
    size = f"{session.team_size}v{session.team_size}" if session.team_size else None
    embed.add_field(name="Team size", value=show(size), inline=True)
    embed.add_field(
        name="Format",
        value=show(session.match_format.label if session.match_format else None),
        inline=True,
    )
    embed.add_field(name="Opponent", value=show(session.opponent), inline=True)
    embed.add_field(
        name="Date",
        value=show(session.start_date.strftime("%a %b %d") if session.start_date else None),
        inline=True,
    )
    embed.add_field(name="Time", value=show(session.start_time), inline=True)
    return embed


def notification_text(
    notification: Notification,
    *,
    recruit_role_id: int | None = None,
    admin_role_id: int | None = None,
) -> str:
    snapshot = notification.snapshot
    title = war_title(snapshot)
    kind = notification.kind
    if kind is NotificationKind.STARTER_CONFIRMED:
        if notification.detail == "promoted":
            return f"A starter dropped out: you are now a starter for {title}."
        return f"You are a starter for {title}. See you there!"
    if kind is NotificationKind.BACKUP_CONFIRMED:
        return f"You are a backup for {title}. Stay ready in case a starter drops."
    if kind is NotificationKind.ROSTER_REOPENED:
        return (
            f"The roster for {title} has been re-opened: "
            "a starter dropped and no backups are left."
        )
    if kind is NotificationKind.RECRUITMENT_ESCALATION:
        needed = notification.detail or "1"
        return (
            f"{mention(recruit_role_id)} We need {needed} more player(s) for {title}! "
            f"React {AVAILABLE_EMOJI} on the sign-up post."
        ).strip()
    if kind is NotificationKind.POOL_FILLED:
        return (
            f"{mention(admin_role_id)} {title} has enough sign-ups. "
            "Use /warbot select to lock the roster."
        ).strip()
    if kind is NotificationKind.RESULT_POSTED:
        ours, theirs = snapshot.series_score()
        return f"Result posted for {title}: {ours}-{theirs}."
    return f"{title} has been cancelled."


async def send_ephemeral(interaction: discord.Interaction, message: str) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(message, ephemeral=True)
    else:
        await interaction.response.send_message(message, ephemeral=True)


async def resolve_channel(channel_id: int | None) -> Messageable | None:
    if channel_id is None:
        return None
    channel = bot.get_channel(channel_id)
    if channel is not None:
        return channel  # type: ignore[return-value]
    try:
        return await bot.fetch_channel(channel_id)  # type: ignore[return-value]
    except (discord.NotFound, discord.Forbidden, discord.HTTPException) as exc:
        log.warning("Cannot reach channel %s: %s", channel_id, exc)
        return None


# ---------- Collaborators ----------
class DiscordNotificationSink:
    """Delivers role DMs and channel announcements for war notifications."""

    def __init__(self, config: WarBotSettings) -> None:
        self._config = config

    async def deliver(self, notification: Notification) -> None:
        text = notification_text(
            notification,
            recruit_role_id=self._config.recruit_ping_role_id,
            admin_role_id=self._config.admin_ping_role_id,
        )
        if notification.audience is not None:
            if self._config.dm_notifications:
                await self._direct_message(notification.audience, text)
            return

        snapshot = notification.snapshot
        channel_id = snapshot.channel_id or self._config.war_channel_id
        embed = None
        if notification.kind is NotificationKind.RESULT_POSTED:
            channel_id = self._config.results_channel_id or channel_id
            embed = build_result_embed(snapshot)
        channel = await resolve_channel(channel_id)
        if channel is None:
            return
        try:
            await channel.send(
                text,
                embed=embed,
                allowed_mentions=discord.AllowedMentions(roles=True, users=False),
            )
        except discord.HTTPException as exc:
            log.warning(
                "Failed to post %s for war %s: %s",
                notification.kind.value,
                snapshot.event_id,
                exc,
            )

    async def _direct_message(self, user_id: int, text: str) -> None:
        user = bot.get_user(user_id)
        try:
            if user is None:
                user = await bot.fetch_user(user_id)
            await user.send(text)
        except discord.Forbidden:
            log.info("User %s does not accept DMs", user_id)
        except discord.HTTPException as exc:
            log.warning("Failed to DM %s: %s", user_id, exc)


_MENTION_ID = re.compile(r"^<@!?(\d+)>$")


class DiscordIdentityResolver:
    """Resolves mentions, ids and display names against guild members."""

    async def resolve(self, token: str) -> RosterMember:
        text = token.strip()
        match = _MENTION_ID.match(text)
        if match:
            text = match.group(1)
        if text.isdigit():
            member = _find_member(int(text))
            if member is not None:
                return RosterMember(member.id, member.display_name)
            return RosterMember(int(text), text)
        lowered = text.lstrip("@").lower()
        for guild in bot.guilds:
            for member in guild.members:
                if lowered in {member.display_name.lower(), member.name.lower()}:
                    return RosterMember(member.id, member.display_name)
        raise UnresolvedParticipantError(f"Could not find a member named {text}.")


async def refresh_signup_message(snapshot: WarSnapshot) -> None:
    if snapshot.channel_id is None or snapshot.message_id is None:
        return
    channel = await resolve_channel(snapshot.channel_id)
    if channel is None or not hasattr(channel, "get_partial_message"):
        return
    entries: list[PoolEntry] = []
    if snapshot.event_id in coordinator.pool:
        entries = coordinator.pool_snapshot(snapshot.event_id)
    embed = build_signup_embed(snapshot, entries)
    try:
        await channel.get_partial_message(snapshot.message_id).edit(embed=embed)
    except discord.HTTPException as exc:
        log.warning("Failed to refresh sign-up for war %s: %s", snapshot.event_id, exc)


def build_coordinator(config: WarBotSettings | None, table=None) -> WarCoordinator:
    global storage
    wizards = (
        WizardRegistry(
            timezone=config.timezone,
            window_days=config.wizard_window_days,
            evening_start=config.evening_window_start,
            evening_end=config.evening_window_end,
            max_sessions=config.wizard_max_sessions,
        )
        if config is not None
        else WizardRegistry()
    )
    first_war_id = config.first_war_id if config is not None else 1
    storage = WarStorage(table, first_war_id=first_war_id)
    machine = EventStateMachine(
        PoolRegistry(),
        ids=IdAllocator(
            start=first_war_id,
            reserve=storage.reserve_war_id if table is not None else None,
        ),
    )
    built = WarCoordinator(
        machine=machine,
        wizards=wizards,
        notifier=DiscordNotificationSink(config) if config is not None else None,
        persistence=storage if table is not None else None,
        resolver=DiscordIdentityResolver(),
        authorizer=authorize_actor,
        stats_source=storage,
    )
    built.add_change_listener(refresh_signup_message)
    return built


coordinator = build_coordinator(None)


def configure(config: WarBotSettings, table=None) -> WarCoordinator:
    """Bind settings and the DynamoDB table to the module-level runtime."""
    global settings, coordinator
    settings = config
    if table is None:
        dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
        table = dynamodb.Table(config.table_name)
    coordinator = build_coordinator(config, table)
    guild = discord.Object(id=config.guild_id) if config.guild_id is not None else None
    tree.add_command(war_group, guild=guild, override=True)
    return coordinator


# ---------- Wizard UI ----------
class TeamSizeSelect(discord.ui.Select):
    def __init__(self, wizard_view: WarWizardView) -> None:
        self.wizard_view = wizard_view
        super().__init__(
            placeholder="Team size",
            options=[
                discord.SelectOption(label=f"{size}v{size}", value=str(size))
                for size in (6, 7, 8)
            ],
            row=0,
        )

    async def callback(self, interaction: discord.Interaction) -> None:  # type: ignore[override]
        await self.wizard_view.set_field(interaction, WizardField.TEAM_SIZE, self.values[0])


class FormatSelect(discord.ui.Select):
    def __init__(self, wizard_view: WarWizardView) -> None:
        self.wizard_view = wizard_view
        super().__init__(
            placeholder="Format",
            options=[
                discord.SelectOption(label="Best of 3", value="BO3"),
                discord.SelectOption(label="Best of 5", value="BO5"),
            ],
            row=1,
        )

    async def callback(self, interaction: discord.Interaction) -> None:  # type: ignore[override]
        await self.wizard_view.set_field(interaction, WizardField.FORMAT, self.values[0])


class DateSelect(discord.ui.Select):
    def __init__(self, wizard_view: WarWizardView, choices: Sequence[date]) -> None:
        self.wizard_view = wizard_view
        super().__init__(
            placeholder="Date",
            options=[
                discord.SelectOption(label=day.strftime("%a %b %d"), value=day.isoformat())
                for day in choices[:25]
            ],
            row=2,
        )

    async def callback(self, interaction: discord.Interaction) -> None:  # type: ignore[override]
        await self.wizard_view.set_field(interaction, WizardField.DATE, self.values[0])


class TimeSelect(discord.ui.Select):
    def __init__(self, wizard_view: WarWizardView, choices: Sequence[str]) -> None:
        self.wizard_view = wizard_view
        super().__init__(
            placeholder="Start time",
            options=[discord.SelectOption(label=slot, value=slot) for slot in choices[:25]],
            row=3,
        )

    async def callback(self, interaction: discord.Interaction) -> None:  # type: ignore[override]
        await self.wizard_view.set_field(interaction, WizardField.TIME, self.values[0])


class OpponentModal(discord.ui.Modal):
    def __init__(self, wizard_view: WarWizardView) -> None:
        super().__init__(title="Opponent")
        self._wizard_view = wizard_view
        self.opponent_input = discord.ui.TextInput(
            label="Opponent clan", placeholder="RivalClan", max_length=50
        )
        self.add_item(self.opponent_input)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self._wizard_view.set_field(
            interaction, WizardField.OPPONENT, self.opponent_input.value
        )


class CustomTimeModal(discord.ui.Modal):
    def __init__(self, wizard_view: WarWizardView) -> None:
        super().__init__(title="Custom start time")
        self._wizard_view = wizard_view
        self.time_input = discord.ui.TextInput(
            label="Start time", placeholder="After the tournament, ~10 PM", max_length=50
        )
        self.add_item(self.time_input)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self._wizard_view.set_field(
            interaction, WizardField.TIME, self.time_input.value, override=True
        )


class WarWizardView(discord.ui.View):
    def __init__(self, admin_id: int) -> None:
        super().__init__(timeout=900)
        self.admin_id = admin_id
        self.message: discord.Message | None = None
        self.add_item(TeamSizeSelect(self))
        self.add_item(FormatSelect(self))
        self.add_item(DateSelect(self, coordinator.wizards.date_choices()))
        self.add_item(TimeSelect(self, coordinator.wizards.time_choices()))

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id == self.admin_id:
            return True
        await interaction.response.send_message(
            "Only the admin who started this setup can use it.", ephemeral=True
        )
        return False

    async def set_field(
        self,
        interaction: discord.Interaction,
        name: WizardField,
        value: str,
        *,
        override: bool = False,
    ) -> None:
        try:
            session = coordinator.set_wizard_field(
                self.admin_id, name, value, override=override
            )
        except WarBotError as exc:
            await send_ephemeral(interaction, str(exc))
            return
        await interaction.response.edit_message(
            embed=build_wizard_embed(session), view=self
        )

    async def on_timeout(self) -> None:  # pragma: no cover - UI timeout
        coordinator.cancel_wizard(self.admin_id)
        for child in self.children:
            if isinstance(child, (discord.ui.Button, discord.ui.Select)):
                child.disabled = True
        if self.message is not None:
            try:
                await self.message.edit(view=self)
            except discord.HTTPException:
                pass

    @discord.ui.button(label="Opponent", style=discord.ButtonStyle.primary, row=4)
    async def opponent_button(  # type: ignore[override]
        self, interaction: discord.Interaction, _button: discord.ui.Button
    ) -> None:
        await interaction.response.send_modal(OpponentModal(self))

    @discord.ui.button(label="Custom time", style=discord.ButtonStyle.secondary, row=4)
    async def custom_time_button(  # type: ignore[override]
        self, interaction: discord.Interaction, _button: discord.ui.Button
    ) -> None:
        await interaction.response.send_modal(CustomTimeModal(self))

    @discord.ui.button(label="Create", style=discord.ButtonStyle.success, row=4)
    async def create_button(  # type: ignore[override]
        self, interaction: discord.Interaction, _button: discord.ui.Button
    ) -> None:
        try:
            snapshot = await coordinator.complete_wizard(self.admin_id)
        except WarBotError as exc:
            await send_ephemeral(interaction, str(exc))
            return
        self.stop()
        await interaction.response.edit_message(
            content=f"Created war #{snapshot.event_id}.", embed=None, view=None
        )
        await post_signup(snapshot)

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.danger, row=4)
    async def cancel_button(  # type: ignore[override]
        self, interaction: discord.Interaction, _button: discord.ui.Button
    ) -> None:
        coordinator.cancel_wizard(self.admin_id)
        self.stop()
        await interaction.response.edit_message(
            content="War setup cancelled.", embed=None, view=None
        )


async def post_signup(snapshot: WarSnapshot) -> None:
    channel_id = settings.war_channel_id if settings is not None else None
    channel = await resolve_channel(channel_id)
    if channel is None:
        log.warning("No sign-up channel for war %s", snapshot.event_id)
        return
    embed = build_signup_embed(snapshot, coordinator.pool_snapshot(snapshot.event_id))
    try:
        message = await channel.send(embed=embed)
        for emoji in (AVAILABLE_EMOJI, UNAVAILABLE_EMOJI, CANCEL_EMOJI):
            await message.add_reaction(emoji)
    except discord.HTTPException as exc:
        log.warning("Failed to post sign-up for war %s: %s", snapshot.event_id, exc)
        return
    await coordinator.attach_message(
        snapshot.event_id, channel_id=message.channel.id, message_id=message.id
    )


class EndWarModal(discord.ui.Modal):
    def __init__(self, event_id: int) -> None:
        super().__init__(title=f"End war #{event_id}")
        self.event_id = event_id
        self.vod_input = discord.ui.TextInput(
            label="VOD link", required=False, placeholder="https://..."
        )
        self.subs_input = discord.ui.TextInput(
            label="Substitutions",
            required=False,
            style=discord.TextStyle.paragraph,
            placeholder="IN -> OUT (note), one per line",
        )
        self.notes_input = discord.ui.TextInput(
            label="Notes", required=False, style=discord.TextStyle.paragraph, max_length=1000
        )
        self.add_item(self.vod_input)
        self.add_item(self.subs_input)
        self.add_item(self.notes_input)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        try:
            snapshot = await coordinator.conclude(
                interaction.user.id,
                self.event_id,
                vod_url=self.vod_input.value or None,
                substitutions=self.subs_input.value or None,
                notes=self.notes_input.value or None,
            )
        except WarBotError as exc:
            await send_ephemeral(interaction, str(exc))
            return
        ours, theirs = snapshot.series_score()
        await send_ephemeral(
            interaction, f"War #{snapshot.event_id} finished {ours}-{theirs}."
        )


# ---------- Autocomplete ----------
async def war_autocomplete(
    _interaction: discord.Interaction, current: str
) -> list[app_commands.Choice[int]]:
    choices: list[app_commands.Choice[int]] = []
    needle = current.strip().lower()
    for snapshot in coordinator.active_wars():
        label = f"#{snapshot.event_id} vs {snapshot.opponent} ({snapshot.state.value})"
        if needle and needle not in label.lower():
            continue
        choices.append(app_commands.Choice(name=label[:100], value=snapshot.event_id))
    return choices[:25]


async def map_autocomplete(
    _interaction: discord.Interaction, current: str
) -> list[app_commands.Choice[str]]:
    needle = current.strip().lower()
    return [
        app_commands.Choice(name=name, value=name)
        for name in MAP_POOL
        if needle in name.lower()
    ][:25]


# ---------- Slash Commands ----------
@war_group.command(name="new", description="Start the war setup wizard")
async def new_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
) -> None:
    if not is_war_admin(interaction.user):
        await send_ephemeral(interaction, "You do not have permission to manage wars.")
        return
    try:
        session = coordinator.start_wizard(interaction.user.id)
    except WarBotError as exc:
        await send_ephemeral(interaction, str(exc))
        return
    view = WarWizardView(interaction.user.id)
    await interaction.response.send_message(
        embed=build_wizard_embed(session), view=view, ephemeral=True
    )
    try:
        view.message = await interaction.original_response()
    except discord.HTTPException:  # pragma: no cover - interaction expired
        view.message = None


@app_commands.describe(
    war="War to lock",
    mode="auto takes the earliest sign-ups, manual uses the players list",
    players="Manual starters: mentions or names separated by spaces or commas",
)
@app_commands.choices(
    mode=[
        app_commands.Choice(name="auto", value="auto"),
        app_commands.Choice(name="manual", value="manual"),
    ]
)
@app_commands.autocomplete(war=war_autocomplete)
@war_group.command(name="select", description="Lock the roster for a war")
async def select_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
    war: int,
    mode: str = "auto",
    players: str | None = None,
) -> None:
    await interaction.response.defer(ephemeral=True, thinking=True)
    try:
        if mode == "manual":
            tokens = parse_participant_tokens(players or "")
            snapshot = await coordinator.manual_select(interaction.user.id, war, tokens)
        else:
            snapshot = await coordinator.auto_select(interaction.user.id, war)
    except WarBotError as exc:
        await send_ephemeral(interaction, str(exc))
        return
    await send_ephemeral(
        interaction,
        f"Roster locked for war #{war}: {len(snapshot.starters)} starters, "
        f"{len(snapshot.backups)} backups.",
    )


@app_commands.describe(
    war="War to plan",
    maps=f"Comma separated map names; the last must be {' or '.join(DECIDER_MAPS)}",
)
@app_commands.autocomplete(war=war_autocomplete)
@war_group.command(name="maps", description="Plan the maps for a war")
async def maps_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction, war: int, maps: str
) -> None:
    try:
        plan = await coordinator.plan_maps(interaction.user.id, war, parse_map_list(maps))
    except WarBotError as exc:
        await send_ephemeral(interaction, str(exc))
        return
    await send_ephemeral(interaction, "Maps planned:\n" + "\n".join(plan))


@app_commands.describe(
    war="War being played",
    our_score="Rounds won by us (0-6)",
    opp_score="Rounds won by the opponent (0-6)",
    map_name="Map played (defaults to the planned map)",
    side="Side we started on",
    order="Map number to update (defaults to the next map)",
)
@app_commands.choices(
    side=[app_commands.Choice(name=side, value=side) for side in SIDES]
)
@app_commands.autocomplete(war=war_autocomplete, map_name=map_autocomplete)
@war_group.command(name="score", description="Record a map score")
async def score_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
    war: int,
    our_score: app_commands.Range[int, 0, 6],
    opp_score: app_commands.Range[int, 0, 6],
    map_name: str | None = None,
    side: str | None = None,
    order: int | None = None,
) -> None:
    try:
        result = await coordinator.record_map_score(
            interaction.user.id,
            war,
            our_score=our_score,
            opp_score=opp_score,
            map_name=map_name,
            side=side,
            order=order,
        )
    except WarBotError as exc:
        await send_ephemeral(interaction, str(exc))
        return
    await send_ephemeral(
        interaction,
        f"Map {result.order} ({result.name}): {result.our_score}-{result.opp_score} recorded.",
    )


@app_commands.describe(war="War affected", member="Player who did not show")
@app_commands.autocomplete(war=war_autocomplete)
@war_group.command(name="noshow", description="Log a no-show")
async def noshow_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction, war: int, member: discord.Member
) -> None:
    try:
        no_show = await coordinator.log_no_show(
            interaction.user.id, war, member.id, member.display_name
        )
    except WarBotError as exc:
        await send_ephemeral(interaction, str(exc))
        return
    if no_show is None:
        await send_ephemeral(interaction, f"{member.display_name} is already logged.")
        return
    await send_ephemeral(interaction, f"Logged {member.display_name} as a no-show.")


@app_commands.describe(war="War to finish")
@app_commands.autocomplete(war=war_autocomplete)
@war_group.command(name="end", description="Finish a war and post the result")
async def end_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction, war: int
) -> None:
    if not is_war_admin(interaction.user):
        await send_ephemeral(interaction, "You do not have permission to manage wars.")
        return
    await interaction.response.send_modal(EndWarModal(war))


@app_commands.describe(war="War to cancel")
@app_commands.autocomplete(war=war_autocomplete)
@war_group.command(name="cancel", description="Cancel a war")
async def cancel_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction, war: int
) -> None:
    try:
        await coordinator.cancel(interaction.user.id, war)
    except WarBotError as exc:
        await send_ephemeral(interaction, str(exc))
        return
    await send_ephemeral(interaction, f"War #{war} cancelled.")


@app_commands.describe(
    war="War to summarize",
    preview_only="Reply privately instead of posting to the results channel",
)
@app_commands.autocomplete(war=war_autocomplete)
@war_group.command(name="summary", description="Post a war summary to the results channel")
async def summary_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction, war: int, preview_only: bool = False
) -> None:
    try:
        snapshot = coordinator.summary(war)
    except WarBotError as exc:
        await send_ephemeral(interaction, str(exc))
        return
    if snapshot.state in (WarState.IN_PROGRESS, WarState.CONCLUDED):
        embed = build_result_embed(snapshot)
    else:
        entries = coordinator.pool_snapshot(war) if war in coordinator.pool else []
        embed = build_signup_embed(snapshot, entries)
    if preview_only:
        await interaction.response.send_message(
            "Preview only (not posted publicly).", embed=embed, ephemeral=True
        )
        return

    channel_id = None
    if settings is not None:
        channel_id = settings.results_channel_id or settings.war_channel_id
    channel = await resolve_channel(channel_id)
    if channel is None:
        await send_ephemeral(interaction, "The results channel is missing or unreachable.")
        return
    try:
        await channel.send(embed=embed)
    except discord.HTTPException as exc:
        log.warning("Failed to post summary for war %s: %s", war, exc)
        await send_ephemeral(interaction, "Could not post to the results channel.")
        return
    await interaction.response.send_message(
        f"Posted to <#{channel_id}>.", embed=embed, ephemeral=True
    )


@app_commands.describe(member="Player to look up (defaults to you)")
@war_group.command(name="stats", description="Show a player's war record")
async def stats_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction, member: discord.Member | None = None
) -> None:
    target = member or interaction.user
    await interaction.response.defer(ephemeral=True, thinking=True)
    try:
        stats = coordinator.player_stats(target.id)
    except RuntimeError as exc:
        await send_ephemeral(interaction, str(exc))
        return
    await interaction.followup.send(
        embed=build_stats_embed(target.display_name, stats), ephemeral=True
    )


@war_group.command(name="help", description="How the war bot works")
async def help_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
) -> None:
    await interaction.response.send_message(embed=build_help_embed(), ephemeral=True)


@tree.error
async def on_app_command_error(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction, error: app_commands.AppCommandError
) -> None:
    log.exception("Unhandled war command error: %s", error)
    try:
        await send_ephemeral(interaction, "An unexpected error occurred.")
    except discord.HTTPException:
        pass


# ---------- Reactions ----------
@bot.event
async def on_raw_reaction_add(  # pragma: no cover - Discord gateway wiring
    payload: discord.RawReactionActionEvent,
) -> None:
    if bot.user is not None and payload.user_id == bot.user.id:
        return
    kind = reaction_kind(payload.emoji)
    event_id = coordinator.event_for_message(payload.message_id)
    if kind is None or event_id is None:
        return
    member = payload.member or _find_member(payload.user_id)
    display_name = member.display_name if member is not None else str(payload.user_id)
    try:
        await coordinator.handle_signal(
            Signal.now(event_id, payload.user_id, display_name, kind)
        )
    except WarBotError as exc:
        log.info("Reaction on war %s ignored: %s", event_id, exc)


@bot.event
async def on_raw_reaction_remove(  # pragma: no cover - Discord gateway wiring
    payload: discord.RawReactionActionEvent,
) -> None:
    kind = reaction_kind(payload.emoji)
    if kind is None or kind is SignalKind.CANCEL_REQUEST:
        return
    event_id = coordinator.event_for_message(payload.message_id)
    if event_id is None:
        return
    try:
        await coordinator.retract_signal(event_id, payload.user_id, kind=kind)
    except WarBotError as exc:
        log.info("Reaction removal on war %s ignored: %s", event_id, exc)


# ---------- Lifecycle ----------
@tasks.loop(minutes=30)
async def evict_idle_wizards() -> None:  # pragma: no cover - background task
    evicted = coordinator.evict_idle_wizards(WIZARD_IDLE_LIMIT)
    if evicted:
        log.info("Dropped %d idle war setup session(s)", len(evicted))


@bot.event
async def on_ready() -> None:  # pragma: no cover - Discord lifecycle hook
    if settings is not None and settings.guild_id is not None:
        guild = discord.Object(id=settings.guild_id)
        tree.clear_commands(guild=None)
        await tree.sync(guild=None)
        await tree.sync(guild=guild)
        log.info("Commands synced to guild %s", settings.guild_id)
    else:
        await tree.sync()
        log.info("Commands synced globally")
    if not evict_idle_wizards.is_running():
        evict_idle_wizards.start()
    log.info("War bot ready as %s (%s)", bot.user, bot.user.id)


async def main() -> None:  # pragma: no cover - CLI entry point
    config = WarBotSettings.load()
    configure(config)
    async with bot:
        await bot.start(config.discord_token)


def run() -> None:  # pragma: no cover - console script
    asyncio.run(main())


if __name__ == "__main__":
    run()
