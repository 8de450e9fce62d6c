#!/usr/bin/env python3
"""
SquashBot Discord Bot
Discord front end for squash session scheduling: announcements with join /
leave buttons, slash commands for events, scaffolds and settings, and the
periodic scheduler loop.
"""

import asyncio
import concurrent.futures
import logging
from typing import Dict, List, Optional, Tuple, Type

import discord
from discord import app_commands
from discord.ext import tasks

from app.errors import SquashBotError
from app.models import Event, Registration, Scaffold
from app.services.actions import (ACTIONS_BY_NAME, BUTTON_ACTIONS, Actor, AddCourt,
                                  Announce, Cancel, Delete, EventAction, Finalize, Join,
                                  Leave, RemoveCourt, Restore, Transfer, UndoDelete,
                                  Unfinalize)
from app.services.event_service import format_start

logger = logging.getLogger('squashbot.discord')

CUSTOM_ID_PREFIX = 'event'

_BUTTONS = {
    Join:        ("I'm in", discord.ButtonStyle.success),
    Leave:       ("I'm out", discord.ButtonStyle.secondary),
    AddCourt:    ('+ court', discord.ButtonStyle.primary),
    RemoveCourt: ('- court', discord.ButtonStyle.primary),
    Finalize:    ('Finalize', discord.ButtonStyle.success),
    Unfinalize:  ('Undo finalize', discord.ButtonStyle.secondary),
    Cancel:      ('Cancel', discord.ButtonStyle.danger),
    Restore:     ('Restore', discord.ButtonStyle.secondary),
}

_BUTTONS_BY_STATUS = {
    'created':   (AddCourt, RemoveCourt, Cancel),
    'announced': (Join, Leave, AddCourt, RemoveCourt, Finalize, Cancel),
    'finalized': (Unfinalize,),
    'cancelled': (Restore,),
}

_STATUS_BADGE = {
    'created': '🕓',
    'announced': '📢',
    'finalized': '✅',
    'cancelled': '❌',
}


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def make_custom_id(action: Type[EventAction], event_id: str) -> str:
    """Build the ``event:<action>:<event_id>`` id carried by a button."""
    return f"{CUSTOM_ID_PREFIX}:{action.name}:{event_id}"


def parse_custom_id(custom_id: str) -> Optional[Tuple[Type[EventAction], str]]:
    """Return ``(action class, event id)`` for a button id, or ``None``.

    Only actions exposed as buttons are accepted.
    """
    parts = (custom_id or '').split(':', 2)
    if len(parts) != 3 or parts[0] != CUSTOM_ID_PREFIX or not parts[2]:
        return None
    action = ACTIONS_BY_NAME.get(parts[1])
    if action is None or action not in BUTTON_ACTIONS:
        return None
    return action, parts[2]


def format_announcement(event: Event, registrations: List[Registration],
                        timezone: str) -> str:
    """Render the announcement text for *event*."""
    badge = _STATUS_BADGE.get(event.status, '')
    lines = [f"{badge} **Squash: {format_start(event.start, timezone)}**",
             f"Courts: {event.courts}"]
    if event.status == 'cancelled':
        lines.append("**Cancelled**")
    elif event.status == 'finalized':
        lines.append("**Finalized**")

    total = sum(r.participations for r in registrations)
    lines.append('')
    lines.append(f"Participants ({total}):")
    if not registrations:
        lines.append("_nobody yet_")
    for number, registration in enumerate(registrations, start=1):
        extra = registration.participations - 1
        guests = f" (+{extra})" if extra > 0 else ''
        lines.append(f"{number}. {registration.participant.label}{guests}")
    lines.append('')
    lines.append(f"ID: `{event.id}`")
    return '\n'.join(lines)


def format_event_line(event: Event, timezone: str) -> str:
    return (f"`{event.id}` {_STATUS_BADGE.get(event.status, '')} "
            f"{format_start(event.start, timezone)} · {event.status} · {event.courts} court(s)")


def format_scaffold_line(scaffold: Scaffold) -> str:
    state = 'active' if scaffold.is_active else 'inactive'
    deadline = f" · announce {scaffold.announcement_deadline}" if scaffold.announcement_deadline else ''
    return (f"`{scaffold.id}` {scaffold.day_of_week} {scaffold.time} · "
            f"{scaffold.default_courts} court(s) · {state}{deadline}")


def build_event_view(event: Event) -> discord.ui.View:
    """Buttons for *event*'s current status.

    The view has no callbacks; clicks are routed by custom id in
    :meth:`SquashDiscordBot.on_interaction`, so buttons keep working after a
    restart.
    """
    view = discord.ui.View(timeout=None)
    for action in _BUTTONS_BY_STATUS.get(event.status, ()):
        label, style = _BUTTONS[action]
        view.add_item(discord.ui.Button(label=label, style=style,
                                        custom_id=make_custom_id(action, event.id)))
    return view


def actor_from(user) -> Actor:
    return Actor(user_id=str(user.id), username=user.name,
                 display_name=getattr(user, 'display_name', None) or user.name)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class DiscordTransport:
    """Messaging collaborator backed by the bot's main channel.

    The services are synchronous and run in worker threads
    (``asyncio.to_thread``); each call here schedules a coroutine on the bot's
    event loop and blocks until it finishes.  Never call it from the event
    loop thread itself.  Views are built inside the coroutines because
    ``discord.ui.View`` needs a running loop.
    """

    def __init__(self, bot: discord.Client, channel_id: int, timeout: float = 30.0) -> None:
        self._bot = bot
        self._channel_id = int(channel_id)
        self._timeout = timeout

    def post_announcement(self, event, registrations, timezone) -> Optional[str]:
        message = self._run(self._send(format_announcement(event, registrations, timezone),
                                       event=event))
        return str(message.id)

    def edit_announcement(self, event, registrations, timezone) -> None:
        if not event.message_id:
            return
        self._run(self._edit(int(event.message_id),
                             format_announcement(event, registrations, timezone), event))

    def send_message(self, text: str) -> None:
        self._run(self._send(text))

    # ------------------------------------------------------------------

    def _run(self, coro):
        future = asyncio.run_coroutine_threadsafe(coro, self._bot.loop)
        try:
            return future.result(self._timeout)
        except concurrent.futures.TimeoutError:
            # Nothing may be posted once the caller has given up.
            future.cancel()
            logger.warning("Discord call timed out after %ss", self._timeout)
            raise

    async def _channel(self):
        channel = self._bot.get_channel(self._channel_id)
        if channel is None:
            channel = await self._bot.fetch_channel(self._channel_id)
        return channel

    async def _send(self, content: str, event: Optional[Event] = None):
        channel = await self._channel()
        if event is None:
            return await channel.send(content)
        return await channel.send(content, view=build_event_view(event))

    async def _edit(self, message_id: int, content: str, event: Event) -> None:
        channel = await self._channel()
        try:
            message = await channel.fetch_message(message_id)
        except discord.NotFound:
            logger.warning("Announcement message %s no longer exists", message_id)
            return
        await message.edit(content=content, view=build_event_view(event))


# ---------------------------------------------------------------------------
# Bot
# ---------------------------------------------------------------------------

class SquashDiscordBot(discord.Client):
    """Discord bot for squash session scheduling.

    Args:
        config: Application configuration dict.
        core:   Object exposing ``settings``, ``events``, ``scaffolds``,
                ``scheduler`` and ``notifier`` (see ``squashbot.SquashBot``).
    """

    def __init__(self, config: Dict, core) -> None:
        intents = discord.Intents.default()
        super().__init__(intents=intents)

        self.tree = app_commands.CommandTree(self)
        self.config = config
        self.core = core
        self.check_interval = int(config.get('check_interval_minutes') or 5)
        self.check_loop = tasks.loop(minutes=self.check_interval)(self.run_scheduled_check)
        self.check_loop.before_loop(self.wait_until_ready)

        self.setup_commands()

    async def setup_hook(self) -> None:
        channel_id = self.core.settings.main_channel_id() or self.config.get('main_channel_id')
        if channel_id:
            self.core.events.set_transport(DiscordTransport(self, int(channel_id)))
        else:
            logger.warning("main_channel_id is not set; announcements will not be posted")
        self.check_loop.start()

    async def on_ready(self) -> None:
        logger.info("%s is now online", self.user)
        try:
            synced = await self.tree.sync()
            logger.info("Synced %d slash command(s)", len(synced))
        except discord.HTTPException as exc:
            logger.error("Failed to sync commands: %s", exc)
        if self.core.notifier is not None:
            await asyncio.to_thread(self.core.notifier.notify_event, 'bot_started',
                                    bot_name=str(self.user))

    async def run_scheduled_check(self) -> None:
        """One scheduler tick, off the event loop."""
        try:
            report = await asyncio.to_thread(self.core.scheduler.tick)
        except Exception:
            logger.exception("Scheduled event check failed")
            return
        if report.errors:
            logger.warning("Event check finished with %d error(s)", len(report.errors))

    # ------------------------------------------------------------------
    # Buttons
    # ------------------------------------------------------------------

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type != discord.InteractionType.component:
            return
        parsed = parse_custom_id((interaction.data or {}).get('custom_id', ''))
        if parsed is None:
            return
        action_cls, event_id = parsed
        await interaction.response.defer(ephemeral=True, thinking=False)
        action = action_cls(event_id, actor=actor_from(interaction.user))
        await self._execute(interaction, action, followup=True)

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _execute(self, interaction: discord.Interaction, action: EventAction,
                       followup: bool = False) -> None:
        try:
            result = await asyncio.to_thread(self.core.events.execute, action)
            text = f"{'✅' if result.changed else 'ℹ️'} {result.message or 'Done'}"
        except SquashBotError as exc:
            text = f"❌ {exc}"
        if followup:
            await interaction.followup.send(text, ephemeral=True)
        else:
            await interaction.response.send_message(text, ephemeral=True)

    async def _call(self, interaction: discord.Interaction, fn, *args, **kwargs):
        """Run a synchronous service call; reply with the error and return ``None`` on failure."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except SquashBotError as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return None

    def _is_admin(self, interaction: discord.Interaction) -> bool:
        return self.core.settings.is_admin(str(interaction.user.id))

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    def setup_commands(self):
        """Register slash commands"""
        event_group = app_commands.Group(name='event', description='Manage squash events')
        scaffold_group = app_commands.Group(name='scaffold', description='Manage weekly schedules')
        settings_group = app_commands.Group(name='settings', description='View and change settings')

        @self.tree.command(name='myid', description='Show your Discord user id')
        async def my_id(interaction: discord.Interaction):
            await interaction.response.send_message(
                f"Your user id: `{interaction.user.id}`", ephemeral=True)

        @self.tree.command(name='check', description='Run the event check now (admin)')
        async def check_now(interaction: discord.Interaction):
            if not self._is_admin(interaction):
                await interaction.response.send_message("❌ Only the admin can do this", ephemeral=True)
                return
            await interaction.response.defer(ephemeral=True)
            report = await asyncio.to_thread(self.core.scheduler.tick)
            summary = ', '.join(f"{k}: {v}" for k, v in report.to_dict().items() if k != 'errors')
            await interaction.followup.send(f"🔍 {summary}", ephemeral=True)

        # -- events ------------------------------------------------------

        @event_group.command(name='create', description='Create a one-off event')
        @app_commands.describe(
            date='YYYY-MM-DD, today, tomorrow, sat or next sat',
            time='Start time, HH:MM',
            courts='Number of courts (default: 1)'
        )
        async def event_create(interaction: discord.Interaction, date: str, time: str,
                               courts: int = 1):
            event = await self._call(interaction, self.core.events.create_event,
                                     date, time, courts, owner_id=str(interaction.user.id))
            if event is None:
                return
            timezone = self.core.settings.timezone()
            await interaction.response.send_message(
                f"📅 Created {format_event_line(event, timezone)}\n"
                f"Use `/event announce {event.id}` to post it.")

        @event_group.command(name='list', description='List upcoming events')
        async def event_list(interaction: discord.Interaction):
            events = await asyncio.to_thread(self.core.events.list_events)
            if not events:
                await interaction.response.send_message("No events yet.", ephemeral=True)
                return
            timezone = self.core.settings.timezone()
            embed = discord.Embed(
                title="📅 Events",
                description="\n".join(format_event_line(e, timezone) for e in events),
                color=discord.Color.blue()
            )
            await interaction.response.send_message(embed=embed, ephemeral=True)

        def add_event_action(name: str, description: str, action_cls: Type[EventAction]):
            @event_group.command(name=name, description=description)
            @app_commands.describe(event_id='Event id, e.g. ev_1a2b3c4d')
            async def command(interaction: discord.Interaction, event_id: str):
                await self._execute(interaction, action_cls(event_id, actor=actor_from(interaction.user)))
            return command

        add_event_action('announce', 'Post the announcement now', Announce)
        add_event_action('finalize', 'Close registration and split the cost', Finalize)
        add_event_action('undo-finalize', 'Re-open a finalized event', Unfinalize)
        add_event_action('cancel', 'Cancel an event', Cancel)
        add_event_action('undo-cancel', 'Restore a cancelled event', Restore)
        add_event_action('delete', 'Delete an event', Delete)
        add_event_action('undo-delete', 'Bring back a deleted event', UndoDelete)

        @event_group.command(name='transfer', description='Give an event to another user')
        @app_commands.describe(event_id='Event id', username='Username of the new owner')
        async def event_transfer(interaction: discord.Interaction, event_id: str, username: str):
            await self._execute(interaction, Transfer(event_id, actor=actor_from(interaction.user),
                                                      target_username=username))

        # -- scaffolds ---------------------------------------------------

        @scaffold_group.command(name='create', description='Create a weekly schedule')
        @app_commands.describe(
            day='Day of week, e.g. Tue',
            time='Start time, HH:MM',
            courts='Default number of courts',
            deadline='Optional announcement deadline, e.g. -1d 12:00'
        )
        async def scaffold_create(interaction: discord.Interaction, day: str, time: str,
                                  courts: int = 1, deadline: Optional[str] = None):
            scaffold = await self._call(interaction, self.core.scaffolds.create, day, time, courts,
                                        announcement_deadline=deadline,
                                        owner_id=str(interaction.user.id))
            if scaffold is not None:
                await interaction.response.send_message(f"📋 Created {format_scaffold_line(scaffold)}")

        @scaffold_group.command(name='list', description='List weekly schedules')
        async def scaffold_list(interaction: discord.Interaction):
            scaffolds = await asyncio.to_thread(self.core.scaffolds.list)
            if not scaffolds:
                await interaction.response.send_message("No scaffolds yet.", ephemeral=True)
                return
            embed = discord.Embed(
                title="📋 Scaffolds",
                description="\n".join(format_scaffold_line(s) for s in scaffolds),
                color=discord.Color.purple()
            )
            await interaction.response.send_message(embed=embed, ephemeral=True)

        @scaffold_group.command(name='toggle', description='Activate or deactivate a schedule')
        async def scaffold_toggle(interaction: discord.Interaction, scaffold_id: str):
            scaffold = await self._call(interaction, self.core.scaffolds.toggle, scaffold_id,
                                        actor_id=str(interaction.user.id))
            if scaffold is not None:
                await interaction.response.send_message(f"🔀 {format_scaffold_line(scaffold)}")

        @scaffold_group.command(name='update', description='Change day, time or courts')
        async def scaffold_update(interaction: discord.Interaction, scaffold_id: str,
                                  day: Optional[str] = None, time: Optional[str] = None,
                                  courts: Optional[int] = None):
            scaffold = await self._call(interaction, self.core.scaffolds.update, scaffold_id,
                                        day=day, time_str=time, courts=courts,
                                        actor_id=str(interaction.user.id))
            if scaffold is not None:
                await interaction.response.send_message(f"✏️ {format_scaffold_line(scaffold)}")

        @scaffold_group.command(name='deadline', description='Set or clear the announcement deadline')
        @app_commands.describe(deadline='e.g. -2d 18:00; leave empty to use the global setting')
        async def scaffold_deadline(interaction: discord.Interaction, scaffold_id: str,
                                    deadline: Optional[str] = None):
            scaffold = await self._call(interaction, self.core.scaffolds.set_announcement_deadline,
                                        scaffold_id, deadline, actor_id=str(interaction.user.id))
            if scaffold is not None:
                await interaction.response.send_message(f"⏱ {format_scaffold_line(scaffold)}")

        @scaffold_group.command(name='transfer', description='Give a schedule to another user')
        async def scaffold_transfer(interaction: discord.Interaction, scaffold_id: str,
                                    user: discord.User):
            scaffold = await self._call(interaction, self.core.scaffolds.transfer_owner,
                                        scaffold_id, str(user.id), actor_id=str(interaction.user.id))
            if scaffold is not None:
                await interaction.response.send_message(
                    f"🔁 Scaffold `{scaffold.id}` now belongs to {user.mention}")

        @scaffold_group.command(name='remove', description='Delete a schedule')
        async def scaffold_remove(interaction: discord.Interaction, scaffold_id: str):
            scaffold = await self._call(interaction, self.core.scaffolds.remove, scaffold_id,
                                        actor_id=str(interaction.user.id))
            if scaffold is not None:
                await interaction.response.send_message(
                    f"🗑 Scaffold `{scaffold.id}` removed. `/scaffold restore {scaffold.id}` to undo.")

        @scaffold_group.command(name='restore', description='Bring back a deleted schedule')
        async def scaffold_restore(interaction: discord.Interaction, scaffold_id: str):
            scaffold = await self._call(interaction, self.core.scaffolds.restore, scaffold_id,
                                        actor_id=str(interaction.user.id))
            if scaffold is not None:
                await interaction.response.send_message(f"♻️ {format_scaffold_line(scaffold)}")

        # -- settings ----------------------------------------------------

        @settings_group.command(name='list', description='Show all settings')
        async def settings_list(interaction: discord.Interaction):
            rows = await asyncio.to_thread(self.core.settings.get_with_meta)
            embed = discord.Embed(title="⚙️ Settings", color=discord.Color.dark_grey())
            for row in rows:
                embed.add_field(name=row['key'], value=f"`{row['value'] or '-'}`\n{row['description']}",
                                inline=False)
            await interaction.response.send_message(embed=embed, ephemeral=True)

        @settings_group.command(name='set', description='Change a setting (admin)')
        async def settings_set(interaction: discord.Interaction, key: str, value: str):
            if not self._is_admin(interaction):
                await interaction.response.send_message("❌ Only the admin can do this", ephemeral=True)
                return
            stored = await self._call(interaction, self.core.settings.set, key, value,
                                      updated_by=str(interaction.user.id))
            if stored is not None:
                await interaction.response.send_message(f"⚙️ `{key}` = `{stored}`", ephemeral=True)

        @settings_group.command(name='reset', description='Restore a setting to its default (admin)')
        async def settings_reset(interaction: discord.Interaction, key: str):
            if not self._is_admin(interaction):
                await interaction.response.send_message("❌ Only the admin can do this", ephemeral=True)
                return
            if await self._call(interaction, self.core.settings.reset, key) is None:
                return
            await interaction.response.send_message(
                f"⚙️ `{key}` reset to `{self.core.settings.get(key)}`", ephemeral=True)

        self.tree.add_command(event_group)
        self.tree.add_command(scaffold_group)
        self.tree.add_command(settings_group)


def run_bot(token: str, config: Dict, core):
    """Run the Discord bot (blocks until it stops)."""
    bot = SquashDiscordBot(config, core)
    bot.run(token, log_handler=None)
