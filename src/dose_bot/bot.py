"""Discord bot that delivers medication reminders over DMs."""

import contextlib
import logging
from collections.abc import Awaitable, Callable

import discord
from discord import app_commands
from discord.ext import commands

from dose_bot import config, web
from dose_bot.notifier import DiscordNotifier
from dose_bot.repository import open_repository
from dose_bot.scheduler import DosePoller, setup_scheduler
from dose_bot.service import DoseService
from dose_bot.views import ActionButton, ActionSelect
from dose_bot.views import init as init_views

log = logging.getLogger(__name__)


async def _run_ephemeral(
    interaction: discord.Interaction, handler: Callable[[], Awaitable[None]]
) -> None:
    """Replies arrive as DMs; the slash command's own response is cleaned up."""
    await interaction.response.defer(ephemeral=True)
    try:
        await handler()
    finally:
        with contextlib.suppress(discord.HTTPException):
            await interaction.delete_original_response()


def create_bot() -> commands.Bot:
    intents = discord.Intents.default()
    intents.message_content = True

    bot = commands.Bot(
        command_prefix="!",
        intents=intents,
        status=discord.Status.online,
        activity=discord.Activity(type=discord.ActivityType.watching, name="the clock"),
    )
    repo = open_repository()
    notifier = DiscordNotifier(bot)
    service = DoseService(
        repo,
        notifier,
        admin_id=config.ADMIN_ID,
        tz_label=str(config.TZ),
        count_on_delivery=config.COUNT_DOSES_ON == "delivery",
        send_timeout=config.SEND_TIMEOUT,
        storage_timeout=config.STORAGE_TIMEOUT,
        webapp_url=config.WEBAPP_URL,
        web_secret=config.WEB_SECRET,
    )
    poller = DosePoller(
        repo,
        notifier,
        tz=config.TZ,
        send_timeout=config.SEND_TIMEOUT,
        storage_timeout=config.STORAGE_TIMEOUT,
        count_on_delivery=service.count_on_delivery,
    )
    bot.dose_service = service  # type: ignore[attr-defined]
    _ready_fired = False

    def _slash(name: str, description: str) -> None:
        @bot.tree.command(name=name, description=description)
        async def command(interaction: discord.Interaction) -> None:
            await _run_ephemeral(
                interaction, lambda: service.handle_command(interaction.user.id, name)
            )

    _slash("start", "Turn reminders on")
    _slash("add", "Add a reminder")
    _slash("list", "Show your reminders")
    _slash("stop", "Pause reminders")
    _slash("stats", "Usage statistics (admin)")
    _slash("help", "List commands")

    @bot.tree.command(name="notify", description="Message every user (admin)")
    @app_commands.describe(message="Text to broadcast")
    async def slash_notify(interaction: discord.Interaction, message: str = "") -> None:
        await _run_ephemeral(
            interaction,
            lambda: service.handle_command(interaction.user.id, "notify", message),
        )

    @bot.event
    async def on_ready():
        nonlocal _ready_fired
        print(f"dose-bot online as {bot.user}")

        # on_ready fires again on every reconnect; init must only happen once
        if _ready_fired:
            return
        _ready_fired = True

        init_views(service)
        bot.add_dynamic_items(ActionButton, ActionSelect)

        bot.tree.allowed_installs = app_commands.AppInstallationType(
            guild=False, user=True
        )
        bot.tree.allowed_contexts = app_commands.AppCommandContext(
            guild=False, dm_channel=True, private_channel=True
        )
        synced = await bot.tree.sync()
        print(f"synced {len(synced)} slash commands")

        if service.admin_id is None:
            app_info = await bot.application_info()
            if app_info.owner:
                service.admin_id = app_info.owner.id
            else:
                log.warning("No admin configured or resolved; admin commands disabled")

        scheduler = setup_scheduler(poller, config.POLL_SECONDS)
        scheduler.start()
        print(f"scheduler started: polling every {config.POLL_SECONDS}s in {config.TZ}")

        await web.start(
            repo,
            port=config.WEB_PORT,
            secret=config.WEB_SECRET,
            timeout=config.STORAGE_TIMEOUT,
        )

    @bot.event
    async def on_message(message: discord.Message):
        if message.author.bot:
            return
        if not isinstance(message.channel, discord.DMChannel):
            return
        if not message.content:
            return
        await service.handle_text(message.author.id, message.content)

    return bot
