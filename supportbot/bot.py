"""
Discord client for the OUTBRK community support tooling.

This module wires the Discord side of the bot to the support services:
- SupportBot: the discord.Client subclass that owns the stores and services
- interaction routing: buttons and select menus are dispatched by the prefix
  of their custom_id, so controls posted before a restart keep working
- register_event_handlers: ready logging and QA message counting
"""

import datetime
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import discord
from discord import app_commands

from supportbot.approvals import ApprovalService
from supportbot.commands.auth import is_qa_member
from supportbot.commands.playfab_commands import ApprovalChannelPublisher
from supportbot.config import get_config_value, get_id_value
from supportbot.errors import SupportBotError
from supportbot.messaging import get_message, send_ephemeral
from supportbot.playfab_client import PlayFabClient
from supportbot.qa_stats import QaStats
from supportbot.resolver import IdentityResolver
from supportbot.steam_client import SteamClient
from supportbot.storage import AgentStatsStore, PlayFabStore

InteractionRoute = Callable[[discord.Interaction, list], Awaitable[None]]


class DirectMessageNotifier:
    """Sends a DM to a user id. Failures are logged, never raised."""

    def __init__(self, bot: discord.Client):
        self.bot = bot
        self.logger = logging.getLogger(self.__class__.__name__)

    async def notify(self, user_id: Any, text: str) -> bool:
        try:
            user = self.bot.get_user(int(user_id)) or await self.bot.fetch_user(int(user_id))
            await user.send(text)
            return True
        except (discord.HTTPException, ValueError) as e:
            self.logger.warning(f"Could not DM user {user_id}: {e}")
            return False


class SupportBot(discord.Client):
    """
    Discord client for the support bot.

    Attributes:
        tree: Command tree for the slash commands
        playfab_store / stats_store: JSON persistence, flushed on close()
        approvals: PlayFab request approval workflow
        qa_stats: per-agent ticket counters
    """

    def __init__(self, playfab_title_id: str, playfab_secret_key: str):
        self.logger = logging.getLogger(self.__class__.__name__)
        intents = discord.Intents.default()
        intents.members = True
        intents.message_content = True
        super().__init__(intents=intents)

        self.tree = app_commands.CommandTree(self)
        self._routes: Dict[str, InteractionRoute] = {}

        data_dir = Path(get_config_value("bot_settings.data_dir", "data"))
        debounce = float(get_config_value("bot_settings.save_debounce_seconds", 1.0))
        self.playfab_store = PlayFabStore(data_dir / PlayFabStore.FILE_NAME, debounce)
        self.stats_store = AgentStatsStore(data_dir / AgentStatsStore.FILE_NAME, debounce)
        self.qa_stats = QaStats(self.stats_store)

        self.logger.info("Initializing PlayFab and Steam clients...")
        self.playfab_client = PlayFabClient(playfab_title_id, playfab_secret_key)
        steam_key = get_config_value("steam.web_api_key")
        self.steam_client = SteamClient(steam_key) if steam_key else None
        self.resolver = IdentityResolver(self.playfab_client, self.steam_client)

        self.notifier = DirectMessageNotifier(self)
        self.approvals = ApprovalService(
            store=self.playfab_store,
            playfab=self.playfab_client,
            resolver=self.resolver,
            publisher=ApprovalChannelPublisher(self),
            notifier=self.notifier,
            admin_ids=get_config_value("discord.bot_admin_ids", []),
            confirmation_word=get_config_value("playfab.confirmation_word", "YES"),
            mute_data_key=get_config_value("playfab.mute_data_key", "Additional Data"),
            mute_sub_key=get_config_value("playfab.mute_sub_key", "vivoxBan"),
            save_data_key=get_config_value("playfab.save_data_key", "Save"),
        )

        self.log_channel_id = get_id_value("discord.log_channel_id")
        if not self.log_channel_id:
            self.logger.warning(
                "discord.log_channel_id is not set. Ticket closures will not be logged to Discord."
            )
        self.logger.info("SupportBot initialized successfully.")

    def is_bot_admin(self, user_id: Any) -> bool:
        return self.approvals.is_admin(user_id)

    # --- interaction routing ---

    def add_interaction_route(self, prefix: str, handler: InteractionRoute) -> None:
        """Route component interactions whose custom_id is ``prefix:...`` to handler(interaction, parts)."""
        if prefix in self._routes:
            raise ValueError(f"Interaction route '{prefix}' registered twice")
        self._routes[prefix] = handler

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        custom_id = (interaction.data or {}).get("custom_id", "")
        parts = custom_id.split(":")
        handler = self._routes.get(parts[0])
        if handler is None:
            return

        try:
            await handler(interaction, parts)
        except SupportBotError as e:
            self.logger.info(f"Interaction {custom_id} by {interaction.user} refused: {e}")
            await send_ephemeral(interaction, f"❌ {e}")
        except Exception:
            self.logger.exception(f"Unhandled error routing interaction {custom_id}")
            await send_ephemeral(interaction, get_message("errors.generic_command_error"))

    # --- lifecycle ---

    async def setup_hook(self):
        """Load persisted state and sync slash commands to the configured guild."""
        self.playfab_store.load()
        self.qa_stats.load()

        guild_id = get_id_value("discord.guild_id")
        if not guild_id:
            self.logger.error("discord.guild_id is not set. Command sync will be skipped.")
            return
        guild = discord.Object(id=guild_id)
        self.tree.copy_global_to(guild=guild)
        await self.tree.sync(guild=guild)
        self.logger.info(f"Successfully synced commands to guild ID: {guild_id}")

    async def close(self) -> None:
        self.logger.info("Shutting down; flushing stores.")
        for store in (self.playfab_store, self.stats_store):
            try:
                store.close()
            except OSError as e:
                self.logger.error(f"Could not flush {store.path} on shutdown: {e}")
        await super().close()

    async def resolve_channel(self, channel_id: int) -> Optional[discord.abc.Messageable]:
        if not channel_id:
            return None
        channel = self.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self.fetch_channel(channel_id)
        except discord.HTTPException as e:
            self.logger.error(f"Could not fetch channel {channel_id}: {e}")
            return None

    async def log_to_channel(self, content: str, embed: Optional[discord.Embed] = None) -> None:
        """Post to the configured log channel. Best effort."""
        channel = await self.resolve_channel(self.log_channel_id)
        if channel is None:
            self.logger.debug("Skipping Discord log: log channel unavailable.")
            return
        try:
            await channel.send(content=content, embed=embed)
        except discord.Forbidden:
            self.logger.error(
                f"Failed to post to log channel {self.log_channel_id}: Bot lacks necessary permissions (Forbidden)."
            )
        except discord.HTTPException as e:
            self.logger.error(f"Failed to post to log channel {self.log_channel_id}: {e}")

    async def on_error(self, event_method: str, *args: Any, **kwargs: Any) -> None:
        """Handle errors for the bot."""
        self.logger.exception(f"Unhandled error in {event_method}")


def register_event_handlers(bot: SupportBot):
    """Register the gateway event handlers."""

    @bot.event
    async def on_ready():
        bot.logger.info("------ BOT READY ------")
        bot.logger.info(f"Logged in as: {bot.user} (ID: {bot.user.id})")
        bot.logger.info(f"Connected to {len(bot.guilds)} guild(s).")
        bot.logger.info(f"Discord.py Version: {discord.__version__}")
        bot.logger.info(
            f"Started at {datetime.datetime.now(datetime.timezone.utc).isoformat(timespec='seconds')}"
        )

    @bot.event
    async def on_message(message: discord.Message):
        # Count agent replies inside support ticket threads
        if message.author.bot or not isinstance(message.channel, discord.Thread):
            return
        if message.channel.parent_id != get_id_value("discord.support_channel_id"):
            return
        if isinstance(message.author, discord.Member) and is_qa_member(message.author):
            bot.qa_stats.record_message(message.author.id)
