"""Guild moderation commands: ban, kick and timed mute via the muted role."""

import asyncio
import logging
from typing import Optional

import discord
from discord import app_commands

from supportbot.commands.common import make_command_error_handler
from supportbot.config import get_id_value
from supportbot.errors import SupportBotError
from supportbot.messaging import get_message

logger = logging.getLogger(__name__)

DEFAULT_REASON = "No reason"


async def _unmute_later(member: discord.Member, role: discord.Role, minutes: int) -> None:
    unmute_logger = logger.getChild("mute.expiry")
    await asyncio.sleep(minutes * 60)
    try:
        await member.remove_roles(role, reason="Mute expired")
        unmute_logger.info(f"Mute expired for {member} ({member.id}).")
    except discord.HTTPException as e:
        unmute_logger.error(f"Could not remove muted role from {member}: {e}")


def setup_commands(bot):
    """Register the commands with the bot."""
    # Pending unmute tasks, kept referenced until they finish
    unmute_tasks = set()

    @bot.tree.command(name="ban", description="Ban a member")
    @app_commands.describe(user="Member", reason="Reason")
    @app_commands.guild_only()
    @app_commands.default_permissions(ban_members=True)
    @app_commands.checks.has_permissions(ban_members=True)
    async def ban(interaction: discord.Interaction, user: discord.User, reason: Optional[str] = None):
        cmd_logger = logger.getChild("ban")
        reason = reason or DEFAULT_REASON
        cmd_logger.info(f"{interaction.user} banning {user} ({user.id}): {reason}")
        await interaction.guild.ban(user, reason=reason)
        await interaction.response.send_message(get_message("moderation.banned", user=str(user)))

    ban.error(make_command_error_handler("ban"))

    @bot.tree.command(name="kick", description="Kick a member")
    @app_commands.describe(user="Member", reason="Reason")
    @app_commands.guild_only()
    @app_commands.default_permissions(kick_members=True)
    @app_commands.checks.has_permissions(kick_members=True)
    async def kick(interaction: discord.Interaction, user: discord.Member, reason: Optional[str] = None):
        cmd_logger = logger.getChild("kick")
        reason = reason or DEFAULT_REASON
        cmd_logger.info(f"{interaction.user} kicking {user} ({user.id}): {reason}")
        await interaction.guild.kick(user, reason=reason)
        await interaction.response.send_message(get_message("moderation.kicked", user=str(user)))

    kick.error(make_command_error_handler("kick"))

    @bot.tree.command(name="mute", description="Mute a member")
    @app_commands.describe(user="Member", duration="Minutes", reason="Reason")
    @app_commands.guild_only()
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    async def mute(
        interaction: discord.Interaction,
        user: discord.Member,
        duration: Optional[app_commands.Range[int, 1, 40320]] = None,
        reason: Optional[str] = None,
    ):
        cmd_logger = logger.getChild("mute")
        reason = reason or DEFAULT_REASON
        role = interaction.guild.get_role(get_id_value("discord.muted_role_id"))
        if role is None:
            cmd_logger.error("discord.muted_role_id is not set or not found in this guild.")
            raise SupportBotError(get_message("moderation.error_muted_role_missing"))

        await user.add_roles(role, reason=reason)
        cmd_logger.info(
            f"{interaction.user} muted {user} ({user.id})"
            f"{f' for {duration}m' if duration else ''}: {reason}"
        )
        if duration:
            task = asyncio.create_task(_unmute_later(user, role, duration))
            unmute_tasks.add(task)
            task.add_done_callback(unmute_tasks.discard)

        await interaction.response.send_message(
            get_message(
                "moderation.muted",
                user=str(user),
                length=f" for {duration}m" if duration else "",
            )
        )

    mute.error(make_command_error_handler("mute"))
