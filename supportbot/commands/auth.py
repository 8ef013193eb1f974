"""Authorization checks for commands and ticket controls."""

import logging

import discord
from discord import app_commands

from supportbot.config import get_id_value
from supportbot.messaging import get_message

logger = logging.getLogger(__name__)

QA_ROLE_KEYS = {
    "tester": "discord.qa_tester_role_id",
    "lead": "discord.lead_qa_role_id",
}


def is_bot_admin():
    """Check that the invoking user is listed in discord.bot_admin_ids."""

    async def predicate(interaction: discord.Interaction) -> bool:
        if interaction.client.is_bot_admin(interaction.user.id):
            return True
        logger.warning(
            f"Auth check failed for user {interaction.user}: not a bot admin "
            f"(command '{interaction.command.name if interaction.command else 'Unknown'}')."
        )
        await interaction.response.send_message(
            get_message("errors.not_authorized_command"), ephemeral=True
        )
        return False

    return app_commands.check(predicate)


def qa_role_id(guild: discord.Guild, which: str = "tester") -> int:
    """Role id for ``which`` in guild; the private QA guild uses the ``_private`` ids."""
    key = QA_ROLE_KEYS[which]
    private_guild_id = get_id_value("discord.qa_notify_guild_id")
    if private_guild_id and guild.id == private_guild_id:
        key = f"{key}_private"
    return get_id_value(key)


def has_qa_role(member: discord.abc.User, which: str = "tester") -> bool:
    """True if member holds the tester or lead QA role of its guild."""
    if not isinstance(member, discord.Member):
        return False
    role_id = qa_role_id(member.guild, which)
    return bool(role_id) and member.get_role(role_id) is not None


def is_qa_member(member: discord.abc.User) -> bool:
    return has_qa_role(member, "tester") or has_qa_role(member, "lead")
