"""Pieces shared by the command modules: error handlers, modal base, view helpers."""

import logging
from typing import Optional

import discord
from discord import app_commands

from supportbot.errors import SupportBotError
from supportbot.messaging import get_message, send_ephemeral

logger = logging.getLogger(__name__)


def make_command_error_handler(command_name: str):
    """Build the ``@command.error`` handler used by every slash command."""

    async def handler(interaction: discord.Interaction, error: app_commands.AppCommandError):
        err_logger = logger.getChild(f"{command_name}.error")
        err_logger.debug(
            f"Error handler invoked for user {interaction.user} with error type {type(error)}"
        )
        try:
            if isinstance(error, app_commands.errors.CheckFailure):
                # is_bot_admin answers the user itself; built-in checks do not
                err_logger.warning(
                    f"CheckFailure suppressed for user {interaction.user}: {error}"
                )
                if not interaction.response.is_done():
                    await interaction.response.send_message(
                        get_message("errors.not_authorized_command"), ephemeral=True
                    )
            elif isinstance(error, app_commands.errors.CommandInvokeError):
                original = error.original
                if isinstance(original, SupportBotError):
                    err_logger.info(f"{command_name} refused for {interaction.user}: {original}")
                    await send_ephemeral(interaction, f"❌ {original}")
                    return
                err_logger.error(
                    f"CommandInvokeError in {command_name}: {original}",
                    exc_info=original,
                )
                await send_ephemeral(interaction, get_message("errors.generic_command_error"))
            else:
                err_logger.error(
                    f"Unhandled AppCommandError in {command_name}: {type(error).__name__} - {str(error)}",
                    exc_info=True,
                )
                await send_ephemeral(interaction, get_message("errors.app_command_error"))
        except Exception as e:
            err_logger.critical(
                f"CRITICAL: Error within {command_name} error handler: {str(e)}",
                exc_info=True,
            )

    return handler


class SupportModal(discord.ui.Modal):
    """Modal whose SupportBotError failures are shown to the submitter as-is."""

    async def on_error(self, interaction: discord.Interaction, error: Exception) -> None:
        modal_logger = logger.getChild(self.__class__.__name__)
        if isinstance(error, SupportBotError):
            modal_logger.info(f"Submission by {interaction.user} refused: {error}")
            await send_ephemeral(interaction, f"❌ {error}")
            return
        modal_logger.error(f"Error in {self.__class__.__name__}: {error}", exc_info=error)
        await send_ephemeral(interaction, get_message("errors.generic_command_error"))


def text_input(
    label: str,
    *,
    paragraph: bool = False,
    required: bool = True,
    placeholder: Optional[str] = None,
    default: Optional[str] = None,
    max_length: Optional[int] = None,
) -> discord.ui.TextInput:
    # Discord rejects labels over 45 characters
    return discord.ui.TextInput(
        label=label[:45],
        style=discord.TextStyle.paragraph if paragraph else discord.TextStyle.short,
        required=required,
        placeholder=placeholder,
        default=default,
        max_length=max_length,
    )


def routed_button(
    custom_id: str,
    label: str,
    style: discord.ButtonStyle = discord.ButtonStyle.secondary,
    emoji: Optional[str] = None,
    disabled: bool = False,
) -> discord.ui.Button:
    """A callback-less button; SupportBot.on_interaction dispatches it by custom_id."""
    return discord.ui.Button(
        custom_id=custom_id, label=label, style=style, emoji=emoji, disabled=disabled
    )


def routed_view(*items: discord.ui.Item) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    for item in items:
        view.add_item(item)
    return view


def disabled_view(message: discord.Message) -> Optional[discord.ui.View]:
    """Rebuild the components of a message with every control disabled."""
    if not message.components:
        return None
    view = discord.ui.View.from_message(message, timeout=None)
    for item in view.children:
        if hasattr(item, "disabled"):
            item.disabled = True
    return view
