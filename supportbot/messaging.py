"""Handles loading and formatting of user-facing messages and embeds from templates."""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import discord

from supportbot.config import get_config_value

logger = logging.getLogger(__name__)

MESSAGE_TEMPLATES: Dict[str, Any] = {}


def load_message_templates() -> None:
    """
    Loads message templates from the JSON file named in message_settings.templates_file.
    Called once on import; safe to call again to reload.
    """
    global MESSAGE_TEMPLATES
    templates_file_path = get_config_value(
        "message_settings.templates_file", "message_templates.json"
    )

    # Relative to the working directory first, then to the project root
    possible_paths = [
        templates_file_path,
        os.path.join(os.path.dirname(__file__), "..", templates_file_path),
    ]

    loaded_path = None
    for path_option in possible_paths:
        abs_path = os.path.abspath(path_option)
        if os.path.exists(abs_path):
            loaded_path = abs_path
            break

    if not loaded_path:
        logger.error(
            f"Message templates file could not be found (tried {possible_paths}). Messaging system will be impaired."
        )
        MESSAGE_TEMPLATES = {}
        return

    try:
        with open(loaded_path, "r", encoding="utf-8") as f:
            MESSAGE_TEMPLATES = json.load(f)
        logger.info(f"Successfully loaded message templates from: {loaded_path}")
    except (OSError, json.JSONDecodeError) as e:
        logger.error(
            f"Error loading message templates from {loaded_path}: {e}. Using empty templates."
        )
        MESSAGE_TEMPLATES = {}


def get_bot_display_name() -> str:
    """Retrieves the bot's display name from configuration."""
    return get_config_value(
        "message_settings.bot_display_name_in_messages",
        get_config_value("bot_settings.bot_name", "Support Bot"),
    )


def get_message(key: str, default: Optional[str] = None, **kwargs: Any) -> str:
    """
    Retrieves a message template by its dot-separated key and formats it with kwargs.

    Example: get_message("errors.not_authorized_command")
             get_message("playfab.queued", request_id="abc123")
    """
    value: Any = MESSAGE_TEMPLATES
    try:
        for k in key.split("."):
            if not isinstance(value, dict):
                raise KeyError(k)
            value = value[k]
    except KeyError:
        logger.warning(
            f"Message template key '{key}' not found. Returning default or placeholder."
        )
        template = default
    else:
        if isinstance(value, str):
            template = value
        else:
            logger.warning(
                f"Template value for key '{key}' is not a string: {type(value)}."
            )
            template = default

    if template is None:
        return f"<Missing Template: {key}>"
    try:
        return template.format(**kwargs)
    except (KeyError, IndexError, ValueError) as e:
        logger.error(f"Error formatting message for key '{key}' with args {kwargs}: {e}")
        return template


def get_embed_color(color_type: str) -> discord.Color:
    """
    Hex colour from message_settings.embed_colors as a discord.Color,
    falling back to discord.Color.default().
    """
    hex_color_str = get_config_value(f"message_settings.embed_colors.{color_type}")

    if isinstance(hex_color_str, str):
        try:
            return discord.Color(int(hex_color_str.lstrip("#"), 16))
        except ValueError:
            logger.warning(
                f"Invalid hex color format for '{color_type}': '{hex_color_str}'. Using default color."
            )
    else:
        logger.warning(
            f"Embed color type '{color_type}' not found or not a string in config. Using default color."
        )

    return discord.Color.default()


def create_embed(
    title_key: Optional[str] = None,
    description_key: Optional[str] = None,
    color_type: str = "info",
    title_kwargs: Optional[Dict[str, Any]] = None,
    description_kwargs: Optional[Dict[str, Any]] = None,
    footer_text: Optional[str] = None,
    fields: Optional[List[Tuple[str, str, bool]]] = None,
    **embed_constructor_kwargs: Any,
) -> discord.Embed:
    """
    Creates a discord.Embed using message templates for title and description.

    Args:
        title_key: Dot-separated key for the embed title in message_templates.json.
        description_key: Dot-separated key for the embed description.
        color_type: Colour name from message_settings.embed_colors (success, error, info, warning, neutral).
        title_kwargs: Formatting arguments for the title.
        description_kwargs: Formatting arguments for the description.
        footer_text: Literal footer text; when omitted the configured default footer is used.
        fields: Already formatted ``(name, value, inline)`` tuples. Values are cut to
            Discord's 1024 character field limit.
        **embed_constructor_kwargs: Passed through to discord.Embed (e.g. timestamp).

    Returns:
        A discord.Embed object.
    """
    title = get_message(title_key, **(title_kwargs or {})) if title_key else None
    description = (
        get_message(description_key, **(description_kwargs or {}))
        if description_key
        else None
    )
    embed = discord.Embed(
        title=title,
        description=description,
        color=get_embed_color(color_type),
        **embed_constructor_kwargs,
    )

    bot_name = get_bot_display_name()
    if footer_text is None:
        default_footer = get_config_value("message_settings.embed_footer_text")
        if default_footer:
            try:
                footer_text = default_footer.format(bot_name=bot_name)
            except KeyError:
                footer_text = default_footer
    if footer_text:
        embed.set_footer(text=footer_text)

    for name, value, inline in fields or []:
        embed.add_field(name=name, value=(value or "-")[:1024], inline=inline)

    return embed


async def send_ephemeral(interaction: discord.Interaction, content: str, **kwargs: Any) -> None:
    """Reply or follow up ephemerally, whichever the interaction still allows."""
    try:
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=True, **kwargs)
        else:
            await interaction.response.send_message(content, ephemeral=True, **kwargs)
    except discord.HTTPException as e:
        logger.warning(f"Could not send ephemeral reply: {e}")


# Load templates when this module is imported (after config.py has loaded APP_CONFIG).
load_message_templates()
