"""Main entry point for the application."""

import logging
import sys

from supportbot.bot import SupportBot, register_event_handlers
from supportbot.commands.moderation_commands import setup_commands as setup_moderation_commands
from supportbot.commands.playfab_commands import setup_commands as setup_playfab_commands
from supportbot.commands.ticket_commands import setup_commands as setup_ticket_commands

from supportbot.config import get_config_value, validate_config
from supportbot.logging_setup import setup_logging

# Setup logging first
setup_logging()

# Get the main logger
logger = logging.getLogger(__name__)

# Validate configuration
validate_config()

if __name__ == "__main__":
    try:
        logger.info("Starting OUTBRK Support Bot")

        # Fetch required config values
        playfab_title_id = get_config_value("playfab.title_id")
        playfab_secret_key = get_config_value("playfab.secret_key")
        discord_token = get_config_value("discord.token")

        if not all([playfab_title_id, playfab_secret_key, discord_token]):
            logger.critical(
                "Missing critical PlayFab or Discord configuration. Please check your config.yaml and .env file."
            )
            sys.exit(1)

        # Initialize the bot
        bot = SupportBot(playfab_title_id, playfab_secret_key)

        # Register event handlers
        register_event_handlers(bot)

        # Register command handlers and component routes
        setup_ticket_commands(bot)
        logger.debug("Ticket and QA commands setup.")
        setup_playfab_commands(bot)
        logger.debug("PlayFab commands setup.")
        setup_moderation_commands(bot)
        logger.debug("Moderation commands setup.")

        # Run the bot; setup_hook loads the stores and close() flushes them
        bot.run(discord_token, log_handler=None)
    except Exception as e:
        logger.critical(f"Failed to start bot: {e}", exc_info=True)
        sys.exit(1)
