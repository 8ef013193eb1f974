"""
Handles loading and validation of configuration settings.

This module is responsible for loading, merging, and validating configuration settings from:
1. The config.yaml file (primary configuration source)
2. Environment variables (for secrets and overrides)

It provides a unified configuration access mechanism through the get_config_value function,
ensures settings are validated against expected types and requirements, and makes the
configuration available throughout the application.

Key components:
- APP_CONFIG: The global configuration dictionary
- get_config_value: Function to retrieve values using dot notation
- validate_config: Validates configuration against expected structure and types
- load_app_config: Loads and merges configuration from all sources
"""

import json
import logging
import os
import sys
from typing import Any, Dict, Tuple

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Environment variables from .env are loaded first so they can override YAML values
load_dotenv()

APP_CONFIG: Dict[str, Any] = {}

__all__ = [
    "APP_CONFIG",
    "load_app_config",
    "get_config_value",
    "validate_config",
]

CONFIG_FILE_PATH = os.getenv("SUPPORTBOT_CONFIG", "config.yaml")

DEFAULT_CONFIG_STRUCTURE = {
    "bot_settings": {
        "bot_name": "OUTBRK Support",
        "log_file_name": "logs/support_bot.log",
        "data_dir": "data",
        "save_debounce_seconds": 1.0,
        "debug_mode": False,
        "log_level": "INFO",
    },
    "discord": {
        "token": None,  # Secret
        "guild_id": None,
        "bot_admin_ids": [],
        "support_channel_id": None,
        "log_channel_id": None,
        "faq_channel_id": None,
        "qa_notify_channel_id": None,
        "qa_notify_guild_id": None,
        "muted_role_id": None,
        "qa_tester_role_id": None,
        "lead_qa_role_id": None,
        "qa_tester_role_id_private": None,
        "lead_qa_role_id_private": None,
    },
    "playfab": {
        "title_id": None,
        "secret_key": None,  # Secret
        "approval_channel_id": None,
        "confirmation_word": "YES",
        "mute_data_key": "Additional Data",
        "mute_sub_key": "vivoxBan",
        "save_data_key": "Save",
    },
    "steam": {
        "web_api_key": None,  # Secret
    },
    "message_settings": {
        "templates_file": "message_templates.json",
        "embed_colors": {
            "success": "0x57f287",
            "error": "0xed4245",
            "info": "0x0ea5e9",
            "warning": "0xffa500",
            "neutral": "0x2b2d31",
        },
        "embed_footer_text": "OUTBRK • {bot_name}",
        "bot_display_name_in_messages": "OUTBRK Support",
    },
}

# (type, is_required, default_value)
EXPECTED_CONFIG: Dict[str, Tuple[type, bool, Any]] = {
    "bot_settings.bot_name": (str, False, "OUTBRK Support"),
    "bot_settings.log_file_name": (str, False, "logs/support_bot.log"),
    "bot_settings.data_dir": (str, False, "data"),
    "bot_settings.save_debounce_seconds": (float, False, 1.0),
    "bot_settings.debug_mode": (bool, False, False),
    "bot_settings.log_level": (str, False, "INFO"),
    "discord.token": (str, True, None),
    "discord.guild_id": (str, True, None),
    "discord.bot_admin_ids": (list, True, []),
    "discord.support_channel_id": (str, True, None),
    "discord.log_channel_id": (str, False, None),
    "discord.faq_channel_id": (str, False, None),
    "discord.qa_notify_channel_id": (str, False, None),
    "discord.qa_notify_guild_id": (str, False, None),
    "discord.muted_role_id": (str, False, None),
    "discord.qa_tester_role_id": (str, False, None),
    "discord.lead_qa_role_id": (str, False, None),
    "discord.qa_tester_role_id_private": (str, False, None),
    "discord.lead_qa_role_id_private": (str, False, None),
    "playfab.title_id": (str, True, None),
    "playfab.secret_key": (str, True, None),
    "playfab.approval_channel_id": (str, False, None),
    "playfab.confirmation_word": (str, False, "YES"),
    "playfab.mute_data_key": (str, False, "Additional Data"),
    "playfab.mute_sub_key": (str, False, "vivoxBan"),
    "playfab.save_data_key": (str, False, "Save"),
    "steam.web_api_key": (str, False, None),
    "message_settings.templates_file": (str, False, "message_templates.json"),
    "message_settings.embed_colors": (dict, False, {}),
    "message_settings.embed_footer_text": (str, False, "OUTBRK • {bot_name}"),
    "message_settings.bot_display_name_in_messages": (str, False, "OUTBRK Support"),
}

# Keys whose environment variable name does not follow SECTION_KEY
SECRET_ENV_VARS = {
    ("discord", "token"): "DISCORD_TOKEN",
    ("playfab", "secret_key"): "PLAYFAB_SECRET_KEY",
    ("steam", "web_api_key"): "STEAM_WEB_API_KEY",
}

DISCORD_ID_KEYS = [
    "discord.guild_id",
    "discord.support_channel_id",
    "discord.log_channel_id",
    "discord.faq_channel_id",
    "discord.qa_notify_channel_id",
    "discord.qa_notify_guild_id",
    "discord.muted_role_id",
    "discord.qa_tester_role_id",
    "discord.lead_qa_role_id",
    "discord.qa_tester_role_id_private",
    "discord.lead_qa_role_id_private",
    "playfab.approval_channel_id",
]


def _load_yaml_config(path: str = CONFIG_FILE_PATH) -> Dict[str, Any]:
    """Loads configuration from a YAML file."""
    try:
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
                logger.info(f"Successfully loaded configuration from {path}")
                return yaml_config or {}
        else:
            logger.warning(
                f"YAML configuration file not found at {path}. "
                "Ensure 'config.yaml' exists or all settings are provided via environment variables."
            )
            return {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML configuration file {path}: {e}")
        sys.exit(f"Critical error: Could not parse {path}. Please check its syntax.")
    except OSError as e:
        logger.error(f"Could not read YAML configuration {path}: {e}")
        return {}


def _get_typed_env_var(key: str, default_value: Any, expected_type: type) -> Any:
    """Gets an environment variable and attempts to cast it to the expected type."""
    value = os.getenv(key)
    if value is None:
        return default_value

    try:
        if expected_type is bool:
            return value.lower() in ("true", "1", "t", "yes", "y")
        if expected_type is int:
            return int(value)
        if expected_type is float:
            return float(value)
        if expected_type is list:  # Comma-separated string for lists from env
            return [item.strip() for item in value.split(",") if item.strip()]
        if expected_type is dict:
            return json.loads(value)
        return expected_type(value)
    except (ValueError, TypeError):
        logger.warning(
            f"Could not cast environment variable {key}='{value}' to {expected_type}. Using default: {default_value}"
        )
        return default_value


def _merge_configs(
    yaml_config: Dict[str, Any], defaults: Dict[str, Any]
) -> Dict[str, Any]:
    """Merges YAML config over the default structure, section by section."""
    merged_config = {}

    for section, section_defaults in defaults.items():
        merged_config[section] = section_defaults.copy()
        yaml_section = yaml_config.get(section, {})

        if isinstance(yaml_section, dict):
            for key, default_val in section_defaults.items():
                merged_config[section][key] = yaml_section.get(key, default_val)
        elif yaml_section is not None:
            logger.warning(
                f"Config section '{section}' in YAML is not a mapping; using defaults."
            )

    return merged_config


def _apply_env_vars_to_merged_config(
    config_dict: Dict[str, Any], defaults: Dict[str, Any]
) -> None:
    """Applies environment variables to the config_dict based on default structure.
    Environment variables are expected to be in format SECTION_KEY=value (e.g., BOT_SETTINGS_DEBUG_MODE=true).
    Secrets use the names in SECRET_ENV_VARS (e.g., DISCORD_TOKEN).
    """
    for section_name, section_defaults in defaults.items():
        config_dict.setdefault(section_name, {})
        for key_name, default_value in section_defaults.items():
            env_var_key = SECRET_ENV_VARS.get(
                (section_name, key_name),
                f"{section_name.upper()}_{key_name.upper()}",
            )
            expected_type = type(default_value) if default_value is not None else str

            if os.getenv(env_var_key) is None:
                continue

            current_val_in_config = config_dict[section_name].get(
                key_name, default_value
            )
            env_val = _get_typed_env_var(
                env_var_key, current_val_in_config, expected_type
            )
            config_dict[section_name][key_name] = env_val
            if (section_name, key_name) in SECRET_ENV_VARS:
                logger.debug(
                    f"Applied secret environment variable '{env_var_key}' to '{section_name}.{key_name}'"
                )
            else:
                logger.debug(
                    f"Applied environment variable '{env_var_key}' to '{section_name}.{key_name}' (value: {env_val})"
                )


def load_app_config(path: str = CONFIG_FILE_PATH) -> Dict[str, Any]:
    """
    Load application configuration from YAML and environment variables.

    Priority order, lowest first:
    - DEFAULT_CONFIG_STRUCTURE
    - config.yaml
    - environment variables (including .env)

    Returns:
        Dict[str, Any]: The loaded configuration dictionary
    """
    global APP_CONFIG

    yaml_config = _load_yaml_config(path)
    merged_config = _merge_configs(yaml_config, DEFAULT_CONFIG_STRUCTURE)
    _apply_env_vars_to_merged_config(merged_config, DEFAULT_CONFIG_STRUCTURE)

    APP_CONFIG = merged_config

    logger.debug(f"Configuration loaded with {len(APP_CONFIG)} top-level keys.")
    return APP_CONFIG


# Load configuration when this module is imported
load_app_config()


def get_config_value(path: str, default: Any = None) -> Any:
    """
    Retrieves a configuration value using dot notation path.

    Args:
        path: Dot-notation path to the configuration value (e.g., 'discord.token')
        default: Value to return if the path is not found or the value is unset

    Returns:
        The configuration value at the specified path, or the default if not found

    Examples:
        >>> get_config_value('playfab.confirmation_word', 'YES')
        'YES'
        >>> get_config_value('nonexistent.path', 'fallback')
        'fallback'
    """
    if not APP_CONFIG:
        load_app_config()

    current: Any = APP_CONFIG
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return default
    return default if current is None else current


def get_id_value(path: str) -> int:
    """Returns a configured Discord snowflake as int, or 0 when unset or malformed."""
    raw = get_config_value(path)
    if raw in (None, ""):
        return 0
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning(f"Config value '{path}' is not a valid Discord ID: {raw!r}")
        return 0


def validate_config() -> None:
    """
    Validates the loaded configuration against expected types and requirements.

    Critical problems (missing required keys, wrong types, malformed IDs) are
    logged and terminate the process. Non-critical issues are logged as warnings.

    Raises:
        SystemExit: If a critical configuration error is found
    """
    logger.info("Validating configuration...")
    valid = True

    for key, (p_type, is_required, _default) in EXPECTED_CONFIG.items():
        val = get_config_value(key)

        if val is None:
            if is_required:
                logger.critical(
                    f"Config Error: Required key '{key}' is missing or not set."
                )
                valid = False
            continue

        type_valid = True
        if p_type is list and not isinstance(val, list):
            type_valid = False
        elif p_type is dict and not isinstance(val, dict):
            type_valid = False
        elif p_type is float and (
            isinstance(val, bool) or not isinstance(val, (int, float))
        ):
            type_valid = False
        elif p_type is bool and not isinstance(val, bool):
            type_valid = False
        elif p_type is str and not isinstance(val, (str, int)):
            # Discord IDs written unquoted in YAML load as int
            type_valid = False

        if not type_valid:
            logger.critical(
                f"Config Error: Key '{key}' (value: '{val}', type: {type(val).__name__}) must be of type {p_type.__name__}."
            )
            valid = False
            continue

        if key == "bot_settings.log_level":
            if str(val).upper() not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
                logger.critical(
                    f"Config Error: '{key}' (value: {val}) must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL."
                )
                valid = False

        elif key in DISCORD_ID_KEYS:
            if not str(val).isdigit():
                logger.critical(
                    f"Config Error: '{key}' (value: {val}) must be a valid Discord ID (string of digits)."
                )
                valid = False

        elif key == "discord.bot_admin_ids":
            if is_required and not val:
                logger.critical(
                    f"Config Error: Required key '{key}' cannot be an empty list."
                )
                valid = False
            elif not all(str(item).isdigit() for item in val):
                logger.critical(
                    f"Config Error: All items in '{key}' must be Discord user IDs."
                )
                valid = False

        elif key == "bot_settings.save_debounce_seconds":
            if val < 0:
                logger.critical(
                    f"Config Error: Key '{key}' (value: {val}) must not be negative."
                )
                valid = False

        elif key == "playfab.confirmation_word":
            if not str(val).strip():
                logger.critical(f"Config Error: '{key}' cannot be blank.")
                valid = False

        elif key == "message_settings.embed_colors":
            for color_name, color_value in val.items():
                if not (
                    isinstance(color_value, str)
                    and color_value.startswith("0x")
                    and len(color_value) == 8
                    and all(c in "0123456789abcdefABCDEF" for c in color_value[2:])
                ):
                    logger.critical(
                        f"Config Error: In '{key}', color value '{color_value}' for '{color_name}' is not a valid hex color string (e.g., '0xFF00FF')."
                    )
                    valid = False
                    break

    if not get_config_value("playfab.approval_channel_id"):
        logger.warning(
            "Config Warning: 'playfab.approval_channel_id' is not set. Requests from non-admins cannot be queued."
        )
    if not get_config_value("steam.web_api_key"):
        logger.warning(
            "Config Warning: 'steam.web_api_key' is not set. Steam vanity URLs cannot be resolved."
        )

    if not valid:
        logger.critical(
            "Configuration validation failed. Please check your config.yaml and .env files, or bot logs for details."
        )
        sys.exit(1)
    logger.info("Configuration validated successfully.")
