"""Tests for configuration loading and lookup."""

import pytest

from supportbot import config


@pytest.fixture
def app_config(monkeypatch):
    values = {
        "discord": {"guild_id": "123", "muted_role_id": "not-a-number", "log_channel_id": None},
        "playfab": {"confirmation_word": "YES"},
    }
    monkeypatch.setattr(config, "APP_CONFIG", values)
    return values


def test_get_config_value_dot_path(app_config):
    assert config.get_config_value("discord.guild_id") == "123"
    assert config.get_config_value("playfab.confirmation_word", "NO") == "YES"
    assert config.get_config_value("playfab.missing", "fallback") == "fallback"
    assert config.get_config_value("discord.log_channel_id", "unset") == "unset"


def test_get_id_value(app_config):
    assert config.get_id_value("discord.guild_id") == 123
    assert config.get_id_value("discord.muted_role_id") == 0
    assert config.get_id_value("discord.log_channel_id") == 0


def test_yaml_overrides_defaults_and_env_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(
        "discord:\n"
        "  guild_id: '42'\n"
        "  bot_admin_ids: ['1', '2']\n"
        "bot_settings:\n"
        "  debug_mode: false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("BOT_SETTINGS_DEBUG_MODE", "true")
    monkeypatch.setenv("DISCORD_TOKEN", "token-from-env")
    monkeypatch.delenv("PLAYFAB_SECRET_KEY", raising=False)

    loaded = config.load_app_config(str(path))
    try:
        assert loaded["discord"]["guild_id"] == "42"
        assert loaded["discord"]["bot_admin_ids"] == ["1", "2"]
        assert loaded["discord"]["token"] == "token-from-env"
        assert loaded["bot_settings"]["debug_mode"] is True
        assert loaded["playfab"]["confirmation_word"] == "YES"
    finally:
        monkeypatch.undo()
        config.load_app_config(str(tmp_path / "absent.yaml"))


@pytest.mark.parametrize(
    "raw,expected_type,expected",
    [
        ("1, 2 ,3", list, ["1", "2", "3"]),
        ("2.5", float, 2.5),
        ("no", bool, False),
        ("oops", float, 1.0),
    ],
)
def test_typed_env_vars(monkeypatch, raw, expected_type, expected):
    monkeypatch.setenv("SUPPORTBOT_TEST_VALUE", raw)
    assert config._get_typed_env_var("SUPPORTBOT_TEST_VALUE", 1.0, expected_type) == expected


def test_validate_config_exits_on_missing_required(monkeypatch):
    monkeypatch.setattr(
        config,
        "APP_CONFIG",
        {"discord": {"bot_admin_ids": []}, "playfab": {}, "bot_settings": {}},
    )
    with pytest.raises(SystemExit):
        config.validate_config()
