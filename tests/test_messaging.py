"""Tests for message templates and embeds."""

import discord
import pytest

from supportbot import messaging


@pytest.fixture
def templates(monkeypatch):
    monkeypatch.setattr(
        messaging,
        "MESSAGE_TEMPLATES",
        {
            "playfab": {"queued": "Queued `{request_id}`", "nested": {"not": "a string"}},
            "tickets": {"created": "Ticket opened: {link}"},
        },
    )


def test_get_message_formats(templates):
    assert messaging.get_message("playfab.queued", request_id="abc") == "Queued `abc`"


def test_missing_key_uses_default_or_placeholder(templates):
    assert messaging.get_message("playfab.unknown", default="hi {name}", name="x") == "hi x"
    assert messaging.get_message("playfab.unknown") == "<Missing Template: playfab.unknown>"
    assert messaging.get_message("playfab.nested", default="fallback") == "fallback"


def test_missing_format_argument_returns_raw_template(templates):
    assert messaging.get_message("tickets.created") == "Ticket opened: {link}"


def test_shipped_templates_parse():
    messaging.load_message_templates()
    assert "playfab" in messaging.MESSAGE_TEMPLATES
    assert "tickets" in messaging.MESSAGE_TEMPLATES


def test_create_embed_fields_are_truncated(templates):
    embed = messaging.create_embed(
        title_key="tickets.created",
        title_kwargs={"link": "here"},
        fields=[("Long", "x" * 2000, False), ("Empty", "", True)],
        footer_text="footer",
    )
    assert isinstance(embed, discord.Embed)
    assert embed.title == "Ticket opened: here"
    assert len(embed.fields[0].value) == 1024
    assert embed.fields[1].value == "-"
    assert embed.footer.text == "footer"
