"""Tests for identity resolution."""

import pytest

from supportbot.errors import AccountNotLinked, UnsupportedIdentifier
from supportbot.resolver import IdentityResolver, SteamLink, decode_lookup, pick_link

STEAM64 = "76561199224604471"
OTHER_STEAM64 = "76561190000000001"


@pytest.fixture
def resolver(playfab, steam):
    return IdentityResolver(playfab, steam)


def test_account_id_is_uppercased_without_calls(resolver, playfab, steam):
    player = resolver.resolve("abcd1234abcd1234")
    assert player.account_id == "ABCD1234ABCD1234"
    assert playfab.calls == []
    assert steam.calls == []


def test_profile_url_prefers_exact_row(resolver, playfab, link_steam):
    link_steam(
        STEAM64,
        "EXACTMATCH000001",
        extra_rows=[{"SteamStringId": OTHER_STEAM64, "PlayFabId": "WRONGROW00000001"}],
    )
    player = resolver.resolve(f"https://steamcommunity.com/profiles/{STEAM64}/")
    assert player.account_id == "EXACTMATCH000001"
    assert player.steam64 == STEAM64
    assert playfab.calls == [("lookup_accounts_by_steam_id", STEAM64)]


def test_bare_steam64_is_looked_up(resolver, link_steam):
    link_steam(STEAM64, "ACCOUNT000000001")
    assert resolver.resolve(f"  {STEAM64} ").account_id == "ACCOUNT000000001"


def test_vanity_url_resolves_through_steam(resolver, steam, link_steam):
    steam.names["storm chaser"] = STEAM64
    link_steam(STEAM64, "ACCOUNT000000002")
    player = resolver.resolve("https://steamcommunity.com/id/storm%20chaser/")
    assert steam.calls == ["storm chaser"]
    assert player.account_id == "ACCOUNT000000002"
    assert player.vanity == "storm chaser"
    assert player.steam64 == STEAM64


def test_unknown_vanity_is_unsupported(resolver):
    with pytest.raises(UnsupportedIdentifier):
        resolver.resolve("https://steamcommunity.com/id/nobody")


def test_vanity_without_steam_client_is_unsupported(playfab):
    with pytest.raises(UnsupportedIdentifier):
        IdentityResolver(playfab).resolve("https://steamcommunity.com/id/someone")


@pytest.mark.parametrize("text", ["", "   ", "not an id", "1234", "ABCD1234ABCD123!"])
def test_unrecognised_input(resolver, playfab, text):
    with pytest.raises(UnsupportedIdentifier):
        resolver.resolve(text)
    assert playfab.calls == []


def test_unlinked_steam_account(resolver):
    with pytest.raises(AccountNotLinked):
        resolver.resolve(STEAM64)


def test_row_without_account_id_is_not_linked(resolver, playfab):
    playfab.steam_links[STEAM64] = {"data": {"Data": [{"SteamStringId": STEAM64}]}}
    with pytest.raises(AccountNotLinked):
        resolver.resolve(STEAM64)


def test_decode_lookup_accepts_both_shapes():
    enveloped = {"code": 200, "data": {"Data": [{"SteamStringId": STEAM64, "PlayFabId": "A"}]}}
    legacy = {"Data": [{"SteamId": int(STEAM64), "PlayFabId": "B"}]}
    lowercase = {"data": {"data": [{"SteamStringId": STEAM64, "PlayFabId": "C"}]}}

    assert decode_lookup(enveloped) == [SteamLink(STEAM64, "A")]
    assert decode_lookup(legacy) == [SteamLink(STEAM64, "B")]
    assert decode_lookup(lowercase) == [SteamLink(STEAM64, "C")]
    assert decode_lookup({"unexpected": True}) == []


def test_pick_link_falls_back_to_first_row():
    rows = [SteamLink(OTHER_STEAM64, "FIRST"), SteamLink("765", "SECOND")]
    assert pick_link(rows, STEAM64).account_id == "FIRST"
    assert pick_link([], STEAM64) is None
