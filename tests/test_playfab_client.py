"""Tests for the PlayFab and Steam HTTP clients with a mocked requests session."""

from unittest.mock import MagicMock

import pytest
import requests

from supportbot.errors import ExternalOperationFailed
from supportbot.playfab_client import PlayFabClient
from supportbot.steam_client import SteamClient


def _response(status=200, body=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def client():
    client = PlayFabClient("A1B2C", "secret-key")
    client.session = MagicMock()
    return client


def test_missing_credentials():
    with pytest.raises(ValueError):
        PlayFabClient("", "secret")


def test_session_carries_secret_header():
    client = PlayFabClient("A1B2C", "secret-key")
    assert client.session.headers["X-SecretKey"] == "secret-key"
    assert client.base_url == "https://A1B2C.playfabapi.com"


def test_ban_posts_duration_in_hours(client):
    client.session.post.return_value = _response(body={"code": 200, "data": {}})
    client.ban_user("ACC", "cheating", 0)

    url = client.session.post.call_args.args[0]
    payload = client.session.post.call_args.kwargs["json"]
    assert url == "https://A1B2C.playfabapi.com/Admin/BanUsers"
    assert payload == {"Bans": [{"PlayFabId": "ACC", "Reason": "cheating", "DurationInHours": 0}]}


def test_error_payload_maps_code_and_message(client):
    client.session.post.return_value = _response(
        status=400,
        body={"code": 400, "error": "InvalidParams", "errorCode": 1000, "errorMessage": "Bad ban"},
    )
    with pytest.raises(ExternalOperationFailed) as excinfo:
        client.delete_account_data_key("ACC", "Save")
    assert excinfo.value.operation == "UpdateUserData"
    assert excinfo.value.code == 1000
    assert excinfo.value.message == "Bad ban"


def test_non_json_error_uses_status(client):
    client.session.post.return_value = _response(status=503, text="")
    with pytest.raises(ExternalOperationFailed) as excinfo:
        client.write_account_attribute("ACC", "Additional Data", "{}")
    assert excinfo.value.code == 503
    assert excinfo.value.message == "HTTP 503"


def test_network_error(client):
    client.session.post.side_effect = requests.exceptions.ConnectionError("down")
    with pytest.raises(ExternalOperationFailed) as excinfo:
        client.ban_user("ACC", "x", 1)
    assert excinfo.value.code == "network"


def test_read_attribute(client):
    client.session.post.return_value = _response(
        body={"code": 200, "data": {"Data": {"Additional Data": {"Value": "{\"a\": 1}"}}}}
    )
    assert client.read_account_attribute("ACC", "Additional Data") == '{"a": 1}'
    client.session.post.return_value = _response(body={"code": 200, "data": {"Data": {}}})
    assert client.read_account_attribute("ACC", "Additional Data") is None


def test_lookup_retries_with_legacy_field(client):
    client.session.post.side_effect = [
        _response(status=400, body={"error": "InvalidParams", "errorMessage": "unknown field"}),
        _response(body={"code": 200, "data": {"Data": []}}),
    ]
    body = client.lookup_accounts_by_steam_id("76561199224604471")

    assert body == {"code": 200, "data": {"Data": []}}
    payloads = [call.kwargs["json"] for call in client.session.post.call_args_list]
    assert payloads == [
        {"SteamStringIDs": ["76561199224604471"]},
        {"SteamIDs": ["76561199224604471"]},
    ]


def test_lookup_does_not_retry_network_errors(client):
    client.session.post.side_effect = requests.exceptions.Timeout("slow")
    with pytest.raises(ExternalOperationFailed):
        client.lookup_accounts_by_steam_id("76561199224604471")
    assert client.session.post.call_count == 1


def test_steam_vanity_resolution():
    steam = SteamClient("steam-key")
    steam.session = MagicMock()
    steam.session.get.return_value = _response(
        body={"response": {"success": 1, "steamid": "76561199224604471"}}
    )
    assert steam.resolve_vanity("storm") == "76561199224604471"
    assert steam.session.get.call_args.kwargs["params"] == {"key": "steam-key", "vanityurl": "storm"}

    steam.session.get.return_value = _response(body={"response": {"success": 42}})
    assert steam.resolve_vanity("nobody") is None


def test_steam_without_key():
    with pytest.raises(ExternalOperationFailed):
        SteamClient("").resolve_vanity("storm")
