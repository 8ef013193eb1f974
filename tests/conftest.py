"""Shared fakes and fixtures for the support bot tests."""

import datetime
from typing import Any, Dict, List, Optional

import pytest

from supportbot.approvals import ApprovalService
from supportbot.errors import ExternalOperationFailed
from supportbot.resolver import IdentityResolver
from supportbot.storage import AgentStatsStore, PlayFabStore

ADMIN_ID = "100"
FIXED_NOW = datetime.datetime(2025, 7, 26, 14, 30, tzinfo=datetime.timezone.utc)


class FakePlayFab:
    """Records every backend call; lookups answer from ``steam_links``."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.attributes: Dict[str, Dict[str, str]] = {}
        self.steam_links: Dict[str, Dict[str, Any]] = {}
        self.fail_with: Optional[ExternalOperationFailed] = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def ban_user(self, account_id, reason, duration_hours):
        self.calls.append(("ban_user", account_id, reason, duration_hours))
        self._maybe_fail()
        return {"code": 200}

    def read_account_attribute(self, account_id, key):
        self.calls.append(("read_account_attribute", account_id, key))
        self._maybe_fail()
        return self.attributes.get(account_id, {}).get(key)

    def write_account_attribute(self, account_id, key, value, permission="Public"):
        self.calls.append(("write_account_attribute", account_id, key, value))
        self._maybe_fail()
        self.attributes.setdefault(account_id, {})[key] = value
        return {"code": 200}

    def delete_account_data_key(self, account_id, key):
        self.calls.append(("delete_account_data_key", account_id, key))
        self._maybe_fail()
        return {"code": 200}

    def lookup_accounts_by_steam_id(self, steam64):
        self.calls.append(("lookup_accounts_by_steam_id", steam64))
        return self.steam_links.get(steam64, {"code": 200, "data": {"Data": []}})


class FakeSteam:
    def __init__(self, names: Optional[Dict[str, str]] = None):
        self.names = names or {}
        self.calls: List[str] = []

    def resolve_vanity(self, name):
        self.calls.append(name)
        return self.names.get(name)


class FakeNotifier:
    def __init__(self):
        self.sent: List[tuple] = []

    async def notify(self, user_id, text):
        self.sent.append((str(user_id), text))
        return True


class FakePublisher:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published = []
        self.updates = []

    async def publish(self, pending):
        if self.fail:
            raise RuntimeError("approval channel unavailable")
        self.published.append(pending)
        return f"prompt-{pending.id}"

    async def update_prompt(self, prompt, text, disable_actions):
        self.updates.append((prompt, text, disable_actions))


@pytest.fixture
def playfab():
    return FakePlayFab()


@pytest.fixture
def steam():
    return FakeSteam()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def playfab_store(tmp_path):
    store = PlayFabStore(tmp_path / PlayFabStore.FILE_NAME, debounce_seconds=60)
    store.load()
    return store


@pytest.fixture
def stats_store(tmp_path):
    store = AgentStatsStore(tmp_path / AgentStatsStore.FILE_NAME, debounce_seconds=60)
    store.load()
    return store


@pytest.fixture
def service(playfab_store, playfab, steam, publisher, notifier):
    return ApprovalService(
        store=playfab_store,
        playfab=playfab,
        resolver=IdentityResolver(playfab, steam),
        publisher=publisher,
        notifier=notifier,
        admin_ids=[ADMIN_ID],
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def link_steam(playfab):
    """Make the fake lookup answer ``steam64`` with ``account_id`` (after any extra rows)."""

    def link(steam64: str, account_id: str, extra_rows=()):
        rows = list(extra_rows) + [{"SteamStringId": steam64, "PlayFabId": account_id}]
        playfab.steam_links[steam64] = {"code": 200, "data": {"Data": rows}}

    return link
