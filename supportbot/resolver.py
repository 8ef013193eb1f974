"""Turns whatever a staff member pasted into a PlayFab account id.

Accepted inputs, tried in order:

1. a PlayFab id (16 alphanumeric characters, any case)
2. ``steamcommunity.com/profiles/<SteamID64>``
3. ``steamcommunity.com/id/<vanity>`` (needs the Steam web API key)
4. a bare 17-digit SteamID64
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

from supportbot.errors import AccountNotLinked, UnsupportedIdentifier
from supportbot.models import ResolvedPlayer
from supportbot.playfab_client import PlayFabClient
from supportbot.steam_client import SteamClient

ACCOUNT_ID_RE = re.compile(r"^[A-Z0-9]{16}$", re.IGNORECASE)
STEAM64_RE = re.compile(r"^\d{17}$")
PROFILE_ID_RE = re.compile(r"steamcommunity\.com/profiles/(\d{17})", re.IGNORECASE)
PROFILE_VANITY_RE = re.compile(r"steamcommunity\.com/id/([^/?#]+)", re.IGNORECASE)


@dataclass(frozen=True)
class SteamLink:
    steam_id: Optional[str]
    account_id: Optional[str]


def _rows_to_links(rows: Any) -> List[SteamLink]:
    if not isinstance(rows, list):
        raise ValueError("lookup rows must be a list")
    links = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        steam_id = row.get("SteamStringId") or row.get("SteamId")
        links.append(
            SteamLink(
                steam_id=str(steam_id) if steam_id is not None else None,
                account_id=row.get("PlayFabId"),
            )
        )
    return links


class EnvelopedLookup:
    """Current response shape: ``{"code": 200, "data": {"Data": [...]}}``."""

    @staticmethod
    def parse(body: Dict[str, Any]) -> List[SteamLink]:
        envelope = body.get("data")
        if not isinstance(envelope, dict):
            raise ValueError("no 'data' envelope")
        rows = envelope.get("Data", envelope.get("data"))
        return _rows_to_links(rows)


class LegacyLookup:
    """Older shape with the rows at the top level: ``{"Data": [...]}``."""

    @staticmethod
    def parse(body: Dict[str, Any]) -> List[SteamLink]:
        return _rows_to_links(body.get("Data"))


LOOKUP_SCHEMAS = (EnvelopedLookup, LegacyLookup)


def decode_lookup(body: Dict[str, Any]) -> List[SteamLink]:
    """Decode a lookup response, trying each known schema in turn."""
    for schema in LOOKUP_SCHEMAS:
        try:
            return schema.parse(body)
        except ValueError:
            continue
    return []


def pick_link(links: List[SteamLink], steam64: str) -> Optional[SteamLink]:
    """Prefer the row for exactly this SteamID64, else the first row."""
    for link in links:
        if link.steam_id == steam64:
            return link
    return links[0] if links else None


class IdentityResolver:
    def __init__(self, playfab: PlayFabClient, steam: Optional[SteamClient] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.playfab = playfab
        self.steam = steam

    def resolve(self, text: str) -> ResolvedPlayer:
        """Blocking; performs up to three HTTP calls."""
        raw = (text or "").strip()
        if not raw:
            raise UnsupportedIdentifier("No player identifier given.")

        if ACCOUNT_ID_RE.match(raw):
            return ResolvedPlayer(account_id=raw.upper())

        match = PROFILE_ID_RE.search(raw)
        if match:
            steam64 = match.group(1)
            return ResolvedPlayer(self.account_for_steam64(steam64), steam64=steam64)

        match = PROFILE_VANITY_RE.search(raw)
        if match:
            vanity = unquote(match.group(1))
            steam64 = self._resolve_vanity(vanity)
            return ResolvedPlayer(
                self.account_for_steam64(steam64), steam64=steam64, vanity=vanity
            )

        if STEAM64_RE.match(raw):
            return ResolvedPlayer(self.account_for_steam64(raw), steam64=raw)

        self.logger.info(f"Unsupported identifier submitted: '{raw[:64]}'")
        raise UnsupportedIdentifier()

    def _resolve_vanity(self, vanity: str) -> str:
        if self.steam is None:
            raise UnsupportedIdentifier(
                "Steam vanity URLs need the Steam web API key to be configured."
            )
        steam64 = self.steam.resolve_vanity(vanity)
        if not steam64:
            raise UnsupportedIdentifier(f"Could not resolve Steam vanity URL '{vanity}'.")
        return steam64

    def account_for_steam64(self, steam64: str) -> str:
        body = self.playfab.lookup_accounts_by_steam_id(steam64)
        link = pick_link(decode_lookup(body), steam64)
        if link is None or not link.account_id:
            self.logger.info(f"SteamID64 {steam64} has no linked PlayFab account.")
            raise AccountNotLinked(steam64)
        self.logger.debug(f"SteamID64 {steam64} resolved to {link.account_id}")
        return link.account_id
