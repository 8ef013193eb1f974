"""Client for the Steam Web API (vanity URL resolution)."""

import logging
from typing import Optional

import requests

from supportbot.errors import ExternalOperationFailed

RESOLVE_VANITY_URL = "https://api.steampowered.com/ISteamUser/ResolveVanityURL/v1/"


class SteamClient:
    """Resolves custom Steam profile names to SteamID64s."""

    def __init__(self, api_key: str, timeout: int = 10):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {"User-Agent": "OUTBRK Support Bot/1.0", "Accept": "application/json"}
        )
        retry_strategy = requests.adapters.Retry(
            total=3, backoff_factor=1, status_forcelist=[429, 500, 502, 503, 504]
        )
        self.session.mount(
            "https://", requests.adapters.HTTPAdapter(max_retries=retry_strategy)
        )

    def resolve_vanity(self, name: str) -> Optional[str]:
        """Return the SteamID64 for a vanity name, or None if Steam does not know it."""
        if not self.api_key:
            self.logger.error("Steam web API key is not configured; cannot resolve vanity URLs.")
            raise ExternalOperationFailed("ResolveVanityURL", "config", "Steam web API key missing.")

        self.logger.info(f"Resolving Steam vanity name '{name}'")
        try:
            response = self.session.get(
                RESOLVE_VANITY_URL,
                params={"key": self.api_key, "vanityurl": name},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Network error resolving vanity '{name}': {str(e)}")
            raise ExternalOperationFailed("ResolveVanityURL", "network", str(e)) from e
        except ValueError as e:
            self.logger.error(f"Non-JSON response resolving vanity '{name}'.")
            raise ExternalOperationFailed("ResolveVanityURL", "decode", str(e)) from e

        result = (data.get("response") or {}) if isinstance(data, dict) else {}
        if result.get("success") == 1 and result.get("steamid"):
            self.logger.debug(f"Vanity '{name}' resolved to {result['steamid']}")
            return str(result["steamid"])

        self.logger.info(f"Steam could not resolve vanity '{name}' (success={result.get('success')}).")
        return None
