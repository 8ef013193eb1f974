"""Client for the PlayFab Admin and Server APIs."""

import json
import logging
from typing import Any, Dict, Optional

import requests

from supportbot.config import get_config_value
from supportbot.errors import ExternalOperationFailed


class PlayFabClient:
    """Client for the subset of the PlayFab admin API used by the support tooling.

    Every call is a ``POST https://{title_id}.playfabapi.com/{Admin|Server}/{Op}``
    authenticated with the title secret key. Methods are blocking; async callers
    wrap them in ``asyncio.to_thread``.
    """

    def __init__(self, title_id: str, secret_key: str, timeout: int = 15):
        self.logger = logging.getLogger(self.__class__.__name__)
        if not all([title_id, secret_key]):
            self.logger.critical(
                "Missing required PlayFab credentials at client initialization."
            )
            raise ValueError("Missing required PlayFab credentials")

        self.title_id = title_id
        self.secret_key = secret_key
        self.base_url = f"https://{title_id}.playfabapi.com"
        self.timeout = timeout
        self.session = requests.Session()
        self._setup_session()

    def _setup_session(self) -> None:
        """Setup the session with auth header and retries"""
        self.logger.debug("Setting up requests session with headers and retries.")
        self.session.headers.update(
            {
                "User-Agent": "OUTBRK Support Bot/1.0",
                "Accept": "application/json",
                "Content-Type": "application/json",
                "X-SecretKey": self.secret_key,
            }
        )
        # PlayFab operations are POSTs; only retry when the server says so
        retry_strategy = requests.adapters.Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=None,
        )
        adapter = requests.adapters.HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("https://", adapter)
        self.logger.info("PlayFab requests session configured with retry strategy.")

    def _log_api_call(
        self,
        url: str,
        payload: Optional[Dict[str, Any]] = None,
        response: Optional[requests.Response] = None,
    ) -> None:
        """Log API calls in debug mode"""
        if not get_config_value("bot_settings.debug_mode", False):
            return

        log_data = {
            "method": "POST",
            "url": url,
            "payload": payload,
            "status_code": response.status_code if response is not None else None,
            "response_body": None,
        }

        if response is not None:
            try:
                log_data["response_body"] = response.json()
            except ValueError:
                log_data["response_body"] = (
                    f"(Non-JSON Response, starts with: {response.text[:200]}...)"
                )

        # The secret only travels in the session headers, never the payload
        text = json.dumps(log_data, indent=2, default=str)
        self.logger.debug(f"PlayFab API Call: {text.replace(self.secret_key, '***REDACTED***')}")

    def _post(self, api: str, operation: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST to ``{api}/{operation}`` and return the decoded JSON body.

        Raises ExternalOperationFailed for network errors, non-2xx statuses
        and PlayFab error payloads.
        """
        url = f"{self.base_url}/{api}/{operation}"
        try:
            response = self.session.post(url, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Network error calling PlayFab {operation}: {str(e)}")
            raise ExternalOperationFailed(operation, "network", str(e)) from e

        self._log_api_call(url, payload=body, response=response)

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.status_code >= 300 or data.get("error"):
            code = (
                data.get("errorCode")
                or data.get("code")
                or data.get("status")
                or response.status_code
            )
            message = (
                data.get("errorMessage")
                or data.get("message")
                or response.text[:200]
                or f"HTTP {response.status_code}"
            )
            self.logger.error(
                f"PlayFab {operation} failed with status {response.status_code}: {message} [{code}]"
            )
            raise ExternalOperationFailed(operation, code, message)

        self.logger.debug(f"PlayFab {operation} succeeded (Status: {response.status_code}).")
        return data

    def ban_user(self, account_id: str, reason: str, duration_hours: int) -> Dict[str, Any]:
        """Ban an account. ``duration_hours`` of 0 means permanent."""
        ban = {
            "PlayFabId": account_id,
            "Reason": reason,
            "DurationInHours": max(0, duration_hours),
        }
        self.logger.info(
            f"Banning PlayFab account {account_id} for "
            f"{f'{duration_hours}h' if duration_hours else 'permanent'}."
        )
        return self._post("Admin", "BanUsers", {"Bans": [ban]})

    def read_account_attribute(self, account_id: str, key: str) -> Optional[str]:
        """Read one read-only data value. Returns None when the key is not set."""
        data = self._post(
            "Admin",
            "GetUserReadOnlyData",
            {"PlayFabId": account_id, "Keys": [key]},
        )
        entries = (data.get("data") or {}).get("Data") or {}
        entry = entries.get(key)
        if isinstance(entry, dict):
            return entry.get("Value")
        return None

    def write_account_attribute(
        self, account_id: str, key: str, value: str, permission: str = "Public"
    ) -> Dict[str, Any]:
        """Overwrite one read-only data value."""
        self.logger.info(f"Writing read-only data key '{key}' for {account_id}.")
        return self._post(
            "Admin",
            "UpdateUserReadOnlyData",
            {"PlayFabId": account_id, "Data": {key: value}, "Permission": permission},
        )

    def delete_account_data_key(self, account_id: str, key: str) -> Dict[str, Any]:
        """Remove a key from the account's user data."""
        self.logger.info(f"Removing user data key '{key}' for {account_id}.")
        return self._post(
            "Admin",
            "UpdateUserData",
            {"PlayFabId": account_id, "KeysToRemove": [key]},
        )

    def lookup_accounts_by_steam_id(self, steam64: str) -> Dict[str, Any]:
        """Map a SteamID64 to PlayFab ids; returns the raw response body.

        Titles on older API versions reject ``SteamStringIDs``; the request is
        retried once with the legacy ``SteamIDs`` field.
        """
        try:
            return self._post(
                "Server", "GetPlayFabIDsFromSteamIDs", {"SteamStringIDs": [steam64]}
            )
        except ExternalOperationFailed as first_error:
            if first_error.code == "network":
                raise
            self.logger.warning(
                f"SteamStringIDs lookup failed ({first_error.message}); retrying with SteamIDs."
            )
            return self._post(
                "Server", "GetPlayFabIDsFromSteamIDs", {"SteamIDs": [steam64]}
            )
