"""Exceptions raised by the PlayFab tooling and reported back to the acting user."""

from typing import Optional


class SupportBotError(Exception):
    """Base class for errors whose message is safe to show to the user verbatim."""


class InvalidDuration(SupportBotError):
    def __init__(self, value: str):
        self.value = value
        super().__init__(
            f"Invalid duration '{value}'. Use hours (e.g. 168) or 90m/2h/3d/1w."
        )


class MissingField(SupportBotError):
    def __init__(self, field_name: str, action: Optional[str] = None):
        self.field_name = field_name
        self.action = action
        where = f" for {action}" if action else ""
        super().__init__(f"{field_name.capitalize()} is required{where}.")


class ConfirmationFailed(SupportBotError):
    def __init__(self, expected_word: str):
        self.expected_word = expected_word
        super().__init__(f"Confirmation failed (type {expected_word.upper()}).")


class UnsupportedIdentifier(SupportBotError):
    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "Unsupported identifier. Use a PlayFabId, a 17-digit SteamID64, or a Steam profile URL."
        )


class AccountNotLinked(SupportBotError):
    def __init__(self, steam64: str):
        self.steam64 = steam64
        super().__init__(f"SteamID64 {steam64} is not linked to a PlayFab account.")


class NotAuthorized(SupportBotError):
    def __init__(self, message: str = "Not authorized."):
        super().__init__(message)


class RequestNotFound(SupportBotError):
    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(
            f"Pending request {request_id} not found or already processed."
        )


class ExternalOperationFailed(SupportBotError):
    """A backend call failed; carries the backend-supplied code and message."""

    def __init__(self, operation: str, code: object, message: str):
        self.operation = operation
        self.code = code
        self.message = message
        super().__init__(f"{operation} failed: {message} [{code}]")
