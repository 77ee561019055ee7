from typing import Any, Dict, Optional


class AuthError(RuntimeError):
    """Base class for every failure surfaced by the auth/session subsystem.

    ``kind`` names the failure class so callers (and the session's
    ``last_error`` display) can branch without isinstance chains.
    """

    kind = "AuthError"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ProviderDenied(AuthError):
    """The provider redirected back with an ``error`` query parameter."""

    kind = "ProviderDenied"

    def __init__(self, error: str, description: Optional[str] = None):
        message = f"Authentication failed: {error}"
        if description:
            message = f"{message} ({description})"
        super().__init__(message, details={"error": error, "error_description": description})
        self.error = error


class MissingCode(AuthError):
    kind = "MissingCode"


class MissingOrUndecodableVerifier(AuthError):
    kind = "MissingOrUndecodableVerifier"


class StateMismatch(AuthError):
    """Callback ``state`` differs from the value issued with the redirect."""

    kind = "StateMismatch"


class TokenExchangeRejected(AuthError):
    """Token endpoint answered with an error body or a non-success status."""

    kind = "TokenExchangeRejected"

    def __init__(self, message: str, *, status_code: Optional[int] = None, error: Optional[str] = None):
        super().__init__(message, details={"status_code": status_code, "error": error})
        self.status_code = status_code
        self.error = error


class TransportFailure(AuthError):
    """Network failure or a response body that could not be parsed."""

    kind = "TransportFailure"


class UnauthenticatedRequest(AuthError):
    """A resource call was attempted without a valid access token."""

    kind = "UnauthenticatedRequest"


class SpotifyHTTPError(RuntimeError):
    """Non-2xx answer from the Spotify Web API."""

    def __init__(self, status_code: int, message: str, *, body: Any = None):
        super().__init__(f"Spotify API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.body = body
