"""Spotify sign-in and session handling (OAuth Authorization Code + PKCE).

Pieces, leaves first:
- pkce.py     verifier/challenge generation
- storage.py  durable key/value storage the session survives restarts in
- session.py  SessionStore, the single source of truth read by the menus
- flow.py     AuthFlowController (login redirect, callback, guest, logout)
- client.py   SpotifyClient for bearer-token Web API calls
"""

from .auth import SpotifyTokenEndpoint, check_spotify_credentials, extract_callback_params
from .client import SpotifyClient
from .errors import (
    AuthError,
    MissingCode,
    MissingOrUndecodableVerifier,
    ProviderDenied,
    SpotifyHTTPError,
    StateMismatch,
    TokenExchangeRejected,
    TransportFailure,
    UnauthenticatedRequest,
)
from .flow import AuthFlowController, AuthState
from .models import PKCEContext, TokenInfo, UserIdentity
from .pkce import derive_challenge, generate_pkce_pair, generate_verifier
from .session import SessionStore
from .storage import JsonFileStorage, KeyValueStorage, MemoryStorage

__all__ = [
    "AuthError",
    "AuthFlowController",
    "AuthState",
    "JsonFileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "MissingCode",
    "MissingOrUndecodableVerifier",
    "PKCEContext",
    "ProviderDenied",
    "SessionStore",
    "SpotifyClient",
    "SpotifyHTTPError",
    "SpotifyTokenEndpoint",
    "StateMismatch",
    "TokenExchangeRejected",
    "TokenInfo",
    "TransportFailure",
    "UnauthenticatedRequest",
    "UserIdentity",
    "check_spotify_credentials",
    "derive_challenge",
    "extract_callback_params",
    "generate_pkce_pair",
    "generate_verifier",
]
