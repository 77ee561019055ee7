"""Process-wide authentication session.

The store is constructed explicitly and handed to whoever needs it (flow
controller, API client, menus). All setters are synchronous, never raise,
and notify subscribers after the change has been applied in full.
"""

import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional

from .models import PKCEContext, UserIdentity
from .storage import (
    ACCESS_TOKEN_KEY,
    ALL_SESSION_KEYS,
    GUEST_MODE_KEY,
    PKCE_CONTEXT_KEY,
    TOKEN_EXPIRATION_KEY,
    KeyValueStorage,
)

logger = logging.getLogger(__name__)

Listener = Callable[["SessionStore"], None]


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def _parse_expiration(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class SessionStore:
    """Holds token, expiry, identity, guest flag and request status."""

    def __init__(self, storage: KeyValueStorage, *, clock: Callable[[], float] = time.time):
        self.storage = storage
        self._clock = clock
        self._listeners: List[Listener] = []

        self.access_token: str = ""
        self.token_expiration_time: int = 0
        self.identity: Optional[UserIdentity] = None
        self.is_guest_mode: bool = False
        self.is_loading: bool = False
        self.last_error: Optional[str] = None

        self._restore_token()
        self._restore_guest_mode()

    # -----------------
    # Restoration
    # -----------------

    def _restore_token(self) -> None:
        saved_token = self.storage.get(ACCESS_TOKEN_KEY)
        saved_expiration = self.storage.get(TOKEN_EXPIRATION_KEY)
        if not saved_token or saved_expiration is None:
            return

        expiration = _parse_expiration(saved_expiration)
        if self.now_ms() < expiration:
            self.access_token = str(saved_token)
            self.token_expiration_time = expiration
            logger.debug("Restored access token (expires in %d min)", self.minutes_until_expiration)
            return

        # Expired: behave as if the session had been cleared. A pending PKCE
        # context is kept so an in-flight login can still complete.
        logger.info("Stored access token has expired; discarding it")
        self.storage.remove(ACCESS_TOKEN_KEY)
        self.storage.remove(TOKEN_EXPIRATION_KEY)
        self.storage.remove(GUEST_MODE_KEY)

    def _restore_guest_mode(self) -> None:
        if not _parse_flag(self.storage.get(GUEST_MODE_KEY)):
            return
        self.is_guest_mode = True
        if self.identity is None:
            self.identity = UserIdentity.guest()

    # -----------------
    # Derived state
    # -----------------

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    @property
    def has_valid_token(self) -> bool:
        return bool(self.access_token) and self.now_ms() < self.token_expiration_time

    @property
    def minutes_until_expiration(self) -> int:
        if not self.has_valid_token:
            return 0
        return int(math.floor((self.token_expiration_time - self.now_ms()) / 1000 / 60))

    @property
    def is_fully_authenticated(self) -> bool:
        return self.has_valid_token and self.identity is not None

    @property
    def has_pending_login(self) -> bool:
        return self.storage.get(PKCE_CONTEXT_KEY) is not None

    # -----------------
    # Mutations
    # -----------------

    def set_token(self, token: str, expires_in_seconds: int) -> None:
        """Store a freshly issued token and persist it with its absolute expiry."""
        self.access_token = str(token or "")
        self.token_expiration_time = self.now_ms() + int(expires_in_seconds) * 1000
        self.last_error = None

        self.storage.set(ACCESS_TOKEN_KEY, self.access_token)
        self.storage.set(TOKEN_EXPIRATION_KEY, self.token_expiration_time)
        self._notify()

    def set_identity(self, identity: Optional[UserIdentity]) -> None:
        self.identity = identity
        self._notify()

    def set_guest_mode(self, is_guest: bool) -> None:
        """Toggle guest mode; turning it on synthesizes the guest identity if needed."""
        self.is_guest_mode = bool(is_guest)
        self.storage.set(GUEST_MODE_KEY, self.is_guest_mode)
        if self.is_guest_mode and self.identity is None:
            self.identity = UserIdentity.guest()
        self._notify()

    def end_guest_mode(self) -> None:
        """Drop the guest flag and placeholder identity before a delegated sign-in."""
        self.is_guest_mode = False
        self.storage.remove(GUEST_MODE_KEY)
        if self.identity is not None and self.identity.is_guest:
            self.identity = None
        self._notify()

    def set_loading(self, is_loading: bool) -> None:
        self.is_loading = bool(is_loading)
        self._notify()

    def set_error(self, message: Optional[str]) -> None:
        self.last_error = message
        self._notify()

    def clear_session(self) -> None:
        """Reset every field together and drop all durable keys, PKCE context included."""
        self.access_token = ""
        self.token_expiration_time = 0
        self.identity = None
        self.is_guest_mode = False
        self.last_error = None

        for key in ALL_SESSION_KEYS:
            self.storage.remove(key)
        logger.info("Session cleared")
        self._notify()

    # -----------------
    # PKCE exchange context
    # -----------------

    def save_pkce_context(self, context: PKCEContext) -> None:
        self.storage.set(PKCE_CONTEXT_KEY, context.to_dict())

    def load_pkce_context(self, *, refresh: bool = False) -> Optional[PKCEContext]:
        if refresh:
            self.storage.reload()
        return PKCEContext.from_dict(self.storage.get(PKCE_CONTEXT_KEY))

    def delete_pkce_context(self) -> None:
        self.storage.remove(PKCE_CONTEXT_KEY)

    # -----------------
    # Observation
    # -----------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(store)``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Session listener %r failed", listener)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "has_valid_token": self.has_valid_token,
            "token_expiration_time": self.token_expiration_time,
            "minutes_until_expiration": self.minutes_until_expiration,
            "identity": self.identity.to_dict() if self.identity else None,
            "is_guest_mode": self.is_guest_mode,
            "is_fully_authenticated": self.is_fully_authenticated,
            "is_loading": self.is_loading,
            "last_error": self.last_error,
        }
