"""Authorization Code + PKCE login flow and the guest (client credentials) shortcut.

The controller is a small state machine over a SessionStore::

    UNAUTHENTICATED -> AWAITING_PROVIDER_REDIRECT -> AWAITING_CALLBACK
        -> EXCHANGING_CODE -> AUTHENTICATED
    UNAUTHENTICATED -> GUEST_REQUESTED -> GUEST_AUTHENTICATED

Any in-flight state can fall into ERROR. A callback is only processed while
the controller is waiting for one; the state flips to EXCHANGING_CODE before
the first await, so a duplicate invocation for the same visit is a no-op and
the single-use code is submitted once.
"""

import asyncio
import enum
import logging
import webbrowser
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from .auth import (
    SpotifyTokenEndpoint,
    build_authorize_url,
    extract_callback_params,
    get_client_id,
    get_redirect_uri,
    get_scope_string,
)
from .errors import (
    AuthError,
    MissingCode,
    MissingOrUndecodableVerifier,
    ProviderDenied,
    SpotifyHTTPError,
    StateMismatch,
)
from .models import PKCEContext, UserIdentity
from .pkce import DEFAULT_VERIFIER_LENGTH, generate_pkce_pair, generate_state
from .session import SessionStore

logger = logging.getLogger(__name__)


class AuthState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_PROVIDER_REDIRECT = "awaiting_provider_redirect"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING_CODE = "exchanging_code"
    AUTHENTICATED = "authenticated"
    GUEST_REQUESTED = "guest_requested"
    GUEST_AUTHENTICATED = "guest_authenticated"
    ERROR = "error"


IN_FLIGHT_STATES = frozenset({AuthState.EXCHANGING_CODE, AuthState.GUEST_REQUESTED})
AUTHENTICATED_STATES = frozenset({AuthState.AUTHENTICATED, AuthState.GUEST_AUTHENTICATED})

StateListener = Callable[[AuthState, AuthState], None]
Navigator = Callable[[str], Any]
Sleeper = Callable[[float], Awaitable[Any]]


class AuthFlowController:
    """Drives login, callback handling, guest login and logout.

    Public coroutines never raise: failures are written to the session
    (``last_error``) and kept on ``self.last_error``.
    """

    def __init__(
        self,
        session: SessionStore,
        config: Dict[str, Any],
        *,
        token_endpoint: Optional[SpotifyTokenEndpoint] = None,
        navigator: Optional[Navigator] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.session = session
        self.config = config or {}
        self.token_endpoint = token_endpoint or SpotifyTokenEndpoint(self.config)
        self.navigator = navigator or webbrowser.open
        self._sleep = sleep
        self._listeners: List[StateListener] = []
        self.last_error: Optional[AuthError] = None
        self.state = self._initial_state()

    # -----------------
    # State bookkeeping
    # -----------------

    def _initial_state(self) -> AuthState:
        if self.session.has_valid_token:
            return self._authenticated_state()
        if self.session.has_pending_login:
            return AuthState.AWAITING_CALLBACK
        return AuthState.UNAUTHENTICATED

    def _authenticated_state(self) -> AuthState:
        return AuthState.GUEST_AUTHENTICATED if self.session.is_guest_mode else AuthState.AUTHENTICATED

    def _transition(self, new_state: AuthState) -> None:
        old_state = self.state
        self.state = new_state
        if old_state == new_state:
            return
        logger.debug("Auth state %s -> %s", old_state.value, new_state.value)
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception("Auth state listener %r failed", listener)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _fail(self, error: AuthError) -> AuthState:
        self.last_error = error
        logger.warning("%s: %s", error.kind, error.message)
        self.session.set_loading(False)
        self.session.set_error(error.message)
        self._transition(AuthState.ERROR)
        return self.state

    def _short_circuit(self) -> AuthState:
        self.session.set_loading(False)
        self._transition(self._authenticated_state())
        return self.state

    # -----------------
    # Delegated login
    # -----------------

    def initiate_login(self) -> Optional[str]:
        """Persist a PKCE context, build the authorize URL and open it.

        Returns the URL so it can also be shown to the user, or None when no
        redirect happened (already signed in, a request in flight, or bad
        configuration).
        """

        if self.session.has_valid_token:
            logger.info("Already authenticated; skipping authorization redirect")
            self._short_circuit()
            return None

        if self.state in IN_FLIGHT_STATES:
            logger.debug("Login requested while %s; ignoring", self.state.value)
            return None

        client_id = get_client_id(self.config)
        redirect_uri = get_redirect_uri(self.config)
        if not client_id or not redirect_uri:
            self._fail(AuthError("Missing spotify_client_id or spotify_redirect_uri in config.json"))
            return None

        self.last_error = None
        self.session.set_error(None)
        self._transition(AuthState.AWAITING_PROVIDER_REDIRECT)

        try:
            pkce = generate_pkce_pair(int(self.config.get("spotify_verifier_length", DEFAULT_VERIFIER_LENGTH)))
        except ValueError as e:
            self._fail(AuthError(str(e)))
            return None

        state = generate_state()
        self.session.save_pkce_context(
            PKCEContext.create(pkce.code_verifier, state, now=self.session.now_ms() / 1000.0)
        )

        url = build_authorize_url(
            client_id=client_id,
            redirect_uri=redirect_uri,
            code_challenge=pkce.code_challenge,
            scope=get_scope_string(self.config),
            state=state,
            show_dialog=bool(self.config.get("spotify_show_dialog", False)),
        )

        logger.info("Redirecting to Spotify with redirect_uri: %s", redirect_uri)
        self._transition(AuthState.AWAITING_CALLBACK)
        try:
            self.navigator(url)
        except Exception as e:
            logger.warning("Could not open the browser (%s); open the authorize URL manually", e)
        return url

    async def handle_callback(self, callback: Union[str, Mapping[str, str], None]) -> AuthState:
        """Process one callback visit (a redirect URL, query string or parsed params)."""

        if self.state in IN_FLIGHT_STATES or self.state == AuthState.ERROR:
            logger.debug("Ignoring callback while %s", self.state.value)
            return self.state

        if self.state in AUTHENTICATED_STATES and self.session.has_valid_token:
            logger.info("Already authenticated; ignoring callback")
            return self.state

        if isinstance(callback, str):
            params = extract_callback_params(callback)
        else:
            params = {k: str(v) for k, v in (callback or {}).items() if v is not None}

        self._transition(AuthState.AWAITING_CALLBACK)

        error = params.get("error")
        if error:
            self.session.delete_pkce_context()
            return self._fail(ProviderDenied(error, params.get("error_description")))

        if self.session.has_valid_token:
            logger.info("Already authenticated; skipping code exchange")
            self.session.delete_pkce_context()
            return self._short_circuit()

        code = params.get("code")
        if not code:
            self.session.delete_pkce_context()
            return self._fail(MissingCode("Missing authorization code"))

        # One-shot guard: from here on duplicate callbacks are ignored.
        self._transition(AuthState.EXCHANGING_CODE)
        self.session.set_loading(True)
        self.session.set_error(None)

        try:
            return await self._exchange(code, params.get("state"))
        except AuthError as e:
            return self._recover(e)
        except Exception as e:
            logger.exception("Unexpected failure while exchanging authorization code")
            return self._recover(AuthError(f"Unknown error occurred: {e}"))

    def _recover(self, error: AuthError) -> AuthState:
        self.session.delete_pkce_context()
        if self.session.has_valid_token:
            logger.info("Token exists despite error (%s); treating login as complete", error.kind)
            return self._short_circuit()
        return self._fail(error)

    async def _exchange(self, code: str, returned_state: Optional[str]) -> AuthState:
        context = await self._resolve_pkce_context()
        if context is None:
            raise MissingOrUndecodableVerifier("Verifier not found in storage; start the login again")

        max_age = float(self.config.get("spotify_pkce_max_age", 600) or 0)
        if max_age and context.age(self.session.now_ms() / 1000.0) > max_age:
            raise MissingOrUndecodableVerifier("Login attempt expired; start the login again")

        if returned_state and context.state and returned_state != context.state:
            raise StateMismatch("OAuth state mismatch; cancelling this authentication attempt")

        token = await self.token_endpoint.exchange_code(code=code, code_verifier=context.verifier)

        # A delegated token replaces any leftover guest session.
        self.session.end_guest_mode()
        self.session.set_token(token.access_token, token.expires_in)
        self.session.delete_pkce_context()
        self.session.set_loading(False)
        self.session.set_error(None)
        self.last_error = None
        logger.info("Successfully obtained access token (expires in %d min)", self.session.minutes_until_expiration)
        self._transition(self._authenticated_state())
        return self.state

    async def _resolve_pkce_context(self) -> Optional[PKCEContext]:
        retries = max(0, int(self.config.get("spotify_verifier_read_retries", 2)))
        delay = float(self.config.get("spotify_verifier_retry_delay", 0.05))

        for attempt in range(retries + 1):
            context = self.session.load_pkce_context(refresh=attempt > 0)
            if context is not None:
                return context
            if attempt < retries:
                logger.debug("PKCE verifier not in storage yet (attempt %d/%d)", attempt + 1, retries + 1)
                await self._sleep(delay * (2 ** attempt))
        return None

    # -----------------
    # Guest login
    # -----------------

    async def login_as_guest(self) -> AuthState:
        """Open a guest session with the client-credentials grant (no browser round trip)."""

        if self.session.has_valid_token:
            logger.info("Already authenticated; skipping guest login")
            return self._short_circuit()

        if self.state in IN_FLIGHT_STATES:
            return self.state

        self.last_error = None
        self._transition(AuthState.GUEST_REQUESTED)
        self.session.set_loading(True)
        self.session.set_error(None)

        try:
            token = await self.token_endpoint.request_client_credentials()
        except AuthError as e:
            return self._fail(e)
        except Exception as e:
            logger.exception("Unexpected failure while requesting a guest token")
            return self._fail(AuthError(f"Unknown error occurred: {e}"))

        # Guest mode abandons a pending delegated login and any stale account identity.
        self.session.delete_pkce_context()
        if self.session.identity is not None and not self.session.identity.is_guest:
            self.session.set_identity(None)
        self.session.set_token(token.access_token, token.expires_in)
        self.session.set_guest_mode(True)
        self.session.set_loading(False)
        logger.info("Guest session established")
        self._transition(AuthState.GUEST_AUTHENTICATED)
        return self.state

    # -----------------
    # Session helpers
    # -----------------

    async def load_identity(self, client: Any) -> Optional[UserIdentity]:
        """Fetch ``/v1/me`` and store it as the session identity.

        Guest sessions keep their placeholder identity: a client-credentials
        token cannot read a user profile.
        """

        if not self.session.has_valid_token:
            return None
        if self.session.is_guest_mode:
            return self.session.identity

        self.session.set_loading(True)
        try:
            profile = await client.me()
        except (AuthError, SpotifyHTTPError) as e:
            self.session.set_loading(False)
            self.session.set_error(f"Failed to fetch user info: {e}")
            return None

        identity = UserIdentity.from_spotify_profile(profile)
        self.session.set_identity(identity)
        self.session.set_loading(False)
        return identity

    def logout(self) -> AuthState:
        """Clear the session; navigating back to the entry point is up to the caller."""
        self.session.clear_session()
        self.last_error = None
        self._transition(AuthState.UNAUTHENTICATED)
        return self.state

    def reset(self) -> AuthState:
        """Leave ERROR so the flow can be restarted."""
        if self.state == AuthState.ERROR:
            self.last_error = None
            self.session.set_error(None)
            self._transition(self._initial_state())
        return self.state
