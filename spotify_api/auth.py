import logging
import urllib.parse
from typing import Any, Dict, Iterable, Optional

import httpx

from .errors import AuthError, TokenExchangeRejected, TransportFailure
from .models import TokenInfo

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_AUTHORIZE_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"

DEFAULT_REDIRECT_URI = "http://127.0.0.1:3000/callback"


def _redact(value: Optional[str], keep: int = 10) -> str:
    value = str(value or "")
    return f"{value[:keep]}..." if len(value) > keep else value


def get_client_id(config: Dict[str, Any]) -> str:
    return str((config or {}).get("spotify_client_id", "")).strip()


def get_redirect_uri(config: Dict[str, Any]) -> str:
    return str((config or {}).get("spotify_redirect_uri", "")).strip()


def get_scope_string(config: Dict[str, Any], scopes: Optional[Iterable[str]] = None) -> str:
    scope_list = list(scopes if scopes is not None else (config or {}).get("spotify_scopes", []) or [])
    return " ".join([str(s).strip() for s in scope_list if str(s).strip()])


def check_spotify_credentials(config: Dict[str, Any]) -> Dict[str, Any]:
    """Validate Spotify OAuth config fields and return a structured status dict."""

    config = config or {}
    client_id = get_client_id(config)
    redirect_uri = get_redirect_uri(config)
    scopes = list(config.get("spotify_scopes", []) or [])
    has_secret = bool(str(config.get("spotify_client_secret", "") or "").strip())

    status = {
        "ok": True,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scopes": scopes,
        "guest_available": bool(client_id) and has_secret,
        "message": "Spotify credentials look OK.",
    }

    if not client_id:
        status["ok"] = False
        status["message"] = (
            "Missing spotify_client_id in config.json.\n"
            "Create an app at https://developer.spotify.com/dashboard and copy its Client ID."
        )
    elif not redirect_uri:
        status["ok"] = False
        status["message"] = (
            "Missing spotify_redirect_uri in config.json.\n"
            f"Recommended default: {DEFAULT_REDIRECT_URI}"
        )
    elif not has_secret:
        status["message"] = (
            "Spotify credentials look OK. Guest mode is unavailable until spotify_client_secret is set."
        )

    return status


def spotify_app_setup_instructions(*, redirect_uri: str = DEFAULT_REDIRECT_URI) -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    redirect_uri = str(redirect_uri or "").strip() or DEFAULT_REDIRECT_URI
    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID into config.json as spotify_client_id\n"
        "5) Optional: copy the Client Secret into spotify_client_secret to enable guest mode\n\n"
        "Notes:\n"
        "- Signing in uses Authorization Code + PKCE (no client secret involved).\n"
        "- Guest mode uses the Client Credentials grant and cannot read your library.\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
    )


def extract_callback_params(redirect_url: str) -> Dict[str, str]:
    """Parse a callback URL (or bare query string) into code/state/error fields.

    Missing keys are omitted.
    """

    raw = str(redirect_url or "").strip()
    if "://" in raw or raw.startswith("/"):
        query = urllib.parse.urlparse(raw).query
    else:
        query = raw.lstrip("?")

    qs = urllib.parse.parse_qs(query)
    out: Dict[str, str] = {}
    for key in ("code", "state", "error", "error_description"):
        if qs.get(key):
            out[key] = str(qs[key][0])
    return out


def build_authorize_url(
    *,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    scope: str = "",
    state: Optional[str] = None,
    show_dialog: bool = False,
) -> str:
    params: Dict[str, str] = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "code_challenge_method": "S256",
        "code_challenge": str(code_challenge),
    }
    if scope:
        params["scope"] = scope
    if state:
        params["state"] = str(state)
    if show_dialog:
        params["show_dialog"] = "true"

    return f"{SPOTIFY_AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"


class SpotifyTokenEndpoint:
    """Async client for ``POST /api/token``.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(self, config: Dict[str, Any], *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or {}
        self.transport = transport

    def _timeout(self) -> Optional[float]:
        timeout = self.config.get("spotify_http_timeout")
        return float(timeout) if timeout else None

    async def exchange_code(self, *, code: str, code_verifier: str) -> TokenInfo:
        """Authorization-code grant with the PKCE verifier."""

        logger.info(
            "Token exchange request: client_id=%s redirect_uri=%s code=%s has_verifier=%s",
            get_client_id(self.config),
            get_redirect_uri(self.config),
            _redact(code),
            bool(code_verifier),
        )
        return await self._post_form(
            {
                "client_id": get_client_id(self.config),
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": get_redirect_uri(self.config),
                "code_verifier": code_verifier,
            }
        )

    async def request_client_credentials(self) -> TokenInfo:
        """Client-credentials grant used for guest sessions."""

        client_id = get_client_id(self.config)
        client_secret = str(self.config.get("spotify_client_secret", "") or "").strip()
        if not client_id or not client_secret:
            raise AuthError("Guest mode requires spotify_client_id and spotify_client_secret in config.json")

        logger.info("Requesting client-credentials token for guest session")
        return await self._post_form(
            {"grant_type": "client_credentials"},
            auth=httpx.BasicAuth(client_id, client_secret),
        )

    async def _post_form(self, form: Dict[str, Any], *, auth: Optional[httpx.Auth] = None) -> TokenInfo:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}

        try:
            async with httpx.AsyncClient(timeout=self._timeout(), follow_redirects=False, transport=self.transport) as client:
                resp = await client.post(
                    SPOTIFY_TOKEN_URL,
                    data=data,
                    auth=auth,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise TransportFailure(f"Spotify token request failed: {e}") from e

        logger.debug("Token endpoint responded with HTTP %s", resp.status_code)

        try:
            payload = resp.json()
        except ValueError as e:
            if resp.status_code >= 400:
                raise TokenExchangeRejected(
                    f"Failed to get access token (HTTP {resp.status_code})",
                    status_code=resp.status_code,
                ) from e
            raise TransportFailure(f"Spotify token response was not JSON: {resp.text[:200]}") from e

        if not isinstance(payload, dict):
            raise TransportFailure(f"Spotify token response was not an object: {payload!r}")

        if resp.status_code < 400 and payload.get("access_token"):
            return TokenInfo.from_token_response(payload)

        error = payload.get("error")
        if isinstance(error, dict):
            # Web API style: {"error": {"status": 400, "message": "..."}}
            error = error.get("message")
        message = payload.get("error_description") or error or f"Failed to get access token (HTTP {resp.status_code})"
        raise TokenExchangeRejected(str(message), status_code=resp.status_code, error=str(error) if error else None)
