import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import SpotifyHTTPError, TransportFailure, UnauthenticatedRequest
from .session import SessionStore

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com"


class SpotifyClient:
    """Thin async Spotify Web API client.

    Reads the bearer token from the SessionStore on every call and never
    writes to it. There is no retry or refresh here: a failure is raised and
    the caller decides whether it means "sign in again".
    """

    def __init__(
        self,
        session: SessionStore,
        config: Optional[Dict[str, Any]] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_url: str = SPOTIFY_API_BASE_URL,
    ):
        self.session = session
        self.config = config or {}
        self.transport = transport
        self.base_url = base_url.rstrip("/")

    def _timeout(self) -> Optional[float]:
        timeout = self.config.get("spotify_http_timeout")
        return float(timeout) if timeout else None

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make an authenticated Web API request and return parsed JSON.

        Raises:
            UnauthenticatedRequest: no valid token in the session (nothing is sent)
            SpotifyHTTPError: the API answered with a non-2xx status
            TransportFailure: network error or unparseable body
        """

        if not self.session.has_valid_token:
            raise UnauthenticatedRequest("No valid Spotify access token; sign in first")

        headers = {
            "Authorization": f"Bearer {self.session.access_token}",
            "Accept": "application/json",
        }
        query = {k: str(v) for k, v in (params or {}).items() if v is not None} or None

        try:
            async with httpx.AsyncClient(timeout=self._timeout(), transport=self.transport) as client:
                resp = await client.request(method.upper(), self._url(path), params=query, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise TransportFailure(f"Spotify API request failed: {e}") from e

        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            message = resp.text
            if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
                message = str(payload["error"].get("message") or message)
            logger.debug("%s %s failed with HTTP %s", method.upper(), path, resp.status_code)
            raise SpotifyHTTPError(resp.status_code, message, body=payload)

        if not resp.content:
            return {}

        try:
            return resp.json()
        except ValueError as e:
            raise TransportFailure(f"Spotify API response was not JSON (status {resp.status_code}): {resp.text[:200]}") from e

    async def get_all_items(self, path: str, *, params: Optional[Dict[str, Any]] = None, page_key: Optional[str] = None, max_items: Optional[int] = None) -> List[Dict[str, Any]]:
        """Follow ``next`` links of a paging object and return every item.

        page_key selects a nested paging object, e.g. ``albums`` for
        ``/v1/browse/new-releases``.
        """

        out: List[Dict[str, Any]] = []
        next_path: Optional[str] = path
        next_params = params

        while next_path:
            page = await self.request("GET", next_path, params=next_params)
            if page_key:
                page = page.get(page_key) or {}

            items = page.get("items") or []
            out.extend([x for x in items if isinstance(x, dict)])
            if max_items is not None and len(out) >= int(max_items):
                return out[: int(max_items)]

            next_path = page.get("next")
            # The next URL already carries limit/offset.
            next_params = None

        return out

    # -----------------
    # Convenience endpoints
    # -----------------

    async def me(self) -> Dict[str, Any]:
        return await self.request("GET", "/v1/me")

    async def current_user_playlists(self, *, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return await self.request("GET", "/v1/me/playlists", params={"limit": limit, "offset": offset})

    async def user_playlists(self, user_id: str, *, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return await self.request("GET", f"/v1/users/{user_id}/playlists", params={"limit": limit, "offset": offset})

    async def playlist(self, playlist_id: str) -> Dict[str, Any]:
        return await self.request("GET", f"/v1/playlists/{playlist_id}")

    async def current_user_saved_albums(self, *, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return await self.request("GET", "/v1/me/albums", params={"limit": limit, "offset": offset})

    async def new_releases(self, *, limit: int = 20, offset: int = 0, country: Optional[str] = None) -> Dict[str, Any]:
        return await self.request(
            "GET",
            "/v1/browse/new-releases",
            params={"limit": limit, "offset": offset, "country": country},
        )

    async def get_user_playlists(self, *, max_playlists: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self.get_all_items("/v1/me/playlists", params={"limit": 50}, max_items=max_playlists)
