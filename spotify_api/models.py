import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

GUEST_USER_ID = "guest"
GUEST_DISPLAY_NAME = "Guest User"


@dataclass(frozen=True)
class TokenInfo:
    """Successful token endpoint payload."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 3600
    scope: Optional[str] = None

    @staticmethod
    def from_token_response(payload: Dict[str, Any]) -> "TokenInfo":
        """Convert Spotify token response JSON into TokenInfo.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - scope (space-delimited string, absent for client credentials)
        """

        try:
            expires_in = int(payload.get("expires_in", 3600))
        except (TypeError, ValueError):
            expires_in = 3600

        return TokenInfo(
            access_token=str(payload.get("access_token", "")),
            token_type=str(payload.get("token_type", "Bearer")),
            expires_in=expires_in,
            scope=payload.get("scope"),
        )


@dataclass(frozen=True)
class UserIdentity:
    display_name: str
    id: str
    email: str = ""
    country: str = ""
    avatar_images: List[Dict[str, Any]] = field(default_factory=list)
    follower_count: int = 0
    profile_url: str = ""

    @classmethod
    def guest(cls) -> "UserIdentity":
        """Placeholder identity for sessions opened with client credentials."""
        return cls(display_name=GUEST_DISPLAY_NAME, id=GUEST_USER_ID)

    @classmethod
    def from_spotify_profile(cls, payload: Dict[str, Any]) -> "UserIdentity":
        """Build an identity from a ``GET /v1/me`` response."""

        payload = payload or {}
        images = [img for img in (payload.get("images") or []) if isinstance(img, dict)]
        followers = payload.get("followers") or {}
        external_urls = payload.get("external_urls") or {}

        return cls(
            display_name=str(payload.get("display_name") or payload.get("id") or ""),
            id=str(payload.get("id") or ""),
            email=str(payload.get("email") or ""),
            country=str(payload.get("country") or ""),
            avatar_images=images,
            follower_count=int(followers.get("total") or 0) if isinstance(followers, dict) else 0,
            profile_url=str(external_urls.get("spotify") or "") if isinstance(external_urls, dict) else "",
        )

    @property
    def is_guest(self) -> bool:
        return self.id == GUEST_USER_ID

    @property
    def avatar_url(self) -> Optional[str]:
        for img in self.avatar_images:
            url = img.get("url")
            if url:
                return str(url)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "display_name": self.display_name,
            "id": self.id,
            "email": self.email,
            "country": self.country,
            "avatar_images": list(self.avatar_images),
            "follower_count": self.follower_count,
            "profile_url": self.profile_url,
        }


@dataclass(frozen=True)
class PKCEContext:
    """Verifier kept between the authorize redirect and the callback.

    created_at is epoch seconds; state is the opaque value sent with the
    authorize URL.
    """

    verifier: str
    created_at: float
    state: Optional[str] = None

    @staticmethod
    def create(verifier: str, state: Optional[str] = None, *, now: Optional[float] = None) -> "PKCEContext":
        return PKCEContext(verifier=verifier, created_at=float(time.time() if now is None else now), state=state)

    def age(self, now: float) -> float:
        return float(now) - float(self.created_at)

    def to_dict(self) -> Dict[str, Any]:
        return {"verifier": self.verifier, "created_at": self.created_at, "state": self.state}

    @staticmethod
    def from_dict(data: Any) -> Optional["PKCEContext"]:
        if not isinstance(data, dict):
            return None

        verifier = data.get("verifier")
        if not isinstance(verifier, str) or not verifier:
            return None

        try:
            created_at = float(data.get("created_at", 0))
        except (TypeError, ValueError):
            return None

        state = data.get("state")
        return PKCEContext(verifier=verifier, created_at=created_at, state=str(state) if state else None)
